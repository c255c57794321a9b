"""Bounded fact-check refinement loop.

The loop is an explicit state machine. ``FactCheckState`` is passed by value
between transition functions, one per phase:

    SCORE -> IDENTIFY -> REWRITE -> RESCORE -> SCORE ... -> DONE

``attempts`` counts fact-check scoring rounds; the first draft's score is
attempt 1 and there are never more than ``MAX_FACT_ATTEMPTS``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from quality_gate.config import (
    CLAIM_PROTECT_FROM,
    CLAIM_REMOVE_BELOW,
    MAX_FACT_ATTEMPTS,
    MIN_FACT_SCORE,
    UNCERTAIN_PROBLEM_BELOW,
)
from quality_gate.deadline import Deadline
from quality_gate.events import EventKind, Observer, PipelineEvent, Stage
from quality_gate.models import (
    STAGE_FACT_CHECK,
    Claim,
    ClaimStatus,
    ContentArtifact,
    FactCheckReport,
    Rejected,
)
from quality_gate.pipeline.interfaces import FactChecker, Synthesizer
from quality_gate.pipeline.prompts import build_fact_refinement_instruction
from quality_gate.pipeline.protection import rewrite_protected


class FactPhase(str, Enum):
    SCORE = "score"
    IDENTIFY = "identify"
    REWRITE = "rewrite"
    RESCORE = "rescore"
    DONE = "done"


class FactOutcome(str, Enum):
    PASS = "pass"
    DEGRADED = "degraded"  # nothing actionable left below the floor
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class FactCheckState:
    artifact: ContentArtifact
    phase: FactPhase = FactPhase.SCORE
    attempts: int = 0
    report: Optional[FactCheckReport] = None
    problematic: tuple[Claim, ...] = ()
    protected_claims: frozenset = frozenset()
    outcome: Optional[FactOutcome] = None
    initial_score: Optional[int] = None

    @property
    def passed(self) -> bool:
        return self.report is not None and self.report.score >= MIN_FACT_SCORE


@dataclass(frozen=True)
class FactCheckContext:
    synthesizer: Synthesizer
    fact_checker: FactChecker
    observer: Observer
    deadline: Deadline


# ── Claim selection ───────────────────────────────────────────────────────


def is_problematic(claim: Claim) -> bool:
    return claim.status == ClaimStatus.UNVERIFIED or (
        claim.status == ClaimStatus.UNCERTAIN and claim.confidence < UNCERTAIN_PROBLEM_BELOW
    )


def identify_problematic(report: FactCheckReport) -> tuple[Claim, ...]:
    return tuple(c for c in report.claims if is_problematic(c))


def partition_claims(report: FactCheckReport) -> tuple[list[Claim], list[Claim], list[Claim]]:
    """Split claims into (remove, soften, keep) by confidence band."""
    remove, soften, keep = [], [], []
    for claim in report.claims:
        if claim.confidence < CLAIM_REMOVE_BELOW:
            remove.append(claim)
        elif claim.confidence < CLAIM_PROTECT_FROM:
            soften.append(claim)
        else:
            keep.append(claim)
    return remove, soften, keep


def high_confidence_texts(report: FactCheckReport) -> frozenset:
    return frozenset(c.text for c in report.claims if c.confidence >= CLAIM_PROTECT_FROM)


# ── Transitions ───────────────────────────────────────────────────────────


def rescore(artifact: ContentArtifact, ctx: FactCheckContext) -> FactCheckReport:
    """A single fact-check scoring call, used outside the loop as well."""
    ctx.deadline.check(Stage.FACT_CHECK.value)
    return ctx.fact_checker.check(artifact.body, ctx.deadline)


def _with_report(state: FactCheckState, report: FactCheckReport, attempts: int) -> FactCheckState:
    return replace(
        state,
        report=report,
        attempts=attempts,
        protected_claims=state.protected_claims | high_confidence_texts(report),
        initial_score=report.score if state.initial_score is None else state.initial_score,
    )


def score_step(state: FactCheckState, ctx: FactCheckContext) -> FactCheckState:
    if state.report is None:
        ctx.observer.emit(PipelineEvent(
            EventKind.ATTEMPT, Stage.FACT_CHECK, f"Fact-check attempt 1/{MAX_FACT_ATTEMPTS}",
            {"attempt": 1, "max": MAX_FACT_ATTEMPTS},
        ))
        state = _with_report(state, rescore(state.artifact, ctx), attempts=1)

    report = state.report
    if report.score >= MIN_FACT_SCORE:
        return _done(state, FactOutcome.PASS, ctx)
    if state.attempts >= MAX_FACT_ATTEMPTS:
        return _done(state, FactOutcome.EXHAUSTED, ctx)
    return replace(state, phase=FactPhase.IDENTIFY)


def identify_step(state: FactCheckState, ctx: FactCheckContext) -> FactCheckState:
    problematic = identify_problematic(state.report)
    if not problematic:
        ctx.observer.emit(PipelineEvent(
            EventKind.INFO, Stage.FACT_CHECK,
            "No problematic claims identified, leaving refinement loop",
        ))
        return _done(state, FactOutcome.DEGRADED, ctx)
    return replace(state, phase=FactPhase.REWRITE, problematic=problematic)


def rewrite_step(state: FactCheckState, ctx: FactCheckContext) -> FactCheckState:
    to_remove, to_soften, keep = partition_claims(state.report)
    ctx.observer.emit(PipelineEvent(
        EventKind.INFO, Stage.FACT_CHECK,
        f"Rewriting: {len(to_remove)} to remove/generalize, {len(to_soften)} to soften, "
        f"{len(keep)} kept verbatim",
        {"remove": len(to_remove), "soften": len(to_soften), "keep": len(keep)},
    ))
    instruction = build_fact_refinement_instruction(to_remove, to_soften, keep)
    ctx.deadline.check(Stage.FACT_CHECK.value)
    artifact, kept = rewrite_protected(
        ctx.synthesizer, state.artifact, instruction, state.protected_claims, ctx.deadline
    )
    if not kept:
        ctx.observer.emit(PipelineEvent(
            EventKind.WARNING, Stage.FACT_CHECK,
            "Rewrite altered a verified sentence; keeping the previous draft",
        ))
    return replace(state, artifact=artifact, phase=FactPhase.RESCORE)


def rescore_step(state: FactCheckState, ctx: FactCheckContext) -> FactCheckState:
    attempt = state.attempts + 1
    ctx.observer.emit(PipelineEvent(
        EventKind.ATTEMPT, Stage.FACT_CHECK, f"Fact-check attempt {attempt}/{MAX_FACT_ATTEMPTS}",
        {"attempt": attempt, "max": MAX_FACT_ATTEMPTS},
    ))
    previous = state.report.score
    state = _with_report(state, rescore(state.artifact, ctx), attempts=attempt)
    ctx.observer.emit(PipelineEvent(
        EventKind.INFO, Stage.FACT_CHECK, f"Refinement result: {previous} -> {state.report.score}",
    ))
    return replace(state, phase=FactPhase.SCORE)


def _done(state: FactCheckState, outcome: FactOutcome, ctx: FactCheckContext) -> FactCheckState:
    passed = state.report.score >= MIN_FACT_SCORE
    ctx.observer.emit(PipelineEvent(
        EventKind.GATE_DECISION, Stage.FACT_CHECK,
        f"Fact-check {outcome.value}: score {state.report.score}/100 after {state.attempts} attempt(s)",
        {"passed": passed, "outcome": outcome.value, "score": state.report.score, "attempts": state.attempts},
    ))
    return replace(state, phase=FactPhase.DONE, outcome=outcome)


_TRANSITIONS = {
    FactPhase.SCORE: score_step,
    FactPhase.IDENTIFY: identify_step,
    FactPhase.REWRITE: rewrite_step,
    FactPhase.RESCORE: rescore_step,
}


def step(state: FactCheckState, ctx: FactCheckContext) -> FactCheckState:
    return _TRANSITIONS[state.phase](state, ctx)


def run_fact_check_loop(
    artifact: ContentArtifact,
    ctx: FactCheckContext,
    protected_claims: frozenset = frozenset(),
) -> FactCheckState:
    """Drive the loop from SCORE until DONE."""
    ctx.observer.emit(PipelineEvent(EventKind.STAGE_ENTERED, Stage.FACT_CHECK, "Fact-checking draft"))
    state = FactCheckState(artifact=artifact, protected_claims=protected_claims)
    while state.phase != FactPhase.DONE:
        state = step(state, ctx)
    return state


def fact_check_rejection(state: FactCheckState) -> Rejected:
    report = state.report
    message = (
        f"Only {report.verified}/{report.total} claims could be verified "
        f"(score {report.score}, minimum {MIN_FACT_SCORE}) after {state.attempts} attempt(s). "
        "This topic may need:\n\n"
        "- More specific keywords in your strategy\n"
        "- Additional research context\n"
        "- A less technical angle\n"
        "- Manual fact-checking before generation\n"
        "- A retry of the generation"
    )
    return Rejected(
        stage=STAGE_FACT_CHECK,
        diagnostic={
            "error": "Unable to verify enough facts in the content",
            "score": report.score,
            "min_score": MIN_FACT_SCORE,
            "total": report.total,
            "verified": report.verified,
            "uncertain": report.uncertain,
            "unverified": report.unverified,
            "attempts": state.attempts,
            "outcome": state.outcome.value if state.outcome else None,
        },
        message=message,
    )
