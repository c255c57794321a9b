"""Bounded readability refinement loop.

Mirrors the fact-check loop: ``ReadabilityState`` moves through
CHECK -> REWRITE -> RESCORE -> CHECK ... -> DONE. Every rewrite changes the
prose, so each RESCORE runs one fact-check score and one composite score
before the exit condition is evaluated again.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from quality_gate.config import MAX_READABILITY_ATTEMPTS, MIN_READABILITY_SCORE
from quality_gate.deadline import Deadline
from quality_gate.events import EventKind, Observer, PipelineEvent, Stage
from quality_gate.models import (
    STAGE_READABILITY,
    ContentArtifact,
    FactCheckReport,
    LocalContext,
    Rejected,
    ScoreSet,
)
from quality_gate.pipeline.fact_check_loop import high_confidence_texts
from quality_gate.pipeline.interfaces import FactChecker, Scorer, Synthesizer
from quality_gate.pipeline.levels import reading_level_description, readability_gap, short_reading_level
from quality_gate.pipeline.prompts import build_readability_instruction
from quality_gate.pipeline.protection import rewrite_protected


class ReadPhase(str, Enum):
    CHECK = "check"
    REWRITE = "rewrite"
    RESCORE = "rescore"
    DONE = "done"


@dataclass(frozen=True)
class ReadabilityState:
    artifact: ContentArtifact
    scores: ScoreSet
    report: FactCheckReport
    target_flesch: int
    phase: ReadPhase = ReadPhase.CHECK
    attempts: int = 0
    protected_claims: frozenset = frozenset()

    @property
    def actual_flesch(self) -> float:
        return self.scores.readability_detail.flesch

    @property
    def gap(self) -> float:
        return readability_gap(self.actual_flesch, self.target_flesch)

    @property
    def too_complex(self) -> bool:
        return self.actual_flesch < self.target_flesch

    @property
    def passed(self) -> bool:
        return self.scores.readability >= MIN_READABILITY_SCORE


@dataclass(frozen=True)
class ReadabilityContext:
    synthesizer: Synthesizer
    fact_checker: FactChecker
    scorer: Scorer
    observer: Observer
    deadline: Deadline
    local_context: Optional[LocalContext] = None


def needs_refinement(target_flesch: Optional[int], scores: ScoreSet) -> bool:
    return target_flesch is not None and scores.readability < MIN_READABILITY_SCORE


# ── Transitions ───────────────────────────────────────────────────────────


def check_step(state: ReadabilityState, ctx: ReadabilityContext) -> ReadabilityState:
    if state.passed or state.attempts >= MAX_READABILITY_ATTEMPTS:
        ctx.observer.emit(PipelineEvent(
            EventKind.GATE_DECISION, Stage.READABILITY,
            f"Readability {state.scores.readability}/100, Flesch {state.actual_flesch} "
            f"(target {state.target_flesch}) after {state.attempts} attempt(s)",
            {
                "passed": state.passed,
                "readability": state.scores.readability,
                "flesch": state.actual_flesch,
                "attempts": state.attempts,
            },
        ))
        return replace(state, phase=ReadPhase.DONE)
    return replace(state, phase=ReadPhase.REWRITE)


def rewrite_step(state: ReadabilityState, ctx: ReadabilityContext) -> ReadabilityState:
    attempt = state.attempts + 1
    ctx.observer.emit(PipelineEvent(
        EventKind.ATTEMPT, Stage.READABILITY,
        f"Readability refinement attempt {attempt}/{MAX_READABILITY_ATTEMPTS} "
        f"({'simplify' if state.too_complex else 'elaborate'}, gap {state.gap})",
        {"attempt": attempt, "max": MAX_READABILITY_ATTEMPTS, "too_complex": state.too_complex},
    ))
    instruction = build_readability_instruction(state.target_flesch, state.actual_flesch)
    ctx.deadline.check(Stage.READABILITY.value)
    artifact, kept = rewrite_protected(
        ctx.synthesizer, state.artifact, instruction, state.protected_claims, ctx.deadline
    )
    if not kept:
        ctx.observer.emit(PipelineEvent(
            EventKind.WARNING, Stage.READABILITY,
            "Rewrite altered a verified sentence; keeping the previous draft",
        ))
    return replace(state, artifact=artifact, phase=ReadPhase.RESCORE)


def rescore_step(state: ReadabilityState, ctx: ReadabilityContext) -> ReadabilityState:
    ctx.deadline.check(Stage.READABILITY.value)
    report = ctx.fact_checker.check(state.artifact.body, ctx.deadline)
    scores = ctx.scorer.score(state.artifact, report.score, ctx.local_context, state.target_flesch)
    ctx.observer.emit(PipelineEvent(
        EventKind.INFO, Stage.READABILITY,
        f"Readability {state.scores.readability} -> {scores.readability}, "
        f"Flesch {state.actual_flesch} -> {scores.readability_detail.flesch}, "
        f"fact-check {state.report.score} -> {report.score}",
    ))
    return replace(
        state,
        report=report,
        scores=scores,
        attempts=state.attempts + 1,
        protected_claims=state.protected_claims | high_confidence_texts(report),
        phase=ReadPhase.CHECK,
    )


_TRANSITIONS = {
    ReadPhase.CHECK: check_step,
    ReadPhase.REWRITE: rewrite_step,
    ReadPhase.RESCORE: rescore_step,
}


def step(state: ReadabilityState, ctx: ReadabilityContext) -> ReadabilityState:
    return _TRANSITIONS[state.phase](state, ctx)


def run_readability_loop(
    artifact: ContentArtifact,
    scores: ScoreSet,
    report: FactCheckReport,
    target_flesch: int,
    ctx: ReadabilityContext,
    protected_claims: frozenset = frozenset(),
) -> ReadabilityState:
    state = ReadabilityState(
        artifact=artifact,
        scores=scores,
        report=report,
        target_flesch=target_flesch,
        protected_claims=protected_claims,
    )
    ctx.observer.emit(PipelineEvent(
        EventKind.STAGE_ENTERED, Stage.READABILITY,
        f"Readability refinement needed: Flesch {state.actual_flesch} vs target {target_flesch} "
        f"(gap {state.gap}), score {scores.readability}/100",
    ))
    while state.phase != ReadPhase.DONE:
        state = step(state, ctx)
    return state


def readability_rejection(state: ReadabilityState) -> Rejected:
    target_level = reading_level_description(state.target_flesch)
    actual_level = short_reading_level(state.actual_flesch)
    plural = "s" if state.attempts != 1 else ""
    if state.too_complex:
        direction = "too_complex"
        advice = (
            "This topic is too complex for your target audience.\n\n"
            "Quick fix options:\n"
            "- Edit the topic and lower the target Flesch score by 10-15 points (accept a harder reading level)\n"
            "- Simplify the outline sections\n"
            "- Retry generation (sometimes succeeds)"
        )
    else:
        direction = "too_simple"
        advice = (
            "This topic is too simple for your target audience.\n\n"
            "Quick fix options:\n"
            "- Edit the topic and raise the target Flesch score by 10-15 points (ask for easier reading)\n"
            "- Add more detailed outline sections\n"
            "- Retry generation (sometimes succeeds)"
        )
    message = (
        f"Content ended {state.gap} points from your target reading level after "
        f"{state.attempts} attempt{plural}.\n\n"
        f"Target: Flesch {state.target_flesch} ({target_level})\n"
        f"Result: Flesch {state.actual_flesch} ({actual_level})\n\n"
        f"{advice}"
    )
    return Rejected(
        stage=STAGE_READABILITY,
        diagnostic={
            "error": "Unable to match target reading level",
            "target_flesch": state.target_flesch,
            "actual_flesch": state.actual_flesch,
            "gap": state.gap,
            "attempts": state.attempts,
            "readability_score": state.scores.readability,
            "min_readability_score": MIN_READABILITY_SCORE,
            "avg_sentence_length": state.scores.readability_detail.avg_sentence_length,
            "target_level": target_level,
            "actual_level": actual_level,
            "direction": direction,
            "suggested_flesch_adjustment": (-15, -10) if state.too_complex else (10, 15),
        },
        message=message,
    )
