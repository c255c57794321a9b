"""Run controller: sequence every stage for one brief.

Complexity gate -> research -> synthesis -> duplicate check (informational)
-> fact-check loop -> composite score -> readability loop -> link
enforcement -> duplicate check (final).

A controller holds no per-run state, so one instance can serve concurrent
runs. Everything about a run lives in its ``RunState`` and the loop states.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Sequence

from quality_gate.config import (
    BASE_RUN_COST_CENTS,
    READABILITY_ITERATION_COST_CENTS,
    RUN_DEADLINE_SECONDS,
)
from quality_gate.deadline import Deadline
from quality_gate.errors import UpstreamFailure
from quality_gate.events import EventKind, Observer, PipelineEvent, Stage
from quality_gate.models import (
    STAGE_UPSTREAM,
    Brief,
    ExistingContent,
    InternalLink,
    IterationCounts,
    Rejected,
    RunResult,
    RunState,
    Success,
)
from quality_gate.pipeline.complexity import pre_validate
from quality_gate.pipeline.fact_check_loop import (
    FactCheckContext,
    fact_check_rejection,
    high_confidence_texts,
    rescore,
    run_fact_check_loop,
)
from quality_gate.pipeline.interfaces import Collaborators
from quality_gate.pipeline.links import enforce_link
from quality_gate.pipeline.readability_loop import (
    ReadabilityContext,
    needs_refinement,
    readability_rejection,
    run_readability_loop,
)


class _StageTracker:
    """Remembers the last stage entered so upstream failures can name it."""

    def __init__(self, observer: Observer):
        self.observer = observer
        self.stage = Stage.RUN

    def emit(self, event: PipelineEvent) -> None:
        if event.kind == EventKind.STAGE_ENTERED:
            self.stage = event.stage
        self.observer.emit(event)


class RunController:
    def __init__(
        self,
        collaborators: Collaborators,
        observer: Optional[Observer] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.collaborators = collaborators
        self.observer = observer or Observer()
        self.clock = clock

    def run(
        self,
        brief: Brief,
        corpus: Sequence[ExistingContent] = (),
        internal_links: Sequence[InternalLink] = (),
        deadline: Optional[Deadline] = None,
    ) -> RunResult:
        """Run every stage for ``brief`` and return ``Success`` or ``Rejected``.

        Collaborator failures are never retried here; they end the run with
        ``Rejected(stage="upstream")``.
        """
        deadline = deadline or Deadline(RUN_DEADLINE_SECONDS, clock=self.clock)
        tracker = _StageTracker(self.observer)
        state = RunState(started_at=self.clock(), estimated_cost_cents=BASE_RUN_COST_CENTS)
        try:
            result = self._run(brief, corpus, internal_links, deadline, tracker, state)
        except Exception as exc:  # any collaborator error ends the run as an upstream rejection
            cause = exc.cause if isinstance(exc, UpstreamFailure) else f"{type(exc).__name__}: {exc}"
            stage = tracker.stage.value
            tracker.emit(PipelineEvent(
                EventKind.GATE_DECISION, tracker.stage, f"Upstream failure: {cause}",
                {"passed": False, "cause": cause},
            ))
            result = Rejected(
                stage=STAGE_UPSTREAM,
                diagnostic={"error": "Failed to generate content", "cause": cause, "stage_reached": stage},
                message=f"An external service failed during {stage}: {cause}\n\nRetry the generation later.",
            )
        tracker.emit(PipelineEvent(
            EventKind.RUN_FINISHED, Stage.RUN,
            "Run succeeded" if result.ok else f"Run rejected at {result.stage}",
            {"ok": result.ok, "stage": None if result.ok else result.stage},
        ))
        return result

    def _run(
        self,
        brief: Brief,
        corpus: Sequence[ExistingContent],
        internal_links: Sequence[InternalLink],
        deadline: Deadline,
        observer: _StageTracker,
        state: RunState,
    ) -> RunResult:
        c = self.collaborators

        observer.emit(PipelineEvent(
            EventKind.STAGE_ENTERED, Stage.NORMALIZE, f"Outline: {len(brief.outline)} section(s)",
            {"outline": list(brief.outline)},
        ))

        # ── Complexity gate ───────────────────────────────────────────────
        rejection = pre_validate(brief, c.classifier, observer, deadline)
        if rejection is not None:
            return rejection

        # ── Research + synthesis ──────────────────────────────────────────
        observer.emit(PipelineEvent(
            EventKind.STAGE_ENTERED, Stage.RESEARCH, f"Researching '{brief.search_keyword}'",
        ))
        deadline.check(Stage.RESEARCH.value)
        research = c.researcher.research(brief.search_keyword, brief.title, deadline)
        observer.emit(PipelineEvent(
            EventKind.INFO, Stage.RESEARCH,
            f"{len(research.statistics)} statistics, {len(research.case_studies)} case studies, "
            f"{len(research.trends)} trends",
        ))

        observer.emit(PipelineEvent(
            EventKind.STAGE_ENTERED, Stage.SYNTHESIS,
            f"Generating draft ({len(internal_links)} internal link candidates)",
        ))
        deadline.check(Stage.SYNTHESIS.value)
        artifact = c.synthesizer.synthesize(brief, research, brief.target_flesch, internal_links, deadline)
        observer.emit(PipelineEvent(EventKind.INFO, Stage.SYNTHESIS, f"Draft has {artifact.word_count} words"))

        observer.emit(PipelineEvent(EventKind.STAGE_ENTERED, Stage.DUPLICATE_CHECK, "Checking draft for duplicates"))
        deadline.check(Stage.DUPLICATE_CHECK.value)
        draft_duplicates = c.duplicate_checker.check(artifact.title, artifact.body, corpus, deadline)
        observer.emit(PipelineEvent(
            EventKind.INFO, Stage.DUPLICATE_CHECK,
            f"duplicate={draft_duplicates.is_duplicate} similarity={draft_duplicates.similarity} "
            f"warnings={len(draft_duplicates.warnings)}",
            {"is_duplicate": draft_duplicates.is_duplicate, "similarity": draft_duplicates.similarity},
        ))

        # ── Fact-check loop ───────────────────────────────────────────────
        fact_ctx = FactCheckContext(c.synthesizer, c.fact_checker, observer, deadline)
        fact_state = run_fact_check_loop(artifact, fact_ctx, state.protected_claims)
        state = state.with_fact_attempts(fact_state.attempts).protect(fact_state.protected_claims)
        if not fact_state.passed:
            return fact_check_rejection(fact_state)
        artifact, report = fact_state.artifact, fact_state.report

        # ── Composite score ───────────────────────────────────────────────
        observer.emit(PipelineEvent(EventKind.STAGE_ENTERED, Stage.SCORING, "Calculating scores"))
        scores = c.scorer.score(artifact, report.score, brief.local_context, brief.target_flesch)
        observer.emit(PipelineEvent(
            EventKind.INFO, Stage.SCORING,
            f"composite={scores.composite} readability={scores.readability} "
            f"flesch={scores.readability_detail.flesch} fact_check={scores.fact_check}",
            scores.as_dict(),
        ))

        # ── Readability loop ──────────────────────────────────────────────
        if needs_refinement(brief.target_flesch, scores):
            read_ctx = ReadabilityContext(
                c.synthesizer, c.fact_checker, c.scorer, observer, deadline, brief.local_context
            )
            read_state = run_readability_loop(
                artifact, scores, report, brief.target_flesch, read_ctx, state.protected_claims
            )
            state = (
                state.with_readability_attempts(read_state.attempts)
                .protect(read_state.protected_claims)
                .add_cost(read_state.attempts * READABILITY_ITERATION_COST_CENTS)
            )
            if not read_state.passed:
                return readability_rejection(read_state)
            artifact, report, scores = read_state.artifact, read_state.report, read_state.scores

        # ── Strategic link ────────────────────────────────────────────────
        link_present = None
        link_injected = False
        if brief.link is not None:
            outcome = enforce_link(
                artifact, brief.link, c.synthesizer, observer, deadline, state.protected_claims
            )
            link_present, link_injected = outcome.present, outcome.injected
            if outcome.injected:
                artifact = outcome.artifact
                report = rescore(artifact, fact_ctx)
                state = state.protect(high_confidence_texts(report))
                scores = c.scorer.score(artifact, report.score, brief.local_context, brief.target_flesch)

        # ── Final duplicate check ─────────────────────────────────────────
        observer.emit(PipelineEvent(
            EventKind.STAGE_ENTERED, Stage.FINAL_DUPLICATE_CHECK, "Checking final content for duplicates",
        ))
        deadline.check(Stage.FINAL_DUPLICATE_CHECK.value)
        duplicates = c.duplicate_checker.check(artifact.title, artifact.body, corpus, deadline)
        if duplicates.is_duplicate:
            observer.emit(PipelineEvent(
                EventKind.WARNING, Stage.FINAL_DUPLICATE_CHECK,
                f"Content is {duplicates.similarity}% similar to existing content",
                {"matched_urls": list(duplicates.matched_urls)},
            ))

        return Success(
            artifact=artifact,
            fact_check=report,
            scores=scores,
            duplicates=duplicates,
            iterations=IterationCounts(
                fact_check=state.fact_attempts,
                readability=state.readability_attempts,
                link_injected=link_injected,
            ),
            initial_fact_score=fact_state.initial_score,
            link_present=link_present,
            elapsed_seconds=round(self.clock() - state.started_at, 2),
            estimated_cost_cents=state.estimated_cost_cents,
        )
