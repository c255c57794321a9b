"""Tests for the bounded fact-check refinement loop."""

import pytest

from quality_gate.deadline import Deadline
from quality_gate.events import EventKind, Stage
from quality_gate.models import STAGE_FACT_CHECK, RunState
from quality_gate.pipeline.fact_check_loop import (
    FactCheckContext,
    FactOutcome,
    fact_check_rejection,
    identify_problematic,
    is_problematic,
    partition_claims,
    run_fact_check_loop,
)

from tests.conftest import FakeFactChecker, FakeSynthesizer, artifact, claim, report

FACT_BODY = (
    "## Market\n\n"
    "The market grew 45% last year. A basic plan costs $50 per month. "
    "Python was first released in 1991.\n"
)
PROTECTED_SENTENCE = "Python was first released in 1991."

LOW = claim("The market grew 45% last year", "unverified", 45)
MID = claim("A basic plan costs $50 per month", "uncertain", 65)
HIGH = claim("Python was first released in 1991", "verified", 90)


def refine(body, instruction):
    """A well-behaved rewrite: generalizes LOW, softens MID, keeps tokens."""
    return (
        body.replace("The market grew 45% last year.", "The market keeps growing.")
        .replace("costs $50", "costs around $50")
    )


def context(synthesizer, fact_checker, observer):
    return FactCheckContext(synthesizer, fact_checker, observer, Deadline.none())


# ---------------------------------------------------------------------------
# Claim selection
# ---------------------------------------------------------------------------

class TestClaimSelection:
    """Confidence bands and the problematic-claim rule."""

    def test_partition_boundaries(self):
        claims = [
            claim("a", "unverified", 59),
            claim("b", "uncertain", 60),
            claim("c", "uncertain", 79),
            claim("d", "verified", 80),
        ]
        remove, soften, keep = partition_claims(report(50, *claims))
        assert [c.text for c in remove] == ["a"]
        assert [c.text for c in soften] == ["b", "c"]
        assert [c.text for c in keep] == ["d"]

    def test_unverified_is_problematic(self):
        assert is_problematic(claim("x", "unverified", 95))

    def test_low_confidence_uncertain_is_problematic(self):
        assert is_problematic(claim("x", "uncertain", 49))

    def test_uncertain_at_fifty_is_not_problematic(self):
        assert not is_problematic(claim("x", "uncertain", 50))

    def test_verified_is_never_problematic(self):
        assert not is_problematic(claim("x", "verified", 10))

    def test_identify_keeps_order(self):
        r = report(40, LOW, MID, HIGH, claim("z", "uncertain", 20))
        assert [c.text for c in identify_problematic(r)] == [LOW.text, "z"]


# ---------------------------------------------------------------------------
# Loop behaviour
# ---------------------------------------------------------------------------

class TestFactCheckLoop:
    """The loop scores, rewrites and rescores within its attempt cap."""

    def test_passing_draft_needs_one_attempt(self, observer):
        synth = FakeSynthesizer()
        state = run_fact_check_loop(artifact(), context(synth, FakeFactChecker(), observer))

        assert state.passed
        assert state.attempts == 1
        assert state.outcome == FactOutcome.PASS
        assert state.initial_score == 85
        assert synth.rewrite_calls == []

    def test_refinement_removes_softens_and_keeps(self, observer):
        synth = FakeSynthesizer(rewrite_fn=refine)
        checker = FakeFactChecker(
            report(50, LOW, MID, HIGH),
            report(85, claim("A basic plan costs around $50 per month", "verified", 85), HIGH),
        )
        state = run_fact_check_loop(artifact(FACT_BODY), context(synth, checker, observer))

        assert state.passed
        assert state.attempts == 2
        assert state.initial_score == 50
        assert state.report.score == 85

        body = state.artifact.body
        assert "45%" not in body
        assert body.count("around") == 1
        assert body.count(PROTECTED_SENTENCE) == 1
        assert checker.calls[1] == body

    def test_verified_sentence_is_masked_for_the_rewrite(self, observer):
        synth = FakeSynthesizer(rewrite_fn=refine)
        checker = FakeFactChecker(report(50, LOW, MID, HIGH), report(85, HIGH))
        run_fact_check_loop(artifact(FACT_BODY), context(synth, checker, observer))

        masked, instruction = synth.rewrite_calls[0]
        assert "[[KEEP-1]]" in masked
        assert PROTECTED_SENTENCE not in masked
        assert "REMOVE" in instruction and LOW.text in instruction
        assert "SOFTEN" in instruction and MID.text in instruction

    def test_high_confidence_claims_are_recorded(self, observer):
        synth = FakeSynthesizer(rewrite_fn=refine)
        checker = FakeFactChecker(report(50, LOW, MID, HIGH), report(85, HIGH))
        state = run_fact_check_loop(
            artifact(FACT_BODY), context(synth, checker, observer), frozenset({"earlier claim"})
        )
        assert state.protected_claims == frozenset({"earlier claim", HIGH.text})

    def test_rewrite_that_alters_verified_sentence_is_discarded(self, observer):
        def tamper(body, instruction):
            return body.replace("[[KEEP-1]]", "Python came out in 1991.")

        synth = FakeSynthesizer(rewrite_fn=tamper)
        checker = FakeFactChecker(report(50, LOW, HIGH), report(75, HIGH))
        state = run_fact_check_loop(artifact(FACT_BODY), context(synth, checker, observer))

        assert state.artifact.body == FACT_BODY
        assert state.attempts == 2
        warnings = observer.warnings()
        assert len(warnings) == 1
        assert warnings[0].stage == Stage.FACT_CHECK

    def test_attempts_capped_at_three(self, observer):
        synth = FakeSynthesizer(rewrite_fn=refine)
        checker = FakeFactChecker(report(40, LOW, HIGH))
        state = run_fact_check_loop(artifact(FACT_BODY), context(synth, checker, observer))

        assert not state.passed
        assert state.attempts == 3
        assert state.outcome == FactOutcome.EXHAUSTED
        assert len(checker.calls) == 3
        assert len(synth.rewrite_calls) == 2
        assert observer.kinds(Stage.FACT_CHECK).count(EventKind.ATTEMPT) == 3

    def test_nothing_actionable_exits_degraded(self, observer):
        synth = FakeSynthesizer(rewrite_fn=refine)
        checker = FakeFactChecker(report(60, claim("x", "uncertain", 55), claim("y", "verified", 70)))
        state = run_fact_check_loop(artifact(), context(synth, checker, observer))

        assert not state.passed
        assert state.attempts == 1
        assert state.outcome == FactOutcome.DEGRADED
        assert synth.rewrite_calls == []

    def test_single_gate_decision(self, observer):
        run_fact_check_loop(artifact(), context(FakeSynthesizer(), FakeFactChecker(), observer))
        assert len(observer.decisions(Stage.FACT_CHECK)) == 1


# ---------------------------------------------------------------------------
# Rejection payload
# ---------------------------------------------------------------------------

class TestFactCheckRejection:
    """Diagnostics carry the counts and attempts the caller reports."""

    def test_diagnostic(self, observer):
        checker = FakeFactChecker(report(40, LOW, MID, HIGH))
        state = run_fact_check_loop(
            artifact(FACT_BODY), context(FakeSynthesizer(rewrite_fn=refine), checker, observer)
        )
        rejected = fact_check_rejection(state)

        assert rejected.stage == STAGE_FACT_CHECK
        d = rejected.diagnostic
        assert (d["score"], d["min_score"], d["attempts"]) == (40, 70, 3)
        assert (d["total"], d["verified"], d["uncertain"], d["unverified"]) == (3, 1, 1, 1)
        assert d["outcome"] == "exhausted"
        assert "1/3 claims" in rejected.message


# ---------------------------------------------------------------------------
# Run state counters
# ---------------------------------------------------------------------------

class TestRunStateCounters:
    """Attempt counters only move forward and never pass their caps."""

    def test_fact_attempts_monotonic(self):
        state = RunState(started_at=0).with_fact_attempts(2)
        with pytest.raises(ValueError):
            state.with_fact_attempts(1)

    def test_fact_attempts_capped(self):
        with pytest.raises(ValueError):
            RunState(started_at=0).with_fact_attempts(4)

    def test_readability_attempts_capped(self):
        assert RunState(started_at=0).with_readability_attempts(5).readability_attempts == 5
        with pytest.raises(ValueError):
            RunState(started_at=0).with_readability_attempts(6)

    def test_cost_accumulates(self):
        assert RunState(started_at=0, estimated_cost_cents=15).add_cost(6).estimated_cost_cents == 21
