"""End-to-end tests for the run controller with fake collaborators."""

from dataclasses import replace

from quality_gate.deadline import Deadline
from quality_gate.errors import UpstreamFailure
from quality_gate.events import EventKind, Stage
from quality_gate.models import (
    STAGE_COMPLEXITY,
    STAGE_FACT_CHECK,
    STAGE_READABILITY,
    STAGE_UPSTREAM,
    DuplicateReport,
    ExistingContent,
    InternalLink,
    LinkSpec,
    Verdict,
)
from quality_gate.pipeline.controller import RunController
from quality_gate.pipeline.links import count_link

from tests.conftest import (
    FakeClassifier,
    FakeDuplicateChecker,
    FakeFactChecker,
    FakeResearcher,
    FakeScorer,
    FakeSynthesizer,
    claim,
    make_scores,
    report,
)

PRICING = LinkSpec(url="/pricing", anchor="view pricing")


def controller(fakes, observer, clock):
    return RunController(fakes.collaborators(), observer, clock=clock)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestSuccessfulRun:
    """A draft that passes every gate on the first try."""

    def test_single_pass(self, fakes, observer, clock, brief):
        result = controller(fakes, observer, clock).run(brief)

        assert result.ok
        assert result.iterations.as_dict() == {
            "fact_check_attempts": 1,
            "readability_attempts": 0,
            "link_injected": False,
            "generation_iterations": 1,
        }
        assert result.initial_fact_score == 85
        assert result.fact_check.score == 85
        assert result.scores.fact_check == 85
        assert result.link_present is None
        assert result.estimated_cost_cents == 15
        assert result.elapsed_seconds == 0.0

    def test_stage_order(self, fakes, observer, clock, brief):
        controller(fakes, observer, clock).run(brief)
        assert observer.stages_entered() == [
            Stage.NORMALIZE,
            Stage.RESEARCH,
            Stage.SYNTHESIS,
            Stage.DUPLICATE_CHECK,
            Stage.FACT_CHECK,
            Stage.SCORING,
            Stage.FINAL_DUPLICATE_CHECK,
        ]
        assert observer.events[-1].kind == EventKind.RUN_FINISHED
        assert observer.events[-1].data == {"ok": True, "stage": None}

    def test_no_target_skips_classifier(self, fakes, observer, clock, brief):
        controller(fakes, observer, clock).run(brief)
        assert fakes.classifier.calls == []

    def test_inputs_reach_collaborators(self, fakes, observer, clock, brief):
        links = [InternalLink(url="/blog/budget", title="Budgeting")]
        corpus = [ExistingContent(url="/blog/meal-planning", title="Meal Planning")]
        controller(fakes, observer, clock).run(brief, corpus=corpus, internal_links=links)

        assert fakes.researcher.calls == ["save money on groceries"]
        assert fakes.synthesizer.synth_calls == [(brief.title, None, tuple(links))]
        assert len(fakes.duplicate_checker.calls) == 2
        assert fakes.duplicate_checker.calls[-1][2] == tuple(corpus)

    def test_duplicate_is_a_warning_only(self, fakes, observer, clock, brief):
        fakes.duplicate_checker = FakeDuplicateChecker(
            DuplicateReport(is_duplicate=True, similarity=88, matched_urls=("/blog/meal-planning",))
        )
        result = controller(fakes, observer, clock).run(brief)

        assert result.ok
        assert result.duplicates.similarity == 88
        assert [w.stage for w in observer.warnings()] == [Stage.FINAL_DUPLICATE_CHECK]

    def test_controller_is_reusable(self, fakes, observer, clock, brief):
        ctl = controller(fakes, observer, clock)
        first, second = ctl.run(brief), ctl.run(brief)
        assert first.iterations == second.iterations
        assert first.estimated_cost_cents == second.estimated_cost_cents == 15


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

class TestGates:
    """Each gate can end the run with its own rejection stage."""

    def test_complexity_rejection_spends_nothing(self, fakes, observer, clock, brief):
        fakes.classifier = FakeClassifier(Verdict(False, 85, "Too technical"))
        result = controller(fakes, observer, clock).run(replace(brief, target_flesch=70))

        assert not result.ok
        assert result.stage == STAGE_COMPLEXITY
        assert fakes.researcher.calls == []
        assert fakes.synthesizer.synth_calls == []

    def test_low_confidence_verdict_proceeds(self, fakes, observer, clock, brief):
        fakes.classifier = FakeClassifier(Verdict(False, 40))
        result = controller(fakes, observer, clock).run(replace(brief, target_flesch=60))
        assert result.ok

    def test_fact_check_rejection(self, fakes, observer, clock, brief):
        fakes.fact_checker = FakeFactChecker(report(40, claim("Food prices doubled", "unverified", 30)))
        result = controller(fakes, observer, clock).run(brief)

        assert not result.ok
        assert result.stage == STAGE_FACT_CHECK
        assert result.diagnostic["attempts"] == 3
        assert fakes.scorer.calls == []

    def test_readability_refinement(self, fakes, observer, clock, brief):
        fakes.scorer = FakeScorer(make_scores(60, 55.0), make_scores(62, 58.0), make_scores(80, 68.0))
        result = controller(fakes, observer, clock).run(replace(brief, target_flesch=70))

        assert result.ok
        assert result.iterations.readability == 2
        assert result.iterations.fact_check == 1
        assert result.iterations.as_dict()["generation_iterations"] == 3
        assert result.estimated_cost_cents == 21
        assert len(fakes.fact_checker.calls) == 3
        assert result.scores.readability == 80

    def test_readability_rejection(self, fakes, observer, clock, brief):
        fakes.scorer = FakeScorer(make_scores(50, 55.0))
        result = controller(fakes, observer, clock).run(replace(brief, target_flesch=70))

        assert not result.ok
        assert result.stage == STAGE_READABILITY
        assert result.diagnostic["attempts"] == 5
        assert observer.events[-1].data == {"ok": False, "stage": STAGE_READABILITY}

    def test_failing_readability_without_target_is_kept(self, fakes, observer, clock, brief):
        fakes.scorer = FakeScorer(make_scores(30, 20.0))
        result = controller(fakes, observer, clock).run(brief)
        assert result.ok
        assert result.iterations.readability == 0


# ---------------------------------------------------------------------------
# Strategic link
# ---------------------------------------------------------------------------

class TestLinkStage:
    """Link injection rescored on success, tolerated on failure."""

    def test_injected_link_is_rescored(self, fakes, observer, clock, brief):
        fakes.synthesizer = FakeSynthesizer(
            rewrite_fn=lambda body, instruction: body + f"\nReady? {PRICING.markdown}\n"
        )
        result = controller(fakes, observer, clock).run(replace(brief, link=PRICING))

        assert result.ok
        assert result.link_present is True
        assert result.iterations.link_injected is True
        assert count_link(result.artifact.body, PRICING) == 1
        assert len(fakes.fact_checker.calls) == 2
        assert len(fakes.scorer.calls) == 2
        assert PRICING.markdown in fakes.duplicate_checker.calls[-1][1]

    def test_failed_injection_still_succeeds(self, fakes, observer, clock, brief):
        result = controller(fakes, observer, clock).run(replace(brief, link=PRICING))

        assert result.ok
        assert result.link_present is False
        assert result.iterations.link_injected is False
        assert len(fakes.fact_checker.calls) == 1
        assert [w.stage for w in observer.warnings()] == [Stage.LINK]


# ---------------------------------------------------------------------------
# Upstream failures
# ---------------------------------------------------------------------------

class TestUpstreamFailures:
    """Collaborator failures become a single upstream rejection."""

    def test_collaborator_failure(self, fakes, observer, clock, brief):
        fakes.researcher = FakeResearcher(error=UpstreamFailure("Brave Search returned 503"))
        result = controller(fakes, observer, clock).run(brief)

        assert not result.ok
        assert result.stage == STAGE_UPSTREAM
        assert result.diagnostic["cause"] == "Brave Search returned 503"
        assert result.diagnostic["stage_reached"] == "research"
        assert fakes.synthesizer.synth_calls == []

    def test_os_error(self, fakes, observer, clock, brief):
        fakes.researcher = FakeResearcher(error=OSError("disk full"))
        result = controller(fakes, observer, clock).run(brief)

        assert result.stage == STAGE_UPSTREAM
        assert result.diagnostic["cause"] == "OSError: disk full"

    def test_unexpected_collaborator_error(self, fakes, observer, clock, brief):
        class BrokenScorer(FakeScorer):
            def score(self, art, fact_score, local_context, target_flesch):
                return 1 / 0

        fakes.scorer = BrokenScorer()
        result = controller(fakes, observer, clock).run(brief)

        assert result.stage == STAGE_UPSTREAM
        assert result.diagnostic["cause"] == "ZeroDivisionError: division by zero"
        assert result.diagnostic["stage_reached"] == "scoring"

    def test_expired_deadline(self, fakes, observer, clock, brief):
        deadline = Deadline(10, clock=clock)
        clock.advance(11)
        result = controller(fakes, observer, clock).run(brief, deadline=deadline)

        assert result.stage == STAGE_UPSTREAM
        assert result.diagnostic["cause"] == "run deadline exceeded"
        assert fakes.researcher.calls == []
