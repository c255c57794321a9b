"""Tests for the generate(topic_id) service operation."""

import pytest

from quality_gate.models import CtaType, LinkPlacement, Verdict
from quality_gate.service import GenerationService, build_brief
from quality_gate.store import COMPLETED, FAILED, GENERATING, PENDING

from tests.conftest import FakeClassifier, FakeFactChecker, FakeResearcher, FakeScorer, claim, report


def service(store, fakes):
    return GenerationService(store, fakes.collaborators())


# ---------------------------------------------------------------------------
# Brief building
# ---------------------------------------------------------------------------

class TestBuildBrief:
    """Topic and strategy records become one immutable brief."""

    def test_basic_fields(self):
        topic = {"id": 7, "title": "Budget Meals", "keyword": "budget meals", "outline": "Intro\nRecipes"}
        brief = build_brief(topic, {"target_audience": "students", "brand_voice": "casual"})

        assert brief.topic_id == "7"
        assert brief.outline == ("Intro", "Recipes")
        assert brief.target_audience == "students"
        assert brief.target_flesch is None
        assert brief.link is None
        assert brief.local_context is None

    def test_strategy_target(self):
        brief = build_brief({"id": "t", "title": "x"}, {"target_flesch_score": 60})
        assert brief.target_flesch == 60
        assert brief.target_flesch_override is False

    def test_topic_target_overrides_strategy(self):
        brief = build_brief({"id": "t", "title": "x", "target_flesch_score": 45}, {"target_flesch_score": 60})
        assert brief.target_flesch == 45
        assert brief.target_flesch_override is True

    def test_link_spec(self):
        topic = {
            "id": "t",
            "title": "x",
            "primary_link_url": "/pricing",
            "primary_link_anchor": "view pricing",
            "cta_type": "Decision",
            "link_placement_hint": "somewhere odd",
        }
        link = build_brief(topic, {}).link
        assert link.markdown == "[view pricing](/pricing)"
        assert link.cta_type == CtaType.DECISION
        assert link.placement == LinkPlacement.CONTEXTUAL

    def test_link_needs_url_and_anchor(self):
        assert build_brief({"id": "t", "title": "x", "primary_link_url": "/pricing"}, {}).link is None

    def test_local_strategy(self):
        brief = build_brief({"id": "t", "title": "x"}, {"content_type": "local", "city": "Austin", "state": "TX"})
        assert brief.local_context.city == "Austin"


# ---------------------------------------------------------------------------
# Authorization and claiming
# ---------------------------------------------------------------------------

class TestGenerateGuards:
    """Requests that never reach the pipeline."""

    def test_no_user(self, store, fakes):
        assert service(store, fakes).generate("t1", None).status_code == 401

    def test_unknown_user(self, store, fakes):
        assert service(store, fakes).generate("t1", "ghost").status_code == 404

    def test_unknown_topic(self, store, fakes):
        response = service(store, fakes).generate("missing", "u1")
        assert response.status_code == 404
        assert response.payload == {"error": "Topic not found"}

    def test_unknown_strategy(self, store, fakes):
        store.add_topic({"id": "t9", "strategy_id": "gone", "title": "Orphan"})
        assert service(store, fakes).generate("t9", "u1").status_code == 404

    def test_not_the_owner(self, store, fakes):
        assert service(store, fakes).generate("t1", "u2").status_code == 403
        assert store.get_topic("t1")["status"] == PENDING

    def test_already_generating(self, store, fakes):
        store.set_status("t1", GENERATING)
        response = service(store, fakes).generate("t1", "u1")
        assert response.status_code == 409
        assert fakes.synthesizer.synth_calls == []


# ---------------------------------------------------------------------------
# Pipeline outcomes
# ---------------------------------------------------------------------------

class TestGenerateOutcomes:
    """Success persists the post; rejections mark the topic failed."""

    def test_success(self, store, fakes):
        response = service(store, fakes).generate("t1", "u1")

        assert response.ok
        payload = response.payload
        assert payload["success"] is True
        assert payload["post"]["status"] == "draft"
        assert payload["iterations"]["fact_check_attempts"] == 1
        assert payload["fact_check_summary"]["initial_score"] == 85
        assert payload["duplicate_check"]["checked"] is True
        assert payload["stats"]["generation_cost_cents"] == 15
        assert store.get_topic("t1")["status"] == COMPLETED

    def test_success_persists_records(self, store, fakes):
        response = service(store, fakes).generate("t1", "u1")
        post = store.get_post(response.payload["post"]["id"])

        assert post["topic_id"] == "t1"
        assert post["fact_check_score"] == 85
        assert post["similarity_checked"] is True
        assert len(store.fact_checks_for(post["id"])) == 1
        usage = store.usage_for("u1")
        assert usage[0]["operation_type"] == "content_generation"
        assert usage[0]["cost_usd"] == pytest.approx(0.045)

    def test_brief_comes_from_store(self, store, fakes):
        response = service(store, fakes).generate("t1", "u1")
        assert response.brief.outline == ("Plan your meals", "Buy in bulk")
        title, target, links = fakes.synthesizer.synth_calls[0]
        assert [l.url for l in links] == ["/pricing"]

    def test_gate_rejection_is_400(self, store, fakes):
        fakes.fact_checker = FakeFactChecker(report(30, claim("Prices tripled", "unverified", 20)))
        response = service(store, fakes).generate("t1", "u1")

        assert response.status_code == 400
        assert response.payload["stage"] == "fact-check"
        assert response.payload["attempts"] == 3
        assert "message" in response.payload
        assert store.get_topic("t1")["status"] == FAILED
        assert store.usage_for("u1") == []

    def test_complexity_rejection(self, store, fakes):
        store.add_topic({"id": "t2", "strategy_id": "s1", "title": "Tensor calculus", "target_flesch_score": 75})
        fakes.classifier = FakeClassifier(Verdict(False, 90, "Needs advanced math"))
        response = service(store, fakes).generate("t2", "u1")

        assert response.status_code == 400
        assert response.payload["stage"] == "complexity"
        assert response.payload["override"] is True

    def test_upstream_failure_is_500(self, store, fakes):
        from quality_gate.errors import UpstreamFailure

        fakes.researcher = FakeResearcher(error=UpstreamFailure("search down"))
        response = service(store, fakes).generate("t1", "u1")

        assert response.status_code == 500
        assert response.payload["stage"] == "upstream"
        assert store.get_topic("t1")["status"] == FAILED

    def test_failed_topic_can_be_retried(self, store, fakes):
        store.set_status("t1", FAILED)
        assert service(store, fakes).generate("t1", "u1").ok

    def test_unexpected_collaborator_error_is_500(self, store, fakes):
        class BrokenScorer(FakeScorer):
            def score(self, art, fact_score, local_context, target_flesch):
                return 1 / 0

        fakes.scorer = BrokenScorer()
        response = service(store, fakes).generate("t1", "u1")

        assert response.status_code == 500
        assert response.payload["stage"] == "upstream"
        assert store.get_topic("t1")["status"] == FAILED

    def test_persistence_error_is_500(self, store, fakes, monkeypatch):
        def broken_persist(post, fact_check):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(store, "persist_post", broken_persist)
        response = service(store, fakes).generate("t1", "u1")

        assert response.status_code == 500
        assert response.payload == {"error": "Failed to generate content", "cause": "RuntimeError: database is locked"}
        assert store.get_topic("t1")["status"] == FAILED
