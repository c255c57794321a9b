"""Inbound ``generate(topic_id)`` operation.

Looks up the user, topic and strategy, claims the topic with a
compare-and-set into "generating", runs the pipeline and persists the
result. Every outcome is a ``GenerateResponse`` with an HTTP-style status:

    401 no user id          404 unknown user / topic / strategy
    403 not the owner       409 topic already generating
    400 gate rejection      500 upstream or storage failure
    200 post created
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from quality_gate.config import COST_PER_MILLION_TOKENS_USD, ESTIMATED_TOKENS_PER_RUN
from quality_gate.deadline import Deadline
from quality_gate.errors import AuthorizationError, NotFoundError, StatusConflict
from quality_gate.events import Observer
from quality_gate.models import (
    STAGE_UPSTREAM,
    Brief,
    CtaType,
    LinkPlacement,
    LinkSpec,
    LocalContext,
    Rejected,
    RunResult,
    Success,
)
from quality_gate.pipeline.controller import RunController
from quality_gate.pipeline.interfaces import Collaborators
from quality_gate.pipeline.levels import readability_gap
from quality_gate.pipeline.outline import normalize_outline
from quality_gate.store import COMPLETED, FAILED, GENERATING, PENDING, SqliteStore

LOCAL_CONTENT_TYPES = ("local", "hybrid")


@dataclass(frozen=True)
class GenerateResponse:
    status_code: int
    payload: dict = field(default_factory=dict)
    brief: Optional[Brief] = field(default=None, compare=False)
    result: Optional[RunResult] = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.status_code == 200


# ── Brief building ────────────────────────────────────────────────────────


def _enum_or_default(enum_cls, value, default):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        return default


def _link_spec(topic: dict) -> Optional[LinkSpec]:
    url = (topic.get("primary_link_url") or "").strip()
    anchor = (topic.get("primary_link_anchor") or "").strip()
    if not url or not anchor:
        return None
    return LinkSpec(
        url=url,
        anchor=anchor,
        cta_type=_enum_or_default(CtaType, topic.get("cta_type"), CtaType.AWARENESS),
        placement=_enum_or_default(LinkPlacement, topic.get("link_placement_hint"), LinkPlacement.CONTEXTUAL),
    )


def _local_context(strategy: dict) -> Optional[LocalContext]:
    if strategy.get("content_type") not in LOCAL_CONTENT_TYPES:
        return None
    return LocalContext(
        city=strategy.get("city") or "",
        state=strategy.get("state") or "",
        service_area=strategy.get("service_area") or "",
    )


def build_brief(topic: dict, strategy: dict) -> Brief:
    """Build the immutable run brief. The outline is normalized here, once."""
    override = topic.get("target_flesch_score")
    target = override if override is not None else strategy.get("target_flesch_score")
    kwargs = {}
    if topic.get("word_count"):
        kwargs["word_count"] = int(topic["word_count"])
    if topic.get("seo_intent"):
        kwargs["seo_intent"] = topic["seo_intent"]
    return Brief(
        topic_id=str(topic["id"]),
        title=topic.get("title", ""),
        keyword=topic.get("keyword") or "",
        outline=normalize_outline(topic.get("outline")),
        target_audience=strategy.get("target_audience") or "",
        brand_voice=strategy.get("brand_voice") or "",
        target_flesch=int(target) if target else None,
        target_flesch_override=override is not None,
        link=_link_spec(topic),
        local_context=_local_context(strategy),
        **kwargs,
    )


# ── Payloads ──────────────────────────────────────────────────────────────


def rejection_payload(result: Rejected) -> dict:
    payload = {"error": result.diagnostic.get("error", "Generation rejected"), "stage": result.stage}
    payload.update({k: v for k, v in result.diagnostic.items() if k != "error"})
    payload["message"] = result.message
    return payload


def success_payload(post: dict, result: Success) -> dict:
    return {
        "success": True,
        "post": {
            "id": post["id"],
            "title": post["title"],
            "word_count": post["word_count"],
            "status": post["status"],
        },
        "scores": result.scores.as_dict(),
        "fact_check_summary": {
            **result.fact_check.summary(),
            "refinement_attempts": result.iterations.fact_check,
            "initial_score": result.initial_fact_score,
        },
        "duplicate_check": result.duplicates.as_dict(),
        "iterations": result.iterations.as_dict(),
        "link_present": result.link_present,
        "stats": {
            "generation_time_seconds": round(result.elapsed_seconds),
            "generation_cost_cents": result.estimated_cost_cents,
        },
    }


# ── Service ───────────────────────────────────────────────────────────────


class GenerationService:
    def __init__(
        self,
        store: SqliteStore,
        collaborators: Collaborators,
        observer: Optional[Observer] = None,
        deadline_seconds: Optional[float] = None,
    ):
        self.store = store
        self.controller = RunController(collaborators, observer)
        self.deadline_seconds = deadline_seconds

    def _authorize(self, topic_id: str, user_id: Optional[str]) -> tuple[dict, dict, dict]:
        if not user_id:
            raise AuthorizationError("Unauthorized", status_code=401)
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        topic = self.store.get_topic(topic_id)
        if topic is None:
            raise NotFoundError("Topic not found")
        strategy = self.store.get_strategy(topic.get("strategy_id"))
        if strategy is None:
            raise NotFoundError("Strategy not found")
        if str(strategy.get("user_id")) != str(user["id"]):
            raise AuthorizationError("Forbidden", status_code=403)
        return user, topic, strategy

    def _claim(self, topic_id: str) -> None:
        if not self.store.compare_and_set_status(topic_id, (PENDING, FAILED, COMPLETED), GENERATING):
            raise StatusConflict("Topic is already being generated")

    def generate(self, topic_id: str, user_id: Optional[str]) -> GenerateResponse:
        try:
            user, topic, strategy = self._authorize(topic_id, user_id)
            self._claim(topic_id)
        except AuthorizationError as e:
            return GenerateResponse(e.status_code, {"error": str(e)})
        except NotFoundError as e:
            return GenerateResponse(404, {"error": str(e)})
        except StatusConflict as e:
            return GenerateResponse(409, {"error": str(e)})

        try:
            brief = build_brief(topic, strategy)
            result = self.controller.run(
                brief,
                corpus=self.store.get_existing_content(strategy["id"]),
                internal_links=self.store.get_internal_links(strategy["id"]),
                deadline=Deadline(self.deadline_seconds) if self.deadline_seconds else None,
            )
            if not result.ok:
                self.store.set_status(topic_id, FAILED)
                status = 500 if result.stage == STAGE_UPSTREAM else 400
                return GenerateResponse(status, rejection_payload(result), brief, result)

            post = self._persist(user, brief, result)
            self.store.set_status(topic_id, COMPLETED)
            return GenerateResponse(200, success_payload(post, result), brief, result)
        except Exception as e:
            self.store.set_status(topic_id, FAILED)
            return GenerateResponse(500, {"error": "Failed to generate content", "cause": f"{type(e).__name__}: {e}"})

    def _persist(self, user: dict, brief: Brief, result: Success) -> dict:
        artifact, scores = result.artifact, result.scores
        post = self.store.persist_post(
            {
                "topic_id": brief.topic_id,
                "user_id": user["id"],
                "title": artifact.title,
                "meta_description": artifact.meta_description,
                "content": artifact.body,
                "word_count": artifact.word_count,
                **scores.as_dict(),
                "actual_flesch_score": scores.readability_detail.flesch,
                "target_flesch_score": brief.target_flesch,
                "readability_gap": readability_gap(scores.readability_detail.flesch, brief.target_flesch),
                "generation_iterations": result.iterations.as_dict()["generation_iterations"],
                "generation_cost_cents": result.estimated_cost_cents,
                "generation_time_seconds": round(result.elapsed_seconds),
                "link_present": result.link_present,
            },
            result.fact_check,
        )
        self.store.update_similarity(post["id"], result.duplicates.similarity, result.duplicates.warnings)
        self.store.log_usage(
            user_id=user["id"],
            operation_type="content_generation",
            cost_usd=ESTIMATED_TOKENS_PER_RUN / 1_000_000 * COST_PER_MILLION_TOKENS_USD,
            tokens_used=ESTIMATED_TOKENS_PER_RUN,
            metadata={
                "topic_id": brief.topic_id,
                "post_id": post["id"],
                "word_count": artifact.word_count,
                "fact_checks_count": result.fact_check.total,
                "refinement_attempts": result.iterations.fact_check,
                "initial_score": result.initial_fact_score,
                "final_score": result.fact_check.score,
            },
        )
        return post
