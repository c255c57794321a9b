"""Make sure the brief's mandatory link appears in the article.

One injection attempt only. A link that is still missing afterwards is a
warning, not a rejection.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from quality_gate.deadline import Deadline
from quality_gate.events import EventKind, Observer, PipelineEvent, Stage
from quality_gate.models import ContentArtifact, LinkSpec
from quality_gate.pipeline.interfaces import Synthesizer
from quality_gate.pipeline.prompts import build_link_instruction
from quality_gate.pipeline.protection import rewrite_protected


@dataclass(frozen=True)
class LinkOutcome:
    artifact: ContentArtifact
    present: bool
    injected: bool = False


def link_pattern(link: LinkSpec) -> re.Pattern:
    """Exact ``[anchor](url)`` match with both parts taken literally."""
    return re.compile(r"\[" + re.escape(link.anchor) + r"\]\(" + re.escape(link.url) + r"\)")


def count_link(body: str, link: LinkSpec) -> int:
    return len(link_pattern(link).findall(body))


def keep_first_occurrence(body: str, link: LinkSpec) -> str:
    """Turn every occurrence after the first into plain anchor text."""
    seen = []

    def _sub(match: re.Match) -> str:
        seen.append(match)
        return match.group(0) if len(seen) == 1 else link.anchor

    return link_pattern(link).sub(_sub, body)


def enforce_link(
    artifact: ContentArtifact,
    link: LinkSpec,
    synthesizer: Synthesizer,
    observer: Observer,
    deadline: Deadline,
    protected_claims: frozenset = frozenset(),
) -> LinkOutcome:
    observer.emit(PipelineEvent(
        EventKind.STAGE_ENTERED, Stage.LINK,
        f"Checking strategic link {link.markdown} (CTA {link.cta_type.value}, "
        f"placement {link.placement.value})",
    ))
    if count_link(artifact.body, link) > 0:
        observer.emit(PipelineEvent(
            EventKind.GATE_DECISION, Stage.LINK, "Required strategic link found",
            {"passed": True, "injected": False},
        ))
        return LinkOutcome(artifact=artifact, present=True)

    observer.emit(PipelineEvent(EventKind.ATTEMPT, Stage.LINK, "Link missing, injecting", {"attempt": 1, "max": 1}))
    deadline.check(Stage.LINK.value)
    candidate, kept = rewrite_protected(
        synthesizer, artifact, build_link_instruction(link), protected_claims, deadline
    )
    occurrences = count_link(candidate.body, link) if kept else 0

    if occurrences == 0:
        observer.emit(PipelineEvent(
            EventKind.WARNING, Stage.LINK,
            "Link injection failed, content will be saved without the strategic link",
            {"url": link.url, "anchor": link.anchor},
        ))
        return LinkOutcome(artifact=artifact, present=False)

    if occurrences > 1:
        candidate = candidate.with_body(keep_first_occurrence(candidate.body, link))
    observer.emit(PipelineEvent(
        EventKind.GATE_DECISION, Stage.LINK, "Strategic link injected",
        {"passed": True, "injected": True, "occurrences": occurrences},
    ))
    return LinkOutcome(artifact=candidate, present=True, injected=True)
