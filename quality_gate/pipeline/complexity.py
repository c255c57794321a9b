"""Reject briefs that cannot be written at the target reading level.

Runs before any generation cost is spent. Ambiguous verdicts never block:
only a confident "not appropriate" rejects the brief.
"""

from __future__ import annotations

from typing import Optional

from quality_gate.config import COMPLEXITY_REJECT_CONFIDENCE
from quality_gate.deadline import Deadline
from quality_gate.events import EventKind, Observer, PipelineEvent, Stage
from quality_gate.models import STAGE_COMPLEXITY, Brief, Rejected, Verdict
from quality_gate.pipeline.interfaces import Classifier
from quality_gate.pipeline.levels import reading_level_description

DEFAULT_ALTERNATIVE = (
    "Choose a simpler, more accessible topic that matches your audience's "
    "everyday vocabulary and knowledge level."
)

REMEDIATION_OPTIONS = (
    "Choose a different topic from your strategy",
    "Override the target reading level for this topic",
    "Simplify the topic title or outline",
)


def should_reject(verdict: Verdict) -> bool:
    return not verdict.appropriate and verdict.confidence >= COMPLEXITY_REJECT_CONFIDENCE


def build_rejection(brief: Brief, verdict: Verdict) -> Rejected:
    level = reading_level_description(brief.target_flesch)
    options = "\n".join(f"{i}. {opt}" for i, opt in enumerate(REMEDIATION_OPTIONS, 1))
    message = (
        f"This topic cannot be written at the target reading level "
        f"({level}, Flesch {brief.target_flesch}).\n\n"
        f"Analysis:\n{verdict.reasoning}\n\n"
        f"Recommendation:\n{verdict.suggested_alternative or DEFAULT_ALTERNATIVE}\n\n"
        f"Options:\n{options}"
    )
    return Rejected(
        stage=STAGE_COMPLEXITY,
        diagnostic={
            "error": "Topic too complex for target reading level",
            "appropriate": verdict.appropriate,
            "confidence": verdict.confidence,
            "reasoning": verdict.reasoning,
            "suggested_alternative": verdict.suggested_alternative,
            "target_level": level,
            "target_flesch": brief.target_flesch,
            "override": brief.target_flesch_override,
            "options": list(REMEDIATION_OPTIONS),
        },
        message=message,
    )


def pre_validate(
    brief: Brief,
    classifier: Classifier,
    observer: Observer,
    deadline: Deadline,
) -> Optional[Rejected]:
    """Return a rejection, or ``None`` when the run may proceed."""
    if brief.target_flesch is None:
        return None

    level = reading_level_description(brief.target_flesch)
    observer.emit(PipelineEvent(
        EventKind.STAGE_ENTERED, Stage.COMPLEXITY,
        f"Pre-validating complexity for Flesch {brief.target_flesch} ({level})"
        + (" [OVERRIDE]" if brief.target_flesch_override else ""),
    ))
    deadline.check(Stage.COMPLEXITY.value)
    verdict = classifier.classify(brief, level, deadline)
    rejected = should_reject(verdict)

    observer.emit(PipelineEvent(
        EventKind.GATE_DECISION, Stage.COMPLEXITY,
        f"appropriate={verdict.appropriate} confidence={verdict.confidence}%"
        + (" -> rejected" if rejected else " -> proceed"),
        {"passed": not rejected, "appropriate": verdict.appropriate, "confidence": verdict.confidence},
    ))
    return build_rejection(brief, verdict) if rejected else None
