"""Typed pipeline events and the observers that receive them.

The pipeline never prints. Every stage transition, attempt and gate decision
is emitted as a ``PipelineEvent`` to an injected observer; the CLI uses
``ConsoleObserver`` for progress output and tests use ``RecordingObserver``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class EventKind(str, Enum):
    STAGE_ENTERED = "stage_entered"
    ATTEMPT = "attempt"
    GATE_DECISION = "gate_decision"
    INFO = "info"
    WARNING = "warning"
    RUN_FINISHED = "run_finished"


class Stage(str, Enum):
    NORMALIZE = "normalize"
    COMPLEXITY = "complexity"
    RESEARCH = "research"
    SYNTHESIS = "synthesis"
    DUPLICATE_CHECK = "duplicate-check"
    FACT_CHECK = "fact-check"
    SCORING = "scoring"
    READABILITY = "readability"
    LINK = "link"
    FINAL_DUPLICATE_CHECK = "final-duplicate-check"
    RUN = "run"


@dataclass(frozen=True)
class PipelineEvent:
    kind: EventKind
    stage: Stage
    message: str = ""
    data: dict = field(default_factory=dict)


class Observer:
    """Receives pipeline events. The base class ignores them."""

    def emit(self, event: PipelineEvent) -> None:
        pass


class RecordingObserver(Observer):
    """Keeps every event in order."""

    def __init__(self):
        self.events: list[PipelineEvent] = []

    def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)

    def kinds(self, stage: Optional[Stage] = None) -> list[EventKind]:
        return [e.kind for e in self.events if stage is None or e.stage == stage]

    def stages_entered(self) -> list[Stage]:
        return [e.stage for e in self.events if e.kind == EventKind.STAGE_ENTERED]

    def decisions(self, stage: Stage) -> list[PipelineEvent]:
        return [e for e in self.events if e.stage == stage and e.kind == EventKind.GATE_DECISION]

    def warnings(self) -> list[PipelineEvent]:
        return [e for e in self.events if e.kind == EventKind.WARNING]


class ConsoleObserver(Observer):
    """Print narration for interactive runs."""

    _PREFIX = {
        EventKind.STAGE_ENTERED: "  ->",
        EventKind.ATTEMPT: "  ..",
        EventKind.GATE_DECISION: "  OK",
        EventKind.INFO: "    ",
        EventKind.WARNING: "  Warning:",
        EventKind.RUN_FINISHED: "  ==",
    }

    def emit(self, event: PipelineEvent) -> None:
        prefix = self._PREFIX[event.kind]
        if event.kind == EventKind.GATE_DECISION and not event.data.get("passed", True):
            prefix = "  FAIL"
        print(f"{prefix} [{event.stage.value}] {event.message}")
