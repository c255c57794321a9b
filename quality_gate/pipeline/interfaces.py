"""Narrow interfaces the pipeline uses to reach its collaborators.

Implementations raise ``UpstreamFailure`` for provider or network errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from quality_gate.deadline import Deadline
from quality_gate.models import (
    Brief,
    ContentArtifact,
    DuplicateReport,
    ExistingContent,
    FactCheckReport,
    InternalLink,
    LocalContext,
    ResearchBundle,
    ScoreSet,
    Verdict,
)


class Classifier(Protocol):
    def classify(self, brief: Brief, level_description: str, deadline: Deadline) -> Verdict: ...


class Researcher(Protocol):
    def research(self, keyword: str, title: str, deadline: Deadline) -> ResearchBundle: ...


class Synthesizer(Protocol):
    def synthesize(
        self,
        brief: Brief,
        research: ResearchBundle,
        target_flesch: Optional[int],
        internal_links: Sequence[InternalLink],
        deadline: Deadline,
    ) -> ContentArtifact: ...

    def rewrite(self, artifact: ContentArtifact, instruction: str, deadline: Deadline) -> ContentArtifact: ...


class FactChecker(Protocol):
    def check(self, body: str, deadline: Deadline) -> FactCheckReport: ...


class Scorer(Protocol):
    def score(
        self,
        artifact: ContentArtifact,
        fact_score: int,
        local_context: Optional[LocalContext],
        target_flesch: Optional[int],
    ) -> ScoreSet: ...


class DuplicateChecker(Protocol):
    def check(
        self, title: str, body: str, corpus: Sequence[ExistingContent], deadline: Deadline
    ) -> DuplicateReport: ...


@dataclass(frozen=True)
class Collaborators:
    """Everything one pipeline run talks to."""

    classifier: Classifier
    researcher: Researcher
    synthesizer: Synthesizer
    fact_checker: FactChecker
    scorer: Scorer
    duplicate_checker: DuplicateChecker
