"""Data contracts shared by every pipeline stage.

All values are frozen dataclasses. Stages return new values instead of
mutating the ones they were given.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from quality_gate.config import (
    DEFAULT_SEO_INTENT,
    DEFAULT_WORD_COUNT,
    MAX_FACT_ATTEMPTS,
    MAX_READABILITY_ATTEMPTS,
)


def count_words(text: str) -> int:
    """Count visible prose words, ignoring link URLs and markdown markers."""
    text = re.sub(r"!\[[^\]]*\]\([^)]+\)", "", text)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)
    text = re.sub(r"\*{1,3}", "", text)
    text = re.sub(r"^\s*[-*+]\s+", "", text, flags=re.MULTILINE)
    return len(text.split())


# ── Brief ─────────────────────────────────────────────────────────────────


class CtaType(str, Enum):
    AWARENESS = "awareness"
    CONSIDERATION = "consideration"
    DECISION = "decision"


class LinkPlacement(str, Enum):
    INTRO = "intro"
    CONCLUSION = "conclusion"
    CONTEXTUAL = "contextual"


@dataclass(frozen=True)
class LinkSpec:
    """A mandatory hyperlink the final article must contain exactly once."""

    url: str
    anchor: str
    cta_type: CtaType = CtaType.AWARENESS
    placement: LinkPlacement = LinkPlacement.CONTEXTUAL

    @property
    def markdown(self) -> str:
        return f"[{self.anchor}]({self.url})"


@dataclass(frozen=True)
class LocalContext:
    city: str = ""
    state: str = ""
    service_area: str = ""


@dataclass(frozen=True)
class Brief:
    topic_id: str
    title: str
    keyword: str
    outline: tuple[str, ...] = ()
    target_audience: str = ""
    brand_voice: str = ""
    word_count: int = DEFAULT_WORD_COUNT
    seo_intent: str = DEFAULT_SEO_INTENT
    target_flesch: Optional[int] = None
    target_flesch_override: bool = False
    link: Optional[LinkSpec] = None
    local_context: Optional[LocalContext] = None

    @property
    def search_keyword(self) -> str:
        return self.keyword or self.title


# ── Research & synthesis ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ResearchBundle:
    statistics: tuple[str, ...] = ()
    case_studies: tuple[str, ...] = ()
    trends: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.statistics or self.case_studies or self.trends)


@dataclass(frozen=True)
class InternalLink:
    url: str
    title: str = ""
    meta_description: str = ""
    relevance: float = 0.0


@dataclass(frozen=True)
class ContentArtifact:
    title: str
    meta_description: str
    body: str
    word_count: int = 0

    def with_body(self, body: str) -> ContentArtifact:
        return replace(self, body=body, word_count=count_words(body))


# ── Fact checking ─────────────────────────────────────────────────────────


class ClaimStatus(str, Enum):
    VERIFIED = "verified"
    UNCERTAIN = "uncertain"
    UNVERIFIED = "unverified"


@dataclass(frozen=True)
class Claim:
    text: str
    status: ClaimStatus
    confidence: int
    sources: tuple[str, ...] = ()


@dataclass(frozen=True)
class FactCheckReport:
    claims: tuple[Claim, ...]
    score: int

    def _count(self, status: ClaimStatus) -> int:
        return sum(1 for c in self.claims if c.status == status)

    @property
    def total(self) -> int:
        return len(self.claims)

    @property
    def verified(self) -> int:
        return self._count(ClaimStatus.VERIFIED)

    @property
    def uncertain(self) -> int:
        return self._count(ClaimStatus.UNCERTAIN)

    @property
    def unverified(self) -> int:
        return self._count(ClaimStatus.UNVERIFIED)

    def summary(self) -> dict:
        return {
            "overall_score": self.score,
            "total_claims": self.total,
            "verified_claims": self.verified,
            "uncertain_claims": self.uncertain,
            "unverified_claims": self.unverified,
        }


# ── Scoring & duplicates ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ReadabilityDetail:
    flesch: float
    avg_sentence_length: float
    long_sentences: int


@dataclass(frozen=True)
class ScoreSet:
    composite: int
    aeo: int
    seo: int
    readability: int
    engagement: int
    fact_check: int
    readability_detail: ReadabilityDetail
    geo: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "aiso_score": self.composite,
            "aeo_score": self.aeo,
            "geo_score": self.geo,
            "seo_score": self.seo,
            "readability_score": self.readability,
            "engagement_score": self.engagement,
            "fact_check_score": self.fact_check,
            "is_local_content": self.geo is not None,
            "flesch_score": self.readability_detail.flesch,
            "avg_sentence_length": self.readability_detail.avg_sentence_length,
            "long_sentences": self.readability_detail.long_sentences,
        }


@dataclass(frozen=True)
class DuplicateReport:
    is_duplicate: bool
    similarity: int
    warnings: tuple[str, ...] = ()
    matched_urls: tuple[str, ...] = ()

    def as_dict(self) -> dict:
        return {
            "checked": True,
            "is_duplicate": self.is_duplicate,
            "similarity_score": self.similarity,
            "warnings": list(self.warnings),
            "matched_urls": list(self.matched_urls),
        }


@dataclass(frozen=True)
class ExistingContent:
    url: str
    title: str
    excerpt: str = ""


@dataclass(frozen=True)
class Verdict:
    appropriate: bool
    confidence: int
    reasoning: str = ""
    suggested_alternative: Optional[str] = None


# ── Run state & results ───────────────────────────────────────────────────


@dataclass(frozen=True)
class RunState:
    """Per-run counters. Held in memory only; a crash loses it."""

    started_at: float
    fact_attempts: int = 0
    readability_attempts: int = 0
    estimated_cost_cents: int = 0
    protected_claims: frozenset = frozenset()

    def with_fact_attempts(self, attempts: int) -> RunState:
        if attempts < self.fact_attempts or attempts > MAX_FACT_ATTEMPTS:
            raise ValueError(f"fact-check attempts must stay in [{self.fact_attempts}, {MAX_FACT_ATTEMPTS}]")
        return replace(self, fact_attempts=attempts)

    def with_readability_attempts(self, attempts: int) -> RunState:
        if attempts < self.readability_attempts or attempts > MAX_READABILITY_ATTEMPTS:
            raise ValueError(
                f"readability attempts must stay in [{self.readability_attempts}, {MAX_READABILITY_ATTEMPTS}]"
            )
        return replace(self, readability_attempts=attempts)

    def add_cost(self, cents: int) -> RunState:
        return replace(self, estimated_cost_cents=self.estimated_cost_cents + cents)

    def protect(self, claim_texts) -> RunState:
        return replace(self, protected_claims=self.protected_claims | frozenset(claim_texts))


@dataclass(frozen=True)
class IterationCounts:
    fact_check: int
    readability: int
    link_injected: bool = False

    def as_dict(self) -> dict:
        return {
            "fact_check_attempts": self.fact_check,
            "readability_attempts": self.readability,
            "link_injected": self.link_injected,
            "generation_iterations": self.readability + 1,
        }


@dataclass(frozen=True)
class Success:
    artifact: ContentArtifact
    fact_check: FactCheckReport
    scores: ScoreSet
    duplicates: DuplicateReport
    iterations: IterationCounts
    initial_fact_score: int
    link_present: Optional[bool] = None
    elapsed_seconds: float = 0.0
    estimated_cost_cents: int = 0

    ok = True


@dataclass(frozen=True)
class Rejected:
    stage: str
    diagnostic: dict = field(default_factory=dict)
    message: str = ""

    ok = False


RunResult = Union[Success, Rejected]

# Rejection stages
STAGE_COMPLEXITY = "complexity"
STAGE_FACT_CHECK = "fact-check"
STAGE_READABILITY = "readability"
STAGE_UPSTREAM = "upstream"
