"""
Shared fixtures for the quality-gate test suite.

Fake collaborators stand in for Claude, Brave Search, the scorer and the
duplicate checker so that all tests run WITHOUT any external services.
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from quality_gate.events import RecordingObserver
from quality_gate.models import (
    Brief,
    Claim,
    ClaimStatus,
    ContentArtifact,
    DuplicateReport,
    FactCheckReport,
    ReadabilityDetail,
    ResearchBundle,
    ScoreSet,
    Verdict,
    count_words,
)
from quality_gate.pipeline.interfaces import Collaborators
from quality_gate.store import SqliteStore

DRAFT_BODY = (
    "Groceries eat a big part of most family budgets.\n\n"
    "## Plan your meals\n\n"
    "Write a list before you shop. Stick to it in the store.\n\n"
    "## Buy in bulk\n\n"
    "Rice and beans keep for months. Buy them in large bags.\n"
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def claim(text: str, status: str, confidence: int) -> Claim:
    return Claim(text=text, status=ClaimStatus(status), confidence=confidence)


def report(score: int, *claims: Claim) -> FactCheckReport:
    return FactCheckReport(claims=tuple(claims), score=score)


def make_scores(readability: int = 80, flesch: float = 62.0, fact_check: int = 85, composite: int = 75, geo=None) -> ScoreSet:
    return ScoreSet(
        composite=composite,
        aeo=70,
        seo=70,
        readability=readability,
        engagement=70,
        fact_check=fact_check,
        readability_detail=ReadabilityDetail(flesch=flesch, avg_sentence_length=14.0, long_sentences=0),
        geo=geo,
    )


def artifact(body: str = DRAFT_BODY, title: str = "How to Save Money on Groceries") -> ContentArtifact:
    return ContentArtifact(title=title, meta_description="Cut your grocery bill.", body=body, word_count=count_words(body))


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeClassifier:
    def __init__(self, verdict: Verdict | None = None):
        self.verdict = verdict or Verdict(appropriate=True, confidence=90, reasoning="Everyday topic")
        self.calls = []

    def classify(self, brief, level_description, deadline):
        self.calls.append((brief.title, level_description))
        return self.verdict


class FakeResearcher:
    def __init__(self, bundle: ResearchBundle | None = None, error: Exception | None = None):
        self.bundle = bundle or ResearchBundle(statistics=("Families spend 10% of income on food",))
        self.error = error
        self.calls = []

    def research(self, keyword, title, deadline):
        self.calls.append(keyword)
        if self.error:
            raise self.error
        return self.bundle


class FakeSynthesizer:
    """Returns a fixed draft; rewrites apply ``rewrite_fn(body, instruction)``."""

    def __init__(self, body: str = DRAFT_BODY, rewrite_fn=None):
        self.body = body
        self.rewrite_fn = rewrite_fn or (lambda body, instruction: body)
        self.synth_calls = []
        self.rewrite_calls = []

    def synthesize(self, brief, research, target_flesch, internal_links, deadline):
        self.synth_calls.append((brief.title, target_flesch, tuple(internal_links)))
        return artifact(self.body, brief.title)

    def rewrite(self, art, instruction, deadline):
        self.rewrite_calls.append((art.body, instruction))
        return art.with_body(self.rewrite_fn(art.body, instruction))


class _Sequenced:
    """Hands out the given values in order, repeating the last one."""

    def __init__(self, values):
        self.values = list(values)
        self.calls = []

    def _next(self):
        return self.values[min(len(self.calls) - 1, len(self.values) - 1)]


class FakeFactChecker(_Sequenced):
    def __init__(self, *reports: FactCheckReport):
        super().__init__(reports or (report(85, claim("Rice keeps for months", "verified", 90)),))

    def check(self, body, deadline):
        self.calls.append(body)
        return self._next()


class FakeScorer(_Sequenced):
    def __init__(self, *scores: ScoreSet):
        super().__init__(scores or (make_scores(),))

    def score(self, art, fact_score, local_context, target_flesch):
        self.calls.append((art.body, fact_score, target_flesch))
        return replace(self._next(), fact_check=fact_score)


class FakeDuplicateChecker:
    def __init__(self, result: DuplicateReport | None = None):
        self.result = result or DuplicateReport(is_duplicate=False, similarity=12)
        self.calls = []

    def check(self, title, body, corpus, deadline):
        self.calls.append((title, body, tuple(corpus)))
        return self.result


class Fakes:
    """One set of fakes; tests swap members before calling ``collaborators()``."""

    def __init__(self):
        self.classifier = FakeClassifier()
        self.researcher = FakeResearcher()
        self.synthesizer = FakeSynthesizer()
        self.fact_checker = FakeFactChecker()
        self.scorer = FakeScorer()
        self.duplicate_checker = FakeDuplicateChecker()

    def collaborators(self) -> Collaborators:
        return Collaborators(
            classifier=self.classifier,
            researcher=self.researcher,
            synthesizer=self.synthesizer,
            fact_checker=self.fact_checker,
            scorer=self.scorer,
            duplicate_checker=self.duplicate_checker,
        )


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fakes():
    return Fakes()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def brief():
    return Brief(
        topic_id="t1",
        title="How to Save Money on Groceries",
        keyword="save money on groceries",
        outline=("Plan your meals", "Buy in bulk"),
        target_audience="busy families",
    )


@pytest.fixture
def store(tmp_path, clock):
    """A SQLite store seeded with one user, one strategy and one pending topic."""
    s = SqliteStore(tmp_path / "store.sqlite3", clock=clock)
    s.add_user({"id": "u1", "email": "owner@example.com"})
    s.add_user({"id": "u2", "email": "other@example.com"})
    s.add_strategy({
        "id": "s1",
        "user_id": "u1",
        "target_audience": "busy families",
        "brand_voice": "friendly",
        "target_flesch_score": None,
        "content_type": "national",
        "existing_content": [
            {"url": "/blog/meal-planning", "title": "Meal Planning 101", "excerpt": "Plan a week of meals."},
        ],
        "audited_pages": [
            {"url": "/pricing", "title": "Pricing", "meta_description": "Plans", "aiso_score": 80},
            {"url": "/about", "title": "About", "meta_description": "Us", "aiso_score": 20},
        ],
    })
    s.add_topic({
        "id": "t1",
        "strategy_id": "s1",
        "title": "How to Save Money on Groceries",
        "keyword": "save money on groceries",
        "outline": '["Plan your meals", "Buy in bulk", ""]',
        "word_count": 1200,
    })
    yield s
    s.close()
