"""Heuristic duplicate-content check against a site's existing pages.

Each existing page is compared two ways: title word overlap (Jaccard) and how
much of the page excerpt's 3-word shingles reappear in the new body. The
higher of the two is the page's similarity.
"""

from __future__ import annotations

import re
from typing import Sequence

from quality_gate.config import DUPLICATE_SIMILARITY_THRESHOLD, DUPLICATE_WARNING_THRESHOLD
from quality_gate.deadline import Deadline
from quality_gate.models import DuplicateReport, ExistingContent

SHINGLE_SIZE = 3

_STOP_WORDS = {"a", "an", "the", "to", "for", "of", "in", "on", "and", "or", "is", "are", "how", "what", "your"}


def _words(text: str) -> list[str]:
    return re.findall(r"[a-z0-9]+", (text or "").lower())


def shingles(text: str, size: int = SHINGLE_SIZE) -> set:
    words = _words(text)
    if len(words) < size:
        return {tuple(words)} if words else set()
    return {tuple(words[i : i + size]) for i in range(len(words) - size + 1)}


def title_similarity(a: str, b: str) -> float:
    wa, wb = set(_words(a)) - _STOP_WORDS, set(_words(b)) - _STOP_WORDS
    if not wa or not wb:
        return 0.0
    return len(wa & wb) / len(wa | wb)


def containment(excerpt: str, body_shingles: set) -> float:
    """Share of the excerpt's shingles that also appear in the body."""
    ex = shingles(excerpt)
    if not ex:
        return 0.0
    return len(ex & body_shingles) / len(ex)


class ShingleDuplicateChecker:
    def __init__(
        self,
        duplicate_threshold: int = DUPLICATE_SIMILARITY_THRESHOLD,
        warning_threshold: int = DUPLICATE_WARNING_THRESHOLD,
    ):
        self.duplicate_threshold = duplicate_threshold
        self.warning_threshold = warning_threshold

    def check(
        self, title: str, body: str, corpus: Sequence[ExistingContent], deadline: Deadline
    ) -> DuplicateReport:
        deadline.check("duplicate-check")
        body_shingles = shingles(body)
        best = 0
        warnings: list[str] = []
        matched: list[str] = []
        for page in corpus:
            similarity = round(100 * max(
                title_similarity(title, page.title),
                containment(page.excerpt, body_shingles),
            ))
            best = max(best, similarity)
            if similarity >= self.duplicate_threshold:
                matched.append(page.url)
                warnings.append(f"Very similar to '{page.title}' ({page.url}): {similarity}%")
            elif similarity >= self.warning_threshold:
                warnings.append(f"Overlaps with '{page.title}' ({page.url}): {similarity}%")
        return DuplicateReport(
            is_duplicate=bool(matched),
            similarity=best,
            warnings=tuple(warnings),
            matched_urls=tuple(matched),
        )
