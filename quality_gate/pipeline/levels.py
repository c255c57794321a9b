"""Reading-level bands for Flesch reading-ease targets."""

from __future__ import annotations

from typing import Optional


def reading_level_description(flesch: float) -> str:
    """Describe who can read text at this Flesch reading-ease value."""
    if flesch >= 70:
        return "7th grade (general public)"
    if flesch >= 60:
        return "8th-9th grade (standard)"
    if flesch >= 50:
        return "10th grade (educated adults)"
    if flesch >= 40:
        return "College level (professionals)"
    return "Graduate level (technical experts)"


def short_reading_level(flesch: float) -> str:
    return reading_level_description(flesch).split(" (")[0]


def target_sentence_length(target_flesch: float) -> str:
    """Average sentence length bucket a rewrite should aim for."""
    if target_flesch >= 70:
        return "10-12 words"
    if target_flesch >= 60:
        return "12-15 words"
    if target_flesch >= 50:
        return "15-18 words"
    return "15-20 words"


def readability_gap(actual: float, target: Optional[float]) -> Optional[float]:
    if target is None:
        return None
    return round(abs(actual - target), 1)
