"""Coerce a brief's loosely-typed outline into an ordered tuple of labels.

The stored outline may be a list, a JSON-encoded list, newline-separated
text, or missing. It is classified into one variant first and then
normalized by matching on that variant, so no input can fail the run.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class SequenceOutline:
    items: tuple


@dataclass(frozen=True)
class EncodedOutline:
    items: tuple


@dataclass(frozen=True)
class RawStringOutline:
    text: str


@dataclass(frozen=True)
class AbsentOutline:
    pass


OutlineVariant = Union[SequenceOutline, EncodedOutline, RawStringOutline, AbsentOutline]


def classify_outline(raw: Any) -> OutlineVariant:
    """Decide which shape the raw outline value has."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            return RawStringOutline(raw)
        if isinstance(decoded, list):
            return EncodedOutline(tuple(decoded))
        # Decoded, but not an array: nothing usable.
        return AbsentOutline()

    if isinstance(raw, Sequence):
        return SequenceOutline(tuple(raw))

    return AbsentOutline()


def _clean(items) -> tuple[str, ...]:
    labels = []
    for item in items:
        if isinstance(item, str) and item.strip():
            labels.append(item.strip())
    return tuple(labels)


def normalize_outline(raw: Any) -> tuple[str, ...]:
    """Return the outline as non-empty, stripped section labels."""
    variant = classify_outline(raw)
    if isinstance(variant, (SequenceOutline, EncodedOutline)):
        return _clean(variant.items)
    if isinstance(variant, RawStringOutline):
        return _clean(variant.text.splitlines())
    return ()
