"""Keep sentences that carry high-confidence claims byte-identical.

Before a rewrite, every sentence containing a protected claim is swapped for
an opaque ``[[KEEP-N]]`` token. After the rewrite the tokens are swapped back.
A rewrite that lost or duplicated a token is refused by ``restore``.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

PLACEHOLDER_PREFIX = "[[KEEP-"
_PLACEHOLDER_RE = re.compile(r"\[\[KEEP-\d+\]\]")

_STOP_WORDS = {
    "a", "an", "the", "to", "for", "of", "in", "on", "with", "and", "or",
    "is", "are", "was", "were", "be", "it", "that", "this", "by", "as", "at",
    "from", "than", "can", "will", "their", "its",
}


def split_sentences(body: str) -> list[str]:
    """Sentences as literal substrings of ``body``, line by line."""
    sentences = []
    for line in body.splitlines():
        for piece in re.split(r"(?<=[.!?])\s+", line.strip()):
            if piece.strip():
                sentences.append(piece.strip())
    return sentences


def _significant_words(text: str) -> set:
    return set(re.findall(r"[a-z0-9$%]+", text.lower())) - _STOP_WORDS


def find_claim_sentence(body: str, claim_text: str) -> Optional[str]:
    """Locate the sentence in ``body`` that carries ``claim_text``.

    Exact (case-insensitive) containment wins; otherwise the sentence sharing
    at least 60% of the claim's significant words is used.
    """
    needle = claim_text.strip().lower()
    if not needle:
        return None
    sentences = split_sentences(body)
    for sentence in sentences:
        if needle in sentence.lower():
            return sentence

    claim_words = _significant_words(needle)
    if not claim_words:
        return None
    best, best_ratio = None, 0.0
    for sentence in sentences:
        ratio = len(claim_words & _significant_words(sentence)) / len(claim_words)
        if ratio > best_ratio:
            best, best_ratio = sentence, ratio
    return best if best_ratio >= 0.6 else None


def protected_sentences(body: str, claim_texts: Iterable[str]) -> list[str]:
    found = []
    for text in claim_texts:
        sentence = find_claim_sentence(body, text)
        if sentence and sentence not in found:
            found.append(sentence)
    return found


def _occurrences(sentence: str) -> re.Pattern:
    # Whole-sentence matches only: at line start (after any list, quote or
    # heading marker) or after a sentence end, and followed by whitespace.
    return re.compile(
        r"(^[ \t]*(?:(?:[-*+>]|\d+[.)]|#{1,6})[ \t]+)?|(?<=[.!?\]])[ \t]+)"
        + re.escape(sentence)
        + r"(?=[ \t\r]|$)",
        re.MULTILINE,
    )


def protect(body: str, claim_texts: Iterable[str]) -> tuple[str, dict[str, str]]:
    """Mask every occurrence of each protected sentence.

    Each occurrence gets its own token, so a repeated sentence (a takeaway
    list echoing the body, say) is kept byte-identical everywhere.
    """
    mapping: dict[str, str] = {}
    masked = body

    def mask(match, sentence):
        token = f"{PLACEHOLDER_PREFIX}{len(mapping) + 1}]]"
        mapping[token] = sentence
        return match.group(1) + token

    # Longest first so a short sentence never splits a longer one's token.
    for sentence in sorted(protected_sentences(body, claim_texts), key=len, reverse=True):
        masked = _occurrences(sentence).sub(lambda m, s=sentence: mask(m, s), masked)
    return masked, mapping


def restore(rewritten: str, mapping: dict[str, str]) -> Optional[str]:
    """Put protected sentences back. ``None`` if any token was not kept once."""
    for token in mapping:
        if rewritten.count(token) != 1:
            return None
    if len(_PLACEHOLDER_RE.findall(rewritten)) != len(mapping):
        return None
    restored = rewritten
    for token, sentence in mapping.items():
        restored = restored.replace(token, sentence)
    return restored


def rewrite_protected(synthesizer, artifact, instruction: str, claim_texts, deadline):
    """Run one synthesizer rewrite with protected sentences masked.

    Returns ``(artifact, kept)``. When the rewrite dropped a protected
    sentence the original artifact comes back with ``kept=False``.
    """
    masked, mapping = protect(artifact.body, claim_texts)
    rewritten = synthesizer.rewrite(artifact.with_body(masked), instruction, deadline)
    restored = restore(rewritten.body, mapping)
    if restored is None:
        return artifact, False
    return artifact.with_body(restored), True
