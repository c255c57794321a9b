"""Heuristic composite scorer.

Individual check functions each return a dict of findings; ``HeuristicScorer``
turns them into 0-100 sub-scores and blends them with the fact-check score:

    national: fact 30, aeo 25, seo 15, readability 15, engagement 15
    local:    fact 25, aeo 20, geo 15, seo 15, readability 15, engagement 10
"""

from __future__ import annotations

import re
from typing import Optional

from quality_gate.models import ContentArtifact, LocalContext, ReadabilityDetail, ScoreSet, count_words

NATIONAL_WEIGHTS = {"fact_check": 30, "aeo": 25, "seo": 15, "readability": 15, "engagement": 15}
LOCAL_WEIGHTS = {"fact_check": 25, "aeo": 20, "geo": 15, "seo": 15, "readability": 15, "engagement": 10}

LONG_SENTENCE_WORDS = 25
TARGET_TOLERANCE = 5  # Flesch points with full marks around the target
POINTS_PER_FLESCH = 4

_STOP_WORDS = {
    "a", "an", "the", "to", "for", "of", "in", "on", "with", "and", "or",
    "is", "are", "do", "does", "how", "what", "why", "your", "you", "it",
}


# ── Text helpers ──────────────────────────────────────────────────────────


def prose_text(body: str) -> str:
    """Body without headings, link URLs and markdown markers."""
    text = re.sub(r"!\[[^\]]*\]\([^)]+\)", "", body)
    text = re.sub(r"\[([^\]]+)\]\([^)]+\)", r"\1", text)
    text = re.sub(r"^#{1,6}\s+.*$", "", text, flags=re.MULTILINE)
    text = re.sub(r"[*_`>]", "", text)
    text = re.sub(r"^\s*(?:[-+]|\d+\.)\s+", "", text, flags=re.MULTILINE)
    return text


def sentences(body: str) -> list[str]:
    parts = []
    for block in re.split(r"\n\s*\n|\n", prose_text(body)):
        parts.extend(s for s in re.split(r"(?<=[.!?])\s+", block.strip()) if s.strip())
    return parts


def count_syllables(word: str) -> int:
    """Vowel-group count with a silent trailing 'e'. Never below 1."""
    word = re.sub(r"[^a-z]", "", word.lower())
    if not word:
        return 0
    groups = len(re.findall(r"[aeiouy]+", word))
    if word.endswith("e") and not word.endswith(("le", "ee")) and groups > 1:
        groups -= 1
    return max(1, groups)


def _significant_words(text: str) -> set:
    return set(re.findall(r"[a-z0-9]+", text.lower())) - _STOP_WORDS


# ── Individual checks ─────────────────────────────────────────────────────


def check_readability(body: str) -> ReadabilityDetail:
    sents = sentences(body)
    words = [w for w in re.findall(r"[A-Za-z0-9'$%-]+", " ".join(sents)) if re.search(r"[A-Za-z0-9]", w)]
    if not sents or not words:
        return ReadabilityDetail(flesch=0.0, avg_sentence_length=0.0, long_sentences=0)
    syllables = sum(count_syllables(w) for w in words)
    words_per_sentence = len(words) / len(sents)
    flesch = 206.835 - 1.015 * words_per_sentence - 84.6 * (syllables / len(words))
    long_count = sum(1 for s in sents if len(s.split()) > LONG_SENTENCE_WORDS)
    return ReadabilityDetail(
        flesch=round(max(0.0, min(100.0, flesch)), 1),
        avg_sentence_length=round(words_per_sentence, 1),
        long_sentences=long_count,
    )


def check_structure(body: str) -> dict:
    h2s = re.findall(r"^## (.+)", body, re.MULTILINE)
    h3s = re.findall(r"^### (.+)", body, re.MULTILINE)
    return {
        "h2": h2s,
        "h3_count": len(h3s),
        "question_headers": [h for h in h2s + h3s if h.strip().endswith("?")],
        "has_faq": bool(re.search(r"^#{2,3}\s+(?:faq|frequently asked)", body, re.MULTILINE | re.IGNORECASE)),
        "has_takeaways": bool(re.search(r"^#{2,3}\s+key takeaways", body, re.MULTILINE | re.IGNORECASE)),
        "has_list": bool(re.search(r"^\s*(?:[-*+]|\d+\.)\s+", body, re.MULTILINE)),
    }


def check_paragraphs(body: str) -> dict:
    paragraphs = [
        p for p in re.split(r"\n\s*\n", body)
        if p.strip() and not p.lstrip().startswith(("#", "-", "*", "+", "|"))
    ]
    lengths = [count_words(p) for p in paragraphs]
    avg = sum(lengths) / len(lengths) if lengths else 0.0
    return {"count": len(paragraphs), "avg_words": round(avg, 1)}


def check_links(body: str) -> dict:
    links = re.findall(r"\[([^\]]+)\]\(([^)]+)\)", body)
    internal = [(a, u) for a, u in links if not u.startswith(("http://", "https://"))]
    return {"internal": len(internal), "external": len(links) - len(internal)}


def check_title_terms(artifact: ContentArtifact) -> dict:
    """Where the title's significant words show up (stand-in for the keyword)."""
    terms = _significant_words(artifact.title)
    first_para = next((p for p in re.split(r"\n\s*\n", artifact.body) if p.strip() and not p.startswith("#")), "")
    h2_text = " ".join(re.findall(r"^## (.+)", artifact.body, re.MULTILINE))

    def _coverage(text: str) -> float:
        return len(terms & _significant_words(text)) / len(terms) if terms else 1.0

    return {"intro": _coverage(first_para), "headers": _coverage(h2_text)}


def check_engagement(body: str) -> dict:
    text = prose_text(body)
    return {
        "questions": text.count("?"),
        "second_person": len(re.findall(r"\b(?:you|your|you're)\b", text, re.IGNORECASE)),
        "examples": len(re.findall(r"\b(?:for example|for instance|e\.g\.|such as)\b", text, re.IGNORECASE)),
        "emphasis": len(re.findall(r"\*\*[^*]+\*\*", body)),
    }


def check_local(body: str, local: LocalContext) -> dict:
    lower = body.lower()

    def _mentions(term: str) -> int:
        return lower.count(term.lower()) if term.strip() else 0

    return {
        "city": _mentions(local.city),
        "state": _mentions(local.state),
        "service_area": _mentions(local.service_area),
        "local_phrases": len(re.findall(r"\b(?:near me|local|nearby|in your area)\b", lower)),
    }


# ── Sub-scores ────────────────────────────────────────────────────────────


def readability_score(detail: ReadabilityDetail, target_flesch: Optional[int]) -> int:
    """Distance to the target when one is set, fixed bands otherwise."""
    if target_flesch is not None:
        gap = abs(detail.flesch - target_flesch)
        if gap <= TARGET_TOLERANCE:
            return 100
        return max(0, round(100 - POINTS_PER_FLESCH * (gap - TARGET_TOLERANCE)))
    if detail.flesch >= 60:
        score = 100
    elif detail.flesch >= 50:
        score = 85
    elif detail.flesch >= 40:
        score = 70
    elif detail.flesch >= 30:
        score = 55
    else:
        score = 40
    return max(0, score - 2 * detail.long_sentences)


def aeo_score(structure: dict, paragraphs: dict) -> int:
    score = 0
    if structure["has_faq"]:
        score += 25
    score += min(3, len(structure["question_headers"])) * 8
    if structure["has_takeaways"]:
        score += 16
    if structure["has_list"]:
        score += 15
    if 0 < paragraphs["avg_words"] <= 60:
        score += 20
    elif paragraphs["avg_words"] <= 90:
        score += 10
    return min(100, score)


def seo_score(artifact: ContentArtifact, structure: dict, links: dict) -> int:
    terms = check_title_terms(artifact)
    score = 0
    score += round(20 * terms["intro"])
    score += round(20 * terms["headers"])
    if 4 <= len(structure["h2"]) <= 10:
        score += 15
    if 50 <= len(artifact.meta_description) <= 160:
        score += 15
    if artifact.word_count >= 800:
        score += 10
    if links["internal"] >= 1:
        score += 10
    if links["external"] >= 1:
        score += 10
    return min(100, score)


def engagement_score(engagement: dict, structure: dict, paragraphs: dict) -> int:
    score = 0
    if engagement["questions"] >= 2:
        score += 15
    score += min(20, engagement["second_person"] * 2)
    score += min(15, engagement["examples"] * 5)
    if engagement["emphasis"]:
        score += 10
    if structure["has_list"]:
        score += 15
    if structure["h3_count"]:
        score += 5
    if 0 < paragraphs["avg_words"] <= 80:
        score += 20
    return min(100, score)


def geo_score(local: dict) -> int:
    score = min(40, local["city"] * 10)
    score += min(20, local["state"] * 10)
    score += min(20, local["service_area"] * 10)
    score += min(20, local["local_phrases"] * 5)
    return min(100, score)


def is_local(local_context: Optional[LocalContext]) -> bool:
    return local_context is not None and any(
        v.strip() for v in (local_context.city, local_context.state, local_context.service_area)
    )


class HeuristicScorer:
    def score(
        self,
        artifact: ContentArtifact,
        fact_score: int,
        local_context: Optional[LocalContext],
        target_flesch: Optional[int],
    ) -> ScoreSet:
        body = artifact.body
        detail = check_readability(body)
        structure = check_structure(body)
        paragraphs = check_paragraphs(body)
        parts = {
            "fact_check": fact_score,
            "aeo": aeo_score(structure, paragraphs),
            "seo": seo_score(artifact, structure, check_links(body)),
            "readability": readability_score(detail, target_flesch),
            "engagement": engagement_score(check_engagement(body), structure, paragraphs),
        }
        weights = NATIONAL_WEIGHTS
        if is_local(local_context):
            parts["geo"] = geo_score(check_local(body, local_context))
            weights = LOCAL_WEIGHTS

        composite = round(sum(parts[k] * w for k, w in weights.items()) / 100)
        return ScoreSet(
            composite=composite,
            aeo=parts["aeo"],
            seo=parts["seo"],
            readability=parts["readability"],
            engagement=parts["engagement"],
            fact_check=fact_score,
            readability_detail=detail,
            geo=parts.get("geo"),
        )
