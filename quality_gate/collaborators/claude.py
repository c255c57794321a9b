"""Claude-backed collaborators: complexity classifier, synthesizer, fact checker.

All three share one ``anthropic.Anthropic`` client and go through
``messages_create_with_retry`` so overload / rate-limit retries stay inside
the run deadline.
"""

from __future__ import annotations

import json
import re
from typing import Optional, Sequence

import anthropic

from quality_gate.config import (
    ANTHROPIC_API_KEY,
    CLASSIFIER_MAX_TOKENS,
    CLASSIFIER_MODEL,
    CLASSIFIER_TEMPERATURE,
    CLAUDE_MAX_TOKENS,
    CLAUDE_MODEL,
    CLAUDE_TEMPERATURE,
    FACT_CHECK_MAX_TOKENS,
    FACT_CHECK_MODEL,
    READABILITY_TEMPERATURE,
)
from quality_gate.collaborators.anthropic_retry import messages_create_with_retry, response_text
from quality_gate.deadline import Deadline
from quality_gate.errors import UpstreamFailure
from quality_gate.models import (
    Brief,
    Claim,
    ClaimStatus,
    ContentArtifact,
    FactCheckReport,
    InternalLink,
    ResearchBundle,
    Verdict,
    count_words,
)
from quality_gate.pipeline.prompts import (
    build_article_prompt,
    build_complexity_prompt,
    build_fact_check_prompt,
    build_rewrite_prompt,
    build_system_prompt,
)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def make_client(api_key: str = ANTHROPIC_API_KEY) -> anthropic.Anthropic:
    if not api_key:
        raise ValueError("ANTHROPIC_API_KEY not set. Add it to your .env file.")
    return anthropic.Anthropic(api_key=api_key)


def _clamp(value, low: int = 0, high: int = 100) -> int:
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return low
    return max(low, min(high, number))


# ── Classifier ────────────────────────────────────────────────────────────


def parse_verdict(text: str) -> Verdict:
    """Parse a complexity verdict. Anything unreadable counts as appropriate."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        return Verdict(appropriate=True, confidence=0, reasoning="Unparseable classifier reply")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return Verdict(appropriate=True, confidence=0, reasoning="Unparseable classifier reply")
    if not isinstance(data, dict) or not isinstance(data.get("appropriate"), bool):
        return Verdict(appropriate=True, confidence=0, reasoning="Unparseable classifier reply")
    return Verdict(
        appropriate=data["appropriate"],
        confidence=_clamp(data.get("confidence")),
        reasoning=str(data.get("reasoning") or ""),
        suggested_alternative=data.get("suggestedAlternative") or None,
    )


class ClaudeClassifier:
    def __init__(self, client: anthropic.Anthropic, model: str = CLASSIFIER_MODEL):
        self.client = client
        self.model = model

    def classify(self, brief: Brief, level_description: str, deadline: Deadline) -> Verdict:
        message = messages_create_with_retry(
            self.client,
            deadline,
            stage="complexity",
            model=self.model,
            max_tokens=CLASSIFIER_MAX_TOKENS,
            temperature=CLASSIFIER_TEMPERATURE,
            messages=[{"role": "user", "content": build_complexity_prompt(brief, level_description)}],
        )
        return parse_verdict(response_text(message))


# ── Synthesizer ───────────────────────────────────────────────────────────


def split_article(text: str, fallback_title: str) -> ContentArtifact:
    """Split a generated article into title, meta description and body.

    Expects ``# Title`` on the first line and ``Meta: ...`` on the next
    non-empty one; both are optional.
    """
    lines = (text or "").strip().splitlines()
    title, meta = fallback_title, ""
    if lines and lines[0].startswith("# "):
        title = lines.pop(0)[2:].strip() or fallback_title
    while lines and not lines[0].strip():
        lines.pop(0)
    if lines and lines[0].lower().startswith("meta:"):
        meta = lines.pop(0)[5:].strip()
    body = "\n".join(lines).strip()
    return ContentArtifact(title=title, meta_description=meta, body=body, word_count=count_words(body))


def _strip_repeated_title(text: str, title: str) -> str:
    """Rewrites sometimes echo the ``# Title`` line back; drop it."""
    lines = (text or "").strip().splitlines()
    if lines and lines[0].startswith("# ") and lines[0][2:].strip().lower() == title.strip().lower():
        lines = lines[1:]
    return "\n".join(lines).strip()


class ClaudeSynthesizer:
    """Generate mode writes the first draft; rewrite mode revises the body."""

    def __init__(self, client: anthropic.Anthropic, model: str = CLAUDE_MODEL):
        self.client = client
        self.model = model

    def synthesize(
        self,
        brief: Brief,
        research: ResearchBundle,
        target_flesch: Optional[int],
        internal_links: Sequence[InternalLink],
        deadline: Deadline,
    ) -> ContentArtifact:
        message = messages_create_with_retry(
            self.client,
            deadline,
            stage="synthesis",
            model=self.model,
            max_tokens=CLAUDE_MAX_TOKENS,
            temperature=CLAUDE_TEMPERATURE,
            system=build_system_prompt(brief.brand_voice),
            messages=[{
                "role": "user",
                "content": build_article_prompt(brief, research, target_flesch, internal_links),
            }],
        )
        artifact = split_article(response_text(message), brief.title)
        if not artifact.body:
            raise UpstreamFailure("Claude returned an empty article", "synthesis")
        return artifact

    def rewrite(self, artifact: ContentArtifact, instruction: str, deadline: Deadline) -> ContentArtifact:
        message = messages_create_with_retry(
            self.client,
            deadline,
            stage="rewrite",
            model=self.model,
            max_tokens=CLAUDE_MAX_TOKENS,
            temperature=READABILITY_TEMPERATURE,
            messages=[{"role": "user", "content": build_rewrite_prompt(artifact.body, instruction)}],
        )
        body = _strip_repeated_title(response_text(message), artifact.title)
        if not body:
            raise UpstreamFailure("Claude returned an empty rewrite", "rewrite")
        return artifact.with_body(body)


# ── Fact checker ──────────────────────────────────────────────────────────


def _parse_status(value) -> ClaimStatus:
    try:
        return ClaimStatus(str(value).lower())
    except ValueError:
        return ClaimStatus.UNVERIFIED


def overall_score(claims: Sequence[Claim]) -> int:
    """Fallback score when the reply has none: verified 1, uncertain 0.5."""
    if not claims:
        return 100
    points = sum(
        1.0 if c.status == ClaimStatus.VERIFIED else 0.5 if c.status == ClaimStatus.UNCERTAIN else 0.0
        for c in claims
    )
    return round(points / len(claims) * 100)


def parse_fact_check(text: str) -> FactCheckReport:
    """Parse ``{"factChecks": [...], "overallScore": n}`` or a bare claim array."""
    text = text or ""
    obj, arr = text.find("{"), text.find("[")
    # Whichever bracket opens first is the outermost value.
    pattern = _JSON_ARRAY_RE if arr != -1 and (obj == -1 or arr < obj) else _JSON_OBJECT_RE
    match = pattern.search(text)
    if not match:
        raise UpstreamFailure("fact-check reply contained no JSON", "fact-check")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise UpstreamFailure(f"fact-check reply was not valid JSON: {e}", "fact-check") from e

    if isinstance(data, list):
        raw_claims, score = data, None
    elif isinstance(data, dict):
        raw_claims, score = data.get("factChecks") or [], data.get("overallScore")
    else:
        raise UpstreamFailure("fact-check reply had an unexpected shape", "fact-check")

    claims = []
    for item in raw_claims:
        if not isinstance(item, dict) or not str(item.get("claim") or "").strip():
            continue
        sources = item.get("sources") or []
        claims.append(Claim(
            text=str(item["claim"]).strip(),
            status=_parse_status(item.get("status")),
            confidence=_clamp(item.get("confidence")),
            sources=tuple(str(s) for s in sources if s) if isinstance(sources, list) else (),
        ))
    claims = tuple(claims)
    return FactCheckReport(claims=claims, score=overall_score(claims) if score is None else _clamp(score))


class ClaudeFactChecker:
    def __init__(self, client: anthropic.Anthropic, model: str = FACT_CHECK_MODEL):
        self.client = client
        self.model = model

    def check(self, body: str, deadline: Deadline) -> FactCheckReport:
        message = messages_create_with_retry(
            self.client,
            deadline,
            stage="fact-check",
            model=self.model,
            max_tokens=FACT_CHECK_MAX_TOKENS,
            temperature=0.0,
            messages=[{"role": "user", "content": build_fact_check_prompt(body)}],
        )
        return parse_fact_check(response_text(message))
