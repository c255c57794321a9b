"""Web research step: gather statistics, case studies and trends for a topic.

Runs three Brave Search queries and sorts the cleaned result snippets into a
``ResearchBundle`` that gets injected into the article generation prompt.
Research is best effort: without an API key the bundle is simply empty.
"""

from __future__ import annotations

import re
from datetime import datetime

import requests
from bs4 import BeautifulSoup

from quality_gate.config import (
    BRAVE_API_KEY,
    BRAVE_RESULTS_PER_QUERY,
    BRAVE_SEARCH_URL,
    HTTP_TIMEOUT_SECONDS,
    RESEARCH_ENABLED,
)
from quality_gate.deadline import Deadline
from quality_gate.errors import DeadlineExceeded, UpstreamFailure
from quality_gate.models import ResearchBundle

CURRENT_YEAR = datetime.now().year

_STAT_RE = re.compile(r"\d+(?:\.\d+)?\s*%|\$\d|\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?\s*(?:million|billion)", re.I)


def _build_queries(keyword: str, title: str) -> dict[str, str]:
    return {
        "statistics": f"{keyword} statistics {CURRENT_YEAR}",
        "case_studies": f"{keyword} case study results",
        "trends": f"{title or keyword} trends {CURRENT_YEAR}",
    }


def clean_snippet(html: str) -> str:
    """Brave highlights matches with <strong>; keep only the text."""
    text = BeautifulSoup(html or "", "html.parser").get_text(" ")
    return re.sub(r"\s+", " ", text).strip()


def _format_result(result: dict) -> str:
    snippet = clean_snippet(result.get("description", ""))
    url = result.get("url", "")
    if not snippet:
        return ""
    return f"{snippet} (Source: {url})" if url else snippet


class BraveResearcher:
    def __init__(
        self,
        api_key: str = BRAVE_API_KEY,
        session: requests.Session | None = None,
        enabled: bool = RESEARCH_ENABLED,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.enabled = enabled

    def _search(self, query: str, deadline: Deadline) -> list[dict]:
        timeout = deadline.timeout("research", cap=HTTP_TIMEOUT_SECONDS)
        try:
            resp = self.session.get(
                BRAVE_SEARCH_URL,
                params={"q": query, "count": BRAVE_RESULTS_PER_QUERY},
                headers={"Accept": "application/json", "X-Subscription-Token": self.api_key},
                timeout=timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.Timeout as e:
            if deadline.expired:
                raise DeadlineExceeded("run deadline exceeded during web search", "research") from e
            raise UpstreamFailure(f"Brave Search timed out for '{query}'", "research") from e
        except requests.RequestException as e:
            raise UpstreamFailure(f"Brave Search request failed: {e}", "research") from e
        except ValueError as e:
            raise UpstreamFailure(f"Brave Search returned invalid JSON: {e}", "research") from e
        return (data.get("web") or {}).get("results") or []

    def research(self, keyword: str, title: str, deadline: Deadline) -> ResearchBundle:
        if not self.enabled or not self.api_key:
            return ResearchBundle()

        found: dict[str, list[str]] = {}
        for bucket, query in _build_queries(keyword, title).items():
            snippets = [s for s in (_format_result(r) for r in self._search(query, deadline)) if s]
            if bucket == "statistics":
                snippets = [s for s in snippets if _STAT_RE.search(s)]
            found[bucket] = snippets

        return ResearchBundle(
            statistics=tuple(found["statistics"]),
            case_studies=tuple(found["case_studies"]),
            trends=tuple(found["trends"]),
        )
