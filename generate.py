#!/usr/bin/env python3
"""Generate articles for pending topics through the quality gates.

Usage:
    python generate.py --user u1                    # Generate all pending topics of user u1
    python generate.py --user u1 --limit 5          # Generate first 5 pending
    python generate.py --user u1 --topic t1,t7      # Exact topic ids (any status but generating)
    python generate.py --user u1 --dry-run          # Show briefs without calling any API
    python generate.py --reconcile                  # Mark stale "generating" topics as failed

The user id defaults to QUALITY_GATE_USER_ID from .env.
"""

from __future__ import annotations

import argparse
import html
import json
import os
import re
import sys

import markdown as md_lib

from quality_gate.config import ARTICLE_OUTPUT_DIR, GENERATION_WATCHDOG_SECONDS, STORE_PATH
from quality_gate.events import ConsoleObserver
from quality_gate.report import format_run_report
from quality_gate.service import GenerationService, build_brief
from quality_gate.store import PENDING, SqliteStore


# ── HTML helpers ──────────────────────────────────────────────────────────


_HTML_BODY_RE = re.compile(r"<(h[1-6]|p|ul|ol|a)\b", re.IGNORECASE)


def article_html(title: str, body: str, meta_description: str = "") -> str:
    """Render a finished article as an HTML fragment.

    Bodies are markdown from the synthesizer; one that is already HTML is
    kept as-is under the title.
    """
    parts = [f"<h1>{html.escape(title)}</h1>"]
    if meta_description:
        parts.append(f'<p class="meta-description">{html.escape(meta_description)}</p>')
    if _HTML_BODY_RE.search(body):
        parts.append(body.strip())
    else:
        parts.append(md_lib.markdown(body, extensions=["extra", "sane_lists", "smarty"]))
    return "\n".join(parts)


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:80] or "article"


# ── Core processing ──────────────────────────────────────────────────────


def process_topic(topic: dict, service: GenerationService, user_id: str, dry_run: bool = False) -> dict:
    """Process a single topic: run the pipeline, export the article, report."""
    topic_id = str(topic["id"])

    print(f"\n{'='*60}")
    print(f"Processing: {topic.get('title', '?')} ({topic_id})")
    print(f"{'='*60}")

    if dry_run:
        strategy = service.store.get_strategy(topic.get("strategy_id")) or {}
        brief = build_brief(topic, strategy)
        links = service.store.get_internal_links(strategy.get("id", ""))
        corpus = service.store.get_existing_content(strategy.get("id", ""))
        print("\n  [DRY RUN] Would generate article with:")
        print(f"    Keyword: {brief.search_keyword}")
        print(f"    Outline: {list(brief.outline)[:5]}...")
        print(f"    Target Flesch: {brief.target_flesch}{' [OVERRIDE]' if brief.target_flesch_override else ''}")
        print(f"    Link: {brief.link.markdown if brief.link else 'none'}")
        print(f"    Internal links: {len(links)}, existing pages: {len(corpus)}")
        return {"topic_id": topic_id, "title": brief.title, "dry_run": True}

    response = service.generate(topic_id, user_id)
    summary = {"topic_id": topic_id, "title": topic.get("title", ""), "status_code": response.status_code}

    if response.result is None:
        print(f"  FAIL {response.status_code}: {response.payload.get('error')}")
        summary["error"] = response.payload.get("error")
        return summary

    print(f"\n{format_run_report(response.result, response.brief)}")

    os.makedirs(ARTICLE_OUTPUT_DIR, exist_ok=True)
    slug = slugify(response.brief.title)
    result_path = os.path.join(ARTICLE_OUTPUT_DIR, f"{slug}_result.json")
    with open(result_path, "w") as f:
        json.dump(response.payload, f, indent=2, default=str)

    if not response.ok:
        summary["stage"] = response.payload.get("stage")
        summary["error"] = response.payload.get("error")
        return summary

    artifact = response.result.artifact
    article_path = os.path.join(ARTICLE_OUTPUT_DIR, f"{slug}.html")
    with open(article_path, "w") as f:
        f.write(article_html(artifact.title, artifact.body, artifact.meta_description))
    print(f"  Saved to {article_path}")

    summary.update({
        "post_id": response.payload["post"]["id"],
        "article_path": article_path,
        "word_count": artifact.word_count,
        "aiso_score": response.result.scores.composite,
        "fact_check_score": response.result.fact_check.score,
        "iterations": response.result.iterations.as_dict(),
    })
    return summary


# ── Main ──────────────────────────────────────────────────────────────────


def main():
    parser = argparse.ArgumentParser(description="Generate fact-checked, reading-level-matched articles")
    parser.add_argument("--user", type=str, default=os.getenv("QUALITY_GATE_USER_ID", ""),
                        help="User id that owns the topics")
    parser.add_argument("--topic", type=str, default="",
                        help="Comma-separated topic ids (exact match)")
    parser.add_argument("--limit", type=int, default=0,
                        help="Limit number of topics to generate")
    parser.add_argument("--store", type=str, default=str(STORE_PATH),
                        help="Path to the SQLite store")
    parser.add_argument("--model", type=str, default="",
                        help="Override the Claude model used for writing")
    parser.add_argument("--deadline", type=float, default=0,
                        help="Per-run deadline in seconds")
    parser.add_argument("--no-research", action="store_true",
                        help="Skip web research")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show briefs without calling any API")
    parser.add_argument("--reconcile", action="store_true",
                        help="Mark topics stuck in 'generating' as failed and exit")
    args = parser.parse_args()

    store = SqliteStore(args.store)

    if args.reconcile:
        flipped = store.reconcile_stale(GENERATION_WATCHDOG_SECONDS)
        print(f"Marked {len(flipped)} stale topic(s) as failed: {', '.join(flipped) or '-'}")
        sys.exit(0)

    # ── Select topics ─────────────────────────────────────────────────
    if args.topic:
        wanted = [t.strip() for t in args.topic.split(",") if t.strip()]
        topics = [t for t in (store.get_topic(tid) for tid in wanted) if t]
        missing = set(wanted) - {str(t["id"]) for t in topics}
        if missing:
            print(f"Unknown topic id(s): {', '.join(sorted(missing))}")
    else:
        topics = store.list_topics(status=PENDING)
    print(f"Loaded {len(topics)} topic(s)")

    if args.limit > 0:
        topics = topics[:args.limit]
        print(f"Limited to {len(topics)} topics")

    if not topics:
        print("No pending topics to process!")
        sys.exit(0)

    collaborators = None
    if not args.dry_run:
        from quality_gate.collaborators import default_collaborators
        collaborators = default_collaborators(model=args.model or None, research_enabled=not args.no_research)
    service = GenerationService(
        store, collaborators, observer=ConsoleObserver(), deadline_seconds=args.deadline or None
    )

    # ── Process ───────────────────────────────────────────────────────
    results = []
    for i, topic in enumerate(topics, 1):
        print(f"\n[{i}/{len(topics)}]", end="")
        results.append(process_topic(topic, service, args.user, dry_run=args.dry_run))

    # ── Summary ───────────────────────────────────────────────────────
    print(f"\n\n{'='*60}")
    print("SUMMARY")
    print(f"{'='*60}")
    failures = 0
    for r in results:
        if r.get("dry_run"):
            print(f"  {r['title']}: [dry run]")
        elif r.get("status_code") == 200:
            print(
                f"  {r['title']}: {r['word_count']} words, AISO {r['aiso_score']}, "
                f"fact-check {r['fact_check_score']}"
            )
        else:
            failures += 1
            stage = f" at {r['stage']}" if r.get("stage") else ""
            print(f"  {r['title']}: FAILED ({r['status_code']}{stage}) {r.get('error', '')}")

    summary_path = os.path.join(ARTICLE_OUTPUT_DIR, "_summary.json")
    os.makedirs(ARTICLE_OUTPUT_DIR, exist_ok=True)
    with open(summary_path, "w") as f:
        json.dump(results, f, indent=2, default=str)
    print(f"\nSummary saved to {summary_path}")

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
