"""Grading and human-readable report formatting for run results."""

from __future__ import annotations

from quality_gate.config import MIN_FACT_SCORE, MIN_READABILITY_SCORE
from quality_gate.models import Brief, RunResult, ScoreSet, Success


# Composite score floors for A, B and C; anything lower is a D.
GRADE_BANDS = ((85, "A"), (70, "B"), (55, "C"))


def compute_grade(scores: ScoreSet, issues: list, warnings: list) -> str:
    """Letter grade for an article that passed every gate.

    The composite score picks the letter and each remaining issue costs one
    letter. A clean run earns "+", any warning costs "-".
    """
    band = next((i for i, (floor, _) in enumerate(GRADE_BANDS) if scores.composite >= floor), len(GRADE_BANDS))
    band = min(band + len(issues), len(GRADE_BANDS))
    letter = GRADE_BANDS[band][1] if band < len(GRADE_BANDS) else "D"
    if not issues and not warnings:
        return letter + "+"
    return letter + "-" if warnings else letter


def collect_issues(result: Success, brief: Brief) -> tuple[list[str], list[str]]:
    """Walk through a successful run and collect issues/warnings."""
    issues = []
    warnings = []

    if result.fact_check.unverified:
        issues.append(f"{result.fact_check.unverified} unverified claim(s) left in the article")
    if result.fact_check.uncertain:
        warnings.append(f"{result.fact_check.uncertain} uncertain claim(s)")

    if result.link_present is False:
        issues.append(f"Strategic link {brief.link.markdown} is missing")

    if result.duplicates.is_duplicate:
        issues.append(f"Content is {result.duplicates.similarity}% similar to existing content")
    warnings.extend(result.duplicates.warnings if not result.duplicates.is_duplicate else ())

    if result.scores.readability_detail.long_sentences > 5:
        warnings.append(f"{result.scores.readability_detail.long_sentences} sentences over 25 words")
    if brief.word_count and result.artifact.word_count < brief.word_count * 0.8:
        warnings.append(f"Short: {result.artifact.word_count} words (target ~{brief.word_count})")

    return issues, warnings


def format_run_report(result: RunResult, brief: Brief) -> str:
    """Format a run result as a readable CLI report."""

    def _status(ok: bool) -> str:
        return "PASS" if ok else "FAIL"

    lines = [
        f"{'='*60}",
        f"RUN REPORT: {brief.title}",
        f"{'='*60}",
    ]

    if not result.ok:
        lines.append(f"Rejected at: {result.stage}")
        lines.append("")
        lines.extend(f"  {line}" if line else "" for line in result.message.splitlines())
        lines.append(f"{'='*60}")
        return "\n".join(lines)

    issues, warnings = collect_issues(result, brief)
    scores = result.scores
    fc = result.fact_check
    target = brief.target_flesch
    readability_ok = target is None or scores.readability >= MIN_READABILITY_SCORE

    lines += [
        f"Grade: {compute_grade(scores, issues, warnings)}",
        "",
        f"  [{_status(fc.score >= MIN_FACT_SCORE)}] Fact check:      {fc.score}/100  "
        f"({fc.verified}/{fc.total} verified, {result.iterations.fact_check} attempt(s))",
        f"  [{_status(readability_ok)}] Readability:     {scores.readability}/100  "
        f"(Flesch {scores.readability_detail.flesch}"
        + (f", target {target}" if target is not None else "")
        + f", {result.iterations.readability} rewrite(s))",
        f"  [{_status(not result.duplicates.is_duplicate)}] Duplicates:      "
        f"{result.duplicates.similarity}% max similarity",
    ]
    if brief.link is not None:
        lines.append(
            f"  [{_status(bool(result.link_present))}] Strategic link:  {brief.link.markdown}"
            + ("  (injected)" if result.iterations.link_injected else "")
        )
    lines.append(
        f"  Composite {scores.composite}  |  AEO {scores.aeo}  SEO {scores.seo}  "
        f"Engagement {scores.engagement}" + (f"  GEO {scores.geo}" if scores.geo is not None else "")
    )
    lines.append(
        f"  {result.artifact.word_count} words, {result.elapsed_seconds:.1f}s, "
        f"~{result.estimated_cost_cents} cents"
    )

    if issues:
        lines.append(f"\nISSUES ({len(issues)}):")
        for issue in issues:
            lines.append(f"  - {issue}")

    if warnings:
        lines.append(f"\nWARNINGS ({len(warnings)}):")
        for warning in warnings:
            lines.append(f"  ~ {warning}")

    if not issues and not warnings:
        lines.append("\nAll checks passed!")

    lines.append(f"{'='*60}")
    return "\n".join(lines)
