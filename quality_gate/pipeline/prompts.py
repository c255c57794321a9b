"""Prompts for synthesis, classification, fact checking and every rewrite.

Rewrite *instructions* (fact-check refinement, readability, link injection)
are built here and handed to the synthesizer's rewrite mode, which wraps them
with the article body via ``build_rewrite_prompt``.
"""

from __future__ import annotations

from typing import Optional, Sequence

from quality_gate.models import Brief, Claim, CtaType, InternalLink, LinkPlacement, LinkSpec, ResearchBundle
from quality_gate.pipeline.levels import reading_level_description, target_sentence_length
from quality_gate.pipeline.protection import PLACEHOLDER_PREFIX


# ── Synthesis ─────────────────────────────────────────────────────────────


def build_system_prompt(brand_voice: str = "") -> str:
    """Return the system-level instructions for article generation."""
    voice = f"\nBrand voice: {brand_voice}" if brand_voice else ""
    return f"""You are an expert content writer producing blog articles that must pass three reviews: a fact check, a reading-level check, and an SEO review.{voice}

## STRUCTURAL RULES
1. Start with "# " followed by the article title on the first line.
2. The second line is "Meta: " followed by a meta description under 160 characters.
3. Use the outline sections provided as H2 (##) headers, in order. Add H3 (###) subsections where useful.
4. End with a "## Key Takeaways" bulleted list and a short "## FAQ" section with 3-5 questions.

## FACT RULES
- Only use statistics that appear in the research brief, and keep their source links.
- Do NOT invent numbers, prices, percentages, dates or named studies.
- Prefer general statements over specific unverifiable figures.

## LINK RULES
- Format all links as standard markdown: [anchor text](URL)
- Use internal links from the list provided where they are genuinely relevant (2-4 maximum).

Output format: Markdown only. No explanations before or after the article."""


def build_article_prompt(
    brief: Brief,
    research: ResearchBundle,
    target_flesch: Optional[int],
    internal_links: Sequence[InternalLink],
) -> str:
    """Build the complete user prompt for a first draft."""
    sections = [
        _build_intro(brief),
        _build_outline_section(brief.outline),
        _build_research_section(research),
        _build_reading_level_section(target_flesch),
        _build_internal_link_section(internal_links),
        _build_local_section(brief),
    ]
    return "\n".join(s for s in sections if s) + "\n\nWrite the article now."


def _build_intro(brief: Brief) -> str:
    return f"""Write a ~{brief.word_count}-word article.

Title: {brief.title}
Target keyword: {brief.keyword or brief.title}
Target audience: {brief.target_audience or "general readers"}
Search intent: {brief.seo_intent}

Use the target keyword naturally in the title, the opening paragraph, and at least one H2."""


def _build_outline_section(outline: Sequence[str]) -> str:
    if not outline:
        return """
## ARTICLE STRUCTURE
No outline was provided. Choose 5-7 logical H2 sections for this topic."""
    lines = "\n".join(f"  {i + 1}. {item}" for i, item in enumerate(outline))
    return f"""
## ARTICLE STRUCTURE (use these as H2 headers, in this order)
{lines}"""


def _build_research_section(research: ResearchBundle) -> str:
    if research.is_empty:
        return """
## RESEARCH BRIEF
No research data is available. Do not include any specific statistics."""

    parts = ["\n## RESEARCH BRIEF (the only statistics you may cite)"]
    if research.statistics:
        parts.append("Statistics:\n" + "\n".join(f"  - {s}" for s in research.statistics))
    if research.case_studies:
        parts.append("Case studies:\n" + "\n".join(f"  - {s}" for s in research.case_studies))
    if research.trends:
        parts.append("Recent trends:\n" + "\n".join(f"  - {s}" for s in research.trends))
    return "\n".join(parts)


def _build_reading_level_section(target_flesch: Optional[int]) -> str:
    if target_flesch is None:
        return ""
    return f"""
## READING LEVEL (MANDATORY)
Target: {reading_level_description(target_flesch)}, Flesch reading ease {target_flesch}.
Average sentence length: {target_sentence_length(target_flesch)}. Use active voice and everyday words where the target calls for it."""


def _build_internal_link_section(internal_links: Sequence[InternalLink]) -> str:
    if not internal_links:
        return ""
    lines = [f"  - [{link.title or link.url}]({link.url})" for link in internal_links]
    return f"""
## INTERNAL LINKS (pick the most relevant, 2-4 maximum)
{chr(10).join(lines)}"""


def _build_local_section(brief: Brief) -> str:
    ctx = brief.local_context
    if ctx is None:
        return ""
    place = ", ".join(p for p in (ctx.city, ctx.state) if p)
    area = f" Service area: {ctx.service_area}." if ctx.service_area else ""
    return f"""
## LOCAL INTENT
This article targets readers in {place or "the local service area"}.{area} Mention the location naturally where it helps the reader."""


# ── Complexity classification ─────────────────────────────────────────────


_LEVEL_GUIDELINES = [
    (70, """- Flesch 70+ requires VERY simple language (7th grade)
- Topics should be practical, everyday problems
- NO technical terminology, industry jargon, or complex processes"""),
    (60, """- Flesch 60-69 requires simple language (8th-9th grade)
- Topics should be practical with minimal technical terms
- Explain any industry terms in plain language"""),
    (50, """- Flesch 50-59 allows moderate complexity (10th grade)
- Topics can include some industry terms if explained
- Should be accessible to college-educated adults"""),
    (0, """- Flesch <50 allows technical complexity (college/graduate level)
- Topics can include technical terminology
- Audience has specialized knowledge"""),
]


def build_complexity_prompt(brief: Brief, level_description: str) -> str:
    target = brief.target_flesch or 0
    guidelines = next(text for floor, text in _LEVEL_GUIDELINES if target >= floor)
    return f"""You are a content strategy expert. Analyze if this blog topic can be naturally written at the specified reading level.

**Topic:** "{brief.title}"
**Target Keyword:** "{brief.keyword}"
**Target Reading Level:** {level_description} (Flesch {target})
**Target Audience:** {brief.target_audience}

**Analysis Required:**
1. Does this topic require technical jargon that can't be simplified?
2. Does this topic involve concepts too complex for the target audience?
3. Can this topic be written naturally at the target reading level without losing value?

**Guidelines:**
{guidelines}

Return ONLY a JSON object:
{{
  "appropriate": boolean,
  "confidence": number (0-100),
  "reasoning": "1-2 sentences explaining why",
  "suggestedAlternative": "a simpler alternative topic, or null"
}}"""


# ── Fact checking ─────────────────────────────────────────────────────────


def build_fact_check_prompt(body: str) -> str:
    return f"""You are a meticulous fact checker. Extract every specific factual claim from the article below (statistics, prices, dates, named studies, quantities, causal claims) and assess each one.

For each claim return:
- "claim": the claim text copied VERBATIM from the article (a sentence fragment is fine)
- "status": "verified" | "uncertain" | "unverified"
- "confidence": 0-100
- "sources": list of URLs that support it (may be empty)

Then give an "overallScore" from 0 to 100 for the article's factual reliability.

Return ONLY a JSON object: {{"factChecks": [...], "overallScore": number}}

ARTICLE:
{body}"""


# ── Rewrites ──────────────────────────────────────────────────────────────


def build_rewrite_prompt(body: str, instruction: str) -> str:
    """Wrap a rewrite instruction around the article body."""
    return f"""{instruction}

**PROTECTED TEXT:** Tokens that look like {PLACEHOLDER_PREFIX}N]] stand for sentences that must not change. Keep every such token exactly as written, in place.

**CONTENT:**
{body}

**OUTPUT:** Return ONLY the full revised article in markdown. No explanations."""


def _numbered(claims: Sequence[Claim]) -> str:
    return "\n".join(f"{i + 1}. {c.text}" for i, c in enumerate(claims))


def build_fact_refinement_instruction(
    to_remove: Sequence[Claim],
    to_soften: Sequence[Claim],
    protected: Sequence[Claim],
) -> str:
    """Instruction for one fact-check refinement pass."""
    parts = [
        "You are refining a blog post to remove or rewrite unverifiable claims "
        "while keeping its value for the reader."
    ]
    if to_remove:
        parts.append(f"""**Claims to REMOVE or GENERALIZE (confidence below 60%):**
{_numbered(to_remove)}

How to handle these:
- Remove the specific number, price, date or statistic entirely
- Replace it with a general statement that needs no verification
- Do NOT hedge with words like "reportedly", "some say", "may"

Example: "The market is $3.5B in 2025" -> "The market continues to grow\"""")
    if to_soften:
        parts.append(f"""**Claims to SOFTEN (confidence 60-79%):**
{_numbered(to_soften)}

- Add exactly ONE soft quantifier such as "around" or "about" to the figure
- Do NOT add attribution phrases ("according to", "studies show", "experts suggest")
- Example: "The tool costs $50" -> "The tool costs around $50\"""")
    if protected:
        parts.append(f"""**Verified claims (80%+ confidence). Leave EXACTLY as written:**
{_numbered(protected)}""")
    parts.append("""**CRITICAL RULES:**
1. Keep the same headings, structure and tone
2. Do NOT add new statistics or claims
3. Only change the sentences listed above""")
    return "\n\n".join(parts)


def build_readability_instruction(target_flesch: float, actual_flesch: float) -> str:
    """Instruction for one readability pass towards ``target_flesch``."""
    gap = round(abs(actual_flesch - target_flesch), 1)
    too_complex = actual_flesch < target_flesch
    direction = (
        "(TOO COMPLEX - content is harder to read than target)"
        if too_complex
        else "(TOO SIMPLE - content is easier to read than target)"
    )
    if too_complex:
        task = """- SIMPLIFY ALL TEXT THROUGHOUT THE ARTICLE:
  * Break long sentences into 2-3 shorter sentences
  * Replace formal words with plain everyday words ("utilize" -> "use", "facilitate" -> "help")
  * Use active voice instead of passive voice
  * One idea per sentence"""
    else:
        task = """- ELABORATE THE TEXT:
  * Combine short, choppy sentences into longer flowing ones
  * Use more precise vocabulary
  * Add transitional phrases between ideas"""

    return f"""You are a readability expert. This content does not match the target reading level.

**TARGET**: {reading_level_description(target_flesch)} (Flesch {target_flesch})
**CURRENT FLESCH**: {actual_flesch}
**GAP**: {gap} points {direction}

**CRITICAL RULES:**
1. Keep EXACTLY the same H2/H3 headings. Do not add, remove, rename or reorder any heading
2. Do not add or remove facts
3. Apply the change to every section: body, Key Takeaways, FAQ answers

**YOUR TASK:**
- Target average sentence length: {target_sentence_length(target_flesch)}
{task}"""


_PLACEMENT_GUIDELINES = {
    LinkPlacement.INTRO: """- Add it in the introduction (first 2-3 paragraphs)
- It should set context for why this topic matters""",
    LinkPlacement.CONCLUSION: """- Add it in the closing section
- It should read as a clear next step for the reader""",
    LinkPlacement.CONTEXTUAL: """- Add it in the most relevant section in the middle of the article
- It should feel helpful, not forced""",
}

_CTA_GUIDELINES = {
    CtaType.AWARENESS: """- Soft invitation: "learn more about...", "explore...", "discover..."
- Educational tone, not pushy""",
    CtaType.CONSIDERATION: """- Comparative: "see how...", "compare...", "check out..."
- Help the reader evaluate options""",
    CtaType.DECISION: """- Imperative action: "get started with...", "try...", "sign up for..."
- Clear benefit, direct call to act""",
}


def build_link_instruction(link: LinkSpec) -> str:
    """Instruction for injecting the mandatory link once."""
    return f"""You are a content strategist. This blog post is missing a required link that must be added naturally.

**TARGET LINK:**
- URL: {link.url}
- Anchor text: "{link.anchor}"
- CTA type: {link.cta_type.value}
- Placement: {link.placement.value}

**PLACEMENT GUIDELINES:**
{_PLACEMENT_GUIDELINES[link.placement]}

**CTA GUIDELINES:**
{_CTA_GUIDELINES[link.cta_type]}

**CRITICAL RULES:**
1. Add the link EXACTLY ONCE
2. Use the EXACT anchor text, exactly formatted as: {link.markdown}
3. Do not change headings or any other content"""
