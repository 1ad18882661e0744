"""Prompt templates for insight generation.

Contains system and user prompts for:
1. Book analysis - classification and core concept inventory
2. Content generation - the section stream
3. Gap analysis - completing missing structural elements
4. Audio script - a short narration of the finished guide
"""

from __future__ import annotations

import json
from typing import Optional

from insight_atlas.models import Book, BookAnalysis, Section, SectionType

# Max characters of book text sent to each stage
ANALYSIS_TEXT_LIMIT = 50_000
CONTENT_TEXT_LIMIT = 80_000
GAP_EXCERPT_LIMIT = 20_000
GAP_PROMPT_EXCERPT_LIMIT = 15_000

# Sections summarised for the narration prompt
AUDIO_SECTION_LIMIT = 10

TRUNCATION_MARKER = "\n\n[Text truncated...]"


def truncate_text(text: str, limit: int) -> str:
    """Cut `text` to `limit` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


# ==============================================================================
# Book Analysis Prompts
# ==============================================================================

ANALYSIS_SYSTEM_PROMPT = (
    "You are a book classification and analysis specialist. "
    "Analyze this book and return a JSON object with the structure specified."
)

ANALYSIS_OUTPUT_SHAPE = """{
  "bookMetadata": { "title": "", "author": "", "publicationYear": "", "wordCountEstimate": "" },
  "classification": { "primaryCategory": "", "secondaryCategories": [], "complexityLevel": "Accessible|Intermediate|Advanced", "frameworkType": "" },
  "structure": { "totalChapters": 0, "chapterTitles": [], "logicalGroupings": [] },
  "coreConcepts": [{ "conceptName": "", "chapterSource": "", "briefDescription": "", "recommendedVisual": "flowDiagram|comparisonMatrix|mindMap|timeline|hierarchy|radarChart" }],
  "crossReferences": { "psychologicalFrameworks": [], "philosophicalTraditions": [], "relatedPopularWorks": [] },
  "toneAnalysis": { "authorVoice": "", "recommendedGuideTone": "" }
}"""


def build_analysis_user_prompt(book: Book) -> str:
    """Build user prompt for the book analysis stage."""
    return f"""Analyze this book for the Insight Atlas premium guide generation:

**Title:** {book.title}
**Author:** {book.author or 'Unknown'}

**Book Text:**
{truncate_text(book.extracted_text, ANALYSIS_TEXT_LIMIT)}

Return a JSON object with:
{ANALYSIS_OUTPUT_SHAPE}"""


# ==============================================================================
# Content Generation Prompts
# ==============================================================================

CONTENT_SYSTEM_PROMPT = f"""You are an Insight Atlas master synthesizer creating premium book guides.

OUTPUT FORMAT: Emit each section as a separate JSON object on its own line:
{{"type": "section", "section": {{...}}}}
{{"type": "complete"}}

Each section object must have: type, title, content, and optionally visualType, visualData, metadata.

Section types: {", ".join(t.value for t in SectionType)}

Visual types and their visualData:
- flowDiagram: {{"nodes": ["Step 1", "Step 2"]}}
- comparisonMatrix: {{"headers": ["Before", "After"], "rows": [{{"label": "", "values": []}}]}}
- mindMap: {{"center": "", "branches": [{{"label": "", "subbranches": []}}]}}
- timeline: {{"events": [{{"date": "", "title": "", "description": ""}}]}}
- hierarchy: {{"root": "", "children": [{{"label": "", "children": []}}]}}
- radarChart: {{"dimensions": [{{"label": "", "value": 0}}]}}

REQUIREMENTS:
- 3-4 specific examples per concept with names and dialogue
- Action boxes with 3-5 imperative steps in metadata.actionSteps
- Insight Atlas Notes with Key Distinction + Practical Implication + Go Deeper
- Use warm, accessible tone with "you" and "we\""""


def build_content_user_prompt(book: Book, analysis: BookAnalysis) -> str:
    """Build user prompt for the content generation stage."""
    title = analysis.bookMetadata.title or book.title
    author = analysis.bookMetadata.author or book.author or "Unknown"
    return f"""Create a premium Insight Atlas guide for: **{title}** by **{author}**

BOOK ANALYSIS:
{json.dumps(analysis.model_dump(), indent=2, ensure_ascii=False)}

REQUIRED SECTIONS:
1. Quick Glance Summary - premise, framework, principles, bottom line, who should read
2. Foundational Narrative - origin story, author background, storytelling tone
3. Executive Summary
4. For each core concept: explanation, examples, Insight Atlas Note, visual framework, action box, exercise
5. Key Takeaways
6. Structure Map appendix

BOOK TEXT:
{truncate_text(book.extracted_text, CONTENT_TEXT_LIMIT)}

Generate all sections now, emitting each as a separate JSON line."""


# ==============================================================================
# Gap Analysis Prompts
# ==============================================================================

GAP_SYSTEM_PROMPT = (
    "You are a content completion specialist. "
    "Analyze the generated guide and fill any gaps. Return valid JSON only."
)

GAP_CHECKLIST = """1. QUICK GLANCE: premise, framework overview, core principles, bottom line, who should read
2. FOUNDATIONAL NARRATIVE: origin story or author background, cultural context
3. PRACTICAL EXAMPLES: 3-4 named, concrete examples per major concept
4. INSIGHT ATLAS NOTES: connection, Key Distinction, Practical Implication, Go Deeper
5. VISUAL FRAMEWORKS: at least one visual per major concept
6. ACTION BOXES: one per major concept, 3-5 imperative steps
7. EXERCISES: reflection prompts, self-assessment scales, scenario responses
8. STRUCTURE MAP: original chapters mapped to guide sections
9. TONE: warm, uses "you" and "we", rhetorical questions"""


def render_guide_markdown(sections: list[Section]) -> str:
    """Render sections as the markdown guide reviewed by gap analysis."""
    parts = []
    for section in sections:
        text = f"## {section.title}\n\n{section.content}"
        steps = section.action_steps()
        if steps:
            text += "\n\nAction Steps:\n" + "\n".join(steps)
        parts.append(text)
    return "\n\n---\n\n".join(parts)


def build_gap_user_prompt(book: Book, sections: list[Section], excerpts: Optional[str] = None) -> str:
    """Build user prompt for the gap analysis stage.

    Args:
        book: Source book.
        sections: Content generated so far.
        excerpts: Source excerpts; defaults to the head of the book text.
    """
    if excerpts is None:
        excerpts = book.extracted_text[:GAP_EXCERPT_LIMIT]
    return f"""# GAP ANALYSIS & CONTENT COMPLETION

## THE GENERATED GUIDE TO ANALYZE
{render_guide_markdown(sections)}

## THE SOURCE BOOK
Title: {book.title}
Author: {book.author or 'Unknown'}

## KEY EXCERPTS FROM SOURCE
{excerpts[:GAP_PROMPT_EXCERPT_LIMIT]}

---

## CHECK ALL 9 DIMENSIONS
{GAP_CHECKLIST}

## OUTPUT FORMAT

Return a JSON object with this structure:
{{
  "gapsFound": ["List of all gaps identified"],
  "generatedContent": [
    {{"type": "<section type>", "title": "", "content": "", "visualType": "", "visualData": {{}}, "metadata": {{}}}}
  ],
  "completenessScore": 0-100
}}

Generate the gap analysis and fill ALL identified gaps now. Return ONLY valid JSON."""


# ==============================================================================
# Audio Script Prompts
# ==============================================================================

AUDIO_SYSTEM_PROMPT = """You are a skilled narrator creating an engaging audio summary of a book insight guide.
Your narration should:
- Sound natural and conversational when read aloud
- Convey the actual insights and wisdom, not describe visual elements
- Include brief pauses (indicated by "...")
- Be approximately 500-750 words
- Start with an engaging hook
- End with a powerful takeaway"""


def summarize_for_audio(sections: list[Section]) -> str:
    """Condense the first sections into narration source material."""
    parts = []
    for section in sections[:AUDIO_SECTION_LIMIT]:
        if section.type == SectionType.quickGlance.value:
            parts.append(f"Quick Summary: {section.content[:500]}")
        elif section.type == SectionType.foundationalNarrative.value:
            parts.append(f"Origin Story: {section.content[:500]}")
        elif section.type == SectionType.conceptExplanation.value:
            parts.append(f"Key Concept - {section.title}: {section.content[:300]}")
        elif section.type == SectionType.actionBox.value and section.action_steps():
            parts.append(f"Action Steps: {'. '.join(section.action_steps()[:3])}")
    return "\n\n".join(parts)


def build_audio_user_prompt(book: Book, guide_title: str, sections: list[Section], themes: list[str]) -> str:
    """Build user prompt for the narration script."""
    return f"""Create an engaging audio narration for this insight guide:

Book: "{book.title}" by {book.author or 'Unknown'}
Guide Title: {guide_title}

Key Themes: {", ".join(themes)}

Content Summary:
{summarize_for_audio(sections)}

Generate a compelling audio narration."""
