"""Resilient parsing of model output.

Model responses are frequently wrapped in markdown fences, cut off at the
token limit, or carry small syntax slips (trailing commas, unclosed
strings). Parsing here never raises for malformed input: a best-effort
repair is attempted, and callers receive a safe default otherwise.

Repair is heuristic. A repaired document is syntactically valid JSON but
may not be exactly what the model intended.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from insight_atlas.models import BookAnalysis, GapAnalysisResult, Section

from .errors import ParseError
from .section_normalizer import section_from_raw, sections_from_raw

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_OPEN_FENCE_RE = re.compile(r"^\s*```(?:json)?[^\n]*\n?")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_UNESCAPED_QUOTE_RE = re.compile(r'(?<!\\)"')
_VALUE_OPENER_RE = re.compile(r"[:\[,]\s*$")
_DANGLING_KEY_RE = re.compile(r',\s*"[^"]*"\s*:\s*$')
_DANGLING_PARTIAL_VALUE_RE = re.compile(r',\s*"[^"]*"\s*:\s*"[^"]*$')


def strip_code_fence(text: str) -> str:
    """Return the body of the first markdown code fence, if any.

    A fence that was opened but never closed (truncated output) is
    stripped too.
    """
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return _OPEN_FENCE_RE.sub("", text, count=1).strip()


def repair_json(text: str) -> str:
    """Apply the repair heuristics to a JSON-ish string.

    Steps, in order:
    1. Remove trailing commas before `}` or `]`.
    2. Close an unterminated string when the last quote opens a value.
    3. Drop a dangling `, "key":` or `, "key": "partial` tail.
    4. Truncate to the last `}`/`]` when the text ends mid-token
       (anything other than a bracket or a closed string).
    5. Append missing `}`.
    6. Insert missing `]` before the final `}` (or append them).
    """
    text = _TRAILING_COMMA_RE.sub(r"\1", text)

    quotes = list(_UNESCAPED_QUOTE_RE.finditer(text))
    if len(quotes) % 2:
        last_quote = quotes[-1].start()
        if last_quote > 0 and _VALUE_OPENER_RE.search(text[max(0, last_quote - 10):last_quote]):
            text = text.rstrip() + '"'

    text = _DANGLING_KEY_RE.sub("", text.rstrip())
    text = _DANGLING_PARTIAL_VALUE_RE.sub("", text)

    stripped = text.rstrip()
    if not stripped.endswith(("}", "]", "\"")):
        last_complete = max(text.rfind("}"), text.rfind("]"))
        if last_complete > 0:
            text = text[: last_complete + 1]

    missing_braces = text.count("{") - text.count("}")
    if missing_braces > 0:
        text += "}" * missing_braces

    missing_brackets = text.count("[") - text.count("]")
    if missing_brackets > 0:
        insert_at = text.rfind("}")
        if insert_at > 0:
            text = text[:insert_at] + "]" * missing_brackets + text[insert_at:]
        else:
            text += "]" * missing_brackets

    # Closing may have exposed a comma in front of the new bracket
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError, RecursionError) as e:
        # Deep nesting exhausts the decoder's recursion limit
        raise ParseError(str(e)) from e


def parse_structured(raw_text: Optional[str]) -> Any:
    """Parse model output as JSON, repairing it if needed.

    Returns:
        The parsed value, or None when the text cannot be read as JSON.
    """
    if not raw_text or not raw_text.strip():
        return None

    text = strip_code_fence(raw_text)
    try:
        return _loads(text)
    except ParseError:
        logger.debug("Initial JSON parse failed, attempting repair")

    # Prose before the payload: start at the first object or array
    start_candidates = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    if start_candidates:
        text = text[min(start_candidates):]

    try:
        value = _loads(repair_json(text))
    except ParseError as e:
        logger.warning(f"JSON repair failed: {e}")
        return None

    logger.info("JSON repair successful")
    return value


def parse_gap_analysis(raw_text: Optional[str]) -> GapAnalysisResult:
    """Parse gap-analysis output.

    Returns:
        The result, or an empty result with completeness 100 when the
        output is unusable.
    """
    data = parse_structured(raw_text)
    if not isinstance(data, dict):
        if data is not None:
            logger.warning("Gap analysis output is not a JSON object, using empty result")
        return GapAnalysisResult.safe_default()

    gaps = data.get("gapsFound")
    score = data.get("completenessScore")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        score = 0
    try:
        return GapAnalysisResult(
            gapsFound=[str(g) for g in gaps] if isinstance(gaps, list) else [],
            generatedContent=sections_from_raw(data.get("generatedContent")),
            completenessScore=max(0, min(100, int(score))),
        )
    except ValidationError as e:
        logger.warning(f"Gap analysis output failed validation: {e}")
        return GapAnalysisResult.safe_default()


def _sections_from_lines(text: str) -> list[Section]:
    """Sections from newline-delimited `{"type": "section", ...}` records."""
    sections: list[Section] = []
    for line in text.splitlines():
        line = line.strip()
        if not (line.startswith("{") and line.endswith("}")):
            continue
        try:
            record = _loads(line)
        except ParseError:
            continue
        if isinstance(record, dict) and record.get("type") == "section":
            section = section_from_raw(record.get("section"), len(sections) + 1)
            if section is not None:
                sections.append(section)
    return sections


def parse_section_stream(raw_text: Optional[str]) -> list[Section]:
    """Parse content-stage output into sections.

    Accepts newline-delimited section records, a single object with a
    `sections` array, or a bare array of section objects.
    """
    if not raw_text or not raw_text.strip():
        return []

    sections = _sections_from_lines(raw_text)
    if sections:
        return sections

    data = parse_structured(raw_text)
    if isinstance(data, dict):
        if isinstance(data.get("sections"), list):
            return sections_from_raw(data["sections"])
        if data.get("type") == "section":
            section = section_from_raw(data.get("section"), 1)
            return [section] if section else []
    if isinstance(data, list):
        return sections_from_raw(data)

    logger.warning("Content output contained no parseable sections")
    return []


def parse_book_analysis(raw_text: Optional[str]) -> BookAnalysis:
    """Parse analysis-stage output; unusable output yields an empty analysis."""
    data = parse_structured(raw_text)
    if not isinstance(data, dict):
        logger.warning("Book analysis output unusable, continuing with empty analysis")
        return BookAnalysis()
    try:
        return BookAnalysis.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Book analysis failed validation, keeping recognised fields: {e}")

    # Salvage field by field
    salvaged = {}
    for name in BookAnalysis.model_fields:
        if name not in data:
            continue
        try:
            BookAnalysis.model_validate({name: data[name]})
        except ValidationError:
            continue
        salvaged[name] = data[name]
    return BookAnalysis.model_validate(salvaged)
