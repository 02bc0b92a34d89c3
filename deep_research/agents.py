"""Agent functions for each pipeline stage.

Every agent receives the run's provider explicitly and returns its text
together with the token usage of the call. Structured outputs (outline,
queries) are decoded against a schema and fall back to deterministic
defaults when the model's answer cannot be decoded. Provider failures are
not caught here.
"""

import json
import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from langsmith import traceable
from pydantic import ValidationError

from .config import FINDINGS_WINDOW, QUERIES_PER_CHAPTER, chapter_count
from .errors import ParseError
from .models import QUERY_LIST, ChapterFinding, Generation, Outline, OutlinePayload
from .prompts import (
    OUTLINE_PROMPT,
    OUTLINE_SYSTEM,
    QUERY_PROMPT,
    QUERY_SYSTEM,
    WRITER_PROMPT,
    WRITER_SYSTEM,
)
from .providers import LLMProvider

logger = logging.getLogger(__name__)

FALLBACK_CHAPTERS = ["Background", "Core Analysis", "Conclusion"]


# ── structured output ───────────────────────────────────────────────

_FENCE = re.compile(r"^\s*```[\w-]*[ \t]*\n?(.*?)\n?[ \t]*```\s*$", re.DOTALL)


def _strip_code_fence(text: str) -> str:
    match = _FENCE.match(text)
    return match.group(1).strip() if match else text.strip()


def _extract_json(text: str) -> str:
    """Outermost ``{...}`` or ``[...]`` span, whichever opens first."""
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, end))
    if not spans:
        return ""
    start, end = min(spans)
    return text[start : end + 1]


def load_json(text: str) -> Any:
    """Parse a model's JSON answer, tolerating code fences and surrounding prose."""
    content = _strip_code_fence(text or "")
    if not content:
        raise ParseError("Empty response where JSON was expected.")
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        extracted = _extract_json(content)
        if not extracted:
            raise ParseError(f"No JSON found in response: {content[:120]!r}") from None
        try:
            return json.loads(extracted)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Malformed JSON in response: {exc}") from exc


# ── outline ─────────────────────────────────────────────────────────

@traceable(name="generate_outline")
async def generate_outline(
    provider: LLMProvider,
    topic: str,
    depth: int,
    model: str,
    current_date: str,
    language: str = "English",
) -> Tuple[Outline, int]:
    prompt = OUTLINE_PROMPT.format(
        topic=topic,
        chapter_count=chapter_count(depth),
        language=language,
        current_date=current_date,
    )
    generation = await provider.generate(prompt, model, system_instruction=OUTLINE_SYSTEM, json_mode=True)

    try:
        payload = load_json(generation.text)
    except ParseError as exc:
        logger.warning("Outline response was not JSON, using fallback outline: %s", exc)
        return Outline(title=topic, chapters=list(FALLBACK_CHAPTERS)), 0

    title = topic
    if isinstance(payload, dict) and isinstance(payload.get("title"), str) and payload["title"].strip():
        title = payload["title"].strip()

    try:
        parsed = OutlinePayload.model_validate(payload)
    except ValidationError:
        logger.warning("Outline response has no chapter list, using fallback chapters")
        return Outline(title=title, chapters=list(FALLBACK_CHAPTERS)), 0

    chapters = [c.strip() for c in parsed.chapters if c.strip()]
    return Outline(title=title, chapters=chapters), generation.usage


# ── chapter queries ─────────────────────────────────────────────────

def fallback_queries(topic: str, chapter: str) -> List[str]:
    return [f"{topic} {chapter} data", f"{topic} statistics"]


def _query_list(payload: Any) -> Any:
    if isinstance(payload, dict):
        if "queries" in payload:
            return payload["queries"]
        lists = [v for v in payload.values() if isinstance(v, list)]
        if lists:
            return lists[0]
    return payload


@traceable(name="generate_chapter_queries")
async def generate_chapter_queries(
    provider: LLMProvider,
    topic: str,
    chapter: str,
    recent_findings: Sequence[str],
    model: str,
    year: int,
) -> Tuple[List[str], int]:
    window = [f for f in recent_findings[-FINDINGS_WINDOW:] if f]
    prompt = QUERY_PROMPT.format(
        topic=topic,
        chapter=chapter,
        recent_findings="; ".join(window) or "none yet",
        query_count=QUERIES_PER_CHAPTER,
        year=year,
        previous_year=year - 1,
    )
    generation = await provider.generate(prompt, model, system_instruction=QUERY_SYSTEM, json_mode=True)

    try:
        queries = QUERY_LIST.validate_python(_query_list(load_json(generation.text)))
    except (ParseError, ValidationError) as exc:
        logger.warning("Query response for '%s' not usable, using fallback queries: %s", chapter, exc)
        return fallback_queries(topic, chapter), generation.usage

    queries = [q.strip() for q in queries if q.strip()][:QUERIES_PER_CHAPTER]
    if not queries:
        logger.warning("Query response for '%s' was empty, using fallback queries", chapter)
        return fallback_queries(topic, chapter), generation.usage
    return queries, generation.usage


# ── chapter writer ──────────────────────────────────────────────────

@traceable(name="write_chapter")
async def write_chapter(
    provider: LLMProvider,
    topic: str,
    chapter_title: str,
    findings: Sequence[ChapterFinding],
    references: Sequence[str],
    model: str,
    current_date: str,
    language: str = "English",
) -> Generation:
    """Draft one chapter. The model's text is returned verbatim."""
    prompt = WRITER_PROMPT.format(
        topic=topic,
        chapter_title=chapter_title,
        current_date=current_date,
        findings="\n\n".join(f.render() for f in findings) or "(none)",
        references="\n".join(references) or "(none)",
        language=language,
    )
    return await provider.generate(prompt, model, system_instruction=WRITER_SYSTEM)


# ── citation audit ──────────────────────────────────────────────────

_CODE_BLOCK = re.compile(r"(```.*?```)", re.DOTALL)
_MARKER = re.compile(r"\[(\d+(?:\s*[,\-–]\s*\d+)*)\](?!\()")
_RANGE = re.compile(r"^(\d+)\s*[\-–]\s*(\d+)$")

# bracketed numbers above this are years or figures, never source indices
MAX_CITATION_INDEX = 999


def _marker_numbers(body: str, ceiling: int) -> Optional[List[int]]:
    """Numbers cited by one bracket body, or None when it is not a citation.

    A range only counts when it lies within 1..*ceiling*, so ``[2019-2021]``
    stays prose and no range expands past the chapter's own sources.
    """
    numbers: List[int] = []
    for part in body.split(","):
        part = part.strip()
        rng = _RANGE.match(part)
        if rng:
            lo, hi = int(rng.group(1)), int(rng.group(2))
            if not 1 <= lo <= hi <= ceiling:
                return None
            numbers.extend(range(lo, hi + 1))
        elif part.isdigit():
            number = int(part)
            if number > MAX_CITATION_INDEX:
                return None
            numbers.append(number)
        else:
            return None
    return numbers


def _prose_segments(content: str) -> List[Tuple[bool, str]]:
    """Split into (is_code, text) pieces so fenced blocks are left alone."""
    return [(i % 2 == 1, piece) for i, piece in enumerate(_CODE_BLOCK.split(content))]


def audit_citations(content: str, allowed: Sequence[int]) -> List[int]:
    """Citation numbers used in *content* that are not in *allowed*."""
    allowed_set = set(allowed)
    ceiling = max(allowed_set, default=0)
    invalid = set()
    for is_code, piece in _prose_segments(content):
        if is_code:
            continue
        for match in _MARKER.finditer(piece):
            numbers = _marker_numbers(match.group(1), ceiling) or []
            invalid.update(n for n in numbers if n not in allowed_set)
    return sorted(invalid)


def repair_citations(content: str, allowed: Sequence[int]) -> str:
    """Drop citation numbers outside *allowed*; markers left empty disappear."""
    allowed_set = set(allowed)
    ceiling = max(allowed_set, default=0)

    def _fix(match: "re.Match[str]") -> str:
        numbers = _marker_numbers(match.group(1), ceiling)
        if numbers is None or all(n in allowed_set for n in numbers):
            return match.group(0)
        kept = [str(n) for n in numbers if n in allowed_set]
        return f"[{', '.join(kept)}]" if kept else ""

    return "".join(
        piece if is_code else _MARKER.sub(_fix, piece)
        for is_code, piece in _prose_segments(content)
    )
