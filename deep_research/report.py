"""Report assembly and Markdown export."""

import re
from typing import List, Sequence

from .models import ResearchResult, Source

_WHITESPACE = re.compile(r"\s")


def assemble_report(title: str, chapters: Sequence[str]) -> str:
    """Title heading followed by the chapter bodies, blank-line separated."""
    return f"# {title}\n\n" + "\n\n".join(chapters)


def count_words(text: str) -> int:
    """Non-whitespace character count.

    Reports may be written in scripts without spaces between words, so
    the count ignores word boundaries entirely.
    """
    return len(_WHITESPACE.sub("", text))


def format_references(sources: Sequence[Source]) -> str:
    if not sources:
        return ""
    lines: List[str] = ["## References", ""]
    lines.extend(f"[{i}] {s.title}: {s.uri}" for i, s in enumerate(sources, start=1))
    return "\n".join(lines)


def to_markdown(result: ResearchResult) -> str:
    """Full report plus the numbered reference list."""
    references = format_references(result.sources)
    if not references:
        return result.full_report
    return result.full_report.rstrip() + "\n\n" + references + "\n"
