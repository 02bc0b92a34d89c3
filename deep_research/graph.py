"""LangGraph state graph for the chapter research loop.

One pass per chapter, strictly in outline order:

    queries -> search -> write -> (next chapter | assemble)

Every node awaits its remote calls before returning, so the citation
registry is only ever touched by one coroutine at a time.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List

from langgraph.graph import END, START, StateGraph

from .agents import audit_citations, generate_chapter_queries, repair_citations, write_chapter
from .citations import CitationRegistry
from .config import FINDINGS_TRUNCATE
from .errors import ResearchCancelled
from .events import EventBus
from .models import ChapterFinding, LogType, ResearchState
from .providers import LLMProvider
from .report import assemble_report, count_words
from .search import SearchClient

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation, polled at chapter entry and before each search."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ResearchCancelled()


@dataclass
class RunContext:
    """Everything the loop needs besides its state; fixed for one run."""

    provider: LLMProvider
    search: SearchClient
    registry: CitationRegistry
    bus: EventBus
    token: CancellationToken
    model: str
    current_date: str
    year: int
    language: str = "English"
    search_delay: float = 0.3
    repair_citations: bool = False


def recursion_limit(chapter_count: int) -> int:
    """Graph steps needed for *chapter_count* chapters, with headroom."""
    return 3 * chapter_count + 10


def build_graph(ctx: RunContext) -> StateGraph:
    graph = StateGraph(ResearchState)

    def _chapter_title(state: ResearchState) -> str:
        return state["outline"].chapters[state["chapter_index"]]

    # ── nodes ────────────────────────────────────────────────

    async def queries_node(state: ResearchState) -> Dict:
        ctx.token.raise_if_cancelled()
        index = state["chapter_index"]
        total = len(state["outline"].chapters)
        chapter = _chapter_title(state)
        ctx.bus.emit(LogType.INFO, f"Researching chapter {index + 1}/{total}: {chapter}")

        queries, usage = await generate_chapter_queries(
            ctx.provider,
            state["topic"],
            chapter,
            state.get("recent_findings", []),
            ctx.model,
            ctx.year,
        )
        ctx.bus.emit(
            LogType.PLAN,
            f"Search plan for '{chapter}': {len(queries)} queries",
            details=queries,
            token_count=usage,
        )
        return {
            "queries": queries,
            "findings": [],
            "chapter_citations": [],
            "total_tokens": state.get("total_tokens", 0) + usage,
        }

    async def search_node(state: ResearchState) -> Dict:
        findings: List[ChapterFinding] = []
        citations: List[int] = []
        tokens = state.get("total_tokens", 0)
        searches = state.get("total_search_queries", 0)

        for query in state["queries"]:
            ctx.token.raise_if_cancelled()
            ctx.bus.emit(LogType.SEARCH, f"Searching: {query}")

            if ctx.search_delay > 0:
                await asyncio.sleep(ctx.search_delay)
            result = await ctx.search.search(query, ctx.model)
            searches += 1
            tokens += result.usage

            indices = ctx.registry.register_all(result.sources)
            citations.extend(indices)
            if result.summary:
                findings.append(ChapterFinding(query=query, summary=result.summary, citations=indices))

            ctx.bus.emit(
                LogType.ANALYSIS,
                f"Found {len(result.sources)} sources for '{query}'",
                details={
                    "query": query,
                    "sources": [
                        {"index": i, "title": s.title, "uri": s.uri}
                        for i, s in zip(indices, result.sources)
                    ],
                },
                token_count=result.usage,
            )

        return {
            "findings": findings,
            "chapter_citations": list(dict.fromkeys(citations)),
            "total_tokens": tokens,
            "total_search_queries": searches,
        }

    async def write_node(state: ResearchState) -> Dict:
        index = state["chapter_index"]
        chapter = _chapter_title(state)
        allowed = state.get("chapter_citations", [])
        known = ctx.registry.sources()
        references = [f"[{i}] {known[i - 1].title}" for i in allowed]

        ctx.bus.emit(LogType.WRITING, f"Writing chapter: {chapter}")
        generation = await write_chapter(
            ctx.provider,
            state["topic"],
            chapter,
            state.get("findings", []),
            references,
            ctx.model,
            ctx.current_date,
            language=ctx.language,
        )
        content = generation.text

        invalid = audit_citations(content, allowed)
        if invalid:
            logger.warning("Chapter '%s' cites unknown sources %s (allowed %s)", chapter, invalid, allowed)
            if ctx.repair_citations:
                content = repair_citations(content, allowed)

        ctx.bus.emit(
            LogType.INFO,
            f"Chapter {index + 1} complete",
            details={
                "chapter": index + 1,
                "title": chapter,
                "partialSection": content,
                "invalidCitations": invalid,
            },
            token_count=generation.usage,
        )

        summary = "\n".join(f.summary for f in state.get("findings", []))
        return {
            "chapters": state.get("chapters", []) + [content],
            "recent_findings": state.get("recent_findings", []) + [summary[:FINDINGS_TRUNCATE]],
            "chapter_index": index + 1,
            "total_tokens": state.get("total_tokens", 0) + generation.usage,
        }

    async def assemble_node(state: ResearchState) -> Dict:
        report = assemble_report(state["outline"].title, state.get("chapters", []))
        return {"report": report, "word_count": count_words(report)}

    def next_step(state: ResearchState) -> str:
        if state.get("chapter_index", 0) < len(state["outline"].chapters):
            return "queries"
        return "assemble"

    # ── wiring ───────────────────────────────────────────────

    graph.add_node("queries", queries_node)
    graph.add_node("search", search_node)
    graph.add_node("write", write_node)
    graph.add_node("assemble", assemble_node)

    routes = {"queries": "queries", "assemble": "assemble"}
    graph.add_conditional_edges(START, next_step, routes)
    graph.add_edge("queries", "search")
    graph.add_edge("search", "write")
    graph.add_conditional_edges("write", next_step, routes)
    graph.add_edge("assemble", END)

    return graph
