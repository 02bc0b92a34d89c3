"""Research orchestrator.

Drives one run through its states:

    idle -> planning -> outline_ready -> researching -> complete
    planning | researching -> error
    researching -> cancelled

A ``ResearchService`` owns exactly one run. Its provider, search client,
citation registry, event bus and cancellation token are all built for
that run, so nothing leaks from one run into the next.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from .agents import generate_outline
from .citations import CitationRegistry
from .config import AppConfig, get_config
from .errors import ResearchCancelled, describe_error
from .events import EventBus
from .graph import CancellationToken, RunContext, build_graph, recursion_limit
from .models import LogType, Outline, ProviderSettings, ResearchConfig, ResearchLog, ResearchResult
from .providers import LLMProvider, get_provider
from .search import SearchClient, select_search_client

logger = logging.getLogger(__name__)

Approver = Callable[[Outline], Awaitable[Outline]]


class RunState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    OUTLINE_READY = "outline_ready"
    RESEARCHING = "researching"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class ResearchService:
    def __init__(
        self,
        settings: ProviderSettings,
        config: Optional[AppConfig] = None,
        provider: Optional[LLMProvider] = None,
        search_client: Optional[SearchClient] = None,
        registry_factory: Callable[[], CitationRegistry] = CitationRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.config = config or get_config()
        self.bus = EventBus()
        self.token = CancellationToken()
        self._provider = provider
        self._search = search_client
        self._registry_factory = registry_factory
        self._clock = clock

        self.state = RunState.IDLE
        self.error_message: Optional[str] = None
        self.outline: Optional[Outline] = None
        self.query: str = ""
        self.result: Optional[ResearchResult] = None
        self._error: Optional[BaseException] = None
        self._outline_tokens = 0

    @property
    def logs(self) -> List[ResearchLog]:
        return list(self.bus.history)

    @property
    def model(self) -> str:
        return self.settings.resolved_model()

    @property
    def outline_tokens(self) -> int:
        return self._outline_tokens

    def cancel(self) -> None:
        """Request cancellation; honoured at the next chapter or search checkpoint."""
        self.token.cancel()

    # ── setup ────────────────────────────────────────────────

    def _ensure_clients(self) -> None:
        if self._provider is None:
            self._provider = get_provider(
                self.settings,
                temperature=self.config.temperature,
                timeout=self.config.request_timeout,
            )
        if self._search is None:
            self._search = select_search_client(
                self.settings,
                self._provider,
                language=self.config.language,
                timeout=self.config.request_timeout,
            )

    def _fail(self, exc: BaseException, phase: str) -> ResearchLog:
        self._error = exc
        if isinstance(exc, ResearchCancelled):
            self.state = RunState.CANCELLED
            self.error_message = str(exc)
            logger.info("Research cancelled during %s", phase)
        else:
            self.state = RunState.ERROR
            self.error_message = describe_error(exc)
            logger.error("Research failed during %s: %s", phase, exc, exc_info=exc)
        return self.bus.emit(LogType.ERROR, self.error_message, details={"phase": phase})

    # ── planning ─────────────────────────────────────────────

    async def _plan(self, research_config: ResearchConfig) -> Optional[Outline]:
        self.state = RunState.PLANNING
        self.error_message = None
        self.result = None
        self._outline_tokens = 0
        self.query = research_config.query
        try:
            self._ensure_clients()
            self.bus.emit(
                LogType.PLAN,
                "Deep research protocol started",
                details=[
                    f"Task: {research_config.query}",
                    f"Engine: {self.settings.provider.value.upper()} / {self.model}",
                    f"Search: {self._search.name}",
                ],
            )
            self.bus.emit(LogType.INFO, "Building the research outline...")
            outline, usage = await generate_outline(
                self._provider,
                research_config.query,
                research_config.depth,
                self.model,
                self._clock().strftime("%Y-%m-%d"),
                language=self.config.language,
            )
        except Exception as exc:
            self._fail(exc, "planning")
            return None

        self.outline = outline
        self._outline_tokens = usage
        self.state = RunState.OUTLINE_READY
        self.bus.emit(
            LogType.PLAN,
            f"Outline ready: {outline.title}",
            details=outline.chapters,
            token_count=usage,
        )
        return outline

    async def plan(self, research_config: ResearchConfig) -> Outline:
        """Generate the outline; raises if the run ends in the error state."""
        outline = await self._plan(research_config)
        if outline is None:
            raise self._error
        return outline

    # ── research loop ────────────────────────────────────────

    async def _research(self, outline: Outline, query: Optional[str] = None) -> Optional[ResearchResult]:
        self.outline = outline
        if query:
            self.query = query
        self.state = RunState.RESEARCHING
        self.error_message = None
        now = self._clock()
        try:
            self._ensure_clients()
            ctx = RunContext(
                provider=self._provider,
                search=self._search,
                registry=self._registry_factory(),
                bus=self.bus,
                token=self.token,
                model=self.model,
                current_date=now.strftime("%Y-%m-%d"),
                year=now.year,
                language=self.config.language,
                search_delay=self.config.search_delay,
                repair_citations=self.config.repair_citations,
            )
            graph = build_graph(ctx).compile()
            final = await graph.ainvoke(
                {
                    "topic": self.query or outline.title,
                    "outline": outline,
                    "chapter_index": 0,
                    "chapters": [],
                    "recent_findings": [],
                    "total_tokens": self._outline_tokens,
                    "total_search_queries": 0,
                },
                config={"recursion_limit": recursion_limit(len(outline.chapters))},
            )
        except Exception as exc:
            self._fail(exc, "research")
            return None

        result = ResearchResult(
            title=outline.title,
            query=self.query,
            chapters=final.get("chapters", []),
            full_report=final["report"],
            sources=ctx.registry.sources(),
            logs=self.logs,
            total_tokens=final.get("total_tokens", 0),
            total_search_queries=final.get("total_search_queries", 0),
            word_count=final["word_count"],
        )
        self.result = result
        self.state = RunState.COMPLETE
        self.bus.emit(
            LogType.INFO,
            "Research complete. Rendering the final report.",
            details={"result": result.to_json_dict()},
        )
        return result

    async def _stream(self, work: Awaitable) -> AsyncIterator[ResearchLog]:
        """Run *work* and yield every log it emits, as it is emitted."""
        queue: asyncio.Queue = asyncio.Queue()
        done = object()

        async def _drive():
            try:
                await work
            finally:
                queue.put_nowait(done)

        self.bus.add_listener(queue.put_nowait)
        task = asyncio.create_task(_drive())
        try:
            while True:
                entry = await queue.get()
                if entry is done:
                    break
                yield entry
            await task
        finally:
            self.bus.remove_listener(queue.put_nowait)
            if not task.done():
                self.cancel()
                task.cancel()

    async def research(
        self,
        outline: Outline,
        query: Optional[str] = None,
    ) -> AsyncIterator[ResearchLog]:
        """Research every chapter of *outline* and stream the run's logs.

        Accepts any outline, including one edited after ``plan``. *query* names
        the topic when the outline was not planned by this service. The last
        log carries the finished ``ResearchResult`` under ``details["result"]``,
        or is an ``error`` log when the run failed or was cancelled.
        """
        async for entry in self._stream(self._research(outline, query)):
            yield entry

    async def run(
        self,
        research_config: ResearchConfig,
        approve: Optional[Approver] = None,
    ) -> AsyncIterator[ResearchLog]:
        """Plan, let *approve* review the outline (auto-approve if None), then research."""
        async for entry in self._stream(self._plan(research_config)):
            yield entry
        if self.state != RunState.OUTLINE_READY:
            return

        outline = self.outline
        if approve is not None:
            try:
                outline = await approve(outline)
            except Exception as exc:
                yield self._fail(exc, "approval")
                return
        async for entry in self.research(outline):
            yield entry
