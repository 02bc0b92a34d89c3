"""FastAPI server with SSE for real-time research streaming.

Each request builds its own ``ResearchService`` from the environment's
provider settings, overridden by any ``settings`` sent with the request.
"""

import json
import logging
import os
import uuid
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from .config import AVAILABLE_MODELS, get_config
from .errors import ConfigurationError, describe_error
from .history import HistoryStore
from .models import Depth, Outline, ProviderSettings, ResearchConfig, ResearchLog
from .orchestrator import ResearchService, RunState
from .persistence import persist_result
from .providers import list_providers
from .report import to_markdown

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

app = FastAPI(
    title="Deep Research API",
    description="Chapter-by-chapter research reports with live progress streaming",
    version=API_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        os.environ.get("FRONTEND_URL", "http://localhost:3000"),
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Run-Id"],
)

# ── in-memory store ─────────────────────────────────────────────────
active_runs: Dict[str, ResearchService] = {}


# ── request models ──────────────────────────────────────────────────

class OutlineRequest(BaseModel):
    query: str
    depth: Depth = Depth.STANDARD
    breadth: int = 3
    settings: Optional[Dict[str, Any]] = None


class StreamRequest(BaseModel):
    config: Dict[str, Any]
    outline: Optional[Outline] = None
    settings: Optional[Dict[str, Any]] = None


# ── dependencies ────────────────────────────────────────────────────

ServiceFactory = Callable[[ProviderSettings], ResearchService]


def get_history() -> HistoryStore:
    cfg = get_config()
    return HistoryStore(cfg.history_path, limit=cfg.history_limit)


def get_service_factory() -> ServiceFactory:
    return ResearchService


# ── helpers ──────────────────────────────────────────────────────────

def serialize_event(entry: ResearchLog) -> str:
    return f"data: {json.dumps(entry.to_json_dict(), ensure_ascii=False)}\n\n"


def _settings(overrides: Optional[Dict[str, Any]]) -> ProviderSettings:
    try:
        return get_config().provider_settings(overrides)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _research_config(payload: Dict[str, Any]) -> ResearchConfig:
    try:
        return ResearchConfig.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False))


def _save(history: HistoryStore, service: ResearchService) -> None:
    result = service.result
    try:
        history.save(result)
    except OSError:
        logger.exception("Could not save research '%s' to history", result.title)
    persist_result(result)


# ── SSE generator ────────────────────────────────────────────────────

async def research_stream_generator(
    run_id: str,
    service: ResearchService,
    research_config: ResearchConfig,
    outline: Optional[Outline],
    history: HistoryStore,
) -> AsyncIterator[str]:
    saved = False
    try:
        if outline is None:
            stream = service.run(research_config)
        else:
            stream = service.research(outline, query=research_config.query)
        async for entry in stream:
            if not saved and service.state == RunState.COMPLETE and service.result is not None:
                _save(history, service)
                saved = True
            yield serialize_event(entry)
        logger.info("Run %s finished in state %s", run_id, service.state.value)
    finally:
        active_runs.pop(run_id, None)


# ── routes ───────────────────────────────────────────────────────────

@app.post("/api/outline")
async def create_outline(
    request: OutlineRequest,
    factory: ServiceFactory = Depends(get_service_factory),
):
    research_config = _research_config(
        {"query": request.query, "depth": request.depth, "breadth": request.breadth}
    )
    service = factory(_settings(request.settings))
    try:
        outline = await service.plan(research_config)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        raise HTTPException(status_code=502, detail=describe_error(exc))
    return {**outline.to_json_dict(), "usage": service.outline_tokens}


@app.post("/api/research/stream")
async def stream_research(
    request: StreamRequest,
    factory: ServiceFactory = Depends(get_service_factory),
    history: HistoryStore = Depends(get_history),
):
    research_config = _research_config(request.config)
    service = factory(_settings(request.settings))
    run_id = uuid.uuid4().hex
    active_runs[run_id] = service
    return StreamingResponse(
        research_stream_generator(run_id, service, research_config, request.outline, history),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Run-Id": run_id,
        },
    )


@app.post("/api/research/{run_id}/cancel")
async def cancel_research(run_id: str):
    service = active_runs.get(run_id)
    if not service:
        raise HTTPException(status_code=404, detail="Research run not found")
    service.cancel()
    return {"run_id": run_id, "status": "cancelling"}


@app.get("/api/history")
async def list_history(history: HistoryStore = Depends(get_history)) -> List[Dict[str, Any]]:
    return [r.to_json_dict() for r in history.load()]


@app.get("/api/history/{result_id}")
async def get_history_entry(result_id: str, history: HistoryStore = Depends(get_history)):
    result = history.get(result_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Research result not found")
    return result.to_json_dict()


@app.get("/api/history/{result_id}/markdown", response_class=PlainTextResponse)
async def export_markdown(result_id: str, history: HistoryStore = Depends(get_history)):
    result = history.get(result_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Research result not found")
    return PlainTextResponse(to_markdown(result), media_type="text/markdown; charset=utf-8")


@app.delete("/api/history/{result_id}")
async def delete_history_entry(result_id: str, history: HistoryStore = Depends(get_history)):
    if not history.delete(result_id):
        raise HTTPException(status_code=404, detail="Research result not found")
    return {"id": result_id, "deleted": True}


@app.delete("/api/history")
async def clear_history(history: HistoryStore = Depends(get_history)):
    history.clear()
    return {"cleared": True}


@app.get("/api/config")
async def get_app_config():
    """Return current provider configuration (no secrets)."""
    cfg = get_config()
    return {
        "provider": cfg.provider,
        "model": cfg.model,
        "base_url": cfg.base_url,
        "language": cfg.language,
        "has_api_key": bool(cfg.api_key),
        "has_search_key": bool(cfg.search_api_key),
        "available_providers": list_providers(),
        "available_models": AVAILABLE_MODELS,
        "history_limit": cfg.history_limit,
        "citation_repair": cfg.repair_citations,
    }


@app.get("/api/health")
async def health_check():
    cfg = get_config()
    return {
        "status": "healthy",
        "version": API_VERSION,
        "provider": cfg.provider,
        "model": cfg.model,
        "active_runs": len(active_runs),
        "env_check": {
            "gemini_key": bool(os.environ.get("GEMINI_API_KEY")),
            "openai_key": bool(os.environ.get("OPENAI_API_KEY")),
            "llm_key": bool(os.environ.get("LLM_API_KEY")),
            "tavily_key": bool(os.environ.get("TAVILY_API_KEY")),
            "supabase": bool(os.environ.get("SUPABASE_URL")),
            "langsmith": bool(os.environ.get("LANGSMITH_API_KEY")),
        },
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=os.environ.get("HOST", "127.0.0.1"), port=int(os.environ.get("PORT", "8000")))
