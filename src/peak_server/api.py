"""
peak_server/api.py

FastAPI HTTP interface for the search orchestrator.

Endpoints:
  GET  /health    liveness probe
  GET  /search    ?q=&mode=&quality=&lang=  single-turn query
  POST /search    {messages, mode, lang, quality}  multi-turn query
  GET  /credits   OpenRouter credits + today's Kling quota
  POST /history   persist {query, answer}
  GET  /history   ?limit=N  most recent searches
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import LOG_FORMAT, PeakSettings, get_settings
from .credits import CreditReporter
from .errors import public_error
from .intent_classifier import content_text
from .orchestrator import SearchOrchestrator
from .store import SupabaseStore, build_store

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger("peak-server.api")

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: str
    content: str | list[dict[str, Any]] = ""


class SearchRequest(BaseModel):
    messages: list[ChatMessage] = Field(..., min_length=1)
    mode: str | None = None
    lang: str | None = None
    quality: str | None = None


class SearchResponse(BaseModel):
    detailed_answer: str
    direct_answer: str


class HistoryRequest(BaseModel):
    query: str | None = None
    answer: str | None = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: PeakSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Explicit configuration.  Defaults to the environment.
        transport: Optional transport for the shared HTTP client (tests pass
            an ``httpx.MockTransport``).
    """
    cfg = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with httpx.AsyncClient(transport=transport) as client:
            store = build_store(cfg, client)
            app.state.store = store
            app.state.orchestrator = SearchOrchestrator(cfg, client, store)
            app.state.credits = CreditReporter(cfg, client, store)
            logger.info("Search server ready (store=%s)", "on" if store else "off")
            yield

    app = FastAPI(
        title="Peak AI Search Server",
        version=__version__,
        description="Routes search queries to hosted chat, image, video and search providers.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return _error(400, "Invalid request body.")

    async def _answer(
        request: Request,
        query: str,
        mode: str,
        messages: list[dict[str, Any]],
        quality: str,
        lang: str,
    ) -> JSONResponse:
        orchestrator: SearchOrchestrator = request.app.state.orchestrator
        store: SupabaseStore | None = request.app.state.store
        try:
            result = await orchestrator.run(
                query, mode, messages, quality=quality, lang=lang
            )
        except Exception as exc:
            logger.error("Search failed: %s", exc, exc_info=True)
            if store is not None:
                await store.log_error(exc, "search")
            status_code, message = public_error(exc)
            return _error(status_code, message)
        return JSONResponse(content=result.to_dict())

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "server": "peak-search-server"}

    @app.get("/search", response_model=SearchResponse, tags=["search"])
    async def search_get(
        request: Request,
        q: str = "",
        mode: str = "chat",
        quality: str = "standard",
        lang: str = "en",
    ) -> JSONResponse:
        """Answer a single-turn query passed in the query string."""
        query = q.strip()
        if not query:
            return _error(400, "Query parameter 'q' is required.")
        messages = [{"role": "user", "content": query}]
        return await _answer(request, query, mode, messages, quality, lang)

    @app.post("/search", response_model=SearchResponse, tags=["search"])
    async def search_post(request: Request, body: SearchRequest) -> JSONResponse:
        """Answer the last message of a conversation.

        ``content`` may be plain text or a list of parts; the text parts of
        the final message form the query.
        """
        messages = [m.model_dump() for m in body.messages]
        query = content_text(messages[-1]["content"]).strip()
        if not query:
            return _error(400, "The last message must contain text.")
        return await _answer(
            request,
            query,
            body.mode or "chat",
            messages,
            body.quality or "standard",
            body.lang or "en",
        )

    @app.get("/credits", tags=["meta"])
    async def credits(request: Request) -> JSONResponse:
        reporter: CreditReporter = request.app.state.credits
        try:
            return JSONResponse(content=await reporter.report())
        except Exception as exc:
            logger.error("Credits API error: %s", exc, exc_info=True)
            return _error(500, "Failed to fetch credits")

    @app.post("/history", tags=["history"])
    async def save_history(request: Request, body: HistoryRequest) -> JSONResponse:
        store: SupabaseStore | None = request.app.state.store
        if store is None:
            return _error(503, "History storage is not configured.")
        if not body.query or not body.answer:
            return _error(400, "Both 'query' and 'answer' are required.")
        try:
            await store.add_history(body.query, body.answer)
        except Exception as exc:
            logger.error("History insert failed: %s", exc)
            return _error(500, "Failed to save search history.")
        return JSONResponse(content={"success": True})

    @app.get("/history", tags=["history"])
    async def list_history(
        request: Request, limit: int = Query(5, ge=1, le=100)
    ) -> JSONResponse:
        store: SupabaseStore | None = request.app.state.store
        if store is None:
            return JSONResponse(content={"history": []})
        try:
            rows = await store.recent_history(limit)
        except Exception as exc:
            logger.error("History fetch failed: %s", exc)
            return _error(500, "Failed to fetch search history.")
        return JSONResponse(content={"history": rows})

    return app


app: FastAPI = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_api() -> None:
    """Start the FastAPI server via uvicorn."""
    cfg = get_settings()
    logging.getLogger().setLevel(cfg.log_level.upper())
    logger.info("Starting peak-search-server API on %s:%d", cfg.api_host, cfg.api_port)
    uvicorn.run(
        "peak_server.api:app",
        host=cfg.api_host,
        port=cfg.api_port,
        log_level=cfg.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run_api()
