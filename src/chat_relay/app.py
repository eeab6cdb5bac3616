"""
HTTP surface for the chat relay.

Endpoints:
    GET  /health           liveness probe
    POST /api/chat         single JSON reply
    POST /api/chat-stream  text/event-stream relay of the reply
    POST /ask-ai           single-prompt shortcut
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

from chat_relay.client import ChatClient
from chat_relay.config import Settings, get_settings
from chat_relay.context import ContextAugmenter, SitemapContextSource
from chat_relay.errors import UpstreamFailure, ValidationFailure
from chat_relay.providers.openai import OpenAIProvider
from chat_relay.service import ChatService, parse_chat_request
from chat_relay.sse import SSE_HEADERS

logger = logging.getLogger(__name__)

ASK_AI_FAILURE = "Failed to get response from AI."


def build_service(settings: Settings) -> tuple[ChatService, list[Any]]:
    """Wire provider, invoker and optional augmenter from settings.

    Returns the service and the resources to close on shutdown.
    """
    provider = OpenAIProvider(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout_s=settings.upstream_timeout_s,
    )
    client = ChatClient(provider)
    resources: list[Any] = [client]

    augmenter = None
    if settings.sitemap_url:
        source = SitemapContextSource(
            settings.sitemap_url,
            api_key=settings.catalog_api_key,
            max_snippets=settings.context_max_snippets,
        )
        augmenter = ContextAugmenter(source)
        resources.append(source)

    service = ChatService(
        client,
        default_model=settings.default_model,
        system_preamble=settings.system_preamble,
        augmenter=augmenter,
        heartbeat_interval=settings.heartbeat_interval_s,
    )
    return service, resources


def create_app(settings: Settings | None = None, *, service: ChatService | None = None) -> FastAPI:
    settings = settings or get_settings()
    resources: list[Any] = []
    if service is None:
        service, resources = build_service(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        for resource in resources:
            await resource.aclose()

    app = FastAPI(title="chat-relay", lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationFailure)
    async def _validation_failure(_request: Request, exc: ValidationFailure) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(UpstreamFailure)
    async def _upstream_failure(_request: Request, exc: UpstreamFailure) -> JSONResponse:
        return JSONResponse({"error": exc.message or "Upstream request failed."}, status_code=500)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "ts": int(time.time() * 1000)}

    @app.post("/api/chat")
    async def chat(request: Request) -> dict[str, str]:
        req = parse_chat_request(await _json_body(request))
        text = await service.reply(req)
        return {"text": text}

    @app.post("/api/chat-stream")
    async def chat_stream(request: Request):
        req = parse_chat_request(await _json_body(request))
        # Opening failures become a plain 500 through the handler above.
        relay = await service.open_stream(req, is_disconnected=request.is_disconnected)
        return StreamingResponse(
            relay.stream(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.post("/ask-ai")
    async def ask_ai(request: Request):
        body = await _json_body(request)
        prompt = body.get("prompt") if isinstance(body, dict) else None
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationFailure("Prompt is required.")
        try:
            answer = await service.ask(prompt)
        except UpstreamFailure as exc:
            logger.error("Single-prompt call failed: %s", exc)
            return JSONResponse({"error": ASK_AI_FAILURE}, status_code=500)
        return {"answer": answer}

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")

    return app


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise ValidationFailure("Request body must be JSON.") from exc
