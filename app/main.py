from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from app.di import chat_adapter, get_backend, prompt_builder
from config.settings import Settings, get_settings
from relay.chat import ChatSessionAdapter
from relay.errors import (
    InvalidRequest,
    RelayError,
    UpstreamTransientError,
    classify_upstream_error,
)
from relay.models import ConversationTurn
from relay.prompt import PromptBuilder
from relay.stream import StreamRelayResponse
from relay.upstream import GeminiBackend, GenerativeBackend


logger = logging.getLogger("relay")

router = APIRouter()


class SummaryRequest(BaseModel):
    context: Optional[str] = Field(None, description="Opening section of the article to summarize")


class ChatRequest(BaseModel):
    history: Optional[List[ConversationTurn]] = Field(
        None,
        description="Full conversation so far; the last turn is the message to answer (frontend-managed)",
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s - %(message)s",
    )
    for name in ("httpx", "httpcore", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if exc.status_code < 500:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    if first.get("type") == "json_invalid":
        message = "Request body must be valid JSON."
    elif field.startswith("history"):
        message = "Chat history must be a list of {role, text} turns."
    elif field:
        message = f"Invalid request field '{field}': {first.get('msg', 'invalid value')}"
    else:
        message = "Request body must be a JSON object."
    logger.info("Rejected %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


@router.post("/api/summary")
async def summary(
    req: SummaryRequest,
    backend: GenerativeBackend = Depends(get_backend),
    builder: PromptBuilder = Depends(prompt_builder),
) -> StreamRelayResponse:
    if not req.context:
        raise InvalidRequest("Article context is required.")

    prompt = builder.build(req.context)
    logger.info("Incoming summary: context_len=%s", len(req.context))
    try:
        fragments = await backend.stream_completion(prompt)
    except Exception as exc:
        logger.exception("Gemini API error while starting summary: %s", exc)
        raise UpstreamTransientError.from_exception(exc) from exc
    return StreamRelayResponse(fragments)


@router.post("/api/chat")
async def chat(
    req: ChatRequest,
    adapter: ChatSessionAdapter = Depends(chat_adapter),
) -> StreamRelayResponse:
    if not req.history:
        raise InvalidRequest("Chat history is required.")

    prepared = adapter.prepare(req.history)
    logger.info("Incoming chat: history_turns=%s", len(req.history))
    try:
        fragments = await adapter.stream_reply(prepared)
    except Exception as exc:
        error = classify_upstream_error(exc)
        if error.status_code >= 500:
            logger.exception("Gemini chat API error: %s", exc)
        else:
            logger.warning("Gemini rejected chat history: %s", exc)
        raise error from exc
    return StreamRelayResponse(fragments)


@router.get("/health")
def health():
    return {"status": "ok"}


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[GenerativeBackend] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    logger.info(
        "Config: model=%s key_set=%s env=%s",
        settings.gemini_model,
        bool(settings.google_api_key),
        settings.app_env,
    )
    if backend is None:
        backend = GeminiBackend.from_settings(settings)

    app = FastAPI(title="Gemini Stream Relay", version="1.0.0")
    app.state.backend = backend

    # CORS: allow local frontend during development
    if settings.is_development:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(router)

    # Client UI, if one is shipped next to the server.
    if settings.static_dir and Path(settings.static_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.google_api_key:
        logger.error("GOOGLE_API_KEY is not set in the environment or .env")
        sys.exit(1)

    app = create_app(settings)
    logger.info("Server starting on http://%s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
