"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Initialize shared resources (OpenAI client, reply pipeline)
- Register routes
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from adapters.asr.openai_whisper import WhisperAPITranscriber
from adapters.llm.openai_chat import OpenAIChatReplyAdapter
from adapters.llm.prompts import prompt_hash, resolve_system_prompt
from adapters.tts.openai_tts import OpenAITTSAdapter
from config import AppConfig
from observability.logger import configure_logging, log_event

from server.routes import register_routes
from session.pipeline import ReplyPipeline


def create_app(
    config: AppConfig | None = None,
    *,
    pipeline: ReplyPipeline | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations (and stub collaborators)
    - Environment-specific setup
    - ASGI server compatibility
    """
    if config is None:
        config = AppConfig.load_from_env()

    configure_logging(level=config.log_level, json_lines=config.enable_json_logs)

    app = FastAPI(title="Voice Relay API", lifespan=_lifespan)

    app.state.config = config

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # tighten later
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Collaborators are built ONCE per process and shared by all sessions
    if pipeline is None:
        pipeline = build_reply_pipeline(config, build_openai_client(config))
    app.state.pipeline = pipeline

    # Routes
    register_routes(app)

    return app


def build_openai_client(config: AppConfig) -> AsyncOpenAI:
    """Build the shared OpenAI client."""
    if not config.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY environment variable not set")
    return AsyncOpenAI(api_key=config.openai_api_key)


def build_reply_pipeline(config: AppConfig, client: AsyncOpenAI) -> ReplyPipeline:
    """Wire the OpenAI-backed collaborators into one pipeline."""
    system_prompt = resolve_system_prompt()
    log_event({
        "event_type": "PIPELINE_CONFIGURED",
        "transcription_model": config.transcription_model,
        "llm_model": config.llm_model,
        "tts_model": config.tts_model,
        "tts_voice": config.tts_voice,
        "tts_response_format": config.tts_response_format,
        "prompt_hash": prompt_hash(system_prompt),
    })
    return ReplyPipeline(
        WhisperAPITranscriber(client=client, model=config.transcription_model),
        OpenAIChatReplyAdapter(client=client, model=config.llm_model, system_prompt=system_prompt),
        OpenAITTSAdapter(
            client=client,
            model=config.tts_model,
            response_format=config.tts_response_format,
        ),
        voice=config.tts_voice,
        sample_rate_hz=config.sample_rate_hz,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(_log_unhandled_loop_exception)

    log_event({
        "event_type": "SERVER_STARTED",
        "env": app.state.config.env,
    })
    try:
        yield
    finally:
        loop.set_exception_handler(previous_handler)
        log_event({"event_type": "SERVER_STOPPED"})


def _log_unhandled_loop_exception(
    _loop: asyncio.AbstractEventLoop,
    context: dict[str, Any],
) -> None:
    """Log task failures nobody awaited instead of letting them vanish."""
    exc = context.get("exception")
    log_event({
        "event_type": "UNHANDLED_LOOP_EXCEPTION",
        "message": context.get("message"),
        "exception": type(exc).__name__ if exc is not None else None,
        "detail": str(exc) if exc is not None else None,
    }, level="ERROR")
