"""Application factory for the admissions chat API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from loguru import logger

from admissions_chat import __version__, deps
from admissions_chat.config import settings
from admissions_chat.domain.errors import add_exception_handlers
from admissions_chat.domain.models import Base
from admissions_chat.instrumentation.middleware import TraceRequestMiddleware
from admissions_chat.instrumentation.trace import tracepoint
from admissions_chat.logging_setup import setup_logging
from worker.turn_queue import drain_pending_turns

SHUTDOWN_DRAIN_TIMEOUT_S = 30.0


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    async with deps.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    tracepoint("app.started", env=settings.env, queue_mode=settings.queue_mode)
    logger.info("Admissions chat API ready env={} queue_mode={}", settings.env, settings.queue_mode)
    try:
        yield
    finally:
        await drain_pending_turns(timeout=SHUTDOWN_DRAIN_TIMEOUT_S)
        await deps.engine.dispose()


def create_app() -> FastAPI:
    """Initialise and configure the FastAPI application."""

    setup_logging()

    app = FastAPI(title="Admissions Chat API", version=__version__, lifespan=lifespan)
    add_exception_handlers(app)
    app.add_middleware(TraceRequestMiddleware)
    from admissions_chat.routes import admin_routes, ai_routes, booking_routes, chat_routes, message_routes

    app.include_router(chat_routes.router)
    app.include_router(message_routes.router)
    app.include_router(ai_routes.router)
    app.include_router(admin_routes.router)
    app.include_router(booking_routes.router)
    return app


app = create_app()
