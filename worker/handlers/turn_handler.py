"""Background job that produces the AI reply to a stored student message."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from admissions_chat import deps
from admissions_chat.domain.schemas import TurnAborted, TurnResult
from admissions_chat.ports.chat_store import SqlChatStore
from admissions_chat.ports.llm import LanguageModel
from admissions_chat.ports.responder import ProviderChain
from admissions_chat.services.chat_history import retitle_new_chat
from admissions_chat.services.turn_orchestrator import TurnOrchestrator, history_from_turns


async def run_turn_job(
    payload: Dict[str, Any],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    llm: LanguageModel | None = None,
) -> TurnResult | TurnAborted | None:
    """Load the triggering message and its history, then run one AI turn.

    History is every turn stored before the triggering message; the takeover
    gate is read inside the turn, after the message was stored.
    """

    chat_id = str(payload["chat_id"])
    message_id = str(payload["message_id"])
    factory = session_factory or deps.SessionLocal
    model = llm or ProviderChain()

    async with factory() as session:
        store = SqlChatStore(session)
        trigger = await store.get_turn(message_id)
        if trigger is None or trigger.chat_id != chat_id:
            logger.warning("Skipping AI turn: message {} not found in chat {}", message_id, chat_id)
            return None

        prior = await store.list_turns(chat_id, before_turn_index=trigger.turn_index)
        orchestrator = TurnOrchestrator(store=store, llm=model)
        result = await orchestrator.run_conversation_turn(chat_id, trigger.content, history_from_turns(prior))
        if isinstance(result, TurnResult):
            await retitle_new_chat(store, model, chat_id, trigger.content, prior)
        return result


def handle_turn_job(payload: Dict[str, Any]) -> Dict[str, Any] | None:
    """rq entry point: run the turn on a fresh event loop."""

    async def _run() -> TurnResult | TurnAborted | None:
        try:
            return await run_turn_job(payload)
        finally:
            # pooled connections are bound to this job's loop
            await deps.engine.dispose()

    result = asyncio.run(_run())
    return result.model_dump(mode="json") if result is not None else None
