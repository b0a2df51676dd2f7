"""Audit trail for language-model invocations."""

from __future__ import annotations

from typing import Any, Mapping

from loguru import logger

from admissions_chat.domain.errors import PersistenceError
from admissions_chat.ports.chat_store import ChatStore

_PREVIEW_LIMIT = 500


def _preview(value: str | None) -> str | None:
    if value is None or len(value) <= _PREVIEW_LIMIT:
        return value
    return value[:_PREVIEW_LIMIT] + "..."


async def record_llm_call(
    store: ChatStore,
    *,
    chat_id: str,
    message_id: str | None,
    model: str | None,
    prompt: str | None,
    context: Mapping[str, Any] | None,
    response: str | None,
    usage: Mapping[str, Any] | None,
) -> bool:
    """Emit a structured audit event and persist the audit row.

    Returns ``False`` when the row could not be stored; the failure is logged
    and never raised.
    """

    logger.bind(channel="audit", event="llm_call").info(
        {
            "chat_id": chat_id,
            "message_id": message_id,
            "model": model,
            "context": dict(context or {}),
            "response": _preview(response),
            "usage": dict(usage or {}),
        }
    )
    try:
        await store.record_audit(
            chat_id=chat_id,
            message_id=message_id,
            model=model,
            prompt=prompt,
            context=context,
            response=response,
            usage=usage,
        )
    except PersistenceError as exc:
        logger.error("Failed to create audit log for chat {}: {}", chat_id, exc)
        return False
    return True
