"""Conversation message routes."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from loguru import logger

from admissions_chat.deps import get_chat_store, require_role
from admissions_chat.domain.schemas import (
    MessageCreateReq,
    MessageCreateResp,
    MessageListResp,
    MessageRole,
)
from admissions_chat.ports.chat_store import SqlChatStore
from admissions_chat.services import chat_history
from worker import turn_queue

router = APIRouter(prefix="/chats/{chat_id}/messages", tags=["messages"])


@router.get("", response_model=MessageListResp)
async def list_messages(
    chat_id: str,
    role: MessageRole | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=1000),
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> MessageListResp:
    await chat_history.require_chat(store, chat_id, user)
    messages = await store.list_turns(chat_id, limit=limit, role=role)
    return MessageListResp(chat_id=chat_id, messages=messages, count=len(messages))


@router.post("", response_model=MessageCreateResp, status_code=201)
async def post_message(
    chat_id: str,
    req: MessageCreateReq,
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> MessageCreateResp:
    """Store a message; student messages also queue the assistant's reply."""

    chat = await chat_history.require_chat(store, chat_id, user)
    if chat_history.is_admin(user):
        turn = await chat_history.add_admin_message(store, chat, req.content, req.meta)
        return MessageCreateResp(message=turn, ai_turn_queued=False)

    turn = await chat_history.add_student_message(store, chat, req.content, req.meta)
    turn_queue.enqueue_conversation_turn(chat_id, turn.id)
    logger.info("Queued AI turn for chat {} message {}", chat_id, turn.id)
    return MessageCreateResp(message=turn, ai_turn_queued=True)
