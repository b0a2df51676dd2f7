"""Chat lifecycle routes: create, list, inspect, patch and takeover."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from admissions_chat.deps import get_chat_store, require_role
from admissions_chat.domain.schemas import (
    ChatCreateReq,
    ChatListResp,
    ChatPatchReq,
    ChatSnapshot,
    ChatStatus,
)
from admissions_chat.ports.chat_store import SqlChatStore
from admissions_chat.services import chat_history

router = APIRouter(prefix="/chats", tags=["chats"])


@router.post("", response_model=ChatSnapshot, status_code=201)
async def create_chat(
    req: ChatCreateReq,
    user: Dict[str, Any] = Depends(require_role("student")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatSnapshot:
    return await chat_history.open_chat(store, user, title=req.title, tags=req.tags)


@router.get("", response_model=ChatListResp)
async def list_chats(
    status: ChatStatus | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatListResp:
    """Own chats for students; every chat for admins."""

    owner = None if chat_history.is_admin(user) else str(user["user_id"])
    chats = await store.list_chats(user_id=owner, status=status, limit=limit)
    return ChatListResp(chats=chats, count=len(chats))


@router.get("/{chat_id}", response_model=ChatSnapshot)
async def get_chat(
    chat_id: str,
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatSnapshot:
    return await chat_history.require_chat(store, chat_id, user)


@router.patch("/{chat_id}", response_model=ChatSnapshot)
async def patch_chat(
    chat_id: str,
    req: ChatPatchReq,
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatSnapshot:
    fields = req.model_dump(exclude_unset=True, exclude_none=True)
    return await chat_history.update_chat_fields(store, chat_id, fields)


@router.post("/{chat_id}/takeover", response_model=ChatSnapshot)
async def take_over_chat(
    chat_id: str,
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatSnapshot:
    return await chat_history.set_takeover(store, chat_id, True)


@router.post("/{chat_id}/typing", response_model=ChatSnapshot)
async def admin_typing(
    chat_id: str,
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatSnapshot:
    """An admin starting to type silences the assistant for this chat."""

    return await chat_history.set_takeover(store, chat_id, True)


@router.post("/{chat_id}/release", response_model=ChatSnapshot)
async def release_chat(
    chat_id: str,
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> ChatSnapshot:
    return await chat_history.set_takeover(store, chat_id, False)
