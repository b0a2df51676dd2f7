"""Admin dashboard routes."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from admissions_chat.deps import get_chat_store, require_role
from admissions_chat.domain.errors import ValidationError
from admissions_chat.domain.schemas import CHAT_STATUSES, AdminChatListResp, AuditResp
from admissions_chat.ports.chat_store import SqlChatStore

router = APIRouter(prefix="/admin", tags=["admin"])

DEFAULT_CHAT_COUNT = 50
MAX_CHAT_COUNT = 1000


@router.get("/chats", response_model=AdminChatListResp)
async def admin_chats(
    status: str | None = Query(default=None),
    count: int = Query(default=DEFAULT_CHAT_COUNT),
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> AdminChatListResp:
    """Chats with owner details, message counts and the latest message preview."""

    if status is not None and status not in CHAT_STATUSES:
        raise ValidationError(
            f"Invalid status parameter. Must be one of: {', '.join(CHAT_STATUSES)}",
            status_code=400,
        )
    if count <= 0 or count > MAX_CHAT_COUNT:
        raise ValidationError(
            f"Invalid count parameter. Must be a positive integer between 1 and {MAX_CHAT_COUNT}",
            status_code=400,
        )
    chats = await store.list_admin_chats(status=status, limit=count)
    return AdminChatListResp(chats=chats, count=len(chats))


@router.get("/audit", response_model=AuditResp)
async def admin_audit(
    chat_id: str | None = Query(default=None),
    message_id: str | None = Query(default=None),
    model: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> AuditResp:
    items = await store.list_audit(chat_id=chat_id, message_id=message_id, model=model, limit=limit)
    return AuditResp(items=items)
