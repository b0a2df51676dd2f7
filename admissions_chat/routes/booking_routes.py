"""Adviser call bookings."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from admissions_chat.deps import get_chat_store, require_role
from admissions_chat.domain.errors import NotFoundError
from admissions_chat.domain.schemas import BookingCreateReq, BookingListResp, BookingResp
from admissions_chat.ports.chat_store import SqlChatStore
from admissions_chat.services import bookings, chat_history

router = APIRouter(tags=["bookings"])


@router.post("/chats/{chat_id}/booking", response_model=BookingResp, status_code=201)
async def create_booking(
    chat_id: str,
    req: BookingCreateReq,
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> BookingResp:
    chat = await chat_history.require_chat(store, chat_id, user)
    booking = await bookings.book_call(
        store, chat, name=req.name, email=req.email, scheduled_at=req.scheduled_time
    )
    return BookingResp(booking=booking)


@router.get("/chats/{chat_id}/booking", response_model=BookingResp)
async def get_booking(
    chat_id: str,
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> BookingResp:
    await chat_history.require_chat(store, chat_id, user)
    booking = await store.get_booking(chat_id)
    if booking is None:
        raise NotFoundError("No booking found for this chat")
    return BookingResp(booking=booking)


@router.get("/bookings", response_model=BookingListResp)
async def list_bookings(
    count: int = Query(default=20, ge=1, le=1000),
    chat_id: str | None = Query(default=None),
    email: str | None = Query(default=None),
    _: Dict[str, Any] = Depends(require_role("admin")),
    store: SqlChatStore = Depends(get_chat_store),
) -> BookingListResp:
    """Newest bookings first, optionally for one chat or one email address."""

    items = await store.list_bookings(
        chat_id=chat_id,
        email=bookings.normalize_email(email) if email else None,
        limit=count,
    )
    return BookingListResp(bookings=items, count=len(items))
