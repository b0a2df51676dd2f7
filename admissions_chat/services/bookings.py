"""Booking a call with an admissions adviser from a chat."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from loguru import logger

from admissions_chat.domain.errors import ConflictError, ValidationError
from admissions_chat.domain.schemas import BookingOut, ChatSnapshot
from admissions_chat.ports.chat_store import SqlChatStore

SLOT_SEPARATION = timedelta(minutes=15)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def book_call(
    store: SqlChatStore,
    chat: ChatSnapshot,
    *,
    name: str,
    email: str,
    scheduled_at: datetime,
    now: datetime | None = None,
) -> BookingOut:
    """Book the chat's call and mark the chat ``call_booked``.

    Rejects a malformed email or a time not in the future (400), a second
    booking for the chat and a slot starting within 15 minutes of another
    booking (409).
    """

    name = name.strip()
    email = normalize_email(email)
    if not name:
        raise ValidationError("Name is required", status_code=400)
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email format", status_code=400)

    scheduled_at = as_utc(scheduled_at)
    current = as_utc(now) if now is not None else datetime.now(timezone.utc)
    if scheduled_at <= current:
        raise ValidationError("Scheduled time must be in the future", status_code=400)

    if await store.get_booking(chat.id) is not None:
        raise ConflictError("A booking already exists for this chat")
    if await store.has_booking_near(scheduled_at, SLOT_SEPARATION):
        raise ConflictError("This time slot is already booked")

    booking = await store.create_booking(chat_id=chat.id, name=name, email=email, scheduled_at=scheduled_at)
    await store.update_chat(chat.id, status="call_booked", last_message_at=current)
    logger.info("Call booked for chat {} at {}", chat.id, scheduled_at.isoformat())
    return booking
