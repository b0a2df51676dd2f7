"""Keyword heuristics that flag escalation or booking without a model call."""

from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel

from admissions_chat.domain.schemas import HistoryTurn

BOOKING_HISTORY_THRESHOLD = 6

ESCALATION_KEYWORDS: Sequence[str] = (
    "complaint",
    "problem",
    "issue",
    "error",
    "wrong",
    "mistake",
    "disappointed",
    "frustrated",
    "angry",
    "help me",
    "urgent",
    "not working",
    "doesn't work",
    "broken",
    "cannot",
    "can't",
)

BOOKING_KEYWORDS: Sequence[str] = (
    "speak to someone",
    "talk to",
    "meet with",
    "appointment",
    "call me",
    "phone call",
    "consultation",
    "discuss",
    "explain more",
    "detailed information",
    "one on one",
    "personal",
    "specific situation",
)


class FastPathSignals(BaseModel):
    escalation_suggested: bool
    booking_suggested: bool


def analyze_conversation(
    message: str,
    history: Sequence[HistoryTurn],
    *,
    booking_history_threshold: int = BOOKING_HISTORY_THRESHOLD,
) -> FastPathSignals:
    """Substring match on the lowercased message; long conversations also suggest booking."""

    lowered = message.lower()
    escalation = any(keyword in lowered for keyword in ESCALATION_KEYWORDS)
    booking = any(keyword in lowered for keyword in BOOKING_KEYWORDS) or len(history) > booking_history_threshold
    return FastPathSignals(escalation_suggested=escalation, booking_suggested=booking)
