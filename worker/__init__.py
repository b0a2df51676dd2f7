# `from worker import enqueue_conversation_turn` for callers outside the routes
from __future__ import annotations

from .turn_queue import enqueue_conversation_turn

__all__ = ["enqueue_conversation_turn"]
