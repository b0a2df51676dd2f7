"""Sampled trace events correlated by request id and chat id.

Events are single-line JSON on the loguru ``trace`` channel and are only
written when ``TRACE_MODE`` is on. Exceptions bypass sampling.
"""

from __future__ import annotations

import json
import random
import time
import traceback
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from loguru import logger

from admissions_chat.config import settings

_current_request: ContextVar[str] = ContextVar("admissions_request_id", default="")
_current_chat: ContextVar[str] = ContextVar("admissions_chat_id", default="")

_SCALARS = (str, int, float, bool)


def push_request_id(request_id: str) -> Token[str]:
    return _current_request.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    _current_request.reset(token)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, _SCALARS):
        return value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return str(value)


def _should_sample() -> bool:
    rate = min(max(settings.trace_sampling or 0.0, 0.0), 1.0)
    return rate >= 1.0 or (rate > 0.0 and random.random() < rate)


def _write(name: str, fields: Dict[str, Any], *, always: bool = False) -> None:
    if not settings.trace_mode or not (always or _should_sample()):
        return
    event = {
        "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
        "name": name,
        "request_id": _current_request.get(),
        "chat_id": _current_chat.get(),
        **fields,
    }
    logger.bind(channel="trace").info(json.dumps(_jsonable(event), ensure_ascii=False, separators=(",", ":")))


def tracepoint(name: str, **fields: Any) -> None:
    _write(name, fields)


def trace_exception(name: str, exc: BaseException, **fields: Any) -> None:
    """Record a failure; never sampled away."""

    summary = [line.strip() for line in traceback.format_exception_only(type(exc), exc) if line.strip()]
    failure: Dict[str, Any] = {"type": type(exc).__name__, "message": str(exc), "stack": summary[:4]}
    if getattr(exc, "status_code", None) is not None:
        failure["status_code"] = exc.status_code  # type: ignore[attr-defined]
    _write(name, {"exception": failure, **fields}, always=True)


@contextmanager
def chat_context(chat_id: str) -> Iterator[None]:
    """Tag every trace event and log line emitted inside the block with *chat_id*."""

    token = _current_chat.set(chat_id)
    try:
        with logger.contextualize(chat=chat_id):
            yield
    finally:
        _current_chat.reset(token)


@contextmanager
def trace_span(name: str, **fields: Any) -> Iterator[Dict[str, Any]]:
    """Emit ``name`` with its duration once the block exits.

    The yielded dict may be updated inside the block to attach outcome fields.
    """

    outcome: Dict[str, Any] = {}
    started = time.perf_counter()
    try:
        yield outcome
    except BaseException as exc:
        trace_exception(f"{name}.failed", exc, **fields, **outcome)
        raise
    tracepoint(name, duration_ms=round((time.perf_counter() - started) * 1000, 2), **fields, **outcome)
