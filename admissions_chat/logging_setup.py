"""Loguru configuration shared by the API process and the turn worker."""

from __future__ import annotations

import sys
import time
from typing import Any

from loguru import logger

from admissions_chat.config import settings

_EXTRA_DEFAULTS = {"req": "", "route": "", "chat": "", "channel": "app"}

_FORMAT = (
    "{time:YYYY-MM-DDTHH:mm:ss.SSS} | {level} | {extra[channel]} | "
    "req={extra[req]} | route={extra[route]} | chat={extra[chat]} | msg={message}"
)


def _fill_extra(record: dict[str, Any]) -> None:
    """Records bound without request or chat context still render."""

    extra = record.setdefault("extra", {})
    for key, value in _EXTRA_DEFAULTS.items():
        extra.setdefault(key, value)


def setup_logging(level: str | None = None) -> None:
    """Route all log output, including audit and trace channels, to stdout."""

    logger.remove()
    logger.configure(extra=dict(_EXTRA_DEFAULTS), patcher=_fill_extra)
    logger.add(
        sys.stdout,
        format=_FORMAT,
        level=(level or settings.log_level or "INFO").upper(),
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )


class RequestLogger:
    """Start/end lines for one HTTP request, correlated by request id."""

    def __init__(self, logger_instance: Any) -> None:
        self.log = logger_instance

    def request_start(self, request_id: str, route: str) -> float:
        self.log.bind(req=request_id, route=route).info("START")
        return time.perf_counter()

    def request_end(self, started_at: float, request_id: str, route: str, status: int) -> None:
        elapsed_ms = (time.perf_counter() - started_at) * 1000
        level = "WARNING" if status >= 500 else "INFO"
        self.log.bind(req=request_id, route=route).log(level, f"END status={status} ms={elapsed_ms:.1f}")
