from __future__ import annotations

from typing import Awaitable, Callable
from uuid import uuid4

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from admissions_chat.instrumentation.trace import push_request_id, reset_request_id
from admissions_chat.logging_setup import RequestLogger

request_logger = RequestLogger(logger)

Handler = Callable[[Request], Awaitable[Response]]


class TraceRequestMiddleware(BaseHTTPMiddleware):
    """Attach a request id to each request and log its start and end.

    A caller-supplied ``X-Request-Id`` is reused so API logs line up with
    the client's.
    """

    async def dispatch(self, request: Request, call_next: Handler) -> Response:
        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        path = request.url.path
        token = push_request_id(request_id)
        started_at = request_logger.request_start(request_id, path)
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers.setdefault("X-Request-Id", request_id)
            return response
        finally:
            request_logger.request_end(started_at, request_id, path, status)
            reset_request_id(token)
