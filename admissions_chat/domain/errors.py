"""Error taxonomy for chat turns and its FastAPI handlers."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from admissions_chat.instrumentation.trace import trace_exception


class AppError(Exception):
    """Error carrying an HTTP status and a stable machine-readable code.

    Subclasses set the defaults; a single raise site may override any of them.
    """

    status_code = 400
    code = "app_error"
    message = "Request could not be completed"

    def __init__(self, message: str | None = None, **overrides: Any) -> None:
        self.message = message or type(self).message
        self.code = overrides.get("code") or type(self).code
        self.status_code = overrides.get("status_code") or type(self).status_code
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class NotFoundError(AppError):
    """Chat, message or user does not exist."""

    status_code, code = 404, "not_found"
    message = "No such chat or message"


class PermissionDeniedError(AppError):
    """Caller may not act on this chat."""

    status_code, code = 403, "permission_denied"
    message = "Not allowed to access this chat"


class ValidationError(AppError):
    status_code, code = 422, "validation_error"
    message = "Request parameters are invalid"


class ConflictError(AppError):
    """The request clashes with existing state, such as a second booking for a chat."""

    status_code, code = 409, "conflict"
    message = "Request conflicts with existing data"


class ExternalServiceError(AppError):
    """A language-model provider failed or answered with an unusable payload."""

    status_code, code = 502, "external_service_error"
    message = "Language model provider failed"


class GenerationError(AppError):
    """The reply-generating model call produced no usable content.

    Fatal to the turn: nothing is persisted for the reply.
    """

    status_code, code = 502, "generation_failed"
    message = "The assistant could not generate a reply"


class PersistenceError(AppError):
    """A store read or write failed.

    Fatal when raised for the reply write; callers treat status updates and
    audit writes as best-effort and only log it.
    """

    status_code, code = 500, "persistence_error"
    message = "Failed to persist conversation state"


def add_exception_handlers(app: FastAPI) -> None:
    """Render :class:`AppError` and :class:`HTTPException` as ``{"error": {...}}`` bodies."""

    async def _render_app_error(_: Request, exc: AppError) -> JSONResponse:
        trace_exception("request.app_error", exc, code=exc.code)
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    async def _render_http_error(_: Request, exc: HTTPException) -> JSONResponse:
        trace_exception("request.http_error", exc, detail=exc.detail)
        body = {"detail": exc.detail, "error": {"code": "http_error", "message": exc.detail}}
        return JSONResponse(body, status_code=exc.status_code, headers=exc.headers)

    app.add_exception_handler(AppError, _render_app_error)
    app.add_exception_handler(HTTPException, _render_http_error)
