from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from admissions_chat.config import settings
from admissions_chat.domain.errors import ExternalServiceError


@asynccontextmanager
async def async_client(timeout: Optional[float] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Short-lived client bounded by ``LLM_TIMEOUT_S`` unless *timeout* is given."""

    async with httpx.AsyncClient(timeout=timeout or settings.llm_timeout_s) as client:
        yield client


async def post_chat_completion(
    url: str,
    *,
    api_key: str,
    payload: Dict[str, Any],
    provider: str,
) -> Dict[str, Any]:
    """POST *payload* with bearer auth and return the decoded JSON object.

    Transport failures, non-2xx statuses and undecodable bodies all surface
    as :class:`ExternalServiceError`.
    """

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    async with async_client() as client:
        try:
            response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(f"{provider} request failed: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(f"{provider} request failed: {exc.__class__.__name__}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalServiceError(f"{provider} returned an unexpected payload") from exc

    if not isinstance(body, dict):
        raise ExternalServiceError(f"{provider} returned an unexpected payload")
    return body


def chat_payload(model: str, messages: Any, *, temperature: float, max_tokens: int | None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"model": model, "messages": messages, "temperature": temperature}
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    return payload
