"""Language model contract shared by adapters and services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from admissions_chat.domain.errors import ExternalServiceError

ChatMessages = List[Dict[str, str]]


@dataclass(frozen=True)
class Completion:
    """Text returned by one chat-completions call."""

    content: str
    model: str
    usage: Dict[str, Any] = field(default_factory=dict)


class LanguageModel(Protocol):
    async def complete(
        self,
        messages: ChatMessages,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        ...


def completion_from_payload(body: Dict[str, Any], *, default_model: str, provider: str) -> Completion:
    """Extract the first choice of a chat-completions response body."""

    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ExternalServiceError(f"{provider} returned an unexpected payload") from exc

    usage = body.get("usage")
    return Completion(
        content=(content or "").strip(),
        model=str(body.get("model") or default_model),
        usage=dict(usage) if isinstance(usage, dict) else {},
    )
