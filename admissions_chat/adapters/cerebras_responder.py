"""Cerebras inference, reached through its OpenAI-compatible endpoint."""

from __future__ import annotations

from admissions_chat.config import settings
from admissions_chat.domain.errors import ExternalServiceError
from admissions_chat.ports.llm import ChatMessages, Completion, completion_from_payload
from admissions_chat.utils.http import chat_payload, post_chat_completion


def _endpoint(base_url: str) -> str:
    # CEREBRAS_BASE_URL is accepted with or without the /v1 suffix
    root = base_url.rstrip("/")
    if root.endswith("/v1"):
        root = root[:-3]
    return f"{root}/v1/chat/completions"


async def chat(messages: ChatMessages, *, temperature: float = 0.7, max_tokens: int | None = 500) -> Completion:
    base_url, api_key, model = settings.cerebras_base_url, settings.cerebras_api_key, settings.cerebras_model
    if not (base_url and api_key and model):
        raise ExternalServiceError("Cerebras needs CEREBRAS_BASE_URL, CEREBRAS_API_KEY and CEREBRAS_MODEL")

    body = await post_chat_completion(
        _endpoint(base_url),
        api_key=api_key,
        payload=chat_payload(model, messages, temperature=temperature, max_tokens=max_tokens),
        provider="Cerebras",
    )
    return completion_from_payload(body, default_model=model, provider="Cerebras")
