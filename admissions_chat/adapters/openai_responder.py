"""OpenAI chat completions adapter."""

from __future__ import annotations

from admissions_chat.config import settings
from admissions_chat.domain.errors import ExternalServiceError
from admissions_chat.ports.llm import ChatMessages, Completion, completion_from_payload
from admissions_chat.utils.http import chat_payload, post_chat_completion

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"


async def chat(messages: ChatMessages, *, temperature: float = 0.7, max_tokens: int | None = 500) -> Completion:
    """Send *messages* and return the first choice."""

    if not settings.openai_api_key:
        raise ExternalServiceError("OpenAI is not configured: OPENAI_API_KEY is empty")

    model = settings.openai_model or DEFAULT_MODEL
    body = await post_chat_completion(
        f"{(settings.openai_base_url or DEFAULT_BASE_URL).rstrip('/')}/chat/completions",
        api_key=settings.openai_api_key,
        payload=chat_payload(model, messages, temperature=temperature, max_tokens=max_tokens),
        provider="OpenAI",
    )
    return completion_from_payload(body, default_model=model, provider="OpenAI")
