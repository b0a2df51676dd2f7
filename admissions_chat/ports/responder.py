"""Provider-agnostic chat completion with fallback between providers."""

from __future__ import annotations

from typing import Awaitable, Callable, Dict, List

from loguru import logger

from admissions_chat.adapters import cerebras_responder, openai_responder
from admissions_chat.config import settings
from admissions_chat.domain.errors import ExternalServiceError
from admissions_chat.ports.llm import ChatMessages, Completion

ChatCall = Callable[..., Awaitable[Completion]]

PROVIDERS = ("openai", "cerebras")


def _adapter(provider: str) -> ChatCall:
    # looked up per call so tests can patch the adapter modules
    return {"openai": openai_responder.chat, "cerebras": cerebras_responder.chat}[provider]


def _configured() -> Dict[str, bool]:
    return {
        "openai": bool(settings.openai_api_key),
        "cerebras": all((settings.cerebras_base_url, settings.cerebras_api_key, settings.cerebras_model)),
    }


class ProviderChain:
    """:class:`LanguageModel` that tries the configured provider, then the other one."""

    def __init__(self, primary: str | None = None) -> None:
        self.primary = (primary or settings.llm_provider or "openai").lower()

    def provider_order(self) -> List[str]:
        ready = _configured()
        if not ready.get(self.primary):
            logger.warning("Primary LLM provider '{}' is not fully configured", self.primary)
        ordered = [self.primary] + [name for name in PROVIDERS if name != self.primary]
        return [name for name in ordered if ready.get(name)]

    async def complete(self, messages: ChatMessages, *, max_tokens: int, temperature: float) -> Completion:
        providers = self.provider_order()
        if not providers:
            raise ExternalServiceError("No LLM providers are configured")

        failures: List[ExternalServiceError] = []
        for provider in providers:
            try:
                return await _adapter(provider)(messages, temperature=temperature, max_tokens=max_tokens)
            except ExternalServiceError as exc:
                logger.warning("LLM provider '{}' failed, trying next: {}", provider, exc)
                failures.append(exc)
        raise failures[-1]


def get_language_model() -> ProviderChain:
    """FastAPI dependency returning the default language model."""

    return ProviderChain()
