"""Reply generation grounded on retrieved knowledge entries."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

from loguru import logger

from admissions_chat.domain.errors import ExternalServiceError, GenerationError
from admissions_chat.domain.schemas import HistoryTurn, KnowledgeEntry
from admissions_chat.ports.llm import Completion, LanguageModel
from admissions_chat.services.prompts import build_system_prompt, build_title_prompt

GENERATION_HISTORY_WINDOW = 10
REPLY_MAX_TOKENS = 500
REPLY_TEMPERATURE = 0.7

TITLE_MAX_TOKENS = 20
TITLE_TEMPERATURE = 0.7
TITLE_MAX_LENGTH = 60
FALLBACK_TITLE = "Student Support Chat"

_QUOTES_RE = re.compile(r"[\"'`]")


@dataclass(frozen=True)
class GeneratedReply:
    content: str
    model: str
    usage: Dict[str, object]
    system_prompt: str


def build_messages(
    system_prompt: str,
    history: Sequence[HistoryTurn],
    user_message: str,
    *,
    window: int = GENERATION_HISTORY_WINDOW,
) -> List[Dict[str, str]]:
    """Chat-completions messages: system prompt, recent history, then the new message."""

    messages = [{"role": "system", "content": system_prompt}]
    recent = list(history)[-window:] if window > 0 else []
    for turn in recent:
        messages.append({"role": "user" if turn.role == "student" else "assistant", "content": turn.content})
    messages.append({"role": "user", "content": user_message})
    return messages


async def generate_reply(
    llm: LanguageModel,
    entries: Sequence[KnowledgeEntry],
    history: Sequence[HistoryTurn],
    user_message: str,
    *,
    window: int = GENERATION_HISTORY_WINDOW,
    max_tokens: int = REPLY_MAX_TOKENS,
    temperature: float = REPLY_TEMPERATURE,
) -> GeneratedReply:
    """Produce the assistant reply.

    Raises :class:`GenerationError` when the provider fails or returns no text.
    """

    system_prompt = build_system_prompt(entries)
    messages = build_messages(system_prompt, history, user_message, window=window)
    try:
        completion: Completion = await llm.complete(messages, max_tokens=max_tokens, temperature=temperature)
    except ExternalServiceError as exc:
        raise GenerationError(f"Reply generation failed: {exc.message}") from exc

    if not completion.content:
        raise GenerationError("No response from the language model")
    return GeneratedReply(
        content=completion.content,
        model=completion.model,
        usage=dict(completion.usage),
        system_prompt=system_prompt,
    )


def clean_title(raw: str | None) -> str:
    title = _QUOTES_RE.sub("", (raw or "").strip())
    if title:
        title = title[0].upper() + title[1:]
    return title[:TITLE_MAX_LENGTH] or FALLBACK_TITLE


async def generate_chat_title(llm: LanguageModel, first_message: str) -> str:
    """Short descriptive title for a new chat; falls back to a generic one."""

    try:
        completion = await llm.complete(
            [{"role": "user", "content": build_title_prompt(first_message)}],
            max_tokens=TITLE_MAX_TOKENS,
            temperature=TITLE_TEMPERATURE,
        )
    except Exception as exc:  # noqa: BLE001 - a title is never worth failing a request
        logger.warning("Chat title generation failed: {}", exc)
        return FALLBACK_TITLE
    return clean_title(completion.content)
