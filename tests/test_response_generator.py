from __future__ import annotations

import asyncio

import pytest

from admissions_chat.domain.errors import ExternalServiceError, GenerationError
from admissions_chat.domain.schemas import HistoryTurn
from admissions_chat.knowledge.retriever import get_entries_by_ids
from admissions_chat.services.prompts import build_system_prompt
from admissions_chat.services.response_generator import (
    FALLBACK_TITLE,
    build_messages,
    clean_title,
    generate_chat_title,
    generate_reply,
)

from conftest import ScriptedLLM


def test_history_roles_map_to_user_and_assistant() -> None:
    history = [
        HistoryTurn(role="student", content="hi"),
        HistoryTurn(role="bot", content="hello"),
        HistoryTurn(role="admin", content="an adviser here"),
    ]

    messages = build_messages("SYSTEM", history, "what about fees?")

    assert [message["role"] for message in messages] == ["system", "user", "assistant", "assistant", "user"]
    assert messages[-1]["content"] == "what about fees?"


def test_only_last_ten_history_turns_are_sent() -> None:
    history = [HistoryTurn(role="student", content=f"q{i}") for i in range(12)]

    messages = build_messages("SYSTEM", history, "latest")

    assert len(messages) == 12
    assert messages[1]["content"] == "q2"


def test_system_prompt_lists_entries_with_ids() -> None:
    entries = get_entries_by_ids(["kb-tuition-fees", "kb-scholarships"])

    prompt = build_system_prompt(entries, college_name="Havana College")

    assert prompt.startswith("You are a helpful AI assistant for Havana College")
    assert "KNOWLEDGE BASE INFORMATION:" in prompt
    assert "\n1. Tuition Fees (ID: kb-tuition-fees)\n" in prompt
    assert "\n2. Scholarships and Financial Support (ID: kb-scholarships)\n" in prompt


def test_system_prompt_without_entries_has_no_knowledge_section() -> None:
    prompt = build_system_prompt([])

    assert "KNOWLEDGE BASE INFORMATION" not in prompt
    assert "contact the admissions office" in prompt


def test_generate_reply_sampling_parameters() -> None:
    llm = ScriptedLLM()

    reply = asyncio.run(generate_reply(llm, [], [], "hello"))

    call = llm.calls_of("reply")[0]
    assert (call["max_tokens"], call["temperature"]) == (500, 0.7)
    assert reply.model == "gpt-4o-mini"
    assert reply.system_prompt == call["messages"][0]["content"]


def test_empty_reply_raises_generation_error() -> None:
    with pytest.raises(GenerationError):
        asyncio.run(generate_reply(ScriptedLLM(reply=""), [], [], "hello"))


def test_provider_failure_raises_generation_error() -> None:
    llm = ScriptedLLM(reply=ExternalServiceError("OpenAI request failed: 500"))

    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(generate_reply(llm, [], [], "hello"))

    assert exc_info.value.code == "generation_failed"


def test_clean_title_strips_quotes_capitalises_and_truncates() -> None:
    assert clean_title('"tuition fees for 2025"') == "Tuition fees for 2025"
    assert len(clean_title("a" * 80)) == 60
    assert clean_title("''") == FALLBACK_TITLE


def test_chat_title_call_and_fallback() -> None:
    llm = ScriptedLLM(title="`visa questions`")

    assert asyncio.run(generate_chat_title(llm, "I need a visa")) == "Visa questions"
    call = llm.calls_of("title")[0]
    assert (call["max_tokens"], call["temperature"]) == (20, 0.7)

    failing = ScriptedLLM(title=ExternalServiceError("down"))
    assert asyncio.run(generate_chat_title(failing, "I need a visa")) == FALLBACK_TITLE
