from __future__ import annotations

import asyncio

import pytest

from admissions_chat.domain.errors import ExternalServiceError
from admissions_chat.domain.schemas import HistoryTurn
from admissions_chat.services.escalation_judge import (
    ParsedVerdict,
    ParseFailure,
    fallback_verdict,
    judge_escalation,
    parse_verdict,
)

from conftest import ScriptedLLM


def test_parse_camel_case_verdict() -> None:
    outcome = parse_verdict(
        '{"escalationNeeded": true, "confidence": 0.85, "reasons": ["angry"], "suggestedResponse": "call"}'
    )

    assert isinstance(outcome, ParsedVerdict)
    assert outcome.verdict.escalation_needed is True
    assert outcome.verdict.confidence == 0.85
    assert outcome.verdict.reasons == ["angry"]
    assert outcome.verdict.suggested_response == "call"


def test_parse_tolerates_code_fences() -> None:
    raw = '```json\n{"escalationNeeded": false, "confidence": 0.3, "reasons": [], "suggestedResponse": ""}\n```'

    outcome = parse_verdict(raw)

    assert isinstance(outcome, ParsedVerdict)
    assert outcome.verdict.escalation_needed is False


def test_parse_rejects_non_boolean_flag() -> None:
    outcome = parse_verdict('{"escalationNeeded": "yes", "confidence": 0.9, "reasons": []}')

    assert isinstance(outcome, ParseFailure)


def test_parse_rejects_out_of_range_confidence() -> None:
    assert isinstance(parse_verdict('{"escalationNeeded": true, "confidence": 1.5}'), ParseFailure)


@pytest.mark.parametrize("confidence", ["true", '"0.9"', "null"])
def test_parse_rejects_non_numeric_confidence(confidence: str) -> None:
    raw = (
        '{"escalationNeeded": true, "confidence": %s, "reasons": ["angry"], "suggestedResponse": "call"}'
        % confidence
    )

    assert isinstance(parse_verdict(raw), ParseFailure)


def test_parse_accepts_integer_confidence() -> None:
    outcome = parse_verdict('{"escalationNeeded": true, "confidence": 1, "reasons": [], "suggestedResponse": ""}')

    assert isinstance(outcome, ParsedVerdict)
    assert outcome.verdict.confidence == 1.0


def test_parse_rejects_non_string_reasons() -> None:
    raw = '{"escalationNeeded": false, "confidence": 0.2, "reasons": [1, 2], "suggestedResponse": "none"}'

    assert isinstance(parse_verdict(raw), ParseFailure)


def test_parse_requires_reasons_and_suggested_response() -> None:
    assert isinstance(parse_verdict('{"escalationNeeded": true, "confidence": 0.9}'), ParseFailure)
    assert isinstance(
        parse_verdict('{"escalationNeeded": true, "confidence": 0.9, "reasons": ["x"]}'), ParseFailure
    )


def test_parse_rejects_missing_fields_and_prose() -> None:
    assert isinstance(parse_verdict('{"escalationNeeded": true}'), ParseFailure)
    assert isinstance(parse_verdict("I think this needs a human."), ParseFailure)
    assert isinstance(parse_verdict(""), ParseFailure)
    assert isinstance(parse_verdict(None), ParseFailure)


def test_fallback_verdict_values() -> None:
    verdict = fallback_verdict()

    assert verdict.escalation_needed is False
    assert verdict.confidence == 0.1
    assert verdict.reasons == ["parse error"]
    assert verdict.suggested_response == "continue with regular support"


def test_judge_uses_last_five_turns_and_low_temperature() -> None:
    llm = ScriptedLLM()
    history = [HistoryTurn(role="student", content=f"turn-{i}") for i in range(7)]

    judgment = asyncio.run(judge_escalation(llm, "Still waiting on my visa letter", history))

    call = llm.calls_of("judge")[0]
    prompt = call["messages"][0]["content"]
    assert call["max_tokens"] == 300
    assert call["temperature"] == 0.3
    assert "turn-1" not in prompt
    assert "student: turn-2" in prompt and "student: turn-6" in prompt
    assert "LATEST USER MESSAGE:\nStill waiting on my visa letter" in prompt
    assert judgment.parsed is True
    assert judgment.completion is not None


def test_unparseable_answer_degrades_to_fallback() -> None:
    llm = ScriptedLLM(judge="Sure! Escalate this one.")

    judgment = asyncio.run(judge_escalation(llm, "hello", []))

    assert judgment.verdict == fallback_verdict()
    assert judgment.parsed is False
    assert judgment.completion is not None
    assert judgment.completion.content == "Sure! Escalate this one."


def test_provider_failure_degrades_to_fallback() -> None:
    llm = ScriptedLLM(judge=ExternalServiceError("OpenAI request failed: 503"))

    judgment = asyncio.run(judge_escalation(llm, "hello", []))

    assert judgment.verdict == fallback_verdict()
    assert judgment.completion is None
