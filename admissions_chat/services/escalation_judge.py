"""Model-backed escalation judgment with a schema-validated parse."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence, Union

from loguru import logger
from pydantic import ValidationError as SchemaValidationError

from admissions_chat.domain.schemas import EscalationVerdict, HistoryTurn
from admissions_chat.ports.llm import Completion, LanguageModel
from admissions_chat.services.prompts import build_escalation_prompt

JUDGE_HISTORY_WINDOW = 5
JUDGE_MAX_TOKENS = 300
JUDGE_TEMPERATURE = 0.3

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def fallback_verdict() -> EscalationVerdict:
    return EscalationVerdict(
        escalation_needed=False,
        confidence=0.1,
        reasons=["parse error"],
        suggested_response="continue with regular support",
    )


@dataclass(frozen=True)
class ParsedVerdict:
    verdict: EscalationVerdict


@dataclass(frozen=True)
class ParseFailure:
    raw: str
    error: str


ParseOutcome = Union[ParsedVerdict, ParseFailure]


def _strip_fences(raw: str) -> str:
    text = raw.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def parse_verdict(raw: str | None) -> ParseOutcome:
    """Validate the model's JSON answer against :class:`EscalationVerdict`.

    Any of the four fields missing, a wrong value type (a string confidence,
    a non-boolean ``escalationNeeded``) or a confidence outside ``[0, 1]`` is a
    failure, never a coercion.
    """

    if not raw or not raw.strip():
        return ParseFailure(raw=raw or "", error="empty response")
    try:
        verdict = EscalationVerdict.model_validate_json(_strip_fences(raw))
    except SchemaValidationError as exc:
        return ParseFailure(raw=raw, error=f"{exc.error_count()} validation error(s): {exc.errors()[0]['msg']}")
    return ParsedVerdict(verdict=verdict)


@dataclass(frozen=True)
class Judgment:
    """Verdict plus what is needed to audit the call that produced it.

    ``completion`` is ``None`` when the model call itself failed.
    """

    verdict: EscalationVerdict
    prompt: str
    completion: Completion | None
    parsed: bool


async def judge_escalation(
    llm: LanguageModel,
    user_message: str,
    history: Sequence[HistoryTurn],
    *,
    history_window: int = JUDGE_HISTORY_WINDOW,
    max_tokens: int = JUDGE_MAX_TOKENS,
    temperature: float = JUDGE_TEMPERATURE,
) -> Judgment:
    """Ask the model whether the conversation needs a human. Never raises."""

    prompt = build_escalation_prompt(user_message, history, window=history_window)
    try:
        completion = await llm.complete(
            [{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
    except Exception as exc:  # noqa: BLE001 - any provider failure degrades to the fallback
        logger.warning("Escalation judge call failed: {}", exc)
        return Judgment(verdict=fallback_verdict(), prompt=prompt, completion=None, parsed=False)

    outcome = parse_verdict(completion.content)
    if isinstance(outcome, ParseFailure):
        logger.warning("Failed to parse escalation analysis: {} raw={!r}", outcome.error, outcome.raw[:200])
        return Judgment(verdict=fallback_verdict(), prompt=prompt, completion=completion, parsed=False)
    return Judgment(verdict=outcome.verdict, prompt=prompt, completion=completion, parsed=True)
