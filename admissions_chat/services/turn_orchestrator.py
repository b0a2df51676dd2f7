"""Per-turn pipeline: takeover gate, reply, escalation judgment, audit trail."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Sequence, TypeVar

from loguru import logger

from admissions_chat.application.audit_log import record_llm_call
from admissions_chat.config import settings
from admissions_chat.domain.errors import ExternalServiceError, GenerationError, NotFoundError, PersistenceError
from admissions_chat.domain.schemas import (
    BotMessage,
    EscalationAnalysisResult,
    EscalationVerdict,
    HistoryTurn,
    KnowledgeEntry,
    TurnAborted,
    TurnAnalysis,
    TurnResult,
)
from admissions_chat.instrumentation.trace import chat_context, trace_span, tracepoint
from admissions_chat.knowledge.corpus import KNOWLEDGE_BASE
from admissions_chat.knowledge.retriever import DEFAULT_MAX_RESULTS, search_knowledge_base
from admissions_chat.ports.chat_store import ChatStore
from admissions_chat.ports.llm import LanguageModel
from admissions_chat.services import escalation_judge, fast_path, response_generator
from admissions_chat.services.escalation_judge import Judgment, judge_escalation
from admissions_chat.services.fast_path import FastPathSignals, analyze_conversation
from admissions_chat.services.response_generator import GeneratedReply, generate_reply

ESCALATION_CONFIDENCE_THRESHOLD = 0.7

T = TypeVar("T")


@dataclass(frozen=True)
class TurnPolicy:
    """Windows, thresholds and sampling parameters for one turn."""

    generation_history_window: int = response_generator.GENERATION_HISTORY_WINDOW
    judge_history_window: int = escalation_judge.JUDGE_HISTORY_WINDOW
    booking_history_threshold: int = fast_path.BOOKING_HISTORY_THRESHOLD
    escalation_confidence_threshold: float = ESCALATION_CONFIDENCE_THRESHOLD
    reply_max_tokens: int = response_generator.REPLY_MAX_TOKENS
    reply_temperature: float = response_generator.REPLY_TEMPERATURE
    judge_max_tokens: int = escalation_judge.JUDGE_MAX_TOKENS
    judge_temperature: float = escalation_judge.JUDGE_TEMPERATURE
    max_sources: int = DEFAULT_MAX_RESULTS
    turn_timeout_s: float | None = None

    @classmethod
    def from_settings(cls) -> "TurnPolicy":
        return cls(turn_timeout_s=settings.turn_timeout_s)

    def should_escalate(self, verdict: EscalationVerdict) -> bool:
        return verdict.escalation_needed and verdict.confidence > self.escalation_confidence_threshold


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TurnOrchestrator:
    """Run AI turns for a chat against a store and a language model."""

    def __init__(
        self,
        *,
        store: ChatStore,
        llm: LanguageModel,
        policy: TurnPolicy | None = None,
        corpus: Sequence[KnowledgeEntry] = KNOWLEDGE_BASE,
    ) -> None:
        self.store = store
        self.llm = llm
        self.policy = policy or TurnPolicy.from_settings()
        self.corpus = corpus

    async def run_conversation_turn(
        self,
        chat_id: str,
        user_message: str,
        history: Sequence[HistoryTurn],
    ) -> TurnResult | TurnAborted:
        """Answer ``user_message`` unless an admin has taken the chat over.

        ``history`` holds the turns before ``user_message``. Raises
        :class:`GenerationError` when no reply could be produced (nothing is
        stored) and :class:`PersistenceError` when the reply could not be
        stored.
        """

        loop = asyncio.get_running_loop()
        timeout = self.policy.turn_timeout_s
        deadline = loop.time() + timeout if timeout else None

        with chat_context(chat_id), trace_span("turn", history=len(history)) as span:
            chat = await self.store.get_chat(chat_id)
            if chat is None:
                raise NotFoundError(f"Chat {chat_id} not found")
            if chat.admin_taken_over:
                logger.info("Admin has taken over chat {}; skipping AI turn", chat_id)
                span["outcome"] = "aborted"
                return TurnAborted(chat_id=chat_id)

            sources = search_knowledge_base(user_message, self.corpus, self.policy.max_sources)
            tracepoint("turn.sources", ids=[entry.id for entry in sources])

            try:
                reply, signals = await self._before_deadline(
                    deadline, self._generate(sources, history, user_message)
                )
            except asyncio.TimeoutError as exc:
                raise GenerationError("Turn deadline expired before a reply was generated") from exc

            meta: Dict[str, Any] = {
                "sources": [entry.id for entry in sources],
                "escalationSuggested": signals.escalation_suggested,
                "bookingSuggested": signals.booking_suggested,
                "model": reply.model,
            }

            judge_task = asyncio.create_task(self._judge(user_message, history))
            try:
                stored = await self.store.append_turn(chat_id, "bot", reply.content, meta)
            except BaseException as exc:
                judge_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await judge_task
                if isinstance(exc, Exception) and not isinstance(exc, PersistenceError):
                    raise PersistenceError("Failed to store the assistant reply") from exc
                raise

            try:
                judgment = await self._before_deadline(deadline, judge_task)
            except asyncio.TimeoutError:
                logger.warning("Turn deadline expired during escalation analysis for chat {}", chat_id)
                judgment = Judgment(
                    verdict=escalation_judge.fallback_verdict(),
                    prompt="",
                    completion=None,
                    parsed=False,
                )

            verdict = judgment.verdict
            escalated = False
            if self.policy.should_escalate(verdict):
                logger.info(
                    "Escalation detected for chat {} (confidence: {})", chat_id, verdict.confidence
                )
                escalated = await self._mark_escalated(chat_id)

            await record_llm_call(
                self.store,
                chat_id=chat_id,
                message_id=stored.id,
                model=reply.model,
                prompt=reply.system_prompt,
                context={
                    "userMessage": user_message,
                    "historyLength": len(history),
                    "knowledgeBaseSources": len(sources),
                },
                response=reply.content,
                usage=reply.usage,
            )
            if judgment.completion is not None:
                await record_llm_call(
                    self.store,
                    chat_id=chat_id,
                    message_id=stored.id,
                    model=judgment.completion.model,
                    prompt=judgment.prompt,
                    context={"userMessage": user_message, "conversationLength": len(history)},
                    response=judgment.completion.content,
                    usage=judgment.completion.usage,
                )

            span.update(outcome="completed", escalated=escalated, verdict_parsed=judgment.parsed)
            return TurnResult(
                message=BotMessage(id=stored.id, content=reply.content, meta=meta),
                sources=list(sources),
                analysis=TurnAnalysis(
                    escalation_suggested=signals.escalation_suggested,
                    booking_suggested=signals.booking_suggested,
                    escalation_analysis=verdict,
                ),
            )

    async def analyze_escalation(
        self,
        chat_id: str,
        message_id: str,
        user_message: str,
        history: Sequence[HistoryTurn],
    ) -> EscalationAnalysisResult:
        """Run the escalation judge alone and apply the confidence policy."""

        with chat_context(chat_id), trace_span("escalation_analysis") as span:
            chat = await self.store.get_chat(chat_id)
            if chat is None:
                raise NotFoundError(f"Chat {chat_id} not found")

            judgment = await self._judge(user_message, history)
            if judgment.completion is None:
                raise ExternalServiceError("Escalation analysis is unavailable")

            verdict = judgment.verdict
            updated = False
            if self.policy.should_escalate(verdict):
                updated = await self._mark_escalated(chat_id)

            await record_llm_call(
                self.store,
                chat_id=chat_id,
                message_id=message_id,
                model=judgment.completion.model,
                prompt=judgment.prompt,
                context={"userMessage": user_message, "conversationLength": len(history)},
                response=judgment.completion.content,
                usage=judgment.completion.usage,
            )
            span.update(escalated=updated, verdict_parsed=judgment.parsed)
            return EscalationAnalysisResult(analysis=verdict, chat_status_updated=updated)

    # ------------------------------------------------------------------ phases
    async def _generate(
        self,
        sources: Sequence[KnowledgeEntry],
        history: Sequence[HistoryTurn],
        user_message: str,
    ) -> tuple[GeneratedReply, FastPathSignals]:
        async def _signals() -> FastPathSignals:
            return analyze_conversation(
                user_message, history, booking_history_threshold=self.policy.booking_history_threshold
            )

        reply, signals = await asyncio.gather(
            generate_reply(
                self.llm,
                sources,
                history,
                user_message,
                window=self.policy.generation_history_window,
                max_tokens=self.policy.reply_max_tokens,
                temperature=self.policy.reply_temperature,
            ),
            _signals(),
        )
        return reply, signals

    async def _judge(self, user_message: str, history: Sequence[HistoryTurn]) -> Judgment:
        return await judge_escalation(
            self.llm,
            user_message,
            history,
            history_window=self.policy.judge_history_window,
            max_tokens=self.policy.judge_max_tokens,
            temperature=self.policy.judge_temperature,
        )

    async def _mark_escalated(self, chat_id: str) -> bool:
        try:
            updated = await self.store.update_chat(chat_id, status="escalated", last_message_at=_utcnow())
        except PersistenceError as exc:
            logger.error("Failed to update chat {} status to escalated: {}", chat_id, exc)
            return False
        return updated is not None

    @staticmethod
    async def _before_deadline(deadline: float | None, awaitable: Awaitable[T]) -> T:
        if deadline is None:
            return await awaitable
        remaining = deadline - asyncio.get_running_loop().time()
        return await asyncio.wait_for(awaitable, timeout=max(remaining, 0.0))


def history_from_turns(turns: Sequence[Any]) -> List[HistoryTurn]:
    """Project stored turns onto the role/content pairs the pipeline consumes."""

    return [HistoryTurn(role=turn.role, content=turn.content) for turn in turns]
