"""Synchronous AI endpoints: a full conversation turn and standalone escalation analysis."""

from __future__ import annotations

from typing import Any, Dict, Union

from fastapi import APIRouter, Depends

from admissions_chat.deps import get_chat_store, require_role
from admissions_chat.domain.schemas import (
    AIChatReq,
    EscalationAnalysisResult,
    EscalationReq,
    TurnAborted,
    TurnResult,
)
from admissions_chat.ports.chat_store import SqlChatStore
from admissions_chat.ports.llm import LanguageModel
from admissions_chat.ports.responder import get_language_model
from admissions_chat.services import chat_history
from admissions_chat.services.turn_orchestrator import TurnOrchestrator

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/chat", response_model=Union[TurnResult, TurnAborted])
async def ai_chat(
    req: AIChatReq,
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
    llm: LanguageModel = Depends(get_language_model),
) -> Union[TurnResult, TurnAborted]:
    """Run one AI turn and return it; an admin takeover yields ``aborted: true``."""

    await chat_history.require_chat(store, req.chat_id, user)
    orchestrator = TurnOrchestrator(store=store, llm=llm)
    return await orchestrator.run_conversation_turn(req.chat_id, req.user_message, req.history)


@router.post("/escalation", response_model=EscalationAnalysisResult)
async def ai_escalation(
    req: EscalationReq,
    user: Dict[str, Any] = Depends(require_role("student", "admin")),
    store: SqlChatStore = Depends(get_chat_store),
    llm: LanguageModel = Depends(get_language_model),
) -> EscalationAnalysisResult:
    await chat_history.require_chat(store, req.chat_id, user)
    orchestrator = TurnOrchestrator(store=store, llm=llm)
    return await orchestrator.analyze_escalation(req.chat_id, req.message_id, req.user_message, req.history)
