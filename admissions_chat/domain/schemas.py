"""Pydantic schemas for API requests, responses and turn results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictStr

ChatStatus = Literal["open", "escalated", "closed", "call_booked"]
MessageRole = Literal["student", "bot", "admin"]
UserRole = Literal["student", "admin"]

CHAT_STATUSES: Tuple[str, ...] = ("open", "escalated", "closed", "call_booked")


class KnowledgeEntry(BaseModel):
    """Static FAQ-like record used to ground replies."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    keywords: Tuple[str, ...] = ()
    text: str


class HistoryTurn(BaseModel):
    """Minimal role/content pair passed to the orchestrator as prior context."""

    role: MessageRole
    content: str


class ConversationTurn(BaseModel):
    """Stored message within a chat."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    role: MessageRole
    content: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    turn_index: int = 0
    created_at: datetime


class ChatSnapshot(BaseModel):
    """Point-in-time view of a chat row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    status: ChatStatus
    tags: str | None = None
    admin_taken_over: bool = False
    created_at: datetime
    last_message_at: datetime | None = None


class EscalationVerdict(BaseModel):
    """Escalation judgment produced by the language model.

    Parsed from the camelCase JSON the model is asked to return; serialised
    in snake_case like the rest of the API.

    All four fields are required and no value is coerced: a string or boolean
    confidence is rejected.
    """

    model_config = ConfigDict(populate_by_name=True)

    escalation_needed: StrictBool = Field(
        validation_alias=AliasChoices("escalationNeeded", "escalation_needed"),
    )
    confidence: StrictFloat = Field(ge=0.0, le=1.0)
    reasons: List[StrictStr]
    suggested_response: StrictStr = Field(
        validation_alias=AliasChoices("suggestedResponse", "suggested_response"),
    )


class TurnAnalysis(BaseModel):
    escalation_suggested: bool
    booking_suggested: bool
    escalation_analysis: EscalationVerdict | None = None


class BotMessage(BaseModel):
    id: str
    role: Literal["bot"] = "bot"
    content: str
    meta: Dict[str, Any] = Field(default_factory=dict)


class TurnResult(BaseModel):
    """Outcome of a completed AI turn."""

    aborted: Literal[False] = False
    message: BotMessage
    sources: List[KnowledgeEntry] = Field(default_factory=list)
    analysis: TurnAnalysis


class TurnAborted(BaseModel):
    """AI turn skipped because an admin has taken over the chat."""

    aborted: Literal[True] = True
    chat_id: str
    reason: Literal["admin_takeover"] = "admin_takeover"


class EscalationAnalysisResult(BaseModel):
    analysis: EscalationVerdict
    chat_status_updated: bool


# ---------------------------------------------------------------------------
# HTTP payloads


class ChatCreateReq(BaseModel):
    title: str | None = None
    tags: str | None = None


class ChatPatchReq(BaseModel):
    status: ChatStatus | None = None
    title: str | None = Field(default=None, max_length=255)
    tags: str | None = None
    admin_taken_over: bool | None = None


class ChatListResp(BaseModel):
    chats: List[ChatSnapshot]
    count: int


class MessageCreateReq(BaseModel):
    content: str = Field(min_length=1)
    meta: Dict[str, Any] | None = None


class MessageCreateResp(BaseModel):
    message: ConversationTurn
    ai_turn_queued: bool = False


class MessageListResp(BaseModel):
    chat_id: str
    messages: List[ConversationTurn]
    count: int


class AIChatReq(BaseModel):
    chat_id: str
    user_message: str = Field(min_length=1)
    history: List[HistoryTurn] = Field(default_factory=list)


class EscalationReq(BaseModel):
    chat_id: str
    message_id: str
    user_message: str = Field(min_length=1)
    history: List[HistoryTurn] = Field(default_factory=list)


class AdminChatSummary(ChatSnapshot):
    """Chat enriched with owner and activity details for the admin dashboard."""

    user_name: str | None = None
    user_email: str | None = None
    message_count: int = 0
    last_message_preview: str | None = None
    last_message_role: MessageRole | None = None


class AdminChatListResp(BaseModel):
    chats: List[AdminChatSummary]
    count: int


class AuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    message_id: str | None = None
    model: str | None = None
    prompt: str | None = None
    context: Dict[str, Any] = Field(default_factory=dict)
    response: str | None = None
    usage: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class AuditResp(BaseModel):
    items: List[AuditEntry]


class BookingCreateReq(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=1, max_length=320)
    scheduled_time: datetime = Field(validation_alias=AliasChoices("scheduled_time", "timeISO"))


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    name: str
    email: str
    scheduled_at: datetime
    created_at: datetime


class BookingResp(BaseModel):
    booking: BookingOut


class BookingListResp(BaseModel):
    bookings: List[BookingOut]
    count: int
