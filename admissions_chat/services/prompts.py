"""Prompt templates for reply generation, escalation analysis and chat titles."""

from __future__ import annotations

from typing import Sequence

from admissions_chat.config import settings
from admissions_chat.domain.schemas import HistoryTurn, KnowledgeEntry

_GUIDELINES = """IMPORTANT GUIDELINES:
- Always be helpful, professional, and friendly
- Use the knowledge base information provided below to answer questions accurately
- If you don't have specific information in the knowledge base, politely say so and suggest they contact the admissions office
- For complex queries that might need human attention, suggest escalation
- For booking requests or detailed personal consultation needs, suggest booking a call
- Keep responses concise but informative
- Always cite your sources when using knowledge base information
"""

ESCALATION_FACTORS: Sequence[str] = (
    "Student expressions of frustration, anger, or dissatisfaction",
    "Complex issues that may require human expertise",
    "Complaints about services or processes",
    "Requests that seem beyond AI capabilities",
    "Technical problems that haven't been resolved",
    "Urgent or time-sensitive matters",
    "Emotional distress or personal situations",
    "Requests for human contact or speaking to someone",
)

_VERDICT_FORMAT = """Respond in JSON format only:
{
  "escalationNeeded": boolean,
  "confidence": number (0-1),
  "reasons": ["reason1", "reason2"],
  "suggestedResponse": "Brief suggestion for next steps"
}"""


def build_system_prompt(entries: Sequence[KnowledgeEntry], *, college_name: str | None = None) -> str:
    """System prompt with the guidelines and, when present, the retrieved entries."""

    college = college_name or settings.college_name
    prompt = (
        f"You are a helpful AI assistant for {college}, a modern educational institution in London. "
        "You help students with questions about courses, admissions, fees, and general university information.\n\n"
        f"{_GUIDELINES}\n"
    )
    if entries:
        prompt += "\n\nKNOWLEDGE BASE INFORMATION:\n"
        for index, entry in enumerate(entries, start=1):
            prompt += f"\n{index}. {entry.title} (ID: {entry.id})\n{entry.text}\n"
        prompt += "\nPlease reference the appropriate knowledge base entries when answering questions.\n"
    return prompt


def build_escalation_prompt(user_message: str, history: Sequence[HistoryTurn], *, window: int = 5) -> str:
    recent = list(history)[-window:] if window > 0 else []
    history_context = "\n".join(f"{turn.role}: {turn.content}" for turn in recent)
    factors = "\n".join(f"{number}. {factor}" for number, factor in enumerate(ESCALATION_FACTORS, start=1))
    return (
        "You are an AI assistant helping to analyze student support conversations for escalation needs.\n\n"
        "Analyze the following conversation context and latest user message to determine if the situation "
        "requires escalation to human support.\n\n"
        f"CONVERSATION HISTORY (last {window} messages):\n{history_context}\n\n"
        f"LATEST USER MESSAGE:\n{user_message}\n\n"
        f"Consider these factors for escalation:\n{factors}\n\n"
        "IMPORTANT: Only suggest escalation if there are genuine signs of need for human intervention. "
        "Don't escalate for simple questions that can be handled by AI.\n\n"
        f"{_VERDICT_FORMAT}"
    )


def build_title_prompt(first_message: str) -> str:
    return (
        "Generate a short, descriptive title (maximum 6 words) for a student support chat "
        "that starts with the following message. Respond with the title only, without quotes "
        "or punctuation at the end.\n\n"
        f"Message: {first_message}"
    )
