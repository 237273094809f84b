from typing import Literal

from pydantic import BaseModel

IncidentType = Literal["verification_issue", "product_question", "technical_support", "fraud_report"]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: float | None = None


class ChatContext(BaseModel):
    user_id: str | None = None
    user_role: str | None = None
    org_id: str | None = None
    recent_verifications: int | None = None
    product_questions: int | None = None


class SuggestedAction(BaseModel):
    label: str
    action: str
    url: str | None = None


class ChatResponse(BaseModel):
    response: str
    confidence: float
    suggested_actions: list[SuggestedAction] | None = None
    flagged: bool = False
    incident_type: IncidentType | None = None


class ChatRequest(BaseModel):
    message: str
    context: ChatContext | None = None
    history: list[ChatMessage] = []


class ChatReply(ChatResponse):
    escalate: bool = False
    escalation_message: str | None = None
