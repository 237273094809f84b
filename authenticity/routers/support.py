import logging

from fastapi import APIRouter

from authenticity.schemas.support import ChatReply, ChatRequest
from authenticity.services.support_classifier import (
    ESCALATION_MESSAGE,
    process_chat_query,
    should_escalate_to_human,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/support/chat", response_model=ChatReply)
async def support_chat(request: ChatRequest):
    """Answer a support message and decide whether a human should take over."""
    response = process_chat_query(request.message, request.context)
    escalate = should_escalate_to_human(response, request.history)
    if escalate:
        logger.info(
            "Escalating support conversation (incident=%s, turns=%d)",
            response.incident_type or "-", len(request.history),
        )
    return ChatReply(
        **response.model_dump(),
        escalate=escalate,
        escalation_message=ESCALATION_MESSAGE if escalate else None,
    )
