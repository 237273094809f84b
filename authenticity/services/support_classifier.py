"""Support chat intent matching and human escalation."""

import logging
import re

from authenticity.schemas.support import (
    ChatContext,
    ChatMessage,
    ChatResponse,
    SuggestedAction,
)

logger = logging.getLogger(__name__)

KNOWLEDGE_BASE = {
    "how_to_verify": (
        "To verify a product, scan the QR code using the verification page. "
        "The system will analyze the product and provide an authenticity score."
    ),
    "what_is_counterfeit_score": (
        "The counterfeit score (0-100) indicates product authenticity. Higher scores mean "
        "more genuine products. Scores above 80 are considered genuine."
    ),
    "verification_failed": (
        "If verification fails, check: 1) QR code is not damaged, 2) Product is properly "
        "registered, 3) QR code matches the product. Contact support if issues persist."
    ),
    "fake_product": (
        "If you suspect a fake product, report it through the support ticket system. "
        "Our team will investigate and take appropriate action."
    ),
    "product_not_found": (
        "If a product is not found, it may not be registered in the system. "
        "Verify you're scanning the correct QR code for the product."
    ),
    "registration_process": (
        "To register products, go to Products > New Product. Fill in product details, "
        "upload images, and the system will generate encrypted QR codes."
    ),
    "batch_import": (
        "You can import multiple products via CSV/Excel using the Batch Import feature. "
        "Download the template first to ensure correct format."
    ),
}

_RAW_INTENT_PATTERNS = {
    "verification_help": [r"how.*verify", r"verify.*product", r"scan.*qr", r"authentication"],
    "product_question": [r"what.*product", r"product.*info", r"details", r"specification"],
    "technical_issue": [r"not.*work", r"error", r"failed", r"broken", r"issue"],
    "fraud_report": [r"fake", r"counterfeit", r"suspicious", r"fraud", r"illegal"],
    "registration": [r"register", r"create.*product", r"add.*product", r"import"],
    "scoring": [r"score", r"rating", r"authenticity", r"genuine", r"fake.*detect"],
}

# Checked in order; the first intent with a matching pattern wins
INTENT_PATTERNS = {
    intent: [re.compile(p, re.IGNORECASE) for p in patterns]
    for intent, patterns in _RAW_INTENT_PATTERNS.items()
}

FRAUD_KEYWORDS = re.compile(r"fraud|fake|counterfeit|suspicious", re.IGNORECASE)
SCORE_KEYWORDS = re.compile(r"score|rating|authenticity", re.IGNORECASE)
BATCH_KEYWORDS = re.compile(r"batch|import|csv|excel", re.IGNORECASE)
COMPLEX_TECHNICAL = re.compile(r"error|failed|broken", re.IGNORECASE)

ESCALATION_MESSAGE = (
    "This query has been flagged for human review. "
    "Our support team will contact you shortly."
)


def detect_intent(message: str) -> str | None:
    for intent, patterns in INTENT_PATTERNS.items():
        if any(p.search(message) for p in patterns):
            return intent
    return None


def _fraud_response() -> ChatResponse:
    return ChatResponse(
        response=(
            "Thank you for reporting this. We take fraud reports seriously. "
            "I'm flagging this for immediate human review. "
            "Our team will investigate and contact you shortly."
        ),
        confidence=0.95,
        suggested_actions=[
            SuggestedAction(
                label="Create Support Ticket",
                action="create_ticket",
                url="/support/tickets/new?priority=high&type=fraud_report",
            )
        ],
        flagged=True,
        incident_type="fraud_report",
    )


def process_chat_query(message: str, context: ChatContext | None = None) -> ChatResponse:
    """Match a support message to an intent and answer from the knowledge base.

    Fraud language is always flagged for human review, whatever intent
    matched first.
    """
    text = message.lower().strip()
    intent = detect_intent(text)

    if intent == "fraud_report" or FRAUD_KEYWORDS.search(text):
        logger.info("Support message flagged as fraud report (user=%s)", context.user_id if context else "-")
        return _fraud_response()

    responses: list[str] = []
    actions: list[SuggestedAction] = []
    flagged = False
    incident_type = None

    if intent == "verification_help":
        responses.append(KNOWLEDGE_BASE["how_to_verify"])
        responses.append("You can access the verification page from the main dashboard.")
        actions.append(SuggestedAction(label="Go to Verification Page", action="navigate", url="/verify"))
        confidence = 0.9
        incident_type = "verification_issue"
    elif intent == "product_question":
        if SCORE_KEYWORDS.search(text):
            responses.append(KNOWLEDGE_BASE["what_is_counterfeit_score"])
        else:
            responses.append("I can help you with product information. What specific details do you need?")
        confidence = 0.75
        incident_type = "product_question"
    elif intent == "technical_issue":
        responses.append(KNOWLEDGE_BASE["verification_failed"])
        responses.append("If the problem persists, please create a support ticket for technical assistance.")
        actions.append(
            SuggestedAction(
                label="Create Support Ticket",
                action="create_ticket",
                url="/support/tickets/new?type=technical",
            )
        )
        confidence = 0.8
        incident_type = "technical_support"
        flagged = bool(COMPLEX_TECHNICAL.search(text))
    elif intent == "registration":
        key = "batch_import" if BATCH_KEYWORDS.search(text) else "registration_process"
        responses.append(KNOWLEDGE_BASE[key])
        actions.append(SuggestedAction(label="Register Product", action="navigate", url="/products/new"))
        confidence = 0.85
    elif intent == "scoring":
        responses.append(KNOWLEDGE_BASE["what_is_counterfeit_score"])
        confidence = 0.85
    else:
        key = next((k for k in KNOWLEDGE_BASE if k.replace("_", " ") in text), None)
        if key:
            responses.append(KNOWLEDGE_BASE[key])
        else:
            responses.extend([
                "I'm here to help with product verification, registration, and fraud detection.",
                "You can ask me about:",
                "- How to verify products",
                "- Product registration process",
                "- Understanding counterfeit scores",
                "- Reporting suspicious products",
            ])
        confidence = 0.6

    if context:
        if context.recent_verifications and context.recent_verifications > 0:
            actions.append(
                SuggestedAction(label="View Verification History", action="navigate", url="/verify/history")
            )
        if context.product_questions and context.product_questions > 2:
            responses.append("For detailed product information, check the Products page.")
            actions.append(SuggestedAction(label="View Products", action="navigate", url="/products"))

    return ChatResponse(
        response=" ".join(responses),
        confidence=confidence,
        suggested_actions=actions or None,
        flagged=flagged,
        incident_type=incident_type,
    )


def should_escalate_to_human(response: ChatResponse, history: list[ChatMessage]) -> bool:
    """Hand the conversation to a human agent?

    Flagged responses always escalate. So does a user repeating the same
    question three times running, and a low-confidence answer in a
    conversation that is already a few turns long.
    """
    if response.flagged:
        return True

    recent_user_messages = [m.content.strip().lower() for m in history if m.role == "user"][-3:]
    if len(recent_user_messages) >= 3 and len(set(recent_user_messages)) == 1:
        return True

    return response.confidence < 0.6 and len(history) > 2


def generate_conversation_summary(messages: list[ChatMessage]) -> str:
    """Plain-text transcript summary attached to support tickets."""
    user_messages = [m.content for m in messages if m.role == "user"]
    assistant_messages = [m.content for m in messages if m.role == "assistant"]

    lines = [f"Conversation Summary ({len(messages)} messages):", "", "User Queries:"]
    lines += [f"{i}. {m}" for i, m in enumerate(user_messages, 1)]
    lines += ["", "Assistant Responses:"]
    lines += [f"{i}. {m}" for i, m in enumerate(assistant_messages, 1)]
    lines.append("")

    if any("flag" in m for m in assistant_messages):
        lines.append("This conversation was flagged for human review.")

    return "\n".join(lines) + "\n"
