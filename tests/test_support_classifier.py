import re

import pytest

from authenticity.schemas.support import ChatContext, ChatMessage, ChatResponse
from authenticity.services.support_classifier import (
    INTENT_PATTERNS,
    detect_intent,
    generate_conversation_summary,
    process_chat_query,
    should_escalate_to_human,
)


def user(text):
    return ChatMessage(role="user", content=text)


def assistant(text):
    return ChatMessage(role="assistant", content=text)


class TestProcessChatQuery:
    @pytest.mark.parametrize(
        "message",
        [
            "I think this product is fake",
            "Is this a COUNTERFEIT bottle?",
            "The seller looked suspicious",
            "How do I verify a product? It might be fake",
        ],
    )
    def test_fraud_language_is_always_flagged(self, message):
        response = process_chat_query(message)

        assert response.flagged is True
        assert response.incident_type == "fraud_report"
        assert response.confidence == 0.95
        assert response.suggested_actions[0].action == "create_ticket"

    def test_verification_help(self):
        response = process_chat_query("How do I verify my purchase?")

        assert response.incident_type == "verification_issue"
        assert response.confidence == 0.9
        assert response.flagged is False
        assert response.suggested_actions[0].url == "/verify"

    def test_technical_error_is_flagged(self):
        response = process_chat_query("The scanner keeps showing an error")

        assert response.incident_type == "technical_support"
        assert response.flagged is True

    def test_technical_issue_without_failure_words(self):
        response = process_chat_query("The page does not work on my phone")

        assert response.incident_type == "technical_support"
        assert response.flagged is False

    def test_batch_registration(self):
        response = process_chat_query("Can I register products from a CSV file?")

        assert "Batch Import" in response.response
        assert response.confidence == 0.85

    def test_unknown_topic_falls_back_to_menu(self):
        response = process_chat_query("hello there")

        assert response.confidence == 0.6
        assert "You can ask me about:" in response.response
        assert response.suggested_actions is None

    def test_context_adds_history_shortcuts(self):
        context = ChatContext(user_id="u-1", recent_verifications=4, product_questions=3)

        response = process_chat_query("hello there", context)

        urls = [a.url for a in response.suggested_actions]
        assert urls == ["/verify/history", "/products"]

    def test_intent_order(self):
        assert detect_intent("how to verify") == "verification_help"
        assert detect_intent("what's my rating") == "scoring"
        assert detect_intent("good morning") is None

    def test_intent_patterns_are_compiled_case_insensitive(self):
        assert list(INTENT_PATTERNS) == [
            "verification_help", "product_question", "technical_issue",
            "fraud_report", "registration", "scoring",
        ]
        assert all(p.flags & re.IGNORECASE for patterns in INTENT_PATTERNS.values() for p in patterns)
        assert detect_intent("PLEASE REGISTER MY BRAND") == "registration"


class TestEscalation:
    def test_flagged_always_escalates(self):
        response = ChatResponse(response="", confidence=0.99, flagged=True)
        assert should_escalate_to_human(response, []) is True

    def test_repeated_question_loop(self):
        response = ChatResponse(response="", confidence=0.85)
        history = [
            user("where is my certificate"),
            assistant("..."),
            user("Where is my certificate"),
            assistant("..."),
            user("where is my certificate "),
        ]

        assert should_escalate_to_human(response, history) is True

    def test_two_repeats_are_not_a_loop(self):
        response = ChatResponse(response="", confidence=0.85)
        history = [user("help"), assistant("..."), user("help")]

        assert should_escalate_to_human(response, history) is False

    def test_low_confidence_in_longer_conversation(self):
        response = ChatResponse(response="", confidence=0.5)

        assert should_escalate_to_human(response, [user("a"), assistant("b")]) is False
        assert should_escalate_to_human(response, [user("a"), assistant("b"), user("c")]) is True


class TestConversationSummary:
    def test_summary_lists_both_sides(self):
        messages = [user("is this fake?"), assistant("I'm flagging this for immediate human review.")]

        summary = generate_conversation_summary(messages)

        assert summary.startswith("Conversation Summary (2 messages):")
        assert "1. is this fake?" in summary
        assert "flagged for human review" in summary.splitlines()[-1]

    def test_unflagged_summary(self):
        summary = generate_conversation_summary([user("hi"), assistant("hello")])

        assert "flagged" not in summary
