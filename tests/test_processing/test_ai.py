"""Tests for the Anthropic-backed stages — the API client is mocked."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from anthropic.types import TextBlock, ToolUseBlock

from email_ai.mcp.types import Message
from email_ai.processing.ai import (
    AnthropicClassifier,
    AnthropicLabelMatcher,
    AnthropicPrioritizer,
    AnthropicSummarizer,
    AnthropicTranslator,
    _parse_classification,
    anthropic_capabilities,
)
from email_ai.processing.capabilities import CapabilityError
from email_ai.processing.prompts import BODY_CHAR_LIMIT, build_draft_messages
from email_ai.processing.types import Category, CustomLabel, MessageMetadata, Priority


# ── Helpers ────────────────────────────────────────────────────────────────────


def make_response(*blocks: object, stop_reason: str = "end_turn") -> MagicMock:
    response = MagicMock()
    response.content = list(blocks)
    response.stop_reason = stop_reason
    return response


def text_block(text: str) -> TextBlock:
    return TextBlock(type="text", text=text)


def tool_block(name: str, data: dict[str, object]) -> ToolUseBlock:
    return ToolUseBlock(type="tool_use", id="toolu_test_123", name=name, input=data)


def make_client(*responses: object) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(side_effect=list(responses))
    return client


def make_label(name: str, prompt: str = "criteria") -> CustomLabel:
    return CustomLabel(id=f"id_{name}", name=name, prompt=prompt)


METADATA = MessageMetadata(subject="Flight itinerary", sender="airline@example.com")


# ── Text stages ────────────────────────────────────────────────────────────────


class TestSummarizer:
    async def test_returns_first_text_block(self) -> None:
        client = make_client(make_response(text_block("  Alice wants a budget review.  ")))
        summary = await AnthropicSummarizer(client).summarize("long body")
        assert summary == "Alice wants a budget review."

    async def test_empty_response_raises(self) -> None:
        client = make_client(make_response(text_block("   ")))
        with pytest.raises(CapabilityError):
            await AnthropicSummarizer(client).summarize("body")

    async def test_api_error_propagates(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=RuntimeError("overloaded"))
        with pytest.raises(RuntimeError):
            await AnthropicSummarizer(client).summarize("body")


# ── Classifier ─────────────────────────────────────────────────────────────────


class TestClassifier:
    async def test_forces_classification_tool(self) -> None:
        client = make_client(
            make_response(tool_block("record_classification", {"category": "Respond", "summary": "s"}))
        )
        result = await AnthropicClassifier(client).classify("summary", METADATA)

        assert result.category is Category.RESPOND
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "record_classification"}

    async def test_missing_tool_call_raises(self) -> None:
        client = make_client(make_response(text_block("Respond")))
        with pytest.raises(CapabilityError):
            await AnthropicClassifier(client).classify("summary", METADATA)

    def test_invalid_category_coerced_to_notification(self) -> None:
        result = _parse_classification({"category": "Urgent!!", "summary": "x"})
        assert result.category is Category.NOTIFICATION

    def test_missing_summary_is_empty(self) -> None:
        assert _parse_classification({"category": "Advertisement"}).summary == ""


# ── Custom label matcher ───────────────────────────────────────────────────────


class TestLabelMatcher:
    async def test_one_call_per_label(self) -> None:
        client = MagicMock()

        async def create(**kwargs: object) -> MagicMock:
            system = str(kwargs["system"])
            return make_response(text_block("YES" if '"Travel"' in system else "NO"))

        client.messages.create = AsyncMock(side_effect=create)
        matched = await AnthropicLabelMatcher(client).match_all(
            "Your flight to Paris", METADATA, [make_label("Travel"), make_label("Finance")]
        )

        assert matched == {"Travel"}
        assert client.messages.create.call_count == 2

    async def test_failed_label_check_is_skipped(self) -> None:
        client = MagicMock()

        async def create(**kwargs: object) -> MagicMock:
            if '"Broken"' in str(kwargs["system"]):
                raise RuntimeError("timeout")
            return make_response(text_block("yes, it matches"))

        client.messages.create = AsyncMock(side_effect=create)
        matched = await AnthropicLabelMatcher(client).match_all(
            "s", METADATA, [make_label("Broken"), make_label("Travel")]
        )
        assert matched == {"Travel"}

    async def test_no_labels_makes_no_calls(self) -> None:
        client = make_client()
        assert await AnthropicLabelMatcher(client).match_all("s", METADATA, []) == set()
        client.messages.create.assert_not_called()

    async def test_cancellation_is_not_swallowed(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await AnthropicLabelMatcher(client).match_all("s", METADATA, [make_label("Travel")])


# ── Prioritizer ────────────────────────────────────────────────────────────────


class TestPrioritizer:
    @pytest.mark.parametrize(
        "answer, expected",
        [
            ("High", Priority.HIGH),
            ("medium", Priority.MEDIUM),
            ("Low.", Priority.LOW),
            ("Priority: HIGH", Priority.HIGH),
            ("Not sure", Priority.MEDIUM),
        ],
    )
    async def test_answer_parsed_by_keyword(self, answer: str, expected: Priority) -> None:
        client = make_client(make_response(text_block(answer)))
        result = await AnthropicPrioritizer(client).prioritize("s", METADATA, Category.RESPOND)
        assert result is expected

    async def test_prompt_carries_metadata_and_category(self) -> None:
        client = make_client(make_response(text_block("Low")))
        await AnthropicPrioritizer(client).prioritize(
            "Itinerary attached", METADATA, Category.RESPOND
        )

        kwargs = client.messages.create.call_args.kwargs
        content = kwargs["messages"][0]["content"]
        assert "Flight itinerary" in content
        assert "airline@example.com" in content
        assert "Category: Respond" in content
        assert "Itinerary attached" in content
        assert "High" in kwargs["system"]

    async def test_empty_response_raises(self) -> None:
        client = make_client(make_response(text_block("")))
        with pytest.raises(CapabilityError):
            await AnthropicPrioritizer(client).prioritize("s", METADATA, Category.RESPOND)


# ── Translator ─────────────────────────────────────────────────────────────────


class TestTranslator:
    async def test_confident_detection(self) -> None:
        client = make_client(
            make_response(tool_block("record_language", {"language": "ES", "confidence": 0.95}))
        )
        assert await AnthropicTranslator(client).detect_language("Hola") == "es"

    async def test_low_confidence_falls_back_to_script(self) -> None:
        client = make_client(
            make_response(tool_block("record_language", {"language": "fr", "confidence": 0.3}))
        )
        assert await AnthropicTranslator(client).detect_language("Привет") == "ru"

    async def test_same_language_translation_makes_no_call(self) -> None:
        client = make_client()
        assert await AnthropicTranslator(client).translate("Hi", "en", "en") == "Hi"
        client.messages.create.assert_not_called()

    async def test_translate_returns_model_text(self) -> None:
        client = make_client(make_response(text_block("Hola")))
        assert await AnthropicTranslator(client).translate("Hello", "en", "es") == "Hola"


# ── Prompts / wiring ───────────────────────────────────────────────────────────


class TestDraftPrompt:
    def test_includes_tone_sender_and_subject(self) -> None:
        message = Message(
            id="m", thread_id="t", sender="alice@example.com", subject="Lunch", snippet="",
            body="Are you free?",
        )
        content = build_draft_messages(message, "friendly")[0]["content"]
        assert "friendly" in content
        assert "alice@example.com" in content
        assert "Are you free?" in content

    def test_long_body_truncated(self) -> None:
        message = Message(
            id="m", thread_id="t", sender="a", subject="s", snippet="",
            body="x" * (BODY_CHAR_LIMIT + 10),
        )
        assert "truncated" in build_draft_messages(message, "concise")[0]["content"]


class TestAnthropicCapabilities:
    def test_all_stages_share_one_client(self) -> None:
        caps = anthropic_capabilities(api_key="test-key")
        assert caps.summarizer._client is caps.classifier._client
        assert caps.proofreader._client is caps.translator._client
        assert caps.prioritizer._client is caps.summarizer._client
