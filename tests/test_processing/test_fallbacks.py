"""Tests for the deterministic fallbacks — no mocks needed."""

import pytest

from email_ai.mcp.types import Message
from email_ai.processing.fallbacks import (
    SUMMARY_FALLBACK_CHARS,
    basic_cleanup,
    detect_language_by_script,
    keyword_classify,
    keyword_prioritize,
    sender_display_name,
    template_draft,
    truncate_summary,
)
from email_ai.processing.types import Category, Priority


def make_message(**kwargs: object) -> Message:
    defaults: dict[str, object] = dict(
        id="msg_1",
        thread_id="thread_1",
        sender="Alice Smith <alice@example.com>",
        subject="Project update",
        snippet="",
    )
    return Message(**{**defaults, **kwargs})  # type: ignore[arg-type]


# ── keyword_classify ───────────────────────────────────────────────────────────


class TestKeywordClassify:
    def test_sale_with_unsubscribe_is_advertisement(self) -> None:
        result = keyword_classify(subject="50% off sale - unsubscribe now", body="")
        assert result.category is Category.ADVERTISEMENT

    def test_question_is_respond(self) -> None:
        result = keyword_classify(subject="Can you review this by Friday?", body="")
        assert result.category is Category.RESPOND

    def test_no_reply_receipt_is_notification(self) -> None:
        result = keyword_classify(
            subject="", sender="no-reply@service.com", body="receipt confirmation"
        )
        assert result.category is Category.NOTIFICATION

    def test_advertisement_tier_beats_response_tier(self) -> None:
        result = keyword_classify(subject="Can you believe this discount?")
        assert result.category is Category.ADVERTISEMENT

    def test_notification_tier_beats_response_tier(self) -> None:
        result = keyword_classify(subject="Security alert: please verify", body="")
        assert result.category is Category.NOTIFICATION

    def test_notification_keywords_in_body_only_do_not_count(self) -> None:
        result = keyword_classify(subject="Hello", sender="bob@example.com", body="see the alert")
        assert result.category is Category.NOTIFICATION  # default, not tier 2
        assert result.summary == "see the alert"

    def test_matching_is_case_insensitive(self) -> None:
        assert keyword_classify(subject="HUGE PROMOTION").category is Category.ADVERTISEMENT

    def test_nothing_matches_defaults_to_notification(self) -> None:
        result = keyword_classify(subject="Weekly digest", sender="team@example.com", body="Hi")
        assert result.category is Category.NOTIFICATION


# ── keyword_prioritize ─────────────────────────────────────────────────────────


class TestKeywordPrioritize:
    @pytest.mark.parametrize(
        "keyword", ["urgent", "ASAP", "immediately", "critical", "emergency", "deadline", "today"]
    )
    def test_urgency_keyword_in_subject_is_high(self, keyword: str) -> None:
        assert keyword_prioritize(subject=f"Re: {keyword} contract") is Priority.HIGH

    def test_urgency_keyword_in_summary_is_high(self) -> None:
        result = keyword_prioritize(summary="Bob needs sign-off before the deadline.")
        assert result is Priority.HIGH

    def test_urgency_beats_low_category(self) -> None:
        result = keyword_prioritize(subject="Urgent: password expires", category=Category.NOTIFICATION)
        assert result is Priority.HIGH

    @pytest.mark.parametrize("category", [Category.NOTIFICATION, Category.ADVERTISEMENT])
    def test_automated_categories_are_low(self, category: Category) -> None:
        assert keyword_prioritize(subject="Weekly digest", category=category) is Priority.LOW

    def test_question_is_medium(self) -> None:
        result = keyword_prioritize(subject="Lunch next week?", category=Category.RESPOND)
        assert result is Priority.MEDIUM

    def test_default_is_medium(self) -> None:
        assert keyword_prioritize() is Priority.MEDIUM


# ── truncate_summary ───────────────────────────────────────────────────────────


class TestTruncateSummary:
    def test_short_text_unchanged(self) -> None:
        assert truncate_summary("Short body.") == "Short body."

    def test_long_text_cut_without_ellipsis(self) -> None:
        result = truncate_summary("a" * (SUMMARY_FALLBACK_CHARS + 50))
        assert result == "a" * SUMMARY_FALLBACK_CHARS

    def test_body_kept_verbatim(self) -> None:
        body = "<p>Meeting moved to <b>3pm</b></p>\n\n  Thanks,\n  Bob"
        assert truncate_summary(body) == body

    def test_cut_counts_raw_characters(self) -> None:
        body = "<div>" + "  x\n" * 200 + "</div>"
        assert truncate_summary(body) == body[:SUMMARY_FALLBACK_CHARS]

    def test_none_gives_empty_string(self) -> None:
        assert truncate_summary(None) == ""


# ── template_draft / sender_display_name ───────────────────────────────────────


class TestTemplateDraft:
    def test_uses_display_name_and_subject(self) -> None:
        draft = template_draft(make_message(subject="Budget"))
        assert "Alice Smith" in draft
        assert '"Budget"' in draft

    def test_local_part_when_no_display_name(self) -> None:
        assert sender_display_name("john.doe@example.com") == "john doe"

    def test_unknown_sender(self) -> None:
        assert sender_display_name("") == "there"
        assert sender_display_name(None) == "there"


# ── detect_language_by_script ──────────────────────────────────────────────────


class TestDetectLanguageByScript:
    def test_plain_ascii_is_english(self) -> None:
        assert detect_language_by_script("Hello, how are you?") == "en"

    def test_cyrillic_is_russian(self) -> None:
        assert detect_language_by_script("Привет, как дела?") == "ru"

    def test_spanish_marks(self) -> None:
        assert detect_language_by_script("¿Podemos hablar mañana?") == "es"

    def test_german_eszett(self) -> None:
        assert detect_language_by_script("Die Straße ist groß") == "de"

    def test_han_characters_are_chinese(self) -> None:
        assert detect_language_by_script("你好") == "zh"

    def test_kana_is_japanese(self) -> None:
        assert detect_language_by_script("こんにちは") == "ja"

    def test_none_is_english(self) -> None:
        assert detect_language_by_script(None) == "en"


# ── basic_cleanup ──────────────────────────────────────────────────────────────


class TestBasicCleanup:
    def test_collapses_spaces_and_blank_lines(self) -> None:
        assert basic_cleanup("Hi  there.\n\n\n\nBye  ") == "Hi there.\n\nBye"

    def test_adds_space_after_sentence_end(self) -> None:
        assert basic_cleanup("Thanks.See you") == "Thanks. See you"
