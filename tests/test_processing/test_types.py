"""Tests for pipeline data types."""

import pytest

from email_ai.processing.types import Category, Draft, Priority, ProcessingResult


class TestCategoryCoerce:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Respond", Category.RESPOND),
            ("respond", Category.RESPOND),
            ("  ADVERTISEMENT \n", Category.ADVERTISEMENT),
            ("Notification", Category.NOTIFICATION),
            (Category.ADVERTISEMENT, Category.ADVERTISEMENT),
        ],
    )
    def test_known_values(self, raw: object, expected: Category) -> None:
        assert Category.coerce(raw) is expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "Urgent", "Respond!", 42, ["Respond"], {}])
    def test_unknown_values_become_notification(self, raw: object) -> None:
        assert Category.coerce(raw) is Category.NOTIFICATION

    def test_values_are_label_names(self) -> None:
        assert [c.value for c in Category] == ["Notification", "Respond", "Advertisement"]


class TestPriorityParse:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("High", Priority.HIGH),
            ("  low\n", Priority.LOW),
            ("Medium priority", Priority.MEDIUM),
            ("high or medium", Priority.HIGH),
            (Priority.LOW, Priority.LOW),
        ],
    )
    def test_levels_found_by_keyword(self, raw: object, expected: Priority) -> None:
        assert Priority.parse(raw) is expected

    @pytest.mark.parametrize("raw", [None, "", "unclear", 1, ["High"]])
    def test_anything_else_is_medium(self, raw: object) -> None:
        assert Priority.parse(raw) is Priority.MEDIUM


class TestProcessingResult:
    def test_ok_result(self) -> None:
        result = ProcessingResult.ok("m1", Category.RESPOND, frozenset({"Travel"}), draft_created=True)
        assert result.succeeded
        assert result.category is Category.RESPOND
        assert result.matched_custom_labels == frozenset({"Travel"})
        assert result.error_reason is None
        assert result.priority is None

    def test_failed_result_has_no_category(self) -> None:
        result = ProcessingResult.failed("m1", "publish failed")
        assert not result.succeeded
        assert result.category is None
        assert result.error_reason == "publish failed"
        assert not result.draft_created
        assert result.priority is None


class TestDraft:
    def test_defaults_to_base_language(self) -> None:
        draft = Draft(text="Hello")
        assert draft.origin_language == "en"
        assert draft.target_language == "en"

    def test_is_mutable(self) -> None:
        draft = Draft(text="Hello")
        draft.text = "Hola"
        assert draft.text == "Hola"
