"""Tests for smart input parsing."""

from datetime import datetime, timezone

import pytest

from willow.parsing import (
    ParsedInput,
    parse_date_from_text,
    parse_smart_input,
    suggest_emoji,
)


NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)  # A Wednesday


def day(year, month, dom):
    return datetime(year, month, dom, tzinfo=timezone.utc)


class TestParseDate:
    """Tests for due date extraction."""

    @pytest.mark.parametrize("text,expected", [
        ("call mum tomorrow", day(2024, 5, 2)),
        ("TODAY: taxes", day(2024, 5, 1)),
        ("dentist next week", day(2024, 5, 8)),
        ("renew passport next month", day(2024, 6, 1)),
        ("yoga friday", day(2024, 5, 3)),
        ("team sync monday", day(2024, 5, 6)),
        ("party dec 31", day(2024, 12, 31)),
        ("trip September 9", day(2024, 9, 9)),
        ("gift 12/25", day(2024, 12, 25)),
        ("bills 5/1", day(2024, 5, 1)),
    ])
    def test_recognised_phrases(self, text, expected):
        assert parse_date_from_text(text, now=NOW) == expected

    def test_weekday_is_never_today(self):
        """Wednesday typed on a Wednesday means next week."""
        assert parse_date_from_text("wednesday standup", now=NOW) == day(2024, 5, 8)

    def test_past_month_day_rolls_to_next_year(self):
        assert parse_date_from_text("jan 15", now=NOW) == day(2025, 1, 15)
        assert parse_date_from_text("04-30", now=NOW) == day(2025, 4, 30)

    def test_next_month_clamps_to_month_end(self):
        now = datetime(2024, 1, 31, 8, 0, tzinfo=timezone.utc)
        assert parse_date_from_text("next month", now=now) == day(2024, 2, 29)

    def test_first_pattern_wins(self):
        assert parse_date_from_text("tomorrow or friday", now=NOW) == day(2024, 5, 2)

    @pytest.mark.parametrize("text", [
        "buy milk",
        "todays special",
        "13/01",
        "02/32",
        "call jan 0",
    ])
    def test_no_date(self, text):
        assert parse_date_from_text(text, now=NOW) is None

    def test_day_past_month_end_spills_over(self):
        now = datetime(2025, 1, 10, tzinfo=timezone.utc)
        assert parse_date_from_text("feb 29", now=now) == day(2025, 3, 1)
        assert parse_date_from_text("02/30", now=now) == day(2025, 3, 2)

    def test_passed_leap_day_rolls_to_next_year(self):
        now = datetime(2024, 3, 5, tzinfo=timezone.utc)
        assert parse_date_from_text("feb 29", now=now) == day(2025, 3, 1)

    def test_passed_spilled_date_keeps_its_day(self):
        """02/30 in 2024 is March 1st; once that has passed it is March 1st next year."""
        assert parse_date_from_text("02/30", now=NOW) == day(2025, 3, 1)

    def test_results_are_midnight(self):
        result = parse_date_from_text("tomorrow", now=NOW)
        assert (result.hour, result.minute, result.second) == (0, 0, 0)


class TestParseSmartInput:
    """Tests for splitting input into title and date."""

    def test_date_phrase_removed(self):
        parsed = parse_smart_input("Call mum tomorrow", now=NOW)
        assert parsed == ParsedInput(
            title="Call mum",
            due_date=day(2024, 5, 2),
            matched_text="tomorrow",
        )

    def test_phrase_in_the_middle(self):
        parsed = parse_smart_input("Meet Sam next week please", now=NOW)
        assert parsed.title == "Meet Sam please"
        assert parsed.matched_text == "next week"

    def test_title_falls_back_to_full_text(self):
        parsed = parse_smart_input("  Tomorrow ", now=NOW)
        assert parsed.title == "Tomorrow"
        assert parsed.due_date == day(2024, 5, 2)

    def test_plain_text(self):
        parsed = parse_smart_input("Water plants", now=NOW)
        assert parsed.title == "Water plants"
        assert parsed.due_date is None
        assert parsed.matched_text is None


class TestSuggestEmoji:
    """Tests for keyword emoji."""

    @pytest.mark.parametrize("title,emoji", [
        ("Coffee with Ana", "☕"),
        ("gym session", "🧘"),
        ("Morning YOGA", "🧘"),
        ("Email landlord", "📝"),
        ("Finish report", "📝"),
        ("Water plants", None),
    ])
    def test_suggestions(self, title, emoji):
        assert suggest_emoji(title) == emoji

    def test_first_keyword_wins(self):
        assert suggest_emoji("coffee then gym") == "☕"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
