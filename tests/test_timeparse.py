"""Tests for the reminder time grammar."""

from datetime import datetime, timezone

import pytest

from beta.timeparse import parse_reminder_input, parse_time

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class TestParseTime:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("in 30 minutes", datetime(2024, 1, 1, 10, 30, tzinfo=timezone.utc)),
            ("in 5 min", datetime(2024, 1, 1, 10, 5, tzinfo=timezone.utc)),
            ("in 2 hours", datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)),
            ("in 1 hr", datetime(2024, 1, 1, 11, 0, tzinfo=timezone.utc)),
            ("2:30pm today", datetime(2024, 1, 1, 14, 30, tzinfo=timezone.utc)),
            ("14:30", datetime(2024, 1, 1, 14, 30, tzinfo=timezone.utc)),
            ("2pm tomorrow", datetime(2024, 1, 2, 14, 0, tzinfo=timezone.utc)),
            ("tomorrow at 9:15am", datetime(2024, 1, 2, 9, 15, tzinfo=timezone.utc)),
            ("12pm", datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)),
        ],
    )
    def test_accepted_forms(self, text, expected):
        assert parse_time(text, NOW) == expected

    def test_passed_clock_time_rolls_to_tomorrow(self):
        assert parse_time("9am", NOW) == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)

    def test_explicit_today_does_not_roll(self):
        assert parse_time("9am today", NOW) == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def test_midnight(self):
        assert parse_time("12am", NOW) == datetime(2024, 1, 2, 0, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("text", ["soon", "", "13pm", "25:00", "10:75"])
    def test_rejected_forms(self, text):
        assert parse_time(text, NOW) is None


class TestParseReminderInput:
    def test_relative_with_filler(self):
        parsed = parse_reminder_input("remind me to call mom in 30 minutes", NOW)
        assert parsed.message == "call mom"
        assert parsed.time_text == "in 30 minutes"
        assert parsed.time == datetime(2024, 1, 1, 10, 30, tzinfo=timezone.utc)

    def test_clock_with_today(self):
        parsed = parse_reminder_input("remind me meeting 2:30pm today", NOW)
        assert parsed.message == "meeting"
        assert parsed.time_text == "2:30pm today"

    def test_day_before_time(self):
        parsed = parse_reminder_input("remind me tomorrow at 9:15am submit report", NOW)
        assert parsed.message == "submit report"
        assert parsed.time == datetime(2024, 1, 2, 9, 15, tzinfo=timezone.utc)

    def test_leading_at_is_dropped(self):
        parsed = parse_reminder_input("call mom at 5pm", NOW)
        assert parsed.message == "call mom"
        assert parsed.time_text == "5pm"
        assert parsed.time == datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc)

    def test_assistant_name_prefix(self):
        parsed = parse_reminder_input("Beta, remind me about the standup in 2 hours", NOW)
        assert parsed.message == "the standup"

    def test_empty_message_defaults(self):
        parsed = parse_reminder_input("remind me in 10 minutes", NOW)
        assert parsed.message == "Reminder"

    def test_no_time_returns_none(self):
        assert parse_reminder_input("remind me to do stuff", NOW) is None
