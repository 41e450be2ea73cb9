"""Tests for the Assistant facade and the command replies it shares with transports."""

from datetime import datetime, timedelta, timezone

import pytest

from beta.assistant import Assistant
from beta.config import Settings
from beta.notifications import NotificationDispatcher

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.calls = []

    async def deliver(self, conversation_id, owner_name, owner_id, text):
        self.calls.append((conversation_id, text))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def assistant(tmp_path, clock):
    settings = Settings(data_dir=str(tmp_path), max_history=5, check_interval=0.02)
    return Assistant(settings, clock=clock)


# ---------------------------------------------------------------------------
# Inbound messages
# ---------------------------------------------------------------------------

class TestObserveMessage:
    @pytest.mark.asyncio
    async def test_records_history_and_stats(self, assistant):
        await assistant.observe_message("telegram:1", "1000001", "hello", username="Ana")
        await assistant.observe_message("telegram:1", "1000002", "hi there", username="Ben", intent="greeting")
        assert assistant.get_formatted_history("telegram:1") == "Ana: hello\nBen: hi there"
        stats = assistant.conversation_stats("telegram:1")
        assert stats["total_messages"] == 2
        assert stats["unique_users"] == 2
        assert stats["top_topics"] == ["greeting"]

    @pytest.mark.asyncio
    async def test_blank_message_ignored(self, assistant):
        assert await assistant.observe_message("telegram:1", "1000001", "   ") is None
        assert assistant.conversation_stats("telegram:1") is None

    @pytest.mark.asyncio
    async def test_name_learned_from_hint(self, assistant):
        await assistant.observe_message("telegram:1", "1000001", "hey", username="Ana")
        assert await assistant.resolve_name("1000001") == "Ana"

    @pytest.mark.asyncio
    async def test_preference_signal_merged(self, assistant):
        await assistant.observe_message(
            "telegram:1", "1000001", "play opm", username="Ana", preference={"musicGenre": "opm"}
        )
        assert assistant.get_preference("1000001").music_genres == ["opm"]
        assert assistant.global_stats()["learned_users"] == 1


# ---------------------------------------------------------------------------
# Command replies
# ---------------------------------------------------------------------------

class TestRemindReplies:
    def test_success_reply(self, assistant):
        reply = assistant.remind("1000001", "Ana", "telegram:1", "submit report in 30 minutes")
        assert reply == (
            "✅ Reminder set: submit report at 10:30 AM."
            " I'll give you a heads up 15 minutes before."
        )
        assert len(assistant.get_user_reminders("1000001")) == 1

    def test_short_notice_has_no_heads_up_note(self, assistant):
        reply = assistant.remind("1000001", "Ana", "telegram:1", "tea in 5 minutes")
        assert reply == "✅ Reminder set: tea at 10:05 AM."

    def test_other_day_includes_date(self, assistant):
        reply = assistant.remind("1000001", "Ana", "telegram:1", "standup 9:30am tomorrow")
        assert reply.startswith("✅ Reminder set: standup at Jan 02, 9:30 AM.")

    def test_unparseable_time(self, assistant):
        reply = assistant.remind("1000001", "Ana", "telegram:1", "do stuff")
        assert reply.startswith("❌ I couldn't work out the time.")
        assert assistant.get_user_reminders("1000001") == []

    def test_past_time_rejected(self, assistant):
        reply = assistant.remind("1000001", "Ana", "telegram:1", "breakfast 9am today")
        assert reply == "❌ The reminder time must be in the future!"

    def test_describe_and_clear(self, assistant):
        assert assistant.describe_reminders("1000001") == "You have no pending reminders."
        assistant.remind("1000001", "Ana", "telegram:1", "b in 2 hours")
        assistant.remind("1000001", "Ana", "telegram:1", "a in 1 hour")
        assert assistant.describe_reminders("1000001") == (
            "📋 Your reminders:\n"
            "1. a (Jan 01, 11:00 AM)\n"
            "2. b (Jan 01, 12:00 PM)"
        )
        assert assistant.clear_reminders_reply("1000001") == "🗑️ Cleared 2 reminders."
        assert assistant.clear_reminders_reply("1000001") == "You have no pending reminders."


# ---------------------------------------------------------------------------
# Scheduler wiring
# ---------------------------------------------------------------------------

class TestSchedulerWiring:
    @pytest.mark.asyncio
    async def test_scheduler_delivers_and_close_stops_it(self, assistant, clock):
        dispatcher = RecordingDispatcher()
        result = assistant.create_reminder(
            "1000001", "Ana", "telegram:1", "stretch", T0 + timedelta(minutes=1)
        )
        assert result.success
        clock.now = T0 + timedelta(minutes=2)

        assistant.start_scheduler(dispatcher)
        assert assistant.scheduler.running
        await assistant.scheduler.tick()
        await assistant.close()

        assert not assistant.scheduler.running
        assert [call[0] for call in dispatcher.calls] == ["telegram:1"]
        assert assistant.get_user_reminders("1000001") == []

    @pytest.mark.asyncio
    async def test_reminders_survive_restart(self, tmp_path, clock):
        settings = Settings(data_dir=str(tmp_path))
        first = Assistant(settings, clock=clock)
        first.remind("1000001", "Ana", "telegram:1", "water plants in 2 hours")
        second = Assistant(settings, clock=clock)
        assert [r.message for r in second.get_user_reminders("1000001")] == ["water plants"]
