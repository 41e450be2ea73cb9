"""Tests for ReminderStore: validation, persistence and state transitions."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from beta.reminders import ERROR_IN_PAST, ERROR_TOO_FAR, Reminder, ReminderStore

T0 = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def path(tmp_path):
    return tmp_path / "data" / "reminders.json"


@pytest.fixture
def store(path, clock):
    return ReminderStore(path, clock=clock)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_rejects_past_time(self, store, path):
        result = store.create("u1", "Ana", "telegram:1", "late", T0 - timedelta(seconds=1))
        assert not result.success
        assert result.error == ERROR_IN_PAST
        assert len(store) == 0
        assert not path.exists()

    def test_rejects_now(self, store):
        assert store.create("u1", "Ana", "telegram:1", "now", T0).error == ERROR_IN_PAST

    def test_rejects_more_than_thirty_days(self, store):
        result = store.create("u1", "Ana", "telegram:1", "far", T0 + timedelta(days=31))
        assert not result.success
        assert result.error == ERROR_TOO_FAR

    def test_accepts_exactly_thirty_days(self, store):
        assert store.create("u1", "Ana", "telegram:1", "edge", T0 + timedelta(days=30)).success

    def test_one_hour_ahead_gets_heads_up(self, store):
        result = store.create("u1", "Ana", "telegram:1", "standup", T0 + timedelta(hours=1))
        assert result.success
        assert result.has_pre_reminder
        assert result.reminder.id.startswith("rem_")
        assert result.reminder.created_at == T0

    def test_five_minutes_ahead_has_no_heads_up(self, store):
        result = store.create("u1", "Ana", "telegram:1", "tea", T0 + timedelta(minutes=5))
        assert result.success
        assert not result.has_pre_reminder
        assert not result.reminder.has_lead_window

    def test_message_whitespace_collapsed(self, store):
        result = store.create("u1", "Ana", "c", "  call   mom ", T0 + timedelta(hours=1))
        assert result.reminder.message == "call mom"

    def test_ids_are_unique(self, store):
        ids = {
            store.create("u1", "Ana", "c", f"m{i}", T0 + timedelta(hours=1)).reminder.id
            for i in range(20)
        }
        assert len(ids) == 20

    def test_returned_reminder_is_a_copy(self, store):
        reminder = store.create("u1", "Ana", "c", "m", T0 + timedelta(hours=1)).reminder
        reminder.message = "changed"
        assert store.get(reminder.id).message == "m"


# ---------------------------------------------------------------------------
# Queries and deletion
# ---------------------------------------------------------------------------

class TestQueries:
    def test_list_by_owner_sorted_by_time(self, store):
        store.create("u1", "Ana", "c1", "late", T0 + timedelta(hours=3))
        store.create("u1", "Ana", "c1", "early", T0 + timedelta(hours=1))
        store.create("u2", "Ben", "c1", "other", T0 + timedelta(hours=2))
        assert [r.message for r in store.list_by_owner("u1")] == ["early", "late"]

    def test_list_by_conversation(self, store):
        store.create("u1", "Ana", "c1", "a", T0 + timedelta(hours=1))
        store.create("u2", "Ben", "c2", "b", T0 + timedelta(hours=1))
        assert [r.message for r in store.list_by_conversation("c2")] == ["b"]

    def test_delete(self, store):
        rid = store.create("u1", "Ana", "c1", "a", T0 + timedelta(hours=1)).reminder.id
        assert store.delete(rid) is True
        assert store.delete(rid) is False
        assert store.get(rid) is None

    def test_delete_all_by_owner(self, store):
        for i in range(3):
            store.create("u1", "Ana", "c1", f"a{i}", T0 + timedelta(hours=1))
        store.create("u2", "Ben", "c1", "b", T0 + timedelta(hours=1))
        assert store.delete_all_by_owner("u1") == 3
        assert store.list_by_owner("u1") == []
        assert len(store) == 1
        assert store.delete_all_by_owner("u1") == 0


# ---------------------------------------------------------------------------
# Flag transitions
# ---------------------------------------------------------------------------

class TestTransitions:
    def test_mark_pre_notified_once(self, store):
        rid = store.create("u1", "Ana", "c1", "a", T0 + timedelta(hours=1)).reminder.id
        assert store.mark_pre_notified(rid) is True
        assert store.mark_pre_notified(rid) is False
        assert store.get(rid).pre_notified

    def test_mark_pre_notified_refused_without_lead_window(self, store):
        rid = store.create("u1", "Ana", "c1", "a", T0 + timedelta(minutes=5)).reminder.id
        assert store.mark_pre_notified(rid) is False

    def test_mark_notified_removes(self, store, path):
        rid = store.create("u1", "Ana", "c1", "a", T0 + timedelta(hours=1)).reminder.id
        assert store.mark_notified_and_remove(rid) is True
        assert store.get(rid) is None
        assert store.mark_notified_and_remove(rid) is False
        assert json.loads(path.read_text(encoding="utf-8")) == {}


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class TestPersistence:
    def test_file_layout(self, store, path):
        rid = store.create("u1", "Ana", "telegram:1", "standup", T0 + timedelta(hours=1)).reminder.id
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert payload[rid] == {
            "id": rid,
            "userID": "u1",
            "userName": "Ana",
            "threadID": "telegram:1",
            "message": "standup",
            "reminderTime": "2024-01-01T11:00:00.000Z",
            "preReminderSent": False,
            "reminderSent": False,
            "createdAt": "2024-01-01T10:00:00.000Z",
        }

    def test_reload_matches(self, store, path, clock):
        store.create("u1", "Ana", "c1", "a", T0 + timedelta(hours=1))
        store.create("u1", "Ana", "c1", "b", T0 + timedelta(hours=2))
        rid = store.create("u2", "Ben", "c2", "c", T0 + timedelta(hours=3)).reminder.id
        store.mark_pre_notified(rid)

        reloaded = ReminderStore(path, clock=clock)
        assert reloaded.list_all() == store.list_all()
        assert reloaded.get(rid).pre_notified

    def test_reload_matches_with_sub_millisecond_clock(self, path):
        clock = FakeClock(T0.replace(microsecond=123456))
        store = ReminderStore(path, clock=clock)
        for minutes in (30, 60, 90):
            store.create("u1", "Ana", "c1", f"m{minutes}", clock.now + timedelta(minutes=minutes))
        before = store.list_by_owner("u1")
        assert before[0].created_at.microsecond == 123000
        assert before[0].reminder_time.microsecond == 123000

        after = ReminderStore(path, clock=clock).list_by_owner("u1")
        assert after == before

    def test_no_temp_file_left_behind(self, store, path):
        store.create("u1", "Ana", "c1", "a", T0 + timedelta(hours=1))
        assert path.exists()
        assert not path.with_name(path.name + ".tmp").exists()

    def test_missing_file_is_empty(self, path, clock):
        assert len(ReminderStore(path, clock=clock)) == 0

    def test_corrupt_file_is_empty(self, path, clock):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{not json", encoding="utf-8")
        assert len(ReminderStore(path, clock=clock)) == 0

    def test_non_object_file_is_empty(self, path, clock):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("[1, 2, 3]", encoding="utf-8")
        assert len(ReminderStore(path, clock=clock)) == 0

    def test_fired_and_malformed_records_skipped(self, path, clock):
        live = Reminder(
            id="rem_1_live",
            user_id="u1",
            user_name="Ana",
            conversation_id="c1",
            message="live",
            reminder_time=T0 + timedelta(hours=1),
            created_at=T0,
        )
        fired = dict(live.to_dict(), id="rem_2_fired", reminderSent=True)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(
                {
                    "rem_1_live": live.to_dict(),
                    "rem_2_fired": fired,
                    "rem_3_broken": {"userID": "u1"},
                }
            ),
            encoding="utf-8",
        )
        reloaded = ReminderStore(path, clock=clock)
        assert [r.id for r in reloaded.list_all()] == ["rem_1_live"]
        assert reloaded.get("rem_1_live") == live
