import json
import logging
import os
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

log = logging.getLogger(__name__)

PRE_REMINDER_MINUTES = 15
MAX_DAYS_AHEAD = 30

ERROR_IN_PAST = "The reminder time must be in the future!"
ERROR_TOO_FAR = f"Reminders can only be set up to {MAX_DAYS_AHEAD} days in advance."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def format_iso(value: datetime) -> str:
    text = _aware(value).astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    return _aware(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))


@dataclass
class Reminder:
    id: str
    user_id: str
    user_name: str
    conversation_id: str
    message: str
    reminder_time: datetime
    created_at: datetime
    pre_notified: bool = False
    notified: bool = False

    @property
    def pre_reminder_time(self) -> datetime:
        return self.reminder_time - timedelta(minutes=PRE_REMINDER_MINUTES)

    @property
    def has_lead_window(self) -> bool:
        """True when the heads-up instant falls after creation."""
        return self.pre_reminder_time > self.created_at

    @classmethod
    def from_dict(cls, data: dict) -> "Reminder":
        return cls(
            id=str(data["id"]),
            user_id=str(data["userID"]),
            user_name=str(data.get("userName") or data["userID"]),
            conversation_id=str(data["threadID"]),
            message=str(data.get("message") or "Reminder"),
            reminder_time=parse_iso(data["reminderTime"]),
            created_at=parse_iso(data["createdAt"]),
            pre_notified=bool(data.get("preReminderSent", False)),
            notified=bool(data.get("reminderSent", False)),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userID": self.user_id,
            "userName": self.user_name,
            "threadID": self.conversation_id,
            "message": self.message,
            "reminderTime": format_iso(self.reminder_time),
            "preReminderSent": self.pre_notified,
            "reminderSent": self.notified,
            "createdAt": format_iso(self.created_at),
        }


@dataclass
class CreateResult:
    success: bool
    reminder: Optional[Reminder] = None
    error: Optional[str] = None
    has_pre_reminder: bool = False


class ReminderStore:
    """Live reminders persisted as one JSON object keyed by reminder id.

    Every mutation rewrites the whole file through a temporary file and an
    atomic rename. A missing or unreadable file loads as an empty store.
    Save failures are logged and the in-memory change is kept.
    """

    def __init__(
        self,
        path: Path,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._lock = threading.Lock()
        self._reminders: Dict[str, Reminder] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except Exception as exc:
            log.warning("failed to load reminders from %s: %s", self.path, exc)
            return
        if not isinstance(payload, dict):
            log.warning("ignoring reminders file %s: expected an object", self.path)
            return
        for key, item in payload.items():
            if not isinstance(item, dict):
                continue
            try:
                reminder = Reminder.from_dict({"id": key, **item})
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("skipping malformed reminder %s: %s", key, exc)
                continue
            if reminder.notified:
                continue
            self._reminders[reminder.id] = reminder
        log.info("loaded %d reminders from %s", len(self._reminders), self.path)

    def _save(self) -> None:
        payload = {rid: reminder.to_dict() for rid, reminder in self._reminders.items()}
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            tmp_path.write_text(
                json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
            )
            os.replace(tmp_path, self.path)
        except Exception as exc:  # pragma: no cover - disk failures logged
            log.warning("failed to persist reminders: %s", exc)

    @staticmethod
    def _new_id(now: datetime) -> str:
        return f"rem_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"

    def create(
        self,
        owner_id: str,
        owner_name: str,
        conversation_id: str,
        message: str,
        fire_time: datetime,
    ) -> CreateResult:
        now = _to_millis(_aware(self._clock()))
        fire_time = _to_millis(_aware(fire_time))
        if fire_time <= now:
            return CreateResult(success=False, error=ERROR_IN_PAST)
        if fire_time > now + timedelta(days=MAX_DAYS_AHEAD):
            return CreateResult(success=False, error=ERROR_TOO_FAR)

        reminder = Reminder(
            id=self._new_id(now),
            user_id=str(owner_id),
            user_name=str(owner_name or owner_id),
            conversation_id=str(conversation_id),
            message=" ".join(str(message or "").split()) or "Reminder",
            reminder_time=fire_time,
            created_at=now,
        )
        with self._lock:
            self._reminders[reminder.id] = reminder
            self._save()
        has_pre = reminder.pre_reminder_time > now
        log.info(
            "reminder %s created for %s at %s (pre-reminder: %s)",
            reminder.id,
            reminder.user_name,
            format_iso(fire_time),
            has_pre,
        )
        return CreateResult(success=True, reminder=replace(reminder), has_pre_reminder=has_pre)

    def get(self, reminder_id: str) -> Optional[Reminder]:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            return replace(reminder) if reminder else None

    def _snapshot(self, predicate: Callable[[Reminder], bool]) -> List[Reminder]:
        with self._lock:
            items = [
                replace(reminder)
                for reminder in self._reminders.values()
                if not reminder.notified and predicate(reminder)
            ]
        return sorted(items, key=lambda item: item.reminder_time)

    def list_all(self) -> List[Reminder]:
        return self._snapshot(lambda reminder: True)

    def list_by_owner(self, owner_id: str) -> List[Reminder]:
        return self._snapshot(lambda reminder: reminder.user_id == str(owner_id))

    def list_by_conversation(self, conversation_id: str) -> List[Reminder]:
        return self._snapshot(
            lambda reminder: reminder.conversation_id == str(conversation_id)
        )

    def delete(self, reminder_id: str) -> bool:
        with self._lock:
            if self._reminders.pop(reminder_id, None) is None:
                return False
            self._save()
        log.info("reminder %s deleted", reminder_id)
        return True

    def delete_all_by_owner(self, owner_id: str) -> int:
        with self._lock:
            doomed = [
                rid for rid, reminder in self._reminders.items()
                if reminder.user_id == str(owner_id)
            ]
            for rid in doomed:
                del self._reminders[rid]
            if doomed:
                self._save()
        if doomed:
            log.info("cleared %d reminders for %s", len(doomed), owner_id)
        return len(doomed)

    def mark_pre_notified(self, reminder_id: str) -> bool:
        with self._lock:
            reminder = self._reminders.get(reminder_id)
            if reminder is None or reminder.pre_notified or not reminder.has_lead_window:
                return False
            reminder.pre_notified = True
            self._save()
        return True

    def mark_notified_and_remove(self, reminder_id: str) -> bool:
        with self._lock:
            reminder = self._reminders.pop(reminder_id, None)
            if reminder is None:
                return False
            reminder.notified = True
            self._save()
        log.info("reminder %s fired and removed", reminder_id)
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._reminders)
