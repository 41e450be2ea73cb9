import logging
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from .config import Settings
from .memory import ChatMessage, ConversationHistoryStore
from .notifications import MemberDirectory, NotificationDispatcher
from .preferences import Preference, PreferenceSignal, PreferenceStore
from .reminders import CreateResult, Reminder, ReminderStore, utcnow
from .scheduler import ReminderScheduler, format_time
from .timeparse import ParsedReminder, parse_reminder_input
from .users import NameResolutionCache

log = logging.getLogger(__name__)

REMIND_USAGE = (
    "Tell me what and when, e.g. /remind submit report in 30 minutes "
    "or /remind standup 9:30am tomorrow."
)


class Assistant:
    """Composition root for the memory layer and the reminder scheduler.

    Build one per process, hand it to every transport, and ``await close()``
    on shutdown so the scheduler stops cleanly.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        directory: Optional[MemberDirectory] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or Settings()
        self.tz = self.settings.tz
        self._clock = clock
        self.history = ConversationHistoryStore(
            max_history=self.settings.max_history,
            context_window=self.settings.context_window,
            max_conversations=self.settings.max_conversations,
            max_tracked_messages=self.settings.max_tracked_messages,
        )
        self.names = NameResolutionCache(
            directory,
            max_names=self.settings.max_names,
            ttl=self.settings.name_ttl,
        )
        self.preferences = PreferenceStore(self.settings.max_users)
        self.reminders = ReminderStore(self.settings.reminders_path, clock=clock)
        self.scheduler = ReminderScheduler(
            self.reminders,
            interval=self.settings.check_interval,
            dispatch_timeout=self.settings.dispatch_timeout,
            tz=self.tz,
            clock=clock,
        )

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    async def close(self) -> None:
        await self.stop_scheduler()

    # ----- inbound events -----

    async def observe_message(
        self,
        conversation_id: str,
        user_id: str,
        message: str,
        *,
        username: Optional[str] = None,
        intent: Optional[str] = None,
        preference: Optional[Union[PreferenceSignal, Mapping[str, Any]]] = None,
    ) -> Optional[ChatMessage]:
        text = (message or "").strip()
        if not text:
            return None
        name = await self.names.resolve_name(
            user_id, username, conversation_id=conversation_id
        )
        entry = self.history.append_message(conversation_id, name, text, intent)
        if preference:
            self.preferences.merge_preference(user_id, preference)
        return entry

    # ----- cache-facing API -----

    def append_message(
        self, conversation_id: str, sender_name: str, text: str, intent: Optional[str] = None
    ) -> ChatMessage:
        return self.history.append_message(conversation_id, sender_name, text, intent)

    def get_formatted_history(self, conversation_id: str, limit: Optional[int] = None) -> str:
        return self.history.get_formatted_history(conversation_id, limit)

    def clear_history(self, conversation_id: str) -> None:
        self.history.clear_history(conversation_id)

    def set_summary(self, conversation_id: str, summary: str) -> None:
        self.history.set_summary(conversation_id, summary)

    def get_summary(self, conversation_id: str) -> Optional[str]:
        return self.history.get_summary(conversation_id)

    async def resolve_name(
        self, participant_id: str, hint: Optional[str] = None, *, conversation_id: Optional[str] = None
    ) -> str:
        return await self.names.resolve_name(participant_id, hint, conversation_id=conversation_id)

    async def resolve_all_members(self, conversation_id: str) -> dict:
        return await self.names.resolve_all_members(conversation_id)

    def record_activity(
        self, conversation_id: str, participant_name: str, intent: Optional[str] = None
    ) -> None:
        self.history.record_activity(conversation_id, participant_name, intent)

    def conversation_stats(self, conversation_id: str) -> Optional[dict]:
        return self.history.conversation_stats(conversation_id)

    def global_stats(self) -> dict:
        stats = self.history.global_stats()
        stats["learned_users"] = len(self.preferences)
        return stats

    def merge_preference(
        self, user_id: str, signal: Union[PreferenceSignal, Mapping[str, Any]]
    ) -> Optional[Preference]:
        return self.preferences.merge_preference(user_id, signal)

    def get_preference(self, user_id: str) -> Optional[Preference]:
        return self.preferences.get_preference(user_id)

    def formatted_preference_context(self, user_id: str) -> str:
        return self.preferences.formatted_preference_context(user_id)

    def track_bot_message(self, message_id: str) -> None:
        self.history.track_bot_message(message_id)

    def is_bot_message(self, message_id: Optional[str]) -> bool:
        return self.history.is_bot_message(message_id)

    # ----- command-facing API -----

    def parse_reminder_input(self, text: str) -> Optional[ParsedReminder]:
        return parse_reminder_input(text, self.now())

    def create_reminder(
        self,
        user_id: str,
        user_name: str,
        conversation_id: str,
        message: str,
        time: datetime,
    ) -> CreateResult:
        return self.reminders.create(user_id, user_name, conversation_id, message, time)

    def get_user_reminders(self, user_id: str) -> List[Reminder]:
        return self.reminders.list_by_owner(user_id)

    def get_conversation_reminders(self, conversation_id: str) -> List[Reminder]:
        return self.reminders.list_by_conversation(conversation_id)

    def delete_reminder(self, reminder_id: str) -> bool:
        return self.reminders.delete(reminder_id)

    def clear_user_reminders(self, user_id: str) -> int:
        return self.reminders.delete_all_by_owner(user_id)

    def start_scheduler(self, dispatcher: NotificationDispatcher) -> None:
        self.scheduler.start(dispatcher)

    async def stop_scheduler(self) -> None:
        if self.scheduler.running:
            await self.scheduler.stop()

    # ----- command replies shared by the transports -----

    def remind(self, user_id: str, user_name: str, conversation_id: str, text: str) -> str:
        parsed = self.parse_reminder_input(text)
        if parsed is None:
            return f"❌ I couldn't work out the time. {REMIND_USAGE}"
        result = self.create_reminder(
            user_id, user_name, conversation_id, parsed.message, parsed.time
        )
        if not result.success:
            return f"❌ {result.error}"
        when = format_time(parsed.time, self.tz)
        if parsed.time.date() != self.now().date():
            when = f"{parsed.time.astimezone(self.tz):%b %d}, {when}"
        reply = f"✅ Reminder set: {parsed.message} at {when}."
        if result.has_pre_reminder:
            reply += " I'll give you a heads up 15 minutes before."
        return reply

    def describe_reminders(self, user_id: str) -> str:
        pending = self.get_user_reminders(user_id)
        if not pending:
            return "You have no pending reminders."
        lines = ["📋 Your reminders:"]
        for index, reminder in enumerate(pending, start=1):
            when = reminder.reminder_time.astimezone(self.tz)
            lines.append(f"{index}. {reminder.message} ({when:%b %d}, {format_time(when, self.tz)})")
        return "\n".join(lines)

    def clear_reminders_reply(self, user_id: str) -> str:
        count = self.clear_user_reminders(user_id)
        if not count:
            return "You have no pending reminders."
        return f"🗑️ Cleared {count} reminder{'s' if count != 1 else ''}."
