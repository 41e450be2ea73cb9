import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional

from .activity import ActivityStatisticsTracker, ActivityStats
from .cache import BoundedKeyedCache

log = logging.getLogger(__name__)

MAX_HISTORY = 10
CONTEXT_WINDOW = 10
MAX_CONVERSATIONS = 500
MAX_TRACKED_MESSAGES = 50


@dataclass(frozen=True)
class ChatMessage:
    name: str
    text: str
    timestamp: float
    intent: Optional[str] = None


@dataclass
class ConversationRecord:
    conversation_id: str
    messages: Deque[ChatMessage]
    summary: Optional[str] = None
    last_access: float = field(default_factory=time.time)


class ConversationHistoryStore:
    """Bounded per-conversation message logs with LRU eviction of whole conversations."""

    def __init__(
        self,
        *,
        max_history: int = MAX_HISTORY,
        context_window: int = CONTEXT_WINDOW,
        max_conversations: int = MAX_CONVERSATIONS,
        max_tracked_messages: int = MAX_TRACKED_MESSAGES,
        activity: Optional[ActivityStatisticsTracker] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_history < 1:
            raise ValueError(f"max_history must be at least 1, got {max_history}")
        self.max_history = max_history
        self.context_window = context_window
        self.max_conversations = max_conversations
        self._clock = clock
        self.activity = activity or ActivityStatisticsTracker(max_conversations, clock=clock)
        self._conversations: BoundedKeyedCache[str, ConversationRecord] = BoundedKeyedCache(
            max_conversations, on_evict=self._on_evict, clock=clock
        )
        self._bot_messages: BoundedKeyedCache[str, bool] = BoundedKeyedCache(
            max_tracked_messages, clock=clock
        )

    def _on_evict(self, conversation_id: str, record: ConversationRecord) -> None:
        self.activity.discard(conversation_id)
        log.debug(
            "conversation %s evicted with %d messages", conversation_id, len(record.messages)
        )

    def _record(self, conversation_id: str, *, create: bool) -> Optional[ConversationRecord]:
        record = self._conversations.get(conversation_id)
        if record is None and create:
            record = ConversationRecord(
                conversation_id=conversation_id,
                messages=deque(maxlen=self.max_history),
            )
            self._conversations.put(conversation_id, record)
        if record is not None:
            record.last_access = self._clock()
        return record

    def append_message(
        self,
        conversation_id: str,
        sender_name: str,
        text: str,
        intent: Optional[str] = None,
    ) -> ChatMessage:
        record = self._record(conversation_id, create=True)
        message = ChatMessage(
            name=sender_name, text=text, timestamp=self._clock(), intent=intent
        )
        record.messages.append(message)
        self.activity.record_activity(conversation_id, sender_name, intent)
        return message

    def record_activity(
        self, conversation_id: str, participant_name: str, intent: Optional[str] = None
    ) -> ActivityStats:
        """Count activity without storing a message; the conversation is still created and touched."""
        self._record(conversation_id, create=True)
        return self.activity.record_activity(conversation_id, participant_name, intent)

    def get_history(self, conversation_id: str) -> List[ChatMessage]:
        record = self._record(conversation_id, create=False)
        if record is None:
            return []
        return list(record.messages)

    def get_formatted_history(
        self, conversation_id: str, limit: Optional[int] = None
    ) -> str:
        limit = self.context_window if limit is None else limit
        record = self._record(conversation_id, create=False)
        if record is None or limit <= 0:
            return ""
        history = list(record.messages)
        formatted = ""
        if record.summary and len(history) >= limit:
            formatted += f"[Earlier context: {record.summary}]\n\n"
        formatted += "\n".join(f"{msg.name}: {msg.text}" for msg in history[-limit:])
        return formatted

    def clear_history(self, conversation_id: str) -> None:
        self._conversations.remove(conversation_id)
        self.activity.discard(conversation_id)

    def set_summary(self, conversation_id: str, summary: str) -> None:
        record = self._record(conversation_id, create=True)
        record.summary = summary.strip() or None

    def get_summary(self, conversation_id: str) -> Optional[str]:
        record = self._conversations.peek(conversation_id)
        return record.summary if record else None

    def track_bot_message(self, message_id: str) -> None:
        self._bot_messages.put(str(message_id), True)

    def is_bot_message(self, message_id: Optional[str]) -> bool:
        if not message_id:
            return False
        return str(message_id) in self._bot_messages

    def conversation_stats(self, conversation_id: str) -> Optional[dict]:
        stats = self.activity.get(conversation_id)
        if stats is None:
            return None
        record = self._conversations.peek(conversation_id)
        return {
            "total_messages": stats.total_messages,
            "last_active": stats.last_active,
            "unique_users": len(stats.participants),
            "history_size": len(record.messages) if record else 0,
            "top_topics": stats.top_intents(3),
        }

    def global_stats(self) -> dict:
        return {
            "active_conversations": len(self._conversations),
            "tracked_messages": len(self._bot_messages),
            "total_memory_entries": sum(
                len(record.messages) for record in self._conversations.values()
            ),
            "max_conversations": self.max_conversations,
        }

    def __len__(self) -> int:
        return len(self._conversations)
