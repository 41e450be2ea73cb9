import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .cache import BoundedKeyedCache


@dataclass
class ActivityStats:
    total_messages: int = 0
    last_active: float = 0.0
    participants: Set[str] = field(default_factory=set)
    intent_frequency: Dict[str, int] = field(default_factory=dict)

    def top_intents(self, n: int) -> List[str]:
        # sorted() is stable, so equal counts keep first-seen order
        ranked = sorted(
            self.intent_frequency.items(), key=lambda item: item[1], reverse=True
        )
        return [intent for intent, _ in ranked[: max(n, 0)]]


class ActivityStatisticsTracker:
    """Per-conversation activity aggregates, bounded like the history store."""

    def __init__(
        self,
        max_conversations: int = 500,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._stats: BoundedKeyedCache[str, ActivityStats] = BoundedKeyedCache(
            max_conversations, clock=clock
        )

    def record_activity(
        self, conversation_id: str, participant_name: str, intent: Optional[str] = None
    ) -> ActivityStats:
        stats = self._stats.get(conversation_id)
        if stats is None:
            stats = ActivityStats()
            self._stats.put(conversation_id, stats)
        stats.total_messages += 1
        stats.last_active = self._clock()
        stats.participants.add(participant_name)
        if intent:
            stats.intent_frequency[intent] = stats.intent_frequency.get(intent, 0) + 1
        return stats

    def get(self, conversation_id: str) -> Optional[ActivityStats]:
        return self._stats.peek(conversation_id)

    def top_intents(self, conversation_id: str, n: int = 3) -> List[str]:
        stats = self._stats.peek(conversation_id)
        if stats is None:
            return []
        return stats.top_intents(n)

    def discard(self, conversation_id: str) -> None:
        self._stats.remove(conversation_id)

    def __len__(self) -> int:
        return len(self._stats)
