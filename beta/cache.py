import logging
import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, List, Optional, Tuple, TypeVar

log = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class BoundedKeyedCache(Generic[K, V]):
    """Fixed-capacity LRU container with an optional per-entry TTL.

    ``get`` and ``put`` both count as a touch. ``peek`` and ``in`` do not.
    When ``ttl`` is set, an entry older than ``ttl`` seconds is treated as a
    miss and dropped on lookup. ``on_evict`` fires for capacity evictions
    only, never for explicit removals.
    """

    def __init__(
        self,
        capacity: int,
        *,
        ttl: Optional[float] = None,
        on_evict: Optional[Callable[[K, V], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        if ttl is not None and ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.capacity = capacity
        self.ttl = ttl
        self._on_evict = on_evict
        self._clock = clock
        self._entries: "OrderedDict[K, Tuple[V, float]]" = OrderedDict()

    def _expired(self, stored_at: float) -> bool:
        return self.ttl is not None and self._clock() - stored_at > self.ttl

    def get(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._expired(stored_at):
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def peek(self, key: K) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None or self._expired(entry[1]):
            return None
        return entry[0]

    def put(self, key: K, value: V) -> None:
        if key in self._entries:
            self._entries[key] = (value, self._clock())
            self._entries.move_to_end(key)
            return
        while len(self._entries) >= self.capacity:
            old_key, (old_value, _) = self._entries.popitem(last=False)
            log.debug("evicted %r from cache (capacity %d)", old_key, self.capacity)
            if self._on_evict is not None:
                self._on_evict(old_key, old_value)
        self._entries[key] = (value, self._clock())

    def remove(self, key: K) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> List[K]:
        return list(self._entries.keys())

    def values(self) -> List[V]:
        return [value for value, _ in self._entries.values()]

    def items(self) -> List[Tuple[K, V]]:
        return [(key, value) for key, (value, _) in self._entries.items()]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._expired(entry[1])
