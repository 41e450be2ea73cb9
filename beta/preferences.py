import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping, Optional, Union

from .cache import BoundedKeyedCache

MAX_USERS = 1000
MAX_TOPICS = 10
MAX_GENRES = 5
MAX_ARTISTS = 10


@dataclass
class Preference:
    favorite_topics: List[str] = field(default_factory=list)
    preferred_language: str = "english"
    communication_style: str = "casual"
    music_genres: List[str] = field(default_factory=list)
    music_artists: List[str] = field(default_factory=list)
    last_interaction: float = 0.0


@dataclass(frozen=True)
class PreferenceSignal:
    topic: Optional[str] = None
    language: Optional[str] = None
    style: Optional[str] = None
    music_genre: Optional[str] = None
    artist: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PreferenceSignal":
        def pick(*keys: str) -> Optional[str]:
            for key in keys:
                value = str(data.get(key) or "").strip()
                if value:
                    return value
            return None

        return cls(
            topic=pick("topic"),
            language=pick("language"),
            style=pick("style"),
            music_genre=pick("music_genre", "musicGenre"),
            artist=pick("artist"),
        )

    def is_empty(self) -> bool:
        return not any(
            (self.topic, self.language, self.style, self.music_genre, self.artist)
        )


def _push_bounded(items: List[str], value: Optional[str], limit: int) -> None:
    if not value or value in items:
        return
    items.append(value)
    while len(items) > limit:
        items.pop(0)


class PreferenceStore:
    """Learned per-user preferences, merged signal by signal."""

    def __init__(
        self,
        max_users: int = MAX_USERS,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._prefs: BoundedKeyedCache[str, Preference] = BoundedKeyedCache(
            max_users, clock=clock
        )

    def merge_preference(
        self, user_id: str, signal: Union[PreferenceSignal, Mapping[str, Any]]
    ) -> Optional[Preference]:
        if not isinstance(signal, PreferenceSignal):
            signal = PreferenceSignal.from_mapping(signal)
        if signal.is_empty():
            return None
        pref = self._prefs.get(user_id)
        if pref is None:
            pref = Preference()
        _push_bounded(pref.favorite_topics, signal.topic, MAX_TOPICS)
        if signal.language:
            pref.preferred_language = signal.language
        if signal.style:
            pref.communication_style = signal.style
        _push_bounded(pref.music_genres, signal.music_genre, MAX_GENRES)
        _push_bounded(pref.music_artists, signal.artist, MAX_ARTISTS)
        pref.last_interaction = self._clock()
        self._prefs.put(user_id, pref)
        return pref

    def get_preference(self, user_id: str) -> Optional[Preference]:
        return self._prefs.peek(user_id)

    def formatted_preference_context(self, user_id: str) -> str:
        pref = self._prefs.peek(user_id)
        if pref is None:
            return ""
        parts: List[str] = []
        if pref.favorite_topics:
            parts.append(f"Interests: {', '.join(pref.favorite_topics[-5:])}")
        if pref.music_artists:
            parts.append(f"Fav artists: {', '.join(pref.music_artists[-3:])}")
        parts.append(f"Language pref: {pref.preferred_language}")
        parts.append(f"Style: {pref.communication_style}")
        return " | ".join(parts)

    def __len__(self) -> int:
        return len(self._prefs)
