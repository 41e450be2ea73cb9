import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from .cache import BoundedKeyedCache
from .notifications import MemberDirectory

log = logging.getLogger(__name__)

MAX_NAMES = 1000
NAME_TTL_SECONDS = 3600

USER_ID_PATTERN = re.compile(r"^\d+$")

NAME_KEYS = ("name", "fullName", "full_name", "displayName", "display_name", "username")
EVENT_NAME_KEYS = ("senderName", "sender_fullname", "name")

NameStrategy = Callable[[str, Optional[str]], Awaitable[Optional[str]]]


def _first_text(entry: Any, keys: Iterable[str]) -> Optional[str]:
    if not isinstance(entry, Mapping):
        return None
    for key in keys:
        value = entry.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _entry_id(entry: Mapping) -> str:
    for key in ("id", "userID", "user_id", "fbId"):
        value = entry.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def name_from_event(event: Optional[Mapping]) -> Optional[str]:
    """Pick a display name carried directly on an inbound event, if any."""
    return _first_text(event, EVENT_NAME_KEYS)


def is_valid_user_id(user_id: Optional[str]) -> bool:
    text = str(user_id or "")
    return text != "undefined" and len(text) > 5 and bool(USER_ID_PATTERN.match(text))


def name_from_user_info(info: Any, participant_id: str) -> Optional[str]:
    """Read a name out of a directory response shaped as a list, a keyed object or a flat record."""
    if not info:
        return None
    if isinstance(info, list):
        entries = [entry for entry in info if isinstance(entry, Mapping)]
        if not entries:
            return None
        match = next(
            (entry for entry in entries if _entry_id(entry) == participant_id), entries[0]
        )
        return _first_text(match, NAME_KEYS)
    if isinstance(info, Mapping):
        keyed = info.get(participant_id)
        if isinstance(keyed, Mapping):
            return _first_text(keyed, NAME_KEYS)
        return _first_text(info, NAME_KEYS)
    return None


def name_from_thread_info(info: Any, participant_id: str) -> Optional[str]:
    if not isinstance(info, Mapping):
        return None
    participants = info.get("participants")
    if isinstance(participants, list):
        for entry in participants:
            if isinstance(entry, Mapping) and _entry_id(entry) == participant_id:
                name = _first_text(entry, NAME_KEYS)
                if name:
                    return name
    user_info = info.get("userInfo")
    if isinstance(user_info, Mapping):
        entry = user_info.get(participant_id)
        if not isinstance(entry, Mapping):
            entry = next(
                (
                    item
                    for item in user_info.values()
                    if isinstance(item, Mapping) and _entry_id(item) == participant_id
                ),
                None,
            )
        return _first_text(entry, NAME_KEYS)
    if isinstance(user_info, list):
        for entry in user_info:
            if isinstance(entry, Mapping) and _entry_id(entry) == participant_id:
                return _first_text(entry, NAME_KEYS)
    return None


def members_from_thread_info(info: Any) -> Dict[str, str]:
    members: Dict[str, str] = {}
    if not isinstance(info, Mapping):
        return members
    user_info = info.get("userInfo")
    if isinstance(user_info, list):
        for entry in user_info:
            if not isinstance(entry, Mapping):
                continue
            user_id = _entry_id(entry)
            if is_valid_user_id(user_id):
                members[user_id] = (
                    _first_text(entry, ("name", "fullName", "firstName")) or user_id
                )
    elif isinstance(user_info, Mapping):
        for raw_id, entry in user_info.items():
            user_id = str(raw_id)
            if is_valid_user_id(user_id):
                members[user_id] = _first_text(entry, NAME_KEYS) or user_id
    participants = info.get("participants")
    if isinstance(participants, list):
        for entry in participants:
            if not isinstance(entry, Mapping):
                continue
            user_id = _entry_id(entry)
            if is_valid_user_id(user_id) and user_id not in members:
                members[user_id] = _first_text(entry, NAME_KEYS) or user_id
    return members


class DirectoryLookup:
    """Ask the platform directory about one participant."""

    def __init__(self, directory: MemberDirectory) -> None:
        self.directory = directory

    async def __call__(self, participant_id: str, conversation_id: Optional[str]) -> Optional[str]:
        info = await self.directory.get_user_info(participant_id, conversation_id)
        return name_from_user_info(info, participant_id)


class ParticipantListLookup:
    """Search the participant list of the current conversation."""

    def __init__(self, directory: MemberDirectory) -> None:
        self.directory = directory

    async def __call__(self, participant_id: str, conversation_id: Optional[str]) -> Optional[str]:
        if not conversation_id:
            return None
        info = await self.directory.get_thread_info(conversation_id)
        return name_from_thread_info(info, participant_id)


class NameResolutionCache:
    """Participant id -> display name, resolved through an ordered list of strategies.

    The event-supplied hint and the cache are always consulted first. External
    strategies run in order; the first non-empty answer wins and is cached. A
    failing strategy is logged and skipped. When every strategy comes up empty
    the stringified id is cached so the lookups are not repeated within the TTL.
    """

    def __init__(
        self,
        directory: Optional[MemberDirectory] = None,
        *,
        strategies: Optional[List[NameStrategy]] = None,
        max_names: int = MAX_NAMES,
        ttl: float = NAME_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        self._cache: BoundedKeyedCache[str, str] = BoundedKeyedCache(
            max_names, ttl=ttl, clock=clock
        )
        if strategies is None:
            strategies = []
            if directory is not None:
                strategies = [DirectoryLookup(directory), ParticipantListLookup(directory)]
        self.strategies: List[NameStrategy] = list(strategies)

    def add_strategy(self, strategy: NameStrategy) -> None:
        self.strategies.append(strategy)

    def remember(self, participant_id: str, name: str) -> None:
        self._cache.put(str(participant_id), name)

    def cached_name(self, participant_id: str) -> Optional[str]:
        return self._cache.get(str(participant_id))

    async def resolve_name(
        self,
        participant_id: str,
        hint: Optional[str] = None,
        *,
        conversation_id: Optional[str] = None,
    ) -> str:
        key = str(participant_id)
        if hint and hint.strip():
            name = hint.strip()
            self._cache.put(key, name)
            return name

        cached = self._cache.get(key)
        if cached:
            return cached

        for strategy in self.strategies:
            try:
                name = await strategy(key, conversation_id)
            except Exception as exc:
                log.warning("name lookup for %s failed in %s: %s", key, type(strategy).__name__, exc)
                continue
            if name:
                self._cache.put(key, name)
                return name

        self._cache.put(key, key)
        return key

    async def resolve_all_members(self, conversation_id: str) -> Dict[str, str]:
        if self.directory is None:
            return {}
        try:
            info = await self.directory.get_thread_info(conversation_id)
        except Exception as exc:
            log.warning("failed to fetch members of %s: %s", conversation_id, exc)
            return {}
        members = members_from_thread_info(info)
        for user_id, name in members.items():
            self._cache.put(user_id, name)
        return members

    def __len__(self) -> int:
        return len(self._cache)
