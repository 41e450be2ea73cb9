import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

log = logging.getLogger(__name__)


def split_conversation_id(conversation_id: str) -> Tuple[str, str]:
    """Split ``"telegram:123"`` into ``("telegram", "123")``; bare ids get an empty platform."""
    platform, sep, raw = str(conversation_id).partition(":")
    if not sep:
        return "", platform
    return platform.strip().lower(), raw


class NotificationDispatcher(ABC):
    """Delivers a message into a conversation. Returns False on failure."""

    @abstractmethod
    async def deliver(
        self, conversation_id: str, owner_name: str, owner_id: str, text: str
    ) -> bool:
        raise NotImplementedError


class MemberDirectory(ABC):
    """Platform lookup of user and conversation membership info. May raise."""

    @abstractmethod
    async def get_user_info(
        self, user_id: str, conversation_id: Optional[str] = None
    ) -> Any:
        raise NotImplementedError

    @abstractmethod
    async def get_thread_info(self, conversation_id: str) -> Any:
        raise NotImplementedError


class RoutingDispatcher(NotificationDispatcher):
    def __init__(self, routes: Optional[Dict[str, NotificationDispatcher]] = None) -> None:
        self._routes: Dict[str, NotificationDispatcher] = {}
        for platform, dispatcher in (routes or {}).items():
            self.register(platform, dispatcher)

    def register(self, platform: str, dispatcher: NotificationDispatcher) -> None:
        self._routes[platform.strip().lower()] = dispatcher

    async def deliver(
        self, conversation_id: str, owner_name: str, owner_id: str, text: str
    ) -> bool:
        platform, raw_id = split_conversation_id(conversation_id)
        dispatcher = self._routes.get(platform)
        if dispatcher is None:
            log.warning("no dispatcher registered for %s", conversation_id)
            return False
        return await dispatcher.deliver(raw_id, owner_name, owner_id, text)


class RoutingDirectory(MemberDirectory):
    """Routes lookups by conversation prefix, falling back to ``default`` for user lookups."""

    def __init__(
        self,
        routes: Optional[Dict[str, MemberDirectory]] = None,
        *,
        default: Optional[str] = None,
    ) -> None:
        self._routes: Dict[str, MemberDirectory] = {}
        self.default = default
        for platform, directory in (routes or {}).items():
            self.register(platform, directory)

    def register(self, platform: str, directory: MemberDirectory) -> None:
        key = platform.strip().lower()
        self._routes[key] = directory
        if self.default is None:
            self.default = key

    async def get_user_info(
        self, user_id: str, conversation_id: Optional[str] = None
    ) -> Any:
        platform, raw_conversation = "", None
        if conversation_id:
            platform, raw_conversation = split_conversation_id(conversation_id)
        directory = self._routes.get(platform) or self._routes.get(self.default or "")
        if directory is None:
            return None
        return await directory.get_user_info(user_id, raw_conversation)

    async def get_thread_info(self, conversation_id: str) -> Any:
        platform, raw_id = split_conversation_id(conversation_id)
        directory = self._routes.get(platform)
        if directory is None:
            return None
        return await directory.get_thread_info(raw_id)
