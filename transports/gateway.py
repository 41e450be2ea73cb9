import logging
from typing import Any, Callable, Dict, Optional

import aiohttp

from beta.notifications import MemberDirectory, NotificationDispatcher

log = logging.getLogger(__name__)

PLATFORM = "gateway"
REQUEST_TIMEOUT_SECONDS = 15


class GatewayClient:
    """Minimal JSON client for an HTTP messaging gateway (``/send``, ``/users``, ``/threads``)."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
        )

    def _headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def get_json(self, path: str) -> Any:
        async with self._session_factory() as session:
            async with session.get(f"{self.base_url}{path}", headers=self._headers()) as resp:
                resp.raise_for_status()
                return await resp.json()

    async def post_json(self, path: str, payload: dict) -> int:
        async with self._session_factory() as session:
            async with session.post(
                f"{self.base_url}{path}", json=payload, headers=self._headers()
            ) as resp:
                return resp.status


class GatewayDispatcher(NotificationDispatcher):
    def __init__(self, client: GatewayClient):
        self.client = client

    async def deliver(self, conversation_id: str, owner_name: str, owner_id: str, text: str) -> bool:
        payload = {
            "threadID": conversation_id,
            "body": text,
            "mentions": [{"tag": f"@{owner_name}", "id": owner_id}],
        }
        try:
            status = await self.client.post_json("/send", payload)
        except Exception as exc:
            log.warning("Failed to deliver notification to %s: %s", conversation_id, exc)
            return False
        if status >= 300:
            log.warning("gateway rejected notification to %s with HTTP %s", conversation_id, status)
            return False
        return True


class GatewayDirectory(MemberDirectory):
    def __init__(self, client: GatewayClient):
        self.client = client

    async def get_user_info(self, user_id: str, conversation_id: Optional[str] = None) -> Any:
        return await self.client.get_json(f"/users/{user_id}")

    async def get_thread_info(self, conversation_id: str) -> Any:
        return await self.client.get_json(f"/threads/{conversation_id}")
