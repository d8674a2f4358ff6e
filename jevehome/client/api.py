"""
HTTP side of the chat widget: talks to /api/agent/* with httpx and decodes the SSE stream.
"""
import logging
from collections.abc import AsyncIterator, Callable

import httpx

from jevehome.utils.sse import ChatEvent, SseDecoder

logger = logging.getLogger(__name__)

SESSION_EXPIRED_MESSAGE = "Session expired. Please refresh the page."


class ChatRequestRejected(Exception):
    """Server refused the request before streaming (auth, validation, not found)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("error")
        if isinstance(detail, str) and detail:
            return detail
    return f"Server error {response.status_code}"


class ChatApiClient:
    """
    token_provider returns the current bearer token (None when the session is gone).
    Pass http_client to reuse a client or to plug in a test transport.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None],
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 130.0,
    ):
        self._token_provider = token_provider
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_http = http_client is None

    def _headers(self) -> dict[str, str]:
        token = self._token_provider()
        if not token:
            raise ChatRequestRejected(SESSION_EXPIRED_MESSAGE, 401)
        return {"Authorization": f"Bearer {token}"}

    async def _get_json(self, path: str):
        response = await self._http.get(path, headers=self._headers())
        if response.status_code >= 400:
            raise ChatRequestRejected(_error_detail(response), response.status_code)
        return response.json()

    async def load_config(self) -> dict:
        return await self._get_json("/api/agent/config")

    async def list_conversations(self) -> list[dict]:
        return await self._get_json("/api/agent/conversations")

    async def get_messages(self, conversation_id: str) -> list[dict]:
        data = await self._get_json(f"/api/agent/conversations/{conversation_id}/messages")
        return data.get("messages", [])

    async def delete_conversation(self, conversation_id: str) -> None:
        response = await self._http.delete(
            f"/api/agent/conversations/{conversation_id}", headers=self._headers()
        )
        if response.status_code >= 400:
            raise ChatRequestRejected(_error_detail(response), response.status_code)

    async def stream_chat(
        self,
        message: str,
        conversation_id: str | None = None,
        enabled_tools: list[str] | None = None,
    ) -> AsyncIterator[ChatEvent]:
        """POST /api/agent/chat and yield events in arrival order, whatever the read sizes."""
        body: dict = {"message": message}
        if enabled_tools:
            body["enabledTools"] = list(enabled_tools)
        if conversation_id:
            body["conversationId"] = conversation_id

        async with self._http.stream("POST", "/api/agent/chat", json=body, headers=self._headers()) as response:
            if response.status_code >= 400:
                await response.aread()
                raise ChatRequestRejected(_error_detail(response), response.status_code)
            decoder = SseDecoder()
            async for piece in response.aiter_bytes():
                for event in decoder.feed(piece):
                    yield event
            for event in decoder.close():
                yield event

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
