"""Async REST client for the chat server.

Wraps the six REST endpoints the client depends on and turns their JSON
into typed models:

    - GET  /conversations/{userId}            sidebar summaries
    - GET  /conversations/detail/{id}         snapshot with participants
    - GET  /messages/{conversationId}         ordered history
    - POST /messages                          send a message
    - POST /conversations                     create or look up a conversation
    - GET  /users/search?q=&exclude=          user search

Every failure (network, non-2xx status, unexpected body) surfaces as a
ChatApiError so callers handle one exception type.
"""
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from chatsync.chat.schemas import ConversationSnapshot, ConversationSummary, Message, Participant
from chatsync.errors import ChatApiError

logger = logging.getLogger(__name__)

# Default timeout for REST calls (in seconds)
DEFAULT_TIMEOUT_SECONDS = 10.0

ModelT = TypeVar("ModelT", bound=BaseModel)


def _segment(value: str) -> str:
    return quote(value, safe="")


class ChatApiClient:
    """Typed wrapper over the chat server's REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def list_conversations(self, user_id: str) -> List[ConversationSummary]:
        path = f"/conversations/{_segment(user_id)}"
        data = await self._request("GET", path)
        return self._parse_list(path, data, ConversationSummary)

    async def get_conversation(self, conversation_id: str) -> ConversationSnapshot:
        path = f"/conversations/detail/{_segment(conversation_id)}"
        data = await self._request("GET", path)
        return self._parse(path, data, ConversationSnapshot)

    async def get_messages(self, conversation_id: str) -> List[Message]:
        path = f"/messages/{_segment(conversation_id)}"
        data = await self._request("GET", path)
        return self._parse_list(path, data, Message)

    async def send_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        path = "/messages"
        data = await self._request(
            "POST",
            path,
            json={"conversationId": conversation_id, "senderId": sender_id, "content": content},
        )
        return self._parse(path, data, Message)

    async def create_conversation(self, sender_id: str, receiver_id: str) -> str:
        """Create (or look up) the conversation between two users; return its ID."""
        path = "/conversations"
        data = await self._request(
            "POST", path, json={"senderId": sender_id, "receiverId": receiver_id}
        )
        if isinstance(data, str) and data:
            return data
        if isinstance(data, dict):
            for key in ("_id", "id", "conversationId"):
                value = data.get(key)
                if isinstance(value, str) and value:
                    return value
        raise ChatApiError("response has no conversation ID", path)

    async def search_users(self, query: str, exclude: Optional[str] = None) -> List[Participant]:
        path = "/users/search"
        params: Dict[str, str] = {"q": query}
        if exclude:
            params["exclude"] = exclude
        data = await self._request("GET", path, params=params)
        return self._parse_list(path, data, Participant)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("[API] %s %s -> %s", method, path, e.response.status_code)
            raise ChatApiError(
                e.response.reason_phrase or "request failed", path, e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            logger.warning("[API] %s %s failed: %s", method, path, e)
            raise ChatApiError(str(e) or type(e).__name__, path) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ChatApiError("response is not JSON", path, response.status_code) from e

    @staticmethod
    def _parse(path: str, data: Any, model: Type[ModelT]) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ChatApiError(f"unexpected {model.__name__} shape", path) from e

    @staticmethod
    def _parse_list(path: str, data: Any, model: Type[ModelT]) -> List[ModelT]:
        try:
            return TypeAdapter(List[model]).validate_python(data or [])  # type: ignore[valid-type]
        except ValidationError as e:
            raise ChatApiError(f"unexpected {model.__name__} list shape", path) from e
