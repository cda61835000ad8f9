"""Async REST client for the chat API, authenticated with the X-User-Id header."""
from typing import Any, Dict, List, Optional

import httpx


class ChatApiError(Exception):

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class ChatApiClient:

    def __init__(
        self,
        base_url: str,
        user_id: str,
        api_prefix: str = "/api",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._prefix = api_prefix.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json", "X-User-Id": user_id},
            transport=transport,
            timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._client.request(method, f"{self._prefix}{path}", json=json)
        if response.is_error:
            try:
                message = response.json().get("message", response.reason_phrase)
            except ValueError:
                message = response.reason_phrase
            raise ChatApiError(response.status_code, message)
        return response.json()

    # users
    async def list_users(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/users")

    async def sync_profile(self, display_name: str, avatar_url: str = "", email: str = "") -> Dict[str, Any]:
        return await self._request("POST", "/users/sync", {"displayName": display_name, "avatarUrl": avatar_url, "email": email})

    # conversations
    async def list_conversations(self) -> List[Dict[str, Any]]:
        return await self._request("GET", "/conversations")

    async def ensure_conversation(self, target_user_id: str) -> Dict[str, Any]:
        return await self._request("POST", "/conversations", {"targetUserId": target_user_id})

    async def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/conversations/{conversation_id}")

    # messages
    async def list_messages(self, conversation_id: str) -> List[Dict[str, Any]]:
        return await self._request("GET", f"/messages/{conversation_id}")

    async def send_message(self, conversation_id: str, text: str) -> Dict[str, Any]:
        return await self._request("POST", "/messages", {"conversationId": conversation_id, "text": text})
