"""Client-side state for one signed-in user.

Merges REST-fetched history with websocket events into a single ordered,
duplicate-free message sequence for the open conversation, and keeps the
conversation list (preview, unread badge, ordering) in step with both.

Messages and conversations are kept in their JSON wire form (camelCase
dicts) exactly as the API returns them.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

import httpx

from app.client.api import ChatApiClient, ChatApiError


logger = logging.getLogger(__name__)

Emit = Callable[[str, Dict[str, Any]], Awaitable[None]]

HISTORY_ERROR = "We couldn't fetch the conversation history. Please retry."
SEND_ERROR = "Your message could not be sent. Please try again."
LIST_ERROR = "Unable to load conversations. Please try again."
START_ERROR = "Unable to start conversation. Please try again."
DETAIL_ERROR = "Failed to load conversation details."

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str) and value:
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _EPOCH
    else:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _message_id(message: Dict[str, Any]) -> Optional[str]:
    return message.get("id") or message.get("_id")


class MessageTimeline:
    """Ordered messages of the open conversation, unique by id."""

    def __init__(self) -> None:
        self._items: List[Dict[str, Any]] = []
        self._ids: set = set()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._items)

    @property
    def ids(self) -> List[str]:
        return [_message_id(m) for m in self._items]

    def add(self, message: Dict[str, Any]) -> bool:
        """Append ``message`` unless one with the same id is already present."""
        message_id = _message_id(message)
        if message_id is None or message_id in self._ids:
            return False
        self._ids.add(message_id)
        self._items.append(message)
        return True

    def replace(self, messages: List[Dict[str, Any]]) -> None:
        self.clear()
        for message in messages:
            self.add(message)

    def clear(self) -> None:
        self._items = []
        self._ids = set()


class ConversationList:
    """Conversations ordered by last activity, newest first."""

    def __init__(self) -> None:
        self._by_id: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self.ordered())

    def get(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        return self._by_id.get(conversation_id)

    def ordered(self) -> List[Dict[str, Any]]:
        return sorted(
            self._by_id.values(),
            key=lambda c: _parse_ts(c.get("lastMessageAt") or c.get("createdAt")),
            reverse=True,
        )

    def replace_all(self, conversations: List[Dict[str, Any]]) -> None:
        self._by_id = {c["id"]: dict(c) for c in conversations}

    def upsert(self, conversation: Dict[str, Any]) -> None:
        self._by_id[conversation["id"]] = dict(conversation)

    def mark_seen(self, conversation_id: str) -> None:
        conversation = self._by_id.get(conversation_id)
        if conversation is not None:
            conversation["unreadCount"] = 0

    def apply_message(self, conversation_id: str, message: Dict[str, Any], own_user_id: str, is_open: bool) -> bool:
        conversation = self._by_id.get(conversation_id)
        if conversation is None:
            return False
        message_id = _message_id(message)
        if message_id and (conversation.get("lastMessage") or {}).get("id") == message_id:
            return True
        conversation["lastMessage"] = {
            "id": message_id,
            "text": message.get("text", ""),
            "senderId": message.get("senderId"),
            "senderName": message.get("senderName", ""),
            "senderAvatar": message.get("senderAvatar", ""),
            "createdAt": message.get("createdAt"),
        }
        conversation["lastMessageAt"] = message.get("createdAt")
        if is_open or message.get("senderId") == own_user_id:
            conversation["unreadCount"] = 0
        else:
            conversation["unreadCount"] = int(conversation.get("unreadCount") or 0) + 1
        return True


class ChatSession:

    def __init__(self, api: ChatApiClient, user_id: str, emit: Optional[Emit] = None) -> None:
        self.api = api
        self.user_id = user_id
        self._emit = emit
        self.conversations = ConversationList()
        self.timeline = MessageTimeline()
        self.active_conversation_id: Optional[str] = None
        self.draft = ""
        self.error: Optional[str] = None
        self.is_loading = False
        self.is_sending = False

    async def _send_event(self, event_type: str, data: Dict[str, Any]) -> None:
        if self._emit is not None:
            await self._emit(event_type, data)

    async def bootstrap(self, display_name: str, avatar_url: str = "", email: str = "") -> None:
        try:
            await self.api.sync_profile(display_name, avatar_url, email)
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.info("Profile sync failed: %s", exc)
            self.error = "We couldn't prepare your chat workspace. Please refresh."
            return
        await self.refresh_conversations()

    async def refresh_conversations(self) -> None:
        self.error = None
        try:
            self.conversations.replace_all(await self.api.list_conversations())
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.info("Conversation list failed: %s", exc)
            self.error = LIST_ERROR

    async def start_conversation(self, target_user_id: str) -> Optional[Dict[str, Any]]:
        try:
            conversation = await self.api.ensure_conversation(target_user_id)
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.info("Start conversation failed: %s", exc)
            self.error = START_ERROR
            return None
        self.conversations.upsert(conversation)
        await self.open_conversation(conversation["id"])
        return conversation

    async def open_conversation(self, conversation_id: Optional[str]) -> None:
        previous = self.active_conversation_id
        if previous and previous != conversation_id:
            await self._send_event("conversation:leave", {"conversationId": previous})

        # nothing from the previous conversation survives the switch
        self.timeline.clear()
        self.draft = ""
        self.error = None
        self.active_conversation_id = conversation_id
        if not conversation_id:
            return

        if self.conversations.get(conversation_id) is None:
            try:
                self.conversations.upsert(await self.api.get_conversation(conversation_id))
            except (ChatApiError, httpx.HTTPError) as exc:
                logger.info("Conversation detail failed: %s", exc)
                self.error = DETAIL_ERROR

        await self._send_event("conversation:join", {"conversationId": conversation_id})
        await self.load_history()

    async def load_history(self) -> None:
        """Fetch the open conversation; the fetch itself marks everything read server-side."""
        conversation_id = self.active_conversation_id
        if not conversation_id:
            return
        self.is_loading = True
        try:
            messages = await self.api.list_messages(conversation_id)
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.info("History fetch failed: %s", exc)
            if conversation_id == self.active_conversation_id:
                self.error = HISTORY_ERROR
            return
        finally:
            self.is_loading = False
        if conversation_id != self.active_conversation_id:
            return
        # keep anything pushed while the fetch was in flight
        pending = [m for m in self.timeline]
        self.timeline.replace(messages)
        for message in pending:
            self.timeline.add(message)
        self.conversations.mark_seen(conversation_id)

    async def send(self, text: Optional[str] = None) -> Optional[Dict[str, Any]]:
        content = (self.draft if text is None else text).strip()
        conversation_id = self.active_conversation_id
        if not content or not conversation_id:
            return None

        self.is_sending = True
        self.error = None
        try:
            message = await self.api.send_message(conversation_id, content)
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.info("Send failed: %s", exc)
            self.error = SEND_ERROR
            return None
        finally:
            self.is_sending = False

        self.timeline.add(message)
        self.conversations.apply_message(conversation_id, message, self.user_id, is_open=True)
        await self._send_event("message:new", {"conversationId": conversation_id, "message": message})
        self.draft = ""
        return message

    async def handle_event(self, event_type: str, data: Dict[str, Any]) -> None:
        conversation_id = data.get("conversationId")
        if not conversation_id:
            return
        is_open = conversation_id == self.active_conversation_id

        if event_type == "message:new":
            message = data.get("message") or {}
            if is_open:
                self.timeline.add(message)
            self.conversations.apply_message(conversation_id, message, self.user_id, is_open=is_open)
        elif event_type == "conversation:update":
            if is_open:
                # re-run the fetch path rather than trusting the push
                await self.load_history()
                return
            try:
                self.conversations.upsert(await self.api.get_conversation(conversation_id))
            except (ChatApiError, httpx.HTTPError) as exc:
                logger.info("Background refresh of %s failed: %s", conversation_id, exc)
