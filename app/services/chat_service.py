import logging
from typing import List, Optional

from bson import ObjectId
from fastapi import WebSocket

from app.config import Settings, get_settings
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.schemas.chat import MessageOut
from app.services.access_guard import AccessGuard
from app.utils.errors import InvalidArgument
from app.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)


class ChatService:
    """Send and fetch paths that keep messages, read state and unread counters in sync."""

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        connections: Optional[ConnectionManager] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._connections = connections
        self._settings = settings or get_settings()
        self._guard = AccessGuard(conversation_repo)

    async def send_message(self, conversation_id: Optional[str], sender_id: str, text: Optional[str]) -> MessageOut:
        content = (text or "").strip()
        if not conversation_id or not content:
            raise InvalidArgument("conversationId and text are required")
        if len(content) > self._settings.max_message_length:
            raise InvalidArgument(f"Message text exceeds {self._settings.max_message_length} characters")

        conversation = await self._guard.authorize(conversation_id, sender_id)
        convo_oid = ObjectId(conversation["_id"])

        profile = await self._user_repo.get_by_user_id(sender_id)
        if profile:
            sender_name = profile.get("display_name") or self._settings.fallback_display_name
            sender_avatar = profile.get("avatar_url") or ""
        else:
            sender_name = self._settings.fallback_display_name
            sender_avatar = self._settings.fallback_avatar_url

        saved = await self._message_repo.insert(
            conversation_id=convo_oid,
            sender_id=sender_id,
            sender_name=sender_name,
            sender_avatar=sender_avatar,
            text=content,
        )
        # no transaction spans the insert above and the counter update below
        await self._conversation_repo.apply_new_message(
            convo_oid,
            sender_id,
            conversation["members"],
            {
                "id": saved["_id"],
                "text": content[: self._settings.message_preview_length],
                "sender_id": sender_id,
                "sender_name": sender_name,
                "sender_avatar": sender_avatar,
                "created_at": saved["created_at"],
            },
        )
        message = MessageOut.from_document(saved)
        await self._fan_out(conversation["_id"], conversation["members"], sender_id, message)
        return message

    async def list_messages(self, conversation_id: str, viewer_id: str) -> List[MessageOut]:
        conversation = await self._guard.authorize(conversation_id, viewer_id)
        convo_oid = ObjectId(conversation["_id"])

        # only what the viewer is about to receive gets marked read
        snapshot = await self._message_repo.list_for_conversation(convo_oid)
        ids = [doc["_id"] for doc in snapshot]
        marked = await self._message_repo.mark_read_by(convo_oid, ids, viewer_id, conversation["members"])
        docs = await self._message_repo.list_by_ids(ids)
        messages = [
            MessageOut.from_document(doc, status=None if doc["sender_id"] == viewer_id else "seen")
            for doc in docs
        ]
        await self._conversation_repo.release_unread(convo_oid, viewer_id, ids[-1] if ids else None, marked)
        return messages

    async def relay_message(
        self,
        conversation_id: str,
        sender_id: str,
        message_id: Optional[str],
        origin: Optional[WebSocket] = None,
    ) -> int:
        """Forward a client-relayed ``message:new`` to the rest of the room.

        Only messages that exist in the conversation, were sent by the relaying
        user and were not already fanned out by the send path are forwarded.
        Returns the number of connections reached.
        """
        if message_id is not None and not isinstance(message_id, str):
            raise InvalidArgument("message id must be a string")
        conversation = await self._guard.authorize(conversation_id, sender_id)
        if self._connections is None or not message_id or self._connections.was_fanned_out(message_id):
            return 0
        doc = await self._message_repo.get_in_conversation(message_id, ObjectId(conversation["_id"]))
        if not doc or doc["sender_id"] != sender_id:
            return 0
        message = MessageOut.from_document(doc)
        return await self._connections.broadcast_new_message(
            conversation["_id"], message.model_dump(mode="json", by_alias=True), exclude=origin
        )

    async def _fan_out(self, conversation_id: str, members: List[str], sender_id: str, message: MessageOut) -> None:
        if self._connections is None:
            return
        try:
            await self._connections.broadcast_new_message(conversation_id, message.model_dump(mode="json", by_alias=True))
            for member_id in members:
                if member_id != sender_id:
                    await self._connections.notify_conversation_update(member_id, conversation_id)
        except Exception:
            # delivery is best effort; the message is already persisted
            logger.warning("Fanout failed for conversation %s", conversation_id, exc_info=True)
