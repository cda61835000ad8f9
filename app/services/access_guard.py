from bson import ObjectId

from app.models.conversation import ConversationDocument
from app.repositories.conversation_repository import ConversationRepository
from app.utils.errors import AccessDenied, InvalidIdentifier, NotFound


def parse_conversation_id(conversation_id: str) -> ObjectId:
    if not conversation_id or not ObjectId.is_valid(conversation_id):
        raise InvalidIdentifier()
    return ObjectId(conversation_id)


class AccessGuard:
    """Checks that a caller belongs to a conversation before any read or write."""

    def __init__(self, conversation_repo: ConversationRepository) -> None:
        self._conversation_repo = conversation_repo

    async def authorize(self, conversation_id: str, caller_id: str) -> ConversationDocument:
        """Load the conversation and return it if ``caller_id`` is a member.

        Raises InvalidIdentifier for a malformed id, NotFound when no such
        conversation exists and AccessDenied for non-members.
        """
        oid = parse_conversation_id(conversation_id)
        conversation = await self._conversation_repo.get_by_id(oid)
        if not conversation:
            raise NotFound()
        if caller_id not in conversation.get("members", []):
            raise AccessDenied()
        return conversation
