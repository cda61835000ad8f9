from typing import Dict, Iterable, List, Optional, Tuple

from app.models.conversation import ConversationDocument
from app.models.user import UserProfileDocument
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.user_repository import UserRepository
from app.schemas.chat import ConversationOut, LastMessage, MemberOut
from app.services.access_guard import AccessGuard
from app.utils.errors import InvalidArgument


def _clean_member_id(raw: Optional[str]) -> str:
    member_id = (raw or "").strip()
    if "." in member_id or member_id.startswith("$"):
        raise InvalidArgument(f"Invalid user id: {member_id}")
    return member_id


class ConversationService:

    def __init__(self, conversation_repo: ConversationRepository, user_repo: UserRepository) -> None:
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._guard = AccessGuard(conversation_repo)

    async def list_conversations(self, user_id: str) -> List[ConversationOut]:
        docs = await self._conversation_repo.list_for_user(user_id)
        profiles = await self._user_repo.get_many({m for doc in docs for m in doc.get("members", [])})
        return [self._to_view(doc, user_id, profiles) for doc in docs]

    async def get_conversation(self, conversation_id: str, user_id: str) -> ConversationOut:
        doc = await self._guard.authorize(conversation_id, user_id)
        return await self._view(doc, user_id)

    async def ensure_direct(self, user_id: str, target_user_id: Optional[str]) -> Tuple[ConversationOut, bool]:
        target = _clean_member_id(target_user_id)
        if not target:
            raise InvalidArgument("targetUserId is required")
        if target == user_id:
            raise InvalidArgument("Cannot start a conversation with yourself")
        doc, created = await self._conversation_repo.get_or_create_direct(user_id, target)
        return await self._view(doc, user_id), created

    async def create_group(
        self,
        user_id: str,
        member_ids: Iterable[str],
        name: Optional[str],
        avatar_url: Optional[str] = None,
    ) -> ConversationOut:
        members = [user_id]
        for member in member_ids:
            member = _clean_member_id(member)
            if member and member not in members:
                members.append(member)
        if len(members) < 2:
            raise InvalidArgument("A group needs at least one other member")
        if not name or not name.strip():
            raise InvalidArgument("name is required for group conversations")
        doc = await self._conversation_repo.create_group(members, name.strip(), avatar_url or None)
        return await self._view(doc, user_id)

    async def _view(self, doc: ConversationDocument, user_id: str) -> ConversationOut:
        profiles = await self._user_repo.get_many(doc.get("members", []))
        return self._to_view(doc, user_id, profiles)

    def _to_view(self, doc: ConversationDocument, user_id: str, profiles: Dict[str, UserProfileDocument]) -> ConversationOut:
        member_ids = list(doc.get("members", []))
        members = []
        for member_id in member_ids:
            profile = profiles.get(member_id) or {}
            members.append(MemberOut(
                user_id=member_id,
                display_name=profile.get("display_name") or member_id,
                avatar_url=profile.get("avatar_url") or "",
                last_seen_at=profile.get("last_seen_at"),
            ))

        if doc.get("is_group"):
            name = doc.get("name") or "Group"
            avatar = doc.get("avatar_url") or ""
        else:
            other = next((m for m in members if m.user_id != user_id), None)
            name = other.display_name if other else ""
            avatar = other.avatar_url if other else ""

        last = doc.get("last_message")
        return ConversationOut(
            id=doc["_id"],
            is_group=bool(doc.get("is_group")),
            name=name,
            avatar_url=avatar,
            member_ids=member_ids,
            members=members,
            last_message=LastMessage(**last) if last else None,
            last_message_at=doc.get("last_message_at"),
            unread_count=int(doc.get("unread_counts", {}).get(user_id, 0)),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )
