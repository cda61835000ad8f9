from typing import List, Optional

from app.models.user import UserProfileDocument
from app.repositories.user_repository import UserRepository
from app.schemas.user import ProfileSyncRequest, UserPublic
from app.utils.errors import InvalidArgument
from app.utils.websocket_manager import ConnectionManager


class UserService:
    """Profile directory used for sender metadata and conversation member lists."""

    def __init__(self, user_repository: UserRepository, connections: Optional[ConnectionManager] = None):
        self.user_repository = user_repository
        self.connections = connections

    async def sync_profile(self, user_id: str, payload: ProfileSyncRequest) -> UserPublic:
        """
        Upsert the caller's profile and stamp last_seen_at.
        """
        display_name = (payload.display_name or "").strip()
        if not display_name:
            raise InvalidArgument("displayName is required")

        profile = await self.user_repository.upsert_profile(
            user_id=user_id,
            display_name=display_name,
            avatar_url=payload.avatar_url or "",
            email=str(payload.email) if payload.email else "",
        )
        return self._to_public(profile)

    async def list_users(self) -> List[UserPublic]:
        profiles = await self.user_repository.list_all()
        return [self._to_public(p) for p in profiles]

    def _to_public(self, profile: UserProfileDocument) -> UserPublic:
        return UserPublic(
            user_id=profile["user_id"],
            display_name=profile.get("display_name") or "",
            avatar_url=profile.get("avatar_url") or "",
            email=profile.get("email") or "",
            last_seen_at=profile.get("last_seen_at"),
            online=bool(self.connections and self.connections.is_online(profile["user_id"])),
        )
