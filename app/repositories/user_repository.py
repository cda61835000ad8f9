from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from app.models.user import UserProfileDocument


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("user_profiles")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("user_id", ASCENDING)], unique=True)

    async def upsert_profile(self, user_id: str, display_name: str, avatar_url: str, email: str) -> UserProfileDocument:

        profile = await self._collection.find_one_and_update(
            {"user_id": user_id},
            {
                "$set": {
                    "user_id": user_id,
                    "display_name": display_name,
                    "avatar_url": avatar_url,
                    "email": email,
                    "last_seen_at": datetime.now(timezone.utc),
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        profile["_id"] = str(profile["_id"])
        return profile

    async def get_by_user_id(self, user_id: str) -> Optional[UserProfileDocument]:

        profile = await self._collection.find_one({"user_id": user_id})
        if profile:
            profile["_id"] = str(profile["_id"])  # normalize to string for API layer
        return profile

    async def get_many(self, user_ids: Iterable[str]) -> Dict[str, UserProfileDocument]:
        ids = list(user_ids)
        if not ids:
            return {}
        profiles = await self._collection.find({"user_id": {"$in": ids}}).to_list(length=None)
        return {p["user_id"]: p for p in profiles}

    async def list_all(self) -> List[UserProfileDocument]:
        cursor = self._collection.find().sort("display_name", ASCENDING)
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items
