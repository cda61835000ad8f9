from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.models.conversation import ConversationDocument, LastMessageSnapshot


def direct_key_for(user_a: str, user_b: str) -> str:
    return "|".join(sorted([user_a, user_b]))


def _normalize(doc: Optional[Dict[str, Any]]) -> Optional[ConversationDocument]:
    if doc:
        doc["_id"] = str(doc.get("_id"))
        doc.setdefault("unread_counts", {})
    return doc


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("members", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])
        # group conversations carry no direct_key
        await self.collection.create_index([("direct_key", ASCENDING)], unique=True, sparse=True)

    async def get_by_id(self, conversation_id: ObjectId) -> Optional[ConversationDocument]:
        return _normalize(await self.collection.find_one({"_id": conversation_id}))

    async def get_or_create_direct(self, user_a: str, user_b: str) -> tuple[ConversationDocument, bool]:
        """Return the direct conversation between two users, creating it if needed.

        Keyed by the sorted member pair; the unique index on ``direct_key``
        turns a concurrent duplicate insert into a lookup. The boolean is
        True when this call inserted the document.
        """
        key = direct_key_for(user_a, user_b)
        existing = await self.collection.find_one({"direct_key": key})
        if existing:
            return _normalize(existing), False
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "members": [user_a, user_b],
            "is_group": False,
            "direct_key": key,
            "name": None,
            "avatar_url": None,
            "unread_counts": {user_a: 0, user_b: 0},
            "last_message": None,
            "last_message_at": now,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            return _normalize(await self.collection.find_one({"direct_key": key})), False
        doc["_id"] = str(result.inserted_id)
        return doc, True

    async def create_group(self, members: List[str], name: str, avatar_url: Optional[str] = None) -> ConversationDocument:
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "members": members,
            "is_group": True,
            "name": name,
            "avatar_url": avatar_url,
            "unread_counts": {member: 0 for member in members},
            "last_message": None,
            "last_message_at": now,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def list_for_user(self, user_id: str) -> List[ConversationDocument]:
        sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]
        items = await self.collection.find({"members": user_id}).sort(sort).to_list(length=None)
        return [_normalize(it) for it in items]

    async def apply_new_message(
        self,
        conversation_id: ObjectId,
        sender_id: str,
        members: List[str],
        last_message: LastMessageSnapshot,
    ) -> Optional[ConversationDocument]:
        # single atomic update: concurrent sends cannot lose increments
        update: Dict[str, Any] = {
            "$set": {
                f"unread_counts.{sender_id}": 0,
                "last_message": last_message,
                "last_message_at": last_message["created_at"],
                "updated_at": datetime.now(timezone.utc),
            },
        }
        increments = {f"unread_counts.{member}": 1 for member in members if member != sender_id}
        if increments:
            update["$inc"] = increments
        doc = await self.collection.find_one_and_update(
            {"_id": conversation_id},
            update,
            return_document=ReturnDocument.AFTER,
        )
        return _normalize(doc)

    async def release_unread(
        self,
        conversation_id: ObjectId,
        user_id: str,
        newest_seen_id: Optional[str],
        read_count: int,
    ) -> None:
        """Bring ``user_id``'s counter down after a fetch marked ``read_count`` messages.

        When the newest message the reader saw is still the conversation's
        last message the counter goes straight to 0. Otherwise something
        arrived after the reader's snapshot and only the messages actually
        read are subtracted, never going below 0.
        """
        field = f"unread_counts.{user_id}"
        if newest_seen_id:
            unchanged = {"_id": conversation_id, "last_message.id": newest_seen_id}
        else:
            unchanged = {"_id": conversation_id, "last_message": None}
        result = await self.collection.update_one(unchanged, {"$set": {field: 0}})
        if result.matched_count or not read_count:
            return
        await self.collection.update_one({"_id": conversation_id}, {"$inc": {field: -read_count}})
        await self.collection.update_one({"_id": conversation_id, field: {"$lt": 0}}, {"$set": {field: 0}})
