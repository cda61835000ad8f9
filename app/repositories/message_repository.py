from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from app.models.message import MessageDocument


def _normalize(doc: Dict[str, Any]) -> MessageDocument:
    doc["_id"] = str(doc.get("_id"))
    doc["conversation_id"] = str(doc.get("conversation_id"))
    doc.setdefault("read_by", [])
    return doc


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", ASCENDING)])

    async def insert(
        self,
        conversation_id: ObjectId,
        sender_id: str,
        sender_name: str,
        sender_avatar: str,
        text: str,
    ) -> MessageDocument:
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "sender_name": sender_name,
            "sender_avatar": sender_avatar,
            "text": text,
            "status": "sent",
            "read_by": [sender_id],
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return _normalize(dict(doc))

    async def list_for_conversation(self, conversation_id: ObjectId) -> List[MessageDocument]:
        # _id breaks created_at ties in insertion order
        sort = [("created_at", ASCENDING), ("_id", ASCENDING)]
        items = await self.collection.find({"conversation_id": conversation_id}).sort(sort).to_list(length=None)
        return [_normalize(it) for it in items]

    async def list_by_ids(self, message_ids: List[str]) -> List[MessageDocument]:
        if not message_ids:
            return []
        sort = [("created_at", ASCENDING), ("_id", ASCENDING)]
        query = {"_id": {"$in": [ObjectId(mid) for mid in message_ids]}}
        items = await self.collection.find(query).sort(sort).to_list(length=None)
        return [_normalize(it) for it in items]

    async def mark_read_by(
        self,
        conversation_id: ObjectId,
        message_ids: List[str],
        reader_id: str,
        members: List[str],
    ) -> int:
        """Add ``reader_id`` to ``read_by`` of the given messages only.

        Messages stored after the caller took its snapshot stay untouched.
        Returns how many messages gained the reader.
        """
        if not message_ids:
            return 0
        oids = [ObjectId(mid) for mid in message_ids]
        now = datetime.now(timezone.utc)
        result = await self.collection.update_many(
            {
                "_id": {"$in": oids},
                "conversation_id": conversation_id,
                "sender_id": {"$ne": reader_id},
                "read_by": {"$ne": reader_id},
            },
            {"$addToSet": {"read_by": reader_id}, "$set": {"updated_at": now}},
        )
        if result.modified_count:
            # stored status flips only once every member has read the message
            await self.collection.update_many(
                {
                    "_id": {"$in": oids},
                    "status": "sent",
                    "read_by": {"$all": members},
                },
                {"$set": {"status": "seen"}},
            )
        return result.modified_count or 0

    async def get_in_conversation(self, message_id: str, conversation_id: ObjectId) -> Optional[MessageDocument]:
        if not ObjectId.is_valid(message_id):
            return None
        doc = await self.collection.find_one({"_id": ObjectId(message_id), "conversation_id": conversation_id})
        return _normalize(doc) if doc else None
