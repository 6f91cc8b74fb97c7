from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from chatcache.models.message import MessageDocument


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("receiver_id", ASCENDING), ("status", ASCENDING)])

    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: str = "text",
        media_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> MessageDocument:
        doc: Dict[str, Any] = {
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": content,
            "type": message_type,
            "status": "sent",
            "created_at": datetime.now(timezone.utc),
            "read_at": None,
            "is_deleted": False,
            "hidden_for": [],
            "media_path": media_path,
            "metadata": metadata,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def get_message(self, message_id: str) -> Optional[MessageDocument]:
        oid = self._to_object_id(message_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def get_messages_by_conversation(
        self,
        conversation_id: str,
        limit: int = 30,
        before_message_id: Optional[str] = None,
    ) -> List[MessageDocument]:
        """Newest first. ``before_message_id`` pages past an already-seen message."""
        query: Dict[str, Any] = {"conversation_id": conversation_id}
        if before_message_id:
            anchor = await self.get_message(before_message_id)
            if anchor is None:
                raise LookupError(f"Message {before_message_id} not found for pagination")
            anchor_oid = ObjectId(anchor["_id"])
            query["$or"] = [
                {"created_at": {"$lt": anchor["created_at"]}},
                {"created_at": anchor["created_at"], "_id": {"$lt": anchor_oid}},
            ]
        cur = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit)
        items = await cur.to_list(length=limit)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def update_message(self, message_id: str, fields: Dict[str, Any]) -> Optional[MessageDocument]:
        return await self._update(message_id, {"$set": fields})

    async def hide_for_user(self, message_id: str, user_id: str) -> Optional[MessageDocument]:
        return await self._update(message_id, {"$addToSet": {"hidden_for": user_id}})

    async def delete_message(self, message_id: str) -> bool:
        oid = self._to_object_id(message_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def mark_read(self, conversation_id: str, receiver_id: str) -> int:
        result = await self.collection.update_many(
            {
                "conversation_id": conversation_id,
                "receiver_id": receiver_id,
                "status": {"$in": ["sent", "delivered"]},
            },
            {"$set": {"status": "read", "read_at": datetime.now(timezone.utc)}},
        )
        return result.modified_count or 0

    async def _update(self, message_id: str, update: Dict[str, Any]) -> Optional[MessageDocument]:
        oid = self._to_object_id(message_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            update,
            return_document=ReturnDocument.AFTER,
        )
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    def _to_object_id(self, oid_hex: str) -> Optional[ObjectId]:
        try:
            return ObjectId(oid_hex)
        except (InvalidId, TypeError):
            return None
