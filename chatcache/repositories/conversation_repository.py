from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from chatcache.models.conversation import ConversationDocument


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_updated_at", DESCENDING)])

    async def get_or_create_one_to_one(self, user_a: str, user_b: str) -> ConversationDocument:
        participants = sorted([user_a, user_b])
        existing = await self.collection.find_one({"participants": participants})
        if existing:
            existing["_id"] = str(existing.get("_id"))
            return existing
        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "participants": participants,
            "last_message_id": None,
            "last_message_preview": None,
            "last_message_type": None,
            "last_message_at": None,
            "unread_counters": {user_a: 0, user_b: 0},
            "created_at": now,
            "last_updated_at": now,
            "hidden_for": [],
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def get_conversation(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = self._to_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def update_on_new_message(
        self,
        conversation_id: str,
        message_id: str,
        preview: str,
        message_type: str,
        receiver_id: str,
    ) -> Optional[ConversationDocument]:
        now = datetime.now(timezone.utc)
        return await self._update(
            conversation_id,
            {
                "$set": {
                    "last_message_id": message_id,
                    "last_message_preview": preview,
                    "last_message_type": message_type,
                    "last_message_at": now,
                    "last_updated_at": now,
                    # a new message brings the conversation back for anyone who hid it
                    "hidden_for": [],
                },
                "$inc": {f"unread_counters.{receiver_id}": 1},
            },
        )

    async def reset_unread(self, conversation_id: str, user_id: str) -> Optional[ConversationDocument]:
        return await self._update(
            conversation_id,
            {"$set": {f"unread_counters.{user_id}": 0}},
        )

    async def hide_for_user(self, conversation_id: str, user_id: str) -> Optional[ConversationDocument]:
        return await self._update(conversation_id, {"$addToSet": {"hidden_for": user_id}})

    async def list_for_user(self, user_id: str, limit: int = 20) -> List[ConversationDocument]:
        query = {"participants": {"$in": [user_id]}, "hidden_for": {"$ne": user_id}}
        sort = [("last_updated_at", DESCENDING), ("_id", DESCENDING)]
        cursor_db = self.collection.find(query).sort(sort).limit(limit)
        items = await cursor_db.to_list(length=limit)
        for it in items:
            it["_id"] = str(it.get("_id"))
        return items

    async def _update(self, conversation_id: str, update: Dict[str, Any]) -> Optional[ConversationDocument]:
        oid = self._to_object_id(conversation_id)
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
