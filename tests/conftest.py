"""
Shared fixtures: in-memory stand-ins for the MongoDB repositories.
"""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from chatcache.services.chat_service import ChatService
from chatcache.services.message_cache_service import MessageCacheService


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class Clock:

    def __init__(self) -> None:
        self.ticks = 0

    def now(self) -> datetime:
        self.ticks += 1
        return BASE_TIME + timedelta(seconds=self.ticks)


class FakeMessageRepository:

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.fail = False
        self.fetch_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise ServerSelectionTimeoutError("store down")

    async def save_message(self, conversation_id, sender_id, receiver_id, content, message_type="text", media_path=None, metadata=None):
        self._check()
        doc = {
            "_id": str(ObjectId()),
            "conversation_id": conversation_id,
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": content,
            "type": message_type,
            "status": "sent",
            "created_at": self.clock.now(),
            "read_at": None,
            "is_deleted": False,
            "hidden_for": [],
            "media_path": media_path,
            "metadata": metadata,
        }
        self.docs[doc["_id"]] = doc
        return copy.deepcopy(doc)

    async def get_message(self, message_id):
        self._check()
        doc = self.docs.get(message_id)
        return copy.deepcopy(doc) if doc else None

    async def get_messages_by_conversation(self, conversation_id, limit=30, before_message_id=None):
        self._check()
        self.fetch_calls += 1
        items = sorted(
            (d for d in self.docs.values() if d["conversation_id"] == conversation_id),
            key=lambda d: d["created_at"],
            reverse=True,
        )
        if before_message_id:
            anchor = self.docs.get(before_message_id)
            if anchor is None:
                raise LookupError(f"Message {before_message_id} not found for pagination")
            items = [d for d in items if d["created_at"] < anchor["created_at"]]
        return [copy.deepcopy(d) for d in items[:limit]]

    async def update_message(self, message_id, fields):
        self._check()
        doc = self.docs.get(message_id)
        if doc is None:
            return None
        doc.update(fields)
        return copy.deepcopy(doc)

    async def hide_for_user(self, message_id, user_id):
        self._check()
        doc = self.docs.get(message_id)
        if doc is None:
            return None
        if user_id not in doc["hidden_for"]:
            doc["hidden_for"].append(user_id)
        return copy.deepcopy(doc)

    async def delete_message(self, message_id):
        self._check()
        return self.docs.pop(message_id, None) is not None

    async def mark_read(self, conversation_id, receiver_id):
        self._check()
        count = 0
        for doc in self.docs.values():
            if doc["conversation_id"] == conversation_id and doc["receiver_id"] == receiver_id and doc["status"] in ("sent", "delivered"):
                doc["status"] = "read"
                doc["read_at"] = self.clock.now()
                count += 1
        return count


class FakeConversationRepository:

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.fail = False
        self.list_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise ServerSelectionTimeoutError("store down")

    async def get_or_create_one_to_one(self, user_a, user_b):
        self._check()
        participants = sorted([user_a, user_b])
        for doc in self.docs.values():
            if doc["participants"] == participants:
                return copy.deepcopy(doc)
        now = self.clock.now()
        doc = {
            "_id": str(ObjectId()),
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
        self.docs[doc["_id"]] = doc
        return copy.deepcopy(doc)

    async def get_conversation(self, conversation_id):
        self._check()
        doc = self.docs.get(conversation_id)
        return copy.deepcopy(doc) if doc else None

    async def update_on_new_message(self, conversation_id, message_id, preview, message_type, receiver_id):
        self._check()
        doc = self.docs.get(conversation_id)
        if doc is None:
            return None
        now = self.clock.now()
        doc.update(
            last_message_id=message_id,
            last_message_preview=preview,
            last_message_type=message_type,
            last_message_at=now,
            last_updated_at=now,
            hidden_for=[],
        )
        doc["unread_counters"][receiver_id] = doc["unread_counters"].get(receiver_id, 0) + 1
        return copy.deepcopy(doc)

    async def reset_unread(self, conversation_id, user_id):
        self._check()
        doc = self.docs.get(conversation_id)
        if doc is None:
            return None
        doc["unread_counters"][user_id] = 0
        return copy.deepcopy(doc)

    async def hide_for_user(self, conversation_id, user_id):
        self._check()
        doc = self.docs.get(conversation_id)
        if doc is None:
            return None
        if user_id not in doc["hidden_for"]:
            doc["hidden_for"].append(user_id)
        return copy.deepcopy(doc)

    async def list_for_user(self, user_id, limit=20):
        self._check()
        self.list_calls += 1
        items = sorted(
            (d for d in self.docs.values() if user_id in d["participants"] and user_id not in d["hidden_for"]),
            key=lambda d: d["last_updated_at"],
            reverse=True,
        )
        return [copy.deepcopy(d) for d in items[:limit]]


def strip_tz(doc):
    """Drop tzinfo the way MongoDB hands datetimes back to a non tz-aware client."""
    if doc is None:
        return None
    return {k: v.replace(tzinfo=None) if isinstance(v, datetime) else v for k, v in doc.items()}


class NaiveReadMessageRepository(FakeMessageRepository):

    async def get_message(self, message_id):
        return strip_tz(await super().get_message(message_id))

    async def get_messages_by_conversation(self, conversation_id, limit=30, before_message_id=None):
        docs = await super().get_messages_by_conversation(conversation_id, limit, before_message_id)
        return [strip_tz(d) for d in docs]

    async def update_message(self, message_id, fields):
        return strip_tz(await super().update_message(message_id, fields))

    async def hide_for_user(self, message_id, user_id):
        return strip_tz(await super().hide_for_user(message_id, user_id))


class NaiveReadConversationRepository(FakeConversationRepository):

    async def get_conversation(self, conversation_id):
        return strip_tz(await super().get_conversation(conversation_id))

    async def update_on_new_message(self, conversation_id, message_id, preview, message_type, receiver_id):
        return strip_tz(await super().update_on_new_message(conversation_id, message_id, preview, message_type, receiver_id))

    async def reset_unread(self, conversation_id, user_id):
        return strip_tz(await super().reset_unread(conversation_id, user_id))

    async def list_for_user(self, user_id, limit=20):
        return [strip_tz(d) for d in await super().list_for_user(user_id, limit)]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def message_repo(clock):
    return FakeMessageRepository(clock)


@pytest.fixture
def conversation_repo(clock):
    return FakeConversationRepository(clock)


@pytest.fixture
def cache():
    return MessageCacheService()


@pytest.fixture
def chat_service(message_repo, conversation_repo, cache):
    return ChatService(message_repo, conversation_repo, cache)


@pytest.fixture
def naive_chat_service(clock, cache):
    return ChatService(NaiveReadMessageRepository(clock), NaiveReadConversationRepository(clock), cache)
