import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from chatcache.repositories.conversation_repository import ConversationRepository
from chatcache.repositories.message_repository import MessageRepository
from chatcache.schemas.conversation import ConversationSummary
from chatcache.schemas.message import Message, MessageStatus, MessageType
from chatcache.services import cache_sync_service as events
from chatcache.services.cache_sync_service import CacheSyncService
from chatcache.services.message_cache_service import MessageCacheService
from chatcache.utils.realtime_bus import CACHE_EVENTS_CHANNEL


logger = logging.getLogger(__name__)

DELETED_PLACEHOLDER = "This message was deleted"


class ChatServiceError(Exception):
    pass


class MessageNotFoundError(ChatServiceError):
    pass


class ConversationNotFoundError(ChatServiceError):
    pass


class PermissionDeniedError(ChatServiceError):
    pass


def generate_message_preview(content: str, message_type: MessageType, metadata: Optional[Dict[str, Any]] = None) -> str:
    metadata = metadata or {}
    if message_type == MessageType.text:
        return content if len(content) <= 50 else f"{content[:47]}..."
    if message_type in (MessageType.photo, MessageType.video):
        label = "Photo" if message_type == MessageType.photo else "Video"
        caption = metadata.get("caption")
        return f"{label}: {caption}" if caption else label
    duration = metadata.get("duration")
    if duration is None:
        return "Voice message"
    minutes, seconds = divmod(int(float(duration)), 60)
    return f"Voice message ({minutes}m {seconds}s)" if minutes else f"Voice message ({seconds}s)"


class ChatService:
    """Message and conversation operations, read through ``MessageCacheService``.

    The store stays authoritative: every write lands in MongoDB first, then the
    local cache is patched and the change is published for other workers.
    """

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        cache: MessageCacheService,
        bus=None,
        sync: Optional[CacheSyncService] = None,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._cache = cache
        self._bus = bus
        self._sync = sync

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: MessageType = MessageType.text,
        media_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Message:
        content = (content or "").strip()
        if message_type == MessageType.text and not content:
            raise ValueError("Message content cannot be empty")
        if message_type != MessageType.text and not media_path:
            raise ValueError(f"A {message_type.value} message needs a media_path")
        if sender_id == receiver_id:
            raise ValueError("Cannot send a message to yourself")

        convo = await self._conversation_repo.get_or_create_one_to_one(sender_id, receiver_id)
        saved = await self._message_repo.save_message(
            conversation_id=convo["_id"],
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            message_type=message_type.value,
            media_path=media_path,
            metadata=metadata,
        )
        message = Message.from_document(saved)
        self._cache.add_message(message)
        await self._publish(events.MESSAGE_ADDED, message.model_dump(mode="json"))

        updated = await self._conversation_repo.update_on_new_message(
            convo["_id"],
            message.id,
            generate_message_preview(content, message_type, metadata),
            message_type.value,
            receiver_id,
        )
        if updated is None:
            # the message is stored; only the conversation summary is stale
            logger.warning("Conversation %s vanished while sending message %s", convo["_id"], message.id)
        else:
            await self._apply_conversation(ConversationSummary.from_document(updated))
        return message

    async def get_messages(
        self,
        conversation_id: str,
        user_id: Optional[str] = None,
        limit: int = 30,
        before_message_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> List[Message]:
        """
        Newest-first page of a conversation.

        The first page comes from the cache when it holds enough messages; a
        fetched first page is merged into the cache. Older pages always go to
        the store. When the store fails the cached first page is served instead.
        """
        if not conversation_id:
            raise ValueError("conversation_id is required")
        first_page = before_message_id is None

        if first_page and not force_refresh:
            cached = self._visible(self._cache.get_messages(conversation_id), user_id)
            if cached is not None and len(cached) >= limit:
                logger.debug("Serving conversation %s from cache", conversation_id)
                return cached[:limit]

        try:
            docs = await self._message_repo.get_messages_by_conversation(
                conversation_id, limit=limit, before_message_id=before_message_id
            )
        except LookupError as exc:
            raise MessageNotFoundError(str(exc)) from exc
        except PyMongoError as exc:
            cached = self._visible(self._cache.get_messages(conversation_id), user_id)
            if first_page and not force_refresh and cached is not None:
                logger.warning("Store unavailable, serving cached messages for %s: %s", conversation_id, exc)
                return cached[:limit]
            logger.exception("Failed to load messages for conversation %s", conversation_id)
            raise ChatServiceError(f"Failed to get messages: {exc}") from exc

        messages = [Message.from_document(doc) for doc in docs]
        if first_page:
            self._cache.set_messages(conversation_id, messages)
        return self._visible(messages, user_id)

    async def get_conversations(self, user_id: str, limit: int = 20, force_refresh: bool = False) -> List[ConversationSummary]:
        if not user_id:
            raise ValueError("user_id is required")
        if not force_refresh:
            cached = self._cache.get_conversations(user_id)
            if cached is not None:
                logger.debug("Serving conversations for user %s from cache", user_id)
                return cached[:limit]

        try:
            docs = await self._conversation_repo.list_for_user(user_id, limit=limit)
        except PyMongoError as exc:
            cached = self._cache.get_conversations(user_id)
            if not force_refresh and cached is not None:
                logger.warning("Store unavailable, serving cached conversations for %s: %s", user_id, exc)
                return cached[:limit]
            logger.exception("Failed to load conversations for user %s", user_id)
            raise ChatServiceError(f"Failed to get conversations: {exc}") from exc

        conversations = [ConversationSummary.from_document(doc) for doc in docs]
        self._cache.set_conversations(user_id, conversations)
        return conversations

    async def edit_message(self, message_id: str, user_id: str, content: str) -> Message:
        content = (content or "").strip()
        if not content:
            raise ValueError("Message content cannot be empty")
        doc = await self._get_message_doc(message_id)
        if doc["sender_id"] != user_id:
            raise PermissionDeniedError("Only the sender can edit a message")
        if doc.get("is_deleted"):
            raise PermissionDeniedError("A deleted message cannot be edited")
        updated = await self._message_repo.update_message(message_id, {"content": content})
        if updated is None:
            raise MessageNotFoundError(f"Message {message_id} not found")
        message = Message.from_document(updated)
        self._cache.update_message(message)
        await self._publish(events.MESSAGE_UPDATED, message.model_dump(mode="json"))
        return message

    async def delete_message(self, message_id: str, user_id: str, delete_for_everyone: bool = False) -> None:
        """
        Delete a message for everyone (sender only) or just for ``user_id``.

        Deleting for everyone keeps a placeholder in the conversation. Once both
        participants have deleted it for themselves, the message is purged.
        """
        doc = await self._get_message_doc(message_id)
        if user_id not in (doc["sender_id"], doc["receiver_id"]):
            raise PermissionDeniedError("Not a participant of this message")

        if delete_for_everyone:
            if doc["sender_id"] != user_id:
                raise PermissionDeniedError("Only the sender can delete messages for everyone")
            updated = await self._message_repo.update_message(
                message_id, {"is_deleted": True, "content": DELETED_PLACEHOLDER}
            )
        else:
            updated = await self._message_repo.hide_for_user(message_id, user_id)
        if updated is None:
            raise MessageNotFoundError(f"Message {message_id} not found")

        hidden = set(updated.get("hidden_for") or [])
        if {updated["sender_id"], updated["receiver_id"]} <= hidden:
            await self._message_repo.delete_message(message_id)
            self._cache.remove_message(message_id, updated["conversation_id"])
            await self._publish(
                events.MESSAGE_REMOVED,
                {"message_id": message_id, "conversation_id": updated["conversation_id"]},
            )
            return

        message = Message.from_document(updated)
        self._cache.update_message(message)
        await self._publish(events.MESSAGE_UPDATED, message.model_dump(mode="json"))

    async def mark_read(self, conversation_id: str, user_id: str) -> int:
        convo = await self._get_conversation_doc(conversation_id, user_id)
        modified = await self._message_repo.mark_read(convo["_id"], user_id)

        now = datetime.now(timezone.utc)
        for message in self._cache.get_messages(conversation_id) or []:
            if message.receiver_id == user_id and message.status in (MessageStatus.sent, MessageStatus.delivered):
                read = message.model_copy(update={"status": MessageStatus.read, "read_at": now})
                self._cache.update_message(read)
                await self._publish(events.MESSAGE_UPDATED, read.model_dump(mode="json"))

        updated = await self._conversation_repo.reset_unread(conversation_id, user_id)
        if updated is not None:
            await self._apply_conversation(ConversationSummary.from_document(updated))
        return modified

    async def delete_conversation(self, conversation_id: str, user_id: str) -> None:
        await self._get_conversation_doc(conversation_id, user_id)
        await self._conversation_repo.hide_for_user(conversation_id, user_id)
        self._cache.clear_conversation(conversation_id)
        self._cache.remove_conversation(conversation_id, user_id)
        await self._publish(events.CONVERSATION_CLEARED, {"conversation_id": conversation_id, "user_id": user_id})

    def sign_out(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        logger.info("User %s signed out, clearing cache", user_id)
        self._cache.clear_all()

    async def _get_message_doc(self, message_id: str) -> Dict[str, Any]:
        if not message_id:
            raise ValueError("message_id is required")
        doc = await self._message_repo.get_message(message_id)
        if doc is None:
            raise MessageNotFoundError(f"Message {message_id} not found")
        return doc

    async def _get_conversation_doc(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        if not conversation_id:
            raise ValueError("conversation_id is required")
        convo = await self._conversation_repo.get_conversation(conversation_id)
        if convo is None:
            raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
        if user_id not in convo.get("participants", []):
            raise PermissionDeniedError("Not a participant of this conversation")
        return convo

    async def _apply_conversation(self, summary: ConversationSummary) -> None:
        self._cache.update_conversation(summary)
        self._cache.add_conversation(summary)
        await self._publish(events.CONVERSATION_UPDATED, summary.model_dump(mode="json"))

    async def _publish(self, event: str, payload: Dict[str, Any]) -> None:
        if self._bus is None or self._sync is None or not getattr(self._bus, "enabled", False):
            return
        try:
            await self._bus.publish(CACHE_EVENTS_CHANNEL, self._sync.encode(event, payload))
        except Exception:
            # the write itself is already stored
            logger.warning("Failed to publish %s cache event", event, exc_info=True)

    @staticmethod
    def _visible(messages: Optional[List[Message]], user_id: Optional[str]) -> Optional[List[Message]]:
        if messages is None or user_id is None:
            return messages
        return [m for m in messages if user_id not in m.hidden_for]
