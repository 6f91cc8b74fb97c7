import logging
from typing import Dict, List, Optional, Sequence

from chatcache.schemas.conversation import ConversationSummary
from chatcache.schemas.message import Message


logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES_PER_CONVERSATION = 100


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise ValueError(f"{name} is required")
    return value


def _newest_first(messages: Sequence[Message]) -> List[Message]:
    return sorted(messages, key=lambda m: m.created_at, reverse=True)


def _by_recency(conversations: Sequence[ConversationSummary]) -> List[ConversationSummary]:
    return sorted(conversations, key=lambda c: c.effective_timestamp, reverse=True)


class MessageCacheService:
    """In-process cache of recent messages and conversation lists.

    Messages are kept per conversation, unique by id, newest first and capped at
    ``max_messages_per_conversation``. Conversation summaries are kept per user,
    ordered by their effective timestamp.

    Not thread-safe: a single instance belongs to one event loop.
    """

    def __init__(self, max_messages_per_conversation: int = DEFAULT_MAX_MESSAGES_PER_CONVERSATION) -> None:
        if max_messages_per_conversation < 1:
            raise ValueError("max_messages_per_conversation must be at least 1")
        self.max_messages_per_conversation = max_messages_per_conversation
        self._messages: Dict[str, List[Message]] = {}
        self._conversations: Dict[str, List[ConversationSummary]] = {}

    def get_messages(self, conversation_id: str) -> Optional[List[Message]]:
        _require(conversation_id, "conversation_id")
        cached = self._messages.get(conversation_id)
        if cached is None:
            return None
        return list(cached)

    def has_messages(self, conversation_id: str) -> bool:
        _require(conversation_id, "conversation_id")
        return conversation_id in self._messages

    def set_messages(self, conversation_id: str, messages: Sequence[Message]) -> None:
        _require(conversation_id, "conversation_id")
        # a partial page must not evict older cached messages;
        # incoming entries win on id collision
        unique: Dict[str, Message] = {m.id: m for m in self._messages.get(conversation_id, [])}
        for message in messages:
            unique[message.id] = message
        self._messages[conversation_id] = _newest_first(list(unique.values()))[: self.max_messages_per_conversation]
        logger.debug(
            "Cached %d messages for conversation %s (%d kept)",
            len(messages),
            conversation_id,
            len(self._messages[conversation_id]),
        )

    def add_message(self, message: Message) -> None:
        """Insert a message unless one with the same id is already cached.

        Duplicates are ignored; use :meth:`update_message` to replace.
        """
        conversation_id = _require(message.conversation_id, "message.conversation_id")
        _require(message.id, "message.id")
        existing = self._messages.get(conversation_id)
        if existing is None:
            self._messages[conversation_id] = [message]
        elif any(m.id == message.id for m in existing):
            logger.debug("Message %s already cached for conversation %s", message.id, conversation_id)
            return
        else:
            self._messages[conversation_id] = _newest_first(existing + [message])[: self.max_messages_per_conversation]
        logger.debug("Added message %s to conversation %s cache", message.id, conversation_id)

    def update_message(self, message: Message) -> None:
        conversation_id = _require(message.conversation_id, "message.conversation_id")
        _require(message.id, "message.id")
        existing = self._messages.get(conversation_id)
        if existing is None:
            return
        resort = False
        updated: List[Message] = []
        for cached in existing:
            if cached.id == message.id:
                resort = resort or cached.created_at != message.created_at
                updated.append(message)
            else:
                updated.append(cached)
        self._messages[conversation_id] = _newest_first(updated) if resort else updated
        logger.debug("Updated message %s in conversation %s cache", message.id, conversation_id)

    def remove_message(self, message_id: str, conversation_id: str) -> None:
        _require(message_id, "message_id")
        _require(conversation_id, "conversation_id")
        existing = self._messages.get(conversation_id)
        if existing is None:
            return
        self._messages[conversation_id] = [m for m in existing if m.id != message_id]
        logger.debug("Removed message %s from conversation %s cache", message_id, conversation_id)

    def clear_conversation(self, conversation_id: str) -> None:
        _require(conversation_id, "conversation_id")
        self._messages.pop(conversation_id, None)
        logger.debug("Cleared cache for conversation %s", conversation_id)

    def get_conversations(self, user_id: str) -> Optional[List[ConversationSummary]]:
        _require(user_id, "user_id")
        cached = self._conversations.get(user_id)
        if cached is None:
            return None
        return list(cached)

    def set_conversations(self, user_id: str, conversations: Sequence[ConversationSummary]) -> None:
        _require(user_id, "user_id")
        self._conversations[user_id] = _by_recency(conversations)
        logger.debug("Cached %d conversations for user %s", len(conversations), user_id)

    def update_conversation(self, conversation: ConversationSummary) -> None:
        """Replace ``conversation`` in every participant's cached list that holds it."""
        _require(conversation.id, "conversation.id")
        for user_id in conversation.participant_ids:
            existing = self._conversations.get(user_id)
            if existing is None or not any(c.id == conversation.id for c in existing):
                continue
            replaced = [conversation if c.id == conversation.id else c for c in existing]
            self._conversations[user_id] = _by_recency(replaced)
            logger.debug("Updated conversation %s in user %s cache", conversation.id, user_id)

    def add_conversation(self, conversation: ConversationSummary) -> None:
        """Insert a new conversation into participants' cached lists that lack it.

        Users without a cached list are skipped; they load it on their next read.
        """
        _require(conversation.id, "conversation.id")
        for user_id in conversation.participant_ids:
            existing = self._conversations.get(user_id)
            if existing is None or any(c.id == conversation.id for c in existing):
                continue
            self._conversations[user_id] = _by_recency(existing + [conversation])
            logger.debug("Added conversation %s to user %s cache", conversation.id, user_id)

    def remove_conversation(self, conversation_id: str, user_id: str) -> None:
        _require(conversation_id, "conversation_id")
        _require(user_id, "user_id")
        existing = self._conversations.get(user_id)
        if existing is None:
            return
        self._conversations[user_id] = [c for c in existing if c.id != conversation_id]
        logger.debug("Removed conversation %s from user %s cache", conversation_id, user_id)

    def clear_all(self) -> None:
        self._messages.clear()
        self._conversations.clear()
        logger.debug("Cleared all caches")

    def stats(self) -> Dict[str, int]:
        return {
            "conversations": len(self._messages),
            "messages": sum(len(v) for v in self._messages.values()),
            "users": len(self._conversations),
        }
