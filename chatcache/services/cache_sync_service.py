import json
import logging
from typing import Any, Dict

from pydantic import ValidationError

from chatcache.schemas.conversation import ConversationSummary
from chatcache.schemas.message import Message
from chatcache.services.message_cache_service import MessageCacheService


logger = logging.getLogger(__name__)

MESSAGE_ADDED = "message_added"
MESSAGE_UPDATED = "message_updated"
MESSAGE_REMOVED = "message_removed"
CONVERSATION_UPDATED = "conversation_updated"
CONVERSATION_CLEARED = "conversation_cleared"


class CacheSyncService:
    """Keeps this process's cache in step with writes made by other workers.

    Every write goes out on the bus as ``{"event", "origin", "payload"}``; events
    carrying our own ``instance_id`` were already applied locally and are skipped.
    """

    def __init__(self, cache: MessageCacheService, instance_id: str) -> None:
        self._cache = cache
        self.instance_id = instance_id

    def encode(self, event: str, payload: Dict[str, Any]) -> str:
        return json.dumps({"event": event, "origin": self.instance_id, "payload": payload})

    async def handle(self, raw: str) -> None:
        self.apply(raw)

    def apply(self, raw: str) -> bool:
        """Apply one bus message to the cache. Returns whether it was applied."""
        try:
            envelope = json.loads(raw)
            event = envelope["event"]
            origin = envelope.get("origin")
            payload = envelope["payload"]
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping malformed cache event: %r", raw)
            return False

        if origin == self.instance_id:
            return False

        try:
            if event == MESSAGE_ADDED:
                self._cache.add_message(Message.model_validate(payload))
            elif event == MESSAGE_UPDATED:
                self._cache.update_message(Message.model_validate(payload))
            elif event == MESSAGE_REMOVED:
                self._cache.remove_message(payload["message_id"], payload["conversation_id"])
            elif event == CONVERSATION_UPDATED:
                summary = ConversationSummary.model_validate(payload)
                self._cache.update_conversation(summary)
                self._cache.add_conversation(summary)
            elif event == CONVERSATION_CLEARED:
                self._cache.clear_conversation(payload["conversation_id"])
                if payload.get("user_id"):
                    self._cache.remove_conversation(payload["conversation_id"], payload["user_id"])
            else:
                logger.warning("Ignoring unknown cache event %s", event)
                return False
        except (ValidationError, ValueError, KeyError, TypeError):
            logger.warning("Dropping invalid %s event from %s", event, origin, exc_info=True)
            return False

        logger.debug("Applied %s event from %s", event, origin)
        return True
