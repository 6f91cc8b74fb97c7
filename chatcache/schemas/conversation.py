from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from chatcache.schemas.message import MessageType, as_utc


class ConversationSummary(BaseModel):

    id: str
    participant_ids: List[str]
    last_message_id: Optional[str] = None
    last_message_preview: Optional[str] = None
    last_message_type: Optional[MessageType] = None
    last_message_timestamp: Optional[datetime] = None
    # per-user unread counters (user_id -> count)
    unread_counts: Dict[str, int] = Field(default_factory=dict)
    created_at: datetime
    last_updated_at: datetime

    @field_validator("last_message_timestamp", "created_at", "last_updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def effective_timestamp(self) -> datetime:
        return self.last_message_timestamp or self.last_updated_at

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ConversationSummary":
        return cls(
            id=str(doc["_id"]),
            participant_ids=list(doc.get("participants", [])),
            last_message_id=doc.get("last_message_id"),
            last_message_preview=doc.get("last_message_preview"),
            last_message_type=doc.get("last_message_type"),
            last_message_timestamp=doc.get("last_message_at"),
            unread_counts=dict(doc.get("unread_counters") or {}),
            created_at=doc["created_at"],
            last_updated_at=doc["last_updated_at"],
        )
