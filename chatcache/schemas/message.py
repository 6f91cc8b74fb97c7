from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Read naive datetimes (as stored by MongoDB) as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MessageType(str, Enum):

    text = "text"
    photo = "photo"
    video = "video"
    voice = "voice"


class MessageStatus(str, Enum):

    sent = "sent"
    delivered = "delivered"
    read = "read"
    failed = "failed"


class Message(BaseModel):

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    type: MessageType = MessageType.text
    status: MessageStatus = MessageStatus.sent
    created_at: datetime
    read_at: Optional[datetime] = None
    is_deleted: bool = False
    # users who deleted the message for themselves only
    hidden_for: List[str] = Field(default_factory=list)
    media_path: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("created_at", "read_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Message":
        return cls(
            id=str(doc["_id"]),
            conversation_id=str(doc["conversation_id"]),
            sender_id=doc["sender_id"],
            receiver_id=doc["receiver_id"],
            content=doc.get("content", ""),
            type=doc.get("type") or MessageType.text,
            status=doc.get("status") or MessageStatus.sent,
            created_at=doc["created_at"],
            read_at=doc.get("read_at"),
            is_deleted=doc.get("is_deleted", False),
            hidden_for=list(doc.get("hidden_for") or []),
            media_path=doc.get("media_path"),
            metadata=doc.get("metadata"),
        )


class MessageCreate(BaseModel):

    receiver_id: str = Field(min_length=1)
    content: str = ""
    type: MessageType = MessageType.text
    media_path: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class MessageEdit(BaseModel):

    content: str = Field(min_length=1)
