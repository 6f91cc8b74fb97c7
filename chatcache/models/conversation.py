from datetime import datetime
from typing import List, Optional, TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: str
    participants: List[str]
    last_message_id: Optional[str]
    last_message_preview: Optional[str]
    last_message_type: Optional[str]
    last_message_at: Optional[datetime]
    # per-user unread counters (user_id -> count)
    unread_counters: dict[str, int]
    created_at: datetime
    last_updated_at: datetime
    # users who removed the conversation from their list
    hidden_for: List[str]
