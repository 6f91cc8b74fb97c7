from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    # text | photo | video | voice
    type: str
    # sent | delivered | read | failed
    status: str
    created_at: datetime
    read_at: Optional[datetime]
    is_deleted: bool
    hidden_for: List[str]
    media_path: Optional[str]
    metadata: Optional[Dict[str, Any]]
