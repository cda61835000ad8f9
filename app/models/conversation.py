from datetime import datetime
from typing import Dict, List, Optional, TypedDict


class LastMessageSnapshot(TypedDict, total=False):
    id: str
    text: str
    sender_id: str
    sender_name: str
    sender_avatar: str
    created_at: datetime


class ConversationDocument(TypedDict, total=False):
    _id: str
    members: List[str]
    is_group: bool
    # sorted "a|b" member pair, only set on direct conversations
    direct_key: Optional[str]
    name: Optional[str]
    avatar_url: Optional[str]
    # per-member unread counters (user_id -> count)
    unread_counts: Dict[str, int]
    last_message: Optional[LastMessageSnapshot]
    last_message_at: datetime
    created_at: datetime
    updated_at: datetime
