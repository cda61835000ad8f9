from datetime import datetime
from typing import List, Literal, TypedDict


MessageStatus = Literal["sent", "seen"]


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    # denormalized at send time
    sender_name: str
    sender_avatar: str
    text: str
    status: MessageStatus
    read_by: List[str]
    created_at: datetime
    updated_at: datetime
