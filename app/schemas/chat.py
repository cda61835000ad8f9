from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LastMessage(CamelModel):

    id: Optional[str] = None
    text: str
    sender_id: str
    sender_name: str = ""
    sender_avatar: str = ""
    created_at: datetime


class MessageOut(CamelModel):

    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    sender_avatar: str = ""
    text: str
    status: Literal["sent", "seen"]
    read_by: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any], status: Optional[str] = None) -> "MessageOut":
        return cls(
            id=doc["_id"],
            conversation_id=doc["conversation_id"],
            sender_id=doc["sender_id"],
            sender_name=doc.get("sender_name") or "",
            sender_avatar=doc.get("sender_avatar") or "",
            text=doc["text"],
            status=status or doc.get("status", "sent"),
            read_by=list(doc.get("read_by", [])),
            created_at=doc["created_at"],
            updated_at=doc.get("updated_at") or doc["created_at"],
        )


class SendMessageRequest(CamelModel):

    conversation_id: Optional[str] = None
    text: Optional[str] = None


class MemberOut(CamelModel):

    user_id: str
    display_name: str
    avatar_url: str = ""
    last_seen_at: Optional[datetime] = None


class ConversationOut(CamelModel):

    id: str
    is_group: bool = False
    name: str = ""
    avatar_url: str = ""
    member_ids: List[str]
    members: List[MemberOut] = Field(default_factory=list)
    last_message: Optional[LastMessage] = None
    last_message_at: Optional[datetime] = None
    unread_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CreateConversationRequest(CamelModel):

    target_user_id: Optional[str] = None
    # group creation
    member_ids: Optional[List[str]] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
