from datetime import datetime
from typing import Optional

from pydantic import EmailStr, field_validator

from app.schemas.chat import CamelModel


class ProfileSyncRequest(CamelModel):

    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class UserPublic(CamelModel):

    user_id: str
    display_name: str
    avatar_url: str = ""
    email: str = ""
    last_seen_at: Optional[datetime] = None
    online: bool = False
