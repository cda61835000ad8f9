from datetime import datetime
from typing import TypedDict


class UserProfileDocument(TypedDict, total=False):

    _id: str
    user_id: str
    display_name: str
    avatar_url: str
    email: str
    last_seen_at: datetime
