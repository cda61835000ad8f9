from typing import Optional

from fastapi import Header, Request, WebSocket

from app.utils.errors import Unauthenticated
from app.utils.websocket_manager import ConnectionManager


USER_ID_HEADER = "X-User-Id"


def normalize_user_id(raw: Optional[str]) -> str:
    user_id = (raw or "").strip()
    if not user_id:
        raise Unauthenticated()
    # user ids become field names inside unread_counts
    if "." in user_id or user_id.startswith("$"):
        raise Unauthenticated("Malformed user ID")
    return user_id


async def get_current_user_id(x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER)) -> str:
    return normalize_user_id(x_user_id)


def resolve_socket_user_id(websocket: WebSocket) -> Optional[str]:
    raw = websocket.headers.get(USER_ID_HEADER) or websocket.query_params.get("userId")
    try:
        return normalize_user_id(raw)
    except Unauthenticated:
        return None


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connections
