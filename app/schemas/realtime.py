"""Websocket envelope models."""
from typing import Any, Dict

from pydantic import BaseModel, Field


class WsInbound(BaseModel):
    """Client -> server."""

    type: str  # conversation:join | conversation:leave | message:new | ping
    data: Dict[str, Any] = Field(default_factory=dict)


class WsOutbound(BaseModel):
    """Server -> client."""

    type: str  # connected | message:new | conversation:update | conversation:joined | conversation:left | error | pong
    data: Dict[str, Any] = Field(default_factory=dict)
