"""Live connection registry: presence, rooms and fanout.

One instance is created per application (see ``app.main.lifespan``) and
shared by the REST send path and the websocket endpoint. All mutations
happen synchronously on the event loop, so no lock is needed.

Rooms are keyed ``conversation:<id>`` for conversation broadcasts and
``user:<id>`` for the own-identity room every connection joins on connect.
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from app.schemas.realtime import WsOutbound


logger = logging.getLogger(__name__)

# message ids remembered to suppress duplicate relays
FANOUT_DEDUP_CACHE_SIZE = 10000


def conversation_room(conversation_id: str) -> str:
    return f"conversation:{conversation_id}"


def user_room(user_id: str) -> str:
    return f"user:{user_id}"


class ConnectionManager:

    def __init__(self, dedup_cache_size: int = FANOUT_DEDUP_CACHE_SIZE) -> None:
        self.active_connections: Dict[str, List[WebSocket]] = {}
        self.rooms: Dict[str, Set[WebSocket]] = {}
        self._joined: Dict[WebSocket, Set[str]] = {}
        self._owners: Dict[WebSocket, str] = {}
        self._fanned_out: "OrderedDict[str, None]" = OrderedDict()
        self._dedup_cache_size = dedup_cache_size

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        if user_id not in self.active_connections:
            self.active_connections[user_id] = []
        self.active_connections[user_id].append(websocket)
        self._owners[websocket] = user_id
        self._join_room(websocket, user_room(user_id))
        logger.info("Websocket connected: user=%s (%d live)", user_id, len(self.active_connections[user_id]))

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        if user_id in self.active_connections:
            try:
                self.active_connections[user_id].remove(websocket)
            except ValueError:
                pass
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]
        self._owners.pop(websocket, None)
        for room in list(self._joined.pop(websocket, set())):
            self._discard_from_room(websocket, room)
        logger.info("Websocket disconnected: user=%s", user_id)

    def is_online(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))

    def join(self, websocket: WebSocket, conversation_id: str) -> None:
        self._join_room(websocket, conversation_room(conversation_id))

    def leave(self, websocket: WebSocket, conversation_id: str) -> None:
        room = conversation_room(conversation_id)
        self._joined.get(websocket, set()).discard(room)
        self._discard_from_room(websocket, room)
        logger.debug("Left room %s", room)

    def room_size(self, room: str) -> int:
        return len(self.rooms.get(room, ()))

    def _join_room(self, websocket: WebSocket, room: str) -> None:
        self.rooms.setdefault(room, set()).add(websocket)
        self._joined.setdefault(websocket, set()).add(room)
        logger.debug("Joined room %s", room)

    def _discard_from_room(self, websocket: WebSocket, room: str) -> None:
        members = self.rooms.get(room)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.rooms[room]

    async def emit(self, room: str, event: str, data: Dict[str, Any], exclude: Optional[WebSocket] = None) -> int:
        """Send ``{"type": event, "data": data}`` to every connection in ``room``.

        An empty room is a no-op. Connections that fail to receive are
        disconnected: they leave every room and stop counting as online.
        The failure does not propagate.
        """
        delivered = 0
        payload = WsOutbound(type=event, data=data).model_dump()
        for conn in list(self.rooms.get(room, ())):
            if conn is exclude:
                continue
            try:
                await conn.send_json(payload)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping connection after failed %s delivery to %s: %s", event, room, exc)
                owner = self._owners.get(conn)
                if owner is not None:
                    self.disconnect(owner, conn)
                else:
                    for joined in list(self._joined.pop(conn, set())):
                        self._discard_from_room(conn, joined)
        return delivered

    async def broadcast_new_message(
        self,
        conversation_id: str,
        message: Dict[str, Any],
        exclude: Optional[WebSocket] = None,
    ) -> int:
        self._remember(message["id"])
        return await self.emit(
            conversation_room(conversation_id),
            "message:new",
            {"conversationId": conversation_id, "message": message},
            exclude=exclude,
        )

    async def notify_conversation_update(self, member_id: str, conversation_id: str) -> int:
        return await self.emit(user_room(member_id), "conversation:update", {"conversationId": conversation_id})

    def was_fanned_out(self, message_id: str) -> bool:
        return message_id in self._fanned_out

    def _remember(self, message_id: str) -> None:
        self._fanned_out[message_id] = None
        self._fanned_out.move_to_end(message_id)
        while len(self._fanned_out) > self._dedup_cache_size:
            self._fanned_out.popitem(last=False)

    async def close_all(self, code: int = 1001) -> None:
        for user_id, conns in list(self.active_connections.items()):
            for conn in list(conns):
                try:
                    await conn.close(code=code)
                except Exception as exc:
                    logger.debug("Close failed for user=%s: %s", user_id, exc)
                self.disconnect(user_id, conn)
