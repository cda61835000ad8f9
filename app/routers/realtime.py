import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app.database.connection import mongo_db_dependency
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.schemas.realtime import WsInbound
from app.services.access_guard import AccessGuard
from app.services.chat_service import ChatService
from app.utils.dependencies import resolve_socket_user_id
from app.utils.errors import ChatError, InternalError, InvalidArgument
from app.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

UNAUTHORIZED_CLOSE_CODE = 4401


async def _send_error(websocket: WebSocket, event: str, exc: ChatError) -> None:
    await websocket.send_json({
        "type": "error",
        "data": {"event": event, "message": exc.message, "status": exc.status_code},
    })


def _conversation_id(data: dict) -> str:
    conversation_id = data.get("conversationId")
    if not conversation_id or not isinstance(conversation_id, str):
        raise InvalidArgument("conversationId is required")
    return conversation_id


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket, db = Depends(mongo_db_dependency)):
    # identity comes from the X-User-Id header or ?userId=
    user_id = resolve_socket_user_id(websocket)
    if not user_id:
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    manager: ConnectionManager = websocket.app.state.connections
    conversation_repo = ConversationRepository(db)
    guard = AccessGuard(conversation_repo)
    service = ChatService(MessageRepository(db), conversation_repo, UserRepository(db), manager)

    await manager.connect(user_id, websocket)
    try:
        await websocket.send_json({"type": "connected", "data": {"userId": user_id}})
        while True:
            raw = await websocket.receive_text()
            try:
                event = WsInbound.model_validate(json.loads(raw))
            except (ValueError, ValidationError):
                await _send_error(websocket, "unknown", InvalidArgument("Invalid event payload"))
                continue

            try:
                if event.type == "conversation:join":
                    conversation = await guard.authorize(_conversation_id(event.data), user_id)
                    manager.join(websocket, conversation["_id"])
                    await websocket.send_json({"type": "conversation:joined", "data": {"conversationId": conversation["_id"]}})
                elif event.type == "conversation:leave":
                    conversation_id = _conversation_id(event.data)
                    manager.leave(websocket, conversation_id)
                    await websocket.send_json({"type": "conversation:left", "data": {"conversationId": conversation_id}})
                elif event.type == "message:new":
                    message = event.data.get("message")
                    message_id = None
                    if isinstance(message, dict):
                        message_id = message.get("id") or message.get("_id")
                    await service.relay_message(_conversation_id(event.data), user_id, message_id, origin=websocket)
                elif event.type == "ping":
                    await websocket.send_json({"type": "pong", "data": {}})
                else:
                    raise InvalidArgument(f"Unsupported event: {event.type}")
            except ChatError as exc:
                if exc.status_code == 403:
                    logger.warning("Rejected %s from user=%s: %s", event.type, user_id, exc.message)
                await _send_error(websocket, event.type, exc)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Failed to handle %s from user=%s", event.type, user_id)
                await _send_error(websocket, event.type, InternalError())
    except WebSocketDisconnect as exc:
        logger.debug("Websocket closed by client: user=%s code=%s", user_id, exc.code)
    finally:
        manager.disconnect(user_id, websocket)
