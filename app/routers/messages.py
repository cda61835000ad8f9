from typing import List

from fastapi import APIRouter, Depends, status

from app.database.connection import mongo_db_dependency
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.message_repository import MessageRepository
from app.repositories.user_repository import UserRepository
from app.schemas.chat import MessageOut, SendMessageRequest
from app.services.chat_service import ChatService
from app.utils.dependencies import get_connection_manager, get_current_user_id
from app.utils.websocket_manager import ConnectionManager


router = APIRouter(prefix="/messages", tags=["chat"])


def get_chat_service(
    db = Depends(mongo_db_dependency),
    connections: ConnectionManager = Depends(get_connection_manager),
) -> ChatService:
    return ChatService(MessageRepository(db), ConversationRepository(db), UserRepository(db), connections)


@router.get("/{conversation_id}", response_model=List[MessageOut])
async def list_messages(conversation_id: str, user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    return await service.list_messages(conversation_id, user_id)


@router.post("", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, user_id: str = Depends(get_current_user_id), service: ChatService = Depends(get_chat_service)):
    return await service.send_message(body.conversation_id, user_id, body.text)
