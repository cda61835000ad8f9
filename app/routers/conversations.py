from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.database.connection import mongo_db_dependency
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.user_repository import UserRepository
from app.schemas.chat import ConversationOut, CreateConversationRequest
from app.services.conversation_service import ConversationService
from app.utils.dependencies import get_current_user_id


router = APIRouter(prefix="/conversations", tags=["chat"])


def get_conversation_service(db = Depends(mongo_db_dependency)) -> ConversationService:
    return ConversationService(ConversationRepository(db), UserRepository(db))


@router.get("", response_model=List[ConversationOut])
async def list_conversations(user_id: str = Depends(get_current_user_id), service: ConversationService = Depends(get_conversation_service)):
    return await service.list_conversations(user_id)


@router.post("", response_model=ConversationOut)
async def create_conversation(body: CreateConversationRequest, response: Response, user_id: str = Depends(get_current_user_id), service: ConversationService = Depends(get_conversation_service)):
    if body.member_ids is not None:
        response.status_code = status.HTTP_201_CREATED
        return await service.create_group(user_id, body.member_ids, body.name, body.avatar_url)
    conversation, created = await service.ensure_direct(user_id, body.target_user_id)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return conversation


@router.get("/{conversation_id}", response_model=ConversationOut)
async def get_conversation(conversation_id: str, user_id: str = Depends(get_current_user_id), service: ConversationService = Depends(get_conversation_service)):
    return await service.get_conversation(conversation_id, user_id)
