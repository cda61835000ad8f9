from typing import List

from fastapi import APIRouter, Depends

from app.database.connection import mongo_db_dependency
from app.repositories.user_repository import UserRepository
from app.schemas.user import ProfileSyncRequest, UserPublic
from app.services.user_service import UserService
from app.utils.dependencies import get_connection_manager, get_current_user_id
from app.utils.websocket_manager import ConnectionManager


router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(
    db = Depends(mongo_db_dependency),
    connections: ConnectionManager = Depends(get_connection_manager),
) -> UserService:
    return UserService(UserRepository(db), connections)


@router.get("", response_model=List[UserPublic])
async def list_users(user_id: str = Depends(get_current_user_id), service: UserService = Depends(get_user_service)):
    return await service.list_users()


@router.post("/sync", response_model=UserPublic)
async def sync_profile(body: ProfileSyncRequest, user_id: str = Depends(get_current_user_id), service: UserService = Depends(get_user_service)):
    return await service.sync_profile(user_id, body)
