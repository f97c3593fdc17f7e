import logging
from typing import List
from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from chatapp.auth import get_current_user
from chatapp.database import get_db
from chatapp.dependencies import read_upload
from chatapp.errors import ConflictError, NotFoundError, ValidationError
from chatapp.models.user import User
from chatapp.repositories.user_repository import UserRepository
from chatapp.schemas.user import UserResponse, UserUpdate
from chatapp.storage import ObjectStorage, get_storage, release_quietly

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/sidebar", response_model=List[UserResponse])
async def get_users_for_sidebar(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Everyone except the caller"""
    return await UserRepository(db).get_all_except(current_user.id)

@router.get("/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await UserRepository(db).get_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user

@router.patch("/me", response_model=UserResponse)
async def update_account_details(
    user_data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if not user_data.full_name or not user_data.email:
        raise ValidationError("All fields are required")

    user_repo = UserRepository(db)
    if user_data.email != current_user.email and await user_repo.get_by_email(user_data.email):
        raise ConflictError("User with this email already exists")

    return await user_repo.update_details(current_user, user_data.full_name, user_data.email)

@router.patch("/me/avatar", response_model=UserResponse)
async def update_avatar(
    avatar: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user)
):
    upload = await read_upload(avatar)
    if upload is None:
        raise ValidationError("Avatar file is missing")

    old_storage_id = current_user.avatar_storage_id
    stored = await storage.upload(upload.data, upload.filename, upload.content_type, folder="avatars")
    user = await UserRepository(db).set_avatar(current_user, stored.storage_id, stored.url)
    await release_quietly(storage, old_storage_id)
    logger.info(f"User {user.id} replaced their avatar")
    return user
