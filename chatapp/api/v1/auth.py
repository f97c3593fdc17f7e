from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from chatapp.auth import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    authenticate_user,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_current_user,
    get_user_by_id,
)
from chatapp.config import settings
from chatapp.database import get_db
from chatapp.dependencies import read_upload
from chatapp.errors import AuthError, ConflictError, ValidationError
from chatapp.models.user import User
from chatapp.repositories.user_repository import UserRepository
from chatapp.schemas.user import LoginResponse, RefreshRequest, Token, UserCreate, UserLogin, UserResponse
from chatapp.storage import ObjectStorage, get_storage, release_quietly

router = APIRouter()

def _set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    options = {"httponly": True, "secure": settings.COOKIE_SECURE}
    response.set_cookie(ACCESS_COOKIE, access_token, **options)
    response.set_cookie(REFRESH_COOKIE, refresh_token, **options)

async def _issue_tokens(user: User, user_repo: UserRepository) -> dict:
    access_token = create_access_token(user.id)
    refresh_token = create_refresh_token(user.id)
    await user_repo.set_refresh_token(user, refresh_token)
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }

@router.post("/signup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    full_name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    avatar: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
):
    if any(field.strip() == "" for field in (full_name, email, password)):
        raise ValidationError("Full name, email, and password are required")

    user_repo = UserRepository(db)
    if await user_repo.exists_by_full_name_or_email(full_name, email):
        raise ConflictError("User with this email or full name already exists")

    stored = None
    upload = await read_upload(avatar)
    if upload is not None:
        stored = await storage.upload(upload.data, upload.filename, upload.content_type, folder="avatars")

    try:
        return await user_repo.create(
            UserCreate(full_name=full_name, email=email, password=password),
            avatar_storage_id=stored.storage_id if stored else None,
            avatar_url=stored.url if stored else None,
        )
    except Exception:
        await db.rollback()
        if stored is not None:
            await release_quietly(storage, stored.storage_id)
        raise

@router.post("/login", response_model=LoginResponse)
async def login(user_data: UserLogin, response: Response, db: AsyncSession = Depends(get_db)):
    if not user_data.email:
        raise ValidationError("Email is required")
    if not user_data.password:
        raise ValidationError("Password is required")

    user = await authenticate_user(db, user_data.email, user_data.password)
    if not user:
        raise AuthError("Invalid user credentials")

    tokens = await _issue_tokens(user, UserRepository(db))
    _set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return {**tokens, "user": user}

@router.post("/logout")
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await UserRepository(db).set_refresh_token(current_user, None)
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)
    return {"message": "User logged out"}

@router.post("/refresh", response_model=Token)
async def refresh(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    incoming = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    if not incoming:
        raise AuthError("Unauthorized request")

    user = await get_user_by_id(db, decode_refresh_token(incoming))
    if user is None or user.refresh_token != incoming:
        raise AuthError("Refresh token is expired or used")

    tokens = await _issue_tokens(user, UserRepository(db))
    _set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return tokens

@router.get("/check", response_model=UserResponse)
async def check_auth(current_user: User = Depends(get_current_user)):
    return current_user
