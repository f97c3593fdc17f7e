from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatapp.config import settings
from chatapp.database import get_db
from chatapp.errors import AuthError
from chatapp.models.user import User

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    return jwt.encode({"sub": str(user_id), "exp": expire}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))
    return jwt.encode({"sub": str(user_id), "exp": expire}, settings.REFRESH_SECRET_KEY, algorithm=settings.ALGORITHM)

def _decode_subject(token: str, key: str) -> int:
    try:
        payload = jwt.decode(token, key, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthError("Invalid or expired token")
    subject = payload.get("sub")
    if subject is None:
        raise AuthError("Invalid token")
    try:
        return int(subject)
    except ValueError:
        raise AuthError("Invalid token")

def decode_access_token(token: str) -> int:
    return _decode_subject(token, settings.SECRET_KEY)

def decode_refresh_token(token: str) -> int:
    return _decode_subject(token, settings.REFRESH_SECRET_KEY)

async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()

async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user

async def get_user_from_token(token: Optional[str], db: AsyncSession) -> User:
    if not token:
        raise AuthError("Unauthorized request")
    user = await get_user_by_id(db, decode_access_token(token))
    if user is None:
        raise AuthError("Invalid access token")
    return user

async def get_current_user(
    request: Request,
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the access token cookie or a bearer header."""
    token = request.cookies.get(ACCESS_COOKIE) or bearer_token
    return await get_user_from_token(token, db)
