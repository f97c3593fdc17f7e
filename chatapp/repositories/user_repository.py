from typing import Optional, List, Iterable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_

from chatapp.models.user import User
from chatapp.schemas.user import UserCreate
from chatapp.auth import get_password_hash

class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_data: UserCreate, avatar_storage_id: Optional[str] = None,
                     avatar_url: Optional[str] = None) -> User:
        """Create a user with a hashed password"""
        db_user = User(
            full_name=user_data.full_name,
            email=user_data.email,
            hashed_password=get_password_hash(user_data.password),
            avatar_storage_id=avatar_storage_id,
            avatar_url=avatar_url,
        )
        self.db.add(db_user)
        await self.db.commit()
        await self.db.refresh(db_user)
        return db_user

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get a user by id"""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by email"""
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_existing_ids(self, user_ids: Iterable[int]) -> set:
        """Subset of the given ids that belong to existing users"""
        ids = set(user_ids)
        if not ids:
            return set()
        result = await self.db.execute(select(User.id).where(User.id.in_(ids)))
        return set(result.scalars().all())

    async def exists_by_full_name_or_email(self, full_name: str, email: str) -> bool:
        """Check whether the full name or the email is already taken"""
        result = await self.db.execute(
            select(User.id).where(or_(User.full_name == full_name, User.email == email))
        )
        return result.first() is not None

    async def get_all_except(self, user_id: int) -> List[User]:
        """All users except the given one, ordered by name"""
        result = await self.db.execute(
            select(User).where(User.id != user_id).order_by(User.full_name)
        )
        return list(result.scalars().all())

    async def update_details(self, user: User, full_name: str, email: str) -> User:
        """Update the user's full name and email"""
        user.full_name = full_name
        user.email = email
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def set_avatar(self, user: User, storage_id: str, url: str) -> User:
        """Point the user at a new avatar image"""
        user.avatar_storage_id = storage_id
        user.avatar_url = url
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def set_refresh_token(self, user: User, token: Optional[str]) -> None:
        """Store or clear the user's current refresh token"""
        user.refresh_token = token
        await self.db.commit()
