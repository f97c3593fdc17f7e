from datetime import datetime
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from chatapp.models.group import Group
from chatapp.models.group_member import GroupMember, ROLE_ADMIN

class GroupRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, creator_id: int, name: str, description: str,
                     image_storage_id: Optional[str] = None, image_url: Optional[str] = None) -> Group:
        """Create a group whose only member is its creator, as admin."""
        group = Group(
            name=name,
            description=description,
            created_by=creator_id,
            image_storage_id=image_storage_id,
            image_url=image_url,
            total_members=1,
        )
        group.members.append(GroupMember(user_id=creator_id, role=ROLE_ADMIN, joined_at=datetime.utcnow()))
        self.db.add(group)
        await self.db.commit()
        return await self.get_by_id(group.id)

    async def get_by_id(self, group_id: int) -> Optional[Group]:
        """Load a group with its ordered members and their users.

        Always overwrites whatever the session already holds so that a
        retry after a version conflict sees the committed state.
        """
        result = await self.db.execute(
            select(Group)
            .options(selectinload(Group.members).selectinload(GroupMember.user))
            .where(Group.id == group_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_user_groups(self, user_id: int) -> List[Group]:
        """Groups the user belongs to, most recently changed first"""
        result = await self.db.execute(
            select(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .options(selectinload(Group.members).selectinload(GroupMember.user))
            .where(GroupMember.user_id == user_id)
            .order_by(Group.updated_at.desc())
        )
        return list(result.scalars().unique().all())

    async def is_member(self, group_id: int, user_id: int) -> bool:
        """Check whether a user has a membership entry in the group"""
        result = await self.db.execute(
            select(GroupMember.id).where(
                GroupMember.group_id == group_id, GroupMember.user_id == user_id
            )
        )
        return result.first() is not None

    async def exists(self, group_id: int) -> bool:
        """Check whether a group with this id exists"""
        result = await self.db.execute(select(Group.id).where(Group.id == group_id))
        return result.first() is not None
