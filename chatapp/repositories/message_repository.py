from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_

from chatapp.models.direct_message import DirectMessage
from chatapp.models.group_message import GroupMessage

class MessageRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_direct(self, sender_id: int, receiver_id: int, text: Optional[str],
                            images: List[str]) -> DirectMessage:
        """Store a direct message"""
        message = DirectMessage(
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            images=list(images),
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_direct_by_id(self, message_id: int) -> Optional[DirectMessage]:
        """Get a direct message by id"""
        result = await self.db.execute(select(DirectMessage).where(DirectMessage.id == message_id))
        return result.scalar_one_or_none()

    async def get_conversation(self, user_id: int, other_user_id: int) -> List[DirectMessage]:
        """Messages exchanged between two users, oldest first"""
        result = await self.db.execute(
            select(DirectMessage).where(
                or_(
                    and_(DirectMessage.sender_id == user_id, DirectMessage.receiver_id == other_user_id),
                    and_(DirectMessage.sender_id == other_user_id, DirectMessage.receiver_id == user_id),
                )
            ).order_by(DirectMessage.created_at.asc(), DirectMessage.id.asc())
        )
        return list(result.scalars().all())

    async def create_group_message(self, group_id: int, sender_id: int, text: Optional[str],
                                   images: List[str]) -> GroupMessage:
        """Store a message posted to a group"""
        message = GroupMessage(
            group_id=group_id,
            sender_id=sender_id,
            text=text,
            images=list(images),
        )
        self.db.add(message)
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def get_group_messages(self, group_id: int, page: int = 1, limit: int = 20) -> List[GroupMessage]:
        """One page of a group's history counted from the newest message.

        The page itself is returned oldest first.
        """
        result = await self.db.execute(
            select(GroupMessage)
            .where(GroupMessage.group_id == group_id)
            .order_by(GroupMessage.created_at.desc(), GroupMessage.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list(result.scalars().all())
        messages.reverse()
        return messages
