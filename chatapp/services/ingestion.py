import asyncio
import logging
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from chatapp.config import settings
from chatapp.errors import NotFoundError, PermissionDeniedError, StorageError, ValidationError
from chatapp.models.direct_message import DirectMessage
from chatapp.models.group_message import GroupMessage
from chatapp.repositories.group_repository import GroupRepository
from chatapp.repositories.message_repository import MessageRepository
from chatapp.repositories.user_repository import UserRepository
from chatapp.storage import ObjectStorage, StoredObject, Upload, release_quietly
from chatapp.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)


def clean_text(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


class MessageIngestionService:
    """Validates, stores and then pushes direct and group messages.

    The stored record is returned to the sender; only other live
    connections get it through a push.
    """

    def __init__(self, db: AsyncSession, storage: ObjectStorage, connections: ConnectionManager):
        self.db = db
        self.storage = storage
        self.connections = connections
        self.messages = MessageRepository(db)
        self.users = UserRepository(db)
        self.groups = GroupRepository(db)

    async def _upload_attachments(self, attachments: Sequence[Upload], folder: str) -> List[StoredObject]:
        """Upload every attachment or none of them, keeping input order."""
        if not attachments:
            return []
        if len(attachments) > settings.MAX_ATTACHMENTS:
            raise ValidationError(f"At most {settings.MAX_ATTACHMENTS} images can be attached")

        results = await asyncio.gather(
            *(
                self.storage.upload(a.data, filename=a.filename, content_type=a.content_type, folder=folder)
                for a in attachments
            ),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            for stored in results:
                if isinstance(stored, StoredObject):
                    await release_quietly(self.storage, stored.storage_id)
            for failure in failures:
                if not isinstance(failure, Exception):
                    raise failure
            logger.warning(f"{len(failures)} of {len(attachments)} attachment upload(s) failed")
            first = failures[0]
            if isinstance(first, StorageError):
                raise first
            raise StorageError("Failed to upload attachment, please try again")
        return list(results)

    async def _store(self, stored: List[StoredObject], create):
        try:
            return await create([s.url for s in stored])
        except Exception:
            await self.db.rollback()
            for s in stored:
                await release_quietly(self.storage, s.storage_id)
            raise

    async def send_direct_message(self, sender_id: int, receiver_id: int, text: Optional[str] = None,
                                  attachments: Sequence[Upload] = ()) -> DirectMessage:
        if await self.users.get_by_id(receiver_id) is None:
            raise NotFoundError("Receiver not found")

        text = clean_text(text)
        if text is None and not attachments:
            raise ValidationError("Message must have either text or image")

        stored = await self._upload_attachments(attachments, folder="messages")
        message = await self._store(
            stored, lambda urls: self.messages.create_direct(sender_id, receiver_id, text, urls)
        )
        await self.connections.deliver_direct_message(message)
        return message

    async def send_group_message(self, sender_id: int, group_id: int, text: Optional[str] = None,
                                 attachments: Sequence[Upload] = ()) -> GroupMessage:
        await self._require_member(group_id, sender_id)

        text = clean_text(text)
        if text is None and not attachments:
            raise ValidationError("Message must have either text or image")

        stored = await self._upload_attachments(attachments, folder="groupMessages")
        message = await self._store(
            stored, lambda urls: self.messages.create_group_message(group_id, sender_id, text, urls)
        )
        await self.connections.deliver_group_message(message)
        return message

    async def _require_member(self, group_id: int, user_id: int) -> None:
        if not await self.groups.exists(group_id):
            raise NotFoundError("Group not found")
        if not await self.groups.is_member(group_id, user_id):
            raise PermissionDeniedError("You are not a member of this group")

    async def get_conversation(self, user_id: int, other_user_id: int) -> List[DirectMessage]:
        return await self.messages.get_conversation(user_id, other_user_id)

    async def get_group_history(self, group_id: int, requester_id: int, page: int = 1,
                                limit: int = None) -> List[GroupMessage]:
        await self._require_member(group_id, requester_id)
        return await self.messages.get_group_messages(
            group_id, page=page, limit=limit or settings.GROUP_MESSAGES_PAGE_SIZE
        )
