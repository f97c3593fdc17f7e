"""Group membership state machine.

Every mutation is a read-modify-write of one group guarded by the
group's version column: the group row is always touched, so a second
writer that read the same version fails with ``StaleDataError`` and the
whole operation is replayed against fresh state.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from chatapp.config import settings
from chatapp.errors import (
    ChatError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from chatapp.models.group import Group
from chatapp.models.group_member import GroupMember, ROLE_ADMIN, ROLE_MEMBER, ROLES
from chatapp.repositories.group_repository import GroupRepository
from chatapp.repositories.user_repository import UserRepository
from chatapp.storage import ObjectStorage, StoredObject, Upload, release_quietly

logger = logging.getLogger(__name__)

GroupChange = Callable[[Group], Awaitable[Optional[Group]]]


@dataclass
class LeaveOutcome:
    group: Optional[Group]
    deleted: bool
    promoted_user_id: Optional[int] = None


def _clean_name(name: Optional[str]) -> str:
    if name is None or name.strip() == "":
        raise ValidationError("Group name is required")
    return name.strip()


def pick_successor(members: List[GroupMember]) -> Optional[GroupMember]:
    """Earliest joiner wins; equal timestamps fall back to the lowest entry id."""
    if not members:
        return None
    return min(members, key=lambda m: (m.joined_at, m.id if m.id is not None else 0))


class GroupMembershipService:
    def __init__(self, db: AsyncSession, storage: Optional[ObjectStorage] = None,
                 max_retries: int = None):
        self.db = db
        self.storage = storage
        self.groups = GroupRepository(db)
        self.users = UserRepository(db)
        self.max_retries = max_retries or settings.MEMBERSHIP_MAX_RETRIES

    async def _load(self, group_id: int) -> Group:
        group = await self.groups.get_by_id(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        return group

    async def _mutate(self, group_id: int, change: GroupChange) -> Optional[Group]:
        """Apply ``change`` to a freshly loaded group and commit it.

        ``change`` returns the group to keep it, or ``None`` after
        deleting it. Version conflicts replay the change up to
        ``max_retries`` times.
        """
        for attempt in range(1, self.max_retries + 1):
            group = await self._load(group_id)
            try:
                result = await change(group)
                if result is not None:
                    result.total_members = len(result.members)
                    result.updated_at = datetime.utcnow()
                await self.db.commit()
            except StaleDataError:
                await self.db.rollback()
                logger.info(f"Group {group_id} changed concurrently, retrying (attempt {attempt})")
                continue
            except Exception:
                await self.db.rollback()
                raise

            if result is None:
                return None
            return await self.groups.get_by_id(group_id)

        logger.error(f"Gave up on group {group_id} after {self.max_retries} conflicting attempts")
        raise InternalError("Group was modified concurrently, please try again")

    async def _upload(self, image: Upload, folder: str) -> StoredObject:
        if self.storage is None:
            raise InternalError("Object storage is not configured")
        return await self.storage.upload(
            image.data, filename=image.filename, content_type=image.content_type, folder=folder
        )

    async def get_group(self, group_id: int, requester_id: int) -> Group:
        group = await self._load(group_id)
        if group.find_member(requester_id) is None:
            raise PermissionDeniedError("You are not a member of this group")
        return group

    async def list_groups(self, user_id: int) -> List[Group]:
        return await self.groups.get_user_groups(user_id)

    async def create_group(self, name: Optional[str], creator_id: int, description: Optional[str] = None,
                           image: Optional[Upload] = None) -> Group:
        clean_name = _clean_name(name)
        clean_description = (description or "").strip()

        stored = None
        if image is not None:
            stored = await self._upload(image, folder="groups")

        try:
            group = await self.groups.create(
                creator_id,
                clean_name,
                clean_description,
                image_storage_id=stored.storage_id if stored else None,
                image_url=stored.url if stored else None,
            )
        except Exception:
            await self.db.rollback()
            if stored is not None:
                await release_quietly(self.storage, stored.storage_id)
            raise
        logger.info(f"User {creator_id} created group {group.id}")
        return group

    async def update_details(self, group_id: int, requester_id: int, name: Optional[str],
                             description: Optional[str] = None) -> Group:
        """Rename a group and optionally replace its description.

        ``description=None`` keeps the current one; a blank string is
        rejected.
        """
        clean_name = _clean_name(name)
        if description is not None and description.strip() == "":
            raise ValidationError("Group description cannot be empty string")

        async def change(group: Group) -> Group:
            if not group.is_admin(requester_id):
                raise PermissionDeniedError("Only admins can update group details")
            group.name = clean_name
            if description is not None:
                group.description = description.strip()
            return group

        return await self._mutate(group_id, change)

    async def update_avatar(self, group_id: int, requester_id: int, image: Upload) -> Group:
        group = await self._load(group_id)
        if not group.is_admin(requester_id):
            raise PermissionDeniedError("Only admins can update the group image")

        stored = await self._upload(image, folder="groups")
        replaced = {}

        async def change(group: Group) -> Group:
            if not group.is_admin(requester_id):
                raise PermissionDeniedError("Only admins can update the group image")
            replaced["storage_id"] = group.image_storage_id
            group.image_storage_id = stored.storage_id
            group.image_url = stored.url
            return group

        try:
            updated = await self._mutate(group_id, change)
        except ChatError:
            await release_quietly(self.storage, stored.storage_id)
            raise

        await release_quietly(self.storage, replaced.get("storage_id"))
        return updated

    async def delete_group(self, group_id: int, requester_id: int) -> int:
        """Owner-only hard delete. The group's messages are left in place."""
        released = {}

        async def change(group: Group) -> None:
            if group.created_by != requester_id:
                raise PermissionDeniedError("Only the owner can delete this group")
            released["storage_id"] = group.image_storage_id
            await self.db.delete(group)
            return None

        await self._mutate(group_id, change)
        logger.info(f"Group {group_id} deleted by its owner {requester_id}")
        if self.storage is not None:
            await release_quietly(self.storage, released.get("storage_id"))
        return group_id

    async def add_members(self, group_id: int, requester_id: int, user_ids: Iterable[int]) -> Group:
        requested = list(dict.fromkeys(user_ids or []))

        async def change(group: Group) -> Group:
            if not group.is_admin(requester_id):
                raise PermissionDeniedError("Only admins can add members")
            if not requested:
                raise ValidationError("Please provide at least one userId")

            new_ids = [uid for uid in requested if group.find_member(uid) is None]
            if not new_ids:
                raise ValidationError("All selected users are already in the group")

            existing = await self.users.get_existing_ids(new_ids)
            missing = [uid for uid in new_ids if uid not in existing]
            if missing:
                raise NotFoundError(f"Users not found: {', '.join(str(uid) for uid in missing)}")

            now = datetime.utcnow()
            for uid in new_ids:
                group.members.append(GroupMember(user_id=uid, role=ROLE_MEMBER, joined_at=now))
            logger.info(f"Added {len(new_ids)} member(s) to group {group.id}")
            return group

        return await self._mutate(group_id, change)

    async def remove_member(self, group_id: int, requester_id: int, target_user_id: int) -> Group:
        async def change(group: Group) -> Group:
            target = group.find_member(target_user_id)
            if target is None:
                raise NotFoundError("User is not in group")
            if group.created_by == target_user_id:
                raise ValidationError("Cannot remove the group creator")
            if not (group.is_admin(requester_id) or group.created_by == requester_id):
                raise PermissionDeniedError("Only admins can remove members")
            if target.role == ROLE_ADMIN and group.created_by != requester_id:
                raise PermissionDeniedError("Only the group creator can remove an admin")
            group.members.remove(target)
            return group

        return await self._mutate(group_id, change)

    async def change_role(self, group_id: int, requester_id: int, target_user_id: int,
                          new_role: str) -> Group:
        if new_role not in ROLES:
            raise ValidationError("Invalid role specified")

        async def change(group: Group) -> Group:
            target = group.find_member(target_user_id)
            if target is None:
                raise NotFoundError("User is not a member of this group")
            if not group.is_admin(requester_id):
                raise PermissionDeniedError("Only admins can change member roles")
            if (
                target_user_id == requester_id
                and target.role == ROLE_ADMIN
                and new_role == ROLE_MEMBER
                and group.admin_count() == 1
            ):
                raise ValidationError(
                    "You cannot demote yourself because you are the only admin. "
                    "Promote another member first."
                )
            target.role = new_role
            return group

        return await self._mutate(group_id, change)

    async def leave_group(self, group_id: int, requester_id: int) -> LeaveOutcome:
        """Remove the caller from the group.

        When the only admin leaves, the earliest remaining joiner becomes
        admin, or the group is deleted if nobody is left. The creator is
        not treated specially here.
        """
        outcome = LeaveOutcome(group=None, deleted=False)

        async def change(group: Group) -> Optional[Group]:
            leaving = group.find_member(requester_id)
            if leaving is None:
                raise NotFoundError("User is not a member of this group")

            sole_admin = leaving.role == ROLE_ADMIN and group.admin_count() == 1
            group.members.remove(leaving)
            outcome.promoted_user_id = None
            if not sole_admin:
                return group

            if not group.members:
                await self.db.delete(group)
                return None

            successor = pick_successor(group.members)
            successor.role = ROLE_ADMIN
            outcome.promoted_user_id = successor.user_id
            return group

        group = await self._mutate(group_id, change)
        outcome.group = group
        outcome.deleted = group is None
        if outcome.deleted:
            logger.info(f"Group {group_id} deleted, last member {requester_id} left")
        elif outcome.promoted_user_id is not None:
            logger.info(f"User {outcome.promoted_user_id} promoted to admin of group {group_id}")
        return outcome
