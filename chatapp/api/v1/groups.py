from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from chatapp.auth import get_current_user
from chatapp.dependencies import get_membership_service, read_upload
from chatapp.errors import ValidationError
from chatapp.models.user import User
from chatapp.schemas.group import (
    AddMembers,
    ChangeRole,
    DeleteGroupResponse,
    GroupDetailsUpdate,
    GroupResponse,
    LeaveGroupResponse,
)
from chatapp.services.membership import GroupMembershipService

router = APIRouter()

@router.get("/sidebar", response_model=List[GroupResponse])
async def get_groups_for_sidebar(
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    """Groups the caller belongs to"""
    return await service.list_groups(current_user.id)

@router.post("/", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    name: str = Form(""),
    description: Optional[str] = Form(None),
    group_image: Optional[UploadFile] = File(None),
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    image = await read_upload(group_image)
    return await service.create_group(name, current_user.id, description=description, image=image)

@router.get("/{group_id}", response_model=GroupResponse)
async def get_group(
    group_id: int,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    return await service.get_group(group_id, current_user.id)

@router.patch("/{group_id}", response_model=GroupResponse)
async def update_group_details(
    group_id: int,
    details: GroupDetailsUpdate,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    return await service.update_details(group_id, current_user.id, details.name, details.description)

@router.patch("/{group_id}/avatar", response_model=GroupResponse)
async def update_group_avatar(
    group_id: int,
    group_image: UploadFile = File(...),
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    image = await read_upload(group_image)
    if image is None:
        raise ValidationError("Avatar file is missing")
    return await service.update_avatar(group_id, current_user.id, image)

@router.delete("/{group_id}", response_model=DeleteGroupResponse)
async def delete_group(
    group_id: int,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    """Only the owner can delete a group, other admins cannot"""
    return {"group_id": await service.delete_group(group_id, current_user.id)}

@router.post("/{group_id}/members", response_model=GroupResponse)
async def add_members(
    group_id: int,
    payload: AddMembers,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    return await service.add_members(group_id, current_user.id, payload.user_ids)

@router.delete("/{group_id}/members/{user_id}", response_model=GroupResponse)
async def remove_member(
    group_id: int,
    user_id: int,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    return await service.remove_member(group_id, current_user.id, user_id)

@router.patch("/{group_id}/members/{user_id}/role", response_model=GroupResponse)
async def change_role(
    group_id: int,
    user_id: int,
    payload: ChangeRole,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    return await service.change_role(group_id, current_user.id, user_id, payload.new_role)

@router.post("/{group_id}/leave", response_model=LeaveGroupResponse)
async def leave_group(
    group_id: int,
    service: GroupMembershipService = Depends(get_membership_service),
    current_user: User = Depends(get_current_user)
):
    outcome = await service.leave_group(group_id, current_user.id)
    return {"group_deleted": outcome.deleted, "group": outcome.group}
