from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from chatapp.schemas.user import UserSummary

class GroupMemberResponse(BaseModel):
    user_id: int
    role: str
    joined_at: datetime
    user: Optional[UserSummary] = None

    class Config:
        from_attributes = True

class GroupResponse(BaseModel):
    id: int
    name: str
    description: str
    created_by: int
    image_url: Optional[str] = None
    total_members: int
    members: List[GroupMemberResponse]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class GroupDetailsUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

class AddMembers(BaseModel):
    user_ids: List[int]

class ChangeRole(BaseModel):
    new_role: str

class LeaveGroupResponse(BaseModel):
    group_deleted: bool
    group: Optional[GroupResponse] = None

class DeleteGroupResponse(BaseModel):
    group_id: int
