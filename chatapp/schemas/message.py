from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class DirectMessageResponse(BaseModel):
    id: int
    sender_id: int
    receiver_id: int
    text: Optional[str] = None
    images: List[str]
    created_at: datetime

    class Config:
        from_attributes = True

class GroupMessageResponse(BaseModel):
    id: int
    group_id: int
    sender_id: int
    text: Optional[str] = None
    images: List[str]
    created_at: datetime

    class Config:
        from_attributes = True

class RoomAction(BaseModel):
    group_id: int
