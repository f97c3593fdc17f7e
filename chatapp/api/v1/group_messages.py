from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from chatapp.auth import get_current_user
from chatapp.config import settings
from chatapp.dependencies import get_ingestion_service, read_uploads
from chatapp.models.user import User
from chatapp.schemas.message import GroupMessageResponse
from chatapp.services.ingestion import MessageIngestionService

router = APIRouter()

@router.get("/{group_id}/messages", response_model=List[GroupMessageResponse])
async def get_group_messages(
    group_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.GROUP_MESSAGES_PAGE_SIZE, ge=1, le=100),
    service: MessageIngestionService = Depends(get_ingestion_service),
    current_user: User = Depends(get_current_user)
):
    return await service.get_group_history(group_id, current_user.id, page=page, limit=limit)

@router.post("/{group_id}/messages", response_model=GroupMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_group_message(
    group_id: int,
    text: Optional[str] = Form(None),
    image: Optional[List[UploadFile]] = File(None),
    service: MessageIngestionService = Depends(get_ingestion_service),
    current_user: User = Depends(get_current_user)
):
    attachments = await read_uploads(image)
    return await service.send_group_message(current_user.id, group_id, text, attachments)
