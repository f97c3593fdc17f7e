from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from chatapp.auth import get_current_user
from chatapp.dependencies import get_ingestion_service, read_uploads
from chatapp.models.user import User
from chatapp.schemas.message import DirectMessageResponse
from chatapp.services.ingestion import MessageIngestionService

router = APIRouter()

@router.get("/{user_id}", response_model=List[DirectMessageResponse])
async def get_messages(
    user_id: int,
    service: MessageIngestionService = Depends(get_ingestion_service),
    current_user: User = Depends(get_current_user)
):
    """Conversation between the caller and another user, oldest first"""
    return await service.get_conversation(current_user.id, user_id)

@router.post("/send/{user_id}", response_model=DirectMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    user_id: int,
    text: Optional[str] = Form(None),
    image: Optional[List[UploadFile]] = File(None),
    service: MessageIngestionService = Depends(get_ingestion_service),
    current_user: User = Depends(get_current_user)
):
    attachments = await read_uploads(image)
    return await service.send_direct_message(current_user.id, user_id, text, attachments)
