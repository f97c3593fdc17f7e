from typing import List, Optional

from fastapi import Depends, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from chatapp.database import get_db
from chatapp.services.ingestion import MessageIngestionService
from chatapp.services.membership import GroupMembershipService
from chatapp.storage import ObjectStorage, Upload, get_storage
from chatapp.websocket_manager import ConnectionManager, manager


def get_connection_manager() -> ConnectionManager:
    return manager


def get_membership_service(
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> GroupMembershipService:
    return GroupMembershipService(db, storage)


def get_ingestion_service(
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    connections: ConnectionManager = Depends(get_connection_manager),
) -> MessageIngestionService:
    return MessageIngestionService(db, storage, connections)


async def read_upload(file: Optional[UploadFile]) -> Optional[Upload]:
    if file is None or not file.filename:
        return None
    data = await file.read()
    if not data:
        return None
    return Upload(data=data, filename=file.filename, content_type=file.content_type)


async def read_uploads(files: Optional[List[UploadFile]]) -> List[Upload]:
    uploads = []
    for file in files or []:
        upload = await read_upload(file)
        if upload is not None:
            uploads.append(upload)
    return uploads
