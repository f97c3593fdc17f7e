from sqlalchemy import Column, String
from sqlalchemy.orm import relationship
from .base import BaseModel

class User(BaseModel):
    __tablename__ = "users"

    full_name = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    avatar_storage_id = Column(String(255), nullable=True)
    avatar_url = Column(String(1024), nullable=True)
    refresh_token = Column(String(1024), nullable=True)

    group_memberships = relationship("GroupMember", back_populates="user")
