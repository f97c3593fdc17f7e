from sqlalchemy import Column, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from .base import BaseModel

class GroupMessage(BaseModel):
    __tablename__ = "group_messages"

    # No foreign key: messages outlive a deleted group
    group_id = Column(Integer, nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    text = Column(Text, nullable=True)
    images = Column(JSON, nullable=False, default=list)

    sender = relationship("User", foreign_keys=[sender_id])
