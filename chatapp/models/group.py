from sqlalchemy import Column, String, Text, Integer, ForeignKey
from sqlalchemy.orm import relationship
from .base import BaseModel
from .group_member import GroupMember, ROLE_ADMIN

class Group(BaseModel):
    __tablename__ = "groups"

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    image_storage_id = Column(String(255), nullable=True)
    image_url = Column(String(1024), nullable=True)
    # Denormalized len(members), rewritten on every membership mutation
    total_members = Column(Integer, nullable=False, default=1)
    version = Column(Integer, nullable=False)

    creator = relationship("User", foreign_keys=[created_by])
    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by=[GroupMember.joined_at, GroupMember.id],
    )

    __mapper_args__ = {"version_id_col": version}

    def find_member(self, user_id: int):
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_admin(self, user_id: int) -> bool:
        member = self.find_member(user_id)
        return member is not None and member.role == ROLE_ADMIN

    def admin_count(self) -> int:
        return sum(1 for m in self.members if m.role == ROLE_ADMIN)
