"""
User model. Judges are users with the volunteer role.
"""
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Enum

from debate_engine.orm.base import Base, isoformat, enum_value


class UserRole(PyEnum):
    ADMIN = "admin"
    VOLUNTEER = "volunteer"
    STUDENT = "student"
    SCHOOL_ADMIN = "school_admin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(Enum(UserRole, create_constraint=True), nullable=False, index=True)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": enum_value(self.role),
            "school_id": self.school_id,
            "is_active": self.is_active,
            "created_at": isoformat(self.created_at),
        }
