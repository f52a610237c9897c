"""
User model - staff identity authenticated through Google sign-in
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime
from backend.database import Base
from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    SUPERADMIN = "superadmin"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    image = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.USER.value)

    # TOTP second factor: the secret is stored unconfirmed until a code verifies
    two_factor_secret = Column(String, nullable=True)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tasks = relationship("Task", back_populates="created_by")
