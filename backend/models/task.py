"""
Task model - local mirror of a Jira issue
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from backend.database import Base
from enum import Enum


class TaskType(str, Enum):
    NEW_PRODUCT_CONFIG = "NEW_PRODUCT_CONFIG"
    CONFIG_UPDATE = "CONFIG_UPDATE"
    INFRASTRUCTURE = "INFRASTRUCTURE"
    OTHER = "OTHER"


TASK_TYPE_LABELS = {
    TaskType.NEW_PRODUCT_CONFIG: "New Product Config",
    TaskType.CONFIG_UPDATE: "Config Update",
    TaskType.INFRASTRUCTURE: "Infrastructure",
    TaskType.OTHER: "Other",
}


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)

    # Jira identity
    jira_key = Column(String, unique=True, nullable=False, index=True)
    jira_id = Column(String, nullable=True)

    # Canonical fields, Jira is authoritative
    summary = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False)
    priority = Column(String, nullable=False, default="Medium")
    assignee = Column(String, nullable=True)

    # Locally authoritative; recovered from labels only when null
    task_type = Column(SQLEnum(TaskType, native_enum=False), nullable=True)
    partner_id = Column(Integer, ForeignKey("partners.id", ondelete="RESTRICT"), nullable=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    last_synced_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    created_by = relationship("User", back_populates="tasks")
    partner = relationship("Partner", back_populates="tasks")
    comments = relationship(
        "Comment",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Comment.jira_created_at",
    )
