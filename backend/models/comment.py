"""
Comment model - mirror of a Jira issue comment
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from backend.database import Base


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    jira_comment_id = Column(String, unique=True, nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)

    author_name = Column(String, nullable=False)
    author_email = Column(String, nullable=True)
    author_avatar = Column(String, nullable=True)
    body = Column(Text, nullable=False, default="")

    jira_created_at = Column(DateTime, nullable=True)
    jira_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    task = relationship("Task", back_populates="comments")
