from backend.models.user import User, UserRole
from backend.models.partner import Partner, Platform, PartnerType, ConfigType, PartnerStatus
from backend.models.task import Task, TaskType
from backend.models.comment import Comment

__all__ = [
    "User",
    "UserRole",
    "Partner",
    "Platform",
    "PartnerType",
    "ConfigType",
    "PartnerStatus",
    "Task",
    "TaskType",
    "Comment",
]
