# projects/services/__init__.py
from .comment_service import CommentService
from .membership_service import MembershipService
from .notification_service import NotificationService
from .project_service import ProjectService
from .storage_service import StorageService
from .task_service import TaskService
from .transaction_service import TransactionService

__all__ = [
    "CommentService",
    "MembershipService",
    "NotificationService",
    "ProjectService",
    "StorageService",
    "TaskService",
    "TransactionService",
]
