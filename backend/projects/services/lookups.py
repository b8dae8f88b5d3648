"""
Entity lookups shared by the project services.

Each helper resolves an id to a model instance or raises ``NotFound``.
With ``lock=True`` the row is selected for update and the call must run
inside ``transaction.atomic``.
"""

import logging

from django.contrib.auth import get_user_model

from ..exceptions import NotFound
from ..models import Project, Task, Transaction

logger = logging.getLogger(__name__)

User = get_user_model()


def _get(model, object_id, label, lock=False):
    queryset = model.objects.select_for_update() if lock else model.objects.all()
    try:
        return queryset.get(pk=object_id)
    except (model.DoesNotExist, ValueError, TypeError):
        logger.info(
            f"{label} lookup failed",
            extra={
                "model": model.__name__,
                "object_id": object_id,
                "action": "entity_not_found",
                "component": "lookups",
            },
        )
        raise NotFound(f"{label} not found.")


def get_project(project_id, lock=False) -> Project:
    return _get(Project, project_id, "Project", lock)


def get_task(task_id, lock=False) -> Task:
    return _get(Task, task_id, "Task", lock)


def get_transaction(transaction_id, lock=False) -> Transaction:
    return _get(Transaction, transaction_id, "Transaction", lock)


def get_user(user_id, lock=False):
    return _get(User, user_id, "User", lock)
