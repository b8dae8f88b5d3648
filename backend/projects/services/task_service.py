"""
Production-grade service for project tasks.
Keeps tasks, the project task lists and the users' task lists consistent
and records every field change in the task's audit trail.
"""

import logging
import uuid

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from ..exceptions import (
    DOMAIN_ERRORS,
    CreationFailed,
    DeletionFailed,
    StorageFailed,
    UpdateFailed,
    ValidationFailed,
)
from ..models import Task
from ..utils.reference_lists import prepend_reference, pull_reference
from .attachment_service import AttachmentService
from .lookups import get_project, get_task, get_user
from .membership_service import MembershipService
from .storage_service import StorageService

logger = logging.getLogger(__name__)

User = get_user_model()

TRACKED_FIELDS = ("status", "description", "name")


class TaskService:
    """
    Task coordinator.

    Create and delete touch the task, its project's ``task_ids`` and the
    user's ``task_ids`` in one transaction. Updates append one audit action
    per changed field.
    """

    def __init__(self, membership_service=None, storage_service=None):
        self.membership_service = membership_service or MembershipService()
        self.storage_service = storage_service or StorageService()
        self.attachment_service = AttachmentService(self.storage_service)

    @staticmethod
    def build_action(user, field, old_value, new_value, description="") -> dict:
        """Audit entry for one field-level change."""
        return {
            "id": uuid.uuid4().hex,
            "description": description or f"changed {field}",
            "timestamp": timezone.now().isoformat(),
            "user_id": user.id,
            "user_name": user.display_name,
            "user_logo": user.logo_url,
            "field": field,
            "old_value": "" if old_value is None else str(old_value),
            "new_value": "" if new_value is None else str(new_value),
        }

    def _record(self, task, action):
        task.actions = list(task.actions or []) + [action]

    # -------------------------------------------------------------------
    # CREATE / UPDATE / DELETE
    # -------------------------------------------------------------------

    @transaction.atomic
    def create_task(self, project_id, user, fields=None) -> Task:
        """
        Create a task in the project.

        The task id is prepended to the project's and the user's task lists.

        Raises:
            NotFound: If the project does not exist
            Forbidden: If ``user`` is not an active project member
            ValidationFailed: If the status is invalid
            CreationFailed: If any of the writes fails
        """
        fields = fields or {}
        logger.info(
            "Task creation initiated",
            extra={
                "project_id": project_id,
                "user_id": user.id,
                "action": "task_creation_start",
                "component": "TaskService",
            },
        )

        try:
            project = get_project(project_id, lock=True)
            self.membership_service.assert_member(project.id, user.id)

            status = fields.get("status") or Task.DEFAULT_STATUS
            self._validate_status(status)

            task = Task.objects.create(
                project=project,
                user=user,
                timestamp=fields.get("timestamp") or timezone.now(),
                status=status,
                name=fields.get("name") or "",
                description=fields.get("description") or "",
            )

            prepend_reference(project, "task_ids", task.id)
            owner = get_user(user.id, lock=True)
            prepend_reference(owner, "task_ids", task.id)
            user.task_ids = owner.task_ids

            logger.info(
                "Task created successfully",
                extra={
                    "task_id": task.id,
                    "project_id": project.id,
                    "user_id": user.id,
                    "action": "task_creation_success",
                    "component": "TaskService",
                },
            )
            return task

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Task creation failed",
                extra={
                    "project_id": project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "task_creation_failed",
                    "component": "TaskService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise CreationFailed("Could not create task, please try again later.") from e

    @transaction.atomic
    def update_task(self, task_id, user, changes) -> Task:
        """
        Apply changes to a task and record them in its audit trail.

        Args:
            task_id: Task id
            user: Acting user
            changes: Any of ``status``, ``description``, ``name`` (one action
                each), ``files`` (a batch to upload and append, one action),
                ``comments`` (the full new list) with ``comment_id`` naming
                the changed comment (one action)

        Raises:
            NotFound: If the task does not exist
            Forbidden: If ``user`` is not an active project member
            ValidationFailed: If the status is invalid
            UpdateFailed: If the update fails unexpectedly
        """
        logger.info(
            "Task update initiated",
            extra={
                "task_id": task_id,
                "user_id": user.id,
                "fields": sorted(changes.keys()),
                "action": "task_update_start",
                "component": "TaskService",
            },
        )

        try:
            task = get_task(task_id, lock=True)
            self.membership_service.assert_member(task.project_id, user.id)

            for field in TRACKED_FIELDS:
                new_value = changes.get(field)
                if new_value is None:
                    continue
                if field == "status":
                    self._validate_status(new_value)
                self._record(
                    task, self.build_action(user, field, getattr(task, field), new_value)
                )
                setattr(task, field, new_value)

            if changes.get("files"):
                uploaded = self.storage_service.upload_files(
                    task.project_id, changes["files"]
                )
                if uploaded:
                    task.files = list(task.files or []) + uploaded
                self._record(
                    task,
                    self.build_action(
                        user,
                        "files",
                        "",
                        ", ".join(entry["name"] for entry in uploaded),
                        description="uploaded files",
                    ),
                )

            if changes.get("comments") is not None:
                self._replace_comments(task, user, changes["comments"], changes.get("comment_id"))

            task.update_count += 1
            task.save()

            logger.info(
                "Task updated successfully",
                extra={
                    "task_id": task.id,
                    "user_id": user.id,
                    "action_count": len(task.actions),
                    "action": "task_update_success",
                    "component": "TaskService",
                },
            )
            return task

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Task update failed",
                extra={
                    "task_id": task_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "task_update_failed",
                    "component": "TaskService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise UpdateFailed("Could not update task, please try again later.") from e

    def _replace_comments(self, task, user, new_comments, comment_id):
        old_by_id = {c.get("id"): c for c in task.comments or []}
        new_by_id = {c.get("id"): c for c in new_comments}

        old_text = (old_by_id.get(comment_id) or {}).get("text", "")
        new_text = (new_by_id.get(comment_id) or {}).get("text", "")

        task.comments = list(new_comments)
        self._record(
            task,
            self.build_action(user, "comments", old_text, new_text, description="edited comments"),
        )

    @staticmethod
    def _validate_status(status):
        valid_statuses = [choice[0] for choice in Task.STATUS_CHOICES]
        if status not in valid_statuses:
            raise ValidationFailed(
                f"Invalid status. Must be one of: {', '.join(valid_statuses)}"
            )

    def delete_task(self, task_id, user) -> bool:
        """
        Delete a task and drop it from the project's and users' task lists.

        Raises:
            NotFound: If the task does not exist
            Forbidden: If ``user`` is not an active project member
            DeletionFailed: If any of the writes fails
        """
        logger.warning(
            "Task deletion initiated",
            extra={
                "task_id": task_id,
                "user_id": user.id,
                "action": "task_deletion_start",
                "component": "TaskService",
                "severity": "medium",
            },
        )

        try:
            with transaction.atomic():
                task = get_task(task_id, lock=True)
                self.membership_service.assert_member(task.project_id, user.id)

                project = get_project(task.project_id, lock=True)
                pull_reference(project, "task_ids", task.id)
                for holder in User.objects.select_for_update().filter(
                    id__in={task.user_id, user.id}
                ):
                    pull_reference(holder, "task_ids", task.id)
                    if holder.id == user.id:
                        user.task_ids = holder.task_ids

                file_urls = [f["url"] for f in task.files or [] if f.get("url")]
                deleted_id = task.id
                task.delete()

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Task deletion failed",
                extra={
                    "task_id": task_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "task_deletion_failed",
                    "component": "TaskService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise DeletionFailed("Could not delete task, please try again later.") from e

        for url in file_urls:
            try:
                self.storage_service.delete(url)
            except StorageFailed:
                logger.warning(
                    "Task file cleanup failed",
                    extra={
                        "task_id": deleted_id,
                        "file_url": url,
                        "action": "task_file_cleanup_failed",
                        "component": "TaskService",
                        "severity": "medium",
                    },
                )

        logger.warning(
            "Task deleted successfully",
            extra={
                "task_id": deleted_id,
                "user_id": user.id,
                "action": "task_deletion_success",
                "component": "TaskService",
                "severity": "medium",
            },
        )
        return True

    # -------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------

    def get_task(self, task_id, user) -> Task:
        task = get_task(task_id)
        self.membership_service.assert_member(task.project_id, user.id)
        return task

    def get_all_tasks_by_project_id(self, project_id, user) -> list:
        """Tasks of the project in list order (newest first)."""
        project = get_project(project_id)
        self.membership_service.assert_member(project.id, user.id)

        tasks = Task.objects.in_bulk(project.task_ids or [])
        return [tasks[task_id] for task_id in project.task_ids or [] if task_id in tasks]

    def get_all_tasks_by_user_id(self, user) -> list:
        """
        The user's own tasks, then the tasks of projects shared with the user.

        Shared tasks are de-duplicated and exclude the user's own tasks.
        """
        owner = get_user(user.id)
        own_ids = list(owner.task_ids or [])
        own = Task.objects.in_bulk(own_ids)
        tasks = [own[task_id] for task_id in own_ids if task_id in own]

        shared = (
            Task.objects.filter(project__shared_with=owner)
            .exclude(id__in=own_ids)
            .exclude(user=owner)
            .distinct()
            .order_by("-timestamp")
        )
        tasks.extend(shared)

        logger.debug(
            "User tasks retrieved",
            extra={
                "user_id": user.id,
                "own_count": len(own),
                "total_count": len(tasks),
                "action": "user_tasks_retrieval",
                "component": "TaskService",
            },
        )
        return tasks

    # -------------------------------------------------------------------
    # ATTACHMENTS
    # -------------------------------------------------------------------

    @transaction.atomic
    def add_comment(self, task_id, user, text, mentions=None, parent_id=None) -> dict:
        task = get_task(task_id, lock=True)
        self.membership_service.assert_member(task.project_id, user.id)
        return self.attachment_service.add_comment(task, user, text, mentions, parent_id)

    @transaction.atomic
    def delete_comment(self, task_id, comment_id, user) -> dict:
        task = get_task(task_id, lock=True)
        self.membership_service.assert_member(task.project_id, user.id)
        return self.attachment_service.delete_comment(task, comment_id)

    @transaction.atomic
    def add_files(self, task_id, user, files) -> list:
        """Upload files to the task; logged as one ``files`` action."""
        task = get_task(task_id, lock=True)
        self.membership_service.assert_member(task.project_id, user.id)

        uploaded = self.attachment_service.add_files(task, task.project_id, files)
        self._record(
            task,
            self.build_action(
                user,
                "files",
                "",
                ", ".join(entry["name"] for entry in uploaded),
                description="uploaded files",
            ),
        )
        task.update_count += 1
        task.save(update_fields=["actions", "update_count", "updated_at"])
        return uploaded

    @transaction.atomic
    def remove_file(self, task_id, file_id, user) -> dict:
        """Remove one file from the task; logged as one ``files`` action."""
        task = get_task(task_id, lock=True)
        self.membership_service.assert_member(task.project_id, user.id)

        entry = self.attachment_service.remove_file(task, file_id)
        self._record(
            task,
            self.build_action(
                user, "files", entry.get("name", ""), "", description="removed file"
            ),
        )
        task.update_count += 1
        task.save(update_fields=["actions", "update_count", "updated_at"])
        return entry
