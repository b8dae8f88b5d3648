"""
Embedded comment and file attachments.

Tasks, transactions and projects keep their files (and tasks and
transactions their comments) as embedded JSON lists. This service
implements the list mutations once; the owning services take care of
locking, authorization and transactions.
"""

import logging
import uuid

from django.utils import timezone

from ..exceptions import NotFound, ValidationFailed
from .storage_service import StorageService

logger = logging.getLogger(__name__)


class AttachmentService:
    """Comment and file list operations on a model instance."""

    def __init__(self, storage_service=None):
        self.storage_service = storage_service or StorageService()

    @staticmethod
    def build_comment(user, text, mentions=None, parent_id=None) -> dict:
        return {
            "id": uuid.uuid4().hex,
            "text": text,
            "timestamp": timezone.now().isoformat(),
            "user_id": user.id,
            "name": user.display_name,
            "mentions": list(mentions or []),
            "parent_id": parent_id,
        }

    def add_comment(self, instance, user, text, mentions=None, parent_id=None) -> dict:
        """
        Prepend a comment to ``instance.comments`` and save it.

        Raises:
            ValidationFailed: If the text is empty
            NotFound: If ``parent_id`` names no comment of the instance
        """
        if not (text or "").strip():
            raise ValidationFailed("Comment text cannot be empty.")

        comments = list(instance.comments or [])
        if parent_id and not any(c.get("id") == parent_id for c in comments):
            raise NotFound("Parent comment not found.")

        comment = self.build_comment(user, text, mentions, parent_id)
        instance.comments = [comment] + comments
        instance.save(update_fields=["comments", "updated_at"])

        logger.info(
            "Comment added",
            extra={
                "model": instance.__class__.__name__,
                "instance_id": instance.pk,
                "comment_id": comment["id"],
                "user_id": user.id,
                "action": "comment_added",
                "component": "AttachmentService",
            },
        )
        return comment

    def delete_comment(self, instance, comment_id) -> dict:
        """
        Remove the comment ``comment_id`` and save.

        Raises:
            NotFound: If no comment has the id
        """
        comments = list(instance.comments or [])
        comment = next((c for c in comments if c.get("id") == comment_id), None)
        if comment is None:
            raise NotFound("Comment not found.")

        instance.comments = [c for c in comments if c.get("id") != comment_id]
        instance.save(update_fields=["comments", "updated_at"])

        logger.info(
            "Comment deleted",
            extra={
                "model": instance.__class__.__name__,
                "instance_id": instance.pk,
                "comment_id": comment_id,
                "action": "comment_deleted",
                "component": "AttachmentService",
            },
        )
        return comment

    def add_files(self, instance, project_id, files) -> list:
        """
        Upload ``files`` and append the successful ones to ``instance.files``.

        Returns:
            list: The new file entries
        """
        uploaded = self.storage_service.upload_files(project_id, files)
        if uploaded:
            instance.files = list(instance.files or []) + uploaded
            instance.save(update_fields=["files", "updated_at"])

        logger.info(
            "Files attached",
            extra={
                "model": instance.__class__.__name__,
                "instance_id": instance.pk,
                "attached": len(uploaded),
                "requested": len(files or []),
                "action": "files_attached",
                "component": "AttachmentService",
            },
        )
        return uploaded

    def remove_file(self, instance, file_id) -> dict:
        """
        Delete the file ``file_id`` from storage and from ``instance.files``.

        Raises:
            NotFound: If no file has the id
            StorageFailed: If the stored object cannot be deleted
        """
        files = list(instance.files or [])
        entry = next((f for f in files if f.get("id") == file_id), None)
        instance.files = self.storage_service.delete_file(files, file_id)
        instance.save(update_fields=["files", "updated_at"])

        logger.info(
            "File removed",
            extra={
                "model": instance.__class__.__name__,
                "instance_id": instance.pk,
                "file_id": file_id,
                "action": "file_removed",
                "component": "AttachmentService",
            },
        )
        return entry
