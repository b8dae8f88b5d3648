"""
Project comment service.

Project comments are separate records referenced from
``Project.comment_ids``; both sides change in one transaction.
"""

import logging

from django.db import transaction
from django.utils import timezone

from ..exceptions import DOMAIN_ERRORS, CreationFailed, Forbidden, NotFound, ValidationFailed
from ..models import Comment
from ..utils.reference_lists import prepend_reference, pull_reference
from .lookups import get_project
from .membership_service import MembershipService
from .storage_service import StorageService

logger = logging.getLogger(__name__)


class CommentService:
    """Threaded comments on projects."""

    def __init__(self, membership_service=None, storage_service=None):
        self.membership_service = membership_service or MembershipService()
        self.storage_service = storage_service or StorageService()

    @transaction.atomic
    def add_comment(
        self, project_id, user, text, mentions=None, parent_id=None, files=None
    ) -> Comment:
        """
        Create a comment and prepend it to the project's comment list.

        Raises:
            NotFound: If the project or the parent comment does not exist
            Forbidden: If ``user`` is not an active project member
            ValidationFailed: If the text is empty
            CreationFailed: If any of the writes fails
        """
        try:
            project = get_project(project_id, lock=True)
            self.membership_service.assert_member(project.id, user.id)

            if not (text or "").strip():
                raise ValidationFailed("Comment text cannot be empty.")

            parent = None
            if parent_id:
                parent = Comment.objects.filter(pk=parent_id, project=project).first()
                if parent is None:
                    raise NotFound("Parent comment not found.")

            comment = Comment.objects.create(
                project=project,
                user=user,
                text=text,
                name=user.display_name,
                timestamp=timezone.now(),
                mentions=list(mentions or []),
                parent=parent,
                files=self.storage_service.upload_files(project.id, files) if files else [],
            )
            prepend_reference(project, "comment_ids", comment.id)

            logger.info(
                "Project comment created",
                extra={
                    "project_id": project.id,
                    "comment_id": comment.id,
                    "user_id": user.id,
                    "action": "project_comment_created",
                    "component": "CommentService",
                },
            )
            return comment

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Project comment creation failed",
                extra={
                    "project_id": project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "project_comment_creation_failed",
                    "component": "CommentService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise CreationFailed("Could not create comment, please try again later.") from e

    @transaction.atomic
    def delete_comment(self, project_id, comment_id, user) -> bool:
        """
        Delete a project comment.

        Authors may delete their own comments, admins any comment.

        Raises:
            NotFound: If the project or the comment does not exist
            Forbidden: If ``user`` is neither the author nor an admin
        """
        project = get_project(project_id, lock=True)
        comment = Comment.objects.filter(pk=comment_id, project=project).first()
        if comment is None:
            raise NotFound("Comment not found.")

        role = self.membership_service.get_role(project.id, user.id)
        if role is None or (comment.user_id != user.id and role != "admin"):
            logger.warning(
                "Project comment deletion denied",
                extra={
                    "project_id": project.id,
                    "comment_id": comment.id,
                    "user_id": user.id,
                    "action": "project_comment_deletion_denied",
                    "component": "CommentService",
                    "severity": "high",
                },
            )
            raise Forbidden("You are not allowed to delete this comment.")

        deleted_id = comment.id
        comment.delete()
        pull_reference(project, "comment_ids", deleted_id)

        logger.info(
            "Project comment deleted",
            extra={
                "project_id": project.id,
                "comment_id": deleted_id,
                "user_id": user.id,
                "action": "project_comment_deleted",
                "component": "CommentService",
            },
        )
        return True

    def list_comments(self, project_id, user) -> list:
        """Comments of the project in list order (newest first)."""
        project = get_project(project_id)
        self.membership_service.assert_member(project.id, user.id)

        ids = list(project.comment_ids or [])
        rows = Comment.objects.in_bulk(ids)
        return [rows[comment_id] for comment_id in ids if comment_id in rows]
