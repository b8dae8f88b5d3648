"""
Production-grade membership service for project membership management.
Handles role lookups, admin gates, invitation rows and member removal
with audit logging.
"""

import logging

from django.db import transaction

from ..exceptions import Conflict, DOMAIN_ERRORS, Forbidden, NotFound, ValidationFailed
from ..models import Project, ProjectMember
from ..utils.reference_lists import pull_reference
from .lookups import get_project, get_user

logger = logging.getLogger(__name__)


class MembershipService:
    """
    Authorization source of truth for project-scoped actions.

    Only ``active`` rows grant access; a ``pending`` row records an
    invitation that has not been accepted yet.
    """

    def get_role(self, project_id, user_id):
        """
        Role of the user in the project.

        Returns:
            str | None: 'admin' or 'guest' for an active membership, otherwise None
        """
        membership = (
            ProjectMember.objects.filter(
                project_id=project_id, user_id=user_id, status="active"
            )
            .only("role")
            .first()
        )
        role = membership.role if membership else None

        logger.debug(
            "Project role resolved",
            extra={
                "project_id": project_id,
                "user_id": user_id,
                "role": role,
                "action": "project_role_lookup",
                "component": "MembershipService",
            },
        )
        return role

    def assert_admin(self, project_id, user_id):
        """
        Ensure the user is an active admin of the project.

        Raises:
            Forbidden: If the user has no active admin membership
        """
        if self.get_role(project_id, user_id) != "admin":
            logger.warning(
                "Project admin check denied",
                extra={
                    "project_id": project_id,
                    "user_id": user_id,
                    "action": "project_admin_denied",
                    "component": "MembershipService",
                    "severity": "high",
                },
            )
            raise Forbidden("You do not have permission to perform this action.")

    def assert_member(self, project_id, user_id):
        """
        Ensure the user holds any active membership in the project.

        Raises:
            Forbidden: If the user is not an active member
        """
        if self.get_role(project_id, user_id) is None:
            logger.warning(
                "Project member check denied",
                extra={
                    "project_id": project_id,
                    "user_id": user_id,
                    "action": "project_member_denied",
                    "component": "MembershipService",
                    "severity": "high",
                },
            )
            raise Forbidden("You are not a member of this project.")

    def create_creator_membership(self, project: Project, user) -> ProjectMember:
        """Active admin row for the creator of a (sub-)project."""
        membership = ProjectMember.objects.create(
            project=project, user=user, role="admin", status="active"
        )
        logger.debug(
            "Creator membership created",
            extra={
                "project_id": project.id,
                "user_id": user.id,
                "action": "creator_membership_created",
                "component": "MembershipService",
            },
        )
        return membership

    def create_pending_membership(self, project: Project, user, role="admin"):
        """
        Pending row for an invited user who already has an account.

        An existing row (pending or active) is left untouched.
        """
        membership, created = ProjectMember.objects.get_or_create(
            project=project,
            user=user,
            defaults={"role": role, "status": "pending"},
        )
        logger.debug(
            "Pending membership ensured",
            extra={
                "project_id": project.id,
                "user_id": user.id,
                "created": created,
                "status": membership.status,
                "action": "pending_membership_ensured",
                "component": "MembershipService",
            },
        )
        return membership

    def activate_membership(self, project: Project, user) -> ProjectMember:
        """
        Promote the user's pending row to active, keeping its role.

        Creates an active admin row when the invitation was issued before
        the user had an account.

        Raises:
            Conflict: If the user is already an active member
        """
        membership = (
            ProjectMember.objects.select_for_update()
            .filter(project=project, user=user)
            .first()
        )

        if membership is None:
            membership = ProjectMember.objects.create(
                project=project, user=user, role="admin", status="active"
            )
            logger.info(
                "Membership created on join without pending row",
                extra={
                    "project_id": project.id,
                    "user_id": user.id,
                    "action": "membership_created_on_join",
                    "component": "MembershipService",
                },
            )
            return membership

        if membership.status == "active":
            raise Conflict("You are already a member of this project.")

        membership.status = "active"
        membership.save(update_fields=["status"])

        logger.info(
            "Pending membership activated",
            extra={
                "project_id": project.id,
                "user_id": user.id,
                "role": membership.role,
                "action": "membership_activated",
                "component": "MembershipService",
            },
        )
        return membership

    @transaction.atomic
    def remove(self, project_id, target_user_id, requesting_user) -> bool:
        """
        Atomically remove a member from the project.

        Deletes the membership row, drops the user from ``shared_with`` and
        pulls the project from the user's top-level project list.

        Args:
            project_id: Project id
            target_user_id: ID of user to remove
            requesting_user: User initiating the removal

        Returns:
            bool: True when the member was removed

        Raises:
            NotFound: If the project or the membership does not exist
            Forbidden: If the requesting user is not a project admin
            ValidationFailed: If the target is the project creator
        """
        logger.warning(
            "Project member removal initiated",
            extra={
                "project_id": project_id,
                "target_user_id": target_user_id,
                "requesting_user_id": requesting_user.id,
                "action": "member_removal_start",
                "component": "MembershipService",
                "severity": "medium",
            },
        )

        try:
            project = get_project(project_id, lock=True)
            self.assert_admin(project.id, requesting_user.id)

            if str(target_user_id) == str(project.creator_id):
                raise ValidationFailed("Cannot remove the project creator.")

            membership = ProjectMember.objects.filter(
                project=project, user_id=target_user_id
            ).first()
            if membership is None:
                raise NotFound("Member not found.")

            removed_role = membership.role
            membership.delete()
            project.shared_with.remove(target_user_id)
            pull_reference(get_user(target_user_id, lock=True), "project_ids", project.id)

            logger.warning(
                "Project member removed successfully",
                extra={
                    "project_id": project.id,
                    "target_user_id": target_user_id,
                    "requesting_user_id": requesting_user.id,
                    "removed_role": removed_role,
                    "action": "member_removal_success",
                    "component": "MembershipService",
                    "severity": "medium",
                },
            )
            return True

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Member removal failed unexpectedly",
                extra={
                    "project_id": project_id,
                    "target_user_id": target_user_id,
                    "requesting_user_id": requesting_user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "member_removal_failed",
                    "component": "MembershipService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise

    def list_members(self, project_id, requesting_user) -> list:
        """
        Members of the project with their role and status.

        Returns:
            list: ``[{user_id, name, email, role, status}]``

        Raises:
            NotFound: If the project has no membership rows
            Forbidden: If the requesting user is not an active member
        """
        memberships = list(
            ProjectMember.objects.filter(project_id=project_id)
            .select_related("user")
            .order_by("joined_at", "id")
        )
        if not memberships:
            raise NotFound("No members found for this project.")

        self.assert_member(project_id, requesting_user.id)

        members_data = [
            {
                "user_id": membership.user_id,
                "name": membership.user.display_name,
                "email": membership.user.email,
                "role": membership.role,
                "status": membership.status,
            }
            for membership in memberships
        ]

        logger.debug(
            "Project members retrieved successfully",
            extra={
                "project_id": project_id,
                "member_count": len(members_data),
                "action": "project_members_retrieval_success",
                "component": "MembershipService",
            },
        )
        return members_data
