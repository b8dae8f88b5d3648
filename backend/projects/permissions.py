# permissions.py
import logging

from rest_framework import permissions

from .models import Project
from .services.membership_service import MembershipService

logger = logging.getLogger(__name__)


class _ProjectRolePermission(permissions.BasePermission):
    """
    Base for project-scoped permissions on ``/projects/{pk}/...`` routes.

    Requests for projects that do not exist are let through so the service
    layer can answer with 404.
    """

    allowed_roles = ()
    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        project_id = view.kwargs.get("pk")
        if project_id is None:
            return True

        role = MembershipService().get_role(project_id, request.user.id)
        if role in self.allowed_roles:
            logger.debug(
                "Project access granted",
                extra={
                    "user_id": request.user.id,
                    "project_id": project_id,
                    "user_role": role,
                    "action": "project_access_granted",
                    "component": self.__class__.__name__,
                },
            )
            return True

        if not Project.objects.filter(pk=project_id).exists():
            return True

        logger.warning(
            "Project access denied",
            extra={
                "user_id": request.user.id,
                "project_id": project_id,
                "user_role": role,
                "required_roles": list(self.allowed_roles),
                "action": "project_access_denied",
                "component": self.__class__.__name__,
                "severity": "medium",
            },
        )
        return False


class IsProjectMember(_ProjectRolePermission):
    """Any active member of the project."""

    allowed_roles = ("admin", "guest")


class IsProjectAdmin(_ProjectRolePermission):
    """Active admins of the project."""

    allowed_roles = ("admin",)
