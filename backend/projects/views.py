"""
API views for the project collaboration backend.

Thin viewsets: request bodies are validated by input serializers, every
business rule lives in the service layer and ServiceExceptionHandlerMixin
maps failures onto the API error taxonomy.
"""

import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .exceptions import ValidationFailed
from .mixins.service_exception_handler import ServiceExceptionHandlerMixin
from .permissions import IsProjectAdmin, IsProjectMember
from .serializers import (CommentInputSerializer, CommentSerializer,
                          FileBatchSerializer, InvitationSerializer,
                          JoinProjectSerializer, MoveProjectSerializer,
                          ProjectCreateSerializer, ProjectMemberSerializer,
                          ProjectSerializer, ProjectUpdateSerializer,
                          ReorderProjectsSerializer,
                          ReorderTransactionsSerializer, TaskCreateSerializer,
                          TaskSerializer, TaskUpdateSerializer,
                          TransactionCreateSerializer, TransactionSerializer,
                          TransactionUpdateSerializer)
from .services import (CommentService, MembershipService, ProjectService,
                       TaskService, TransactionService)

logger = logging.getLogger(__name__)


class ServiceViewSet(ServiceExceptionHandlerMixin, viewsets.ViewSet):
    """Base viewset for service-backed resources addressed by numeric ids."""

    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def validated(self, serializer_class, data=None):
        """Validate ``data`` (defaults to the request body) or raise ``ValidationFailed``."""
        serializer = serializer_class(data=self.request.data if data is None else data)
        if not serializer.is_valid():
            logger.warning(
                "Request payload rejected",
                extra={
                    "user_id": self.request.user.id,
                    "serializer": serializer_class.__name__,
                    "errors": serializer.errors,
                    "action": "payload_validation_failed",
                    "component": self.__class__.__name__,
                },
            )
            raise ValidationFailed(serializer.errors)
        return serializer.validated_data


# -------------------------------------------------------------------
# PROJECTS
# -------------------------------------------------------------------


class ProjectViewSet(ServiceViewSet):
    """
    Projects, their hierarchy, invitations, members and attachments.

    Role checks at the view level are a first gate; the services repeat
    them inside the transaction that performs the write.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.project_service = ProjectService()
        self.membership_service = MembershipService()
        self.comment_service = CommentService()
        self.task_service = TaskService()

    def get_permissions(self):
        if self.action in ["list", "create", "reorder", "join", "destroy"]:
            return [IsAuthenticated()]
        if self.action in [
            "partial_update",
            "sub_projects",
            "move",
            "invitations",
            "remove_member",
        ]:
            return [IsAuthenticated(), IsProjectAdmin()]
        return [IsAuthenticated(), IsProjectMember()]

    def _project_response(self, project, status_code=status.HTTP_200_OK):
        serializer = ProjectSerializer(project, context={"request": self.request})
        return Response(serializer.data, status=status_code)

    def list(self, request):
        projects = self.handle_service_call(
            self.project_service.get_projects_by_user, request.user
        )
        serializer = ProjectSerializer(projects, many=True, context={"request": request})
        return Response(serializer.data)

    def create(self, request):
        data = self.validated(ProjectCreateSerializer)
        project = self.handle_service_call(
            self.project_service.create_project, request.user, **data
        )
        return self._project_response(project, status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        project = self.handle_service_call(
            self.project_service.get_project, pk, request.user
        )
        return self._project_response(project)

    def partial_update(self, request, pk=None):
        data = self.validated(ProjectUpdateSerializer)
        project = self.handle_service_call(
            self.project_service.update_project, pk, request.user, dict(data)
        )
        return self._project_response(project)

    def destroy(self, request, pk=None):
        logger.info(
            "Project deletion delegated to service",
            extra={
                "user_id": request.user.id,
                "project_id": pk,
                "action": "project_deletion_delegated",
                "component": "ProjectViewSet",
            },
        )
        self.handle_service_call(self.project_service.delete_project, pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["put"])
    def reorder(self, request):
        data = self.validated(ReorderProjectsSerializer)
        project_ids = self.handle_service_call(
            self.project_service.reorder_user_projects, request.user, data["project_ids"]
        )
        return Response({"project_ids": project_ids})

    @action(detail=True, methods=["post"], url_path="sub-projects")
    def sub_projects(self, request, pk=None):
        data = self.validated(ProjectCreateSerializer)
        project = self.handle_service_call(
            self.project_service.create_sub_project, pk, request.user, **data
        )
        return self._project_response(project, status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def move(self, request, pk=None):
        data = self.validated(MoveProjectSerializer)
        project = self.handle_service_call(
            self.project_service.move_project,
            pk,
            data.get("to_project_id"),
            request.user,
        )
        return self._project_response(project)

    @action(detail=True, methods=["post"])
    def invitations(self, request, pk=None):
        data = self.validated(InvitationSerializer)
        results = self.handle_service_call(
            self.project_service.send_invitation, pk, data["recipients"], request.user
        )
        return Response({"invitations": results}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def join(self, request, pk=None):
        data = self.validated(JoinProjectSerializer)
        project = self.handle_service_call(
            self.project_service.join_to_project, pk, data["invitation_id"], request.user
        )
        return self._project_response(project)

    # -------------------------------------------------------------------
    # MEMBERS
    # -------------------------------------------------------------------

    @action(detail=True, methods=["get"])
    def members(self, request, pk=None):
        members = self.handle_service_call(
            self.membership_service.list_members, pk, request.user
        )
        return Response(
            {
                "project_id": int(pk),
                "members": ProjectMemberSerializer(members, many=True).data,
                "total_members": len(members),
            }
        )

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"members/(?P<user_id>\d+)",
        url_name="remove-member",
    )
    def remove_member(self, request, pk=None, user_id=None):
        self.handle_service_call(
            self.membership_service.remove, pk, int(user_id), request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    # -------------------------------------------------------------------
    # COMMENTS AND FILES
    # -------------------------------------------------------------------

    @action(detail=True, methods=["get", "post"])
    def comments(self, request, pk=None):
        if request.method == "GET":
            comments = self.handle_service_call(
                self.comment_service.list_comments, pk, request.user
            )
            return Response(CommentSerializer(comments, many=True).data)

        data = self.validated(CommentInputSerializer)
        comment = self.handle_service_call(
            self.comment_service.add_comment, pk, request.user, **data
        )
        return Response(CommentSerializer(comment).data, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"comments/(?P<comment_id>\d+)",
        url_name="delete-comment",
    )
    def delete_comment(self, request, pk=None, comment_id=None):
        self.handle_service_call(
            self.comment_service.delete_comment, pk, comment_id, request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def files(self, request, pk=None):
        data = self.validated(FileBatchSerializer)
        uploaded = self.handle_service_call(
            self.project_service.add_files, pk, request.user, data["files"]
        )
        return Response({"files": uploaded}, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"files/(?P<file_id>[^/.]+)",
        url_name="remove-file",
    )
    def remove_file(self, request, pk=None, file_id=None):
        self.handle_service_call(
            self.project_service.remove_file, pk, file_id, request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    # -------------------------------------------------------------------
    # TASKS
    # -------------------------------------------------------------------

    @action(detail=True, methods=["get", "post"])
    def tasks(self, request, pk=None):
        if request.method == "GET":
            tasks = self.handle_service_call(
                self.task_service.get_all_tasks_by_project_id, pk, request.user
            )
            return Response(TaskSerializer(tasks, many=True).data)

        data = self.validated(TaskCreateSerializer)
        task = self.handle_service_call(
            self.task_service.create_task, pk, request.user, dict(data)
        )
        return Response(TaskSerializer(task).data, status=status.HTTP_201_CREATED)


# -------------------------------------------------------------------
# ATTACHMENT ACTIONS
# -------------------------------------------------------------------


class AttachmentActionsMixin:
    """
    Embedded comment and file routes for tasks and transactions.

    Expects ``attachment_service`` exposing ``add_comment``,
    ``delete_comment``, ``add_files`` and ``remove_file``.
    """

    @action(detail=True, methods=["post"])
    def comments(self, request, pk=None):
        data = self.validated(CommentInputSerializer)
        data.pop("files", None)
        comment = self.handle_service_call(
            self.attachment_service.add_comment, pk, request.user, **data
        )
        return Response(comment, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"comments/(?P<comment_id>[^/.]+)",
        url_name="delete-comment",
    )
    def delete_comment(self, request, pk=None, comment_id=None):
        self.handle_service_call(
            self.attachment_service.delete_comment, pk, comment_id, request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def files(self, request, pk=None):
        data = self.validated(FileBatchSerializer)
        uploaded = self.handle_service_call(
            self.attachment_service.add_files, pk, request.user, data["files"]
        )
        return Response({"files": uploaded}, status=status.HTTP_201_CREATED)

    @action(
        detail=True,
        methods=["delete"],
        url_path=r"files/(?P<file_id>[^/.]+)",
        url_name="remove-file",
    )
    def remove_file(self, request, pk=None, file_id=None):
        self.handle_service_call(
            self.attachment_service.remove_file, pk, file_id, request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


# -------------------------------------------------------------------
# TASKS
# -------------------------------------------------------------------


class TaskViewSet(AttachmentActionsMixin, ServiceViewSet):
    """Tasks addressed by id; creation goes through ``/projects/{id}/tasks/``."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.task_service = TaskService()
        self.attachment_service = self.task_service

    def list(self, request):
        tasks = self.handle_service_call(
            self.task_service.get_all_tasks_by_user_id, request.user
        )
        return Response(TaskSerializer(tasks, many=True).data)

    def retrieve(self, request, pk=None):
        task = self.handle_service_call(self.task_service.get_task, pk, request.user)
        return Response(TaskSerializer(task).data)

    def partial_update(self, request, pk=None):
        data = self.validated(TaskUpdateSerializer)
        task = self.handle_service_call(
            self.task_service.update_task, pk, request.user, dict(data)
        )
        return Response(TaskSerializer(task).data)

    def destroy(self, request, pk=None):
        self.handle_service_call(self.task_service.delete_task, pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


# -------------------------------------------------------------------
# TRANSACTIONS
# -------------------------------------------------------------------


class TransactionViewSet(AttachmentActionsMixin, ServiceViewSet):
    """Income, expense and transfer records with classifier snapshots."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.transaction_service = TransactionService()
        self.attachment_service = self.transaction_service

    def list(self, request):
        transactions = self.handle_service_call(
            self.transaction_service.get_user_transactions, request.user
        )
        return Response(TransactionSerializer(transactions, many=True).data)

    def create(self, request):
        data = dict(self.validated(TransactionCreateSerializer))
        project_id = data.pop("project_id")
        transaction_type = data.pop("type")
        instance = self.handle_service_call(
            self.transaction_service.create_transaction,
            project_id,
            request.user,
            transaction_type=transaction_type,
            **data,
        )
        return Response(
            TransactionSerializer(instance).data, status=status.HTTP_201_CREATED
        )

    def retrieve(self, request, pk=None):
        instance = self.handle_service_call(
            self.transaction_service.get_transaction, pk, request.user
        )
        return Response(TransactionSerializer(instance).data)

    def partial_update(self, request, pk=None):
        data = self.validated(TransactionUpdateSerializer)
        instance = self.handle_service_call(
            self.transaction_service.update_transaction, pk, request.user, dict(data)
        )
        return Response(TransactionSerializer(instance).data)

    def destroy(self, request, pk=None):
        self.handle_service_call(
            self.transaction_service.delete_transaction, pk, request.user
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(
        detail=False,
        methods=["get", "patch"],
        url_path=r"project/(?P<project_id>\d+)",
        url_name="by-project",
    )
    def by_project(self, request, project_id=None):
        if request.method == "PATCH":
            data = self.validated(ReorderTransactionsSerializer)
            transaction_ids = self.handle_service_call(
                self.transaction_service.reorder_project_transactions,
                project_id,
                request.user,
                data["transaction_ids"],
            )
            return Response({"transaction_ids": transaction_ids})

        transactions = self.handle_service_call(
            self.transaction_service.get_project_transactions, project_id, request.user
        )
        return Response(TransactionSerializer(transactions, many=True).data)

    @action(detail=False, methods=["patch"], url_path="order", url_name="order")
    def order(self, request):
        data = self.validated(ReorderTransactionsSerializer)
        transaction_ids = self.handle_service_call(
            self.transaction_service.reorder_user_transactions,
            request.user,
            data["transaction_ids"],
        )
        return Response({"transaction_ids": transaction_ids})
