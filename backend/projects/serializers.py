"""
Serializers for the project collaboration API.

Model serializers render projects, memberships, tasks, transactions and
comments. Input serializers validate request bodies before views hand
them to the service layer; they never write to the database themselves.
"""

import logging

from rest_framework import serializers

from .models import TRANSACTION_TYPES, Comment, Project, Task, Transaction

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# SHARED FIELDS
# -------------------------------------------------------------------


class FileUploadSerializer(serializers.Serializer):
    """One inline file: base64 data (optionally a ``data:`` URL) plus metadata."""

    name = serializers.CharField(max_length=255)
    data = serializers.CharField()
    width = serializers.IntegerField(required=False, min_value=0)
    height = serializers.IntegerField(required=False, min_value=0)


class FileBatchSerializer(serializers.Serializer):
    files = FileUploadSerializer(many=True, allow_empty=False)


class CommentInputSerializer(serializers.Serializer):
    text = serializers.CharField()
    mentions = serializers.ListField(child=serializers.CharField(), required=False)
    parent_id = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    files = FileUploadSerializer(many=True, required=False)


# -------------------------------------------------------------------
# PROJECTS
# -------------------------------------------------------------------


class ProjectSerializer(serializers.ModelSerializer):
    """
    Project representation.

    ``user_role`` is the requesting user's active role, if any.
    """

    creator_name = serializers.CharField(source="creator.display_name", read_only=True)
    shared_with = serializers.PrimaryKeyRelatedField(many=True, read_only=True)
    user_role = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = [
            "id",
            "project_name",
            "description",
            "logo_url",
            "creator",
            "creator_name",
            "parent_project",
            "sub_project_ids",
            "shared_with",
            "invitations",
            "files",
            "task_ids",
            "transaction_ids",
            "comment_ids",
            "classifiers",
            "user_role",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_user_role(self, obj):
        request = self.context.get("request")
        if not request or not request.user.is_authenticated:
            return None
        membership = obj.memberships.filter(user=request.user, status="active").first()
        return membership.role if membership else None


class ProjectCreateSerializer(serializers.Serializer):
    project_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)


class ProjectUpdateSerializer(serializers.Serializer):
    """Partial update; absent fields stay untouched, empty strings clear."""

    project_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    logo_url = serializers.CharField(required=False, allow_blank=True)
    sub_project_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False
    )

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No fields to update.")
        return attrs


class MoveProjectSerializer(serializers.Serializer):
    """Empty or ``root`` target moves the project to the top level."""

    to_project_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class InvitationSerializer(serializers.Serializer):
    recipients = serializers.ListField(child=serializers.EmailField(), allow_empty=False)


class JoinProjectSerializer(serializers.Serializer):
    invitation_id = serializers.CharField(max_length=64)


class ReorderProjectsSerializer(serializers.Serializer):
    project_ids = serializers.ListField(child=serializers.IntegerField(min_value=1))


class ReorderTransactionsSerializer(serializers.Serializer):
    transaction_ids = serializers.ListField(child=serializers.IntegerField(min_value=1))


class ProjectMemberSerializer(serializers.Serializer):
    """Row of ``MembershipService.list_members``."""

    user_id = serializers.IntegerField()
    name = serializers.CharField()
    email = serializers.EmailField()
    role = serializers.CharField()
    status = serializers.CharField()


class CommentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Comment
        fields = [
            "id",
            "project",
            "user",
            "name",
            "text",
            "timestamp",
            "mentions",
            "parent",
            "files",
        ]
        read_only_fields = fields


# -------------------------------------------------------------------
# TASKS
# -------------------------------------------------------------------


class TaskSerializer(serializers.ModelSerializer):
    class Meta:
        model = Task
        fields = [
            "id",
            "project",
            "user",
            "timestamp",
            "status",
            "name",
            "description",
            "files",
            "actions",
            "comments",
            "update_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TaskCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=Task.STATUS_CHOICES, required=False)
    timestamp = serializers.DateTimeField(required=False)


class TaskUpdateSerializer(serializers.Serializer):
    """
    Changes to a task.

    ``comments`` replaces the embedded list; ``comment_id`` names the
    comment that changed so the audit entry can record its old and new text.
    """

    status = serializers.ChoiceField(choices=Task.STATUS_CHOICES, required=False)
    name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    files = FileUploadSerializer(many=True, required=False)
    comments = serializers.ListField(child=serializers.DictField(), required=False)
    comment_id = serializers.CharField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No fields to update.")
        if "comment_id" in attrs and "comments" not in attrs:
            raise serializers.ValidationError(
                {"comment_id": "Only allowed together with comments."}
            )
        return attrs


# -------------------------------------------------------------------
# TRANSACTIONS
# -------------------------------------------------------------------


class TransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Transaction
        fields = [
            "id",
            "project",
            "user",
            "description",
            "sum",
            "classifier",
            "timestamp",
            "type",
            "classifiers",
            "files",
            "comments",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TransactionCreateSerializer(serializers.Serializer):
    project_id = serializers.IntegerField(min_value=1)
    type = serializers.ChoiceField(choices=TRANSACTION_TYPES)
    timestamp = serializers.DateTimeField(required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    sum = serializers.DecimalField(max_digits=20, decimal_places=2, required=False)
    classifier = serializers.CharField(max_length=100, required=False, allow_blank=True)


class TransactionUpdateSerializer(serializers.Serializer):
    description = serializers.CharField(required=False, allow_blank=True)
    sum = serializers.DecimalField(max_digits=20, decimal_places=2, required=False)
    classifier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    timestamp = serializers.DateTimeField(required=False)
    type = serializers.ChoiceField(choices=TRANSACTION_TYPES, required=False)
    classifiers = serializers.ListField(
        child=serializers.CharField(max_length=100), required=False
    )

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("No fields to update.")

        logger.debug(
            "Transaction update payload validated",
            extra={
                "fields": sorted(attrs.keys()),
                "action": "transaction_update_validation",
                "component": "TransactionUpdateSerializer",
            },
        )
        return attrs
