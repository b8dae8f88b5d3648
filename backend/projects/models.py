"""
Database models for the project collaboration system.

This module defines projects with nested sub-projects, project memberships,
tasks with an audit trail, transactions with classifier snapshots and
project-level comments. Embedded sub-documents (invitations, files,
classifiers, actions, embedded comments) and ordered reference lists are
stored as JSON; every "belongs to" link is a foreign key.
"""

import collections
import copy
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

# Get structured logger for this module
logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ["income", "expenses", "transfer"]


def default_classifiers():
    """Fresh classifier lists for a new project."""
    configured = getattr(settings, "PROJECT_DEFAULT_CLASSIFIERS", None) or {}
    return {
        transaction_type: list(configured.get(transaction_type, []))
        for transaction_type in TRANSACTION_TYPES
    }


# -------------------------------------------------------------------
# PROJECTS
# -------------------------------------------------------------------
# Project tree with shared roster and references to child entities


class Project(models.Model):
    """
    Collaborative project.

    A project is either top-level (listed in its owner's ``project_ids``)
    or nested under ``parent_project``, in which case the parent lists it
    in ``sub_project_ids``. Both sides are maintained together by
    ``ProjectService``.
    """

    project_name = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True, default="")
    logo_url = models.CharField(max_length=500, blank=True, default="")
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="created_projects",
    )
    parent_project = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="children",
    )
    sub_project_ids = models.JSONField(default=list, blank=True)
    shared_with = models.ManyToManyField(
        settings.AUTH_USER_MODEL, related_name="shared_projects", blank=True
    )
    invitations = models.JSONField(default=list, blank=True)
    files = models.JSONField(default=list, blank=True)
    task_ids = models.JSONField(default=list, blank=True)
    transaction_ids = models.JSONField(default=list, blank=True)
    comment_ids = models.JSONField(default=list, blank=True)
    classifiers = models.JSONField(default=default_classifiers, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["creator"], name="idx_project_creator"),
            models.Index(fields=["parent_project"], name="idx_project_parent"),
            models.Index(fields=["created_at"], name="idx_project_created"),
        ]

    def __str__(self):
        """String representation of Project."""
        return f"{self.project_name or 'Untitled'} (#{self.pk})"

    def clean(self):
        """Validate project data."""
        super().clean()

        if self.parent_project_id and self.parent_project_id == self.pk:
            raise ValidationError(
                {"parent_project": "A project cannot be its own parent."}
            )

        if not isinstance(self.classifiers, dict) or any(
            not isinstance(self.classifiers.get(t, []), list) for t in TRANSACTION_TYPES
        ):
            raise ValidationError(
                {"classifiers": "Classifiers must map each type to a list of labels."}
            )

        logger.debug(
            "Project validation completed",
            extra={
                "project_id": self.id if self.id else "new",
                "parent_project_id": self.parent_project_id,
                "action": "project_validation",
                "component": "Project",
            },
        )

    def get_descendant_ids(self):
        """
        Collect ids of every project below this one.

        Walks ``sub_project_ids`` breadth first. The whole tree is loaded in
        one query and traversed in memory.
        """
        children_map = dict(Project.objects.values_list("id", "sub_project_ids"))

        descendants = set()
        queue = collections.deque(children_map.get(self.id) or [])
        while queue:
            child_id = queue.popleft()
            if child_id in descendants:
                continue
            descendants.add(child_id)
            queue.extend(children_map.get(child_id) or [])
        return descendants

    def get_ancestor_ids(self):
        """Ids of the parent chain, nearest first."""
        ancestors = []
        parent_id = self.parent_project_id
        while parent_id and parent_id not in ancestors:
            ancestors.append(parent_id)
            parent_id = (
                Project.objects.filter(pk=parent_id)
                .values_list("parent_project_id", flat=True)
                .first()
            )
        return ancestors

    def get_classifier_labels(self, transaction_type):
        """Current labels of this project for ``transaction_type``."""
        return list((self.classifiers or {}).get(transaction_type, []))

    def classifiers_snapshot(self):
        """Independent copy of the classifier lists."""
        snapshot = default_classifiers()
        snapshot.update(copy.deepcopy(self.classifiers or {}))
        return snapshot

    def find_invitation(self, invitation_id):
        for invitation in self.invitations or []:
            if invitation.get("invitation_id") == invitation_id:
                return invitation
        return None


class ProjectMember(models.Model):
    """
    Membership of a user in a project.

    The authorization source of truth for project-scoped actions. Creators
    get an ``admin``/``active`` row; invited users get a ``pending`` row
    which becomes ``active`` when the invitation is accepted.
    """

    ROLE_CHOICES = [
        ("admin", "Admin"),
        ("guest", "Guest"),
    ]
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("active", "Active"),
    ]

    project = models.ForeignKey(
        Project, on_delete=models.CASCADE, related_name="memberships"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="project_memberships",
    )
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default="guest")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="pending")
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Project members"
        indexes = [
            models.Index(fields=["user", "status"], name="idx_member_user_status"),
            models.Index(fields=["project", "role"], name="idx_member_project_role"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["project", "user"], name="unique_project_member"
            )
        ]

    def __str__(self):
        """String representation of ProjectMember."""
        return f"{self.user} in project #{self.project_id} as {self.role} ({self.status})"

    def clean(self):
        """Validate project membership data."""
        super().clean()

        if (
            ProjectMember.objects.filter(project=self.project, user=self.user)
            .exclude(pk=self.pk)
            .exists()
        ):
            raise ValidationError("User already has a membership in this project.")

        logger.debug(
            "ProjectMember validation completed",
            extra={
                "project_id": self.project_id,
                "user_id": self.user_id,
                "role": self.role,
                "status": self.status,
                "action": "project_member_validation",
                "component": "ProjectMember",
            },
        )


# -------------------------------------------------------------------
# TASKS
# -------------------------------------------------------------------
# Project tasks with an append-only audit trail of field changes


class Task(models.Model):
    """
    Task belonging to one project, created by one user.

    ``actions`` is an append-only list of audit entries, one per mutation
    of status, description, name, files or comments.
    """

    STATUS_CHOICES = [
        ("new", "New"),
        ("in progress", "In progress"),
        ("ready", "Ready"),
        ("done", "Done"),
        ("canceled", "Canceled"),
    ]
    DEFAULT_STATUS = "new"

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="tasks")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="tasks"
    )
    timestamp = models.DateTimeField()
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=DEFAULT_STATUS
    )
    name = models.CharField(max_length=200, blank=True, default="")
    description = models.TextField(blank=True, default="")
    files = models.JSONField(default=list, blank=True)
    actions = models.JSONField(default=list, blank=True)
    comments = models.JSONField(default=list, blank=True)
    update_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["project", "status"], name="idx_task_project_status"),
            models.Index(fields=["user"], name="idx_task_user"),
        ]

    def __str__(self):
        return f"{self.name or 'Task'} [{self.status}]"

    def clean(self):
        """Validate task data."""
        super().clean()

        valid_statuses = [choice[0] for choice in self.STATUS_CHOICES]
        if self.status not in valid_statuses:
            raise ValidationError(
                {"status": f"Invalid status. Must be one of: {', '.join(valid_statuses)}"}
            )


# -------------------------------------------------------------------
# TRANSACTIONS
# -------------------------------------------------------------------
# Project transactions carrying their own classifier snapshot


class Transaction(models.Model):
    """
    Financial transaction of a project.

    ``classifiers`` is a copy of the project's classifier lists taken at
    creation time and kept in sync per type by ``TransactionService``.
    ``version`` is bumped on every save through the service.
    """

    TRANSACTION_TYPES = [
        ("income", "Income"),
        ("expenses", "Expenses"),
        ("transfer", "Transfer"),
    ]

    project = models.ForeignKey(
        Project, on_delete=models.CASCADE, related_name="transactions"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="transactions"
    )
    description = models.TextField(blank=True, default="")
    sum = models.DecimalField(max_digits=20, decimal_places=2, default=0)
    classifier = models.CharField(max_length=100, blank=True, default="")
    timestamp = models.DateTimeField()
    type = models.CharField(max_length=10, choices=TRANSACTION_TYPES)
    classifiers = models.JSONField(default=default_classifiers, blank=True)
    files = models.JSONField(default=list, blank=True)
    comments = models.JSONField(default=list, blank=True)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-timestamp", "-created_at"]
        indexes = [
            models.Index(fields=["project", "type"], name="idx_project_type"),
            models.Index(fields=["user", "timestamp"], name="idx_transaction_user_time"),
        ]

    def __str__(self):
        return f"{self.type} {self.sum} ({self.classifier or '-'})"

    def clean(self):
        """Validate transaction data."""
        super().clean()

        if self.type not in TRANSACTION_TYPES:
            raise ValidationError(
                {"type": f"Invalid type. Must be one of: {', '.join(TRANSACTION_TYPES)}"}
            )

        if self.classifier:
            labels = (self.classifiers or {}).get(self.type, [])
            if self.classifier not in labels:
                raise ValidationError(
                    {"classifier": f"'{self.classifier}' is not a {self.type} classifier."}
                )

        logger.debug(
            "Transaction validation completed",
            extra={
                "transaction_id": self.id if self.id else "new",
                "project_id": self.project_id,
                "type": self.type,
                "action": "transaction_validation",
                "component": "Transaction",
            },
        )


# -------------------------------------------------------------------
# COMMENTS
# -------------------------------------------------------------------
# Project-level comments referenced from Project.comment_ids


class Comment(models.Model):
    """Threaded project comment."""

    project = models.ForeignKey(
        Project, on_delete=models.CASCADE, related_name="project_comments"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="project_comments",
    )
    text = models.TextField()
    name = models.CharField(max_length=150, blank=True, default="")
    timestamp = models.DateTimeField()
    mentions = models.JSONField(default=list, blank=True)
    parent = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
    )
    files = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["project", "timestamp"], name="idx_comment_project_time")
        ]

    def __str__(self):
        return f"Comment #{self.pk} on project #{self.project_id}"
