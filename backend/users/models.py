"""
User models for the project collaboration application.

This module defines the CustomUser model which extends Django's AbstractUser
with a display name, a logo and the ordered per-user reference lists of
projects, tasks and transactions.
"""

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    """
    Custom user model extending Django's AbstractUser.

    Acts as the identity store: besides credentials it keeps the user's
    top-level projects, tasks and transactions as ordered id lists. Those
    lists mirror foreign keys held by the referenced records and are only
    changed by the project services, together with the other side.
    """

    # Email field - unique and required for all users
    email = models.EmailField(
        unique=True,
        blank=False,
        help_text="User's unique email address, used to match invitations",
    )

    # Username field - optional, email is the identifier
    username = models.CharField(
        max_length=150,
        unique=True,
        null=True,
        blank=True,
        help_text="Optional username",
    )

    name = models.CharField(
        max_length=150, blank=True, default="", help_text="Display name"
    )

    logo_url = models.CharField(
        max_length=500, blank=True, default="", help_text="Avatar URL"
    )

    # Ordered reference lists, newest first
    project_ids = models.JSONField(
        default=list, blank=True, help_text="Top-level projects owned by the user"
    )
    task_ids = models.JSONField(
        default=list, blank=True, help_text="Tasks created by the user"
    )
    transaction_ids = models.JSONField(
        default=list, blank=True, help_text="Transactions created by the user"
    )

    @property
    def display_name(self):
        """Name shown to other members."""
        return self.name or self.username or self.email

    def __str__(self):
        """
        String representation of the user model.

        Returns:
            str: The display name if available, otherwise a default representation
        """
        return self.name or self.username or f"User {self.id} ({self.email})"
