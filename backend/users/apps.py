"""
Django AppConfig for the users application.
"""

from django.apps import AppConfig


class UsersConfig(AppConfig):
    """Identity store: credentials, profile and per-user reference lists."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "users"
