"""
Django admin configuration for CustomUser model.

This module registers the CustomUser model with the Django admin interface
and extends the default UserAdmin with the profile and reference-list fields.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    """
    Custom admin configuration for CustomUser model.

    Reference lists are read-only here; they are owned by the project services.
    """

    fieldsets = UserAdmin.fieldsets + (
        ("Profile", {"fields": ("name", "logo_url")}),
        (
            "References",
            {"fields": ("project_ids", "task_ids", "transaction_ids")},
        ),
    )
    readonly_fields = ("project_ids", "task_ids", "transaction_ids")

    add_fieldsets = UserAdmin.add_fieldsets + (
        ("Profile", {"fields": ("email", "name", "logo_url")}),
    )

    list_display = ("email", "name", "username", "is_active", "is_staff")
    search_fields = ("email", "name", "username")
