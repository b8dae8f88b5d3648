"""
Django admin registration for projects, memberships, tasks, transactions
and comments.

Reference lists are read-only here; they are maintained together with
their foreign keys by the service layer.
"""

from django.contrib import admin

from .models import Comment, Project, ProjectMember, Task, Transaction


class ProjectMemberInline(admin.TabularInline):
    model = ProjectMember
    extra = 0
    fields = ("user", "role", "status", "joined_at")
    readonly_fields = ("joined_at",)


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ("id", "project_name", "creator", "parent_project", "created_at")
    search_fields = ("project_name", "creator__email")
    list_select_related = ("creator", "parent_project")
    readonly_fields = (
        "sub_project_ids",
        "task_ids",
        "transaction_ids",
        "comment_ids",
        "created_at",
        "updated_at",
    )
    inlines = [ProjectMemberInline]


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "status", "project", "user", "update_count")
    list_filter = ("status",)
    search_fields = ("name", "description")
    readonly_fields = ("actions", "update_count", "created_at", "updated_at")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "sum", "classifier", "project", "user", "timestamp")
    list_filter = ("type",)
    search_fields = ("description", "classifier")
    readonly_fields = ("classifiers", "version", "created_at", "updated_at")


@admin.register(Comment)
class CommentAdmin(admin.ModelAdmin):
    list_display = ("id", "project", "user", "timestamp")
    search_fields = ("text",)
