"""
Production-grade service for the project hierarchy.
Keeps the project tree, the owners' top-level project lists, the shared
roster and the membership rows consistent across create, update, move,
delete, invite and join operations.
"""

import logging
import mimetypes
import uuid

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Q

from ..exceptions import (
    DOMAIN_ERRORS,
    Conflict,
    CreationFailed,
    DeletionFailed,
    Forbidden,
    NotFound,
    StorageFailed,
    UpdateFailed,
    ValidationFailed,
)
from ..models import Project, ProjectMember, Task, Transaction
from ..utils.reference_lists import append_reference, pull_reference, reorder_references
from .attachment_service import AttachmentService
from .lookups import get_project, get_user
from .membership_service import MembershipService
from .notification_service import NotificationService
from .storage_service import StorageService

logger = logging.getLogger(__name__)

User = get_user_model()


class ProjectService:
    """
    Project hierarchy engine.

    Every multi-record write runs inside one database transaction so the
    parent/child lists, the owners' lists and the membership rows change
    together or not at all.
    """

    def __init__(
        self, membership_service=None, storage_service=None, notification_service=None
    ):
        self.membership_service = membership_service or MembershipService()
        self.storage_service = storage_service or StorageService()
        self.notification_service = notification_service or NotificationService()
        self.attachment_service = AttachmentService(self.storage_service)

    # -------------------------------------------------------------------
    # CREATE
    # -------------------------------------------------------------------

    @transaction.atomic
    def create_project(self, user, project_name="", description="") -> Project:
        """
        Create a top-level project owned by ``user``.

        Creates the project, the creator's active admin membership and adds
        the project to the creator's project list.

        Raises:
            CreationFailed: If any of the writes fails
        """
        logger.info(
            "Project creation initiated",
            extra={
                "user_id": user.id,
                "action": "project_creation_start",
                "component": "ProjectService",
            },
        )

        try:
            project = Project.objects.create(
                creator=user, project_name=project_name or "", description=description or ""
            )
            self.membership_service.create_creator_membership(project, user)

            owner = get_user(user.id, lock=True)
            append_reference(owner, "project_ids", project.id)
            user.project_ids = owner.project_ids

            logger.info(
                "Project created successfully",
                extra={
                    "project_id": project.id,
                    "user_id": user.id,
                    "action": "project_creation_success",
                    "component": "ProjectService",
                },
            )
            return project

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Project creation failed",
                extra={
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "project_creation_failed",
                    "component": "ProjectService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise CreationFailed("Could not create project, please try again later.") from e

    @transaction.atomic
    def create_sub_project(
        self, parent_id, user, project_name="", description=""
    ) -> Project:
        """
        Create a project nested under ``parent_id``.

        Raises:
            NotFound: If the parent project does not exist
            Forbidden: If ``user`` is not an admin of the parent
            CreationFailed: If any of the writes fails
        """
        logger.info(
            "Sub-project creation initiated",
            extra={
                "parent_project_id": parent_id,
                "user_id": user.id,
                "action": "sub_project_creation_start",
                "component": "ProjectService",
            },
        )

        try:
            parent = get_project(parent_id, lock=True)
            self.membership_service.assert_admin(parent.id, user.id)

            project = Project.objects.create(
                creator=user,
                parent_project=parent,
                project_name=project_name or "",
                description=description or "",
            )
            self.membership_service.create_creator_membership(project, user)
            append_reference(parent, "sub_project_ids", project.id)

            logger.info(
                "Sub-project created successfully",
                extra={
                    "project_id": project.id,
                    "parent_project_id": parent.id,
                    "user_id": user.id,
                    "action": "sub_project_creation_success",
                    "component": "ProjectService",
                },
            )
            return project

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Sub-project creation failed",
                extra={
                    "parent_project_id": parent_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "sub_project_creation_failed",
                    "component": "ProjectService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise CreationFailed(
                "Could not create sub-project, please try again later."
            ) from e

    # -------------------------------------------------------------------
    # UPDATE
    # -------------------------------------------------------------------

    @transaction.atomic
    def update_project(self, project_id, user, data) -> Project:
        """
        Partially update a project.

        Supported keys, each optional and applied independently:
        ``project_name``, ``description`` (empty strings clear them),
        ``logo_url`` (a base64 image is uploaded and replaced by its URL;
        the previous logo is deleted from storage after the commit) and
        ``sub_project_ids`` (replaces the child list and re-parents the
        listed projects).

        Raises:
            NotFound: If the project or a listed sub-project does not exist
            Forbidden: If ``user`` is not a project admin
            Conflict: If the new children would create a cycle
            UploadFailed: If the logo upload fails
            UpdateFailed: If the update fails unexpectedly
        """
        logger.info(
            "Project update initiated",
            extra={
                "project_id": project_id,
                "user_id": user.id,
                "fields": sorted(data.keys()),
                "action": "project_update_start",
                "component": "ProjectService",
            },
        )

        try:
            project = get_project(project_id, lock=True)
            self.membership_service.assert_admin(project.id, user.id)

            update_fields = ["updated_at"]
            for field in ("project_name", "description"):
                if field in data and data[field] is not None:
                    setattr(project, field, data[field])
                    update_fields.append(field)

            if data.get("logo_url") is not None:
                previous_logo = project.logo_url
                project.logo_url = self._resolve_logo(project, data["logo_url"])
                update_fields.append("logo_url")
                if previous_logo and previous_logo != project.logo_url:
                    transaction.on_commit(
                        lambda: self._discard_logo(project.id, previous_logo)
                    )

            if data.get("sub_project_ids") is not None:
                self._replace_sub_projects(project, data["sub_project_ids"], user)
                update_fields.append("sub_project_ids")

            project.save(update_fields=update_fields)

            logger.info(
                "Project updated successfully",
                extra={
                    "project_id": project.id,
                    "user_id": user.id,
                    "updated_fields": update_fields,
                    "action": "project_update_success",
                    "component": "ProjectService",
                },
            )
            return project

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Project update failed",
                extra={
                    "project_id": project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "project_update_failed",
                    "component": "ProjectService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise UpdateFailed("Could not update project, please try again later.") from e

    def _resolve_logo(self, project, logo):
        """Upload an inline logo and return its URL; plain URLs pass through."""
        if not logo or not logo.startswith("data:"):
            return logo

        mime = logo[len("data:"):].split(";", 1)[0]
        extension = mimetypes.guess_extension(mime) or ""
        return self.storage_service.upload(project.id, f"logo{extension}", logo)

    def _discard_logo(self, project_id, logo_url):
        """Delete a replaced logo; the update is already committed."""
        try:
            self.storage_service.delete(logo_url)
        except StorageFailed:
            logger.warning(
                "Replaced logo cleanup failed",
                extra={
                    "project_id": project_id,
                    "logo_url": logo_url,
                    "action": "project_logo_cleanup_failed",
                    "component": "ProjectService",
                    "severity": "medium",
                },
            )

    def _replace_sub_projects(self, project, sub_project_ids, user):
        """
        Make ``sub_project_ids`` the exact child list of ``project``.

        Newly adopted projects are detached from their previous location;
        children dropped from the list become top-level projects of their
        creators.
        """
        new_ids = []
        for sub_id in sub_project_ids:
            sub_id = int(sub_id)
            if sub_id not in new_ids:
                new_ids.append(sub_id)

        forbidden = set(project.get_ancestor_ids()) | {project.id}
        if forbidden & set(new_ids):
            raise Conflict("A project cannot contain itself or one of its parents.")

        children = {
            child.id: child
            for child in Project.objects.select_for_update().filter(id__in=new_ids)
        }
        missing = [sub_id for sub_id in new_ids if sub_id not in children]
        if missing:
            raise NotFound(f"Sub-project {missing[0]} not found.")

        for sub_id in new_ids:
            child = children[sub_id]
            if child.parent_project_id == project.id:
                continue
            self.membership_service.assert_admin(child.id, user.id)
            self._detach(child)
            child.parent_project = project
            child.save(update_fields=["parent_project", "updated_at"])

        dropped_ids = set(project.sub_project_ids or []) - set(new_ids)
        for child in Project.objects.select_for_update().filter(
            id__in=dropped_ids, parent_project=project
        ):
            self._promote_to_root(child)

        project.sub_project_ids = new_ids

        logger.info(
            "Sub-project list replaced",
            extra={
                "project_id": project.id,
                "sub_project_ids": new_ids,
                "dropped_ids": sorted(dropped_ids),
                "action": "sub_projects_replaced",
                "component": "ProjectService",
            },
        )

    # -------------------------------------------------------------------
    # DELETE
    # -------------------------------------------------------------------

    def delete_project(self, project_id, user) -> bool:
        """
        Delete a project.

        The project is detached from its parent and from the owners' lists,
        its memberships, tasks, transactions and comments are removed and
        its direct sub-projects become top-level projects of their
        creators, all in one transaction. The stored logo is deleted after
        the commit.

        Raises:
            NotFound: If the project does not exist
            Forbidden: If ``user`` is not the creator
            DeletionFailed: If the transactional part fails
            StorageFailed: If the logo cannot be deleted (project stays deleted)
        """
        logger.warning(
            "Project deletion initiated",
            extra={
                "project_id": project_id,
                "user_id": user.id,
                "action": "project_deletion_start",
                "component": "ProjectService",
                "severity": "medium",
            },
        )

        try:
            with transaction.atomic():
                project = get_project(project_id, lock=True)
                if project.creator_id != user.id:
                    logger.warning(
                        "Project deletion denied",
                        extra={
                            "project_id": project.id,
                            "user_id": user.id,
                            "creator_id": project.creator_id,
                            "action": "project_deletion_denied",
                            "component": "ProjectService",
                            "severity": "high",
                        },
                    )
                    raise Forbidden("Only the creator can delete this project.")

                logo_url = project.logo_url
                file_urls = [f["url"] for f in project.files or [] if f.get("url")]
                deleted_id = project.id

                if project.parent_project_id:
                    parent = get_project(project.parent_project_id, lock=True)
                    pull_reference(parent, "sub_project_ids", project.id)

                for child in Project.objects.select_for_update().filter(
                    parent_project=project
                ):
                    self._promote_to_root(child)

                self._pull_user_references(Task, project, "task_ids")
                self._pull_user_references(Transaction, project, "transaction_ids")
                self._detach_from_owner_lists(project)

                project.delete()

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Project deletion failed",
                extra={
                    "project_id": project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "project_deletion_failed",
                    "component": "ProjectService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise DeletionFailed("Could not delete project, please try again later.") from e

        logger.warning(
            "Project deleted successfully",
            extra={
                "project_id": deleted_id,
                "user_id": user.id,
                "action": "project_deletion_success",
                "component": "ProjectService",
                "severity": "medium",
            },
        )

        for url in file_urls:
            try:
                self.storage_service.delete(url)
            except StorageFailed:
                logger.warning(
                    "Project file cleanup failed",
                    extra={
                        "project_id": deleted_id,
                        "file_url": url,
                        "action": "project_file_cleanup_failed",
                        "component": "ProjectService",
                        "severity": "medium",
                    },
                )

        if logo_url:
            self.storage_service.delete(logo_url)

        return True

    def _pull_user_references(self, model, project, field):
        """Drop the project's tasks or transactions from their creators' lists."""
        rows = model.objects.filter(project=project).values_list("id", "user_id")
        by_user = {}
        for object_id, user_id in rows:
            by_user.setdefault(user_id, set()).add(object_id)

        for owner in User.objects.select_for_update().filter(id__in=by_user.keys()):
            removed = by_user[owner.id]
            setattr(
                owner,
                field,
                [ref for ref in getattr(owner, field) or [] if ref not in removed],
            )
            owner.save(update_fields=[field])

    # -------------------------------------------------------------------
    # MOVE
    # -------------------------------------------------------------------

    @transaction.atomic
    def move_project(self, project_id, to_project_id, user) -> Project:
        """
        Move a project under another project or to the top level.

        An empty ``to_project_id`` or the ``PROJECT_MOVE_TO_ROOT`` sentinel
        moves the project to the caller's top-level list. The moved project
        keeps its own sub-projects.

        Raises:
            NotFound: If the project or the target does not exist
            Forbidden: If ``user`` is not an admin of the project or target
            Conflict: If the target is the project itself or a descendant
            UpdateFailed: If the move fails unexpectedly
        """
        logger.info(
            "Project move initiated",
            extra={
                "project_id": project_id,
                "to_project_id": to_project_id,
                "user_id": user.id,
                "action": "project_move_start",
                "component": "ProjectService",
            },
        )

        try:
            project = get_project(project_id, lock=True)
            self.membership_service.assert_admin(project.id, user.id)
            old_parent_id = project.parent_project_id

            root_sentinel = getattr(settings, "PROJECT_MOVE_TO_ROOT", "root")
            if to_project_id in (None, "", root_sentinel):
                self._move_to_root(project, user)
            else:
                target = get_project(to_project_id, lock=True)
                if target.id == project.parent_project_id:
                    logger.debug(
                        "Project already under target, nothing to move",
                        extra={
                            "project_id": project.id,
                            "to_project_id": target.id,
                            "action": "project_move_noop",
                            "component": "ProjectService",
                        },
                    )
                    return project

                if target.id == project.id or target.id in project.get_descendant_ids():
                    raise Conflict("A project cannot be moved into itself.")

                self.membership_service.assert_admin(target.id, user.id)

                self._detach(project)
                append_reference(target, "sub_project_ids", project.id)
                project.parent_project = target
                project.save(update_fields=["parent_project", "updated_at"])

                # Children keep pointing at the moved project
                Project.objects.filter(id__in=project.sub_project_ids or []).exclude(
                    parent_project=project
                ).update(parent_project=project)

            logger.info(
                "Project moved successfully",
                extra={
                    "project_id": project.id,
                    "from_parent_id": old_parent_id,
                    "to_parent_id": project.parent_project_id,
                    "user_id": user.id,
                    "action": "project_move_success",
                    "component": "ProjectService",
                },
            )
            return project

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Project move failed",
                extra={
                    "project_id": project_id,
                    "to_project_id": to_project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "project_move_failed",
                    "component": "ProjectService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise UpdateFailed("Could not move project, please try again later.") from e

    def _move_to_root(self, project, user):
        if project.parent_project_id:
            parent = get_project(project.parent_project_id, lock=True)
            pull_reference(parent, "sub_project_ids", project.id)
            project.parent_project = None
            project.save(update_fields=["parent_project", "updated_at"])

        owner = get_user(user.id, lock=True)
        append_reference(owner, "project_ids", project.id)
        user.project_ids = owner.project_ids

    def _detach(self, project):
        """Remove ``project`` from its parent's list or from the owners' lists."""
        if project.parent_project_id:
            parent = get_project(project.parent_project_id, lock=True)
            pull_reference(parent, "sub_project_ids", project.id)
        else:
            self._detach_from_owner_lists(project)

    def _detach_from_owner_lists(self, project):
        """
        Pull ``project`` from every top-level list holding it.

        Only the creator and the project's members can hold it.
        """
        holder_ids = set(
            ProjectMember.objects.filter(project=project).values_list("user_id", flat=True)
        )
        holder_ids.add(project.creator_id)

        for holder in User.objects.select_for_update().filter(id__in=holder_ids):
            if pull_reference(holder, "project_ids", project.id):
                logger.debug(
                    "Project detached from owner list",
                    extra={
                        "project_id": project.id,
                        "owner_id": holder.id,
                        "action": "project_detached_from_owner",
                        "component": "ProjectService",
                    },
                )

    def _promote_to_root(self, child):
        """Turn ``child`` into a top-level project of its creator."""
        child.parent_project = None
        child.save(update_fields=["parent_project", "updated_at"])
        creator = get_user(child.creator_id, lock=True)
        append_reference(creator, "project_ids", child.id)

        logger.info(
            "Sub-project promoted to top level",
            extra={
                "project_id": child.id,
                "creator_id": child.creator_id,
                "action": "sub_project_promoted",
                "component": "ProjectService",
            },
        )

    # -------------------------------------------------------------------
    # INVITATIONS
    # -------------------------------------------------------------------

    def send_invitation(self, project_id, recipients, user) -> list:
        """
        Invite e-mail recipients to a project.

        Each recipient is handled in its own transaction: an invitation
        entry is stored, a pending admin membership is created for known
        users, then the invitation mail is sent. A failing recipient stops
        the batch; recipients handled before it stay invited.

        Returns:
            list: ``[{email, invitation_id, delivered}]`` per invited recipient

        Raises:
            NotFound: If the project does not exist
            Forbidden: If ``user`` is not a project admin
            ValidationFailed: If a recipient is not a valid e-mail address
            UpdateFailed: If storing an invitation fails
        """
        project = get_project(project_id)
        self.membership_service.assert_admin(project.id, user.id)

        emails = []
        for email in recipients or []:
            email = (email or "").strip().lower()
            try:
                validate_email(email)
            except DjangoValidationError:
                raise ValidationFailed(f"'{email}' is not a valid e-mail address.")
            if email not in emails:
                emails.append(email)

        if not emails:
            raise ValidationFailed("At least one recipient is required.")

        logger.info(
            "Project invitations initiated",
            extra={
                "project_id": project.id,
                "user_id": user.id,
                "recipient_count": len(emails),
                "action": "project_invitations_start",
                "component": "ProjectService",
            },
        )

        results = []
        for email in emails:
            try:
                with transaction.atomic():
                    project = get_project(project_id, lock=True)
                    invitee = User.objects.filter(email__iexact=email).first()

                    if invitee and self.membership_service.get_role(project.id, invitee.id):
                        logger.info(
                            "Recipient already a member, invitation skipped",
                            extra={
                                "project_id": project.id,
                                "invitee_id": invitee.id,
                                "action": "project_invitation_skipped",
                                "component": "ProjectService",
                            },
                        )
                        continue

                    invitation_id = uuid.uuid4().hex
                    project.invitations = list(project.invitations or []) + [
                        {"invitation_id": invitation_id, "email": email}
                    ]
                    project.save(update_fields=["invitations", "updated_at"])

                    if invitee:
                        self.membership_service.create_pending_membership(
                            project, invitee, role="admin"
                        )

            except DOMAIN_ERRORS:
                raise
            except Exception as e:
                logger.error(
                    "Project invitation failed",
                    extra={
                        "project_id": project_id,
                        "recipient": email,
                        "invited_so_far": [r["email"] for r in results],
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                        "action": "project_invitation_failed",
                        "component": "ProjectService",
                        "severity": "high",
                    },
                    exc_info=True,
                )
                raise UpdateFailed("Could not send invitations, please try again later.") from e

            delivered = self.notification_service.send_invitation(
                email, project, invitation_id, user
            )
            results.append(
                {"email": email, "invitation_id": invitation_id, "delivered": delivered}
            )

            logger.info(
                "Project invitation stored",
                extra={
                    "project_id": project.id,
                    "recipient": email,
                    "invitation_id": invitation_id,
                    "delivered": delivered,
                    "action": "project_invitation_success",
                    "component": "ProjectService",
                },
            )

        return results

    @transaction.atomic
    def join_to_project(self, project_id, invitation_id, user) -> Project:
        """
        Accept an invitation.

        Raises:
            NotFound: If the project or the invitation does not exist
            Conflict: If ``user`` is already an active member
            UpdateFailed: If the join fails unexpectedly
        """
        logger.info(
            "Project join initiated",
            extra={
                "project_id": project_id,
                "user_id": user.id,
                "action": "project_join_start",
                "component": "ProjectService",
            },
        )

        try:
            project = get_project(project_id, lock=True)

            if self.membership_service.get_role(project.id, user.id) is not None:
                raise Conflict("You are already a member of this project.")

            if project.find_invitation(invitation_id) is None:
                raise NotFound("Invitation not found.")

            project.shared_with.add(user)
            project.invitations = [
                invitation
                for invitation in project.invitations
                if invitation.get("invitation_id") != invitation_id
            ]
            project.save(update_fields=["invitations", "updated_at"])
            membership = self.membership_service.activate_membership(project, user)

            logger.info(
                "Project joined successfully",
                extra={
                    "project_id": project.id,
                    "user_id": user.id,
                    "role": membership.role,
                    "action": "project_join_success",
                    "component": "ProjectService",
                },
            )
            return project

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Project join failed",
                extra={
                    "project_id": project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "project_join_failed",
                    "component": "ProjectService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise UpdateFailed("Could not join project, please try again later.") from e

    # -------------------------------------------------------------------
    # FILES
    # -------------------------------------------------------------------

    @transaction.atomic
    def add_files(self, project_id, user, files) -> list:
        """Upload files and append them to the project's file list."""
        project = get_project(project_id, lock=True)
        self.membership_service.assert_member(project.id, user.id)
        return self.attachment_service.add_files(project, project.id, files)

    @transaction.atomic
    def remove_file(self, project_id, file_id, user) -> dict:
        """
        Delete one project file from storage and from the file list.

        Raises:
            NotFound: If the project or the file does not exist
            StorageFailed: If the stored object cannot be deleted
        """
        project = get_project(project_id, lock=True)
        self.membership_service.assert_member(project.id, user.id)
        return self.attachment_service.remove_file(project, file_id)

    # -------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------

    def get_project(self, project_id, user) -> Project:
        """Project visible to an active member."""
        project = get_project(project_id)
        self.membership_service.assert_member(project.id, user.id)
        return project

    def get_projects_by_user(self, user) -> list:
        """
        The user's top-level projects in list order, then projects shared
        with them. Listed projects the user no longer belongs to are skipped.
        """
        owner = get_user(user.id)
        own_ids = list(owner.project_ids or [])
        own = Project.objects.filter(id__in=own_ids).filter(
            Q(creator=owner)
            | Q(memberships__user=owner, memberships__status="active")
        ).in_bulk()
        projects = [own[project_id] for project_id in own_ids if project_id in own]

        shared = (
            Project.objects.filter(shared_with=owner)
            .exclude(id__in=own_ids)
            .order_by("-created_at")
        )
        projects.extend(shared)
        return projects

    @transaction.atomic
    def reorder_user_projects(self, user, project_ids) -> list:
        """
        Reorder the user's top-level project list.

        Raises:
            ValidationFailed: If ``project_ids`` is not a permutation of the list
        """
        owner = get_user(user.id, lock=True)
        try:
            requested = reorder_references(owner, "project_ids", project_ids)
        except ValueError as e:
            raise ValidationFailed(str(e))
        user.project_ids = requested

        logger.info(
            "User project list reordered",
            extra={
                "user_id": user.id,
                "project_count": len(requested),
                "action": "user_projects_reordered",
                "component": "ProjectService",
            },
        )
        return requested
