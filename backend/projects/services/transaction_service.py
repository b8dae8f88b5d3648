"""
Production-grade service for project transactions.
Keeps transactions, the project transaction lists and the users'
transaction lists consistent, and propagates classifier label changes
to the project and to every transaction of the same type.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from ..exceptions import (
    DOMAIN_ERRORS,
    CreationFailed,
    DeletionFailed,
    StorageFailed,
    UpdateFailed,
    ValidationFailed,
)
from ..models import TRANSACTION_TYPES, Transaction
from ..utils.reference_lists import (
    prepend_reference,
    pull_reference,
    reorder_references,
    replace_reference,
)
from .attachment_service import AttachmentService
from .lookups import get_project, get_transaction, get_user
from .membership_service import MembershipService
from .storage_service import StorageService

logger = logging.getLogger(__name__)

User = get_user_model()

SCALAR_FIELDS = ("description", "sum", "timestamp", "type")


class TransactionService:
    """
    Transaction coordinator.

    Transactions carry their own copy of the project's classifier lists.
    Changing the labels of one type through a transaction rewrites that
    type on the project and on all of its transactions in the same
    database transaction.
    """

    def __init__(self, membership_service=None, storage_service=None):
        self.membership_service = membership_service or MembershipService()
        self.storage_service = storage_service or StorageService()
        self.attachment_service = AttachmentService(self.storage_service)

    @staticmethod
    def _validate_type(transaction_type):
        if transaction_type not in TRANSACTION_TYPES:
            raise ValidationFailed(
                f"Invalid type. Must be one of: {', '.join(TRANSACTION_TYPES)}"
            )

    @staticmethod
    def _to_decimal(value):
        try:
            return Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationFailed("Sum must be a number.")

    @staticmethod
    def _normalize_labels(labels):
        if not isinstance(labels, (list, tuple)):
            raise ValidationFailed("Classifiers must be a list of labels.")
        normalized = []
        for label in labels:
            label = str(label).strip()
            if label and label not in normalized:
                normalized.append(label)
        return normalized

    # -------------------------------------------------------------------
    # CREATE
    # -------------------------------------------------------------------

    @transaction.atomic
    def create_transaction(
        self, project_id, user, timestamp=None, transaction_type="expenses", **fields
    ) -> Transaction:
        """
        Create a transaction stamped with the project's current classifiers.

        Raises:
            NotFound: If the project does not exist
            Forbidden: If ``user`` is not an active project member
            ValidationFailed: If the type, sum or classifier is invalid
            CreationFailed: If any of the writes fails
        """
        logger.info(
            "Transaction creation initiated",
            extra={
                "project_id": project_id,
                "user_id": user.id,
                "type": transaction_type,
                "action": "transaction_creation_start",
                "component": "TransactionService",
            },
        )

        try:
            project = get_project(project_id, lock=True)
            self.membership_service.assert_member(project.id, user.id)
            self._validate_type(transaction_type)

            classifier = fields.get("classifier") or ""
            if classifier and classifier not in project.get_classifier_labels(transaction_type):
                raise ValidationFailed(
                    f"'{classifier}' is not a {transaction_type} classifier."
                )

            transaction_instance = Transaction.objects.create(
                project=project,
                user=user,
                timestamp=timestamp or timezone.now(),
                type=transaction_type,
                description=fields.get("description") or "",
                sum=self._to_decimal(fields.get("sum") or 0),
                classifier=classifier,
                classifiers=project.classifiers_snapshot(),
            )

            prepend_reference(project, "transaction_ids", transaction_instance.id)
            owner = get_user(user.id, lock=True)
            prepend_reference(owner, "transaction_ids", transaction_instance.id)
            user.transaction_ids = owner.transaction_ids

            logger.info(
                "Transaction created successfully",
                extra={
                    "transaction_id": transaction_instance.id,
                    "project_id": project.id,
                    "user_id": user.id,
                    "action": "transaction_creation_success",
                    "component": "TransactionService",
                },
            )
            return transaction_instance

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Transaction creation failed",
                extra={
                    "project_id": project_id,
                    "user_id": user.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "action": "transaction_creation_failed",
                    "component": "TransactionService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise CreationFailed(
                "Could not create transaction, please try again later."
            ) from e

    # -------------------------------------------------------------------
    # UPDATE
    # -------------------------------------------------------------------

    @transaction.atomic
    def update_transaction(self, transaction_id, user, changes) -> Transaction:
        """
        Update a transaction.

        Scalar fields (``description``, ``sum``, ``classifier``,
        ``timestamp``, ``type``) are applied directly. ``classifiers`` (a
        list of labels) replaces the labels of the transaction's type on
        the project and on every transaction of that project and type.

        Raises:
            NotFound: If the transaction does not exist
            Forbidden: If ``user`` is not an active project member
            ValidationFailed: If a value is invalid
            UpdateFailed: If the update fails unexpectedly
        """
        logger.info(
            "Transaction update initiated",
            extra={
                "transaction_id": transaction_id,
                "user_id": user.id,
                "fields": sorted(changes.keys()),
                "action": "transaction_update_start",
                "component": "TransactionService",
            },
        )

        try:
            instance = get_transaction(transaction_id, lock=True)
            self.membership_service.assert_member(instance.project_id, user.id)
            project = get_project(instance.project_id, lock=True)

            for field in SCALAR_FIELDS:
                value = changes.get(field)
                if value is None:
                    continue
                if field == "type":
                    self._validate_type(value)
                if field == "sum":
                    value = self._to_decimal(value)
                setattr(instance, field, value)

            if changes.get("classifiers") is not None and instance.type:
                labels = self._normalize_labels(changes["classifiers"])
                self._propagate_classifiers(project, instance, labels)

            labels = project.get_classifier_labels(instance.type)
            if changes.get("classifier") is not None:
                classifier = changes["classifier"]
                if classifier and classifier not in labels:
                    raise ValidationFailed(
                        f"'{classifier}' is not a {instance.type} classifier."
                    )
                instance.classifier = classifier
            elif instance.classifier and instance.classifier not in labels:
                instance.classifier = ""

            instance.version += 1
            instance.save()

            replace_reference(project, "transaction_ids", instance.id, instance.id)
            owner = get_user(instance.user_id, lock=True)
            replace_reference(owner, "transaction_ids", instance.id, instance.id)

            logger.info(
                "Transaction updated successfully",
                extra={
                    "transaction_id": instance.id,
                    "project_id": project.id,
                    "user_id": user.id,
                    "version": instance.version,
                    "action": "transaction_update_success",
                    "component": "TransactionService",
                },
            )
            return instance

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Transaction update failed",
                extra={
                    "transaction_id": transaction_id,
                    "user_id": user.id,
                    "error_type": e.__class__.__name__,
                    "error_message": str(e),
                    "action": "transaction_update_failed",
                    "component": "TransactionService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise UpdateFailed(
                "Could not update transaction, please try again later."
            ) from e

    def _propagate_classifiers(self, project, instance, labels):
        """Write ``labels`` for the instance's type to the project and its transactions."""
        transaction_type = instance.type

        classifiers = project.classifiers_snapshot()
        classifiers[transaction_type] = list(labels)
        project.classifiers = classifiers
        project.save(update_fields=["classifiers", "updated_at"])

        siblings = list(
            Transaction.objects.select_for_update()
            .filter(project=project, type=transaction_type)
            .exclude(pk=instance.pk)
        )
        for sibling in siblings:
            sibling_classifiers = dict(sibling.classifiers or {})
            sibling_classifiers[transaction_type] = list(labels)
            sibling.classifiers = sibling_classifiers
        if siblings:
            Transaction.objects.bulk_update(siblings, ["classifiers"], batch_size=500)

        instance_classifiers = dict(instance.classifiers or {})
        instance_classifiers[transaction_type] = list(labels)
        instance.classifiers = instance_classifiers

        logger.info(
            "Classifier labels propagated",
            extra={
                "project_id": project.id,
                "transaction_type": transaction_type,
                "label_count": len(labels),
                "updated_transactions": len(siblings) + 1,
                "action": "classifiers_propagated",
                "component": "TransactionService",
            },
        )

    # -------------------------------------------------------------------
    # DELETE
    # -------------------------------------------------------------------

    def delete_transaction(self, transaction_id, user) -> bool:
        """
        Delete a transaction and drop it from the project's and users' lists.

        Raises:
            NotFound: If the transaction does not exist
            Forbidden: If ``user`` is not an active project member
            DeletionFailed: If any of the writes fails
        """
        logger.warning(
            "Transaction deletion initiated",
            extra={
                "transaction_id": transaction_id,
                "user_id": user.id,
                "action": "transaction_deletion_start",
                "component": "TransactionService",
                "severity": "medium",
            },
        )

        try:
            with transaction.atomic():
                instance = get_transaction(transaction_id, lock=True)
                self.membership_service.assert_member(instance.project_id, user.id)

                project = get_project(instance.project_id, lock=True)
                pull_reference(project, "transaction_ids", instance.id)
                for holder in User.objects.select_for_update().filter(
                    id__in={instance.user_id, user.id}
                ):
                    pull_reference(holder, "transaction_ids", instance.id)
                    if holder.id == user.id:
                        user.transaction_ids = holder.transaction_ids

                file_urls = [f["url"] for f in instance.files or [] if f.get("url")]
                deleted_id = instance.id
                instance.delete()

        except DOMAIN_ERRORS:
            raise
        except Exception as e:
            logger.error(
                "Transaction deletion failed",
                extra={
                    "transaction_id": transaction_id,
                    "user_id": user.id,
                    "error_type": e.__class__.__name__,
                    "error_message": str(e),
                    "action": "transaction_deletion_failed",
                    "component": "TransactionService",
                    "severity": "high",
                },
                exc_info=True,
            )
            raise DeletionFailed(
                "Could not delete transaction, please try again later."
            ) from e

        for url in file_urls:
            try:
                self.storage_service.delete(url)
            except StorageFailed:
                logger.warning(
                    "Transaction file cleanup failed",
                    extra={
                        "transaction_id": deleted_id,
                        "file_url": url,
                        "action": "transaction_file_cleanup_failed",
                        "component": "TransactionService",
                        "severity": "medium",
                    },
                )

        logger.warning(
            "Transaction deleted successfully",
            extra={
                "transaction_id": deleted_id,
                "user_id": user.id,
                "action": "transaction_deletion_success",
                "component": "TransactionService",
                "severity": "medium",
            },
        )
        return True

    # -------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------

    def get_transaction(self, transaction_id, user) -> Transaction:
        instance = get_transaction(transaction_id)
        self.membership_service.assert_member(instance.project_id, user.id)
        return instance

    def get_project_transactions(self, project_id, user) -> list:
        """Transactions of the project in list order (newest first)."""
        project = get_project(project_id)
        self.membership_service.assert_member(project.id, user.id)

        ids = list(project.transaction_ids or [])
        rows = Transaction.objects.in_bulk(ids)
        return [rows[object_id] for object_id in ids if object_id in rows]

    def get_user_transactions(self, user) -> list:
        """Transactions created by the user in list order."""
        owner = get_user(user.id)
        ids = list(owner.transaction_ids or [])
        rows = Transaction.objects.in_bulk(ids)
        return [rows[object_id] for object_id in ids if object_id in rows]

    # -------------------------------------------------------------------
    # ORDERING
    # -------------------------------------------------------------------

    @transaction.atomic
    def reorder_project_transactions(self, project_id, user, transaction_ids) -> list:
        """
        Reorder the project's transaction list.

        Raises:
            NotFound: If the project does not exist
            Forbidden: If ``user`` is not an active project member
            ValidationFailed: If ``transaction_ids`` is not a permutation of the list
        """
        project = get_project(project_id, lock=True)
        self.membership_service.assert_member(project.id, user.id)
        try:
            order = reorder_references(project, "transaction_ids", transaction_ids)
        except ValueError as e:
            raise ValidationFailed(str(e))

        logger.info(
            "Project transaction list reordered",
            extra={
                "project_id": project.id,
                "user_id": user.id,
                "transaction_count": len(order),
                "action": "project_transactions_reordered",
                "component": "TransactionService",
            },
        )
        return order

    @transaction.atomic
    def reorder_user_transactions(self, user, transaction_ids) -> list:
        """
        Reorder the caller's own transaction list.

        Raises:
            ValidationFailed: If ``transaction_ids`` is not a permutation of the list
        """
        owner = get_user(user.id, lock=True)
        try:
            order = reorder_references(owner, "transaction_ids", transaction_ids)
        except ValueError as e:
            raise ValidationFailed(str(e))
        user.transaction_ids = order

        logger.info(
            "User transaction list reordered",
            extra={
                "user_id": user.id,
                "transaction_count": len(order),
                "action": "user_transactions_reordered",
                "component": "TransactionService",
            },
        )
        return order

    # -------------------------------------------------------------------
    # ATTACHMENTS
    # -------------------------------------------------------------------

    def _locked_for_attachment(self, transaction_id, user):
        instance = get_transaction(transaction_id, lock=True)
        self.membership_service.assert_member(instance.project_id, user.id)
        return instance

    def _bump_version(self, instance):
        instance.version += 1
        instance.save(update_fields=["version", "updated_at"])

    @transaction.atomic
    def add_comment(self, transaction_id, user, text, mentions=None, parent_id=None) -> dict:
        instance = self._locked_for_attachment(transaction_id, user)
        comment = self.attachment_service.add_comment(
            instance, user, text, mentions, parent_id
        )
        self._bump_version(instance)
        return comment

    @transaction.atomic
    def delete_comment(self, transaction_id, comment_id, user) -> dict:
        instance = self._locked_for_attachment(transaction_id, user)
        comment = self.attachment_service.delete_comment(instance, comment_id)
        self._bump_version(instance)
        return comment

    @transaction.atomic
    def add_files(self, transaction_id, user, files) -> list:
        instance = self._locked_for_attachment(transaction_id, user)
        uploaded = self.attachment_service.add_files(instance, instance.project_id, files)
        self._bump_version(instance)
        return uploaded

    @transaction.atomic
    def remove_file(self, transaction_id, file_id, user) -> dict:
        instance = self._locked_for_attachment(transaction_id, user)
        entry = self.attachment_service.remove_file(instance, file_id)
        self._bump_version(instance)
        return entry
