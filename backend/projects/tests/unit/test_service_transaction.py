# projects/tests/unit/test_service_transaction.py
from decimal import Decimal
from unittest.mock import patch

import pytest

from projects.exceptions import Forbidden, NotFound, ValidationFailed
from projects.models import Project, Transaction


@pytest.mark.django_db
class TestCreateTransaction:
    def test_stamps_classifier_snapshot_and_lists(
        self, transaction_service, test_project, test_user
    ):
        record = transaction_service.create_transaction(
            test_project.id,
            test_user,
            transaction_type="expenses",
            sum="12.50",
            classifier="Lunch",
            description="Team lunch",
        )

        test_project.refresh_from_db()
        test_user.refresh_from_db()
        assert record.sum == Decimal("12.50")
        assert record.classifier == "Lunch"
        assert record.classifiers == test_project.classifiers
        assert record.version == 0
        assert test_project.transaction_ids == [record.id]
        assert test_user.transaction_ids == [record.id]

    def test_snapshot_is_a_copy(self, transaction_service, test_project, test_user):
        record = transaction_service.create_transaction(test_project.id, test_user)

        Project.objects.filter(pk=test_project.id).update(
            classifiers={"income": ["Salary"], "expenses": [], "transfer": []}
        )

        record.refresh_from_db()
        assert record.classifiers["expenses"] == ["Lunch", "Transport", "Housing"]

    def test_unknown_classifier_is_rejected(
        self, transaction_service, test_project, test_user
    ):
        with pytest.raises(ValidationFailed):
            transaction_service.create_transaction(
                test_project.id, test_user, transaction_type="income", classifier="Lunch"
            )

        assert Transaction.objects.count() == 0

    def test_invalid_type_is_rejected(self, transaction_service, test_project, test_user):
        with pytest.raises(ValidationFailed):
            transaction_service.create_transaction(
                test_project.id, test_user, transaction_type="refund"
            )

    def test_stranger_is_forbidden(self, transaction_service, test_project, test_user2):
        with pytest.raises(Forbidden):
            transaction_service.create_transaction(test_project.id, test_user2)


@pytest.mark.django_db
class TestUpdateTransaction:
    def test_scalar_update_bumps_version(
        self, transaction_service, test_project, test_user
    ):
        record = transaction_service.create_transaction(test_project.id, test_user)

        record = transaction_service.update_transaction(
            record.id, test_user, {"description": "Bus", "sum": "3.20", "classifier": "Transport"}
        )

        record.refresh_from_db()
        assert record.description == "Bus"
        assert record.sum == Decimal("3.20")
        assert record.classifier == "Transport"
        assert record.version == 1

    def test_expenses_classifiers_propagate_to_project_and_siblings_only(
        self, transaction_service, project_service, test_project, test_user
    ):
        edited = transaction_service.create_transaction(test_project.id, test_user)
        sibling = transaction_service.create_transaction(test_project.id, test_user)
        income = transaction_service.create_transaction(
            test_project.id, test_user, transaction_type="income"
        )
        other_project = project_service.create_project(test_user, project_name="Other")
        outsider = transaction_service.create_transaction(other_project.id, test_user)

        new_labels = ["Lunch", "Fuel"]
        transaction_service.update_transaction(
            edited.id, test_user, {"classifiers": new_labels}
        )

        test_project.refresh_from_db()
        other_project.refresh_from_db()
        for record in (edited, sibling, income, outsider):
            record.refresh_from_db()

        assert test_project.classifiers["expenses"] == new_labels
        assert edited.classifiers["expenses"] == new_labels
        assert sibling.classifiers["expenses"] == new_labels

        assert test_project.classifiers["income"] == []
        assert test_project.classifiers["transfer"] == []
        assert income.classifiers["expenses"] == ["Lunch", "Transport", "Housing"]
        assert other_project.classifiers["expenses"] == ["Lunch", "Transport", "Housing"]
        assert outsider.classifiers["expenses"] == ["Lunch", "Transport", "Housing"]

    def test_removed_label_clears_stale_classifier(
        self, transaction_service, test_project, test_user
    ):
        record = transaction_service.create_transaction(
            test_project.id, test_user, classifier="Housing"
        )

        record = transaction_service.update_transaction(
            record.id, test_user, {"classifiers": ["Lunch"]}
        )

        assert record.classifier == ""

    def test_classifier_outside_labels_is_rejected(
        self, transaction_service, test_project, test_user
    ):
        record = transaction_service.create_transaction(test_project.id, test_user)

        with pytest.raises(ValidationFailed):
            transaction_service.update_transaction(
                record.id, test_user, {"classifier": "Casino"}
            )

        record.refresh_from_db()
        assert record.version == 0

    def test_list_positions_are_kept(self, transaction_service, test_project, test_user):
        first = transaction_service.create_transaction(test_project.id, test_user)
        second = transaction_service.create_transaction(test_project.id, test_user)

        transaction_service.update_transaction(first.id, test_user, {"description": "x"})

        test_project.refresh_from_db()
        test_user.refresh_from_db()
        assert test_project.transaction_ids == [second.id, first.id]
        assert test_user.transaction_ids == [second.id, first.id]

    def test_update_does_not_rewrite_reference_lists(
        self, transaction_service, test_project, test_user
    ):
        record = transaction_service.create_transaction(test_project.id, test_user)

        with patch.object(Project, "save") as project_save, patch.object(
            type(test_user), "save"
        ) as user_save:
            transaction_service.update_transaction(record.id, test_user, {"description": "x"})

        project_save.assert_not_called()
        user_save.assert_not_called()

    @patch("projects.services.transaction_service.logger")
    def test_propagation_is_logged(
        self, mock_logger, transaction_service, test_project, test_user
    ):
        record = transaction_service.create_transaction(test_project.id, test_user)

        transaction_service.update_transaction(record.id, test_user, {"classifiers": ["A"]})

        actions = [c.kwargs["extra"]["action"] for c in mock_logger.info.call_args_list]
        assert "classifiers_propagated" in actions


@pytest.mark.django_db
class TestDeleteTransaction:
    def test_create_then_delete_restores_lists(
        self, transaction_service, test_project, test_user
    ):
        existing = transaction_service.create_transaction(test_project.id, test_user)
        test_project.refresh_from_db()
        test_user.refresh_from_db()
        project_before = list(test_project.transaction_ids)
        user_before = list(test_user.transaction_ids)

        record = transaction_service.create_transaction(test_project.id, test_user)
        transaction_service.delete_transaction(record.id, test_user)

        test_project.refresh_from_db()
        test_user.refresh_from_db()
        assert test_project.transaction_ids == project_before == [existing.id]
        assert test_user.transaction_ids == user_before
        assert not Transaction.objects.filter(pk=record.id).exists()

    def test_unknown_transaction_is_not_found(self, transaction_service, test_user):
        with pytest.raises(NotFound):
            transaction_service.delete_transaction(4040, test_user)


@pytest.mark.django_db
class TestTransactionReadsAndAttachments:
    def test_project_and_user_listings(
        self, transaction_service, test_project, test_user
    ):
        first = transaction_service.create_transaction(test_project.id, test_user)
        second = transaction_service.create_transaction(test_project.id, test_user)

        by_project = transaction_service.get_project_transactions(test_project.id, test_user)
        by_user = transaction_service.get_user_transactions(test_user)

        assert [t.id for t in by_project] == [second.id, first.id]
        assert [t.id for t in by_user] == [second.id, first.id]

    def test_attachments_bump_version(
        self, transaction_service, test_project, test_user, png_payload
    ):
        record = transaction_service.create_transaction(test_project.id, test_user)

        comment = transaction_service.add_comment(record.id, test_user, "receipt attached")
        uploaded = transaction_service.add_files(
            record.id, test_user, [{"name": "receipt.png", "data": png_payload}]
        )
        transaction_service.remove_file(record.id, uploaded[0]["id"], test_user)
        transaction_service.delete_comment(record.id, comment["id"], test_user)

        record.refresh_from_db()
        assert record.version == 4
        assert record.files == []
        assert record.comments == []


@pytest.mark.django_db
class TestTransactionOrdering:
    def test_reorder_project_transactions(
        self, transaction_service, test_project, test_user, test_user2, guest_member
    ):
        first = transaction_service.create_transaction(test_project.id, test_user)
        second = transaction_service.create_transaction(test_project.id, test_user)

        order = transaction_service.reorder_project_transactions(
            test_project.id, test_user2, [first.id, second.id]
        )

        test_project.refresh_from_db()
        assert order == [first.id, second.id]
        assert test_project.transaction_ids == [first.id, second.id]
        assert [
            t.id for t in transaction_service.get_project_transactions(test_project.id, test_user)
        ] == [first.id, second.id]

    def test_project_reorder_rejects_unknown_ids(
        self, transaction_service, test_project, test_user
    ):
        first = transaction_service.create_transaction(test_project.id, test_user)

        with pytest.raises(ValidationFailed):
            transaction_service.reorder_project_transactions(
                test_project.id, test_user, [first.id, 99999]
            )

        test_project.refresh_from_db()
        assert test_project.transaction_ids == [first.id]

    def test_project_reorder_requires_membership(
        self, transaction_service, test_project, test_user, test_user2
    ):
        record = transaction_service.create_transaction(test_project.id, test_user)

        with pytest.raises(Forbidden):
            transaction_service.reorder_project_transactions(
                test_project.id, test_user2, [record.id]
            )

    @patch("projects.services.transaction_service.logger")
    def test_reorder_user_transactions(
        self, mock_logger, transaction_service, test_project, test_user
    ):
        first = transaction_service.create_transaction(test_project.id, test_user)
        second = transaction_service.create_transaction(test_project.id, test_user)

        transaction_service.reorder_user_transactions(test_user, [first.id, second.id])

        test_user.refresh_from_db()
        assert test_user.transaction_ids == [first.id, second.id]
        test_project.refresh_from_db()
        assert test_project.transaction_ids == [second.id, first.id]
        actions = [c.kwargs["extra"]["action"] for c in mock_logger.info.call_args_list]
        assert "user_transactions_reordered" in actions

    def test_user_reorder_rejects_missing_ids(
        self, transaction_service, test_project, test_user
    ):
        first = transaction_service.create_transaction(test_project.id, test_user)
        transaction_service.create_transaction(test_project.id, test_user)

        with pytest.raises(ValidationFailed):
            transaction_service.reorder_user_transactions(test_user, [first.id])
