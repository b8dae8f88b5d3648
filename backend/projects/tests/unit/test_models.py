# projects/tests/unit/test_models.py
import pytest
from django.core.exceptions import ValidationError

from projects.models import Project, default_classifiers
from projects.tests.factories import (ProjectFactory, ProjectMemberFactory,
                                      TaskFactory, TransactionFactory)


class TestDefaultClassifiers:
    def test_configured_labels_per_type(self, settings):
        settings.PROJECT_DEFAULT_CLASSIFIERS = {"income": ["Salary"]}

        assert default_classifiers() == {
            "income": ["Salary"],
            "expenses": [],
            "transfer": [],
        }

    def test_lists_are_fresh_copies(self):
        first = default_classifiers()
        first["expenses"].append("Changed")

        assert "Changed" not in default_classifiers()["expenses"]


@pytest.mark.django_db
class TestProjectModel:
    def test_descendants_follow_sub_project_lists(self):
        root = ProjectFactory()
        child = ProjectFactory(parent_project=root)
        grandchild = ProjectFactory(parent_project=child)
        unrelated = ProjectFactory()
        Project.objects.filter(pk=root.pk).update(sub_project_ids=[child.id])
        Project.objects.filter(pk=child.pk).update(sub_project_ids=[grandchild.id])
        root.refresh_from_db()

        assert root.get_descendant_ids() == {child.id, grandchild.id}
        assert unrelated.get_descendant_ids() == set()

    def test_ancestors_nearest_first(self):
        root = ProjectFactory()
        child = ProjectFactory(parent_project=root)
        grandchild = ProjectFactory(parent_project=child)

        assert grandchild.get_ancestor_ids() == [child.id, root.id]
        assert root.get_ancestor_ids() == []

    def test_classifier_snapshot_is_independent(self):
        project = ProjectFactory()

        snapshot = project.classifiers_snapshot()
        snapshot["expenses"].append("Extra")

        assert "Extra" not in project.get_classifier_labels("expenses")

    def test_clean_rejects_self_parent(self):
        project = ProjectFactory()
        project.parent_project_id = project.id

        with pytest.raises(ValidationError):
            project.clean()

    def test_clean_rejects_malformed_classifiers(self):
        project = ProjectFactory()
        project.classifiers = {"expenses": "Lunch"}

        with pytest.raises(ValidationError):
            project.clean()

    def test_find_invitation(self):
        project = ProjectFactory(
            invitations=[{"invitation_id": "abc", "email": "a@example.com"}]
        )

        assert project.find_invitation("abc")["email"] == "a@example.com"
        assert project.find_invitation("zzz") is None


@pytest.mark.django_db
class TestMemberTaskTransactionModels:
    def test_duplicate_membership_fails_clean(self):
        membership = ProjectMemberFactory()
        duplicate = ProjectMemberFactory.build(
            project=membership.project, user=membership.user
        )

        with pytest.raises(ValidationError):
            duplicate.clean()

    def test_task_status_is_validated(self):
        task = TaskFactory()
        task.status = "someday"

        with pytest.raises(ValidationError):
            task.clean()

    def test_transaction_classifier_must_match_type(self):
        record = TransactionFactory(classifiers=default_classifiers())
        record.classifier = "Lunch"
        record.clean()

        record.type = "income"
        with pytest.raises(ValidationError):
            record.clean()
