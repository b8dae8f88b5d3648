"""
Integration tests for the project collaboration API endpoints.

Requests go through the router, permissions, input serializers, the
service layer and the error taxonomy against the test database.
"""

import base64

from django.contrib.auth import get_user_model
from django.core import mail
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from projects.models import Project, ProjectMember, Task, Transaction
from projects.services import ProjectService

User = get_user_model()

# =============================================================================
# URL ENDPOINT CONSTANTS
# =============================================================================

PROJECT_LIST = "project-list"
PROJECT_DETAIL = "project-detail"
PROJECT_REORDER = "project-reorder"
PROJECT_SUB_PROJECTS = "project-sub-projects"
PROJECT_MOVE = "project-move"
PROJECT_INVITATIONS = "project-invitations"
PROJECT_JOIN = "project-join"
PROJECT_MEMBERS = "project-members"
PROJECT_REMOVE_MEMBER = "project-remove-member"
PROJECT_COMMENTS = "project-comments"
PROJECT_DELETE_COMMENT = "project-delete-comment"
PROJECT_FILES = "project-files"
PROJECT_TASKS = "project-tasks"
TASK_LIST = "task-list"
TASK_DETAIL = "task-detail"
TASK_COMMENTS = "task-comments"
TRANSACTION_LIST = "transaction-list"
TRANSACTION_DETAIL = "transaction-detail"
TRANSACTION_BY_PROJECT = "transaction-by-project"
TRANSACTION_ORDER = "transaction-order"


class BaseAPITestCase(APITestCase):
    """Two users; ``self.user`` owns ``self.project`` and is authenticated."""

    def setUp(self):
        super().setUp()
        self.user = User.objects.create_user(
            username="owner", email="owner@example.com", password="testpass123", name="Owner"
        )
        self.other_user = User.objects.create_user(
            username="other", email="other@example.com", password="testpass123", name="Other"
        )
        self.project = ProjectService().create_project(self.user, project_name="Main")
        self.client.force_authenticate(user=self.user)

    def add_member(self, user, role="guest"):
        self.project.shared_with.add(user)
        return ProjectMember.objects.create(
            project=self.project, user=user, role=role, status="active"
        )


# =============================================================================
# PROJECTS
# =============================================================================


class TestProjectEndpoints(BaseAPITestCase):
    def test_create_project(self):
        response = self.client.post(
            reverse(PROJECT_LIST), {"project_name": "New"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["project_name"], "New")
        self.assertEqual(response.data["user_role"], "admin")
        self.user.refresh_from_db()
        self.assertEqual(self.user.project_ids[0], response.data["id"])

    def test_list_returns_own_and_shared_projects(self):
        shared = ProjectService().create_project(self.other_user, project_name="Shared")
        shared.shared_with.add(self.user)
        ProjectMember.objects.create(
            project=shared, user=self.user, role="guest", status="active"
        )

        response = self.client.get(reverse(PROJECT_LIST))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = {item["project_name"] for item in response.data}
        self.assertEqual(names, {"Main", "Shared"})

    def test_unauthenticated_request_is_rejected(self):
        self.client.force_authenticate(user=None)

        response = self.client.get(reverse(PROJECT_LIST))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_unknown_project_is_404(self):
        response = self.client.get(reverse(PROJECT_DETAIL, kwargs={"pk": 99999}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_stranger_cannot_read_project(self):
        self.client.force_authenticate(user=self.other_user)

        response = self.client.get(reverse(PROJECT_DETAIL, kwargs={"pk": self.project.id}))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_partial_update(self):
        response = self.client.patch(
            reverse(PROJECT_DETAIL, kwargs={"pk": self.project.id}),
            {"description": "Updated"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["description"], "Updated")

    def test_empty_update_is_422(self):
        response = self.client.patch(
            reverse(PROJECT_DETAIL, kwargs={"pk": self.project.id}), {}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_delete_project(self):
        response = self.client.delete(
            reverse(PROJECT_DETAIL, kwargs={"pk": self.project.id})
        )

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Project.objects.filter(pk=self.project.id).exists())
        self.user.refresh_from_db()
        self.assertEqual(self.user.project_ids, [])

    def test_reorder_projects(self):
        second = ProjectService().create_project(self.user, project_name="Second")

        response = self.client.put(
            reverse(PROJECT_REORDER),
            {"project_ids": [self.project.id, second.id]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["project_ids"], [self.project.id, second.id])


class TestHierarchyEndpoints(BaseAPITestCase):
    def test_create_sub_project(self):
        response = self.client.post(
            reverse(PROJECT_SUB_PROJECTS, kwargs={"pk": self.project.id}),
            {"project_name": "Child"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["parent_project"], self.project.id)
        self.project.refresh_from_db()
        self.assertEqual(self.project.sub_project_ids, [response.data["id"]])

    def test_guest_cannot_create_sub_project(self):
        self.add_member(self.other_user, role="guest")
        self.client.force_authenticate(user=self.other_user)

        response = self.client.post(
            reverse(PROJECT_SUB_PROJECTS, kwargs={"pk": self.project.id}),
            {"project_name": "Child"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.project.refresh_from_db()
        self.assertEqual(self.project.sub_project_ids, [])

    def test_move_under_another_project_and_back_to_root(self):
        target = ProjectService().create_project(self.user, project_name="Target")
        move_url = reverse(PROJECT_MOVE, kwargs={"pk": self.project.id})

        response = self.client.post(move_url, {"to_project_id": str(target.id)}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["parent_project"], target.id)

        response = self.client.post(move_url, {"to_project_id": "root"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data["parent_project"])
        self.user.refresh_from_db()
        self.assertIn(self.project.id, self.user.project_ids)

    def test_move_into_own_child_is_409(self):
        child = ProjectService().create_sub_project(self.project.id, self.user)

        response = self.client.post(
            reverse(PROJECT_MOVE, kwargs={"pk": self.project.id}),
            {"to_project_id": str(child.id)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class TestInvitationEndpoints(BaseAPITestCase):
    def test_invite_then_join(self):
        response = self.client.post(
            reverse(PROJECT_INVITATIONS, kwargs={"pk": self.project.id}),
            {"recipients": ["other@example.com"]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        invitation_id = response.data["invitations"][0]["invitation_id"]
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(invitation_id, mail.outbox[0].body)

        self.client.force_authenticate(user=self.other_user)
        response = self.client.post(
            reverse(PROJECT_JOIN, kwargs={"pk": self.project.id}),
            {"invitation_id": invitation_id},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["user_role"], "admin")
        self.assertEqual(response.data["invitations"], [])

    def test_invalid_recipient_is_422(self):
        response = self.client.post(
            reverse(PROJECT_INVITATIONS, kwargs={"pk": self.project.id}),
            {"recipients": ["not-an-email"]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertIn("recipients", response.data)

    def test_join_by_active_member_is_409(self):
        Project.objects.filter(pk=self.project.id).update(
            invitations=[{"invitation_id": "abc", "email": "owner@example.com"}]
        )

        response = self.client.post(
            reverse(PROJECT_JOIN, kwargs={"pk": self.project.id}),
            {"invitation_id": "abc"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.project.refresh_from_db()
        self.assertEqual(len(self.project.invitations), 1)


class TestMemberEndpoints(BaseAPITestCase):
    def test_list_members(self):
        self.add_member(self.other_user)

        response = self.client.get(reverse(PROJECT_MEMBERS, kwargs={"pk": self.project.id}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_members"], 2)
        roles = {m["user_id"]: m["role"] for m in response.data["members"]}
        self.assertEqual(roles, {self.user.id: "admin", self.other_user.id: "guest"})

    def test_admin_removes_member(self):
        self.add_member(self.other_user)

        response = self.client.delete(
            reverse(
                PROJECT_REMOVE_MEMBER,
                kwargs={"pk": self.project.id, "user_id": self.other_user.id},
            )
        )

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(
            ProjectMember.objects.filter(project=self.project, user=self.other_user).exists()
        )


class TestProjectAttachmentEndpoints(BaseAPITestCase):
    def test_comment_create_list_delete(self):
        comments_url = reverse(PROJECT_COMMENTS, kwargs={"pk": self.project.id})

        response = self.client.post(comments_url, {"text": "Hello"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        comment_id = response.data["id"]

        response = self.client.get(comments_url)
        self.assertEqual([c["id"] for c in response.data], [comment_id])

        response = self.client.delete(
            reverse(
                PROJECT_DELETE_COMMENT,
                kwargs={"pk": self.project.id, "comment_id": comment_id},
            )
        )
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_upload_files(self):
        payload = base64.b64encode(b"report").decode()

        response = self.client.post(
            reverse(PROJECT_FILES, kwargs={"pk": self.project.id}),
            {"files": [{"name": "report.txt", "data": payload}]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["files"][0]["name"], "report.txt")


# =============================================================================
# TASKS
# =============================================================================


class TestTaskEndpoints(BaseAPITestCase):
    def test_create_and_mark_done(self):
        response = self.client.post(
            reverse(PROJECT_TASKS, kwargs={"pk": self.project.id}),
            {"name": "Write docs"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        task_id = response.data["id"]

        response = self.client.patch(
            reverse(TASK_DETAIL, kwargs={"pk": task_id}), {"status": "done"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "done")
        self.assertEqual(len(response.data["actions"]), 1)
        self.assertEqual(response.data["actions"][0]["field"], "status")
        self.assertEqual(response.data["actions"][0]["old_value"], "new")
        self.assertEqual(response.data["actions"][0]["new_value"], "done")

    def test_invalid_status_is_422(self):
        task_id = self.client.post(
            reverse(PROJECT_TASKS, kwargs={"pk": self.project.id}), {}, format="json"
        ).data["id"]

        response = self.client.patch(
            reverse(TASK_DETAIL, kwargs={"pk": task_id}), {"status": "later"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_listings_and_delete(self):
        task_id = self.client.post(
            reverse(PROJECT_TASKS, kwargs={"pk": self.project.id}), {}, format="json"
        ).data["id"]

        project_tasks = self.client.get(reverse(PROJECT_TASKS, kwargs={"pk": self.project.id}))
        user_tasks = self.client.get(reverse(TASK_LIST))
        self.assertEqual([t["id"] for t in project_tasks.data], [task_id])
        self.assertEqual([t["id"] for t in user_tasks.data], [task_id])

        response = self.client.delete(reverse(TASK_DETAIL, kwargs={"pk": task_id}))

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Task.objects.filter(pk=task_id).exists())

    def test_task_comment(self):
        task_id = self.client.post(
            reverse(PROJECT_TASKS, kwargs={"pk": self.project.id}), {}, format="json"
        ).data["id"]

        response = self.client.post(
            reverse(TASK_COMMENTS, kwargs={"pk": task_id}), {"text": "On it"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["text"], "On it")

    def test_stranger_cannot_update_task(self):
        task_id = self.client.post(
            reverse(PROJECT_TASKS, kwargs={"pk": self.project.id}), {}, format="json"
        ).data["id"]
        self.client.force_authenticate(user=self.other_user)

        response = self.client.patch(
            reverse(TASK_DETAIL, kwargs={"pk": task_id}), {"status": "done"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


# =============================================================================
# TRANSACTIONS
# =============================================================================


class TestTransactionEndpoints(BaseAPITestCase):
    def create_transaction(self, **overrides):
        payload = {
            "project_id": self.project.id,
            "type": "expenses",
            "sum": "42.00",
            "classifier": "Lunch",
        }
        payload.update(overrides)
        return self.client.post(reverse(TRANSACTION_LIST), payload, format="json")

    def test_create_transaction(self):
        response = self.create_transaction()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["sum"], "42.00")
        self.assertEqual(response.data["version"], 0)
        self.assertEqual(
            response.data["classifiers"]["expenses"], ["Lunch", "Transport", "Housing"]
        )

    def test_unknown_classifier_is_422(self):
        response = self.create_transaction(classifier="Yacht")

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(Transaction.objects.count(), 0)

    def test_update_propagates_classifiers(self):
        transaction_id = self.create_transaction().data["id"]

        response = self.client.patch(
            reverse(TRANSACTION_DETAIL, kwargs={"pk": transaction_id}),
            {"classifiers": ["Lunch", "Fuel"]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["version"], 1)
        self.project.refresh_from_db()
        self.assertEqual(self.project.classifiers["expenses"], ["Lunch", "Fuel"])

    def test_project_listing_and_delete(self):
        transaction_id = self.create_transaction().data["id"]

        response = self.client.get(
            reverse(TRANSACTION_BY_PROJECT, kwargs={"project_id": self.project.id})
        )
        self.assertEqual([t["id"] for t in response.data], [transaction_id])

        response = self.client.delete(
            reverse(TRANSACTION_DETAIL, kwargs={"pk": transaction_id})
        )

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.project.refresh_from_db()
        self.assertEqual(self.project.transaction_ids, [])

    def test_stranger_cannot_create(self):
        self.client.force_authenticate(user=self.other_user)

        response = self.create_transaction()

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reorder_project_transactions(self):
        first = self.create_transaction().data["id"]
        second = self.create_transaction().data["id"]
        url = reverse(TRANSACTION_BY_PROJECT, kwargs={"project_id": self.project.id})

        response = self.client.patch(url, {"transaction_ids": [first, second]}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["transaction_ids"], [first, second])
        self.assertEqual([t["id"] for t in self.client.get(url).data], [first, second])

    def test_reorder_project_transactions_rejects_partial_list(self):
        first = self.create_transaction().data["id"]
        self.create_transaction()

        response = self.client.patch(
            reverse(TRANSACTION_BY_PROJECT, kwargs={"project_id": self.project.id}),
            {"transaction_ids": [first]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_stranger_cannot_reorder_project_transactions(self):
        transaction_id = self.create_transaction().data["id"]
        self.client.force_authenticate(user=self.other_user)

        response = self.client.patch(
            reverse(TRANSACTION_BY_PROJECT, kwargs={"project_id": self.project.id}),
            {"transaction_ids": [transaction_id]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_reorder_own_transactions(self):
        first = self.create_transaction().data["id"]
        second = self.create_transaction().data["id"]

        response = self.client.patch(
            reverse(TRANSACTION_ORDER), {"transaction_ids": [first, second]}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.transaction_ids, [first, second])
        listed = self.client.get(reverse(TRANSACTION_LIST)).data
        self.assertEqual([t["id"] for t in listed], [first, second])
