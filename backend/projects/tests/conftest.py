# projects/tests/conftest.py
import base64

import pytest
from django.contrib.auth import get_user_model
from django.core.files.storage import InMemoryStorage
from rest_framework.test import APIClient

from projects.models import Project, ProjectMember
from projects.services import (
    CommentService,
    MembershipService,
    NotificationService,
    ProjectService,
    StorageService,
    TaskService,
    TransactionService,
)

User = get_user_model()

# =============================================================================
# USER FIXTURES
# =============================================================================


@pytest.fixture
def test_user(db):
    """Project creator"""
    return User.objects.create_user(
        username="testuser",
        email="test@example.com",
        password="testpass123",
        name="Test User",
    )


@pytest.fixture
def test_user2(db):
    """Second user, not a member unless a fixture adds them"""
    return User.objects.create_user(
        username="testuser2",
        email="test2@example.com",
        password="testpass123",
        name="Second User",
    )


@pytest.fixture
def test_user3(db):
    return User.objects.create_user(
        username="testuser3", email="test3@example.com", password="testpass123"
    )


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def storage_service():
    """Storage gateway on a private in-memory backend"""
    return StorageService(storage=InMemoryStorage(base_url="/media/"))


@pytest.fixture
def membership_service():
    return MembershipService()


@pytest.fixture
def notification_service():
    return NotificationService()


@pytest.fixture
def project_service(membership_service, storage_service, notification_service):
    return ProjectService(
        membership_service=membership_service,
        storage_service=storage_service,
        notification_service=notification_service,
    )


@pytest.fixture
def task_service(membership_service, storage_service):
    return TaskService(
        membership_service=membership_service, storage_service=storage_service
    )


@pytest.fixture
def transaction_service(membership_service, storage_service):
    return TransactionService(
        membership_service=membership_service, storage_service=storage_service
    )


@pytest.fixture
def comment_service(membership_service, storage_service):
    return CommentService(
        membership_service=membership_service, storage_service=storage_service
    )


# =============================================================================
# PROJECT FIXTURES
# =============================================================================


@pytest.fixture
def test_project(project_service, test_user):
    """Top-level project created by test_user"""
    return project_service.create_project(
        test_user, project_name="Test Project", description="Test project description"
    )


@pytest.fixture
def sub_project(project_service, test_project, test_user):
    """Sub-project of test_project"""
    return project_service.create_sub_project(
        test_project.id, test_user, project_name="Sub Project"
    )


@pytest.fixture
def guest_member(test_project, test_user2):
    """test_user2 as an active guest of test_project"""
    test_project.shared_with.add(test_user2)
    return ProjectMember.objects.create(
        project=test_project, user=test_user2, role="guest", status="active"
    )


@pytest.fixture
def admin_member(test_project, test_user2):
    """test_user2 as an active admin of test_project"""
    test_project.shared_with.add(test_user2)
    return ProjectMember.objects.create(
        project=test_project, user=test_user2, role="admin", status="active"
    )


# =============================================================================
# PAYLOADS AND HELPERS
# =============================================================================


@pytest.fixture
def png_payload():
    """Small inline file as a data URL"""
    encoded = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image-bytes").decode()
    return f"data:image/png;base64,{encoded}"


@pytest.fixture
def assert_hierarchy_consistent(db):
    """
    Check the parent/child relation between every project pair.

    A project id appears in a parent's ``sub_project_ids`` exactly when the
    project points back at that parent, and top-level projects are the
    ones held in users' ``project_ids``.
    """

    def check():
        projects = {p.id: p for p in Project.objects.all()}
        for project in projects.values():
            sub_ids = project.sub_project_ids or []
            assert len(sub_ids) == len(set(sub_ids))
            for sub_id in sub_ids:
                assert sub_id in projects
                assert projects[sub_id].parent_project_id == project.id

            if project.parent_project_id is not None:
                parent = projects[project.parent_project_id]
                assert project.id in (parent.sub_project_ids or [])

        held = {}
        for user in User.objects.all():
            ids = user.project_ids or []
            assert len(ids) == len(set(ids))
            for project_id in ids:
                held[project_id] = held.get(project_id, 0) + 1

        for project in projects.values():
            if project.parent_project_id is None:
                assert held.get(project.id, 0) >= 1
            else:
                assert project.id not in held

    return check


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def authenticated_client(api_client, test_user):
    api_client.force_authenticate(user=test_user)
    return api_client
