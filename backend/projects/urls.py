"""
URL configuration for the project collaboration API.
"""

import logging

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

logger = logging.getLogger(__name__)

router = DefaultRouter()

# Projects, hierarchy, invitations, members, comments, files and project tasks
router.register(r"projects", views.ProjectViewSet, basename="project")

# Tasks addressed by id
router.register(r"tasks", views.TaskViewSet, basename="task")

# Transactions, including the per-project listing
router.register(r"transactions", views.TransactionViewSet, basename="transaction")

urlpatterns = [
    path("", include(router.urls)),
]

logger.debug(
    "Project API URLs configured",
    extra={
        "registered_viewsets": [
            {"prefix": prefix, "basename": basename}
            for prefix, _viewset, basename in router.registry
        ],
        "action": "url_configuration_loaded",
        "component": "urls",
    },
)
