"""
Views for user listings and the authenticated user's profile.

Authentication itself is handled by simplejwt token views wired in urls.py.
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework import generics, permissions

from .serializers import CurrentUserSerializer, UserSerializer

# Get logger for this module
logger = logging.getLogger(__name__)
User = get_user_model()


class UserListView(generics.ListAPIView):
    """
    All active users, used to pick invitation recipients and mentions.

    Supports ``?search=`` on name and email.
    """

    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = User.objects.filter(is_active=True).order_by("id")
        search = self.request.query_params.get("search", "").strip()
        if search:
            queryset = queryset.filter(name__icontains=search) | queryset.filter(
                email__icontains=search
            )

        logger.debug(
            "User list requested",
            extra={
                "user_id": self.request.user.id,
                "search": search,
                "action": "user_list_requested",
                "component": "UserListView",
            },
        )
        return queryset


class CurrentUserView(generics.RetrieveUpdateAPIView):
    """Read and update the authenticated user's profile."""

    serializer_class = CurrentUserSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        return self.request.user
