"""
URL configuration for users and JWT authentication.
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import CurrentUserView, UserListView

app_name = "users"

urlpatterns = [
    # JWT token pair for username and password
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    # JWT token refresh endpoint
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("users/", UserListView.as_view(), name="user-list"),
    path("users/me/", CurrentUserView.as_view(), name="user-me"),
]
