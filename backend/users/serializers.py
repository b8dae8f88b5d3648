"""
Serializers for user profiles.

Members see each other through the public profile: id, display name,
email and avatar. The reference lists are only exposed to their owner.
"""

import logging

from django.contrib.auth import get_user_model
from rest_framework import serializers

# Get structured logger for this module
logger = logging.getLogger(__name__)
User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Public profile shown in user listings and member lists."""

    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "email", "logo_url"]
        read_only_fields = fields


class CurrentUserSerializer(serializers.ModelSerializer):
    """
    Profile of the authenticated user.

    Only ``name`` and ``logo_url`` are writable; the reference lists are
    maintained by the project services.
    """

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "name",
            "logo_url",
            "project_ids",
            "task_ids",
            "transaction_ids",
        ]
        read_only_fields = [
            "id",
            "username",
            "email",
            "project_ids",
            "task_ids",
            "transaction_ids",
        ]

    def validate_name(self, value):
        value = value.strip()
        if len(value) > 150:
            raise serializers.ValidationError("Name cannot exceed 150 characters.")
        return value

    def update(self, instance, validated_data):
        instance = super().update(instance, validated_data)
        logger.info(
            "User profile updated",
            extra={
                "user_id": instance.id,
                "fields": sorted(validated_data.keys()),
                "action": "user_profile_updated",
                "component": "CurrentUserSerializer",
            },
        )
        return instance
