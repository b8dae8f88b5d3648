"""
Error taxonomy of the project collaboration API.

Every failure raised by the service layer is one of these DRF exceptions,
so views can let them propagate and DRF renders the matching status code
with a short, user-safe ``detail``.
"""

from rest_framework import status
from rest_framework.exceptions import APIException


class NotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "The requested resource was not found."
    default_code = "not_found"


class Forbidden(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action."
    default_code = "forbidden"


class Conflict(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."
    default_code = "conflict"


class ValidationFailed(APIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid input."
    default_code = "validation_failed"


class CreationFailed(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Could not create the resource, please try again later."
    default_code = "creation_failed"


class UpdateFailed(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Could not update the resource, please try again later."
    default_code = "update_failed"


class DeletionFailed(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Could not delete the resource, please try again later."
    default_code = "deletion_failed"


class UploadFailed(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "File upload failed."
    default_code = "upload_failed"


class StorageFailed(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "File storage operation failed."
    default_code = "storage_failed"


# Raised unchanged by the services; anything else gets wrapped
DOMAIN_ERRORS = (
    NotFound,
    Forbidden,
    Conflict,
    ValidationFailed,
    CreationFailed,
    UpdateFailed,
    DeletionFailed,
    UploadFailed,
    StorageFailed,
)
