"""
Service exception handler mixin.

Views call the service layer through ``handle_service_call``; failures
leave the view as members of the API error taxonomy.
"""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework.exceptions import APIException
from rest_framework.exceptions import PermissionDenied as DRFPermissionDenied
from rest_framework.exceptions import ValidationError as DRFValidationError

from ..exceptions import Forbidden, ValidationFailed

logger = logging.getLogger(__name__)


def _django_messages(error):
    return error.message_dict if hasattr(error, "error_dict") else error.messages


# (caught type, taxonomy type, detail extractor, log action, severity)
TRANSLATIONS = (
    (
        DRFValidationError,
        ValidationFailed,
        lambda e: e.detail,
        "service_validation_error_drf",
        "medium",
    ),
    (
        DjangoValidationError,
        ValidationFailed,
        _django_messages,
        "service_validation_error_django",
        "medium",
    ),
    (
        DRFPermissionDenied,
        Forbidden,
        lambda e: e.detail,
        "service_permission_denied_drf",
        "high",
    ),
    (PermissionError, Forbidden, str, "service_permission_denied_python", "high"),
)


class ServiceExceptionHandlerMixin:
    """
    Mixin for views delegating to the service layer.

    DRF and Django validation errors become ``ValidationFailed`` (422),
    permission denials and ``PermissionError`` become ``Forbidden`` (403).
    Taxonomy errors pass through unchanged. Anything else is logged with
    its stack trace and answered with a generic 500.

    Usage:
        project = self.handle_service_call(
            self.project_service.create_project, request.user, **data
        )
    """

    def _service_call_context(self, service_call):
        request = getattr(self, "request", None)
        user = getattr(request, "user", None)
        return {
            "service_name": getattr(service_call, "__self__", self).__class__.__name__,
            "method_name": getattr(service_call, "__name__", str(service_call)),
            "user_id": getattr(user, "id", None),
            "component": "ServiceExceptionHandlerMixin",
        }

    def handle_service_call(self, service_call, *args, **kwargs):
        """
        Run ``service_call(*args, **kwargs)`` and translate its failures.

        Returns:
            Any: Result from service call
        """
        context = self._service_call_context(service_call)
        logger.debug(
            "Service call execution initiated",
            extra={
                **context,
                "args_count": len(args),
                "kwargs_keys": list(kwargs.keys()),
                "action": "service_call_start",
            },
        )

        try:
            result = service_call(*args, **kwargs)
        except Exception as e:
            raise self._translate(e, context, args, kwargs)

        logger.debug(
            "Service call completed successfully",
            extra={
                **context,
                "result_type": type(result).__name__,
                "action": "service_call_success",
            },
        )
        return result

    def _translate(self, error, context, args, kwargs):
        for caught, raised, detail_of, action, severity in TRANSLATIONS:
            if isinstance(error, caught):
                detail = detail_of(error)
                logger.warning(
                    "Service call rejected",
                    extra={
                        **context,
                        "error_type": type(error).__name__,
                        "error_detail": detail,
                        "action": action,
                        "severity": severity,
                    },
                )
                return raised(detail)

        if isinstance(error, APIException):
            server_side = error.status_code >= 500
            (logger.error if server_side else logger.warning)(
                "Service API exception",
                extra={
                    **context,
                    "error_type": type(error).__name__,
                    "error_detail": error.detail,
                    "status_code": error.status_code,
                    "action": "service_api_exception",
                    "severity": "high" if server_side else "medium",
                },
            )
            return error

        logger.error(
            "Service operation failed unexpectedly",
            extra={
                **context,
                "error_type": type(error).__name__,
                "error_message": str(error),
                "args_count": len(args),
                "kwargs_keys": list(kwargs.keys()),
                "action": "service_unexpected_error",
                "severity": "critical",
            },
            exc_info=True,
        )
        # Internals never reach the client
        return APIException(detail="Service operation failed", code="service_error")
