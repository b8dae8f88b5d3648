"""
View mixins for the projects application.
"""

from .service_exception_handler import ServiceExceptionHandlerMixin

__all__ = ["ServiceExceptionHandlerMixin"]
