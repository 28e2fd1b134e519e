"""
API middleware.
"""

from parloir.presentation.api.middleware.error_handler import (
    parloir_exception_handler,
    unhandled_exception_handler,
)

__all__ = ["parloir_exception_handler", "unhandled_exception_handler"]
