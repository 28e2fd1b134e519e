"""
FastAPI dependencies for Parloir API.
"""

from typing import Optional

from parloir.di import Container

# Global container (initialized by ParloirApp)
_container: Optional[Container] = None


def get_container() -> Container:
    """
    Get DI container instance.

    Returns:
        Container instance

    Raises:
        RuntimeError: If container not initialized
    """
    if _container is None:
        raise RuntimeError("Container not initialized")
    return _container


def set_container(container: Optional[Container]) -> None:
    """
    Set DI container (called from ParloirApp, or None to reset in tests).

    Args:
        container: Container instance to set globally
    """
    global _container
    _container = container
