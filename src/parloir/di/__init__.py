"""
Dependency injection for Parloir.
"""

from parloir.di.container import Container

__all__ = ["Container"]
