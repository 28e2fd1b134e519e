"""
Logging for Parloir server components.
"""

from parloir.reporter.system_reporter import SystemReporter, resolve_level

__all__ = ["SystemReporter", "resolve_level"]
