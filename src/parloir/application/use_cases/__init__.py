"""
Application use cases.
"""

from parloir.application.use_cases.issue_credential import TokenIssuer

__all__ = ["TokenIssuer"]
