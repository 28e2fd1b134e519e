"""
Configuration for Parloir.
"""

from parloir.config.issuer_config import IssuerConfig
from parloir.config.settings import (
    Settings,
    get_settings,
    load_config,
    override_settings,
    reset_settings,
)

__all__ = [
    "IssuerConfig",
    "Settings",
    "get_settings",
    "load_config",
    "override_settings",
    "reset_settings",
]
