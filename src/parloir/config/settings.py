"""
Configuration management for Parloir.

Hybrid configuration system using YAML files and environment variables.
Priority: Environment variables > YAML config > Pydantic defaults
"""

import os
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Parloir configuration schema.

    Loads configuration from:
    1. Environment variables (highest priority)
    2. YAML configuration files
    3. Pydantic defaults (lowest priority)

    Configuration files:
        - config/default.yaml: Base defaults
        - config/production.yaml: Production overrides
        - config/development.yaml: Development overrides
        - config/test.yaml: Test overrides

    The broker API key is only ever read from the environment
    (ABLY_API_KEY) or an .env file, never from YAML.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Application
    APP_NAME: str = "Parloir"
    APP_VERSION: str = "0.1.0"
    ENV: str = Field(default="production", description="Environment name")
    DEBUG: bool = Field(default=False, description="Debug mode")

    # API Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8780, ge=1024, le=65535)

    # Broker credentials
    ABLY_API_KEY: Optional[SecretStr] = Field(
        default=None,
        description="Long-lived broker API key (keyName:keySecret or bare secret)",
    )
    api_key_name: str = Field(
        default="default",
        description="Key name used when ABLY_API_KEY has no 'name:' part",
    )

    # Issued credentials
    room: str = Field(default="parloir-chat", description="Room channel name")
    client_id_prefix: str = Field(
        default="parloir-user",
        description="Namespace prefix for anonymous client identities",
    )
    token_ttl_seconds: int = Field(
        default=3600,
        ge=10,
        le=86400,
        description="Lifetime of issued credentials in seconds",
    )
    token_format: Literal["token_request", "jwt"] = Field(
        default="token_request",
        description="Wire format of issued credentials",
    )

    # Browser origins allowed to call the token endpoint
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = Field(default="info")
    log_file: Optional[str] = Field(default=None)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["debug", "info", "warning", "error", "critical"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"Invalid log_level. Must be one of: {allowed}")
        return v_lower

    @field_validator("client_id_prefix")
    @classmethod
    def validate_client_id_prefix(cls, v: str) -> str:
        """Client id prefix must be non-empty and free of whitespace."""
        v = v.strip()
        if not v or any(ch.isspace() for ch in v):
            raise ValueError("client_id_prefix must be a non-empty token")
        return v

    @property
    def api_key_configured(self) -> bool:
        """True when a non-empty broker API key is present."""
        return bool(
            self.ABLY_API_KEY is not None
            and self.ABLY_API_KEY.get_secret_value().strip()
        )


def load_config(
    config_file: Optional[str] = None,
    env_file: Optional[str] = None,
    env: Optional[str] = None,
) -> Settings:
    """
    Load configuration from YAML files and environment variables.

    Priority: ENV vars > environment-specific YAML > default YAML > defaults

    Args:
        config_file: Optional YAML config filename override
        env_file: Optional .env filename (e.g., ".env.development")
        env: Optional environment name override

    Returns:
        Settings instance

    Raises:
        ValidationError: If a configured value is invalid
    """
    # Project root is 4 levels up (src/parloir/config/settings.py)
    current_file = Path(__file__).resolve()
    project_root = current_file.parent.parent.parent.parent
    config_dir = project_root / "config"

    environment = env or os.getenv("ENV", "production")

    env_map = {
        "production": (".env.production", "production.yaml"),
        "development": (".env.development", "development.yaml"),
        "test": (".env.test", "test.yaml"),
    }

    # Load .env file FIRST (before Settings initialization)
    default_env_file, default_config_file = env_map.get(
        environment, (".env.production", "production.yaml")
    )
    if env_file is None:
        env_file = default_env_file
    if config_file is None:
        config_file = default_config_file

    env_file_path = project_root / env_file
    if env_file_path.exists():
        load_dotenv(env_file_path, override=True)

    merged_config = {}

    default_config_path = config_dir / "default.yaml"
    if default_config_path.exists():
        with open(default_config_path, "r") as f:
            loaded = yaml.safe_load(f)
            if loaded:
                merged_config = loaded

    # Environment-specific config overrides defaults
    env_config_path = config_dir / config_file
    if env_config_path.exists():
        with open(env_config_path, "r") as f:
            loaded = yaml.safe_load(f)
            if loaded:
                for key, value in loaded.items():
                    merged_config[key] = value

    # Secrets never come from YAML
    merged_config.pop("ABLY_API_KEY", None)
    merged_config.pop("ENV", None)

    # YAML values act as defaults; environment variables win
    settings_fields = Settings.model_fields
    for key in list(merged_config):
        if key in settings_fields and key in os.environ:
            merged_config.pop(key)

    return Settings(ENV=environment, **merged_config)


# Global settings singleton (lazy initialization)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or initialize global settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def override_settings(new_settings: Settings) -> None:
    """
    Override global settings (for testing).

    Args:
        new_settings: New Settings instance to use
    """
    global _settings
    _settings = new_settings


def reset_settings() -> None:
    """
    Reset settings to force re-initialization (for testing).

    This allows tests to change environment variables and reload config.
    """
    global _settings
    _settings = None
