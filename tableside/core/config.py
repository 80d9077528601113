"""
Engine Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports three modes:
    - DEVELOPMENT: Uses the in-process mock backend (no server needed)
    - STAGING / PRODUCTION: Talks to the real REST backend over HTTP

The ENV_MODE variable controls which backend the engine is wired to, so the
same dashboards can run against a local simulation or the live restaurant.

Usage:
    from tableside.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # In-memory kitchen
    else:
        # HTTP backend at settings.api_base_url

Version: 1.0.0
"""

import logging
import sys
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentMode(str, Enum):
    """
    Engine environment modes.

    Attributes:
        DEVELOPMENT: Local testing against the mock backend
        PRODUCTION: Live restaurant backend
        STAGING: Pre-production backend
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        env_mode: Current environment (development/production/staging)
        debug: Enable verbose logging

        # Backend
        api_base_url: Root of the REST API (trailing slash required)
        request_timeout: Per-request timeout in seconds

        # Persistence
        state_file: JSON file holding the engine snapshot
        state_key: Versioned key the snapshot is stored under
        persist_token: Whether the auth token is written to disk

        # Polling
        chef_poll_seconds / kitchen_poll_seconds / customer_poll_seconds /
        history_poll_seconds: Refresh cadence of each dashboard view
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Engine environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Tableside",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # ==========================================================================
    # BACKEND
    # ==========================================================================

    api_base_url: str = Field(
        default="http://localhost:8000/api/",
        description="Base URL of the order/menu REST API"
    )
    request_timeout: float = Field(
        default=10.0,
        gt=0,
        description="HTTP request timeout in seconds"
    )

    # ==========================================================================
    # PERSISTENCE
    # ==========================================================================

    state_file: str = Field(
        default="data/tableside_state.json",
        description="File the engine snapshot is persisted to"
    )
    state_key: str = Field(
        default="tableside_state_v1",
        description="Versioned key holding the snapshot"
    )
    state_lock_timeout: int = Field(
        default=5,
        description="Seconds to wait for the state file lock"
    )
    persist_token: bool = Field(
        default=False,
        description="Write the auth token to the state file (clear text)"
    )

    # ==========================================================================
    # POLLING
    # ==========================================================================

    chef_poll_seconds: float = Field(default=10.0, gt=0)
    kitchen_poll_seconds: float = Field(default=10.0, gt=0)
    customer_poll_seconds: float = Field(default=15.0, gt=0)
    history_poll_seconds: float = Field(default=30.0, gt=0)

    # ==========================================================================
    # DEV SERVER
    # ==========================================================================

    devserver_host: str = Field(default="127.0.0.1")
    devserver_port: int = Field(default=8000)

    # ==========================================================================
    # MOCK BACKEND
    # ==========================================================================

    mock_failure_rate: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Probability of a simulated network failure"
    )
    mock_min_latency: float = Field(default=0.05, ge=0.0)
    mock_max_latency: float = Field(default=0.2, ge=0.0)
    mock_staff_password: str = Field(
        default="kitchen123",
        description="Password accepted for chef/admin by the mock backend"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        """Endpoints are joined relative to the base, so it must end with '/'."""
        return v if v.endswith("/") else v + "/"

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def use_real_backend(self) -> bool:
        """Check if the HTTP backend should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached engine settings.

    Returns:
        Settings: Configured engine settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.env_mode)
        EnvironmentMode.DEVELOPMENT
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured package logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-28s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)

    return logging.getLogger("tableside")

