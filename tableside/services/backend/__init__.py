"""
Order Backend Factory

Provides a single entry point for obtaining the backend the engine talks to.
The rest of the engine stays agnostic about which implementation is used.

Usage:
    from tableside.services.backend import get_backend

    backend = get_backend()
    menu = await backend.fetch_menu()

Environment Switching:
    - ENV_MODE=development → MockOrderBackend (in-process kitchen)
    - ENV_MODE=staging → HttpOrderBackend
    - ENV_MODE=production → HttpOrderBackend

Version: 1.0.0
"""

import logging
from functools import lru_cache

from tableside.core.config import get_settings
from tableside.services.backend.base import (
    AuthExpiredError,
    BackendError,
    BaseOrderBackend,
    BillResult,
    ConflictError,
    NetworkFailureError,
    NotFoundError,
    TableVerification,
    ValidationFailureError,
)
from tableside.services.backend.http import HttpOrderBackend
from tableside.services.backend.kitchen import Kitchen
from tableside.services.backend.mock import MockOrderBackend

logger = logging.getLogger(__name__)


@lru_cache()
def get_backend() -> BaseOrderBackend:
    """
    Get the configured backend instance.

    The instance is cached so every component shares one HTTP connection
    pool (or one in-memory kitchen).

    Returns:
        BaseOrderBackend: Configured backend
    """
    settings = get_settings()

    if settings.use_real_backend:
        logger.info(
            f"Order Backend: Using HttpOrderBackend "
            f"({settings.env_mode.value} mode, {settings.api_base_url})"
        )
        return HttpOrderBackend()
    else:
        logger.info("Order Backend: Using MockOrderBackend (development mode)")
        return MockOrderBackend(
            kitchen=Kitchen(staff_password=settings.mock_staff_password),
            failure_rate=settings.mock_failure_rate,
            min_latency=settings.mock_min_latency,
            max_latency=settings.mock_max_latency,
        )


def reset_backend() -> None:
    """
    Clear the cached backend instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_backend.cache_clear()
    logger.debug("Backend cache cleared")


__all__ = [
    "get_backend",
    "reset_backend",
    "BaseOrderBackend",
    "BackendError",
    "AuthExpiredError",
    "ConflictError",
    "NotFoundError",
    "ValidationFailureError",
    "NetworkFailureError",
    "BillResult",
    "TableVerification",
    "HttpOrderBackend",
    "MockOrderBackend",
    "Kitchen",
]
