"""
                        Services Module

External collaborators of the engine, each with a Mock (development) and a
Real (production) implementation.

Services:
    - backend: order/menu/auth REST API (httpx) or the in-memory kitchen
"""

from tableside.services.backend import get_backend, reset_backend

__all__ = ["get_backend", "reset_backend"]
