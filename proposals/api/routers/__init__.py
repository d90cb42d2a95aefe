"""API routers for the proposal service."""

from . import health
from . import proposals
from . import users

__all__ = [
    "health",
    "proposals",
    "users",
]
