from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from proposals.common.logger import get_logger
from proposals.core.config import get_settings
from proposals.core.directory import InMemoryUserDirectory, User, UserDirectory, load_users
from proposals.core.workflow import WorkflowEngine
from proposals.store import get_store

logger = get_logger(__name__)


@lru_cache
def get_directory() -> UserDirectory:
    """User directory seeded from ``settings.users_file``."""
    settings = get_settings()
    if not settings.users_file:
        logger.warning("No users file configured; the user directory is empty")
        return InMemoryUserDirectory()
    users = load_users(settings.users_file)
    logger.info(f"Loaded {len(users)} users from {settings.users_file}")
    return InMemoryUserDirectory(users)


@lru_cache
def get_engine() -> WorkflowEngine:
    """Process-wide workflow engine."""
    return WorkflowEngine(get_store(get_settings()), get_directory())


def get_current_user(
    engine: WorkflowEngine = Depends(get_engine),
    x_user_id: Optional[str] = Header(None),
) -> User:
    """Resolve the acting user from the ``X-User-Id`` header."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or unknown X-User-Id header",
    )
    if not x_user_id:
        raise credentials_exception

    user = engine.directory.get_user(x_user_id)
    if user is None:
        raise credentials_exception
    return user
