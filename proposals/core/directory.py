"""User directory consumed by the workflow.

The directory is the identity collaborator: it resolves actor ids to users
(name and role) and lists the candidates an admin can pick as approvers.
Authentication is somebody else's job; by the time an id reaches the
directory it is trusted.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import yaml
from pydantic import BaseModel, field_validator

from .permissions.roles import UserRole, parse_role


class User(BaseModel):
    """A directory entry."""

    id: str
    name: str
    role: UserRole = UserRole.USER

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value):
        if isinstance(value, str):
            return parse_role(value)
        return value


class UserDirectory(ABC):
    """Read-only lookup of users by id."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]:
        """Return the user with ``user_id`` or None if unknown."""

    @abstractmethod
    def list_users(self) -> List[User]:
        """Return every user in the directory."""

    def search(self, query: Optional[str] = None) -> List[User]:
        """Case-insensitive name search; an empty query returns everyone."""
        users = self.list_users()
        if not query or not query.strip():
            return users
        needle = query.strip().lower()
        return [u for u in users if needle in u.name.lower()]


class InMemoryUserDirectory(UserDirectory):
    """Directory backed by a dict, seeded from code or a YAML file."""

    def __init__(self, users: Optional[Iterable[User]] = None):
        self._users: Dict[str, User] = {}
        for user in users or []:
            self.add_user(user)

    def add_user(self, user: User) -> None:
        self._users[user.id] = user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def list_users(self) -> List[User]:
        return list(self._users.values())


def load_users(path: str) -> List[User]:
    """Load directory users from a YAML file.

    The file holds either a list of users or a mapping with a ``users`` key::

        users:
          - id: u-1
            name: Ada Admin
            role: admin

    Args:
        path: Path to the YAML file

    Returns:
        List of users

    Raises:
        FileNotFoundError: If the file doesn't exist
        TypeError: If the document has the wrong shape
    """
    users_file = Path(path)
    if not users_file.exists():
        raise FileNotFoundError(f"Users file not found: {path}")

    with users_file.open("r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("users", [])
    if not isinstance(data, list):
        raise TypeError(
            f"Users file must hold a list of users, got {type(data).__name__}"
        )

    return [User(**entry) for entry in data]
