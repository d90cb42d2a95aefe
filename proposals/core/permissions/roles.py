"""User roles known to the proposal workflow.

Roles only matter at three stages of the pipeline:
1. Admin - approves at the admin stage, assigns approvers, forwards to the registrar
2. Registrar - takes the final decision
3. Approver / User - no stage of their own; may be picked as approvers or superiors

Creator, superior and approver rights come from the user's relationship to a
proposal, not from their role.
"""

from enum import Enum
from typing import FrozenSet


class UserRole(str, Enum):
    """Directory roles."""

    ADMIN = "ADMIN"
    REGISTRAR = "REGISTRAR"
    APPROVER = "APPROVER"
    USER = "USER"


# Roles allowed to see per-approver step details and progress
APPROVAL_DETAIL_ROLES: FrozenSet[UserRole] = frozenset({
    UserRole.ADMIN,
    UserRole.REGISTRAR,
})


def parse_role(value: str) -> UserRole:
    """Parse a role name case-insensitively, e.g. ``admin`` or ``ADMIN``."""
    try:
        return UserRole(value.strip().upper())
    except ValueError:
        raise ValueError(f"Invalid role: {value}") from None
