"""Permission model for the proposal workflow.

Roles plus the relationship-aware capability evaluator.
"""

from .roles import UserRole, APPROVAL_DETAIL_ROLES, parse_role
from .evaluator import Capability, Decision, PermissionEvaluator

__all__ = [
    "UserRole",
    "APPROVAL_DETAIL_ROLES",
    "parse_role",
    "Capability",
    "Decision",
    "PermissionEvaluator",
]
