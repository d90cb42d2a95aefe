"""Proposal approval workflow.

Implements the proposal state machine and the engine that drives it.
"""

from .states import WorkflowAction, TransitionRule, TRANSITION_RULES, VALID_ACTIONS
from .engine import WorkflowEngine

__all__ = [
    "WorkflowAction",
    "TransitionRule",
    "TRANSITION_RULES",
    "VALID_ACTIONS",
    "WorkflowEngine",
]
