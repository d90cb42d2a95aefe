"""User directory endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from proposals.api.deps import get_current_user, get_engine
from proposals.api.schemas.proposal import UserResponse
from proposals.core.directory import User
from proposals.core.workflow import WorkflowEngine

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserResponse])
def search_users(
    q: Optional[str] = Query(None, description="Case-insensitive name filter"),
    engine: WorkflowEngine = Depends(get_engine),
    current_user: User = Depends(get_current_user),
):
    """Search approver candidates by name."""
    return [UserResponse.model_validate(u) for u in engine.approver_candidates(q)]


@router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)
