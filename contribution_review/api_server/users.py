"""
FastAPI router: user point balances and voting rights.

Accounts are created lazily on the first credit or admin adjustment; a
principal reading its own missing account gets a zeroed one.
"""

from __future__ import annotations

import enum
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from contribution_review.access.capabilities import Capability, Principal, require_capability
from contribution_review.api_server.dependencies import (
    ServiceContainer,
    current_principal,
    get_services,
)
from contribution_review.core.exceptions import NotFoundError
from contribution_review.database.models import MAX_POINTS, UserAccount
from contribution_review.review_logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class PointsAdjustment(str, enum.Enum):
    ADD = "add"
    DEDUCT = "deduct"


class UpdatePointsRequest(BaseModel):
    amount: int = Field(..., gt=0, le=MAX_POINTS)
    type: PointsAdjustment


class VotingRightsRequest(BaseModel):
    votingRights: int = Field(..., ge=0)


@router.get("/leaderboard")
def leaderboard(
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    users = services.repository.leaderboard(limit=limit)
    return {
        "success": True,
        "leaderboard": [
            {"rank": rank, **user.to_dict()} for rank, user in enumerate(users, start=1)
        ],
    }


@router.get("/stats")
def user_stats(
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """Totals over all accounts (admin only)."""
    require_capability(principal, [Capability.MANAGE_USERS])
    return {"success": True, "stats": services.repository.user_stats().to_dict()}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.READ_ALL_ACCOUNTS], owner_id=user_id)
    user = services.repository.get_user(user_id)
    if user is None:
        if user_id != principal.id:
            raise NotFoundError(f"user {user_id} not found")
        user = UserAccount(id=user_id)
    return {"success": True, "user": user.to_dict()}


@router.put("/{user_id}/points")
def update_points(
    user_id: str,
    body: UpdatePointsRequest,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """Manual adjustment; a deduction never takes the balance below 0."""
    require_capability(principal, [Capability.MANAGE_USERS])
    delta = body.amount if body.type is PointsAdjustment.ADD else -body.amount
    user = services.repository.adjust_user_points(user_id, delta)
    logger.info(
        "user_points_adjusted",
        user_id=user_id,
        delta=delta,
        points=user.points,
        admin_id=principal.id,
    )
    return {"success": True, "user": user.to_dict()}


@router.put("/{user_id}/voting-rights")
def update_voting_rights(
    user_id: str,
    body: VotingRightsRequest,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.MANAGE_USERS])
    user = services.repository.set_voting_rights(user_id, body.votingRights)
    logger.info(
        "user_voting_rights_changed",
        user_id=user_id,
        voting_rights=user.voting_rights,
        admin_id=principal.id,
    )
    return {"success": True, "user": user.to_dict()}
