"""FastAPI router: accepted currencies."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from contribution_review.access.capabilities import Capability, Principal, require_capability
from contribution_review.api_server.dependencies import (
    ServiceContainer,
    current_principal,
    get_services,
)

router = APIRouter(prefix="/coins", tags=["coins"])


class RegisterCoinRequest(BaseModel):
    symbol: str = Field(..., min_length=1, max_length=10)
    name: str = Field(..., min_length=1, max_length=100)
    conversionRate: Decimal = Field(..., ge=0, description="Points per unit of the coin")
    walletAddress: str | None = None
    network: str | None = None
    memo: str | None = None
    minimumAmount: Decimal = Field(Decimal("0.01"), ge=0)


class SetActiveRequest(BaseModel):
    isActive: bool


@router.get("")
def list_coins(
    include_inactive: bool = Query(False, alias="includeInactive"),
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """Active coins for everyone; admins may include inactive ones."""
    if include_inactive:
        require_capability(principal, [Capability.MANAGE_COINS])
        coins = services.coins.list_all()
    else:
        coins = services.coins.list_active()
    return {"success": True, "count": len(coins), "coins": [c.to_dict() for c in coins]}


@router.post("", status_code=201)
def register_coin(
    body: RegisterCoinRequest,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.MANAGE_COINS])
    coin = services.coins.register(
        body.symbol,
        body.name,
        conversion_rate=body.conversionRate,
        created_by=principal.id,
        wallet_address=body.walletAddress,
        network=body.network,
        memo=body.memo,
        minimum_amount=body.minimumAmount,
    )
    return {"success": True, "coin": coin.to_dict()}


@router.put("/{symbol}/active")
def set_coin_active(
    symbol: str,
    body: SetActiveRequest,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.MANAGE_COINS])
    coin = services.coins.set_active(symbol, body.isActive)
    return {"success": True, "coin": coin.to_dict()}
