"""
FastAPI router: contribution submission, listing and review transitions.

POST /contributions/upload takes a multipart form (amount, currency,
walletAddress, transactionHash?, notes?, file `receipt`). The amount floor
(MIN_CONTRIBUTION_AMOUNT, $50 by default) and the receipt type/size checks
happen here, before the record store is called.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from pydantic import BaseModel, Field

from contribution_review.access.capabilities import Capability, Principal, require_capability
from contribution_review.api_server.dependencies import (
    ServiceContainer,
    current_principal,
    get_services,
)
from contribution_review.core.exceptions import ContributionReviewError, ValidationError
from contribution_review.database.models import (
    ContributionRecord,
    ContributionStatus,
    SubmissionMetadata,
    SubmissionSource,
)
from contribution_review.review.store import parse_decimal


router = APIRouter(prefix="/contributions", tags=["contributions"])


class ReviewRequest(BaseModel):
    """PUT /contributions/{id}/approve|reject|under-review body."""

    notes: str | None = Field(None, max_length=500, description="Reviewer notes, stored as admin notes")


class ReconcileResponse(BaseModel):
    applied: int = Field(..., description="Credits applied by this run")


def _one(record: ContributionRecord, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "contribution": record.to_dict()}
    if message:
        body["message"] = message
    return body


def _many(records: list[ContributionRecord]) -> dict[str, Any]:
    return {
        "success": True,
        "count": len(records),
        "contributions": [r.to_dict() for r in records],
    }


@router.post("/upload", status_code=201)
async def upload_contribution(
    request: Request,
    amount: str = Form(""),
    currency: str = Form(""),
    walletAddress: str = Form(""),
    transactionHash: str | None = Form(None),
    notes: str | None = Form(None),
    receipt: UploadFile | None = File(None),
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """
    Submit a contribution proof. Returns 201 with the pending record,
    400 on validation failure, 401/403 on auth failure.
    """
    require_capability(principal, [Capability.SUBMIT_CONTRIBUTION])
    if receipt is None:
        raise ValidationError("receipt file is required")

    parsed_amount = parse_decimal(amount or "0", "amount")
    floor = services.settings.min_contribution_amount
    if parsed_amount < floor:
        raise ValidationError(f"amount must be at least ${floor}")
    if not (walletAddress or "").strip():
        raise ValidationError("wallet address is required")

    coin = services.coins.resolve(
        currency, submitter_id=principal.id, wallet_address=walletAddress.strip()
    )
    if parsed_amount < coin.minimum_amount:
        raise ValidationError(f"amount must be at least {coin.minimum_amount} {coin.symbol}")

    # one byte past the limit is enough for save() to reject it
    data = await receipt.read(services.receipts.max_bytes + 1)
    receipt_ref = services.receipts.save(data, receipt.filename or "", receipt.content_type)
    try:
        record = services.store.submit(
            principal.id,
            parsed_amount,
            coin.symbol,
            walletAddress,
            receipt_ref,
            transactionHash,
            conversion_rate=coin.conversion_rate,
            coin_id=coin.id,
            user_notes=notes,
            metadata=SubmissionMetadata(
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent", ""),
                submission_source=SubmissionSource.WEB,
            ),
        )
    except ContributionReviewError:
        services.receipts.delete(receipt_ref)
        raise
    return _one(record, "Contribution proof submitted")


@router.get("/mine")
def my_contributions(
    status: ContributionStatus | None = Query(None),
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.READ_OWN_CONTRIBUTIONS])
    return _many(services.store.list_by_submitter(principal.id, status))


@router.get("/pending")
def pending_contributions(
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """Review queue: pending and under_review, newest first."""
    require_capability(principal, [Capability.READ_ALL_CONTRIBUTIONS])
    return _many(services.store.list_pending())


@router.get("/stats")
def contribution_stats(
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.READ_ALL_CONTRIBUTIONS])
    return {"success": True, "stats": services.store.stats().to_dict()}


@router.get("")
def contributions_by_date_range(
    start: datetime = Query(..., description="Inclusive lower bound on submission time (ISO 8601)"),
    end: datetime = Query(..., description="Inclusive upper bound on submission time (ISO 8601)"),
    status: ContributionStatus | None = Query(None),
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    require_capability(principal, [Capability.READ_ALL_CONTRIBUTIONS])
    return _many(services.store.list_by_date_range(start, end, status))


@router.post("/reconcile-credits", response_model=ReconcileResponse)
def reconcile_credits(
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> ReconcileResponse:
    """Apply point credits left pending by failed approvals."""
    require_capability(principal, [Capability.RECONCILE_CREDITS])
    return ReconcileResponse(applied=services.engine.reconcile_pending_credits())


@router.get("/{contribution_id}")
def get_contribution(
    contribution_id: int,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    """Owner or reviewer only."""
    record = services.store.get(contribution_id)
    require_capability(
        principal, [Capability.READ_ALL_CONTRIBUTIONS], owner_id=record.submitter_id
    )
    return _one(record)


@router.put("/{contribution_id}/approve")
def approve_contribution(
    contribution_id: int,
    body: ReviewRequest | None = None,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    record = services.engine.approve(contribution_id, principal, body.notes if body else None)
    return _one(record, "Contribution approved")


@router.put("/{contribution_id}/reject")
def reject_contribution(
    contribution_id: int,
    body: ReviewRequest | None = None,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    record = services.engine.reject(contribution_id, principal, body.notes if body else None)
    return _one(record, "Contribution rejected")


@router.put("/{contribution_id}/under-review")
def put_contribution_under_review(
    contribution_id: int,
    body: ReviewRequest | None = None,
    principal: Principal = Depends(current_principal),
    services: ServiceContainer = Depends(get_services),
) -> dict[str, Any]:
    record = services.engine.put_under_review(
        contribution_id, principal, body.notes if body else None
    )
    return _one(record, "Contribution put under review")
