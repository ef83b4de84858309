"""API endpoints for purchase recording, point allocation and redemption."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.db.session import get_session
from rewards_api.services.loyalty import PointsAllocation, PointsService, PurchaseResult


router = APIRouter(
    prefix="/loyalty",
    tags=["loyalty"],
    dependencies=[Depends(require_internal_api_key)],
)


class PurchaseRequest(BaseModel):
    userId: UUID
    offerId: Optional[UUID] = None
    merchantId: Optional[UUID] = None
    quantity: int = Field(default=1, description="Units purchased; must be at least 1")
    totalAmountPaise: int = Field(..., description="Settled amount in paise")
    grossAmountPaise: Optional[int] = Field(default=None, description="Pre-discount amount used for gross boost")


class AllocationResponse(BaseModel):
    success: bool = True
    buyerPoints: int
    parentPoints: int
    grandparentPoints: int
    parentId: Optional[UUID] = None
    grandparentId: Optional[UUID] = None


class PurchaseResponse(BaseModel):
    success: bool
    purchaseTransactionId: UUID
    pointsPool: int
    buyerPoints: int
    parentPoints: int
    grandparentPoints: int
    boostCredited: float
    error: Optional[str] = None


class RedemptionRequest(BaseModel):
    userId: UUID
    points: int
    description: str = Field(default="Points redeemed", min_length=1)
    sourceId: Optional[str] = None


class RedemptionResponse(BaseModel):
    success: bool = True
    pointsRedeemed: int
    pointsBalance: int


class PointsBalanceResponse(BaseModel):
    userId: UUID
    pointsBalance: int


def _allocation_response(allocation: PointsAllocation) -> AllocationResponse:
    return AllocationResponse(
        buyerPoints=allocation.buyer_points,
        parentPoints=allocation.parent_points,
        grandparentPoints=allocation.grandparent_points,
        parentId=allocation.parent_id,
        grandparentId=allocation.grandparent_id,
    )


def _purchase_response(result: PurchaseResult) -> PurchaseResponse:
    return PurchaseResponse(
        success=result.success,
        purchaseTransactionId=result.purchase_transaction_id,
        pointsPool=result.points_pool,
        buyerPoints=result.allocation.buyer_points,
        parentPoints=result.allocation.parent_points,
        grandparentPoints=result.allocation.grandparent_points,
        boostCredited=float(result.boost_credited),
        error=result.allocation_error,
    )


@router.post("/purchases", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def record_purchase(
    payload: PurchaseRequest,
    db: AsyncSession = Depends(get_session),
) -> PurchaseResponse:
    """Record a purchase and split its loyalty points.

    A failed split still returns 201: the purchase is recorded and ``error``
    explains why points were not allocated.
    """

    result = await PointsService(db).record_purchase(
        payload.userId,
        offer_id=payload.offerId,
        merchant_id=payload.merchantId,
        quantity=payload.quantity,
        total_amount_paise=payload.totalAmountPaise,
        gross_amount_paise=payload.grossAmountPaise,
    )
    return _purchase_response(result)


@router.post("/purchases/{purchase_id}/allocation", response_model=AllocationResponse)
async def retry_allocation(
    purchase_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> AllocationResponse:
    allocation = await PointsService(db).retry_allocation(purchase_id)
    return _allocation_response(allocation)


@router.post("/redemptions", response_model=RedemptionResponse)
async def redeem_points(
    payload: RedemptionRequest,
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    remaining = await PointsService(db).redeem_points(
        payload.userId,
        payload.points,
        description=payload.description,
        source_id=payload.sourceId,
    )
    return RedemptionResponse(pointsRedeemed=payload.points, pointsBalance=remaining)


@router.get("/users/{user_id}/points", response_model=PointsBalanceResponse)
async def get_user_points(user_id: UUID, db: AsyncSession = Depends(get_session)) -> PointsBalanceResponse:
    balance = await PointsService(db).get_user_points(user_id)
    return PointsBalanceResponse(userId=user_id, pointsBalance=balance)
