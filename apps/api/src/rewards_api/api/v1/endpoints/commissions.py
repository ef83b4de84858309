"""Commission listing and payout review."""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.db.session import get_session
from rewards_api.models.transaction import PayoutStatusEnum
from rewards_api.services.commissions import CommissionService

from .ledger import LedgerEntryResponse, serialize_ledger_entry


router = APIRouter(
    prefix="/commissions",
    tags=["commissions"],
    dependencies=[Depends(require_internal_api_key)],
)


class PayoutStatusRequest(BaseModel):
    status: Literal["completed", "rejected"]


class PayoutStatusResponse(BaseModel):
    success: bool = True
    commission: LedgerEntryResponse


@router.get("", response_model=List[LedgerEntryResponse])
async def list_commissions(
    userId: Optional[UUID] = Query(default=None),
    status: Optional[PayoutStatusEnum] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> List[LedgerEntryResponse]:
    commissions = await CommissionService(db).list_commissions(user_id=userId, status=status, limit=limit)
    return [serialize_ledger_entry(commission) for commission in commissions]


@router.post("/{commission_id}/payout-status", response_model=PayoutStatusResponse)
async def update_payout_status(
    commission_id: UUID,
    payload: PayoutStatusRequest,
    db: AsyncSession = Depends(get_session),
) -> PayoutStatusResponse:
    commission = await CommissionService(db).update_payout_status(commission_id, PayoutStatusEnum(payload.status))
    return PayoutStatusResponse(commission=serialize_ledger_entry(commission))
