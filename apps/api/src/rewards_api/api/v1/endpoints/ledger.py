"""Read access to the transaction ledger."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.db.session import get_session
from rewards_api.models.transaction import LedgerTransaction, TransactionTypeEnum
from rewards_api.services.ledger import LedgerService


router = APIRouter(prefix="/ledger", tags=["ledger"], dependencies=[Depends(require_internal_api_key)])


class LedgerEntryResponse(BaseModel):
    id: UUID
    userId: UUID
    type: TransactionTypeEnum
    amount: int
    merchantId: Optional[UUID] = None
    sourceId: Optional[str] = None
    description: Optional[str] = None
    offerId: Optional[UUID] = None
    quantity: Optional[int] = None
    pointsPool: Optional[int] = None
    pointsEarned: Optional[int] = None
    pointsRedeemed: Optional[int] = None
    payoutStatus: Optional[str] = None
    commissionLevel: Optional[int] = None
    createdAt: Optional[datetime] = None


def serialize_ledger_entry(entry: LedgerTransaction) -> LedgerEntryResponse:
    payout_status = getattr(entry, "payout_status", None)
    return LedgerEntryResponse(
        id=entry.id,
        userId=entry.user_id,
        type=entry.type,
        amount=entry.amount,
        merchantId=entry.merchant_id,
        sourceId=entry.source_id,
        description=entry.description,
        offerId=getattr(entry, "offer_id", None),
        quantity=getattr(entry, "quantity", None),
        pointsPool=getattr(entry, "points_pool", None),
        pointsEarned=getattr(entry, "points_earned", None),
        pointsRedeemed=getattr(entry, "points_redeemed", None),
        payoutStatus=payout_status.value if payout_status is not None else None,
        commissionLevel=getattr(entry, "commission_level", None),
        createdAt=entry.created_at,
    )


@router.get("/transactions", response_model=List[LedgerEntryResponse])
async def list_transactions(
    userId: Optional[UUID] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    types: Optional[List[TransactionTypeEnum]] = Query(default=None),
    db: AsyncSession = Depends(get_session),
) -> List[LedgerEntryResponse]:
    entries = await LedgerService(db).get_transactions(user_id=userId, limit=limit, types=types)
    return [serialize_ledger_entry(entry) for entry in entries]
