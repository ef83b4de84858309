"""Merchant boost withdrawals and boost ledger."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.db.session import get_session
from rewards_api.models.boost import BoostTransaction, BoostWithdrawal, BoostWithdrawalStatusEnum
from rewards_api.services.boost import BoostService


router = APIRouter(prefix="/boost", tags=["boost"], dependencies=[Depends(require_internal_api_key)])


class WithdrawalResponse(BaseModel):
    id: UUID
    merchantId: UUID
    amount: float
    status: str
    reviewedAt: Optional[datetime] = None
    reviewedBy: Optional[str] = None
    note: Optional[str] = None
    createdAt: Optional[datetime] = None


class WithdrawalEnvelope(BaseModel):
    success: bool = True
    withdrawal: WithdrawalResponse


class WithdrawalReviewRequest(BaseModel):
    status: Literal["completed", "rejected"]
    reviewedBy: Optional[str] = None
    note: Optional[str] = None


class BoostTransactionResponse(BaseModel):
    id: UUID
    merchantId: UUID
    amount: float
    type: str
    sourceId: Optional[str] = None
    description: Optional[str] = None
    createdAt: Optional[datetime] = None


def _withdrawal_response(withdrawal: BoostWithdrawal) -> WithdrawalResponse:
    return WithdrawalResponse(
        id=withdrawal.id,
        merchantId=withdrawal.merchant_id,
        amount=float(withdrawal.amount),
        status=withdrawal.status.value,
        reviewedAt=withdrawal.reviewed_at,
        reviewedBy=withdrawal.reviewed_by,
        note=withdrawal.note,
        createdAt=withdrawal.created_at,
    )


def _transaction_response(entry: BoostTransaction) -> BoostTransactionResponse:
    return BoostTransactionResponse(
        id=entry.id,
        merchantId=entry.merchant_id,
        amount=float(entry.amount),
        type=entry.type.value,
        sourceId=entry.source_id,
        description=entry.description,
        createdAt=entry.created_at,
    )


@router.post(
    "/merchants/{merchant_id}/withdrawals",
    response_model=WithdrawalEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def request_withdrawal(merchant_id: UUID, db: AsyncSession = Depends(get_session)) -> WithdrawalEnvelope:
    withdrawal = await BoostService(db).request_withdrawal(merchant_id)
    return WithdrawalEnvelope(withdrawal=_withdrawal_response(withdrawal))


@router.get("/withdrawals", response_model=List[WithdrawalResponse])
async def list_withdrawals(
    status_filter: Optional[BoostWithdrawalStatusEnum] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> List[WithdrawalResponse]:
    withdrawals = await BoostService(db).list_withdrawals(limit=limit, status=status_filter)
    return [_withdrawal_response(withdrawal) for withdrawal in withdrawals]


@router.post("/withdrawals/{withdrawal_id}/review", response_model=WithdrawalEnvelope)
async def review_withdrawal(
    withdrawal_id: UUID,
    payload: WithdrawalReviewRequest,
    db: AsyncSession = Depends(get_session),
) -> WithdrawalEnvelope:
    withdrawal = await BoostService(db).review_withdrawal(
        withdrawal_id,
        BoostWithdrawalStatusEnum(payload.status),
        reviewed_by=payload.reviewedBy,
        note=payload.note,
    )
    return WithdrawalEnvelope(withdrawal=_withdrawal_response(withdrawal))


@router.get("/merchants/{merchant_id}/transactions", response_model=List[BoostTransactionResponse])
async def list_boost_transactions(
    merchant_id: UUID,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_session),
) -> List[BoostTransactionResponse]:
    entries = await BoostService(db).get_transactions_for_merchant(merchant_id, limit=limit)
    return [_transaction_response(entry) for entry in entries]
