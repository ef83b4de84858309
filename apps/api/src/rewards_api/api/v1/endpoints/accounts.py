"""Member signup and merchant onboarding endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.db.session import get_session
from rewards_api.models.merchant import Merchant
from rewards_api.models.offer import Offer
from rewards_api.models.user import User, UserRoleEnum
from rewards_api.services.accounts import AccountService


router = APIRouter(tags=["accounts"], dependencies=[Depends(require_internal_api_key)])


class MemberCreateRequest(BaseModel):
    email: str = Field(..., min_length=3)
    name: Optional[str] = None
    role: UserRoleEnum = UserRoleEnum.MEMBER
    referralCode: Optional[str] = Field(default=None, description="Referral code of the inviting user")


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str]
    role: str
    status: str
    pointsBalance: int
    walletBalance: int
    referralCode: Optional[str]
    referredBy: Optional[UUID]
    referralChain: List[str]
    createdAt: Optional[datetime]


class MerchantCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    industry: Optional[str] = None
    linkedAgentId: Optional[UUID] = None


class MerchantResponse(BaseModel):
    id: UUID
    name: str
    category: Optional[str]
    industry: Optional[str]
    linkedAgentId: Optional[UUID]
    boostBalance: float
    totalBoostEarned: float


class OfferCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    loyaltyPoints: Optional[int] = Field(default=None, ge=0, description="Points per unit when no slab applies")


class OfferResponse(BaseModel):
    id: UUID
    merchantId: UUID
    title: str
    loyaltyPoints: Optional[int]


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        status=user.status,
        pointsBalance=user.points_balance,
        walletBalance=user.wallet_balance,
        referralCode=user.referral_code,
        referredBy=user.referred_by,
        referralChain=user.referral_chain_ids,
        createdAt=user.created_at,
    )


def _merchant_response(merchant: Merchant) -> MerchantResponse:
    return MerchantResponse(
        id=merchant.id,
        name=merchant.name,
        category=merchant.category,
        industry=merchant.industry,
        linkedAgentId=merchant.linked_agent_id,
        boostBalance=float(merchant.boost_balance or 0),
        totalBoostEarned=float(merchant.total_boost_earned or 0),
    )


def _offer_response(offer: Offer) -> OfferResponse:
    return OfferResponse(
        id=offer.id,
        merchantId=offer.merchant_id,
        title=offer.title,
        loyaltyPoints=offer.loyalty_points,
    )


@router.post("/members", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_member(
    payload: MemberCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await AccountService(db).register_user(
        email=payload.email,
        name=payload.name,
        role=payload.role,
        referral_code=payload.referralCode,
    )
    return _user_response(user)


@router.get("/members/{user_id}", response_model=UserResponse)
async def get_member(user_id: UUID, db: AsyncSession = Depends(get_session)) -> UserResponse:
    return _user_response(await AccountService(db).get_user(user_id))


@router.post("/merchants", response_model=MerchantResponse, status_code=status.HTTP_201_CREATED)
async def create_merchant(
    payload: MerchantCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> MerchantResponse:
    merchant = await AccountService(db).create_merchant(
        name=payload.name,
        category=payload.category,
        industry=payload.industry,
        linked_agent_id=payload.linkedAgentId,
    )
    return _merchant_response(merchant)


@router.get("/merchants/{merchant_id}", response_model=MerchantResponse)
async def get_merchant(merchant_id: UUID, db: AsyncSession = Depends(get_session)) -> MerchantResponse:
    return _merchant_response(await AccountService(db).get_merchant(merchant_id))


@router.post(
    "/merchants/{merchant_id}/offers",
    response_model=OfferResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_offer(
    merchant_id: UUID,
    payload: OfferCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> OfferResponse:
    offer = await AccountService(db).create_offer(
        merchant_id,
        title=payload.title,
        loyalty_points=payload.loyaltyPoints,
    )
    return _offer_response(offer)
