"""Admin-editable commission, loyalty slab and boost settings."""

from __future__ import annotations

from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.api.dependencies.security import require_internal_api_key
from rewards_api.core.errors import InsufficientConfigError
from rewards_api.db.session import get_session
from rewards_api.domain.slabs import LoyaltySlab, normalize_category_key
from rewards_api.services.configuration import BoostRules, CommissionRules, ConfigurationService


router = APIRouter(prefix="/settings", tags=["settings"], dependencies=[Depends(require_internal_api_key)])


class CommissionSettingsPayload(BaseModel):
    level1: int = Field(..., description="Level 1 signup commission (paise)")
    level2: int
    level3: int
    merchantBonus: int
    pointsSharePctParent: Decimal
    pointsSharePctBuyer: Decimal
    pointsSharePctGrandparent: Decimal


class EffectiveShares(BaseModel):
    parent: float
    buyer: float
    grandparent: float


class CommissionSettingsResponse(CommissionSettingsPayload):
    success: bool = True
    warnings: List[str] = Field(default_factory=list)
    effectiveShares: Optional[EffectiveShares] = None


class SlabPayload(BaseModel):
    minAmountPaise: int
    maxAmountPaise: Optional[int] = None
    points: int


class SlabConfigRequest(BaseModel):
    slabs: List[SlabPayload]


class SlabConfigResponse(BaseModel):
    success: bool = True
    categoryId: str
    configured: bool
    slabs: List[SlabPayload]


class SlabCategoriesResponse(BaseModel):
    categoryIds: List[str]


class BoostSettingsPayload(BaseModel):
    boostEnabled: bool
    boostPercentage: Decimal
    applyOn: Literal["gross", "final"] = "gross"
    minRedemptionThreshold: Decimal
    autoApproveThreshold: Decimal = Decimal("0")


class BoostSettingsResponse(BoostSettingsPayload):
    success: bool = True


def _commission_response(rules: CommissionRules, warnings: List[str] | None = None) -> CommissionSettingsResponse:
    try:
        shares = rules.normalized_shares()
    except InsufficientConfigError:
        effective = None
        warnings = [*(warnings or []), "Loyalty points split percentages are all zero; points cannot be allocated."]
    else:
        effective = EffectiveShares(
            parent=float(shares.parent),
            buyer=float(shares.buyer),
            grandparent=float(shares.grandparent),
        )
    return CommissionSettingsResponse(
        level1=rules.level1,
        level2=rules.level2,
        level3=rules.level3,
        merchantBonus=rules.merchant_bonus,
        pointsSharePctParent=rules.share_pct_parent,
        pointsSharePctBuyer=rules.share_pct_buyer,
        pointsSharePctGrandparent=rules.share_pct_grandparent,
        warnings=warnings if warnings is not None else rules.split_warnings(),
        effectiveShares=effective,
    )


def _slab_response(category_id: str, slabs: List[LoyaltySlab] | None) -> SlabConfigResponse:
    return SlabConfigResponse(
        categoryId=category_id,
        configured=slabs is not None,
        slabs=[SlabPayload(**slab.as_dict()) for slab in slabs or []],
    )


def _boost_response(rules: BoostRules) -> BoostSettingsResponse:
    return BoostSettingsResponse(
        boostEnabled=rules.boost_enabled,
        boostPercentage=rules.boost_percentage,
        applyOn=rules.apply_on,
        minRedemptionThreshold=rules.min_redemption_threshold,
        autoApproveThreshold=rules.auto_approve_threshold,
    )


@router.get("/commission", response_model=CommissionSettingsResponse)
async def get_commission_settings(db: AsyncSession = Depends(get_session)) -> CommissionSettingsResponse:
    return _commission_response(await ConfigurationService(db).get_commission_settings())


@router.put("/commission", response_model=CommissionSettingsResponse)
async def update_commission_settings(
    payload: CommissionSettingsPayload,
    db: AsyncSession = Depends(get_session),
) -> CommissionSettingsResponse:
    rules, warnings = await ConfigurationService(db).update_commission_settings(
        CommissionRules(
            level1=payload.level1,
            level2=payload.level2,
            level3=payload.level3,
            merchant_bonus=payload.merchantBonus,
            share_pct_parent=payload.pointsSharePctParent,
            share_pct_buyer=payload.pointsSharePctBuyer,
            share_pct_grandparent=payload.pointsSharePctGrandparent,
        )
    )
    return _commission_response(rules, warnings)


@router.get("/loyalty-slabs", response_model=SlabCategoriesResponse)
async def list_loyalty_slab_categories(db: AsyncSession = Depends(get_session)) -> SlabCategoriesResponse:
    return SlabCategoriesResponse(categoryIds=await ConfigurationService(db).list_loyalty_slab_category_ids())


@router.get("/loyalty-slabs/{category_id}", response_model=SlabConfigResponse)
async def get_loyalty_slabs(category_id: str, db: AsyncSession = Depends(get_session)) -> SlabConfigResponse:
    slabs = await ConfigurationService(db).get_loyalty_slab_config(category_id)
    return _slab_response(normalize_category_key(category_id), slabs)


@router.put("/loyalty-slabs/{category_id}", response_model=SlabConfigResponse)
async def set_loyalty_slabs(
    category_id: str,
    payload: SlabConfigRequest,
    db: AsyncSession = Depends(get_session),
) -> SlabConfigResponse:
    key, slabs = await ConfigurationService(db).set_loyalty_slab_config(
        category_id,
        [slab.model_dump() for slab in payload.slabs],
    )
    return _slab_response(key, slabs)


@router.get("/boost", response_model=BoostSettingsResponse)
async def get_boost_settings(db: AsyncSession = Depends(get_session)) -> BoostSettingsResponse:
    return _boost_response(await ConfigurationService(db).get_boost_settings())


@router.put("/boost", response_model=BoostSettingsResponse)
async def update_boost_settings(
    payload: BoostSettingsPayload,
    db: AsyncSession = Depends(get_session),
) -> BoostSettingsResponse:
    rules = await ConfigurationService(db).update_boost_settings(
        BoostRules(
            boost_enabled=payload.boostEnabled,
            boost_percentage=payload.boostPercentage,
            apply_on=payload.applyOn,
            min_redemption_threshold=payload.minRedemptionThreshold,
            auto_approve_threshold=payload.autoApproveThreshold,
        )
    )
    return _boost_response(rules)
