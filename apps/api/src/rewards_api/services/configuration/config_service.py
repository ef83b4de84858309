"""Configuration store access: commission rules, loyalty slabs and boost settings.

Admins edit these records live, so every read goes back to the store unless a
short TTL cache is enabled via ``config_cache_ttl_seconds``.  Values are
clamped on the way in and on the way out.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Literal, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import InsufficientConfigError
from rewards_api.core.settings import settings
from rewards_api.models.configuration import (
    SINGLETON_ID,
    BoostSettingsRecord,
    CommissionSettingsRecord,
    LoyaltySlabConfigRecord,
)
from rewards_api.domain.slabs import (
    LoyaltySlab,
    normalize_category_key,
    normalize_slabs,
    parse_stored_slabs,
)


HUNDRED = Decimal("100")


def clamp_pct(value: Decimal | float | int) -> Decimal:
    return min(HUNDRED, max(Decimal("0"), Decimal(str(value))))


@dataclass(frozen=True)
class PointsShares:
    """Split percentages re-scaled to sum to exactly 100."""

    parent: Decimal
    buyer: Decimal
    grandparent: Decimal


@dataclass(frozen=True)
class CommissionRules:
    level1: int
    level2: int
    level3: int
    merchant_bonus: int
    share_pct_parent: Decimal
    share_pct_buyer: Decimal
    share_pct_grandparent: Decimal

    @property
    def level_amounts(self) -> tuple[int, int, int]:
        return (self.level1, self.level2, self.level3)

    @property
    def shares_total(self) -> Decimal:
        return self.share_pct_parent + self.share_pct_buyer + self.share_pct_grandparent

    def clamped(self) -> "CommissionRules":
        return replace(
            self,
            level1=max(0, int(self.level1)),
            level2=max(0, int(self.level2)),
            level3=max(0, int(self.level3)),
            merchant_bonus=max(0, int(self.merchant_bonus)),
            share_pct_parent=clamp_pct(self.share_pct_parent),
            share_pct_buyer=clamp_pct(self.share_pct_buyer),
            share_pct_grandparent=clamp_pct(self.share_pct_grandparent),
        )

    def normalized_shares(self) -> PointsShares:
        clamped = self.clamped()
        total = clamped.shares_total
        if total <= 0:
            raise InsufficientConfigError("Loyalty points split percentages are all zero.")
        return PointsShares(
            parent=clamped.share_pct_parent / total * HUNDRED,
            buyer=clamped.share_pct_buyer / total * HUNDRED,
            grandparent=clamped.share_pct_grandparent / total * HUNDRED,
        )

    def split_warnings(self) -> list[str]:
        total = self.clamped().shares_total
        if total != HUNDRED:
            return [
                f"Loyalty points shares sum to {total.normalize():f}, not 100; "
                "they will be scaled proportionally at allocation time."
            ]
        return []


@dataclass(frozen=True)
class BoostRules:
    boost_enabled: bool
    boost_percentage: Decimal
    apply_on: Literal["gross", "final"]
    min_redemption_threshold: Decimal
    auto_approve_threshold: Decimal

    def clamped(self) -> "BoostRules":
        return replace(
            self,
            boost_percentage=clamp_pct(self.boost_percentage),
            apply_on="final" if self.apply_on == "final" else "gross",
            min_redemption_threshold=max(Decimal("0"), Decimal(str(self.min_redemption_threshold))),
            auto_approve_threshold=max(Decimal("0"), Decimal(str(self.auto_approve_threshold))),
        )


DEFAULT_COMMISSION_RULES = CommissionRules(
    level1=5000,
    level2=3000,
    level3=2000,
    merchant_bonus=10000,
    share_pct_parent=Decimal("70"),
    share_pct_buyer=Decimal("20"),
    share_pct_grandparent=Decimal("10"),
)

DEFAULT_BOOST_RULES = BoostRules(
    boost_enabled=True,
    boost_percentage=Decimal("2"),
    apply_on="gross",
    min_redemption_threshold=Decimal("555"),
    auto_approve_threshold=Decimal("0"),
)


class _TTLCache:
    def __init__(self) -> None:
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> tuple[bool, Any]:
        ttl = settings.config_cache_ttl_seconds
        entry = self._entries.get(key)
        if ttl <= 0 or entry is None:
            return False, None
        stored_at, value = entry
        if time.monotonic() - stored_at > ttl:
            self._entries.pop(key, None)
            return False, None
        return True, value

    def put(self, key: str, value: Any) -> None:
        if settings.config_cache_ttl_seconds > 0:
            self._entries[key] = (time.monotonic(), value)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


_CACHE = _TTLCache()


def clear_config_cache() -> None:
    _CACHE.invalidate()


class ConfigurationService:
    """Reader/writer for the admin-editable configuration records."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def get_commission_settings(self) -> CommissionRules:
        hit, cached = _CACHE.get("commission")
        if hit:
            return cached

        record = await self._db.get(CommissionSettingsRecord, SINGLETON_ID)
        if record is None:
            rules = DEFAULT_COMMISSION_RULES
        else:
            rules = CommissionRules(
                level1=record.level1,
                level2=record.level2,
                level3=record.level3,
                merchant_bonus=record.merchant_bonus,
                share_pct_parent=Decimal(record.points_share_pct_parent),
                share_pct_buyer=Decimal(record.points_share_pct_buyer),
                share_pct_grandparent=Decimal(record.points_share_pct_grandparent),
            ).clamped()
        _CACHE.put("commission", rules)
        return rules

    async def update_commission_settings(self, rules: CommissionRules) -> tuple[CommissionRules, list[str]]:
        """Persist commission rules; returns the stored rules and any split warnings."""

        clamped = rules.clamped()
        record = await self._db.get(CommissionSettingsRecord, SINGLETON_ID)
        if record is None:
            record = CommissionSettingsRecord(id=SINGLETON_ID)
            self._db.add(record)
        record.level1 = clamped.level1
        record.level2 = clamped.level2
        record.level3 = clamped.level3
        record.merchant_bonus = clamped.merchant_bonus
        record.points_share_pct_parent = clamped.share_pct_parent
        record.points_share_pct_buyer = clamped.share_pct_buyer
        record.points_share_pct_grandparent = clamped.share_pct_grandparent
        await self._db.commit()
        _CACHE.invalidate("commission")

        warnings = clamped.split_warnings()
        logger.info(
            "Updated commission settings",
            level_amounts=list(clamped.level_amounts),
            merchant_bonus=clamped.merchant_bonus,
            warnings=warnings,
        )
        return clamped, warnings

    async def get_loyalty_slab_config(self, category_id: str) -> list[LoyaltySlab] | None:
        key = normalize_category_key(category_id)
        cache_key = f"slabs:{key}"
        hit, cached = _CACHE.get(cache_key)
        if hit:
            return cached

        record = await self._db.get(LoyaltySlabConfigRecord, key)
        slabs = parse_stored_slabs(record.slabs) if record is not None else None
        _CACHE.put(cache_key, slabs)
        return slabs

    async def set_loyalty_slab_config(
        self,
        category_id: str,
        slabs: Sequence[LoyaltySlab | dict[str, Any]],
    ) -> tuple[str, list[LoyaltySlab]]:
        key = normalize_category_key(category_id)
        normalized = normalize_slabs(slabs)

        record = await self._db.get(LoyaltySlabConfigRecord, key)
        if record is None:
            record = LoyaltySlabConfigRecord(category_id=key)
            self._db.add(record)
        record.slabs = [slab.as_dict() for slab in normalized]
        await self._db.commit()
        _CACHE.invalidate(f"slabs:{key}")

        logger.info("Saved loyalty slab config", category_id=key, slab_count=len(normalized))
        return key, normalized

    async def list_loyalty_slab_category_ids(self) -> list[str]:
        result = await self._db.execute(
            select(LoyaltySlabConfigRecord.category_id).order_by(LoyaltySlabConfigRecord.category_id)
        )
        return list(result.scalars().all())

    async def get_boost_settings(self) -> BoostRules:
        hit, cached = _CACHE.get("boost")
        if hit:
            return cached

        record = await self._db.get(BoostSettingsRecord, SINGLETON_ID)
        if record is None:
            rules = DEFAULT_BOOST_RULES
        else:
            rules = BoostRules(
                boost_enabled=bool(record.boost_enabled),
                boost_percentage=Decimal(record.boost_percentage),
                apply_on=record.apply_on,
                min_redemption_threshold=Decimal(record.min_redemption_threshold),
                auto_approve_threshold=Decimal(record.auto_approve_threshold),
            ).clamped()
        _CACHE.put("boost", rules)
        return rules

    async def update_boost_settings(self, rules: BoostRules) -> BoostRules:
        clamped = rules.clamped()
        record = await self._db.get(BoostSettingsRecord, SINGLETON_ID)
        if record is None:
            record = BoostSettingsRecord(id=SINGLETON_ID)
            self._db.add(record)
        record.boost_enabled = clamped.boost_enabled
        record.boost_percentage = clamped.boost_percentage
        record.apply_on = clamped.apply_on
        record.min_redemption_threshold = clamped.min_redemption_threshold
        record.auto_approve_threshold = clamped.auto_approve_threshold
        await self._db.commit()
        _CACHE.invalidate("boost")

        logger.info(
            "Updated boost settings",
            boost_enabled=clamped.boost_enabled,
            boost_percentage=str(clamped.boost_percentage),
            apply_on=clamped.apply_on,
        )
        return clamped
