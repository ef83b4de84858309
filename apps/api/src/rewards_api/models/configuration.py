"""Admin-editable configuration records read by the engines on every call."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, func

from rewards_api.db.base import Base


SINGLETON_ID = "default"


class CommissionSettingsRecord(Base):
    """Signup commission amounts (paise) and the purchase points split."""

    __tablename__ = "commission_settings"

    id = Column(String(32), primary_key=True, default=SINGLETON_ID)
    level1 = Column(Integer, nullable=False)
    level2 = Column(Integer, nullable=False)
    level3 = Column(Integer, nullable=False)
    merchant_bonus = Column(Integer, nullable=False)
    points_share_pct_parent = Column(Numeric(6, 2), nullable=False)
    points_share_pct_buyer = Column(Numeric(6, 2), nullable=False)
    points_share_pct_grandparent = Column(Numeric(6, 2), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class LoyaltySlabConfigRecord(Base):
    """Order-value slabs for one merchant category or industry."""

    __tablename__ = "loyalty_slab_configs"

    category_id = Column(String(64), primary_key=True)
    # [{"minAmountPaise": int, "maxAmountPaise": int | None, "points": int}, ...]
    slabs = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class BoostSettingsRecord(Base):
    __tablename__ = "boost_settings"

    id = Column(String(32), primary_key=True, default=SINGLETON_ID)
    boost_enabled = Column(Boolean, nullable=False, default=True)
    boost_percentage = Column(Numeric(6, 2), nullable=False)
    apply_on = Column(String(16), nullable=False, default="gross")
    # rupees
    min_redemption_threshold = Column(Numeric(14, 2), nullable=False)
    auto_approve_threshold = Column(Numeric(14, 2), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
