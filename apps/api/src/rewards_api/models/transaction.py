"""Immutable ledger entries.

Each ledger kind is its own mapped class over the single ``transactions``
table (single-table inheritance keyed on ``type``), so a purchase can carry
``offer_id``/``quantity`` and a commission ``payout_status``/``commission_level``
without either shape leaking into the other.
"""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from rewards_api.db.base import Base


class TransactionTypeEnum(str, Enum):
    PURCHASE = "purchase"
    COMMISSION = "commission"
    PAYOUT = "payout"
    CREDIT = "credit"
    DEBIT = "debit"
    POINTS_EARNED = "points-earned"
    POINTS_REDEEMED = "points-redeemed"
    REFUND = "refund"


class PayoutStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class LedgerTransaction(Base):
    """Base ledger row; query this class to get every kind back polymorphically."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_created", "user_id", "created_at"),
        Index("ix_transactions_source_type", "source_id", "type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(
        SqlEnum(TransactionTypeEnum, name="transaction_type", values_callable=_enum_values),
        nullable=False,
    )
    # paise; zero for pure-points entries
    amount = Column(Integer, nullable=False, default=0, server_default="0")
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="SET NULL"), nullable=True)
    source_id = Column(String(64), nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"polymorphic_on": type}


class PurchaseTransaction(LedgerTransaction):
    __tablename__ = None

    offer_id = Column(UUID(as_uuid=True), ForeignKey("offers.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=True)
    # point pool resolved at purchase time, kept so a failed split can be retried
    points_pool = Column(Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.PURCHASE}


class CommissionTransaction(LedgerTransaction):
    __tablename__ = None

    payout_status = Column(
        SqlEnum(PayoutStatusEnum, name="payout_status", values_callable=_enum_values),
        nullable=True,
    )
    commission_level = Column(Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.COMMISSION}


class PointsEarnedTransaction(LedgerTransaction):
    __tablename__ = None

    points_earned = Column(Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.POINTS_EARNED}


class PointsRedeemedTransaction(LedgerTransaction):
    __tablename__ = None

    points_redeemed = Column(Integer, nullable=True)

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.POINTS_REDEEMED}


class CreditTransaction(LedgerTransaction):
    __tablename__ = None

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.CREDIT}


class DebitTransaction(LedgerTransaction):
    __tablename__ = None

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.DEBIT}


class PayoutTransaction(LedgerTransaction):
    __tablename__ = None

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.PAYOUT}


class RefundTransaction(LedgerTransaction):
    __tablename__ = None

    __mapper_args__ = {"polymorphic_identity": TransactionTypeEnum.REFUND}


TRANSACTION_CLASSES: dict[TransactionTypeEnum, type[LedgerTransaction]] = {
    TransactionTypeEnum.PURCHASE: PurchaseTransaction,
    TransactionTypeEnum.COMMISSION: CommissionTransaction,
    TransactionTypeEnum.POINTS_EARNED: PointsEarnedTransaction,
    TransactionTypeEnum.POINTS_REDEEMED: PointsRedeemedTransaction,
    TransactionTypeEnum.CREDIT: CreditTransaction,
    TransactionTypeEnum.DEBIT: DebitTransaction,
    TransactionTypeEnum.PAYOUT: PayoutTransaction,
    TransactionTypeEnum.REFUND: RefundTransaction,
}
