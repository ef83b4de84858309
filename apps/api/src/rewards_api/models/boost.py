"""Merchant boost ledger and withdrawal requests."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from rewards_api.db.base import Base


class BoostTransactionTypeEnum(str, Enum):
    CREDIT = "credit"
    WITHDRAWAL = "withdrawal"


class BoostWithdrawalStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class BoostTransaction(Base):
    """Append-only record of every boost balance change (rupees, signed)."""

    __tablename__ = "boost_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    type = Column(SqlEnum(BoostTransactionTypeEnum, name="boost_transaction_type"), nullable=False)
    source_id = Column(String(64), nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class BoostWithdrawal(Base):
    __tablename__ = "boost_withdrawals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    status = Column(
        SqlEnum(BoostWithdrawalStatusEnum, name="boost_withdrawal_status"),
        nullable=False,
        default=BoostWithdrawalStatusEnum.PENDING,
    )
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String, nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
