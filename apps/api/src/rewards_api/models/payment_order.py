from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from rewards_api.db.base import Base


class PaymentOrderStatusEnum(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PaymentOrder(Base):
    """Gateway payment order; settles exactly once via the webhook."""

    __tablename__ = "payment_orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    merchant_order_id = Column(String(64), nullable=False, unique=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    merchant_id = Column(UUID(as_uuid=True), ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False)
    amount_paise = Column(Integer, nullable=False)
    offer_id = Column(UUID(as_uuid=True), ForeignKey("offers.id", ondelete="SET NULL"), nullable=True)
    quantity = Column(Integer, nullable=True)
    notes = Column(String, nullable=True)
    status = Column(
        SqlEnum(PaymentOrderStatusEnum, name="payment_order_status"),
        nullable=False,
        default=PaymentOrderStatusEnum.PENDING,
    )
    gateway_order_id = Column(String(128), nullable=True)
    error_code = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
