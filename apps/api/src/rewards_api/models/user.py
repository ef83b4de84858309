from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from rewards_api.db.base import Base


class UserRoleEnum(str, Enum):
    MEMBER = "member"
    AGENT = "agent"
    MERCHANT = "merchant"
    ADMIN = "admin"


class UserStatusEnum(str, Enum):
    APPROVED = "approved"
    PENDING = "pending"
    SUSPENDED = "suspended"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("points_balance >= 0", name="ck_users_points_balance_non_negative"),
        CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_balance_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    role = Column(String(length=16), nullable=False, default=UserRoleEnum.MEMBER.value, server_default=UserRoleEnum.MEMBER.value)
    status = Column(String(length=16), nullable=False, default=UserStatusEnum.PENDING.value, server_default=UserStatusEnum.PENDING.value)
    points_balance = Column(Integer, nullable=False, default=0, server_default="0")
    # paise
    wallet_balance = Column(Integer, nullable=False, default=0, server_default="0")
    referral_code = Column(String(32), nullable=True, unique=True, index=True)
    referred_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # nearest ancestor first
    referral_chain = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def referral_chain_ids(self) -> list[str]:
        return [str(item) for item in (self.referral_chain or []) if item]
