"""Identity and merchant onboarding."""

from __future__ import annotations

from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import (
    MerchantNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from rewards_api.core.settings import settings
from rewards_api.db.transactions import run_atomic
from rewards_api.models.merchant import Merchant
from rewards_api.models.offer import Offer
from rewards_api.models.transaction import TransactionTypeEnum
from rewards_api.models.user import User, UserRoleEnum, UserStatusEnum
from rewards_api.services.commissions import CommissionService
from rewards_api.services.configuration import ConfigurationService
from rewards_api.services.ledger import LedgerService


def build_referral_code(name: str | None, user_id: UUID) -> str:
    first_name = (name or "user").split(" ")[0] or "user"
    return f"{first_name.upper()[:20]}{user_id.hex[:6].upper()}"


class AccountService:
    """Creates users (with their referral ancestry) and merchants."""

    def __init__(self, db_session: AsyncSession, config: ConfigurationService | None = None) -> None:
        self._db = db_session
        self._config = config or ConfigurationService(db_session)
        self._ledger = LedgerService(db_session)
        self._commissions = CommissionService(db_session, self._config)

    async def get_user(self, user_id: UUID) -> User:
        user = await self._db.get(User, user_id)
        if user is None:
            raise UserNotFoundError("User not found.")
        return user

    async def get_user_by_referral_code(self, referral_code: str) -> User | None:
        code = referral_code.strip().upper()
        if not code:
            return None
        result = await self._db.execute(select(User).where(func.upper(User.referral_code) == code))
        return result.scalar_one_or_none()

    async def register_user(
        self,
        *,
        email: str,
        name: str | None,
        role: UserRoleEnum = UserRoleEnum.MEMBER,
        referral_code: str | None = None,
    ) -> User:
        """Create a user, wire its referral chain and pay signup commissions.

        Unknown referral codes are ignored. Commission bookkeeping runs after the
        user is committed and never fails the signup.
        """

        email = email.strip().lower()
        if not email:
            raise ValidationError("Email is required.")
        existing = await self._db.scalar(select(User.id).where(User.email == email))
        if existing is not None:
            raise ValidationError("A user with this email already exists.")

        referrer = await self.get_user_by_referral_code(referral_code) if referral_code else None
        if referral_code and referrer is None:
            logger.warning("Ignoring unknown referral code at signup", referral_code=referral_code)

        referral_chain: list[str] = []
        if referrer is not None:
            referral_chain = [str(referrer.id), *referrer.referral_chain_ids]
            referral_chain = referral_chain[: settings.referral_chain_max_depth]

        is_member = role == UserRoleEnum.MEMBER
        bonus_points = max(0, settings.member_signup_bonus_points) if is_member else 0

        async def _operation() -> User:
            user_id = uuid4()
            user = User(
                id=user_id,
                email=email,
                name=name,
                role=role.value,
                status=(UserStatusEnum.APPROVED if is_member else UserStatusEnum.PENDING).value,
                points_balance=bonus_points,
                wallet_balance=0,
                referral_code=build_referral_code(name, user_id),
                referred_by=referrer.id if referrer is not None else None,
                referral_chain=referral_chain,
            )
            self._db.add(user)
            await self._db.flush()
            if bonus_points > 0:
                await self._ledger.create_transaction(
                    TransactionTypeEnum.POINTS_EARNED,
                    user_id=user_id,
                    points_earned=bonus_points,
                    description="Welcome bonus",
                )
            return user

        user = await run_atomic(self._db, _operation, label="register_user")
        logger.info(
            "Registered user",
            user_id=str(user.id),
            role=user.role,
            referred_by=str(user.referred_by) if user.referred_by else None,
            chain_depth=len(referral_chain),
        )

        if is_member and referral_chain:
            await self._commissions.grant_signup_commissions(
                user.id,
                referral_chain,
                signup_name=name or email,
            )
        return user

    async def get_merchant(self, merchant_id: UUID) -> Merchant:
        merchant = await self._db.get(Merchant, merchant_id)
        if merchant is None:
            raise MerchantNotFoundError("Merchant not found.")
        return merchant

    async def create_merchant(
        self,
        *,
        name: str,
        category: str | None,
        industry: str | None = None,
        linked_agent_id: UUID | None = None,
    ) -> Merchant:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Merchant name is required.")
        if linked_agent_id is not None:
            await self.get_user(linked_agent_id)

        async def _operation() -> Merchant:
            merchant = Merchant(
                name=name,
                category=category,
                industry=industry,
                linked_agent_id=linked_agent_id,
                boost_balance=0,
                total_boost_earned=0,
            )
            self._db.add(merchant)
            await self._db.flush()
            return merchant

        merchant = await run_atomic(self._db, _operation, label="create_merchant")
        logger.info("Created merchant", merchant_id=str(merchant.id), category=category, industry=industry)

        if linked_agent_id is not None:
            await self._commissions.grant_merchant_bonus(
                linked_agent_id,
                merchant.id,
                merchant_name=merchant.name,
            )
        return merchant

    async def create_offer(
        self,
        merchant_id: UUID,
        *,
        title: str,
        loyalty_points: int | None = None,
    ) -> Offer:
        await self.get_merchant(merchant_id)
        if loyalty_points is not None and loyalty_points < 0:
            raise ValidationError("Offer loyalty points cannot be negative.")

        async def _operation() -> Offer:
            offer = Offer(merchant_id=merchant_id, title=title, loyalty_points=loyalty_points)
            self._db.add(offer)
            await self._db.flush()
            return offer

        return await run_atomic(self._db, _operation, label="create_offer")
