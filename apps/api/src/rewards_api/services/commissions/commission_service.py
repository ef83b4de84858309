"""Referral commissions: signup chain payouts, merchant recruitment bonus and payout review."""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import TransactionNotFoundError
from rewards_api.db.transactions import run_atomic
from rewards_api.domain.transitions import COMMISSION_PAYOUT_MACHINE
from rewards_api.models.transaction import (
    CommissionTransaction,
    CreditTransaction,
    PayoutStatusEnum,
)
from rewards_api.models.user import User
from rewards_api.services.configuration import CommissionRules, ConfigurationService


class CommissionService:
    def __init__(self, db_session: AsyncSession, config: ConfigurationService | None = None) -> None:
        self._db = db_session
        self._config = config or ConfigurationService(db_session)

    async def grant_signup_commissions(
        self,
        new_user_id: UUID,
        referral_chain: Sequence[UUID | str],
        *,
        signup_name: str,
        rules: CommissionRules | None = None,
    ) -> list[CommissionTransaction]:
        """Write one pending commission per ancestor, nearest referrer first.

        Best-effort: failures are logged and rolled back without raising, the
        signup itself is already committed.
        """

        if not referral_chain:
            return []
        try:
            rules = rules or await self._config.get_commission_settings()

            async def _operation() -> list[CommissionTransaction]:
                created: list[CommissionTransaction] = []
                for index, (ancestor_id, amount) in enumerate(zip(referral_chain, rules.level_amounts)):
                    if amount <= 0:
                        continue
                    level = index + 1
                    entry = CommissionTransaction(
                        user_id=UUID(str(ancestor_id)),
                        amount=amount,
                        source_id=str(new_user_id),
                        description=f"Level {level} commission from {signup_name} signup",
                        payout_status=PayoutStatusEnum.PENDING,
                        commission_level=level,
                    )
                    self._db.add(entry)
                    created.append(entry)
                await self._db.flush()
                return created

            created = await run_atomic(self._db, _operation, label="signup_commissions")
        except Exception:
            logger.exception("Failed to create signup commissions", new_user_id=str(new_user_id))
            return []

        logger.info(
            "Created signup commissions",
            new_user_id=str(new_user_id),
            levels=[entry.commission_level for entry in created],
        )
        return created

    async def grant_merchant_bonus(
        self,
        agent_id: UUID,
        merchant_id: UUID,
        *,
        merchant_name: str,
        rules: CommissionRules | None = None,
    ) -> CommissionTransaction | None:
        """Flat recruitment bonus for the agent linked to a new merchant (best-effort)."""

        try:
            rules = rules or await self._config.get_commission_settings()
            if rules.merchant_bonus <= 0:
                return None

            async def _operation() -> CommissionTransaction:
                entry = CommissionTransaction(
                    user_id=agent_id,
                    amount=rules.merchant_bonus,
                    source_id=str(merchant_id),
                    description=f"Merchant recruitment bonus: {merchant_name}",
                    payout_status=PayoutStatusEnum.PENDING,
                )
                self._db.add(entry)
                await self._db.flush()
                return entry

            entry = await run_atomic(self._db, _operation, label="merchant_bonus")
        except Exception:
            logger.exception(
                "Failed to create merchant recruitment bonus",
                agent_id=str(agent_id),
                merchant_id=str(merchant_id),
            )
            return None

        logger.info(
            "Created merchant recruitment bonus",
            agent_id=str(agent_id),
            merchant_id=str(merchant_id),
            amount=entry.amount,
        )
        return entry

    async def update_payout_status(
        self,
        commission_id: UUID,
        status: PayoutStatusEnum,
    ) -> CommissionTransaction:
        """Settle a pending commission; completion credits the beneficiary's wallet."""

        async def _operation() -> CommissionTransaction:
            stmt = (
                select(CommissionTransaction)
                .where(CommissionTransaction.id == commission_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            commission = (await self._db.execute(stmt)).scalar_one_or_none()
            if commission is None:
                raise TransactionNotFoundError("Commission transaction not found.")
            COMMISSION_PAYOUT_MACHINE.ensure(commission.payout_status or PayoutStatusEnum.PENDING, status)
            commission.payout_status = status

            if status == PayoutStatusEnum.COMPLETED and commission.amount > 0:
                await self._db.execute(
                    update(User)
                    .where(User.id == commission.user_id)
                    .values(wallet_balance=User.wallet_balance + commission.amount)
                    .execution_options(synchronize_session=False)
                )
                self._db.add(
                    CreditTransaction(
                        user_id=commission.user_id,
                        amount=commission.amount,
                        source_id=str(commission.id),
                        description=f"Commission payout: {commission.description or commission.id}",
                    )
                )
            await self._db.flush()
            return commission

        commission = await run_atomic(self._db, _operation, label="commission_payout")
        logger.info(
            "Commission payout reviewed",
            commission_id=str(commission_id),
            status=status.value,
            user_id=str(commission.user_id),
        )
        return commission

    async def list_commissions(
        self,
        *,
        user_id: UUID | None = None,
        status: PayoutStatusEnum | None = None,
        limit: int = 100,
    ) -> list[CommissionTransaction]:
        stmt = select(CommissionTransaction).order_by(CommissionTransaction.created_at.desc()).limit(max(1, limit))
        if user_id is not None:
            stmt = stmt.where(CommissionTransaction.user_id == user_id)
        if status is not None:
            stmt = stmt.where(CommissionTransaction.payout_status == status)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())
