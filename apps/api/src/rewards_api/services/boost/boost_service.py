"""Merchant boost accrual and withdrawal engine."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import (
    BelowWithdrawalThresholdError,
    MerchantNotFoundError,
    WithdrawalNotFoundError,
)
from rewards_api.db.transactions import run_atomic
from rewards_api.domain.transitions import BOOST_WITHDRAWAL_MACHINE
from rewards_api.models.boost import (
    BoostTransaction,
    BoostTransactionTypeEnum,
    BoostWithdrawal,
    BoostWithdrawalStatusEnum,
)
from rewards_api.models.merchant import Merchant
from rewards_api.services.configuration import BoostRules, ConfigurationService


CENT = Decimal("0.01")
ZERO = Decimal("0")


def compute_boost_credit(
    rules: BoostRules,
    amount_paise: int,
    gross_amount_paise: int | None = None,
) -> Decimal:
    """Rupee boost for a settled amount; zero when boost is off or nothing was paid."""

    if not rules.boost_enabled or rules.boost_percentage <= 0 or amount_paise <= 0:
        return ZERO
    eligible = amount_paise
    if rules.apply_on == "gross" and gross_amount_paise is not None and gross_amount_paise > 0:
        eligible = gross_amount_paise
    credited = (Decimal(eligible) / 100) * (rules.boost_percentage / 100)
    return credited.quantize(CENT, rounding=ROUND_HALF_UP)


class BoostService:
    """Credits boost on purchases and moves balances through withdrawal review."""

    def __init__(self, db_session: AsyncSession, config: ConfigurationService | None = None) -> None:
        self._db = db_session
        self._config = config or ConfigurationService(db_session)

    async def stage_credit(
        self,
        merchant_id: UUID,
        amount_paise: int,
        *,
        gross_amount_paise: int | None = None,
        source_id: str | None = None,
        rules: BoostRules | None = None,
    ) -> Decimal:
        """Increment the merchant's boost balances and write the credit record (flush only)."""

        rules = rules or await self._config.get_boost_settings()
        credited = compute_boost_credit(rules, amount_paise, gross_amount_paise)
        if credited <= 0:
            return ZERO

        result = await self._db.execute(
            update(Merchant)
            .where(Merchant.id == merchant_id)
            .values(
                boost_balance=Merchant.boost_balance + credited,
                total_boost_earned=Merchant.total_boost_earned + credited,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("Skipping boost credit for unknown merchant", merchant_id=str(merchant_id))
            return ZERO

        self._db.add(
            BoostTransaction(
                merchant_id=merchant_id,
                amount=credited,
                type=BoostTransactionTypeEnum.CREDIT,
                source_id=source_id,
                description="Purchase boost",
            )
        )
        await self._db.flush()
        logger.info(
            "Credited merchant boost",
            merchant_id=str(merchant_id),
            credited=str(credited),
            source_id=source_id,
        )
        return credited

    async def credit_boost(
        self,
        merchant_id: UUID,
        amount_paise: int,
        *,
        gross_amount_paise: int | None = None,
        source_id: str | None = None,
    ) -> Decimal:
        rules = await self._config.get_boost_settings()

        async def _operation() -> Decimal:
            return await self.stage_credit(
                merchant_id,
                amount_paise,
                gross_amount_paise=gross_amount_paise,
                source_id=source_id,
                rules=rules,
            )

        return await run_atomic(self._db, _operation, label="boost_credit")

    async def request_withdrawal(self, merchant_id: UUID) -> BoostWithdrawal:
        """Move the merchant's whole boost balance into a withdrawal request."""

        rules = await self._config.get_boost_settings()

        async def _operation() -> BoostWithdrawal:
            merchant = await self._lock_merchant(merchant_id)
            balance = Decimal(merchant.boost_balance or 0)
            if balance <= 0:
                raise BelowWithdrawalThresholdError("No boost balance is available to withdraw.")
            if balance < rules.min_redemption_threshold:
                raise BelowWithdrawalThresholdError(
                    f"Balance ₹{balance:.2f} is below minimum withdrawal threshold "
                    f"₹{rules.min_redemption_threshold:.2f}."
                )

            auto_approve = rules.auto_approve_threshold > 0 and balance <= rules.auto_approve_threshold
            now = datetime.now(timezone.utc)
            withdrawal = BoostWithdrawal(
                merchant_id=merchant_id,
                amount=balance,
                status=(
                    BoostWithdrawalStatusEnum.COMPLETED if auto_approve else BoostWithdrawalStatusEnum.PENDING
                ),
                reviewed_at=now if auto_approve else None,
                note="Auto-approved" if auto_approve else None,
            )
            self._db.add(withdrawal)
            merchant.boost_balance = ZERO
            await self._db.flush()

            self._db.add(
                BoostTransaction(
                    merchant_id=merchant_id,
                    amount=-balance,
                    type=BoostTransactionTypeEnum.WITHDRAWAL,
                    source_id=str(withdrawal.id),
                    description="Withdrawal request",
                )
            )
            await self._db.flush()
            return withdrawal

        withdrawal = await run_atomic(self._db, _operation, label="boost_withdrawal_request")
        logger.info(
            "Boost withdrawal requested",
            merchant_id=str(merchant_id),
            withdrawal_id=str(withdrawal.id),
            amount=str(withdrawal.amount),
            status=withdrawal.status.value,
        )
        return withdrawal

    async def review_withdrawal(
        self,
        withdrawal_id: UUID,
        status: BoostWithdrawalStatusEnum,
        *,
        reviewed_by: str | None = None,
        note: str | None = None,
    ) -> BoostWithdrawal:
        """Complete or reject a pending withdrawal; rejection refunds the merchant."""

        async def _operation() -> BoostWithdrawal:
            stmt = (
                select(BoostWithdrawal)
                .where(BoostWithdrawal.id == withdrawal_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            withdrawal = (await self._db.execute(stmt)).scalar_one_or_none()
            if withdrawal is None:
                raise WithdrawalNotFoundError("Withdrawal not found.")
            BOOST_WITHDRAWAL_MACHINE.ensure(withdrawal.status, status)

            withdrawal.status = status
            withdrawal.reviewed_at = datetime.now(timezone.utc)
            withdrawal.reviewed_by = reviewed_by
            withdrawal.note = note

            if status == BoostWithdrawalStatusEnum.REJECTED:
                amount = Decimal(withdrawal.amount)
                await self._db.execute(
                    update(Merchant)
                    .where(Merchant.id == withdrawal.merchant_id)
                    .values(boost_balance=Merchant.boost_balance + amount)
                    .execution_options(synchronize_session=False)
                )
                self._db.add(
                    BoostTransaction(
                        merchant_id=withdrawal.merchant_id,
                        amount=amount,
                        type=BoostTransactionTypeEnum.CREDIT,
                        source_id=str(withdrawal.id),
                        description="Refund (withdrawal rejected)",
                    )
                )
            await self._db.flush()
            return withdrawal

        withdrawal = await run_atomic(self._db, _operation, label="boost_withdrawal_review")
        logger.info(
            "Boost withdrawal reviewed",
            withdrawal_id=str(withdrawal_id),
            status=status.value,
            reviewed_by=reviewed_by,
        )
        return withdrawal

    async def list_withdrawals(
        self,
        *,
        limit: int = 100,
        status: BoostWithdrawalStatusEnum | None = None,
    ) -> list[BoostWithdrawal]:
        stmt = select(BoostWithdrawal).order_by(BoostWithdrawal.created_at.desc()).limit(max(1, limit))
        if status is not None:
            stmt = stmt.where(BoostWithdrawal.status == status)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def get_transactions_for_merchant(self, merchant_id: UUID, *, limit: int = 50) -> list[BoostTransaction]:
        stmt = (
            select(BoostTransaction)
            .where(BoostTransaction.merchant_id == merchant_id)
            .order_by(BoostTransaction.created_at.desc())
            .limit(max(1, limit))
        )
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def _lock_merchant(self, merchant_id: UUID) -> Merchant:
        stmt = (
            select(Merchant)
            .where(Merchant.id == merchant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        merchant = (await self._db.execute(stmt)).scalar_one_or_none()
        if merchant is None:
            raise MerchantNotFoundError("Merchant not found.")
        return merchant
