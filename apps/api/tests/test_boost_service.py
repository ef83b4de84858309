from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from factories import make_merchant
from rewards_api.core.errors import AlreadyReviewedError, BelowWithdrawalThresholdError
from rewards_api.models.boost import (
    BoostTransaction,
    BoostTransactionTypeEnum,
    BoostWithdrawal,
    BoostWithdrawalStatusEnum,
)
from rewards_api.models.merchant import Merchant
from rewards_api.services.boost import BoostService, compute_boost_credit
from rewards_api.services.configuration import DEFAULT_BOOST_RULES, ConfigurationService


async def _boost_balance(session_factory, merchant_id) -> Decimal:
    async with session_factory() as session:
        return Decimal(await session.scalar(select(Merchant.boost_balance).where(Merchant.id == merchant_id)))


def test_boost_credit_prefers_gross_amount() -> None:
    assert compute_boost_credit(DEFAULT_BOOST_RULES, 40_000, 50_000) == Decimal("10.00")
    final_rules = replace(DEFAULT_BOOST_RULES, apply_on="final")
    assert compute_boost_credit(final_rules, 40_000, 50_000) == Decimal("8.00")


def test_boost_credit_rounds_half_up_to_paise() -> None:
    assert compute_boost_credit(DEFAULT_BOOST_RULES, 12_345) == Decimal("2.47")


def test_boost_credit_is_zero_when_disabled() -> None:
    assert compute_boost_credit(replace(DEFAULT_BOOST_RULES, boost_enabled=False), 50_000) == Decimal("0")


@pytest.mark.asyncio
async def test_withdrawal_below_threshold_leaves_balance(session_factory) -> None:
    async with session_factory() as session:
        merchant = await make_merchant(session, boost_balance=Decimal("100.00"))
        merchant_id = merchant.id

        with pytest.raises(BelowWithdrawalThresholdError):
            await BoostService(session).request_withdrawal(merchant_id)

    assert await _boost_balance(session_factory, merchant_id) == Decimal("100.00")
    async with session_factory() as session:
        assert (await session.execute(select(BoostWithdrawal))).scalars().all() == []


@pytest.mark.asyncio
async def test_withdrawal_with_empty_balance_is_refused(session_factory) -> None:
    async with session_factory() as session:
        merchant = await make_merchant(session)
        with pytest.raises(BelowWithdrawalThresholdError, match="No boost balance"):
            await BoostService(session).request_withdrawal(merchant.id)


@pytest.mark.asyncio
async def test_rejecting_withdrawal_restores_balance(session_factory) -> None:
    async with session_factory() as session:
        merchant = await make_merchant(session, boost_balance=Decimal("600.00"))
        merchant_id = merchant.id
        service = BoostService(session)

        withdrawal = await service.request_withdrawal(merchant_id)
        withdrawal_id = withdrawal.id
        assert withdrawal.status == BoostWithdrawalStatusEnum.PENDING
        assert Decimal(withdrawal.amount) == Decimal("600.00")
        assert await _boost_balance(session_factory, merchant_id) == Decimal("0")

        rejected = await service.review_withdrawal(
            withdrawal_id, BoostWithdrawalStatusEnum.REJECTED, reviewed_by="ops", note="Bank details missing"
        )
        assert rejected.status == BoostWithdrawalStatusEnum.REJECTED
        assert await _boost_balance(session_factory, merchant_id) == Decimal("600.00")

        with pytest.raises(AlreadyReviewedError):
            await service.review_withdrawal(withdrawal_id, BoostWithdrawalStatusEnum.REJECTED)
        with pytest.raises(AlreadyReviewedError):
            await service.review_withdrawal(withdrawal_id, BoostWithdrawalStatusEnum.COMPLETED)

    assert await _boost_balance(session_factory, merchant_id) == Decimal("600.00")

    async with session_factory() as session:
        entries = await BoostService(session).get_transactions_for_merchant(merchant_id)
        by_type = sorted((entry.type, Decimal(entry.amount)) for entry in entries)
        assert by_type == [
            (BoostTransactionTypeEnum.CREDIT, Decimal("600.00")),
            (BoostTransactionTypeEnum.WITHDRAWAL, Decimal("-600.00")),
        ]


@pytest.mark.asyncio
async def test_completed_withdrawal_keeps_balance_at_zero(session_factory) -> None:
    async with session_factory() as session:
        merchant = await make_merchant(session, boost_balance=Decimal("555.00"))
        merchant_id = merchant.id
        service = BoostService(session)

        withdrawal = await service.request_withdrawal(merchant_id)
        completed = await service.review_withdrawal(withdrawal.id, BoostWithdrawalStatusEnum.COMPLETED)
        listed = await service.list_withdrawals(status=BoostWithdrawalStatusEnum.COMPLETED)

    assert completed.status == BoostWithdrawalStatusEnum.COMPLETED
    assert [item.id for item in listed] == [completed.id]
    assert await _boost_balance(session_factory, merchant_id) == Decimal("0")


@pytest.mark.asyncio
async def test_small_withdrawals_are_auto_approved(session_factory) -> None:
    async with session_factory() as session:
        await ConfigurationService(session).update_boost_settings(
            replace(DEFAULT_BOOST_RULES, min_redemption_threshold=Decimal("100"), auto_approve_threshold=Decimal("1000"))
        )
        merchant = await make_merchant(session, boost_balance=Decimal("600.00"))

        withdrawal = await BoostService(session).request_withdrawal(merchant.id)

    assert withdrawal.status == BoostWithdrawalStatusEnum.COMPLETED
    assert withdrawal.note == "Auto-approved"
    assert withdrawal.reviewed_at is not None


@pytest.mark.asyncio
async def test_credit_for_unknown_merchant_is_skipped(session_factory) -> None:
    async with session_factory() as session:
        credited = await BoostService(session).credit_boost(uuid4(), 50_000)
        assert credited == Decimal("0")
        assert (await session.execute(select(BoostTransaction))).scalars().all() == []
