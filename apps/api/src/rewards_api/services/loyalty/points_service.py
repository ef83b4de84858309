"""Purchase recording, referral point allocation and redemption."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import (
    AlreadyAllocatedError,
    InsufficientBalanceError,
    MerchantNotFoundError,
    OfferNotFoundError,
    PointsAllocationError,
    RewardsError,
    TransactionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from rewards_api.core.settings import settings
from rewards_api.db.transactions import run_atomic
from rewards_api.domain.slabs import SlabResolver, slab_category_key
from rewards_api.models.merchant import Merchant
from rewards_api.models.offer import Offer
from rewards_api.models.transaction import (
    LedgerTransaction,
    PurchaseTransaction,
    TransactionTypeEnum,
)
from rewards_api.models.user import User
from rewards_api.services.boost import BoostService
from rewards_api.services.configuration import CommissionRules, ConfigurationService
from rewards_api.services.ledger import LedgerService


GATEWAY_PURCHASE_DESCRIPTION = "In-store payment (PhonePe)"


@dataclass(frozen=True)
class PointsAllocation:
    buyer_points: int = 0
    parent_points: int = 0
    grandparent_points: int = 0
    parent_id: UUID | None = None
    grandparent_id: UUID | None = None

    @property
    def total(self) -> int:
        return self.buyer_points + self.parent_points + self.grandparent_points


@dataclass(frozen=True)
class PurchasePlan:
    """Validated purchase inputs plus the resolved point pool."""

    user_id: UUID
    merchant_id: UUID | None
    offer_id: UUID | None
    quantity: int | None
    amount_paise: int
    gross_amount_paise: int | None
    points_pool: int
    description: str
    points_label: str
    rules: CommissionRules


@dataclass
class PurchaseResult:
    purchase_transaction_id: UUID
    points_pool: int
    allocation: PointsAllocation = field(default_factory=PointsAllocation)
    boost_credited: Decimal = Decimal("0")
    allocation_error: str | None = None

    @property
    def success(self) -> bool:
        return self.allocation_error is None


# Scaled shares like 100/3 are inexact; snap to this grid before flooring
SHARE_PRECISION = Decimal("1e-9")


def _floor_share(total_points: int, share_pct: Decimal) -> int:
    exact = (Decimal(total_points) * share_pct / 100).quantize(SHARE_PRECISION)
    return int(exact.to_integral_value(rounding=ROUND_FLOOR))


def compute_points_split(
    total_points: int,
    rules: CommissionRules,
    *,
    has_parent: bool,
    has_grandparent: bool,
) -> tuple[int, int, int]:
    """Return ``(buyer, parent, grandparent)`` points for a pool.

    Shares are clamped and scaled to sum to 100. Each referral share is
    floored; whatever the ancestors do not receive (missing tier or flooring
    remainder) goes to the buyer, so the three parts always add up to
    ``total_points``.
    """

    if total_points <= 0:
        return 0, 0, 0
    shares = rules.normalized_shares()

    parent_points = _floor_share(total_points, shares.parent) if has_parent else 0
    grandparent_points = 0
    if has_parent and has_grandparent:
        grandparent_points = _floor_share(total_points, shares.grandparent)
    buyer_points = total_points - parent_points - grandparent_points
    return buyer_points, parent_points, grandparent_points


class PointsService:
    """Loyalty point flows: purchase recording, referral split and redemption."""

    def __init__(
        self,
        db_session: AsyncSession,
        config: ConfigurationService | None = None,
        boost: BoostService | None = None,
    ) -> None:
        self._db = db_session
        self._config = config or ConfigurationService(db_session)
        self._boost = boost or BoostService(db_session, self._config)
        self._ledger = LedgerService(db_session)
        self._slabs = SlabResolver(self._config)

    async def record_purchase(
        self,
        user_id: UUID,
        *,
        offer_id: UUID | None,
        merchant_id: UUID | None,
        quantity: int,
        total_amount_paise: int,
        gross_amount_paise: int | None = None,
    ) -> PurchaseResult:
        """Record a purchase, credit the merchant's boost and split its points.

        The purchase entry and boost credit commit first; the split runs in its
        own transaction and a failure there is reported on the result while the
        purchase stands.
        """

        plan = await self.plan_purchase(
            user_id,
            offer_id=offer_id,
            merchant_id=merchant_id,
            quantity=quantity,
            total_amount_paise=total_amount_paise,
            gross_amount_paise=gross_amount_paise,
        )
        purchase_id, boost_credited = await run_atomic(
            self._db, lambda: self.stage_purchase(plan), label="record_purchase"
        )
        return await self.complete_purchase(plan, purchase_id, boost_credited)

    async def record_purchase_from_gateway(
        self,
        user_id: UUID,
        merchant_id: UUID,
        amount_paise: int,
        *,
        offer_id: UUID | None = None,
        quantity: int | None = None,
    ) -> PurchaseResult:
        plan = await self.plan_gateway_purchase(
            user_id, merchant_id, amount_paise, offer_id=offer_id, quantity=quantity
        )
        purchase_id, boost_credited = await run_atomic(
            self._db, lambda: self.stage_purchase(plan), label="record_gateway_purchase"
        )
        return await self.complete_purchase(plan, purchase_id, boost_credited)

    async def plan_purchase(
        self,
        user_id: UUID,
        *,
        offer_id: UUID | None,
        merchant_id: UUID | None,
        quantity: int,
        total_amount_paise: int,
        gross_amount_paise: int | None = None,
    ) -> PurchasePlan:
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        if total_amount_paise is None or total_amount_paise < 0:
            raise ValidationError("Purchase amount cannot be negative.")

        await self._require_user(user_id)
        merchant = await self._get_merchant(merchant_id) if merchant_id else None
        if merchant_id and merchant is None:
            raise MerchantNotFoundError("Merchant not found.")
        offer = await self._db.get(Offer, offer_id) if offer_id else None
        if offer_id and offer is None:
            raise OfferNotFoundError("Offer not found.")

        pool = await self._resolve_points_pool(merchant, offer, quantity, total_amount_paise)
        rules = await self._config.get_commission_settings()

        points_label = f"{offer.title} x{quantity}" if offer is not None else f"order x{quantity}"
        return PurchasePlan(
            user_id=user_id,
            merchant_id=merchant_id,
            offer_id=offer_id,
            quantity=quantity,
            amount_paise=total_amount_paise,
            gross_amount_paise=gross_amount_paise,
            points_pool=pool,
            description=f"Purchase: {points_label}",
            points_label=points_label,
            rules=rules,
        )

    async def plan_gateway_purchase(
        self,
        user_id: UUID,
        merchant_id: UUID,
        amount_paise: int,
        *,
        offer_id: UUID | None = None,
        quantity: int | None = None,
    ) -> PurchasePlan:
        """Plan a gateway-settled purchase; offer-less payments still earn slab points."""

        if amount_paise is None or amount_paise < 0:
            raise ValidationError("Purchase amount cannot be negative.")

        if offer_id is not None and quantity is not None and quantity >= 1:
            if await self._db.get(Offer, offer_id) is not None:
                return await self.plan_purchase(
                    user_id,
                    offer_id=offer_id,
                    merchant_id=merchant_id,
                    quantity=quantity,
                    total_amount_paise=amount_paise,
                )
            logger.warning(
                "Gateway purchase references unknown offer; recording generic purchase",
                offer_id=str(offer_id),
                user_id=str(user_id),
            )

        await self._require_user(user_id)
        merchant = await self._get_merchant(merchant_id)
        if merchant is None:
            raise MerchantNotFoundError("Merchant not found.")
        pool = await self._resolve_points_pool(merchant, None, 1, amount_paise)
        rules = await self._config.get_commission_settings()
        return PurchasePlan(
            user_id=user_id,
            merchant_id=merchant_id,
            offer_id=None,
            quantity=None,
            amount_paise=amount_paise,
            gross_amount_paise=None,
            points_pool=pool,
            description=GATEWAY_PURCHASE_DESCRIPTION,
            points_label=GATEWAY_PURCHASE_DESCRIPTION,
            rules=rules,
        )

    async def stage_purchase(self, plan: PurchasePlan) -> tuple[UUID, Decimal]:
        """Write the purchase entry and boost credit without committing."""

        purchase = await self._ledger.create_transaction(
            TransactionTypeEnum.PURCHASE,
            user_id=plan.user_id,
            amount=plan.amount_paise,
            merchant_id=plan.merchant_id,
            offer_id=plan.offer_id,
            quantity=plan.quantity,
            points_pool=plan.points_pool,
            description=plan.description,
        )

        boost_credited = Decimal("0")
        if plan.merchant_id is not None:
            boost_credited = await self._boost.stage_credit(
                plan.merchant_id,
                plan.amount_paise,
                gross_amount_paise=plan.gross_amount_paise,
                source_id=str(purchase.id),
            )
        return purchase.id, boost_credited

    async def complete_purchase(
        self,
        plan: PurchasePlan,
        purchase_id: UUID,
        boost_credited: Decimal,
    ) -> PurchaseResult:
        """Split the committed purchase's points, capturing any failure on the result."""

        result = PurchaseResult(
            purchase_transaction_id=purchase_id,
            points_pool=plan.points_pool,
            boost_credited=boost_credited,
        )
        logger.info(
            "Recorded purchase",
            purchase_id=str(purchase_id),
            user_id=str(plan.user_id),
            merchant_id=str(plan.merchant_id) if plan.merchant_id else None,
            amount_paise=plan.amount_paise,
            points_pool=plan.points_pool,
        )
        if plan.points_pool <= 0:
            return result

        try:
            result.allocation = await self.allocate_points(
                plan.user_id,
                purchase_id,
                plan.points_pool,
                rules=plan.rules,
                label=plan.points_label,
            )
        except Exception as exc:  # purchase stands; caller may retry the split
            logger.exception(
                "Points allocation failed; purchase kept",
                purchase_id=str(purchase_id),
                user_id=str(plan.user_id),
            )
            result.allocation_error = exc.message if isinstance(exc, RewardsError) else "Points allocation failed."
        return result

    async def allocate_points(
        self,
        buyer_id: UUID,
        purchase_transaction_id: UUID,
        total_points: int,
        *,
        rules: CommissionRules | None = None,
        label: str | None = None,
    ) -> PointsAllocation:
        """Split ``total_points`` between buyer, parent and grandparent atomically."""

        if total_points <= 0:
            return PointsAllocation()
        rules = rules or await self._config.get_commission_settings()
        label = label or str(purchase_transaction_id)

        async def _operation() -> PointsAllocation:
            buyer = await self._lock_user(buyer_id)
            if buyer is None:
                raise UserNotFoundError("Buyer not found.")

            parent = None
            if buyer.referred_by is not None and buyer.referred_by != buyer.id:
                parent = await self._lock_user(buyer.referred_by)
            grandparent = None
            if (
                parent is not None
                and parent.referred_by is not None
                and parent.referred_by not in (buyer.id, parent.id)
            ):
                grandparent = await self._lock_user(parent.referred_by)

            buyer_points, parent_points, grandparent_points = compute_points_split(
                total_points,
                rules,
                has_parent=parent is not None,
                has_grandparent=grandparent is not None,
            )
            source_id = str(purchase_transaction_id)
            await self._credit_points(buyer.id, buyer_points, source_id, f"Purchase points: {label}")
            if parent is not None:
                await self._credit_points(
                    parent.id, parent_points, source_id, f"Referral points (L1) from purchase: {label}"
                )
            if grandparent is not None:
                await self._credit_points(
                    grandparent.id,
                    grandparent_points,
                    source_id,
                    f"Referral points (L2) from purchase: {label}",
                )
            return PointsAllocation(
                buyer_points=buyer_points,
                parent_points=parent_points,
                grandparent_points=grandparent_points,
                parent_id=parent.id if parent is not None else None,
                grandparent_id=grandparent.id if grandparent is not None else None,
            )

        try:
            allocation = await run_atomic(self._db, _operation, label="allocate_points")
        except RewardsError:
            raise
        except Exception as exc:
            raise PointsAllocationError(f"Points allocation failed: {exc}") from exc

        logger.info(
            "Allocated purchase points",
            purchase_id=str(purchase_transaction_id),
            buyer_id=str(buyer_id),
            buyer_points=allocation.buyer_points,
            parent_points=allocation.parent_points,
            grandparent_points=allocation.grandparent_points,
        )
        return allocation

    async def retry_allocation(self, purchase_transaction_id: UUID) -> PointsAllocation:
        """Re-run the split for a purchase whose allocation failed."""

        purchase = await self._db.get(PurchaseTransaction, purchase_transaction_id)
        if purchase is None:
            raise TransactionNotFoundError("Purchase transaction not found.")

        existing = await self._db.scalar(
            select(func.count())
            .select_from(LedgerTransaction)
            .where(
                LedgerTransaction.type == TransactionTypeEnum.POINTS_EARNED,
                LedgerTransaction.source_id == str(purchase_transaction_id),
            )
        )
        if existing:
            raise AlreadyAllocatedError("Points for this purchase have already been allocated.")

        return await self.allocate_points(
            purchase.user_id,
            purchase.id,
            purchase.points_pool or 0,
            label=(purchase.description or "").removeprefix("Purchase: "),
        )

    async def redeem_points(
        self,
        user_id: UUID,
        points: int,
        *,
        description: str,
        source_id: str | None = None,
    ) -> int:
        """Deduct points and ledger the redemption; returns the remaining balance."""

        if points is None or points < 1:
            raise ValidationError("Points to redeem must be at least 1.")

        async def _operation() -> int:
            if await self._lock_user(user_id) is None:
                raise UserNotFoundError("User not found.")
            result = await self._db.execute(
                update(User)
                .where(User.id == user_id, User.points_balance >= points)
                .values(points_balance=User.points_balance - points)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InsufficientBalanceError("Insufficient points balance.")
            await self._ledger.create_transaction(
                TransactionTypeEnum.POINTS_REDEEMED,
                user_id=user_id,
                points_redeemed=points,
                source_id=source_id,
                description=description,
            )
            return await self._db.scalar(select(User.points_balance).where(User.id == user_id))

        remaining = await run_atomic(self._db, _operation, label="redeem_points")
        logger.info("Redeemed points", user_id=str(user_id), points=points, remaining=remaining)
        return remaining

    async def get_user_points(self, user_id: UUID) -> int:
        balance = await self._db.scalar(select(User.points_balance).where(User.id == user_id))
        if balance is None:
            raise UserNotFoundError("User not found.")
        return int(balance)

    async def credit_points(
        self,
        user_id: UUID,
        points: int,
        *,
        source_id: str | None,
        description: str,
    ) -> None:
        """Stage a points credit and its ledger entry (flush only)."""

        await self._credit_points(user_id, points, source_id, description)

    async def _resolve_points_pool(
        self,
        merchant: Merchant | None,
        offer: Offer | None,
        quantity: int,
        amount_paise: int,
    ) -> int:
        if merchant is not None:
            category_key = slab_category_key(merchant.industry, merchant.category)
            slab_points = await self._slabs.resolve_slab_points(amount_paise, category_key)
            if slab_points is not None:
                return slab_points
        if offer is None:
            return 0
        per_unit = offer.loyalty_points
        if per_unit is None:
            per_unit = settings.default_offer_loyalty_points
        return max(0, int(per_unit) * quantity)

    async def _credit_points(self, user_id: UUID, points: int, source_id: str | None, description: str) -> None:
        if points <= 0:
            return
        await self._db.execute(
            update(User)
            .where(User.id == user_id)
            .values(points_balance=User.points_balance + points)
            .execution_options(synchronize_session=False)
        )
        await self._ledger.create_transaction(
            TransactionTypeEnum.POINTS_EARNED,
            user_id=user_id,
            points_earned=points,
            source_id=source_id,
            description=description,
        )

    async def _require_user(self, user_id: UUID) -> User:
        user = await self._db.get(User, user_id)
        if user is None:
            raise UserNotFoundError("User not found.")
        return user

    async def _get_merchant(self, merchant_id: UUID) -> Merchant | None:
        return await self._db.get(Merchant, merchant_id)

    async def _lock_user(self, user_id: UUID) -> User | None:
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()
