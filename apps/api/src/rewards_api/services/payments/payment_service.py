"""PhonePe payment orders and webhook reconciliation."""

from __future__ import annotations

import json
import secrets
import string
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rewards_api.core.errors import (
    MerchantNotFoundError,
    NotFoundError,
    OfferNotFoundError,
    PaymentGatewayError,
    PaymentGatewayNotConfiguredError,
    RewardsError,
    UserNotFoundError,
    ValidationError,
)
from rewards_api.core.settings import Settings, settings as default_settings
from rewards_api.db.transactions import run_atomic
from rewards_api.domain.transitions import PAYMENT_ORDER_MACHINE
from rewards_api.models.merchant import Merchant
from rewards_api.models.offer import Offer
from rewards_api.models.payment_order import PaymentOrder, PaymentOrderStatusEnum
from rewards_api.models.user import User
from rewards_api.observability.payments import WebhookOutcome, get_payment_store
from rewards_api.services.loyalty import PointsService

from .phonepe_client import PhonePeClient, webhook_signature_matches


MIN_AMOUNT_PAISE = 100
MERCHANT_ORDER_ID_PREFIX = "ppg_"
SUCCESS_EVENT_TYPES = frozenset({"CHECKOUT_ORDER_COMPLETED", "PG_ORDER_COMPLETED"})
_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def to_base36(value: int) -> str:
    if value <= 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_merchant_order_id(user_id: UUID | str) -> str:
    """``ppg_<user prefix>_<base36 epoch ms>_<6 random base36 chars>``."""

    suffix = "".join(secrets.choice(_BASE36_ALPHABET) for _ in range(6))
    return f"{MERCHANT_ORDER_ID_PREFIX}{str(user_id)[:8]}_{to_base36(int(time.time() * 1000))}_{suffix}"


@dataclass
class WebhookResult:
    ok: bool
    status_code: int
    error: Optional[str] = None


@dataclass
class PaymentOrderSession:
    merchant_order_id: str
    redirect_url: str
    intent_url: str
    gateway_order_id: Optional[str]
    expire_at: Optional[int]


@dataclass
class PaymentOrderStatus:
    status: PaymentOrderStatusEnum
    error_code: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status.value}
        if self.error_code:
            payload["errorCode"] = self.error_code
        return payload


def gateway_amount_matches(value: Any, expected_paise: int) -> bool:
    """True when the gateway omitted the amount or reported exactly ``expected_paise``.

    Fractional or malformed amounts never match; they are not truncated.
    """

    if value is None or value == "":
        return True
    try:
        amount = Decimal(str(value))
    except (ArithmeticError, ValueError):
        return False
    if not amount.is_finite() or amount != amount.to_integral_value():
        return False
    return int(amount) == expected_paise


class PaymentService:
    """Creates gateway orders and settles them exactly once from webhooks."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        gateway: PhonePeClient | None = None,
        points: PointsService | None = None,
        config: Settings | None = None,
    ) -> None:
        self.db = db_session
        self._settings = config or default_settings
        self.gateway = gateway or PhonePeClient(config=self._settings)
        self.points = points or PointsService(db_session)

    async def create_payment_order(
        self,
        *,
        amount_paise: int,
        user_id: UUID,
        merchant_id: UUID,
        redirect_url: str | None = None,
        callback_url: str | None = None,
        notes: str | None = None,
        offer_id: UUID | None = None,
        quantity: int | None = None,
    ) -> PaymentOrderSession:
        """Persist a PENDING order, then open a hosted payment session for it."""

        store = get_payment_store()
        if not self.gateway.configured:
            store.record_order_failure("not_configured")
            raise PaymentGatewayNotConfiguredError("PhonePe is not configured")
        if amount_paise is None or amount_paise < MIN_AMOUNT_PAISE:
            raise ValidationError(f"Minimum amount is {MIN_AMOUNT_PAISE} paise (₹1)")
        if quantity is not None and quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        if await self.db.get(User, user_id) is None:
            raise UserNotFoundError("User not found.")
        if await self.db.get(Merchant, merchant_id) is None:
            raise MerchantNotFoundError("Merchant not found.")
        if offer_id is not None and await self.db.get(Offer, offer_id) is None:
            raise OfferNotFoundError("Offer not found.")

        merchant_order_id = generate_merchant_order_id(user_id)
        redirect = redirect_url or callback_url or f"{self._settings.frontend_url}/member/offline-payment?payment=phonepe"
        callback = callback_url or f"{self._settings.api_base_url.rstrip('/')}/api/v1/payments/phonepe/webhook"

        async def _persist() -> None:
            self.db.add(
                PaymentOrder(
                    merchant_order_id=merchant_order_id,
                    user_id=user_id,
                    merchant_id=merchant_id,
                    amount_paise=amount_paise,
                    offer_id=offer_id,
                    quantity=quantity,
                    notes=notes,
                    status=PaymentOrderStatusEnum.PENDING,
                )
            )
            await self.db.flush()

        await run_atomic(self.db, _persist, label="payment_order_create")

        try:
            session = await self.gateway.initiate_payment(
                merchant_order_id=merchant_order_id,
                amount_paise=amount_paise,
                redirect_url=redirect,
                callback_url=callback,
                message=notes,
            )
        except PaymentGatewayError as exc:
            store.record_order_failure(exc.message)
            await self._mark_failed(merchant_order_id, "INIT_FAILED")
            logger.error(
                "PhonePe payment init failed",
                merchant_order_id=merchant_order_id,
                error=exc.message,
            )
            raise

        store.record_order_created(merchant_order_id)
        logger.info(
            "Created PhonePe payment order",
            merchant_order_id=merchant_order_id,
            user_id=str(user_id),
            merchant_id=str(merchant_id),
            amount_paise=amount_paise,
        )
        return PaymentOrderSession(
            merchant_order_id=merchant_order_id,
            redirect_url=session.redirect_url,
            intent_url=session.redirect_url,
            gateway_order_id=session.gateway_order_id,
            expire_at=session.expire_at,
        )

    async def get_payment_order_status(self, merchant_order_id: str) -> PaymentOrderStatus:
        order = await self._get_order(merchant_order_id)
        if order is None:
            return PaymentOrderStatus(status=PaymentOrderStatusEnum.PENDING)
        return PaymentOrderStatus(status=order.status, error_code=order.error_code)

    def verify_signature(self, raw_body: bytes, signature_header: str | None) -> WebhookResult | None:
        """Return a rejection when the webhook must not be processed, else ``None``."""

        username = self._settings.phonepe_webhook_username
        password = self._settings.phonepe_webhook_password
        if username and password:
            if webhook_signature_matches(raw_body, signature_header, username, password):
                return None
            return WebhookResult(ok=False, status_code=401, error="Invalid webhook signature")
        if self._settings.environment == "production":
            logger.error("Rejecting PhonePe webhook: webhook credentials are not configured")
            return WebhookResult(ok=False, status_code=401, error="Webhook verification is not configured")
        logger.warning("PhonePe webhook credentials missing; skipping signature verification")
        return None

    async def handle_webhook(self, raw_body: bytes, signature_header: str | None) -> WebhookResult:
        """Verify, classify and reconcile one gateway event.

        Non-success events fail a PENDING order and are acknowledged. The first
        verified success claims the order and records the purchase in one
        transaction; repeats are acknowledged without side effects.
        """

        rejection = self.verify_signature(raw_body, signature_header)
        if rejection is not None:
            return self._finish("unknown", "rejected", rejection)

        try:
            payload = json.loads(raw_body or b"")
        except ValueError:
            return self._finish("unknown", "rejected", WebhookResult(ok=False, status_code=400, error="Invalid JSON"))
        if not isinstance(payload, dict):
            return self._finish("unknown", "rejected", WebhookResult(ok=False, status_code=400, error="Invalid JSON"))

        data = payload.get("payload") if isinstance(payload.get("payload"), dict) else payload
        state = data.get("state")
        event_type = payload.get("type") or state or "unknown"
        merchant_order_id = (
            data.get("originalMerchantOrderId") or data.get("merchantOrderId") or payload.get("merchantOrderId")
        )
        if not merchant_order_id:
            return self._finish(
                event_type,
                "rejected",
                WebhookResult(ok=False, status_code=400, error="Missing merchant order id"),
            )
        merchant_order_id = str(merchant_order_id)

        is_success = event_type in SUCCESS_EVENT_TYPES or state == "COMPLETED"
        if not is_success:
            error_code = data.get("errorCode") or event_type
            await self._mark_failed(merchant_order_id, str(error_code))
            return self._finish(event_type, "failed", WebhookResult(ok=True, status_code=200), merchant_order_id)

        order = await self._get_order(merchant_order_id)
        if order is None:
            return self._finish(
                event_type,
                "rejected",
                WebhookResult(ok=False, status_code=400, error="Order not found"),
                merchant_order_id,
            )
        if order.status == PaymentOrderStatusEnum.SUCCESS:
            return self._finish(event_type, "duplicate", WebhookResult(ok=True, status_code=200), merchant_order_id)
        if order.status == PaymentOrderStatusEnum.FAILED:
            logger.warning(
                "Success event for a failed PhonePe order; needs manual reconciliation",
                merchant_order_id=merchant_order_id,
                error_code=order.error_code,
            )
            return self._finish(
                event_type,
                "rejected",
                WebhookResult(ok=True, status_code=200, error="Order already failed"),
                merchant_order_id,
            )

        gateway_amount = data.get("amount")
        if not gateway_amount_matches(gateway_amount, order.amount_paise):
            logger.warning(
                "PhonePe amount mismatch",
                merchant_order_id=merchant_order_id,
                gateway_amount=gateway_amount,
                order_amount=order.amount_paise,
            )
            return self._finish(
                event_type,
                "rejected",
                WebhookResult(ok=False, status_code=400, error="Amount mismatch"),
                merchant_order_id,
            )

        try:
            plan = await self.points.plan_gateway_purchase(
                order.user_id,
                order.merchant_id,
                order.amount_paise,
                offer_id=order.offer_id,
                quantity=order.quantity,
            )
        except RewardsError as exc:
            status_code = 400 if isinstance(exc, (NotFoundError, ValidationError)) else 500
            return self._finish(
                event_type,
                "rejected",
                WebhookResult(ok=False, status_code=status_code, error=exc.message),
                merchant_order_id,
            )

        gateway_order_id = data.get("orderId")

        async def _settle():
            claimed = await self._transition(
                merchant_order_id,
                PaymentOrderStatusEnum.PENDING,
                PaymentOrderStatusEnum.SUCCESS,
                gateway_order_id=str(gateway_order_id) if gateway_order_id else None,
                error_code=None,
            )
            if not claimed:
                return None
            return await self.points.stage_purchase(plan)

        try:
            staged = await run_atomic(self.db, _settle, label="phonepe_settlement")
        except Exception:
            logger.exception("Failed to record PhonePe purchase", merchant_order_id=merchant_order_id)
            return self._finish(
                event_type,
                "rejected",
                WebhookResult(ok=False, status_code=500, error="Failed to record purchase"),
                merchant_order_id,
            )

        if staged is None:
            return self._finish(event_type, "duplicate", WebhookResult(ok=True, status_code=200), merchant_order_id)

        purchase_id, boost_credited = staged
        result = await self.points.complete_purchase(plan, purchase_id, boost_credited)
        if result.allocation_error:
            logger.warning(
                "PhonePe order settled but points allocation failed",
                merchant_order_id=merchant_order_id,
                purchase_id=str(purchase_id),
                error=result.allocation_error,
            )
        logger.info(
            "Settled PhonePe order",
            merchant_order_id=merchant_order_id,
            purchase_id=str(purchase_id),
            gateway_order_id=gateway_order_id,
        )
        return self._finish(event_type, "processed", WebhookResult(ok=True, status_code=200), merchant_order_id)

    async def _get_order(self, merchant_order_id: str) -> PaymentOrder | None:
        stmt = (
            select(PaymentOrder)
            .where(PaymentOrder.merchant_order_id == merchant_order_id)
            .execution_options(populate_existing=True)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _transition(
        self,
        merchant_order_id: str,
        current: PaymentOrderStatusEnum,
        target: PaymentOrderStatusEnum,
        **values: Any,
    ) -> bool:
        """Conditionally move an order out of ``current``; False when another writer got there first."""

        PAYMENT_ORDER_MACHINE.ensure(current, target)
        result = await self.db.execute(
            update(PaymentOrder)
            .where(PaymentOrder.merchant_order_id == merchant_order_id, PaymentOrder.status == current)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def _mark_failed(self, merchant_order_id: str, error_code: str) -> bool:
        async def _operation() -> bool:
            return await self._transition(
                merchant_order_id,
                PaymentOrderStatusEnum.PENDING,
                PaymentOrderStatusEnum.FAILED,
                error_code=error_code[:128],
            )

        failed = await run_atomic(self.db, _operation, label="payment_order_failed")
        if failed:
            logger.info("Marked PhonePe order failed", merchant_order_id=merchant_order_id, error_code=error_code)
        return failed

    def _finish(
        self,
        event_type: str,
        outcome: WebhookOutcome,
        result: WebhookResult,
        merchant_order_id: str | None = None,
    ) -> WebhookResult:
        get_payment_store().record_webhook(
            event_type,
            outcome,
            merchant_order_id=merchant_order_id,
            status_code=result.status_code,
            error=result.error,
        )
        if not result.ok:
            logger.warning(
                "Rejected PhonePe webhook",
                event_type=event_type,
                merchant_order_id=merchant_order_id,
                status_code=result.status_code,
                error=result.error,
            )
        return result
