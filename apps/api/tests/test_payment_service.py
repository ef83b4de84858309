from __future__ import annotations

import json
from dataclasses import replace
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from factories import make_merchant, make_offer, make_user
from rewards_api.core.errors import PaymentGatewayError, PaymentGatewayNotConfiguredError, ValidationError
from rewards_api.core.settings import Settings
from rewards_api.models.merchant import Merchant
from rewards_api.models.payment_order import PaymentOrder, PaymentOrderStatusEnum
from rewards_api.models.transaction import PurchaseTransaction
from rewards_api.models.user import User
from rewards_api.observability.payments import get_payment_store
from rewards_api.services.payments import PaymentService, PhonePeClient, compute_webhook_digest
from rewards_api.services.configuration import DEFAULT_COMMISSION_RULES, ConfigurationService
from rewards_api.services.payments.payment_service import gateway_amount_matches, generate_merchant_order_id


GATEWAY_RESPONSE = {
    "success": True,
    "data": {
        "orderId": "OMO-123",
        "expireAt": 1_900_000_000_000,
        "instrumentResponse": {"redirectInfo": {"url": "https://pay.example.test/checkout/OMO-123"}},
    },
}


def _config(**overrides) -> Settings:
    values = {
        "phonepe_client_id": "merchant-123",
        "phonepe_client_secret": "secret",
        "phonepe_webhook_username": "hook-user",
        "phonepe_webhook_password": "hook-pass",
        "phonepe_base_url": "https://phonepe.example.test/apis",
        "frontend_url": "https://app.example.test",
    }
    values.update(overrides)
    return Settings(**values)


def _gateway(config: Settings, handler) -> PhonePeClient:
    return PhonePeClient(config=config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _ok_handler(captured: list[httpx.Request] | None = None):
    async def handler(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return httpx.Response(200, json=GATEWAY_RESPONSE)

    return handler


def _webhook(merchant_order_id: str, *, event_type: str = "CHECKOUT_ORDER_COMPLETED", **payload) -> bytes:
    body = {"type": event_type, "payload": {"merchantOrderId": merchant_order_id, "orderId": "OMO-123", **payload}}
    return json.dumps(body).encode("utf-8")


def _sign(body: bytes, config: Settings) -> str:
    return compute_webhook_digest(body, config.phonepe_webhook_username, config.phonepe_webhook_password)


async def _create_order(session, config: Settings, *, amount_paise: int = 50_000, with_offer: bool = True):
    buyer = await make_user(session)
    merchant = await make_merchant(session)
    offer = await make_offer(session, merchant, loyalty_points=25) if with_offer else None
    service = PaymentService(session, gateway=_gateway(config, _ok_handler()), config=config)
    order = await service.create_payment_order(
        amount_paise=amount_paise,
        user_id=buyer.id,
        merchant_id=merchant.id,
        offer_id=offer.id if offer else None,
        quantity=2 if offer else None,
    )
    return buyer.id, merchant.id, order.merchant_order_id


def test_merchant_order_id_shape() -> None:
    order_id = generate_merchant_order_id("0f3c9a1e-aaaa-bbbb-cccc-000000000000")
    prefix, user_part, millis, suffix = order_id.split("_")
    assert prefix == "ppg"
    assert user_part == "0f3c9a1e"
    assert millis.isalnum() and millis == millis.lower()
    assert len(suffix) == 6


@pytest.mark.asyncio
async def test_create_order_persists_pending_and_calls_gateway(session_factory) -> None:
    config = _config()
    captured: list[httpx.Request] = []
    async with session_factory() as session:
        buyer = await make_user(session)
        merchant = await make_merchant(session)
        service = PaymentService(session, gateway=_gateway(config, _ok_handler(captured)), config=config)

        order = await service.create_payment_order(amount_paise=25_000, user_id=buyer.id, merchant_id=merchant.id)

    assert order.redirect_url == "https://pay.example.test/checkout/OMO-123"
    assert order.intent_url == order.redirect_url
    assert order.gateway_order_id == "OMO-123"
    assert order.merchant_order_id.startswith("ppg_")

    request = captured[0]
    assert str(request.url) == "https://phonepe.example.test/apis/v3/transaction/init"
    sent = json.loads(request.content)
    assert sent["amount"] == 25_000
    assert sent["merchantTransactionId"] == order.merchant_order_id
    assert sent["redirectUrl"] == "https://app.example.test/member/offline-payment?payment=phonepe"

    async with session_factory() as session:
        stored = (await session.execute(select(PaymentOrder))).scalar_one()
        assert stored.status == PaymentOrderStatusEnum.PENDING
        assert stored.amount_paise == 25_000
    assert get_payment_store().snapshot().order_totals == {"created": 1}


@pytest.mark.asyncio
async def test_create_order_requires_configuration_and_minimum(session_factory) -> None:
    async with session_factory() as session:
        buyer = await make_user(session)
        merchant = await make_merchant(session)
        unconfigured = _config(phonepe_client_id="", phonepe_client_secret="")
        with pytest.raises(PaymentGatewayNotConfiguredError):
            await PaymentService(session, config=unconfigured).create_payment_order(
                amount_paise=10_000, user_id=buyer.id, merchant_id=merchant.id
            )

        config = _config()
        with pytest.raises(ValidationError):
            await PaymentService(session, gateway=_gateway(config, _ok_handler()), config=config).create_payment_order(
                amount_paise=99, user_id=buyer.id, merchant_id=merchant.id
            )

    async with session_factory() as session:
        assert (await session.execute(select(PaymentOrder))).scalars().all() == []


@pytest.mark.asyncio
async def test_gateway_failure_marks_order_failed(session_factory) -> None:
    config = _config()

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream unavailable")

    async with session_factory() as session:
        buyer = await make_user(session)
        merchant = await make_merchant(session)
        service = PaymentService(session, gateway=_gateway(config, handler), config=config)
        with pytest.raises(PaymentGatewayError):
            await service.create_payment_order(amount_paise=10_000, user_id=buyer.id, merchant_id=merchant.id)

    async with session_factory() as session:
        stored = (await session.execute(select(PaymentOrder))).scalar_one()
        assert stored.status == PaymentOrderStatusEnum.FAILED
        assert stored.error_code == "INIT_FAILED"


@pytest.mark.asyncio
async def test_success_webhook_settles_exactly_once(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        buyer_id, merchant_id, merchant_order_id = await _create_order(session, config)

    body = _webhook(merchant_order_id, amount=50_000, state="COMPLETED")
    for _ in range(2):
        async with session_factory() as session:
            result = await PaymentService(session, config=config).handle_webhook(body, _sign(body, config))
            assert result.ok and result.status_code == 200

    async with session_factory() as session:
        order = (await session.execute(select(PaymentOrder))).scalar_one()
        assert order.status == PaymentOrderStatusEnum.SUCCESS
        assert order.gateway_order_id == "OMO-123"

        purchases = (await session.execute(select(PurchaseTransaction))).scalars().all()
        assert len(purchases) == 1
        assert purchases[0].points_pool == 50
        assert await session.scalar(select(User.points_balance).where(User.id == buyer_id)) == 50
        boost = await session.scalar(select(Merchant.boost_balance).where(Merchant.id == merchant_id))
        assert Decimal(boost) == Decimal("10.00")

    totals = get_payment_store().snapshot().webhook_totals
    assert totals["processed"] == {"CHECKOUT_ORDER_COMPLETED": 1}
    assert totals["duplicate"] == {"CHECKOUT_ORDER_COMPLETED": 1}


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        _, _, merchant_order_id = await _create_order(session, config)
        body = _webhook(merchant_order_id)
        result = await PaymentService(session, config=config).handle_webhook(body, "not-a-digest")

    assert (result.ok, result.status_code) == (False, 401)
    async with session_factory() as session:
        order = (await session.execute(select(PaymentOrder))).scalar_one()
        assert order.status == PaymentOrderStatusEnum.PENDING


@pytest.mark.asyncio
async def test_webhook_requires_credentials_in_production(session_factory) -> None:
    config = _config(environment="production", phonepe_webhook_username="", phonepe_webhook_password="")
    async with session_factory() as session:
        result = await PaymentService(session, config=config).handle_webhook(_webhook("ppg_missing"), None)

    assert result.status_code == 401


@pytest.mark.asyncio
async def test_webhook_rejects_unknown_order_and_bad_json(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        service = PaymentService(session, config=config)
        missing = _webhook("ppg_unknown_order")
        result = await service.handle_webhook(missing, _sign(missing, config))
        assert (result.ok, result.status_code, result.error) == (False, 400, "Order not found")

        garbage = b"{not json"
        result = await service.handle_webhook(garbage, _sign(garbage, config))
        assert (result.ok, result.status_code) == (False, 400)

        no_id = json.dumps({"type": "CHECKOUT_ORDER_COMPLETED", "payload": {}}).encode()
        result = await service.handle_webhook(no_id, _sign(no_id, config))
        assert result.error == "Missing merchant order id"


@pytest.mark.asyncio
async def test_webhook_amount_mismatch_leaves_order_pending(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        _, _, merchant_order_id = await _create_order(session, config)
        body = _webhook(merchant_order_id, amount=1)
        result = await PaymentService(session, config=config).handle_webhook(body, _sign(body, config))

    assert (result.ok, result.status_code, result.error) == (False, 400, "Amount mismatch")
    async with session_factory() as session:
        assert (await session.execute(select(PaymentOrder))).scalar_one().status == PaymentOrderStatusEnum.PENDING
        assert (await session.execute(select(PurchaseTransaction))).scalars().all() == []


@pytest.mark.asyncio
async def test_failure_event_then_late_success_is_not_settled(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        _, _, merchant_order_id = await _create_order(session, config)
        service = PaymentService(session, config=config)

        failed = _webhook(merchant_order_id, event_type="CHECKOUT_ORDER_FAILED", state="FAILED", errorCode="TXN_DECLINED")
        result = await service.handle_webhook(failed, _sign(failed, config))
        assert (result.ok, result.status_code) == (True, 200)

        status = await service.get_payment_order_status(merchant_order_id)
        assert status.as_dict() == {"status": "FAILED", "errorCode": "TXN_DECLINED"}

        late = _webhook(merchant_order_id)
        result = await service.handle_webhook(late, _sign(late, config))
        assert (result.ok, result.status_code, result.error) == (True, 200, "Order already failed")

    async with session_factory() as session:
        assert (await session.execute(select(PurchaseTransaction))).scalars().all() == []
    assert get_payment_store().snapshot().webhook_totals["failed"] == {"CHECKOUT_ORDER_FAILED": 1}


@pytest.mark.asyncio
async def test_offerless_order_records_generic_purchase(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        buyer_id, _, merchant_order_id = await _create_order(session, config, with_offer=False)
        body = _webhook(merchant_order_id, amount=50_000)
        result = await PaymentService(session, config=config).handle_webhook(body, _sign(body, config))

    assert result.ok
    async with session_factory() as session:
        purchase = (await session.execute(select(PurchaseTransaction))).scalar_one()
        assert purchase.description == "In-store payment (PhonePe)"
        assert purchase.points_pool == 0
        assert await session.scalar(select(User.points_balance).where(User.id == buyer_id)) == 0


@pytest.mark.asyncio
async def test_unknown_order_status_is_pending(session_factory) -> None:
    async with session_factory() as session:
        status = await PaymentService(session, config=_config()).get_payment_order_status("ppg_nobody")
    assert status.as_dict() == {"status": "PENDING"}


def test_gateway_amount_must_be_whole_paise() -> None:
    assert gateway_amount_matches(None, 500)
    assert gateway_amount_matches(500, 500)
    assert gateway_amount_matches("500.00", 500)
    assert not gateway_amount_matches("500.99", 500)
    assert not gateway_amount_matches(500.5, 500)
    assert not gateway_amount_matches("five hundred", 500)
    assert not gateway_amount_matches(0, 500)


@pytest.mark.asyncio
async def test_fractional_webhook_amount_is_a_mismatch(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        _, _, merchant_order_id = await _create_order(session, config)
        body = _webhook(merchant_order_id, amount="50000.99")
        result = await PaymentService(session, config=config).handle_webhook(body, _sign(body, config))

    assert (result.ok, result.status_code, result.error) == (False, 400, "Amount mismatch")
    async with session_factory() as session:
        assert (await session.execute(select(PaymentOrder))).scalar_one().status == PaymentOrderStatusEnum.PENDING


@pytest.mark.asyncio
async def test_zero_point_shares_still_settle_the_order(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        buyer_id, merchant_id, merchant_order_id = await _create_order(session, config)
        await ConfigurationService(session).update_commission_settings(
            replace(
                DEFAULT_COMMISSION_RULES,
                share_pct_parent=Decimal("0"),
                share_pct_buyer=Decimal("0"),
                share_pct_grandparent=Decimal("0"),
            )
        )

    body = _webhook(merchant_order_id, amount=50_000)
    async with session_factory() as session:
        result = await PaymentService(session, config=config).handle_webhook(body, _sign(body, config))

    assert (result.ok, result.status_code) == (True, 200)
    async with session_factory() as session:
        assert (await session.execute(select(PaymentOrder))).scalar_one().status == PaymentOrderStatusEnum.SUCCESS
        purchase = (await session.execute(select(PurchaseTransaction))).scalar_one()
        assert purchase.points_pool == 50
        assert await session.scalar(select(User.points_balance).where(User.id == buyer_id)) == 0
        boost = await session.scalar(select(Merchant.boost_balance).where(Merchant.id == merchant_id))
        assert Decimal(boost) == Decimal("10.00")
    assert get_payment_store().snapshot().webhook_totals["processed"] == {"CHECKOUT_ORDER_COMPLETED": 1}


@pytest.mark.asyncio
async def test_failure_event_after_success_does_not_downgrade(session_factory) -> None:
    config = _config()
    async with session_factory() as session:
        buyer_id, _, merchant_order_id = await _create_order(session, config)

    settled = _webhook(merchant_order_id, amount=50_000)
    failed = _webhook(merchant_order_id, event_type="CHECKOUT_ORDER_FAILED", state="FAILED", errorCode="TXN_DECLINED")
    async with session_factory() as session:
        service = PaymentService(session, config=config)
        assert (await service.handle_webhook(settled, _sign(settled, config))).ok
        result = await service.handle_webhook(failed, _sign(failed, config))
        assert (result.ok, result.status_code) == (True, 200)

    async with session_factory() as session:
        order = (await session.execute(select(PaymentOrder))).scalar_one()
        assert order.status == PaymentOrderStatusEnum.SUCCESS
        assert order.error_code is None
        assert await session.scalar(select(User.points_balance).where(User.id == buyer_id)) == 50
