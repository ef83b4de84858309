from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from factories import make_merchant
from rewards_api.models.merchant import Merchant


async def _boost_balance(session_factory, merchant_id) -> Decimal:
    async with session_factory() as session:
        return Decimal(await session.scalar(select(Merchant.boost_balance).where(Merchant.id == merchant_id)))


@pytest.mark.asyncio
async def test_withdrawal_request_and_rejection_restore_balance(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant = await make_merchant(session, boost_balance=Decimal("600.00"))
        merchant_id = merchant.id

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post(f"/api/v1/boost/merchants/{merchant_id}/withdrawals")
        assert created.status_code == 201
        withdrawal = created.json()["withdrawal"]
        assert withdrawal["amount"] == 600.0
        assert withdrawal["status"] == "pending"
        assert await _boost_balance(session_factory, merchant_id) == Decimal("0")

        pending = (await client.get("/api/v1/boost/withdrawals", params={"status": "pending"})).json()
        assert [item["id"] for item in pending] == [withdrawal["id"]]

        reviewed = await client.post(
            f"/api/v1/boost/withdrawals/{withdrawal['id']}/review",
            json={"status": "rejected", "reviewedBy": "ops@example.com", "note": "KYC missing"},
        )
        assert reviewed.status_code == 200
        assert reviewed.json()["withdrawal"]["status"] == "rejected"
        assert reviewed.json()["withdrawal"]["reviewedBy"] == "ops@example.com"
        assert await _boost_balance(session_factory, merchant_id) == Decimal("600.00")

        again = await client.post(
            f"/api/v1/boost/withdrawals/{withdrawal['id']}/review", json={"status": "completed"}
        )
        assert again.status_code == 409

        ledger = (await client.get(f"/api/v1/boost/merchants/{merchant_id}/transactions")).json()
        assert sorted(entry["amount"] for entry in ledger) == [-600.0, 600.0]
        assert {entry["type"] for entry in ledger} == {"withdrawal", "credit"}


@pytest.mark.asyncio
async def test_withdrawal_below_threshold_is_rejected(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        merchant = await make_merchant(session, boost_balance=Decimal("12.50"))
        merchant_id = merchant.id

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(f"/api/v1/boost/merchants/{merchant_id}/withdrawals")

    assert response.status_code == 422
    assert "below minimum withdrawal threshold" in response.json()["error"]
    assert await _boost_balance(session_factory, merchant_id) == Decimal("12.50")
