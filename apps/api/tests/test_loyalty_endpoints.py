from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from factories import make_merchant, make_offer, make_referral_family, make_user
from rewards_api.core.settings import settings


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_signup_purchase_and_ledger_flow(app_with_db) -> None:
    app, _ = app_with_db

    async with _client(app) as client:
        referrer_resp = await client.post("/api/v1/members", json={"email": "ria@example.com", "name": "Ria"})
        assert referrer_resp.status_code == 201
        referrer = referrer_resp.json()
        assert referrer["pointsBalance"] == 50
        assert referrer["referralCode"].startswith("RIA")

        member_resp = await client.post(
            "/api/v1/members",
            json={"email": "dev@example.com", "name": "Dev", "referralCode": referrer["referralCode"]},
        )
        member = member_resp.json()
        assert member["referredBy"] == referrer["id"]
        assert member["referralChain"] == [referrer["id"]]

        merchant_resp = await client.post("/api/v1/merchants", json={"name": "Chai Point", "category": "food"})
        assert merchant_resp.status_code == 201
        merchant = merchant_resp.json()
        offer_resp = await client.post(
            f"/api/v1/merchants/{merchant['id']}/offers", json={"title": "Masala Chai", "loyaltyPoints": 20}
        )
        offer = offer_resp.json()

        purchase_resp = await client.post(
            "/api/v1/loyalty/purchases",
            json={
                "userId": member["id"],
                "offerId": offer["id"],
                "merchantId": merchant["id"],
                "quantity": 5,
                "totalAmountPaise": 30_000,
            },
        )
        assert purchase_resp.status_code == 201
        purchase = purchase_resp.json()
        assert purchase["success"] is True
        assert purchase["pointsPool"] == 100
        assert (purchase["buyerPoints"], purchase["parentPoints"], purchase["grandparentPoints"]) == (30, 70, 0)
        assert purchase["boostCredited"] == 6.0

        points_resp = await client.get(f"/api/v1/loyalty/users/{member['id']}/points")
        assert points_resp.json()["pointsBalance"] == 80

        ledger_resp = await client.get(
            "/api/v1/ledger/transactions",
            params={"userId": member["id"], "types": ["points-earned", "purchase"]},
        )
        assert ledger_resp.status_code == 200
        entries = ledger_resp.json()
        assert {entry["type"] for entry in entries} == {"points-earned", "purchase"}
        assert any(entry["pointsPool"] == 100 for entry in entries)

        commissions_resp = await client.get("/api/v1/commissions", params={"userId": referrer["id"]})
        commissions = commissions_resp.json()
        assert [entry["commissionLevel"] for entry in commissions] == [1]
        assert commissions[0]["payoutStatus"] == "pending"

        payout_resp = await client.post(
            f"/api/v1/commissions/{commissions[0]['id']}/payout-status", json={"status": "completed"}
        )
        assert payout_resp.status_code == 200
        assert payout_resp.json()["commission"]["payoutStatus"] == "completed"

        repeat_resp = await client.post(
            f"/api/v1/commissions/{commissions[0]['id']}/payout-status", json={"status": "rejected"}
        )
        assert repeat_resp.status_code == 409
        assert repeat_resp.json()["success"] is False

        referrer_after = (await client.get(f"/api/v1/members/{referrer['id']}")).json()
        assert referrer_after["walletBalance"] == 5000


@pytest.mark.asyncio
async def test_redemption_endpoint_enforces_balance(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        user = await make_user(session, points_balance=30)
        user_id = str(user.id)

    async with _client(app) as client:
        ok_resp = await client.post(
            "/api/v1/loyalty/redemptions", json={"userId": user_id, "points": 10, "description": "Samosa"}
        )
        assert ok_resp.status_code == 200
        assert ok_resp.json() == {"success": True, "pointsRedeemed": 10, "pointsBalance": 20}

        short_resp = await client.post(
            "/api/v1/loyalty/redemptions", json={"userId": user_id, "points": 21, "description": "Thali"}
        )
        assert short_resp.status_code == 422
        assert short_resp.json() == {"success": False, "error": "Insufficient points balance."}


@pytest.mark.asyncio
async def test_purchase_errors_map_to_status_codes(app_with_db) -> None:
    app, session_factory = app_with_db
    async with session_factory() as session:
        buyer, _, _ = await make_referral_family(session)
        merchant = await make_merchant(session)
        offer = await make_offer(session, merchant)
        buyer_id, merchant_id, offer_id = str(buyer.id), str(merchant.id), str(offer.id)

    async with _client(app) as client:
        bad_quantity = await client.post(
            "/api/v1/loyalty/purchases",
            json={"userId": buyer_id, "offerId": offer_id, "merchantId": merchant_id, "quantity": 0, "totalAmountPaise": 10},
        )
        assert bad_quantity.status_code == 400
        assert bad_quantity.json()["error"] == "Quantity must be at least 1."

        unknown_user = await client.post(
            "/api/v1/loyalty/purchases",
            json={"userId": str(uuid4()), "offerId": offer_id, "quantity": 1, "totalAmountPaise": 10},
        )
        assert unknown_user.status_code == 404

        missing_purchase = await client.post(f"/api/v1/loyalty/purchases/{uuid4()}/allocation")
        assert missing_purchase.status_code == 404


@pytest.mark.asyncio
async def test_internal_api_key_is_enforced(app_with_db, monkeypatch) -> None:
    app, _ = app_with_db
    monkeypatch.setattr(settings, "internal_api_key", "s3cret")

    async with _client(app) as client:
        denied = await client.get(f"/api/v1/loyalty/users/{uuid4()}/points")
        allowed = await client.get(f"/api/v1/loyalty/users/{uuid4()}/points", headers={"X-API-Key": "s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 404
