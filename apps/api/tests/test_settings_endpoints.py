import pytest
from httpx import ASGITransport, AsyncClient


COMMISSION_PAYLOAD = {
    "level1": 6000,
    "level2": 3000,
    "level3": 1000,
    "merchantBonus": 12000,
    "pointsSharePctParent": 70,
    "pointsSharePctBuyer": 40,
    "pointsSharePctGrandparent": 20,
}


@pytest.mark.asyncio
async def test_commission_settings_defaults_and_update(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        defaults = (await client.get("/api/v1/settings/commission")).json()
        assert defaults["level1"] == 5000
        assert defaults["warnings"] == []
        assert defaults["effectiveShares"] == {"parent": 70.0, "buyer": 20.0, "grandparent": 10.0}

        response = await client.put("/api/v1/settings/commission", json=COMMISSION_PAYLOAD)
        assert response.status_code == 200
        payload = response.json()
        assert payload["success"] is True
        assert payload["level1"] == 6000
        assert len(payload["warnings"]) == 1
        assert "130" in payload["warnings"][0]
        assert payload["effectiveShares"]["parent"] == pytest.approx(53.846, abs=0.01)

        stored = (await client.get("/api/v1/settings/commission")).json()
        assert stored["merchantBonus"] == 12000


@pytest.mark.asyncio
async def test_all_zero_shares_are_flagged(app_with_db) -> None:
    app, _ = app_with_db
    payload = {
        **COMMISSION_PAYLOAD,
        "pointsSharePctParent": 0,
        "pointsSharePctBuyer": 0,
        "pointsSharePctGrandparent": 0,
    }

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.put("/api/v1/settings/commission", json=payload)

    body = response.json()
    assert response.status_code == 200
    assert body["effectiveShares"] is None
    assert any("all zero" in warning for warning in body["warnings"])


@pytest.mark.asyncio
async def test_loyalty_slabs_round_trip_by_category(app_with_db) -> None:
    app, _ = app_with_db
    slabs = [
        {"minAmountPaise": 50_000, "maxAmountPaise": None, "points": 80},
        {"minAmountPaise": 0, "maxAmountPaise": 49_999, "points": 25},
    ]

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = (await client.get("/api/v1/settings/loyalty-slabs/Food")).json()
        assert missing == {"success": True, "categoryId": "food", "configured": False, "slabs": []}

        saved = await client.put("/api/v1/settings/loyalty-slabs/Food", json={"slabs": slabs})
        assert saved.status_code == 200
        assert saved.json()["categoryId"] == "food"
        assert [slab["points"] for slab in saved.json()["slabs"]] == [25, 80]

        fetched = (await client.get("/api/v1/settings/loyalty-slabs/food")).json()
        assert fetched["configured"] is True
        assert fetched["slabs"][1]["maxAmountPaise"] is None

        listing = (await client.get("/api/v1/settings/loyalty-slabs")).json()
        assert listing == {"categoryIds": ["food"]}


@pytest.mark.asyncio
async def test_loyalty_slabs_reject_two_open_ended_ranges(app_with_db) -> None:
    app, _ = app_with_db
    slabs = [
        {"minAmountPaise": 0, "maxAmountPaise": None, "points": 10},
        {"minAmountPaise": 1000, "maxAmountPaise": None, "points": 20},
    ]

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.put("/api/v1/settings/loyalty-slabs/default", json={"slabs": slabs})

    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_boost_settings_update_is_clamped(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        defaults = (await client.get("/api/v1/settings/boost")).json()
        assert defaults["boostPercentage"] in ("2", 2, 2.0)

        response = await client.put(
            "/api/v1/settings/boost",
            json={
                "boostEnabled": True,
                "boostPercentage": 150,
                "applyOn": "final",
                "minRedemptionThreshold": 100,
                "autoApproveThreshold": 500,
            },
        )

    body = response.json()
    assert response.status_code == 200
    assert float(body["boostPercentage"]) == 100.0
    assert body["applyOn"] == "final"
    assert float(body["autoApproveThreshold"]) == 500.0
