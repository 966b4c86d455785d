from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient


def _admin(admin_id):
    return {"X-Session-User": str(admin_id), "X-Session-Admin": "true"}


@pytest.mark.asyncio
async def test_adjust_then_inspect_wallet_and_audit_log(app_with_db):
    app, _ = app_with_db
    admin_id = uuid4()
    user_id = uuid4()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        bonus = await client.post(
            "/api/v1/admin/credits/adjust",
            json={"user_id": str(user_id), "amount": 1000, "reason": "Launch bonus", "type": "bonus"},
            headers=_admin(admin_id),
        )
        correction = await client.post(
            "/api/v1/admin/credits/adjust",
            json={"user_id": str(user_id), "amount": -200, "reason": "fraud correction", "type": "correction"},
            headers=_admin(admin_id),
        )
        wallet = await client.get(f"/api/v1/admin/wallets/{user_id}", headers=_admin(admin_id))
        audit = await client.get(
            "/api/v1/admin/audit-log",
            params={"search": "fraud"},
            headers=_admin(admin_id),
        )

    assert bonus.status_code == 200
    assert correction.json()["new_balance"] == 800

    inspected = wallet.json()
    assert inspected["wallet"]["balance"] == 800
    assert inspected["verification"]["transaction_sum"] == 800
    assert [entry["amount"] for entry in inspected["recent_transactions"]] == [-200, 1000]

    page = audit.json()
    assert page["total_count"] == 1
    entry = page["entries"][0]
    assert entry["id"] == correction.json()["audit_id"]
    assert entry["admin_id"] == str(admin_id)
    assert entry["before_state"]["balance"] == 1000
    assert entry["after_state"]["balance"] == 800


@pytest.mark.asyncio
async def test_adjust_requires_reason_and_admin(app_with_db):
    app, _ = app_with_db
    payload = {"user_id": str(uuid4()), "amount": 50, "reason": " "}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        blank_reason = await client.post("/api/v1/admin/credits/adjust", json=payload, headers=_admin(uuid4()))
        not_admin = await client.post(
            "/api/v1/admin/credits/adjust",
            json={**payload, "reason": "Goodwill"},
            headers={"X-Session-User": str(uuid4()), "X-Session-Admin": "false"},
        )

    assert blank_reason.status_code == 400
    assert blank_reason.json()["error"]["kind"] == "validation_failed"
    assert not_admin.status_code == 403


@pytest.mark.asyncio
async def test_inspect_unknown_wallet_is_not_found(app_with_db):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get(f"/api/v1/admin/wallets/{uuid4()}", headers=_admin(uuid4()))

    assert response.status_code == 404
    assert response.json()["error"]["kind"] == "wallet_not_found"


@pytest.mark.asyncio
async def test_issue_and_void_gift_card(app_with_db):
    app, _ = app_with_db
    admin_id = uuid4()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        issued = await client.post(
            "/api/v1/admin/gift-cards",
            json={"credits_value": 250, "price_cents": 2500},
            headers=_admin(admin_id),
        )
        code = issued.json()["code"]
        voided = await client.post(
            f"/api/v1/admin/gift-cards/{code}/void",
            json={"reason": "Refunded purchase"},
            headers=_admin(admin_id),
        )
        redeem = await client.post(
            "/api/v1/gift-cards/redeem",
            json={"code": code},
            headers={"X-Session-User": str(uuid4())},
        )
        audit = await client.get(
            "/api/v1/admin/audit-log",
            params={"target_type": "gift_card"},
            headers=_admin(admin_id),
        )

    assert issued.status_code == 201
    assert issued.json()["status"] == "issued"
    assert voided.json()["status"] == "void"
    assert redeem.status_code == 409
    assert redeem.json()["error"]["kind"] == "gift_card_void"
    assert [entry["action_type"] for entry in audit.json()["entries"]] == ["gift_card_void", "gift_card_issued"]


@pytest.mark.asyncio
async def test_admin_lists_wallets_richest_first(app_with_db):
    app, _ = app_with_db
    admin_id = uuid4()
    poorer, richer = uuid4(), uuid4()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        for user_id, amount in ((poorer, 100), (richer, 700)):
            await client.post(
                "/api/v1/admin/credits/adjust",
                json={"user_id": str(user_id), "amount": amount, "reason": "Seed", "type": "bonus"},
                headers=_admin(admin_id),
            )
        listed = await client.get("/api/v1/admin/wallets", params={"limit": 10}, headers=_admin(admin_id))
        denied = await client.get("/api/v1/admin/wallets", headers={"X-Session-User": str(uuid4())})

    body = listed.json()
    assert body["total_count"] == 2
    assert [wallet["user_id"] for wallet in body["wallets"]] == [str(richer), str(poorer)]
    assert body["wallets"][0]["balance"] == 700
    assert denied.status_code == 403
