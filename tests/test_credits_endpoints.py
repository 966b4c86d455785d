from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from credits_api.core.settings import settings
from credits_api.models.gift_card import GiftCard, GiftCardStatus


def _user(user_id):
    return {"X-Session-User": str(user_id)}


def _admin(admin_id):
    return {"X-Session-User": str(admin_id), "X-Session-Admin": "true"}


@pytest.mark.asyncio
async def test_internal_caller_applies_transaction_and_user_reads_wallet(app_with_db, monkeypatch):
    app, _ = app_with_db
    monkeypatch.setattr(settings, "internal_api_key", "internal-secret")
    user_id = uuid4()
    payload = {
        "user_id": str(user_id),
        "type": "purchase",
        "amount": 500,
        "description": "Credit pack",
        "reference_id": "pi_abc",
    }

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        created = await client.post(
            "/api/v1/credits/transactions",
            json=payload,
            headers={"X-API-Key": "internal-secret"},
        )
        replay = await client.post(
            "/api/v1/credits/transactions",
            json=payload,
            headers={"X-API-Key": "internal-secret"},
        )
        wallet = await client.get("/api/v1/credits/wallet", headers=_user(user_id))
        history = await client.get("/api/v1/credits/transactions", headers=_user(user_id))

    assert created.status_code == 201
    body = created.json()
    assert body["success"] is True
    assert body["new_balance"] == 500
    assert body["transaction"]["balance_after"] == 500
    assert replay.json()["replayed"] is True
    assert replay.json()["transaction"]["id"] == body["transaction"]["id"]

    assert wallet.json() == {
        "user_id": str(user_id),
        "balance": 500,
        "lifetime_earned": 500,
        "lifetime_spent": 0,
    }
    assert history.json()["total_count"] == 1


@pytest.mark.asyncio
async def test_wallet_of_unknown_user_reads_as_zero(app_with_db):
    app, _ = app_with_db
    user_id = uuid4()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/credits/wallet", headers=_user(user_id))

    assert response.status_code == 200
    assert response.json()["balance"] == 0


@pytest.mark.asyncio
async def test_overdraft_returns_conflict_envelope(app_with_db):
    app, _ = app_with_db
    admin_id = uuid4()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/credits/transactions",
            json={"user_id": str(uuid4()), "type": "spend", "amount": -10},
            headers=_admin(admin_id),
        )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"]["kind"] == "insufficient_balance"
    assert body["error"]["message"]


@pytest.mark.asyncio
async def test_transaction_entry_point_requires_privileges(app_with_db, monkeypatch):
    app, _ = app_with_db
    monkeypatch.setattr(settings, "internal_api_key", "internal-secret")
    payload = {"user_id": str(uuid4()), "type": "bonus", "amount": 10}

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        anonymous = await client.post("/api/v1/credits/transactions", json=payload)
        customer = await client.post("/api/v1/credits/transactions", json=payload, headers=_user(uuid4()))
        wrong_key = await client.post(
            "/api/v1/credits/transactions",
            json=payload,
            headers={"X-API-Key": "guess"},
        )

    assert anonymous.status_code == 401
    assert customer.status_code == 403
    assert customer.json()["error"]["kind"] == "admin_required"
    assert wrong_key.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [1.5, "10", 0])
async def test_malformed_amounts_are_rejected(app_with_db, amount):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.post(
            "/api/v1/credits/transactions",
            json={"user_id": str(uuid4()), "type": "bonus", "amount": amount},
            headers=_admin(uuid4()),
        )

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "validation_failed"


@pytest.mark.asyncio
async def test_invalid_session_header_is_rejected(app_with_db):
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        missing = await client.get("/api/v1/credits/wallet")
        malformed = await client.get("/api/v1/credits/wallet", headers={"X-Session-User": "nope"})

    assert missing.status_code == 401
    assert missing.json()["error"]["kind"] == "unauthenticated"
    assert malformed.status_code == 400


@pytest.mark.asyncio
async def test_redeem_gift_card_endpoint(app_with_db):
    app, session_factory = app_with_db
    async with session_factory() as session:
        session.add(GiftCard(code="GIFT-CARD-2345", credits_value=1000, status=GiftCardStatus.ISSUED))
        await session.commit()
    user_id = uuid4()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await client.post(
            "/api/v1/gift-cards/redeem",
            json={"code": "gift-card-2345"},
            headers=_user(user_id),
        )
        second = await client.post(
            "/api/v1/gift-cards/redeem",
            json={"code": "GIFT-CARD-2345"},
            headers=_user(user_id),
        )
        unknown = await client.post(
            "/api/v1/gift-cards/redeem",
            json={"code": "ZZZZ-ZZZZ-ZZZZ"},
            headers=_user(user_id),
        )

    assert first.status_code == 200
    assert first.json() == {"success": True, "credits_value": 1000, "new_balance": 1000}
    assert second.status_code == 409
    assert second.json()["error"]["kind"] == "gift_card_already_redeemed"
    assert unknown.status_code == 404


@pytest.mark.asyncio
async def test_gift_card_list_shows_only_the_callers_cards(app_with_db):
    app, session_factory = app_with_db
    buyer, stranger = uuid4(), uuid4()
    async with session_factory() as session:
        session.add(
            GiftCard(code="MINE-CARD-2345", credits_value=500, status=GiftCardStatus.ISSUED, purchased_by=buyer)
        )
        session.add(
            GiftCard(code="THEI-CARD-2345", credits_value=500, status=GiftCardStatus.ISSUED, purchased_by=stranger)
        )
        await session.commit()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/gift-cards", headers=_user(buyer))

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 1
    assert body["gift_cards"][0]["code"] == "MINE-CARD-2345"
    assert body["gift_cards"][0]["status"] == "issued"
