import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.core.config import get_settings
from app.core.security import create_access_token
from app.db.session import get_db, get_session_factory
from app.main import create_app

MAINT = {"X-Maintenance-Token": "test-maintenance-token"}


def auth(user_id, role):
    token = create_access_token(user_id, role, display_name=user_id.title())
    return {"Authorization": f"Bearer {token}"}


FARMER = auth("farmer-1", "farmer")
M1 = auth("merchant-1", "merchant")
M2 = auth("merchant-2", "merchant")


@pytest.fixture
def client(session_factory):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return TestClient(app)


def fund(client, headers, amount="500.00"):
    r = client.post("/api/v1/wallet/deposit", headers=headers, json={"amount": amount})
    assert r.status_code == 201
    return r.json()


def list_lot(client, headers=FARMER, **overrides):
    body = {
        "name": "Alphonso Mangoes",
        "description": "Ratnagiri, grade A",
        "starting_price": "100",
        "quantity": "50",
        "unit_type": "kg",
        "grade": "A",
        "images": ["https://cdn.example/mango.jpg"],
        "duration_hours": 1,
    }
    body.update(overrides)
    return client.post("/api/v1/products", headers=headers, json=body)


def test_health(client):
    r = client.get("/api/v1/health", headers={"X-Request-Id": "rid-1"})
    assert r.status_code == 200
    assert r.json() == {
        "status": "ok",
        "database": "ok",
        "currency": "INR",
        "request_id": "rid-1",
    }
    assert r.headers["X-Request-Id"] == "rid-1"


def test_missing_or_bad_token_is_rejected(client):
    assert client.get("/api/v1/wallet").status_code in (401, 403)
    r = client.get("/api/v1/wallet", headers={"Authorization": "Bearer nonsense"})
    assert r.status_code == 401


def test_sync_me_creates_user_and_wallet(client):
    r = client.post("/api/v1/users/me", headers=M1, json={"display_name": "Mandi Traders"})
    assert r.status_code == 200
    body = r.json()
    assert body["role"] == "merchant"
    assert body["display_name"] == "Mandi Traders"
    assert body["wallet"]["balance"] == "0.00"


def test_full_marketplace_flow(client):
    for headers in (FARMER, M1, M2):
        client.post("/api/v1/users/me", headers=headers, json={})
    fund(client, M1)
    fund(client, M2)

    created = list_lot(client)
    assert created.status_code == 201
    product_id = created.json()["id"]
    assert created.json()["status"] == "active"

    listed = client.get("/api/v1/products", headers=M1).json()
    assert [p["id"] for p in listed["products"]] == [product_id]

    r = client.post(f"/api/v1/products/{product_id}/bids", headers=M1, json={"amount": "150"})
    assert r.status_code == 201
    r = client.post(f"/api/v1/products/{product_id}/bids", headers=M2, json={"amount": "200"})
    assert r.status_code == 201
    assert r.json()["product"]["current_price"] == "200.00"

    low = client.post(f"/api/v1/products/{product_id}/bids", headers=M1, json={"amount": "190"})
    assert low.status_code == 409
    assert low.json()["kind"] == "bid_too_low"

    detail = client.get(f"/api/v1/products/{product_id}", headers=M1).json()
    assert [b["amount"] for b in detail["previous_bids"]] == ["150.00"]

    r = client.post(f"/api/v1/products/{product_id}/respond", headers=FARMER, json={"accept": True})
    assert r.status_code == 200
    assert r.json()["product"]["payment_status"] == "escrow"

    wallet = client.get("/api/v1/wallet", headers=M2).json()
    assert (wallet["balance"], wallet["frozen_balance"]) == ("300.00", "200.00")

    r = client.post(f"/api/v1/products/{product_id}/confirm-delivery", headers=M2)
    assert r.status_code == 200
    assert r.json()["status"] == "delivered"

    farmer_wallet = client.get("/api/v1/wallet", headers=FARMER).json()
    assert farmer_wallet["balance"] == "200.00"

    eligibility = client.get(
        "/api/v1/ratings/eligibility",
        headers=M2,
        params={"product_id": product_id, "to_user_id": "farmer-1"},
    ).json()
    assert eligibility == {"can_rate": True, "has_rated": False}

    body = {"product_id": product_id, "to_user_id": "farmer-1", "rating": 5, "review": "Sweet and ripe."}
    assert client.post("/api/v1/ratings", headers=M2, json=body).status_code == 201
    again = client.post("/api/v1/ratings", headers=M2, json=body)
    assert again.status_code == 409
    assert again.json()["kind"] == "already_rated"

    summary = client.get("/api/v1/users/farmer-1/rating", headers=M1).json()
    assert summary == {"user_id": "farmer-1", "average": 5.0, "count": 1}

    feed = client.get("/api/v1/notifications", headers=FARMER).json()
    types = {n["type"] for n in feed["notifications"]}
    assert {"new_bid", "payment_released"} <= types


def test_error_shape_and_statuses(client):
    client.post("/api/v1/users/me", headers=M1, json={})

    bad_lot = list_lot(client, starting_price="0")
    assert bad_lot.status_code == 422
    assert bad_lot.json()["kind"] == "invalid_product"

    product_id = list_lot(client).json()["id"]

    assert list_lot(client, headers=M1).status_code == 403

    seller_bid = client.post(f"/api/v1/products/{product_id}/bids", headers=FARMER, json={"amount": "150"})
    assert seller_bid.status_code == 403

    missing = client.get(
        "/api/v1/products/00000000-0000-0000-0000-000000000000", headers=M1
    )
    assert missing.status_code == 404
    assert missing.json() == {"kind": "product_not_found", "detail": missing.json()["detail"]}

    assert client.get("/api/v1/products/not-a-uuid", headers=M1).status_code == 400

    client.post(f"/api/v1/products/{product_id}/bids", headers=M1, json={"amount": "150"})
    broke = client.post(f"/api/v1/products/{product_id}/respond", headers=FARMER, json={"accept": True})
    assert broke.status_code == 402
    assert broke.json()["kind"] == "insufficient_funds"

    bad_deposit = client.post("/api/v1/wallet/deposit", headers=M1, json={"amount": "-5"})
    assert bad_deposit.status_code == 422
    assert bad_deposit.json()["kind"] == "invalid_amount"


def test_deposit_replays_with_same_idempotency_key(client):
    headers = {**M1, "Idempotency-Key": "dep-1"}

    first = client.post("/api/v1/wallet/deposit", headers=headers, json={"amount": "75.50"})
    second = client.post("/api/v1/wallet/deposit", headers=headers, json={"amount": "75.50"})

    assert first.status_code == second.status_code == 201
    assert second.json() == first.json()
    assert client.get("/api/v1/wallet", headers=M1).json()["balance"] == "75.50"
    assert client.get("/api/v1/wallet/transactions", headers=M1).json()["count"] == 1

    reused = client.post("/api/v1/wallet/deposit", headers=headers, json={"amount": "10"})
    assert reused.status_code == 409
    assert reused.json()["kind"] == "idempotency_key_reused"


def test_broadcast_mark_read(client):
    client.post("/api/v1/users/me", headers=M2, json={})
    fund(client, M1)
    product_id = list_lot(client).json()["id"]
    client.post(f"/api/v1/products/{product_id}/bids", headers=M1, json={"amount": "120"})

    feed = client.get("/api/v1/notifications", headers=M2).json()
    (price,) = [n for n in feed["notifications"] if n["type"] == "price_update"]
    assert price["read"] is False

    r = client.post(f"/api/v1/notifications/{price['id']}/read", headers=M2)
    assert r.status_code == 200
    assert r.json()["read"] is True

    own = client.get("/api/v1/notifications", headers=M1).json()
    assert all(n["type"] != "price_update" for n in own["notifications"])


def test_maintenance_requires_token(client):
    assert client.post("/api/v1/maintenance/sweep-deliveries").status_code == 403
    assert client.post(
        "/api/v1/maintenance/sweep-deliveries", headers={"X-Maintenance-Token": "wrong"}
    ).status_code == 403

    r = client.post("/api/v1/maintenance/sweep-deliveries", headers=MAINT)
    assert r.status_code == 200
    assert r.json() == {"expired": [], "count": 0}

    r = client.post("/api/v1/maintenance/close-auctions", headers=MAINT)
    assert r.json() == {"closed": 0}


def test_role_claim_is_normalized(client):
    settings = get_settings()
    token = jwt.encode(
        {"sub": "farmer-9", "role": "Farmer"}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )

    r = client.post("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"}, json={})
    assert r.status_code == 200
    assert r.json()["role"] == "farmer"
