from decimal import Decimal

import httpx
import pytest

from storefront.config import settings
from storefront.main import app


@pytest.fixture
async def client(gateway):
    app.state.gateway = gateway
    app.state.resolver = None
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    del app.state.gateway
    del app.state.resolver


@pytest.fixture
def headers(user_id):
    return {"X-User-ID": str(user_id)}


def _address(**overrides):
    body = {
        "street": "Rua Direita",
        "number": "10",
        "city": "São Paulo",
        "state": "SP",
        "zip_code": "01002-000",
        "latitude": 0.0,
        "longitude": 0.03,
    }
    body.update(overrides)
    return body


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

    response = await client.get("/ready")
    assert response.json() == {"db": "ok", "geocoder": "disabled"}


async def test_user_header_is_required(client):
    assert (await client.get("/addresses")).status_code == 422

    response = await client.get("/addresses", headers={"X-User-ID": "not-a-uuid"})
    assert response.status_code == 400
    assert response.headers["X-Error-Code"] == "MISSING_USER_ID"


async def test_checkout_flow(client, headers, restaurant, products, points_config):
    created = await client.post("/addresses", json=_address(), headers=headers)
    assert created.status_code == 201
    address = created.json()
    assert address["is_default"] is True

    a, b = products
    response = await client.post(
        "/orders",
        json={
            "restaurant_id": restaurant.id,
            "items": {str(a.id): 2, str(b.id): 1},
            "delivery_type": "delivery",
            "payment_method": "credit_card",
            "address_id": address["id"],
        },
        headers=headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert Decimal(body["subtotal"]) == Decimal("25.00")
    assert Decimal(body["total"]) == Decimal("28.00")
    assert body["points_credited"] is True
    assert body["delivery_address"]["street"] == "Rua Direita"

    balance = (await client.get("/points", headers=headers)).json()
    assert balance["total_points"] == 10

    history = (await client.get("/points/history", headers=headers)).json()
    assert [e["action_type"] for e in history["entries"]] == ["order"]
    assert history["entries"][0]["reference_id"] == str(body["order_id"])

    orders = (await client.get("/orders", headers=headers)).json()
    assert orders["total"] == 1
    assert len(orders["orders"][0]["items"]) == 2

    review = await client.post(
        f"/orders/{body['order_id']}/review", json={"rating": 5}, headers=headers
    )
    assert review.status_code == 201
    again = await client.post(
        f"/orders/{body['order_id']}/review", json={"rating": 4}, headers=headers
    )
    assert again.status_code == 409
    assert again.headers["X-Error-Code"] == "DUPLICATE_REVIEW"


async def test_out_of_range_checkout_is_rejected_generically(
    client, headers, restaurant, products
):
    far = (await client.post("/addresses", json=_address(longitude=0.06), headers=headers)).json()
    response = await client.post(
        "/orders",
        json={
            "restaurant_id": restaurant.id,
            "items": {str(products[0].id): 1},
            "delivery_type": "delivery",
            "payment_method": "cash",
            "address_id": far["id"],
        },
        headers=headers,
    )
    assert response.status_code == 422
    assert response.json()["detail"] == "Order could not be completed"
    assert response.headers["X-Error-Code"] == "INELIGIBLE_ADDRESS"
    assert (await client.get("/orders", headers=headers)).json()["total"] == 0


async def test_empty_cart_checkout(client, headers, restaurant, products):
    response = await client.post(
        "/orders",
        json={
            "restaurant_id": restaurant.id,
            "items": {str(products[0].id): 0},
            "delivery_type": "pickup",
            "payment_method": "cash",
        },
        headers=headers,
    )
    assert response.status_code == 422
    assert response.headers["X-Error-Code"] == "EMPTY_CART"


async def test_unknown_restaurant(client, headers):
    response = await client.post(
        "/orders",
        json={"restaurant_id": 404, "items": {"1": 1}, "delivery_type": "pickup", "payment_method": "cash"},
        headers=headers,
    )
    assert response.status_code == 404


async def test_restaurant_addresses(client, headers, restaurant):
    far = (await client.post("/addresses", json=_address(longitude=0.06), headers=headers)).json()
    near = (await client.post("/addresses", json=_address(number="20"), headers=headers)).json()

    response = await client.get(f"/restaurants/{restaurant.id}/addresses", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["best_address_id"] == near["id"]
    by_id = {a["address"]["id"]: a for a in body["addresses"]}
    assert by_id[far["id"]]["eligible"] is False
    assert by_id[far["id"]]["distance_km"] == 6.67
    assert by_id[near["id"]]["eligible"] is True


async def test_default_address_switch(client, headers):
    first = (await client.post("/addresses", json=_address(), headers=headers)).json()
    second = (await client.post("/addresses", json=_address(number="2"), headers=headers)).json()

    response = await client.put(f"/addresses/{second['id']}/default", headers=headers)
    assert response.status_code == 200

    listed = (await client.get("/addresses", headers=headers)).json()
    assert [a["id"] for a in listed if a["is_default"]] == [second["id"]]
    assert listed[0]["id"] == second["id"]

    assert (await client.delete(f"/addresses/{first['id']}", headers=headers)).status_code == 204
    missing = await client.delete(f"/addresses/{first['id']}", headers=headers)
    assert missing.status_code == 404
    assert missing.headers["X-Error-Code"] == "ADDRESS_NOT_FOUND"


async def test_address_restaurant_screening(client, headers, restaurant):
    address = (await client.post("/addresses", json=_address(), headers=headers)).json()
    response = await client.get(f"/addresses/{address['id']}/restaurants", headers=headers)
    assert response.status_code == 200
    [row] = response.json()
    assert row["restaurant"]["id"] == restaurant.id
    assert row["eligible"] is True


async def test_admin_requires_service_token(client):
    assert (await client.get("/admin/reconciliation")).status_code == 422
    wrong = await client.get("/admin/reconciliation", headers={"X-Service-Token": "nope"})
    assert wrong.status_code == 401


async def test_admin_reconciliation(client, headers, restaurant, products):
    order = await client.post(
        "/orders",
        json={
            "restaurant_id": restaurant.id,
            "items": {str(products[0].id): 1},
            "delivery_type": "pickup",
            "payment_method": "cash",
        },
        headers=headers,
    )
    order_id = order.json()["order_id"]
    assert order.json()["points_credited"] is False

    admin = {"X-Service-Token": settings.service_token}
    report = (await client.get("/admin/reconciliation", headers=admin)).json()
    assert report["orders_missing_points"] == [order_id]

    retry = await client.post(f"/admin/reconciliation/orders/{order_id}/points", headers=admin)
    assert retry.status_code == 503
    assert retry.headers["X-Error-Code"] == "POINTS_CREDIT_FAILURE"

    missing = await client.post("/admin/reconciliation/orders/999/points", headers=admin)
    assert missing.status_code == 404
