import pytest

from firestore_db import OrderEventLog
from models import Product


def _place(client, items, headers=None, **extra):
    return client.post("/api/orders", json={"items": items, **extra}, headers=headers or {})


def test_categories(client):
    r = client.get("/api/categories")
    assert r.status_code == 200
    body = r.get_json()
    assert body["success"] is True
    assert [c["name"] for c in body["data"]] == ["Coffee", "Desserts"]
    assert body["data"][0]["displayOrder"] == 1


def test_products_with_pagination(client):
    r = client.get("/api/products?limit=2&offset=1")
    body = r.get_json()
    assert [p["name"] for p in body["data"]] == ["Cappuccino", "Cheesecake"]
    assert body["pagination"] == {"limit": 2, "offset": 1, "total": 4}
    assert body["data"][1]["price"] == "320.50"
    assert body["data"][1]["categoryName"] == "Desserts"
    assert body["data"][1]["categoryIcon"] == "cake"


def test_products_search_and_featured(client):
    assert [p["name"] for p in client.get("/api/products?search=milk").get_json()["data"]] == ["Cappuccino"]
    assert [p["name"] for p in client.get("/api/products?featured=true").get_json()["data"]] == [
        "Espresso", "Cappuccino",
    ]
    assert [p["name"] for p in client.get("/api/products/featured").get_json()["data"]] == [
        "Espresso", "Cappuccino",
    ]


def test_products_by_category(client):
    r = client.get("/api/products/category/2")
    assert [p["name"] for p in r.get_json()["data"]] == ["Cheesecake", "Macaron"]

    assert client.get("/api/products/category/3").status_code == 404
    assert client.get("/api/products/category/42").status_code == 404


def test_create_order(client):
    r = _place(client, [{"productId": 1, "quantity": 2}], customerName="Ann", notes="to go")

    assert r.status_code == 201
    body = r.get_json()
    assert body["success"] is True
    order = body["data"]
    assert order["totalPrice"] == "300.00"
    assert order["status"] == "placed"
    assert order["itemsCount"] == 1
    assert order["customerName"] == "Ann"
    assert order["orderNumber"].startswith("ORD-")
    assert order["items"] == [
        {
            "id": order["items"][0]["id"],
            "productId": 1,
            "productName": "Espresso",
            "productDescription": "Classic Italian coffee",
            "price": "150.00",
            "quantity": 2,
            "total": "300.00",
        }
    ]


def test_create_order_ignores_client_prices(client):
    r = _place(client, [{"productId": 3, "quantity": 1, "price": "0.01"}], totalPrice="0.01")
    assert r.get_json()["data"]["totalPrice"] == "220.00"


def test_rejected_order_lists_offending_products(client):
    r = _place(client, [{"productId": 1, "quantity": 1}, {"productId": 2, "quantity": 1}, {"productId": 77, "quantity": 1}])

    assert r.status_code == 409
    body = r.get_json()
    assert body["success"] is False
    assert body["error"] == [
        {"productId": 2, "name": "Americano", "reason": "unavailable"},
        {"productId": 77, "reason": "not_found"},
    ]
    assert client.get("/api/orders").get_json()["pagination"]["total"] == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"items": []},
        {},
        {"items": [{"quantity": 1}]},
        {"items": [{"productId": 1, "quantity": 0}]},
        {"items": [{"productId": "1", "quantity": 1}]},
        {"items": "espresso"},
        {"items": [{"productId": 1, "quantity": 1}], "customerPhone": "0" * 30},
        {"items": [{"productId": 2**70, "quantity": 1}]},
        {"items": [{"productId": 2**31, "quantity": 1}]},
        {"items": [{"productId": 1, "quantity": 2**70}]},
        {"items": [{"productId": 1, "quantity": 1000}]},
    ],
)
def test_invalid_submissions(client, payload):
    r = client.post("/api/orders", json=payload)
    assert r.status_code == 400
    assert r.get_json()["success"] is False
    assert client.get("/api/orders").get_json()["pagination"]["total"] == 0


def test_non_json_body(client):
    r = client.post("/api/orders", data="not json", content_type="text/plain")
    assert r.status_code == 400


def test_idempotency_key_deduplicates(client):
    headers = {"Idempotency-Key": "cart-7f3a"}
    r1 = _place(client, [{"productId": 1, "quantity": 1}], headers=headers)
    r2 = _place(client, [{"productId": 1, "quantity": 1}], headers=headers)

    assert (r1.status_code, r2.status_code) == (201, 200)
    first, second = r1.get_json()["data"], r2.get_json()["data"]

    assert second["id"] == first["id"]
    assert second["orderNumber"] == first["orderNumber"]
    assert client.get("/api/orders").get_json()["pagination"]["total"] == 1


def test_list_and_get_orders(client):
    first = _place(client, [{"productId": 1, "quantity": 1}]).get_json()["data"]
    second = _place(client, [{"productId": 3, "quantity": 2}, {"productId": 4, "quantity": 1}]).get_json()["data"]

    body = client.get("/api/orders?status=placed").get_json()
    assert [o["id"] for o in body["data"]] == [second["id"], first["id"]]
    assert "items" not in body["data"][0]
    assert body["pagination"] == {"limit": 20, "offset": 0, "total": 2}

    detail = client.get(f"/api/orders/{second['id']}").get_json()["data"]
    assert detail["totalPrice"] == "760.50"
    assert len(detail["items"]) == detail["itemsCount"] == 2


def test_list_orders_bad_status(client):
    assert client.get("/api/orders?status=shipped").status_code == 400


def test_list_orders_clamps_limit(client):
    body = client.get("/api/orders?limit=5000&offset=-3").get_json()
    assert body["pagination"] == {"limit": 100, "offset": 0, "total": 0}


def test_missing_order(client):
    r = client.get("/api/orders/999")
    assert r.status_code == 404
    assert r.get_json()["message"] == "Order 999 not found"


def test_unknown_route_is_json(client):
    r = client.get("/api/nope")
    assert r.status_code == 404
    assert r.get_json()["success"] is False


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.get_json()["database"] == "connected"


def test_placed_order_is_logged_to_firestore(app, client, fake_firestore):
    firestore = fake_firestore()
    app.extensions["ordering"]["events"] = OrderEventLog(client=firestore, retry_sleep_seconds=0)

    order = _place(client, [{"productId": 1, "quantity": 1}]).get_json()["data"]

    (doc,) = firestore.docs.values()
    assert doc["order_number"] == order["orderNumber"]


def test_event_log_failure_does_not_fail_the_order(app, client, fake_firestore):
    firestore = fake_firestore(failures=99)
    app.extensions["ordering"]["events"] = OrderEventLog(client=firestore, max_retries=2, retry_sleep_seconds=0)

    r = _place(client, [{"productId": 1, "quantity": 1}])

    assert r.status_code == 201
    assert client.get("/api/orders").get_json()["pagination"]["total"] == 1


def test_replayed_key_is_not_logged_twice(app, client, fake_firestore):
    firestore = fake_firestore()
    app.extensions["ordering"]["events"] = OrderEventLog(client=firestore, retry_sleep_seconds=0)
    headers = {"Idempotency-Key": "cart-9c1d"}

    assert _place(client, [{"productId": 1, "quantity": 1}], headers=headers).status_code == 201
    assert _place(client, [{"productId": 1, "quantity": 1}], headers=headers).status_code == 200

    assert len(firestore.docs) == 1


def test_replayed_key_survives_product_becoming_unavailable(client, session_factory):
    headers = {"Idempotency-Key": "cart-k1"}
    first = _place(client, [{"productId": 1, "quantity": 1}], headers=headers)
    assert first.status_code == 201

    with session_factory() as s:
        s.get(Product, 1).available = False
        s.commit()

    again = _place(client, [{"productId": 1, "quantity": 1}], headers=headers)
    assert again.status_code == 200
    assert again.get_json()["data"]["orderNumber"] == first.get_json()["data"]["orderNumber"]


def test_timestamps_match_between_create_and_read(client):
    created = _place(client, [{"productId": 1, "quantity": 1}]).get_json()["data"]
    fetched = client.get(f"/api/orders/{created['id']}").get_json()["data"]
    listed = client.get("/api/orders").get_json()["data"][0]

    assert created["createdAt"].endswith("+00:00")
    assert fetched["createdAt"] == created["createdAt"] == listed["createdAt"]
    assert fetched["updatedAt"] == created["updatedAt"]
