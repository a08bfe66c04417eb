import json
from urllib.parse import quote

import pytest


def product_payload(**overrides):
    payload = {
        "id": "p1",
        "title": "Copacabana Bikini Set",
        "price": 160.0,
        "size_inventory": {"S": 3, "M": 5},
        "category": "Bikinis",
    }
    payload.update(overrides)
    return payload


def test_admin_key_required_when_configured(client, monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", "secret")

    assert client.get("/admin/orders").status_code == 401
    assert client.get("/admin/orders", headers={"X-Admin-Key": "wrong"}).status_code == 401
    assert client.get("/admin/orders", headers={"X-Admin-Key": "secret"}).status_code == 200


def test_upsert_product_sums_size_inventory(client, mongo):
    res = client.put("/admin/products", json=product_payload())
    assert res.status_code == 200
    assert mongo["product"].find_one({"id": "p1"})["inventory"] == 8

    client.put("/admin/products", json=product_payload(title="Copacabana Set", size_inventory={"S": 1}))
    products = list(mongo["product"].find({"id": "p1"}))
    assert len(products) == 1
    assert products[0]["title"] == "Copacabana Set"
    assert products[0]["inventory"] == 1
    assert products[0]["created_at"]


def test_upsert_product_keeps_inventory_without_sizes(client, mongo):
    client.put("/admin/products", json=product_payload(size_inventory={}, inventory=12))
    assert mongo["product"].find_one({"id": "p1"})["inventory"] == 12


def test_upsert_product_rejects_negative_stock(client):
    assert client.put("/admin/products", json=product_payload(size_inventory={"S": -1})).status_code == 422
    assert client.put("/admin/products", json=product_payload(price=-5)).status_code == 422


def test_bulk_upsert_and_soft_delete(client, mongo):
    res = client.put("/admin/products/bulk", json=[product_payload(id="p1"), product_payload(id="p2")])
    assert res.json() == {"ok": True, "count": 2, "auto_synced": False}

    assert client.delete("/admin/products/p2").status_code == 200
    assert mongo["product"].find_one({"id": "p2"})["is_deleted"] is True
    assert [p["id"] for p in client.get("/admin/products").json()] == ["p1"]
    assert client.delete("/admin/products/nope").status_code == 404


def test_low_stock_uses_settings_threshold(client, mongo, add_product):
    add_product(id="p1", inventory=2)
    add_product(id="p2", inventory=50)
    mongo["store_settings"].insert_one({"low_stock_threshold": 5})

    body = client.get("/admin/products/low-stock").json()

    assert body["threshold"] == 5
    assert [p["id"] for p in body["products"]] == ["p1"]


def test_order_status_and_tracking(client, mongo):
    mongo["order"].insert_one({"id": "#ORD-7", "status": "Processing", "tracking_number": "Pending", "total": 85.0})
    path = f"/admin/orders/{quote('#ORD-7', safe='')}"

    res = client.patch(f"{path}/status", json={"status": "Shipped", "tracking_number": "NA-982345"})
    assert res.status_code == 200

    order = client.get(path).json()
    assert order["status"] == "Shipped"
    assert order["tracking_number"] == "NA-982345"

    assert client.patch(f"{path}/status", json={"status": "Lost"}).status_code == 422
    assert client.patch("/admin/orders/missing/status", json={"status": "Shipped"}).status_code == 404


def test_list_orders_filters(client, mongo):
    mongo["order"].insert_many([
        {"id": "#ORD-1", "status": "Pending", "customer_email": "a@example.com", "created_at": "2025-05-01"},
        {"id": "#ORD-2", "status": "Shipped", "customer_email": "b@example.com", "created_at": "2025-05-02"},
        {"id": "#ORD-3", "status": "Pending", "customer_email": "b@example.com", "created_at": "2025-05-03"},
    ])

    assert [o["id"] for o in client.get("/admin/orders").json()] == ["#ORD-3", "#ORD-2", "#ORD-1"]
    assert [o["id"] for o in client.get("/admin/orders", params={"status": "Pending"}).json()] == ["#ORD-3", "#ORD-1"]
    assert [o["id"] for o in client.get("/orders", params={"email": "B@example.com"}).json()] == ["#ORD-3", "#ORD-2"]


def test_upsert_order(client, mongo):
    order = {
        "id": "#ORD-8",
        "customer_name": "Diana Prince",
        "customer_email": "diana@example.com",
        "date": "2025-05-18",
        "items": [{"product_id": "p1", "title": "Ipanema One Piece", "quantity": 1, "price": 120.0, "size": "M"}],
        "total": 120.0,
    }
    assert client.put("/admin/orders", json=order).status_code == 200
    client.put("/admin/orders", json={**order, "status": "Cancelled"})

    stored = list(mongo["order"].find({"id": "#ORD-8"}))
    assert len(stored) == 1
    assert stored[0]["status"] == "Cancelled"
    assert stored[0]["tracking_number"] == "Pending"


def test_customers_crud(client, mongo):
    customer = {"id": "c1", "name": "Alice Johnson", "email": "Alice@Example.com", "total_spent": 160.0,
                "order_count": 1, "join_date": "2025-05-15"}

    assert client.put("/admin/customers", json=customer).status_code == 200
    listed = client.get("/admin/customers").json()
    assert listed[0]["email"] == "alice@example.com"

    assert client.delete("/admin/customers/c1").status_code == 200
    assert client.get("/admin/customers").json() == []
    assert client.delete("/admin/customers/c1").status_code == 404


def test_settings_defaults_and_partial_update(client, mongo):
    defaults = client.get("/admin/settings").json()
    assert defaults["store_name"] == "NINA ARMEND"
    assert defaults["tax_rate"] == 7.5

    res = client.patch("/admin/settings", json={"tax_rate": 8.25, "square_api_key": "sq-secret"})
    assert res.status_code == 200
    client.patch("/admin/settings", json={"is_maintenance_mode": True})

    stored = client.get("/admin/settings").json()
    assert stored["tax_rate"] == 8.25
    assert stored["is_maintenance_mode"] is True
    assert stored["square_api_key"] == "sq-secret"
    assert mongo["store_settings"].count_documents({}) == 1

    public = client.get("/settings").json()
    assert "square_api_key" not in public
    assert public["tax_rate"] == 8.25


@pytest.mark.parametrize("changes", [{"favourite_colour": "teal"}, {"pos_provider": "shopify"}])
def test_settings_rejects_bad_updates(client, changes):
    assert client.patch("/admin/settings", json=changes).status_code in (400, 422)


def test_dashboard_stats(client, mongo, add_product):
    add_product(id="p1", inventory=2)
    add_product(id="p2", inventory=40)
    mongo["order"].insert_many([
        {"id": "#ORD-1", "status": "Processing", "total": 160.0},
        {"id": "#ORD-2", "status": "Shipped", "total": 85.5},
        {"id": "#ORD-3", "status": "Cancelled", "total": 999.0},
    ])
    mongo["customer"].insert_one({"id": "c1", "email": "a@example.com"})

    stats = client.get("/admin/stats").json()

    assert stats["revenue"] == 245.5
    assert stats["orders"] == 3
    assert stats["orders_by_status"]["Cancelled"] == 1
    assert stats["customers"] == 1
    assert stats["active_products"] == 2
    assert stats["low_stock"] == 1


def test_bulk_upsert_keeps_first_duplicate_and_normalizes_status(client, mongo):
    res = client.put("/admin/products/bulk", json=[
        product_payload(id="p1", title="First", status="In Stock"),
        product_payload(id="p1", title="Second"),
        product_payload(id="p2", status="draft copy"),
        product_payload(id="p3", status="discontinued"),
    ])

    assert res.json()["count"] == 3
    assert mongo["product"].count_documents({"id": "p1"}) == 1
    assert mongo["product"].find_one({"id": "p1"})["title"] == "First"
    assert mongo["product"].find_one({"id": "p1"})["status"] == "Active"
    assert mongo["product"].find_one({"id": "p2"})["status"] == "Draft"
    assert mongo["product"].find_one({"id": "p3"})["status"] == "Inactive"


def test_saving_products_pushes_stock_when_auto_sync_on(client, mongo, square_stub):
    mongo["store_settings"].insert_one({"pos_provider": "square", "auto_sync": True})
    square_stub.on("GET", "/v2/locations", json={"locations": [{"id": "LOC1"}]})
    square_stub.on("POST", "/v2/inventory/changes/batch-create", json={"counts": []})

    res = client.put("/admin/products/bulk", json=[
        product_payload(id="p1"),
        product_payload(id="p2", is_deleted=True),
    ])

    assert res.json()["auto_synced"] is True
    pushed = [json.loads(r.content) for r in square_stub.requests if r.url.path.endswith("batch-create")]
    assert [c["adjustment"]["catalog_object_id"] for c in pushed[0]["changes"]] == ["p1"]
    assert pushed[0]["changes"][0]["adjustment"]["quantity"] == "8"


def test_auto_sync_failure_does_not_fail_the_save(client, mongo, square_stub):
    mongo["store_settings"].insert_one({"pos_provider": "square", "auto_sync": True})
    square_stub.on("GET", "/v2/locations", status=500, json={"errors": [{"detail": "unavailable"}]})

    res = client.put("/admin/products", json=product_payload())

    assert res.status_code == 200
    assert res.json()["auto_synced"] is True
    assert mongo["product"].find_one({"id": "p1"})["inventory"] == 8


@pytest.mark.parametrize("settings", [
    {"pos_provider": "square", "auto_sync": False},
    {"pos_provider": "none", "auto_sync": True},
])
def test_no_push_unless_square_auto_sync(client, mongo, square_stub, settings):
    mongo["store_settings"].insert_one(settings)

    res = client.put("/admin/products", json=product_payload())

    assert res.json()["auto_synced"] is False
    assert square_stub.requests == []


def test_shipping_update_email(client, mongo, outbox):
    mongo["order"].insert_one({"id": "#ORD-7", "status": "Processing", "tracking_number": "Pending",
                               "customer_name": "Isabella Silva", "customer_email": "isabella@example.com"})
    path = f"/admin/orders/{quote('#ORD-7', safe='')}/status"

    client.patch(path, json={"status": "Shipped"})
    assert outbox.sent == []

    client.patch(path, json={"status": "Shipped", "tracking_number": "NA-982345"})
    client.patch(path, json={"status": "Delivered"})

    assert [e["subject"] for e in outbox.sent] == ["Order Update: Shipped", "Order Update: Delivered"]
    assert outbox.sent[0]["to"] == ["isabella@example.com"]
    assert "NA-982345" in outbox.sent[0]["html"]


def test_birthday_emails_for_month(client, mongo, outbox):
    mongo["profile"].insert_many([
        {"id": "u1", "name": "Camila", "email": "camila@example.com", "birth_month": 6},
        {"id": "u2", "name": "Bruna", "email": "bruna@example.com", "birth_month": 7},
        {"id": "u3", "name": "No Email", "birth_month": 6},
    ])

    res = client.post("/admin/emails/birthdays", params={"month": 6})

    assert res.json() == {
        "success": True,
        "month": 6,
        "sent": 1,
        "failed": 1,
        "message": "Processed birthdays for month 6. Sent: 1, Failed: 1",
    }
    assert outbox.sent[0]["to"] == ["camila@example.com"]
    assert outbox.sent[0]["subject"] == "Happy Birthday Month, Camila!"
    assert client.post("/admin/emails/birthdays", params={"month": 13}).status_code == 422
