from marketplace.models import PromotionStatus


def cart_payload(store, product, quantity=2, **extra):
    payload = {"items": [{"product_id": product.id, "store_id": store.id, "quantity": quantity}]}
    payload.update(extra)
    return payload


def make_shop(seed):
    store = seed.store()
    product = seed.product(store, price="500.00")
    seed.promotion(store, value="10", priority=1)
    seed.tax_rule("5.00", category="general", priority=1)
    seed.shipping_rule(base_rate=150)
    return store, product


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_calculate_returns_money_as_strings(client, seed):
    store, product = make_shop(seed)

    response = client.post("/api/checkout/calculate", json=cart_payload(store, product))

    assert response.status_code == 200
    data = response.json()
    assert data["subtotal"] == "900.00"
    assert data["discount"] == "100.00"
    assert data["taxes"] == "45.00"
    assert data["shipping"] == "150.00"
    assert data["total"] == "1095.00"
    assert data["stores"][0]["store_id"] == store.id
    assert data["lines"][0]["unit_price"] == "500.00"


def test_calculate_empty_cart_returns_zero_breakdown(client):
    response = client.post("/api/checkout/calculate", json={"items": []})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == "0.00"
    assert data["lines"] == []
    assert data["stores"] == []


def test_calculate_reports_unknown_products_as_warnings(client, seed):
    store, product = make_shop(seed)
    payload = cart_payload(store, product)
    payload["items"].append({"product_id": 9999, "store_id": store.id, "quantity": 1})

    response = client.post("/api/checkout/calculate", json=payload)

    assert response.status_code == 200
    assert response.json()["total"] == "1095.00"
    assert len(response.json()["warnings"]) == 1


def test_create_order_requires_login(client, seed):
    store, product = make_shop(seed)

    response = client.post("/api/orders", json=cart_payload(store, product))

    assert response.status_code == 401


def test_create_order(client, seed, login):
    store, product = make_shop(seed)
    buyer = seed.buyer()
    login(buyer)

    response = client.post(
        "/api/orders",
        json=cart_payload(store, product, payment_method="bank_transfer", shipping_address="Lahore"),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["buyer_id"] == buyer.id
    assert data["total"] == "1095.00"
    assert data["payment_method"] == "bank_transfer"
    assert data["items"][0]["applied_promotion_ids"] == [1]
    [transaction] = data["transactions"]
    assert transaction["amount"] == "1095.00"
    assert transaction["commission"] == "109.50"


def test_create_order_with_only_invalid_items(client, seed, login):
    store, _ = make_shop(seed)
    login(seed.buyer())

    response = client.post(
        "/api/orders",
        json={"items": [{"product_id": 9999, "store_id": store.id, "quantity": 1}]},
    )

    assert response.status_code == 400


def test_my_orders(client, seed, login):
    store, product = make_shop(seed)
    buyer = seed.buyer()
    login(buyer)
    created = client.post("/api/orders", json=cart_payload(store, product)).json()

    listed = client.get("/api/me/orders")
    detail = client.get(f"/api/me/orders/{created['id']}")

    assert [order["id"] for order in listed.json()] == [created["id"]]
    assert detail.status_code == 200
    assert detail.json()["order_number"] == created["order_number"]


def test_foreign_order_is_not_found(client, seed, login):
    store, product = make_shop(seed)
    login(seed.buyer())
    created = client.post("/api/orders", json=cart_payload(store, product)).json()

    login(seed.buyer())
    response = client.get(f"/api/me/orders/{created['id']}")

    assert response.status_code == 404


def test_active_promotions_by_store(client, seed):
    first_store = seed.store(name="First")
    second_store = seed.store(name="Second")
    live = seed.promotion(first_store, value="10")
    seed.promotion(first_store, value="20", status=PromotionStatus.DRAFT)
    other = seed.promotion(second_store, value="5")

    everything = client.get("/api/promotions/active")
    filtered = client.get("/api/promotions/active", params={"store_id": first_store.id})

    assert {promo["id"] for promo in everything.json()} == {live.id, other.id}
    assert [promo["id"] for promo in filtered.json()] == [live.id]
