from storefront.models import Order, OrderItem, OrderStatus, WishlistEntry


def test_account_requires_bearer_token(client, identity):
    missing = client.get("/api/account/profile")
    assert missing.status_code == 401
    assert missing.get_json() == {"error": "Missing authorization header"}

    invalid = client.get("/api/account/profile", headers={"Authorization": "Bearer nobody"})
    assert invalid.status_code == 401
    assert invalid.get_json() == {"error": "Unauthorized"}


def test_profile_upsert(client, user_headers):
    assert client.get("/api/account/profile", headers=user_headers).get_json() == {}

    updated = client.patch(
        "/api/account/profile",
        json={"full_name": "Ada Lovelace", "default_shipping_city": "London", "is_admin": True},
        headers=user_headers,
    )
    assert updated.status_code == 200
    body = updated.get_json()
    assert body["id"] == "user-1"
    assert body["full_name"] == "Ada Lovelace"
    assert "is_admin" not in body

    again = client.patch("/api/account/profile", json={"phone": "555-0100"}, headers=user_headers).get_json()
    assert again["full_name"] == "Ada Lovelace"
    assert again["phone"] == "555-0100"

    rejected = client.patch("/api/account/profile", json={"is_admin": True}, headers=user_headers)
    assert rejected.status_code == 400
    assert rejected.get_json() == {"error": "No valid fields provided"}


def test_order_history_only_lists_own_orders(client, db_session, user_headers, sample_catalog):
    variant = sample_catalog["variants"][("Black", "L")]
    mine = Order(user_id="user-1", status=OrderStatus.PAID, subtotal_cents=4400)
    mine.items = [OrderItem(variant_id=variant.id, quantity=2, price_cents=2200, config={"backside": False})]
    theirs = Order(user_id="user-2", status=OrderStatus.PAID, subtotal_cents=100)
    db_session.add_all([mine, theirs])
    db_session.commit()

    history = client.get("/api/account/orders", headers=user_headers).get_json()

    assert [order["id"] for order in history] == [mine.id]
    item = history[0]["items"][0]
    assert item["productName"] == "Classic Tee"
    assert item["variant"] == {
        "id": variant.id,
        "color_name": "Black",
        "color_hex": "#000000",
        "size": "L",
        "product_id": sample_catalog["product"].id,
    }
    assert item["config"] == {"backside": False}


def test_wishlist_round_trip(client, db_session, user_headers, sample_catalog):
    product_id = sample_catalog["product"].id

    added = client.post("/api/account/wishlist", json={"productId": product_id}, headers=user_headers)
    assert added.status_code == 201
    assert added.get_json()["productId"] == product_id

    client.post("/api/account/wishlist", json={"productId": product_id}, headers=user_headers)
    assert db_session.query(WishlistEntry).filter_by(user_id="user-1").count() == 1

    wishlist = client.get("/api/account/wishlist", headers=user_headers).get_json()
    assert len(wishlist) == 1
    assert wishlist[0]["product"]["slug"] == "classic-tee"
    assert wishlist[0]["product"]["minPrice"] == 1800

    removed = client.delete(f"/api/account/wishlist/{product_id}", headers=user_headers)
    assert removed.get_json() == {"success": True}
    assert client.get("/api/account/wishlist", headers=user_headers).get_json() == []


def test_wishlist_validation(client, user_headers):
    missing = client.post("/api/account/wishlist", json={}, headers=user_headers)
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "productId is required"}

    unknown = client.post("/api/account/wishlist", json={"productId": "ghost"}, headers=user_headers)
    assert unknown.status_code == 404
    assert unknown.get_json() == {"error": "Product not found"}
