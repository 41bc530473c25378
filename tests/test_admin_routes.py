import pytest

from storefront.models import Category, Order, OrderItem, OrderStatus, Product, ProductImage, ProductVariant
from storefront.services.admin_service import design_download_name


def _seed_orders(db_session, variant):
    orders = []
    for status, subtotal in (
        (OrderStatus.PENDING, 1000),
        (OrderStatus.PAID, 2000),
        (OrderStatus.FULFILLED, 3000),
        (OrderStatus.CANCELLED, 4000),
    ):
        order = Order(status=status, subtotal_cents=subtotal, shipping_email="buyer@example.com")
        order.items = [
            OrderItem(
                variant_id=variant.id,
                quantity=1,
                price_cents=subtotal,
                config={"color": "Black", "front": {"design_url": "anon_1/1700000000000_logo.png"}},
            )
        ]
        db_session.add(order)
        orders.append(order)
    db_session.commit()
    return orders


def test_design_download_name():
    assert design_download_name("anon_1/1700000000000_logo.png") == "logo.png"
    assert design_download_name("user/plain.svg") == "plain.svg"
    assert design_download_name("user/1700000000000_") == "design"


def test_verify_secret(client, admin_headers):
    assert client.post("/api/admin/verify", json={"secret": "admin-secret"}).get_json() == {"ok": True}

    wrong = client.post("/api/admin/verify", json={"secret": "guess"})
    assert wrong.status_code == 401
    assert wrong.get_json() == {"error": "Invalid secret"}


@pytest.mark.parametrize("path", ["/api/admin/dashboard", "/api/admin/orders", "/api/admin/products", "/api/admin/metrics"])
def test_admin_routes_require_secret(client, path):
    assert client.get(path).status_code == 401
    assert client.get(path, headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_list_orders_filters_and_paginates(client, db_session, admin_headers, sample_catalog):
    _seed_orders(db_session, sample_catalog["variants"][("Black", "M")])

    body = client.get("/api/admin/orders", headers=admin_headers).get_json()
    assert body["total"] == 4
    assert body["stats"] == {"total": 4, "paid": 1, "fulfilled": 1, "revenue_cents": 5000}
    assert all(order["item_count"] == 1 for order in body["orders"])

    paid = client.get("/api/admin/orders", query_string={"status": "paid"}, headers=admin_headers).get_json()
    assert [order["subtotal_cents"] for order in paid["orders"]] == [2000]

    page = client.get("/api/admin/orders", query_string={"page": 2, "limit": 3}, headers=admin_headers).get_json()
    assert page["total"] == 4
    assert len(page["orders"]) == 1

    bad_status = client.get("/api/admin/orders", query_string={"status": "lost"}, headers=admin_headers)
    assert bad_status.status_code == 400
    assert bad_status.get_json()["error"].startswith("status must be one of:")

    bad_page = client.get("/api/admin/orders", query_string={"page": 0}, headers=admin_headers)
    assert bad_page.status_code == 400


def test_order_detail_signs_design_files(client, db_session, admin_headers, sample_catalog):
    order = _seed_orders(db_session, sample_catalog["variants"][("Black", "M")])[1]

    body = client.get(f"/api/admin/orders/{order.id}", headers=admin_headers).get_json()

    assert body["order"]["status"] == "paid"
    item = body["items"][0]
    assert item["product"]["slug"] == "classic-tee"
    assert item["thumbnailUrl"] == "https://cdn.test/black-front.png"
    assert item["backThumbnailUrl"] == "https://cdn.test/black-back.png"
    assert item["frontDesignSignedUrl"].endswith("&download=logo.png")
    assert "download" not in item["frontDesignViewUrl"]
    assert item["backDesignSignedUrl"] is None

    missing = client.get("/api/admin/orders/nope", headers=admin_headers)
    assert missing.status_code == 404


def test_update_and_delete_order(client, db_session, admin_headers, sample_catalog):
    order = _seed_orders(db_session, sample_catalog["variants"][("Black", "M")])[1]

    shipped = client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "shipped"}, headers=admin_headers)
    assert shipped.get_json()["order"]["status"] == "shipped"

    invalid = client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "teleported"}, headers=admin_headers)
    assert invalid.status_code == 400

    assert client.delete(f"/api/admin/orders/{order.id}", headers=admin_headers).get_json() == {"success": True}
    db_session.expire_all()
    assert db_session.get(Order, order.id) is None
    assert db_session.query(OrderItem).filter_by(order_id=order.id).count() == 0


def test_product_lifecycle(client, db_session, admin_headers):
    created = client.post("/api/admin/products", json={"name": "Men's Cool T-Shirt!"}, headers=admin_headers)
    assert created.status_code == 201
    product = created.get_json()
    assert product["slug"] == "mens-cool-t-shirt"

    duplicate = client.post("/api/admin/products", json={"name": "Mens Cool T-Shirt"}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.get_json() == {"error": "A product with this slug already exists"}

    other = client.post("/api/admin/products", json={"name": "Hoodie"}, headers=admin_headers).get_json()
    clash = client.patch(f"/api/admin/products/{other['id']}", json={"slug": "mens-cool-t-shirt"}, headers=admin_headers)
    assert clash.status_code == 409
    assert clash.get_json() == {"error": "Slug already in use"}

    empty = client.patch(f"/api/admin/products/{other['id']}", json={}, headers=admin_headers)
    assert empty.status_code == 400
    assert empty.get_json() == {"error": "No fields to update"}

    renamed = client.patch(
        f"/api/admin/products/{other['id']}", json={"name": "Zip Hoodie", "description": "Warm"}, headers=admin_headers
    ).get_json()
    assert renamed["name"] == "Zip Hoodie"
    assert renamed["slug"] == "hoodie"

    listing = client.get("/api/admin/products", headers=admin_headers).get_json()
    assert {row["slug"] for row in listing} == {"mens-cool-t-shirt", "hoodie"}
    assert all(row["variantCount"] == 0 for row in listing)

    assert client.delete(f"/api/admin/products/{other['id']}", headers=admin_headers).get_json() == {"success": True}
    assert client.get(f"/api/admin/products/{other['id']}", headers=admin_headers).status_code == 404


def test_bulk_variants_skip_existing_combinations(client, admin_headers, sample_catalog):
    product_id = sample_catalog["product"].id
    payload = {
        "colors": [{"name": "Black", "hex": "#000000"}, {"name": "Navy Blue", "hex": "#000080"}],
        "sizes": ["M", "XL"],
        "price_cents": 2500,
        "sku_prefix": "TEE",
    }

    response = client.post(f"/api/admin/products/{product_id}/variants/bulk", json=payload, headers=admin_headers)

    assert response.status_code == 201
    body = response.get_json()
    assert body["inserted"] == 3
    assert sorted(variant["sku"] for variant in body["variants"]) == ["TEE-BLAC-XL", "TEE-NAVY-M", "TEE-NAVY-XL"]
    assert all(variant["stock"] is None for variant in body["variants"])

    again = client.post(f"/api/admin/products/{product_id}/variants/bulk", json=payload, headers=admin_headers)
    assert again.get_json()["inserted"] == 0

    missing = client.post(f"/api/admin/products/{product_id}/variants/bulk", json={"colors": []}, headers=admin_headers)
    assert missing.status_code == 400


def test_update_and_delete_variant(client, db_session, admin_headers, sample_catalog):
    product_id = sample_catalog["product"].id
    variant = sample_catalog["variants"][("White", "M")]
    url = f"/api/admin/products/{product_id}/variants/{variant.id}"

    assert client.patch(url, json={"stock": 4, "price_cents": 1900}, headers=admin_headers).get_json()["stock"] == 4
    unlimited = client.patch(url, json={"stock": None}, headers=admin_headers).get_json()
    assert unlimited["stock"] is None
    assert unlimited["price_cents"] == 1900

    negative = client.patch(url, json={"stock": -1}, headers=admin_headers)
    assert negative.status_code == 400
    assert negative.get_json() == {"error": "stock must be null or a non-negative integer"}

    assert client.delete(url, headers=admin_headers).get_json() == {"success": True}
    db_session.expire_all()
    assert db_session.get(ProductVariant, variant.id) is None
    assert client.patch(url, json={"stock": 1}, headers=admin_headers).status_code == 404


def test_price_only_variant_update_keeps_stock(client, admin_headers, sample_catalog):
    product_id = sample_catalog["product"].id
    variant = sample_catalog["variants"][("Black", "M")]
    url = f"/api/admin/products/{product_id}/variants/{variant.id}"

    assert client.patch(url, json={"stock": 4}, headers=admin_headers).get_json()["stock"] == 4
    repriced = client.patch(url, json={"price_cents": 2500}, headers=admin_headers).get_json()
    assert repriced["stock"] == 4
    assert repriced["price_cents"] == 2500

    cleared = client.patch(url, json={"stock": ""}, headers=admin_headers).get_json()
    assert cleared["stock"] is None
    assert cleared["price_cents"] == 2500

    empty = client.patch(url, json={}, headers=admin_headers)
    assert empty.status_code == 400
    assert empty.get_json() == {"error": "stock or price_cents is required"}


def test_images_add_and_delete(client, storage, admin_headers, sample_catalog):
    product_id = sample_catalog["product"].id
    public_url = storage.public_url("product-images", f"{product_id}/1700000000000_front.png")

    created = client.post(
        f"/api/admin/products/{product_id}/images",
        json={"url": public_url, "color_name": "Red", "angle": "front", "sort_order": 5},
        headers=admin_headers,
    )
    assert created.status_code == 201
    image = created.get_json()

    bad_angle = client.post(
        f"/api/admin/products/{product_id}/images", json={"url": public_url, "angle": "top"}, headers=admin_headers
    )
    assert bad_angle.status_code == 400

    deleted = client.delete(f"/api/admin/products/{product_id}/images/{image['id']}", headers=admin_headers)
    assert deleted.get_json() == {"success": True}
    assert storage.removed == [("product-images", [f"{product_id}/1700000000000_front.png"])]

    foreign = sample_catalog["images"][0]
    client.delete(f"/api/admin/products/{product_id}/images/{foreign.id}", headers=admin_headers)
    assert len(storage.removed) == 1


def test_product_image_upload_signing(client, storage, admin_headers, sample_catalog):
    product_id = sample_catalog["product"].id

    body = client.post(
        "/api/admin/products/upload/sign",
        json={"productId": product_id, "filename": "front view.png", "contentType": "image/png"},
        headers=admin_headers,
    ).get_json()

    assert body["storagePath"].startswith(f"{product_id}/")
    assert body["storagePath"].endswith("_front_view.png")
    assert body["publicUrl"] == storage.public_url("product-images", body["storagePath"])

    no_product = client.post(
        "/api/admin/products/upload/sign", json={"filename": "a.png", "contentType": "image/png"}, headers=admin_headers
    )
    assert no_product.get_json() == {"error": "productId is required"}

    svg = client.post(
        "/api/admin/categories/upload/sign", json={"filename": "a.svg", "contentType": "image/svg+xml"}, headers=admin_headers
    )
    assert svg.status_code == 400
    assert svg.get_json() == {"error": "File type not allowed. Use PNG, JPEG, WebP or GIF."}


def test_category_lifecycle(client, db_session, admin_headers, sample_catalog):
    created = client.post("/api/admin/categories", json={"name": "Hoodies", "sort_order": 2}, headers=admin_headers)
    assert created.status_code == 201
    assert created.get_json()["slug"] == "hoodies"

    duplicate = client.post("/api/admin/categories", json={"name": "Hoodies"}, headers=admin_headers)
    assert duplicate.status_code == 409

    names = [category["name"] for category in client.get("/api/admin/categories", headers=admin_headers).get_json()]
    assert names == ["T-Shirts", "Hoodies"]

    category_id = sample_catalog["category"].id
    updated = client.patch(f"/api/admin/categories/{category_id}", json={"name": "Tees"}, headers=admin_headers)
    assert updated.get_json()["name"] == "Tees"

    assert client.delete(f"/api/admin/categories/{category_id}", headers=admin_headers).get_json() == {"success": True}
    db_session.expire_all()
    assert db_session.get(Category, category_id) is None
    assert db_session.get(Product, sample_catalog["product"].id).category_id is None


def test_dashboard_and_metrics_routes(client, admin_headers, sample_catalog):
    dashboard = client.get("/api/admin/dashboard", headers=admin_headers).get_json()
    assert dashboard["stats"]["total_products"] == 1
    assert len(dashboard["daily_revenue"]) == 30

    metrics = client.get("/api/admin/metrics", headers=admin_headers).get_json()
    assert "counters" in metrics
    assert "http_requests_total" in metrics["counters"]
