import json

import database

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_create_product_from_form_strings(client, vendor, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, data={
        "name": "Basic Phone",
        "description": "A phone that makes calls",
        "basePrice": "10.99",
        "stock": "5",
        "quantity": "5",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    product = body["data"]
    assert product["finalPrice"] == 10.99
    assert product["basePrice"] == 10.99
    assert product["stock"] == 5
    assert product["status"] == "AVAILABLE"
    assert product["vendorId"] == str(vendor["_id"])


def test_create_product_from_json(client, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, json={
        "name": "Charger",
        "description": "Fast charger",
        "basePrice": 40,
        "discount": 10,
        "discountType": "FLAT",
        "stock": 3,
    })
    assert response.status_code == 201
    product = response.json()["data"]
    assert product["finalPrice"] == 30.0
    assert product["status"] == "LOW_STOCK"


def test_create_product_with_image_upload(client, vendor_headers, product_url):
    response = client.post(
        product_url,
        headers=vendor_headers,
        data={"name": "Camera", "description": "Mirrorless", "basePrice": "500", "stock": "2"},
        files=[("productImages", ("front.png", PNG, "image/png"))],
    )
    assert response.status_code == 201
    images = response.json()["data"]["productImages"]
    assert len(images) == 1
    assert images[0].startswith("/media/")


def test_create_product_rejects_unsupported_image(client, vendor_headers, product_url):
    response = client.post(
        product_url,
        headers=vendor_headers,
        data={"name": "Camera", "description": "Mirrorless", "basePrice": "500", "stock": "2"},
        files=[("productImages", ("notes.txt", b"hello", "text/plain"))],
    )
    assert response.status_code == 400


def test_variant_product_needs_variants(client, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, json={
        "name": "Shirt", "description": "Cotton shirt", "hasVariants": True, "variants": [],
    })
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_variant_product_rejects_base_price_and_stock(client, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, json={
        "name": "Shirt",
        "description": "Cotton shirt",
        "hasVariants": True,
        "basePrice": 20,
        "stock": 4,
        "variants": [{"sku": "SH-1", "basePrice": 20, "stock": 4}],
    })
    assert response.status_code == 400


def test_non_variant_product_requires_price_and_stock(client, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, json={"name": "Mug", "description": "Ceramic mug"})
    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


def test_create_variant_product_from_multipart(client, db, vendor_headers, product_url):
    variants = [
        {"sku": "TS-RED-M", "basePrice": 20, "stock": 5, "attributes": {"color": "Red", "size": "M"}},
        {"sku": "TS-BLUE-L", "basePrice": 25, "discount": 20, "discountType": "PERCENTAGE", "stock": 2,
         "attributes": [{"attributeType": "color", "attributeValues": ["Blue"]}]},
    ]
    response = client.post(
        product_url,
        headers=vendor_headers,
        data={"name": "T-Shirt", "description": "Plain tee", "hasVariants": "true", "variants": json.dumps(variants)},
        files=[("variantImages1", ("red.png", PNG, "image/png"))],
    )
    assert response.status_code == 201
    product = response.json()["data"]
    assert product["basePrice"] is None
    assert len(product["variants"]) == 2
    red, blue = product["variants"]
    assert red["attributes"] == {"color": ["Red"], "size": ["M"]}
    assert len(red["images"]) == 1
    assert blue["finalPrice"] == 20.0
    assert blue["status"] == "LOW_STOCK"
    assert product["finalPrice"] == 20.0
    assert db["product_variant"].count_documents({"productId": product["id"]}) == 2


def test_duplicate_sku_rejected(client, db, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, json={
        "name": "Shirt",
        "description": "Cotton shirt",
        "hasVariants": True,
        "variants": [{"sku": "SH-1", "basePrice": 20, "stock": 4}, {"sku": "SH-1", "basePrice": 22, "stock": 1}],
    })
    assert response.status_code == 400
    assert db["product"].count_documents({}) == 0


def test_create_requires_vendor_or_staff(client, customer_headers, product_url):
    payload = {"name": "Mug", "description": "Ceramic mug", "basePrice": 5, "stock": 5}
    assert client.post(product_url, json=payload).status_code == 401
    assert client.post(product_url, headers=customer_headers, json=payload).status_code == 403


def test_staff_must_name_vendor(client, admin_headers, vendor, product_url):
    payload = {"name": "Mug", "description": "Ceramic mug", "basePrice": 5, "stock": 5}
    assert client.post(product_url, headers=admin_headers, json=payload).status_code == 400
    response = client.post(product_url, headers=admin_headers, json={**payload, "vendorId": str(vendor["_id"])})
    assert response.status_code == 201


def test_unknown_subcategory_is_404(client, vendor_headers, category):
    url = f"/api/categories/{category}/subcategories/{'0' * 24}/products"
    response = client.post(url, headers=vendor_headers, json={"name": "Mug", "description": "Mug", "basePrice": 5, "stock": 5})
    assert response.status_code == 404


def test_listing_filters_out_of_stock_and_sorts_by_price(client, make_product, make_variant_product):
    make_product("Expensive", basePrice=300)
    make_product("Cheap", basePrice=50)
    make_product("Discounted", basePrice=400, discount=90, discountType="PERCENTAGE")
    make_product("Sold out", basePrice=10, stock=0)
    make_variant_product("Tee")

    response = client.get("/api/categories/all/products", params={"sort": "low-to-high"})
    assert response.status_code == 200
    data = response.json()["data"]
    assert [p["name"] for p in data["products"]] == ["Tee", "Discounted", "Cheap", "Expensive"]
    assert data["total"] == 4

    response = client.get("/api/categories/all/products", params={"sort": "high-to-low", "limit": 2})
    assert [p["name"] for p in response.json()["data"]["products"]] == ["Expensive", "Cheap"]


def test_listing_search(client, make_product):
    make_product("Galaxy Phone")
    make_product("Kettle")
    response = client.get("/api/categories/all/products", params={"search": "galaxy"})
    assert [p["name"] for p in response.json()["data"]["products"]] == ["Galaxy Phone"]


def test_listing_rejects_unknown_sort(client):
    assert client.get("/api/categories/all/products", params={"sort": "random"}).status_code == 400


def test_product_detail_includes_rating(client, db, make_product, product_url):
    product_id = make_product()
    db["review"].insert_many([
        {"productId": product_id, "userId": "a", "rating": 4.0, "comment": "ok"},
        {"productId": product_id, "userId": "b", "rating": 4.5, "comment": "good"},
    ])
    response = client.get(f"{product_url}/{product_id}")
    assert response.status_code == 200
    product = response.json()["data"]
    assert product["averageRating"] == 4.2
    assert product["reviewCount"] == 2


def test_partial_update_keeps_other_fields(client, make_product, vendor_headers, product_url):
    product_id = make_product(basePrice=100, stock=10)
    response = client.patch(f"{product_url}/{product_id}", headers=vendor_headers, json={"stock": 2})
    assert response.status_code == 200
    product = response.json()["data"]
    assert product["stock"] == 2
    assert product["status"] == "LOW_STOCK"
    assert product["basePrice"] == 100
    assert product["name"] == "Phone"


def test_update_revalidates_discount(client, make_product, vendor_headers, product_url):
    product_id = make_product(basePrice=100)
    response = client.patch(f"{product_url}/{product_id}", headers=vendor_headers,
                            json={"discount": 150, "discountType": "FLAT"})
    assert response.status_code == 400


def test_vendor_cannot_modify_another_vendors_product(client, make_product, other_vendor_headers, admin_headers, product_url):
    product_id = make_product()
    response = client.patch(f"{product_url}/{product_id}", headers=other_vendor_headers, json={"name": "Mine now"})
    assert response.status_code == 403
    response = client.patch(f"{product_url}/{product_id}", headers=admin_headers, json={"name": "Renamed"})
    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Renamed"


def test_delete_product_removes_variants_reviews_and_cart_lines(client, db, make_variant_product, customer, vendor_headers, product_url):
    product_id, variant_ids = make_variant_product()
    db["review"].insert_one({"productId": product_id, "userId": "someone", "rating": 5, "comment": "nice"})
    db["cart"].insert_one({"userId": str(customer["_id"]), "items": [
        {"id": "line1", "productId": product_id, "variantId": variant_ids[0], "quantity": 1},
    ]})
    response = client.delete(f"{product_url}/{product_id}", headers=vendor_headers)
    assert response.status_code == 200
    assert db["product"].count_documents({}) == 0
    assert db["product_variant"].count_documents({}) == 0
    assert db["review"].count_documents({}) == 0
    assert db["cart"].find_one({"userId": str(customer["_id"])})["items"] == []


def test_delete_product_image(client, db, make_product, vendor_headers, product_url):
    product_id = make_product()
    database.update_document("product", product_id, {"productImages": ["/media/a.png", "/media/b.png"]})
    response = client.delete(f"{product_url}/{product_id}/images", headers=vendor_headers,
                             params={"imageUrl": "/media/a.png"})
    assert response.status_code == 200
    assert response.json()["data"]["productImages"] == ["/media/b.png"]


def test_variant_lifecycle(client, make_variant_product, vendor_headers):
    product_id, variant_ids = make_variant_product()
    url = f"/api/products/{product_id}/variants"

    response = client.post(url, headers=vendor_headers, json={"sku": "TS-RED-M", "basePrice": 10, "stock": 1})
    assert response.status_code == 400

    response = client.post(url, headers=vendor_headers,
                           json={"sku": "TS-GREEN-S", "basePrice": 18, "stock": 9, "attributes": {"color": ["Green"]}})
    assert response.status_code == 201
    new_id = response.json()["data"]["id"]

    response = client.patch(f"{url}/{new_id}", headers=vendor_headers, json={"stock": 0})
    assert response.json()["data"]["status"] == "OUT_OF_STOCK"

    assert client.delete(f"{url}/{variant_ids[0]}", headers=vendor_headers).status_code == 200
    assert client.delete(f"{url}/{variant_ids[1]}", headers=vendor_headers).status_code == 200
    response = client.delete(f"{url}/{new_id}", headers=vendor_headers)
    assert response.status_code == 400


def test_cannot_add_variant_to_simple_product(client, make_product, vendor_headers):
    product_id = make_product()
    response = client.post(f"/api/products/{product_id}/variants", headers=vendor_headers,
                           json={"sku": "X-1", "basePrice": 10, "stock": 1})
    assert response.status_code == 400


def test_admin_and_vendor_product_lists(client, make_product, vendor, admin_headers):
    for i in range(3):
        make_product(f"Item {i}")
    response = client.get("/api/admin/products", headers=admin_headers, params={"limit": 2, "sort": "name"})
    data = response.json()["data"]
    assert data["total"] == 3
    assert [p["name"] for p in data["products"]] == ["Item 0", "Item 1"]

    response = client.get(f"/api/vendors/{vendor['_id']}/products")
    assert response.json()["data"]["total"] == 3


def test_rejected_variant_replacement_keeps_existing_variants(client, db, make_variant_product, vendor_headers,
                                                              product_url):
    product_id, _ = make_variant_product()
    replacement = [{"sku": "NEW-1", "basePrice": 30, "stock": 2}, {"sku": "NEW-2", "basePrice": 35, "stock": 2}]
    files = [("variantImages2", (f"v{i}.png", PNG, "image/png")) for i in range(6)]
    response = client.patch(f"{product_url}/{product_id}", headers=vendor_headers,
                            data={"variants": json.dumps(replacement)}, files=files)
    assert response.status_code == 400
    skus = sorted(v["sku"] for v in db["product_variant"].find({"productId": product_id}))
    assert skus == ["TS-BLUE-L", "TS-RED-M"]


def test_variant_replacement_may_reuse_skus(client, db, make_variant_product, vendor_headers, product_url):
    product_id, _ = make_variant_product()
    response = client.patch(f"{product_url}/{product_id}", headers=vendor_headers,
                            json={"variants": [{"sku": "TS-RED-M", "basePrice": 22, "stock": 7}]})
    assert response.status_code == 200
    variants = list(db["product_variant"].find({"productId": product_id}))
    assert [(v["sku"], v["basePrice"], v["stock"]) for v in variants] == [("TS-RED-M", 22, 7)]


def test_malformed_attributes_are_a_validation_error(client, vendor_headers, product_url):
    response = client.post(product_url, headers=vendor_headers, json={
        "name": "Shirt", "description": "Cotton shirt", "hasVariants": True,
        "variants": [{"sku": "SH-1", "basePrice": 20, "stock": 4, "attributes": [{"type": "color"}]}],
    })
    assert response.status_code == 400
    assert response.json()["message"] == "Validation failed"


def test_variant_update_caps_listed_images(client, make_variant_product, vendor_headers):
    product_id, variant_ids = make_variant_product()
    images = [f"/media/v{i}.png" for i in range(6)]
    response = client.patch(f"/api/products/{product_id}/variants/{variant_ids[0]}", headers=vendor_headers,
                            json={"images": images})
    assert response.status_code == 400
