def add(client, headers, product_id, quantity=1, variant_id=None):
    return client.post("/api/cart", headers=headers, json={"productId": product_id, "variantId": variant_id, "quantity": quantity})


def test_add_and_merge_lines(client, make_product, customer_headers):
    product_id = make_product(basePrice=120, discount=25, discountType="PERCENTAGE", stock=5)
    add(client, customer_headers, product_id, 2)
    response = add(client, customer_headers, product_id, 1)
    assert response.status_code == 200
    cart = response.json()["data"]
    assert len(cart["items"]) == 1
    line = cart["items"][0]
    assert line["quantity"] == 3
    assert line["unitPrice"] == 90.0
    assert line["lineTotal"] == 270.0
    assert cart["total"] == 270.0
    assert cart["itemCount"] == 3


def test_cannot_exceed_stock(client, make_product, customer_headers):
    product_id = make_product(stock=2)
    add(client, customer_headers, product_id, 2)
    response = add(client, customer_headers, product_id, 1)
    assert response.status_code == 400
    assert response.json()["message"] == "Only 2 item(s) of Phone in stock"


def test_out_of_stock_rejected(client, make_product, customer_headers):
    assert add(client, customer_headers, make_product(stock=0)).status_code == 400


def test_variant_products_need_variant(client, make_variant_product, customer_headers):
    product_id, variant_ids = make_variant_product()
    assert add(client, customer_headers, product_id).status_code == 400
    response = add(client, customer_headers, product_id, 1, variant_ids[0])
    assert response.status_code == 200
    assert response.json()["data"]["items"][0]["sku"] == "TS-RED-M"


def test_simple_products_reject_variant(client, make_product, make_variant_product, customer_headers):
    _, variant_ids = make_variant_product()
    assert add(client, customer_headers, make_product(), 1, variant_ids[0]).status_code == 400


def test_stock_warning_when_stock_drops(client, db, make_product, customer_headers):
    product_id = make_product(stock=5)
    add(client, customer_headers, product_id, 4)
    db["product"].update_one({}, {"$set": {"stock": 1}})
    cart = client.get("/api/cart", headers=customer_headers).json()["data"]
    assert cart["warnings"] == ["Only 1 item(s) of Phone in stock"]


def test_remove_and_decrease(client, make_product, customer_headers):
    product_id = make_product()
    line_id = add(client, customer_headers, product_id, 2).json()["data"]["items"][0]["id"]

    response = client.request("DELETE", "/api/cart", headers=customer_headers, json={"cartItemId": line_id, "decreaseOnly": True})
    assert response.json()["data"]["items"][0]["quantity"] == 1

    response = client.request("DELETE", "/api/cart", headers=customer_headers, json={"cartItemId": line_id})
    assert response.json()["data"]["items"] == []

    response = client.request("DELETE", "/api/cart", headers=customer_headers, json={"cartItemId": line_id})
    assert response.status_code == 404


def test_clear_cart(client, make_product, customer_headers):
    add(client, customer_headers, make_product())
    assert client.delete("/api/cart/clear", headers=customer_headers).status_code == 200
    assert client.get("/api/cart", headers=customer_headers).json()["data"]["items"] == []


def test_cart_is_for_customers(client, vendor_headers):
    assert client.get("/api/cart", headers=vendor_headers).status_code == 403


def test_wishlist(client, db, make_product, customer_headers):
    product_id = make_product("Lamp")
    sold_out = make_product("Vase", stock=0)

    response = client.post("/api/wishlist", headers=customer_headers, json={"productId": product_id})
    assert response.status_code == 201
    assert client.post("/api/wishlist", headers=customer_headers, json={"productId": product_id}).status_code == 400
    client.post("/api/wishlist", headers=customer_headers, json={"productId": sold_out})

    wishlist = client.get("/api/wishlist", headers=customer_headers).json()["data"]
    assert [i["product"]["name"] for i in wishlist["items"]] == ["Lamp"]

    item_id = wishlist["items"][0]["id"]
    response = client.post("/api/wishlist/move-to-cart", headers=customer_headers, json={"wishlistItemId": item_id, "quantity": 2})
    assert response.status_code == 200
    assert response.json()["data"]["items"][0]["quantity"] == 2
    remaining = db["wishlist"].find_one({})["items"]
    assert [i["productId"] for i in remaining] == [sold_out]

    response = client.request("DELETE", "/api/wishlist", headers=customer_headers, json={"wishlistItemId": remaining[0]["id"]})
    assert response.status_code == 200
    assert db["wishlist"].find_one({})["items"] == []
