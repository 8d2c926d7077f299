from datetime import datetime, timedelta, timezone

import database
from curation import banner_status


def window(start_days, end_days):
    at = datetime.now(timezone.utc)
    return (at + timedelta(days=start_days)).isoformat(), (at + timedelta(days=end_days)).isoformat()


def create_banner(client, headers, name, start_days=-1, end_days=1, **extra):
    start, end = window(start_days, end_days)
    body = {"name": name, "type": "HERO", "startDate": start, "endDate": end, **extra}
    return client.post("/api/banners", headers=headers, json=body)


def test_banner_status_from_dates():
    at = datetime(2025, 10, 1)
    assert banner_status(datetime(2025, 10, 2), datetime(2025, 10, 5), at) == "SCHEDULED"
    assert banner_status(datetime(2025, 9, 30), datetime(2025, 10, 5), at) == "ACTIVE"
    assert banner_status(datetime(2025, 9, 1), datetime(2025, 10, 1), at) == "EXPIRED"


def test_only_running_banners_are_public(client, admin_headers):
    assert create_banner(client, admin_headers, "Festival").status_code == 201
    create_banner(client, admin_headers, "Upcoming", start_days=2, end_days=5)
    create_banner(client, admin_headers, "Paused", status="EXPIRED")

    public = client.get("/api/banners").json()["data"]
    assert [b["name"] for b in public] == ["Festival"]
    assert public[0]["status"] == "ACTIVE"

    everything = client.get("/api/admin/banners", headers=admin_headers).json()["data"]
    assert {b["name"]: b["status"] for b in everything} == {
        "Festival": "ACTIVE", "Upcoming": "SCHEDULED", "Paused": "EXPIRED",
    }


def test_banner_validation(client, admin_headers, vendor_headers):
    create_banner(client, admin_headers, "Festival")
    assert create_banner(client, admin_headers, "Festival").status_code == 400
    assert create_banner(client, admin_headers, "Backwards", start_days=2, end_days=1).status_code == 400
    assert create_banner(client, admin_headers, "Ghost", productIds=["0" * 24]).status_code == 404
    assert create_banner(client, vendor_headers, "Mine").status_code == 403


def test_banner_products(client, db, make_product, admin_headers):
    product_id = make_product("Lantern")
    banner = create_banner(client, admin_headers, "Tihar", productIds=[product_id]).json()["data"]
    assert db["product"].find_one({"_id": database.oid(product_id)})["bannerId"] == banner["id"]

    detail = client.get(f"/api/banners/{banner['id']}").json()["data"]
    assert [p["name"] for p in detail["products"]] == ["Lantern"]
    listing = client.get("/api/categories/all/products", params={"bannerId": banner["id"]}).json()["data"]
    assert listing["total"] == 1

    response = client.patch(f"/api/banners/{banner['id']}", headers=admin_headers, json={"productIds": []})
    assert response.status_code == 200
    assert db["product"].find_one({"_id": database.oid(product_id)})["bannerId"] is None

    assert client.delete(f"/api/banners/{banner['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/banners/{banner['id']}").status_code == 404


def test_banner_update_keeps_date_order(client, admin_headers):
    banner = create_banner(client, admin_headers, "Festival").json()["data"]
    _, earlier = window(-3, -2)
    response = client.patch(f"/api/banners/{banner['id']}", headers=admin_headers, json={"endDate": earlier})
    assert response.status_code == 400


def test_homepage_sections(client, make_product, category, admin_headers):
    lamp = make_product("Lamp")
    make_product("Vase")

    response = client.post("/api/homepage/sections", headers=admin_headers,
                           json={"title": "Picked for you", "productIds": [lamp], "order": 1})
    assert response.status_code == 201
    client.post("/api/homepage/sections", headers=admin_headers,
                json={"title": "Electronics", "productSource": "category", "categoryId": category, "order": 2})
    hidden = client.post("/api/homepage/sections", headers=admin_headers,
                         json={"title": "Hidden", "isActive": False}).json()["data"]

    sections = client.get("/api/homepage").json()["data"]
    assert [s["title"] for s in sections] == ["Picked for you", "Electronics"]
    assert [p["name"] for p in sections[0]["products"]] == ["Lamp"]
    assert {p["name"] for p in sections[1]["products"]} == {"Lamp", "Vase"}

    response = client.patch(f"/api/homepage/sections/{hidden['id']}", headers=admin_headers,
                            json={"productSource": "deal"})
    assert response.status_code == 400
    assert client.delete(f"/api/homepage/sections/{hidden['id']}", headers=admin_headers).status_code == 200
    assert len(client.get("/api/homepage/sections", headers=admin_headers).json()["data"]) == 2


def test_category_section_needs_category(client, admin_headers):
    response = client.post("/api/homepage/sections", headers=admin_headers,
                           json={"title": "Broken", "productSource": "category"})
    assert response.status_code == 400


def test_homepage_categories(client, db, category, subcategory, admin_headers, vendor_headers):
    other = database.create_document("category", {"name": "Books", "image": None})
    url = "/api/homepage/categories"

    response = client.post(url, headers=admin_headers, json={"categoryIds": [other, category]})
    assert response.status_code == 201
    featured = client.get(url).json()["data"]
    assert [c["name"] for c in featured] == ["Books", "Electronics"]
    assert [s["name"] for s in featured[1]["subcategories"]] == ["Phones"]

    client.post(url, headers=admin_headers, json={"categoryIds": [category]})
    assert [c["name"] for c in client.get(url).json()["data"]] == ["Electronics"]

    assert client.post(url, headers=vendor_headers, json={"categoryIds": [category]}).status_code == 403


def test_homepage_category_limits(client, db, category, admin_headers):
    url = "/api/homepage/categories"
    many = [database.create_document("category", {"name": f"C{i}", "image": None}) for i in range(6)]
    response = client.post(url, headers=admin_headers, json={"categoryIds": many})
    assert response.status_code == 400
    assert response.json()["message"] == "You can only select up to 5 categories"

    assert client.post(url, headers=admin_headers, json={"categoryIds": [category, "0" * 24]}).status_code == 404
    assert db["home_category"].count_documents({}) == 0
