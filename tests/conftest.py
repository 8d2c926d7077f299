import os
import tempfile

os.environ["JOBS_ENABLED"] = "false"
os.environ["MEDIA_ROOT"] = tempfile.mkdtemp(prefix="marketplace-media-")

import mongomock  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
from auth import get_password_hash, user_token, vendor_token  # noqa: E402
from main import app  # noqa: E402
from payments import PaymentGatewayError, get_payment_gateways  # noqa: E402

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


class FakeGateway:
    def __init__(self):
        self.fail = False
        self.paid = True
        self.initiated = []

    def initiate(self, order):
        if self.fail:
            raise PaymentGatewayError("Esewa payment initiation failed")
        self.initiated.append(str(order["_id"]))
        return {"redirectUrl": f"https://pay.example.com/{order['_id']}", "reference": f"ref-{order['_id']}"}

    def verify(self, order, callback):
        return {"paid": self.paid, "transactionId": "txn-001" if self.paid else None}


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db(monkeypatch):
    mock = mongomock.MongoClient()["marketplace_test"]
    monkeypatch.setattr(database, "db", mock)
    database.ensure_indexes()
    return mock


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    app.dependency_overrides[get_payment_gateways] = lambda: {"ESEWA": gateway, "KHALTI": gateway}
    yield TestClient(app)
    app.dependency_overrides.clear()


def _user(db, name, email, role):
    user_id = database.create_document("user", {"name": name, "email": email, "password_hash": PASSWORD_HASH, "role": role})
    return db["user"].find_one({"_id": database.oid(user_id)})


def _vendor(db, name, email, district):
    vendor_id = database.create_document("vendor", {
        "businessName": name, "email": email, "password_hash": PASSWORD_HASH,
        "phoneNumber": "9800000000", "district": district, "isApproved": True,
    })
    return db["vendor"].find_one({"_id": database.oid(vendor_id)})


@pytest.fixture
def admin(db):
    return _user(db, "Admin", "admin@example.com", "ADMIN")


@pytest.fixture
def admin_headers(admin):
    return bearer(user_token(admin))


@pytest.fixture
def staff_headers(db):
    return bearer(user_token(_user(db, "Staff", "staff@example.com", "STAFF")))


@pytest.fixture
def customer(db):
    return _user(db, "Sita Sharma", "sita@example.com", "USER")


@pytest.fixture
def customer_headers(customer):
    return bearer(user_token(customer))


@pytest.fixture
def other_customer_headers(db):
    return bearer(user_token(_user(db, "Ram Thapa", "ram@example.com", "USER")))


@pytest.fixture
def vendor(db):
    return _vendor(db, "Kathmandu Gadgets", "gadgets@example.com", "Kathmandu")


@pytest.fixture
def vendor_headers(vendor):
    return bearer(vendor_token(vendor))


@pytest.fixture
def other_vendor(db):
    return _vendor(db, "Pokhara Outdoors", "outdoors@example.com", "Kaski")


@pytest.fixture
def other_vendor_headers(other_vendor):
    return bearer(vendor_token(other_vendor))


@pytest.fixture
def category(db):
    return database.create_document("category", {"name": "Electronics", "image": None})


@pytest.fixture
def subcategory(db, category):
    return database.create_document("subcategory", {"name": "Phones", "categoryId": category, "image": None})


@pytest.fixture
def make_product(db, vendor, category, subcategory):
    """Insert a simple product straight into the database."""

    def make(name="Phone", basePrice=100.0, stock=10, discount=0, discountType="PERCENTAGE", dealId=None, vendorId=None):
        return database.create_document("product", {
            "name": name,
            "description": f"{name} description",
            "basePrice": basePrice,
            "discount": discount,
            "discountType": discountType,
            "stock": stock,
            "status": "AVAILABLE" if stock >= 5 else ("LOW_STOCK" if stock > 0 else "OUT_OF_STOCK"),
            "hasVariants": False,
            "productImages": [],
            "categoryId": category,
            "subcategoryId": subcategory,
            "vendorId": vendorId or str(vendor["_id"]),
            "dealId": dealId,
            "bannerId": None,
            "brandId": None,
        })

    return make


@pytest.fixture
def make_variant_product(db, vendor, category, subcategory):
    def make(name="T-Shirt", variants=(("TS-RED-M", 20.0, 5), ("TS-BLUE-L", 25.0, 3))):
        product_id = database.create_document("product", {
            "name": name,
            "description": f"{name} description",
            "basePrice": None,
            "discount": 0,
            "discountType": "PERCENTAGE",
            "stock": None,
            "status": None,
            "hasVariants": True,
            "productImages": [],
            "categoryId": category,
            "subcategoryId": subcategory,
            "vendorId": str(vendor["_id"]),
            "dealId": None,
            "bannerId": None,
            "brandId": None,
        })
        variant_ids = [
            database.create_document("product_variant", {
                "productId": product_id, "sku": sku, "basePrice": price, "discount": 0,
                "discountType": "PERCENTAGE", "stock": stock, "status": "AVAILABLE",
                "attributes": {"color": [sku.split("-")[1].title()]}, "images": [],
            })
            for sku, price, stock in variants
        ]
        return product_id, variant_ids

    return make


@pytest.fixture
def product_url(category, subcategory):
    return f"/api/categories/{category}/subcategories/{subcategory}/products"


@pytest.fixture
def checkout(client, customer_headers):
    """Cart the given quantity of a product and place a cash-on-delivery order for it."""

    def place(product_id, quantity=1, paymentMethod="CASH_ON_DELIVERY"):
        client.post("/api/cart", headers=customer_headers, json={"productId": product_id, "quantity": quantity})
        response = client.post("/api/order", headers=customer_headers, json={
            "shippingAddress": {"district": "Lalitpur", "city": "Patan", "streetAddress": "Mangal Bazar"},
            "paymentMethod": paymentMethod,
            "phoneNumber": "9812345678",
        })
        assert response.status_code == 201, response.json()
        return response.json()["data"]["order"]

    return place
