from jose import jwt

from auth import create_access_token
from config import ALGORITHM, SECRET_KEY
from conftest import PASSWORD, bearer


def login(client, email, password=PASSWORD, path="/api/auth/login"):
    return client.post(path, data={"username": email, "password": password})


def test_register_login_me(client):
    response = client.post("/api/auth/register", json={"name": "Hari", "email": "hari@example.com", "password": "pass1234"})
    assert response.status_code == 201
    user = response.json()["data"]
    assert user["role"] == "USER"
    assert "password_hash" not in user

    response = login(client, "hari@example.com", "pass1234")
    assert response.status_code == 200
    token = response.json()["data"]["access_token"]
    claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    assert claims["typ"] == "user"

    me = client.get("/api/auth/me", headers=bearer(token)).json()["data"]
    assert me["email"] == "hari@example.com"


def test_duplicate_email_and_bad_password(client, customer):
    response = client.post("/api/auth/register", json={"name": "Sita", "email": "sita@example.com", "password": "pass1234"})
    assert response.status_code == 400
    assert login(client, "sita@example.com", "wrong-password").status_code == 400


def test_validation_errors_are_field_level(client):
    response = client.post("/api/auth/register", json={"name": "X", "email": "not-an-email", "password": "1"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert {e["field"] for e in body["errors"]} == {"email", "password"}


def test_cookie_login(client, customer):
    response = login(client, "sita@example.com")
    assert "token" in response.cookies
    assert client.get("/api/auth/me").json()["data"]["email"] == "sita@example.com"


def test_logout_revokes_token(client, db, customer):
    token = login(client, "sita@example.com").json()["data"]["access_token"]
    client.cookies.clear()
    assert client.post("/api/auth/logout", headers=bearer(token)).status_code == 200
    assert db["revoked_token"].count_documents({}) == 1
    response = client.get("/api/auth/me", headers=bearer(token))
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


def test_vendor_namespace(client, vendor, customer_headers):
    response = client.post("/api/vendors/register", json={
        "businessName": "Bhaktapur Pottery", "email": "pottery@example.com", "password": "clay1234",
        "phoneNumber": "9801111111", "district": "Bhaktapur",
    })
    assert response.status_code == 201
    assert response.json()["data"]["isApproved"] is False

    response = login(client, "gadgets@example.com", path="/api/vendors/login")
    assert "vendorToken" in response.cookies
    token = response.json()["data"]["access_token"]
    client.cookies.clear()
    assert client.get("/api/vendors/me", headers=bearer(token)).json()["data"]["businessName"] == "Kathmandu Gadgets"
    assert client.get("/api/vendors/me", headers=customer_headers).status_code == 403


def test_missing_and_invalid_tokens(client, db):
    assert client.get("/api/auth/me").status_code == 401
    assert client.get("/api/auth/me", headers=bearer("garbage")).status_code == 401
    no_namespace = create_access_token({"sub": "0" * 24})
    assert client.get("/api/auth/me", headers=bearer(no_namespace)).status_code == 401


def test_only_admin_sets_roles(client, customer, admin_headers, staff_headers):
    url = f"/api/users/{customer['_id']}/role"
    assert client.put(url, headers=staff_headers, json={"role": "STAFF"}).status_code == 403
    response = client.put(url, headers=admin_headers, json={"role": "STAFF"})
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "STAFF"


def test_vendor_list_is_staff_only(client, vendor, staff_headers, customer_headers):
    assert client.get("/api/vendors", headers=customer_headers).status_code == 403
    vendors = client.get("/api/vendors", headers=staff_headers).json()["data"]
    assert [v["businessName"] for v in vendors] == ["Kathmandu Gadgets"]
