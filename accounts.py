import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from pymongo.errors import DuplicateKeyError

import database
from auth import Principal, get_password_hash, user_token, vendor_token, verify_password
from errors import APIError
from schemas import RoleUpdate, UserRegister, UserRole, VendorRegister

logger = logging.getLogger(__name__)


def register_user(payload: UserRegister) -> Dict[str, Any]:
    db = database.get_db()
    if db["user"].find_one({"email": payload.email}):
        raise APIError(400, "Email already registered")
    data = payload.model_dump(exclude={"password"})
    data["password_hash"] = get_password_hash(payload.password)
    data["role"] = UserRole.USER.value
    try:
        user_id = database.create_document("user", data)
    except DuplicateKeyError:
        raise APIError(400, "Email already registered")
    logger.info("Registered user %s", user_id)
    return database.serialize(database.find_by_id("user", user_id))


def login_user(email: str, password: str) -> str:
    user = database.get_db()["user"].find_one({"email": email})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise APIError(400, "Incorrect email or password")
    return user_token(user)


def logout(principal: Principal) -> None:
    """Revoke the presented token until it would have expired anyway."""
    if not principal.token_id:
        return
    expires_at = database.as_utc(datetime.fromtimestamp(principal.token_exp, tz=timezone.utc)) if principal.token_exp else database.now()
    database.get_db()["revoked_token"].update_one(
        {"jti": principal.token_id},
        {"$set": {"jti": principal.token_id, "expires_at": expires_at, "principalId": principal.id}},
        upsert=True,
    )


def get_profile(principal: Principal) -> Dict[str, Any]:
    collection = "vendor" if principal.is_vendor else "user"
    doc = database.find_by_id(collection, principal.id)
    if not doc:
        raise APIError(404, "Account not found")
    return database.serialize(doc)


def set_user_role(user_id: str, payload: RoleUpdate) -> Dict[str, Any]:
    if not database.find_by_id("user", user_id):
        raise APIError(404, "User not found")
    database.update_document("user", user_id, {"role": payload.role.value})
    logger.info("User %s role set to %s", user_id, payload.role.value)
    return database.serialize(database.find_by_id("user", user_id))


def register_vendor(payload: VendorRegister) -> Dict[str, Any]:
    db = database.get_db()
    if db["vendor"].find_one({"email": payload.email}):
        raise APIError(400, "Email already registered")
    data = payload.model_dump(exclude={"password"})
    data["password_hash"] = get_password_hash(payload.password)
    data["isApproved"] = False
    try:
        vendor_id = database.create_document("vendor", data)
    except DuplicateKeyError:
        raise APIError(400, "Email already registered")
    logger.info("Registered vendor %s", vendor_id)
    return database.serialize(database.find_by_id("vendor", vendor_id))


def login_vendor(email: str, password: str) -> str:
    vendor = database.get_db()["vendor"].find_one({"email": email})
    if not vendor or not verify_password(password, vendor.get("password_hash", "")):
        raise APIError(400, "Incorrect email or password")
    return vendor_token(vendor)


def list_vendors() -> List[Dict[str, Any]]:
    cursor = database.get_db()["vendor"].find({}).sort("created_at", -1)
    return [database.serialize(v) for v in cursor]
