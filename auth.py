"""
Authentication and authorization.

Users and vendors sign in separately and get tokens from separate
namespaces (`typ` claim "user" or "vendor"). Route access is described by a
Policy: which roles may call it, and optionally who owns the resource once it
has been loaded. Admin and staff skip ownership unless the policy says
otherwise.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, FrozenSet, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

import database
from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from errors import APIError
from schemas import UserRole

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

VENDOR = "VENDOR"
USER_KIND = "user"
VENDOR_KIND = "vendor"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def user_token(user: Dict[str, Any]) -> str:
    return create_access_token({"sub": str(user["_id"]), "typ": USER_KIND, "role": user.get("role", UserRole.USER.value)})


def vendor_token(vendor: Dict[str, Any]) -> str:
    return create_access_token({"sub": str(vendor["_id"]), "typ": VENDOR_KIND, "businessName": vendor.get("businessName")})


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise APIError(401, "Invalid or expired token")


@dataclass(frozen=True)
class Principal:
    id: str
    kind: str
    role: str
    email: str
    name: str = ""
    token_id: Optional[str] = None
    token_exp: Optional[int] = None

    @property
    def is_vendor(self) -> bool:
        return self.kind == VENDOR_KIND

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.STAFF.value)


def bearer_token(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    return token or request.cookies.get("vendorToken") or request.cookies.get("token")


def get_optional_principal(token: Optional[str] = Depends(bearer_token)) -> Optional[Principal]:
    if not token:
        return None
    payload = decode_token(token)
    subject = payload.get("sub")
    kind = payload.get("typ")
    if not subject or kind not in (USER_KIND, VENDOR_KIND):
        raise APIError(401, "Invalid token: missing subject or namespace")
    db = database.get_db()
    if payload.get("jti") and db["revoked_token"].find_one({"jti": payload["jti"]}):
        raise APIError(401, "Token has been revoked")
    if kind == VENDOR_KIND:
        vendor = db["vendor"].find_one({"_id": database.oid(subject)})
        if not vendor:
            raise APIError(401, "Invalid token: vendor not found")
        return Principal(id=subject, kind=VENDOR_KIND, role=VENDOR, email=vendor["email"],
                         name=vendor.get("businessName", ""), token_id=payload.get("jti"), token_exp=payload.get("exp"))
    user = db["user"].find_one({"_id": database.oid(subject)})
    if not user:
        raise APIError(401, "Invalid token: user not found")
    return Principal(id=subject, kind=USER_KIND, role=user.get("role", UserRole.USER.value), email=user["email"],
                     name=user.get("name", ""), token_id=payload.get("jti"), token_exp=payload.get("exp"))


def get_current_principal(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise APIError(401, "Authentication required")
    return principal


@dataclass(frozen=True)
class Policy:
    """Declarative access rule: allowed roles plus an optional ownership test."""

    name: str
    roles: FrozenSet[str]
    owner: Optional[Callable[[Principal, Dict[str, Any]], bool]] = None
    bypass: FrozenSet[str] = field(default_factory=lambda: frozenset({UserRole.ADMIN.value, UserRole.STAFF.value}))

    def check_role(self, principal: Optional[Principal]) -> Principal:
        if principal is None:
            raise APIError(401, "Authentication required")
        if principal.role not in self.roles:
            raise APIError(403, "Not authorized to perform this action")
        return principal

    def enforce(self, principal: Optional[Principal], resource: Optional[Dict[str, Any]] = None) -> Principal:
        principal = self.check_role(principal)
        if self.owner is None or resource is None or principal.role in self.bypass:
            return principal
        if not self.owner(principal, resource):
            raise APIError(403, "You can only modify your own resources")
        return principal


def authorize(policy: Policy):
    """FastAPI dependency enforcing the role part of a policy."""

    def dependency(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
        return policy.check_role(principal)

    return dependency


def _owns_vendor_resource(principal: Principal, resource: Dict[str, Any]) -> bool:
    return principal.is_vendor and resource.get("vendorId") == principal.id


def _owns_user_resource(principal: Principal, resource: Dict[str, Any]) -> bool:
    return not principal.is_vendor and resource.get("userId") == principal.id


def _review_author_or_product_vendor(principal: Principal, resource: Dict[str, Any]) -> bool:
    if principal.is_vendor:
        return resource.get("productVendorId") == principal.id
    return resource.get("userId") == principal.id


ALL_USER_ROLES = frozenset(r.value for r in UserRole)
STAFF_ROLES = frozenset({UserRole.ADMIN.value, UserRole.STAFF.value})

ADMIN = Policy("admin", frozenset({UserRole.ADMIN.value}))
ADMIN_OR_STAFF = Policy("admin-or-staff", STAFF_ROLES)
CUSTOMER = Policy("customer", ALL_USER_ROLES)
VENDOR_ONLY = Policy("vendor", frozenset({VENDOR}))
ANY_PRINCIPAL = Policy("any", ALL_USER_ROLES | {VENDOR})
PRODUCT_WRITE = Policy("product-write", STAFF_ROLES | {VENDOR}, owner=_owns_vendor_resource)
ORDER_VIEW = Policy("order-view", ALL_USER_ROLES, owner=_owns_user_resource)
REVIEW_EDIT = Policy("review-edit", ALL_USER_ROLES | {VENDOR}, owner=_review_author_or_product_vendor, bypass=frozenset())
