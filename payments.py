"""
Payment gateway clients.

Each gateway turns a freshly placed order into a redirect URL for the
customer and later verifies the payload the customer comes back with.
Routes get the gateways through the `get_payment_gateways` dependency so
tests can swap in a fake.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
import uuid
from typing import Any, Dict, Optional

import httpx

from config import (
    ESEWA_MERCHANT,
    ESEWA_PAYMENT_URL,
    ESEWA_SECRET,
    FRONTEND_URL,
    KHALTI_BASE_URL,
    KHALTI_SECRET_KEY,
    PAYMENT_TIMEOUT,
)
from errors import APIError
from schemas import PaymentCallback, PaymentMethod

logger = logging.getLogger(__name__)


class PaymentGatewayError(APIError):
    def __init__(self, message: str):
        super().__init__(502, message)


def esewa_signature(message: str, secret: str = ESEWA_SECRET) -> str:
    digest = hmac.new(secret.encode(), message.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _amount(value: Any) -> float:
    return round(float(str(value).replace(",", "")), 2)


class EsewaGateway:
    method = PaymentMethod.ESEWA

    def __init__(self, client: Optional[httpx.Client] = None):
        self.client = client or httpx.Client(timeout=PAYMENT_TIMEOUT, follow_redirects=True)

    def initiate(self, order: Dict[str, Any]) -> Dict[str, str]:
        order_id = str(order["_id"])
        reference = str(uuid.uuid4())
        total = order["totalPrice"]
        params = {
            "amount": total,
            "tax_amount": "0",
            "product_service_charge": "0",
            "product_delivery_charge": "0",
            "total_amount": total,
            "transaction_uuid": reference,
            "product_code": ESEWA_MERCHANT,
            "success_url": f"{FRONTEND_URL}/order/esewa-payment-success?oid={order_id}",
            "failure_url": f"{FRONTEND_URL}/order/esewa-payment-failure?oid={order_id}",
            "signed_field_names": "total_amount,transaction_uuid,product_code",
            "signature": esewa_signature(f"total_amount={total},transaction_uuid={reference},product_code={ESEWA_MERCHANT}"),
        }
        try:
            response = self.client.post(ESEWA_PAYMENT_URL, params=params)
        except httpx.HTTPError as exc:
            logger.warning("eSewa initiation failed for order %s: %s", order_id, exc)
            raise PaymentGatewayError("Esewa payment initiation failed")
        if response.status_code != 200:
            logger.warning("eSewa answered %s for order %s", response.status_code, order_id)
            raise PaymentGatewayError("Esewa payment initiation failed")
        return {"redirectUrl": str(response.url), "reference": reference}

    def verify(self, order: Dict[str, Any], callback: PaymentCallback) -> Dict[str, Any]:
        if not callback.data:
            raise APIError(400, "Missing eSewa response data")
        try:
            payload = json.loads(base64.b64decode(callback.data))
        except (binascii.Error, ValueError):
            raise APIError(400, "Malformed eSewa response data")
        fields = str(payload.get("signed_field_names", "")).split(",")
        try:
            message = ",".join(f"{f}={payload[f]}" for f in fields)
        except KeyError:
            return {"paid": False, "transactionId": None}
        paid = (
            hmac.compare_digest(esewa_signature(message), str(payload.get("signature", "")))
            and payload.get("status") == "COMPLETE"
            and payload.get("transaction_uuid") == order.get("paymentReference")
            and _amount(payload.get("total_amount", 0)) == _amount(order["totalPrice"])
        )
        return {"paid": paid, "transactionId": payload.get("transaction_code")}


class KhaltiGateway:
    method = PaymentMethod.KHALTI

    def __init__(self, client: Optional[httpx.Client] = None):
        self.client = client or httpx.Client(
            base_url=KHALTI_BASE_URL,
            timeout=PAYMENT_TIMEOUT,
            headers={"Authorization": f"Key {KHALTI_SECRET_KEY}"},
        )

    def initiate(self, order: Dict[str, Any]) -> Dict[str, str]:
        order_id = str(order["_id"])
        body = {
            "return_url": f"{FRONTEND_URL}/order/khalti-payment-success?oid={order_id}",
            "website_url": FRONTEND_URL,
            "amount": int(round(order["totalPrice"] * 100)),
            "purchase_order_id": order_id,
            "purchase_order_name": f"Order {order_id}",
        }
        try:
            response = self.client.post("/epayment/initiate/", json=body)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Khalti initiation failed for order %s: %s", order_id, exc)
            raise PaymentGatewayError("Khalti payment initiation failed")
        if not data.get("payment_url") or not data.get("pidx"):
            raise PaymentGatewayError("Khalti payment initiation failed")
        return {"redirectUrl": data["payment_url"], "reference": data["pidx"]}

    def verify(self, order: Dict[str, Any], callback: PaymentCallback) -> Dict[str, Any]:
        if not callback.pidx:
            raise APIError(400, "Missing Khalti pidx")
        if callback.pidx != order.get("paymentReference"):
            return {"paid": False, "transactionId": None}
        try:
            response = self.client.post("/epayment/lookup/", json={"pidx": callback.pidx})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Khalti lookup failed for order %s: %s", order["_id"], exc)
            raise PaymentGatewayError("Khalti payment verification failed")
        paid = data.get("status") == "Completed" and data.get("total_amount") == int(round(order["totalPrice"] * 100))
        return {"paid": paid, "transactionId": data.get("transaction_id")}


_gateways: Dict[str, Any] = {}


def get_payment_gateways() -> Dict[str, Any]:
    """Gateway per online payment method, created on first use."""
    if not _gateways:
        _gateways[PaymentMethod.ESEWA.value] = EsewaGateway()
        _gateways[PaymentMethod.KHALTI.value] = KhaltiGateway()
    return _gateways
