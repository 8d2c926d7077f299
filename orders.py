"""
Order placement, the order status state machine, and payment callbacks.

Orders are placed from the customer's cart (or a single "buy now" item).
Unit prices are snapshotted when the order is placed; later price changes
never touch an existing order. Stock is reserved with a conditional
decrement per line so two orders cannot both take the last unit.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

import carts
import database
import notifications
import products
from auth import ORDER_VIEW, Principal
from config import LOCAL_DISTRICT_GROUP, SHIPPING_FEE_LOCAL, SHIPPING_FEE_REMOTE
from deals import find_active_promo
from errors import APIError
from payments import PaymentGatewayError
from pricing import stock_status
from schemas import (
    OrderCreate,
    OrderStatus,
    OrderStatusUpdate,
    PaymentCallback,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
)

logger = logging.getLogger(__name__)

FORWARD = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]
CANCELLABLE = (OrderStatus.PENDING, OrderStatus.CONFIRMED)
ONLINE_METHODS = (PaymentMethod.ESEWA, PaymentMethod.KHALTI)


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    if target == OrderStatus.CANCELLED:
        return current in CANCELLABLE
    if current not in FORWARD:
        return False
    return FORWARD.index(target) > FORWARD.index(current)


def district_fee(vendor_district: Optional[str], destination: str) -> int:
    if not vendor_district:
        return SHIPPING_FEE_REMOTE
    local = {d.lower() for d in LOCAL_DISTRICT_GROUP}
    a, b = vendor_district.strip().lower(), destination.strip().lower()
    if a == b or (a in local and b in local):
        return SHIPPING_FEE_LOCAL
    return SHIPPING_FEE_REMOTE


def shipping_fee(vendor_districts, destination: str) -> int:
    """One fee per distinct vendor district in the order."""
    return sum(district_fee(d, destination) for d in {(d or "").strip().lower() or None for d in vendor_districts})


def present_order(order: Dict[str, Any]) -> Dict[str, Any]:
    item = database.serialize(order)
    item["orderedAt"] = order.get("created_at")
    return item


def get_order_doc(order_id: str) -> Dict[str, Any]:
    order = database.find_by_id("order", order_id)
    if not order:
        raise APIError(404, "Order not found")
    return order


# Stock

def _stock_collection(variant_id: Optional[str]) -> str:
    return "product_variant" if variant_id else "product"


def _adjust_stock(item: Dict[str, Any], delta: int, require: Optional[int] = None) -> Optional[Dict[str, Any]]:
    target_id = item.get("variantId") or item["productId"]
    query: Dict[str, Any] = {"_id": database.oid(target_id)}
    if require is not None:
        query["stock"] = {"$gte": require}
    collection = database.get_db()[_stock_collection(item.get("variantId"))]
    doc = collection.find_one_and_update(query, {"$inc": {"stock": delta}}, return_document=ReturnDocument.AFTER)
    if doc is not None:
        collection.update_one({"_id": doc["_id"]}, {"$set": {"status": stock_status(doc["stock"])}})
    return doc


def reserve_stock(items: List[Dict[str, Any]]) -> None:
    reserved = []
    for item in items:
        doc = _adjust_stock(item, -item["quantity"], require=item["quantity"])
        if doc is None:
            for done in reserved:
                _adjust_stock(done, done["quantity"])
            logger.warning("Stock reservation failed for %s", item["productName"])
            raise APIError(400, f"Insufficient stock for {item['productName']}")
        reserved.append(item)
        if doc["stock"] <= 0:
            carts.drop_sold_out(item["productId"], item.get("variantId"))


def restore_stock(order: Dict[str, Any]) -> None:
    for item in order.get("items") or []:
        if _adjust_stock(item, item["quantity"]) is None:
            logger.info("Skipped restoring stock for removed item %s", item["productName"])


# Placement

def _requested_lines(user_id: str, payload: OrderCreate) -> List[Tuple[str, Optional[str], int]]:
    if payload.isBuyNow:
        return [(payload.productId, payload.variantId, payload.quantity)]
    lines = carts.cart_lines(user_id)
    if not lines:
        raise APIError(400, "Cart is empty")
    return [(line["productId"], line.get("variantId"), line["quantity"]) for line in lines]


def _build_items(requested) -> List[Dict[str, Any]]:
    resolved = []
    for product_id, variant_id, quantity in requested:
        try:
            product, variant = carts.resolve_item(product_id, variant_id)
        except APIError as exc:
            raise APIError(400, f"An item in your order is no longer available: {exc.message}")
        label = carts.item_label(product, variant)
        stock = carts.available_stock(product, variant)
        if quantity > stock:
            raise APIError(400, f"Insufficient stock for {label}: requested {quantity}, available {stock}")
        resolved.append((product, variant, quantity, label))

    deals = products.load_deals(p.get("dealId") for p, _, _, _ in resolved)
    items = []
    for product, variant, quantity, label in resolved:
        price = products.unit_price(product, variant, deals.get(product.get("dealId") or ""))
        items.append({
            "id": uuid.uuid4().hex,
            "productId": str(product["_id"]),
            "variantId": str(variant["_id"]) if variant else None,
            "vendorId": product.get("vendorId"),
            "productName": label,
            "sku": variant["sku"] if variant else None,
            "quantity": quantity,
            "unitPrice": price,
            "lineTotal": round(price * quantity, 2),
        })
    return items


def create_order(principal: Principal, payload: OrderCreate, gateways: Dict[str, Any]) -> Dict[str, Any]:
    user_id = principal.id
    items = _build_items(_requested_lines(user_id, payload))

    subtotal = round(sum(i["lineTotal"] for i in items), 2)
    discount = 0.0
    promo_code = None
    if payload.promoCode:
        promo = find_active_promo(payload.promoCode)
        if not promo:
            raise APIError(400, "Invalid or inactive promo code")
        promo_code = promo["code"]
        discount = round(subtotal * promo["discountPercentage"] / 100, 2)

    vendor_ids = sorted({i["vendorId"] for i in items if i["vendorId"]})
    vendors = database.get_db()["vendor"].find({"_id": {"$in": [database.oid(v) for v in vendor_ids]}})
    districts = [v.get("district") for v in vendors]
    fee = shipping_fee(districts or [None], payload.shippingAddress.district)

    reserve_stock(items)
    data = {
        "userId": user_id,
        "items": items,
        "vendorIds": vendor_ids,
        "subtotal": subtotal,
        "discountAmount": discount,
        "appliedPromoCode": promo_code,
        "shippingFee": fee,
        "totalPrice": round(max(subtotal - discount, 0) + fee, 2),
        "status": OrderStatus.PENDING.value,
        "paymentStatus": PaymentStatus.PENDING.value,
        "paymentMethod": payload.paymentMethod.value,
        "shippingAddress": payload.shippingAddress.model_dump(),
        "phoneNumber": payload.phoneNumber,
        "fullName": payload.fullName or principal.name,
        "isBuyNow": payload.isBuyNow,
        "paymentReference": None,
        "transactionId": None,
    }
    order_id = database.create_document("order", data)
    order = get_order_doc(order_id)

    redirect_url = None
    if payload.paymentMethod in ONLINE_METHODS:
        gateway = gateways[payload.paymentMethod.value]
        try:
            session = gateway.initiate(order)
        except PaymentGatewayError:
            cancel_order(order, PaymentStatus.FAILED)
            raise
        redirect_url = session["redirectUrl"]
        database.update_document("order", order_id, {"paymentReference": session["reference"]})
        order = get_order_doc(order_id)

    if not payload.isBuyNow:
        carts.clear_cart(user_id)
    notifications.order_placed(order_id, vendor_ids, data["fullName"] or principal.email)
    logger.info("Order %s placed by %s: %d item(s), total %.2f via %s",
                order_id, user_id, len(items), data["totalPrice"], payload.paymentMethod.value)
    return {"order": present_order(order), "redirectUrl": redirect_url}


def cancel_order(order: Dict[str, Any], payment_status: Optional[PaymentStatus] = None) -> bool:
    """Move an order to CANCELLED and put its stock back. False if it had already moved on."""
    changes: Dict[str, Any] = {"status": OrderStatus.CANCELLED.value, "updated_at": database.now()}
    if payment_status is not None:
        changes["paymentStatus"] = payment_status.value
    result = database.get_db()["order"].update_one(
        {"_id": order["_id"], "status": order["status"]}, {"$set": changes})
    if result.modified_count == 0:
        return False
    restore_stock(order)
    return True


# State machine

def update_status(order_id: str, payload: OrderStatusUpdate) -> Dict[str, Any]:
    order = get_order_doc(order_id)
    current = OrderStatus(order["status"])
    target = payload.status
    if target == current:
        return present_order(order)
    if not can_transition(current, target):
        raise APIError(400, f"Invalid status transition from {current.value} to {target.value}")

    if target == OrderStatus.CANCELLED:
        if not cancel_order(order):
            raise APIError(409, "Order was modified by another request")
    else:
        changes: Dict[str, Any] = {"status": target.value, "updated_at": database.now()}
        if target == OrderStatus.DELIVERED and order["paymentMethod"] == PaymentMethod.CASH_ON_DELIVERY.value:
            changes["paymentStatus"] = PaymentStatus.COMPLETED.value
        result = database.get_db()["order"].update_one({"_id": order["_id"], "status": current.value}, {"$set": changes})
        if result.modified_count == 0:
            raise APIError(409, "Order was modified by another request")

    order = get_order_doc(order_id)
    notifications.order_status_changed(order)
    logger.info("Order %s moved from %s to %s", order_id, current.value, target.value)
    return present_order(order)


# Payment callbacks

def _online_order(principal: Principal, order_id: str) -> Dict[str, Any]:
    order = get_order_doc(order_id)
    ORDER_VIEW.enforce(principal, order)
    if order["paymentMethod"] not in (m.value for m in ONLINE_METHODS):
        raise APIError(400, "Order is not paid online")
    return order


def payment_success(principal: Principal, order_id: str, callback: PaymentCallback,
                    gateways: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    order = _online_order(principal, order_id)
    if order["paymentStatus"] == PaymentStatus.COMPLETED.value:
        return present_order(order), True
    result = gateways[order["paymentMethod"]].verify(order, callback)
    if not result["paid"]:
        database.update_document("order", order_id, {"paymentStatus": PaymentStatus.FAILED.value})
        logger.warning("Payment verification failed for order %s", order_id)
        return present_order(get_order_doc(order_id)), False

    changes = {
        "paymentStatus": PaymentStatus.COMPLETED.value,
        "transactionId": result["transactionId"],
        "updated_at": database.now(),
    }
    completed = database.get_db()["order"].update_one(
        {"_id": order["_id"], "status": {"$ne": OrderStatus.CANCELLED.value}}, {"$set": changes})
    if completed.matched_count == 0:
        logger.warning("Payment %s arrived for cancelled order %s; refund required", result["transactionId"], order_id)
        raise APIError(409, "Order was cancelled before the payment completed")
    advanced = database.get_db()["order"].update_one(
        {"_id": order["_id"], "status": OrderStatus.PENDING.value},
        {"$set": {"status": OrderStatus.CONFIRMED.value}},
    )
    order = get_order_doc(order_id)
    if advanced.modified_count:
        notifications.order_status_changed(order, f"Payment received, your order {order_id} is confirmed")
    logger.info("Payment completed for order %s", order_id)
    return present_order(order), True


def payment_cancel(principal: Principal, order_id: str) -> Dict[str, Any]:
    order = _online_order(principal, order_id)
    if order["paymentStatus"] == PaymentStatus.COMPLETED.value:
        raise APIError(400, "Payment already completed")
    database.update_document("order", order_id, {"paymentStatus": PaymentStatus.FAILED.value})
    logger.info("Payment cancelled for order %s", order_id)
    return present_order(get_order_doc(order_id))


# Reads

def user_orders(principal: Principal) -> List[Dict[str, Any]]:
    cursor = database.get_db()["order"].find({"userId": principal.id}).sort("created_at", -1)
    return [present_order(o) for o in cursor]


def get_order(principal: Principal, order_id: str) -> Dict[str, Any]:
    order = get_order_doc(order_id)
    ORDER_VIEW.enforce(principal, order)
    return present_order(order)


def admin_orders(status: Optional[OrderStatus] = None, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    db = database.get_db()
    query = {"status": status.value} if status else {}
    page = max(page, 1)
    cursor = db["order"].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    return {
        "orders": [present_order(o) for o in cursor],
        "total": db["order"].count_documents(query),
        "page": page,
        "limit": limit,
    }


def vendor_orders(vendor_id: str) -> List[Dict[str, Any]]:
    """Orders containing the vendor's products, reduced to the vendor's own lines."""
    out = []
    for order in database.get_db()["order"].find({"vendorIds": vendor_id}).sort("created_at", -1):
        item = present_order(order)
        item["items"] = [i for i in order["items"] if i.get("vendorId") == vendor_id]
        item["vendorSubtotal"] = round(sum(i["lineTotal"] for i in item["items"]), 2)
        for private in ("subtotal", "discountAmount", "appliedPromoCode", "totalPrice", "vendorIds"):
            item.pop(private, None)
        out.append(item)
    return out


def track_order(email: str, order_id: str) -> Dict[str, Any]:
    user = database.get_db()["user"].find_one({"email": email})
    order = database.find_by_id("order", order_id)
    if not user or not order or order["userId"] != str(user["_id"]):
        raise APIError(404, "Order not found")
    return {
        "id": order_id,
        "status": order["status"],
        "paymentStatus": order["paymentStatus"],
        "orderedAt": order.get("created_at"),
        "items": [{"productName": i["productName"], "quantity": i["quantity"]} for i in order["items"]],
    }


def update_address(principal: Principal, order_id: str, address: ShippingAddress) -> Dict[str, Any]:
    order = get_order_doc(order_id)
    ORDER_VIEW.enforce(principal, order)
    if order["status"] != OrderStatus.PENDING.value:
        raise APIError(400, "Shipping address can only be changed while the order is pending")
    changes: Dict[str, Any] = {"shippingAddress": address.model_dump()}
    if address.district.strip().lower() != order["shippingAddress"]["district"].strip().lower():
        vendors = database.get_db()["vendor"].find({"_id": {"$in": [database.oid(v) for v in order.get("vendorIds") or []]}})
        fee = shipping_fee([v.get("district") for v in vendors] or [None], address.district)
        if fee != order["shippingFee"]:
            if order["paymentMethod"] != PaymentMethod.CASH_ON_DELIVERY.value:
                raise APIError(400, "Delivery district cannot change the total of an online payment")
            changes["shippingFee"] = fee
            changes["totalPrice"] = round(order["totalPrice"] - order["shippingFee"] + fee, 2)
    database.update_document("order", order_id, changes)
    return present_order(get_order_doc(order_id))
