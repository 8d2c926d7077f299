import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId

import database
from auth import Principal
from errors import APIError
from schemas import NotificationTarget, NotificationType

logger = logging.getLogger(__name__)


def notify(target: NotificationTarget, type: NotificationType, title: str, message: str,
           user_id: Optional[str] = None, vendor_id: Optional[str] = None, order_id: Optional[str] = None) -> str:
    return database.create_document("notification", {
        "title": title,
        "message": message,
        "type": type.value,
        "target": target.value,
        "isRead": False,
        "userId": user_id,
        "vendorId": vendor_id,
        "orderId": order_id,
    })


def order_placed(order_id: str, vendor_ids: Iterable[str], customer_name: str) -> None:
    notify(NotificationTarget.ADMIN, NotificationType.ORDER_PLACED, "New order placed",
           f"{customer_name} placed order {order_id}", order_id=order_id)
    for vendor_id in set(vendor_ids):
        notify(NotificationTarget.VENDOR, NotificationType.ORDER_PLACED, "New order for your products",
               f"Order {order_id} contains your products", vendor_id=vendor_id, order_id=order_id)


def order_status_changed(order: Dict[str, Any], message: Optional[str] = None) -> None:
    order_id = str(order["_id"])
    notify(NotificationTarget.USER, NotificationType.ORDER_STATUS_UPDATED, "Order status updated",
           message or f"Your order {order_id} is now {order['status']}", user_id=order["userId"], order_id=order_id)


def _visible_to(principal: Principal) -> Dict[str, Any]:
    if principal.is_vendor:
        return {"target": NotificationTarget.VENDOR.value, "vendorId": principal.id}
    if principal.is_staff:
        return {"target": NotificationTarget.ADMIN.value}
    return {"target": NotificationTarget.USER.value, "userId": principal.id}


def list_notifications(principal: Principal, unread_only: bool = False) -> Dict[str, Any]:
    db = database.get_db()
    query = _visible_to(principal)
    if unread_only:
        query["isRead"] = False
    items: List[Dict[str, Any]] = [database.serialize(n) for n in db["notification"].find(query).sort("created_at", -1)]
    unread = db["notification"].count_documents({**_visible_to(principal), "isRead": False})
    return {"notifications": items, "unreadCount": unread}


def get_notification(principal: Principal, notification_id: str) -> Dict[str, Any]:
    query = {"_id": database.oid(notification_id), **_visible_to(principal)}
    notification = database.get_db()["notification"].find_one(query)
    if not notification:
        raise APIError(404, "Notification not found")
    return database.serialize(notification)


def mark_read(principal: Principal, notification_id: str) -> Dict[str, Any]:
    get_notification(principal, notification_id)
    database.update_document("notification", notification_id, {"isRead": True})
    return database.serialize(database.get_db()["notification"].find_one({"_id": ObjectId(notification_id)}))
