"""
Sales analytics for the admin and vendor dashboards.

Sales figures count orders that are CONFIRMED or DELIVERED; revenue charts
count orders whose payment has completed.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import database
from config import LOW_STOCK_THRESHOLD
from schemas import OrderStatus, PaymentStatus, UserRole

SALE_STATUSES = [OrderStatus.CONFIRMED.value, OrderStatus.DELIVERED.value]


def _range_query(start: Optional[datetime], end: Optional[datetime]) -> Dict[str, Any]:
    query: Dict[str, Any] = {"status": {"$in": SALE_STATUSES}}
    created: Dict[str, Any] = {}
    if start:
        created["$gte"] = database.as_utc(start)
    if end:
        created["$lte"] = database.as_utc(end)
    if created:
        query["created_at"] = created
    return query


def _page(rows: List[Dict[str, Any]], page: int, limit: int) -> Dict[str, Any]:
    page = max(page, 1)
    start = (page - 1) * limit
    return {"items": rows[start:start + limit], "total": len(rows), "page": page, "limit": limit}


def admin_stats() -> Dict[str, Any]:
    db = database.get_db()
    paid = db["order"].find({"paymentStatus": PaymentStatus.COMPLETED.value}, {"totalPrice": 1})
    delivered = db["order"].find({"status": OrderStatus.DELIVERED.value}, {"totalPrice": 1})
    return {
        "totalSales": round(sum(o["totalPrice"] for o in paid), 2),
        "totalOrders": db["order"].count_documents({"status": {"$ne": OrderStatus.PENDING.value}}),
        "totalCustomers": db["user"].count_documents({"role": UserRole.USER.value}),
        "totalVendors": db["vendor"].count_documents({}),
        "totalProducts": db["product"].count_documents({}),
        "totalDeliveredRevenue": round(sum(o["totalPrice"] for o in delivered), 2),
    }


def revenue_chart(days: int = 7) -> List[Dict[str, Any]]:
    today = database.now().date()
    first = today - timedelta(days=days - 1)
    since = datetime(first.year, first.month, first.day)
    revenue = defaultdict(float)
    orders = database.get_db()["order"].find(
        {"paymentStatus": PaymentStatus.COMPLETED.value, "created_at": {"$gte": since}},
        {"totalPrice": 1, "created_at": 1},
    )
    for order in orders:
        revenue[order["created_at"].date()] += order["totalPrice"]
    return [
        {"date": (first + timedelta(days=i)).isoformat(), "revenue": round(revenue[first + timedelta(days=i)], 2)}
        for i in range(days)
    ]


def vendor_sales(start: Optional[datetime] = None, end: Optional[datetime] = None,
                 page: int = 1, limit: int = 10) -> Dict[str, Any]:
    db = database.get_db()
    totals: Dict[str, Dict[str, Any]] = {}
    for order in db["order"].find(_range_query(start, end), {"items": 1}):
        for item in order["items"]:
            if not item.get("vendorId"):
                continue
            row = totals.setdefault(item["vendorId"], {"vendorId": item["vendorId"], "totalSales": 0.0, "unitsSold": 0})
            row["totalSales"] += item["lineTotal"]
            row["unitsSold"] += item["quantity"]
    names = {str(v["_id"]): v.get("businessName") for v in db["vendor"].find({}, {"businessName": 1})}
    rows = sorted(totals.values(), key=lambda r: r["totalSales"], reverse=True)
    for row in rows:
        row["businessName"] = names.get(row["vendorId"])
        row["totalSales"] = round(row["totalSales"], 2)
    return _page(rows, page, limit)


def top_products(start: Optional[datetime] = None, end: Optional[datetime] = None,
                 page: int = 1, limit: int = 10, vendor_id: Optional[str] = None) -> Dict[str, Any]:
    query = _range_query(start, end)
    if vendor_id:
        query["vendorIds"] = vendor_id
    totals: Dict[str, Dict[str, Any]] = {}
    for order in database.get_db()["order"].find(query, {"items": 1}):
        for item in order["items"]:
            if vendor_id and item.get("vendorId") != vendor_id:
                continue
            row = totals.setdefault(item["productId"], {
                "productId": item["productId"],
                "productName": item["productName"],
                "unitsSold": 0,
                "revenue": 0.0,
            })
            row["unitsSold"] += item["quantity"]
            row["revenue"] += item["lineTotal"]
    rows = sorted(totals.values(), key=lambda r: (r["unitsSold"], r["revenue"]), reverse=True)
    for row in rows:
        row["revenue"] = round(row["revenue"], 2)
    return _page(rows, page, limit)


def vendor_stats(vendor_id: str) -> Dict[str, Any]:
    db = database.get_db()
    orders = list(db["order"].find({"vendorIds": vendor_id}, {"items": 1, "status": 1}))
    sales = 0.0
    units = 0
    for order in orders:
        if order["status"] not in SALE_STATUSES:
            continue
        for item in order["items"]:
            if item.get("vendorId") == vendor_id:
                sales += item["lineTotal"]
                units += item["quantity"]
    return {
        "totalProducts": db["product"].count_documents({"vendorId": vendor_id}),
        "totalOrders": len(orders),
        "pendingOrders": sum(1 for o in orders if o["status"] == OrderStatus.PENDING.value),
        "totalSales": round(sales, 2),
        "unitsSold": units,
    }


def vendor_top_products(vendor_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None,
                        page: int = 1, limit: int = 10) -> Dict[str, Any]:
    return top_products(start, end, page, limit, vendor_id=vendor_id)


def vendor_low_stock(vendor_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
    """Products and variants below the low-stock threshold, lowest stock first."""
    db = database.get_db()
    rows = []
    for product in db["product"].find({"vendorId": vendor_id}):
        product_id = str(product["_id"])
        if product.get("hasVariants"):
            for variant in db["product_variant"].find({"productId": product_id, "stock": {"$lt": LOW_STOCK_THRESHOLD}}):
                rows.append({
                    "productId": product_id,
                    "productName": product["name"],
                    "variantId": str(variant["_id"]),
                    "sku": variant["sku"],
                    "stock": variant["stock"],
                    "status": variant.get("status"),
                })
        elif (product.get("stock") or 0) < LOW_STOCK_THRESHOLD:
            rows.append({
                "productId": product_id,
                "productName": product["name"],
                "variantId": None,
                "sku": None,
                "stock": product.get("stock") or 0,
                "status": product.get("status"),
            })
    rows.sort(key=lambda r: r["stock"])
    return _page(rows, page, limit)
