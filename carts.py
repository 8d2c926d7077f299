"""
Shopping cart and wishlist.

Both are one document per user holding an embedded list of lines. Cart
totals are never stored; they are recomputed from current prices on read.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

import database
import products
from errors import APIError
from schemas import CartAdd, CartRemove, WishlistAdd, WishlistMoveToCart, WishlistRemove

logger = logging.getLogger(__name__)


def _get_or_create(collection: str, user_id: str) -> Dict[str, Any]:
    db = database.get_db()
    doc = db[collection].find_one({"userId": user_id})
    if doc:
        return doc
    try:
        database.create_document(collection, {"userId": user_id, "items": []})
    except DuplicateKeyError:
        pass  # created by a concurrent request
    return db[collection].find_one({"userId": user_id})


def _save_items(collection: str, doc: Dict[str, Any], items: List[Dict[str, Any]]) -> None:
    database.update_document(collection, str(doc["_id"]), {"items": items})


def resolve_item(product_id: str, variant_id: Optional[str]) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Load the product (and variant) a cart line points at, checking they belong together."""
    product = products.get_product_doc(product_id)
    if product.get("hasVariants"):
        if not variant_id:
            raise APIError(400, f"variantId is required for {product['name']}")
        variant = database.get_db()["product_variant"].find_one(
            {"_id": database.oid(variant_id), "productId": product_id})
        if not variant:
            raise APIError(404, "Variant not found")
        return product, variant
    if variant_id:
        raise APIError(400, f"{product['name']} has no variants")
    return product, None


def item_label(product: Dict[str, Any], variant: Optional[Dict[str, Any]]) -> str:
    if variant:
        return f"{product['name']} ({variant['sku']})"
    return product["name"]


def available_stock(product: Dict[str, Any], variant: Optional[Dict[str, Any]]) -> int:
    source = variant if variant is not None else product
    return source.get("stock") or 0


# Cart

def add_to_cart(user_id: str, payload: CartAdd) -> Dict[str, Any]:
    product, variant = resolve_item(payload.productId, payload.variantId)
    stock = available_stock(product, variant)
    label = item_label(product, variant)
    if stock <= 0:
        raise APIError(400, f"{label} is out of stock")

    cart = _get_or_create("cart", user_id)
    items = list(cart.get("items") or [])
    line = next((i for i in items if i["productId"] == payload.productId and i.get("variantId") == payload.variantId), None)
    quantity = payload.quantity + (line["quantity"] if line else 0)
    if quantity > stock:
        raise APIError(400, f"Only {stock} item(s) of {label} in stock")
    if line:
        line["quantity"] = quantity
    else:
        items.append({
            "id": uuid.uuid4().hex,
            "productId": payload.productId,
            "variantId": payload.variantId,
            "quantity": quantity,
        })
    _save_items("cart", cart, items)
    return view_cart(user_id)


def view_cart(user_id: str) -> Dict[str, Any]:
    cart = _get_or_create("cart", user_id)
    lines = []
    warnings = []
    product_docs = {}
    for item in cart.get("items") or []:
        try:
            product, variant = resolve_item(item["productId"], item.get("variantId"))
        except APIError:
            warnings.append(f"An item in your cart is no longer available (line {item['id']})")
            continue
        product_docs[item["id"]] = (product, variant)
    deals = products.load_deals(p.get("dealId") for p, _ in product_docs.values())

    total = 0.0
    for item in cart.get("items") or []:
        if item["id"] not in product_docs:
            continue
        product, variant = product_docs[item["id"]]
        price = products.unit_price(product, variant, deals.get(product.get("dealId") or ""))
        stock = available_stock(product, variant)
        line_total = round(price * item["quantity"], 2)
        total += line_total
        if item["quantity"] > stock:
            warnings.append(f"Only {stock} item(s) of {item_label(product, variant)} in stock")
        images = (variant.get("images") if variant else None) or product.get("productImages") or []
        lines.append({
            "id": item["id"],
            "productId": item["productId"],
            "variantId": item.get("variantId"),
            "name": product["name"],
            "sku": variant["sku"] if variant else None,
            "attributes": variant.get("attributes") if variant else None,
            "image": images[0] if images else None,
            "quantity": item["quantity"],
            "unitPrice": price,
            "lineTotal": line_total,
            "stock": stock,
        })
    return {
        "id": str(cart["_id"]),
        "items": lines,
        "itemCount": sum(i["quantity"] for i in lines),
        "total": round(total, 2),
        "warnings": warnings,
    }


def remove_from_cart(user_id: str, payload: CartRemove) -> Dict[str, Any]:
    cart = _get_or_create("cart", user_id)
    items = list(cart.get("items") or [])
    line = next((i for i in items if i["id"] == payload.cartItemId), None)
    if not line:
        raise APIError(404, "Cart item not found")
    if payload.decreaseOnly and line["quantity"] > 1:
        line["quantity"] -= 1
    else:
        items.remove(line)
    _save_items("cart", cart, items)
    return view_cart(user_id)


def cart_lines(user_id: str) -> List[Dict[str, Any]]:
    cart = database.get_db()["cart"].find_one({"userId": user_id})
    return list(cart.get("items") or []) if cart else []


def clear_cart(user_id: str) -> None:
    database.get_db()["cart"].update_one({"userId": user_id}, {"$set": {"items": [], "updated_at": database.now()}})


def drop_sold_out(product_id: str, variant_id: Optional[str] = None) -> None:
    """Remove lines for a product (or one variant) that has run out of stock."""
    match = {"productId": product_id}
    if variant_id:
        match["variantId"] = variant_id
    database.get_db()["cart"].update_many({}, {"$pull": {"items": match}})


# Wishlist

def _in_stock(product: Dict[str, Any]) -> bool:
    if product.get("hasVariants"):
        return database.get_db()["product_variant"].count_documents(
            {"productId": str(product["_id"]), "stock": {"$gt": 0}}) > 0
    return (product.get("stock") or 0) > 0


def add_to_wishlist(user_id: str, payload: WishlistAdd) -> Dict[str, Any]:
    products.get_product_doc(payload.productId)
    wishlist = _get_or_create("wishlist", user_id)
    items = list(wishlist.get("items") or [])
    if any(i["productId"] == payload.productId for i in items):
        raise APIError(400, "Product already in wishlist")
    items.append({"id": uuid.uuid4().hex, "productId": payload.productId, "addedAt": database.now()})
    _save_items("wishlist", wishlist, items)
    return view_wishlist(user_id)


def view_wishlist(user_id: str) -> Dict[str, Any]:
    wishlist = _get_or_create("wishlist", user_id)
    entries = []
    for item in wishlist.get("items") or []:
        product = database.get_db()["product"].find_one({"_id": database.oid(item["productId"])})
        if product and _in_stock(product):
            entries.append((item, product))
    deals = products.load_deals(p.get("dealId") for _, p in entries)
    return {
        "id": str(wishlist["_id"]),
        "items": [{"id": item["id"], "product": products.present(p, deals)} for item, p in entries],
    }


def remove_from_wishlist(user_id: str, payload: WishlistRemove) -> Dict[str, Any]:
    wishlist = _get_or_create("wishlist", user_id)
    items = [i for i in wishlist.get("items") or [] if i["id"] != payload.wishlistItemId]
    if len(items) == len(wishlist.get("items") or []):
        raise APIError(404, "Wishlist item not found")
    _save_items("wishlist", wishlist, items)
    return view_wishlist(user_id)


def move_to_cart(user_id: str, payload: WishlistMoveToCart) -> Dict[str, Any]:
    wishlist = _get_or_create("wishlist", user_id)
    line = next((i for i in wishlist.get("items") or [] if i["id"] == payload.wishlistItemId), None)
    if not line:
        raise APIError(404, "Wishlist item not found")
    cart = add_to_cart(user_id, CartAdd(productId=line["productId"], variantId=payload.variantId, quantity=payload.quantity))
    remove_from_wishlist(user_id, WishlistRemove(wishlistItemId=payload.wishlistItemId))
    logger.info("User %s moved product %s from wishlist to cart", user_id, line["productId"])
    return cart
