"""
Product catalog: products, their variants, and catalog listings.

A product either sells directly (basePrice + stock on the product) or
through variants (hasVariants, each variant with its own sku, price, stock
and attribute map). Variants live in the "product_variant" collection and
are removed together with their product.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from fastapi import UploadFile
from pymongo.errors import DuplicateKeyError

import catalog
import database
import storage
from auth import PRODUCT_WRITE, Principal
from config import DEFAULT_PAGE_LIMIT, MAX_IMAGES_PER_FIELD
from errors import APIError
from pricing import final_price, price_summary, stock_status, validate_discount
from schemas import DiscountType, ProductCreate, ProductUpdate, VariantIn, VariantUpdate

logger = logging.getLogger(__name__)

SORTS = ("all", "low-to-high", "high-to-low")


# Lookups

def load_deals(deal_ids: Iterable[Optional[str]]) -> Dict[str, Dict[str, Any]]:
    ids = [ObjectId(d) for d in set(deal_ids) if d and ObjectId.is_valid(d)]
    if not ids:
        return {}
    return {str(d["_id"]): d for d in database.get_documents("deal", {"_id": {"$in": ids}})}


def get_variants(product_id: str) -> List[Dict[str, Any]]:
    return list(database.get_db()["product_variant"].find({"productId": product_id}).sort("created_at", 1))


def get_product_doc(product_id: str) -> Dict[str, Any]:
    product = database.find_by_id("product", product_id)
    if not product:
        raise APIError(404, "Product not found")
    return product


def _product_in_subcategory(category_id: str, subcategory_id: str, product_id: str) -> Dict[str, Any]:
    product = database.get_db()["product"].find_one({
        "_id": database.oid(product_id),
        "categoryId": category_id,
        "subcategoryId": subcategory_id,
    })
    if not product:
        raise APIError(404, "Product not found")
    return product


def _check_references(deal_id=None, banner_id=None, brand_id=None) -> None:
    if deal_id and not database.find_by_id("deal", deal_id):
        raise APIError(404, "Deal does not exist")
    if banner_id and not database.find_by_id("banner", banner_id):
        raise APIError(404, "Banner does not exist")
    if brand_id and not database.find_by_id("brand", brand_id):
        raise APIError(404, "Brand does not exist")


def _check_skus(variants: List[VariantIn]) -> None:
    seen = set()
    for i, v in enumerate(variants):
        if not v.sku:
            raise APIError(400, f"Variant at index {i} is missing SKU")
        if v.sku in seen:
            raise APIError(400, f"Duplicate SKU {v.sku} in variants")
        seen.add(v.sku)
        validate_discount(v.basePrice, v.discount, v.discountType)


# Presentation

def present_variant(variant: Dict[str, Any], deal: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    item = database.serialize(variant)
    item.update(price_summary(variant, deal))
    return item


def present(product: Dict[str, Any], deals: Optional[Dict[str, Dict[str, Any]]] = None,
            variants: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    if deals is None:
        deals = load_deals([product.get("dealId")])
    deal = deals.get(product.get("dealId") or "")
    item = database.serialize(product)
    if product.get("hasVariants"):
        if variants is None:
            variants = get_variants(item["id"])
        item["variants"] = [present_variant(v, deal) for v in variants]
        prices = [v["finalPrice"] for v in item["variants"]]
        item["finalPrice"] = min(prices) if prices else None
        item["dealDiscount"] = price_summary({}, deal)["dealDiscount"]
    else:
        item.update(price_summary(product, deal))
    return item


def _sort_price(item: Dict[str, Any]) -> float:
    return item.get("finalPrice") or 0.0


def _rating(product_id: str) -> Dict[str, Any]:
    stats = list(database.get_db()["review"].aggregate([
        {"$match": {"productId": product_id}},
        {"$group": {"_id": "$productId", "avg": {"$avg": "$rating"}, "count": {"$sum": 1}}},
    ]))
    if not stats:
        return {"averageRating": 0, "reviewCount": 0}
    return {"averageRating": round(stats[0]["avg"], 1), "reviewCount": stats[0]["count"]}


# Creation

def _variant_doc(product_id: str, variant: VariantIn, images: List[str]) -> Dict[str, Any]:
    data = variant.model_dump(mode="json")
    data["images"] = list(variant.images) + images
    data["productId"] = product_id
    data["status"] = data.get("status") or stock_status(variant.stock)
    return data


def _check_variant_images(variants: List[VariantIn], variant_images: Dict[int, List[UploadFile]]) -> None:
    for i, variant in enumerate(variants):
        uploads = variant_images.get(i + 1, [])
        storage.validate_images(uploads, f"variantImages{i + 1}")
        if len(variant.images) + len(uploads) > MAX_IMAGES_PER_FIELD:
            raise APIError(400, f"Too many images for variant {variant.sku}. Maximum is {MAX_IMAGES_PER_FIELD}.")


def _insert_variants(product_id: str, variants: List[VariantIn], variant_images: Dict[int, List[UploadFile]]) -> None:
    _check_variant_images(variants, variant_images)
    for i, variant in enumerate(variants):
        urls = storage.save_images(variant_images.get(i + 1, []), f"variantImages{i + 1}")
        try:
            database.create_document("product_variant", _variant_doc(product_id, variant, urls))
        except DuplicateKeyError:
            raise APIError(400, f"SKU {variant.sku} already exists for this product")


def _replace_variants(product_id: str, variants: List[VariantIn], variant_images: Dict[int, List[UploadFile]]) -> None:
    """Swap a product's variants for new ones, putting the old set back if any insert fails."""
    collection = database.get_db()["product_variant"]
    previous = get_variants(product_id)
    collection.delete_many({"productId": product_id})
    try:
        _insert_variants(product_id, variants, variant_images)
    except APIError:
        collection.delete_many({"productId": product_id})
        if previous:
            collection.insert_many(previous)
        logger.warning("Variant replacement for product %s failed; previous variants restored", product_id)
        raise


def create_product(principal: Principal, category_id: str, subcategory_id: str, payload: ProductCreate,
                   product_images: Optional[List[UploadFile]] = None,
                   variant_images: Optional[Dict[int, List[UploadFile]]] = None) -> Dict[str, Any]:
    PRODUCT_WRITE.check_role(principal)
    product_images = product_images or []
    variant_images = variant_images or {}
    catalog.get_category(category_id)
    catalog.get_subcategory(subcategory_id, category_id)
    _check_references(payload.dealId, payload.bannerId, payload.brandId)

    if principal.is_vendor:
        vendor_id = principal.id
    else:
        if not payload.vendorId:
            raise APIError(400, "vendorId is required when staff create a product")
        if not database.find_by_id("vendor", payload.vendorId):
            raise APIError(404, "Vendor not found")
        vendor_id = payload.vendorId

    if payload.hasVariants:
        _check_skus(payload.variants)
        if product_images or payload.productImages:
            raise APIError(400, "Products with variants take images per variant")
        _check_variant_images(payload.variants, variant_images)
    else:
        validate_discount(payload.basePrice, payload.discount, payload.discountType)
        storage.validate_images(product_images, "productImages")

    images = list(payload.productImages or [])
    if not payload.hasVariants:
        images += storage.save_images(product_images, "productImages")
        if len(images) > MAX_IMAGES_PER_FIELD:
            raise APIError(400, f"Maximum {MAX_IMAGES_PER_FIELD} images allowed for non-variant products")

    data = {
        "name": payload.name,
        "description": payload.description,
        "basePrice": None if payload.hasVariants else payload.basePrice,
        "discount": payload.discount or 0,
        "discountType": (payload.discountType or DiscountType.PERCENTAGE).value,
        "stock": None if payload.hasVariants else payload.stock,
        "quantity": payload.quantity,
        "status": None if payload.hasVariants else (payload.status.value if payload.status else stock_status(payload.stock)),
        "hasVariants": payload.hasVariants,
        "productImages": images,
        "categoryId": category_id,
        "subcategoryId": subcategory_id,
        "vendorId": vendor_id,
        "dealId": payload.dealId,
        "bannerId": payload.bannerId,
        "brandId": payload.brandId,
        "createdBy": principal.id,
    }
    product_id = database.create_document("product", data)
    if payload.hasVariants:
        try:
            _insert_variants(product_id, payload.variants, variant_images)
        except APIError:
            database.get_db()["product_variant"].delete_many({"productId": product_id})
            database.get_db()["product"].delete_one({"_id": ObjectId(product_id)})
            raise
    logger.info("Product %s created by %s (variants=%s)", product_id, principal.id, payload.hasVariants)
    return present(get_product_doc(product_id))


# Reads

def list_products(category_id: Optional[str] = None, subcategory_id: Optional[str] = None,
                  brand_id: Optional[str] = None, deal_id: Optional[str] = None,
                  banner_id: Optional[str] = None, search: Optional[str] = None,
                  sort: str = "all", page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Dict[str, Any]:
    """In-stock products matching the filters, sorted by final price or recency."""
    if sort not in SORTS:
        raise APIError(400, f"sort must be one of {', '.join(SORTS)}")
    db = database.get_db()
    query: Dict[str, Any] = {}
    if subcategory_id:
        catalog.get_subcategory(subcategory_id)
        query["subcategoryId"] = subcategory_id
    elif category_id:
        catalog.get_category(category_id)
        query["categoryId"] = category_id
    if brand_id:
        _check_references(brand_id=brand_id)
        query["brandId"] = brand_id
    if deal_id:
        _check_references(deal_id=deal_id)
        query["dealId"] = deal_id
    if banner_id:
        _check_references(banner_id=banner_id)
        query["bannerId"] = banner_id
    if search:
        query["$or"] = [
            {"name": {"$regex": search, "$options": "i"}},
            {"description": {"$regex": search, "$options": "i"}},
        ]
    in_stock_variant_products = [ObjectId(p) for p in db["product_variant"].distinct("productId", {"stock": {"$gt": 0}})]
    query = {"$and": [query, {"$or": [
        {"hasVariants": False, "stock": {"$gt": 0}},
        {"_id": {"$in": in_stock_variant_products}},
    ]}]}

    docs = list(db["product"].find(query).sort("created_at", -1))
    deals = load_deals(d.get("dealId") for d in docs)
    items = [present(d, deals) for d in docs]
    if sort == "low-to-high":
        items.sort(key=_sort_price)
    elif sort == "high-to-low":
        items.sort(key=_sort_price, reverse=True)
    page = max(page, 1)
    start = (page - 1) * limit
    return {"products": items[start:start + limit], "total": len(items), "page": page, "limit": limit}


def list_subcategory_products(category_id: str, subcategory_id: str) -> List[Dict[str, Any]]:
    catalog.get_subcategory(subcategory_id, category_id)
    docs = list(database.get_db()["product"].find({"subcategoryId": subcategory_id}).sort("created_at", -1))
    deals = load_deals(d.get("dealId") for d in docs)
    return [present(d, deals) for d in docs]


def get_product(category_id: str, subcategory_id: str, product_id: str) -> Dict[str, Any]:
    item = present(_product_in_subcategory(category_id, subcategory_id, product_id))
    item.update(_rating(product_id))
    return item


def admin_products(page: int = 1, limit: int = 7, sort: str = "createdAt") -> Dict[str, Any]:
    db = database.get_db()
    cursor = db["product"].find({}, {"name": 1, "basePrice": 1, "stock": 1, "vendorId": 1, "hasVariants": 1, "created_at": 1})
    cursor = cursor.sort("name", 1) if sort == "name" else cursor.sort("created_at", -1)
    page = max(page, 1)
    products = [database.serialize(p) for p in cursor.skip((page - 1) * limit).limit(limit)]
    return {"products": products, "total": db["product"].count_documents({}), "page": page, "limit": limit}


def vendor_products(vendor_id: str, page: int = 1, limit: int = DEFAULT_PAGE_LIMIT) -> Dict[str, Any]:
    if not database.find_by_id("vendor", vendor_id):
        raise APIError(404, "Vendor not found")
    db = database.get_db()
    page = max(page, 1)
    docs = list(db["product"].find({"vendorId": vendor_id}).sort("created_at", -1).skip((page - 1) * limit).limit(limit))
    deals = load_deals(d.get("dealId") for d in docs)
    return {
        "products": [present(d, deals) for d in docs],
        "total": db["product"].count_documents({"vendorId": vendor_id}),
        "page": page,
        "limit": limit,
    }


# Updates

def update_product(principal: Principal, category_id: str, subcategory_id: str, product_id: str,
                   payload: ProductUpdate, product_images: Optional[List[UploadFile]] = None,
                   variant_images: Optional[Dict[int, List[UploadFile]]] = None) -> Dict[str, Any]:
    """Partial update; fields not supplied keep their current value."""
    product_images = product_images or []
    variant_images = variant_images or {}
    product = _product_in_subcategory(category_id, subcategory_id, product_id)
    PRODUCT_WRITE.enforce(principal, product)
    _check_references(payload.dealId, payload.bannerId, payload.brandId)

    changes = payload.model_dump(mode="json", exclude_unset=True, exclude={"variants", "productImages", "vendorId"})
    changes = {k: v for k, v in changes.items() if v is not None}
    if payload.vendorId and payload.vendorId != product.get("vendorId"):
        if principal.is_vendor:
            raise APIError(403, "Vendors cannot reassign products")
        if not database.find_by_id("vendor", payload.vendorId):
            raise APIError(404, "Vendor not found")
        changes["vendorId"] = payload.vendorId

    merged = {**product, **changes}
    has_variants = bool(merged.get("hasVariants"))
    existing_variants = get_variants(product_id)
    replace_variants = payload.variants is not None

    if has_variants:
        if payload.basePrice is not None or payload.stock is not None:
            raise APIError(400, "Products with variants cannot have basePrice or stock")
        if replace_variants:
            if not payload.variants:
                raise APIError(400, "Products with variants must have at least one variant")
            _check_skus(payload.variants)
            _check_variant_images(payload.variants, variant_images)
        elif not existing_variants:
            raise APIError(400, "Products with variants must have at least one variant")
        changes.update({"basePrice": None, "stock": None, "status": None})
    else:
        if payload.variants:
            raise APIError(400, "Non-variant products cannot have variants")
        if merged.get("basePrice") is None or merged.get("stock") is None:
            raise APIError(400, "Non-variant products must have basePrice and stock")
        validate_discount(merged.get("basePrice"), merged.get("discount"), merged.get("discountType"))
        if "stock" in changes and "status" not in changes:
            changes["status"] = stock_status(changes["stock"])

    if payload.productImages is not None or product_images:
        if has_variants:
            raise APIError(400, "Products with variants take images per variant")
        images = list(payload.productImages if payload.productImages is not None else product.get("productImages") or [])
        storage.validate_images(product_images, "productImages")
        if len(images) + len(product_images) > MAX_IMAGES_PER_FIELD:
            raise APIError(400, f"Maximum {MAX_IMAGES_PER_FIELD} images allowed for non-variant products")
        changes["productImages"] = images + storage.save_images(product_images, "productImages")

    if has_variants and replace_variants:
        _replace_variants(product_id, payload.variants, variant_images)
    elif existing_variants and not has_variants:
        database.get_db()["product_variant"].delete_many({"productId": product_id})
    if changes:
        database.update_document("product", product_id, changes)
    logger.info("Product %s updated by %s", product_id, principal.id)
    return present(get_product_doc(product_id))


def _detach_product(product_id: str) -> None:
    db = database.get_db()
    db["product_variant"].delete_many({"productId": product_id})
    db["review"].delete_many({"productId": product_id})
    db["cart"].update_many({}, {"$pull": {"items": {"productId": product_id}}})
    db["wishlist"].update_many({}, {"$pull": {"items": {"productId": product_id}}})
    db["homepage_section"].update_many({}, {"$pull": {"productIds": product_id}})
    db["banner"].update_many({}, {"$pull": {"productIds": product_id}})


def delete_product(principal: Principal, category_id: str, subcategory_id: str, product_id: str) -> None:
    product = _product_in_subcategory(category_id, subcategory_id, product_id)
    PRODUCT_WRITE.enforce(principal, product)
    variants = get_variants(product_id)
    _detach_product(product_id)
    database.get_db()["product"].delete_one({"_id": product["_id"]})
    for url in (product.get("productImages") or []) + [u for v in variants for u in v.get("images") or []]:
        storage.delete_image(url)
    logger.info("Product %s deleted by %s", product_id, principal.id)


def delete_product_image(principal: Principal, category_id: str, subcategory_id: str,
                         product_id: str, image_url: str) -> Dict[str, Any]:
    product = _product_in_subcategory(category_id, subcategory_id, product_id)
    PRODUCT_WRITE.enforce(principal, product)
    images = product.get("productImages") or []
    if image_url not in images:
        raise APIError(404, "Image not found on this product")
    database.update_document("product", product_id, {"productImages": [u for u in images if u != image_url]})
    storage.delete_image(image_url)
    return present(get_product_doc(product_id))


# Variants

def _variant_product(principal: Principal, product_id: str) -> Dict[str, Any]:
    product = get_product_doc(product_id)
    PRODUCT_WRITE.enforce(principal, product)
    if not product.get("hasVariants"):
        raise APIError(400, "Product does not use variants")
    return product


def _get_variant(product_id: str, variant_id: str) -> Dict[str, Any]:
    variant = database.get_db()["product_variant"].find_one({"_id": database.oid(variant_id), "productId": product_id})
    if not variant:
        raise APIError(404, "Variant not found")
    return variant


def add_variant(principal: Principal, product_id: str, payload: VariantIn,
                images: Optional[List[UploadFile]] = None) -> Dict[str, Any]:
    product = _variant_product(principal, product_id)
    validate_discount(payload.basePrice, payload.discount, payload.discountType)
    if database.get_db()["product_variant"].find_one({"productId": product_id, "sku": payload.sku}):
        raise APIError(400, f"SKU {payload.sku} already exists for this product")
    urls = storage.save_images(images or [], "images")
    if len(payload.images) + len(urls) > MAX_IMAGES_PER_FIELD:
        raise APIError(400, f"Too many images for variant {payload.sku}. Maximum is {MAX_IMAGES_PER_FIELD}.")
    try:
        variant_id = database.create_document("product_variant", _variant_doc(product_id, payload, urls))
    except DuplicateKeyError:
        raise APIError(400, f"SKU {payload.sku} already exists for this product")
    deal = load_deals([product.get("dealId")]).get(product.get("dealId") or "")
    return present_variant(database.find_by_id("product_variant", variant_id), deal)


def update_variant(principal: Principal, product_id: str, variant_id: str, payload: VariantUpdate,
                   images: Optional[List[UploadFile]] = None) -> Dict[str, Any]:
    product = _variant_product(principal, product_id)
    variant = _get_variant(product_id, variant_id)
    changes = payload.model_dump(mode="json", exclude_unset=True)
    changes = {k: v for k, v in changes.items() if v is not None}
    if "sku" in changes and changes["sku"] != variant["sku"] and database.get_db()["product_variant"].find_one(
            {"productId": product_id, "sku": changes["sku"]}):
        raise APIError(400, f"SKU {changes['sku']} already exists for this product")
    merged = {**variant, **changes}
    validate_discount(merged.get("basePrice"), merged.get("discount"), merged.get("discountType"))
    if "stock" in changes and "status" not in changes:
        changes["status"] = stock_status(changes["stock"])
    images = images or []
    current = changes.get("images", variant.get("images") or [])
    storage.validate_images(images, "images")
    if len(current) + len(images) > MAX_IMAGES_PER_FIELD:
        raise APIError(400, f"Too many images for variant {merged['sku']}. Maximum is {MAX_IMAGES_PER_FIELD}.")
    if images:
        changes["images"] = current + storage.save_images(images, "images")
    if changes:
        try:
            database.update_document("product_variant", variant_id, changes)
        except DuplicateKeyError:
            raise APIError(400, f"SKU {merged['sku']} already exists for this product")
    deal = load_deals([product.get("dealId")]).get(product.get("dealId") or "")
    return present_variant(_get_variant(product_id, variant_id), deal)


def delete_variant(principal: Principal, product_id: str, variant_id: str) -> None:
    _variant_product(principal, product_id)
    variant = _get_variant(product_id, variant_id)
    db = database.get_db()
    if db["product_variant"].count_documents({"productId": product_id}) <= 1:
        raise APIError(400, "A product with variants must keep at least one variant")
    db["product_variant"].delete_one({"_id": variant["_id"]})
    db["cart"].update_many({}, {"$pull": {"items": {"variantId": variant_id}}})
    for url in variant.get("images") or []:
        storage.delete_image(url)


def unit_price(product: Dict[str, Any], variant: Optional[Dict[str, Any]], deal: Optional[Dict[str, Any]]) -> float:
    """Current selling price of one unit of a product or one of its variants."""
    source = variant if variant is not None else product
    return final_price(source.get("basePrice"), source.get("discount"), source.get("discountType"), deal)
