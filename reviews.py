import logging
from typing import Any, Dict

from pymongo.errors import DuplicateKeyError

import database
import products
from auth import REVIEW_EDIT, Principal
from errors import APIError
from schemas import OrderStatus, ReviewCreate, ReviewUpdate

logger = logging.getLogger(__name__)

# Orders in these states count as a purchase for review purposes
REVIEWABLE_STATUSES = (OrderStatus.CONFIRMED.value, OrderStatus.DELIVERED.value)


def has_purchased(user_id: str, product_id: str) -> bool:
    return database.get_db()["order"].find_one({
        "userId": user_id,
        "status": {"$in": list(REVIEWABLE_STATUSES)},
        "items.productId": product_id,
    }) is not None


def _review_with_owner(review_id: str) -> Dict[str, Any]:
    review = database.find_by_id("review", review_id)
    if not review:
        raise APIError(404, "Review not found")
    product = database.find_by_id("product", review["productId"])
    review["productVendorId"] = product.get("vendorId") if product else None
    return review


def create_review(principal: Principal, payload: ReviewCreate) -> Dict[str, Any]:
    products.get_product_doc(payload.productId)
    db = database.get_db()
    if db["review"].find_one({"userId": principal.id, "productId": payload.productId}):
        raise APIError(400, "You have already reviewed this product")
    if not has_purchased(principal.id, payload.productId):
        raise APIError(403, "You can only review products from your confirmed or delivered orders")
    data = payload.model_dump()
    data.update({"userId": principal.id, "userName": principal.name})
    try:
        review_id = database.create_document("review", data)
    except DuplicateKeyError:
        raise APIError(400, "You have already reviewed this product")
    logger.info("User %s reviewed product %s", principal.id, payload.productId)
    return database.serialize(database.find_by_id("review", review_id))


def product_reviews(product_id: str) -> Dict[str, Any]:
    products.get_product_doc(product_id)
    reviews = [database.serialize(r) for r in database.get_db()["review"].find({"productId": product_id}).sort("created_at", -1)]
    average = round(sum(r["rating"] for r in reviews) / len(reviews), 1) if reviews else 0
    return {"reviews": reviews, "averageRating": average, "total": len(reviews)}


def update_review(principal: Principal, review_id: str, payload: ReviewUpdate) -> Dict[str, Any]:
    review = _review_with_owner(review_id)
    REVIEW_EDIT.enforce(principal, review)
    changes = payload.model_dump(exclude_none=True)
    if changes:
        database.update_document("review", review_id, changes)
    return database.serialize(database.find_by_id("review", review_id))


def delete_review(principal: Principal, review_id: str) -> None:
    review = _review_with_owner(review_id)
    REVIEW_EDIT.enforce(principal, review)
    database.get_db()["review"].delete_one({"_id": review["_id"]})
    logger.info("Review %s deleted by %s", review_id, principal.id)
