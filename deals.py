"""Discount campaigns: deals attached to products, and checkout promo codes."""
import logging
from typing import Any, Dict, List, Optional

import database
from auth import Principal
from errors import APIError
from schemas import DealCreate, DealStatus, DealUpdate, ProductSource, PromoCreate

logger = logging.getLogger(__name__)


def get_deal(deal_id: str) -> Dict[str, Any]:
    deal = database.find_by_id("deal", deal_id)
    if not deal:
        raise APIError(404, "Deal not found")
    return deal


def create_deal(principal: Principal, payload: DealCreate) -> Dict[str, Any]:
    if database.get_db()["deal"].find_one({"name": payload.name}):
        raise APIError(400, "Deal name already exists")
    data = payload.model_dump(mode="json")
    data["createdById"] = principal.id
    deal_id = database.create_document("deal", data)
    logger.info("Deal %s created by %s", deal_id, principal.id)
    return database.serialize(database.find_by_id("deal", deal_id))


def update_deal(deal_id: str, payload: DealUpdate) -> Dict[str, Any]:
    deal = get_deal(deal_id)
    changes = payload.model_dump(mode="json", exclude_none=True)
    if "name" in changes and database.get_db()["deal"].find_one({"name": changes["name"], "_id": {"$ne": deal["_id"]}}):
        raise APIError(400, "Deal name already exists")
    if changes:
        database.update_document("deal", deal_id, changes)
    return database.serialize(get_deal(deal_id))


def list_deals(status: Optional[DealStatus] = None) -> Dict[str, Any]:
    db = database.get_db()
    query = {"status": status.value} if status else {}
    deals = [database.serialize(d) for d in db["deal"].find(query).sort("created_at", -1)]
    counts = db["product"].aggregate([
        {"$match": {"dealId": {"$ne": None}}},
        {"$group": {"_id": "$dealId", "count": {"$sum": 1}}},
    ])
    return {
        "deals": deals,
        "total": len(deals),
        "productCounts": {c["_id"]: c["count"] for c in counts},
    }


def delete_deal(deal_id: str) -> Dict[str, Any]:
    """Delete a deal; products that referenced it keep existing with no deal."""
    deal = get_deal(deal_id)
    db = database.get_db()
    detached = db["product"].update_many({"dealId": deal_id}, {"$set": {"dealId": None}})
    db["banner"].update_many({"dealId": deal_id}, {"$set": {"dealId": None}})
    # A deal-sourced section has nothing left to show
    db["homepage_section"].update_many({"dealId": deal_id, "productSource": ProductSource.DEAL.value},
                                       {"$set": {"isActive": False}})
    db["homepage_section"].update_many({"dealId": deal_id}, {"$set": {"dealId": None}})
    db["deal"].delete_one({"_id": deal["_id"]})
    logger.info("Deal %s deleted, %d product(s) detached", deal_id, detached.modified_count)
    return database.serialize(deal)


# Promo codes

def create_promo(payload: PromoCreate) -> Dict[str, Any]:
    code = payload.code.upper()
    if database.get_db()["promo"].find_one({"code": code}):
        raise APIError(400, "Promo code already exists")
    data = payload.model_dump()
    data["code"] = code
    promo_id = database.create_document("promo", data)
    return database.serialize(database.find_by_id("promo", promo_id))


def list_promos() -> List[Dict[str, Any]]:
    return [database.serialize(p) for p in database.get_db()["promo"].find({}).sort("created_at", -1)]


def delete_promo(promo_id: str) -> None:
    result = database.get_db()["promo"].delete_one({"_id": database.oid(promo_id)})
    if result.deleted_count == 0:
        raise APIError(404, "Promo code not found")


def find_active_promo(code: str) -> Optional[Dict[str, Any]]:
    return database.get_db()["promo"].find_one({"code": code.upper(), "isActive": True})
