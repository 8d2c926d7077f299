"""Storefront curation: promotional banners and homepage product sections."""
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import UploadFile

import catalog
import database
import products
import storage
from auth import Principal
from errors import APIError
from schemas import (
    BannerCreate,
    BannerStatus,
    BannerType,
    BannerUpdate,
    HomeCategoriesIn,
    HomepageSectionIn,
    HomepageSectionUpdate,
    ProductSource,
)

logger = logging.getLogger(__name__)

SECTION_PRODUCT_LIMIT = 12
HOME_CATEGORY_LIMIT = 5


def banner_status(start, end, at=None) -> str:
    at = at or database.now()
    if at < start:
        return BannerStatus.SCHEDULED.value
    if at >= end:
        return BannerStatus.EXPIRED.value
    return BannerStatus.ACTIVE.value


def _check_sources(product_ids: Optional[List[str]] = None, category_id=None, subcategory_id=None, deal_id=None) -> None:
    if category_id:
        catalog.get_category(category_id)
    if subcategory_id:
        catalog.get_subcategory(subcategory_id)
    if deal_id and not database.find_by_id("deal", deal_id):
        raise APIError(404, "Deal does not exist")
    if product_ids:
        ids = [database.oid(p) for p in product_ids]
        found = database.get_db()["product"].count_documents({"_id": {"$in": ids}})
        if found != len(set(product_ids)):
            raise APIError(404, "One or more products do not exist")


def resolve_products(source: Optional[str], holder: Dict[str, Any], limit: int = SECTION_PRODUCT_LIMIT) -> List[Dict[str, Any]]:
    """Products a banner or section points at, according to its product source."""
    if source == ProductSource.MANUAL.value:
        if not holder.get("productIds"):
            return []
        query = {"_id": {"$in": [ObjectId(p) for p in holder["productIds"] if ObjectId.is_valid(p)]}}
    elif source == ProductSource.CATEGORY.value:
        query = {"categoryId": holder.get("categoryId")}
    elif source == ProductSource.SUBCATEGORY.value:
        query = {"subcategoryId": holder.get("subcategoryId")}
    elif source == ProductSource.DEAL.value:
        query = {"dealId": holder.get("dealId")}
    else:
        return []
    docs = list(database.get_db()["product"].find(query).sort("created_at", -1).limit(limit))
    deals = products.load_deals(d.get("dealId") for d in docs)
    return [products.present(d, deals) for d in docs]


# Banners

def _present_banner(banner: Dict[str, Any]) -> Dict[str, Any]:
    item = database.serialize(banner)
    if not banner.get("manualStatus"):
        item["status"] = banner_status(banner["startDate"], banner["endDate"])
    return item


def get_banner(banner_id: str) -> Dict[str, Any]:
    banner = database.find_by_id("banner", banner_id)
    if not banner:
        raise APIError(404, "Banner not found")
    return banner


def create_banner(principal: Principal, payload: BannerCreate, desktop_image: Optional[UploadFile] = None,
                  mobile_image: Optional[UploadFile] = None) -> Dict[str, Any]:
    db = database.get_db()
    if db["banner"].find_one({"name": payload.name}):
        raise APIError(400, "Banner name already exists")
    _check_sources(payload.productIds, payload.categoryId, payload.subcategoryId, payload.dealId)
    data = payload.model_dump(mode="json", exclude={"startDate", "endDate", "status"})
    data.update({
        "startDate": database.as_utc(payload.startDate),
        "endDate": database.as_utc(payload.endDate),
        "status": payload.status.value if payload.status else None,
        "manualStatus": payload.status is not None,
        "desktopImage": storage.save_image(desktop_image, "desktopImage") or payload.desktopImage,
        "mobileImage": storage.save_image(mobile_image, "mobileImage") or payload.mobileImage,
        "createdBy": principal.id,
    })
    banner_id = database.create_document("banner", data)
    if payload.productIds:
        db["product"].update_many({"_id": {"$in": [ObjectId(p) for p in payload.productIds]}},
                                  {"$set": {"bannerId": banner_id}})
    logger.info("Banner %s created by %s", banner_id, principal.id)
    return _present_banner(get_banner(banner_id))


def list_banners(active_only: bool = True, banner_type: Optional[BannerType] = None) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {}
    if banner_type:
        query["type"] = banner_type.value
    if active_only:
        at = database.now()
        query.update({"startDate": {"$lte": at}, "endDate": {"$gt": at}})
    banners = [_present_banner(b) for b in database.get_db()["banner"].find(query).sort("created_at", -1)]
    if active_only:
        banners = [b for b in banners if b["status"] == BannerStatus.ACTIVE.value]
    return banners


def banner_detail(banner_id: str) -> Dict[str, Any]:
    banner = get_banner(banner_id)
    item = _present_banner(banner)
    if banner.get("productSource"):
        item["products"] = resolve_products(banner["productSource"], banner)
    else:
        docs = list(database.get_db()["product"].find({"bannerId": banner_id}).limit(SECTION_PRODUCT_LIMIT))
        item["products"] = [products.present(d) for d in docs]
    return item


def update_banner(banner_id: str, payload: BannerUpdate, desktop_image: Optional[UploadFile] = None,
                  mobile_image: Optional[UploadFile] = None) -> Dict[str, Any]:
    banner = get_banner(banner_id)
    changes = payload.model_dump(mode="json", exclude_none=True, exclude={"startDate", "endDate", "status"})
    if "name" in changes and database.get_db()["banner"].find_one({"name": changes["name"], "_id": {"$ne": banner["_id"]}}):
        raise APIError(400, "Banner name already exists")
    _check_sources(payload.productIds, payload.categoryId, payload.subcategoryId, payload.dealId)
    start = database.as_utc(payload.startDate) or banner["startDate"]
    end = database.as_utc(payload.endDate) or banner["endDate"]
    if end <= start:
        raise APIError(400, "endDate must be after startDate")
    changes.update({"startDate": start, "endDate": end})
    if payload.status is not None:
        changes.update({"status": payload.status.value, "manualStatus": True})
    for field, upload in (("desktopImage", desktop_image), ("mobileImage", mobile_image)):
        if upload is not None:
            changes[field] = storage.save_image(upload, field)
            storage.delete_image(banner.get(field))
    database.update_document("banner", banner_id, changes)
    if payload.productIds is not None:
        db = database.get_db()
        db["product"].update_many({"bannerId": banner_id}, {"$set": {"bannerId": None}})
        db["product"].update_many({"_id": {"$in": [ObjectId(p) for p in payload.productIds]}},
                                  {"$set": {"bannerId": banner_id}})
    return _present_banner(get_banner(banner_id))


def delete_banner(banner_id: str) -> None:
    banner = get_banner(banner_id)
    db = database.get_db()
    db["product"].update_many({"bannerId": banner_id}, {"$set": {"bannerId": None}})
    db["banner"].delete_one({"_id": banner["_id"]})
    storage.delete_image(banner.get("desktopImage"))
    storage.delete_image(banner.get("mobileImage"))
    logger.info("Banner %s deleted", banner_id)


# Homepage sections

def get_section(section_id: str) -> Dict[str, Any]:
    section = database.find_by_id("homepage_section", section_id)
    if not section:
        raise APIError(404, "Homepage section not found")
    return section


def create_section(payload: HomepageSectionIn) -> Dict[str, Any]:
    _check_sources(payload.productIds, payload.categoryId, payload.subcategoryId, payload.dealId)
    section_id = database.create_document("homepage_section", payload.model_dump(mode="json"))
    return database.serialize(get_section(section_id))


def list_sections() -> List[Dict[str, Any]]:
    return [database.serialize(s) for s in database.get_db()["homepage_section"].find({}).sort("order", 1)]


def update_section(section_id: str, payload: HomepageSectionUpdate) -> Dict[str, Any]:
    section = get_section(section_id)
    changes = payload.model_dump(mode="json", exclude_none=True)
    _check_sources(payload.productIds, payload.categoryId, payload.subcategoryId, payload.dealId)
    # Revalidate the merged section so the source keeps its reference
    HomepageSectionIn(**{**database.serialize(section), **changes})
    if changes:
        database.update_document("homepage_section", section_id, changes)
    return database.serialize(get_section(section_id))


def delete_section(section_id: str) -> None:
    result = database.get_db()["homepage_section"].delete_one({"_id": database.oid(section_id)})
    if result.deleted_count == 0:
        raise APIError(404, "Homepage section not found")


def homepage() -> List[Dict[str, Any]]:
    sections = []
    for section in database.get_db()["homepage_section"].find({"isActive": True}).sort("order", 1):
        item = database.serialize(section)
        item["products"] = resolve_products(section.get("productSource"), section)
        sections.append(item)
    return sections


# Homepage categories

def set_home_categories(principal: Principal, payload: HomeCategoriesIn) -> List[Dict[str, Any]]:
    """Replace the featured category list."""
    category_ids = list(dict.fromkeys(payload.categoryIds))
    if len(category_ids) > HOME_CATEGORY_LIMIT:
        raise APIError(400, f"You can only select up to {HOME_CATEGORY_LIMIT} categories")
    for category_id in category_ids:
        catalog.get_category(category_id)
    collection = database.get_db()["home_category"]
    collection.delete_many({})
    for position, category_id in enumerate(category_ids):
        database.create_document("home_category", {"categoryId": category_id, "order": position, "createdBy": principal.id})
    logger.info("Homepage categories set to %s by %s", category_ids, principal.id)
    return home_categories()


def home_categories() -> List[Dict[str, Any]]:
    out = []
    for row in database.get_db()["home_category"].find({}).sort("order", 1):
        category = database.find_by_id("category", row["categoryId"])
        if not category:
            continue
        item = database.serialize(category)
        item["subcategories"] = [database.serialize(s) for s in database.get_documents("subcategory", {"categoryId": row["categoryId"]})]
        out.append(item)
    return out
