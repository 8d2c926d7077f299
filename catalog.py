import logging
from typing import Any, Dict, List, Optional

from fastapi import UploadFile

import database
import storage
from auth import Principal
from errors import APIError
from schemas import BrandIn, CategoryIn, CategoryUpdate, SubcategoryIn, SubcategoryUpdate

logger = logging.getLogger(__name__)


# Categories

def get_category(category_id: str) -> Dict[str, Any]:
    category = database.find_by_id("category", category_id)
    if not category:
        raise APIError(404, "Category does not exist")
    return category


def create_category(principal: Principal, payload: CategoryIn, image: Optional[UploadFile] = None) -> Dict[str, Any]:
    db = database.get_db()
    if db["category"].find_one({"name": payload.name}):
        raise APIError(400, "Category name already exists")
    data = payload.model_dump()
    data["image"] = storage.save_image(image, "image") or payload.image
    data["createdBy"] = principal.id
    category_id = database.create_document("category", data)
    return database.serialize(database.find_by_id("category", category_id))


def list_categories() -> List[Dict[str, Any]]:
    db = database.get_db()
    categories = []
    for c in db["category"].find({}).sort("name", 1):
        item = database.serialize(c)
        item["subcategories"] = [database.serialize(s) for s in db["subcategory"].find({"categoryId": item["id"]})]
        categories.append(item)
    return categories


def update_category(category_id: str, payload: CategoryUpdate, image: Optional[UploadFile] = None) -> Dict[str, Any]:
    category = get_category(category_id)
    changes = payload.model_dump(exclude_none=True)
    if "name" in changes and database.get_db()["category"].find_one({"name": changes["name"], "_id": {"$ne": category["_id"]}}):
        raise APIError(400, "Category name already exists")
    if image is not None:
        changes["image"] = storage.save_image(image, "image")
        storage.delete_image(category.get("image"))
    if changes:
        database.update_document("category", category_id, changes)
    return database.serialize(database.find_by_id("category", category_id))


def delete_category(category_id: str) -> None:
    category = get_category(category_id)
    if database.get_db()["subcategory"].count_documents({"categoryId": category_id}):
        raise APIError(409, "Cannot delete category that contains subcategories. Please delete them first.")
    database.get_db()["category"].delete_one({"_id": category["_id"]})
    database.get_db()["home_category"].delete_many({"categoryId": category_id})
    storage.delete_image(category.get("image"))


# Subcategories

def get_subcategory(subcategory_id: str, category_id: Optional[str] = None) -> Dict[str, Any]:
    query = {"_id": database.oid(subcategory_id)}
    if category_id is not None:
        query["categoryId"] = category_id
    subcategory = database.get_db()["subcategory"].find_one(query)
    if not subcategory:
        raise APIError(404, "Subcategory does not exist")
    return subcategory


def create_subcategory(principal: Principal, category_id: str, payload: SubcategoryIn,
                       image: Optional[UploadFile] = None) -> Dict[str, Any]:
    get_category(category_id)
    data = payload.model_dump()
    data.update({"categoryId": category_id, "createdBy": principal.id, "image": storage.save_image(image, "image")})
    subcategory_id = database.create_document("subcategory", data)
    return database.serialize(database.find_by_id("subcategory", subcategory_id))


def list_subcategories(category_id: str) -> List[Dict[str, Any]]:
    get_category(category_id)
    return [database.serialize(s) for s in database.get_documents("subcategory", {"categoryId": category_id})]


def update_subcategory(category_id: str, subcategory_id: str, payload: SubcategoryUpdate,
                       image: Optional[UploadFile] = None) -> Dict[str, Any]:
    subcategory = get_subcategory(subcategory_id, category_id)
    changes = payload.model_dump(exclude_none=True)
    if image is not None:
        changes["image"] = storage.save_image(image, "image")
        storage.delete_image(subcategory.get("image"))
    if changes:
        database.update_document("subcategory", subcategory_id, changes)
    return database.serialize(database.find_by_id("subcategory", subcategory_id))


def delete_subcategory(category_id: str, subcategory_id: str) -> None:
    subcategory = get_subcategory(subcategory_id, category_id)
    if database.get_db()["product"].count_documents({"subcategoryId": subcategory_id}):
        raise APIError(409, "Cannot delete subcategory that contains products. Please delete all products first.")
    database.get_db()["subcategory"].delete_one({"_id": subcategory["_id"]})
    storage.delete_image(subcategory.get("image"))


# Brands

def create_brand(payload: BrandIn) -> Dict[str, Any]:
    if database.get_db()["brand"].find_one({"name": payload.name}):
        raise APIError(400, "Brand already exists")
    brand_id = database.create_document("brand", payload)
    return database.serialize(database.find_by_id("brand", brand_id))


def list_brands() -> List[Dict[str, Any]]:
    return [database.serialize(b) for b in database.get_db()["brand"].find({}).sort("name", 1)]


def delete_brand(brand_id: str) -> None:
    db = database.get_db()
    result = db["brand"].delete_one({"_id": database.oid(brand_id)})
    if result.deleted_count == 0:
        raise APIError(404, "Brand does not exist")
    db["product"].update_many({"brandId": brand_id}, {"$set": {"brandId": None}})
