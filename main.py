import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, File, Form, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile as FormFile

import accounts
import carts
import catalog
import curation
import dashboard
import database
import deals
import notifications
import orders
import products
import reviews
from auth import (
    ADMIN,
    ADMIN_OR_STAFF,
    ANY_PRINCIPAL,
    CUSTOMER,
    PRODUCT_WRITE,
    REVIEW_EDIT,
    VENDOR_ONLY,
    Principal,
    authorize,
    get_current_principal,
)
from config import CORS_ORIGINS, JOBS_ENABLED, LOG_LEVEL, MEDIA_URL
from errors import APIError, ok, register_error_handlers
from jobs import start_jobs
from payments import get_payment_gateways
from schemas import (
    BannerCreate,
    BannerType,
    BannerUpdate,
    BrandIn,
    CartAdd,
    CartRemove,
    CategoryIn,
    CategoryUpdate,
    DealCreate,
    DealStatus,
    DealUpdate,
    HomeCategoriesIn,
    HomepageSectionIn,
    HomepageSectionUpdate,
    OrderCreate,
    OrderStatus,
    OrderStatusUpdate,
    PaymentCallback,
    ProductCreate,
    ProductUpdate,
    PromoCreate,
    ReviewCreate,
    ReviewUpdate,
    RoleUpdate,
    ShippingAddress,
    SubcategoryIn,
    SubcategoryUpdate,
    UserRegister,
    VariantIn,
    VariantUpdate,
    VendorRegister,
    WishlistAdd,
    WishlistMoveToCart,
    WishlistRemove,
)
from storage import media_root

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
    tasks = start_jobs() if JOBS_ENABLED else []
    yield
    for task in tasks:
        task.cancel()


app = FastAPI(title="Marketplace API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)
app.mount(MEDIA_URL, StaticFiles(directory=str(media_root())), name="media")


# Helpers
async def read_body(request: Request) -> Tuple[Dict[str, Any], Dict[str, List[FormFile]]]:
    """Fields and uploaded files of a JSON or form request."""
    if request.headers.get("content-type", "").startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        form = await request.form()
        data: Dict[str, Any] = {}
        files: Dict[str, List[FormFile]] = {}
        for key, value in form.multi_items():
            if isinstance(value, FormFile):
                if value.filename:
                    files.setdefault(key, []).append(value)
            else:
                data[key] = value
        return data, files
    raw = await request.body()
    if not raw:
        return {}, {}
    try:
        data = json.loads(raw)
    except ValueError:
        raise APIError(400, "Invalid JSON body")
    if not isinstance(data, dict):
        raise APIError(400, "Request body must be a JSON object")
    return data, {}


def product_files(files: Dict[str, List[FormFile]]) -> Tuple[List[FormFile], Dict[int, List[FormFile]]]:
    """Split uploads into productImages and variantImages1..N."""
    variant_images: Dict[int, List[FormFile]] = {}
    for key, uploads in files.items():
        if key == "productImages":
            continue
        suffix = key[len("variantImages"):]
        if not key.startswith("variantImages") or not suffix.isdigit():
            raise APIError(400, f"Unexpected file field {key}")
        variant_images[int(suffix)] = uploads
    return files.get("productImages", []), variant_images


@app.get("/")
def read_root():
    return {"message": "Marketplace backend is running"}


# Accounts
@app.post("/api/auth/register", status_code=201)
def register(payload: UserRegister):
    return ok(accounts.register_user(payload), "User registered successfully")


@app.post("/api/auth/login")
def login(response: Response, form_data: OAuth2PasswordRequestForm = Depends()):
    token = accounts.login_user(form_data.username, form_data.password)
    response.set_cookie("token", token, httponly=True, samesite="lax")
    return ok({"access_token": token, "token_type": "bearer"}, "Login successful")


@app.post("/api/auth/logout")
def logout(response: Response, principal: Principal = Depends(get_current_principal)):
    accounts.logout(principal)
    response.delete_cookie("vendorToken" if principal.is_vendor else "token")
    return ok(message="Logged out")


@app.get("/api/auth/me")
def me(principal: Principal = Depends(authorize(ANY_PRINCIPAL))):
    return ok(accounts.get_profile(principal))


@app.put("/api/users/{user_id}/role")
def set_role(user_id: str, payload: RoleUpdate, principal: Principal = Depends(authorize(ADMIN))):
    return ok(accounts.set_user_role(user_id, payload), "Role updated")


@app.post("/api/vendors/register", status_code=201)
def register_vendor(payload: VendorRegister):
    return ok(accounts.register_vendor(payload), "Vendor registered successfully")


@app.post("/api/vendors/login")
def vendor_login(response: Response, form_data: OAuth2PasswordRequestForm = Depends()):
    token = accounts.login_vendor(form_data.username, form_data.password)
    response.set_cookie("vendorToken", token, httponly=True, samesite="lax")
    return ok({"access_token": token, "token_type": "bearer"}, "Login successful")


@app.get("/api/vendors/me")
def vendor_me(principal: Principal = Depends(authorize(VENDOR_ONLY))):
    return ok(accounts.get_profile(principal))


@app.get("/api/vendors")
def list_vendors(principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(accounts.list_vendors())


@app.get("/api/vendors/{vendor_id}/products")
def vendor_products(vendor_id: str, page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    return ok(products.vendor_products(vendor_id, page, limit))


# Products (listing routes come before /api/categories/{category_id}/...)
@app.get("/api/categories/all/products")
def list_products(
    categoryId: Optional[str] = None,
    subcategoryId: Optional[str] = None,
    brandId: Optional[str] = None,
    dealId: Optional[str] = None,
    bannerId: Optional[str] = None,
    search: Optional[str] = None,
    sort: str = Query("all", description="all|low-to-high|high-to-low"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return ok(products.list_products(categoryId, subcategoryId, brandId, dealId, bannerId, search, sort, page, limit))


@app.post("/api/categories/{category_id}/subcategories/{subcategory_id}/products", status_code=201)
async def create_product(category_id: str, subcategory_id: str, request: Request,
                         principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    data, files = await read_body(request)
    payload = ProductCreate.model_validate(data)
    images, variant_images = product_files(files)
    product = await run_in_threadpool(
        products.create_product, principal, category_id, subcategory_id, payload, images, variant_images)
    return ok(product, "Product created successfully")


@app.get("/api/categories/{category_id}/subcategories/{subcategory_id}/products")
def subcategory_products(category_id: str, subcategory_id: str):
    return ok(products.list_subcategory_products(category_id, subcategory_id))


@app.get("/api/categories/{category_id}/subcategories/{subcategory_id}/products/{product_id}")
def product_detail(category_id: str, subcategory_id: str, product_id: str):
    return ok(products.get_product(category_id, subcategory_id, product_id))


@app.patch("/api/categories/{category_id}/subcategories/{subcategory_id}/products/{product_id}")
async def update_product(category_id: str, subcategory_id: str, product_id: str, request: Request,
                         principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    data, files = await read_body(request)
    payload = ProductUpdate.model_validate(data)
    images, variant_images = product_files(files)
    product = await run_in_threadpool(
        products.update_product, principal, category_id, subcategory_id, product_id, payload, images, variant_images)
    return ok(product, "Product updated successfully")


@app.delete("/api/categories/{category_id}/subcategories/{subcategory_id}/products/{product_id}")
def delete_product(category_id: str, subcategory_id: str, product_id: str,
                   principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    products.delete_product(principal, category_id, subcategory_id, product_id)
    return ok(message="Product deleted successfully")


@app.delete("/api/categories/{category_id}/subcategories/{subcategory_id}/products/{product_id}/images")
def delete_product_image(category_id: str, subcategory_id: str, product_id: str, imageUrl: str,
                         principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    return ok(products.delete_product_image(principal, category_id, subcategory_id, product_id, imageUrl),
              "Image deleted successfully")


@app.post("/api/products/{product_id}/variants", status_code=201)
async def add_variant(product_id: str, request: Request, principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    data, files = await read_body(request)
    payload = VariantIn.model_validate(data)
    variant = await run_in_threadpool(products.add_variant, principal, product_id, payload, files.get("images", []))
    return ok(variant, "Variant added successfully")


@app.patch("/api/products/{product_id}/variants/{variant_id}")
async def update_variant(product_id: str, variant_id: str, request: Request,
                         principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    data, files = await read_body(request)
    payload = VariantUpdate.model_validate(data)
    variant = await run_in_threadpool(
        products.update_variant, principal, product_id, variant_id, payload, files.get("images", []))
    return ok(variant, "Variant updated successfully")


@app.delete("/api/products/{product_id}/variants/{variant_id}")
def delete_variant(product_id: str, variant_id: str, principal: Principal = Depends(authorize(PRODUCT_WRITE))):
    products.delete_variant(principal, product_id, variant_id)
    return ok(message="Variant deleted successfully")


@app.get("/api/admin/products")
def admin_products(page: int = Query(1, ge=1), limit: int = Query(7, ge=1, le=100),
                   sort: str = Query("createdAt", description="createdAt|name"),
                   principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(products.admin_products(page, limit, sort))


# Catalog
@app.post("/api/categories", status_code=201)
def create_category(name: str = Form(...), image: Optional[UploadFile] = File(None),
                    principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(catalog.create_category(principal, CategoryIn(name=name), image), "Category created successfully")


@app.get("/api/categories")
def list_categories():
    return ok(catalog.list_categories())


@app.get("/api/categories/{category_id}")
def get_category(category_id: str):
    return ok(database.serialize(catalog.get_category(category_id)))


@app.patch("/api/categories/{category_id}")
def update_category(category_id: str, name: Optional[str] = Form(None), image: Optional[UploadFile] = File(None),
                    principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(catalog.update_category(category_id, CategoryUpdate(name=name), image), "Category updated successfully")


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    catalog.delete_category(category_id)
    return ok(message="Category deleted successfully")


@app.post("/api/categories/{category_id}/subcategories", status_code=201)
def create_subcategory(category_id: str, name: str = Form(...), image: Optional[UploadFile] = File(None),
                       principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    subcategory = catalog.create_subcategory(principal, category_id, SubcategoryIn(name=name), image)
    return ok(subcategory, "Subcategory created successfully")


@app.get("/api/categories/{category_id}/subcategories")
def list_subcategories(category_id: str):
    return ok(catalog.list_subcategories(category_id))


@app.get("/api/categories/{category_id}/subcategories/{subcategory_id}")
def get_subcategory(category_id: str, subcategory_id: str):
    return ok(database.serialize(catalog.get_subcategory(subcategory_id, category_id)))


@app.patch("/api/categories/{category_id}/subcategories/{subcategory_id}")
def update_subcategory(category_id: str, subcategory_id: str, name: Optional[str] = Form(None),
                       image: Optional[UploadFile] = File(None),
                       principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    subcategory = catalog.update_subcategory(category_id, subcategory_id, SubcategoryUpdate(name=name), image)
    return ok(subcategory, "Subcategory updated successfully")


@app.delete("/api/categories/{category_id}/subcategories/{subcategory_id}")
def delete_subcategory(category_id: str, subcategory_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    catalog.delete_subcategory(category_id, subcategory_id)
    return ok(message="Subcategory deleted successfully")


@app.post("/api/brands", status_code=201)
def create_brand(payload: BrandIn, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(catalog.create_brand(payload), "Brand created successfully")


@app.get("/api/brands")
def list_brands():
    return ok(catalog.list_brands())


@app.delete("/api/brands/{brand_id}")
def delete_brand(brand_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    catalog.delete_brand(brand_id)
    return ok(message="Brand deleted successfully")


# Deals & promo codes
@app.post("/api/deals", status_code=201)
def create_deal(payload: DealCreate, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(deals.create_deal(principal, payload), "Deal created successfully")


@app.get("/api/deals")
def list_deals(status: Optional[DealStatus] = None):
    return ok(deals.list_deals(status))


@app.get("/api/deals/{deal_id}")
def get_deal(deal_id: str):
    return ok(database.serialize(deals.get_deal(deal_id)))


@app.patch("/api/deals/{deal_id}")
def update_deal(deal_id: str, payload: DealUpdate, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(deals.update_deal(deal_id, payload), "Deal updated successfully")


@app.delete("/api/deals/{deal_id}")
def delete_deal(deal_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(deals.delete_deal(deal_id), "Deal deleted successfully")


@app.post("/api/promo", status_code=201)
def create_promo(payload: PromoCreate, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(deals.create_promo(payload), "Promo code created successfully")


@app.get("/api/promo")
def list_promos(principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(deals.list_promos())


@app.get("/api/promo/{code}")
def check_promo(code: str):
    promo = deals.find_active_promo(code)
    if not promo:
        raise APIError(404, "Invalid or inactive promo code")
    return ok({"code": promo["code"], "discountPercentage": promo["discountPercentage"]})


@app.delete("/api/promo/{promo_id}")
def delete_promo(promo_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    deals.delete_promo(promo_id)
    return ok(message="Promo code deleted successfully")


# Cart
@app.get("/api/cart")
def view_cart(principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.view_cart(principal.id))


@app.post("/api/cart")
def add_to_cart(payload: CartAdd, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.add_to_cart(principal.id, payload), "Item added to cart")


@app.delete("/api/cart/clear")
def clear_cart(principal: Principal = Depends(authorize(CUSTOMER))):
    carts.clear_cart(principal.id)
    return ok(message="Cart cleared")


@app.delete("/api/cart")
def remove_from_cart(payload: CartRemove, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.remove_from_cart(principal.id, payload), "Cart updated")


# Wishlist
@app.get("/api/wishlist")
def view_wishlist(principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.view_wishlist(principal.id))


@app.post("/api/wishlist", status_code=201)
def add_to_wishlist(payload: WishlistAdd, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.add_to_wishlist(principal.id, payload), "Product added to wishlist")


@app.delete("/api/wishlist")
def remove_from_wishlist(payload: WishlistRemove, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.remove_from_wishlist(principal.id, payload), "Product removed from wishlist")


@app.post("/api/wishlist/move-to-cart")
def move_to_cart(payload: WishlistMoveToCart, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(carts.move_to_cart(principal.id, payload), "Product moved to cart")


# Orders
@app.post("/api/order", status_code=201)
def create_order(payload: OrderCreate, principal: Principal = Depends(authorize(CUSTOMER)),
                 gateways: Dict[str, Any] = Depends(get_payment_gateways)):
    return ok(orders.create_order(principal, payload, gateways), "Order placed successfully")


@app.get("/api/order/user")
def my_orders(principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(orders.user_orders(principal))


@app.get("/api/order/admin")
def all_orders(status: Optional[OrderStatus] = None, page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
               principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(orders.admin_orders(status, page, limit))


@app.get("/api/order/vendor")
def vendor_orders(principal: Principal = Depends(authorize(VENDOR_ONLY))):
    return ok(orders.vendor_orders(principal.id))


@app.get("/api/order/track")
def track_order(email: str, orderId: str):
    return ok(orders.track_order(email, orderId))


@app.put("/api/order/admin/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusUpdate,
                        principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(orders.update_status(order_id, payload), "Order status updated")


@app.get("/api/order/{order_id}")
def get_order(order_id: str, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(orders.get_order(principal, order_id))


@app.patch("/api/order/{order_id}/address")
def update_order_address(order_id: str, payload: ShippingAddress, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(orders.update_address(principal, order_id, payload), "Shipping address updated")


@app.post("/api/order/{order_id}/payment/success")
def payment_success(order_id: str, payload: PaymentCallback, principal: Principal = Depends(authorize(CUSTOMER)),
                    gateways: Dict[str, Any] = Depends(get_payment_gateways)):
    order, paid = orders.payment_success(principal, order_id, payload, gateways)
    if not paid:
        return ok(order, "Payment verification failed")
    return ok(order, "Payment completed")


@app.post("/api/order/{order_id}/payment/cancel")
def payment_cancel(order_id: str, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(orders.payment_cancel(principal, order_id), "Payment cancelled")


# Reviews
@app.post("/api/reviews", status_code=201)
def create_review(payload: ReviewCreate, principal: Principal = Depends(authorize(CUSTOMER))):
    return ok(reviews.create_review(principal, payload), "Review created successfully")


@app.get("/api/reviews/{product_id}")
def product_reviews(product_id: str):
    return ok(reviews.product_reviews(product_id))


@app.patch("/api/reviews/{review_id}")
def update_review(review_id: str, payload: ReviewUpdate, principal: Principal = Depends(authorize(REVIEW_EDIT))):
    return ok(reviews.update_review(principal, review_id, payload), "Review updated successfully")


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, principal: Principal = Depends(authorize(REVIEW_EDIT))):
    reviews.delete_review(principal, review_id)
    return ok(message="Review deleted successfully")


# Banners & homepage
@app.post("/api/banners", status_code=201)
async def create_banner(request: Request, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    data, files = await read_body(request)
    payload = BannerCreate.model_validate(data)
    banner = await run_in_threadpool(curation.create_banner, principal, payload,
                                     (files.get("desktopImage") or [None])[0], (files.get("mobileImage") or [None])[0])
    return ok(banner, "Banner created successfully")


@app.get("/api/banners")
def active_banners(type: Optional[BannerType] = None):
    return ok(curation.list_banners(active_only=True, banner_type=type))


@app.get("/api/admin/banners")
def all_banners(type: Optional[BannerType] = None, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(curation.list_banners(active_only=False, banner_type=type))


@app.get("/api/banners/{banner_id}")
def banner_detail(banner_id: str):
    return ok(curation.banner_detail(banner_id))


@app.patch("/api/banners/{banner_id}")
async def update_banner(banner_id: str, request: Request, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    data, files = await read_body(request)
    payload = BannerUpdate.model_validate(data)
    banner = await run_in_threadpool(curation.update_banner, banner_id, payload,
                                     (files.get("desktopImage") or [None])[0], (files.get("mobileImage") or [None])[0])
    return ok(banner, "Banner updated successfully")


@app.delete("/api/banners/{banner_id}")
def delete_banner(banner_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    curation.delete_banner(banner_id)
    return ok(message="Banner deleted successfully")


@app.get("/api/homepage")
def homepage():
    return ok(curation.homepage())


@app.post("/api/homepage/categories", status_code=201)
def set_home_categories(payload: HomeCategoriesIn, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(curation.set_home_categories(principal, payload), "Homepage categories updated")


@app.get("/api/homepage/categories")
def home_categories():
    return ok(curation.home_categories())


@app.post("/api/homepage/sections", status_code=201)
def create_section(payload: HomepageSectionIn, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(curation.create_section(payload), "Section created successfully")


@app.get("/api/homepage/sections")
def list_sections(principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(curation.list_sections())


@app.patch("/api/homepage/sections/{section_id}")
def update_section(section_id: str, payload: HomepageSectionUpdate,
                   principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(curation.update_section(section_id, payload), "Section updated successfully")


@app.delete("/api/homepage/sections/{section_id}")
def delete_section(section_id: str, principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    curation.delete_section(section_id)
    return ok(message="Section deleted successfully")


# Notifications
@app.get("/api/notifications")
def list_notifications(unread: bool = False, principal: Principal = Depends(authorize(ANY_PRINCIPAL))):
    return ok(notifications.list_notifications(principal, unread))


@app.get("/api/notifications/{notification_id}")
def get_notification(notification_id: str, principal: Principal = Depends(authorize(ANY_PRINCIPAL))):
    return ok(notifications.get_notification(principal, notification_id))


@app.patch("/api/notifications/{notification_id}/read")
def mark_notification_read(notification_id: str, principal: Principal = Depends(authorize(ANY_PRINCIPAL))):
    return ok(notifications.mark_read(principal, notification_id))


# Dashboards
@app.get("/api/admin/dashboard/stats")
def dashboard_stats(principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(dashboard.admin_stats())


@app.get("/api/admin/dashboard/revenue")
def dashboard_revenue(days: int = Query(7, ge=1, le=366), principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(dashboard.revenue_chart(days))


@app.get("/api/admin/dashboard/vendor-sales")
def dashboard_vendor_sales(startDate: Optional[datetime] = None, endDate: Optional[datetime] = None,
                           page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                           principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(dashboard.vendor_sales(startDate, endDate, page, limit))


@app.get("/api/admin/dashboard/top-products")
def dashboard_top_products(startDate: Optional[datetime] = None, endDate: Optional[datetime] = None,
                           page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                           principal: Principal = Depends(authorize(ADMIN_OR_STAFF))):
    return ok(dashboard.top_products(startDate, endDate, page, limit))


@app.get("/api/vendor/dashboard/stats")
def vendor_dashboard(principal: Principal = Depends(authorize(VENDOR_ONLY))):
    return ok(dashboard.vendor_stats(principal.id))


@app.get("/api/vendor/dashboard/low-stock")
def vendor_low_stock(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                     principal: Principal = Depends(authorize(VENDOR_ONLY))):
    return ok(dashboard.vendor_low_stock(principal.id, page, limit))


@app.get("/api/vendor/dashboard/top-products")
def vendor_top_products(startDate: Optional[datetime] = None, endDate: Optional[datetime] = None,
                        page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                        principal: Principal = Depends(authorize(VENDOR_ONLY))):
    return ok(dashboard.vendor_top_products(principal.id, startDate, endDate, page, limit))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
