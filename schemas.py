"""
Database Schemas and request payloads for the marketplace.

Each document model maps to a MongoDB collection named after the lowercase
class name (Product -> "product", ProductVariant -> "product_variant").
Payload models validate write requests; multipart text fields are coerced
by pydantic, so "10.99" becomes 10.99.
"""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class UserRole(str, Enum):
    USER = "USER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FLAT = "FLAT"


class InventoryStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class DealStatus(str, Enum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    ESEWA = "ESEWA"
    KHALTI = "KHALTI"


class NotificationType(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_STATUS_UPDATED = "ORDER_STATUS_UPDATED"
    GENERAL = "GENERAL"


class NotificationTarget(str, Enum):
    ADMIN = "ADMIN"
    VENDOR = "VENDOR"
    USER = "USER"


class BannerType(str, Enum):
    HERO = "HERO"
    SIDEBAR = "SIDEBAR"
    PRODUCT = "PRODUCT"
    SPECIAL_DEALS = "SPECIAL_DEALS"


class BannerStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class ProductSource(str, Enum):
    MANUAL = "manual"
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    DEAL = "deal"
    EXTERNAL = "external"


def _blank_to_none(data):
    # Multipart forms send empty strings for untouched inputs
    if isinstance(data, dict):
        return {k: (None if isinstance(v, str) and v.strip() == "" else v) for k, v in data.items()}
    return data


def _attribute_map(v):
    if v is None:
        return v
    if isinstance(v, list):
        # [{"attributeType": "color", "attributeValues": ["Red"]}]
        for a in v:
            if not isinstance(a, dict) or "attributeType" not in a or "attributeValues" not in a:
                raise ValueError("Each attribute needs attributeType and attributeValues")
        return {a["attributeType"]: a["attributeValues"] for a in v}
    if isinstance(v, dict):
        return {k: ([val] if isinstance(val, str) else val) for k, val in v.items()}
    return v


def _json_list(v):
    # Multipart forms carry lists as a JSON string
    if isinstance(v, str):
        return json.loads(v) if v.strip().startswith("[") else [v]
    return v


def _naive_utc(v):
    if isinstance(v, datetime) and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# Accounts

class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None


class RoleUpdate(BaseModel):
    role: UserRole


class VendorRegister(BaseModel):
    businessName: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phoneNumber: str = Field(..., min_length=7)
    district: str = Field(..., min_length=1, description="District the vendor ships from")


# Catalog

class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    image: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None


class SubcategoryIn(BaseModel):
    name: str = Field(..., min_length=1)


class SubcategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)


class BrandIn(BaseModel):
    name: str = Field(..., min_length=1)


class VariantIn(BaseModel):
    sku: str = Field(..., min_length=1)
    basePrice: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    discountType: DiscountType = DiscountType.PERCENTAGE
    stock: int = Field(..., ge=0)
    status: Optional[InventoryStatus] = None
    attributes: Dict[str, List[str]] = Field(default_factory=dict, description="e.g. {'color': ['Red'], 'size': ['L']}")
    images: List[str] = Field(default_factory=list)

    _attributes = field_validator("attributes", mode="before")(_attribute_map)

    @model_validator(mode="after")
    def _percentage_cap(self):
        if self.discountType == DiscountType.PERCENTAGE and self.discount > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class VariantUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1)
    basePrice: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0)
    discountType: Optional[DiscountType] = None
    stock: Optional[int] = Field(None, ge=0)
    status: Optional[InventoryStatus] = None
    attributes: Optional[Dict[str, List[str]]] = None
    images: Optional[List[str]] = None

    _attributes = field_validator("attributes", mode="before")(_attribute_map)


class ProductFields(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    basePrice: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0)
    discountType: Optional[DiscountType] = None
    stock: Optional[int] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    status: Optional[InventoryStatus] = None
    hasVariants: Optional[bool] = None
    variants: Optional[List[VariantIn]] = None
    productImages: Optional[List[str]] = None
    dealId: Optional[str] = None
    bannerId: Optional[str] = None
    brandId: Optional[str] = None
    vendorId: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _clean(cls, data):
        return _blank_to_none(data)

    @field_validator("variants", "productImages", mode="before")
    @classmethod
    def _parse_json(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v


class ProductCreate(ProductFields):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    hasVariants: bool = False

    @model_validator(mode="after")
    def _variant_invariant(self):
        if self.hasVariants:
            if not self.variants or self.basePrice is not None or self.stock is not None:
                raise ValueError("Products with variants must have at least one variant and no basePrice/stock")
        else:
            if self.variants:
                raise ValueError("Non-variant products cannot have variants")
            if self.basePrice is None or self.stock is None:
                raise ValueError("Non-variant products must have basePrice and stock")
        if self.discount is not None and self.discountType is None:
            raise ValueError("Discount requires discountType")
        if self.discountType == DiscountType.PERCENTAGE and (self.discount or 0) > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class ProductUpdate(ProductFields):
    pass


# Deals & promos

class DealCreate(BaseModel):
    name: str = Field(..., min_length=1)
    discountPercentage: float = Field(..., ge=0, le=100)
    status: DealStatus = DealStatus.DISABLED


class DealUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    discountPercentage: Optional[float] = Field(None, ge=0, le=100)
    status: Optional[DealStatus] = None


class PromoCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=32)
    discountPercentage: float = Field(..., gt=0, le=100)
    isActive: bool = True


# Cart & wishlist

class CartAdd(BaseModel):
    productId: str
    variantId: Optional[str] = None
    quantity: int = Field(1, ge=1)


class CartRemove(BaseModel):
    cartItemId: str
    decreaseOnly: bool = False


class WishlistAdd(BaseModel):
    productId: str


class WishlistRemove(BaseModel):
    wishlistItemId: str


class WishlistMoveToCart(BaseModel):
    wishlistItemId: str
    variantId: Optional[str] = None
    quantity: int = Field(1, ge=1)


# Orders

class ShippingAddress(BaseModel):
    province: Optional[str] = None
    district: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    streetAddress: str = Field(..., min_length=1)
    landmark: Optional[str] = None


class OrderCreate(BaseModel):
    shippingAddress: ShippingAddress
    paymentMethod: PaymentMethod
    phoneNumber: str = Field(..., min_length=7)
    fullName: Optional[str] = None
    promoCode: Optional[str] = None
    isBuyNow: bool = False
    productId: Optional[str] = None
    variantId: Optional[str] = None
    quantity: int = Field(1, ge=1)

    @model_validator(mode="after")
    def _buy_now_needs_product(self):
        if self.isBuyNow and not self.productId:
            raise ValueError("productId is required for buy now orders")
        return self


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class PaymentCallback(BaseModel):
    data: Optional[str] = Field(None, description="eSewa base64 response payload")
    pidx: Optional[str] = Field(None, description="Khalti payment identifier")


# Reviews

def _one_decimal(v: Optional[float]) -> Optional[float]:
    if v is not None and round(v, 1) != v:
        raise ValueError("Rating must have at most one decimal place")
    return v


class ReviewCreate(BaseModel):
    productId: str
    rating: float = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)

    _rating_precision = field_validator("rating")(_one_decimal)


class ReviewUpdate(BaseModel):
    rating: Optional[float] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1)

    _rating_precision = field_validator("rating")(_one_decimal)


# Curation

class BannerCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: BannerType
    status: Optional[BannerStatus] = None
    startDate: datetime
    endDate: datetime
    desktopImage: Optional[str] = None
    mobileImage: Optional[str] = None
    productSource: Optional[ProductSource] = None
    productIds: List[str] = Field(default_factory=list)
    categoryId: Optional[str] = None
    subcategoryId: Optional[str] = None
    dealId: Optional[str] = None
    externalLink: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _clean(cls, data):
        return _blank_to_none(data)

    _product_ids = field_validator("productIds", mode="before")(_json_list)
    _dates_utc = field_validator("startDate", "endDate")(_naive_utc)

    @model_validator(mode="after")
    def _dates(self):
        if self.endDate <= self.startDate:
            raise ValueError("endDate must be after startDate")
        return self


class BannerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[BannerType] = None
    status: Optional[BannerStatus] = None
    startDate: Optional[datetime] = None
    endDate: Optional[datetime] = None
    desktopImage: Optional[str] = None
    mobileImage: Optional[str] = None
    productSource: Optional[ProductSource] = None
    productIds: Optional[List[str]] = None
    categoryId: Optional[str] = None
    subcategoryId: Optional[str] = None
    dealId: Optional[str] = None
    externalLink: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _clean(cls, data):
        return _blank_to_none(data)

    _product_ids = field_validator("productIds", mode="before")(_json_list)
    _dates_utc = field_validator("startDate", "endDate")(_naive_utc)


class HomepageSectionIn(BaseModel):
    title: str = Field(..., min_length=1)
    isActive: bool = True
    productSource: ProductSource = ProductSource.MANUAL
    productIds: List[str] = Field(default_factory=list)
    categoryId: Optional[str] = None
    subcategoryId: Optional[str] = None
    dealId: Optional[str] = None
    order: int = 0

    @model_validator(mode="after")
    def _source_reference(self):
        needed = {
            ProductSource.CATEGORY: self.categoryId,
            ProductSource.SUBCATEGORY: self.subcategoryId,
            ProductSource.DEAL: self.dealId,
        }
        if self.productSource in needed and not needed[self.productSource]:
            raise ValueError(f"{self.productSource.value} sections need a {self.productSource.value}Id")
        return self


class HomepageSectionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    isActive: Optional[bool] = None
    productSource: Optional[ProductSource] = None
    productIds: Optional[List[str]] = None
    categoryId: Optional[str] = None
    subcategoryId: Optional[str] = None
    dealId: Optional[str] = None
    order: Optional[int] = None


class HomeCategoriesIn(BaseModel):
    categoryIds: List[str] = Field(..., description="Categories featured on the homepage, in display order")
