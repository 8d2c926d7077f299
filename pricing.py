"""
Price and discount computation for products and variants.

An entity carries basePrice, discount and discountType; the product may also
point at a Deal. The larger of the entity's own discount and an ENABLED
deal's percentage (both compared as a percentage of basePrice) applies.
"""
from typing import Any, Dict, Optional

from config import LOW_STOCK_THRESHOLD
from errors import APIError
from schemas import DealStatus, DiscountType, InventoryStatus


def _type(discount_type) -> DiscountType:
    if isinstance(discount_type, DiscountType):
        return discount_type
    return DiscountType(discount_type or DiscountType.PERCENTAGE.value)


def discount_percentage(base_price: float, discount: Optional[float], discount_type=DiscountType.PERCENTAGE) -> float:
    discount = float(discount or 0)
    if _type(discount_type) == DiscountType.FLAT:
        if base_price <= 0:
            return 0.0
        return discount / base_price * 100
    return discount


def deal_percentage(deal: Optional[Dict[str, Any]]) -> float:
    if not deal or deal.get("status") != DealStatus.ENABLED.value:
        return 0.0
    return float(deal.get("discountPercentage") or 0)


def validate_discount(base_price: Optional[float], discount: Optional[float], discount_type=DiscountType.PERCENTAGE) -> None:
    if not discount:
        return
    if discount < 0:
        raise APIError(400, "Discount must be non-negative")
    if _type(discount_type) == DiscountType.PERCENTAGE:
        if discount > 100:
            raise APIError(400, "Percentage discount cannot exceed 100")
    elif base_price is None or discount > base_price:
        raise APIError(400, "Discount results in negative price")


def final_price(base_price: Optional[float], discount: Optional[float] = 0,
                discount_type=DiscountType.PERCENTAGE, deal: Optional[Dict[str, Any]] = None) -> float:
    if base_price is None:
        return 0.0
    base_price = float(base_price)
    own = discount_percentage(base_price, discount, discount_type)
    from_deal = deal_percentage(deal)
    if from_deal > own:
        price = base_price * (1 - from_deal / 100)
    elif _type(discount_type) == DiscountType.FLAT:
        price = base_price - float(discount or 0)
    else:
        price = base_price * (1 - own / 100)
    return round(min(max(price, 0.0), base_price), 2)


def price_summary(entity: Dict[str, Any], deal: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    base = entity.get("basePrice")
    return {
        "basePrice": base,
        "discount": entity.get("discount") or 0,
        "discountType": entity.get("discountType") or DiscountType.PERCENTAGE.value,
        "dealDiscount": deal_percentage(deal),
        "finalPrice": final_price(base, entity.get("discount"), entity.get("discountType"), deal),
    }


def stock_status(stock: Optional[int]) -> str:
    stock = stock or 0
    if stock <= 0:
        return InventoryStatus.OUT_OF_STOCK.value
    if stock < LOW_STOCK_THRESHOLD:
        return InventoryStatus.LOW_STOCK.value
    return InventoryStatus.AVAILABLE.value
