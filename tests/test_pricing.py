import pytest
from fastapi import HTTPException

from pricing import final_price, price_summary, stock_status, validate_discount

ENABLED_DEAL = {"status": "ENABLED", "discountPercentage": 25}
DISABLED_DEAL = {"status": "DISABLED", "discountPercentage": 90}


def test_no_discount_keeps_base_price():
    assert final_price(10.99) == 10.99


def test_percentage_discount():
    assert final_price(200, 10, "PERCENTAGE") == 180.0


def test_flat_discount():
    assert final_price(200, 30, "FLAT") == 170.0


def test_larger_deal_wins_over_own_discount():
    assert final_price(200, 10, "PERCENTAGE", ENABLED_DEAL) == 150.0


def test_own_flat_discount_wins_when_larger_than_deal():
    # 100 off 200 is 50%, more than the 25% deal
    assert final_price(200, 100, "FLAT", ENABLED_DEAL) == 100.0


def test_disabled_deal_is_ignored():
    assert final_price(200, 0, "PERCENTAGE", DISABLED_DEAL) == 200.0


def test_result_rounded_to_cents():
    assert final_price(9.99, 33, "PERCENTAGE") == 6.69


@pytest.mark.parametrize("base,discount,kind,deal", [
    (0, 0, "PERCENTAGE", None),
    (50, 100, "PERCENTAGE", None),
    (50, 80, "FLAT", None),
    (50, 0, "FLAT", {"status": "ENABLED", "discountPercentage": 100}),
    (1.5, 0.5, "FLAT", ENABLED_DEAL),
])
def test_final_price_stays_between_zero_and_base(base, discount, kind, deal):
    price = final_price(base, discount, kind, deal)
    assert 0 <= price <= base


def test_validate_discount_rejects_percentage_over_100():
    with pytest.raises(HTTPException) as exc:
        validate_discount(100, 120, "PERCENTAGE")
    assert exc.value.status_code == 400


def test_validate_discount_rejects_flat_above_price():
    with pytest.raises(HTTPException) as exc:
        validate_discount(100, 150, "FLAT")
    assert exc.value.detail == "Discount results in negative price"


def test_validate_discount_accepts_flat_equal_to_price():
    validate_discount(100, 100, "FLAT")


def test_price_summary_reports_deal():
    summary = price_summary({"basePrice": 80, "discount": 5, "discountType": "PERCENTAGE"}, ENABLED_DEAL)
    assert summary == {
        "basePrice": 80,
        "discount": 5,
        "discountType": "PERCENTAGE",
        "dealDiscount": 25.0,
        "finalPrice": 60.0,
    }


@pytest.mark.parametrize("stock,status", [(0, "OUT_OF_STOCK"), (-1, "OUT_OF_STOCK"), (4, "LOW_STOCK"), (5, "AVAILABLE")])
def test_stock_status(stock, status):
    assert stock_status(stock) == status
