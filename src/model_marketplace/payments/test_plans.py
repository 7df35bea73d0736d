"""Tests for the plan catalog and price mapping."""

from decimal import Decimal

from .plans import (
    DEFAULT_PRICE_IDS,
    PLANS,
    PlanType,
    PriceCatalog,
    commission_rate_for_plan,
    get_plan,
)


def test_catalog_has_buyer_and_seller_plans():
    buyer_plans = [plan for plan in PLANS.values() if plan.type == PlanType.BUYER]
    seller_plans = [plan for plan in PLANS.values() if plan.type == PlanType.SELLER]
    assert {plan.plan_id for plan in buyer_plans} == {"buyer_basic", "buyer_premium"}
    assert {plan.plan_id for plan in seller_plans} == {"seller_starter", "seller_pro", "seller_enterprise"}


def test_seller_plan_limits():
    assert get_plan("seller_starter").max_models == 3
    assert get_plan("seller_pro").max_models == 15
    assert get_plan("seller_enterprise").unlimited_models
    assert get_plan("seller_pro").listing_duration_days == 90


def test_unknown_plan_falls_back_to_starter():
    assert get_plan("platinum").plan_id == "seller_starter"
    assert get_plan(None).plan_id == "seller_starter"


def test_commission_rate_is_complement_of_revenue_share():
    assert commission_rate_for_plan("seller_starter") == Decimal("0.2")
    assert commission_rate_for_plan("seller_pro") == Decimal("0.15")
    assert commission_rate_for_plan("seller_enterprise") == Decimal("0.1")


def test_plan_to_dict_is_json_friendly():
    data = get_plan("buyer_premium").to_dict()
    assert data["type"] == "buyer"
    assert data["monthly_price"] == 14.99
    assert data["max_downloads"] == 5


def test_price_catalog_overrides_and_reverse_lookup():
    catalog = PriceCatalog({"seller_pro": "price_override_pro"})

    assert catalog.price_id_for("seller_pro") == "price_override_pro"
    assert catalog.price_id_for("buyer_basic") == DEFAULT_PRICE_IDS["buyer_basic"]
    assert catalog.plan_for_price("price_override_pro") == "seller_pro"
    assert catalog.plan_for_price(DEFAULT_PRICE_IDS["seller_pro"]) is None
    assert catalog.is_known_price(DEFAULT_PRICE_IDS["seller_enterprise"])
    assert not catalog.is_known_price("price_unknown")


def test_price_catalog_describe_includes_price_ids():
    described = PriceCatalog().describe()
    assert described["seller_starter"]["price_id"] == DEFAULT_PRICE_IDS["seller_starter"]
    assert described["seller_starter"]["name"] == "Starter Creator"
