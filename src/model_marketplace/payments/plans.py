"""
Subscription plan catalog.

Buyer plans limit downloads; seller plans limit active listings, set how long
a listing stays live and how much of each sale the seller keeps.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, Optional


class PlanType(Enum):
    BUYER = "buyer"
    SELLER = "seller"


@dataclass(frozen=True)
class PlanFeatures:
    """Limits and features for each subscription plan."""
    plan_id: str
    name: str
    type: PlanType
    monthly_price: Decimal
    max_models: int  # -1 means unlimited
    listing_duration_days: int
    revenue_share: int  # percent of each sale kept by the seller
    max_downloads: int
    support: str

    @property
    def unlimited_models(self) -> bool:
        return self.max_models == -1

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["monthly_price"] = float(self.monthly_price)
        return data


PLANS: Dict[str, PlanFeatures] = {
    "buyer_basic": PlanFeatures(
        plan_id="buyer_basic",
        name="Basic Explorer",
        type=PlanType.BUYER,
        monthly_price=Decimal("5.99"),
        max_models=0,
        listing_duration_days=0,
        revenue_share=0,
        max_downloads=1,
        support="basic",
    ),
    "buyer_premium": PlanFeatures(
        plan_id="buyer_premium",
        name="Premium Explorer",
        type=PlanType.BUYER,
        monthly_price=Decimal("14.99"),
        max_models=0,
        listing_duration_days=0,
        revenue_share=0,
        max_downloads=5,
        support="priority",
    ),
    "seller_starter": PlanFeatures(
        plan_id="seller_starter",
        name="Starter Creator",
        type=PlanType.SELLER,
        monthly_price=Decimal("29.99"),
        max_models=3,
        listing_duration_days=30,
        revenue_share=80,
        max_downloads=0,
        support="email",
    ),
    "seller_pro": PlanFeatures(
        plan_id="seller_pro",
        name="Pro Creator",
        type=PlanType.SELLER,
        monthly_price=Decimal("79.99"),
        max_models=15,
        listing_duration_days=90,
        revenue_share=85,
        max_downloads=0,
        support="dedicated",
    ),
    "seller_enterprise": PlanFeatures(
        plan_id="seller_enterprise",
        name="Enterprise",
        type=PlanType.SELLER,
        monthly_price=Decimal("199.99"),
        max_models=-1,
        listing_duration_days=180,
        revenue_share=90,
        max_downloads=0,
        support="24/7",
    ),
}

DEFAULT_PLAN_ID = "seller_starter"

# Stripe test-mode prices of the hosted deployment; overridden per environment.
DEFAULT_PRICE_IDS: Dict[str, str] = {
    "buyer_basic": "price_1SM2P3LwYvvIBBdfFoe67i9N",
    "buyer_premium": "price_1SM2Q9LwYvvIBBdfNCgiaaEp",
    "seller_starter": "price_1SM2QoLwYvvIBBdf1A3nQJls",
    "seller_pro": "price_1SM2RNLwYvvIBBdfL0Pm3kdY",
    "seller_enterprise": "price_1SM2RwLwYvvIBBdf34Nk95Rp",
}

DEFAULT_COMMISSION_RATE = Decimal("0.20")
DEFAULT_LISTING_DURATION_DAYS = 30


def get_plan(plan_id: Optional[str]) -> PlanFeatures:
    """Look up a plan; unknown ids get the starter seller features."""
    return PLANS.get(plan_id or "", PLANS[DEFAULT_PLAN_ID])


def commission_rate_for_plan(plan_id: Optional[str]) -> Decimal:
    """Platform commission as a fraction, e.g. Decimal('0.15') for seller_pro."""
    plan = get_plan(plan_id)
    return (Decimal(100) - Decimal(plan.revenue_share)) / Decimal(100)


class PriceCatalog:
    """Maps plans to Stripe price ids for the current environment."""

    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self.price_ids = {**DEFAULT_PRICE_IDS, **(overrides or {})}

    def price_id_for(self, plan_id: str) -> Optional[str]:
        return self.price_ids.get(plan_id)

    def plan_for_price(self, price_id: str) -> Optional[str]:
        for plan_id, known_price in self.price_ids.items():
            if known_price == price_id:
                return plan_id
        return None

    def is_known_price(self, price_id: str) -> bool:
        return price_id in self.price_ids.values()

    def describe(self) -> Dict[str, Any]:
        return {
            plan_id: {**plan.to_dict(), "price_id": self.price_ids.get(plan_id)}
            for plan_id, plan in PLANS.items()
        }
