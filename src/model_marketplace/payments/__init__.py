"""
Payments module for Stripe integration and subscription management.

This module provides Checkout for plans and model purchases, subscription
gating, seller earnings and payouts, and Stripe webhook processing for the
marketplace.
"""

from .plans import PLANS, PlanFeatures, PriceCatalog, get_plan
from .stripe_service import StripeService
from .subscription_manager import SubscriptionManager, ListingEligibility
from .payment_manager import PaymentManager, PaymentVerification, SellerEarnings
from .webhook_handlers import StripeWebhookHandler

__all__ = [
    'PLANS',
    'PlanFeatures',
    'PriceCatalog',
    'get_plan',
    'StripeService',
    'SubscriptionManager',
    'ListingEligibility',
    'PaymentManager',
    'PaymentVerification',
    'SellerEarnings',
    'StripeWebhookHandler',
]
