"""
Stripe Service for checkout, subscriptions and billing integration.

This module wraps the Stripe calls the marketplace needs: hosted Checkout for
plan subscriptions and one-time model purchases, the customer billing portal,
payment intents and webhook signature verification.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Any

import stripe

from .plans import PriceCatalog

logger = logging.getLogger(__name__)


def stripe_to_dict(obj: Any) -> Dict[str, Any]:
    """Plain dict view of a Stripe object (or of an already plain mapping)."""
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    return obj.to_dict()


def _stripe_id(obj: Any) -> Optional[str]:
    """Expanded Stripe fields may be an object or just its id."""
    if obj is None or isinstance(obj, str):
        return obj
    if isinstance(obj, dict):
        return obj.get("id")
    return getattr(obj, "id", None)


class StripeService:
    """Stripe service for marketplace payments and subscriptions."""

    def __init__(
        self,
        api_key: Optional[str],
        webhook_secret: Optional[str] = None,
        app_url: str = "http://localhost:3000",
        price_catalog: Optional[PriceCatalog] = None,
    ):
        """
        Initialize Stripe service.

        Args:
            api_key: Stripe secret API key
            webhook_secret: Stripe webhook signing secret
            app_url: Public frontend URL used to build redirect URLs
            price_catalog: Plan to price id mapping (defaults to the built-in ids)
        """
        if not api_key:
            raise ValueError("Stripe API key is required")

        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.app_url = app_url.rstrip("/")
        self.price_catalog = price_catalog or PriceCatalog()

        stripe.api_key = self.api_key
        logger.info("Stripe service initialized successfully")

    async def create_customer(
        self,
        user_id: str,
        email: str,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Create a new Stripe customer.

        Returns:
            Stripe customer ID
        """
        try:
            customer_metadata = {"userId": user_id}
            if metadata:
                customer_metadata.update(metadata)

            customer = await asyncio.to_thread(
                stripe.Customer.create,
                email=email,
                name=name,
                metadata=customer_metadata,
            )

            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer.id

        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe customer for user {user_id}: {e}")
            raise

    async def create_checkout_session(
        self,
        price_id: str,
        customer_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Create a Stripe Checkout session for a plan subscription.

        Args:
            price_id: Stripe price ID; must belong to one of the marketplace plans
            customer_id: Existing Stripe customer ID, if any
            metadata: Copied to both the session and the subscription

        Returns:
            Stripe Checkout session
        """
        if not self.price_catalog.is_known_price(price_id):
            raise ValueError("Invalid price ID")

        session_metadata = {key: str(value) for key, value in (metadata or {}).items()}
        session_params = {
            "payment_method_types": ["card"],
            "line_items": [{
                "price": price_id,
                "quantity": 1,
            }],
            "mode": "subscription",
            "success_url": f"{self.app_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.app_url}/pricing",
            "subscription_data": {"metadata": session_metadata},
            "metadata": session_metadata,
            "allow_promotion_codes": True,
        }
        if customer_id:
            session_params["customer"] = customer_id

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, **session_params)
            logger.info(f"Created subscription checkout session {session.id} for price {price_id}")
            return session
        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session for price {price_id}: {e}")
            raise

    async def create_one_time_checkout_session(
        self,
        amount: float,
        model_name: str,
        model_id: str,
        buyer_id: str,
        seller_id: str,
        customer_id: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Create a Stripe Checkout session for a single model purchase.

        Args:
            amount: Price in USD
            model_name: Shown as the product name on the Checkout page
            model_id: Purchased model ID
            buyer_id: Buyer UID
            seller_id: Seller UID
            customer_id: Existing Stripe customer ID, if any
            metadata: Extra metadata merged under the purchase fields
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

        session_metadata = {key: str(value) for key, value in (metadata or {}).items()}
        session_metadata.update({
            "type": "model_purchase",
            "modelId": model_id,
            "modelName": model_name,
            "buyerId": buyer_id,
            "sellerId": seller_id,
            "amount": f"{amount:.2f}",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        session_params = {
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": model_name,
                        "description": f"AI Model Purchase - {model_name}",
                        "metadata": {"modelId": model_id, "type": "ai_model"},
                    },
                    "unit_amount": to_cents(amount),
                },
                "quantity": 1,
            }],
            "mode": "payment",
            "success_url": f"{self.app_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}&type=model",
            "cancel_url": f"{self.app_url}/marketplace/{model_id}",
            "metadata": session_metadata,
            "allow_promotion_codes": True,
            "billing_address_collection": "required",
        }
        if customer_id:
            session_params["customer"] = customer_id
        else:
            session_params["customer_creation"] = "if_required"

        try:
            session = await asyncio.to_thread(stripe.checkout.Session.create, **session_params)
            logger.info(f"Created model checkout session {session.id} for model {model_id} (buyer {buyer_id})")
            return session
        except stripe.StripeError as e:
            logger.error(f"Failed to create model checkout session for {model_id}: {e}")
            raise

    async def get_checkout_session(self, session_id: str) -> Any:
        try:
            return await asyncio.to_thread(
                stripe.checkout.Session.retrieve,
                session_id,
                expand=["subscription", "customer", "line_items"],
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {e}")
            raise

    @staticmethod
    def summarize_session(session: Any) -> Dict[str, Any]:
        """Subset of a Checkout session that is safe to return to the client."""
        return {
            "id": session.id,
            "status": session.status,
            "payment_status": session.payment_status,
            "customer_details": stripe_to_dict(session.customer_details),
            "amount_total": session.amount_total,
            "metadata": stripe_to_dict(session.metadata),
            "subscription": _stripe_id(session.subscription),
        }

    async def create_payment_intent(self, amount: float, metadata: Optional[Dict[str, str]] = None) -> Any:
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=to_cents(amount),
                currency="usd",
                automatic_payment_methods={"enabled": True},
                metadata={key: str(value) for key, value in (metadata or {}).items()},
            )
            logger.info(f"Created payment intent {intent.id} for ${amount:.2f}")
            return intent
        except stripe.StripeError as e:
            logger.error(f"Failed to create payment intent: {e}")
            raise

    async def create_customer_portal_session(self, customer_id: str) -> str:
        """
        Create a billing portal session for customer self-service.

        Returns:
            Billing portal URL
        """
        if not customer_id:
            raise ValueError("Customer ID is required")
        try:
            session = await asyncio.to_thread(
                stripe.billing_portal.Session.create,
                customer=customer_id,
                return_url=f"{self.app_url}/dashboard",
            )
            logger.info(f"Created billing portal session for customer {customer_id}")
            return session.url
        except stripe.StripeError as e:
            logger.error(f"Failed to create billing portal session for customer {customer_id}: {e}")
            raise

    async def cancel_subscription(self, subscription_id: str) -> Any:
        """Schedule a Stripe subscription to end with the current billing period."""
        try:
            subscription = await asyncio.to_thread(
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
            logger.info(f"Scheduled cancellation of subscription {subscription_id}")
            return subscription
        except stripe.StripeError as e:
            logger.error(f"Failed to cancel subscription {subscription_id}: {e}")
            raise

    def construct_webhook_event(self, payload: bytes, sig_header: str) -> Any:
        """
        Construct and verify a Stripe webhook event.

        Args:
            payload: Raw webhook payload
            sig_header: Stripe signature header

        Returns:
            Verified Stripe event
        """
        if not self.webhook_secret:
            raise ValueError("Webhook secret not configured")

        try:
            return stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid payload in webhook: {e}")
            raise
        except stripe.SignatureVerificationError as e:
            logger.error(f"Invalid signature in webhook: {e}")
            raise

    def get_service_stats(self) -> Dict[str, Any]:
        """Get Stripe service configuration."""
        return {
            "api_key_configured": bool(self.api_key),
            "webhook_secret_configured": bool(self.webhook_secret),
            "price_ids_configured": {
                plan_id: bool(price_id) for plan_id, price_id in self.price_catalog.price_ids.items()
            },
        }


def to_cents(amount: float) -> int:
    return int(round(amount * 100))
