"""
Stripe Webhook Handlers for payment events.

This module handles Stripe webhook events for model purchases and plan
subscriptions. Events are verified with the signing secret, processed once
per event id, and anything the marketplace does not act on is only logged.
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List

from ..database.models import SubscriptionStatus, utcnow
from ..database.repository import FirestoreRepository, Collections
from ..marketplace.users import UserService
from .payment_manager import PaymentManager
from .stripe_service import StripeService
from .subscription_manager import SubscriptionManager, map_stripe_status

logger = logging.getLogger(__name__)


class WebhookEventType(Enum):
    """Supported Stripe webhook event types."""
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    CUSTOMER_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    CUSTOMER_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _subscription_period_end(subscription: Dict[str, Any]) -> Optional[datetime]:
    # Newer API versions report the period on the subscription items.
    if subscription.get("current_period_end"):
        return _from_timestamp(subscription["current_period_end"])
    items = (subscription.get("items") or {}).get("data") or []
    if items:
        return _from_timestamp(items[0].get("current_period_end"))
    return None


def _subscription_price_id(subscription: Dict[str, Any]) -> Optional[str]:
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription:
        return subscription if isinstance(subscription, str) else subscription.get("id")
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    return details.get("subscription")


def _invoice_period_end(invoice: Dict[str, Any]) -> Optional[datetime]:
    lines = (invoice.get("lines") or {}).get("data") or []
    if lines:
        return _from_timestamp((lines[0].get("period") or {}).get("end"))
    return _from_timestamp(invoice.get("period_end"))


class StripeWebhookHandler:
    """Handler for Stripe webhook events."""

    def __init__(
        self,
        stripe_service: StripeService,
        repository: FirestoreRepository,
        subscription_manager: SubscriptionManager,
        payment_manager: PaymentManager,
        user_service: Optional[UserService] = None,
    ):
        """
        Initialize webhook handler.

        Args:
            stripe_service: StripeService instance used to verify signatures
            repository: Firestore repository holding the processed event ledger
            subscription_manager: Applies subscription changes
            payment_manager: Completes model purchases
            user_service: Stores Stripe customer ids on user profiles
        """
        self.stripe_service = stripe_service
        self.repository = repository
        self.subscription_manager = subscription_manager
        self.payment_manager = payment_manager
        self.user_service = user_service or UserService(repository)

        self.event_handlers = {
            WebhookEventType.CHECKOUT_SESSION_COMPLETED: self._handle_checkout_completed,
            WebhookEventType.CUSTOMER_SUBSCRIPTION_UPDATED: self._handle_subscription_updated,
            WebhookEventType.CUSTOMER_SUBSCRIPTION_DELETED: self._handle_subscription_deleted,
            WebhookEventType.INVOICE_PAYMENT_SUCCEEDED: self._handle_payment_succeeded,
            WebhookEventType.INVOICE_PAYMENT_FAILED: self._handle_payment_failed,
        }

        logger.info("Stripe webhook handler initialized")

    async def handle_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Handle incoming Stripe webhook.

        Signature and payload errors propagate (ValueError,
        stripe.SignatureVerificationError) so the endpoint can reject the
        request; processing failures are reported in the result.

        Args:
            payload: Raw webhook payload
            sig_header: Stripe signature header

        Returns:
            Processing result
        """
        self.stripe_service.construct_webhook_event(payload, sig_header)
        event = json.loads(payload)
        event_id = event["id"]
        event_type_name = event["type"]

        logger.info(f"Received Stripe webhook: {event_type_name} (ID: {event_id})")

        try:
            event_type = WebhookEventType(event_type_name)
        except ValueError:
            logger.info(f"Unhandled webhook event type: {event_type_name}")
            return {
                "status": "ignored",
                "event_type": event_type_name,
                "event_id": event_id,
                "message": "Event type not handled",
            }

        if await self.repository.get(Collections.PAYMENT_EVENTS, event_id) is not None:
            logger.info(f"Webhook {event_id} already processed")
            return {"status": "duplicate", "event_type": event_type_name, "event_id": event_id}

        handler = self.event_handlers[event_type]
        try:
            result = await handler(event["data"]["object"])
        except Exception as e:
            logger.error(f"Error processing webhook {event_id}: {e}", exc_info=True)
            return {
                "status": "error",
                "event_type": event_type_name,
                "event_id": event_id,
                "error": "processing_failed",
                "message": str(e),
            }

        await self.repository.set(Collections.PAYMENT_EVENTS, event_id, {
            "event_id": event_id,
            "event_type": event_type_name,
            "processed_at": utcnow().isoformat(),
            "result": result,
        })

        logger.info(f"Successfully processed webhook {event_id}: {result}")
        return {
            "status": "processed",
            "event_type": event_type_name,
            "event_id": event_id,
            "result": result,
        }

    def _charged_plan(self, metadata: Dict[str, Any], charged_price_id: Optional[str] = None) -> Optional[str]:
        """
        Plan that belongs to the price Stripe charged.

        metadata.planId is only used when neither the subscription item nor
        the metadata names a price.
        """
        price_id = charged_price_id or metadata.get("priceId")
        if not price_id:
            return metadata.get("planId")

        plan_id = self.stripe_service.price_catalog.plan_for_price(price_id)
        requested = metadata.get("planId")
        if plan_id and requested and requested != plan_id:
            logger.warning(f"Plan {requested} requested but price {price_id} belongs to {plan_id}; using {plan_id}")
        return plan_id

    async def _handle_checkout_completed(self, session: Dict[str, Any]) -> Dict[str, Any]:
        """Handle checkout session completed event."""
        metadata = session.get("metadata") or {}

        if session.get("mode") == "payment" and metadata.get("type") == "model_purchase":
            if session.get("payment_status") != "paid":
                return {"action": "skipped", "reason": "payment_not_completed"}
            transaction = await self.payment_manager.complete_purchase(session["id"])
            return {"action": "purchase_completed", "purchase_id": transaction.id, "model_id": transaction.model_id}

        if session.get("mode") != "subscription":
            return {"action": "skipped", "reason": "unsupported_checkout_mode"}

        user_id = metadata.get("userId")
        if not user_id:
            logger.warning(f"Checkout session {session['id']} has no userId metadata")
            return {"action": "skipped", "reason": "no_user_id"}

        plan_id = self._charged_plan(metadata)
        if not plan_id:
            return {"action": "skipped", "reason": "unknown_plan"}

        customer_id = session.get("customer")
        if customer_id:
            user = await self.user_service.get_user(user_id)
            if user is not None and user.stripe_customer_id != customer_id:
                await self.user_service.set_stripe_customer_id(user_id, customer_id)

        subscription = await self.subscription_manager.activate_subscription(
            user_id=user_id,
            plan_id=plan_id,
            stripe_subscription_id=session.get("subscription"),
            stripe_customer_id=customer_id,
        )
        return {"action": "subscription_activated", "user_id": user_id, "plan_id": subscription.plan_id}

    async def _handle_subscription_updated(self, subscription: Dict[str, Any]) -> Dict[str, Any]:
        """Handle subscription updated event."""
        status = map_stripe_status(subscription.get("status", ""))
        period_end = _subscription_period_end(subscription)

        updated = await self.subscription_manager.update_subscription_status(
            subscription["id"],
            status,
            period_end=period_end,
            cancel_at_period_end=subscription.get("cancel_at_period_end"),
        )
        if updated is not None:
            return {"action": "subscription_updated", "user_id": updated.user_id, "status": status.value}

        # First event for a subscription created outside our checkout flow.
        metadata = subscription.get("metadata") or {}
        plan_id = self._charged_plan(metadata, _subscription_price_id(subscription))
        if status == SubscriptionStatus.ACTIVE and metadata.get("userId") and plan_id:
            created = await self.subscription_manager.activate_subscription(
                user_id=metadata["userId"],
                plan_id=plan_id,
                stripe_subscription_id=subscription["id"],
                stripe_customer_id=subscription.get("customer"),
                period_end=period_end,
            )
            return {"action": "subscription_activated", "user_id": created.user_id, "plan_id": created.plan_id}

        return {"action": "skipped", "reason": "unknown_subscription"}

    async def _handle_subscription_deleted(self, subscription: Dict[str, Any]) -> Dict[str, Any]:
        """Handle subscription deleted event."""
        updated = await self.subscription_manager.update_subscription_status(
            subscription["id"], SubscriptionStatus.CANCELED
        )
        if updated is None:
            return {"action": "skipped", "reason": "unknown_subscription"}
        return {"action": "subscription_canceled", "user_id": updated.user_id}

    async def _handle_payment_succeeded(self, invoice: Dict[str, Any]) -> Dict[str, Any]:
        """Handle successful renewal payment."""
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            return {"action": "skipped", "reason": "no_subscription"}

        updated = await self.subscription_manager.update_subscription_status(
            subscription_id, SubscriptionStatus.ACTIVE, period_end=_invoice_period_end(invoice)
        )
        if updated is None:
            return {"action": "skipped", "reason": "unknown_subscription"}
        return {"action": "subscription_renewed", "user_id": updated.user_id,
                "expires_at": updated.expires_at.isoformat()}

    async def _handle_payment_failed(self, invoice: Dict[str, Any]) -> Dict[str, Any]:
        """Handle failed renewal payment."""
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            return {"action": "skipped", "reason": "no_subscription"}

        updated = await self.subscription_manager.update_subscription_status(
            subscription_id, SubscriptionStatus.PAST_DUE
        )
        if updated is None:
            return {"action": "skipped", "reason": "unknown_subscription"}
        logger.warning(f"Renewal payment failed for subscription {subscription_id} (user {updated.user_id})")
        return {"action": "subscription_past_due", "user_id": updated.user_id}

    def get_supported_events(self) -> List[str]:
        """Get list of supported webhook event types."""
        return [event_type.value for event_type in WebhookEventType]

    def get_handler_stats(self) -> Dict[str, Any]:
        return {
            "supported_events": self.get_supported_events(),
            "handlers_configured": len(self.event_handlers),
            "webhook_secret_configured": bool(self.stripe_service.webhook_secret),
        }
