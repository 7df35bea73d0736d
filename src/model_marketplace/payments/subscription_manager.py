"""
Subscription management and plan gating.

Subscriptions live in their own collection; a snapshot of the current one is
copied onto the user document so listing and commission checks only need the
user record.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field

from ..database.models import (
    UserProfile,
    Subscription,
    SubscriptionStatus,
    SubscriptionType,
    ModelStatus,
    to_document,
    utcnow,
)
from ..database.repository import FirestoreRepository, Collections, RecordNotFound
from ..marketplace.id_system import UnifiedIDSystem
from .plans import (
    PlanFeatures,
    PlanType,
    get_plan,
    commission_rate_for_plan,
    DEFAULT_COMMISSION_RATE,
    DEFAULT_LISTING_DURATION_DAYS,
)

logger = logging.getLogger(__name__)

BILLING_PERIOD = timedelta(days=30)

# Stripe reports more states than the marketplace distinguishes.
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.UNPAID,
    "incomplete": SubscriptionStatus.UNPAID,
    "incomplete_expired": SubscriptionStatus.CANCELED,
    "paused": SubscriptionStatus.UNPAID,
}


class ListingEligibility(BaseModel):
    """Whether a user may create another listing, and why not."""
    can_list: bool = Field(..., description="Whether a new listing is allowed")
    reason: Optional[str] = Field(None, description="Why listing is not allowed")
    max_models: int = Field(default=0, description="Plan limit (-1 for unlimited)")
    current_models: int = Field(default=0, description="Approved listings the user already has")
    subscription_tier: Optional[str] = Field(None, description="Display name of the active plan")


def map_stripe_status(status: str) -> SubscriptionStatus:
    return STRIPE_STATUS_MAP.get(status, SubscriptionStatus.UNPAID)


class SubscriptionManager:
    """Plan gating and subscription bookkeeping."""

    def __init__(self, repository: FirestoreRepository):
        """
        Initialize the subscription manager.

        Args:
            repository: Firestore repository shared with the other services
        """
        self.repository = repository

    @staticmethod
    def has_active_subscription(user: UserProfile, now: Optional[datetime] = None) -> bool:
        subscription = user.subscription
        if subscription is None:
            return False
        return subscription.status == SubscriptionStatus.ACTIVE and subscription.expires_at > (now or utcnow())

    @staticmethod
    def get_subscription_features(plan_id: Optional[str]) -> PlanFeatures:
        return get_plan(plan_id)

    def get_subscription_tier_name(self, plan_id: Optional[str]) -> str:
        return self.get_subscription_features(plan_id).name

    def get_max_models_for_plan(self, plan_id: Optional[str]) -> int:
        return self.get_subscription_features(plan_id).max_models

    async def count_approved_models(self, uid: str) -> int:
        models = await self.repository.query(
            Collections.MODELS,
            [("owner", "==", uid), ("status", "==", ModelStatus.APPROVED.value)],
        )
        return len(models)

    async def can_user_list_models(self, user: UserProfile) -> ListingEligibility:
        """Check role, subscription and plan limit before a new listing is created."""
        if not user.is_seller:
            return ListingEligibility(can_list=False, reason="Seller account required to list models")

        if not self.has_active_subscription(user):
            return ListingEligibility(
                can_list=False,
                reason="Active subscription required to list models. Please upgrade your plan.",
            )

        plan = self.get_subscription_features(user.subscription.plan_id)
        current = await self.count_approved_models(user.uid)

        if not plan.unlimited_models and current >= plan.max_models:
            return ListingEligibility(
                can_list=False,
                reason=(
                    f"You've reached your limit of {plan.max_models} models. "
                    "Upgrade your plan to list more models."
                ),
                max_models=plan.max_models,
                current_models=current,
                subscription_tier=plan.name,
            )

        return ListingEligibility(
            can_list=True,
            max_models=plan.max_models,
            current_models=current,
            subscription_tier=plan.name,
        )

    def get_seller_commission_rate(self, user: Optional[UserProfile]) -> Decimal:
        """Platform commission fraction for a seller's sales."""
        if user is None or not self.has_active_subscription(user):
            return DEFAULT_COMMISSION_RATE
        return commission_rate_for_plan(user.subscription.plan_id)

    def get_listing_duration(self, user: UserProfile) -> timedelta:
        if self.has_active_subscription(user):
            days = self.get_subscription_features(user.subscription.plan_id).listing_duration_days
            if days > 0:
                return timedelta(days=days)
        return timedelta(days=DEFAULT_LISTING_DURATION_DAYS)

    async def _sync_user_snapshot(self, subscription: Subscription) -> None:
        user = await self.repository.get(Collections.USERS, subscription.user_id)
        if user is None:
            logger.warning(f"Subscription {subscription.id} references unknown user {subscription.user_id}")
            return
        await self.repository.update(Collections.USERS, subscription.user_id, {
            "subscription": to_document(subscription.snapshot()),
            "updated_at": utcnow().isoformat(),
        })

    async def activate_subscription(
        self,
        user_id: str,
        plan_id: str,
        stripe_subscription_id: Optional[str] = None,
        stripe_customer_id: Optional[str] = None,
        period_end: Optional[datetime] = None,
    ) -> Subscription:
        """
        Record a paid plan for a user and make it their current subscription.

        Any other active subscription of the user is marked canceled.
        """
        plan = get_plan(plan_id)
        now = utcnow()
        expires_at = period_end or now + BILLING_PERIOD
        record_id = stripe_subscription_id or UnifiedIDSystem.generate_id("subscription", 8)

        subscription = Subscription(
            id=record_id,
            user_id=user_id,
            plan_id=plan.plan_id,
            type=SubscriptionType.BUYER if plan.type == PlanType.BUYER else SubscriptionType.SELLER,
            amount=float(plan.monthly_price),
            status=SubscriptionStatus.ACTIVE,
            stripe_subscription_id=stripe_subscription_id,
            stripe_customer_id=stripe_customer_id,
            features=plan.to_dict(),
            purchased_at=now,
            expires_at=expires_at,
            next_billing_date=expires_at,
        )

        for existing in await self._active_subscriptions_for(user_id):
            if existing.id != record_id:
                await self.repository.update(Collections.SUBSCRIPTIONS, existing.id, {
                    "status": SubscriptionStatus.CANCELED.value,
                    "updated_at": now.isoformat(),
                })
                logger.info(f"Superseded subscription {existing.id} for user {user_id}")

        await self.repository.set(Collections.SUBSCRIPTIONS, record_id, to_document(subscription))
        await self._sync_user_snapshot(subscription)

        logger.info(f"Activated {plan.plan_id} for user {user_id} until {expires_at.isoformat()}")
        return subscription

    async def update_subscription_status(
        self,
        subscription_id: str,
        status: SubscriptionStatus,
        period_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
    ) -> Optional[Subscription]:
        """Apply a status change reported by Stripe; returns None for unknown subscriptions."""
        data = await self.repository.get(Collections.SUBSCRIPTIONS, subscription_id)
        if data is None:
            logger.warning(f"Status update for unknown subscription {subscription_id}")
            return None

        subscription = Subscription.model_validate(data)
        subscription.status = status
        subscription.updated_at = utcnow()
        if period_end is not None:
            subscription.expires_at = period_end
            subscription.next_billing_date = period_end
        if cancel_at_period_end is not None:
            subscription.cancel_at_period_end = cancel_at_period_end

        await self.repository.set(Collections.SUBSCRIPTIONS, subscription_id, to_document(subscription))
        await self._sync_user_snapshot(subscription)

        logger.info(f"Subscription {subscription_id} is now {status.value}")
        return subscription

    async def cancel_subscription(self, user_id: str, at_period_end: bool = False) -> Subscription:
        """
        Cancel the user's current subscription.

        Args:
            user_id: Subscriber UID
            at_period_end: Keep the plan until the paid period ends instead of cancelling now

        Raises:
            RecordNotFound: if the user has no active subscription
        """
        subscription = await self.get_user_subscription(user_id)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
            raise RecordNotFound("Active subscription", user_id)

        if at_period_end:
            return await self.update_subscription_status(
                subscription.id, SubscriptionStatus.ACTIVE, cancel_at_period_end=True
            )
        return await self.update_subscription_status(subscription.id, SubscriptionStatus.CANCELED)

    async def _active_subscriptions_for(self, user_id: str) -> List[Subscription]:
        docs = await self.repository.query(
            Collections.SUBSCRIPTIONS,
            [("user_id", "==", user_id), ("status", "==", SubscriptionStatus.ACTIVE.value)],
        )
        return [Subscription.model_validate(doc) for doc in docs]

    async def get_user_subscription(self, user_id: str) -> Optional[Subscription]:
        """Most recently purchased subscription of the user, in any status."""
        docs = await self.repository.query(Collections.SUBSCRIPTIONS, [("user_id", "==", user_id)])
        if not docs:
            return None
        subscriptions = [Subscription.model_validate(doc) for doc in docs]
        return max(subscriptions, key=lambda sub: sub.purchased_at)

    async def get_all_active_subscriptions(self) -> List[Subscription]:
        docs = await self.repository.query(
            Collections.SUBSCRIPTIONS, [("status", "==", SubscriptionStatus.ACTIVE.value)]
        )
        now = utcnow()
        return [sub for sub in (Subscription.model_validate(doc) for doc in docs) if sub.expires_at > now]

    def describe_subscription(self, user: UserProfile) -> Dict[str, Any]:
        snapshot = user.subscription
        return {
            "active": self.has_active_subscription(user),
            "plan_id": snapshot.plan_id if snapshot else None,
            "tier_name": self.get_subscription_tier_name(snapshot.plan_id) if snapshot else "Free",
            "status": snapshot.status.value if snapshot else None,
            "expires_at": snapshot.expires_at.isoformat() if snapshot else None,
        }
