"""
Stripe Checkout endpoints for plan subscriptions and model purchases.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, model_validator

from ..database.models import UserProfile
from ..payments.plans import PLANS
from ..payments.stripe_service import StripeService, stripe_to_dict
from .dependencies import Services, get_services, get_active_user, get_current_user, get_stripe_service

logger = logging.getLogger(__name__)

checkout_router = APIRouter(tags=["checkout"])


class SubscriptionCheckoutRequest(BaseModel):
    """Either a Stripe price id or one of the plan ids."""
    price_id: Optional[str] = Field(None, alias="priceId")
    plan_id: Optional[str] = Field(None, alias="planId")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_target(self):
        if not self.price_id and not self.plan_id:
            raise ValueError("priceId or planId is required")
        if self.plan_id and self.plan_id not in PLANS:
            raise ValueError(f"Unknown plan: {self.plan_id}")
        return self


class ModelCheckoutRequest(BaseModel):
    model_id: str = Field(..., alias="modelId")

    model_config = {"populate_by_name": True}


class CompletePurchaseRequest(BaseModel):
    session_id: str = Field(..., alias="sessionId")

    model_config = {"populate_by_name": True}


class CheckoutResponse(BaseModel):
    session_id: str = Field(..., alias="sessionId")
    url: Optional[str] = None

    model_config = {"populate_by_name": True}


async def _ensure_customer(user: UserProfile, services: Services, stripe_service: StripeService) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer_id = await stripe_service.create_customer(
        user_id=user.uid,
        email=user.email,
        name=user.display_name or user.username,
    )
    await services.users.set_stripe_customer_id(user.uid, customer_id)
    return customer_id


@checkout_router.post("/checkout", response_model=CheckoutResponse, response_model_by_alias=True)
async def create_subscription_checkout(
    checkout_data: SubscriptionCheckoutRequest,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutResponse:
    """
    Start a Stripe Checkout session for a plan subscription.

    The plan is always the one the charged price belongs to; a planId sent
    alongside a priceId must name that same plan.
    """
    catalog = services.price_catalog
    price_id = checkout_data.price_id or catalog.price_id_for(checkout_data.plan_id)
    plan_id = catalog.plan_for_price(price_id) if price_id else None
    if not plan_id:
        raise HTTPException(status_code=400, detail="Invalid price ID")
    if checkout_data.plan_id and checkout_data.plan_id != plan_id:
        raise HTTPException(status_code=400, detail="Price ID does not match the selected plan")

    customer_id = await _ensure_customer(user, services, stripe_service)
    session = await stripe_service.create_checkout_session(
        price_id=price_id,
        customer_id=customer_id,
        metadata={
            "userId": user.uid,
            "planType": PLANS[plan_id].type.value,
            "priceId": price_id,
            "planId": plan_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
    return CheckoutResponse(session_id=session.id, url=session.url)


@checkout_router.post("/checkout/model", response_model=CheckoutResponse, response_model_by_alias=True)
async def create_model_checkout(
    checkout_data: ModelCheckoutRequest,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutResponse:
    """Start a one-time Checkout session; the price comes from the stored listing."""
    session = await services.payments.process_model_purchase(checkout_data.model_id, user)
    return CheckoutResponse(session_id=session.id, url=session.url)


@checkout_router.get("/checkout/session")
async def get_checkout_session(
    session_id: str = Query(..., description="Stripe Checkout session ID"),
    user: UserProfile = Depends(get_current_user),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> Dict[str, Any]:
    session = await stripe_service.get_checkout_session(session_id)
    metadata = stripe_to_dict(session.metadata)
    owner = metadata.get("buyerId") or metadata.get("userId")
    if owner != user.uid and not user.is_admin:
        raise HTTPException(status_code=403, detail="This checkout session belongs to another user")
    return StripeService.summarize_session(session)


@checkout_router.post("/checkout/complete")
async def complete_model_purchase(
    complete_data: CompletePurchaseRequest,
    user: UserProfile = Depends(get_current_user),
    services: Services = Depends(get_services),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> Dict[str, Any]:
    """Record a paid model purchase after the Checkout success redirect."""
    transaction = await services.payments.complete_purchase(complete_data.session_id, expected_buyer_id=user.uid)
    return {"success": True, "purchase": transaction.model_dump(mode="json")}


@checkout_router.post("/customer-portal")
async def create_customer_portal(
    user: UserProfile = Depends(get_current_user),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> Dict[str, Any]:
    if not user.stripe_customer_id:
        raise HTTPException(status_code=400, detail="Customer ID is required")
    url = await stripe_service.create_customer_portal_session(user.stripe_customer_id)
    return {"url": url}
