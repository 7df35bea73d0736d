"""
Seller and buyer dashboard endpoints.
"""

import logging
from typing import Dict, Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..database.models import UserProfile, SubscriptionStatus, TransactionStatus
from ..payments.payment_manager import MIN_PAYOUT_AMOUNT
from .dependencies import Services, get_services, get_active_user, get_current_user, require_seller

logger = logging.getLogger(__name__)

dashboard_router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class PayoutRequestBody(BaseModel):
    amount: float = Field(..., gt=0, description=f"Amount in USD, at least ${MIN_PAYOUT_AMOUNT}")


class DisputeRequestBody(BaseModel):
    reason: str = Field(..., min_length=10, max_length=2000, description="What went wrong with the purchase")


@dashboard_router.get("/seller")
async def get_seller_dashboard(
    user: UserProfile = Depends(require_seller),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Earnings, listings, payouts and listing eligibility of the caller."""
    earnings = await services.payments.get_seller_earnings(user.uid)
    models = await services.listings.get_user_models(user.uid)
    payouts = await services.payments.get_seller_payouts(user.uid)
    eligibility = await services.subscriptions.can_user_list_models(user)

    return {
        "earnings": earnings.model_dump(mode="json"),
        "models": [model.model_dump(mode="json") for model in models],
        "payouts": [payout.model_dump(mode="json") for payout in payouts],
        "eligibility": eligibility.model_dump(),
        "subscription": services.subscriptions.describe_subscription(user),
        "stats": user.stats.model_dump(),
    }


@dashboard_router.post("/seller/payouts", status_code=status.HTTP_201_CREATED)
async def request_payout(
    payout_data: PayoutRequestBody,
    user: UserProfile = Depends(require_seller),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    payout = await services.payments.request_payout(user.uid, payout_data.amount)
    return payout.model_dump(mode="json")


@dashboard_router.get("/buyer")
async def get_buyer_dashboard(
    user: UserProfile = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    purchases = await services.payments.get_user_purchases(user.uid)
    disputes = await services.payments.get_user_disputes(user.uid)
    return {
        "purchases": [purchase.model_dump(mode="json") for purchase in purchases],
        "stats": await services.payments.get_user_purchase_stats(user.uid),
        "disputes": [dispute.model_dump(mode="json") for dispute in disputes],
        "subscription": services.subscriptions.describe_subscription(user),
    }


@dashboard_router.get("/purchases/{purchase_id}/download")
async def download_purchase(
    purchase_id: str,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Signed links to every media file of a purchased model.

    Links expire after one hour.
    """
    purchase = await services.payments.get_purchase(purchase_id)
    if purchase.buyer_id != user.uid:
        raise HTTPException(status_code=403, detail="You can only download your own purchases")
    if purchase.status != TransactionStatus.COMPLETED:
        raise HTTPException(status_code=400, detail="Purchase is not completed")

    storage = services.listings.storage
    if storage is None:
        raise HTTPException(status_code=503, detail="Media storage is not configured")

    model = await services.listings.require_model(purchase.model_id)
    files = {}
    for slot in ("sfw_images", "nsfw_images", "sfw_videos", "nsfw_videos"):
        files[slot] = [await storage.signed_url(path) for path in getattr(model.media, slot)]

    logger.info(f"Issued download links for purchase {purchase_id} to {user.uid}")
    return {"purchase_id": purchase_id, "model_id": model.id, "model_name": model.name, "files": files}


@dashboard_router.post("/purchases/{purchase_id}/dispute", status_code=status.HTTP_201_CREATED)
async def open_dispute(
    purchase_id: str,
    dispute_data: DisputeRequestBody,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    dispute = await services.payments.open_dispute(purchase_id, user.uid, dispute_data.reason)
    return dispute.model_dump(mode="json")


@dashboard_router.post("/subscription/cancel")
async def cancel_subscription(
    user: UserProfile = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Cancel the caller's plan at the end of the paid period."""
    current = await services.subscriptions.get_user_subscription(user.uid)
    if current is None or current.status != SubscriptionStatus.ACTIVE:
        raise HTTPException(status_code=404, detail="No active subscription")
    if current.stripe_subscription_id:
        if services.stripe is None:
            raise HTTPException(status_code=503, detail="Payments are not configured")
        await services.stripe.cancel_subscription(current.stripe_subscription_id)

    subscription = await services.subscriptions.cancel_subscription(user.uid, at_period_end=True)
    return {
        "success": True,
        "subscription": subscription.model_dump(mode="json"),
        "message": f"Your plan stays active until {subscription.expires_at.date().isoformat()}",
    }
