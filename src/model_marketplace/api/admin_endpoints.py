"""
Admin endpoints: platform statistics, moderation, payouts and disputes.
"""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..database.models import DisputeStatus, ModelStatus, UserProfile, UserStatus
from .dependencies import Services, get_services, require_admin

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class UserStatusUpdate(BaseModel):
    status: UserStatus


class ModelStatusUpdate(BaseModel):
    status: ModelStatus
    reason: Optional[str] = Field(None, max_length=1000, description="Required when rejecting")


class PayoutRejection(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class DisputeResolution(BaseModel):
    status: DisputeStatus
    resolution: str = Field(..., min_length=1, max_length=2000)


@admin_router.get("/stats")
async def get_platform_stats(services: Services = Depends(get_services)) -> Dict[str, Any]:
    stats = await services.admin.get_platform_stats()
    return stats.to_dict()


@admin_router.get("/revenue")
async def get_revenue_analytics(
    timeframe: Optional[str] = Query(None, description="day, week, month or year; last 30 days when omitted"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    analytics = await services.admin.get_revenue_analytics(timeframe)
    return analytics.to_dict()


@admin_router.get("/users")
async def list_users(services: Services = Depends(get_services)) -> Dict[str, Any]:
    users = await services.admin.get_all_users()
    return {"users": [user.model_dump(mode="json") for user in users], "count": len(users)}


@admin_router.get("/models")
async def list_models(
    status: Optional[ModelStatus] = Query(None, description="Only listings in this status"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    models = await services.admin.get_all_models(status)
    return {"models": [model.model_dump(mode="json") for model in models], "count": len(models)}


@admin_router.get("/sales")
async def list_sales(services: Services = Depends(get_services)) -> Dict[str, Any]:
    sales = await services.admin.get_all_sales()
    return {"sales": [sale.model_dump(mode="json") for sale in sales], "count": len(sales)}


@admin_router.get("/payouts")
async def list_payouts(services: Services = Depends(get_services)) -> Dict[str, Any]:
    payouts = await services.admin.get_all_payouts()
    return {"payouts": [payout.model_dump(mode="json") for payout in payouts], "count": len(payouts)}


@admin_router.get("/disputes")
async def list_disputes(services: Services = Depends(get_services)) -> Dict[str, Any]:
    disputes = await services.admin.get_all_disputes()
    return {"disputes": [dispute.model_dump(mode="json") for dispute in disputes], "count": len(disputes)}


@admin_router.put("/users/{user_id}/status")
async def update_user_status(
    user_id: str,
    update: UserStatusUpdate,
    admin: UserProfile = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    await services.admin.update_user_status(user_id, update.status)
    logger.info(f"Admin {admin.uid} set user {user_id} to {update.status.value}")
    return {"success": True, "user_id": user_id, "status": update.status.value}


@admin_router.put("/models/{model_id}/status")
async def update_model_status(
    model_id: str,
    update: ModelStatusUpdate,
    admin: UserProfile = Depends(require_admin),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    await services.admin.update_model_status(model_id, update.status, update.reason, reviewer_id=admin.uid)
    return {"success": True, "model_id": model_id, "status": update.status.value}


@admin_router.post("/payouts/{payout_id}/process")
async def process_payout(payout_id: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    payout = await services.admin.process_payout(payout_id)
    return payout.model_dump(mode="json")


@admin_router.post("/payouts/{payout_id}/reject")
async def reject_payout(
    payout_id: str,
    rejection: PayoutRejection,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    payout = await services.admin.reject_payout(payout_id, rejection.reason)
    return payout.model_dump(mode="json")


@admin_router.post("/disputes/{dispute_id}/resolve")
async def resolve_dispute(
    dispute_id: str,
    resolution: DisputeResolution,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    dispute = await services.admin.resolve_dispute(dispute_id, resolution.status, resolution.resolution)
    return dispute.model_dump(mode="json")
