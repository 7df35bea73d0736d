"""
Stripe webhook receiver.
"""

import logging
from typing import Dict, Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from .dependencies import Services, get_services

logger = logging.getLogger(__name__)

webhook_router = APIRouter(tags=["webhooks"])


@webhook_router.post("/webhook")
async def stripe_webhook_endpoint(
    request: Request,
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Handle Stripe webhook events.

    Failed processing answers 500 so Stripe retries the delivery; replays of
    events that were already processed are acknowledged with 200.
    """
    if services.webhooks is None:
        raise HTTPException(status_code=503, detail="Payments are not configured")

    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        logger.error("Missing Stripe signature header")
        raise HTTPException(status_code=400, detail="No signature found")

    try:
        result = await services.webhooks.handle_webhook(payload, signature)
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {e}")

    if result["status"] == "error":
        return JSONResponse(status_code=500, content=result)
    return JSONResponse(status_code=200, content={"received": True, **result})


@webhook_router.get("/webhook/status")
async def webhook_status(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Report whether webhook processing is configured."""
    if services.webhooks is None:
        return {"status": "not_configured", "stripe_configured": False}
    return {
        "status": "ok",
        "stripe_configured": True,
        **services.webhooks.get_handler_stats(),
    }
