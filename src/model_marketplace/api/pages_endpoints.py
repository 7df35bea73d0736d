"""
Public content endpoints: plans, informational pages, help center, contact form
and the VibeAgent assistant.
"""

import logging
from typing import Dict, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, EmailStr, Field

from ..database.models import ContactCategory, ContactUrgency, UserProfile
from ..marketplace import pages
from .dependencies import Services, get_services, get_optional_user, limiter

logger = logging.getLogger(__name__)

pages_router = APIRouter(tags=["pages"])


class ContactRequest(BaseModel):
    """Contact form submission."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    subject: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=10, max_length=5000)
    category: ContactCategory = ContactCategory.GENERAL
    urgency: ContactUrgency = ContactUrgency.NORMAL


class AssistantRequest(BaseModel):
    """Chat message for the assistant."""
    message: str = Field(..., min_length=1, max_length=1000)


@pages_router.get("/plans")
async def list_plans(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Subscription plans with their Stripe price ids."""
    return {"plans": services.price_catalog.describe()}


@pages_router.get("/pages")
async def list_pages() -> Dict[str, Any]:
    return {"pages": pages.list_pages()}


@pages_router.get("/pages/help/faq")
async def get_faq(
    search: Optional[str] = Query(None, max_length=100),
    category: Optional[str] = Query(None, description="Only this FAQ category; all categories when omitted"),
) -> Dict[str, Any]:
    entries = pages.search_faq(search, category)
    return {"faq": entries, "categories": pages.FAQ_CATEGORIES, "count": len(entries)}


@pages_router.get("/pages/{slug}")
async def get_page(slug: str) -> Dict[str, Any]:
    page = pages.get_page(slug)
    if page is None:
        raise HTTPException(status_code=404, detail="Page not found")
    return page


@pages_router.post("/contact", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def submit_contact(
    request: Request,
    contact_data: ContactRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    contact = await services.contact.submit(
        name=contact_data.name,
        email=contact_data.email,
        subject=contact_data.subject,
        message=contact_data.message,
        category=contact_data.category,
        urgency=contact_data.urgency,
    )
    return {
        "success": True,
        "id": contact.id,
        "message": f"Thanks for reaching out. We usually reply within one business day at {contact.email}.",
    }


@pages_router.post("/assistant")
@limiter.limit("20/minute")
async def ask_assistant(
    request: Request,
    chat: AssistantRequest,
    user: Optional[UserProfile] = Depends(get_optional_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Answer a platform question.

    Signed-in callers get answers and navigation that match their role;
    anonymous callers are pointed at sign up for account pages.
    """
    reply = await services.assistant.answer(chat.message, user)
    return reply.model_dump()
