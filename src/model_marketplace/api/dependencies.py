"""
Service container and FastAPI dependencies shared by the routers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..analytics.admin import AdminManager
from ..config import Settings
from ..database.models import UserProfile, UserStatus
from ..database.repository import FirestoreRepository
from ..marketplace.assistant import PlatformAssistant
from ..marketplace.listings import ListingService
from ..marketplace.pages import ContactService
from ..marketplace.storage import MediaStorage
from ..marketplace.users import UserService
from ..payments.payment_manager import PaymentManager
from ..payments.plans import PriceCatalog
from ..payments.stripe_service import StripeService
from ..payments.subscription_manager import SubscriptionManager
from ..payments.webhook_handlers import StripeWebhookHandler
from ..security.firebase_auth import FirebaseAuthService

logger = logging.getLogger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)

# Security scheme
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


@dataclass
class Services:
    """Everything the routers need, built once per application."""
    settings: Settings
    repository: FirestoreRepository
    auth: FirebaseAuthService
    users: UserService
    subscriptions: SubscriptionManager
    listings: ListingService
    payments: PaymentManager
    admin: AdminManager
    contact: ContactService
    price_catalog: PriceCatalog
    assistant: PlatformAssistant
    stripe: Optional[StripeService] = None
    webhooks: Optional[StripeWebhookHandler] = None


def build_services(
    settings: Settings,
    auth: Optional[Any] = None,
    db_client: Optional[Any] = None,
    storage: Optional[MediaStorage] = None,
    stripe_service: Optional[StripeService] = None,
) -> Services:
    """
    Wire the service graph.

    Args:
        settings: Application settings
        auth: Firebase auth service (initializes the Firebase app when None)
        db_client: Firestore client (the default app's client when None)
        storage: Media storage (built from the configured bucket when None)
        stripe_service: Stripe wrapper (built from the secret key when None)
    """
    auth = auth or FirebaseAuthService(
        firebase_config=settings.firebase_config,
        web_api_key=settings.firebase_web_api_key,
        storage_bucket=settings.firebase_storage_bucket,
    )
    repository = FirestoreRepository(db_client)
    price_catalog = PriceCatalog(settings.stripe_price_ids)

    if storage is None and settings.firebase_storage_bucket:
        storage = MediaStorage(bucket_name=settings.firebase_storage_bucket)
    if storage is None:
        logger.warning("FIREBASE_STORAGE_BUCKET not set; media uploads are disabled")

    if stripe_service is None and settings.stripe_secret_key:
        stripe_service = StripeService(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            app_url=settings.app_url,
            price_catalog=price_catalog,
        )
    if stripe_service is None:
        logger.warning("STRIPE_SECRET_KEY not set; checkout endpoints are disabled")

    users = UserService(repository)
    subscriptions = SubscriptionManager(repository)
    payments = PaymentManager(repository, stripe_service, subscriptions)
    webhooks = None
    if stripe_service is not None:
        webhooks = StripeWebhookHandler(stripe_service, repository, subscriptions, payments, users)

    return Services(
        settings=settings,
        repository=repository,
        auth=auth,
        users=users,
        subscriptions=subscriptions,
        listings=ListingService(repository, subscriptions, storage),
        payments=payments,
        admin=AdminManager(repository),
        contact=ContactService(repository),
        price_catalog=price_catalog,
        assistant=PlatformAssistant(api_key=settings.gemini_api_key, model=settings.gemini_model),
        stripe=stripe_service,
        webhooks=webhooks,
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services are not initialized")
    return services


def get_stripe_service(services: Services = Depends(get_services)) -> StripeService:
    """Dependency for endpoints that need Stripe."""
    if services.stripe is None:
        raise HTTPException(status_code=503, detail="Payments are not configured")
    return services.stripe


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Verified Firebase token claims of the caller."""
    identity = await services.auth.verify_token(credentials.credentials)
    if not identity:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return identity


async def get_current_user(
    identity: Dict[str, Any] = Depends(get_current_identity),
    services: Services = Depends(get_services),
) -> UserProfile:
    """Profile of the authenticated caller."""
    user = await services.users.get_user(identity["uid"])
    if user is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    services: Services = Depends(get_services),
) -> Optional[UserProfile]:
    """Profile of the caller when a bearer token is sent, None for anonymous requests."""
    if credentials is None:
        return None
    identity = await services.auth.verify_token(credentials.credentials)
    if not identity:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return await services.users.get_user(identity["uid"])


async def get_active_user(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if user.status == UserStatus.SUSPENDED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is suspended")
    return user


async def require_seller(user: UserProfile = Depends(get_active_user)) -> UserProfile:
    if not user.is_seller:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Seller account required")
    return user


async def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
