"""
Database models for The Elite Vibe marketplace.

This module defines Pydantic models that correspond to Firestore collections
for users, AI model listings, purchases, subscriptions, payouts and disputes.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from pydantic import BaseModel, Field
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """User role enumeration."""
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    BOTH = "both"


class UserStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ModelStatus(str, Enum):
    """Moderation status of an AI model listing."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransactionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"


class SubscriptionType(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


class PayoutStatus(str, Enum):
    """Payout request status enumeration."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DisputeStatus(str, Enum):
    OPEN = "open"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class ContactCategory(str, Enum):
    GENERAL = "general"
    TECHNICAL = "technical"
    BILLING = "billing"
    CREATOR = "creator"
    BUYER = "buyer"
    ABUSE = "abuse"
    PARTNERSHIP = "partnership"


class ContactUrgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


SELLER_ROLES = (UserRole.SELLER, UserRole.BOTH)


class ProfileDetails(BaseModel):
    """Public profile details shown on listings and dashboards."""
    bio: str = Field(default="", max_length=500, description="Short biography")
    avatar: Optional[str] = Field(None, description="Avatar URL")
    age_verified: bool = Field(default=False, description="Whether the user confirmed they are 18+")


class UserStats(BaseModel):
    total_listings: int = 0
    total_sales: int = 0
    total_purchases: int = 0
    total_spent: float = 0.0
    total_revenue: float = 0.0
    rating: float = 0.0


class SubscriptionSnapshot(BaseModel):
    """Copy of the active subscription kept on the user document for gating checks."""
    plan_id: str = Field(..., description="Plan identifier, e.g. seller_pro")
    type: SubscriptionType = Field(..., description="Buyer or seller plan")
    status: SubscriptionStatus = Field(..., description="Subscription status")
    expires_at: datetime = Field(..., description="End of the paid period")
    stripe_subscription_id: Optional[str] = None


class UserProfile(BaseModel):
    """User profile model stored at users/{uid}."""

    uid: str = Field(..., description="Firebase user ID")
    username: str = Field(..., description="Unique public username")
    username_lower: str = Field(default="", description="Lowercased username used for uniqueness lookups")
    display_name: str = Field(..., description="Display name")
    email: str = Field(..., description="User email address")
    email_verified: bool = Field(default=False)
    role: UserRole = Field(default=UserRole.BUYER, description="Marketplace role")
    status: UserStatus = Field(default=UserStatus.ACTIVE, description="Account status")
    profile: ProfileDetails = Field(default_factory=ProfileDetails)
    stats: UserStats = Field(default_factory=UserStats)
    stripe_customer_id: Optional[str] = Field(None, description="Stripe customer ID")
    subscription: Optional[SubscriptionSnapshot] = Field(None, description="Current subscription, if any")
    created_at: datetime = Field(default_factory=utcnow, description="Account creation timestamp")
    updated_at: datetime = Field(default_factory=utcnow, description="Last update timestamp")

    @property
    def is_seller(self) -> bool:
        return self.role in SELLER_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class ModelMedia(BaseModel):
    """Storage paths of the media attached to a listing."""
    sfw_images: List[str] = Field(default_factory=list)
    nsfw_images: List[str] = Field(default_factory=list)
    sfw_videos: List[str] = Field(default_factory=list)
    nsfw_videos: List[str] = Field(default_factory=list)

    def all_paths(self) -> List[str]:
        return self.sfw_images + self.nsfw_images + self.sfw_videos + self.nsfw_videos


class ModelStats(BaseModel):
    views: int = 0
    likes: int = 0
    downloads: int = 0
    rating: float = 0.0


class ModerationInfo(BaseModel):
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    notes: Optional[str] = None


class AIModel(BaseModel):
    """AI model listing stored at aiModels/{id}; the id doubles as the document id."""

    id: str = Field(..., description="Unified model ID")
    name: str = Field(..., description="Model name")
    description: str = Field(..., description="Listing description")
    niche: str = Field(..., description="Marketplace category")
    price: float = Field(..., description="Price in USD")
    owner: str = Field(..., description="Seller UID")
    owner_name: str = Field(..., description="Seller display name")
    framework: Optional[str] = Field(None, description="Training framework")
    model_size: Optional[str] = Field(None, description="Human readable model size")
    status: ModelStatus = Field(default=ModelStatus.PENDING)
    rejection_reason: Optional[str] = None
    moderation: ModerationInfo = Field(default_factory=ModerationInfo)
    media: ModelMedia = Field(default_factory=ModelMedia)
    stats: ModelStats = Field(default_factory=ModelStats)
    expires_at: Optional[datetime] = Field(None, description="End of the listing period")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Approved and still inside its listing period."""
        if self.status != ModelStatus.APPROVED:
            return False
        return self.expires_at is None or self.expires_at > (now or utcnow())


class PurchaseTransaction(BaseModel):
    """Completed model sale stored at transactions/{id}."""

    id: str = Field(..., description="Purchase ID")
    model_id: str = Field(..., description="Purchased model ID")
    model_name: str = Field(..., description="Model name at time of purchase")
    buyer_id: str = Field(..., description="Buyer UID")
    buyer_name: str = Field(default="", description="Buyer display name")
    seller_id: str = Field(..., description="Seller UID")
    seller_name: str = Field(default="", description="Seller display name")
    price: float = Field(..., description="Amount paid in USD")
    seller_revenue: float = Field(..., description="Amount credited to the seller")
    platform_commission: float = Field(..., description="Amount kept by the platform")
    commission_rate: float = Field(..., description="Platform commission in percent")
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)
    purchased_at: datetime = Field(default_factory=utcnow)
    stripe_session_id: Optional[str] = Field(None, description="Stripe Checkout session ID")


class Subscription(BaseModel):
    """Subscription model stored at subscriptions/{id}."""

    id: str = Field(..., description="Subscription record ID")
    user_id: str = Field(..., description="Firebase user ID")
    plan_id: str = Field(..., description="Plan identifier")
    type: SubscriptionType = Field(..., description="Buyer or seller plan")
    amount: float = Field(..., description="Monthly price in USD")
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE)
    stripe_subscription_id: Optional[str] = Field(None, description="Stripe subscription ID")
    stripe_customer_id: Optional[str] = Field(None, description="Stripe customer ID")
    features: Dict[str, Any] = Field(default_factory=dict, description="Plan feature snapshot")
    billing_cycle: str = Field(default="monthly")
    purchased_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(..., description="End of the current paid period")
    next_billing_date: Optional[datetime] = None
    cancel_at_period_end: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def snapshot(self) -> SubscriptionSnapshot:
        return SubscriptionSnapshot(
            plan_id=self.plan_id,
            type=self.type,
            status=self.status,
            expires_at=self.expires_at,
            stripe_subscription_id=self.stripe_subscription_id,
        )


class PayoutRequest(BaseModel):
    """Seller payout request stored at payouts/{id}."""

    id: str = Field(..., description="Payout ID")
    seller_id: str = Field(..., description="Seller UID")
    amount: float = Field(..., description="Requested amount in USD")
    status: PayoutStatus = Field(default=PayoutStatus.PENDING)
    requested_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class Dispute(BaseModel):
    """Buyer dispute against a completed purchase."""

    id: str
    purchase_id: str
    buyer_id: str
    seller_id: str
    reason: str = Field(..., min_length=10, max_length=2000)
    status: DisputeStatus = Field(default=DisputeStatus.OPEN)
    resolution: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ContactMessage(BaseModel):
    """Message submitted through the contact form."""

    id: str
    name: str = Field(..., min_length=1, max_length=100)
    email: str
    subject: str = Field(..., min_length=1, max_length=200)
    category: ContactCategory = Field(default=ContactCategory.GENERAL)
    message: str = Field(..., min_length=1, max_length=5000)
    urgency: ContactUrgency = Field(default=ContactUrgency.NORMAL)
    status: str = Field(default="new")
    submitted_at: datetime = Field(default_factory=utcnow)


def to_document(record: BaseModel) -> Dict[str, Any]:
    """Serialize a record for Firestore (enums as values, datetimes as ISO strings)."""
    return record.model_dump(mode="json")
