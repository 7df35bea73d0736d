"""Database module for The Elite Vibe marketplace."""

from .models import (
    UserProfile,
    UserRole,
    AIModel,
    ModelStatus,
    PurchaseTransaction,
    Subscription,
    PayoutRequest,
    Dispute,
    ContactMessage,
)
from .repository import FirestoreRepository, Collections, RecordNotFound

__all__ = [
    "UserProfile",
    "UserRole",
    "AIModel",
    "ModelStatus",
    "PurchaseTransaction",
    "Subscription",
    "PayoutRequest",
    "Dispute",
    "ContactMessage",
    "FirestoreRepository",
    "Collections",
    "RecordNotFound",
]
