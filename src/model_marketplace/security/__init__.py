"""Authentication for The Elite Vibe marketplace."""

from .firebase_auth import FirebaseAuthService, FirebaseAuthError

__all__ = ["FirebaseAuthService", "FirebaseAuthError"]
