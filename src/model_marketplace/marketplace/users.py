"""User profile storage."""

import logging
from typing import Optional, List, Dict, Any

from ..database.models import (
    UserProfile,
    UserRole,
    ProfileDetails,
    to_document,
    utcnow,
)
from ..database.repository import FirestoreRepository, Collections, RecordNotFound
from . import validation

logger = logging.getLogger(__name__)


class UserService:
    """Reads and writes marketplace user profiles."""

    def __init__(self, repository: FirestoreRepository):
        self.repository = repository

    async def get_user(self, uid: str) -> Optional[UserProfile]:
        data = await self.repository.get(Collections.USERS, uid)
        return UserProfile.model_validate(data) if data else None

    async def require_user(self, uid: str) -> UserProfile:
        user = await self.get_user(uid)
        if user is None:
            raise RecordNotFound("User", uid)
        return user

    async def list_users(self) -> List[UserProfile]:
        return [UserProfile.model_validate(doc) for doc in await self.repository.list_all(Collections.USERS)]

    async def is_username_taken(self, username: str, exclude_uid: Optional[str] = None) -> bool:
        matches = await self.repository.query(
            Collections.USERS, [("username_lower", "==", username.lower())], limit=2
        )
        return any(doc.get("uid") != exclude_uid for doc in matches)

    async def is_email_taken(self, email: str) -> bool:
        matches = await self.repository.query(Collections.USERS, [("email", "==", email.lower())], limit=1)
        return bool(matches)

    async def suggest_username(self, base: str) -> str:
        existing = await self.repository.list_all(Collections.USERS)
        return validation.generate_unique_username(base, (doc.get("username", "") for doc in existing))

    async def create_profile(
        self,
        uid: str,
        email: str,
        username: str,
        display_name: str,
        role: UserRole = UserRole.BUYER,
        email_verified: bool = False,
        age_verified: bool = False,
    ) -> UserProfile:
        profile = UserProfile(
            uid=uid,
            username=username,
            username_lower=username.lower(),
            display_name=display_name,
            email=email.lower(),
            email_verified=email_verified,
            role=role,
            profile=ProfileDetails(age_verified=age_verified),
        )
        await self.repository.set(Collections.USERS, uid, to_document(profile))
        logger.info(f"Created profile for user {uid} with role {role.value}")
        return profile

    async def update_profile(
        self,
        uid: str,
        display_name: Optional[str] = None,
        username: Optional[str] = None,
        bio: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> UserProfile:
        """
        Update editable profile fields.

        Raises:
            ValueError: if the new username is invalid or already taken
        """
        await self.require_user(uid)
        updates: Dict[str, Any] = {"updated_at": utcnow().isoformat()}

        if username is not None:
            errors = validation.validate_username(username)
            if errors:
                raise ValueError(errors[0])
            if await self.is_username_taken(username, exclude_uid=uid):
                raise ValueError("Username is already taken")
            updates["username"] = username
            updates["username_lower"] = username.lower()
        if display_name is not None:
            updates["display_name"] = display_name
        if bio is not None:
            updates["profile.bio"] = bio
        if avatar is not None:
            updates["profile.avatar"] = avatar

        await self.repository.update(Collections.USERS, uid, updates)
        return await self.require_user(uid)

    async def set_email_verified(self, uid: str, verified: bool) -> None:
        await self.repository.update(Collections.USERS, uid, {"email_verified": verified})

    async def set_stripe_customer_id(self, uid: str, customer_id: str) -> None:
        await self.repository.update(Collections.USERS, uid, {
            "stripe_customer_id": customer_id,
            "updated_at": utcnow().isoformat(),
        })

    async def delete_profile(self, uid: str) -> None:
        await self.repository.delete(Collections.USERS, uid)
