"""
AI model listings.

Listings are created in ``pending`` status and become visible in the
marketplace once an admin approves them. A listing stays active for the
listing duration of the seller's plan.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field

from ..database.models import (
    AIModel,
    ModelStatus,
    UserProfile,
    UserStatus,
    to_document,
    utcnow,
)
from ..database.repository import FirestoreRepository, Collections, RecordNotFound
from ..payments.subscription_manager import SubscriptionManager
from . import validation
from .id_system import UnifiedIDSystem
from .storage import MediaStorage, media_path

logger = logging.getLogger(__name__)

SORT_OPTIONS = ("newest", "price_asc", "price_desc", "popular")


class ModelDetails(BaseModel):
    """Seller supplied listing details."""
    name: str = Field(..., min_length=1, max_length=100, description="Model name")
    description: str = Field(..., min_length=1, max_length=5000, description="Listing description")
    niche: str = Field(..., description="Marketplace category")
    price: float = Field(..., description="Price in USD")
    framework: Optional[str] = Field(None, max_length=100, description="Training framework")
    model_size: Optional[str] = Field(None, max_length=50, description="Human readable model size")


class ModelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    niche: Optional[str] = None
    price: Optional[float] = None
    framework: Optional[str] = Field(None, max_length=100)
    model_size: Optional[str] = Field(None, max_length=50)


# Changing any of these sends an approved listing back to moderation.
MODERATED_FIELDS = ("name", "description", "niche", "price")


@dataclass
class MediaUpload:
    """One uploaded file with its target slot."""
    slot: str
    filename: str
    content_type: str
    data: bytes

    @property
    def info(self) -> validation.UploadedFileInfo:
        return validation.UploadedFileInfo(
            filename=self.filename, content_type=self.content_type, size=len(self.data)
        )


class ListingService:
    """Create, moderate-ready, browse and track AI model listings."""

    def __init__(
        self,
        repository: FirestoreRepository,
        subscription_manager: SubscriptionManager,
        storage: Optional[MediaStorage] = None,
    ):
        """
        Initialize the listing service.

        Args:
            repository: Firestore repository
            subscription_manager: Plan gating for new listings
            storage: Media bucket wrapper; uploads are refused when missing
        """
        self.repository = repository
        self.subscription_manager = subscription_manager
        self.storage = storage

    async def get_model(self, model_id: str) -> Optional[AIModel]:
        model_id = UnifiedIDSystem.normalize_model_id(model_id)
        data = await self.repository.get(Collections.MODELS, model_id)
        return AIModel.model_validate(data) if data else None

    async def require_model(self, model_id: str) -> AIModel:
        model = await self.get_model(model_id)
        if model is None:
            raise RecordNotFound("Model", model_id)
        return model

    async def create_model(self, owner: UserProfile, details: ModelDetails) -> AIModel:
        """
        Create a pending listing for a seller.

        Raises:
            PermissionError: suspended account, wrong role, no plan, or plan limit reached
            ValueError: invalid listing details
        """
        if owner.status == UserStatus.SUSPENDED:
            raise PermissionError("Account is suspended")

        eligibility = await self.subscription_manager.can_user_list_models(owner)
        if not eligibility.can_list:
            raise PermissionError(eligibility.reason)

        errors = validation.validate_model_details(details.name, details.niche, details.description, details.price)
        if errors:
            raise ValueError("; ".join(errors))

        now = utcnow()
        model = AIModel(
            id=UnifiedIDSystem.generate_model_id(),
            name=details.name.strip(),
            description=details.description.strip(),
            niche=details.niche,
            price=round(details.price, 2),
            owner=owner.uid,
            owner_name=owner.display_name or owner.username,
            framework=details.framework,
            model_size=details.model_size,
            status=ModelStatus.PENDING,
            expires_at=now + self.subscription_manager.get_listing_duration(owner),
            created_at=now,
            updated_at=now,
        )

        await self.repository.set(Collections.MODELS, model.id, to_document(model))
        await self.repository.increment(Collections.USERS, owner.uid, {"stats.total_listings": 1})

        logger.info(f"Created model {model.id} for seller {owner.uid}")
        return model

    def _check_owner(self, model: AIModel, user: UserProfile, allow_admin: bool = False) -> None:
        if model.owner == user.uid or (allow_admin and user.is_admin):
            return
        raise PermissionError("You do not have permission to modify this model")

    async def attach_media(self, model_id: str, owner: UserProfile, uploads: List[MediaUpload]) -> AIModel:
        """
        Replace the media set of a listing.

        Raises:
            ValueError: the upload set is incomplete or has invalid files
        """
        model = await self.require_model(model_id)
        self._check_owner(model, owner)
        if self.storage is None:
            raise RuntimeError("Media storage is not configured")

        grouped: Dict[str, List[MediaUpload]] = defaultdict(list)
        for upload in uploads:
            grouped[upload.slot].append(upload)

        errors = validation.validate_model_upload(
            {slot: [upload.info for upload in files] for slot, files in grouped.items()}
        )
        if errors:
            raise ValueError("; ".join(errors))

        media: Dict[str, List[str]] = {}
        for slot, files in grouped.items():
            media[slot] = [
                await self.storage.upload(
                    media_path(model.id, slot, index, upload.filename), upload.data, upload.content_type
                )
                for index, upload in enumerate(files)
            ]

        new_paths = {path for paths in media.values() for path in paths}
        for old_path in model.media.all_paths():
            if old_path not in new_paths:
                await self.storage.delete(old_path)

        updates: Dict[str, Any] = {"media": media, "updated_at": utcnow().isoformat()}
        if model.status == ModelStatus.APPROVED:
            updates["status"] = ModelStatus.PENDING.value
        await self.repository.update(Collections.MODELS, model.id, updates)

        logger.info(f"Attached {len(uploads)} media files to model {model.id}")
        return await self.require_model(model.id)

    async def update_model(self, model_id: str, user: UserProfile, changes: ModelUpdate) -> AIModel:
        model = await self.require_model(model_id)
        self._check_owner(model, user)

        updates = changes.model_dump(exclude_none=True)
        if not updates:
            return model

        merged = model.model_copy(update=updates)
        errors = validation.validate_model_details(merged.name, merged.niche, merged.description, merged.price)
        if errors:
            raise ValueError("; ".join(errors))

        if "price" in updates:
            updates["price"] = round(updates["price"], 2)
        if model.status == ModelStatus.APPROVED and any(
            field in updates and updates[field] != getattr(model, field) for field in MODERATED_FIELDS
        ):
            updates["status"] = ModelStatus.PENDING.value
            logger.info(f"Model {model.id} changed after approval; back to moderation")
        updates["updated_at"] = utcnow().isoformat()

        await self.repository.update(Collections.MODELS, model.id, updates)
        return await self.require_model(model.id)

    async def delete_model(self, model_id: str, user: UserProfile) -> None:
        """Delete a listing and its media; owners and admins only."""
        model = await self.require_model(model_id)
        self._check_owner(model, user, allow_admin=True)

        if self.storage is not None:
            for path in model.media.all_paths():
                await self.storage.delete(path)

        await self.repository.delete(Collections.MODELS, model.id)
        owner = await self.repository.get(Collections.USERS, model.owner)
        if owner is not None and owner.get("stats", {}).get("total_listings", 0) > 0:
            await self.repository.increment(Collections.USERS, model.owner, {"stats.total_listings": -1})

        logger.info(f"Deleted model {model.id} (by {user.uid})")

    async def delist_user_models(self, uid: str, reason: str) -> int:
        """
        Take every listing of a user off the marketplace.

        Listings are rejected rather than deleted so buyers keep access to
        the media of models they already bought.
        """
        delisted = 0
        for model in await self.get_user_models(uid):
            if model.status == ModelStatus.REJECTED:
                continue
            await self.repository.update(Collections.MODELS, model.id, {
                "status": ModelStatus.REJECTED.value,
                "rejection_reason": reason,
                "updated_at": utcnow().isoformat(),
            })
            delisted += 1
        if delisted:
            logger.info(f"Delisted {delisted} model(s) of {uid}: {reason}")
        return delisted

    async def get_user_models(self, uid: str) -> List[AIModel]:
        docs = await self.repository.query(Collections.MODELS, [("owner", "==", uid)])
        models = [AIModel.model_validate(doc) for doc in docs]
        return sorted(models, key=lambda model: model.created_at, reverse=True)

    async def get_approved_models(self) -> List[AIModel]:
        docs = await self.repository.query(Collections.MODELS, [("status", "==", ModelStatus.APPROVED.value)])
        return [AIModel.model_validate(doc) for doc in docs]

    async def get_active_models(self, now: Optional[datetime] = None) -> List[AIModel]:
        now = now or utcnow()
        return [model for model in await self.get_approved_models() if model.is_active(now)]

    async def search_models(
        self,
        term: Optional[str] = None,
        niche: str = "all",
        sort: str = "newest",
    ) -> List[AIModel]:
        """
        Browse active listings.

        Args:
            term: Case-insensitive text matched against name, description and niche
            niche: Category filter; "all" disables it
            sort: newest, price_asc, price_desc or popular
        """
        if sort not in SORT_OPTIONS:
            raise ValueError(f"Sort must be one of: {', '.join(SORT_OPTIONS)}")

        models = await self.get_active_models()

        if niche and niche != "all":
            models = [model for model in models if model.niche == niche]

        if term and term.strip():
            needle = term.strip().lower()
            models = [
                model for model in models
                if needle in model.name.lower()
                or needle in model.description.lower()
                or needle in model.niche.lower()
            ]

        if sort == "price_asc":
            return sorted(models, key=lambda model: model.price)
        if sort == "price_desc":
            return sorted(models, key=lambda model: model.price, reverse=True)
        if sort == "popular":
            return sorted(models, key=lambda model: (model.stats.downloads, model.stats.views), reverse=True)
        return sorted(models, key=lambda model: model.created_at, reverse=True)

    async def track_model_view(self, model_id: str) -> None:
        await self.repository.increment(Collections.MODELS, model_id, {"stats.views": 1})

    async def update_model_likes(self, model_id: str, uid: str, like: bool) -> int:
        """
        Like or unlike a model once per user.

        Returns:
            The model's like count after the change (never below zero)
        """
        model = await self.require_model(model_id)
        like_id = f"{model.id}_{uid}"

        if like:
            created = await self.repository.create(Collections.MODEL_LIKES, like_id, {
                "model_id": model.id,
                "uid": uid,
                "created_at": utcnow().isoformat(),
            })
            if created:
                await self.repository.increment(Collections.MODELS, model.id, {"stats.likes": 1})
        else:
            existing = await self.repository.get(Collections.MODEL_LIKES, like_id)
            if existing is not None:
                await self.repository.delete(Collections.MODEL_LIKES, like_id)
                if model.stats.likes > 0:
                    await self.repository.increment(Collections.MODELS, model.id, {"stats.likes": -1})

        return (await self.require_model(model.id)).stats.likes
