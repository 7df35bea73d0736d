"""
Model listing endpoints for sellers and the public marketplace.
"""

import logging
from typing import Dict, Any, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel, Field

from ..database.models import AIModel, UserProfile
from ..marketplace.listings import MediaUpload, ModelDetails, ModelUpdate, SORT_OPTIONS
from ..marketplace.validation import (
    MB,
    NICHES,
    UPLOAD_REQUIREMENTS,
    UploadedFileInfo,
    format_file_size,
    validate_model_upload,
)
from .dependencies import Services, get_services, get_active_user, require_seller

logger = logging.getLogger(__name__)

models_router = APIRouter(prefix="/models", tags=["models"])
marketplace_router = APIRouter(prefix="/marketplace", tags=["marketplace"])


class LikeRequest(BaseModel):
    like: bool = Field(default=True, description="False removes an earlier like")


def public_model(model: AIModel) -> Dict[str, Any]:
    """Listing as shown to buyers; storage paths stay private."""
    data = model.model_dump(mode="json", exclude={"media", "moderation", "rejection_reason"})
    data["media_counts"] = {slot: len(getattr(model.media, slot)) for slot in UPLOAD_REQUIREMENTS}
    return data


UPLOAD_CHUNK_SIZE = MB


def _declared_info(upload: UploadFile) -> UploadedFileInfo:
    return UploadedFileInfo(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        size=upload.size or 0,
    )


async def _read_limited(upload: UploadFile, max_size: int) -> bytes:
    """Read an upload in chunks, stopping as soon as it passes max_size."""
    chunks = []
    received = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        received += len(chunk)
        if received > max_size:
            raise ValueError(f"{upload.filename}: exceeds the {format_file_size(max_size)} limit")
        chunks.append(chunk)
    return b"".join(chunks)


async def _read_uploads(files_by_slot: Dict[str, List[UploadFile]]) -> List[MediaUpload]:
    """
    Load a media set after checking what the client declared.

    Counts, content types and the sizes Starlette recorded while spooling the
    request are validated before any file is read into memory.
    """
    errors = validate_model_upload(
        {slot: [_declared_info(upload) for upload in files] for slot, files in files_by_slot.items()}
    )
    if errors:
        raise ValueError("; ".join(errors))

    uploads = []
    for slot, files in files_by_slot.items():
        max_size = UPLOAD_REQUIREMENTS[slot][2]
        for upload in files:
            info = _declared_info(upload)
            uploads.append(MediaUpload(
                slot=slot,
                filename=info.filename,
                content_type=info.content_type,
                data=await _read_limited(upload, max_size),
            ))
    return uploads


@models_router.post("", status_code=status.HTTP_201_CREATED)
async def create_model(
    details: ModelDetails,
    user: UserProfile = Depends(require_seller),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Create a listing.

    The listing starts in pending status and needs admin approval before it
    shows up in the marketplace.
    """
    model = await services.listings.create_model(user, details)
    return model.model_dump(mode="json")


@models_router.get("/mine")
async def get_my_models(
    user: UserProfile = Depends(require_seller),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    models = await services.listings.get_user_models(user.uid)
    return {"models": [model.model_dump(mode="json") for model in models], "count": len(models)}


@models_router.get("/eligibility")
async def get_listing_eligibility(
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    eligibility = await services.subscriptions.can_user_list_models(user)
    return eligibility.model_dump()


@models_router.get("/{model_id}")
async def get_model(
    model_id: str,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Full listing record for its owner or an admin."""
    model = await services.listings.require_model(model_id)
    if model.owner != user.uid and not user.is_admin:
        raise HTTPException(status_code=403, detail="You do not have permission to view this model")
    return model.model_dump(mode="json")


@models_router.put("/{model_id}")
async def update_model(
    model_id: str,
    changes: ModelUpdate,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    model = await services.listings.update_model(model_id, user, changes)
    return model.model_dump(mode="json")


@models_router.delete("/{model_id}")
async def delete_model(
    model_id: str,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    await services.listings.delete_model(model_id, user)
    return {"message": "Model deleted", "success": True}


@models_router.post("/{model_id}/media")
async def upload_model_media(
    model_id: str,
    sfw_images: Optional[List[UploadFile]] = File(None),
    nsfw_images: Optional[List[UploadFile]] = File(None),
    sfw_videos: Optional[List[UploadFile]] = File(None),
    nsfw_videos: Optional[List[UploadFile]] = File(None),
    user: UserProfile = Depends(require_seller),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Upload the full media set of a listing.

    Every slot must be filled: 4 SFW images, 4 NSFW images, 1 SFW video and
    1 NSFW video. The new set replaces the previous one.
    """
    uploads = await _read_uploads({
        "sfw_images": sfw_images or [],
        "nsfw_images": nsfw_images or [],
        "sfw_videos": sfw_videos or [],
        "nsfw_videos": nsfw_videos or [],
    })
    model = await services.listings.attach_media(model_id, user, uploads)
    return model.model_dump(mode="json")


@models_router.post("/{model_id}/like")
async def like_model(
    model_id: str,
    like_data: LikeRequest,
    user: UserProfile = Depends(get_active_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    likes = await services.listings.update_model_likes(model_id, user.uid, like_data.like)
    return {"model_id": model_id, "liked": like_data.like, "likes": likes}


@marketplace_router.get("")
async def browse_marketplace(
    search: Optional[str] = Query(None, max_length=100, description="Text to match against name, description and niche"),
    niche: str = Query("all", description="Category filter"),
    sort: str = Query("newest", description=f"One of: {', '.join(SORT_OPTIONS)}"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    models = await services.listings.search_models(search, niche, sort)
    return {"models": [public_model(model) for model in models], "count": len(models)}


@marketplace_router.get("/niches")
async def get_niches() -> Dict[str, Any]:
    return {"niches": NICHES}


@marketplace_router.get("/{model_id}")
async def get_marketplace_model(
    model_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Public detail page of an active listing; counts a view."""
    model = await services.listings.get_model(model_id)
    if model is None or not model.is_active():
        raise HTTPException(status_code=404, detail="Model not found")

    await services.listings.track_model_view(model.id)

    data = public_model(model)
    storage = services.listings.storage
    if storage is not None:
        data["previews"] = {
            "images": [await storage.signed_url(path) for path in model.media.sfw_images],
            "videos": [await storage.signed_url(path) for path in model.media.sfw_videos],
        }
    return data
