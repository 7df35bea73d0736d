"""
Form and upload validation for accounts and model listings.

Validators return a list of human readable errors; an empty list means the
input is acceptable.
"""

import re
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 8

MIN_MODEL_PRICE = 50.0
MAX_MODEL_PRICE = 10000.0

NICHES = ["art", "photography", "writing", "coding", "music", "video", "3d", "animation", "business", "other"]

MB = 1024 * 1024
MAX_IMAGE_SIZE = 10 * MB
MAX_VIDEO_SIZE = 100 * MB
MAX_TOTAL_UPLOAD_SIZE = 5 * 1024 * MB

IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
VIDEO_TYPES = ("video/mp4", "video/webm", "video/quicktime")

# slot -> (required count, allowed content types, max size per file)
UPLOAD_REQUIREMENTS = {
    "sfw_images": (4, IMAGE_TYPES, MAX_IMAGE_SIZE),
    "nsfw_images": (4, IMAGE_TYPES, MAX_IMAGE_SIZE),
    "sfw_videos": (1, VIDEO_TYPES, MAX_VIDEO_SIZE),
    "nsfw_videos": (1, VIDEO_TYPES, MAX_VIDEO_SIZE),
}

_SLOT_LABELS = {
    "sfw_images": "SFW image",
    "nsfw_images": "NSFW image",
    "sfw_videos": "SFW video",
    "nsfw_videos": "NSFW video",
}


class UploadedFileInfo(BaseModel):
    """Metadata of a file submitted with a listing."""
    filename: str = Field(..., description="Original file name")
    content_type: str = Field(..., description="MIME type reported by the client")
    size: int = Field(..., ge=0, description="Size in bytes")


def validate_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def validate_password(password: str) -> List[str]:
    """Check password strength."""
    errors = []
    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not re.search(r"[^A-Za-z0-9]", password):
        errors.append("Password must contain at least one special character")
    return errors


def validate_username(username: str) -> List[str]:
    errors = []
    if len(username) < USERNAME_MIN_LENGTH:
        errors.append(f"Username must be at least {USERNAME_MIN_LENGTH} characters long")
    if len(username) > USERNAME_MAX_LENGTH:
        errors.append(f"Username must be no more than {USERNAME_MAX_LENGTH} characters long")
    if username and not USERNAME_PATTERN.match(username):
        errors.append("Username can only contain letters, numbers, and underscores")
    return errors


def generate_unique_username(base: str, taken: Iterable[str]) -> str:
    """
    Derive a free username from a display name or email local part.

    Args:
        base: Any text; it is lowercased and stripped to alphanumerics
        taken: Usernames already in use (compared case-insensitively)
    """
    taken_lower = {name.lower() for name in taken}
    candidate = re.sub(r"[^a-z0-9]", "", base.lower())[:USERNAME_MAX_LENGTH - 4] or "user"
    if len(candidate) < USERNAME_MIN_LENGTH:
        candidate = candidate.ljust(USERNAME_MIN_LENGTH, "0")

    username = candidate
    counter = 1
    while username in taken_lower:
        username = f"{candidate}{counter}"
        counter += 1
    return username


def validate_model_price(price: float) -> List[str]:
    if price < MIN_MODEL_PRICE:
        return [f"Minimum price is ${MIN_MODEL_PRICE:.0f}"]
    if price > MAX_MODEL_PRICE:
        return [f"Maximum price is ${MAX_MODEL_PRICE:,.0f}"]
    return []


def validate_model_details(name: str, niche: str, description: str, price: float) -> List[str]:
    errors = []
    if not name or not name.strip():
        errors.append("Model name is required")
    if niche not in NICHES:
        errors.append(f"Niche must be one of: {', '.join(NICHES)}")
    if not description or not description.strip():
        errors.append("Description is required")
    errors.extend(validate_model_price(price))
    return errors


def validate_model_upload(files: Dict[str, List[UploadedFileInfo]]) -> List[str]:
    """
    Validate the complete media set of a listing.

    A listing needs exactly 4 SFW images, 4 NSFW images, 1 SFW video and
    1 NSFW video. Images may be JPEG, PNG or WebP up to 10MB; videos MP4,
    WebM or QuickTime up to 100MB.
    """
    errors = []
    total_size = 0

    for slot, (required, allowed_types, max_size) in UPLOAD_REQUIREMENTS.items():
        label = _SLOT_LABELS[slot]
        slot_files = files.get(slot, [])
        if len(slot_files) != required:
            plural = "s" if required > 1 else ""
            errors.append(f"Exactly {required} {label}{plural} required, got {len(slot_files)}")

        for info in slot_files:
            total_size += info.size
            if info.content_type not in allowed_types:
                errors.append(f"{info.filename}: unsupported {label} type {info.content_type}")
            if info.size > max_size:
                errors.append(f"{info.filename}: exceeds the {format_file_size(max_size)} limit for a {label}")

    unknown = set(files) - set(UPLOAD_REQUIREMENTS)
    if unknown:
        errors.append(f"Unknown upload fields: {', '.join(sorted(unknown))}")

    if total_size > MAX_TOTAL_UPLOAD_SIZE:
        errors.append(f"Total upload size exceeds {format_file_size(MAX_TOTAL_UPLOAD_SIZE)}")

    return errors


def calculate_video_duration_breakdown(durations: Iterable[float]) -> Dict[str, int]:
    """Count videos per duration bucket (seconds)."""
    breakdown = {"over60": 0, "45-59": 0, "30-44": 0, "15-29": 0, "under15": 0}
    for seconds in durations:
        if seconds >= 60:
            breakdown["over60"] += 1
        elif seconds >= 45:
            breakdown["45-59"] += 1
        elif seconds >= 30:
            breakdown["30-44"] += 1
        elif seconds >= 15:
            breakdown["15-29"] += 1
        else:
            breakdown["under15"] += 1
    return breakdown


def format_currency(amount: float, currency: Optional[str] = "USD") -> str:
    sign = "-" if amount < 0 else ""
    symbol = "$" if currency == "USD" else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[index]}"


def format_video_duration(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"
