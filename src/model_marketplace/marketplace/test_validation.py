"""Tests for account and listing validation helpers."""

import pytest

from . import validation
from .validation import UploadedFileInfo


def _files(slot_counts, content_type=None, size=1024):
    files = {}
    for slot, count in slot_counts.items():
        kind = content_type or ("image/png" if slot.endswith("images") else "video/mp4")
        files[slot] = [
            UploadedFileInfo(filename=f"{slot}_{i}", content_type=kind, size=size) for i in range(count)
        ]
    return files


COMPLETE_SET = {"sfw_images": 4, "nsfw_images": 4, "sfw_videos": 1, "nsfw_videos": 1}


@pytest.mark.parametrize("email,valid", [
    ("creator@example.com", True),
    ("first.last@sub.example.co", True),
    ("no-at-sign.example.com", False),
    ("spaces in@example.com", False),
    ("missing@tld", False),
    ("", False),
])
def test_validate_email(email, valid):
    assert validation.validate_email(email) is valid


def test_strong_password_has_no_errors():
    assert validation.validate_password("Sup3r$ecret") == []


def test_weak_password_reports_every_rule():
    errors = validation.validate_password("abc")
    assert "Password must be at least 8 characters long" in errors
    assert "Password must contain at least one uppercase letter" in errors
    assert "Password must contain at least one number" in errors
    assert "Password must contain at least one special character" in errors
    assert "Password must contain at least one lowercase letter" not in errors


def test_validate_username():
    assert validation.validate_username("vibe_creator42") == []
    assert validation.validate_username("ab") == ["Username must be at least 3 characters long"]
    assert validation.validate_username("x" * 21) == ["Username must be no more than 20 characters long"]
    assert validation.validate_username("bad name!") == [
        "Username can only contain letters, numbers, and underscores"
    ]


def test_generate_unique_username_skips_taken_names():
    assert validation.generate_unique_username("Jane Doe", []) == "janedoe"
    assert validation.generate_unique_username("Jane Doe", ["JaneDoe", "janedoe1"]) == "janedoe2"
    assert validation.generate_unique_username("!!", []) == "user"
    assert validation.generate_unique_username("Al", []) == "al0"


@pytest.mark.parametrize("price,errors", [
    (49.99, ["Minimum price is $50"]),
    (50, []),
    (10000, []),
    (10000.01, ["Maximum price is $10,000"]),
])
def test_validate_model_price(price, errors):
    assert validation.validate_model_price(price) == errors


def test_validate_model_details_collects_all_errors():
    errors = validation.validate_model_details(" ", "gardening", "", 10)
    assert errors == [
        "Model name is required",
        f"Niche must be one of: {', '.join(validation.NICHES)}",
        "Description is required",
        "Minimum price is $50",
    ]


def test_complete_upload_set_is_valid():
    assert validation.validate_model_upload(_files(COMPLETE_SET)) == []


def test_upload_counts_are_exact():
    counts = dict(COMPLETE_SET, sfw_images=3, nsfw_videos=2)
    errors = validation.validate_model_upload(_files(counts))
    assert "Exactly 4 SFW images required, got 3" in errors
    assert "Exactly 1 NSFW video required, got 2" in errors


def test_upload_rejects_wrong_types_and_oversized_files():
    files = _files(COMPLETE_SET)
    files["sfw_images"][0] = UploadedFileInfo(filename="clip.mp4", content_type="video/mp4", size=10)
    files["sfw_videos"][0] = UploadedFileInfo(
        filename="long.mp4", content_type="video/mp4", size=validation.MAX_VIDEO_SIZE + 1
    )

    errors = validation.validate_model_upload(files)

    assert "clip.mp4: unsupported SFW image type video/mp4" in errors
    assert "long.mp4: exceeds the 100 MB limit for a SFW video" in errors


def test_upload_rejects_unknown_slots():
    files = _files(dict(COMPLETE_SET, thumbnails=1))
    assert validation.validate_model_upload(files) == ["Unknown upload fields: thumbnails"]


def test_video_duration_breakdown():
    breakdown = validation.calculate_video_duration_breakdown([5, 15, 30, 44.9, 45, 59, 60, 300])
    assert breakdown == {"over60": 2, "45-59": 2, "30-44": 2, "15-29": 1, "under15": 1}


def test_formatting_helpers():
    assert validation.format_currency(1234.5) == "$1,234.50"
    assert validation.format_currency(-20) == "-$20.00"
    assert validation.format_currency(20, currency=None) == "20.00"
    assert validation.format_file_size(0) == "0 Bytes"
    assert validation.format_file_size(1536) == "1.5 KB"
    assert validation.format_file_size(10 * validation.MB) == "10 MB"
    assert validation.format_video_duration(125.7) == "2:05"
