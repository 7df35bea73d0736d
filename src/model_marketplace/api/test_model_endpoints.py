"""Tests for seller listing endpoints and the public marketplace."""

import io
from datetime import timedelta

import pytest
from starlette.datastructures import UploadFile as StarletteUploadFile

from ..database.models import ModelMedia, ModelStatus, UserRole
from ..database.repository import Collections
from ..marketplace.validation import IMAGE_TYPES, MB, UPLOAD_REQUIREMENTS
from .conftest import auth_headers
from .model_endpoints import _read_limited

MODEL_ID = "model_1700000000000_abcd1234"

LISTING = {
    "name": "Portrait Diffusion",
    "description": "Studio portraits with soft lighting",
    "niche": "art",
    "price": 120,
}


def _media_files():
    files = []
    for slot, count, content_type in (
        ("sfw_images", 4, "image/png"),
        ("nsfw_images", 4, "image/png"),
        ("sfw_videos", 1, "video/mp4"),
        ("nsfw_videos", 1, "video/mp4"),
    ):
        for index in range(count):
            files.append((slot, (f"{slot}_{index}", b"data", content_type)))
    return files


def test_seller_creates_listing(client, seed_user, fake_db):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")

    response = client.post("/models", json=LISTING, headers=auth_headers("seller1"))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["owner"] == "seller1"
    assert body["id"] in fake_db.documents(Collections.MODELS)


def test_listing_creation_is_gated(client, seed_user):
    seed_user("buyer1", plan_id="buyer_basic")
    seed_user("seller1", role=UserRole.SELLER)

    buyer = client.post("/models", json=LISTING, headers=auth_headers("buyer1"))
    assert buyer.status_code == 403
    assert buyer.json()["error"]["message"] == "Seller account required"

    unsubscribed = client.post("/models", json=LISTING, headers=auth_headers("seller1"))
    assert unsubscribed.status_code == 403


def test_invalid_listing_details(client, seed_user):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")

    response = client.post("/models", json={**LISTING, "price": 5}, headers=auth_headers("seller1"))

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Minimum price is $50"


def test_eligibility(client, seed_user):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_starter")

    response = client.get("/models/eligibility", headers=auth_headers("seller1"))

    assert response.status_code == 200
    assert response.json()["can_list"] is True
    assert response.json()["max_models"] == 3


def test_owner_views_and_edits_listing(client, seed_user, seed_model):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_user("seller2", role=UserRole.SELLER, plan_id="seller_pro")
    seed_user("admin1", role=UserRole.ADMIN)
    seed_model(model_id=MODEL_ID, owner="seller1")

    assert client.get(f"/models/{MODEL_ID}", headers=auth_headers("seller1")).status_code == 200
    assert client.get(f"/models/{MODEL_ID}", headers=auth_headers("admin1")).status_code == 200
    assert client.get(f"/models/{MODEL_ID}", headers=auth_headers("seller2")).status_code == 403
    assert client.get("/models/model_missing", headers=auth_headers("seller1")).status_code == 404

    mine = client.get("/models/mine", headers=auth_headers("seller1")).json()
    assert mine["count"] == 1

    updated = client.put(f"/models/{MODEL_ID}", json={"price": 150}, headers=auth_headers("seller1"))
    assert updated.status_code == 200
    assert updated.json()["status"] == "pending"

    forbidden = client.put(f"/models/{MODEL_ID}", json={"price": 150}, headers=auth_headers("seller2"))
    assert forbidden.status_code == 403


def test_delete_listing(client, seed_user, seed_model, fake_db):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_model(model_id=MODEL_ID, owner="seller1")

    response = client.delete(f"/models/{MODEL_ID}", headers=auth_headers("seller1"))

    assert response.json() == {"message": "Model deleted", "success": True}
    assert fake_db.documents(Collections.MODELS) == {}


def test_media_upload(client, seed_user, seed_model, storage):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_model(model_id=MODEL_ID, owner="seller1", status=ModelStatus.PENDING)

    response = client.post(f"/models/{MODEL_ID}/media", files=_media_files(), headers=auth_headers("seller1"))

    assert response.status_code == 200
    assert len(response.json()["media"]["sfw_images"]) == 4
    assert len(storage.files) == 10


def test_incomplete_media_upload(client, seed_user, seed_model, storage):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_model(model_id=MODEL_ID, owner="seller1", status=ModelStatus.PENDING)

    response = client.post(f"/models/{MODEL_ID}/media", files=_media_files()[:9], headers=auth_headers("seller1"))

    assert response.status_code == 400
    assert storage.files == {}


def test_oversized_upload_is_rejected_before_reading(client, seed_user, seed_model, storage, monkeypatch):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_model(model_id=MODEL_ID, owner="seller1", status=ModelStatus.PENDING)
    monkeypatch.setitem(UPLOAD_REQUIREMENTS, "sfw_images", (4, IMAGE_TYPES, 1000))
    reads = []
    original_read = StarletteUploadFile.read

    async def counting_read(self, size=-1):
        reads.append(self.filename)
        return await original_read(self, size)

    monkeypatch.setattr(StarletteUploadFile, "read", counting_read)
    files = _media_files()
    files[0] = ("sfw_images", ("huge.png", b"x" * 5000, "image/png"))

    response = client.post(f"/models/{MODEL_ID}/media", files=files, headers=auth_headers("seller1"))

    assert response.status_code == 400
    assert "huge.png: exceeds the 1000 Bytes limit" in response.json()["error"]["message"]
    assert reads == []
    assert storage.files == {}


async def test_upload_of_unknown_size_stops_at_the_limit():
    upload = StarletteUploadFile(file=io.BytesIO(b"x" * (3 * MB)), filename="clip.mp4")

    with pytest.raises(ValueError, match="clip.mp4: exceeds the 2 MB limit"):
        await _read_limited(upload, 2 * MB)


async def test_upload_within_the_limit_is_read_whole():
    upload = StarletteUploadFile(file=io.BytesIO(b"x" * (MB + 10)), filename="clip.mp4")

    assert len(await _read_limited(upload, 2 * MB)) == MB + 10


def test_likes(client, seed_user, seed_model):
    seed_user("buyer1")
    seed_model(model_id=MODEL_ID)

    liked = client.post(f"/models/{MODEL_ID}/like", json={"like": True}, headers=auth_headers("buyer1"))
    again = client.post(f"/models/{MODEL_ID}/like", json={}, headers=auth_headers("buyer1"))
    unliked = client.post(f"/models/{MODEL_ID}/like", json={"like": False}, headers=auth_headers("buyer1"))

    assert liked.json() == {"model_id": MODEL_ID, "liked": True, "likes": 1}
    assert again.json()["likes"] == 1
    assert unliked.json()["likes"] == 0


def test_marketplace_lists_active_models_without_storage_paths(client, seed_model):
    seed_model(model_id="model_1700000000001_aaaaaaaa", name="Anime Style", price=60,
               media=ModelMedia(sfw_images=["models/a/sfw/images/00_a"]))
    seed_model(model_id="model_1700000000002_bbbbbbbb", name="Jazz Voice", niche="music", price=300)
    seed_model(model_id="model_1700000000003_cccccccc", name="Waiting", status=ModelStatus.PENDING)

    response = client.get("/marketplace", params={"sort": "price_desc"})

    body = response.json()
    assert body["count"] == 2
    assert [model["name"] for model in body["models"]] == ["Jazz Voice", "Anime Style"]
    assert "media" not in body["models"][1]
    assert body["models"][1]["media_counts"]["sfw_images"] == 1

    assert client.get("/marketplace", params={"niche": "music"}).json()["count"] == 1
    assert client.get("/marketplace", params={"search": "anime"}).json()["count"] == 1
    assert client.get("/marketplace", params={"sort": "random"}).status_code == 400


def test_marketplace_detail(client, seed_model, fake_db):
    seed_model(model_id=MODEL_ID, media=ModelMedia(sfw_images=["models/x/sfw/images/00_a"]))
    seed_model(model_id="model_1700000000009_expired1", expires_in=timedelta(days=-1))

    response = client.get(f"/marketplace/{MODEL_ID}")

    assert response.status_code == 200
    assert response.json()["previews"]["images"] == [
        "https://storage.test/models/x/sfw/images/00_a?signature=test"
    ]
    assert fake_db.documents(Collections.MODELS)[MODEL_ID]["stats"]["views"] == 1

    assert client.get("/marketplace/model_1700000000009_expired1").status_code == 404
    assert client.get("/marketplace/model_missing").status_code == 404


def test_niches(client):
    niches = client.get("/marketplace/niches").json()["niches"]
    assert "art" in niches and "music" in niches
