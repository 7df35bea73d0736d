"""Tests for the seller and buyer dashboards."""

from datetime import timedelta

import pytest

from ..database.models import (
    ModelMedia,
    PurchaseTransaction,
    Subscription,
    SubscriptionType,
    TransactionStatus,
    UserRole,
    to_document,
    utcnow,
)
from ..database.repository import Collections
from .conftest import auth_headers

MODEL_ID = "model_1700000000000_abcd1234"


def _purchase(fake_db, purchase_id="purchase_1", buyer_id="buyer1", status=TransactionStatus.COMPLETED):
    purchase = PurchaseTransaction(
        id=purchase_id, model_id=MODEL_ID, model_name="Portrait Diffusion",
        buyer_id=buyer_id, seller_id="seller1", price=100.0, seller_revenue=85.0,
        platform_commission=15.0, commission_rate=15.0, status=status,
    )
    fake_db.documents(Collections.TRANSACTIONS)[purchase_id] = to_document(purchase)
    return purchase


@pytest.fixture
def sold_model(seed_user, seed_model, fake_db):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_user("buyer1")
    seed_model(model_id=MODEL_ID, owner="seller1", media=ModelMedia(
        sfw_images=["models/m/sfw/images/00_a"], nsfw_videos=["models/m/nsfw/videos/00_b"],
    ))
    return _purchase(fake_db)


def test_seller_dashboard(client, sold_model):
    response = client.get("/dashboard/seller", headers=auth_headers("seller1"))

    assert response.status_code == 200
    body = response.json()
    assert body["earnings"]["total_revenue"] == 85.0
    assert body["earnings"]["available_balance"] == 85.0
    assert body["earnings"]["commission_rate"] == 15.0
    assert [model["id"] for model in body["models"]] == [MODEL_ID]
    assert body["eligibility"]["can_list"] is True
    assert body["subscription"]["plan_id"] == "seller_pro"


def test_seller_dashboard_requires_seller(client, sold_model):
    assert client.get("/dashboard/seller", headers=auth_headers("buyer1")).status_code == 403


def test_payout_requests(client, sold_model, fake_db):
    too_small = client.post("/dashboard/seller/payouts", json={"amount": 20}, headers=auth_headers("seller1"))
    assert too_small.status_code == 400

    too_big = client.post("/dashboard/seller/payouts", json={"amount": 90}, headers=auth_headers("seller1"))
    assert too_big.status_code == 400
    assert too_big.json()["error"]["message"] == "Insufficient balance for payout"

    assert client.post("/dashboard/seller/payouts", json={"amount": -5},
                       headers=auth_headers("seller1")).status_code == 422

    response = client.post("/dashboard/seller/payouts", json={"amount": 60}, headers=auth_headers("seller1"))
    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    assert len(fake_db.documents(Collections.PAYOUTS)) == 1


def test_buyer_dashboard(client, sold_model):
    response = client.get("/dashboard/buyer", headers=auth_headers("buyer1"))

    body = response.json()
    assert [purchase["id"] for purchase in body["purchases"]] == ["purchase_1"]
    assert body["stats"]["total_spent"] == 100.0
    assert body["disputes"] == []
    assert body["subscription"]["active"] is False


def test_download_links(client, sold_model, seed_user, fake_db):
    seed_user("buyer2")
    _purchase(fake_db, "purchase_refunded", status=TransactionStatus.REFUNDED)

    response = client.get("/dashboard/purchases/purchase_1/download", headers=auth_headers("buyer1"))
    assert response.status_code == 200
    files = response.json()["files"]
    assert files["sfw_images"] == ["https://storage.test/models/m/sfw/images/00_a?signature=test"]
    assert files["nsfw_videos"] == ["https://storage.test/models/m/nsfw/videos/00_b?signature=test"]
    assert files["nsfw_images"] == []

    assert client.get("/dashboard/purchases/purchase_1/download",
                      headers=auth_headers("buyer2")).status_code == 403
    assert client.get("/dashboard/purchases/purchase_refunded/download",
                      headers=auth_headers("buyer1")).status_code == 400
    assert client.get("/dashboard/purchases/purchase_missing/download",
                      headers=auth_headers("buyer1")).status_code == 404


def test_open_dispute(client, sold_model, fake_db):
    short = client.post("/dashboard/purchases/purchase_1/dispute", json={"reason": "bad"},
                        headers=auth_headers("buyer1"))
    assert short.status_code == 422

    response = client.post("/dashboard/purchases/purchase_1/dispute",
                           json={"reason": "Outputs do not match the previews"}, headers=auth_headers("buyer1"))
    assert response.status_code == 201
    assert response.json()["status"] == "open"

    duplicate = client.post("/dashboard/purchases/purchase_1/dispute",
                            json={"reason": "Still waiting for an answer"}, headers=auth_headers("buyer1"))
    assert duplicate.status_code == 400


def test_cancel_subscription_at_period_end(client, seed_user, stripe_mock, fake_db):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    subscription = Subscription(
        id="sub_123", user_id="seller1", plan_id="seller_pro", type=SubscriptionType.SELLER,
        amount=49.0, stripe_subscription_id="sub_123", expires_at=utcnow() + timedelta(days=20),
    )
    fake_db.documents(Collections.SUBSCRIPTIONS)["sub_123"] = to_document(subscription)

    response = client.post("/dashboard/subscription/cancel", headers=auth_headers("seller1"))

    assert response.status_code == 200
    assert response.json()["message"].startswith("Your plan stays active until ")
    stripe_mock.cancel_subscription.assert_awaited_once_with("sub_123")
    stored = fake_db.documents(Collections.SUBSCRIPTIONS)["sub_123"]
    assert stored["status"] == "active"
    assert stored["cancel_at_period_end"] is True


def test_cancel_without_subscription(client, seed_user, stripe_mock):
    seed_user("buyer1")

    response = client.post("/dashboard/subscription/cancel", headers=auth_headers("buyer1"))

    assert response.status_code == 404
    stripe_mock.cancel_subscription.assert_not_called()
