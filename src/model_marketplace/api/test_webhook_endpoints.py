"""Tests for the Stripe webhook receiver."""

import pytest
from fastapi.testclient import TestClient

from ..conftest import event_payload, make_session, sign_payload
from ..database.models import UserRole
from ..database.repository import Collections
from .dependencies import build_services
from .main import create_app

MODEL_ID = "model_1700000000000_abcd1234"


@pytest.fixture
def webhook_client(settings, fake_auth, fake_db, storage, stripe_service):
    services = build_services(settings, auth=fake_auth, db_client=fake_db, storage=storage,
                              stripe_service=stripe_service)
    with TestClient(create_app(settings, services), raise_server_exceptions=False) as client:
        yield client


def _post(client, payload, signature):
    headers = {"Content-Type": "application/json"}
    if signature:
        headers["stripe-signature"] = signature
    return client.post("/webhook", content=payload, headers=headers)


def _subscription_checkout():
    return {
        "id": "cs_sub_1",
        "object": "checkout.session",
        "mode": "subscription",
        "payment_status": "paid",
        "customer": "cus_123",
        "subscription": "sub_123",
        "metadata": {"userId": "seller1", "planId": "seller_starter"},
    }


def test_signature_is_required(webhook_client):
    payload = event_payload("checkout.session.completed", _subscription_checkout())

    missing = _post(webhook_client, payload, None)
    assert missing.status_code == 400
    assert missing.json()["error"]["message"] == "No signature found"

    forged = _post(webhook_client, payload, sign_payload(payload, secret="whsec_forged"))
    assert forged.status_code == 400
    assert forged.json()["error"]["message"] == "Invalid signature"


def test_processes_subscription_checkout_once(webhook_client, seed_user, fake_db):
    seed_user("seller1", role=UserRole.SELLER)
    payload = event_payload("checkout.session.completed", _subscription_checkout())

    first = _post(webhook_client, payload, sign_payload(payload))
    replay = _post(webhook_client, payload, sign_payload(payload))

    assert first.status_code == 200
    assert first.json()["received"] is True
    assert first.json()["status"] == "processed"
    assert replay.status_code == 200
    assert replay.json()["status"] == "duplicate"
    assert fake_db.documents(Collections.USERS)["seller1"]["subscription"]["plan_id"] == "seller_starter"


def test_ignored_events_are_acknowledged(webhook_client):
    payload = event_payload("payment_intent.created", {"id": "pi_1", "object": "payment_intent"})

    response = _post(webhook_client, payload, sign_payload(payload))

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"


def test_processing_failure_asks_stripe_to_retry(webhook_client, stripe_service):
    metadata = {"type": "model_purchase", "modelId": MODEL_ID, "buyerId": "buyer1", "sellerId": "seller1"}
    stripe_service.get_checkout_session.return_value = make_session("cs_model", metadata=metadata)
    payload = event_payload("checkout.session.completed", {
        "id": "cs_model",
        "object": "checkout.session",
        "mode": "payment",
        "payment_status": "paid",
        "metadata": metadata,
    })

    response = _post(webhook_client, payload, sign_payload(payload))

    # The listing does not exist, so the purchase cannot be recorded yet.
    assert response.status_code == 500
    assert response.json()["status"] == "error"


def test_webhook_status(webhook_client):
    body = webhook_client.get("/webhook/status").json()

    assert body["status"] == "ok"
    assert body["webhook_secret_configured"] is True
    assert "checkout.session.completed" in body["supported_events"]
