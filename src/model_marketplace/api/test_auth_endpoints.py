"""Tests for the authentication endpoints."""

from ..database.models import ModelStatus, PayoutRequest, UserRole, UserStatus, to_document
from ..database.repository import Collections
from .conftest import auth_headers

SIGNUP = {
    "email": "Neo@Example.com",
    "password": "Secret123!",
    "display_name": "Neo",
    "role": "seller",
    "age_verified": True,
}


def test_signup_creates_account_profile_and_claims(client, fake_auth, fake_db):
    response = client.post("/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    body = response.json()
    assert body["access_token"] == "token-uid1"
    assert body["refresh_token"] == "refresh-uid1"
    assert body["user"]["username"] == "neo"
    assert body["user"]["email"] == "neo@example.com"
    assert body["user"]["role"] == "seller"
    assert body["user"]["subscription_status"]["tier_name"] == "Free"
    assert "username_lower" not in body["user"]

    assert fake_db.documents(Collections.USERS)["uid1"]["profile"]["age_verified"] is True
    assert fake_auth.claims["uid1"] == {"role": "seller"}
    assert ("VERIFY_EMAIL", "token-uid1") in fake_auth.emails


def test_signup_validation(client):
    weak = client.post("/auth/signup", json={**SIGNUP, "password": "password"})
    assert weak.status_code == 422

    minor = client.post("/auth/signup", json={**SIGNUP, "age_verified": False})
    assert minor.status_code == 422
    assert minor.json()["error"]["type"] == "validation_error"

    admin = client.post("/auth/signup", json={**SIGNUP, "role": "admin"})
    assert admin.status_code == 422


def test_signup_rejects_taken_username_and_email(client, seed_user):
    seed_user("existing", username="neo_the_one", username_lower="neo_the_one", email="neo@example.com")

    taken_name = client.post("/auth/signup", json={**SIGNUP, "email": "other@example.com", "username": "Neo_The_One"})
    assert taken_name.status_code == 400
    assert taken_name.json()["error"]["message"] == "Username is already taken"

    taken_email = client.post("/auth/signup", json=SIGNUP)
    assert taken_email.status_code == 400
    assert "already exists" in taken_email.json()["error"]["message"]


def test_signup_suggests_a_free_username(client, seed_user):
    seed_user("existing", username="neo")

    response = client.post("/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    assert response.json()["user"]["username"] == "neo1"


def test_signin(client, fake_auth, seed_user):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    fake_auth.add_account("seller1@example.com", "seller1")

    response = client.post("/auth/signin", json={"email": "Seller1@example.com", "password": "Secret123!"})

    assert response.status_code == 200
    assert response.json()["access_token"] == "token-seller1"
    assert response.json()["user"]["subscription_status"]["plan_id"] == "seller_pro"

    wrong = client.post("/auth/signin", json={"email": "seller1@example.com", "password": "nope"})
    assert wrong.status_code == 401
    assert wrong.json()["error"]["message"] == "Invalid email or password"


def test_signin_blocks_suspended_and_profileless_accounts(client, fake_auth, seed_user):
    seed_user("bad", status=UserStatus.SUSPENDED)
    fake_auth.add_account("bad@example.com", "bad")
    fake_auth.add_account("ghost@example.com", "ghost")

    assert client.post("/auth/signin", json={"email": "bad@example.com", "password": "Secret123!"}).status_code == 403
    assert client.post("/auth/signin", json={"email": "ghost@example.com", "password": "Secret123!"}).status_code == 404


def test_password_reset_does_not_reveal_accounts(client, fake_auth):
    fake_auth.add_account("known@example.com", "known")

    known = client.post("/auth/password-reset", json={"email": "known@example.com"})
    unknown = client.post("/auth/password-reset", json={"email": "unknown@example.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert fake_auth.emails == [("PASSWORD_RESET", "known@example.com")]


def test_resend_verification(client, fake_auth, seed_user):
    response = client.post("/auth/resend-verification", headers=auth_headers("buyer1"))
    assert response.json()["message"] == "Verification email sent"
    assert fake_auth.emails == [("VERIFY_EMAIL", "token-buyer1")]

    fake_auth.verified["buyer1"] = True
    response = client.post("/auth/resend-verification", headers=auth_headers("buyer1"))
    assert response.json()["message"] == "Email is already verified"


def test_profile_requires_a_valid_token(client, seed_user):
    seed_user("buyer1")

    assert client.get("/auth/profile").status_code in (401, 403)
    assert client.get("/auth/profile", headers={"Authorization": "Bearer garbage"}).status_code == 401
    assert client.get("/auth/profile", headers=auth_headers("nobody")).status_code == 404


def test_get_profile_syncs_email_verification(client, fake_auth, seed_user, fake_db):
    seed_user("buyer1")
    fake_auth.verified["buyer1"] = True

    response = client.get("/auth/profile", headers=auth_headers("buyer1"))

    assert response.status_code == 200
    assert response.json()["email_verified"] is True
    assert fake_db.documents(Collections.USERS)["buyer1"]["email_verified"] is True


def test_update_profile(client, seed_user):
    seed_user("buyer1")
    seed_user("buyer2", username="taken_name", username_lower="taken_name")

    response = client.put("/auth/profile", headers=auth_headers("buyer1"),
                          json={"display_name": "Trinity", "bio": "Hacker", "username": "trinity"})
    assert response.status_code == 200
    assert response.json()["display_name"] == "Trinity"
    assert response.json()["profile"]["bio"] == "Hacker"
    assert response.json()["username"] == "trinity"

    clash = client.put("/auth/profile", headers=auth_headers("buyer1"), json={"username": "Taken_Name"})
    assert clash.status_code == 400


def test_delete_account(client, fake_auth, seed_user, fake_db):
    seed_user("buyer1")

    response = client.delete("/auth/account", headers=auth_headers("buyer1"))

    assert response.status_code == 200
    assert "buyer1" not in fake_db.documents(Collections.USERS)
    assert fake_auth.deleted == ["buyer1"]


def test_delete_account_delists_listings(client, fake_auth, seed_user, seed_model, fake_db):
    seed_user("seller1", role=UserRole.SELLER, plan_id="seller_pro")
    seed_model(model_id="model_1700000000001_aaaaaaaa", owner="seller1")
    seed_model(model_id="model_1700000000002_bbbbbbbb", owner="seller1", status=ModelStatus.PENDING)
    seed_model(model_id="model_1700000000003_cccccccc", owner="seller2")

    response = client.delete("/auth/account", headers=auth_headers("seller1"))

    assert response.status_code == 200
    models = fake_db.documents(Collections.MODELS)
    assert models["model_1700000000001_aaaaaaaa"]["status"] == "rejected"
    assert models["model_1700000000001_aaaaaaaa"]["rejection_reason"] == "Seller account closed"
    assert models["model_1700000000002_bbbbbbbb"]["status"] == "rejected"
    assert models["model_1700000000003_cccccccc"]["status"] == "approved"
    assert [model["id"] for model in client.get("/marketplace").json()["models"]] == ["model_1700000000003_cccccccc"]


def test_delete_account_with_pending_payout(client, seed_user, fake_db):
    seed_user("seller1", role=UserRole.SELLER)
    payout = PayoutRequest(id="payout_1", seller_id="seller1", amount=60.0)
    fake_db.documents(Collections.PAYOUTS)[payout.id] = to_document(payout)

    response = client.delete("/auth/account", headers=auth_headers("seller1"))

    assert response.status_code == 400
    assert "seller1" in fake_db.documents(Collections.USERS)


def test_verify_token(client):
    response = client.get("/auth/verify-token", headers=auth_headers("anyone"))
    assert response.json() == {"valid": True, "uid": "anyone", "email": "anyone@example.com"}
