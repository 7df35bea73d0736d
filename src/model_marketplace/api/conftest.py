"""Fixtures for the HTTP layer: an app wired to in-memory services."""

from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from ..config import Settings
from ..conftest import WEBHOOK_SECRET
from ..security.firebase_auth import FirebaseAuthError
from .dependencies import build_services
from .main import create_app


class FakeAuthService:
    """Firebase auth stand-in; a token is "token-<uid>"."""

    def __init__(self):
        self.accounts: Dict[str, Dict[str, str]] = {}
        self.verified: Dict[str, bool] = {}
        self.claims: Dict[str, Dict[str, Any]] = {}
        self.deleted = []
        self.emails = []

    def is_initialized(self) -> bool:
        return True

    async def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        if not token.startswith("token-"):
            return None
        uid = token[len("token-"):]
        return {
            "uid": uid,
            "email": f"{uid}@example.com",
            "email_verified": self.verified.get(uid, False),
            "name": None,
            "role": None,
        }

    async def create_user(self, email: str, password: str, display_name: Optional[str] = None) -> str:
        if email in self.accounts:
            raise ValueError("An account with this email already exists")
        uid = f"uid{len(self.accounts) + 1}"
        self.accounts[email] = {"uid": uid, "password": password}
        return uid

    def add_account(self, email: str, uid: str, password: str = "Secret123!") -> None:
        self.accounts[email] = {"uid": uid, "password": password}

    async def delete_user(self, uid: str) -> None:
        self.deleted.append(uid)

    async def set_custom_user_claims(self, uid: str, custom_claims: Dict[str, Any]) -> None:
        self.claims[uid] = custom_claims

    async def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise FirebaseAuthError("INVALID_LOGIN_CREDENTIALS")
        uid = account["uid"]
        return {"uid": uid, "id_token": f"token-{uid}", "refresh_token": f"refresh-{uid}", "expires_in": 3600}

    async def send_password_reset_email(self, email: str) -> None:
        if email not in self.accounts:
            raise FirebaseAuthError("EMAIL_NOT_FOUND")
        self.emails.append(("PASSWORD_RESET", email))

    async def send_email_verification(self, id_token: str) -> None:
        self.emails.append(("VERIFY_EMAIL", id_token))


def auth_headers(uid: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer token-{uid}"}


@pytest.fixture
def settings() -> Settings:
    return Settings(rate_limit_enabled=False, stripe_webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def fake_auth() -> FakeAuthService:
    return FakeAuthService()


@pytest.fixture
def services(settings, fake_auth, fake_db, storage, stripe_mock):
    return build_services(settings, auth=fake_auth, db_client=fake_db, storage=storage, stripe_service=stripe_mock)


@pytest.fixture
def client(settings, services):
    app = create_app(settings, services)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
