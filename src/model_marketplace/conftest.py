"""
Shared pytest fixtures.

Services run against an in-memory stand-in for the Firestore client that
supports the calls FirestoreRepository makes, so the business rules are
tested end to end without a Firebase project.
"""

import copy
import hashlib
import hmac
import json
import threading
import time
from datetime import timedelta
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists, NotFound

from .database.models import (
    AIModel,
    ModelStatus,
    SubscriptionSnapshot,
    SubscriptionStatus,
    SubscriptionType,
    UserProfile,
    UserRole,
    to_document,
    utcnow,
)
from .database.repository import Collections, FirestoreRepository
from .marketplace.listings import ListingService
from .marketplace.users import UserService
from .payments.payment_manager import PaymentManager
from .payments.plans import PLANS, PlanType, PriceCatalog
from .payments.stripe_service import StripeService
from .payments.subscription_manager import SubscriptionManager

WEBHOOK_SECRET = "whsec_test_secret"

# Services run Firestore calls in worker threads; the fake applies each write under this lock.
_STORE_LOCK = threading.RLock()


def _get_path(data: Dict[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


def _matches(value: Any, op: str, expected: Any) -> bool:
    if op == "==":
        return value == expected
    if op == "!=":
        return value != expected
    if op == "in":
        return value in expected
    if op == "array_contains":
        return isinstance(value, list) and expected in value
    if value is None:
        return False
    if op == "<":
        return value < expected
    if op == "<=":
        return value <= expected
    if op == ">":
        return value > expected
    if op == ">=":
        return value >= expected
    raise ValueError(f"Unsupported operator: {op}")


class FakeSnapshot:
    def __init__(self, doc_id: str, data: Optional[Dict[str, Any]], reference: "FakeDocument"):
        self.id = doc_id
        self.reference = reference
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self._data)


class FakeDocument:
    """Document reference; each call is atomic like a single Firestore write."""

    def __init__(self, store: Dict[str, Dict[str, Any]], doc_id: str):
        self._store = store
        self.id = doc_id

    def exists_now(self) -> bool:
        return self.id in self._store

    def get(self) -> FakeSnapshot:
        with _STORE_LOCK:
            return FakeSnapshot(self.id, copy.deepcopy(self._store.get(self.id)), self)

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        with _STORE_LOCK:
            if merge and self.id in self._store:
                _deep_merge(self._store[self.id], data)
            else:
                self._store[self.id] = copy.deepcopy(data)

    def create(self, data: Dict[str, Any]) -> None:
        with _STORE_LOCK:
            if self.id in self._store:
                raise AlreadyExists(f"Document already exists: {self.id}")
            self._store[self.id] = copy.deepcopy(data)

    def update(self, data: Dict[str, Any]) -> None:
        with _STORE_LOCK:
            if self.id not in self._store:
                raise NotFound(f"No document to update: {self.id}")
            document = self._store[self.id]
            for path, value in data.items():
                *parents, leaf = path.split(".")
                target = document
                for part in parents:
                    if not isinstance(target.get(part), dict):
                        target[part] = {}
                    target = target[part]
                if isinstance(value, firestore.Increment):
                    target[leaf] = (target.get(leaf) or 0) + value.value
                else:
                    target[leaf] = copy.deepcopy(value)

    def delete(self) -> None:
        with _STORE_LOCK:
            self._store.pop(self.id, None)


class FakeQuery:
    def __init__(self, store: Dict[str, Dict[str, Any]], filters=(), limit: Optional[int] = None):
        self._store = store
        self._filters = tuple(filters)
        self._limit = limit

    def where(self, filter) -> "FakeQuery":
        condition = (filter.field_path, filter.op_string, filter.value)
        return FakeQuery(self._store, self._filters + (condition,), self._limit)

    def limit(self, count: int) -> "FakeQuery":
        return FakeQuery(self._store, self._filters, count)

    def stream(self):
        results = []
        with _STORE_LOCK:
            for doc_id, data in list(self._store.items()):
                if all(_matches(_get_path(data, field), op, value) for field, op, value in self._filters):
                    results.append(FakeSnapshot(doc_id, copy.deepcopy(data), FakeDocument(self._store, doc_id)))
        if self._limit is not None:
            results = results[:self._limit]
        return iter(results)


class FakeCollection(FakeQuery):
    def document(self, doc_id: str) -> FakeDocument:
        return FakeDocument(self._store, doc_id)


class FakeBatch:
    """WriteBatch that checks every precondition before applying any write."""

    def __init__(self):
        self._writes: List[tuple] = []

    def create(self, reference: FakeDocument, data: Dict[str, Any]) -> None:
        self._writes.append((reference, "create", data, {}))

    def set(self, reference: FakeDocument, data: Dict[str, Any], merge: bool = False) -> None:
        self._writes.append((reference, "set", data, {"merge": merge}))

    def update(self, reference: FakeDocument, data: Dict[str, Any]) -> None:
        self._writes.append((reference, "update", data, {}))

    def commit(self) -> None:
        with _STORE_LOCK:
            for reference, operation, _, _ in self._writes:
                if operation == "create" and reference.exists_now():
                    raise AlreadyExists(f"Document already exists: {reference.id}")
                if operation == "update" and not reference.exists_now():
                    raise NotFound(f"No document to update: {reference.id}")
            for reference, operation, data, options in self._writes:
                getattr(reference, operation)(data, **options)


class FakeFirestore:
    """In-memory Firestore client."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def collection(self, name: str) -> FakeCollection:
        return FakeCollection(self.collections.setdefault(name, {}))

    def batch(self) -> FakeBatch:
        return FakeBatch()

    def documents(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.collections.setdefault(name, {})


class FakeStorage:
    """Media bucket that keeps uploads in memory."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        self.files[path] = data
        return path

    async def delete(self, path: str) -> None:
        self.files.pop(path, None)

    async def signed_url(self, path: str, expiration: timedelta = timedelta(hours=1)) -> str:
        return f"https://storage.test/{path}?signature=test"


def make_session(
    session_id: str = "cs_test_123",
    payment_status: str = "paid",
    metadata: Optional[Dict[str, str]] = None,
    amount_total: Optional[int] = 10000,
    **extra: Any,
) -> SimpleNamespace:
    """Checkout session with the attributes the services read."""
    values = {
        "id": session_id,
        "url": f"https://checkout.stripe.test/{session_id}",
        "status": "complete" if payment_status == "paid" else "open",
        "payment_status": payment_status,
        "metadata": metadata or {},
        "amount_total": amount_total,
        "customer_details": {"email": "buyer@example.com"},
        "subscription": None,
    }
    values.update(extra)
    return SimpleNamespace(**values)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_payload(event_type: str, data_object: Dict[str, Any], event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }).encode("utf-8")


@pytest.fixture
def fake_db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def repository(fake_db) -> FirestoreRepository:
    return FirestoreRepository(fake_db)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def stripe_service() -> StripeService:
    """Real StripeService; tests patch the SDK calls they exercise."""
    service = StripeService(api_key="sk_test_marketplace", webhook_secret=WEBHOOK_SECRET,
                            app_url="https://app.test")
    service.get_checkout_session = AsyncMock()
    service.create_one_time_checkout_session = AsyncMock()
    return service


@pytest.fixture
def subscription_manager(repository) -> SubscriptionManager:
    return SubscriptionManager(repository)


@pytest.fixture
def user_service(repository) -> UserService:
    return UserService(repository)


@pytest.fixture
def payment_manager(repository, stripe_service, subscription_manager) -> PaymentManager:
    return PaymentManager(repository, stripe_service, subscription_manager)


@pytest.fixture
def listing_service(repository, subscription_manager, storage) -> ListingService:
    return ListingService(repository, subscription_manager, storage)


@pytest.fixture
def seed_user(fake_db):
    """Write a user profile straight into the fake database."""

    def _seed(
        uid: str,
        role: UserRole = UserRole.BUYER,
        plan_id: Optional[str] = None,
        subscription_status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        expires_in: timedelta = timedelta(days=30),
        **fields: Any,
    ) -> UserProfile:
        subscription = None
        if plan_id:
            plan = PLANS[plan_id]
            subscription = SubscriptionSnapshot(
                plan_id=plan_id,
                type=SubscriptionType.BUYER if plan.type == PlanType.BUYER else SubscriptionType.SELLER,
                status=subscription_status,
                expires_at=utcnow() + expires_in,
            )
        user = UserProfile(
            uid=uid,
            username=fields.pop("username", uid),
            username_lower=fields.pop("username_lower", uid.lower()),
            display_name=fields.pop("display_name", uid.title()),
            email=fields.pop("email", f"{uid}@example.com"),
            role=role,
            subscription=subscription,
            **fields,
        )
        fake_db.documents(Collections.USERS)[uid] = to_document(user)
        return user

    return _seed


@pytest.fixture
def seed_model(fake_db):
    """Write a model listing straight into the fake database."""

    def _seed(
        model_id: str = "model_1700000000000_abcd1234",
        owner: str = "seller1",
        status: ModelStatus = ModelStatus.APPROVED,
        price: float = 100.0,
        expires_in: Optional[timedelta] = timedelta(days=30),
        **fields: Any,
    ) -> AIModel:
        model = AIModel(
            id=model_id,
            name=fields.pop("name", "Portrait Diffusion"),
            description=fields.pop("description", "Fine-tuned portrait generator with studio lighting"),
            niche=fields.pop("niche", "art"),
            price=price,
            owner=owner,
            owner_name=fields.pop("owner_name", owner.title()),
            status=status,
            expires_at=utcnow() + expires_in if expires_in is not None else None,
            **fields,
        )
        fake_db.documents(Collections.MODELS)[model_id] = to_document(model)
        return model

    return _seed


@pytest.fixture
def stripe_mock() -> MagicMock:
    """Stand-in for a StripeService used by API tests."""
    service = MagicMock(spec=StripeService)
    service.webhook_secret = WEBHOOK_SECRET
    service.price_catalog = PriceCatalog()
    for name in (
        "create_customer",
        "create_checkout_session",
        "create_one_time_checkout_session",
        "get_checkout_session",
        "create_payment_intent",
        "create_customer_portal_session",
        "cancel_subscription",
    ):
        setattr(service, name, AsyncMock())
    return service


def list_documents(fake_db: FakeFirestore, collection: str) -> List[Dict[str, Any]]:
    return list(fake_db.documents(collection).values())
