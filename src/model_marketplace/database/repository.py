"""
Firestore access layer shared by the marketplace services.

All Firestore SDK calls are blocking, so each one runs in a worker thread to
keep the event loop free.
"""

import asyncio
import logging
from typing import Dict, Any, Optional, List, Sequence, Tuple

from firebase_admin import firestore
from google.api_core.exceptions import Conflict
from google.cloud.firestore_v1.base_query import FieldFilter

logger = logging.getLogger(__name__)

Filter = Tuple[str, str, Any]


class RecordNotFound(LookupError):
    """Raised by services when a referenced document does not exist."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class Collections:
    """Firestore collection names."""
    USERS = "users"
    MODELS = "aiModels"
    TRANSACTIONS = "transactions"
    SUBSCRIPTIONS = "subscriptions"
    PAYOUTS = "payouts"
    DISPUTES = "disputes"
    CONTACT_MESSAGES = "contact_messages"
    PAYMENT_EVENTS = "payment_events"
    CHECKOUT_SESSIONS = "checkout_sessions"
    PAYOUT_SEQUENCE = "payout_sequence"
    MODEL_LIKES = "model_likes"


def _increments(amounts: Dict[str, float], extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    data = {field: firestore.Increment(amount) for field, amount in amounts.items()}
    if extra:
        data.update(extra)
    return data


class WriteBatch:
    """
    Writes that are committed together: either all of them apply or none does.

    A ``create`` in the batch acts as a guard. If its document already exists
    the whole commit is rejected.
    """

    def __init__(self, repository: "FirestoreRepository"):
        self._repository = repository
        self._batch = repository.db.batch()

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._batch.create(self._repository._document(collection, doc_id), data)
        return self

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> "WriteBatch":
        self._batch.set(self._repository._document(collection, doc_id), data, merge=merge)
        return self

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._batch.update(self._repository._document(collection, doc_id), data)
        return self

    def increment(self, collection: str, doc_id: str, amounts: Dict[str, float],
                  extra: Optional[Dict[str, Any]] = None) -> "WriteBatch":
        return self.update(collection, doc_id, _increments(amounts, extra))

    async def commit(self) -> bool:
        """
        Apply every write atomically.

        Returns:
            False when a guarded create found an existing document (nothing was written)
        """
        try:
            await asyncio.to_thread(self._batch.commit)
        except Conflict:
            logger.info("Batch rejected: a guarded document already exists")
            return False
        return True


class FirestoreRepository:
    """Thin async wrapper over a Firestore client."""

    def __init__(self, db_client: Optional[Any] = None):
        """
        Initialize the repository.

        Args:
            db_client: Firestore database client (uses the default Firebase app if None)
        """
        self.db = db_client or firestore.client()

    def _document(self, collection: str, doc_id: str):
        return self.db.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        snapshot = await asyncio.to_thread(self._document(collection, doc_id).get)
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        await asyncio.to_thread(self._document(collection, doc_id).set, data, merge=merge)

    async def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> bool:
        """
        Create a document only if it does not exist yet.

        Returns:
            False when the document was already present
        """
        try:
            await asyncio.to_thread(self._document(collection, doc_id).create, data)
        except Conflict:
            logger.info(f"Document {collection}/{doc_id} already exists")
            return False
        return True

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Update fields of an existing document; keys may be dotted field paths."""
        await asyncio.to_thread(self._document(collection, doc_id).update, data)

    async def increment(self, collection: str, doc_id: str, amounts: Dict[str, float],
                        extra: Optional[Dict[str, Any]] = None) -> None:
        """Atomically add the given amounts to numeric fields."""
        await self.update(collection, doc_id, _increments(amounts, extra))

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def delete(self, collection: str, doc_id: str) -> None:
        await asyncio.to_thread(self._document(collection, doc_id).delete)

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run an equality/range query and return the matching documents.

        Args:
            collection: Collection name
            filters: (field_path, operator, value) triples combined with AND
            limit: Maximum number of documents to return
        """
        query = self.db.collection(collection)
        for field_path, op_string, value in filters:
            query = query.where(filter=FieldFilter(field_path, op_string, value))
        if limit is not None:
            query = query.limit(limit)

        def _collect():
            return [doc.to_dict() for doc in query.stream()]

        return await asyncio.to_thread(_collect)

    async def list_all(self, collection: str) -> List[Dict[str, Any]]:
        return await self.query(collection)
