"""
Model purchases, seller earnings and payouts.

A purchase starts as a Stripe Checkout session and becomes a transaction once
Stripe reports the session as paid, either through the success redirect or
the checkout.session.completed webhook, whichever arrives first.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, Optional, List, Tuple

from pydantic import BaseModel, Field

from ..database.models import (
    AIModel,
    Dispute,
    DisputeStatus,
    UserProfile,
    ModelStatus,
    PurchaseTransaction,
    TransactionStatus,
    PayoutRequest,
    PayoutStatus,
    to_document,
    utcnow,
)
from ..database.repository import FirestoreRepository, Collections, RecordNotFound
from ..marketplace import validation
from ..marketplace.id_system import UnifiedIDSystem
from .stripe_service import StripeService, stripe_to_dict
from .subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)

MIN_PAYOUT_AMOUNT = Decimal("50")
CENT = Decimal("0.01")
PAYOUT_ATTEMPTS = 3


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class PaymentVerification(BaseModel):
    """Result of checking a Checkout session with Stripe."""
    is_paid: bool = Field(..., description="Whether the session is a paid model purchase")
    session_id: str
    model_id: Optional[str] = None
    buyer_id: Optional[str] = None
    seller_id: Optional[str] = None
    amount: float = 0.0


class SellerEarnings(BaseModel):
    total_revenue: float = Field(..., description="Sum of the seller's share of completed sales")
    available_balance: float = Field(..., description="Revenue not yet paid out or requested")
    pending_payout: float = Field(..., description="Amount in pending or processing payouts")
    total_payouts: float = Field(..., description="Amount already paid out")
    commission_rate: float = Field(..., description="Current platform commission in percent")
    total_sales: int = 0
    transactions: List[PurchaseTransaction] = Field(default_factory=list)


class PaymentManager:
    """Purchase flow and seller balance bookkeeping."""

    def __init__(
        self,
        repository: FirestoreRepository,
        stripe_service: Optional[StripeService],
        subscription_manager: SubscriptionManager,
    ):
        """
        Initialize the payment manager.

        Args:
            repository: Firestore repository
            stripe_service: Stripe wrapper used for Checkout sessions (None when Stripe is not configured)
            subscription_manager: Source of the seller's commission rate
        """
        self.repository = repository
        self.stripe_service = stripe_service
        self.subscription_manager = subscription_manager

    def _require_stripe(self) -> None:
        if self.stripe_service is None:
            raise RuntimeError("Stripe is not configured")

    @staticmethod
    def validate_model_price(price: float) -> List[str]:
        return validation.validate_model_price(price)

    async def _get_model(self, model_id: str) -> AIModel:
        data = await self.repository.get(Collections.MODELS, model_id)
        if data is None:
            raise RecordNotFound("Model", model_id)
        return AIModel.model_validate(data)

    async def _get_user(self, uid: str) -> Optional[UserProfile]:
        data = await self.repository.get(Collections.USERS, uid)
        return UserProfile.model_validate(data) if data else None

    def calculate_seller_earnings(self, price: float, seller: Optional[UserProfile]) -> Tuple[float, float, Decimal]:
        """
        Split a sale between seller and platform.

        Returns:
            (seller_revenue, platform_commission, commission_rate fraction)
        """
        rate = self.subscription_manager.get_seller_commission_rate(seller)
        amount = _money(price)
        commission = (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
        return float(amount - commission), float(commission), rate

    async def has_user_purchased_model(self, buyer_id: str, model_id: str) -> bool:
        matches = await self.repository.query(
            Collections.TRANSACTIONS,
            [
                ("buyer_id", "==", buyer_id),
                ("model_id", "==", model_id),
                ("status", "==", TransactionStatus.COMPLETED.value),
            ],
            limit=1,
        )
        return bool(matches)

    async def process_model_purchase(self, model_id: str, buyer: UserProfile) -> Any:
        """
        Start the Checkout flow for a model.

        Raises:
            RecordNotFound: unknown model
            ValueError: model not purchasable, own model, or already purchased
        """
        model = await self._get_model(model_id)

        if model.status != ModelStatus.APPROVED:
            raise ValueError("Model is not available for purchase")
        if not model.is_active():
            raise ValueError("Model listing has expired")
        if model.owner == buyer.uid:
            raise ValueError("You cannot purchase your own model")
        if await self.has_user_purchased_model(buyer.uid, model_id):
            raise ValueError("You have already purchased this model")

        self._require_stripe()
        session = await self.stripe_service.create_one_time_checkout_session(
            amount=model.price,
            model_name=model.name,
            model_id=model.id,
            buyer_id=buyer.uid,
            seller_id=model.owner,
            customer_id=buyer.stripe_customer_id,
        )
        logger.info(f"Started purchase of {model_id} by {buyer.uid} (session {session.id})")
        return session

    def _verification_from_session(self, session: Any) -> PaymentVerification:
        metadata = stripe_to_dict(session.metadata)
        is_paid = session.payment_status == "paid" and metadata.get("type") == "model_purchase"

        amount = 0.0
        if session.amount_total is not None:
            amount = session.amount_total / 100
        elif metadata.get("amount"):
            amount = float(metadata["amount"])

        return PaymentVerification(
            is_paid=is_paid,
            session_id=session.id,
            model_id=metadata.get("modelId"),
            buyer_id=metadata.get("buyerId"),
            seller_id=metadata.get("sellerId"),
            amount=amount,
        )

    async def verify_stripe_payment(self, session_id: str) -> PaymentVerification:
        self._require_stripe()
        session = await self.stripe_service.get_checkout_session(session_id)
        return self._verification_from_session(session)

    async def _purchase_for_session(self, session_id: str) -> Optional[PurchaseTransaction]:
        claim = await self.repository.get(Collections.CHECKOUT_SESSIONS, session_id)
        if claim is None:
            return None
        return await self.get_purchase(claim["purchase_id"])

    async def complete_purchase(self, session_id: str, expected_buyer_id: Optional[str] = None) -> PurchaseTransaction:
        """
        Turn a paid Checkout session into a completed transaction.

        Safe to call more than once, and concurrently, for the same session.
        The session claim, the transaction and every stat increment are
        committed in one batch guarded by creating the claim, so exactly one
        caller records the sale and the others return the stored transaction.

        Args:
            session_id: Stripe Checkout session ID
            expected_buyer_id: When given, the session must belong to this buyer
        """
        verification = await self.verify_stripe_payment(session_id)
        if expected_buyer_id is not None and verification.buyer_id != expected_buyer_id:
            raise PermissionError("This checkout session belongs to another user")
        if not verification.is_paid:
            raise ValueError("Payment not completed")
        if not verification.model_id or not verification.buyer_id:
            raise ValueError("Checkout session is missing purchase metadata")

        existing = await self._purchase_for_session(session_id)
        if existing is not None:
            logger.info(f"Checkout session {session_id} already completed as {existing.id}")
            return existing

        model = await self._get_model(verification.model_id)
        seller = await self._get_user(model.owner)
        buyer = await self._get_user(verification.buyer_id)
        seller_revenue, commission, rate = self.calculate_seller_earnings(verification.amount, seller)

        purchase_id = UnifiedIDSystem.generate_purchase_id()
        transaction = PurchaseTransaction(
            id=purchase_id,
            model_id=model.id,
            model_name=model.name,
            buyer_id=verification.buyer_id,
            buyer_name=buyer.display_name if buyer else "",
            seller_id=model.owner,
            seller_name=model.owner_name,
            price=float(_money(verification.amount)),
            seller_revenue=seller_revenue,
            platform_commission=commission,
            commission_rate=float(rate * 100),
            status=TransactionStatus.COMPLETED,
            stripe_session_id=session_id,
        )

        batch = self.repository.batch()
        batch.create(Collections.CHECKOUT_SESSIONS, session_id, {
            "purchase_id": purchase_id,
            "completed_at": utcnow().isoformat(),
        })
        batch.set(Collections.TRANSACTIONS, purchase_id, to_document(transaction))
        batch.increment(Collections.MODELS, model.id, {"stats.downloads": 1})
        if buyer is not None:
            batch.increment(
                Collections.USERS, buyer.uid,
                {"stats.total_purchases": 1, "stats.total_spent": transaction.price},
            )
        if seller is not None:
            batch.increment(
                Collections.USERS, seller.uid,
                {"stats.total_sales": 1, "stats.total_revenue": seller_revenue},
            )

        if not await batch.commit():
            existing = await self._purchase_for_session(session_id)
            logger.info(f"Checkout session {session_id} was completed concurrently as {existing.id}")
            return existing

        logger.info(
            f"Completed purchase {purchase_id}: model {model.id} for ${transaction.price:.2f} "
            f"(seller ${seller_revenue:.2f}, platform ${commission:.2f})"
        )
        return transaction

    async def get_user_purchases(self, buyer_id: str) -> List[PurchaseTransaction]:
        """Completed purchases of a buyer, newest first."""
        docs = await self.repository.query(
            Collections.TRANSACTIONS,
            [("buyer_id", "==", buyer_id), ("status", "==", TransactionStatus.COMPLETED.value)],
        )
        purchases = [PurchaseTransaction.model_validate(doc) for doc in docs]
        return sorted(purchases, key=lambda tx: tx.purchased_at, reverse=True)

    async def get_purchase(self, purchase_id: str) -> PurchaseTransaction:
        data = await self.repository.get(Collections.TRANSACTIONS, purchase_id)
        if data is None:
            raise RecordNotFound("Purchase", purchase_id)
        return PurchaseTransaction.model_validate(data)

    async def get_user_purchase_stats(self, buyer_id: str) -> Dict[str, Any]:
        purchases = await self.get_user_purchases(buyer_id)
        total_spent = sum((_money(tx.price) for tx in purchases), Decimal("0"))
        return {
            "total_purchases": len(purchases),
            "total_spent": float(total_spent),
            "unique_models": len({tx.model_id for tx in purchases}),
            "last_purchase_at": purchases[0].purchased_at.isoformat() if purchases else None,
        }

    async def get_seller_transactions(self, seller_id: str) -> List[PurchaseTransaction]:
        docs = await self.repository.query(
            Collections.TRANSACTIONS,
            [("seller_id", "==", seller_id), ("status", "==", TransactionStatus.COMPLETED.value)],
        )
        transactions = [PurchaseTransaction.model_validate(doc) for doc in docs]
        return sorted(transactions, key=lambda tx: tx.purchased_at, reverse=True)

    async def get_seller_payouts(self, seller_id: str) -> List[PayoutRequest]:
        docs = await self.repository.query(Collections.PAYOUTS, [("seller_id", "==", seller_id)])
        payouts = [PayoutRequest.model_validate(doc) for doc in docs]
        return sorted(payouts, key=lambda payout: payout.requested_at, reverse=True)

    async def get_seller_earnings(self, seller_id: str) -> SellerEarnings:
        transactions = await self.get_seller_transactions(seller_id)
        payouts = await self.get_seller_payouts(seller_id)
        seller = await self._get_user(seller_id)

        total_revenue = sum((_money(tx.seller_revenue) for tx in transactions), Decimal("0"))
        paid_out = sum(
            (_money(p.amount) for p in payouts if p.status == PayoutStatus.COMPLETED), Decimal("0")
        )
        pending = sum(
            (_money(p.amount) for p in payouts if p.status in (PayoutStatus.PENDING, PayoutStatus.PROCESSING)),
            Decimal("0"),
        )
        rate = self.subscription_manager.get_seller_commission_rate(seller)

        return SellerEarnings(
            total_revenue=float(total_revenue),
            available_balance=float(total_revenue - paid_out - pending),
            pending_payout=float(pending),
            total_payouts=float(paid_out),
            commission_rate=float(rate * 100),
            total_sales=len(transactions),
            transactions=transactions,
        )

    async def request_payout(self, seller_id: str, amount: float) -> PayoutRequest:
        """
        Ask for a payout of part of the available balance.

        Each payout request of a seller takes the next number in the seller's
        payout sequence in the same batch that stores it. Two requests checked
        against the same balance compete for the same number and only one is
        stored; the other re-reads the balance.

        Raises:
            ValueError: amount below the minimum or above the available balance
        """
        requested = _money(amount)
        if requested < MIN_PAYOUT_AMOUNT:
            raise ValueError(f"Minimum payout amount is ${MIN_PAYOUT_AMOUNT}")

        for _ in range(PAYOUT_ATTEMPTS):
            # Count before reading the balance: the balance then covers every numbered payout.
            sequence = len(await self.get_seller_payouts(seller_id)) + 1
            earnings = await self.get_seller_earnings(seller_id)
            if requested > _money(earnings.available_balance):
                raise ValueError("Insufficient balance for payout")

            payout = PayoutRequest(
                id=UnifiedIDSystem.generate_id("payout", 6),
                seller_id=seller_id,
                amount=float(requested),
                status=PayoutStatus.PENDING,
            )
            batch = self.repository.batch()
            batch.create(Collections.PAYOUT_SEQUENCE, f"{seller_id}_{sequence}", {
                "payout_id": payout.id,
                "seller_id": seller_id,
                "created_at": utcnow().isoformat(),
            })
            batch.set(Collections.PAYOUTS, payout.id, to_document(payout))
            if await batch.commit():
                logger.info(f"Seller {seller_id} requested payout {payout.id} of ${requested}")
                return payout

            logger.info(f"Payout request {sequence} of seller {seller_id} raced another request; retrying")

        raise ValueError("Another payout request is in progress, please try again")

    async def open_dispute(self, purchase_id: str, buyer_id: str, reason: str) -> Dispute:
        """
        Let a buyer contest a completed purchase.

        Raises:
            PermissionError: the purchase belongs to someone else
            ValueError: a dispute for this purchase is already open
        """
        purchase = await self.get_purchase(purchase_id)
        if purchase.buyer_id != buyer_id:
            raise PermissionError("You can only dispute your own purchases")

        open_disputes = await self.repository.query(
            Collections.DISPUTES,
            [
                ("purchase_id", "==", purchase_id),
                ("status", "in", [DisputeStatus.OPEN.value, DisputeStatus.IN_REVIEW.value]),
            ],
            limit=1,
        )
        if open_disputes:
            raise ValueError("A dispute for this purchase is already open")

        dispute = Dispute(
            id=UnifiedIDSystem.generate_id("dispute", 6),
            purchase_id=purchase_id,
            buyer_id=buyer_id,
            seller_id=purchase.seller_id,
            reason=reason.strip(),
        )
        await self.repository.set(Collections.DISPUTES, dispute.id, to_document(dispute))
        logger.info(f"Buyer {buyer_id} opened dispute {dispute.id} on purchase {purchase_id}")
        return dispute

    async def get_user_disputes(self, buyer_id: str) -> List[Dispute]:
        docs = await self.repository.query(Collections.DISPUTES, [("buyer_id", "==", buyer_id)])
        return sorted((Dispute.model_validate(doc) for doc in docs), key=lambda d: d.created_at, reverse=True)
