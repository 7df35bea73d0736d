"""
Admin dashboard: platform statistics, revenue analytics and moderation.

Platform revenue is the commission the marketplace keeps on each sale, not
the gross amount paid by buyers.
"""

import calendar
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Any

from ..database.models import (
    AIModel,
    Dispute,
    DisputeStatus,
    ModelStatus,
    PayoutRequest,
    PayoutStatus,
    PurchaseTransaction,
    TransactionStatus,
    UserProfile,
    UserRole,
    UserStatus,
    utcnow,
)
from ..database.repository import FirestoreRepository, Collections, RecordNotFound

logger = logging.getLogger(__name__)


class RevenueTimeframe(Enum):
    """Revenue analytics windows."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


DEFAULT_WINDOW = timedelta(days=30)


@dataclass
class PlatformStats:
    """Aggregates shown on the admin overview."""
    total_users: int = 0
    total_sellers: int = 0
    total_buyers: int = 0
    total_models: int = 0
    pending_models: int = 0
    total_sales: int = 0
    total_revenue: float = 0.0
    pending_payouts: int = 0
    pending_payout_amount: float = 0.0
    active_disputes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RevenueAnalytics:
    timeframe: str
    start: datetime
    end: datetime
    total_revenue: float = 0.0
    total_sales: int = 0
    average_sale: float = 0.0
    gross_volume: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["start"] = self.start.isoformat()
        data["end"] = self.end.isoformat()
        return data


def shift_months(moment: datetime, months: int) -> datetime:
    """Move a datetime by whole calendar months, clamping to the last day of the target month."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def window_start(timeframe: Optional[str], now: datetime) -> datetime:
    """Start of the analytics window; unknown timeframes cover the last 30 days."""
    if timeframe == RevenueTimeframe.DAY.value:
        return now - timedelta(days=1)
    if timeframe == RevenueTimeframe.WEEK.value:
        return now - timedelta(days=7)
    if timeframe == RevenueTimeframe.MONTH.value:
        return shift_months(now, -1)
    if timeframe == RevenueTimeframe.YEAR.value:
        return shift_months(now, -12)
    return now - DEFAULT_WINDOW


def _sum(values) -> Decimal:
    return sum((Decimal(str(value)) for value in values), Decimal("0"))


class AdminManager:
    """Admin-only reads and moderation actions."""

    def __init__(self, repository: FirestoreRepository):
        """
        Initialize the admin manager.

        Args:
            repository: Firestore repository
        """
        self.repository = repository

    async def get_all_users(self) -> List[UserProfile]:
        return [UserProfile.model_validate(doc) for doc in await self.repository.list_all(Collections.USERS)]

    async def get_all_models(self, status: Optional[ModelStatus] = None) -> List[AIModel]:
        filters = [("status", "==", status.value)] if status else []
        docs = await self.repository.query(Collections.MODELS, filters)
        return sorted((AIModel.model_validate(doc) for doc in docs), key=lambda m: m.created_at, reverse=True)

    async def get_all_sales(self) -> List[PurchaseTransaction]:
        docs = await self.repository.query(
            Collections.TRANSACTIONS, [("status", "==", TransactionStatus.COMPLETED.value)]
        )
        return sorted(
            (PurchaseTransaction.model_validate(doc) for doc in docs), key=lambda tx: tx.purchased_at, reverse=True
        )

    async def get_all_payouts(self) -> List[PayoutRequest]:
        docs = await self.repository.list_all(Collections.PAYOUTS)
        return sorted((PayoutRequest.model_validate(doc) for doc in docs), key=lambda p: p.requested_at, reverse=True)

    async def get_all_disputes(self) -> List[Dispute]:
        docs = await self.repository.list_all(Collections.DISPUTES)
        return sorted((Dispute.model_validate(doc) for doc in docs), key=lambda d: d.created_at, reverse=True)

    async def get_platform_stats(self) -> PlatformStats:
        users = await self.get_all_users()
        models = await self.get_all_models()
        sales = await self.get_all_sales()
        payouts = await self.get_all_payouts()
        disputes = await self.get_all_disputes()

        pending = [p for p in payouts if p.status == PayoutStatus.PENDING]

        return PlatformStats(
            total_users=len(users),
            total_sellers=sum(1 for u in users if u.role in (UserRole.SELLER, UserRole.BOTH)),
            total_buyers=sum(1 for u in users if u.role == UserRole.BUYER),
            total_models=len(models),
            pending_models=sum(1 for m in models if m.status == ModelStatus.PENDING),
            total_sales=len(sales),
            total_revenue=float(_sum(tx.platform_commission for tx in sales)),
            pending_payouts=len(pending),
            pending_payout_amount=float(_sum(p.amount for p in pending)),
            active_disputes=sum(1 for d in disputes if d.status in (DisputeStatus.OPEN, DisputeStatus.IN_REVIEW)),
        )

    async def get_revenue_analytics(self, timeframe: Optional[str] = None,
                                    now: Optional[datetime] = None) -> RevenueAnalytics:
        now = now or utcnow()
        start = window_start(timeframe, now)
        sales = [tx for tx in await self.get_all_sales() if start <= tx.purchased_at <= now]

        revenue = _sum(tx.platform_commission for tx in sales)
        average = (revenue / len(sales)).quantize(Decimal("0.01")) if sales else Decimal("0")

        return RevenueAnalytics(
            timeframe=timeframe or "30d",
            start=start,
            end=now,
            total_revenue=float(revenue),
            total_sales=len(sales),
            average_sale=float(average),
            gross_volume=float(_sum(tx.price for tx in sales)),
        )

    async def _require(self, collection: str, kind: str, record_id: str) -> Dict[str, Any]:
        data = await self.repository.get(collection, record_id)
        if data is None:
            raise RecordNotFound(kind, record_id)
        return data

    async def update_user_status(self, user_id: str, status: UserStatus) -> None:
        await self._require(Collections.USERS, "User", user_id)
        await self.repository.update(Collections.USERS, user_id, {
            "status": status.value,
            "updated_at": utcnow().isoformat(),
        })
        logger.info(f"User {user_id} status set to {status.value}")

    async def update_model_status(
        self,
        model_id: str,
        status: ModelStatus,
        reason: Optional[str] = None,
        reviewer_id: Optional[str] = None,
    ) -> None:
        """
        Moderate a listing.

        Raises:
            ValueError: rejecting without a reason, or moving a listing back to draft
        """
        if status == ModelStatus.DRAFT:
            raise ValueError("Listings cannot be moved back to draft")
        if status == ModelStatus.REJECTED and not reason:
            raise ValueError("A rejection reason is required")

        await self._require(Collections.MODELS, "Model", model_id)
        now = utcnow().isoformat()
        await self.repository.update(Collections.MODELS, model_id, {
            "status": status.value,
            "rejection_reason": reason if status == ModelStatus.REJECTED else None,
            "moderation.reviewed_by": reviewer_id,
            "moderation.reviewed_at": now,
            "moderation.notes": reason,
            "updated_at": now,
        })
        logger.info(f"Model {model_id} moderated to {status.value} by {reviewer_id}")

    async def _settle_payout(self, payout_id: str, status: PayoutStatus, reason: Optional[str] = None) -> PayoutRequest:
        payout = PayoutRequest.model_validate(await self._require(Collections.PAYOUTS, "Payout", payout_id))
        if payout.status not in (PayoutStatus.PENDING, PayoutStatus.PROCESSING):
            raise ValueError(f"Payout is already {payout.status.value}")

        payout.status = status
        payout.processed_at = utcnow()
        if reason:
            payout.rejection_reason = reason

        await self.repository.update(Collections.PAYOUTS, payout_id, {
            "status": status.value,
            "processed_at": payout.processed_at.isoformat(),
            "rejection_reason": payout.rejection_reason,
        })
        logger.info(f"Payout {payout_id} marked {status.value}")
        return payout

    async def process_payout(self, payout_id: str) -> PayoutRequest:
        return await self._settle_payout(payout_id, PayoutStatus.COMPLETED)

    async def reject_payout(self, payout_id: str, reason: str) -> PayoutRequest:
        if not reason:
            raise ValueError("A rejection reason is required")
        return await self._settle_payout(payout_id, PayoutStatus.FAILED, reason)

    async def resolve_dispute(self, dispute_id: str, status: DisputeStatus, resolution: str) -> Dispute:
        if status not in (DisputeStatus.IN_REVIEW, DisputeStatus.RESOLVED, DisputeStatus.REJECTED):
            raise ValueError("Disputes can only move to in_review, resolved or rejected")

        dispute = Dispute.model_validate(await self._require(Collections.DISPUTES, "Dispute", dispute_id))
        if dispute.status in (DisputeStatus.RESOLVED, DisputeStatus.REJECTED):
            raise ValueError(f"Dispute is already {dispute.status.value}")

        dispute.status = status
        dispute.resolution = resolution
        dispute.updated_at = utcnow()
        await self.repository.update(Collections.DISPUTES, dispute_id, {
            "status": status.value,
            "resolution": resolution,
            "updated_at": dispute.updated_at.isoformat(),
        })
        logger.info(f"Dispute {dispute_id} moved to {status.value}")
        return dispute
