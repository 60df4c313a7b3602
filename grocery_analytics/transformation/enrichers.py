"""
Customer Enrichment Module

Derives customer-level attributes from a user's activity snapshot.
Includes:
- Engagement and loyalty scoring
- Lifecycle stage and spending frequency classification
- Page, bounce and spending analytics for the user report
- Admin user filtering and sorting
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel, Field

from grocery_analytics.config import get_settings
from grocery_analytics.ingestion.cleaners import resolve_now
from grocery_analytics.ingestion.records import UserActivity, ensure_users

logger = structlog.get_logger(__name__)

UserInput = Iterable[Union[UserActivity, Dict[str, Any]]]


class LifecycleStage(str, Enum):
    """Customer lifecycle stages"""
    NEW = "new_customer"
    DEVELOPING = "developing_customer"
    ESTABLISHED = "established_customer"
    VIP = "vip_customer"
    LOYAL = "loyal_customer"
    REGULAR = "regular_customer"


class SpendingFrequency(str, Enum):
    """Orders per month since the customer joined"""
    INACTIVE = "inactive"
    NEW = "new"
    VERY_HIGH = "very_high"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very_low"


class EngagementLevel(str, Enum):
    """Engagement score bands"""
    CHAMPION = "champion"
    LOYAL = "loyal"
    ACTIVE = "active"
    CASUAL = "casual"
    INACTIVE = "inactive"


class CustomerType(str, Enum):
    """Order-count based customer type"""
    VIP = "vip"
    REGULAR = "regular"
    NEW = "new"


class SpendingTrend(str, Enum):
    """Visit to order conversion band"""
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"
    LOW = "low"


class UserSortKey(str, Enum):
    NAME = "name"
    DATE = "date"
    ORDERS = "orders"
    SPENT = "spent"
    VISITS = "visits"


class CustomerScore(BaseModel):
    """All derived attributes of one customer"""
    uid: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    engagement_score: int = 0
    engagement_level: EngagementLevel = EngagementLevel.INACTIVE
    loyalty_score: int = 0
    lifecycle_stage: LifecycleStage = LifecycleStage.NEW
    customer_type: CustomerType = CustomerType.NEW
    spending_frequency: SpendingFrequency = SpendingFrequency.INACTIVE
    spending_trend: SpendingTrend = SpendingTrend.LOW
    average_order_value: float = 0.0
    bounce_rate: float = 0.0
    most_visited_page: str = "unknown"


class BasicInfo(BaseModel):
    total_page_visits: int = 0
    total_orders: int = 0
    total_spent: float = 0.0
    avg_session_duration: float = 0.0
    last_visit: Optional[datetime] = None


class PageAnalytics(BaseModel):
    page_breakdown: Dict[str, int] = Field(default_factory=dict)
    bounce_rate: float = 0.0
    most_visited_page: str = "unknown"


class SpendingAnalytics(BaseModel):
    spending_pattern: Dict[str, Any] = Field(default_factory=dict)
    average_order_value: float = 0.0
    lifecycle_stage: LifecycleStage = LifecycleStage.NEW
    spending_frequency: SpendingFrequency = SpendingFrequency.INACTIVE
    spending_trend: SpendingTrend = SpendingTrend.LOW


class EngagementAnalytics(BaseModel):
    engagement_score: int = 0
    loyalty_score: int = 0
    category_preferences: Dict[str, int] = Field(default_factory=dict)
    search_preferences: Dict[str, int] = Field(default_factory=dict)


class UserReport(BaseModel):
    """Per-user analytics report"""
    uid: Optional[str] = None
    basic_info: BasicInfo
    page_analytics: PageAnalytics
    spending_analytics: SpendingAnalytics
    engagement_analytics: EngagementAnalytics


def _clamp_score(score: float) -> int:
    return max(0, min(math.floor(score), 100))


class CustomerEnricher:
    """
    Customer scorer.

    All date arithmetic is relative to ``reference_date`` (local time),
    which defaults to the current local clock.
    """

    def __init__(self, reference_date: Optional[datetime] = None):
        self.reference_date = resolve_now(reference_date, get_settings().analytics.timezone)

    def _days_since(self, moment: Optional[datetime]) -> Optional[int]:
        if moment is None:
            return None
        return math.floor((self.reference_date - moment).total_seconds() / 86400)

    def engagement_score(self, user: UserActivity) -> int:
        """
        Engagement score (0-100).

        Visits (max 25) + orders (max 30) + spend (max 25) + recency of the
        last visit (max 20).
        """
        score = min(user.page_visits * 2, 25)
        score += min(user.total_orders * 5, 30)
        score += min(user.total_spent / 100, 25)

        days = self._days_since(user.last_visit)
        if days is not None:
            if days <= 1:
                score += 20
            elif days <= 7:
                score += 15
            elif days <= 30:
                score += 10
            elif days <= 90:
                score += 5

        return _clamp_score(score)

    def loyalty_score(self, user: UserActivity, new_order: Optional[float] = None) -> int:
        """
        Loyalty score (0-100), optionally counting a pending order.

        Orders (max 30) + spend (max 25) + engagement events (max 25) +
        site activity (max 20).
        """
        orders, spent = self._order_totals(user, new_order)

        score = min(orders * 2, 30)
        score += min(spent / 200, 25)
        score += min(user.engagement_events * 5, 25)
        score += min(user.page_visits * 0.5, 20)

        return _clamp_score(score)

    def lifecycle_stage(self, user: UserActivity, new_order: Optional[float] = None) -> LifecycleStage:
        orders, spent = self._order_totals(user, new_order)
        days_since_first = self._days_since(user.first_order_at) or 0

        if orders <= 1:
            return LifecycleStage.NEW
        if orders <= 3:
            return LifecycleStage.DEVELOPING
        if orders <= 10 and spent >= 1000:
            return LifecycleStage.ESTABLISHED
        if orders > 10 and spent >= 5000:
            return LifecycleStage.VIP
        if days_since_first > 365 and orders > 5:
            return LifecycleStage.LOYAL
        return LifecycleStage.REGULAR

    @staticmethod
    def _order_totals(user: UserActivity, new_order: Optional[float]) -> tuple:
        if new_order is None:
            return user.total_orders, user.total_spent
        return user.total_orders + 1, user.total_spent + new_order

    def spending_frequency(self, user: UserActivity) -> SpendingFrequency:
        if user.total_orders == 0 or user.joined_at is None:
            return SpendingFrequency.INACTIVE

        days = self._days_since(user.joined_at)
        if days <= 0:
            return SpendingFrequency.NEW

        per_month = user.total_orders / days * 30
        if per_month >= 4:
            return SpendingFrequency.VERY_HIGH
        if per_month >= 2:
            return SpendingFrequency.HIGH
        if per_month >= 1:
            return SpendingFrequency.MEDIUM
        if per_month >= 0.5:
            return SpendingFrequency.LOW
        return SpendingFrequency.VERY_LOW

    @staticmethod
    def engagement_level(score: int) -> EngagementLevel:
        if score >= 80:
            return EngagementLevel.CHAMPION
        if score >= 60:
            return EngagementLevel.LOYAL
        if score >= 40:
            return EngagementLevel.ACTIVE
        if score >= 20:
            return EngagementLevel.CASUAL
        return EngagementLevel.INACTIVE

    @staticmethod
    def customer_type(user: UserActivity) -> CustomerType:
        if user.total_orders > 5:
            return CustomerType.VIP
        if user.total_orders > 0:
            return CustomerType.REGULAR
        return CustomerType.NEW

    @staticmethod
    def spending_trend(user: UserActivity) -> SpendingTrend:
        """Approximated from the visit to order conversion rate"""
        conversion = user.total_orders / user.page_visits * 100 if user.page_visits > 0 else 0.0
        if conversion > 20:
            return SpendingTrend.INCREASING
        if conversion > 10:
            return SpendingTrend.STABLE
        if conversion > 5:
            return SpendingTrend.DECREASING
        return SpendingTrend.LOW

    @staticmethod
    def bounce_rate(user: UserActivity) -> float:
        if user.page_visits == 0:
            return 0.0
        return user.single_page_visits / user.page_visits * 100

    @staticmethod
    def most_visited_page(user: UserActivity) -> str:
        """Page with the most visits; ``home`` wins ties against it"""
        breakdown = user.page_breakdown
        if not breakdown:
            return "unknown"

        best = "home"
        for page, visits in breakdown.items():
            if visits > breakdown.get(best, 0):
                best = page
        return best

    @staticmethod
    def average_order_value(user: UserActivity) -> float:
        if user.total_orders == 0:
            return 0.0
        return user.total_spent / user.total_orders

    def score_customer(self, user: UserActivity) -> CustomerScore:
        engagement = self.engagement_score(user)
        return CustomerScore(
            uid=user.uid,
            name=user.name,
            email=user.email,
            engagement_score=engagement,
            engagement_level=self.engagement_level(engagement),
            loyalty_score=self.loyalty_score(user),
            lifecycle_stage=self.lifecycle_stage(user),
            customer_type=self.customer_type(user),
            spending_frequency=self.spending_frequency(user),
            spending_trend=self.spending_trend(user),
            average_order_value=self.average_order_value(user),
            bounce_rate=self.bounce_rate(user),
            most_visited_page=self.most_visited_page(user),
        )

    def build_user_report(self, user: UserActivity) -> UserReport:
        """Full analytics report for one user, scores recomputed"""
        return UserReport(
            uid=user.uid,
            basic_info=BasicInfo(
                total_page_visits=user.page_visits,
                total_orders=user.total_orders,
                total_spent=user.total_spent,
                avg_session_duration=user.avg_session_duration,
                last_visit=user.last_visit,
            ),
            page_analytics=PageAnalytics(
                page_breakdown=user.page_breakdown,
                bounce_rate=self.bounce_rate(user),
                most_visited_page=self.most_visited_page(user),
            ),
            spending_analytics=SpendingAnalytics(
                spending_pattern=user.spending_pattern,
                average_order_value=self.average_order_value(user),
                lifecycle_stage=self.lifecycle_stage(user),
                spending_frequency=self.spending_frequency(user),
                spending_trend=self.spending_trend(user),
            ),
            engagement_analytics=EngagementAnalytics(
                engagement_score=self.engagement_score(user),
                loyalty_score=self.loyalty_score(user),
                category_preferences=user.category_preferences,
                search_preferences=user.search_preferences,
            ),
        )


def filter_users(
    users: UserInput,
    query: Optional[str] = None,
    status: str = "all",
    customer_type: Union[CustomerType, str, None] = None,
    has_orders: Optional[bool] = None,
) -> List[UserActivity]:
    """
    Admin user filters.

    Args:
        users: Users or raw user documents
        query: Case-insensitive match on name, email, phone or uid
        status: ``all``, ``active`` or ``inactive``
        customer_type: Keep only one customer type
        has_orders: Keep users with (True) or without (False) orders
    """
    if status not in ("all", "active", "inactive"):
        raise ValueError(f"Unknown status filter: {status}")
    wanted_type = CustomerType(customer_type) if customer_type else None
    needle = (query or "").strip().lower()

    selected = []
    for user in ensure_users(users):
        if needle and not any(
            value and needle in value.lower()
            for value in (user.name, user.email, user.phone, user.uid)
        ):
            continue
        if status == "active" and not user.is_active:
            continue
        if status == "inactive" and user.is_active:
            continue
        if wanted_type and CustomerEnricher.customer_type(user) is not wanted_type:
            continue
        if has_orders is not None and (user.total_orders > 0) != has_orders:
            continue
        selected.append(user)

    return selected


_SORT_KEYS = {
    UserSortKey.NAME: lambda u: (u.name or "").lower(),
    UserSortKey.DATE: lambda u: u.joined_at or datetime.min,
    UserSortKey.ORDERS: lambda u: u.total_orders,
    UserSortKey.SPENT: lambda u: u.total_spent,
    UserSortKey.VISITS: lambda u: u.page_visits,
}


def sort_users(
    users: UserInput,
    by: Union[UserSortKey, str] = UserSortKey.NAME,
    descending: bool = False,
) -> List[UserActivity]:
    """Stable sort on name, join date, orders, spend or visits"""
    return sorted(ensure_users(users), key=_SORT_KEYS[UserSortKey(by)], reverse=descending)


CUSTOMER_SCHEMA = {
    "uid": pl.Utf8,
    "name": pl.Utf8,
    "email": pl.Utf8,
    "total_spent": pl.Float64,
    "total_orders": pl.Int64,
    "page_visits": pl.Int64,
    "last_visit": pl.Datetime("us"),
    "joined_at": pl.Datetime("us"),
    "engagement_score": pl.Int64,
    "engagement_level": pl.Utf8,
    "loyalty_score": pl.Int64,
    "lifecycle_stage": pl.Utf8,
    "customer_type": pl.Utf8,
    "spending_frequency": pl.Utf8,
    "spending_trend": pl.Utf8,
    "average_order_value": pl.Float64,
    "bounce_rate": pl.Float64,
}


def enrich_customer_data(
    users: UserInput,
    reference_date: Optional[datetime] = None,
) -> pl.DataFrame:
    """
    Convenience function to score every user into one frame.

    Args:
        users: Users or raw user documents
        reference_date: "Now" for recency and tenure, defaults to the local clock

    Returns:
        One row per user with activity totals and derived scores
    """
    enricher = CustomerEnricher(reference_date)
    records = ensure_users(users)

    rows = []
    for user in records:
        score = enricher.score_customer(user)
        rows.append({
            "uid": user.uid,
            "name": user.name,
            "email": user.email,
            "total_spent": user.total_spent,
            "total_orders": user.total_orders,
            "page_visits": user.page_visits,
            "last_visit": user.last_visit,
            "joined_at": user.joined_at,
            "engagement_score": score.engagement_score,
            "engagement_level": score.engagement_level.value,
            "loyalty_score": score.loyalty_score,
            "lifecycle_stage": score.lifecycle_stage.value,
            "customer_type": score.customer_type.value,
            "spending_frequency": score.spending_frequency.value,
            "spending_trend": score.spending_trend.value,
            "average_order_value": score.average_order_value,
            "bounce_rate": score.bounce_rate,
        })

    logger.info("Enriched customer data", users=len(rows))

    if not rows:
        return pl.DataFrame(schema=CUSTOMER_SCHEMA)
    return pl.from_dicts(rows, schema=CUSTOMER_SCHEMA)
