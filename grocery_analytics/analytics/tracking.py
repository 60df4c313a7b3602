"""
User Activity Tracking

Folds storefront activity events into a user's activity snapshot:
- cumulative counters and bounded histories
- page, category, price range and search keyword preferences
- cart abandonment and checkout conversion counters
- monthly and per-category spending pattern
- recomputed engagement score, loyalty score and lifecycle stage

The tracker never mutates the snapshot it is given; every call returns an
updated copy.
"""

from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, Iterator, List, Optional, Union

import structlog
from prometheus_client import Counter

from grocery_analytics.config import get_settings
from grocery_analytics.config.settings import TrackingSettings
from grocery_analytics.ingestion.cleaners import resolve_now, to_local
from grocery_analytics.ingestion.events import (
    BaseActivityEvent,
    CartAction,
    CartActionEvent,
    EngagementEvent,
    OrderPlacementEvent,
    PageVisitEvent,
    ProductInteractionEvent,
    SearchQueryEvent,
    parse_event,
)
from grocery_analytics.ingestion.records import UserActivity
from grocery_analytics.transformation.enrichers import CustomerEnricher

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

ACTIVITY_EVENTS = Counter(
    "grocery_activity_events_total",
    "Total number of activity events applied to user snapshots",
    ["event_type"],
)


TRACKED_PAGES = ("home", "products", "cart", "checkout", "profile", "orders", "about", "other")

# Upper bounds of the price range buckets; anything above is "luxury"
PRICE_RANGES = (
    (100, "budget"),
    (500, "mid-range"),
    (1000, "premium"),
)

MIN_KEYWORD_LENGTH = 3


class BoundedHistory:
    """Append-only history keeping the most recent ``maxlen`` entries"""

    def __init__(self, maxlen: int, entries: Iterable[Dict[str, Any]] = ()):
        self._entries: Deque[Dict[str, Any]] = deque(entries, maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._entries.maxlen

    def append(self, entry: Dict[str, Any]) -> None:
        self._entries.append(entry)

    def to_list(self) -> List[Dict[str, Any]]:
        """Entries, oldest first"""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return iter(self._entries)


def price_range(price: float) -> str:
    for upper, label in PRICE_RANGES:
        if price <= upper:
            return label
    return "luxury"


def search_keywords(query: str) -> List[str]:
    """Lower-cased words of a query, skipping short filler words"""
    return [word for word in query.lower().split() if len(word) >= MIN_KEYWORD_LENGTH]


class ActivityTracker:
    """
    Applies activity events to user snapshots.

    Usage:
        tracker = ActivityTracker()
        user = tracker.apply(user, {"event_type": "page_visit", "page": "home"})
    """

    def __init__(self, limits: Optional[TrackingSettings] = None, now: Optional[datetime] = None):
        self.limits = limits or get_settings().tracking
        self.now = now
        self._tz_name = get_settings().analytics.timezone
        self._handlers: Dict[type, Callable[[UserActivity, Any, datetime], None]] = {
            PageVisitEvent: self._apply_page_visit,
            ProductInteractionEvent: self._apply_product_interaction,
            CartActionEvent: self._apply_cart_action,
            SearchQueryEvent: self._apply_search_query,
            OrderPlacementEvent: self._apply_order_placement,
            EngagementEvent: self._apply_engagement,
        }

    def _event_time(self, event: BaseActivityEvent) -> datetime:
        if event.occurred_at is not None:
            return to_local(event.occurred_at, self._tz_name)
        return resolve_now(self.now, self._tz_name)

    def apply(
        self,
        user: Union[UserActivity, Dict[str, Any]],
        event: Union[BaseActivityEvent, Dict[str, Any]],
    ) -> UserActivity:
        """
        Apply one event and return the updated snapshot.

        Raises:
            pydantic.ValidationError: If the user or event document is invalid
        """
        if isinstance(user, dict):
            user = UserActivity.model_validate(user)
        if isinstance(event, dict):
            event = parse_event(event)

        updated = user.model_copy(deep=True)
        moment = self._event_time(event)

        self._handlers[type(event)](updated, event, moment)

        enricher = CustomerEnricher(reference_date=moment)
        updated.engagement_score = enricher.engagement_score(updated)
        if not isinstance(event, OrderPlacementEvent):
            updated.loyalty_score = enricher.loyalty_score(updated)
            if updated.total_orders > 0:
                updated.lifecycle_stage = enricher.lifecycle_stage(updated).value

        ACTIVITY_EVENTS.labels(event_type=event.event_type).inc()
        logger.debug("Activity event applied", user_id=updated.uid, event_type=event.event_type)

        return updated

    def apply_all(
        self,
        user: Union[UserActivity, Dict[str, Any]],
        events: Iterable[Union[BaseActivityEvent, Dict[str, Any]]],
    ) -> UserActivity:
        """Apply events in order"""
        if isinstance(user, dict):
            user = UserActivity.model_validate(user)
        for event in events:
            user = self.apply(user, event)
        return user

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _append(self, user: UserActivity, field_name: str, maxlen: int, entry: Dict[str, Any]) -> None:
        history = BoundedHistory(maxlen, getattr(user, field_name))
        history.append(entry)
        setattr(user, field_name, history.to_list())

    def _apply_page_visit(self, user: UserActivity, event: PageVisitEvent, moment: datetime) -> None:
        breakdown = dict(user.page_breakdown) or {page: 0 for page in TRACKED_PAGES}
        page_key = event.page if event.page in breakdown else "other"
        breakdown[page_key] = breakdown.get(page_key, 0) + 1

        sessions = user.page_visits
        if sessions == 0:
            user.avg_session_duration = event.session_duration
        else:
            user.avg_session_duration = (
                user.avg_session_duration * sessions + event.session_duration
            ) / (sessions + 1)

        user.page_visits += 1
        user.last_visit = moment
        user.is_active = True
        user.page_breakdown = breakdown
        if event.is_single_page_visit:
            user.single_page_visits += 1

        self._append(user, "user_journey", self.limits.max_journey_length, {
            "page": event.page or "unknown",
            "timestamp": moment.isoformat(),
            "referrer": event.referrer,
            "sessionId": event.session_id,
            "duration": event.session_duration,
        })

    def _apply_product_interaction(
        self, user: UserActivity, event: ProductInteractionEvent, moment: datetime
    ) -> None:
        category = event.category or "other"
        bucket = price_range(event.price)

        user.product_views += 1
        user.category_preferences = {
            **user.category_preferences,
            category: user.category_preferences.get(category, 0) + 1,
        }
        user.price_range_preferences = {
            **user.price_range_preferences,
            bucket: user.price_range_preferences.get(bucket, 0) + 1,
        }

        self._append(user, "view_history", self.limits.max_view_history, {
            "productId": event.product_id,
            "productName": event.product_name,
            "category": event.category or "",
            "price": event.price,
            "timestamp": moment.isoformat(),
            "action": event.action,
        })

    def _apply_cart_action(self, user: UserActivity, event: CartActionEvent, moment: datetime) -> None:
        user.cart_actions += 1
        if event.action is CartAction.ABANDON:
            user.cart_abandonment_count += 1
        elif event.action is CartAction.CHECKOUT:
            user.cart_to_checkout_conversions += 1

        self._append(user, "cart_history", self.limits.max_cart_history, {
            "action": event.action.value,
            "productId": event.product_id,
            "productName": event.product_name,
            "quantity": event.quantity,
            "price": event.price,
            "timestamp": moment.isoformat(),
        })

    def _apply_search_query(self, user: UserActivity, event: SearchQueryEvent, moment: datetime) -> None:
        preferences = dict(user.search_preferences)
        for keyword in search_keywords(event.query):
            preferences[keyword] = preferences.get(keyword, 0) + 1

        user.search_queries += 1
        user.search_preferences = preferences

        self._append(user, "search_history", self.limits.max_search_history, {
            "query": event.query,
            "results": event.results,
            "timestamp": moment.isoformat(),
            "clicked": event.clicked,
            "clickedProduct": event.clicked_product,
        })

    def _apply_order_placement(
        self, user: UserActivity, event: OrderPlacementEvent, moment: datetime
    ) -> None:
        # Scores see the snapshot before the order plus the pending order
        enricher = CustomerEnricher(reference_date=moment)
        user.lifecycle_stage = enricher.lifecycle_stage(user, new_order=event.amount).value
        user.loyalty_score = enricher.loyalty_score(user, new_order=event.amount)
        user.spending_pattern = self._spending_pattern(user, event, moment)

        user.total_orders += 1
        user.total_spent += event.amount
        user.last_order_date = moment
        user.last_order_amount = event.amount

        self._append(user, "order_history", self.limits.max_order_history, {
            "orderId": event.order_id,
            "date": moment.isoformat(),
            "amount": event.amount,
            "items": event.items,
            "paymentMethod": event.payment_method,
            "deliveryAddress": event.delivery_address,
            "status": event.status,
            "categories": event.categories,
            "discountUsed": event.discount_used,
        })

    def _apply_engagement(self, user: UserActivity, event: EngagementEvent, moment: datetime) -> None:
        user.engagement_events += 1

    @staticmethod
    def _spending_pattern(user: UserActivity, event: OrderPlacementEvent, moment: datetime) -> Dict[str, Any]:
        pattern = dict(user.spending_pattern)
        month = moment.strftime("%Y-%m")

        monthly = dict(pattern.get("monthly_spending") or {})
        monthly[month] = monthly.get(month, 0) + event.amount

        by_category = dict(pattern.get("category_spending") or {})
        if event.categories:
            share = event.amount / len(event.categories)
            for category in event.categories:
                by_category[category] = by_category.get(category, 0) + share

        total_orders = user.total_orders + 1
        total_spent = user.total_spent + event.amount

        pattern.update({
            "monthly_spending": monthly,
            "category_spending": by_category,
            "average_order_value": total_spent / total_orders,
            "last_order_amount": event.amount,
            "last_order_category": event.categories[0] if event.categories else "other",
        })
        return pattern
