"""
Unit Tests - Activity Tracking
"""
from datetime import datetime

import pytest
from pydantic import ValidationError

from grocery_analytics.analytics.tracking import (
    ACTIVITY_EVENTS,
    ActivityTracker,
    BoundedHistory,
    price_range,
    search_keywords,
)
from grocery_analytics.config.settings import TrackingSettings
from grocery_analytics.ingestion.records import UserActivity


@pytest.fixture
def tracker(now):
    return ActivityTracker(now=now)


@pytest.fixture
def fresh_user():
    return UserActivity(uid="user-9", name="Nila")


class TestBoundedHistory:
    """Tests for BoundedHistory"""

    def test_keeps_most_recent(self):
        """Test the oldest entries are evicted first"""
        history = BoundedHistory(3, [{"n": 1}, {"n": 2}])
        history.append({"n": 3})
        history.append({"n": 4})

        assert len(history) == 3
        assert [entry["n"] for entry in history.to_list()] == [2, 3, 4]

    def test_truncates_initial_entries(self):
        """Test an oversized starting list is cut to the limit"""
        history = BoundedHistory(2, [{"n": i} for i in range(5)])

        assert [entry["n"] for entry in history] == [3, 4]
        assert history.maxlen == 2


class TestHelpers:
    """Tests for price ranges and search keywords"""

    def test_price_range(self):
        """Test price bucket boundaries"""
        assert price_range(100) == "budget"
        assert price_range(100.5) == "mid-range"
        assert price_range(1000) == "premium"
        assert price_range(1500) == "luxury"

    def test_search_keywords(self):
        """Test short words are skipped and case is folded"""
        assert search_keywords("Fresh Red to Tomatoes") == ["fresh", "red", "tomatoes"]


class TestPageVisits:
    """Tests for page visit events"""

    def test_first_visit(self, tracker, fresh_user, now):
        """Test counters, breakdown and journey for a first visit"""
        user = tracker.apply(fresh_user, {"event_type": "page_visit", "page": "home", "sessionDuration": 30})

        assert user.page_visits == 1
        assert user.page_breakdown["home"] == 1
        assert user.page_breakdown["other"] == 0
        assert user.avg_session_duration == 30
        assert user.last_visit == now
        assert user.user_journey[-1]["page"] == "home"
        assert user.engagement_score == 22

    def test_running_average_duration(self, tracker, fresh_user):
        """Test session duration is a running average"""
        user = tracker.apply_all(fresh_user, [
            {"event_type": "page_visit", "page": "home", "sessionDuration": 30},
            {"event_type": "page_visit", "page": "cart", "sessionDuration": 60},
        ])

        assert user.avg_session_duration == 45
        assert user.page_visits == 2

    def test_unknown_page_counts_as_other(self, tracker, fresh_user):
        """Test untracked pages fall into the other bucket"""
        user = tracker.apply(fresh_user, {"event_type": "page_visit", "page": "blog"})

        assert user.page_breakdown["other"] == 1
        assert "blog" not in user.page_breakdown

    def test_single_page_visit(self, tracker, fresh_user):
        """Test single page visits feed the bounce counter"""
        user = tracker.apply(fresh_user, {"event_type": "page_visit", "isSinglePageVisit": True})

        assert user.single_page_visits == 1

    def test_journey_is_bounded(self, now, fresh_user):
        """Test the journey keeps only the configured number of visits"""
        tracker = ActivityTracker(limits=TrackingSettings(max_journey_length=2), now=now)

        user = tracker.apply_all(fresh_user, [
            {"event_type": "page_visit", "page": page}
            for page in ("home", "products", "cart")
        ])

        assert [step["page"] for step in user.user_journey] == ["products", "cart"]

    def test_input_not_mutated(self, tracker, fresh_user):
        """Test the tracker returns a copy"""
        tracker.apply(fresh_user, {"event_type": "page_visit", "page": "home"})

        assert fresh_user.page_visits == 0
        assert fresh_user.user_journey == []


class TestProductAndSearchEvents:
    """Tests for product interaction and search events"""

    def test_product_interaction(self, tracker, fresh_user):
        """Test category and price range preferences"""
        user = tracker.apply_all(fresh_user, [
            {"event_type": "product_interaction", "productId": "p1", "category": "Vegetables", "price": 40},
            {"event_type": "product_interaction", "productId": "p2", "category": "Vegetables", "price": 700},
            {"event_type": "product_interaction", "productId": "p3", "price": "₹80"},
        ])

        assert user.product_views == 3
        assert user.category_preferences == {"Vegetables": 2, "other": 1}
        assert user.price_range_preferences == {"budget": 2, "premium": 1}
        assert len(user.view_history) == 3

    def test_search_query(self, tracker, fresh_user):
        """Test keyword preferences accumulate"""
        user = tracker.apply_all(fresh_user, [
            {"event_type": "search_query", "query": "fresh spinach", "results": 4},
            {"event_type": "search_query", "query": "Spinach"},
        ])

        assert user.search_queries == 2
        assert user.search_preferences == {"fresh": 1, "spinach": 2}
        assert user.search_history[0]["results"] == 4


class TestCartEvents:
    """Tests for cart action events"""

    def test_abandon_and_checkout(self, tracker, fresh_user):
        """Test abandonment and conversion counters"""
        user = tracker.apply_all(fresh_user, [
            {"event_type": "cart_action", "action": "add", "productId": "p1", "quantity": 2},
            {"event_type": "cart_action", "action": "abandon"},
            {"event_type": "cart_action", "action": "checkout"},
        ])

        assert user.cart_actions == 3
        assert user.cart_abandonment_count == 1
        assert user.cart_to_checkout_conversions == 1
        assert [entry["action"] for entry in user.cart_history] == ["add", "abandon", "checkout"]

    def test_invalid_action(self, tracker, fresh_user):
        """Test unknown cart actions are rejected"""
        with pytest.raises(ValidationError):
            tracker.apply(fresh_user, {"event_type": "cart_action", "action": "juggle"})


class TestOrderPlacement:
    """Tests for order placement events"""

    def test_order_totals(self, tracker, fresh_user, now):
        """Test totals, last order fields and history"""
        user = tracker.apply(fresh_user, {
            "event_type": "order_placement",
            "orderId": "o-1",
            "amount": 400,
            "categories": ["Vegetables", "Leafy Vegetables"],
        })

        assert user.total_orders == 1
        assert user.total_spent == 400.0
        assert user.last_order_amount == 400.0
        assert user.last_order_date == now
        assert user.order_history[0]["orderId"] == "o-1"

    def test_spending_pattern(self, tracker, fresh_user):
        """Test monthly and per-category spending"""
        user = tracker.apply_all(fresh_user, [
            {
                "event_type": "order_placement",
                "amount": 400,
                "categories": ["Vegetables", "Leafy Vegetables"],
                "timestamp": "2026-09-30T10:00:00",
            },
            {"event_type": "order_placement", "amount": 100, "timestamp": "2026-10-02T10:00:00"},
        ])

        pattern = user.spending_pattern
        assert pattern["monthly_spending"] == {"2026-09": 400, "2026-10": 100}
        assert pattern["category_spending"] == {"Vegetables": 200, "Leafy Vegetables": 200}
        assert pattern["average_order_value"] == 250
        assert pattern["last_order_amount"] == 100
        assert pattern["last_order_category"] == "other"

    def test_scores_include_pending_order(self, tracker):
        """Test lifecycle and loyalty see the order being placed"""
        user = UserActivity(total_orders=1, total_spent=200)

        updated = tracker.apply(user, {"event_type": "order_placement", "amount": 600})

        assert updated.lifecycle_stage == "developing_customer"
        # 2 orders * 2 + 800 / 200
        assert updated.loyalty_score == 8

    def test_first_order_is_new_customer(self, tracker, fresh_user):
        """Test the first order keeps the customer new"""
        updated = tracker.apply(fresh_user, {"event_type": "order_placement", "amount": 50})

        assert updated.lifecycle_stage == "new_customer"

    def test_order_history_bounded(self, now, fresh_user):
        """Test the order history keeps the most recent orders"""
        tracker = ActivityTracker(limits=TrackingSettings(max_order_history=2), now=now)

        user = tracker.apply_all(fresh_user, [
            {"event_type": "order_placement", "orderId": f"o-{i}", "amount": 10}
            for i in range(4)
        ])

        assert user.total_orders == 4
        assert [entry["orderId"] for entry in user.order_history] == ["o-2", "o-3"]


class TestEngagementEvents:
    """Tests for engagement events and derived field refresh"""

    def test_engagement_event(self, tracker, fresh_user):
        """Test engagement events count towards loyalty"""
        user = tracker.apply(fresh_user, {"event_type": "engagement", "event": "review", "value": "5"})

        assert user.engagement_events == 1
        assert user.loyalty_score == 5

    def test_lifecycle_refreshed_after_orders(self, tracker):
        """Test non-order events refresh the lifecycle stage once orders exist"""
        user = UserActivity(total_orders=4, total_spent=1200)

        updated = tracker.apply(user, {"event_type": "engagement", "event": "share"})

        assert updated.lifecycle_stage == "established_customer"

    def test_lifecycle_untouched_without_orders(self, tracker, fresh_user):
        """Test users without orders keep an empty lifecycle stage"""
        updated = tracker.apply(fresh_user, {"event_type": "page_visit", "page": "home"})

        assert updated.lifecycle_stage is None

    def test_event_counter(self, tracker, fresh_user):
        """Test applied events are counted per type"""
        before = ACTIVITY_EVENTS.labels(event_type="search_query")._value.get()

        tracker.apply(fresh_user, {"event_type": "search_query", "query": "okra"})

        assert ACTIVITY_EVENTS.labels(event_type="search_query")._value.get() == before + 1

    def test_event_time_from_payload(self, tracker, fresh_user):
        """Test an event timestamp overrides the tracker clock"""
        user = tracker.apply(fresh_user, {
            "event_type": "page_visit",
            "page": "home",
            "timestamp": "2026-10-10T08:30:00",
        })

        assert user.last_visit == datetime(2026, 10, 10, 8, 30)
