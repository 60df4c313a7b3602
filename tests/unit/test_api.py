"""
Unit Tests - API
"""
import pytest
from fastapi.testclient import TestClient

from grocery_analytics.main import create_app

NOW = "2026-10-19T12:00:00"


@pytest.fixture
def client():
    return TestClient(create_app())


class TestHealth:
    """Tests for health endpoints"""

    def test_liveness(self, client):
        """Test liveness probe"""
        response = client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_health(self, client):
        """Test health check reports timezone and export checks"""
        response = client.get("/api/v1/health")

        body = response.json()
        assert response.status_code == 200
        assert body["checks"]["timezone"]["status"] == "healthy"
        assert body["status"] in ("healthy", "degraded")

    def test_request_headers(self, client):
        """Test request id and timing headers"""
        response = client.get("/api/v1/health/live", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert response.headers["X-Response-Time"].endswith("ms")

    def test_info(self, client):
        """Test API information endpoint"""
        assert client.get("/api/v1/info").json()["name"] == "grocery-analytics"


class TestAnalyticsEndpoints:
    """Tests for analytics endpoints"""

    def test_summary(self, client, sample_orders, sample_users):
        """Test the summary snapshot over a rolling window"""
        response = client.post("/api/v1/analytics/summary", json={
            "orders": sample_orders,
            "users": sample_users,
            "range_days": 7,
            "now": NOW,
        })

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "available"
        assert body["summary"]["totals"]["total_revenue"] == 170.0
        assert body["summary"]["top_products"][0] == ["Tomato", 3.0]
        assert len(body["customers"]) == 3

    def test_summary_date_range(self, client, sample_orders):
        """Test an explicit date range replaces the rolling window"""
        response = client.post("/api/v1/analytics/summary", json={
            "orders": sample_orders,
            "start_date": "2026-10-12",
            "end_date": "2026-10-16",
            "now": NOW,
        })

        body = response.json()
        assert body["summary"]["date_range"] == {"start": "2026-10-12", "end": "2026-10-16"}
        assert body["summary"]["totals"]["total_revenue"] == 100.0
        assert body["comparison"] is None

    def test_summary_skips_bad_documents(self, client, sample_orders):
        """Test malformed documents are counted, not rejected"""
        response = client.post("/api/v1/analytics/summary", json={
            "orders": sample_orders + ["junk", {"cartItems": 5}],
            "now": NOW,
        })

        assert response.status_code == 200
        assert response.json()["skipped_records"] == 2

    def test_summary_empty(self, client):
        """Test an empty order list gives an empty snapshot"""
        response = client.post("/api/v1/analytics/summary", json={"orders": [], "now": NOW})

        assert response.json()["status"] == "empty"

    def test_inverted_dates_rejected(self, client, sample_orders):
        """Test a start date after the end date is a validation error"""
        response = client.post("/api/v1/analytics/summary", json={
            "orders": sample_orders,
            "start_date": "2026-10-16",
            "end_date": "2026-10-12",
        })

        assert response.status_code == 422

    def test_negative_range_rejected(self, client, sample_orders):
        """Test a negative window is a validation error"""
        response = client.post("/api/v1/analytics/summary", json={"orders": sample_orders, "range_days": -1})

        assert response.status_code == 422

    def test_inventory(self, client, sample_orders):
        """Test inventory statistics for yesterday"""
        response = client.post("/api/v1/analytics/inventory", json={
            "orders": sample_orders,
            "date_filter": "yesterday",
            "now": NOW,
        })

        body = response.json()
        assert response.status_code == 200
        assert [row["name"] for row in body] == ["Tomato", "Spinach"]
        assert body[0]["total_quantity"] == 2.0

    def test_customers(self, client, sample_users):
        """Test customer scores"""
        response = client.post("/api/v1/analytics/customers", json={"users": sample_users, "now": NOW})

        body = response.json()
        assert response.status_code == 200
        assert body[0]["engagement_score"] == 53
        assert body[1]["lifecycle_stage"] == "vip_customer"
        assert body[2]["customer_type"] == "new"
