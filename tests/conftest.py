"""
Test Suite Configuration
"""
from datetime import datetime
from typing import Any, Dict, List

import pytest

from grocery_analytics.config import Settings

# Fixed local reference time for every date-relative test
NOW = datetime(2026, 10, 19, 12, 0, 0)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def sample_orders() -> List[Dict[str, Any]]:
    """Order documents as the checkout flow stores them"""
    return [
        {
            "id": "ord-1",
            "timestamp": "2026-10-18T10:00:00",
            "status": "delivered",
            "cartItems": [
                {"title": "Tomato", "category": "Vegetables", "price": 40, "quantity": 2},
                {"title": "Spinach", "category": "Leafy Vegetables", "price": "₹20", "quantity": 1},
            ],
            "addressInfo": {"name": "Asha", "phoneNumber": "+91 98765-43210", "city": "Pune", "pincode": "411001"},
            "subtotal": 100,
            "deliveryCharge": 0,
            "grandTotal": "100",
        },
        {
            "id": "ord-2",
            "timestamp": "2026-10-18T15:00:00",
            "status": "cancelled",
            "cartItems": [
                {"title": "Potato", "category": "Vegetables", "price": 50, "quantity": 10},
            ],
            "addressInfo": {"name": "Kiran", "phoneNumber": "9000000000", "city": "Mumbai"},
            "grandTotal": 500,
        },
        {
            "id": "ord-3",
            "timestamp": "2026-10-16T09:30:00",
            "status": "Placed",
            "cartItems": [
                {"title": "Tomato", "category": "Vegetables", "price": 40, "quantity": 1},
                {"title": "Onion", "price": 30},
            ],
            "addressInfo": {"name": "Ravi", "phoneNumber": "9123456780", "city": "Pune"},
            "grandTotal": 70,
        },
        {
            "id": "ord-4",
            "date": "Oct 12, 2026",
            "status": "out for delivery",
            "cartItems": [
                {"title": "Carrot", "category": "Vegetables", "price": 60, "quantity": 0.5},
            ],
            "addressInfo": {"name": "Asha"},
            "grandTotal": 30,
        },
    ]


@pytest.fixture
def undated_order() -> Dict[str, Any]:
    return {
        "id": "ord-undated",
        "status": "placed",
        "cartItems": [{"title": "Beans", "category": "Vegetables", "price": 10, "quantity": 1}],
        "addressInfo": {"name": "Dev", "city": "Nashik"},
        "grandTotal": 10,
    }


@pytest.fixture
def sample_users() -> List[Dict[str, Any]]:
    """User activity documents"""
    return [
        {
            "uid": "user-1",
            "name": "Asha",
            "email": "asha@example.com",
            "phone": "9876543210",
            "pageVisits": 10,
            "totalOrders": 2,
            "totalSpent": 300,
            "lastVisit": "2026-10-19T09:00:00",
            "date": "2026-09-19T10:00:00",
            "singlePageVisits": 2,
            "pageBreakdown": {"home": 4, "products": 5, "cart": 1},
        },
        {
            "uid": "user-2",
            "name": "Meera",
            "email": "meera@example.com",
            "pageVisits": 50,
            "totalOrders": 12,
            "totalSpent": 6000,
            "lastVisit": "2026-10-01T18:00:00",
            "date": "2025-01-01T08:00:00",
        },
        {
            "uid": "user-3",
            "name": "bhavin",
            "email": "bhavin@example.com",
            "isActive": False,
            "lastVisit": "Never",
        },
    ]
