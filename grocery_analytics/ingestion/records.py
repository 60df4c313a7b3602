"""
Storefront Record Models

Pydantic models for the order and user documents read from the storefront's
document database. Validation happens here, at the ingestion boundary:
- status and product group become closed enums
- amounts, counters and dates are coerced tolerantly
- the effective order time is resolved once, in local time

Documents that cannot be validated at all are skipped by ``coerce_records``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from grocery_analytics.config import get_settings
from grocery_analytics.ingestion.cleaners import (
    clean_phone,
    coerce_amount,
    coerce_count,
    normalize_text,
    parse_date_text,
    parse_timestamp,
    to_local,
)

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class OrderStatus(str, Enum):
    """Order lifecycle states"""
    PLACED = "placed"
    HARVESTED = "harvested"
    OUT_FOR_DELIVERY = "out for delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, value: Any) -> Optional["OrderStatus"]:
        """Case/spacing-insensitive lookup; unknown statuses map to None"""
        if isinstance(value, cls):
            return value
        text = normalize_text(value)
        if text is None:
            return None

        key = " ".join(text.lower().replace("_", " ").replace("-", " ").split())
        key = _STATUS_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            logger.warning("Unknown order status", status=text)
            return None


_STATUS_ALIASES = {
    "canceled": "cancelled",
    "outfordelivery": "out for delivery",
}


class ProductGroup(str, Enum):
    """Produce groups sold by the store"""
    LEAFY_VEGETABLE = "leafy_vegetable"
    VEGETABLE = "vegetable"

    @classmethod
    def classify(cls, category: Optional[str]) -> "ProductGroup":
        if category and "leafy" in category.lower():
            return cls.LEAFY_VEGETABLE
        return cls.VEGETABLE

    @property
    def label(self) -> str:
        return "Leafy Vegetable" if self is ProductGroup.LEAFY_VEGETABLE else "Vegetable"

    @property
    def unit(self) -> str:
        """Leafy greens are sold by the piece, everything else by weight"""
        return "piece" if self is ProductGroup.LEAFY_VEGETABLE else "kg"


class CartItem(BaseModel):
    """Single line item of an order's cart"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = Field(default=None, validation_alias=AliasChoices("title", "name"))
    category: Optional[str] = None
    price: float = 0.0
    quantity: Optional[float] = None
    product_group: ProductGroup = ProductGroup.VEGETABLE

    @field_validator("title", "category", mode="before")
    @classmethod
    def _clean_text(cls, v: Any) -> Optional[str]:
        return normalize_text(v)

    @field_validator("price", mode="before")
    @classmethod
    def _clean_price(cls, v: Any) -> float:
        amount = coerce_amount(v)
        return 0.0 if amount is None else amount

    @field_validator("quantity", mode="before")
    @classmethod
    def _clean_quantity(cls, v: Any) -> Optional[float]:
        return coerce_amount(v)

    @model_validator(mode="after")
    def _classify(self) -> "CartItem":
        self.product_group = ProductGroup.classify(self.category)
        return self


class AddressInfo(BaseModel):
    """Delivery address captured at checkout"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = None
    phone_number: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("phoneNumber", "phone_number", "phone"),
    )
    city: Optional[str] = None
    pincode: Optional[str] = Field(default=None, validation_alias=AliasChoices("pincode", "pinCode"))

    @field_validator("name", "city", "pincode", mode="before")
    @classmethod
    def _clean_text(cls, v: Any) -> Optional[str]:
        return normalize_text(v)

    @field_validator("phone_number", mode="before")
    @classmethod
    def _clean_phone(cls, v: Any) -> Optional[str]:
        return clean_phone(v)


class Order(BaseModel):
    """Order document as stored by the checkout flow"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = Field(default=None, validation_alias=AliasChoices("id", "orderId", "order_id"))
    timestamp: Optional[datetime] = None
    date_text: Optional[str] = Field(default=None, validation_alias=AliasChoices("date", "date_text"))
    status: Optional[OrderStatus] = None
    cart_items: List[CartItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("cartItems", "items", "cart_items"),
    )
    address_info: AddressInfo = Field(
        default_factory=AddressInfo,
        validation_alias=AliasChoices("addressInfo", "address_info"),
    )
    subtotal: float = 0.0
    delivery_charge: float = Field(default=0.0, validation_alias=AliasChoices("deliveryCharge", "delivery_charge"))
    discount_amount: float = Field(default=0.0, validation_alias=AliasChoices("discountAmount", "discount_amount"))
    grand_total: float = Field(default=0.0, validation_alias=AliasChoices("grandTotal", "grand_total"))

    # Effective order time, naive local wall time
    placed_at: Optional[datetime] = None

    @field_validator("id", "date_text", mode="before")
    @classmethod
    def _clean_text(cls, v: Any) -> Optional[str]:
        return normalize_text(v)

    @field_validator("timestamp", "placed_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, v: Any) -> Optional[datetime]:
        return parse_timestamp(v)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> Optional[OrderStatus]:
        return OrderStatus.parse(v)

    @field_validator("cart_items", mode="before")
    @classmethod
    def _default_items(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("address_info", mode="before")
    @classmethod
    def _default_address(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("subtotal", "delivery_charge", "discount_amount", "grand_total", mode="before")
    @classmethod
    def _clean_amount(cls, v: Any) -> float:
        amount = coerce_amount(v)
        return 0.0 if amount is None else amount

    @model_validator(mode="after")
    def _resolve_placed_at(self) -> "Order":
        tz_name = get_settings().analytics.timezone
        moment = self.placed_at or self.timestamp or parse_date_text(self.date_text)
        self.placed_at = to_local(moment, tz_name) if moment is not None else None
        return self

    @property
    def is_cancelled(self) -> bool:
        return self.status is OrderStatus.CANCELLED

    @property
    def is_delivered(self) -> bool:
        return self.status is OrderStatus.DELIVERED

    @property
    def customer_name(self) -> Optional[str]:
        return self.address_info.name

    @property
    def city(self) -> Optional[str]:
        return self.address_info.city

    @property
    def phone(self) -> Optional[str]:
        return self.address_info.phone_number


class UserActivity(BaseModel):
    """Snapshot of a user's activity counters and histories"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uid: Optional[str] = Field(default=None, validation_alias=AliasChoices("uid", "id", "userId"))
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool = Field(default=True, validation_alias=AliasChoices("isActive", "is_active"))

    # Cumulative counters
    page_visits: int = Field(default=0, validation_alias=AliasChoices("pageVisits", "page_visits"))
    total_orders: int = Field(default=0, validation_alias=AliasChoices("totalOrders", "total_orders"))
    total_spent: float = Field(default=0.0, validation_alias=AliasChoices("totalSpent", "total_spent"))
    search_queries: int = Field(default=0, validation_alias=AliasChoices("searchQueries", "search_queries"))
    cart_actions: int = Field(default=0, validation_alias=AliasChoices("cartActions", "cart_actions"))
    product_views: int = Field(default=0, validation_alias=AliasChoices("productViews", "product_views"))
    engagement_events: int = Field(default=0, validation_alias=AliasChoices("engagementEvents", "engagement_events"))
    single_page_visits: int = Field(default=0, validation_alias=AliasChoices("singlePageVisits", "single_page_visits"))
    cart_abandonment_count: int = Field(
        default=0, validation_alias=AliasChoices("cartAbandonmentCount", "cart_abandonment_count")
    )
    cart_to_checkout_conversions: int = Field(
        default=0, validation_alias=AliasChoices("cartToCheckoutConversions", "cart_to_checkout_conversions")
    )
    avg_session_duration: float = Field(default=0.0, validation_alias=AliasChoices("avgSessionDuration", "avg_session_duration"))
    last_order_amount: float = Field(default=0.0, validation_alias=AliasChoices("lastOrderAmount", "last_order_amount"))

    # Dates, naive local wall time
    last_visit: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("lastVisit", "last_visit"))
    joined_at: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("date", "createdAt", "joined_at"))
    last_order_date: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("lastOrderDate", "last_order_date"))

    # Preferences
    page_breakdown: Dict[str, int] = Field(default_factory=dict, validation_alias=AliasChoices("pageBreakdown", "page_breakdown"))
    category_preferences: Dict[str, int] = Field(
        default_factory=dict, validation_alias=AliasChoices("categoryPreferences", "category_preferences")
    )
    price_range_preferences: Dict[str, int] = Field(
        default_factory=dict, validation_alias=AliasChoices("priceRangePreferences", "price_range_preferences")
    )
    search_preferences: Dict[str, int] = Field(
        default_factory=dict, validation_alias=AliasChoices("searchPreferences", "search_preferences")
    )
    spending_pattern: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("spendingPattern", "spending_pattern"))

    # Bounded histories, oldest first
    order_history: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("orderHistory", "order_history"))
    view_history: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("viewHistory", "view_history"))
    search_history: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("searchHistory", "search_history"))
    cart_history: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("cartHistory", "cart_history"))
    user_journey: List[Dict[str, Any]] = Field(default_factory=list, validation_alias=AliasChoices("userJourney", "user_journey"))

    # Derived fields, recomputed by the tracker
    engagement_score: Optional[int] = Field(default=None, validation_alias=AliasChoices("engagementScore", "engagement_score"))
    loyalty_score: Optional[int] = Field(default=None, validation_alias=AliasChoices("loyaltyScore", "loyalty_score"))
    lifecycle_stage: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("customerLifecycleStage", "lifecycle_stage")
    )

    @field_validator("uid", "name", "email", "phone", "lifecycle_stage", mode="before")
    @classmethod
    def _clean_text(cls, v: Any) -> Optional[str]:
        return normalize_text(v)

    @field_validator("is_active", mode="before")
    @classmethod
    def _default_active(cls, v: Any) -> Any:
        return True if v is None else v

    @field_validator(
        "page_visits",
        "total_orders",
        "search_queries",
        "cart_actions",
        "product_views",
        "engagement_events",
        "single_page_visits",
        "cart_abandonment_count",
        "cart_to_checkout_conversions",
        mode="before",
    )
    @classmethod
    def _clean_counter(cls, v: Any) -> int:
        return coerce_count(v)

    @field_validator("total_spent", "avg_session_duration", "last_order_amount", mode="before")
    @classmethod
    def _clean_amount(cls, v: Any) -> float:
        amount = coerce_amount(v)
        return 0.0 if amount is None else amount

    @field_validator("engagement_score", "loyalty_score", mode="before")
    @classmethod
    def _clean_score(cls, v: Any) -> Optional[int]:
        amount = coerce_amount(v)
        return None if amount is None else int(amount)

    @field_validator("last_visit", "joined_at", "last_order_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Optional[datetime]:
        return parse_timestamp(v)

    @field_validator(
        "page_breakdown",
        "category_preferences",
        "price_range_preferences",
        "search_preferences",
        mode="before",
    )
    @classmethod
    def _clean_counts(cls, v: Any) -> Dict[str, int]:
        if not isinstance(v, dict):
            return {}
        return {str(key): coerce_count(count) for key, count in v.items()}

    @field_validator("spending_pattern", mode="before")
    @classmethod
    def _default_mapping(cls, v: Any) -> Dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator(
        "order_history",
        "view_history",
        "search_history",
        "cart_history",
        "user_journey",
        mode="before",
    )
    @classmethod
    def _clean_history(cls, v: Any) -> List[Dict[str, Any]]:
        if not isinstance(v, list):
            return []
        return [entry for entry in v if isinstance(entry, dict)]

    @model_validator(mode="after")
    def _localize_dates(self) -> "UserActivity":
        tz_name = get_settings().analytics.timezone
        for field_name in ("last_visit", "joined_at", "last_order_date"):
            value = getattr(self, field_name)
            if value is not None:
                setattr(self, field_name, to_local(value, tz_name))
        return self

    @property
    def first_order_at(self) -> Optional[datetime]:
        """Date of the oldest order still held in the history"""
        if not self.order_history:
            return None
        moment = parse_timestamp(self.order_history[0].get("date"))
        if moment is None:
            return None
        return to_local(moment, get_settings().analytics.timezone)


def coerce_records(records: Optional[Iterable[Any]], model: Type[RecordT]) -> Tuple[List[RecordT], int]:
    """
    Validate raw documents into models, skipping the ones that cannot be parsed.

    Returns:
        Tuple of (valid records, number of skipped documents)
    """
    valid: List[RecordT] = []
    skipped = 0

    for index, record in enumerate(records or []):
        if isinstance(record, model):
            valid.append(record)
            continue

        if not isinstance(record, dict):
            skipped += 1
            logger.warning("Skipping non-document record", model=model.__name__, index=index)
            continue

        try:
            valid.append(model.model_validate(record))
        except ValidationError as e:
            skipped += 1
            logger.warning(
                "Skipping malformed record",
                model=model.__name__,
                index=index,
                record_id=record.get("id"),
                errors=e.error_count(),
            )

    return valid, skipped


def ensure_orders(records: Optional[Iterable[Any]]) -> List[Order]:
    """Coerce raw order documents (or pass models through)"""
    orders, _ = coerce_records(records, Order)
    return orders


def ensure_users(records: Optional[Iterable[Any]]) -> List[UserActivity]:
    """Coerce raw user documents (or pass models through)"""
    users, _ = coerce_records(records, UserActivity)
    return users
