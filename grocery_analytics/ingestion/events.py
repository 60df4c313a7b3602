"""
User Activity Events

Typed events emitted by the storefront as a shopper browses, searches, edits
the cart and checks out. The activity tracker folds them into a user's
activity snapshot.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from grocery_analytics.ingestion.cleaners import coerce_amount, normalize_text, parse_timestamp


class ActivityEventType(str, Enum):
    """Supported activity event types"""
    PAGE_VISIT = "page_visit"
    PRODUCT_INTERACTION = "product_interaction"
    CART_ACTION = "cart_action"
    SEARCH_QUERY = "search_query"
    ORDER_PLACEMENT = "order_placement"
    ENGAGEMENT = "engagement"


class CartAction(str, Enum):
    """Cart operations"""
    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"
    CLEAR = "clear"
    ABANDON = "abandon"
    CHECKOUT = "checkout"


class BaseActivityEvent(BaseModel):
    """Base class for all activity events"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    occurred_at: Optional[datetime] = Field(default=None, alias="timestamp")

    @field_validator("occurred_at", mode="before")
    @classmethod
    def _parse_occurred_at(cls, v: Any) -> Optional[datetime]:
        return parse_timestamp(v)


class PageVisitEvent(BaseActivityEvent):
    """A page was opened"""
    event_type: Literal["page_visit"] = "page_visit"
    page: str = "other"
    session_duration: float = Field(default=0.0, alias="sessionDuration")
    referrer: str = ""
    session_id: str = Field(default="", alias="sessionId")
    is_single_page_visit: bool = Field(default=False, alias="isSinglePageVisit")


class ProductInteractionEvent(BaseActivityEvent):
    """A product was viewed, liked or shared"""
    event_type: Literal["product_interaction"] = "product_interaction"
    product_id: str = Field(default="", alias="productId")
    product_name: str = Field(default="", alias="productName")
    category: Optional[str] = None
    price: float = 0.0
    action: str = "view"

    @field_validator("category", mode="before")
    @classmethod
    def _clean_category(cls, v: Any) -> Optional[str]:
        return normalize_text(v)

    @field_validator("price", mode="before")
    @classmethod
    def _clean_price(cls, v: Any) -> float:
        amount = coerce_amount(v)
        return 0.0 if amount is None else amount


class CartActionEvent(BaseActivityEvent):
    """An item was added to, removed from or updated in the cart"""
    event_type: Literal["cart_action"] = "cart_action"
    action: CartAction
    product_id: str = Field(default="", alias="productId")
    product_name: str = Field(default="", alias="productName")
    quantity: float = 0
    price: float = 0.0


class SearchQueryEvent(BaseActivityEvent):
    """A catalog search was run"""
    event_type: Literal["search_query"] = "search_query"
    query: str = ""
    results: int = 0
    clicked: bool = False
    clicked_product: str = Field(default="", alias="clickedProduct")


class OrderPlacementEvent(BaseActivityEvent):
    """An order was placed at checkout"""
    event_type: Literal["order_placement"] = "order_placement"
    order_id: str = Field(default="", alias="orderId")
    amount: float = 0.0
    items: List[Dict[str, Any]] = Field(default_factory=list)
    payment_method: str = Field(default="", alias="paymentMethod")
    delivery_address: str = Field(default="", alias="deliveryAddress")
    status: str = "pending"
    categories: List[str] = Field(default_factory=list)
    discount_used: float = Field(default=0.0, alias="discountUsed")

    @field_validator("amount", "discount_used", mode="before")
    @classmethod
    def _clean_amount(cls, v: Any) -> float:
        amount = coerce_amount(v)
        return 0.0 if amount is None else amount


class EngagementEvent(BaseActivityEvent):
    """Free-form engagement signal (review, share, wishlist, ...)"""
    event_type: Literal["engagement"] = "engagement"
    event: str
    value: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


ActivityEvent = Annotated[
    Union[
        PageVisitEvent,
        ProductInteractionEvent,
        CartActionEvent,
        SearchQueryEvent,
        OrderPlacementEvent,
        EngagementEvent,
    ],
    Field(discriminator="event_type"),
]

_event_adapter = TypeAdapter(ActivityEvent)


def parse_event(payload: Dict[str, Any]) -> BaseActivityEvent:
    """
    Parse a raw event payload using its ``event_type`` discriminator.

    Raises:
        pydantic.ValidationError: If the payload is not a valid event
    """
    return _event_adapter.validate_python(payload)
