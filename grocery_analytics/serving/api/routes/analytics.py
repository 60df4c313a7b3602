"""
Analytics API Endpoints

Runs the analytics aggregations over documents posted by the dashboard.
Malformed envelopes are rejected with 422; malformed documents inside a
valid envelope are skipped and counted.
"""

from datetime import date, datetime
from typing import Any, List, Optional, Union

from fastapi import APIRouter
from pydantic import BaseModel, Field, model_validator
import structlog

from grocery_analytics.analytics.inventory import DateFilter, ProductStats, aggregate_product_stats
from grocery_analytics.analytics.orders import DateRange
from grocery_analytics.ingestion.records import ensure_users
from grocery_analytics.transformation.enrichers import CustomerEnricher, CustomerScore
from grocery_analytics.transformation.transformers import AnalyticsSnapshot, AnalyticsTransformer

router = APIRouter()
logger = structlog.get_logger(__name__)


class DateBoundsMixin(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    def date_range(self) -> Optional[DateRange]:
        if self.start_date is None and self.end_date is None:
            return None
        return DateRange(start=self.start_date, end=self.end_date)


class SummaryRequest(DateBoundsMixin):
    """Analytics summary request"""
    orders: List[Any]
    users: Optional[List[Any]] = None
    range_days: Optional[int] = Field(default=None, ge=0)
    search: Optional[str] = None
    now: Optional[datetime] = None

    def window(self) -> Union[int, DateRange, None]:
        return self.date_range() or self.range_days


class InventoryRequest(DateBoundsMixin):
    """Inventory statistics request"""
    orders: List[Any]
    date_filter: DateFilter = DateFilter.ALL
    now: Optional[datetime] = None


class CustomersRequest(BaseModel):
    """Customer scoring request"""
    users: List[Any]
    now: Optional[datetime] = None


@router.post("/summary", response_model=AnalyticsSnapshot)
async def analytics_summary(request: SummaryRequest) -> AnalyticsSnapshot:
    """Order summary, period comparison, inventory and customer scores"""
    transformer = AnalyticsTransformer()
    return transformer.build_snapshot(
        request.orders,
        request.users,
        window=request.window(),
        now=request.now,
        search=request.search,
    )


@router.post("/inventory", response_model=List[ProductStats])
async def inventory_stats(request: InventoryRequest) -> List[ProductStats]:
    """Per-product usage statistics, largest quantity first"""
    stats = aggregate_product_stats(
        request.orders,
        date_filter=request.date_filter,
        date_range=request.date_range(),
        now=request.now,
    )
    logger.info("Inventory statistics computed", products=len(stats), date_filter=request.date_filter.value)
    return list(stats.values())


@router.post("/customers", response_model=List[CustomerScore])
async def customer_scores(request: CustomersRequest) -> List[CustomerScore]:
    """Engagement, loyalty and lifecycle scores for every user"""
    enricher = CustomerEnricher(reference_date=request.now)
    return [enricher.score_customer(user) for user in ensure_users(request.users)]
