"""
Order Analytics

Revenue, category, trend, product and city aggregates over a set of orders.

Every function accepts validated ``Order`` models or raw order documents.
Raw documents are coerced first; documents that cannot be validated are
skipped with a warning. Cancelled orders are left out of every revenue,
category and product aggregate but still count towards raw order totals.
"""

import calendar
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import polars as pl
import structlog
from pydantic import BaseModel, Field, model_validator

from grocery_analytics.analytics.frames import line_items_frame, orders_frame, ranked_pairs
from grocery_analytics.config import get_settings
from grocery_analytics.ingestion.cleaners import resolve_now
from grocery_analytics.ingestion.records import Order, ProductGroup, coerce_records, ensure_orders

logger = structlog.get_logger(__name__)

OrderInput = Iterable[Union[Order, Dict[str, Any]]]


class DateRange(BaseModel):
    """Inclusive calendar date range; either bound may be open"""
    start: Optional[date] = None
    end: Optional[date] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "DateRange":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self

    def contains(self, moment: datetime) -> bool:
        day = moment.date()
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


class OrderPeriod(str, Enum):
    """Order listing filters"""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class OrderTotals(BaseModel):
    """Headline order metrics"""
    total_revenue: float = 0.0
    total_orders: int = 0
    avg_order_value: float = 0.0
    unique_customers: int = 0
    completion_rate: float = 0.0


class DailyTrendPoint(BaseModel):
    """Revenue and order count for one local calendar day"""
    date: date
    revenue: float = 0.0
    order_count: int = 0


class GroupStats(BaseModel):
    """Line item totals for one product group"""
    product_group: ProductGroup
    line_count: int = 0
    revenue: float = 0.0
    units: float = 0.0


class PeriodComparison(BaseModel):
    """Current window against the preceding window of the same length"""
    range_days: int
    current_revenue: float = 0.0
    previous_revenue: float = 0.0
    revenue_growth: Optional[float] = None
    current_orders: int = 0
    previous_orders: int = 0
    order_growth: Optional[float] = None


class CustomerDayGroup(BaseModel):
    """Orders one customer placed on one day"""
    customer_name: str
    orders: List[Order] = Field(default_factory=list)
    total_amount: float = 0.0
    item_count: int = 0


class DayGroup(BaseModel):
    """All orders of one local calendar day, grouped by customer"""
    date: date
    customers: List[CustomerDayGroup] = Field(default_factory=list)

    @property
    def order_count(self) -> int:
        return sum(len(group.orders) for group in self.customers)


class OrderListing(BaseModel):
    """Orders grouped by day (newest first) plus the ones without a date"""
    days: List[DayGroup] = Field(default_factory=list)
    undated: List[Order] = Field(default_factory=list)


class OrderSummary(BaseModel):
    """Every order aggregate computed over one filtered window"""
    range_days: Optional[int] = None
    date_range: Optional[DateRange] = None
    search: Optional[str] = None
    totals: OrderTotals = Field(default_factory=OrderTotals)
    category_breakdown: Dict[str, float] = Field(default_factory=dict)
    daily_trend: List[DailyTrendPoint] = Field(default_factory=list)
    top_products: List[Tuple[str, float]] = Field(default_factory=list)
    geo_breakdown: List[Tuple[str, float]] = Field(default_factory=list)
    product_groups: List[GroupStats] = Field(default_factory=list)
    skipped_records: int = 0


def _months_back(day: date, months: int) -> date:
    """Same day ``months`` calendar months earlier, clamped to the month's end"""
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _drop_undated(orders: List[Order]) -> List[Order]:
    dated = [order for order in orders if order.placed_at is not None]
    dropped = len(orders) - len(dated)
    if dropped:
        logger.warning("Dropping orders without a parseable date", count=dropped)
    return dated


def filter_by_date_range(
    orders: OrderInput,
    window: Union[int, DateRange],
    now: Optional[datetime] = None,
) -> List[Order]:
    """
    Keep the orders placed inside a window.

    Args:
        orders: Orders or raw order documents
        window: Number of days back from ``now`` (``[now - days, now]``), or an
            inclusive ``DateRange`` of local calendar dates
        now: Reference time, defaults to the local clock

    Returns:
        Orders inside the window, in input order
    """
    dated = _drop_undated(ensure_orders(orders))

    if isinstance(window, DateRange):
        return [order for order in dated if window.contains(order.placed_at)]

    if window < 0:
        raise ValueError("window must be a non-negative number of days")

    current = resolve_now(now, get_settings().analytics.timezone)
    cutoff = current - timedelta(days=window)
    return [order for order in dated if cutoff <= order.placed_at <= current]


def filter_by_period(
    orders: OrderInput,
    period: Union[OrderPeriod, str],
    now: Optional[datetime] = None,
) -> List[Order]:
    """
    Order listing filter.

    ``today`` keeps the current local day, ``week`` everything since the
    same day a week ago, ``month`` everything since the same day last month.
    """
    period = OrderPeriod(period)
    records = ensure_orders(orders)
    if period is OrderPeriod.ALL:
        return records

    today = resolve_now(now, get_settings().analytics.timezone).date()
    dated = _drop_undated(records)

    if period is OrderPeriod.TODAY:
        return [order for order in dated if order.placed_at.date() == today]
    if period is OrderPeriod.WEEK:
        since = today - timedelta(days=7)
    else:
        since = _months_back(today, 1)
    return [order for order in dated if order.placed_at.date() >= since]


def search_orders(orders: OrderInput, term: Optional[str]) -> List[Order]:
    """Case-insensitive match on customer name or city; empty term keeps all"""
    records = ensure_orders(orders)
    needle = (term or "").strip().lower()
    if not needle:
        return records

    def matches(order: Order) -> bool:
        return any(
            value and needle in value.lower()
            for value in (order.customer_name, order.city)
        )

    return [order for order in records if matches(order)]


def exclude_cancelled(orders: OrderInput) -> List[Order]:
    return [order for order in ensure_orders(orders) if not order.is_cancelled]


def compute_totals(orders: OrderInput) -> OrderTotals:
    """
    Headline metrics.

    Revenue counts non-cancelled orders only; order count, average order
    value denominator, unique customers and completion rate use every order.
    """
    df = orders_frame(ensure_orders(orders))
    if df.is_empty():
        return OrderTotals()

    total_orders = df.height
    total_revenue = float(df.filter(~pl.col("is_cancelled"))["grand_total"].sum())
    delivered = int(df["is_delivered"].sum())

    return OrderTotals(
        total_revenue=total_revenue,
        total_orders=total_orders,
        avg_order_value=total_revenue / total_orders,
        unique_customers=df["phone"].drop_nulls().n_unique(),
        completion_rate=delivered / total_orders * 100,
    )


def _active_line_items(orders: OrderInput) -> pl.DataFrame:
    items = line_items_frame(ensure_orders(orders))
    return items.filter(~pl.col("is_cancelled"))


def compute_category_breakdown(orders: OrderInput) -> Dict[str, float]:
    """Line revenue per raw category label; missing quantity counts as one unit"""
    items = _active_line_items(orders)
    if items.is_empty():
        return {}

    grouped = (
        items.with_columns([
            pl.col("category").fill_null(pl.lit(get_settings().analytics.other_category)),
            (pl.col("price") * pl.col("quantity").fill_null(1.0)).alias("line_total"),
        ])
        .group_by("category", maintain_order=True)
        .agg(pl.col("line_total").sum())
    )
    return dict(zip(grouped["category"].to_list(), grouped["line_total"].to_list()))


def compute_daily_trend(orders: OrderInput) -> List[DailyTrendPoint]:
    """Revenue and order count per local day, oldest first"""
    df = orders_frame(ensure_orders(orders)).filter(
        ~pl.col("is_cancelled") & pl.col("order_date").is_not_null()
    )
    if df.is_empty():
        return []

    grouped = (
        df.group_by("order_date")
        .agg([
            pl.col("grand_total").sum().alias("revenue"),
            pl.len().alias("order_count"),
        ])
        .sort("order_date")
    )
    return [
        DailyTrendPoint(date=day, revenue=revenue, order_count=count)
        for day, revenue, count in grouped.rows()
    ]


def compute_top_products(orders: OrderInput, n: Optional[int] = None) -> List[Tuple[str, float]]:
    """Units sold per product title, best sellers first"""
    analytics = get_settings().analytics
    n = analytics.top_products_limit if n is None else n
    items = _active_line_items(orders)
    if items.is_empty() or n <= 0:
        return []

    grouped = (
        items.with_columns([
            pl.col("title").fill_null(pl.lit(analytics.unknown_product)),
            pl.col("quantity").fill_null(1.0).alias("units"),
        ])
        .group_by("title", maintain_order=True)
        .agg(pl.col("units").sum())
    )
    return ranked_pairs(grouped, "title", "units", n)


def compute_geo_breakdown(orders: OrderInput, n: Optional[int] = None) -> List[Tuple[str, float]]:
    """Grand total revenue per delivery city, highest first"""
    analytics = get_settings().analytics
    n = analytics.top_cities_limit if n is None else n
    df = orders_frame(ensure_orders(orders)).filter(~pl.col("is_cancelled"))
    if df.is_empty() or n <= 0:
        return []

    grouped = (
        df.with_columns(pl.col("city").fill_null(pl.lit(analytics.unknown_city)))
        .group_by("city", maintain_order=True)
        .agg(pl.col("grand_total").sum().alias("revenue"))
    )
    return ranked_pairs(grouped, "city", "revenue", n)


def compute_group_breakdown(orders: OrderInput) -> List[GroupStats]:
    """Line count, revenue and units for every product group"""
    items = _active_line_items(orders)
    stats = {group: GroupStats(product_group=group) for group in ProductGroup}
    if items.is_empty():
        return list(stats.values())

    grouped = (
        items.with_columns(pl.col("quantity").fill_null(1.0).alias("units"))
        .group_by("product_group")
        .agg([
            pl.len().alias("line_count"),
            (pl.col("price") * pl.col("units")).sum().alias("revenue"),
            pl.col("units").sum(),
        ])
    )
    for group, line_count, revenue, units in grouped.rows():
        stats[ProductGroup(group)] = GroupStats(
            product_group=ProductGroup(group),
            line_count=line_count,
            revenue=revenue,
            units=units,
        )
    return list(stats.values())


def _growth(current: float, previous: float) -> Optional[float]:
    if previous == 0:
        return None
    return (current - previous) / previous * 100


def compare_periods(
    orders: OrderInput,
    range_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PeriodComparison:
    """
    Compare the last ``range_days`` days with the window just before it.

    Growth percentages are ``None`` when the previous window is empty.
    """
    analytics = get_settings().analytics
    range_days = analytics.default_range_days if range_days is None else range_days
    current_end = resolve_now(now, analytics.timezone)
    current_start = current_end - timedelta(days=range_days)
    previous_start = current_start - timedelta(days=range_days)

    dated = _drop_undated(ensure_orders(orders))
    current = [o for o in dated if current_start <= o.placed_at <= current_end]
    previous = [o for o in dated if previous_start <= o.placed_at < current_start]

    current_totals = compute_totals(current)
    previous_totals = compute_totals(previous)

    return PeriodComparison(
        range_days=range_days,
        current_revenue=current_totals.total_revenue,
        previous_revenue=previous_totals.total_revenue,
        revenue_growth=_growth(current_totals.total_revenue, previous_totals.total_revenue),
        current_orders=current_totals.total_orders,
        previous_orders=previous_totals.total_orders,
        order_growth=_growth(current_totals.total_orders, previous_totals.total_orders),
    )


def group_orders_by_day(orders: OrderInput) -> OrderListing:
    """
    Admin order listing.

    Dated orders are grouped by local date (newest first) and then by
    customer name in first-seen order. Cancelled orders are listed too.
    """
    unknown = get_settings().analytics.unknown_customer
    days: Dict[date, Dict[str, CustomerDayGroup]] = {}
    undated: List[Order] = []

    for order in ensure_orders(orders):
        if order.placed_at is None:
            undated.append(order)
            continue

        name = order.customer_name or unknown
        customers = days.setdefault(order.placed_at.date(), {})
        group = customers.setdefault(name, CustomerDayGroup(customer_name=name))
        group.orders.append(order)
        group.total_amount += order.grand_total
        group.item_count += len(order.cart_items)

    return OrderListing(
        days=[
            DayGroup(date=day, customers=list(days[day].values()))
            for day in sorted(days, reverse=True)
        ],
        undated=undated,
    )


class OrderAggregator:
    """
    Runs every order aggregate over one filtered window.

    Usage:
        aggregator = OrderAggregator()
        summary = aggregator.summarize(orders, window=30, search="pune")
    """

    def __init__(self, top_products: Optional[int] = None, top_cities: Optional[int] = None):
        analytics = get_settings().analytics
        self.top_products = analytics.top_products_limit if top_products is None else top_products
        self.top_cities = analytics.top_cities_limit if top_cities is None else top_cities
        self.default_window = analytics.default_range_days

    def summarize(
        self,
        orders: OrderInput,
        window: Union[int, DateRange, None] = None,
        now: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> OrderSummary:
        records, skipped = coerce_records(orders, Order)
        window = self.default_window if window is None else window

        selected = search_orders(filter_by_date_range(records, window, now=now), search)

        logger.info(
            "Summarizing orders",
            input_orders=len(records),
            selected_orders=len(selected),
            skipped_records=skipped,
        )

        return OrderSummary(
            range_days=window if isinstance(window, int) else None,
            date_range=window if isinstance(window, DateRange) else None,
            search=search or None,
            totals=compute_totals(selected),
            category_breakdown=compute_category_breakdown(selected),
            daily_trend=compute_daily_trend(selected),
            top_products=compute_top_products(selected, self.top_products),
            geo_breakdown=compute_geo_breakdown(selected, self.top_cities),
            product_groups=compute_group_breakdown(selected),
            skipped_records=skipped,
        )
