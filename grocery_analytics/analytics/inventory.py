"""
Inventory Statistics

Per-product usage statistics for the inventory view: how much of each
product was ordered, in how many lines, for how much money and when.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

import polars as pl
import structlog
from pydantic import BaseModel

from grocery_analytics.analytics.frames import line_items_frame
from grocery_analytics.analytics.orders import DateRange, OrderInput, exclude_cancelled
from grocery_analytics.config import get_settings
from grocery_analytics.ingestion.cleaners import resolve_now
from grocery_analytics.ingestion.records import ProductGroup

logger = structlog.get_logger(__name__)

ProductKey = Tuple[str, str]


class DateFilter(str, Enum):
    """Inventory date filters"""
    TODAY = "today"
    YESTERDAY = "yesterday"
    ALL = "all"
    CUSTOM = "custom"


class ProductStats(BaseModel):
    """Usage statistics for one (product, category) pair"""
    name: str
    category: str
    total_quantity: float = 0.0
    total_orders: int = 0
    total_revenue: float = 0.0
    last_ordered_at: Optional[datetime] = None

    @property
    def product_group(self) -> ProductGroup:
        return ProductGroup.classify(self.category)

    def quantity_label(self) -> str:
        """Quantity with its selling unit, e.g. ``3 pieces`` or ``1.50 kg``"""
        if self.product_group.unit == "piece":
            count = int(self.total_quantity)
            return f"{count} piece{'s' if count > 1 else ''}"
        return f"{self.total_quantity:.2f} kg"


def _day_bounds(date_filter: DateFilter, date_range: Optional[DateRange], now: Optional[datetime]) -> Optional[DateRange]:
    if date_filter is DateFilter.ALL:
        return None

    if date_filter is DateFilter.CUSTOM:
        if date_range is None or (date_range.start is None and date_range.end is None):
            return None
        return date_range

    today = resolve_now(now, get_settings().analytics.timezone).date()
    day = today if date_filter is DateFilter.TODAY else today - timedelta(days=1)
    return DateRange(start=day, end=day)


def aggregate_product_stats(
    orders: OrderInput,
    date_filter: Union[DateFilter, str] = DateFilter.ALL,
    date_range: Optional[DateRange] = None,
    now: Optional[datetime] = None,
) -> Dict[ProductKey, ProductStats]:
    """
    Aggregate non-cancelled line items per (product title, category).

    Args:
        orders: Orders or raw order documents
        date_filter: ``today``, ``yesterday``, ``all`` or ``custom``
        date_range: Inclusive range used by the ``custom`` filter; with no
            bounds the filter keeps everything
        now: Reference time, defaults to the local clock

    Returns:
        Mapping ordered by total quantity, largest first. Missing quantities
        count as zero here.
    """
    date_filter = DateFilter(date_filter)
    analytics = get_settings().analytics

    active = exclude_cancelled(orders)
    bounds = _day_bounds(date_filter, date_range, now)
    if bounds is not None:
        before = len(active)
        active = [o for o in active if o.placed_at is not None and bounds.contains(o.placed_at)]
        logger.debug("Filtered inventory orders", date_filter=date_filter.value, kept=len(active), total=before)

    items = line_items_frame(active)
    if items.is_empty():
        return {}

    grouped = (
        items.with_columns([
            pl.col("title").fill_null(pl.lit(analytics.unknown_product)),
            pl.col("category").fill_null(pl.lit(analytics.default_inventory_category)),
            pl.col("quantity").fill_null(0.0),
        ])
        .group_by(["title", "category"], maintain_order=True)
        .agg([
            pl.col("quantity").sum().alias("total_quantity"),
            pl.len().alias("total_orders"),
            (pl.col("quantity") * pl.col("price")).sum().alias("total_revenue"),
            pl.col("placed_at").max().alias("last_ordered_at"),
        ])
        .sort("total_quantity", descending=True, maintain_order=True)
    )

    stats: Dict[ProductKey, ProductStats] = {}
    for row in grouped.to_dicts():
        key = (row["title"], row["category"])
        stats[key] = ProductStats(
            name=row["title"],
            category=row["category"],
            total_quantity=row["total_quantity"],
            total_orders=row["total_orders"],
            total_revenue=row["total_revenue"],
            last_ordered_at=row["last_ordered_at"],
        )
    return stats


def product_stats_frame(stats: Union[Dict[ProductKey, ProductStats], List[ProductStats]]) -> pl.DataFrame:
    """Export shape of the product statistics table"""
    symbol = get_settings().exports.currency_symbol
    values = list(stats.values()) if isinstance(stats, dict) else list(stats)

    return pl.DataFrame(
        {
            "Product Name": [s.name for s in values],
            "Category": [s.product_group.label for s in values],
            "Total Quantity": [s.quantity_label() for s in values],
            "Total Orders": [s.total_orders for s in values],
            "Total Revenue": [f"{symbol}{s.total_revenue:.2f}" for s in values],
            "Last Ordered": [
                s.last_ordered_at.strftime("%Y-%m-%d %H:%M") if s.last_ordered_at else "N/A"
                for s in values
            ],
        },
        schema={
            "Product Name": pl.Utf8,
            "Category": pl.Utf8,
            "Total Quantity": pl.Utf8,
            "Total Orders": pl.Int64,
            "Total Revenue": pl.Utf8,
            "Last Ordered": pl.Utf8,
        },
    )
