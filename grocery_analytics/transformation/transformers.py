"""
Analytics Transformer

Orchestrates loading, aggregation, scoring, validation and export into one
analytics snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import polars as pl
import structlog
from pydantic import BaseModel, Field

from grocery_analytics.analytics.frames import line_items_frame, orders_frame
from grocery_analytics.analytics.inventory import (
    DateFilter,
    ProductStats,
    aggregate_product_stats,
    product_stats_frame,
)
from grocery_analytics.analytics.orders import (
    DateRange,
    OrderAggregator,
    OrderSummary,
    PeriodComparison,
    compare_periods,
)
from grocery_analytics.config import get_settings
from grocery_analytics.ingestion.cleaners import resolve_now
from grocery_analytics.ingestion.loader import DocumentFileConfig, DocumentLoader, LoadResult
from grocery_analytics.ingestion.records import Order, UserActivity, coerce_records
from grocery_analytics.quality.validators import (
    ValidationResult,
    create_line_items_validator,
    create_orders_validator,
)
from grocery_analytics.transformation.enrichers import CustomerEnricher, CustomerScore, enrich_customer_data

logger = structlog.get_logger(__name__)

Source = Union[str, Path, DocumentFileConfig]

CUSTOMER_TYPE_LABELS = {"vip": "VIP", "regular": "Regular", "new": "New"}


class SnapshotStatus(str, Enum):
    """Availability of the analytics snapshot"""
    AVAILABLE = "available"
    EMPTY = "empty"
    NO_DATA = "no_data"


class QualityReport(BaseModel):
    """Validation results of the order and line item frames"""
    orders: Optional[ValidationResult] = None
    line_items: Optional[ValidationResult] = None


class AnalyticsSnapshot(BaseModel):
    """Everything the analytics dashboard shows, computed in one pass"""
    status: SnapshotStatus
    generated_at: datetime
    summary: Optional[OrderSummary] = None
    comparison: Optional[PeriodComparison] = None
    inventory: List[ProductStats] = Field(default_factory=list)
    customers: List[CustomerScore] = Field(default_factory=list)
    quality: Optional[QualityReport] = None
    skipped_records: int = 0
    skipped_users: int = 0


@dataclass
class PipelineResult:
    """Result of an analytics pipeline run"""
    snapshot: AnalyticsSnapshot
    input_rows: int
    rows_dropped: int
    started_at: datetime
    completed_at: datetime
    duration_seconds: float
    output_paths: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def user_analytics_frame(
    users: Iterable[Union[UserActivity, Dict[str, Any]]],
    reference_date: Optional[datetime] = None,
) -> pl.DataFrame:
    """Export shape of the user analytics table"""
    return enrich_customer_data(users, reference_date).select([
        pl.col("name").fill_null(pl.lit("Anonymous")).alias("Name"),
        pl.col("email").fill_null(pl.lit("N/A")).alias("Email"),
        pl.col("total_spent").alias("Total Spent"),
        pl.col("total_orders").alias("Total Orders"),
        pl.col("page_visits").alias("Page Visits"),
        pl.col("last_visit").dt.strftime("%Y-%m-%d %H:%M").fill_null(pl.lit("Never")).alias("Last Visit"),
        pl.col("engagement_score").alias("Engagement Score"),
        pl.col("customer_type").replace(CUSTOMER_TYPE_LABELS).alias("Customer Type"),
        pl.col("joined_at").dt.strftime("%Y-%m-%d").fill_null(pl.lit("N/A")).alias("Join Date"),
    ])


class AnalyticsTransformer:
    """
    Analytics pipeline orchestrator.

    Example:
        transformer = AnalyticsTransformer()
        snapshot = transformer.build_snapshot(orders, users, window=30)
        result = transformer.run("exports/orders.json", "exports/users.json", export=True)
    """

    def __init__(
        self,
        output_path: Optional[str] = None,
        enable_validation: bool = True,
        loader: Optional[DocumentLoader] = None,
    ):
        self.output_path = Path(output_path or get_settings().exports.output_path)
        self.enable_validation = enable_validation
        self.loader = loader or DocumentLoader()
        self.aggregator = OrderAggregator()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def _validate(self, orders: List[Order]) -> Optional[QualityReport]:
        if not self.enable_validation:
            return None
        return QualityReport(
            orders=create_orders_validator().validate(orders_frame(orders), frame="orders"),
            line_items=create_line_items_validator().validate(line_items_frame(orders), frame="line_items"),
        )

    def build_snapshot(
        self,
        orders: Optional[Iterable[Any]],
        users: Optional[Iterable[Any]] = None,
        window: Union[int, DateRange, None] = None,
        now: Optional[datetime] = None,
        search: Optional[str] = None,
        inventory_filter: Union[DateFilter, str] = DateFilter.ALL,
        inventory_range: Optional[DateRange] = None,
    ) -> AnalyticsSnapshot:
        """
        Build the analytics snapshot.

        Args:
            orders: Order documents; ``None`` means they could not be read
            users: User activity documents
            window: Days back from ``now`` or a ``DateRange``; defaults to the
                configured range
            now: Reference time
            search: Customer name / city filter
            inventory_filter: Date filter for the inventory statistics
            inventory_range: Range for the ``custom`` inventory filter

        Returns:
            Snapshot with status ``no_data``, ``empty`` or ``available``
        """
        tz_name = get_settings().analytics.timezone
        current = resolve_now(now, tz_name)

        if orders is None:
            logger.warning("Order data unavailable, returning empty snapshot")
            return AnalyticsSnapshot(status=SnapshotStatus.NO_DATA, generated_at=current)

        records, skipped = coerce_records(orders, Order)
        user_records, skipped_users = coerce_records(users, UserActivity)

        enricher = CustomerEnricher(reference_date=current)
        customers = [enricher.score_customer(user) for user in user_records]

        window = get_settings().analytics.default_range_days if window is None else window
        comparison = compare_periods(records, window, now=current) if isinstance(window, int) else None

        if not records:
            logger.info("No orders to analyse", skipped_records=skipped)
            return AnalyticsSnapshot(
                status=SnapshotStatus.EMPTY,
                generated_at=current,
                summary=OrderSummary(
                    range_days=window if isinstance(window, int) else None,
                    date_range=window if isinstance(window, DateRange) else None,
                    search=search or None,
                    skipped_records=skipped,
                ),
                comparison=comparison,
                customers=customers,
                skipped_records=skipped,
                skipped_users=skipped_users,
            )

        summary = self.aggregator.summarize(records, window=window, now=current, search=search)
        summary.skipped_records = skipped

        inventory = aggregate_product_stats(
            records,
            date_filter=inventory_filter,
            date_range=inventory_range,
            now=current,
        )

        snapshot = AnalyticsSnapshot(
            status=SnapshotStatus.AVAILABLE,
            generated_at=current,
            summary=summary,
            comparison=comparison,
            inventory=list(inventory.values()),
            customers=customers,
            quality=self._validate(records),
            skipped_records=skipped,
            skipped_users=skipped_users,
        )

        logger.info(
            "Analytics snapshot built",
            orders=len(records),
            users=len(user_records),
            revenue=summary.totals.total_revenue,
            skipped_records=skipped,
        )
        return snapshot

    # -------------------------------------------------------------------------
    # Exports
    # -------------------------------------------------------------------------

    def _output_file(self, prefix: str, suffix: str, now: Optional[datetime] = None) -> Path:
        stamp = resolve_now(now, get_settings().analytics.timezone).strftime("%Y-%m-%d")
        self.output_path.mkdir(parents=True, exist_ok=True)
        return self.output_path / f"{prefix}-{stamp}.{suffix}"

    def export_product_stats(
        self,
        stats: Union[Dict[Any, ProductStats], List[ProductStats]],
        now: Optional[datetime] = None,
    ) -> str:
        """Write the product statistics CSV"""
        df = product_stats_frame(stats)
        output_file = self._output_file("product-stats", "csv", now)
        df.write_csv(output_file)
        logger.info("Product statistics exported", rows=len(df), file=str(output_file))
        return str(output_file)

    def export_user_analytics(
        self,
        users: Iterable[Union[UserActivity, Dict[str, Any]]],
        now: Optional[datetime] = None,
    ) -> str:
        """Write the user analytics CSV"""
        df = user_analytics_frame(users, reference_date=now)
        output_file = self._output_file("user-analytics", "csv", now)
        df.write_csv(output_file)
        logger.info("User analytics exported", rows=len(df), file=str(output_file))
        return str(output_file)

    def export_snapshot(self, snapshot: AnalyticsSnapshot, now: Optional[datetime] = None) -> str:
        """Write the full snapshot as JSON"""
        output_file = self._output_file("analytics-export", "json", now)
        output_file.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        logger.info("Analytics snapshot exported", status=snapshot.status.value, file=str(output_file))
        return str(output_file)

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _load(self, source: Source, collection: str) -> LoadResult:
        config = source if isinstance(source, DocumentFileConfig) else DocumentFileConfig(source, collection)
        return self.loader.load(config)

    def run(
        self,
        order_source: Source,
        user_source: Optional[Source] = None,
        window: Union[int, DateRange, None] = None,
        now: Optional[datetime] = None,
        search: Optional[str] = None,
        export: bool = False,
    ) -> PipelineResult:
        """
        Load exported collections, build the snapshot and optionally export it.

        Pipeline:
        1. Load orders (and users)
        2. Build the snapshot
        3. Write CSV and JSON exports
        """
        started_at = datetime.now(timezone.utc)
        errors: List[str] = []
        output_paths: List[str] = []

        logger.info("Starting analytics pipeline", order_source=str(order_source))

        order_load = self._load(order_source, "orders")
        orders = order_load.records if order_load.succeeded else None
        if order_load.error_message:
            errors.append(f"orders: {order_load.error_message}")

        users = None
        if user_source is not None:
            user_load = self._load(user_source, "users")
            users = user_load.records if user_load.succeeded else None
            if user_load.error_message:
                errors.append(f"users: {user_load.error_message}")

        snapshot = self.build_snapshot(orders, users, window=window, now=now, search=search)

        if export:
            try:
                output_paths.append(self.export_snapshot(snapshot, now))
                if snapshot.status is SnapshotStatus.AVAILABLE:
                    output_paths.append(self.export_product_stats(snapshot.inventory, now))
                if users:
                    output_paths.append(self.export_user_analytics(users, now))
            except OSError as e:
                logger.error("Export failed", error=str(e))
                errors.append(f"export: {e}")

        completed_at = datetime.now(timezone.utc)
        input_rows = order_load.rows_loaded + order_load.rows_failed

        result = PipelineResult(
            snapshot=snapshot,
            input_rows=input_rows,
            rows_dropped=order_load.rows_failed + snapshot.skipped_records,
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=(completed_at - started_at).total_seconds(),
            output_paths=output_paths,
            errors=errors,
        )

        logger.info(
            "Analytics pipeline complete",
            status=snapshot.status.value,
            input_rows=input_rows,
            rows_dropped=result.rows_dropped,
            duration_seconds=round(result.duration_seconds, 3),
            errors=len(errors),
        )
        return result
