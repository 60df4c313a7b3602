"""
Data Validation Module

Quality checks over the order and line item frames built by
``grocery_analytics.analytics.frames``. A failed check is logged and
reported in the snapshot; it never stops the aggregation.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional

import polars as pl
import structlog

from grocery_analytics.ingestion.records import OrderStatus, ProductGroup

logger = structlog.get_logger(__name__)


class ValidationSeverity(str, Enum):
    """How much a failed check counts against the frame"""
    ERROR = "error"  # frame is reported as failed
    WARNING = "warning"  # frame is usable but partial
    INFO = "info"


class ValidationStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Outcome of one check over one column"""
    name: str
    column: str
    severity: ValidationSeverity
    passed: bool
    message: str
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """All check outcomes for one frame"""
    status: ValidationStatus
    checks: List[ValidationCheck] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_checks(self) -> int:
        return len(self.checks)

    @property
    def passed_checks(self) -> int:
        return sum(1 for c in self.checks if c.passed)

    @property
    def failed_checks(self) -> int:
        return self._failed(ValidationSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return self._failed(ValidationSeverity.WARNING)

    @property
    def success_rate(self) -> float:
        if not self.checks:
            return 100.0
        return self.passed_checks / self.total_checks * 100

    def _failed(self, severity: ValidationSeverity) -> int:
        return sum(1 for c in self.checks if not c.passed and c.severity is severity)


# A rule gets the frame and the column and returns the number of offending rows
RowRule = Callable[[pl.DataFrame, str], int]


def _null_rows(df: pl.DataFrame, column: str) -> int:
    return df[column].null_count()


def _duplicate_rows(df: pl.DataFrame, column: str) -> int:
    present = df[column].drop_nulls()
    return len(present) - present.n_unique()


class DataValidator:
    """
    Column checks collected with chained ``require_*`` calls.

    Example:
        result = (
            DataValidator()
            .require_present("order_id")
            .require_at_least("grand_total", 0)
            .validate(orders_df)
        )
    """

    def __init__(self):
        self._rules: List[tuple] = []

    def _add(self, name: str, column: str, rule: RowRule, severity: ValidationSeverity, describe: str) -> "DataValidator":
        self._rules.append((name, column, rule, severity, describe))
        return self

    def require_present(self, column: str, severity: ValidationSeverity = ValidationSeverity.ERROR) -> "DataValidator":
        """Every row has a value"""
        return self._add(f"not_null_{column}", column, _null_rows, severity, "missing values")

    def require_unique(self, column: str, severity: ValidationSeverity = ValidationSeverity.ERROR) -> "DataValidator":
        """Present values never repeat; nulls are left to ``require_present``"""
        return self._add(f"unique_{column}", column, _duplicate_rows, severity, "duplicate values")

    def require_at_least(
        self,
        column: str,
        minimum: float,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Present values are not below ``minimum``"""
        def rule(df: pl.DataFrame, col: str) -> int:
            return df.filter(pl.col(col) < minimum).height

        return self._add(f"min_{column}", column, rule, severity, f"values below {minimum}")

    def require_one_of(
        self,
        column: str,
        allowed: List[Any],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Present values come from ``allowed``"""
        def rule(df: pl.DataFrame, col: str) -> int:
            return df.filter(pl.col(col).is_not_null() & ~pl.col(col).is_in(allowed)).height

        return self._add(f"allowed_{column}", column, rule, severity, "unexpected values")

    @staticmethod
    def _run(
        df: pl.DataFrame,
        name: str,
        column: str,
        rule: RowRule,
        severity: ValidationSeverity,
        describe: str,
    ) -> ValidationCheck:
        if column not in df.columns:
            return ValidationCheck(
                name, column, severity, passed=False, message=f"column '{column}' not found"
            )

        failed = rule(df, column)
        return ValidationCheck(
            name,
            column,
            severity,
            passed=failed == 0,
            message=f"{failed} of {df.height} rows have {describe}" if failed else "ok",
            failed_rows=failed,
            total_rows=df.height,
        )

    def validate(self, df: pl.DataFrame, frame: Optional[str] = None) -> ValidationResult:
        """Run every check; errors fail the frame, warnings make it partial"""
        checks = [self._run(df, *rule) for rule in self._rules]

        for check in checks:
            if not check.passed:
                logger.warning(
                    "Validation check failed",
                    frame=frame,
                    check=check.name,
                    severity=check.severity.value,
                    message=check.message,
                )

        result = ValidationResult(status=ValidationStatus.PASSED, checks=checks)
        if result.failed_checks:
            result.status = ValidationStatus.FAILED
        elif result.warning_count:
            result.status = ValidationStatus.PARTIAL

        logger.info(
            "Validation complete",
            frame=frame,
            rows=df.height,
            status=result.status.value,
            passed=result.passed_checks,
            total=result.total_checks,
        )
        return result


def create_orders_validator() -> DataValidator:
    """Checks for the one-row-per-order frame"""
    return (
        DataValidator()
        .require_present("order_id", severity=ValidationSeverity.WARNING)
        .require_unique("order_id", severity=ValidationSeverity.WARNING)
        .require_present("placed_at", severity=ValidationSeverity.WARNING)
        .require_present("status", severity=ValidationSeverity.WARNING)
        .require_one_of("status", [status.value for status in OrderStatus])
        .require_at_least("grand_total", 0)
        .require_at_least("item_count", 1, severity=ValidationSeverity.WARNING)
    )


def create_line_items_validator() -> DataValidator:
    """Checks for the one-row-per-line-item frame"""
    return (
        DataValidator()
        .require_present("title", severity=ValidationSeverity.WARNING)
        .require_present("category", severity=ValidationSeverity.INFO)
        .require_at_least("price", 0)
        .require_at_least("quantity", 0)
        .require_one_of("product_group", [group.value for group in ProductGroup])
    )
