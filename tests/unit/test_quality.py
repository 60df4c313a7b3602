"""
Unit Tests - Data Quality
"""
import polars as pl

from grocery_analytics.analytics.frames import line_items_frame, orders_frame
from grocery_analytics.ingestion.records import ensure_orders
from grocery_analytics.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_line_items_validator,
    create_orders_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_require_present_passes(self):
        """Test presence check with complete data"""
        df = pl.DataFrame({"order_id": ["a", "b", "c"]})

        result = DataValidator().require_present("order_id").validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_require_present_fails(self):
        """Test presence check with a missing value"""
        df = pl.DataFrame({"order_id": ["a", None, "c"]})

        result = DataValidator().require_present("order_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1
        assert result.checks[0].failed_rows == 1
        assert result.checks[0].total_rows == 3

    def test_missing_column(self):
        """Test a check on a missing column fails"""
        df = pl.DataFrame({"order_id": ["a"]})

        result = DataValidator().require_present("title").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_require_unique_ignores_nulls(self):
        """Test uniqueness only compares present values"""
        df = pl.DataFrame({"order_id": ["a", None, "b", None]})

        result = DataValidator().require_unique("order_id").validate(df)

        assert result.status == ValidationStatus.PASSED

    def test_require_unique_fails(self):
        """Test uniqueness with a repeated id"""
        df = pl.DataFrame({"order_id": ["a", "b", "a"]})

        result = DataValidator().require_unique("order_id").validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_require_at_least(self):
        """Test the lower bound skips nulls"""
        df = pl.DataFrame({"price": [10.0, None, -5.0, -1.0]})

        result = DataValidator().require_at_least("price", 0).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 2

    def test_require_one_of(self):
        """Test allowed values"""
        df = pl.DataFrame({"status": ["placed", "delivered", "lost", None]})

        result = DataValidator().require_one_of("status", ["placed", "delivered"]).validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_warning_gives_partial(self):
        """Test warnings alone give a partial status"""
        df = pl.DataFrame({"title": ["Tomato", None]})

        result = DataValidator().require_present("title", severity=ValidationSeverity.WARNING).validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1
        assert result.failed_checks == 0

    def test_info_keeps_passed(self):
        """Test informational findings do not change the status"""
        df = pl.DataFrame({"category": [None]})

        result = DataValidator().require_present("category", severity=ValidationSeverity.INFO).validate(df)

        assert result.status == ValidationStatus.PASSED
        assert not result.checks[0].passed

    def test_success_rate(self):
        """Test success rate over all checks"""
        df = pl.DataFrame({"order_id": ["a", "a"]})

        result = (
            DataValidator()
            .require_present("order_id")
            .require_unique("order_id")
            .validate(df)
        )

        assert result.success_rate == 50.0
        assert DataValidator().validate(df).success_rate == 100.0

class TestStorefrontValidators:
    """Tests for the order and line item validators"""

    def test_orders_validator(self, sample_orders):
        """Test clean orders pass every check"""
        df = orders_frame(ensure_orders(sample_orders))

        result = create_orders_validator().validate(df)

        assert result.total_checks > 0
        assert result.status == ValidationStatus.PASSED

    def test_orders_validator_flags_unknown_status(self, sample_orders):
        """Test an unknown status is a warning, not a failure"""
        documents = [dict(sample_orders[0], status="refunded")]

        result = create_orders_validator().validate(orders_frame(ensure_orders(documents)))

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_line_items_validator(self, sample_orders):
        """Test a missing category is informational only"""
        df = line_items_frame(ensure_orders(sample_orders))

        result = create_line_items_validator().validate(df)

        assert result.status == ValidationStatus.PASSED
        category_check = next(c for c in result.checks if c.name == "not_null_category")
        assert not category_check.passed
        assert category_check.severity == ValidationSeverity.INFO
