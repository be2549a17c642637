"""
Unit Tests - Data Quality
"""
import pytest
import polars as pl

from src.quality.errors import CalendarIntegrityError
from src.quality.report import DataQualityReport
from src.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    check_conservation,
    create_fact_validator,
    validate_calendar,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_missing_column(self):
        """Test that a check on an absent column fails"""
        df = pl.DataFrame({"id": [1]})

        result = DataValidator().add_not_null_check("date_key").validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_composite_unique_check(self):
        """Test unique check over a composite key"""
        df = pl.DataFrame({"a": [1, 1, 2], "b": [1, 2, 1]})

        passed = DataValidator().add_unique_check(["a", "b"]).validate(df)
        failed = DataValidator().add_unique_check("a").validate(df)

        assert passed.status == ValidationStatus.PASSED
        assert failed.status == ValidationStatus.FAILED
        assert failed.checks[0].failed_rows == 1

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        validator = DataValidator()
        validator.add_range_check("price", min_value=0, max_value=100)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        check = result.checks[0]
        assert check.failed_rows == 2

    def test_enum_check_warns(self):
        """Test that unknown codes are a warning, not a failure"""
        df = pl.DataFrame({"sales_channel": ["pos", "web", "tiktok_shop"]})

        validator = DataValidator()
        validator.add_enum_check("sales_channel", ["pos", "web"])

        result = validator.validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.warning_count == 1

    def test_strict_mode(self):
        """Test that strict mode fails on warnings"""
        df = pl.DataFrame({"sales_channel": ["tiktok_shop"]})

        result = DataValidator(strict_mode=True).add_enum_check("sales_channel", ["pos"]).validate(df)

        assert result.status == ValidationStatus.FAILED

    def test_referential_integrity(self):
        """Test orphan detection against a dimension"""
        facts = pl.DataFrame({"product_id": [1, 2, 9, None]})
        products = pl.DataFrame({"product_id": [1, 2]})

        result = (
            DataValidator()
            .add_referential_integrity_check("product_id", products, "product_id", ValidationSeverity.WARNING)
            .validate(facts)
        )

        assert result.checks[0].failed_rows == 1
        assert result.status == ValidationStatus.PARTIAL

    def test_custom_check(self):
        """Test custom validation check"""
        df = pl.DataFrame({"total": [100, 200, 300]})

        validator = DataValidator()
        validator.add_custom_check(
            name="total_sum",
            check_func=lambda df: df["total"].sum() < 1000,
            message_on_fail="Sum exceeds 1000",
        )

        result = validator.validate(df)

        # Sum is 600, which is < 1000
        assert result.status == ValidationStatus.PASSED

    def test_fact_validator(self, delivered_sales_df):
        """Test pre-built fact validator"""
        result = create_fact_validator(["merchandise"]).validate(delivered_sales_df)

        assert result.total_checks == 3
        assert result.status == ValidationStatus.PASSED


class TestCalendarValidation:
    """Tests for calendar integrity"""

    def test_valid_calendar(self, calendar):
        """Test that the generated calendar passes"""
        result = validate_calendar(calendar)

        assert result.status == ValidationStatus.PASSED

    def test_duplicate_date_key(self, calendar):
        """Test that duplicated dates abort"""
        broken = pl.concat([calendar, calendar.head(1)])

        with pytest.raises(CalendarIntegrityError) as exc_info:
            validate_calendar(broken)

        assert "unique_date_key" in exc_info.value.details["checks"]

    def test_null_fiscal_week(self, calendar):
        """Test that a missing fiscal week aborts"""
        broken = calendar.with_columns(
            pl.when(pl.col("date_key") == 20250226)
            .then(pl.lit(None, dtype=pl.Int64))
            .otherwise(pl.col("fiscal_week_id"))
            .alias("fiscal_week_id")
        )

        with pytest.raises(CalendarIntegrityError):
            validate_calendar(broken)

    def test_misplaced_last_year_key_warns(self, calendar):
        """Test that a last-year key on or after its own day is a warning"""
        broken = calendar.with_columns(
            pl.when(pl.col("date_key") == 20250226)
            .then(pl.col("date_key"))
            .otherwise(pl.col("last_year_date_key"))
            .alias("last_year_date_key")
        )

        result = validate_calendar(broken)

        assert result.status == ValidationStatus.PARTIAL
        assert [c.name for c in result.checks if not c.passed] == ["last_year_date_key_precedes"]

    def test_strict_calendar_aborts_on_warnings(self, calendar):
        """Test that strict validation aborts on a duplicated last-year key"""
        broken = calendar.with_columns(
            pl.when(pl.col("date_key") == 20250226)
            .then(pl.lit(calendar.filter(pl.col("date_key") == 20250225)["last_year_date_key"].item()))
            .otherwise(pl.col("last_year_date_key"))
            .alias("last_year_date_key")
        )

        assert validate_calendar(broken).status == ValidationStatus.PARTIAL
        with pytest.raises(CalendarIntegrityError) as exc_info:
            validate_calendar(broken, strict=True)

        assert exc_info.value.details["checks"] == ["unique_last_year_date_key"]


class TestConservation:
    """Tests for the net conservation check"""

    def test_conserved(self):
        """Test totals within tolerance"""
        net = pl.DataFrame({"net_dollars": [10.0, -2.5]})

        check = check_conservation(net, 12.5, 5.0, "dollars")

        assert check.passed

    def test_not_conserved(self):
        """Test a mismatch is an error-severity failure"""
        net = pl.DataFrame({"net_dollars": [10.0]})

        check = check_conservation(net, 12.5, 5.0, "dollars")

        assert not check.passed
        assert check.severity == ValidationSeverity.ERROR
        assert check.details["difference"] == pytest.approx(2.5)


class TestDataQualityReport:
    """Tests for the quality side-channel"""

    def test_counts_accumulate(self):
        """Test repeated recordings add up"""
        quality = DataQualityReport(report_name="store_margin")
        quality.record_dangling("products", 2)
        quality.record_dangling("products", 1)
        quality.record_dangling("locations", 0)
        quality.record_filtered("valid_departments", 4)

        assert quality.dangling == {"products": 3, "locations": 0}
        assert quality.total_dangling == 3
        assert quality.as_dict()["filtered"] == {"valid_departments": 4}

    def test_merge(self):
        """Test folding one report into another"""
        first = DataQualityReport()
        first.record_reclassified("unknown_channel", 1)
        second = DataQualityReport()
        second.record_reclassified("unknown_channel", 2)
        second.add_check(check_conservation(pl.DataFrame({"net_dollars": [1.0]}), 1.0, 0.0, "dollars"))

        merged = first.merge(second)

        assert merged.reclassified["unknown_channel"] == 3
        assert merged.passed
        assert len(merged.checks) == 1
