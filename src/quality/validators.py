"""
Data Validation Module

Rule-based checks run against warehouse tables and report outputs before
they are trusted.

Features:
- Null and key uniqueness checks
- Allow-list and range checks
- Referential integrity checks
- Calendar integrity (fatal) and net conservation checks
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import polars as pl
import structlog

from .errors import CalendarIntegrityError

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationSeverity(str, Enum):
    """Severity levels for validation failures"""
    ERROR = "error"  # Critical - blocks pipeline
    WARNING = "warning"  # Non-critical - logged but continues
    INFO = "info"  # Informational only


class ValidationStatus(str, Enum):
    """Overall validation status"""
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


@dataclass
class ValidationCheck:
    """Single validation check result"""
    name: str
    passed: bool
    severity: ValidationSeverity
    message: str
    details: Optional[Dict[str, Any]] = None
    failed_rows: int = 0
    total_rows: int = 0


@dataclass
class ValidationResult:
    """Complete validation suite result"""
    status: ValidationStatus
    total_checks: int
    passed_checks: int
    failed_checks: int
    warning_count: int
    checks: List[ValidationCheck] = field(default_factory=list)
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def success_rate(self) -> float:
        """Percentage of passed checks"""
        if self.total_checks == 0:
            return 100.0
        return (self.passed_checks / self.total_checks) * 100

    @property
    def errors(self) -> List[ValidationCheck]:
        """Failed checks with ERROR severity"""
        return [c for c in self.checks if not c.passed and c.severity == ValidationSeverity.ERROR]


def _missing_column(name: str, column: str, severity: ValidationSeverity) -> ValidationCheck:
    return ValidationCheck(
        name=name,
        passed=False,
        severity=severity,
        message=f"Column '{column}' not found",
    )


def _row_check(
    name: str,
    severity: ValidationSeverity,
    failed: int,
    total: int,
    problem: str,
    ok: str,
    **details: Any,
) -> ValidationCheck:
    """Result of a check that counts offending rows"""
    return ValidationCheck(
        name=name,
        passed=failed == 0,
        severity=severity,
        message=problem if failed else ok,
        details=details,
        failed_rows=failed,
        total_rows=total,
    )


class DataValidator:
    """
    Rule-chaining validator for polars frames.

    Example:
        validator = (
            DataValidator()
            .add_not_null_check("date_key")
            .add_unique_check(["date_key"])
        )
        result = validator.validate(calendar)
    """

    def __init__(self, strict_mode: bool = False):
        self.strict_mode = strict_mode  # Fail on any warning
        self._checks: List[Callable[[pl.DataFrame], ValidationCheck]] = []

    def add_not_null_check(
        self,
        column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for null values in column"""
        name = f"not_null_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)
            nulls = df[column].null_count()
            return _row_check(
                name, severity, nulls, len(df),
                f"Column '{column}' has {nulls} null values",
                f"Column '{column}' has no null values",
                null_count=nulls,
            )

        self._checks.append(check)
        return self

    def add_unique_check(
        self,
        columns: Union[str, Sequence[str]],
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that a (possibly composite) key identifies one row"""
        key = [columns] if isinstance(columns, str) else list(columns)
        name = f"unique_{'_'.join(key)}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            missing = [c for c in key if c not in df.columns]
            if missing:
                return _missing_column(name, missing[0], severity)
            duplicates = len(df) - df.select(key).unique().height
            return _row_check(
                name, severity, duplicates, len(df),
                f"Key {key} has {duplicates} duplicate rows",
                f"Key {key} is unique",
                duplicate_count=duplicates,
            )

        self._checks.append(check)
        return self

    def add_range_check(
        self,
        column: str,
        min_value: Optional[float] = None,
        max_value: Optional[float] = None,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check for values within [min_value, max_value]; either bound may be open"""
        name = f"range_{column}"
        bounds = []
        if min_value is not None:
            bounds.append(pl.col(column) < min_value)
        if max_value is not None:
            bounds.append(pl.col(column) > max_value)

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)
            outside = df.filter(pl.any_horizontal(bounds)).height if bounds else 0
            return _row_check(
                name, severity, outside, len(df),
                f"Column '{column}' has {outside} values outside [{min_value}, {max_value}]",
                "All values in range",
                min=min_value,
                max=max_value,
                out_of_range_count=outside,
            )

        self._checks.append(check)
        return self

    def add_enum_check(
        self,
        column: str,
        allowed_values: List[Any],
        severity: ValidationSeverity = ValidationSeverity.WARNING,
    ) -> "DataValidator":
        """Add check for codes outside an allow-list; nulls are not counted"""
        name = f"enum_{column}"

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)
            unknown = df.filter(pl.col(column).is_not_null() & ~pl.col(column).is_in(allowed_values))
            return _row_check(
                name, severity, unknown.height, len(df),
                f"Column '{column}' has {unknown.height} values outside the allow-list",
                "All values are valid",
                invalid_count=unknown.height,
                sample=unknown[column].unique().head(5).to_list(),
            )

        self._checks.append(check)
        return self

    def add_custom_check(
        self,
        name: str,
        check_func: Callable[[pl.DataFrame], bool],
        message_on_fail: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add a frame-level predicate; polars errors count as a failure"""
        def check(df: pl.DataFrame) -> ValidationCheck:
            try:
                passed = bool(check_func(df))
            except pl.exceptions.PolarsError as e:
                return ValidationCheck(name, False, severity, f"Check raised {type(e).__name__}: {e}")
            return ValidationCheck(
                name, passed, severity, "Check passed" if passed else message_on_fail, total_rows=len(df)
            )

        self._checks.append(check)
        return self

    def add_referential_integrity_check(
        self,
        column: str,
        reference_df: pl.DataFrame,
        reference_column: str,
        severity: ValidationSeverity = ValidationSeverity.ERROR,
    ) -> "DataValidator":
        """Add check that every non-null key exists in a dimension"""
        name = f"ref_integrity_{column}"
        reference = reference_df.select(pl.col(reference_column).alias(column)).unique()

        def check(df: pl.DataFrame) -> ValidationCheck:
            if column not in df.columns:
                return _missing_column(name, column, severity)
            orphans = df.filter(pl.col(column).is_not_null()).join(reference, on=column, how="anti").height
            return _row_check(
                name, severity, orphans, len(df),
                f"Column '{column}' has {orphans} rows with no {reference_column} in the dimension",
                "Referential integrity maintained",
                orphan_count=orphans,
            )

        self._checks.append(check)
        return self

    def validate(self, df: pl.DataFrame) -> ValidationResult:
        """
        Run all validation checks on DataFrame.

        Args:
            df: DataFrame to validate

        Returns:
            ValidationResult with all check results
        """
        started_at = _utcnow()
        results = []

        logger.debug(f"Running {len(self._checks)} validation checks on {len(df)} rows")

        for check_func in self._checks:
            result = check_func(df)
            results.append(result)

            if not result.passed:
                logger.warning(
                    f"Validation failed: {result.name}",
                    message=result.message,
                    severity=result.severity.value,
                )

        passed_checks = sum(1 for r in results if r.passed)
        failed_checks = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.ERROR)
        warning_count = sum(1 for r in results if not r.passed and r.severity == ValidationSeverity.WARNING)

        if failed_checks > 0:
            status = ValidationStatus.FAILED
        elif warning_count > 0 and self.strict_mode:
            status = ValidationStatus.FAILED
        elif warning_count > 0:
            status = ValidationStatus.PARTIAL
        else:
            status = ValidationStatus.PASSED

        return ValidationResult(
            status=status,
            total_checks=len(results),
            passed_checks=passed_checks,
            failed_checks=failed_checks,
            warning_count=warning_count,
            checks=results,
            started_at=started_at,
            completed_at=_utcnow(),
        )


CALENDAR_COLUMNS = [
    "date_key",
    "gregorian_date",
    "fiscal_week_id",
    "fiscal_month_id",
    "fiscal_quarter_id",
    "fiscal_year",
    "last_year_date_key",
]


def create_calendar_validator(strict_mode: bool = False) -> DataValidator:
    """Create pre-configured validator for the calendar dimension"""
    validator = DataValidator(strict_mode=strict_mode)
    for column in CALENDAR_COLUMNS[:-1]:
        validator.add_not_null_check(column)
    return (
        validator
        .add_unique_check("date_key")
        .add_unique_check("gregorian_date")
        .add_unique_check("last_year_date_key", severity=ValidationSeverity.WARNING)
        .add_custom_check(
            "last_year_date_key_precedes",
            lambda df: df.filter(pl.col("last_year_date_key") >= pl.col("date_key")).is_empty(),
            "Some days map to a last-year day on or after themselves",
            severity=ValidationSeverity.WARNING,
        )
    )


def validate_calendar(calendar: pl.DataFrame, strict: bool = False) -> ValidationResult:
    """
    Validate the calendar dimension and abort on integrity failures.

    Args:
        calendar: Calendar dimension
        strict: Also abort on failed warnings

    Raises:
        CalendarIntegrityError: when any ERROR-severity check fails, or any
            check at all in strict mode
    """
    result = create_calendar_validator(strict_mode=strict).validate(calendar)
    if result.status == ValidationStatus.FAILED:
        failures = result.errors or [c for c in result.checks if not c.passed]
        raise CalendarIntegrityError(
            f"Calendar failed {len(failures)} integrity checks: "
            + "; ".join(c.message for c in failures),
            details={"checks": [c.name for c in failures]},
        )
    return result


def create_fact_validator(
    measures: Sequence[str],
    keys: Sequence[str] = ("date_key", "product_id"),
    calendar: Optional[pl.DataFrame] = None,
    channels: Optional[List[str]] = None,
) -> DataValidator:
    """
    Create validator for an extracted sales or returns fact.

    Every check is a warning: facts with null keys or measures, days missing
    from the calendar, or channels outside the allow-list still reconcile but
    drop out of (or misfile in) the period buckets downstream.
    """
    validator = DataValidator()
    for key in keys:
        validator.add_not_null_check(key, severity=ValidationSeverity.WARNING)
    for measure in measures:
        validator.add_not_null_check(measure, severity=ValidationSeverity.WARNING)
    if "units" in measures:
        validator.add_range_check("units", min_value=0, severity=ValidationSeverity.WARNING)
    if calendar is not None:
        validator.add_referential_integrity_check(
            "date_key", calendar, "date_key", severity=ValidationSeverity.WARNING
        )
    if channels is not None:
        validator.add_enum_check("sales_channel", channels, severity=ValidationSeverity.WARNING)
    return validator


def check_conservation(
    net: pl.DataFrame,
    sales_total: float,
    returns_total: float,
    measure: str,
    tolerance: float = 1e-6,
) -> ValidationCheck:
    """
    Compare the reconciled net total with totals computed from the raw inputs.

    Args:
        net: Reconciled frame carrying a ``net_<measure>`` column
        sales_total: Sum of the measure over the raw sales input
        returns_total: Sum of the measure over the raw returns input
        measure: Measure name without prefix
        tolerance: Absolute tolerance, scaled by the input magnitude

    Returns:
        ValidationCheck with ERROR severity on mismatch
    """
    net_total = net[f"net_{measure}"].sum() or 0
    expected = (sales_total or 0) - (returns_total or 0)
    scale = max(1.0, abs(sales_total or 0) + abs(returns_total or 0))
    difference = abs(net_total - expected)
    passed = difference <= tolerance * scale

    return ValidationCheck(
        name=f"conservation_{measure}",
        passed=passed,
        severity=ValidationSeverity.ERROR,
        message=(
            f"net_{measure} totals {net_total} but sales - returns is {expected}"
            if not passed else f"net_{measure} conserves sales - returns"
        ),
        details={"net_total": net_total, "expected": expected, "difference": difference},
        total_rows=len(net),
    )
