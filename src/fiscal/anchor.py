"""
Fiscal Anchor Resolution

Resolves an explicit as-of date to the fiscal week, month, quarter and year
active on that day. Every report run starts here; there is no implicit
"today" anywhere below this module.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Union

import polars as pl
import structlog

from src.quality.errors import CalendarIntegrityError

logger = structlog.get_logger(__name__)


class FiscalLevel(str, Enum):
    """Fiscal hierarchy levels and their calendar id column"""
    WEEK = "fiscal_week_id"
    MONTH = "fiscal_month_id"
    QUARTER = "fiscal_quarter_id"
    YEAR = "fiscal_year"


@dataclass(frozen=True)
class FiscalAnchor:
    """Fiscal ids of the anchor day"""
    as_of: date
    anchor_date: date
    date_key: int
    fiscal_week_id: int
    fiscal_month_id: int
    fiscal_quarter_id: int
    fiscal_year: int
    week_start_date: date
    week_end_date: date

    @property
    def week_in_year(self) -> int:
        return self.fiscal_week_id % 100

    def id_for(self, level: FiscalLevel) -> int:
        return getattr(self, level.value)

    def ids(self) -> dict:
        """Fiscal id per level"""
        return {level.value: self.id_for(level) for level in FiscalLevel}

    def members(self, calendar: pl.DataFrame, level: Union[FiscalLevel, str]) -> pl.DataFrame:
        """All calendar rows sharing the anchor's id at ``level``"""
        level = FiscalLevel(level) if not isinstance(level, FiscalLevel) else level
        return calendar.filter(pl.col(level.value) == self.id_for(level)).sort("gregorian_date")


def _as_date(value: Union[date, str]) -> date:
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


def resolve_anchor(
    calendar: pl.DataFrame,
    as_of: Union[date, str],
    offset_days: int = 0,
) -> FiscalAnchor:
    """
    Resolve ``as_of - offset_days`` to its fiscal ids.

    Args:
        calendar: Calendar dimension
        as_of: Report as-of date (required, never defaulted)
        offset_days: Days subtracted from as_of to reach the anchor day

    Returns:
        FiscalAnchor for the anchor day

    Raises:
        CalendarIntegrityError: when the anchor day matches zero or several
            calendar rows
    """
    as_of = _as_date(as_of)
    anchor_date = as_of - timedelta(days=offset_days)

    rows = calendar.filter(pl.col("gregorian_date") == anchor_date)
    if rows.height != 1:
        raise CalendarIntegrityError(
            f"Anchor date {anchor_date} resolved to {rows.height} calendar rows, expected exactly 1",
            details={"anchor_date": str(anchor_date), "matches": rows.height},
        )

    row = rows.row(0, named=True)
    week = calendar.filter(pl.col("fiscal_week_id") == row["fiscal_week_id"])

    anchor = FiscalAnchor(
        as_of=as_of,
        anchor_date=anchor_date,
        date_key=row["date_key"],
        fiscal_week_id=row["fiscal_week_id"],
        fiscal_month_id=row["fiscal_month_id"],
        fiscal_quarter_id=row["fiscal_quarter_id"],
        fiscal_year=row["fiscal_year"],
        week_start_date=week["gregorian_date"].min(),
        week_end_date=week["gregorian_date"].max(),
    )

    logger.info(
        "Resolved fiscal anchor",
        as_of=str(as_of),
        anchor_date=str(anchor_date),
        fiscal_week_id=anchor.fiscal_week_id,
        fiscal_year=anchor.fiscal_year,
    )
    return anchor


def resolve_fiscal_week(calendar: pl.DataFrame, fiscal_week_id: int) -> FiscalAnchor:
    """
    Anchor on the last day of an explicitly selected fiscal week.

    Raises:
        CalendarIntegrityError: when the week has no calendar rows
    """
    week = calendar.filter(pl.col("fiscal_week_id") == fiscal_week_id)
    if week.is_empty():
        raise CalendarIntegrityError(
            f"Fiscal week {fiscal_week_id} has no calendar rows",
            details={"fiscal_week_id": fiscal_week_id},
        )
    last_day = week["gregorian_date"].max()
    return resolve_anchor(calendar, last_day)
