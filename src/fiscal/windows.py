"""
Fiscal Period Windows

Builds Today / 2-day / LW / MTD / QTD / YTD windows as predicates over the
calendar dimension and pulls TY and LY facts from the same fact table:

    TY: fact.date_key = calendar.date_key
    LY: fact.date_key = calendar.last_year_date_key

Because both bases select the same calendar rows, a window always spans
the same number of days this year and last year. The LY mapping is read
from the calendar and never derived from dates.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Sequence

import polars as pl
import structlog

from src.quality.errors import CalendarIntegrityError
from .anchor import FiscalAnchor, FiscalLevel

logger = structlog.get_logger(__name__)

FACT_DATE_KEY = "fact_date_key"


class PeriodWindow(str, Enum):
    """Named reporting windows; values are used as column suffixes"""
    TODAY = "today"
    TWO_DAY = "2day"
    LAST_WEEK = "lw"
    MTD = "mtd"
    QTD = "qtd"
    YTD = "ytd"


class YearBasis(str, Enum):
    """Which calendar key the fact date is joined on"""
    TY = "ty"
    LY = "ly"

    @property
    def join_column(self) -> str:
        return "date_key" if self is YearBasis.TY else "last_year_date_key"


TO_DATE_LEVELS = {
    PeriodWindow.LAST_WEEK: FiscalLevel.WEEK,
    PeriodWindow.MTD: FiscalLevel.MONTH,
    PeriodWindow.QTD: FiscalLevel.QUARTER,
    PeriodWindow.YTD: FiscalLevel.YEAR,
}


@dataclass(frozen=True, eq=False)
class WindowDefinition:
    """A named predicate over calendar rows"""
    name: str
    predicate: pl.Expr
    start: Optional[date] = None
    end: Optional[date] = None

    def label(self, basis: YearBasis) -> str:
        """Period label, e.g. ``mtd`` or ``mtd_ly``"""
        return self.name if basis is YearBasis.TY else f"{self.name}_ly"


def build_window(
    anchor: FiscalAnchor,
    window: PeriodWindow,
    through: Optional[date] = None,
) -> WindowDefinition:
    """
    Build the calendar predicate for one window.

    Today and 2-day are relative to the anchor day. The fiscal to-date
    windows take every day sharing the anchor's id at that level up to
    ``through``, which defaults to the last day of the anchor's fiscal week.
    """
    window = PeriodWindow(window)
    gregorian = pl.col("gregorian_date")

    if window is PeriodWindow.TODAY:
        return WindowDefinition(
            name=window.value,
            predicate=gregorian == anchor.anchor_date,
            start=anchor.anchor_date,
            end=anchor.anchor_date,
        )
    if window is PeriodWindow.TWO_DAY:
        start = anchor.anchor_date - timedelta(days=1)
        return WindowDefinition(
            name=window.value,
            predicate=gregorian.is_between(start, anchor.anchor_date),
            start=start,
            end=anchor.anchor_date,
        )

    level = TO_DATE_LEVELS[window]
    end = through or anchor.week_end_date
    return WindowDefinition(
        name=window.value,
        predicate=(pl.col(level.value) == anchor.id_for(level)) & (gregorian <= end),
        end=end,
    )


def fiscal_week_window(fiscal_week_id: int, name: str = "week") -> WindowDefinition:
    """Window over one explicitly selected fiscal week"""
    return WindowDefinition(name=name, predicate=pl.col("fiscal_week_id") == fiscal_week_id)


def date_range_window(start: date, end: date, name: str = "range") -> WindowDefinition:
    """Window over an explicit inclusive date range"""
    return WindowDefinition(
        name=name,
        predicate=pl.col("gregorian_date").is_between(start, end),
        start=start,
        end=end,
    )


def window_calendar(
    calendar: pl.DataFrame,
    definition: WindowDefinition,
    basis: YearBasis = YearBasis.TY,
) -> pl.DataFrame:
    """
    Calendar rows inside a window, keyed for the fact join.

    The returned frame carries the TY fiscal attributes of each row plus a
    ``fact_date_key`` column holding the key facts must match.

    Raises:
        CalendarIntegrityError: LY basis and a selected row has no
            last-year mapping
    """
    basis = YearBasis(basis)
    rows = calendar.filter(definition.predicate)

    if basis is YearBasis.LY:
        missing = rows.filter(pl.col("last_year_date_key").is_null())
        if missing.height:
            raise CalendarIntegrityError(
                f"{missing.height} calendar rows in window '{definition.name}' have no last-year mapping",
                details={
                    "window": definition.name,
                    "date_keys": missing["date_key"].head(10).to_list(),
                },
            )

    return rows.with_columns(pl.col(basis.join_column).alias(FACT_DATE_KEY))


def bucket_periods(
    facts: pl.DataFrame,
    calendar: pl.DataFrame,
    definitions: Sequence[WindowDefinition],
    bases: Iterable[YearBasis] = (YearBasis.TY, YearBasis.LY),
    date_column: str = "date_key",
    calendar_columns: Optional[List[str]] = None,
) -> pl.DataFrame:
    """
    Replicate facts across every (window, basis) pair.

    Args:
        facts: Fact rows keyed by ``date_column``
        calendar: Calendar dimension
        definitions: Windows to build
        bases: TY and/or LY
        date_column: Fact column matched against the calendar key
        calendar_columns: TY calendar attributes to carry onto the facts

    Returns:
        Facts with a ``period`` label column (``lw``, ``lw_ly``, ...); a fact
        row appears once per window it falls in
    """
    bases = [YearBasis(b) for b in bases]
    carried = calendar_columns if calendar_columns is not None else ["gregorian_date"]
    carried = [c for c in carried if c != date_column]
    frames = []

    for definition in definitions:
        for basis in bases:
            keyed = window_calendar(calendar, definition, basis).select(
                [FACT_DATE_KEY] + carried
            )
            label = definition.label(basis)
            bucket = (
                facts.join(keyed, left_on=date_column, right_on=FACT_DATE_KEY, how="inner")
                .with_columns(pl.lit(label).alias("period"))
            )
            logger.debug(f"Period {label}: {bucket.height} fact rows", days=keyed.height)
            frames.append(bucket)

    if not frames:
        return facts.clear().with_columns(pl.lit(None, dtype=pl.Utf8).alias("period"))
    return pl.concat(frames, how="vertical")


def period_labels(definitions: Sequence[WindowDefinition], bases: Iterable[YearBasis]) -> List[str]:
    """Labels in output column order: every TY period, then every LY period"""
    bases = [YearBasis(b) for b in bases]
    return [d.label(b) for b in bases for d in definitions]
