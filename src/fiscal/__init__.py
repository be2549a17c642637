"""
Fiscal Calendar Module
"""
from .anchor import FiscalAnchor, FiscalLevel, resolve_anchor, resolve_fiscal_week
from .windows import (
    PeriodWindow,
    WindowDefinition,
    YearBasis,
    bucket_periods,
    build_window,
    date_range_window,
    fiscal_week_window,
    period_labels,
    window_calendar,
)

__all__ = [
    "FiscalAnchor",
    "FiscalLevel",
    "resolve_anchor",
    "resolve_fiscal_week",
    "PeriodWindow",
    "WindowDefinition",
    "YearBasis",
    "bucket_periods",
    "build_window",
    "date_range_window",
    "fiscal_week_window",
    "period_labels",
    "window_calendar",
]
