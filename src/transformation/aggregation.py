"""
Aggregation

Variable-arity group-by over enriched facts, and the wide TY/LY layout
(one ``<measure>_<period>`` column per measure and period) consumed by
dashboards.
"""

from typing import List, Optional, Sequence

import polars as pl
import structlog

from .reconcile import reconcile_frames

logger = structlog.get_logger(__name__)


def aggregate(
    df: pl.DataFrame,
    by: Sequence[str],
    measures: Sequence[str],
    sort: bool = True,
) -> pl.DataFrame:
    """
    Sum measures over a list of dimension columns.

    Args:
        df: Enriched fact rows
        by: Reporting grain, any number of columns
        measures: Columns to sum
        sort: Sort output by the grain for stable row order

    Returns:
        One row per distinct grain value
    """
    by = list(by)
    result = df.group_by(by, maintain_order=True).agg([pl.col(m).sum() for m in measures])
    if sort and by:
        result = result.sort(by, nulls_last=True)
    return result


def pivot_periods(
    df: pl.DataFrame,
    by: Sequence[str],
    measures: Sequence[str],
    periods: Sequence[str],
    period_column: str = "period",
    zero_measure: Optional[float] = 0,
) -> pl.DataFrame:
    """
    Widen period-bucketed facts to one row per grain.

    Each period is aggregated separately and the results are merged with
    outer-join reconciliation, so a grain seen in any period gets a row and
    its absent periods are ``zero_measure``.

    Returns:
        ``by`` columns followed by ``<measure>_<period>`` for each period in
        the given order, measure-major within a period
    """
    by = list(by)
    frames: List[pl.DataFrame] = []
    for period in periods:
        bucket = aggregate(df.filter(pl.col(period_column) == period), by, measures, sort=False)
        frames.append(bucket.rename({m: f"{m}_{period}" for m in measures}))

    wide = reconcile_frames(frames, by, zero_measure)
    columns = by + [f"{m}_{p}" for p in periods for m in measures]
    logger.debug(f"Pivoted {len(periods)} periods into {wide.height} rows")
    return wide.select(columns).sort(by, nulls_last=True)
