"""
Window Analytics

Share-of-partition, deterministic ranking and cumulative share over
aggregated report rows, plus the customer bucketing helpers built on them.

Ratios are null when the denominator is zero or null; nothing here raises
on a zero total or silently turns it into 0.
"""

from typing import List, Optional, Sequence, Union

import polars as pl

RANK_METHODS = ("ordinal", "min", "dense")


def _as_list(columns: Optional[Union[str, Sequence[str]]]) -> List[str]:
    if columns is None:
        return []
    if isinstance(columns, str):
        return [columns]
    return list(columns)


def safe_ratio(numerator: pl.Expr, denominator: pl.Expr) -> pl.Expr:
    """numerator / denominator, null when the denominator is zero or null"""
    return (
        pl.when(denominator.is_null() | (denominator == 0))
        .then(pl.lit(None, dtype=pl.Float64))
        .otherwise(numerator.cast(pl.Float64) / denominator.cast(pl.Float64))
    )


def partition_total(measure: str, partition_by: Optional[Union[str, Sequence[str]]] = None) -> pl.Expr:
    total = pl.col(measure).sum()
    partition = _as_list(partition_by)
    return total.over(partition) if partition else total


def share_of(measure: str, partition_by: Optional[Union[str, Sequence[str]]] = None) -> pl.Expr:
    """Row measure over its partition total; null when the total is zero"""
    return safe_ratio(pl.col(measure), partition_total(measure, partition_by))


def add_share(
    df: pl.DataFrame,
    measure: str,
    partition_by: Optional[Union[str, Sequence[str]]] = None,
    name: Optional[str] = None,
) -> pl.DataFrame:
    return df.with_columns(share_of(measure, partition_by).alias(name or f"{measure}_share"))


def add_rank(
    df: pl.DataFrame,
    measure: str,
    partition_by: Optional[Union[str, Sequence[str]]] = None,
    tie_breakers: Optional[Union[str, Sequence[str]]] = None,
    method: str = "ordinal",
    name: Optional[str] = None,
    descending: bool = True,
) -> pl.DataFrame:
    """
    Rank rows by a measure within each partition.

    Rows are ordered by the measure (descending by default, nulls last) and
    then by the tie-breaker columns ascending, so the order is the same on
    every run.

    Args:
        method: ``ordinal`` (row number), ``min`` (competition rank, ties
            share the lowest rank and leave gaps) or ``dense``
    """
    if method not in RANK_METHODS:
        raise ValueError(f"Rank method must be one of {RANK_METHODS}")
    partition = _as_list(partition_by)
    ties = _as_list(tie_breakers)
    name = name or f"{measure}_rank"

    ordered = df.with_row_index("__row").sort(
        partition + [measure] + ties,
        descending=[False] * len(partition) + [descending] + [False] * len(ties),
        nulls_last=True,
    )

    position = pl.int_range(1, pl.len() + 1, dtype=pl.UInt32)
    if partition:
        position = position.over(partition)
    ordered = ordered.with_columns(position.alias("__position"))

    if method == "ordinal":
        rank = pl.col("__position")
    elif method == "min":
        # sorted, so equal values are contiguous within a partition
        rank = pl.col("__position").min().over(partition + [measure])
    else:
        starts = (
            pl.when(pl.col("__position") == 1)
            .then(pl.lit(True))
            .otherwise(pl.col(measure).ne_missing(pl.col(measure).shift(1)))
        )
        ordered = ordered.with_columns(starts.cast(pl.UInt32).alias("__starts"))
        rank = pl.col("__starts").cum_sum()
        if partition:
            rank = rank.over(partition)

    return (
        ordered.with_columns(rank.cast(pl.Int64).alias(name))
        .sort("__row")
        .drop(["__row", "__position", "__starts"], strict=False)
    )


def add_cumulative_share(
    df: pl.DataFrame,
    measure: str,
    partition_by: Optional[Union[str, Sequence[str]]] = None,
    tie_breakers: Optional[Union[str, Sequence[str]]] = None,
    name: Optional[str] = None,
) -> pl.DataFrame:
    """
    Running share of the partition total, ordered by the measure descending.

    The last row of a partition reaches 1.0. With non-negative measures the
    running share never decreases; partitions totalling zero get null.
    """
    partition = _as_list(partition_by)
    ties = _as_list(tie_breakers)
    name = name or f"{measure}_cumulative_share"

    ordered = df.with_row_index("__row").sort(
        partition + [measure] + ties,
        descending=[False] * len(partition) + [True] + [False] * len(ties),
        nulls_last=True,
    )
    running = pl.col(measure).fill_null(0).cum_sum()
    total = pl.col(measure).sum()
    if partition:
        running = running.over(partition)
        total = total.over(partition)

    return (
        ordered.with_columns(safe_ratio(running, total).alias(name))
        .sort("__row")
        .drop("__row")
    )


def cap_frequency(frequency: pl.Expr, cap: int) -> pl.Expr:
    """Keep 1..cap, fold anything larger into cap + 1"""
    return pl.when(frequency > cap).then(pl.lit(cap + 1)).otherwise(frequency).cast(pl.Int64)


def frequency_label(bucket: pl.Expr, cap: int) -> pl.Expr:
    """Display label of a capped frequency bucket, e.g. ``6+``"""
    return (
        pl.when(bucket > cap)
        .then(pl.lit(f"{cap + 1}+"))
        .otherwise(bucket.cast(pl.Utf8))
    )


def _format_bound(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def sales_band(amount: pl.Expr, thresholds: Sequence[float]) -> pl.Expr:
    """
    Sales band label of an amount.

    With thresholds (1000, 2500) the bands are ``0-1000``, ``1001-2500``
    and ``2500+``.
    """
    bounds = sorted(thresholds)
    expr = pl.lit(f"{_format_bound(bounds[-1])}+")
    for index in range(len(bounds) - 1, -1, -1):
        lower = 0 if index == 0 else bounds[index - 1] + 1
        label = f"{_format_bound(lower)}-{_format_bound(bounds[index])}"
        expr = pl.when(amount <= bounds[index]).then(pl.lit(label)).otherwise(expr)
    return expr


def sales_band_order(amount: pl.Expr, thresholds: Sequence[float]) -> pl.Expr:
    """1-based position of the sales band"""
    bounds = sorted(thresholds)
    expr = pl.lit(len(bounds) + 1)
    for index in range(len(bounds) - 1, -1, -1):
        expr = pl.when(amount <= bounds[index]).then(pl.lit(index + 1)).otherwise(expr)
    return expr.cast(pl.Int64)
