"""
Outer-Join Net Reconciliation

Merges keyed fact streams without losing a key present on either side:

    (a) left  LEFT JOIN right
    (b) right ANTI JOIN left
    result = (a) UNION ALL (b)

Each side is first collapsed to one row per key so the union holds every
distinct key exactly once. Null key parts compare equal, matching the
COALESCE-based key resolution the warehouse reports use.
"""

from functools import reduce
from typing import List, Optional, Sequence

import polars as pl
import structlog

logger = structlog.get_logger(__name__)


def collapse(df: pl.DataFrame, keys: Sequence[str], measures: Sequence[str]) -> pl.DataFrame:
    """Sum measures to one row per distinct key"""
    return df.group_by(list(keys), maintain_order=True).agg(
        [pl.col(m).sum() for m in measures]
    )


def _measures(df: pl.DataFrame, keys: Sequence[str]) -> List[str]:
    return [c for c in df.columns if c not in keys]


def _absent_side(
    measures: Sequence[str],
    schema: pl.Schema,
    zero_measure: Optional[float],
) -> List[pl.Expr]:
    return [pl.lit(zero_measure).cast(schema[m]).alias(m) for m in measures]


def outer_join_reconcile(
    left: pl.DataFrame,
    right: pl.DataFrame,
    keys: Sequence[str],
    zero_measure: Optional[float] = 0,
) -> pl.DataFrame:
    """
    Full outer merge of two keyed streams built from a left join and an anti join.

    Args:
        left: Keys plus left-side measure columns
        right: Keys plus right-side measure columns; measure names must not
            collide with the left side
        keys: Composite grain key
        zero_measure: Value for the absent side's measures; ``None`` keeps nulls

    Returns:
        One row per distinct key found in either input, columns ordered
        keys, left measures, right measures
    """
    keys = list(keys)
    left_measures = _measures(left, keys)
    right_measures = _measures(right, keys)

    overlap = set(left_measures) & set(right_measures)
    if overlap:
        raise ValueError(f"Measure columns present on both sides: {sorted(overlap)}")

    left_keyed = collapse(left, keys, left_measures)
    right_keyed = collapse(right, keys, right_measures)
    columns = keys + left_measures + right_measures

    # Step 1: every left key, with its right measures when present
    matched = left_keyed.join(right_keyed, on=keys, how="left", nulls_equal=True)
    if zero_measure is not None:
        matched = matched.with_columns(
            [pl.col(m).fill_null(pl.lit(zero_measure).cast(right_keyed.schema[m])) for m in right_measures]
        )

    # Step 2: right keys the left side never saw
    right_only = (
        right_keyed.join(left_keyed.select(keys), on=keys, how="anti", nulls_equal=True)
        .with_columns(_absent_side(left_measures, left_keyed.schema, zero_measure))
    )

    result = pl.concat(
        [matched.select(columns), right_only.select(columns)],
        how="vertical_relaxed",
    )

    logger.debug(
        "Reconciled streams",
        left_keys=left_keyed.height,
        right_keys=right_keyed.height,
        right_only=right_only.height,
        rows=result.height,
    )
    return result


def reconcile_frames(
    frames: Sequence[pl.DataFrame],
    keys: Sequence[str],
    zero_measure: Optional[float] = 0,
) -> pl.DataFrame:
    """Pairwise fold of outer_join_reconcile over any number of streams"""
    if not frames:
        raise ValueError("At least one frame is required")
    keys = list(keys)
    first = collapse(frames[0], keys, _measures(frames[0], keys))
    return reduce(
        lambda acc, nxt: outer_join_reconcile(acc, nxt, keys, zero_measure),
        frames[1:],
        first,
    )


def reconcile_net(
    sales: pl.DataFrame,
    returns: pl.DataFrame,
    keys: Sequence[str],
    measures: Sequence[str],
    zero_measure: Optional[float] = 0,
) -> pl.DataFrame:
    """
    Net sales against returns at a shared grain.

    Both inputs carry the same positive measure columns. The output holds
    ``sales_<m>``, ``returns_<m>`` and ``net_<m> = sales_<m> - returns_<m>``
    for each measure.

    Example:
        >>> net = reconcile_net(sales, returns, ["date_key", "product_id"], ["dollars"])
        >>> net.columns
        ['date_key', 'product_id', 'sales_dollars', 'returns_dollars', 'net_dollars']
    """
    keys = list(keys)
    measures = list(measures)

    sales_side = sales.select(keys + [pl.col(m).alias(f"sales_{m}") for m in measures])
    returns_side = returns.select(keys + [pl.col(m).alias(f"returns_{m}") for m in measures])

    net = outer_join_reconcile(sales_side, returns_side, keys, zero_measure)
    return net.with_columns(
        [(pl.col(f"sales_{m}") - pl.col(f"returns_{m}")).alias(f"net_{m}") for m in measures]
    )


def overlay_cost_adjustment(
    net: pl.DataFrame,
    cosa: pl.DataFrame,
    keys: Sequence[str],
    cost_column: str = "cosa",
    dollars_column: str = "net_dollars",
    zero_measure: Optional[float] = 0,
) -> pl.DataFrame:
    """
    Merge the COSA cost adjustment into a reconciled net frame.

    Zero adjustments are dropped before the merge. Keys present only in the
    COSA stream are kept with zeroed net measures.

    Returns:
        ``net`` columns plus ``cosa_cost`` and
        ``cosa_net_gm = <dollars_column> - cosa_cost``
    """
    keys = list(keys)
    adjustments = (
        cosa.filter(pl.col(cost_column).is_not_null() & (pl.col(cost_column) != 0))
        .select(keys + [pl.col(cost_column).alias("cosa_cost")])
    )

    merged = outer_join_reconcile(net, adjustments, keys, zero_measure)
    return merged.with_columns(
        (pl.col(dollars_column) - pl.col("cosa_cost")).alias("cosa_net_gm")
    )
