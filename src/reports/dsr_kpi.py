"""
Ecommerce Daily Sales Report (DSR) KPIs

Written demand of the direct business by DSR class, reconciled against the
forecast and budget for each date and class, for the as-of day (Today) and
the two days ending on it, this year and last year.

Class membership comes from the ``dsr_classes`` rule table. A selector is
one of:

    dc_sfs          DC / ship-from-store lines that are not drop ship
    drop_ship       lines whose order and product appear on a drop-ship PO
    channel:<code>  lines sold through one sales channel
    level_5:<id>    lines of one level-5 taxonomy class

A line can belong to more than one class.
"""

from datetime import date
from typing import List, Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.fiscal.anchor import resolve_anchor
from src.fiscal.windows import PeriodWindow, YearBasis, bucket_periods, build_window, period_labels
from src.ingestion.warehouse import WarehouseReader
from src.transformation.aggregation import aggregate, pivot_periods
from src.transformation.analytics import safe_ratio, share_of
from src.transformation.enrichers import DimensionEnricher
from src.transformation.extractors import extract_written_sales
from src.transformation.reconcile import outer_join_reconcile
from .base import ReportContext, ReportResult, register

logger = structlog.get_logger(__name__)

MEASURES = ["demand_dollars", "forecast_demand", "budgeted_demand"]


def class_selector(selector: str, rules: BusinessRules) -> pl.Expr:
    """Row predicate of one DSR class selector"""
    channel = pl.col("sales_channel")
    if selector == "dc_sfs":
        return (
            ~pl.col("is_drop_ship")
            & channel.is_in(rules.dc_sfs_channels)
            & pl.col("level_3_id").is_not_null()
            & (pl.col("level_3_id") != rules.dc_sfs_excluded_department)
        )
    if selector == "drop_ship":
        return pl.col("is_drop_ship") & channel.is_in(rules.drop_ship_channels)

    kind, _, value = selector.partition(":")
    if kind == "channel" and value:
        return channel == value
    if kind == "level_5" and value:
        return pl.col("level_5_id") == int(value)
    raise ValueError(f"Unknown DSR class selector: {selector}")


def tag_demand_classes(lines: pl.DataFrame, rules: BusinessRules) -> pl.DataFrame:
    """Replicate each written line once per DSR class it belongs to"""
    frames: List[pl.DataFrame] = []
    for class_id, (_, selector) in rules.dsr_classes.items():
        frames.append(
            lines.filter(class_selector(selector, rules)).with_columns(
                pl.lit(class_id, dtype=pl.Int64).alias("class_id")
            )
        )
    return pl.concat(frames, how="vertical")


def class_demand(
    written: pl.DataFrame,
    forecast: pl.DataFrame,
    rules: BusinessRules,
) -> pl.DataFrame:
    """Demand, forecast and budget per date x class, absent sides zero"""
    demand = aggregate(tag_demand_classes(written, rules), ["date_key", "class_id"], ["dollars"], sort=False)
    demand = demand.rename({"dollars": "demand_dollars"})
    plan = forecast.select(
        "date_key",
        pl.col("class_id").cast(pl.Int64),
        pl.col("forecast_demand").fill_null(0).cast(pl.Float64),
        pl.col("budgeted_demand").fill_null(0).cast(pl.Float64),
    )
    return outer_join_reconcile(
        demand.with_columns(pl.col("demand_dollars").cast(pl.Float64)),
        plan,
        ["date_key", "class_id"],
    )


@register("dsr_kpi")
def build_dsr_kpi(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("dsr_kpi", warehouse, as_of, rules, settings)
    rules = ctx.rules

    # Step 1: anchor on the as-of day itself
    calendar = ctx.calendar()
    anchor = resolve_anchor(calendar, ctx.as_of, 0)

    # Step 2: written demand lines with taxonomy and drop-ship flag
    written = extract_written_sales(
        warehouse.require("written_sales"), warehouse.require("sales_lines"), rules, ctx.quality
    )
    enricher = DimensionEnricher(ctx.quality)
    written = enricher.join_dimension(
        written,
        warehouse.require("product_taxonomy"),
        on="product_id",
        name="product_taxonomy",
        columns=["level_3_id", "level_5_id"],
        keep_unmatched=True,
    )
    drop_ship = (
        warehouse.require("drop_ship_po")
        .select("order_id", "product_id")
        .unique()
        .with_columns(pl.lit(True).alias("is_drop_ship"))
    )
    written = written.join(drop_ship, on=["order_id", "product_id"], how="left").with_columns(
        pl.col("is_drop_ship").fill_null(False)
    )

    # Step 3: class demand reconciled with forecast and budget
    demand = class_demand(written, warehouse.require("forecast_budget"), rules)

    # Step 4: Today and 2-day, TY and LY
    windows = [build_window(anchor, PeriodWindow.TODAY), build_window(anchor, PeriodWindow.TWO_DAY)]
    bases = [YearBasis.TY, YearBasis.LY]
    periods = period_labels(windows, bases)
    bucketed = bucket_periods(demand, calendar, windows, bases)
    wide = pivot_periods(bucketed, ["class_id"], MEASURES, periods)

    # Step 5: one row per configured class
    classes = pl.DataFrame(
        {
            "class_id": list(rules.dsr_classes),
            "class_name": [name for name, _ in rules.dsr_classes.values()],
        },
        schema={"class_id": pl.Int64, "class_name": pl.Utf8},
    )
    class_ids = pl.concat([classes.select("class_id"), wide.select(pl.col("class_id").cast(pl.Int64))]).unique()
    measure_columns = [c for c in wide.columns if c != "class_id"]
    frame = (
        class_ids.join(wide.with_columns(pl.col("class_id").cast(pl.Int64)), on="class_id", how="left")
        .with_columns([pl.col(c).fill_null(0.0) for c in measure_columns])
        .join(classes, on="class_id", how="left")
        .with_columns(pl.col("class_name").fill_null("Unmapped"))
    )

    # Step 6: KPIs
    today_total = pl.col("demand_dollars_today").sum()
    dc_sfs_today = pl.col("demand_dollars_today").filter(pl.col("class_id") == rules.dc_sfs_class_id).sum()
    kpis = [
        share_of("demand_dollars_today").alias("today_share"),
        safe_ratio(dc_sfs_today, today_total).alias("dc_sfs_today_share"),
    ]
    for period in periods:
        kpis.append(
            safe_ratio(pl.col(f"demand_dollars_{period}"), pl.col(f"forecast_demand_{period}")).alias(
                f"pct_to_forecast_{period}"
            )
        )
        kpis.append(
            safe_ratio(pl.col(f"demand_dollars_{period}"), pl.col(f"budgeted_demand_{period}")).alias(
                f"pct_to_budget_{period}"
            )
        )
    frame = frame.with_columns(kpis)

    columns = ["class_id", "class_name"] + [c for c in frame.columns if c not in ("class_id", "class_name")]
    frame = frame.select(columns).sort("class_id")
    return ctx.result(frame, anchor=anchor, params={"periods": periods})
