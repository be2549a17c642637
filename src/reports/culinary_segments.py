"""
Merch vs Culinary Customers

Splits a year's purchasing customers by sales mix: cooking school only,
cooking school plus merchandise, or merchandise only. An ``AllCustomers``
roll-up row sits on top; segment shares, the sales rank and the cumulative
sales share are computed over the segment rows only.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import add_cumulative_share, add_rank, safe_ratio
from .base import ReportContext, ReportResult, register
from .customer_frequency import UNKNOWN_CUSTOMER

logger = structlog.get_logger(__name__)

ALL_CUSTOMERS = "AllCustomers"
SEGMENT_ORDER = {ALL_CUSTOMERS: 0, "Culinary+Merch": 1, "CulinaryOnly": 2, "NonCulinary": 3}

MEASURES = ["customer_count", "total_orders", "total_sales", "total_cs_sales", "total_merch_sales"]

COLUMNS = [
    "customer_segment",
    "customer_count",
    "total_orders",
    "total_sales",
    "total_cs_sales",
    "total_merch_sales",
    "grand_customer_count",
    "grand_total_sales",
    "customer_share",
    "sales_share",
    "sales_rank",
    "cum_sales_share",
]


def customer_segment(cs_sales: pl.Expr, merch_sales: pl.Expr) -> pl.Expr:
    return (
        pl.when((cs_sales > 0) & (merch_sales > 0)).then(pl.lit("Culinary+Merch"))
        .when((cs_sales > 0) & (merch_sales == 0)).then(pl.lit("CulinaryOnly"))
        .when(cs_sales == 0).then(pl.lit("NonCulinary"))
        .otherwise(pl.lit("Other"))
    )


@register("culinary_segments")
def build_culinary_segments(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    year: Optional[int] = None,
) -> ReportResult:
    """
    Args:
        year: Order year to segment, defaults to the year of as_of
    """
    ctx = ReportContext("culinary_segments", warehouse, as_of, rules, settings)
    year = year or ctx.as_of.year

    # Step 1: valid purchase orders of the year
    orders = (
        warehouse.require("order_header")
        .filter(
            (pl.col("customer_key") != UNKNOWN_CUSTOMER)
            & (pl.col("purchase_order") == "Y")
            & (pl.col("net_amount") > 0)
            & (pl.col("order_year") == year)
            & (pl.col("order_date").cast(pl.Date) <= ctx.as_of)
        )
        .with_columns(
            pl.col("cooking_school_amount").fill_null(0),
            pl.col("cooking_school_quantity").fill_null(0),
        )
        .with_columns((pl.col("net_amount") - pl.col("cooking_school_amount")).alias("merch_amount"))
    )

    # Step 2: customer totals and segment
    customers = orders.group_by("customer_key").agg(
        pl.col("order_number").n_unique().alias("orders"),
        pl.col("net_amount").sum().alias("total_sales"),
        pl.col("cooking_school_amount").sum().alias("cs_sales"),
        pl.col("merch_amount").sum().alias("merch_sales"),
    ).with_columns(customer_segment(pl.col("cs_sales"), pl.col("merch_sales")).alias("customer_segment"))

    # Step 3: segment rows
    segments = customers.group_by("customer_segment").agg(
        pl.len().alias("customer_count"),
        pl.col("orders").sum().alias("total_orders"),
        pl.col("total_sales").sum(),
        pl.col("cs_sales").sum().alias("total_cs_sales"),
        pl.col("merch_sales").sum().alias("total_merch_sales"),
    )
    segments = segments.with_columns(
        pl.col("customer_count").sum().alias("grand_customer_count"),
        pl.col("total_sales").sum().alias("grand_total_sales"),
    )
    segments = segments.with_columns(
        safe_ratio(pl.col("customer_count"), pl.col("grand_customer_count")).alias("customer_share"),
        safe_ratio(pl.col("total_sales"), pl.col("grand_total_sales")).alias("sales_share"),
    )
    segments = add_rank(segments, "total_sales", tie_breakers="customer_segment", method="min", name="sales_rank")
    segments = add_cumulative_share(segments, "total_sales", tie_breakers="customer_segment", name="cum_sales_share")

    # Step 4: roll-up row
    totals = segments.select([pl.col(m).sum() for m in MEASURES])
    rollup = totals.with_columns(
        pl.lit(ALL_CUSTOMERS).alias("customer_segment"),
        pl.col("customer_count").alias("grand_customer_count"),
        pl.col("total_sales").alias("grand_total_sales"),
    ).with_columns(
        safe_ratio(pl.col("customer_count"), pl.col("grand_customer_count")).alias("customer_share"),
        safe_ratio(pl.col("total_sales"), pl.col("grand_total_sales")).alias("sales_share"),
        pl.lit(None, dtype=pl.Int64).alias("sales_rank"),
        pl.lit(None, dtype=pl.Float64).alias("cum_sales_share"),
    )

    frame = pl.concat([rollup.select(COLUMNS), segments.select(COLUMNS)], how="vertical_relaxed")
    frame = (
        frame.with_columns(
            pl.col("customer_segment").replace_strict(SEGMENT_ORDER, default=len(SEGMENT_ORDER), return_dtype=pl.Int64)
            .alias("__order")
        )
        .sort(["__order", "customer_segment"])
        .drop("__order")
    )
    logger.info(f"Segmented {customers.height} customers for {year}")
    return ctx.result(frame, params={"year": year})
