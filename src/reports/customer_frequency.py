"""
Customer Frequency and Spend

Yearly customer buckets by capped order frequency (1..cap, cap+1 as
``6+``) and sales band, with each bucket's share of the year's customers
and sales, its sales rank and the cumulative sales curve over buckets
ordered by sales.

Only valid orders count: a known customer and a positive net amount,
placed on or before the as-of date.
"""

from datetime import date
from typing import List, Optional, Union

import polars as pl

from src.config import BusinessRules, Settings
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import (
    add_cumulative_share,
    add_rank,
    cap_frequency,
    frequency_label,
    partition_total,
    sales_band,
    sales_band_order,
    share_of,
)
from .base import ReportContext, ReportResult, register

UNKNOWN_CUSTOMER = -1

COLUMNS = [
    "order_year",
    "frequency_capped",
    "frequency_label",
    "sales_bucket",
    "customer_count",
    "distinct_customers",
    "total_sales",
    "avg_sales_per_customer",
    "avg_order_value_mean",
    "year_customer_total",
    "year_sales_total",
    "customer_share",
    "sales_share",
    "cum_sales_share",
    "sales_rank",
]


def valid_orders(order_header: pl.DataFrame, as_of: date) -> pl.DataFrame:
    return order_header.filter(
        (pl.col("customer_key") != UNKNOWN_CUSTOMER)
        & (pl.col("net_amount") > 0)
        & (pl.col("order_date").cast(pl.Date) <= as_of)
    )


def customer_years(orders: pl.DataFrame) -> pl.DataFrame:
    """Frequency, sales and average order value per customer and year"""
    return orders.group_by(["customer_key", "order_year"]).agg(
        pl.col("order_number").n_unique().alias("frequency"),
        pl.col("net_amount").sum().alias("sales"),
        pl.col("net_amount").mean().alias("avg_order_value"),
    )


@register("customer_frequency")
def build_customer_frequency(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    years: Optional[List[int]] = None,
) -> ReportResult:
    ctx = ReportContext("customer_frequency", warehouse, as_of, rules, settings)
    rules = ctx.rules

    orders = valid_orders(warehouse.require("order_header"), ctx.as_of)
    if isinstance(years, int):
        years = [years]
    if years:
        orders = orders.filter(pl.col("order_year").is_in(list(years)))
    ctx.quality.record_filtered("invalid_orders", warehouse.require("order_header").height - orders.height)

    # Step 1: customer-year buckets
    thresholds = rules.sales_bucket_thresholds
    bucketed = customer_years(orders).with_columns(
        cap_frequency(pl.col("frequency"), rules.frequency_cap).alias("frequency_capped"),
        sales_band(pl.col("sales"), thresholds).alias("sales_bucket"),
        sales_band_order(pl.col("sales"), thresholds).alias("sales_bucket_order"),
    )

    # Step 2: bucket metrics
    grouped = bucketed.group_by(["order_year", "frequency_capped", "sales_bucket", "sales_bucket_order"]).agg(
        pl.len().alias("customer_count"),
        pl.col("customer_key").n_unique().alias("distinct_customers"),
        pl.col("sales").sum().alias("total_sales"),
        pl.col("sales").mean().alias("avg_sales_per_customer"),
        pl.col("avg_order_value").mean().alias("avg_order_value_mean"),
    )

    # Step 3: shares, rank and cumulative curve within the year
    frame = grouped.with_columns(
        frequency_label(pl.col("frequency_capped"), rules.frequency_cap).alias("frequency_label"),
        partition_total("customer_count", "order_year").alias("year_customer_total"),
        partition_total("total_sales", "order_year").alias("year_sales_total"),
        share_of("customer_count", "order_year").alias("customer_share"),
        share_of("total_sales", "order_year").alias("sales_share"),
    )
    ties = ["frequency_capped", "sales_bucket_order"]
    frame = add_rank(frame, "total_sales", "order_year", ties, method="min", name="sales_rank")
    frame = add_cumulative_share(frame, "total_sales", "order_year", ties, name="cum_sales_share")

    frame = frame.sort(["order_year", "frequency_capped", "sales_bucket_order"]).select(COLUMNS)
    return ctx.result(frame, params={"frequency_cap": rules.frequency_cap, "years": years})
