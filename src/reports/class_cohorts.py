"""
Cooking Class Cohorts

Cooking-school buyers per year by capped class-order frequency, price mix
(full-price vs sale seats) and tenure relative to the customer's first
cooking-school year, with yearly shares, sales rank and cumulative sales
share. A second output holds the first-year cohort distribution.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import (
    add_cumulative_share,
    add_rank,
    cap_frequency,
    partition_total,
    share_of,
)
from .base import ReportContext, ReportResult, register
from .customer_frequency import UNKNOWN_CUSTOMER

logger = structlog.get_logger(__name__)

GRAIN = ["order_year", "frequency_bucket_capped", "price_mix_type", "tenure_in_year"]

COLUMNS = GRAIN + [
    "customer_count",
    "total_cs_quantity",
    "total_cs_sales",
    "total_fullprice_sales",
    "total_sale_sales",
    "year_total_customers",
    "year_total_cs_sales",
    "customer_share_in_year",
    "sales_share_in_year",
    "sales_rank_in_year",
    "cum_sales_share_in_year",
]


def class_orders(order_header: pl.DataFrame, as_of: date) -> pl.DataFrame:
    """Valid, uncancelled cooking-school orders with the buyer's first class year"""
    orders = order_header.filter(
        (pl.col("cooking_school_quantity") > 0)
        & (pl.col("customer_key") != UNKNOWN_CUSTOMER)
        & (pl.col("purchase_order") == "Y")
        & (pl.col("cancel_quantity") == 0)
        & (pl.col("net_amount") > 0)
        & (pl.col("order_date").cast(pl.Date) <= as_of)
    ).with_columns(pl.col("order_date").cast(pl.Date).dt.year().cast(pl.Int64).alias("order_year"))
    return orders.with_columns(pl.col("order_year").min().over("customer_key").alias("first_year"))


def price_mix_type(fullprice: pl.Expr, sale: pl.Expr) -> pl.Expr:
    return (
        pl.when((fullprice > 0) & (sale == 0)).then(pl.lit("FullPriceOnly"))
        .when((fullprice == 0) & (sale > 0)).then(pl.lit("SaleOnly"))
        .when((fullprice > 0) & (sale > 0)).then(pl.lit("Mixed"))
        .otherwise(pl.lit("Unknown"))
    )


def tenure_in_year(order_year: pl.Expr, first_year: pl.Expr) -> pl.Expr:
    return (
        pl.when(order_year == first_year).then(pl.lit("FirstYear"))
        .when(order_year > first_year).then(pl.lit("PostFirstYear"))
        .otherwise(pl.lit("PreFirstYear"))
    )


@register("class_cohorts")
def build_class_cohorts(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("class_cohorts", warehouse, as_of, rules, settings)
    rules = ctx.rules

    orders = class_orders(warehouse.require("order_header"), ctx.as_of)

    # Step 1: price mix per customer-year from the order lines
    lines = (
        orders.select("customer_key", "order_number", "order_year")
        .join(warehouse.require("order_lines"), on="order_number", how="inner")
        .filter(pl.col("net_amount") > 0)
        .with_columns(pl.col("price").cast(pl.Float64).is_in(rules.full_price_class_prices).alias("is_full_price"))
    )
    price_mix = lines.group_by(["customer_key", "order_year"]).agg(
        pl.col("net_amount").filter(pl.col("is_full_price")).sum().alias("fullprice_sales"),
        pl.col("net_amount").filter(~pl.col("is_full_price")).sum().alias("sale_sales"),
    )

    # Step 2: customer-year frequency, price mix and tenure
    customer_year = orders.group_by(["customer_key", "order_year"]).agg(
        pl.col("order_number").n_unique().alias("frequency"),
        pl.col("cooking_school_quantity").sum().alias("cs_quantity"),
        pl.col("cooking_school_amount").sum().alias("cs_sales"),
        pl.col("first_year").min(),
    )
    customer_year = customer_year.join(price_mix, on=["customer_key", "order_year"], how="left").with_columns(
        price_mix_type(pl.col("fullprice_sales"), pl.col("sale_sales")).alias("price_mix_type"),
        pl.col("fullprice_sales").fill_null(0),
        pl.col("sale_sales").fill_null(0),
        tenure_in_year(pl.col("order_year"), pl.col("first_year")).alias("tenure_in_year"),
        cap_frequency(pl.col("frequency"), rules.frequency_cap).alias("frequency_bucket_capped"),
    )

    # Step 3: bucket summary and yearly KPIs
    summary = customer_year.group_by(GRAIN).agg(
        pl.col("customer_key").n_unique().alias("customer_count"),
        pl.col("cs_quantity").sum().alias("total_cs_quantity"),
        pl.col("cs_sales").sum().alias("total_cs_sales"),
        pl.col("fullprice_sales").sum().alias("total_fullprice_sales"),
        pl.col("sale_sales").sum().alias("total_sale_sales"),
    )
    summary = summary.with_columns(
        partition_total("customer_count", "order_year").alias("year_total_customers"),
        partition_total("total_cs_sales", "order_year").alias("year_total_cs_sales"),
        share_of("customer_count", "order_year").alias("customer_share_in_year"),
        share_of("total_cs_sales", "order_year").alias("sales_share_in_year"),
    )
    ties = ["frequency_bucket_capped", "price_mix_type", "tenure_in_year"]
    summary = add_rank(summary, "total_cs_sales", "order_year", ties, method="min", name="sales_rank_in_year")
    summary = add_cumulative_share(summary, "total_cs_sales", "order_year", ties, name="cum_sales_share_in_year")
    frame = summary.sort(GRAIN).select(COLUMNS)

    # Step 4: first-year cohorts
    cohorts = (
        orders.group_by("first_year")
        .agg(pl.col("customer_key").n_unique().alias("cohort_customers"))
        .with_columns(share_of("cohort_customers").alias("cohort_customer_share"))
        .sort("first_year")
    )

    logger.info(f"Built {frame.height} cohort buckets over {cohorts.height} first years")
    return ctx.result(frame, extras={"cohorts": cohorts})
