"""
Online Cooking Class Buyers

One row per customer with at least one valid online cooking class (OCC)
order: OCC and all-order totals, category mix, store and culinary
proximity, New/Existing tenure and an activity segment, ranked by OCC
sales with share and cumulative share.

An order is valid when it is a purchase with a known customer, a positive
net amount and nothing cancelled, placed on or before the as-of date. An
OCC order is a valid order whose purchased sub-categories include
``occ_subcategory``.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import add_cumulative_share, add_rank, share_of
from src.transformation.enrichers import DimensionEnricher
from .base import ReportContext, ReportResult, register
from .customer_frequency import UNKNOWN_CUSTOMER
from .dimensions import department_dimension

logger = structlog.get_logger(__name__)

HEADER_COLUMNS = [
    "customer_key", "order_number", "order_date", "net_amount", "net_quantity",
    "purchase_order", "cooking_school_amount", "cooking_school_quantity",
    "cancel_quantity", "sub_categories_purchased",
]

COLUMNS = [
    "customer_key",
    "email",
    "store_proximity",
    "culinary_proximity",
    "customer_tenure",
    "buying_segment",
    "occ_orders",
    "occ_sales",
    "occ_units",
    "occ_class_units",
    "occ_class_sales",
    "occ_hg_amount",
    "total_orders",
    "total_sales",
    "total_units",
    "total_class_units",
    "total_class_sales",
    "total_hg_amount",
    "distinct_categories",
    "category_sales",
    "cs_category_sales",
    "non_cs_category_sales",
    "first_order_date",
    "last_order_date",
    "first_occ_order_date",
    "last_occ_order_date",
    "occ_sales_rownum",
    "occ_sales_rank",
    "occ_sales_dense_rank",
    "occ_sales_share",
    "occ_cum_sales_share",
]


def valid_orders(order_header: pl.DataFrame, as_of: date) -> pl.DataFrame:
    return order_header.filter(
        (pl.col("purchase_order") == "Y")
        & (pl.col("customer_key") != UNKNOWN_CUSTOMER)
        & (pl.col("net_amount") > 0)
        & (pl.col("cancel_quantity").cast(pl.Int64, strict=False) == 0)
        & (pl.col("order_date").cast(pl.Date) <= as_of)
    ).with_columns(
        pl.col("order_date").cast(pl.Date),
        pl.col("cooking_school_amount").fill_null(0),
        pl.col("cooking_school_quantity").fill_null(0),
        (pl.col("net_amount") - pl.col("cooking_school_amount").fill_null(0)).alias("hg_amount"),
    )


def order_metrics(orders: pl.DataFrame, prefix: str, dates: str) -> pl.DataFrame:
    """Order count, sales, units and class/home-goods split per customer"""
    return orders.group_by("customer_key").agg(
        pl.col("order_number").n_unique().alias(f"{prefix}_orders"),
        pl.col("net_amount").sum().alias(f"{prefix}_sales"),
        pl.col("net_quantity").sum().alias(f"{prefix}_units"),
        pl.col("cooking_school_quantity").sum().alias(f"{prefix}_class_units"),
        pl.col("cooking_school_amount").sum().alias(f"{prefix}_class_sales"),
        pl.col("hg_amount").sum().alias(f"{prefix}_hg_amount"),
        pl.col("order_date").min().alias(f"first_{dates}_date"),
        pl.col("order_date").max().alias(f"last_{dates}_date"),
    )


def buying_segment(orders: pl.DataFrame, rules: BusinessRules) -> pl.DataFrame:
    """
    Activity segment from the gap between a customer's last order day and
    the order before it. Several orders on the last day leave no gap and
    no segment.
    """
    ordered = orders.select("customer_key", "order_date").sort(["customer_key", "order_date"]).with_columns(
        pl.col("order_date").shift(1).over("customer_key").alias("prev_order_date")
    )
    last = ordered.group_by("customer_key").agg(
        pl.col("order_date").max().alias("__last"),
        pl.col("prev_order_date").filter(pl.col("order_date") == pl.col("order_date").max()).max().alias("__prev"),
    )
    gap = (pl.col("__last") - pl.col("__prev")).dt.total_days()
    return last.select(
        "customer_key",
        pl.when(gap.is_between(1, rules.active_gap_days)).then(pl.lit("ACTIVE"))
        .when(gap.is_between(rules.active_gap_days + 1, rules.lapsed_gap_days)).then(pl.lit("LAPSED"))
        .when(gap > rules.lapsed_gap_days).then(pl.lit("DEEP LAPSED"))
        .otherwise(pl.lit(None, dtype=pl.Utf8))
        .alias("buying_segment"),
    )


@register("occ_buyers")
def build_occ_buyers(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("occ_buyers", warehouse, as_of, rules, settings)
    rules = ctx.rules
    enricher = DimensionEnricher(ctx.quality)

    # Step 1: valid orders, OCC orders and the OCC customers
    header = warehouse.require("order_header", HEADER_COLUMNS)
    orders = valid_orders(header, ctx.as_of)
    ctx.quality.record_filtered("invalid_orders", header.height - orders.height)
    occ_orders = orders.filter(
        pl.col("sub_categories_purchased").fill_null("").str.contains(rules.occ_subcategory, literal=True)
    )
    buyers = occ_orders.select("customer_key").unique().sort("customer_key")
    all_orders = orders.join(buyers, on="customer_key", how="semi")

    # Step 2: customer attributes and proximity
    customers = enricher.join_dimension(
        warehouse.require("customers"),
        warehouse.require("locations", ["location_id", "has_culinary"]),
        on="closest_store_id",
        right_on="location_id",
        name="closest_store",
        columns=["has_culinary"],
        keep_unmatched=True,
    ).select(
        "customer_key",
        "email",
        "original_entered_date",
        pl.when(pl.col("miles_to_closest_store") < rules.near_store_miles)
        .then(pl.lit("NEAR STORE")).otherwise(pl.lit("NOT NEAR STORE")).alias("store_proximity"),
        pl.when(pl.col("has_culinary").fill_null(False))
        .then(pl.lit("CULINARY")).otherwise(pl.lit("NO CULINARY")).alias("culinary_proximity"),
    )

    # Step 3: category mix over every order line of the buyers
    lines = all_orders.select("customer_key", "order_number").join(
        warehouse.require("order_lines", ["order_number", "sku", "net_amount"]), on="order_number", how="inner"
    )
    lines = enricher.join_dimension(
        lines, warehouse.require("products"), on="sku", name="products", columns=["product_id"], keep_unmatched=True
    )
    lines = enricher.join_dimension(
        lines, warehouse.require("product_taxonomy"), on="product_id",
        name="product_taxonomy", columns=["level_3_id"], keep_unmatched=True,
    )
    lines = enricher.join_dimension(
        lines, department_dimension(warehouse.require("taxonomies")), on="level_3_id",
        name="departments", columns=["level_3_name"], keep_unmatched=True,
    )
    is_class = pl.col("level_3_id").is_in(rules.cooking_school_departments).fill_null(False)
    category_mix = lines.group_by("customer_key").agg(
        pl.col("level_3_name").drop_nulls().n_unique().alias("distinct_categories"),
        pl.col("net_amount").sum().alias("category_sales"),
        pl.col("net_amount").filter(is_class).sum().alias("cs_category_sales"),
        pl.col("net_amount").filter(~is_class).sum().alias("non_cs_category_sales"),
    )

    # Step 4: customer profile
    profile = (
        buyers.join(customers, on="customer_key", how="left")
        .join(order_metrics(occ_orders, "occ", "occ_order"), on="customer_key", how="left")
        .join(order_metrics(all_orders, "total", "order"), on="customer_key", how="left")
        .join(category_mix, on="customer_key", how="left")
        .join(buying_segment(all_orders, rules), on="customer_key", how="left")
        .with_columns(
            pl.when(pl.col("original_entered_date").is_null()).then(pl.lit(None, dtype=pl.Utf8))
            .when(pl.col("original_entered_date").cast(pl.Date) == pl.col("first_occ_order_date"))
            .then(pl.lit("New"))
            .otherwise(pl.lit("Existing"))
            .alias("customer_tenure")
        )
    )
    ctx.quality.record_dangling("customers", buyers.join(customers, on="customer_key", how="anti").height)

    # Step 5: rank and share by OCC sales
    for method, name in (("ordinal", "occ_sales_rownum"), ("min", "occ_sales_rank"), ("dense", "occ_sales_dense_rank")):
        profile = add_rank(profile, "occ_sales", tie_breakers="customer_key", method=method, name=name)
    profile = profile.with_columns(share_of("occ_sales").alias("occ_sales_share"))
    profile = add_cumulative_share(profile, "occ_sales", tie_breakers="customer_key", name="occ_cum_sales_share")

    frame = profile.sort("occ_sales_rownum").select(COLUMNS)
    logger.info(f"Profiled {frame.height} online cooking class buyers", occ_orders=occ_orders.height)
    return ctx.result(frame, params={"occ_subcategory": rules.occ_subcategory})
