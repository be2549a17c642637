"""
Customer Segmentation by Channel Type, Product Category and Fiscal Quarter

Delivered sales per fiscal quarter split by the buyer's lifecycle status in
that quarter and channel type (Retail for register sales, Direct for online
orders, BOPIS and ship-from-store):

- New: first quarter the customer bought in the channel type
- Retained: also bought in one of the previous ``retention_quarters``
- Reactivated: bought before, but not in the previous quarters
- Anonymous: no email on the order, or a shared store email

Register BOPIS pickups carry the email of the online order they were placed
as. Marketplace orders are left out.
"""

from datetime import date
from typing import List, Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import share_of
from src.transformation.enrichers import DimensionEnricher
from .base import ReportContext, ReportResult, register

logger = structlog.get_logger(__name__)

ANONYMOUS = "Anonymous"
DIRECT = "Direct"
RETAIL = "Retail"
STATUS_ORDER = {"New": 1, "Retained": 2, "Reactivated": 3, ANONYMOUS: 4}

GRAIN = ["fiscal_quarter_id", "sales_channel_type", "customer_type", "product_category"]

COLUMNS = [
    "fiscal_quarter_id",
    "reporting_date_key",
    "sales_channel_type",
    "customer_type",
    "product_category",
    "customer_count",
    "order_count",
    "total_order_value",
    "total_units",
    "customer_share",
]


def enrich_pickup_emails(headers: pl.DataFrame, rules: BusinessRules) -> pl.DataFrame:
    """Register BOPIS pickups with no email take the email of the online BOPIS order they point at"""
    online = (
        headers.filter(
            (pl.col("source") == rules.online_source)
            & pl.col("order_type").fill_null("").str.contains("bopis")
        )
        .select(pl.col("order_number").alias("alt_order_number"), pl.col("email").alias("online_email"))
        .unique(subset="alt_order_number", keep="first", maintain_order=True)
    )
    pickup = (pl.col("source") == rules.store_source) & (pl.col("order_type") == "bopis")
    return (
        headers.join(online, on="alt_order_number", how="left")
        .with_columns(pl.coalesce(pl.col("email"), pl.when(pickup).then(pl.col("online_email"))).alias("email"))
        .drop("online_email")
    )


def channel_type(rules: BusinessRules) -> pl.Expr:
    order_type = pl.col("order_type").fill_null("")
    return (
        pl.when(
            (pl.col("source") == rules.online_source)
            | order_type.str.contains("bopis")
            | (order_type == "ship_from_store")
        )
        .then(pl.lit(DIRECT))
        .when(pl.col("source") == rules.store_source)
        .then(pl.lit(RETAIL))
        .otherwise(pl.lit(None, dtype=pl.Utf8))
    )


def product_category(rules: BusinessRules) -> pl.Expr:
    return (
        pl.when(pl.col("level_5_id").is_in(rules.warranty_classes)).then(pl.lit("Warranty"))
        .when(pl.col("level_5_id").is_in(rules.gift_card_classes)).then(pl.lit("GiftCard"))
        .when(pl.col("level_3_id").is_in(rules.cooking_school_departments)).then(pl.lit("CulinaryClass"))
        .otherwise(pl.lit("HardGood"))
    )


def quarter_sequence(calendar: pl.DataFrame) -> pl.DataFrame:
    """Each day's fiscal quarter and the quarter's position in the calendar"""
    quarters = (
        calendar.select("fiscal_quarter_id").unique().sort("fiscal_quarter_id")
        .with_row_index("quarter_seq")
        .with_columns(pl.col("quarter_seq").cast(pl.Int64))
    )
    return calendar.select("date_key", "gregorian_date", "fiscal_quarter_id").join(
        quarters, on="fiscal_quarter_id", how="left"
    )


def reporting_dates(calendar: pl.DataFrame, week_in_quarter: int) -> pl.DataFrame:
    """Last day of the given week of each quarter"""
    weeks = calendar.group_by(["fiscal_quarter_id", "fiscal_week_id"]).agg(
        pl.col("date_key").max().alias("reporting_date_key")
    )
    return (
        weeks.with_columns(pl.col("fiscal_week_id").rank("dense").over("fiscal_quarter_id").alias("week_in_quarter"))
        .filter(pl.col("week_in_quarter") == week_in_quarter)
        .select("fiscal_quarter_id", "reporting_date_key")
    )


def classify_customers(active: pl.DataFrame, retention_quarters: int) -> pl.DataFrame:
    """
    Lifecycle status per customer, channel type and quarter.

    The status follows from the last earlier quarter the customer bought in
    the same channel type: none is New, within ``retention_quarters`` is
    Retained, anything older is Reactivated.
    """
    keys = ["email", "sales_channel_type"]
    active = active.select(keys + ["quarter_seq"]).unique().sort(keys + ["quarter_seq"])
    previous = pl.col("quarter_seq").shift(1).over(keys)
    return active.with_columns(
        pl.when(previous.is_null()).then(pl.lit("New"))
        .when(pl.col("quarter_seq") - previous <= retention_quarters).then(pl.lit("Retained"))
        .otherwise(pl.lit("Reactivated"))
        .alias("customer_type")
    )


@register("customer_segmentation")
def build_customer_segmentation(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    quarters: Optional[List[int]] = None,
) -> ReportResult:
    """
    Args:
        quarters: Fiscal quarter ids to report, defaults to every quarter
            with sales; earlier quarters still decide the status
    """
    ctx = ReportContext("customer_segmentation", warehouse, as_of, rules, settings)
    rules = ctx.rules
    enricher = DimensionEnricher(ctx.quality)
    calendar = ctx.calendar()
    if isinstance(quarters, int):
        quarters = [quarters]

    # Step 1: delivered lines up to as_of with their order and quarter
    lines = warehouse.require("sales_lines")
    facts = enricher.join_dimension(
        warehouse.require("delivered_sales").drop("order_id", strict=False),
        lines, on="order_line_id", name="sales_lines", columns=["order_id"],
    )
    facts = enricher.join_dimension(facts, quarter_sequence(calendar), on="date_key", name="calendar")
    facts = facts.filter(pl.col("gregorian_date") <= ctx.as_of)

    # Step 2: marketplace orders are not customer orders
    marketplace = (
        lines.filter(pl.col("sales_channel").fill_null("").str.contains(rules.marketplace_channel_pattern))
        .select("order_id")
        .unique()
    )
    kept = facts.join(marketplace, on="order_id", how="anti")
    ctx.quality.record_filtered("marketplace_orders", facts.height - kept.height)

    # Step 3: buyer email, channel type and product category
    headers = enrich_pickup_emails(warehouse.require("sales_headers"), rules)
    facts = enricher.join_dimension(
        kept, headers, on="order_id", name="sales_headers", columns=["source", "order_type", "email"]
    )
    facts = enricher.join_dimension(
        facts, warehouse.require("product_taxonomy"), on="product_id",
        name="product_taxonomy", columns=["level_3_id", "level_5_id"],
    )
    facts = facts.with_columns(
        channel_type(rules).alias("sales_channel_type"),
        product_category(rules).alias("product_category"),
        pl.when(pl.col("email").is_in(rules.non_customer_emails))
        .then(pl.lit(None, dtype=pl.Utf8))
        .otherwise(pl.col("email"))
        .alias("email"),
    )
    typed = facts.filter(pl.col("sales_channel_type").is_not_null())
    ctx.quality.record_filtered("unknown_channel_type", facts.height - typed.height)

    # Step 4: lifecycle status; orders without a customer email are anonymous
    identified = typed.filter(pl.col("email").is_not_null())
    status = classify_customers(identified, rules.retention_quarters)
    identified = identified.join(status, on=["email", "sales_channel_type", "quarter_seq"], how="left")
    anonymous = typed.filter(pl.col("email").is_null()).with_columns(pl.lit(ANONYMOUS).alias("customer_type"))
    combined = pl.concat([identified, anonymous], how="diagonal_relaxed").with_columns(
        pl.coalesce(pl.col("email"), pl.col("order_id").cast(pl.Utf8)).alias("customer_identifier")
    )

    # Step 5: quarter metrics
    frame = combined.group_by(GRAIN).agg(
        pl.col("customer_identifier").n_unique().alias("customer_count"),
        pl.col("order_id").n_unique().alias("order_count"),
        pl.col("merchandise").sum().alias("total_order_value"),
        pl.col("quantity").sum().alias("total_units"),
    )
    if quarters:
        frame = frame.filter(pl.col("fiscal_quarter_id").is_in(list(quarters)))
    frame = frame.join(
        reporting_dates(calendar, rules.reporting_week_in_quarter), on="fiscal_quarter_id", how="left"
    ).with_columns(
        share_of("customer_count", ["fiscal_quarter_id", "sales_channel_type", "product_category"])
        .alias("customer_share"),
        pl.col("customer_type").replace_strict(STATUS_ORDER, default=len(STATUS_ORDER) + 1, return_dtype=pl.Int64)
        .alias("__order"),
    )
    frame = (
        frame.sort(["fiscal_quarter_id", "sales_channel_type", "product_category", "__order"])
        .select(COLUMNS)
    )
    logger.info(
        f"Segmented {status.select('email').n_unique()} customers over {frame['fiscal_quarter_id'].n_unique()} quarters",
        anonymous_orders=anonymous.select("order_id").n_unique(),
    )
    return ctx.result(frame, params={"quarters": quarters, "retention_quarters": rules.retention_quarters})
