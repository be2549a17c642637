"""
Cancelled Cooking Classes

Order-line view of seats sold for cooking classes that were later
cancelled: seats sold, returned and cancelled, the seat price and the net
extended price still owed to each customer.
"""

from datetime import date
from typing import Optional, Union

import polars as pl

from src.config import BusinessRules, Settings
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import safe_ratio
from src.transformation.enrichers import DimensionEnricher
from .base import ReportContext, ReportResult, as_date, register

GROUP_BY = [
    "order_number",
    "order_line_id",
    "date_ordered",
    "email",
    "customer_name",
    "location_code",
    "sku",
    "product_name",
    "class_start_date",
]

COLUMNS = GROUP_BY + [
    "quantity",
    "quantity_returned",
    "quantity_canceled",
    "sub_total",
    "seat_price",
    "net_seats",
    "ext_price",
]


def display_customer_name(rules: BusinessRules) -> pl.Expr:
    """Billing name in place of the marketplace placeholder customer name"""
    return (
        pl.when(pl.col("customer_name") == rules.placeholder_customer_name)
        .then(pl.col("billing_name"))
        .otherwise(pl.col("customer_name"))
    )


@register("cancelled_classes")
def build_cancelled_classes(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    since: Optional[Union[date, str]] = None,
) -> ReportResult:
    """
    Args:
        since: Earliest class start date to include; all classes when omitted
    """
    ctx = ReportContext("cancelled_classes", warehouse, as_of, rules, settings)
    enricher = DimensionEnricher(ctx.quality)

    cancelled = warehouse.require("culinary_products").filter(
        pl.col("is_class_cancelled").cast(pl.Utf8).str.to_uppercase().is_in(["TRUE", "1", "Y"])
    ).with_columns(pl.col("start_date").cast(pl.Date).alias("class_start_date"))
    if since is not None:
        cancelled = cancelled.filter(pl.col("class_start_date") >= as_date(since))

    # Step 1: class sales lines of cancelled classes
    classes = cancelled.select("sku", "location_code", "class_start_date").unique(subset=["sku"], keep="first")
    lines = (
        warehouse.require("class_sales_lines")
        .filter(pl.col("date_ordered").cast(pl.Date) <= ctx.as_of)
        .join(classes, on="sku", how="inner")
    )
    lines = enricher.join_dimension(
        lines, warehouse.require("products"), on="sku", name="products",
        columns=["product_name"], keep_unmatched=True,
    )
    lines = lines.with_columns(display_customer_name(ctx.rules).alias("customer_name"))

    # Step 2: seats and prices per order line
    frame = lines.group_by(GROUP_BY).agg(
        pl.col("quantity").fill_null(0).sum(),
        pl.col("quantity_returned").fill_null(0).sum(),
        pl.col("quantity_canceled").fill_null(0).sum(),
        pl.col("sub_total").fill_null(0).sum(),
    )
    frame = frame.with_columns(
        safe_ratio(pl.col("sub_total"), pl.col("quantity")).alias("seat_price"),
        (pl.col("quantity") - pl.col("quantity_returned") - pl.col("quantity_canceled")).alias("net_seats"),
    ).with_columns((pl.col("net_seats") * pl.col("seat_price")).alias("ext_price"))

    frame = frame.sort(["class_start_date", "order_number", "order_line_id"]).select(COLUMNS)
    return ctx.result(frame, params={"since": str(since) if since is not None else None})
