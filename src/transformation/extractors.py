"""
Fact Extraction

Turns the warehouse sales and returns tables into uniform fact rows:

    date_key, order_id, order_line_id, product_id, location_id,
    sales_channel, units, dollars, cost, gm, vendor_cost, vendor_gm

Measures are positive on both the sales and the returns side; the
reconciler subtracts returns. Channel codes are normalized and hub returns
re-attributed here, so every report sees the same attribution.
"""

from typing import Optional

import polars as pl
import structlog

from src.config.lookups import BusinessRules
from src.quality.report import DataQualityReport
from .rules import hub_return_location, normalize_sales_channel

logger = structlog.get_logger(__name__)

FACT_KEYS = [
    "date_key",
    "order_id",
    "order_line_id",
    "product_id",
    "location_id",
    "sales_channel",
]
FACT_MEASURES = ["units", "dollars", "cost", "gm", "vendor_cost", "vendor_gm"]


def _measures(quantity: str = "quantity") -> list:
    dollars = pl.col("merchandise").fill_null(0)
    cost = pl.col("fair_market_value").fill_null(0)
    vendor_cost = pl.col(quantity).fill_null(0) * pl.col("unit_last_cost").fill_null(0)
    return [
        pl.col(quantity).fill_null(0).alias("units"),
        dollars.alias("dollars"),
        cost.alias("cost"),
        (dollars - cost).alias("gm"),
        vendor_cost.alias("vendor_cost"),
        (dollars - vendor_cost).alias("vendor_gm"),
    ]


def _finish(
    facts: pl.DataFrame,
    rules: BusinessRules,
    quality: Optional[DataQualityReport],
    stream: str,
) -> pl.DataFrame:
    facts, unknown = normalize_sales_channel(facts, rules)
    if quality is not None:
        quality.record_reclassified(f"{stream}_unknown_channel", unknown)
    logger.info(f"Extracted {facts.height} {stream} fact rows")
    return facts.select(FACT_KEYS + FACT_MEASURES)


def _line_attributes(lines: pl.DataFrame) -> pl.DataFrame:
    return lines.select(
        "order_line_id",
        pl.col("order_id").alias("line_order_id"),
        "sales_channel",
        "source",
        pl.col("attribution_location_id").cast(pl.Int64),
        "unit_last_cost",
    )


def extract_sales(
    sales: pl.DataFrame,
    lines: pl.DataFrame,
    rules: BusinessRules,
    quality: Optional[DataQualityReport] = None,
    stream: str = "delivered_sales",
) -> pl.DataFrame:
    """
    Sales facts attributed to the selling line's attribution location.

    Sales without a matching sales line are kept with a null location and
    the default channel.
    """
    joined = sales.join(_line_attributes(lines), on="order_line_id", how="left")
    order_id = pl.col("line_order_id")
    if "order_id" in sales.columns:
        order_id = pl.coalesce(pl.col("order_id"), order_id)

    facts = joined.with_columns(
        order_id.alias("order_id"),
        pl.col("attribution_location_id").alias("location_id"),
        *_measures(),
    )
    return _finish(facts, rules, quality, stream)


def extract_delivered_sales(sales, lines, rules, quality=None) -> pl.DataFrame:
    return extract_sales(sales, lines, rules, quality, "delivered_sales")


def extract_written_sales(sales, lines, rules, quality=None) -> pl.DataFrame:
    return extract_sales(sales, lines, rules, quality, "written_sales")


def extract_delivered_returns(
    returns: pl.DataFrame,
    lines: pl.DataFrame,
    rules: BusinessRules,
    quality: Optional[DataQualityReport] = None,
) -> pl.DataFrame:
    """
    Return facts with hub re-attribution applied.

    Online returns (``rules.online_source``) take the channel of their own
    sales line; those received at the hub from a direct channel move to the
    ecommerce location. In-store returns keep their physical location and
    take the channel of the original online order line for the same
    product, else the default channel.
    """
    attributes = _line_attributes(lines).drop("attribution_location_id")
    joined = returns.join(attributes, on="order_line_id", how="inner")

    dangling = returns.height - joined.height
    if quality is not None:
        quality.record_dangling("returns_sales_line", dangling)
    elif dangling:
        logger.warning(f"Dropped {dangling} returns with no sales line")

    # Channel of the original online order, one per (order, product)
    original_channel = (
        lines.filter(pl.col("source") == rules.online_source)
        .group_by(["order_id", "product_id"])
        .agg(pl.col("sales_channel").max().alias("original_channel"))
        .rename({"order_id": "original_order_id"})
    )
    if "original_order_id" in joined.columns:
        joined = joined.join(
            original_channel, on=["original_order_id", "product_id"], how="left"
        )
    else:
        joined = joined.with_columns(pl.lit(None, dtype=pl.Utf8).alias("original_channel"))

    online = pl.col("source") == rules.online_source
    line_channel = pl.col("sales_channel").fill_null(rules.default_sales_channel)
    facts = joined.with_columns(
        pl.when(online)
        .then(line_channel)
        .otherwise(pl.col("original_channel").fill_null(rules.default_sales_channel))
        .alias("sales_channel"),
        pl.col("line_order_id").alias("order_id"),
        *_measures(),
    )
    facts = facts.with_columns(
        pl.when(online)
        .then(hub_return_location(rules))
        .otherwise(pl.col("location_id").cast(pl.Int64))
        .alias("location_id")
    )
    return _finish(facts, rules, quality, "delivered_returns")
