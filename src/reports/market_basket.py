"""
Market Basket

SKU-level written sales by store channel for every order placed in a date
range. Each order x SKU seen in the range is expanded over every channel in
the channels dimension and merged with the real sales, so channels with no
sales for a SKU still get a zero row.
"""

from datetime import date, timedelta
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.fiscal.windows import YearBasis, date_range_window, window_calendar
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import add_rank, partition_total, share_of
from src.transformation.enrichers import DimensionEnricher
from src.transformation.extractors import extract_written_sales
from src.transformation.reconcile import outer_join_reconcile
from .base import ReportContext, ReportResult, as_date, register
from .dimensions import department_dimension

logger = structlog.get_logger(__name__)

KEYS = ["order_id", "product_id", "channel_id"]

COLUMNS = [
    "channel_id",
    "channel_code",
    "order_id",
    "level_3_id",
    "level_3_name",
    "taxonomy_code",
    "product_id",
    "product_name",
    "written_dollars",
    "written_units",
    "order_presence_flag",
    "total_sales_per_sku",
    "channel_sales_share_for_sku",
    "sku_channel_rank_within_sku",
]


@register("market_basket")
def build_market_basket(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    start_date: Optional[Union[date, str]] = None,
    end_date: Optional[Union[date, str]] = None,
) -> ReportResult:
    """
    Args:
        start_date: First order day, defaults to the day before as_of
        end_date: Last order day, defaults to as_of
    """
    ctx = ReportContext("market_basket", warehouse, as_of, rules, settings)
    end = as_date(end_date) if end_date is not None else ctx.as_of
    start = as_date(start_date) if start_date is not None else end - timedelta(days=1)
    if start > end:
        raise ValueError(f"start_date {start} is after end_date {end}")

    enricher = DimensionEnricher(ctx.quality)

    # Step 1: written lines with the channel of their attribution location
    written = extract_written_sales(
        warehouse.require("written_sales"), warehouse.require("sales_lines"), ctx.rules, ctx.quality
    )
    locations = warehouse.require("locations").select(pl.col("location_id").cast(pl.Int64), "channel_id")
    written = enricher.join_dimension(
        written.with_columns(pl.col("location_id").cast(pl.Int64)),
        locations,
        on="location_id",
        name="locations",
        keep_unmatched=True,
    )

    # Step 2: orders and order x SKU pairs placed in the range
    days = window_calendar(
        ctx.calendar(), date_range_window(start, end, "basket"), YearBasis.TY
    ).select("fact_date_key")
    in_range = written.join(days, left_on="date_key", right_on="fact_date_key", how="semi")
    orders = in_range.select("order_id").unique()
    order_skus = in_range.select("order_id", "product_id").unique()

    # Step 3: SKU x channel sales of those orders
    sales = (
        written.join(orders, on="order_id", how="semi")
        .group_by(KEYS)
        .agg(
            pl.col("dollars").sum().alias("written_dollars"),
            pl.col("units").sum().alias("written_units"),
        )
    )

    # Step 4: dense order x SKU x channel grid, merged with the sales
    channels = warehouse.require("channels").select("channel_id", "channel_code").unique(subset=["channel_id"])
    grid = order_skus.join(channels.select("channel_id"), how="cross").with_columns(
        pl.lit(1, dtype=pl.Int64).alias("order_presence_flag")
    )
    basket = outer_join_reconcile(sales, grid, KEYS, zero_measure=None).with_columns(
        pl.col("written_dollars").fill_null(0),
        pl.col("written_units").fill_null(0),
        pl.col("order_presence_flag").fill_null(0),
    )
    logger.info(f"Market basket grid has {grid.height} cells for {orders.height} orders")

    # Step 5: channel, taxonomy and product attributes
    basket = enricher.join_dimension(basket, channels, on="channel_id", name="channels")
    basket = enricher.join_dimension(
        basket, warehouse.require("product_taxonomy"), on="product_id",
        name="product_taxonomy", columns=["level_3_id"],
    )
    basket = enricher.join_dimension(
        basket, department_dimension(warehouse.require("taxonomies")), on="level_3_id",
        name="departments", keep_unmatched=True,
    )
    basket = enricher.join_dimension(
        basket, warehouse.require("products"), on="product_id",
        name="products", columns=["product_name"],
    )

    # Step 6: SKU totals, channel share and channel rank within SKU
    basket = basket.with_columns(
        partition_total("written_dollars", "product_id").alias("total_sales_per_sku"),
        share_of("written_dollars", "product_id").alias("channel_sales_share_for_sku"),
        partition_total("written_dollars", ["product_id", "channel_id"]).alias("sku_channel_dollars"),
    )
    basket = add_rank(
        basket,
        "sku_channel_dollars",
        partition_by="product_id",
        tie_breakers=["channel_code", "order_id"],
        method="ordinal",
        name="sku_channel_rank_within_sku",
    )

    frame = basket.sort(
        ["channel_code", "level_3_id", "product_id", "sku_channel_rank_within_sku"], nulls_last=True
    ).select(COLUMNS)
    return ctx.result(frame, params={"start_date": str(start), "end_date": str(end)})
