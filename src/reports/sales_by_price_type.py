"""
Sales by Price Type

Net sales and net GM for one fiscal week by the price type in effect on the
day of the sale (or return), merch group, department and store channel.
Days without a price history row count as ``other``.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.fiscal.anchor import resolve_anchor
from src.fiscal.windows import YearBasis, fiscal_week_window
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import partition_total, safe_ratio, share_of
from src.transformation.enrichers import DimensionEnricher
from src.transformation.rules import merch_group, price_type_rank
from src.transformation.transformers import NetSalesPipeline, NetSalesRequest
from .base import ReportContext, ReportResult, register
from .dimensions import department_dimension

logger = structlog.get_logger(__name__)

GRAIN = ["price_type", "merch_group", "level_3_id", "channel_id"]

COLUMNS = [
    "price_type",
    "price_type_order",
    "merch_group",
    "level_3_id",
    "level_3_name",
    "taxonomy_code",
    "channel_id",
    "net_dollars",
    "net_gm",
    "total_net_dollars",
    "pct_of_merch_group_net_dollars",
    "pct_of_dept_net_dollars",
    "gm_pct",
]


def price_type_augment(price_history: pl.DataFrame, rules: BusinessRules):
    """Attach the price type recorded for each fact's product and day"""
    prices = (
        price_history.select("date_key", "product_id", "price_type")
        .unique(subset=["date_key", "product_id"], keep="first", maintain_order=True)
    )

    def augment(df: pl.DataFrame) -> pl.DataFrame:
        joined = df.join(prices, on=["date_key", "product_id"], how="left")
        return joined.with_columns(
            pl.col("price_type").fill_null(rules.default_price_type),
            merch_group(pl.col("level_3_id"), rules).alias("merch_group"),
        )

    return augment


@register("sales_by_price_type")
def build_sales_by_price_type(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    fiscal_week_id: Optional[int] = None,
) -> ReportResult:
    """
    Args:
        fiscal_week_id: Week to report; defaults to the week of the anchor day
    """
    ctx = ReportContext("sales_by_price_type", warehouse, as_of, rules, settings)
    pipeline = NetSalesPipeline(warehouse, ctx.rules, ctx.settings, ctx.quality)

    if fiscal_week_id is None:
        anchor = resolve_anchor(
            pipeline.calendar(), ctx.as_of, ctx.settings.report.anchor_offset_days
        )
        fiscal_week_id = anchor.fiscal_week_id

    result = pipeline.run(
        NetSalesRequest(
            as_of=ctx.as_of,
            grain=GRAIN,
            measures=["dollars", "gm"],
            windows=[fiscal_week_window(fiscal_week_id, name="week")],
            bases=[YearBasis.TY],
            channels=ctx.rules.store_channel_ids,
            augment=price_type_augment(warehouse.require("product_price_history"), ctx.rules),
        )
    )
    frame = result.frame.rename({"net_dollars_week": "net_dollars", "net_gm_week": "net_gm"})

    frame = DimensionEnricher(ctx.quality).join_dimension(
        frame,
        department_dimension(warehouse.require("taxonomies")),
        on="level_3_id",
        name="departments",
        keep_unmatched=True,
    )
    frame = frame.with_columns(
        price_type_rank(pl.col("price_type"), ctx.rules).alias("price_type_order"),
        partition_total("net_dollars").alias("total_net_dollars"),
        share_of("net_dollars", "merch_group").alias("pct_of_merch_group_net_dollars"),
        share_of("net_dollars", "level_3_id").alias("pct_of_dept_net_dollars"),
        safe_ratio(pl.col("net_gm"), pl.col("net_dollars")).alias("gm_pct"),
    )

    frame = frame.sort(["price_type_order", "merch_group", "level_3_id", "channel_id", "price_type"]).select(COLUMNS)
    return ctx.result(frame, anchor=result.anchor, params={"fiscal_week_id": fiscal_week_id})
