"""
Sales by Discount Code

Year-to-date delivered net sales for retail stores by product, POS discount
code and sub-code, this year against last year.

A line can carry several discounts. Its dollars are counted once, under the
first discount in (discount_code, subdiscount_code) order; lines with no
discount fall under the configured no-discount codes.
"""

from datetime import date
from typing import Optional, Union

import polars as pl

from src.config import BusinessRules, Settings
from src.fiscal.windows import PeriodWindow, YearBasis
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import share_of
from src.transformation.enrichers import DimensionEnricher
from src.transformation.transformers import NET_KEYS, NetSalesPipeline, NetSalesRequest
from .base import ReportContext, ReportResult, register
from .dimensions import department_dimension

GRAIN = ["level_3_id", "product_id", "discount_code", "subdiscount_code"]

COLUMNS = [
    "level_3_id",
    "level_3_name",
    "taxonomy_code",
    "product_id",
    "product_name",
    "discount_code",
    "subdiscount_code",
    "net_dollars_ytd",
    "net_dollars_ytd_ly",
    "discount_share_in_dept_ty",
]


def first_discount_per_line(discounts: pl.DataFrame) -> pl.DataFrame:
    """One discount row per order line: the first by code then sub-code"""
    return (
        discounts.sort(["order_line_id", "discount_code", "subdiscount_code"], nulls_last=True)
        .unique(subset=["order_line_id"], keep="first", maintain_order=True)
        .select("order_line_id", "discount_code", "subdiscount_code")
    )


def discount_augment(discounts: pl.DataFrame, rules: BusinessRules):
    first = first_discount_per_line(discounts)

    def augment(df: pl.DataFrame) -> pl.DataFrame:
        return df.join(first, on="order_line_id", how="left").with_columns(
            pl.col("discount_code").fill_null(rules.no_discount_code),
            pl.col("subdiscount_code").fill_null(rules.no_subdiscount_code),
        )

    return augment


@register("sales_by_discount_code")
def build_sales_by_discount_code(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("sales_by_discount_code", warehouse, as_of, rules, settings)
    pipeline = NetSalesPipeline(warehouse, ctx.rules, ctx.settings, ctx.quality)

    result = pipeline.run(
        NetSalesRequest(
            as_of=ctx.as_of,
            grain=GRAIN,
            measures=["dollars"],
            windows=[PeriodWindow.YTD],
            bases=[YearBasis.TY, YearBasis.LY],
            channels=ctx.rules.retail_channel_ids,
            reconcile_keys=NET_KEYS + ["order_line_id"],
            augment=discount_augment(warehouse.require("pos_discounts"), ctx.rules),
        )
    )

    enricher = DimensionEnricher(ctx.quality)
    frame = enricher.join_dimension(
        result.frame,
        department_dimension(warehouse.require("taxonomies")),
        on="level_3_id",
        name="departments",
        keep_unmatched=True,
    )
    frame = enricher.join_dimension(
        frame,
        warehouse.require("products"),
        on="product_id",
        name="product_names",
        columns=["product_name"],
        keep_unmatched=True,
    )
    frame = frame.with_columns(
        share_of("net_dollars_ytd", "level_3_id").alias("discount_share_in_dept_ty")
    )

    frame = frame.sort(["level_3_id", "taxonomy_code", "product_id", "discount_code", "subdiscount_code"]).select(COLUMNS)
    return ctx.result(frame, anchor=result.anchor)
