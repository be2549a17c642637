"""
Returns by Store

Delivered sales and delivered returns per retail store for the fiscal week,
month and year to date, this year and last year. Hub returns from direct
channels are credited to the ecommerce location, so they drop out of the
store view.
"""

from datetime import date
from typing import Optional, Union

import polars as pl

from src.config import BusinessRules, Settings
from src.fiscal.windows import PeriodWindow, YearBasis
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import safe_ratio
from src.transformation.enrichers import DimensionEnricher
from src.transformation.transformers import NetSalesPipeline, NetSalesRequest
from .base import ReportContext, ReportResult, register

MEASURES = ["sales_dollars", "returns_dollars", "net_dollars", "sales_units", "returns_units"]


@register("returns_by_store")
def build_returns_by_store(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("returns_by_store", warehouse, as_of, rules, settings)
    pipeline = NetSalesPipeline(warehouse, ctx.rules, ctx.settings, ctx.quality)

    result = pipeline.run(
        NetSalesRequest(
            as_of=ctx.as_of,
            grain=["location_id"],
            measures=["dollars", "units"],
            windows=[PeriodWindow.LAST_WEEK, PeriodWindow.MTD, PeriodWindow.YTD],
            bases=[YearBasis.TY, YearBasis.LY],
            channels=ctx.rules.retail_channel_ids,
            output_measures=MEASURES,
        )
    )

    stores = warehouse.require("locations").select(
        pl.col("location_id").cast(pl.Int64), pl.col("name").alias("store_name")
    )
    frame = DimensionEnricher(ctx.quality).join_dimension(
        result.frame.with_columns(pl.col("location_id").cast(pl.Int64)),
        stores,
        on="location_id",
        name="store_names",
    )
    frame = frame.with_columns(
        [
            safe_ratio(pl.col(f"returns_dollars_{p}"), pl.col(f"sales_dollars_{p}")).alias(f"return_rate_{p}")
            for p in result.periods
        ]
    )

    columns = ["location_id", "store_name"] + [c for c in frame.columns if c not in ("location_id", "store_name")]
    frame = frame.select(columns).sort("location_id")
    return ctx.result(frame, anchor=result.anchor, params={"periods": result.periods})
