"""
Sales and Inventory

Net dollars, landed GM, COSA GM and units by vendor, comp-store flag,
level-5 class and store channel for last week and the month, quarter and
year to date, each to-date window side by side with last year.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.fiscal.windows import PeriodWindow, YearBasis
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import add_rank, safe_ratio, share_of
from src.transformation.transformers import NetSalesPipeline, NetSalesRequest
from .base import ReportContext, ReportResult, register

logger = structlog.get_logger(__name__)

GRAIN = ["vendor_id", "has_comp", "level_5_id", "channel_id"]

# pipeline measure -> output prefix
MEASURES = {
    "net_dollars": "net_dollars",
    "net_gm": "net_landed_gm",
    "cosa_net_gm": "net_cosa_gm",
    "net_units": "net_units",
}
PERIODS = ["lw", "mtd", "mtd_ly", "qtd", "qtd_ly", "ytd", "ytd_ly"]


def _comp_flag(df: pl.DataFrame) -> pl.DataFrame:
    comparable = pl.col("has_comparable_sales").cast(pl.Boolean, strict=False).fill_null(False)
    return df.with_columns(
        pl.when(comparable).then(pl.lit("Y")).otherwise(pl.lit("N")).alias("has_comp")
    )


@register("sales_and_inventory")
def build_sales_and_inventory(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("sales_and_inventory", warehouse, as_of, rules, settings)
    pipeline = NetSalesPipeline(warehouse, ctx.rules, ctx.settings, ctx.quality)

    result = pipeline.run(
        NetSalesRequest(
            as_of=ctx.as_of,
            grain=GRAIN,
            measures=["dollars", "gm", "units"],
            windows=[PeriodWindow.LAST_WEEK, PeriodWindow.MTD, PeriodWindow.QTD, PeriodWindow.YTD],
            bases=[YearBasis.TY, YearBasis.LY],
            include_cosa=True,
            channels=ctx.rules.store_channel_ids,
            augment=_comp_flag,
            output_measures=list(MEASURES),
        )
    )

    renames = {f"{m}_{p}": f"{prefix}_{p}" for m, prefix in MEASURES.items() for p in PERIODS}
    measure_columns = [f"{prefix}_{p}" for p in PERIODS for prefix in MEASURES.values()]
    frame = result.frame.rename(renames).select(GRAIN + measure_columns)

    # Step 1: window metrics over level-5 class x channel
    dept = ["level_5_id", "channel_id"]
    frame = frame.with_columns(
        safe_ratio(pl.col("net_landed_gm_ytd"), pl.col("net_dollars_ytd")).alias("gm_pct_ytd"),
        share_of("net_dollars_ytd", dept).alias("vendor_share_ytd_in_dept"),
    )
    frame = add_rank(
        frame,
        "net_dollars_ytd",
        partition_by=dept,
        tie_breakers=["vendor_id", "has_comp"],
        method="ordinal",
        name="vendor_rank_ytd_in_dept",
    )

    frame = frame.sort(["level_5_id", "channel_id", "vendor_rank_ytd_in_dept"], nulls_last=True)
    return ctx.result(frame, anchor=result.anchor, params={"periods": PERIODS})
