"""
Store Margin

TY last-week net sales, net GM and COSA-adjusted net GM per store, with
region and district attributes, region totals and the store's GM rank
within its region.

Net sales and net GM are limited to valid departments and the retail store
channel. The COSA view is taken over every department and channel, and the
two are merged at store level keeping nulls where one side has no data.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.fiscal.windows import PeriodWindow, YearBasis, bucket_periods, build_window
from src.ingestion.warehouse import WarehouseReader
from src.transformation.aggregation import aggregate
from src.transformation.analytics import add_rank, partition_total
from src.transformation.enrichers import DimensionEnricher
from src.transformation.reconcile import outer_join_reconcile
from src.transformation.rules import region_attributes
from src.transformation.transformers import COSA_KEYS, NetSalesPipeline, NetSalesRequest
from .base import ReportContext, ReportResult, register

logger = structlog.get_logger(__name__)

COLUMNS = [
    "region",
    "region_manager",
    "region_order",
    "district_code",
    "district_name",
    "location_id",
    "store_name",
    "net_dollars",
    "cosa_net_gm",
    "net_gm",
    "region_net_dollars",
    "region_net_gm",
    "store_rank_by_gm_in_region",
]


@register("store_margin")
def build_store_margin(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("store_margin", warehouse, as_of, rules, settings)
    pipeline = NetSalesPipeline(warehouse, ctx.rules, ctx.settings, ctx.quality)

    # Step 1: net sales and GM per store
    sales = pipeline.run(
        NetSalesRequest(
            as_of=ctx.as_of,
            grain=["location_id"],
            measures=["dollars", "gm"],
            windows=[PeriodWindow.LAST_WEEK],
            bases=[YearBasis.TY],
            channels=ctx.rules.retail_channel_ids,
        )
    )
    net = sales.frame.rename({"net_dollars_lw": "net_dollars", "net_gm_lw": "net_gm"})

    # Step 2: COSA net GM per store, unfiltered
    calendar = pipeline.calendar()
    cosa_net = pipeline.cosa_overlay(pipeline.net_facts(["dollars"], COSA_KEYS))
    last_week = build_window(sales.anchor, PeriodWindow.LAST_WEEK)
    cosa_week = bucket_periods(cosa_net, calendar, [last_week], [YearBasis.TY])
    cosa_store = aggregate(cosa_week, ["location_id"], ["cosa_net_gm"], sort=False).with_columns(
        pl.col("location_id").cast(pl.Int64)
    )

    # Step 3: store-level merge, nulls kept
    stores = outer_join_reconcile(
        net.with_columns(pl.col("location_id").cast(pl.Int64)),
        cosa_store,
        ["location_id"],
        zero_measure=None,
    )

    # Step 4: region attributes
    regions = region_attributes(warehouse.require("locations"), ctx.rules).rename({"name": "store_name"})
    enricher = DimensionEnricher(ctx.quality)
    frame = enricher.join_dimension(
        stores,
        regions.with_columns(pl.col("location_id").cast(pl.Int64)),
        on="location_id",
        name="store_regions",
        columns=[
            "region", "region_manager", "region_order", "district_code",
            "district_name", "district_order", "store_name",
        ],
    )

    # Step 5: region totals and rank
    frame = frame.with_columns(
        partition_total("net_dollars", "region").alias("region_net_dollars"),
        partition_total("net_gm", "region").alias("region_net_gm"),
    )
    frame = add_rank(
        frame,
        "net_gm",
        partition_by="region",
        tie_breakers=["store_name", "location_id"],
        method="min",
        name="store_rank_by_gm_in_region",
    )

    frame = frame.sort(["region_order", "district_order", "store_name"], nulls_last=True).select(COLUMNS)
    return ctx.result(frame, anchor=sales.anchor, params={"fiscal_week_id": sales.anchor.fiscal_week_id})
