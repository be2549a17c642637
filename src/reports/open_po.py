"""
Open Purchase Orders (APOO)

Open PO lines reconciled against their receipts: open and ordered units and
costs, received units, stale days, the current price type and the age of the
product's last receipt, with vendor and department context.

Open lines and received lines are merged on the PO line key with the
left-join plus anti-join discipline, so a line present on only one side is
still reported; the missing side's measures stay null.
"""

from datetime import date
from typing import Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings
from src.fiscal.anchor import resolve_anchor
from src.ingestion.warehouse import WarehouseReader
from src.transformation.analytics import add_rank, partition_total, share_of
from src.transformation.enrichers import DimensionEnricher
from src.transformation.reconcile import outer_join_reconcile
from src.transformation.rules import classify_price_ending, receipt_age_bucket
from .base import ReportContext, ReportResult, register
from .dimensions import department_dimension, latest_price_on

logger = structlog.get_logger(__name__)

PO_KEYS = [
    "vendor_po_name",
    "purchase_order_id",
    "po_line_number",
    "next_cost_effective_date",
    "cancel_date",
    "location_id",
]

OPEN_MEASURES = ["open_landed_cost", "open_vendor_cost", "open_units", "ordered_units"]

COLUMNS = [
    "purchase_order_id",
    "po_line_number",
    "location_id",
    "location_name",
    "vendor_id",
    "vendor_name",
    "vendor_origin",
    "vendor_po_name",
    "product_id",
    "product_name",
    "level_3_id",
    "level_3_name",
    "taxonomy_code",
    "written_date",
    "arrival_date",
    "next_cost_effective_date",
    "cancel_date",
    "retail_price",
    "current_retail_price",
    "price_type_id",
    "price_type_code",
    "price_type_description",
    "last_receipt_date",
    "receipt_age_days",
    "receipt_age_bucket_id",
    "receipt_age_bucket",
    "open_landed_cost",
    "open_vendor_cost",
    "open_units",
    "ordered_units",
    "received_units",
    "stale_days",
    "total_open_units_by_vendor",
    "vendor_po_recency_rank",
    "avg_stale_days_per_product",
    "pct_open_cost_within_dept",
]


def open_po_lines(po_details: pl.DataFrame, as_of: date, rules: BusinessRules) -> pl.DataFrame:
    """
    Open PO lines with open-ended dates replaced by the sentinel date and
    negative open quantities floored at zero.
    """
    sentinel = date.fromisoformat(rules.open_date_sentinel)
    open_units = pl.col("quantity_open").fill_null(0).clip(lower_bound=0)
    return (
        po_details.filter(pl.col("is_closed").cast(pl.Int64) == 0)
        .with_columns(
            pl.col("next_cost_effective_date").cast(pl.Date).fill_null(sentinel),
            pl.col("cancel_date").cast(pl.Date).fill_null(sentinel),
            pl.col("vendor_po_name").fill_null("not populated"),
            pl.col("location_id").cast(pl.Int64),
            open_units.alias("open_units"),
            pl.col("quantity_ordered").alias("ordered_units"),
            (open_units * pl.col("landed_cost")).alias("open_landed_cost"),
            (open_units * pl.col("vendor_cost")).alias("open_vendor_cost"),
            (pl.lit(as_of) - pl.col("arrival_date").cast(pl.Date)).dt.total_days().alias("stale_days"),
        )
    )


@register("open_po")
def build_open_po(
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
) -> ReportResult:
    ctx = ReportContext("open_po", warehouse, as_of, rules, settings)
    enricher = DimensionEnricher(ctx.quality)
    anchor = resolve_anchor(ctx.calendar(), ctx.as_of, 0)

    # Step 1: open lines in valid departments
    base = open_po_lines(warehouse.require("po_details"), ctx.as_of, ctx.rules)
    base = enricher.join_dimension(
        base, warehouse.require("product_taxonomy"), on="product_id",
        name="product_taxonomy", columns=["level_3_id"],
    )
    base = enricher.apply_allow_list(base, "level_3_id", ctx.rules.valid_departments, "valid_departments")

    # Step 2: open side and received side at the PO line key
    open_side = base.group_by(PO_KEYS).agg([pl.col(m).sum() for m in OPEN_MEASURES])
    receipts = warehouse.require("po_receipts").with_columns(pl.col("location_id").cast(pl.Int64))
    received_side = (
        receipts.join(
            base.select(PO_KEYS + ["arrival_date_key"]).unique(),
            left_on=["purchase_order_id", "po_line_number", "location_id", "received_date_key"],
            right_on=["purchase_order_id", "po_line_number", "location_id", "arrival_date_key"],
            how="inner",
        )
        .group_by(PO_KEYS)
        .agg(pl.col("received_quantity").sum().alias("received_units"))
    )
    lines = outer_join_reconcile(open_side, received_side, PO_KEYS, zero_measure=None)

    # Step 3: line attributes from the PO detail
    attributes = base.unique(subset=PO_KEYS, keep="first", maintain_order=True).select(
        PO_KEYS + [
            "product_id", "vendor_id", "level_3_id", "written_date", "arrival_date",
            "last_receipt_date", "stale_days",
        ]
    )
    lines = lines.join(attributes, on=PO_KEYS, how="inner", nulls_equal=True)

    # Step 4: vendor, product, price and receipt age
    vendors = warehouse.require("vendors").select(
        "vendor_id",
        "vendor_name",
        pl.when(pl.col("is_foreign_vendor").cast(pl.Int64) == 1).then(pl.lit("For"))
        .when(pl.col("is_foreign_vendor").cast(pl.Int64) == 0).then(pl.lit("Dom"))
        .otherwise(pl.lit(""))
        .alias("vendor_origin"),
    )
    lines = lines.with_columns(pl.col("vendor_id").fill_null(0))
    lines = enricher.join_dimension(lines, vendors, on="vendor_id", name="vendors", keep_unmatched=True)
    lines = lines.with_columns(
        pl.col("vendor_name").fill_null("Blank"),
        pl.col("vendor_origin").fill_null(""),
    )
    lines = enricher.join_dimension(
        lines, warehouse.require("products"), on="product_id",
        name="products", columns=["product_name", "retail_price"],
    )
    prices = latest_price_on(warehouse.require("product_price_history"), anchor.date_key)
    lines = lines.join(prices, on="product_id", how="left").with_columns(
        pl.coalesce(pl.col("latest_price"), pl.col("retail_price")).alias("current_retail_price"),
        (pl.lit(ctx.as_of) - pl.col("last_receipt_date").cast(pl.Date)).dt.total_days().alias("receipt_age_days"),
    )
    lines = lines.with_columns(
        classify_price_ending(pl.col("current_retail_price"), ctx.rules).alias("price_type"),
        receipt_age_bucket(pl.col("receipt_age_days"), ctx.rules).alias("receipt_age"),
    ).unnest("price_type", "receipt_age")

    # Step 5: location and department names
    location_names = warehouse.require("locations").select(
        pl.col("location_id").cast(pl.Int64), pl.col("name").alias("location_name")
    )
    lines = enricher.join_dimension(lines, location_names, on="location_id", name="locations")
    lines = enricher.join_dimension(
        lines, department_dimension(warehouse.require("taxonomies")), on="level_3_id",
        name="departments", keep_unmatched=True,
    )

    # Step 6: vendor and department window metrics
    lines = lines.with_columns(
        partition_total("open_units", "vendor_id").alias("total_open_units_by_vendor"),
        pl.col("stale_days").mean().over("product_id").alias("avg_stale_days_per_product"),
        share_of("open_vendor_cost", "level_3_id").alias("pct_open_cost_within_dept"),
    )
    lines = add_rank(
        lines,
        "written_date",
        partition_by="vendor_id",
        tie_breakers=["purchase_order_id", "po_line_number", "location_id"],
        method="ordinal",
        name="vendor_po_recency_rank",
    )

    frame = lines.sort(
        ["vendor_name", "written_date", "product_name"],
        descending=[False, True, False],
        nulls_last=True,
    ).select(COLUMNS)
    return ctx.result(frame, anchor=anchor)
