"""
Dimensional Enrichment Module

Joins reconciled facts to the product, taxonomy, vendor, location and
calendar dimensions and applies department/channel allow-lists.

Fact rows whose key has no dimension row are excluded from the output.
Every exclusion is counted in the run's DataQualityReport, so a discontinued
product never blocks headline totals and never disappears unnoticed.
"""

from typing import List, Optional, Sequence, Union

import polars as pl
import structlog

from src.config.lookups import BusinessRules
from src.quality.report import DataQualityReport

logger = structlog.get_logger(__name__)


class DimensionEnricher:
    """
    Dimension joins that count what they drop.

    Example:
        enricher = DimensionEnricher(quality)
        df = enricher.join_dimension(df, taxonomy, on="product_id", name="product_taxonomy")
        df = enricher.apply_allow_list(df, "level_3_id", rules.valid_departments, "valid_departments")
    """

    def __init__(self, quality: Optional[DataQualityReport] = None):
        self.quality = quality if quality is not None else DataQualityReport()

    def join_dimension(
        self,
        df: pl.DataFrame,
        dimension: pl.DataFrame,
        on: Union[str, Sequence[str]],
        name: str,
        columns: Optional[List[str]] = None,
        right_on: Optional[Union[str, Sequence[str]]] = None,
        keep_unmatched: bool = False,
    ) -> pl.DataFrame:
        """
        Join one dimension onto the facts.

        Args:
            df: Fact rows
            dimension: Dimension table
            on: Fact key column(s)
            name: Dimension name used in the quality report
            columns: Dimension attributes to carry (default: all)
            right_on: Dimension key column(s) when named differently
            keep_unmatched: Keep unmatched facts with null attributes
                instead of excluding them

        Returns:
            Enriched facts
        """
        left_keys = [on] if isinstance(on, str) else list(on)
        right_keys = left_keys if right_on is None else ([right_on] if isinstance(right_on, str) else list(right_on))

        carried = columns if columns is not None else [c for c in dimension.columns if c not in right_keys]
        dim = dimension.select(right_keys + [c for c in carried if c not in right_keys])

        duplicates = dim.height - dim.unique(subset=right_keys).height
        if duplicates:
            logger.warning(f"Dimension {name} has {duplicates} duplicate keys; keeping first")
            dim = dim.unique(subset=right_keys, keep="first", maintain_order=True)

        how = "left" if keep_unmatched else "inner"
        enriched = df.join(dim, left_on=left_keys, right_on=right_keys, how=how)

        if keep_unmatched:
            unmatched = df.join(dim, left_on=left_keys, right_on=right_keys, how="anti").height
        else:
            unmatched = df.height - enriched.height
        self.quality.record_dangling(name, unmatched)

        return enriched

    def apply_allow_list(
        self,
        df: pl.DataFrame,
        column: str,
        allowed: Sequence,
        name: str,
    ) -> pl.DataFrame:
        """Keep rows whose ``column`` is in ``allowed``"""
        kept = df.filter(pl.col(column).is_in(list(allowed)))
        self.quality.record_filtered(name, df.height - kept.height)
        return kept


def enrich_sales_facts(
    facts: pl.DataFrame,
    products: pl.DataFrame,
    taxonomy: pl.DataFrame,
    locations: pl.DataFrame,
    rules: BusinessRules,
    quality: Optional[DataQualityReport] = None,
    departments: Optional[Sequence[int]] = None,
    channels: Optional[Sequence[str]] = None,
    location_columns: Optional[List[str]] = None,
) -> pl.DataFrame:
    """
    Standard product, vendor and location enrichment for net sales facts.

    Adds ``level_3_id``, ``level_5_id``, ``vendor_id`` (missing vendors
    become 0), ``channel_id`` and ``has_comparable_sales``, then applies
    the department allow-list (``rules.valid_departments`` by default) and
    an optional channel-id allow-list.
    """
    enricher = DimensionEnricher(quality)

    # Step 1: taxonomy
    df = enricher.join_dimension(
        facts, taxonomy, on="product_id", name="product_taxonomy",
        columns=["level_3_id", "level_5_id"],
    )

    # Step 2: vendor via product
    df = enricher.join_dimension(df, products, on="product_id", name="products", columns=["vendor_id"])
    df = df.with_columns(pl.col("vendor_id").fill_null(0))

    # Step 3: location
    df = enricher.join_dimension(
        df, locations, on="location_id", name="locations",
        columns=location_columns or ["channel_id", "has_comparable_sales"],
    )

    # Step 4: allow-lists
    allowed_departments = departments if departments is not None else rules.valid_departments
    df = enricher.apply_allow_list(df, "level_3_id", allowed_departments, "valid_departments")
    if channels is not None:
        df = enricher.apply_allow_list(df, "channel_id", channels, "valid_channels")

    logger.info(f"Enriched {df.height} of {facts.height} fact rows")
    return df
