"""
Display dimensions shared by several reports.
"""

import polars as pl


def department_dimension(taxonomies: pl.DataFrame) -> pl.DataFrame:
    """Level-3 taxonomy rows as ``level_3_id``, ``level_3_name``, ``taxonomy_code``"""
    return (
        taxonomies.filter(pl.col("level") == 3)
        .select(
            pl.col("taxonomy_id").alias("level_3_id"),
            pl.col("name").alias("level_3_name"),
            pl.col("taxonomy_code").cast(pl.Int64, strict=False).alias("taxonomy_code"),
        )
        .unique(subset=["level_3_id"], keep="first", maintain_order=True)
    )


def latest_price_on(price_history: pl.DataFrame, as_of_key: int) -> pl.DataFrame:
    """Most recent recorded price per product on or before a date key"""
    return (
        price_history.filter(pl.col("date_key") <= as_of_key)
        .sort(["product_id", "date_key"], descending=[False, True])
        .unique(subset=["product_id"], keep="first", maintain_order=True)
        .select("product_id", pl.col("price").alias("latest_price"))
    )
