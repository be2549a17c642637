"""
Channel, Location and Price Classification Rules

Expression builders for the business rules that recur across reports.
All rule data comes from a BusinessRules instance passed by the caller.
"""

from typing import Tuple

import polars as pl
import structlog

from src.config.lookups import BusinessRules

logger = structlog.get_logger(__name__)


def normalize_sales_channel(
    df: pl.DataFrame,
    rules: BusinessRules,
    column: str = "sales_channel",
) -> Tuple[pl.DataFrame, int]:
    """
    Map a null channel to the default channel and unknown codes to the
    unclassified bucket.

    Returns:
        The normalized frame and the number of rows moved to the
        unclassified bucket
    """
    channel = pl.col(column).fill_null(rules.default_sales_channel)
    unknown = ~channel.is_in(rules.known_sales_channels)

    reclassified = df.select(unknown.sum()).item() if df.height else 0
    normalized = df.with_columns(
        pl.when(unknown)
        .then(pl.lit(rules.unclassified_sales_channel))
        .otherwise(channel)
        .alias(column)
    )
    return normalized, int(reclassified or 0)


def hub_return_location(
    rules: BusinessRules,
    location: str = "location_id",
    channel: str = "sales_channel",
) -> pl.Expr:
    """Attribution location for a return, moving direct-channel hub returns to ecommerce"""
    return (
        pl.when(
            (pl.col(location) == rules.hub_location_id)
            & pl.col(channel).is_in(rules.direct_channels)
        )
        .then(pl.lit(rules.ecommerce_location_id))
        .otherwise(pl.col(location))
        .cast(pl.Int64)
    )


def reattribute_hub_returns(
    df: pl.DataFrame,
    rules: BusinessRules,
    location: str = "location_id",
    channel: str = "sales_channel",
) -> pl.DataFrame:
    """
    Re-attribute returns received at the hub to the ecommerce location.

    Applying the rule to already re-attributed data changes nothing: the
    ecommerce location never matches the hub condition.
    """
    moved = df.filter(
        (pl.col(location) == rules.hub_location_id)
        & pl.col(channel).is_in(rules.direct_channels)
    ).height
    if moved:
        logger.debug(f"Re-attributed {moved} hub returns to ecommerce")
    return df.with_columns(hub_return_location(rules, location, channel).alias(location))


def merch_group(department: pl.Expr, rules: BusinessRules) -> pl.Expr:
    """Merch group label of a department id"""
    expr = pl.lit(rules.default_merch_group)
    for group, departments in reversed(list(rules.merch_groups.items())):
        expr = pl.when(department.is_in(departments)).then(pl.lit(group)).otherwise(expr)
    return expr


def price_type_rank(price_type: pl.Expr, rules: BusinessRules) -> pl.Expr:
    """Display order of a price type; unknown types sort last"""
    return price_type.replace_strict(
        rules.price_type_order,
        default=rules.unknown_price_type_order,
        return_dtype=pl.Int64,
    )


def _cents(price: pl.Expr) -> pl.Expr:
    return (price * 100).round(0).cast(pl.Int64)


def _price_rule_matches(rule, price: pl.Expr) -> pl.Expr:
    if rule.kind == "cents_digit":
        return (_cents(price) % 10) == int(rule.value)
    if rule.kind == "suffix":
        return (_cents(price) % (10 ** len(rule.value))) == int(rule.value)
    if rule.kind == "missing":
        return price.is_null()
    raise ValueError(f"Unknown price rule kind: {rule.kind}")


def classify_price_ending(price: pl.Expr, rules: BusinessRules) -> pl.Expr:
    """
    Price type of a retail price from its cents ending.

    Returns:
        Struct expression with fields ``price_type_id``, ``price_type_code``
        and ``price_type_description``; the first matching rule wins
    """
    def chain(attribute: str, dtype) -> pl.Expr:
        expr = pl.lit(getattr(rules.regular_price_rule, attribute), dtype=dtype)
        for rule in reversed(rules.price_ending_rules):
            expr = (
                pl.when(_price_rule_matches(rule, price))
                .then(pl.lit(getattr(rule, attribute), dtype=dtype))
                .otherwise(expr)
            )
        return expr

    return pl.struct(
        chain("type_id", pl.Int64).alias("price_type_id"),
        chain("code", pl.Utf8).alias("price_type_code"),
        chain("description", pl.Utf8).alias("price_type_description"),
    )


def receipt_age_bucket(age_days: pl.Expr, rules: BusinessRules) -> pl.Expr:
    """
    Receipt age bucket of a day count.

    Returns:
        Struct expression with ``receipt_age_bucket_id`` and
        ``receipt_age_bucket``
    """
    bucket_id = pl.lit(rules.oldest_age_bucket.bucket_id, dtype=pl.Int64)
    label = pl.lit(rules.oldest_age_bucket.label, dtype=pl.Utf8)
    for bucket in sorted(rules.receipt_age_buckets, key=lambda b: b.max_days, reverse=True):
        within = age_days <= bucket.max_days
        bucket_id = pl.when(within).then(pl.lit(bucket.bucket_id, dtype=pl.Int64)).otherwise(bucket_id)
        label = pl.when(within).then(pl.lit(bucket.label, dtype=pl.Utf8)).otherwise(label)
    return pl.struct(bucket_id.alias("receipt_age_bucket_id"), label.alias("receipt_age_bucket"))


def region_attributes(locations: pl.DataFrame, rules: BusinessRules) -> pl.DataFrame:
    """
    Region, manager, district and win-store attributes per location.

    Locations whose district is unmapped fall back to the warehouse region
    when their channel code is the warehouse code, else to the other region.
    """
    mapping = pl.DataFrame(
        [
            {
                "district_code": code,
                "region": rule.region,
                "region_manager": rule.manager,
                "region_order": rule.region_order,
                "district_name": rule.district_name,
                "district_order": rule.district_order,
            }
            for code, rule in rules.regions.items()
        ],
        schema={
            "district_code": pl.Utf8,
            "region": pl.Utf8,
            "region_manager": pl.Utf8,
            "region_order": pl.Int64,
            "district_name": pl.Utf8,
            "district_order": pl.Int64,
        },
    )
    attributes = ["region", "region_manager", "region_order", "district_name", "district_order"]
    warehouse = pl.col("channel_code") == rules.warehouse_channel_code
    rule_field = {"region_manager": "manager"}

    mapped = locations.join(mapping, on="district_code", how="left")
    return mapped.with_columns(
        [
            pl.when(pl.col("region").is_not_null())
            .then(pl.col(name))
            .when(warehouse)
            .then(pl.lit(getattr(rules.warehouse_region, rule_field.get(name, name))))
            .otherwise(pl.lit(getattr(rules.other_region, rule_field.get(name, name))))
            .alias(name)
            for name in attributes
        ]
        + [
            pl.col("district_code").fill_null("No Code"),
            pl.when(pl.col("location_id").is_in(rules.win_stores))
            .then(pl.lit("Y"))
            .otherwise(pl.lit("N"))
            .alias("win_store"),
        ]
    )
