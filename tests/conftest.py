"""
Test Suite Configuration
"""
from datetime import date, timedelta

import pytest
import polars as pl

from src.config import BusinessRules, Settings
from src.data.generators import build_fiscal_calendar, generate_warehouse
from src.ingestion.warehouse import WarehouseReader

GENERATED_AS_OF = date(2025, 11, 22)

# Mini warehouse: as-of 2025-03-05 anchors (7 days back) on 2025-02-26,
# fiscal week 202505 running 2025-02-23 .. 2025-03-01
MINI_AS_OF = date(2025, 3, 5)
SALE_DAY = date(2025, 2, 24)


def key(day: date) -> int:
    return int(day.strftime("%Y%m%d"))


def ly_key(day: date) -> int:
    return key(day - timedelta(days=364))


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings()


@pytest.fixture(scope="session")
def rules() -> BusinessRules:
    """Default business rule tables"""
    return BusinessRules()


@pytest.fixture(scope="session")
def calendar() -> pl.DataFrame:
    """Fiscal calendar for FY2024 and FY2025"""
    return build_fiscal_calendar(2024, 2025)


@pytest.fixture
def sales_lines_df() -> pl.DataFrame:
    """Store, online and unknown-channel sales lines"""
    return pl.DataFrame(
        {
            "order_line_id": [1, 2, 3, 4, 5],
            "order_id": [100, 200, 300, 400, 500],
            "product_id": [1, 2, 3, 4, 1],
            "sales_channel": ["pos", "web", "tiktok_shop", "pos", "pos"],
            "source": ["xcenter", "oroms", "oroms", "xcenter", "xcenter"],
            "attribution_location_id": [14, 2, 2, 14, 14],
            "unit_last_cost": [5.0, 10.0, 8.0, 5.0, 4.0],
        },
        schema={
            "order_line_id": pl.Int64, "order_id": pl.Int64, "product_id": pl.Int64,
            "sales_channel": pl.Utf8, "source": pl.Utf8,
            "attribution_location_id": pl.Int64, "unit_last_cost": pl.Float64,
        },
    )


@pytest.fixture
def delivered_sales_df() -> pl.DataFrame:
    """Four sales in the anchor week and one on the matching day last year"""
    day = key(SALE_DAY)
    return pl.DataFrame(
        {
            "date_key": [day, day, day, day, ly_key(SALE_DAY)],
            "order_line_id": [1, 2, 3, 4, 5],
            "product_id": [1, 2, 3, 4, 1],
            "quantity": [2, 1, 1, 1, 1],
            "merchandise": [40.0, 30.0, 20.0, 15.0, 12.0],
            "fair_market_value": [10.0, 12.0, 8.0, 5.0, 4.0],
        },
        schema={
            "date_key": pl.Int64, "order_line_id": pl.Int64, "product_id": pl.Int64,
            "quantity": pl.Int64, "merchandise": pl.Float64, "fair_market_value": pl.Float64,
        },
    )


@pytest.fixture
def delivered_returns_df() -> pl.DataFrame:
    """A web return received at the hub, an in-store return and one with no sales line"""
    return pl.DataFrame(
        {
            "date_key": [key(date(2025, 2, 25)), key(date(2025, 2, 26)), key(date(2025, 2, 26))],
            "order_line_id": [2, 1, 999],
            "product_id": [2, 1, 3],
            "location_id": [904, 14, 14],
            "original_order_id": [200, 100, None],
            "quantity": [1, 1, 1],
            "merchandise": [30.0, 20.0, 9.0],
            "fair_market_value": [12.0, 5.0, 3.0],
        },
        schema={
            "date_key": pl.Int64, "order_line_id": pl.Int64, "product_id": pl.Int64,
            "location_id": pl.Int64, "original_order_id": pl.Int64, "quantity": pl.Int64,
            "merchandise": pl.Float64, "fair_market_value": pl.Float64,
        },
    )


@pytest.fixture
def products_df() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "product_id": [1, 2, 3, 4],
            "sku": ["SKU-1", "SKU-2", "SKU-3", "SKU-4"],
            "product_name": ["Skillet", "Chef Knife", "Loaf Pan", "Gift Wrap"],
            "vendor_id": [10, 11, None, 10],
            "retail_price": [49.99, 79.96, 19.99, 5.0],
        },
        schema={
            "product_id": pl.Int64, "sku": pl.Utf8, "product_name": pl.Utf8,
            "vendor_id": pl.Int64, "retail_price": pl.Float64,
        },
    )


@pytest.fixture
def taxonomy_df() -> pl.DataFrame:
    """Products 1-3 in valid departments, product 4 in department 4"""
    return pl.DataFrame(
        {
            "product_id": [1, 2, 3, 4],
            "level_3_id": [500004, 500005, 3, 4],
            "level_5_id": [50000401, 50000501, 301, 401],
        },
        schema={"product_id": pl.Int64, "level_3_id": pl.Int64, "level_5_id": pl.Int64},
    )


@pytest.fixture
def locations_df() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "location_id": [14, 2, 904],
            "name": ["Seattle Store", "Ecommerce", "Distribution Hub"],
            "channel_id": ["1", "2", "3"],
            "channel_code": ["retail", "ecommerce", "warehouse"],
            "district_code": ["NW", "DC", None],
            "has_comparable_sales": [True, True, False],
        },
        schema={
            "location_id": pl.Int64, "name": pl.Utf8, "channel_id": pl.Utf8,
            "channel_code": pl.Utf8, "district_code": pl.Utf8, "has_comparable_sales": pl.Boolean,
        },
    )


@pytest.fixture
def cosa_df() -> pl.DataFrame:
    """One matched adjustment, one COSA-only key and one zero adjustment"""
    return pl.DataFrame(
        {
            "date_key": [key(SALE_DAY), key(date(2025, 2, 25)), key(SALE_DAY)],
            "product_id": [1, 3, 2],
            "location_id": [14, 14, 2],
            "cosa": [9.0, 4.0, 0.0],
        },
        schema={"date_key": pl.Int64, "product_id": pl.Int64, "location_id": pl.Int64, "cosa": pl.Float64},
    )


@pytest.fixture
def mini_warehouse(
    calendar,
    sales_lines_df,
    delivered_sales_df,
    delivered_returns_df,
    products_df,
    taxonomy_df,
    locations_df,
    cosa_df,
) -> WarehouseReader:
    """Hand-built warehouse small enough to check totals by hand"""
    return WarehouseReader(tables={
        "calendar": calendar,
        "sales_lines": sales_lines_df,
        "delivered_sales": delivered_sales_df,
        "delivered_returns": delivered_returns_df,
        "products": products_df,
        "product_taxonomy": taxonomy_df,
        "locations": locations_df,
        "cosa": cosa_df,
    })


@pytest.fixture(scope="session")
def generated_tables() -> dict:
    """Synthetic warehouse ending on GENERATED_AS_OF"""
    return generate_warehouse(GENERATED_AS_OF)


@pytest.fixture
def generated_warehouse(generated_tables) -> WarehouseReader:
    return WarehouseReader(tables=generated_tables)
