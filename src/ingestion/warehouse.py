"""
Warehouse Reader

Read-only access to warehouse extracts stored as Parquet or CSV files, one
file per table, under the warehouse path:

    <warehouse_path>/calendar.parquet
    <warehouse_path>/delivered_sales.parquet
    ...

Tables are read once per reader and cached. Frames can also be handed in
directly, which is how tests and the synthetic generator feed reports.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

import polars as pl
import structlog

from src.config import get_settings
from src.quality.errors import SchemaError

logger = structlog.get_logger(__name__)
settings = get_settings()


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    PARQUET = "parquet"


# Columns each report relies on; extra columns are ignored
TABLE_SCHEMAS: Dict[str, List[str]] = {
    "calendar": [
        "date_key", "gregorian_date", "fiscal_week_id", "fiscal_month_id",
        "fiscal_quarter_id", "fiscal_year", "last_year_date_key",
    ],
    "products": ["product_id", "sku", "product_name", "vendor_id", "retail_price"],
    "product_taxonomy": ["product_id", "level_3_id", "level_5_id"],
    "taxonomies": ["taxonomy_id", "level", "parent_id", "name", "taxonomy_code"],
    "vendors": ["vendor_id", "vendor_name", "is_foreign_vendor"],
    "locations": [
        "location_id", "name", "channel_id", "channel_code",
        "district_code", "has_comparable_sales",
    ],
    "channels": ["channel_id", "channel_code"],
    "sales_lines": [
        "order_line_id", "order_id", "product_id", "sales_channel",
        "source", "attribution_location_id", "unit_last_cost",
    ],
    "delivered_sales": [
        "date_key", "order_line_id", "product_id", "quantity",
        "merchandise", "fair_market_value",
    ],
    "written_sales": [
        "date_key", "order_line_id", "product_id", "quantity",
        "merchandise", "fair_market_value",
    ],
    "delivered_returns": [
        "date_key", "order_line_id", "product_id", "location_id",
        "original_order_id", "quantity", "merchandise", "fair_market_value",
    ],
    "cosa": ["date_key", "product_id", "location_id", "cosa"],
    "product_price_history": ["date_key", "product_id", "price_type", "price"],
    "pos_discounts": ["order_line_id", "discount_code", "subdiscount_code", "discount_amount"],
    "drop_ship_po": ["order_id", "product_id", "po_number"],
    "forecast_budget": ["date_key", "class_id", "forecast_demand", "budgeted_demand"],
    "po_details": [
        "purchase_order_id", "po_line_number", "location_id", "product_id",
        "vendor_id", "vendor_po_name", "is_closed", "written_date",
        "arrival_date", "arrival_date_key", "next_cost_effective_date",
        "cancel_date", "last_receipt_date", "quantity_ordered", "quantity_received",
        "quantity_open", "landed_cost", "vendor_cost",
    ],
    "po_receipts": [
        "purchase_order_id", "po_line_number", "location_id", "product_id",
        "received_date_key", "received_quantity",
    ],
    "sales_headers": ["order_id", "order_number", "source", "order_type", "email", "alt_order_number"],
    "order_header": [
        "customer_key", "order_number", "order_date", "order_year",
        "net_amount", "purchase_order", "cooking_school_amount",
        "cooking_school_quantity", "cancel_quantity", "email",
    ],
    "order_lines": ["order_number", "net_amount", "net_quantity", "price"],
    "customers": [
        "customer_key", "email", "original_entered_date",
        "miles_to_closest_store", "closest_store_id",
    ],
    "class_sales_lines": [
        "order_number", "order_line_id", "date_ordered", "sku", "email",
        "customer_name", "billing_name", "quantity", "quantity_returned",
        "quantity_canceled", "sub_total",
    ],
    "culinary_products": ["sku", "location_code", "is_class_cancelled", "start_date"],
}


class WarehouseReader:
    """
    Cached, read-only table access.

    Example:
        warehouse = WarehouseReader("./data/warehouse")
        calendar = warehouse.table("calendar")

        warehouse = WarehouseReader(tables={"calendar": calendar_df})
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        file_format: Optional[str] = None,
        tables: Optional[Mapping[str, pl.DataFrame]] = None,
    ):
        self.path = Path(path or settings.data_lake.warehouse_path)
        self.file_format = FileFormat(file_format or settings.data_lake.default_format)
        self._cache: Dict[str, pl.DataFrame] = dict(tables or {})

    def _file_for(self, name: str) -> Path:
        return self.path / f"{name}.{self.file_format.value}"

    def _read(self, name: str) -> pl.DataFrame:
        file_path = self._file_for(name)
        if not file_path.exists():
            raise SchemaError(f"Warehouse table '{name}' not found at {file_path}", details={"table": name})

        if self.file_format is FileFormat.CSV:
            df = pl.read_csv(
                file_path,
                null_values=["", "NULL", "null", "None", "NA"],
                try_parse_dates=True,
                infer_schema_length=10000,
            )
        else:
            df = pl.read_parquet(file_path)

        logger.info(f"Read {len(df)} rows from {file_path}", table=name)
        return df

    def has_table(self, name: str) -> bool:
        return name in self._cache or self._file_for(name).exists()

    def table(self, name: str) -> pl.DataFrame:
        """Load a table, reading it from disk on first use"""
        if name not in self._cache:
            self._cache[name] = self._read(name)
        return self._cache[name]

    def require(self, name: str, columns: Optional[Sequence[str]] = None) -> pl.DataFrame:
        """
        Load a table and check it carries the expected columns.

        Raises:
            SchemaError: table missing or required columns absent
        """
        df = self.table(name)
        expected = list(columns) if columns is not None else TABLE_SCHEMAS.get(name, [])
        missing = [c for c in expected if c not in df.columns]
        if missing:
            raise SchemaError(
                f"Warehouse table '{name}' is missing columns: {missing}",
                details={"table": name, "missing": missing},
            )
        return df

    def write_all(self, path: Optional[Union[str, Path]] = None) -> List[Path]:
        """Write every cached table out in the reader's format"""
        target = Path(path or self.path)
        target.mkdir(parents=True, exist_ok=True)
        written = []
        for name, df in sorted(self._cache.items()):
            file_path = target / f"{name}.{self.file_format.value}"
            if self.file_format is FileFormat.CSV:
                df.write_csv(file_path)
            else:
                df.write_parquet(file_path)
            written.append(file_path)
        logger.info(f"Wrote {len(written)} warehouse tables to {target}")
        return written
