"""
Warehouse Ingestion Module
"""
from .warehouse import FileFormat, TABLE_SCHEMAS, WarehouseReader

__all__ = [
    "FileFormat",
    "TABLE_SCHEMAS",
    "WarehouseReader",
]
