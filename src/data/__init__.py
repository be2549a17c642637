"""
Data Generation Module
"""
from .generators import (
    WarehouseGenerator,
    build_fiscal_calendar,
    fiscal_year_start,
    generate_warehouse,
)

__all__ = [
    "WarehouseGenerator",
    "build_fiscal_calendar",
    "fiscal_year_start",
    "generate_warehouse",
]
