"""
Report Catalogue

Importing this package registers every report in ``REPORTS``.
"""
from .base import REPORTS, ReportContext, ReportResult, register, run_report
from .cancelled_classes import build_cancelled_classes
from .class_cohorts import build_class_cohorts
from .culinary_segments import build_culinary_segments
from .customer_frequency import build_customer_frequency
from .customer_segmentation import build_customer_segmentation
from .dsr_kpi import build_dsr_kpi
from .market_basket import build_market_basket
from .occ_buyers import build_occ_buyers
from .open_po import build_open_po
from .returns_by_store import build_returns_by_store
from .sales_and_inventory import build_sales_and_inventory
from .sales_by_discount_code import build_sales_by_discount_code
from .sales_by_price_type import build_sales_by_price_type
from .store_margin import build_store_margin

__all__ = [
    "REPORTS",
    "ReportContext",
    "ReportResult",
    "register",
    "run_report",
    "build_cancelled_classes",
    "build_class_cohorts",
    "build_culinary_segments",
    "build_customer_frequency",
    "build_customer_segmentation",
    "build_dsr_kpi",
    "build_market_basket",
    "build_occ_buyers",
    "build_open_po",
    "build_returns_by_store",
    "build_sales_and_inventory",
    "build_sales_by_discount_code",
    "build_sales_by_price_type",
    "build_store_margin",
]
