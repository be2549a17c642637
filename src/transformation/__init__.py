"""
Data Transformation Module
"""
from .aggregation import aggregate, pivot_periods
from .analytics import add_cumulative_share, add_rank, add_share, safe_ratio, share_of
from .enrichers import DimensionEnricher, enrich_sales_facts
from .extractors import extract_delivered_returns, extract_delivered_sales, extract_written_sales
from .reconcile import outer_join_reconcile, overlay_cost_adjustment, reconcile_frames, reconcile_net
from .rules import normalize_sales_channel, reattribute_hub_returns
from .transformers import NetSalesPipeline, NetSalesRequest, PipelineResult

__all__ = [
    "aggregate",
    "pivot_periods",
    "add_cumulative_share",
    "add_rank",
    "add_share",
    "safe_ratio",
    "share_of",
    "DimensionEnricher",
    "enrich_sales_facts",
    "extract_delivered_returns",
    "extract_delivered_sales",
    "extract_written_sales",
    "outer_join_reconcile",
    "overlay_cost_adjustment",
    "reconcile_frames",
    "reconcile_net",
    "normalize_sales_channel",
    "reattribute_hub_returns",
    "NetSalesPipeline",
    "NetSalesRequest",
    "PipelineResult",
]
