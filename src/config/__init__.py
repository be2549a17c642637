"""
Retail Reporting Pipelines
Configuration Module
"""
from .settings import Settings, get_settings
from .lookups import BusinessRules, get_business_rules

__all__ = ["Settings", "get_settings", "BusinessRules", "get_business_rules"]
