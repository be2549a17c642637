"""
Data Quality Module
"""
from .errors import CalendarIntegrityError, ConservationError, ReportError, SchemaError
from .report import DataQualityReport
from .validators import DataValidator, ValidationResult, check_conservation, validate_calendar

__all__ = [
    "CalendarIntegrityError",
    "ConservationError",
    "ReportError",
    "SchemaError",
    "DataQualityReport",
    "DataValidator",
    "ValidationResult",
    "check_conservation",
    "validate_calendar",
]
