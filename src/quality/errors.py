"""
Report Error Taxonomy

Integrity problems abort a report. Dangling references and unrecognised
codes are never raised; they are counted in the DataQualityReport.
"""

from typing import Any, Dict, Optional


class ReportError(Exception):
    """Base class for report failures"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CalendarIntegrityError(ReportError):
    """Anchor or last-year mapping does not resolve to exactly one calendar row"""


class ConservationError(ReportError):
    """Reconciled net totals do not equal sales minus returns"""


class SchemaError(ReportError):
    """Warehouse table missing or lacking required columns"""
