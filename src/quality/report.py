"""
Data Quality Side-Channel

Collects the rows a report filtered or reclassified on its way to the
output so they can be monitored next to the report itself.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

import structlog

from .validators import ValidationCheck, ValidationResult, ValidationSeverity

logger = structlog.get_logger(__name__)


@dataclass
class DataQualityReport:
    """Counts of dropped and reclassified rows for one report run"""
    report_name: str = ""
    dangling: Dict[str, int] = field(default_factory=dict)
    filtered: Dict[str, int] = field(default_factory=dict)
    reclassified: Dict[str, int] = field(default_factory=dict)
    checks: List[ValidationCheck] = field(default_factory=list)

    def record_dangling(self, dimension: str, count: int) -> None:
        """Rows excluded because a foreign key had no dimension row"""
        self.dangling[dimension] = self.dangling.get(dimension, 0) + count
        if count:
            logger.warning(
                f"Excluded {count} rows with no matching {dimension}",
                report=self.report_name,
                dimension=dimension,
                rows=count,
            )

    def record_filtered(self, rule: str, count: int) -> None:
        """Rows excluded by an allow-list"""
        self.filtered[rule] = self.filtered.get(rule, 0) + count
        if count:
            logger.debug(f"Allow-list {rule} removed {count} rows", report=self.report_name)

    def record_reclassified(self, rule: str, count: int) -> None:
        """Rows whose code fell back to a default bucket"""
        self.reclassified[rule] = self.reclassified.get(rule, 0) + count
        if count:
            logger.warning(
                f"Reclassified {count} rows under {rule}",
                report=self.report_name,
                rule=rule,
                rows=count,
            )

    def add_check(self, check: ValidationCheck) -> None:
        self.checks.append(check)

    def record_failed(self, result: ValidationResult, prefix: str = "") -> None:
        """Keep the failed checks of a validation run, names prefixed with their source"""
        for check in result.checks:
            if not check.passed:
                check.name = f"{prefix}{check.name}"
                self.add_check(check)

    @property
    def total_dangling(self) -> int:
        return sum(self.dangling.values())

    @property
    def passed(self) -> bool:
        """True when no ERROR-severity check failed; warnings are surfaced only"""
        return not any(not c.passed and c.severity == ValidationSeverity.ERROR for c in self.checks)

    def merge(self, other: "DataQualityReport") -> "DataQualityReport":
        """Fold another report's counts into this one"""
        for name, count in other.dangling.items():
            self.dangling[name] = self.dangling.get(name, 0) + count
        for name, count in other.filtered.items():
            self.filtered[name] = self.filtered.get(name, 0) + count
        for name, count in other.reclassified.items():
            self.reclassified[name] = self.reclassified.get(name, 0) + count
        self.checks.extend(other.checks)
        return self

    def as_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report_name,
            "dangling": dict(self.dangling),
            "filtered": dict(self.filtered),
            "reclassified": dict(self.reclassified),
            "checks": [
                {
                    "name": c.name,
                    "passed": c.passed,
                    "severity": c.severity.value,
                    "message": c.message,
                }
                for c in self.checks
            ],
        }
