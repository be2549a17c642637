"""
Report Result and Registry

Every report module exposes one ``build_<name>`` function and registers it
here under its report name. Runners (CLI, Prefect flow, tests) look reports
up in ``REPORTS`` and call them with the same signature:

    build(warehouse, as_of, rules=None, settings=None, **params) -> ReportResult
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings, get_business_rules, get_settings
from src.config.logging import report_context
from src.fiscal.anchor import FiscalAnchor
from src.ingestion.warehouse import FileFormat, WarehouseReader
from src.quality.errors import ReportError
from src.quality.report import DataQualityReport
from src.quality.validators import validate_calendar

logger = structlog.get_logger(__name__)

ReportBuilder = Callable[..., "ReportResult"]

REPORTS: Dict[str, ReportBuilder] = {}


@dataclass
class ReportResult:
    """Output frame of one report run and its side-channels"""
    name: str
    frame: pl.DataFrame
    quality: DataQualityReport
    as_of: date
    anchor: Optional[FiscalAnchor] = None
    params: Dict[str, Any] = field(default_factory=dict)
    extras: Dict[str, pl.DataFrame] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def rows(self) -> int:
        return self.frame.height

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def summary(self) -> Dict[str, Any]:
        return {
            "report": self.name,
            "as_of": str(self.as_of),
            "fiscal_week_id": self.anchor.fiscal_week_id if self.anchor else None,
            "rows": self.rows,
            "extras": {name: df.height for name, df in self.extras.items()},
            "duration_seconds": self.duration_seconds,
            "quality": self.quality.as_dict(),
        }

    def _write_frame(self, df: pl.DataFrame, path: Path, fmt: FileFormat) -> Path:
        if fmt is FileFormat.CSV:
            df.write_csv(path)
        else:
            df.write_parquet(path)
        logger.info(f"Written {len(df)} rows to {path}", report=self.name)
        return path

    def write(
        self,
        output_dir: Optional[Union[str, Path]] = None,
        fmt: Optional[str] = None,
    ) -> List[Path]:
        """
        Write the report, its extra outputs and the quality summary.

        Files are named ``<report>_<as_of>.<fmt>``, ``<report>_<extra>_<as_of>.<fmt>``
        and ``<report>_<as_of>_quality.json``.
        """
        settings = get_settings()
        target = Path(output_dir or settings.data_lake.reports_path)
        target.mkdir(parents=True, exist_ok=True)
        file_format = FileFormat(fmt or settings.data_lake.default_format)
        stamp = self.as_of.strftime("%Y%m%d")

        written = [
            self._write_frame(self.frame, target / f"{self.name}_{stamp}.{file_format.value}", file_format)
        ]
        for extra, df in self.extras.items():
            written.append(
                self._write_frame(df, target / f"{self.name}_{extra}_{stamp}.{file_format.value}", file_format)
            )

        quality_file = target / f"{self.name}_{stamp}_quality.json"
        quality_file.write_text(json.dumps(self.summary(), indent=2, default=str), encoding="utf-8")
        written.append(quality_file)
        return written


def register(name: str) -> Callable[[ReportBuilder], ReportBuilder]:
    """Decorator adding a report builder to the registry"""
    def decorator(builder: ReportBuilder) -> ReportBuilder:
        if name in REPORTS:
            raise ValueError(f"Report already registered: {name}")
        REPORTS[name] = builder
        return builder
    return decorator


def as_date(value: Union[date, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


class ReportContext:
    """
    Shared plumbing for report builders: resolved rules and settings, the
    run's quality report and its timing.
    """

    def __init__(
        self,
        name: str,
        warehouse: WarehouseReader,
        as_of: Union[date, str],
        rules: Optional[BusinessRules] = None,
        settings: Optional[Settings] = None,
    ):
        self.name = name
        self.warehouse = warehouse
        self.as_of = as_date(as_of)
        self.rules = rules or get_business_rules()
        self.settings = settings or get_settings()
        self.quality = DataQualityReport(report_name=name)
        self.started_at = datetime.now(timezone.utc)
        self._calendar: Optional[pl.DataFrame] = None
        logger.info(f"Building report {name}", report=name, as_of=str(self.as_of), rules_version=self.rules.version)

    def calendar(self) -> pl.DataFrame:
        """Calendar dimension; failed integrity warnings go to the quality report"""
        if self._calendar is None:
            calendar = self.warehouse.require("calendar")
            if self.settings.report.validate_calendar:
                self.quality.record_failed(validate_calendar(calendar, self.settings.report.strict_calendar))
            self._calendar = calendar
        return self._calendar

    def result(
        self,
        frame: pl.DataFrame,
        anchor: Optional[FiscalAnchor] = None,
        params: Optional[Dict[str, Any]] = None,
        extras: Optional[Dict[str, pl.DataFrame]] = None,
    ) -> ReportResult:
        result = ReportResult(
            name=self.name,
            frame=frame,
            quality=self.quality,
            as_of=self.as_of,
            anchor=anchor,
            params=params or {},
            extras=extras or {},
            started_at=self.started_at,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Report {self.name} complete",
            report=self.name,
            rows=result.rows,
            dangling=self.quality.total_dangling,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result


def run_report(
    name: str,
    warehouse: WarehouseReader,
    as_of: Union[date, str],
    rules: Optional[BusinessRules] = None,
    settings: Optional[Settings] = None,
    **params: Any,
) -> ReportResult:
    """
    Look a report up by name and build it.

    Raises:
        ReportError: unknown report name
    """
    builder = REPORTS.get(name)
    if builder is None:
        raise ReportError(f"Unknown report: {name}", details={"available": sorted(REPORTS)})
    with report_context(name, as_of):
        return builder(warehouse, as_of, rules=rules, settings=settings, **params)
