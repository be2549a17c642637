"""
Net Sales Pipeline

Generic orchestrator chaining the reusable stages every net-sales report is
built from:

    1. fiscal anchor resolution
    2. fact extraction (with hub re-attribution)
    3. sales/returns net reconciliation
    4. optional COSA overlay
    5. dimensional enrichment and allow-lists
    6. TY/LY period bucketing
    7. aggregation to the report grain

Window analytics (shares, ranks, cumulative shares) are applied by each
report on the aggregated frame.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, List, Optional, Sequence, Set, Tuple, Union

import polars as pl
import structlog

from src.config import BusinessRules, Settings, get_business_rules, get_settings
from src.fiscal.anchor import FiscalAnchor, resolve_anchor
from src.fiscal.windows import (
    PeriodWindow,
    WindowDefinition,
    YearBasis,
    bucket_periods,
    build_window,
    period_labels,
)
from src.ingestion.warehouse import WarehouseReader
from src.quality.errors import ConservationError
from src.quality.report import DataQualityReport
from src.quality.validators import check_conservation, create_fact_validator, validate_calendar
from .aggregation import aggregate, pivot_periods
from .enrichers import enrich_sales_facts
from .extractors import extract_delivered_returns, extract_delivered_sales
from .reconcile import collapse, overlay_cost_adjustment, reconcile_net

logger = structlog.get_logger(__name__)

NET_KEYS = ["date_key", "product_id", "location_id", "sales_channel"]
COSA_KEYS = ["date_key", "product_id", "location_id"]
FACT_CHECK_KEYS = ["date_key", "product_id", "location_id"]


@dataclass
class NetSalesRequest:
    """Parameters of one pipeline run"""
    as_of: date
    grain: List[str]
    measures: List[str] = field(default_factory=lambda: ["dollars", "gm", "units"])
    windows: List[Union[PeriodWindow, WindowDefinition]] = field(
        default_factory=lambda: [PeriodWindow.LAST_WEEK]
    )
    bases: List[YearBasis] = field(default_factory=lambda: [YearBasis.TY])
    anchor_offset_days: Optional[int] = None
    through: Optional[date] = None
    include_cosa: bool = False
    departments: Optional[List[int]] = None
    channels: Optional[List[str]] = None
    reconcile_keys: Optional[List[str]] = None
    location_columns: Optional[List[str]] = None
    calendar_columns: Optional[List[str]] = None
    # derived columns added after enrichment, before period bucketing
    augment: Optional[Callable[[pl.DataFrame], pl.DataFrame]] = None
    output_measures: Optional[List[str]] = None
    wide: bool = True


@dataclass
class PipelineResult:
    """Result of a pipeline run"""
    frame: pl.DataFrame
    anchor: FiscalAnchor
    quality: DataQualityReport
    periods: List[str]
    measures: List[str]
    net: Optional[pl.DataFrame] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()


class NetSalesPipeline:
    """
    Parameterized net-sales pipeline.

    Example:
        pipeline = NetSalesPipeline(WarehouseReader(path))
        result = pipeline.run(NetSalesRequest(
            as_of=date(2025, 11, 22),
            grain=["vendor_id", "level_5_id", "channel_id"],
            windows=[PeriodWindow.MTD, PeriodWindow.YTD],
            bases=[YearBasis.TY, YearBasis.LY],
        ))
    """

    def __init__(
        self,
        warehouse: WarehouseReader,
        rules: Optional[BusinessRules] = None,
        settings: Optional[Settings] = None,
        quality: Optional[DataQualityReport] = None,
    ):
        self.warehouse = warehouse
        self.rules = rules or get_business_rules()
        self.settings = settings or get_settings()
        self.quality = quality if quality is not None else DataQualityReport()
        # Extraction and its quality metrics are recorded once per pipeline,
        # however many grains the facts are reconciled at
        self._calendar: Optional[pl.DataFrame] = None
        self._facts: Optional[Tuple[pl.DataFrame, pl.DataFrame]] = None
        self._validated: Set[str] = set()
        self._verified: Set[str] = set()

    def calendar(self) -> pl.DataFrame:
        """Calendar dimension, validated once per pipeline"""
        if self._calendar is None:
            calendar = self.warehouse.require("calendar")
            if self.settings.report.validate_calendar:
                self.quality.record_failed(validate_calendar(calendar, self.settings.report.strict_calendar))
            self._calendar = calendar
        return self._calendar

    def anchor(self, calendar: pl.DataFrame, request: NetSalesRequest) -> FiscalAnchor:
        offset = request.anchor_offset_days
        if offset is None:
            offset = self.settings.report.anchor_offset_days
        return resolve_anchor(calendar, request.as_of, offset)

    def extract(self) -> Tuple[pl.DataFrame, pl.DataFrame]:
        """Delivered sales and return facts; dangling and reclassified rows are counted on first use"""
        if self._facts is None:
            lines = self.warehouse.require("sales_lines")
            sales = extract_delivered_sales(self.warehouse.require("delivered_sales"), lines, self.rules, self.quality)
            returns = extract_delivered_returns(
                self.warehouse.require("delivered_returns"), lines, self.rules, self.quality
            )
            self.validate_facts(
                sales,
                returns,
                [],
                calendar=self.calendar(),
                channels=self.rules.known_sales_channels,
            )
            self._facts = (sales, returns)
        return self._facts

    def net_facts(
        self,
        measures: Sequence[str],
        keys: Sequence[str] = NET_KEYS,
    ) -> pl.DataFrame:
        """
        Reconcile the extracted sales and returns at ``keys``.

        Raises:
            ConservationError: reconciled totals differ from the raw inputs
                and ``fail_on_conservation_error`` is set
        """
        sales, returns = self.extract()
        fresh = [m for m in measures if m not in self._validated]
        if fresh:
            self.validate_facts(sales, returns, fresh, keys=[])
            self._validated.update(fresh)

        net = reconcile_net(sales, returns, keys, measures)
        self.verify_conservation(net, sales, returns, measures)
        return net

    def validate_facts(
        self,
        sales: pl.DataFrame,
        returns: pl.DataFrame,
        measures: Sequence[str],
        keys: Sequence[str] = FACT_CHECK_KEYS,
        calendar: Optional[pl.DataFrame] = None,
        channels: Optional[List[str]] = None,
    ) -> None:
        """Fact problems are surfaced as warnings; reconciliation still runs"""
        validator = create_fact_validator(measures, keys=keys, calendar=calendar, channels=channels)
        for source, facts in (("sales", sales), ("returns", returns)):
            self.quality.record_failed(validator.validate(facts), prefix=f"{source}_")

    def verify_conservation(
        self,
        net: pl.DataFrame,
        sales: pl.DataFrame,
        returns: pl.DataFrame,
        measures: Sequence[str],
    ) -> None:
        """
        Check net totals per measure. A measure already verified at another
        grain is only recorded again if it fails.
        """
        tolerance = self.settings.report.float_tolerance
        for measure in measures:
            check = check_conservation(
                net,
                sales[measure].sum(),
                returns[measure].sum(),
                measure,
                tolerance,
            )
            if measure not in self._verified or not check.passed:
                self.quality.add_check(check)
            self._verified.add(measure)
            if not check.passed and self.settings.report.fail_on_conservation_error:
                raise ConservationError(check.message, details=check.details)

    def cosa_overlay(self, net: pl.DataFrame) -> pl.DataFrame:
        """Collapse net facts to the COSA grain and merge the adjustment"""
        measures = [c for c in net.columns if c.startswith(("sales_", "returns_", "net_"))]
        at_grain = collapse(net, COSA_KEYS, measures)
        cosa = self.warehouse.require("cosa")
        return overlay_cost_adjustment(at_grain, cosa, COSA_KEYS)

    def run(self, request: NetSalesRequest) -> PipelineResult:
        """
        Run stages 1-7 for one request.

        Returns:
            PipelineResult whose frame is wide (one row per grain,
            ``<measure>_<period>`` columns) or long (grain plus ``period``)
        """
        started_at = datetime.now(timezone.utc)
        logger.info("Starting net sales pipeline", as_of=str(request.as_of), grain=request.grain)

        # Step 1: anchor
        calendar = self.calendar()
        anchor = self.anchor(calendar, request)

        # Step 2-3: extract and reconcile
        keys = request.reconcile_keys or (COSA_KEYS if request.include_cosa else NET_KEYS)
        net = self.net_facts(request.measures, keys)

        # Step 4: COSA
        output_measures = [f"net_{m}" for m in request.measures]
        if request.include_cosa:
            net = self.cosa_overlay(net)
            output_measures.append("cosa_net_gm")
        if request.output_measures is not None:
            output_measures = list(request.output_measures)

        # Step 5: enrichment
        enriched = enrich_sales_facts(
            net,
            self.warehouse.require("products"),
            self.warehouse.require("product_taxonomy"),
            self.warehouse.require("locations"),
            self.rules,
            self.quality,
            departments=request.departments,
            channels=request.channels,
            location_columns=request.location_columns,
        )
        if request.augment is not None:
            enriched = request.augment(enriched)

        # Step 6: periods
        definitions = [
            w if isinstance(w, WindowDefinition) else build_window(anchor, w, request.through)
            for w in request.windows
        ]
        bucketed = bucket_periods(
            enriched,
            calendar,
            definitions,
            request.bases,
            calendar_columns=request.calendar_columns,
        )
        periods = period_labels(definitions, request.bases)

        # Step 7: aggregation
        if request.wide:
            frame = pivot_periods(bucketed, request.grain, output_measures, periods)
        else:
            frame = aggregate(bucketed, request.grain + ["period"], output_measures)

        completed_at = datetime.now(timezone.utc)
        logger.info(
            "Net sales pipeline complete",
            rows=frame.height,
            periods=periods,
            dangling=self.quality.total_dangling,
        )
        return PipelineResult(
            frame=frame,
            anchor=anchor,
            quality=self.quality,
            periods=periods,
            measures=output_measures,
            net=enriched,
            started_at=started_at,
            completed_at=completed_at,
        )
