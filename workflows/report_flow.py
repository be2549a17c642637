"""
Prefect Workflow Orchestration - Report Batch

Runs a batch of catalogue reports for one as-of date with:
- Per-report retries
- Failures isolated per report: integrity errors are reported at once,
  anything else is retried and then reported
- Quality summary per report
- Completion alert
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Union

from prefect import flow, get_run_logger, task
from prefect.states import State

from src.config import get_settings
from src.ingestion.warehouse import WarehouseReader
from src.quality.errors import ReportError
from src.reports import REPORTS, run_report

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="run_report",
    description="Build one report and write its outputs",
    retries=2,
    retry_delay_seconds=60,
)
def run_report_task(
    name: str,
    as_of: date,
    warehouse_path: Optional[str] = None,
    output_dir: Optional[str] = None,
    file_format: Optional[str] = None,
) -> dict:
    """Build one report; integrity failures are reported, not retried"""
    logger = get_run_logger()
    warehouse = WarehouseReader(warehouse_path, file_format=file_format)

    try:
        result = run_report(name, warehouse, as_of)
    except ReportError as e:
        logger.error(f"Report {name} aborted: {e.message}")
        return {"report": name, "status": "failed", "error": e.message, "details": e.details}

    written = result.write(output_dir, file_format)
    logger.info(
        f"Report {name}: {result.rows} rows, "
        f"{result.quality.total_dangling} dangling references"
    )
    return {
        "report": name,
        "status": "success",
        "files": [str(p) for p in written],
        **result.summary(),
    }


@task(
    name="send_alert",
    description="Send alert notification",
)
def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


def report_outcome(name: str, state: State) -> dict:
    """Task summary, or a failed entry once an unexpected error has used up its retries"""
    if state.is_completed():
        return state.result()
    return {"report": name, "status": "failed", "error": state.message or state.name}


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="retail_reports",
    description="Build a batch of retail reports for one as-of date",
)
def run_reports_flow(
    as_of: Optional[Union[date, str]] = None,
    reports: Optional[List[str]] = None,
    warehouse_path: Optional[str] = None,
    output_dir: Optional[str] = None,
    file_format: Optional[str] = None,
) -> dict:
    """
    Report batch pipeline.

    Steps:
    1. Resolve the as-of date (yesterday when not given)
    2. Build every requested report (all registered reports by default)
    3. Send a completion or failure notification
    """
    logger = get_run_logger()

    if as_of is None:
        as_of = (datetime.now(timezone.utc) - timedelta(days=1)).date()
    elif isinstance(as_of, str):
        as_of = date.fromisoformat(as_of)
    names = reports or sorted(REPORTS)

    logger.info(f"Starting report batch for {as_of}: {len(names)} reports")

    results = {
        "as_of": as_of.isoformat(),
        "reports": {},
    }
    for name in names:
        state = run_report_task(
            name,
            as_of,
            warehouse_path=warehouse_path or settings.data_lake.warehouse_path,
            output_dir=output_dir,
            file_format=file_format,
            return_state=True,
        )
        results["reports"][name] = report_outcome(name, state)

    failed = [name for name, r in results["reports"].items() if r["status"] != "success"]
    if failed:
        send_alert(
            alert_type="Reports Failed",
            message=f"{len(failed)} of {len(names)} reports failed for {as_of}: {failed}",
            severity="critical",
        )
        results["status"] = "partial" if len(failed) < len(names) else "failed"
    else:
        send_alert(
            alert_type="Reports Complete",
            message=f"All {len(names)} reports built for {as_of}",
            severity="info",
        )
        results["status"] = "success"

    return results


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    run_reports_flow()
