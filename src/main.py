"""
Retail Reporting Command Line

Runs catalogue reports against a warehouse extract and writes a synthetic
warehouse for local work.

Usage:
    python -m src.main list
    python -m src.main run store_margin dsr_kpi --as-of 2025-11-22
    python -m src.main run market_basket --as-of 2025-11-22 --param start_date=2025-11-01
    python -m src.main generate --as-of 2025-11-22 --output ./data/warehouse
"""

import argparse
import sys
from datetime import date
from typing import Any, Dict, List, Optional

import structlog

from src.config.logging import configure_logging
from src.data.generators import WarehouseGenerator
from src.ingestion.warehouse import WarehouseReader
from src.quality.errors import ReportError
from src.reports import REPORTS, run_report

logger = structlog.get_logger(__name__)


def _parse_value(raw: str) -> Any:
    if "," in raw:
        return [_parse_value(part) for part in raw.split(",") if part]
    try:
        return int(raw)
    except ValueError:
        return raw


def parse_params(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """``key=value`` pairs to report keyword arguments; ints and comma lists are converted"""
    params: Dict[str, Any] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Report parameter must be key=value, got '{pair}'")
        params[key] = _parse_value(value)
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Retail reporting pipelines")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Build one or more reports")
    run.add_argument("reports", nargs="+", help="Report names (see 'list')")
    run.add_argument("--as-of", required=True, type=date.fromisoformat, help="As-of date, YYYY-MM-DD")
    run.add_argument("--warehouse", default=None, help="Warehouse extract path")
    run.add_argument("--output", default=None, help="Report output directory")
    run.add_argument("--format", default=None, choices=["parquet", "csv"], help="Output file format")
    run.add_argument("--param", action="append", help="Report parameter key=value (repeatable)")

    commands.add_parser("list", help="List available reports")

    generate = commands.add_parser("generate", help="Write a synthetic warehouse")
    generate.add_argument("--as-of", required=True, type=date.fromisoformat, help="Last day of generated data")
    generate.add_argument("--output", default=None, help="Warehouse output path")
    generate.add_argument("--format", default=None, choices=["parquet", "csv"], help="Table file format")
    generate.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    return parser


def run_reports(args: argparse.Namespace) -> int:
    unknown = [name for name in args.reports if name not in REPORTS]
    if unknown:
        logger.error(f"Unknown reports: {unknown}", available=sorted(REPORTS))
        return 2

    params = parse_params(args.param)
    warehouse = WarehouseReader(args.warehouse, file_format=args.format)
    failed = 0
    for name in args.reports:
        try:
            result = run_report(name, warehouse, args.as_of, **params)
        except ReportError as e:
            logger.error(f"Report {name} failed: {e.message}", report=name, details=e.details)
            failed += 1
            continue
        written = result.write(args.output, args.format)
        logger.info(f"Report {name} written", report=name, files=[str(p) for p in written])

    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command == "list":
        for name in sorted(REPORTS):
            print(name)
        return 0

    if args.command == "generate":
        generator = WarehouseGenerator(args.output, seed=args.seed)
        generator.generate_all(args.as_of, save=True, file_format=args.format)
        return 0

    return run_reports(args)


if __name__ == "__main__":
    sys.exit(main())
