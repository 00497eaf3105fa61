from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

from .aggregation import capacity_summary, day_window, utilization_by_resource, utilization_matrix
from .forecast import month_forecast
from .io_utils import Portfolio, allocations_frame, ensure_directory, load_portfolio, write_csv
from .models import Resource
from .sprint_calendar import DEFAULT_CALENDAR
from .status import classify, is_over_allocated


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sprint capacity report (JSON in, CSV out, no UI)."
    )
    parser.add_argument(
        "--portfolio-dir",
        required=True,
        help="Portfolio directory containing input/ and output/ subfolders",
    )
    parser.add_argument("--year", type=int, help="Report year (overrides config.report_year)")
    parser.add_argument(
        "--outdir",
        default=None,
        help="Output directory for generated CSV files (default: <portfolio-dir>/output)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the summary without writing output CSV files",
    )
    return parser.parse_args(argv)


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _print_summary(portfolio: Portfolio, today: date) -> None:
    window = day_window(today)
    summary = capacity_summary(portfolio.allocations, portfolio.resources, portfolio.projects, window)
    print(
        f"{summary['total_resources']} resources "
        f"({summary['permanent_count']} permanent, {summary['contractor_count']} contractor), "
        f"{summary['active_projects']} active projects, "
        f"average utilization {summary['avg_utilization']}%"
    )
    totals = utilization_by_resource(portfolio.allocations, portfolio.resources, window)
    over: List[Resource] = [r for r in portfolio.resources if is_over_allocated(totals[r.id])]
    if not over:
        print("Over-allocated resources: none")
        return
    print("Over-allocated resources:")
    for resource in over:
        pct = totals[resource.id]
        print(f"- {resource.name}: {pct}% ({classify(pct).label})")


def _write_reports(portfolio: Portfolio, year: int, outdir: Path, today: date) -> List[Path]:
    outdir_path = ensure_directory(outdir)
    sprints = DEFAULT_CALENDAR.sprints_for_year(year)
    frames = {
        "utilization_matrix.csv": utilization_matrix(portfolio.allocations, portfolio.resources, sprints),
        "month_forecast.csv": month_forecast(
            portfolio.allocations,
            portfolio.projects,
            months=portfolio.config.forecast_months,
            month_offset=portfolio.config.forecast_month_offset,
            today=today,
        ),
        "allocations.csv": allocations_frame(
            portfolio.allocations, portfolio.resources, portfolio.projects
        ),
    }
    written: List[Path] = []
    for name, frame in frames.items():
        path = outdir_path / name
        write_csv(frame, path)
        written.append(path)
    return written


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    try:
        portfolio = load_portfolio(Path(args.portfolio_dir).resolve())
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    _configure_logging(portfolio.config.logging_level)
    today = date.today()
    year = args.year or portfolio.config.report_year or today.year
    _print_summary(portfolio, today)
    if args.dry_run:
        return
    outdir = Path(args.outdir) if args.outdir else portfolio.output_dir
    for path in _write_reports(portfolio, year, outdir, today):
        print(f"Wrote {path}")


if __name__ == "__main__":
    main()
