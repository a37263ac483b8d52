from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Ensure the src/ directory is on sys.path so we can import audience_estimator
ROOT_DIR = Path(__file__).resolve().parent
SRC_DIR = ROOT_DIR / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from audience_estimator.config import APP_NAME, APP_VERSION, LOG_LEVEL  # type: ignore
from audience_estimator.core.catalog import default_context  # type: ignore
from audience_estimator.core.data_loader import load_rows  # type: ignore
from audience_estimator.core.diagnostics import render_diagnostic_report, run_filter_diagnostics  # type: ignore
from audience_estimator.core.estimator import estimate  # type: ignore
from audience_estimator.core.validation import build_validation_report  # type: ignore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="audience-estimator", description=f"{APP_NAME} v{APP_VERSION}")
    parser.add_argument("filters", nargs="*", metavar="FILTER_ID", help="Filter ids to combine")
    parser.add_argument("--data", default=None, help="Path or URL of the row table (defaults to config)")
    parser.add_argument("--validate", action="store_true", help="Print the data validation summary")
    parser.add_argument("--diagnose", action="store_true", help="Print the filter diagnostic report")
    return parser


def _print_validation(frame, context) -> None:
    report = build_validation_report(frame, context.catalog)
    print(f"Taxonomies in data: {len(report.taxonomies)}")
    print(f"Catalog taxonomies missing from data: {len(report.missing_taxonomies)}")
    for taxonomy in report.missing_taxonomies:
        print(f"  - {taxonomy}")
    print(f"Percentage sum violations: {len(report.sum_violations)}")
    for v in report.sum_violations:
        print(f"  - {v.state} / {v.taxonomy}: {v.total_pct:.3f}")
    cov = report.rule_coverage
    print(f"Rule coverage: {cov.covered}/{cov.covered + cov.uncovered} ({cov.coverage_pct:.1f}%)")
    print(f"Valid: {'yes' if report.is_valid else 'no'}")


def _print_estimate(frame, filters, context) -> None:
    result = estimate(frame, filters, context)
    print(f"Total population:    {result.total_population:,}")
    print(f"Matching population: {result.matching_population:,.0f}")
    print(f"Percentage:          {result.percentage:.4f}%")
    if result.state_breakdown:
        print("")
        print("State breakdown:")
        for b in result.state_breakdown:
            print(f"  {b.state}: {b.matching_population:,.0f} of {b.population:,} ({b.percentage:.4f}%)")


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    frame = load_rows(args.data)
    context = default_context().with_data_taxonomies(frame["taxonomy"].unique().tolist())

    if args.validate:
        _print_validation(frame, context)
    if args.diagnose:
        print(render_diagnostic_report(run_filter_diagnostics(frame, context)))
    if args.filters or not (args.validate or args.diagnose):
        _print_estimate(frame, args.filters, context)
    return 0


if __name__ == "__main__":
    sys.exit(main())
