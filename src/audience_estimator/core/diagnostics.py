from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

import logging

import pandas as pd

from audience_estimator.core.catalog import EstimationContext, default_context
from audience_estimator.core.predicates import normalize_district_code, segment_key
from audience_estimator.core.resolver import extract_taxonomy, resolve
from audience_estimator.core.rules import DISTRICT_TAXONOMIES, GEOGRAPHIC_PREFIX, GEOGRAPHIC_TAXONOMY

logger = logging.getLogger(__name__)

MATCH_EXACT = "exact"
MATCH_PARTIAL = "partial"
MATCH_NONE = "none"


@dataclass
class FilterDiagnostic:
    filter_id: str
    taxonomy: str
    has_data: bool
    data_count: int
    match_status: str
    predicate: str
    data_segments: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


@dataclass
class DiagnosticReport:
    total: int
    working: int
    broken: int
    results: List[FilterDiagnostic]
    summary: str


def _display_segments(taxonomy: str, segments: Iterable) -> List[str]:
    if taxonomy in DISTRICT_TAXONOMIES:
        return sorted({normalize_district_code(s) for s in segments})
    return sorted({segment_key(s) for s in segments})


def diagnose_filter(
    frame: pd.DataFrame,
    filter_id: str,
    context: Optional[EstimationContext] = None,
) -> FilterDiagnostic:
    """
    Check whether one filter id selects any rows of the table.

    'partial' means nothing matched exactly but some data label contains one
    of the expected values (case-insensitive): usually a label spelled
    differently in the data than in the rule table.
    """
    ctx = context or default_context()
    taxonomy = extract_taxonomy(filter_id, ctx.catalog)

    if taxonomy == GEOGRAPHIC_TAXONOMY:
        # Geographic filters select states, not rows
        state = filter_id[len(GEOGRAPHIC_PREFIX):].upper()
        return FilterDiagnostic(
            filter_id=filter_id,
            taxonomy=GEOGRAPHIC_TAXONOMY,
            has_data=True,
            data_count=1,
            match_status=MATCH_EXACT,
            predicate=f"state == {state}",
        )

    if not taxonomy:
        return FilterDiagnostic(
            filter_id=filter_id,
            taxonomy="unknown",
            has_data=False,
            data_count=0,
            match_status=MATCH_NONE,
            predicate="all",
            issues=["Cannot extract taxonomy from filter ID"],
        )

    rows = frame[frame["taxonomy"] == taxonomy]
    segments = rows["segment"].drop_duplicates().tolist()
    predicate = resolve(filter_id, taxonomy, segments)
    data_segments = _display_segments(taxonomy, segments)

    issues: List[str] = []
    if rows.empty:
        issues.append(f"No rows for taxonomy {taxonomy}")
        return FilterDiagnostic(filter_id, taxonomy, False, 0, MATCH_NONE, predicate.describe(), data_segments, issues)

    matched = rows[predicate.mask(rows["segment"])]
    if not matched.empty:
        return FilterDiagnostic(filter_id, taxonomy, True, int(len(matched)), MATCH_EXACT,
                                predicate.describe(), data_segments, issues)

    expected = [e.lower() for e in predicate.expected_values()]
    partial = [s for s in data_segments if any(e and e in s.lower() for e in expected)]
    if partial:
        issues.append(f"Only partial matches found. Expected: {predicate.describe()}, Found: {', '.join(partial[:5])}")
        status = MATCH_PARTIAL
    else:
        issues.append(f"No matches found. Expected: {predicate.describe()}, Available: {', '.join(data_segments[:5])}")
        status = MATCH_NONE

    return FilterDiagnostic(filter_id, taxonomy, False, 0, status, predicate.describe(), data_segments, issues)


def run_filter_diagnostics(
    frame: pd.DataFrame,
    context: Optional[EstimationContext] = None,
    filter_ids: Optional[Iterable[str]] = None,
) -> DiagnosticReport:
    ctx = context or default_context()
    ids = list(filter_ids) if filter_ids is not None else ctx.catalog.filter_ids()

    results = [diagnose_filter(frame, fid, ctx) for fid in ids]
    working = sum(1 for r in results if r.has_data)
    broken = len(results) - working
    summary = f"Tested {len(results)} filters: {working} working, {broken} broken"
    logger.info(summary)

    return DiagnosticReport(total=len(results), working=working, broken=broken, results=results, summary=summary)


def render_diagnostic_report(report: DiagnosticReport) -> str:
    """Markdown report: summary counts, then one section per broken filter."""
    lines: List[str] = [
        "# FILTER DIAGNOSTIC REPORT",
        "",
        "## Summary",
        f"- Total Filters: {report.total}",
        f"- Working: {report.working}",
        f"- Broken: {report.broken}",
        "",
    ]

    broken = [r for r in report.results if not r.has_data]
    if broken:
        lines.append(f"## Broken Filters ({len(broken)})")
        lines.append("")
        for r in broken:
            more = "..." if len(r.data_segments) > 5 else ""
            lines.append(f"### {r.filter_id}")
            lines.append(f"- Taxonomy: {r.taxonomy}")
            lines.append(f"- Expected Segments: {r.predicate}")
            lines.append(f"- Data Segments: {', '.join(r.data_segments[:5])}{more}")
            lines.append(f"- Match Status: {r.match_status}")
            lines.append("- Issues:")
            for issue in r.issues:
                lines.append(f"  - {issue}")
            lines.append("")

    return "\n".join(lines)
