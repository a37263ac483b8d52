from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import logging

import pandas as pd

from audience_estimator.config import SUM_TOLERANCE_PCT
from audience_estimator.core.catalog import FilterCatalog, default_context
from audience_estimator.core.predicates import segment_key
from audience_estimator.core.resolver import resolve
from audience_estimator.core.rules import AGE, ETHNICITY, GENDER, INCOME, is_covered

logger = logging.getLogger(__name__)

# Taxonomies whose filters aggregate many data segments
CALCULATED_TAXONOMIES = (AGE, GENDER, ETHNICITY, INCOME)


@dataclass
class TaxonomySummary:
    taxonomy: str
    segment_counts: Dict[str, int]   # segment label -> number of rows
    states: List[str]
    total_records: int


@dataclass
class SumViolation:
    """A (state, taxonomy) group whose percentages do not add up to ~100."""
    state: str
    taxonomy: str
    total_pct: float


@dataclass
class RuleCoverage:
    covered: int
    uncovered: int
    coverage_pct: float
    uncovered_taxonomies: List[str]


@dataclass
class DataValidationReport:
    """
    Load-time facts about a row table.

    Nothing here stops an estimate from running; the report is for callers
    who want to know how far the table is from the shape the estimator
    assumes.
    """
    taxonomies: List[TaxonomySummary]
    missing_taxonomies: List[str]
    sum_violations: List[SumViolation]
    rule_coverage: RuleCoverage
    segment_mappings: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.missing_taxonomies and not self.sum_violations


def summarize_taxonomies(frame: pd.DataFrame) -> List[TaxonomySummary]:
    out: List[TaxonomySummary] = []
    if frame.empty:
        return out
    for taxonomy, grp in frame.groupby("taxonomy", sort=True):
        counts = grp["segment"].map(segment_key).value_counts()
        out.append(
            TaxonomySummary(
                taxonomy=str(taxonomy),
                segment_counts={str(k): int(v) for k, v in counts.items()},
                states=sorted(grp["state_code"].astype(str).unique().tolist()),
                total_records=int(len(grp)),
            )
        )
    return out


def find_sum_violations(frame: pd.DataFrame, tolerance: float = SUM_TOLERANCE_PCT) -> List[SumViolation]:
    """Groups whose population_pct sum is further than `tolerance` points from 100."""
    if frame.empty:
        return []
    sums = frame.groupby(["state_code", "taxonomy"], sort=True)["population_pct"].sum()
    violations: List[SumViolation] = []
    for (state, taxonomy), total in sums.items():
        if abs(float(total) - 100.0) > tolerance:
            violations.append(SumViolation(state=str(state), taxonomy=str(taxonomy), total_pct=float(total)))
    return violations


def compute_rule_coverage(taxonomies: List[str]) -> RuleCoverage:
    uncovered = sorted(t for t in taxonomies if not is_covered(t))
    covered = len(taxonomies) - len(uncovered)
    pct = (covered / len(taxonomies)) * 100.0 if taxonomies else 0.0
    return RuleCoverage(covered=covered, uncovered=len(uncovered), coverage_pct=pct, uncovered_taxonomies=uncovered)


def build_segment_mappings(frame: pd.DataFrame, catalog: FilterCatalog) -> Dict[str, Dict[str, List[str]]]:
    """For each calculated-taxonomy filter, the data segment labels it selects."""
    mappings: Dict[str, Dict[str, List[str]]] = {}
    for taxonomy in CALCULATED_TAXONOMIES:
        segments = frame.loc[frame["taxonomy"] == taxonomy, "segment"].drop_duplicates().tolist()
        if not segments:
            continue
        per_filter: Dict[str, List[str]] = {}
        for item in catalog.items_for_taxonomy(taxonomy):
            predicate = resolve(item.id, taxonomy, segments)
            per_filter[item.id] = sorted({segment_key(s) for s in segments if predicate.matches(s)})
        mappings[taxonomy] = per_filter
    return mappings


def build_validation_report(
    frame: pd.DataFrame,
    catalog: Optional[FilterCatalog] = None,
    tolerance: float = SUM_TOLERANCE_PCT,
) -> DataValidationReport:
    catalog = catalog or default_context().catalog

    summaries = summarize_taxonomies(frame)
    data_taxonomies = [s.taxonomy for s in summaries]
    present = set(data_taxonomies)

    missing = [t for t in catalog.taxonomies() if t not in present]
    for taxonomy in missing:
        logger.warning("Catalog taxonomy %s has no rows in the data.", taxonomy)

    violations = find_sum_violations(frame, tolerance=tolerance)
    for v in violations:
        logger.warning("Percentages for %s / %s sum to %.3f (expected ~100).", v.state, v.taxonomy, v.total_pct)

    report = DataValidationReport(
        taxonomies=summaries,
        missing_taxonomies=missing,
        sum_violations=violations,
        rule_coverage=compute_rule_coverage(data_taxonomies),
        segment_mappings=build_segment_mappings(frame, catalog) if not frame.empty else {},
    )
    logger.info(
        "Validation: %d taxonomies, %d missing from data, %d sum violations, rule coverage %.1f%%",
        len(summaries),
        len(missing),
        len(violations),
        report.rule_coverage.coverage_pct,
    )
    return report
