from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import logging

import pandas as pd

from audience_estimator.core.aggregator import aggregate_states
from audience_estimator.core.catalog import EstimationContext, default_context
from audience_estimator.core.predicates import Threshold
from audience_estimator.core.composer import EstimationResult, compose, empty_result
from audience_estimator.core.data_loader import REQUIRED_COLUMNS, rows_to_frame
from audience_estimator.core.resolver import extract_taxonomy, parse_filters
from audience_estimator.core.rules import DataRow, FilterCombination, GEOGRAPHIC_TAXONOMY

logger = logging.getLogger(__name__)

Rows = Union[pd.DataFrame, Iterable[DataRow], Iterable[Dict[str, Any]]]


class EstimationError(Exception):
    """Raised when the row table cannot be used for estimation."""


def _as_frame(rows: Rows) -> pd.DataFrame:
    if isinstance(rows, pd.DataFrame):
        missing = [c for c in REQUIRED_COLUMNS if c not in rows.columns]
        if missing:
            raise EstimationError(
                f"Row table is missing required columns {missing}. Present columns: {list(rows.columns)}"
            )
        return rows
    try:
        return rows_to_frame(rows)
    except (KeyError, TypeError, ValueError) as exc:
        raise EstimationError(f"Rows could not be converted to a table: {exc}") from exc


def _segments_by_taxonomy(frame: pd.DataFrame, taxonomies: Iterable[str]) -> Dict[str, Sequence[Any]]:
    wanted = {t for t in taxonomies if t and t != GEOGRAPHIC_TAXONOMY}
    if not wanted or frame.empty:
        return {}
    subset = frame[frame["taxonomy"].isin(wanted)]
    return {t: grp["segment"].drop_duplicates().tolist() for t, grp in subset.groupby("taxonomy", sort=True)}


def _warn_string_scores(segments_by_taxonomy: Dict[str, Sequence[Any]], combinations: List[FilterCombination]) -> None:
    """Threshold filters never match string segments; say so instead of returning 0 silently."""
    warned = set()
    for combo in combinations:
        if not isinstance(combo.predicate, Threshold) or combo.taxonomy in warned:
            continue
        strings = [s for s in segments_by_taxonomy.get(combo.taxonomy, ()) if isinstance(s, str)]
        if strings:
            warned.add(combo.taxonomy)
            logger.warning(
                "Taxonomy %s has %d string segments (e.g. %r); threshold filters do not match them. "
                "Load rows with load_rows/parse_rows to get numeric segments.",
                combo.taxonomy,
                len(strings),
                strings[0],
            )


def estimate(
    rows: Rows,
    selected_filters: Iterable[str],
    context: Optional[EstimationContext] = None,
) -> EstimationResult:
    """
    Estimate the population matching every selected filter.

    The call is a pure function of its inputs: nothing is cached and the rows
    are never modified. Selecting nothing returns the all-zero result.

    Segments are used as given. Score segments must be numeric for the
    threshold rules to match, so a frame read with a plain pd.read_csv should
    go through data_loader.parse_rows (or come from load_rows) first.
    """
    selected: List[str] = sorted({str(f).strip() for f in selected_filters if str(f).strip()})
    if not selected:
        return empty_result()

    ctx = context or default_context()
    frame = _as_frame(rows)

    logger.info("Estimating %d selected filters over %d rows", len(selected), len(frame))

    taxonomies = [extract_taxonomy(f, ctx.catalog) for f in selected]
    segments = _segments_by_taxonomy(frame, taxonomies)
    combinations = parse_filters(selected, catalog=ctx.catalog, segments_by_taxonomy=segments)
    _warn_string_scores(segments, combinations)
    if not combinations:
        return empty_result()

    per_state = aggregate_states(frame, combinations, ctx.state_populations.keys(), classifier=ctx.classifier)
    result = compose(per_state, ctx.state_populations)

    logger.info(
        "Estimation complete: %s matching population out of %s total (%.4f%%)",
        f"{result.matching_population:,.0f}",
        f"{result.total_population:,}",
        result.percentage,
    )
    return result
