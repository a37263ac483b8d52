from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

import logging

import pandas as pd

from audience_estimator.core.classifier import DEFAULT_CLASSIFIER, Combination, TaxonomyClassifier
from audience_estimator.core.rules import FilterCombination

logger = logging.getLogger(__name__)

TAXONOMY_COL = "taxonomy"
SEGMENT_COL = "segment"
PCT_COL = "population_pct"
STATE_COL = "state_code"


def split_geographic(
    combinations: Iterable[FilterCombination],
) -> Tuple[List[FilterCombination], List[FilterCombination]]:
    """(geographic, data) partition of the combinations."""
    geographic: List[FilterCombination] = []
    data: List[FilterCombination] = []
    for combo in combinations:
        (geographic if combo.is_geographic else data).append(combo)
    return geographic, data


def group_by_taxonomy(combinations: Iterable[FilterCombination]) -> Dict[str, List[FilterCombination]]:
    groups: Dict[str, List[FilterCombination]] = {}
    for combo in combinations:
        groups.setdefault(combo.taxonomy, []).append(combo)
    return {t: groups[t] for t in sorted(groups)}


def _matched_pct(rows: pd.DataFrame, mask: pd.Series) -> float:
    if rows.empty:
        return 0.0
    return float(rows.loc[mask, PCT_COL].sum())


def product_pct(percentages: Iterable[float]) -> float:
    """
    100 * prod(p / 100): percentages combined as independent probabilities.
    A single percentage is returned unchanged.
    """
    values = list(percentages)
    if len(values) == 1:
        return float(values[0])
    product = 1.0
    for pct in values:
        product *= pct / 100.0
    return product * 100.0


def taxonomy_percentage(
    state_rows: pd.DataFrame,
    taxonomy: str,
    group: List[FilterCombination],
    mode: Combination,
) -> float:
    """
    Percentage of a state matching one taxonomy group.

    UNION: rows matching any predicate of the group, summed once.
    INTERSECTION: each predicate summed on its own, then multiplied.
    """
    rows = state_rows[state_rows[TAXONOMY_COL] == taxonomy]
    segments = rows[SEGMENT_COL]

    if mode is Combination.UNION:
        mask = pd.Series(False, index=rows.index, dtype=bool)
        for combo in group:
            mask = mask | combo.predicate.mask(segments)
        return _matched_pct(rows, mask)

    return product_pct(_matched_pct(rows, combo.predicate.mask(segments)) for combo in group)


def aggregate(
    state_rows: pd.DataFrame,
    combinations: List[FilterCombination],
    classifier: Optional[TaxonomyClassifier] = None,
    state: Optional[str] = None,
) -> float:
    """
    Match percentage (0-100) of one state.

    Geographic combinations restrict the state set: a state they do not name
    gets 0, a named state gets 100 when nothing else is selected and the data
    percentage otherwise. `state` may be omitted when the rows were already
    restricted to a selected state.
    """
    if not combinations:
        return 0.0

    classifier = classifier or DEFAULT_CLASSIFIER
    geographic, data = split_geographic(combinations)

    if geographic:
        targets = {c.target_state for c in geographic}
        if state is not None and state not in targets:
            return 0.0
        if not data:
            return 100.0

    group_pcts: List[float] = []
    for taxonomy, group in group_by_taxonomy(data).items():
        mode = classifier.mode(taxonomy)
        pct = taxonomy_percentage(state_rows, taxonomy, group, mode)
        logger.debug("State %s taxonomy %s (%s, %d filters): %.6f%%",
                     state, taxonomy, mode.value, len(group), pct)
        group_pcts.append(pct)

    return product_pct(group_pcts)


def aggregate_states(
    frame: pd.DataFrame,
    combinations: List[FilterCombination],
    states: Iterable[str],
    classifier: Optional[TaxonomyClassifier] = None,
) -> Dict[str, float]:
    """Match percentage for every configured state."""
    by_state = {code: rows for code, rows in frame.groupby(STATE_COL, sort=False)} if not frame.empty else {}
    empty = frame.iloc[0:0]

    out: Dict[str, float] = {}
    for state in states:
        state_rows = by_state.get(state, empty)
        out[state] = aggregate(state_rows, combinations, classifier=classifier, state=state)
        logger.debug("State %s: %.6f%% (%d rows)", state, out[state], len(state_rows))
    return out
