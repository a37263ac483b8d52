from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import logging

from audience_estimator.core.catalog import FilterCatalog
from audience_estimator.core.predicates import (
    WILDCARD,
    Exact,
    Range,
    SegmentPredicate,
    Threshold,
    ValueSet,
    segment_key,
)
from audience_estimator.core.rules import (
    AGE,
    AGE_BUCKETS,
    AGE_MAX,
    AGE_MIN,
    AUTO_MAKE_1,
    AUTO_MAKE_2,
    AUTO_MAKES,
    CHILDREN_TOKEN,
    CONGRESSIONAL,
    DEFAULT_DISTRICT_RANGE,
    DISTRICT_RANGES,
    ETHNICITY,
    ETHNICITY_GROUPS,
    GENDER,
    GENDER_SEGMENTS,
    GEOGRAPHIC_PREFIX,
    GEOGRAPHIC_TAXONOMY,
    HH_COMPOSITION,
    HS_PREFIX,
    INCOME,
    INCOME_BRACKETS,
    MIGRATION,
    MILITARY_NO,
    MILITARY_YES,
    NO_CHILDREN_TOKEN,
    SCORE_THRESHOLD,
    STATE_SENATE,
    ZIPCODE,
    FilterCombination,
)

logger = logging.getLogger(__name__)

# Taxonomies whose filter ids are "<taxonomy>_<token>"; longest first so that
# a longer taxonomy name wins over a shorter one sharing its prefix.
_PREFIX_TAXONOMIES: List[str] = sorted(
    [GENDER, AGE, ETHNICITY, INCOME, HH_COMPOSITION, AUTO_MAKE_1, AUTO_MAKE_2,
     STATE_SENATE, CONGRESSIONAL, ZIPCODE, MILITARY_YES, MILITARY_NO, MIGRATION],
    key=len,
    reverse=True,
)

# Catalog ids such as consumerdata_auto_make_ford refer to the primary make
_AUTO_MAKE_ID_PREFIX = "consumerdata_auto_make_"

_HS_MARKER_SUFFIXES = ("_supporter", "_opposer", "_yes", "_no")

# Underscores count as separators: "has_no_children" is negated
_NEGATED_CHILDREN = re.compile(r"(?<![a-z])(no|without|non)[\s_-]+children(?![a-z])", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Taxonomy extraction
# ---------------------------------------------------------------------------

def extract_taxonomy(filter_id: str, catalog: Optional[FilterCatalog] = None) -> Optional[str]:
    """
    Taxonomy a filter id refers to.

    Order: geographic ids, the catalog, known "<taxonomy>_<token>" prefixes,
    hs_* ids (supporter/opposer/yes/no marker stripped), then everything before the
    last underscore.
    """
    fid = str(filter_id).strip()
    if not fid:
        return None
    if fid.startswith(GEOGRAPHIC_PREFIX):
        return GEOGRAPHIC_TAXONOMY

    if catalog is not None:
        taxonomy = catalog.taxonomy_for(fid)
        if taxonomy:
            return taxonomy

    for taxonomy in _PREFIX_TAXONOMIES:
        if fid == taxonomy or fid.startswith(taxonomy + "_"):
            return taxonomy

    if fid.startswith(_AUTO_MAKE_ID_PREFIX):
        return AUTO_MAKE_1

    if fid.startswith(HS_PREFIX):
        for marker in _HS_MARKER_SUFFIXES:
            if fid.endswith(marker):
                return fid[: -len(marker)]
        return fid

    if "_" in fid:
        return fid.rsplit("_", 1)[0]
    return fid


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------

def _suffix(filter_id: str, taxonomy: str) -> str:
    if filter_id.startswith(taxonomy + "_"):
        return filter_id[len(taxonomy) + 1:]
    return ""


def _pick_token(filter_id: str, taxonomy: str, tokens: Iterable[str]) -> Optional[str]:
    """
    Token of a filter id: the exact suffix after the taxonomy when it is a
    known token, else the longest known token contained in the id.

    Longest-first containment keeps 'female' from being read as 'male'.
    """
    known = list(tokens)
    fid = filter_id.lower()
    suffix = _suffix(fid, taxonomy.lower())
    if suffix in known:
        return suffix
    for token in sorted(known, key=len, reverse=True):
        if token in fid:
            return token
    return None


def _trailing_token(filter_id: str) -> str:
    return filter_id.rsplit("_", 1)[-1] if "_" in filter_id else ""


def _labels_predicate(labels: Sequence[str]) -> SegmentPredicate:
    if len(labels) == 1:
        return Exact(labels[0])
    return ValueSet.of(labels)


def _unresolved(filter_id: str, taxonomy: str) -> SegmentPredicate:
    logger.warning("Filter %s (taxonomy %s) not recognised; it will not restrict the estimate.",
                   filter_id, taxonomy)
    return WILDCARD


# ---------------------------------------------------------------------------
# Per-taxonomy resolvers
# ---------------------------------------------------------------------------

def _resolve_gender(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _pick_token(filter_id, taxonomy, GENDER_SEGMENTS)
    if token is None:
        return _unresolved(filter_id, taxonomy)
    return Exact(GENDER_SEGMENTS[token])


def _resolve_age(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _pick_token(filter_id, taxonomy, AGE_BUCKETS)
    lo, hi = AGE_BUCKETS[token] if token else (AGE_MIN, AGE_MAX)
    return ValueSet.of(range(lo, hi + 1))


def _resolve_ethnicity(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _pick_token(filter_id, taxonomy, ETHNICITY_GROUPS)
    if token is None:
        return _unresolved(filter_id, taxonomy)
    return _labels_predicate(ETHNICITY_GROUPS[token])


def _resolve_income(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _pick_token(filter_id, taxonomy, INCOME_BRACKETS)
    if token is None:
        return _unresolved(filter_id, taxonomy)
    return _labels_predicate(INCOME_BRACKETS[token])


def _resolve_district(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    state = _trailing_token(filter_id).upper()
    lo, hi = DISTRICT_RANGES[taxonomy].get(state, DEFAULT_DISTRICT_RANGE[taxonomy])
    return Range(lo, hi)


def _resolve_zipcode(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _trailing_token(filter_id)
    if len(token) == 5 and token.isdigit():
        return Exact(token)
    return WILDCARD


def _resolve_auto_make(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    by_token = {make.lower(): make for make in AUTO_MAKES}
    token = _pick_token(filter_id, taxonomy, by_token)
    if token is None:
        return _unresolved(filter_id, taxonomy)
    return Exact(by_token[token])


def _resolve_household(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _pick_token(filter_id, taxonomy, (CHILDREN_TOKEN, NO_CHILDREN_TOKEN))
    if token is None:
        return _unresolved(filter_id, taxonomy)

    labels = sorted({segment_key(s) for s in segments if segment_key(s)})
    with_children = [
        label for label in labels
        if CHILDREN_TOKEN in label.lower() and not _NEGATED_CHILDREN.search(label)
    ]
    if token == CHILDREN_TOKEN:
        return ValueSet.of(with_children)
    return ValueSet.of([label for label in labels if label not in with_children])


def _resolve_score(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    fid = filter_id.lower()
    if fid.endswith("_supporter") or fid.endswith("_yes"):
        return Threshold(SCORE_THRESHOLD, above=True)
    if fid.endswith("_opposer") or fid.endswith("_no"):
        return Threshold(SCORE_THRESHOLD, above=False)
    if "opposer" in fid:
        return Threshold(SCORE_THRESHOLD, above=False)
    # supporter-leaning default
    return Threshold(SCORE_THRESHOLD, above=True)


def _resolve_migration(filter_id: str, taxonomy: str, segments: Sequence[Any]) -> SegmentPredicate:
    token = _trailing_token(filter_id)
    if len(token) == 2 and token.isalpha():
        return Exact(token.upper())
    return _unresolved(filter_id, taxonomy)


_Resolver = Callable[[str, str, Sequence[Any]], SegmentPredicate]

_RESOLVERS: Dict[str, _Resolver] = {
    GENDER: _resolve_gender,
    AGE: _resolve_age,
    ETHNICITY: _resolve_ethnicity,
    INCOME: _resolve_income,
    STATE_SENATE: _resolve_district,
    CONGRESSIONAL: _resolve_district,
    ZIPCODE: _resolve_zipcode,
    AUTO_MAKE_1: _resolve_auto_make,
    AUTO_MAKE_2: _resolve_auto_make,
    HH_COMPOSITION: _resolve_household,
    MILITARY_YES: _resolve_score,
    MILITARY_NO: _resolve_score,
    MIGRATION: _resolve_migration,
}


def resolve(filter_id: str, taxonomy: str, segments: Optional[Sequence[Any]] = None) -> SegmentPredicate:
    """
    Predicate a row segment must satisfy for a filter id on a taxonomy.

    `segments` are the segment values present in the data for that taxonomy;
    only household composition needs them. Never raises: an id that cannot be
    resolved yields the wildcard.
    """
    segs: Sequence[Any] = segments if segments is not None else ()
    resolver = _RESOLVERS.get(taxonomy)
    if resolver is not None:
        return resolver(filter_id, taxonomy, segs)
    if taxonomy.startswith(HS_PREFIX):
        return _resolve_score(filter_id, taxonomy, segs)
    return _unresolved(filter_id, taxonomy)


def parse_filters(
    selected_filters: Iterable[str],
    catalog: Optional[FilterCatalog] = None,
    segments_by_taxonomy: Optional[Mapping[str, Sequence[Any]]] = None,
) -> List[FilterCombination]:
    """
    Turn the selected filter ids into combinations, in sorted id order so
    that repeated calls multiply percentages in the same order.
    """
    segments_by_taxonomy = segments_by_taxonomy or {}
    combinations: List[FilterCombination] = []

    for filter_id in sorted({str(f).strip() for f in selected_filters}):
        taxonomy = extract_taxonomy(filter_id, catalog)
        if not taxonomy:
            continue

        if taxonomy == GEOGRAPHIC_TAXONOMY:
            state = filter_id[len(GEOGRAPHIC_PREFIX):].strip().upper()
            combinations.append(
                FilterCombination(
                    filter_id=filter_id,
                    taxonomy=GEOGRAPHIC_TAXONOMY,
                    predicate=WILDCARD,
                    is_geographic=True,
                    target_state=state,
                )
            )
            continue

        predicate = resolve(filter_id, taxonomy, segments_by_taxonomy.get(taxonomy))
        combinations.append(FilterCombination(filter_id=filter_id, taxonomy=taxonomy, predicate=predicate))

    logger.debug("Resolved combinations: %s", combinations)
    return combinations
