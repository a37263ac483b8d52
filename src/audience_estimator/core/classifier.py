from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Optional

from audience_estimator.core.rules import (
    AGE,
    AUTO_MAKE_1,
    AUTO_MAKE_2,
    ETHNICITY,
    GENDER,
    INCOME,
    MIGRATION,
)


class Combination(str, Enum):
    """How several selected filters on one taxonomy combine."""
    UNION = "union"                # mutually exclusive segments: percentages add up
    INTERSECTION = "intersection"  # independent constraints: percentages multiply


# Demographic partitions. Anything not listed (the hs_* scores in particular)
# combines by intersection.
UNION_TAXONOMIES: Dict[str, Combination] = {
    GENDER: Combination.UNION,
    AGE: Combination.UNION,
    ETHNICITY: Combination.UNION,
    INCOME: Combination.UNION,
    AUTO_MAKE_1: Combination.UNION,
    AUTO_MAKE_2: Combination.UNION,
    MIGRATION: Combination.UNION,
}


class TaxonomyClassifier:
    """
    Static taxonomy -> Combination lookup.

    The table is injected so a context can override it; the default is
    UNION_TAXONOMIES.
    """

    def __init__(self, table: Optional[Mapping[str, Combination]] = None) -> None:
        self._table: Dict[str, Combination] = dict(UNION_TAXONOMIES if table is None else table)

    def mode(self, taxonomy: str) -> Combination:
        return self._table.get(taxonomy, Combination.INTERSECTION)

    def is_union(self, taxonomy: str) -> bool:
        return self.mode(taxonomy) is Combination.UNION


DEFAULT_CLASSIFIER = TaxonomyClassifier()


def is_union_taxonomy(taxonomy: str) -> bool:
    return DEFAULT_CLASSIFIER.is_union(taxonomy)
