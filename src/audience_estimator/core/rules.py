"""
Rule table for the estimation engine.

Every selectable filter compiles down to a (taxonomy, predicate) pair. This
module holds the static tables those predicates are built from (age buckets,
ethnicity groups, income brackets, district ranges, auto makes), the
per-taxonomy rule catalogue used for documentation and coverage checks, the
state population table used for scaling, and the row matcher.

Edit the tables here when the data vocabulary changes; the resolver and the
aggregator read them and contain no literals of their own.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from audience_estimator.core.predicates import SegmentPredicate, WILDCARD


# ---------------------------------------------------------------------------
# Taxonomy names
# ---------------------------------------------------------------------------

GENDER = "voters_gender"
AGE = "voters_age"
ETHNICITY = "ethnic_description"
INCOME = "commercialdata_estimatedhhincome"
HH_COMPOSITION = "commercialdata_hhcomposition"
AUTO_MAKE_1 = "consumerdata_auto_make_1"
AUTO_MAKE_2 = "consumerdata_auto_make_2"
STATE_SENATE = "2010_state_senate_district"
CONGRESSIONAL = "2001_us_congressional_district"
ZIPCODE = "2001_us_zipcode"
MILITARY_YES = "hs_military_family_relationship_yes"
MILITARY_NO = "hs_military_family_relationship_no"
MIGRATION = "voters_movedfrom_state"

HS_PREFIX = "hs_"
GEOGRAPHIC_PREFIX = "state-"
GEOGRAPHIC_TAXONOMY = "geographic_filter"

DISTRICT_TAXONOMIES = (STATE_SENATE, CONGRESSIONAL)
MILITARY_TAXONOMIES = (MILITARY_YES, MILITARY_NO)

# ---------------------------------------------------------------------------
# Scaled opinion scores
# ---------------------------------------------------------------------------

# hs_* segments are 0-100 scores: > 65 reads as supporter / yes,
# <= 65 as opposer / no.
SCORE_THRESHOLD = 65

# ---------------------------------------------------------------------------
# Static segment vocabularies
# ---------------------------------------------------------------------------

GENDER_SEGMENTS: Dict[str, str] = {
    "male": "M",
    "female": "F",
}

AGE_MIN = 18
AGE_MAX = 100

# Inclusive bounds; segments are single ages
AGE_BUCKETS: Dict[str, Tuple[int, int]] = {
    "18_34": (18, 34),
    "35_54": (35, 54),
    "55_74": (55, 74),
    "75_plus": (75, AGE_MAX),
}

ETHNICITY_GROUPS: Dict[str, List[str]] = {
    "african_american": [
        "African or Af-Am Self Reported",
        "Likely Af-Am (Modeled)",
    ],
    "hispanic": ["Hispanic"],
    "white": [
        "English/Welsh", "German", "Irish", "Italian", "French", "Dutch (Netherlands)",
        "Norwegian", "Swedish", "Danish", "Finnish", "Polish", "Czech", "Hungarian",
        "Austrian", "Swiss", "Scots",
    ],
    "asian": [
        "Chinese", "Japanese", "Korean", "Vietnamese", "Filipino", "Indian/Hindu",
        "Pakistani", "Bangladeshi", "Sri Lankan", "Thai", "Indonesian", "Malay",
        "Myanmar (Burmese)", "Laotian", "Khmer", "Tibetan", "Bhutanese", "Tonga",
        "Unknown Asian",
    ],
    "other": [
        "Native American", "Hawaiian", "Arab", "Armenian", "Persian", "Turkish",
        "Albanian", "Bulgarian", "Croatian", "Serbian", "Slovenian", "Slovakian",
        "Romanian", "Russian (omitting former Soviet States)", "Ukrainian", "Byelorussian",
        "Estonian", "Latvian", "Lithuanian", "Georgian", "Azerb", "Kazak", "Uzbek",
        "Turkmenistan", "Mongolian", "Afghan", "Belgian", "Greek", "Portuguese",
    ],
}

INCOME_BRACKETS: Dict[str, List[str]] = {
    "under_25k": ["$1-25000"],
    "25k_50k": ["$25001-50000"],
    "50k_75k": ["$50001-75000"],
    "75k_100k": ["$75001-100000"],
    "over_100k": [
        "$100001-125000", "$125001-150000", "$150001-175000", "$175001-200000",
        "$200001-225000", "$225001-250000", "$250000+",
    ],
}

AUTO_MAKES: List[str] = [
    "Ford", "Toyota", "Kia", "Hyundai", "Honda", "Chevrolet", "Nissan",
]

# Per-state district number ranges (inclusive); codes are stored with or
# without leading zeros.
DISTRICT_RANGES: Dict[str, Dict[str, Tuple[int, int]]] = {
    STATE_SENATE: {"WY": (1, 30), "CA": (1, 40)},
    CONGRESSIONAL: {"CA": (1, 53), "NY": (1, 29)},
}
DEFAULT_DISTRICT_RANGE: Dict[str, Tuple[int, int]] = {
    STATE_SENATE: (1, 40),
    CONGRESSIONAL: (1, 53),
}

CHILDREN_TOKEN = "children"
NO_CHILDREN_TOKEN = "no_children"

# ---------------------------------------------------------------------------
# State populations (2020 census)
# ---------------------------------------------------------------------------

STATE_POPULATIONS: Dict[str, int] = {
    "CA": 39538223,
    "NY": 20201249,
    "WY": 576851,
}


# ---------------------------------------------------------------------------
# Rule catalogue
# ---------------------------------------------------------------------------

class RuleKind(str, Enum):
    EXACT = "segment_exact"
    RANGE = "segment_range"
    THRESHOLD = "segment_threshold"
    AGGREGATE = "segment_aggregate"


@dataclass(frozen=True)
class EstimationRule:
    taxonomy: str
    kind: RuleKind
    description: str
    threshold: Optional[float] = None
    range: Optional[Tuple[int, int]] = None


ESTIMATION_RULES: List[EstimationRule] = [
    EstimationRule(GENDER, RuleKind.EXACT,
                   "Gender segments: M = Male, F = Female."),
    EstimationRule(AGE, RuleKind.AGGREGATE,
                   "Single-age segments 18-100, aggregated into 18-34, 35-54, 55-74 and 75+.",
                   range=(AGE_MIN, AGE_MAX)),
    EstimationRule(ETHNICITY, RuleKind.AGGREGATE,
                   "Ethnicity labels grouped into African American, Hispanic, White, Asian and Other."),
    EstimationRule(STATE_SENATE, RuleKind.RANGE,
                   "WY: 01-30, CA: 01-40. Normalize leading zeros (e.g., 01, 09). Always use the 2010 version.",
                   range=DEFAULT_DISTRICT_RANGE[STATE_SENATE]),
    EstimationRule(CONGRESSIONAL, RuleKind.RANGE,
                   "CA: 01-53, NY: 01-29. Normalize leading zeros.",
                   range=DEFAULT_DISTRICT_RANGE[CONGRESSIONAL]),
    EstimationRule(ZIPCODE, RuleKind.EXACT,
                   "Standard 5-digit ZIPs (e.g., 90210)."),
    EstimationRule(HH_COMPOSITION, RuleKind.AGGREGATE,
                   "Household types. Always include every variant mentioning children."),
    EstimationRule(INCOME, RuleKind.AGGREGATE,
                   "Brackets <25k, 25-50k, 50-75k, 75-100k, >100k. The >100k bucket aggregates every 100,001+ bracket."),
    EstimationRule(AUTO_MAKE_1, RuleKind.EXACT,
                   "Car ownership by make (Ford, Toyota, Kia, Hyundai, ...)."),
    EstimationRule(AUTO_MAKE_2, RuleKind.EXACT,
                   "Second vehicle make for multi-car households."),
    EstimationRule(MILITARY_YES, RuleKind.THRESHOLD,
                   "Segment > 65 = Yes (military family present).",
                   threshold=SCORE_THRESHOLD),
    EstimationRule(MILITARY_NO, RuleKind.THRESHOLD,
                   "Segment <= 65 = No (no military family).",
                   threshold=SCORE_THRESHOLD),
    EstimationRule(MIGRATION, RuleKind.EXACT,
                   "Coded by origin state (NJ, OH, VA, ...). Summation gives % migrated into the given state."),
]

HS_TAXONOMY_RULE = EstimationRule(
    "hs_*", RuleKind.THRESHOLD,
    "Scaled opinion scores. > 65 = Supporter/Positive, <= 65 = Opposer/Negative.",
    threshold=SCORE_THRESHOLD,
)

_RULES_BY_TAXONOMY: Dict[str, EstimationRule] = {r.taxonomy: r for r in ESTIMATION_RULES}

DEFAULT_RULE_DESCRIPTION = "Default rule for unknown taxonomy"


def get_estimation_rule(taxonomy: str) -> EstimationRule:
    """
    Rule for a taxonomy: the explicit entry, else the hs_* rule, else an
    exact-match default.
    """
    rule = _RULES_BY_TAXONOMY.get(taxonomy)
    if rule is not None:
        return rule
    if taxonomy.startswith(HS_PREFIX):
        return HS_TAXONOMY_RULE
    return EstimationRule(taxonomy, RuleKind.EXACT, DEFAULT_RULE_DESCRIPTION)


def is_covered(taxonomy: str) -> bool:
    return get_estimation_rule(taxonomy).description != DEFAULT_RULE_DESCRIPTION


# ---------------------------------------------------------------------------
# Rows and combinations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DataRow:
    """One (state, taxonomy, segment) share of a state's population, in percent."""
    state_code: str
    taxonomy: str
    segment: Any
    population_pct: float


@dataclass(frozen=True)
class FilterCombination:
    """
    A selected filter after resolution.

    Geographic combinations carry target_state and a wildcard predicate; they
    restrict the state set and never touch the rows.
    """
    filter_id: str
    taxonomy: str
    predicate: SegmentPredicate = field(default=WILDCARD)
    is_geographic: bool = False
    target_state: Optional[str] = None


def _field(row: Any, name: str) -> Any:
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def matches(row: Any, combination: FilterCombination) -> bool:
    """
    Does a row satisfy a combination?

    The row must belong to the combination's taxonomy; the segment test is the
    predicate's (leading-zero tolerant for ranges, numeric-only for
    thresholds, string form for exact and set matches).
    """
    if combination.is_geographic:
        return False
    if _field(row, "taxonomy") != combination.taxonomy:
        return False
    return combination.predicate.matches(_field(row, "segment"))


def describe_rules(state_populations: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    """
    Export the rule table, the population table and the methodology text.
    """
    pops = dict(state_populations if state_populations is not None else STATE_POPULATIONS)
    rules = [
        {
            "taxonomy": r.taxonomy,
            "rule": r.kind.value,
            "threshold": r.threshold,
            "range": list(r.range) if r.range else None,
            "description": r.description,
        }
        for r in ESTIMATION_RULES + [HS_TAXONOMY_RULE]
    ]
    methodology = (
        "Estimation logic (4-step process):\n"
        "  1. Filter rows matching the query (state, taxonomy, segment predicate)\n"
        "  2. Sum percentages within each taxonomy and state (union taxonomies OR their filters)\n"
        "  3. Multiply across taxonomies for intersections\n"
        "  4. Scale by state population\n"
        "\n"
        "Special rules and normalization:\n"
        "  - District codes compare with leading zeros normalized\n"
        "  - Household composition includes every variant mentioning children\n"
        "  - Income brackets above 100k are aggregated\n"
        f"  - hs_* taxonomies apply the >{SCORE_THRESHOLD} rule\n"
        "  - Migration is aggregated at state level\n"
    )
    return {"rules": rules, "state_populations": pops, "methodology": methodology}
