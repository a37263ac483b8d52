from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

import logging

from audience_estimator.core.classifier import DEFAULT_CLASSIFIER, TaxonomyClassifier
from audience_estimator.core.rules import (
    AGE,
    AGE_BUCKETS,
    AUTO_MAKE_1,
    CONGRESSIONAL,
    DISTRICT_RANGES,
    ETHNICITY,
    ETHNICITY_GROUPS,
    GENDER,
    GEOGRAPHIC_PREFIX,
    HH_COMPOSITION,
    HS_PREFIX,
    INCOME,
    INCOME_BRACKETS,
    MIGRATION,
    MILITARY_NO,
    MILITARY_TAXONOMIES,
    MILITARY_YES,
    STATE_POPULATIONS,
    STATE_SENATE,
)

logger = logging.getLogger(__name__)

# Bump when filter ids or their taxonomies change.
CATALOG_VERSION = "2024.3"

STATE_TAXONOMY = "state"

STATE_NAMES: Dict[str, str] = {
    "CA": "California",
    "NY": "New York",
    "WY": "Wyoming",
    "TX": "Texas",
    "FL": "Florida",
    "NJ": "New Jersey",
    "OH": "Ohio",
    "VA": "Virginia",
}

# hs_* taxonomies offered out of the box (supporter / opposer pair each)
DEFAULT_HS_TAXONOMIES: List[str] = [
    "hs_trump_vs_harris_favor_harris",
    "hs_biden_approval",
    "hs_trump_approval",
    "hs_harris_approval",
    "hs_newsom_approval",
    "hs_tribalism_team_dem",
    "hs_tribalism_team_gop",
    "hs_gun_control_support",
    "hs_same_sex_marriage_support",
    "hs_ideology_fiscal_conserv",
    "hs_ideology_social_liberal",
    "hs_medicare_for_all_support",
    "hs_israel_military_actions_gop_support",
    "hs_min_wage_15_increase_support",
    "hs_climate_change_believer",
    "hs_immigration_undesirable",
    "hs_voting_fraud_concern_oppression",
    "hs_violent_crime_not_worried",
    "hs_unions_beneficial",
    "hs_tv_most_trusted_news_msnbc",
    "hs_trust_science_always",
    "hs_trust_science_rarely",
    "hs_aliens_governenment_disclosed_all",
]

MIGRATION_ORIGINS: List[str] = ["CA", "NY", "TX", "FL", "NJ", "OH", "VA"]

CATALOG_AUTO_MAKES: List[str] = ["Ford", "Toyota", "Honda", "Chevrolet", "Nissan", "Kia", "Hyundai"]


@dataclass(frozen=True)
class FilterItem:
    id: str
    label: str
    taxonomy: str
    category: str


@dataclass
class FilterCatalog:
    """
    Registry of selectable filters.

    The estimator uses it to find a filter's taxonomy; ids missing from the
    catalog are still accepted and resolved heuristically.
    """
    version: str
    items: List[FilterItem]
    _by_id: Dict[str, FilterItem] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {item.id: item for item in self.items}

    def get(self, filter_id: str) -> Optional[FilterItem]:
        return self._by_id.get(filter_id)

    def taxonomy_for(self, filter_id: str) -> Optional[str]:
        item = self._by_id.get(filter_id)
        return item.taxonomy if item else None

    def items_for_taxonomy(self, taxonomy: str) -> List[FilterItem]:
        return [item for item in self.items if item.taxonomy == taxonomy]

    def filter_ids(self) -> List[str]:
        return [item.id for item in self.items]

    def taxonomies(self) -> List[str]:
        """Data taxonomies referenced by the catalog (state selection excluded)."""
        seen: Dict[str, None] = {}
        for item in self.items:
            if item.taxonomy != STATE_TAXONOMY:
                seen.setdefault(item.taxonomy, None)
        return list(seen)

    def with_data_taxonomies(self, taxonomies: Iterable[str]) -> "FilterCatalog":
        """
        Return a new catalog extended with supporter/opposer items for every
        hs_* taxonomy present in the data but absent from this catalog.
        """
        known = set(self.taxonomies())
        extra: List[FilterItem] = []
        for taxonomy in sorted(set(taxonomies)):
            if not taxonomy.startswith(HS_PREFIX) or taxonomy in known or taxonomy in MILITARY_TAXONOMIES:
                continue
            extra.extend(_hs_items(taxonomy))
        if extra:
            logger.info("Catalog extended with %d hs_* filters from data.", len(extra))
        return FilterCatalog(version=self.version, items=list(self.items) + extra)


@dataclass
class EstimationContext:
    """Everything the estimator needs besides the rows and the selection."""
    catalog: FilterCatalog
    state_populations: Dict[str, int]
    classifier: TaxonomyClassifier = field(default_factory=lambda: DEFAULT_CLASSIFIER)

    def with_data_taxonomies(self, taxonomies: Iterable[str]) -> "EstimationContext":
        """Copy of this context whose catalog also offers the data's hs_* taxonomies."""
        return replace(self, catalog=self.catalog.with_data_taxonomies(taxonomies))


# ---------------------------------------------------------------------------
# Default catalog
# ---------------------------------------------------------------------------

def _titleize(token: str) -> str:
    return token.replace("_", " ").title()


def _hs_category(taxonomy: str) -> str:
    if "israel" in taxonomy or "military" in taxonomy:
        return "Foreign Policy"
    if "ideology" in taxonomy:
        return "Ideology"
    if "voting" in taxonomy or "fraud" in taxonomy:
        return "Democracy"
    if "gun" in taxonomy or "crime" in taxonomy or "unions" in taxonomy:
        return "Social Issues"
    if "tv" in taxonomy or "trust" in taxonomy or "science" in taxonomy:
        return "Media Trust"
    if "trump" in taxonomy or "harris" in taxonomy or "tribalism" in taxonomy:
        return "Elections"
    if "aliens" in taxonomy or "conspiracy" in taxonomy:
        return "Conspiracy"
    return "General"


def _hs_items(taxonomy: str) -> Tuple[FilterItem, FilterItem]:
    base = taxonomy[len(HS_PREFIX):].replace("_", " ")
    category = _hs_category(taxonomy)
    return (
        FilterItem(f"{taxonomy}_supporter", f"{base} (Supporter)", taxonomy, category),
        FilterItem(f"{taxonomy}_opposer", f"{base} (Opposer)", taxonomy, category),
    )


def build_default_catalog() -> FilterCatalog:
    items: List[FilterItem] = []

    for code in STATE_POPULATIONS:
        items.append(FilterItem(f"{GEOGRAPHIC_PREFIX}{code}", f"{STATE_NAMES[code]} ({code})",
                                STATE_TAXONOMY, "Geographic Areas"))

    items.append(FilterItem(f"{GENDER}_male", "Male Voters", GENDER, "Demographics"))
    items.append(FilterItem(f"{GENDER}_female", "Female Voters", GENDER, "Demographics"))

    for token, (lo, hi) in AGE_BUCKETS.items():
        label = f"Ages {lo}+" if token.endswith("_plus") else f"Ages {lo}-{hi}"
        items.append(FilterItem(f"{AGE}_{token}", label, AGE, "Demographics"))

    for token in ETHNICITY_GROUPS:
        items.append(FilterItem(f"{ETHNICITY}_{token}", _titleize(token), ETHNICITY, "Demographics"))

    income_labels = {
        "under_25k": "Under $25,000",
        "25k_50k": "$25,000 - $50,000",
        "50k_75k": "$50,000 - $75,000",
        "75k_100k": "$75,000 - $100,000",
        "over_100k": "Over $100,000",
    }
    for token in INCOME_BRACKETS:
        items.append(FilterItem(f"{INCOME}_{token}", income_labels[token], INCOME, "Income"))

    items.append(FilterItem(f"{HH_COMPOSITION}_children", "Households with Children", HH_COMPOSITION, "Household"))
    items.append(FilterItem(f"{HH_COMPOSITION}_no_children", "Households without Children", HH_COMPOSITION, "Household"))

    for make in CATALOG_AUTO_MAKES:
        items.append(FilterItem(f"consumerdata_auto_make_{make.lower()}", f"{make} Owners", AUTO_MAKE_1, "Consumer"))

    for taxonomy, label in ((STATE_SENATE, "State Senate Districts"), (CONGRESSIONAL, "US Congressional Districts")):
        for code, (lo, hi) in DISTRICT_RANGES[taxonomy].items():
            items.append(FilterItem(
                f"{taxonomy}_{code.lower()}",
                f"{STATE_NAMES[code]} {label} {lo:02d}-{hi:02d}",
                taxonomy,
                "Districts",
            ))

    items.append(FilterItem(MILITARY_YES, "Military Family - Yes", MILITARY_YES, "Military Family"))
    items.append(FilterItem(MILITARY_NO, "Military Family - No", MILITARY_NO, "Military Family"))

    for code in MIGRATION_ORIGINS:
        items.append(FilterItem(f"{MIGRATION}_{code.lower()}", f"Moved from {STATE_NAMES[code]}",
                                MIGRATION, "Migration"))

    for taxonomy in DEFAULT_HS_TAXONOMIES:
        items.extend(_hs_items(taxonomy))

    return FilterCatalog(version=CATALOG_VERSION, items=items)


_DEFAULT_CONTEXT: Optional[EstimationContext] = None


def default_context() -> EstimationContext:
    """Context built once from the bundled catalog and population table."""
    global _DEFAULT_CONTEXT
    if _DEFAULT_CONTEXT is None:
        _DEFAULT_CONTEXT = EstimationContext(
            catalog=build_default_catalog(),
            state_populations=dict(STATE_POPULATIONS),
        )
    return _DEFAULT_CONTEXT
