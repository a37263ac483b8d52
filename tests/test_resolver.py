"""
test_resolver.py
================
Unit tests for filter id -> (taxonomy, predicate) resolution.
Covers taxonomy extraction, every per-taxonomy resolver, the wildcard
fallback for unknown ids, and geographic interception.
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from audience_estimator.core.catalog import build_default_catalog
from audience_estimator.core.predicates import WILDCARD, Exact, Range, Threshold, ValueSet
from audience_estimator.core.resolver import extract_taxonomy, parse_filters, resolve
from audience_estimator.core.rules import (
    AGE,
    AUTO_MAKE_1,
    CONGRESSIONAL,
    ETHNICITY,
    GENDER,
    GEOGRAPHIC_TAXONOMY,
    HH_COMPOSITION,
    INCOME,
    MIGRATION,
    MILITARY_NO,
    MILITARY_YES,
    STATE_SENATE,
    ZIPCODE,
)

CATALOG = build_default_catalog()


# ─────────────────────────────────────────────────────────────────────────────
# Taxonomy extraction
# ─────────────────────────────────────────────────────────────────────────────

class TestExtractTaxonomy(unittest.TestCase):

    def test_geographic_ids(self):
        self.assertEqual(extract_taxonomy("state-CA", CATALOG), GEOGRAPHIC_TAXONOMY)

    def test_catalog_lookup(self):
        self.assertEqual(extract_taxonomy("consumerdata_auto_make_ford", CATALOG), AUTO_MAKE_1)
        self.assertEqual(extract_taxonomy(MILITARY_YES, CATALOG), MILITARY_YES)

    def test_known_prefix_without_catalog(self):
        self.assertEqual(extract_taxonomy("commercialdata_estimatedhhincome_over_100k"), INCOME)
        self.assertEqual(extract_taxonomy("2001_us_zipcode_90210"), ZIPCODE)
        self.assertEqual(extract_taxonomy("voters_age_18_34"), AGE)

    def test_hs_marker_is_stripped(self):
        self.assertEqual(extract_taxonomy("hs_brand_new_question_supporter"), "hs_brand_new_question")
        self.assertEqual(extract_taxonomy("hs_brand_new_question_opposer"), "hs_brand_new_question")

    def test_hs_yes_no_markers_are_stripped(self):
        self.assertEqual(extract_taxonomy("hs_climate_change_believer_yes"), "hs_climate_change_believer")
        self.assertEqual(extract_taxonomy("hs_climate_change_believer_no"), "hs_climate_change_believer")

    def test_military_ids_keep_their_suffix(self):
        self.assertEqual(extract_taxonomy(MILITARY_YES), MILITARY_YES)
        self.assertEqual(extract_taxonomy(MILITARY_NO), MILITARY_NO)

    def test_fallback_drops_last_token(self):
        self.assertEqual(extract_taxonomy("something_weird"), "something")
        self.assertEqual(extract_taxonomy("plain"), "plain")

    def test_blank_id(self):
        self.assertIsNone(extract_taxonomy("   "))


# ─────────────────────────────────────────────────────────────────────────────
# Demographic resolvers
# ─────────────────────────────────────────────────────────────────────────────

class TestDemographicResolution(unittest.TestCase):

    def test_female_is_not_read_as_male(self):
        self.assertEqual(resolve("voters_gender_female", GENDER), Exact("F"))
        self.assertEqual(resolve("voters_gender_male", GENDER), Exact("M"))

    def test_unknown_gender_is_wildcard(self):
        with self.assertLogs("audience_estimator.core.resolver", level="WARNING"):
            self.assertEqual(resolve("voters_gender_other", GENDER), WILDCARD)

    def test_age_bucket_expands_to_ages(self):
        p = resolve("voters_age_35_54", AGE)
        self.assertEqual(p, ValueSet.of(range(35, 55)))
        self.assertTrue(p.matches(54))
        self.assertFalse(p.matches(55))

    def test_age_75_plus_reaches_100(self):
        p = resolve("voters_age_75_plus", AGE)
        self.assertTrue(p.matches(100))
        self.assertFalse(p.matches(74))

    def test_unknown_age_defaults_to_full_range(self):
        p = resolve("voters_age_whatever", AGE)
        self.assertEqual(len(p.values), 83)

    def test_single_label_ethnicity_is_exact(self):
        self.assertEqual(resolve("ethnic_description_hispanic", ETHNICITY), Exact("Hispanic"))

    def test_ethnicity_group_lists(self):
        p = resolve("ethnic_description_asian", ETHNICITY)
        self.assertTrue(p.matches("Korean"))
        self.assertFalse(p.matches("Hispanic"))

    def test_income_over_100k_aggregates_brackets(self):
        p = resolve("commercialdata_estimatedhhincome_over_100k", INCOME)
        self.assertEqual(len(p.values), 7)
        self.assertTrue(p.matches("$100001-125000"))
        self.assertTrue(p.matches("$250000+"))
        self.assertFalse(p.matches("$75001-100000"))


# ─────────────────────────────────────────────────────────────────────────────
# Districts, zipcodes, autos, migration
# ─────────────────────────────────────────────────────────────────────────────

class TestCodedResolution(unittest.TestCase):

    def test_district_range_per_state(self):
        self.assertEqual(resolve("2010_state_senate_district_wy", STATE_SENATE), Range(1, 30))
        self.assertEqual(resolve("2010_state_senate_district_ca", STATE_SENATE), Range(1, 40))
        self.assertEqual(resolve("2001_us_congressional_district_ny", CONGRESSIONAL), Range(1, 29))

    def test_district_unknown_state_uses_default(self):
        self.assertEqual(resolve("2001_us_congressional_district_tx", CONGRESSIONAL), Range(1, 53))

    def test_zipcode(self):
        self.assertEqual(resolve("2001_us_zipcode_90210", ZIPCODE), Exact("90210"))
        self.assertEqual(resolve("2001_us_zipcode_all", ZIPCODE), WILDCARD)

    def test_auto_make(self):
        self.assertEqual(resolve("consumerdata_auto_make_toyota", AUTO_MAKE_1), Exact("Toyota"))

    def test_migration_origin(self):
        self.assertEqual(resolve("voters_movedfrom_state_nj", MIGRATION), Exact("NJ"))


# ─────────────────────────────────────────────────────────────────────────────
# Household composition
# ─────────────────────────────────────────────────────────────────────────────

class TestHouseholdResolution(unittest.TestCase):

    SEGMENTS = ["Children Present", "Single parent with children", "No Children",
                "Couple without children", "Married"]

    def test_children_matches_every_children_label(self):
        p = resolve("commercialdata_hhcomposition_children", HH_COMPOSITION, self.SEGMENTS)
        self.assertEqual(p.values, frozenset({"Children Present", "Single parent with children"}))

    def test_no_children_is_complement(self):
        p = resolve("commercialdata_hhcomposition_no_children", HH_COMPOSITION, self.SEGMENTS)
        self.assertEqual(p.values, frozenset({"No Children", "Couple without children", "Married"}))

    def test_underscore_joined_negation(self):
        segments = ["has_no_children", "with_children", "no_children_present", "Single"]
        p = resolve("commercialdata_hhcomposition_children", HH_COMPOSITION, segments)
        self.assertEqual(p.expected_values(), ["with_children"])
        q = resolve("commercialdata_hhcomposition_no_children", HH_COMPOSITION, segments)
        self.assertEqual(q.expected_values(), ["Single", "has_no_children", "no_children_present"])


# ─────────────────────────────────────────────────────────────────────────────
# Scores
# ─────────────────────────────────────────────────────────────────────────────

class TestScoreResolution(unittest.TestCase):

    def test_supporter_and_opposer(self):
        self.assertEqual(resolve("hs_gun_control_support_supporter", "hs_gun_control_support"), Threshold(65, True))
        self.assertEqual(resolve("hs_gun_control_support_opposer", "hs_gun_control_support"), Threshold(65, False))

    def test_military_yes_no(self):
        self.assertEqual(resolve(MILITARY_YES, MILITARY_YES), Threshold(65, True))
        self.assertEqual(resolve(MILITARY_NO, MILITARY_NO), Threshold(65, False))

    def test_unmarked_hs_defaults_to_supporter(self):
        self.assertEqual(resolve("hs_climate_change_believer", "hs_climate_change_believer"), Threshold(65, True))

    def test_unknown_taxonomy_is_wildcard(self):
        with self.assertLogs("audience_estimator.core.resolver", level="WARNING"):
            self.assertEqual(resolve("mystery_x", "mystery"), WILDCARD)


# ─────────────────────────────────────────────────────────────────────────────
# parse_filters
# ─────────────────────────────────────────────────────────────────────────────

class TestParseFilters(unittest.TestCase):

    def test_geographic_is_intercepted(self):
        combos = parse_filters(["state-ca"], CATALOG)
        self.assertEqual(len(combos), 1)
        self.assertTrue(combos[0].is_geographic)
        self.assertEqual(combos[0].target_state, "CA")

    def test_sorted_and_deduplicated(self):
        combos = parse_filters(
            ["voters_gender_male", "ethnic_description_asian", "voters_gender_male"], CATALOG
        )
        self.assertEqual([c.filter_id for c in combos], ["ethnic_description_asian", "voters_gender_male"])

    def test_household_uses_data_segments(self):
        combos = parse_filters(
            ["commercialdata_hhcomposition_children"],
            CATALOG,
            segments_by_taxonomy={HH_COMPOSITION: ["Kids: children present", "No children"]},
        )
        self.assertEqual(combos[0].predicate, ValueSet.of(["Kids: children present"]))


if __name__ == "__main__":
    unittest.main()
