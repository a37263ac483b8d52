"""
test_data_tools.py
==================
Tests for the row-table loader, load-time validation, filter
diagnostics, the filter catalog and the command line. No network access.
"""

import contextlib
import io
import os
import sys
import tempfile
import unittest
from unittest import mock

import pandas as pd

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from audience_estimator.core import data_loader
from audience_estimator.core.catalog import (
    CATALOG_VERSION,
    EstimationContext,
    FilterCatalog,
    FilterItem,
    build_default_catalog,
    default_context,
)
from audience_estimator.core.data_loader import (
    DataLoaderError,
    clear_cache,
    frame_to_rows,
    load_rows,
    parse_csv_text,
    parse_segment,
    rows_to_frame,
)
from audience_estimator.core.diagnostics import (
    diagnose_filter,
    render_diagnostic_report,
    run_filter_diagnostics,
)
from audience_estimator.core.rules import DataRow, MILITARY_YES
from audience_estimator.core.validation import build_validation_report, find_sum_violations

import main

CSV_TEXT = """state_code,taxonomy,segment,population_pct
CA,voters_gender,M,49.0
CA,voters_gender,F,51.0
CA,2010_state_senate_district,09,60.0
CA,2010_state_senate_district,12,40.0
CA,hs_gun_control_support,70,30.0
CA,hs_gun_control_support,40,70.0
CA,ethnic_description,Hispanic ,35.5
CA,ethnic_description,Latino,64.5
CA,voters_age,25,not-a-number
"""


def _write_tmp(text):
    fd, path = tempfile.mkstemp(suffix=".csv")
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(text)
    return path


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

class TestDataLoader(unittest.TestCase):

    def setUp(self):
        clear_cache()

    def test_parse_csv_text(self):
        with self.assertLogs("audience_estimator.core.data_loader", level="WARNING"):
            frame = parse_csv_text(CSV_TEXT)
        self.assertEqual(len(frame), 8)
        self.assertEqual(list(frame.columns), ["state_code", "taxonomy", "segment", "population_pct"])

    def test_segments_are_typed(self):
        frame = parse_csv_text(CSV_TEXT)
        segments = frame["segment"].tolist()
        self.assertIn(9, segments)
        self.assertIn(70, segments)
        self.assertIn("Hispanic", segments)

    def test_decimal_segments_are_floats(self):
        frame = parse_csv_text(
            "state_code,taxonomy,segment,population_pct\n"
            "CA,hs_gun_control_support,70.5,30.0\n"
            "CA,hs_gun_control_support,nan,10.0\n"
            "CA,commercialdata_estimatedhhincome,$250000+,60.0\n"
        )
        segments = frame["segment"].tolist()
        self.assertEqual(segments[0], 70.5)
        self.assertIsInstance(segments[0], float)
        self.assertEqual(segments[1], "nan")
        self.assertEqual(segments[2], "$250000+")

    def test_parse_segment(self):
        self.assertEqual(parse_segment(" 09 "), 9)
        self.assertEqual(parse_segment("65.25"), 65.25)
        self.assertEqual(parse_segment("inf"), "inf")
        self.assertEqual(parse_segment(42), 42)

    def test_missing_columns(self):
        with self.assertRaises(DataLoaderError):
            parse_csv_text("state_code,taxonomy\nCA,voters_gender\n")

    def test_column_names_are_case_insensitive(self):
        frame = parse_csv_text("State_Code,TAXONOMY,Segment,Population_Pct\nCA,voters_gender,M,49\n")
        self.assertEqual(frame.iloc[0]["population_pct"], 49.0)

    def test_load_rows_from_path_is_cached(self):
        path = _write_tmp(CSV_TEXT)
        try:
            first = load_rows(path)
            self.assertIs(load_rows(path), first)
            self.assertIsNot(load_rows(path, refresh=True), first)
        finally:
            os.remove(path)

    def test_missing_file_propagates(self):
        with self.assertRaises(FileNotFoundError):
            load_rows(os.path.join(tempfile.gettempdir(), "no-such-table.csv"))

    def test_http_failure_raises(self):
        response = mock.Mock(status_code=503, text="unavailable")
        session = mock.Mock()
        session.get.return_value = response
        with mock.patch.object(data_loader, "_get_session", return_value=session):
            with self.assertRaises(DataLoaderError):
                load_rows("https://example.invalid/rows.csv")

    def test_http_success(self):
        response = mock.Mock(status_code=200, text=CSV_TEXT)
        session = mock.Mock()
        session.get.return_value = response
        with mock.patch.object(data_loader, "_get_session", return_value=session):
            frame = load_rows("https://example.invalid/rows.csv")
        self.assertEqual(frame["state_code"].unique().tolist(), ["CA"])

    def test_rows_frame_conversion(self):
        rows = [DataRow("CA", "voters_gender", "M", 49.0)]
        frame = rows_to_frame(rows)
        self.assertEqual(frame_to_rows(frame), rows)

    def test_empty_rows_frame_has_columns(self):
        self.assertEqual(list(rows_to_frame([]).columns),
                         ["state_code", "taxonomy", "segment", "population_pct"])


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────

class TestValidation(unittest.TestCase):

    def setUp(self):
        self.frame = parse_csv_text(CSV_TEXT)

    def test_sums_within_tolerance(self):
        self.assertEqual(find_sum_violations(self.frame), [])

    def test_sum_violation_detected(self):
        bad = pd.concat([self.frame, rows_to_frame([DataRow("CA", "voters_gender", "X", 5.0)])],
                        ignore_index=True)
        violations = find_sum_violations(bad)
        self.assertEqual([(v.state, v.taxonomy) for v in violations], [("CA", "voters_gender")])
        self.assertAlmostEqual(violations[0].total_pct, 105.0)

    def test_report(self):
        report = build_validation_report(self.frame)
        names = [s.taxonomy for s in report.taxonomies]
        self.assertIn("voters_gender", names)
        self.assertIn("voters_age", report.missing_taxonomies)
        self.assertFalse(report.is_valid)
        self.assertEqual(report.rule_coverage.uncovered, 0)
        self.assertEqual(
            report.segment_mappings["ethnic_description"]["ethnic_description_hispanic"], ["Hispanic"]
        )


# ─────────────────────────────────────────────────────────────────────────────
# Diagnostics
# ─────────────────────────────────────────────────────────────────────────────

class TestDiagnostics(unittest.TestCase):

    def setUp(self):
        self.frame = parse_csv_text(CSV_TEXT)
        self.ctx = default_context()

    def test_exact_match(self):
        d = diagnose_filter(self.frame, "voters_gender_female", self.ctx)
        self.assertEqual(d.match_status, "exact")
        self.assertTrue(d.has_data)
        self.assertEqual(d.data_count, 1)

    def test_district_segments_are_padded(self):
        d = diagnose_filter(self.frame, "2010_state_senate_district_ca", self.ctx)
        self.assertEqual(d.data_segments, ["09", "12"])
        self.assertEqual(d.data_count, 2)

    def test_partial_match(self):
        frame = rows_to_frame([DataRow("CA", "ethnic_description", "Hispanic or Latino", 100.0)])
        d = diagnose_filter(frame, "ethnic_description_hispanic", self.ctx)
        self.assertEqual(d.match_status, "partial")
        self.assertFalse(d.has_data)

    def test_taxonomy_without_rows(self):
        d = diagnose_filter(self.frame, MILITARY_YES, self.ctx)
        self.assertEqual(d.match_status, "none")
        self.assertEqual(d.data_count, 0)

    def test_geographic_is_exact(self):
        d = diagnose_filter(self.frame, "state-WY", self.ctx)
        self.assertEqual(d.match_status, "exact")

    def test_report_and_rendering(self):
        report = run_filter_diagnostics(
            self.frame, self.ctx, ["voters_gender_male", "voters_age_18_34", "state-CA"]
        )
        self.assertEqual((report.total, report.working, report.broken), (3, 2, 1))
        text = render_diagnostic_report(report)
        self.assertIn("# FILTER DIAGNOSTIC REPORT", text)
        self.assertIn("### voters_age_18_34", text)
        self.assertNotIn("### voters_gender_male", text)


# ─────────────────────────────────────────────────────────────────────────────
# Catalog
# ─────────────────────────────────────────────────────────────────────────────

class TestCatalog(unittest.TestCase):

    def setUp(self):
        self.catalog = build_default_catalog()

    def test_version_and_lookup(self):
        self.assertEqual(self.catalog.version, CATALOG_VERSION)
        self.assertEqual(self.catalog.get("state-CA").label, "California (CA)")
        self.assertEqual(self.catalog.taxonomy_for("voters_age_75_plus"), "voters_age")
        self.assertIsNone(self.catalog.taxonomy_for("not_in_catalog"))

    def test_ids_are_unique(self):
        ids = self.catalog.filter_ids()
        self.assertEqual(len(ids), len(set(ids)))

    def test_taxonomies_exclude_state_selection(self):
        self.assertNotIn("state", self.catalog.taxonomies())
        self.assertIn("hs_gun_control_support", self.catalog.taxonomies())

    def test_items_for_taxonomy(self):
        ids = [i.id for i in self.catalog.items_for_taxonomy("voters_gender")]
        self.assertEqual(ids, ["voters_gender_male", "voters_gender_female"])

    def test_with_data_taxonomies(self):
        extended = self.catalog.with_data_taxonomies(
            ["hs_brand_new", "voters_gender", MILITARY_YES, "hs_gun_control_support"]
        )
        added = set(extended.filter_ids()) - set(self.catalog.filter_ids())
        self.assertEqual(added, {"hs_brand_new_supporter", "hs_brand_new_opposer"})
        self.assertEqual(len(self.catalog.filter_ids()), len(build_default_catalog().filter_ids()))

    def test_context_is_injectable(self):
        catalog = FilterCatalog("test", [FilterItem("x_1", "X", "hs_x", "General")])
        ctx = EstimationContext(catalog=catalog, state_populations={"CA": 1})
        self.assertEqual(ctx.catalog.taxonomy_for("x_1"), "hs_x")

    def test_context_with_data_taxonomies(self):
        base = default_context()
        ctx = base.with_data_taxonomies(["hs_brand_new", "voters_gender"])
        self.assertEqual(ctx.catalog.taxonomy_for("hs_brand_new_supporter"), "hs_brand_new")
        self.assertIsNone(base.catalog.get("hs_brand_new_supporter"))
        self.assertIs(ctx.state_populations, base.state_populations)
        self.assertIs(ctx.classifier, base.classifier)

    def test_diagnostics_cover_data_only_taxonomies(self):
        frame = rows_to_frame([
            DataRow("CA", "hs_brand_new", 80, 40.0),
            DataRow("CA", "hs_brand_new", 20, 60.0),
        ])
        ctx = default_context().with_data_taxonomies(frame["taxonomy"].unique().tolist())
        ids = {r.filter_id for r in run_filter_diagnostics(frame, ctx).results}
        self.assertIn("hs_brand_new_supporter", ids)
        self.assertIn("hs_brand_new_opposer", ids)


# ─────────────────────────────────────────────────────────────────────────────
# Command line
# ─────────────────────────────────────────────────────────────────────────────

class TestCommandLine(unittest.TestCase):

    def setUp(self):
        clear_cache()

    def test_diagnose_lists_data_only_taxonomies(self):
        path = _write_tmp(
            "state_code,taxonomy,segment,population_pct\n"
            "CA,hs_brand_new,10,40.0\n"
            "CA,hs_brand_new,20,60.0\n"
        )
        self.addCleanup(os.remove, path)
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main.main(["--data", path, "--diagnose"])
        self.assertEqual(code, 0)
        self.assertIn("### hs_brand_new_supporter", out.getvalue())


if __name__ == "__main__":
    unittest.main()
