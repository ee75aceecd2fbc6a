"""
Tests for the normalised entities and request model (models.py).
"""
import dataclasses
import datetime

import pytest

from factories import make_entry, make_outcome

from portfolio_report.models import (
    STANDARD_AREAS,
    FuturePlans,
    PortfolioRequest,
    ProgressAssessment,
    SampleResult,
    coerce_text,
    format_long_date,
)


class TestEvidenceEntry:
    def test_identity_is_casefolded_title(self):
        assert make_entry("  Beach Walk ").identity_key == make_entry("beach walk").identity_key

    def test_untitled_entries_do_not_collide(self):
        a = make_entry("", description="Painted a sunset.")
        b = make_entry("", description="Counted shells.")
        assert a.identity_key != b.identity_key

    def test_untitled_prefers_record_id(self):
        entry = make_entry("", record_id="rec123")
        assert entry.identity_key.startswith("untitled:rec123:")

    def test_display_title_fallback(self):
        assert make_entry("   ").display_title == "Untitled activity"

    def test_date_display(self):
        assert make_entry(date=datetime.date(2025, 3, 1)).date_display == "1 March 2025"

    def test_invalid_date_keeps_raw_text(self):
        entry = dataclasses.replace(make_entry(date=None), date_text="sometime in March")
        assert entry.date_display == "sometime in March"
        assert entry.sort_date == datetime.date.min

    def test_missing_date(self):
        assert make_entry(date=None).date_display == "Date not specified"

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            make_entry().title = "Changed"


class TestSmallEntities:
    def test_outcome_display(self):
        assert make_outcome().display == "EN2-OLC-01: communicates effectively for different purposes"
        assert make_outcome(description="").display == "EN2-OLC-01"

    def test_long_date(self):
        assert format_long_date(datetime.date(2024, 12, 25)) == "25 December 2024"

    def test_assessment_from_mapping_accepts_capitalised_keys(self):
        assessment = ProgressAssessment.from_mapping({"Cognitive": " Curious. ", "social": None})
        assert assessment.cognitive == "Curious."
        assert assessment.get("social") == ""
        assert assessment.get("nonsense") == ""

    @pytest.mark.parametrize("value, expected", [
        (None, ""),
        ("  Plain text ", "Plain text"),
        (["Read", "", "Write"], "Read\nWrite"),
        ({"summary": "Counts to 100."}, "Counts to 100."),
        ({"a": "One", "b": ["Two"]}, "One\nTwo"),
        (3, "3"),
    ])
    def test_coerce_text(self, value, expected):
        assert coerce_text(value) == expected

    def test_future_plans_aliases(self):
        plans = FuturePlans.from_mapping({"learningGoals": "Read more", "resources": "Library"})
        assert plans.goals == "Read more"
        assert plans.planned_resources == "Library"
        assert not plans.is_empty
        assert FuturePlans().is_empty

    def test_sample_counts(self):
        entry = make_entry()
        result = SampleResult(
            by_area={"Science & Technology": (entry,)},
            elided={"Science & Technology": 2},
            totals={"Science & Technology": 3},
            sampled=True,
        )
        assert result.shown_count == 1
        assert result.elided_count == 2

    def test_standard_areas(self):
        assert STANDARD_AREAS == [
            "English", "Mathematics", "Science & Technology", "HSIE", "PDHPE", "Creative Arts",
        ]


class TestPortfolioRequest:
    def test_text_fields_coerced(self):
        request = PortfolioRequest(child_name="  Ava ", year_level=3, parent_name=None)
        assert request.child_name == "Ava"
        assert request.year_level == "3"
        assert request.parent_name == ""

    def test_defaults(self):
        request = PortfolioRequest()
        assert request.reporting_period == "Current Period"
        assert request.state == "NSW"

    @pytest.mark.parametrize("state, term", [
        ("NSW", "syllabus"),
        ("nsw", "syllabus"),
        ("VIC", "curriculum"),
    ])
    def test_curriculum_term(self, state, term):
        assert PortfolioRequest(state=state).curriculum_term == term
