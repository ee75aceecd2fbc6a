"""
Tests for the request, evidence and output guardrails (guardrails.py).
"""
import dataclasses

import pytest

from factories import make_entry

from portfolio_report.guardrails import (
    EvidenceGuardrails,
    GuardrailLevel,
    GuardrailResult,
    GuardrailsPipeline,
    GuardrailViolation,
    OutputGuardrails,
    RequestGuardrails,
)
from portfolio_report.models import SampleResult
from portfolio_report.normalizer import normalize_with_report, request_from_payload


def _request(**fields):
    data = {"childName": "Ava", "yearLevel": "Stage 2"}
    data.update(fields)
    return request_from_payload(data)


# ─── G-01 / G-02 ──────────────────────────────────────────────────────────────

class TestRequestGuardrails:
    def test_valid_request_passes(self):
        result = RequestGuardrails().check(_request())
        assert result.passed
        assert result.violations == []

    @pytest.mark.parametrize("field, alias", [("childName", "childName"), ("yearLevel", "yearLevel")])
    def test_missing_required_field_blocks(self, field, alias):
        result = RequestGuardrails().check(_request(**{alias: "  "}))
        assert result.blocked
        assert [(v.code, v.field) for v in result.violations] == [("G-01", field)]

    def test_lowercase_aliases_satisfy_g01(self):
        request = request_from_payload({"childname": "Ava", "yearlevel": "Stage 2"})
        assert RequestGuardrails().check(request).passed

    def test_unknown_state_warns(self):
        result = RequestGuardrails().check(_request(state="Narnia"))
        assert result.passed
        assert result.warnings[0].code == "G-02"

    @pytest.mark.parametrize("state", ["NSW", "vic", "Qld", "ACT"])
    def test_known_states(self, state):
        assert RequestGuardrails().check(_request(state=state)).violations == []


# ─── G-03 / G-04 ──────────────────────────────────────────────────────────────

class TestEvidenceGuardrails:
    def test_unreadable_payload_warns(self):
        report = normalize_with_report("{oops")
        result = EvidenceGuardrails().check("{oops", [], report)
        assert [v.code for v in result.warnings] == ["G-03"]
        assert "invalid JSON" in result.warnings[0].message

    def test_absent_payload_is_fine(self):
        assert EvidenceGuardrails().check(None, []).violations == []
        assert EvidenceGuardrails().check("  ", []).violations == []

    def test_untitled_entries_info(self):
        entries = [make_entry(""), make_entry(""), make_entry("Titled")]
        result = EvidenceGuardrails().check([{}, {}, {}], entries)
        assert result.passed
        assert [v.code for v in result.infos] == ["G-04"]
        assert "2 evidence entries have no title" in result.infos[0].message


# ─── G-05 / G-06 / G-07 ───────────────────────────────────────────────────────

class TestOutputGuardrails:
    def test_finished_report_passes(self, report):
        assert OutputGuardrails().check(report).passed

    def test_missing_overview_blocks(self, report):
        broken = dataclasses.replace(report, overviews=report.overviews[1:])
        result = OutputGuardrails().check(broken)
        assert result.blocked
        assert result.violations[0].code == "G-05"
        assert "English" in result.violations[0].message

    def test_outcome_without_code_blocks(self, report):
        bad = make_entry("Bad", outcomes=("no code here",))
        result = OutputGuardrails().check(dataclasses.replace(report, entries=report.entries + (bad,)))
        assert [v.code for v in result.violations] == ["G-06"]

    def test_sample_accounting_mismatch_blocks(self, report):
        sample = SampleResult(
            by_area={"English": (make_entry("A"),)},
            elided={"English": 0},
            totals={"English": 3},
            sampled=True,
        )
        result = OutputGuardrails().check(dataclasses.replace(report, sample=sample))
        assert [v.code for v in result.violations] == ["G-07"]


# ─── Pipeline façade ──────────────────────────────────────────────────────────

class TestGuardrailsPipeline:
    def test_merge(self):
        ok = GuardrailResult(passed=True)
        blocked = GuardrailResult(passed=False, violations=[
            GuardrailViolation(code="G-01", level=GuardrailLevel.BLOCK, message="childName is required."),
        ])
        merged = GuardrailsPipeline().merge(ok, blocked)
        assert merged.blocked
        assert not merged.passed

    def test_summary(self):
        assert GuardrailResult(passed=True).summary() == "All guardrails passed."
        result = GuardrailsPipeline().check_request(_request(childName=""))
        assert result.summary() == "BLOCK [G-01] childName is required."
