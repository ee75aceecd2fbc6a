"""
Tests for the input normaliser (normalizer.py).
Covers every input shape, the alias tables and the object-or-JSON fields.
"""
import datetime
import json

import pytest

from factories import make_record

from portfolio_report.models import PortfolioRequest
from portfolio_report.normalizer import (
    InputShape,
    classify_shape,
    decode_object_field,
    normalize,
    normalize_with_report,
    parse_attachments,
    parse_date,
    parse_evidence,
    parse_evidence_list,
    parse_outcome_list,
    parse_text_list,
    pick,
    request_from_payload,
    EVIDENCE_FIELDS,
)


RECORDS = [{"Title": "A"}, {"Title": "B"}, {"Title": "C"}]


# ─── normalize() ──────────────────────────────────────────────────────────────

class TestNormalizeShapes:
    def test_list_returned_as_is(self):
        assert normalize(RECORDS) is RECORDS

    def test_none_is_empty(self):
        assert normalize(None) == []

    def test_blank_string_is_empty(self):
        assert normalize("   ") == []

    def test_json_string(self):
        assert normalize(json.dumps(RECORDS)) == RECORDS

    @pytest.mark.parametrize("depth", [1, 2, 3, 4])
    def test_repeatedly_encoded_string(self, depth):
        value = RECORDS
        for _ in range(depth):
            value = json.dumps(value)
        assert len(normalize(value)) == len(RECORDS)

    def test_comma_joined_objects_without_brackets(self):
        text = '{"Title": "A"}, {"Title": "B"}'
        assert normalize(text) == [{"Title": "A"}, {"Title": "B"}]

    def test_wrapper_object(self):
        assert normalize({"array": RECORDS}) == RECORDS

    def test_wrapper_holding_encoded_string(self):
        assert normalize({"array": json.dumps(RECORDS)}) == RECORDS

    def test_object_values_keep_only_objects(self):
        value = {"0": {"Title": "A"}, "1": {"Title": "B"}, "count": 2, "label": "x"}
        assert normalize(value) == [{"Title": "A"}, {"Title": "B"}]

    def test_lone_record_becomes_single_element_list(self):
        assert normalize({"Title": "A", "Date": "2025-01-01"}) == [{"Title": "A", "Date": "2025-01-01"}]

    def test_invalid_json_degrades_to_empty(self):
        assert normalize("not json at all") == []

    def test_number_degrades_to_empty(self):
        assert normalize(42) == []

    def test_idempotent(self):
        once = normalize(json.dumps(json.dumps(RECORDS)))
        assert normalize(once) == once


class TestNormalizeReport:
    def test_reports_decode_rounds(self):
        report = normalize_with_report(json.dumps(json.dumps(RECORDS)))
        assert report.shape is InputShape.ENCODED_LIST
        assert report.decode_rounds == 2
        assert not report.degraded

    def test_degraded_report_has_reason(self):
        report = normalize_with_report("{broken")
        assert report.degraded
        assert report.reason

    def test_string_still_string_after_rounds_degrades(self):
        value = "x"
        for _ in range(7):
            value = json.dumps(value)
        report = normalize_with_report(value)
        assert report.records == []
        assert report.degraded

    def test_classify_every_shape(self):
        assert classify_shape(None) is InputShape.NULL
        assert classify_shape([]) is InputShape.LIST
        assert classify_shape("[1]") is InputShape.ENCODED_LIST
        assert classify_shape({"array": []}) is InputShape.WRAPPER
        assert classify_shape({"a": {}}) is InputShape.OBJECT
        assert classify_shape(3.5) is InputShape.UNKNOWN


# ─── Object-or-JSON fields ───────────────────────────────────────────────────

class TestDecodeObjectField:
    def test_dict_passthrough(self):
        assert decode_object_field({"goals": "x"}) == ({"goals": "x"}, False)

    def test_json_string(self):
        data, degraded = decode_object_field('{"cognitive": "Good"}')
        assert data == {"cognitive": "Good"} and not degraded

    def test_double_encoded(self):
        data, _ = decode_object_field(json.dumps(json.dumps({"social": "Kind"})))
        assert data == {"social": "Kind"}

    def test_missing_braces(self):
        data, degraded = decode_object_field('"overview": "Keep going", "goals": "Read more"')
        assert data == {"overview": "Keep going", "goals": "Read more"}
        assert not degraded

    def test_undecodable_keeps_text_under_key(self):
        data, degraded = decode_object_field("Just some plans", text_key="overview")
        assert data == {"overview": "Just some plans"}
        assert degraded

    def test_undecodable_without_key_is_empty(self):
        assert decode_object_field("garbage") == ({}, True)


# ─── Scalars ──────────────────────────────────────────────────────────────────

class TestParseDate:
    @pytest.mark.parametrize("text", [
        "2025-03-01", "2025-03-01T09:30:00.000Z", "01/03/2025", "1 March 2025", "March 1, 2025",
    ])
    def test_formats(self, text):
        parsed, raw = parse_date(text)
        assert parsed == datetime.date(2025, 3, 1)
        assert raw == text

    def test_invalid_keeps_text(self):
        assert parse_date("sometime in autumn") == (None, "sometime in autumn")

    def test_missing(self):
        assert parse_date(None) == (None, "")


class TestParseAttachments:
    def test_attachment_objects(self):
        raw = [
            {"url": "https://cdn.example.com/a.jpg", "type": "image/jpeg"},
            {"url": "https://cdn.example.com/b.pdf", "type": "application/pdf"},
        ]
        assert parse_attachments(raw) == ("https://cdn.example.com/a.jpg",)

    def test_single_object(self):
        raw = {"url": "https://cdn.example.com/a.png", "thumbnails": {"small": {"url": "x"}}}
        assert parse_attachments(raw) == ("https://cdn.example.com/a.png",)

    def test_comma_joined_urls(self):
        raw = "https://x.test/a.png, https://x.test/b.jpeg"
        assert parse_attachments(raw) == ("https://x.test/a.png", "https://x.test/b.jpeg")

    def test_non_http_dropped(self):
        assert parse_attachments(["file:///etc/passwd", "ftp://x/a.png"]) == ()


# ─── Entities ─────────────────────────────────────────────────────────────────

class TestRequestFromPayload:
    def test_aliases(self):
        req = request_from_payload({"childName": "Ava", "yearLevel": "Stage 2", "parentname": "Jo"})
        assert isinstance(req, PortfolioRequest)
        assert req.parent_name == "Jo"

    def test_defaults(self):
        req = request_from_payload({"childName": "Ava", "yearLevel": "Stage 2"})
        assert req.reporting_period == "Current Period"
        assert req.parent_name == "Parent/Carer"
        assert req.state == "NSW"
        assert req.curriculum_term == "syllabus"

    def test_other_state_uses_curriculum(self):
        req = request_from_payload({"childName": "Ava", "yearLevel": "Year 3", "state": "VIC"})
        assert req.curriculum_term == "curriculum"

    def test_unknown_keys_kept_as_extras(self):
        req = request_from_payload({"childName": "Ava", "recordId": "x"})
        assert req.extras == {"recordId": "x"}

    def test_none_fields_become_empty(self):
        req = request_from_payload({"childName": None, "yearLevel": "  Stage 2 "})
        assert req.child_name == ""
        assert req.year_level == "Stage 2"


class TestParseEvidence:
    def test_alias_priority(self):
        record = {"Title": "", "title": "Lower", "Name": "Name"}
        assert pick(record, EVIDENCE_FIELDS, "title") == "Lower"

    def test_full_record(self):
        entry = parse_evidence(make_record("Trip", "2025-03-01", "Science, Maths", description="Zoo"))
        assert entry.title == "Trip"
        assert entry.date == datetime.date(2025, 3, 1)
        assert entry.declared_areas == ("Science & Technology", "Mathematics")
        assert entry.description == "Zoo"

    def test_list_from_encoded_string(self):
        text = json.dumps([make_record("A"), make_record("B")])
        entries, report = parse_evidence_list(json.dumps(text))
        assert [e.title for e in entries] == ["A", "B"]
        assert report.decode_rounds == 2

    def test_non_object_records_skipped(self):
        entries, _ = parse_evidence_list([make_record("A"), 7, None])
        assert [e.title for e in entries] == ["A"]

    def test_outcome_list_normalises_area(self):
        outcomes, _ = parse_outcome_list([{"Learning Area": "Maths", "Outcome Title": "MA2-RN-01"}])
        assert outcomes[0].area_label == "Mathematics"

    def test_outcome_without_area_is_other(self):
        outcomes, _ = parse_outcome_list([{"Outcome Title": "MA2-RN-01"}])
        assert outcomes[0].area_label == "Other"


class TestParseTextList:
    def test_newline_text(self):
        assert parse_text_list("- Flexible pacing\n- Movement breaks\n") == ("Flexible pacing", "Movement breaks")

    def test_json_list(self):
        assert parse_text_list('["A", "B"]') == ("A", "B")

    def test_empty(self):
        assert parse_text_list(None) == ()
