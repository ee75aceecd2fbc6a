"""
End-to-end tests for the portfolio pipeline (pipeline.py).
All runs use mock mode; collaborators are replaced with plain callables.
"""
import datetime
from pathlib import Path

import pytest

from factories import PNG_1PX, make_payload, make_record, make_settings

from portfolio_report.aggregator import NO_EVIDENCE_TEXT
from portfolio_report.composer import ComposeOptions
from portfolio_report.errors import AttachmentUnavailable, PortfolioValidationError
from portfolio_report.nodes import plain_text
from portfolio_report.pipeline import build_report, generate_portfolio, validate_request
from portfolio_report.storage import LocalStore


STAGES = ["S0", "S1", "S2", "S3", "S4", "S5", "S6", "S7", "S8", "S9"]


class TestValidateRequest:
    def test_missing_child_name(self):
        with pytest.raises(PortfolioValidationError) as exc_info:
            validate_request({"yearLevel": "Stage 2"})
        assert exc_info.value.fields == ["childName"]

    def test_both_missing(self):
        with pytest.raises(PortfolioValidationError, match="childName, yearLevel"):
            validate_request({})

    def test_string_payload_accepted(self):
        request, result = validate_request('{"childName": "Ava", "yearLevel": "Stage 2"}')
        assert request.child_name == "Ava"
        assert result.passed

    def test_unknown_state_warns(self):
        _, result = validate_request({"childName": "Ava", "yearLevel": "Stage 2", "state": "XYZ"})
        assert result.passed
        assert [v.code for v in result.warnings] == ["G-02"]


class TestEndToEnd:
    def test_single_encoded_entry(self, ava_payload, settings):
        result = generate_portfolio(
            ava_payload, settings=settings,
            options=ComposeOptions(generated_on=datetime.date(2025, 3, 15)),
        )
        assert result.pdf[:4] == b"%PDF"
        assert result.filename == "Ava-Portfolio-Current-Period.pdf"
        assert result.url is None

        model = result.model
        assert [e.title for e in model.flat] == ["Trip"]
        assert list(model.by_area) == ["Science & Technology"]
        assert len(model.overviews) == 6
        assert model.gaps == ()

        text = plain_text(list(result.nodes))
        assert "Date: 1 March 2025" in text
        assert "1 unique learning activity documented" in text
        for area in ("English", "Mathematics", "HSIE", "PDHPE", "Creative Arts"):
            assert NO_EVIDENCE_TEXT.format(area=area) in text
        assert "Outcomes Not Yet Evidenced" not in text

    def test_validation_error_produces_no_document(self, settings):
        with pytest.raises(PortfolioValidationError):
            generate_portfolio({"yearLevel": "Stage 2"}, settings=settings)

    def test_stored_to_local_directory(self, payload, settings, tmp_path):
        result = generate_portfolio(payload, settings=settings, store=LocalStore(tmp_path))
        assert result.filename == "Ava-Smith-Portfolio-Term-1-2025.pdf"
        assert result.url.startswith("file://")
        stored = tmp_path / result.filename
        assert stored.read_bytes() == result.pdf

    def test_deterministic_model(self, payload, settings):
        first = build_report(payload, settings=settings)
        second = build_report(payload, settings=settings)
        assert first.flat == second.flat
        assert first.overviews == second.overviews
        assert first.gaps == second.gaps
        assert first.resources == second.resources


class TestTrace:
    def test_every_stage_recorded(self, report):
        assert [s.stage_id for s in report.trace.steps] == STAGES
        assert report.trace.mode == "mock"

    def test_enhance_and_attachments_skipped_in_mock(self, report):
        assert report.trace.step("S7").status == "skipped"
        assert report.trace.step("S8").status == "skipped"

    def test_unparseable_evidence_degrades(self, settings):
        model = build_report(
            {"childName": "Ava", "yearLevel": "Stage 2", "evidenceEntries": "{not json"},
            settings=settings,
        )
        assert model.flat == ()
        assert model.trace.step("S1").status == "degraded"
        assert any("[G-03]" in w for w in model.trace.warnings)

    def test_unknown_state_degrades_request_step(self, settings):
        model = build_report(make_payload(state="XYZ"), settings=settings)
        assert model.trace.step("S0").status == "degraded"

    def test_sampling_decision_recorded(self, payload):
        model = build_report(payload, settings=make_settings(max_evidence=2, max_per_area=1))
        assert model.sample.sampled
        assert any("Sampled to" in d for d in model.trace.step("S5").decisions)

    def test_stage_detail_recorded(self, payload):
        model = build_report(payload, settings=make_settings(max_evidence=2, max_per_area=1))
        normalize = model.trace.step("S1").detail
        assert normalize["evidenceEntries"] == {"shape": "list", "records": 3, "decode_rounds": 0}
        assert normalize["curriculumOutcomes"]["records"] == 4
        assert model.trace.step("S3").detail["area_counts"]["Mathematics"] == 1
        sample = model.trace.step("S5").detail
        assert sum(sample["shown"].values()) == 2
        assert sum(sample["elided"].values()) == 2
        assert sample["elided"]["Science & Technology"] == 1


class TestPipelineContents:
    def test_outcomes_and_gaps(self, report):
        by_title = {e.title: e for e in report.flat}
        assert by_title["Minecraft city"].outcomes == (
            "MA2-RN-01: represents numbers up to and beyond 10 000",
        )
        assert by_title["Book club"].outcomes == ()
        assert [(g.area, g.code) for g in report.gaps] == [("English", "EN2-OLC-01")]

    def test_counts(self, report):
        assert report.unique_activity_count == 3
        assert sum(report.area_counts.values()) == 4

    def test_resources(self, report):
        assert [r.name for r in report.resources] == [
            "LEGO (construction toys)",
            "Local library",
            "Microscope",
            "Minecraft (digital game)",
            "The Lorax (film/book)",
        ]


class TestCollaborators:
    def test_enhancer_rewrites_areas_with_evidence(self, payload, settings):
        model = build_report(payload, settings=settings, enhancer=lambda prompt: "Rewritten.")
        assert model.trace.mode == "azure_openai"
        english = model.overview_for("English")
        hsie = model.overview_for("HSIE")
        assert english.enhanced and english.progress_text == "Rewritten."
        assert not hsie.enhanced
        assert model.enhanced_assessment.cognitive == "Rewritten."
        assert model.enhanced_assessment.emotional == ""

    def test_failing_enhancer_keeps_original_text(self, payload, settings):
        def broken(prompt):
            raise RuntimeError("service down")

        model = build_report(payload, settings=settings, enhancer=broken)
        assert model.trace.step("S7").status == "degraded"
        assert not any(o.enhanced for o in model.overviews)
        assert model.enhanced_assessment.cognitive == ""

    def test_supplied_summary_beats_enhancer(self, settings):
        payload = make_payload(areaSummaries={"English": "Parent-written summary."})
        model = build_report(payload, settings=settings, enhancer=lambda prompt: "Rewritten.")
        assert model.overview_for("English").progress_text == "Parent-written summary."

    def test_enhancement_disabled(self, payload, settings):
        model = build_report(payload, settings=settings, enhancer=lambda p: "Rewritten.", enhance=False)
        assert model.trace.step("S7").status == "skipped"

    def _payload_with_photo(self):
        record = make_record(
            "Beach walk", "2025-03-01", "Science",
            Attachments=[{"url": "https://img.example.com/shell.png", "type": "image/png"}],
        )
        return make_payload(evidenceEntries=[record])

    def test_images_fetched_for_shown_entries(self):
        settings = make_settings(fetch_images=True)
        calls = []

        def fetcher(url, timeout):
            calls.append(url)
            return PNG_1PX

        model = build_report(self._payload_with_photo(), settings=settings, fetcher=fetcher)
        assert calls == ["https://img.example.com/shell.png"]
        assert model.images == {"beach walk": (PNG_1PX,)}

    def test_failed_image_is_skipped(self):
        settings = make_settings(fetch_images=True)

        def fetcher(url, timeout):
            raise AttachmentUnavailable(url, "timed out")

        result = generate_portfolio(self._payload_with_photo(), settings=settings, fetcher=fetcher)
        assert result.pdf[:4] == b"%PDF"
        assert result.model.images == {}
        assert result.model.trace.step("S8").status == "degraded"

    def test_images_not_fetched_when_disabled(self):
        def fetcher(url, timeout):
            raise AssertionError("should not be called")

        model = build_report(self._payload_with_photo(), settings=make_settings(fetch_images=False), fetcher=fetcher)
        assert model.images == {}
