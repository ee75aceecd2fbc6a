"""
pipeline.py — Portfolio pipeline orchestration
==============================================
Chains the stages over an immutable ReportModel.  Each stage takes the
previous model and returns a new one via ``dataclasses.replace``; every stage
is timed and recorded as a StageStep in the model's RunTrace.

  S0  request      alias resolution + G-01/G-02 (BLOCK aborts here)
  S1  normalize    evidence, outcomes, overviews, narratives  (+ G-03/G-04)
  S2  outcomes     per-entry outcome references → display strings
  S3  aggregate    grouped / flat views, counts, area overviews
  S4  coverage     catalogue outcomes with no evidence
  S5  sample       engagement-weighted volume cap
  S6  resources    resource mentions
  S7  enhance      optional Azure OpenAI narrative overlay
  S8  attachments  evidence images for the entries that will be shown
  S9  verify       output guardrails G-05..G-07

``generate_portfolio`` then composes, renders and (optionally) stores the PDF.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from portfolio_report.aggregator import area_counts, build_overviews, flat_view, group_by_area
from portfolio_report.attachments import Fetcher, fetch_images
from portfolio_report.composer import ComposeOptions, compose
from portfolio_report.config import Settings, get_settings
from portfolio_report.enhancement import (
    Enhancer,
    build_area_prompts,
    build_assessment_prompts,
    make_enhancer,
    run_enhancements,
)
from portfolio_report.errors import PortfolioError, PortfolioValidationError
from portfolio_report.guardrails import GuardrailLevel, GuardrailResult, GuardrailsPipeline
from portfolio_report.models import (
    ASSESSMENT_DOMAINS,
    FuturePlans,
    PortfolioRequest,
    ProgressAssessment,
    ReportModel,
)
from portfolio_report.nodes import Node
from portfolio_report.normalizer import (
    decode_object_field,
    parse_area_map,
    parse_evidence_list,
    parse_outcome_list,
    parse_text_list,
    request_from_payload,
)
from portfolio_report.outcomes import find_unaddressed, resolve_entries
from portfolio_report.renderer import render
from portfolio_report.resources import extract_resources
from portfolio_report.run_trace import RunTrace, StageStep, new_trace
from portfolio_report.sampler import sample
from portfolio_report.storage import LocalStore, safe_filename

logger = logging.getLogger(__name__)

Stage = Callable[..., ReportModel]


@dataclass(frozen=True)
class PortfolioResult:
    filename: str
    pdf:      bytes
    url:      Optional[str]
    model:    ReportModel
    nodes:    tuple[Node, ...] = ()


# ─── Stage runner ────────────────────────────────────────────────────────────

def _run_stage(
    trace: RunTrace,
    run_t0: float,
    stage_id: str,
    stage_name: str,
    fn: Stage,
    model: ReportModel,
    **kwargs: Any,
) -> ReportModel:
    step = StageStep(
        stage_id    = stage_id,
        stage_name  = stage_name,
        start_ms    = (time.perf_counter() - run_t0) * 1000,
        duration_ms = 0.0,
        status      = "success",
    )
    t0 = time.perf_counter()
    try:
        return fn(model, step, **kwargs)
    finally:
        step.duration_ms = (time.perf_counter() - t0) * 1000
        if step.warnings and step.status == "success":
            step.status = "degraded"
        trace.append(step)
        logger.info("%s %s: %s (%.1f ms)", stage_id, stage_name, step.status, step.duration_ms)


def _record_guardrails(step: StageStep, result: GuardrailResult) -> None:
    for v in result.violations:
        line = f"[{v.code}] {v.message}"
        if v.level == GuardrailLevel.INFO:
            step.decisions.append(line)
        else:
            step.warnings.append(line)


def _summary_text(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("summary") or value.get("progressSummary") or value.get("text") or ""
    return str(value or "").strip()


# ─── Stages ──────────────────────────────────────────────────────────────────

def normalize_stage(model: ReportModel, step: StageStep, *, guardrails: GuardrailsPipeline) -> ReportModel:
    req = model.request
    entries, evidence_report = parse_evidence_list(req.evidence_entries)
    catalogue, outcome_report = parse_outcome_list(req.curriculum_outcomes)
    for name, report in (("evidenceEntries", evidence_report), ("curriculumOutcomes", outcome_report)):
        step.decisions.append(report.describe(name))
        step.detail[name] = {"shape": report.shape.value, "records": len(report.records),
                             "decode_rounds": report.decode_rounds}
        if report.degraded:
            step.warnings.append(f"{name} could not be parsed: {report.reason}")

    supplied = parse_area_map(req.learning_area_overviews, field_name="learningAreaOverviews")
    summaries = {
        area: text
        for area, text in (
            (a, _summary_text(v))
            for a, v in parse_area_map(req.area_summaries, field_name="areaSummaries").items()
        )
        if text
    }

    decoded: dict[str, dict] = {}
    for name, value, text_key in (
        ("progressAssessment",  req.progress_assessment,   None),
        ("enhancedAssessment",  req.enhanced_assessment,   None),
        ("futurePlans",         req.future_plans,          "overview"),
        ("enhancedFuturePlans", req.enhanced_future_plans, "overview"),
    ):
        data, degraded = decode_object_field(value, field_name=name, text_key=text_key)
        decoded[name] = data
        if degraded:
            step.warnings.append(f"{name} could not be parsed as an object")

    _record_guardrails(step, guardrails.check_evidence(req.evidence_entries, entries, evidence_report))
    step.input_summary = f"payload for {req.child_name}"
    step.output_summary = f"{len(entries)} evidence entries, {len(catalogue)} catalogue outcomes"

    return dataclasses.replace(
        model,
        entries               = tuple(entries),
        catalogue             = tuple(catalogue),
        supplied_overviews    = supplied,
        area_summaries        = summaries,
        assessment            = ProgressAssessment.from_mapping(decoded["progressAssessment"]),
        enhanced_assessment   = ProgressAssessment.from_mapping(decoded["enhancedAssessment"]),
        future_plans          = FuturePlans.from_mapping(decoded["futurePlans"]),
        enhanced_future_plans = FuturePlans.from_mapping(decoded["enhancedFuturePlans"]),
        adjustments           = parse_text_list(req.reasonable_adjustments),
    )


def outcomes_stage(model: ReportModel, step: StageStep) -> ReportModel:
    entries = resolve_entries(model.entries, model.catalogue)
    surfaced = sum(len(e.outcomes) for e in entries)
    step.output_summary = f"{surfaced} outcome reference(s) surfaced across {len(entries)} entries"
    return dataclasses.replace(model, entries=tuple(entries))


def aggregate_stage(model: ReportModel, step: StageStep) -> ReportModel:
    by_area = group_by_area(model.entries)
    flat = flat_view(model.entries)
    counts = area_counts(by_area)
    overviews = build_overviews(
        counts, model.catalogue,
        supplied   = model.supplied_overviews,
        summaries  = model.area_summaries,
        year_level = model.request.year_level,
    )
    grouped_total = sum(counts.values())
    step.detail["area_counts"] = dict(counts)
    step.output_summary = f"{grouped_total} grouped / {len(flat)} unique entries, {len(overviews)} areas"
    if grouped_total != len(flat):
        step.decisions.append(
            f"Multi-area entries: {grouped_total} per-area placements for {len(flat)} unique activities"
        )
    return dataclasses.replace(
        model,
        by_area     = by_area,
        flat        = tuple(flat),
        area_counts = counts,
        overviews   = tuple(overviews),
    )


def coverage_stage(model: ReportModel, step: StageStep) -> ReportModel:
    gaps = find_unaddressed(model.catalogue, model.by_area)
    step.output_summary = f"{len(gaps)} outcome(s) without evidence"
    return dataclasses.replace(model, gaps=tuple(gaps))


def sample_stage(model: ReportModel, step: StageStep, *, settings: Settings) -> ReportModel:
    result = sample(model.by_area, settings.limits.max_evidence_total, settings.limits.max_per_area)
    if result.sampled:
        step.decisions.append(
            f"Sampled to {result.shown_count} entries; {result.elided_count} elided "
            f"(cap {settings.limits.max_evidence_total}, {settings.limits.max_per_area} per area)"
        )
    step.detail["shown"] = {area: len(shown) for area, shown in result.by_area.items()}
    step.detail["elided"] = dict(result.elided)
    step.output_summary = f"{result.shown_count} shown, {result.elided_count} elided"
    return dataclasses.replace(model, sample=result)


def resources_stage(model: ReportModel, step: StageStep) -> ReportModel:
    mentions = extract_resources(model.flat)
    step.output_summary = f"{len(mentions)} resource(s)"
    return dataclasses.replace(model, resources=tuple(mentions))


def enhance_stage(
    model: ReportModel,
    step: StageStep,
    *,
    enhancer: Optional[Enhancer],
    settings: Settings,
) -> ReportModel:
    if enhancer is None:
        step.status = "skipped"
        step.decisions.append("No enhancement collaborator; pre-enhancement text kept")
        return model

    req = model.request
    shown = model.sample.by_area if model.sample else model.by_area
    prompts: dict[tuple[str, str], str] = {}
    for area, prompt in build_area_prompts(model.overviews, shown, req, skip=model.area_summaries).items():
        prompts[("area", area)] = prompt
    supplied_domains = [k for k, _ in ASSESSMENT_DOMAINS if model.enhanced_assessment.get(k)]
    for domain, prompt in build_assessment_prompts(model.assessment, req, skip=supplied_domains).items():
        prompts[("assessment", domain)] = prompt

    results = run_enhancements(
        enhancer, prompts,
        max_in_flight = settings.enhancement.max_in_flight,
        timeout_s     = settings.enhancement.timeout_s,
    )
    failed = [f"{kind}:{name}" for (kind, name), text in results.items() if text is None]
    if failed:
        step.warnings.append(f"Enhancement unavailable for {', '.join(failed)}; original text kept")

    summaries = {name: text for (kind, name), text in results.items() if kind == "area" and text}
    summaries.update(model.area_summaries)
    assessment = {name: text for (kind, name), text in results.items() if kind == "assessment" and text}
    for key, _ in ASSESSMENT_DOMAINS:
        if model.enhanced_assessment.get(key):
            assessment[key] = model.enhanced_assessment.get(key)

    step.output_summary = f"{len(prompts) - len(failed)} of {len(prompts)} enhancement(s) applied"
    overviews = build_overviews(
        model.area_counts, model.catalogue,
        supplied   = model.supplied_overviews,
        summaries  = summaries,
        year_level = req.year_level,
    )
    return dataclasses.replace(
        model,
        area_summaries      = summaries,
        enhanced_assessment = ProgressAssessment.from_mapping(assessment),
        overviews           = tuple(overviews),
    )


def attachments_stage(
    model: ReportModel,
    step: StageStep,
    *,
    fetcher: Optional[Fetcher],
    settings: Settings,
    enabled: bool,
) -> ReportModel:
    if not enabled or not settings.attachments.enabled:
        step.status = "skipped"
        return model
    shown = model.sample.by_area.values() if model.sample else model.by_area.values()
    entries = [e for items in shown for e in items if e.attachments]
    if not entries:
        step.status = "skipped"
        return model
    images = fetch_images(
        entries, fetcher,
        max_per_entry = settings.attachments.max_per_entry,
        timeout       = settings.attachments.timeout_s,
        max_workers   = settings.attachments.max_workers,
    )
    wanted = sum(min(len(e.attachments), settings.attachments.max_per_entry)
                 for e in {e.identity_key: e for e in entries}.values())
    got = sum(len(v) for v in images.values())
    if got < wanted:
        step.warnings.append(f"{wanted - got} of {wanted} image(s) could not be fetched")
    step.output_summary = f"{got} image(s) fetched"
    return dataclasses.replace(model, images=images)


def verify_stage(model: ReportModel, step: StageStep, *, guardrails: GuardrailsPipeline) -> ReportModel:
    result = guardrails.check_output(model)
    _record_guardrails(step, result)
    if result.blocked:
        raise PortfolioError(f"Report model failed output checks:\n{result.summary()}")
    return model


# ─── Public API ──────────────────────────────────────────────────────────────

def validate_request(payload: Any, guardrails: GuardrailsPipeline | None = None) -> tuple[PortfolioRequest, GuardrailResult]:
    """Resolve request aliases and run G-01/G-02; raise when a field is missing."""
    guardrails = guardrails or GuardrailsPipeline()
    request = request_from_payload(payload)
    result = guardrails.check_request(request)
    if result.blocked:
        missing = ", ".join(v.field for v in result.violations if v.level == GuardrailLevel.BLOCK)
        raise PortfolioValidationError(f"Missing required field(s): {missing}", result.violations)
    return request, result


def build_report(
    payload: Any,
    *,
    settings: Settings | None = None,
    enhancer: Optional[Enhancer] = None,
    fetcher: Optional[Fetcher] = None,
    enhance: bool = True,
    fetch: bool = True,
) -> ReportModel:
    """Raw payload → finished ReportModel (stages S0–S9)."""
    settings = settings or get_settings()
    guardrails = GuardrailsPipeline()
    run_t0 = time.perf_counter()

    request, request_check = validate_request(payload, guardrails)
    if enhance and enhancer is None:
        enhancer = make_enhancer(settings)
    if not enhance:
        enhancer = None

    trace = new_trace(request.child_name, "azure_openai" if enhancer is not None else "mock")
    request_step = StageStep(
        stage_id="S0", stage_name="request", start_ms=0.0,
        duration_ms=(time.perf_counter() - run_t0) * 1000, status="success",
        output_summary=f"{request.child_name} · {request.year_level} · {request.reporting_period}",
    )
    _record_guardrails(request_step, request_check)
    if request_step.warnings:
        request_step.status = "degraded"
    trace.append(request_step)

    model = ReportModel(request=request, trace=trace)
    model = _run_stage(trace, run_t0, "S1", "normalize",   normalize_stage,   model, guardrails=guardrails)
    model = _run_stage(trace, run_t0, "S2", "outcomes",    outcomes_stage,    model)
    model = _run_stage(trace, run_t0, "S3", "aggregate",   aggregate_stage,   model)
    model = _run_stage(trace, run_t0, "S4", "coverage",    coverage_stage,    model)
    model = _run_stage(trace, run_t0, "S5", "sample",      sample_stage,      model, settings=settings)
    model = _run_stage(trace, run_t0, "S6", "resources",   resources_stage,   model)
    model = _run_stage(trace, run_t0, "S7", "enhance",     enhance_stage,     model,
                       enhancer=enhancer, settings=settings)
    model = _run_stage(trace, run_t0, "S8", "attachments", attachments_stage, model,
                       fetcher=fetcher, settings=settings, enabled=fetch)
    model = _run_stage(trace, run_t0, "S9", "verify",      verify_stage,      model, guardrails=guardrails)
    return model


def generate_portfolio(
    payload: Any,
    *,
    settings: Settings | None = None,
    options: ComposeOptions | None = None,
    enhancer: Optional[Enhancer] = None,
    fetcher: Optional[Fetcher] = None,
    store: LocalStore | None = None,
) -> PortfolioResult:
    """
    Full run: build the model, compose, render to PDF and optionally store it.
    Raises PortfolioValidationError or RenderFailure.
    """
    settings = settings or get_settings()
    options = options or ComposeOptions()
    model = build_report(
        payload,
        settings = settings,
        enhancer = enhancer,
        fetcher  = fetcher,
        enhance  = options.use_enhancement,
        fetch    = options.include_images,
    )
    nodes = compose(model, options)
    pdf = render(nodes, title=f"{model.request.child_name} Learning Portfolio")
    filename = safe_filename(model.request.child_name, model.request.reporting_period)
    url = store.store(pdf, filename) if store is not None else None
    logger.info("Portfolio %s generated (%d bytes)", filename, len(pdf))
    return PortfolioResult(filename=filename, pdf=pdf, url=url, model=model, nodes=tuple(nodes))
