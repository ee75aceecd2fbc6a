"""
composer.py — Document Composer
===============================
Turns a finished ReportModel into the ordered node list the renderer draws.

Single pass, no state: every section is always emitted, and any section
without content gets an explicit italic placeholder instead of being left
out.

Sections
--------
  Title page
  1. Learning Program Overview        framework · compliance · philosophy
  2. Learning Areas Overview          summary table + one block per area
  3. Detailed Learning Evidence       grouped by area or one flat list
  4. Parent Assessment of Progress    enhanced → raw → placeholder
  5. Future Learning Plans            overview · goals · strategies
  6. Resources for Learning           categorised · planned
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass
from typing import Literal, Optional

from portfolio_report.aggregator import build_overview, ordered_areas
from portfolio_report.models import (
    ASSESSMENT_DOMAINS,
    AreaOverview,
    EvidenceEntry,
    FuturePlans,
    ReportModel,
    format_long_date,
)
from portfolio_report.nodes import (
    BulletList,
    Heading,
    ImageNode,
    KeyValueTable,
    Node,
    PageBreak,
    Paragraph,
    Run,
)
from portfolio_report.resources import group_by_category
from portfolio_report.sampler import elision_text

NO_ASSESSMENT_TEXT       = "No assessment provided."
NO_PLANS_OVERVIEW_TEXT   = "No future plans overview provided."
NO_GOALS_TEXT            = "No learning goals specified."
NO_STRATEGIES_TEXT       = "No strategies specified."
NO_RESOURCES_TEXT        = "Resources will be documented as the learning program develops."
NO_PLANNED_TEXT          = "Planned resources will be identified based on emerging learning interests and needs."
NO_EVIDENCE_SECTION_TEXT = "Detailed evidence will be documented as learning activities are recorded."
NO_ADJUSTMENTS_TEXT      = "No specific reasonable adjustments were recorded for this reporting period."
NO_GAPS_TEXT             = "Every listed outcome has at least one piece of documented evidence."

# a "." after a short capitalised token (Mt. Dr. St. J.) is an abbreviation
_ABBREVIATION   = r"(?<!\b[A-Z])(?<!\b[A-Z][a-z])(?<!\b[A-Z][a-z]{2})"
_SENTENCE_SPLIT = re.compile(r"[,;]\s+(?=[A-Z])|" + _ABBREVIATION + r"\.\s+(?=[A-Z])")
_PLANNED_SPLIT  = re.compile(r"[,\n]+")


@dataclass(frozen=True)
class ComposeOptions:
    listing:          Literal["grouped", "flat"] = "grouped"
    use_enhancement:  bool = True
    include_images:   bool = True
    show_gaps:        bool = True
    generated_on:     Optional[datetime.date] = None   # defaults to today
    image_max_width:  float = 360.0
    image_max_height: float = 260.0


def split_items(text: str) -> list[str]:
    """
    Goals / strategies text → bullet items.  Newlines win when present;
    otherwise split at ``,`` ``;`` or a sentence-ending ``.`` followed by a
    capitalised word.
    """
    text = (text or "").strip()
    if not text:
        return []
    if "\n" in text:
        parts = re.split(r"[\r\n]+", text)
    else:
        parts = _SENTENCE_SPLIT.split(text)
    return [p.strip(" \t-•*") for p in parts if p.strip(" \t-•*")]


def _items_or_paragraph(text: str, placeholder: str) -> list[Node]:
    items = split_items(text)
    if not items:
        return [Paragraph.placeholder(placeholder)]
    if len(items) == 1:
        return [Paragraph.plain(text.strip())]
    return [BulletList(items=tuple(items))]


def _term_cap(model: ReportModel) -> str:
    return model.request.curriculum_term.capitalize()


# ─── Title page ──────────────────────────────────────────────────────────────

def _title_page(model: ReportModel, options: ComposeOptions) -> list[Node]:
    req = model.request
    today = options.generated_on or datetime.date.today()
    count = model.unique_activity_count
    noun = "activity" if count == 1 else "activities"
    return [
        Paragraph.plain("Home Education Learning Portfolio", style="title"),
        Paragraph.plain(req.child_name, style="subtitle"),
        Paragraph.plain(req.year_level, style="centre"),
        Paragraph.plain(req.reporting_period, style="centre"),
        Paragraph.plain(f"Prepared by: {req.parent_name}", style="centre"),
        Paragraph.plain(f"Date: {format_long_date(today)}", style="centre"),
        Paragraph.plain(f"{count} unique learning {noun} documented", style="small"),
        PageBreak(),
    ]


# ─── 1. Program overview ─────────────────────────────────────────────────────

def _program_overview(model: ReportModel) -> list[Node]:
    req = model.request
    term = req.curriculum_term
    nodes: list[Node] = [
        Heading(1, "1. Learning Program Overview"),
        Heading(2, f"1.1 {_term_cap(model)} Framework"),
        Paragraph.plain(
            f"This learning portfolio demonstrates {req.child_name}'s educational progress "
            f"during {req.reporting_period}. Our home education program aligns with the "
            f"{req.curriculum} and covers all key learning areas required under "
            f"{req.state} homeschooling regulations."
        ),
        Heading(2, "1.2 Compliance with Disability Standards for Education 2005"),
        Paragraph.plain(
            req.compliance_statement
            or "This educational program has been developed in accordance with the "
               "Disability Standards for Education 2005 (Cth), which ensure that students "
               "with disability are able to access and participate in education on the "
               "same basis as students without disability."
        ),
    ]
    if model.adjustments:
        nodes += [
            Paragraph(runs=(Run("Key adjustments implemented:", bold=True),)),
            BulletList(items=model.adjustments),
            Paragraph.plain(
                f"These adjustments enable {req.child_name} to demonstrate learning and "
                f"progress toward {term} outcomes."
            ),
        ]
    else:
        nodes.append(Paragraph.placeholder(NO_ADJUSTMENTS_TEXT))
    nodes += [
        Heading(2, "1.3 Educational Philosophy and Approach"),
        Paragraph.plain(
            "Our home education program recognises that meaningful learning occurs when "
            "children feel safe, autonomous, and connected. We provide a rich learning "
            f"environment that allows natural curiosity to drive engagement with {term} "
            f"content, while maintaining clear alignment with {req.curriculum} outcomes."
        ),
    ]
    return nodes


# ─── 2. Learning areas overview ──────────────────────────────────────────────

def _overview_for_display(model: ReportModel, overview: AreaOverview, options: ComposeOptions) -> AreaOverview:
    if overview.enhanced and not options.use_enhancement:
        return build_overview(
            overview.area,
            evidence_count = overview.evidence_count,
            catalogue      = model.catalogue,
            supplied       = model.supplied_overviews.get(overview.area),
            year_level     = model.request.year_level,
        )
    return overview


def _areas_overview(model: ReportModel, options: ComposeOptions) -> list[Node]:
    req = model.request
    nodes: list[Node] = [
        Heading(1, "2. Learning Areas Overview"),
        Paragraph.plain(
            f"The following provides an overview of {req.curriculum} expectations for "
            f"{req.year_level} students in each learning area, along with a brief summary "
            f"of {req.child_name}'s progress toward these standards."
        ),
        KeyValueTable(
            header=("Learning Area", "Evidence Entries"),
            rows=tuple((o.area, str(o.evidence_count)) for o in model.overviews)
            + (("Unique activities (all areas)", str(model.unique_activity_count)),),
        ),
    ]
    for number, overview in enumerate(model.overviews, start=1):
        overview = _overview_for_display(model, overview, options)
        nodes += [
            Heading(2, f"2.{number} {overview.area}"),
            Paragraph(runs=(Run(f"{_term_cap(model)} Expectations:", bold=True),)),
            Paragraph(runs=(Run(overview.expectation_text, italic=True),)),
        ]
        if overview.has_evidence or overview.enhanced:
            nodes += [
                Paragraph(runs=(Run("Progress Summary:", bold=True),)),
                Paragraph.plain(overview.progress_text),
            ]
        else:
            nodes += [
                Paragraph(runs=(Run("Evidence Status:", bold=True),)),
                Paragraph.placeholder(overview.progress_text),
            ]
    return nodes


# ─── 3. Detailed evidence ────────────────────────────────────────────────────

def _entry_nodes(
    model: ReportModel,
    entry: EvidenceEntry,
    options: ComposeOptions,
    *,
    show_areas: bool = False,
) -> list[Node]:
    nodes: list[Node] = [
        Heading(3, entry.display_title),
        Paragraph.labelled("Date", entry.date_display),
    ]
    if show_areas:
        nodes.append(Paragraph.labelled("Learning Areas", ", ".join(entry.declared_areas) or "Other"))
    nodes.append(Paragraph.labelled("Description", entry.description or "No description provided."))
    if entry.outcomes:
        nodes += [
            Paragraph(runs=(Run("Curriculum Outcomes Addressed:", bold=True),)),
            BulletList(items=entry.outcomes),
        ]
    if entry.engagement:
        nodes.append(Paragraph.labelled("Child Engagement", entry.engagement))
    if options.include_images:
        for data in model.images.get(entry.identity_key, ()):
            nodes.append(ImageNode(
                data       = data,
                max_width  = options.image_max_width,
                max_height = options.image_max_height,
            ))
    return nodes


def _grouped_evidence(model: ReportModel, options: ComposeOptions) -> tuple[list[Node], int]:
    nodes: list[Node] = []
    number = 0
    shown_by_area = model.sample.by_area if model.sample else {a: tuple(v) for a, v in model.by_area.items()}
    for area in ordered_areas(shown_by_area):
        shown = shown_by_area[area]
        elided = model.sample.elided.get(area, 0) if model.sample else 0
        if not shown and not elided:
            continue
        number += 1
        nodes.append(Heading(2, f"3.{number} {area}"))
        for entry in shown:
            nodes += _entry_nodes(model, entry, options)
        if elided:
            nodes.append(Paragraph.placeholder(elision_text(elided)))
    return nodes, number


def _flat_evidence(model: ReportModel, options: ComposeOptions) -> tuple[list[Node], int]:
    if model.sample and model.sample.sampled:
        shown_keys = {e.identity_key for items in model.sample.by_area.values() for e in items}
        shown = [e for e in model.flat if e.identity_key in shown_keys]
    else:
        shown = list(model.flat)
    if not shown:
        return [], 0
    nodes: list[Node] = [Heading(2, "3.1 All Learning Activities")]
    for entry in shown:
        nodes += _entry_nodes(model, entry, options, show_areas=True)
    elided = len(model.flat) - len(shown)
    if elided:
        nodes.append(Paragraph.placeholder(elision_text(elided)))
    return nodes, 1


def _outcome_gaps(model: ReportModel, number: int) -> list[Node]:
    nodes: list[Node] = [
        Heading(2, f"3.{number} Outcomes Not Yet Evidenced"),
        Paragraph.plain(
            f"The following {model.request.curriculum_term} outcomes have no documented "
            "evidence this period and are candidates for the next learning period."
        ),
    ]
    if not model.gaps:
        nodes.append(Paragraph.placeholder(NO_GAPS_TEXT))
        return nodes
    nodes.append(KeyValueTable(
        header=("Learning Area", "Outcome"),
        rows=tuple(
            (gap.area, f"{gap.code}: {gap.description}" if gap.description else gap.code)
            for gap in model.gaps
        ),
    ))
    return nodes


def _detailed_evidence(model: ReportModel, options: ComposeOptions) -> list[Node]:
    nodes: list[Node] = [
        PageBreak(),
        Heading(1, "3. Detailed Learning Evidence by Subject Area"),
        Paragraph.plain(
            "The following sections present specific evidence of learning across all "
            "curriculum areas, with each entry linked to curriculum outcomes."
        ),
    ]
    if options.listing == "flat":
        body, used = _flat_evidence(model, options)
    else:
        body, used = _grouped_evidence(model, options)
    nodes += body or [Paragraph.placeholder(NO_EVIDENCE_SECTION_TEXT)]
    if options.show_gaps and model.catalogue:
        nodes += _outcome_gaps(model, used + 1)
    return nodes


# ─── 4. Parent assessment ────────────────────────────────────────────────────

def _assessment(model: ReportModel, options: ComposeOptions) -> list[Node]:
    nodes: list[Node] = [PageBreak(), Heading(1, "4. Parent Assessment of Progress")]
    for number, (key, heading) in enumerate(ASSESSMENT_DOMAINS, start=1):
        nodes.append(Heading(2, f"4.{number} {heading}"))
        enhanced = model.enhanced_assessment.get(key) if options.use_enhancement else ""
        text = enhanced or model.assessment.get(key)
        nodes.append(Paragraph.plain(text) if text else Paragraph.placeholder(NO_ASSESSMENT_TEXT))
    return nodes


# ─── 5. Future plans ─────────────────────────────────────────────────────────

def _effective_plans(model: ReportModel, options: ComposeOptions) -> FuturePlans:
    raw = model.future_plans
    if not options.use_enhancement:
        return raw
    enh = model.enhanced_future_plans
    return FuturePlans(
        overview          = enh.overview or raw.overview,
        goals             = enh.goals or raw.goals,
        strategies        = enh.strategies or raw.strategies,
        planned_resources = enh.planned_resources or raw.planned_resources,
    )


def _future_plans(plans: FuturePlans) -> list[Node]:
    nodes: list[Node] = [PageBreak(), Heading(1, "5. Future Learning Plans")]
    nodes.append(
        Paragraph.plain(plans.overview) if plans.overview
        else Paragraph.placeholder(NO_PLANS_OVERVIEW_TEXT)
    )
    nodes.append(Heading(2, "5.1 Learning Goals"))
    nodes += _items_or_paragraph(plans.goals, NO_GOALS_TEXT)
    nodes.append(Heading(2, "5.2 Planned Strategies"))
    nodes += _items_or_paragraph(plans.strategies, NO_STRATEGIES_TEXT)
    if plans.planned_resources:
        nodes += [Heading(2, "5.3 Planned Resources"), Paragraph.plain(plans.planned_resources)]
    return nodes


# ─── 6. Resources ────────────────────────────────────────────────────────────

def _resources(model: ReportModel, plans: FuturePlans) -> list[Node]:
    nodes: list[Node] = [
        PageBreak(),
        Heading(1, "6. Resources for Learning"),
        Heading(2, "6.1 Resources Used During This Period"),
        Paragraph.plain(
            "The following resources supported learning across curriculum areas "
            "during this reporting period:"
        ),
    ]
    grouped = group_by_category(model.resources)
    if grouped:
        for category, names in grouped.items():
            nodes += [
                Paragraph(runs=(Run(category.value, bold=True),)),
                BulletList(items=tuple(names)),
            ]
    else:
        nodes.append(Paragraph.placeholder(NO_RESOURCES_TEXT))

    nodes += [
        Heading(2, "6.2 Planned Resources for Next Learning Period"),
        Paragraph.plain(
            "We will continue using many of the resources that have proven effective, "
            "supplemented with additional materials as learning needs develop."
        ),
    ]
    planned = [p.strip() for p in _PLANNED_SPLIT.split(plans.planned_resources) if p.strip()]
    nodes.append(BulletList(items=tuple(planned)) if planned else Paragraph.placeholder(NO_PLANNED_TEXT))
    return nodes


# ─── Entry point ─────────────────────────────────────────────────────────────

def compose(model: ReportModel, options: ComposeOptions | None = None) -> list[Node]:
    """ReportModel → ordered node list; never omits a section."""
    options = options or ComposeOptions()
    plans = _effective_plans(model, options)
    return (
        _title_page(model, options)
        + _program_overview(model)
        + _areas_overview(model, options)
        + _detailed_evidence(model, options)
        + _assessment(model, options)
        + _future_plans(plans)
        + _resources(model, plans)
    )
