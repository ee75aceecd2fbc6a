"""
Data models for the Portfolio Generator.

Normalised entities are frozen dataclasses created fresh per request; the
incoming request itself is validated with a Pydantic model.
"""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from portfolio_report.run_trace import RunTrace


# ─── Enumerations ────────────────────────────────────────────────────────────

class LearningArea(str, Enum):
    """The six key learning areas every portfolio reports on."""
    ENGLISH     = "English"
    MATHEMATICS = "Mathematics"
    SCIENCE     = "Science & Technology"
    HSIE        = "HSIE"
    PDHPE       = "PDHPE"
    CREATIVE    = "Creative Arts"


STANDARD_AREAS: list[str] = [a.value for a in LearningArea]
OTHER_AREA = "Other"


class EngagementTier(int, Enum):
    """Ordinal engagement rating used to rank evidence when sampling."""
    LOW       = 0   # also the rank for unknown / blank ratings
    MEDIUM    = 1
    HIGH      = 2
    VERY_HIGH = 3


class ResourceCategory(str, Enum):
    PEOPLE   = "People"
    PLACES   = "Places"
    PHYSICAL = "Physical"
    DIGITAL  = "Digital"


ASSESSMENT_DOMAINS: list[tuple[str, str]] = [
    ("cognitive", "Cognitive Development"),
    ("social",    "Social Development"),
    ("emotional", "Emotional Development"),
    ("physical",  "Physical Development"),
]

_MONTHS = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)


_TEXT_KEYS = ("text", "summary", "value", "description", "name")


def coerce_text(value: Any) -> str:
    """
    Narrative field → display text.  Lists become newline-separated lines;
    objects contribute their text-like key, or all their values.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return "\n".join(t for t in (coerce_text(v) for v in value) if t)
    if isinstance(value, dict):
        for key in _TEXT_KEYS:
            if value.get(key):
                return coerce_text(value[key])
        return "\n".join(t for t in (coerce_text(v) for v in value.values()) if t)
    return str(value).strip()


def format_long_date(value: _dt.date) -> str:
    """``date(2025, 3, 1)`` → ``"1 March 2025"``."""
    return f"{value.day} {_MONTHS[value.month - 1]} {value.year}"


# ─── Normalised entities ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class EvidenceEntry:
    """One dated record of an observed learning activity."""
    title:            str
    date:             Optional[_dt.date]          # None when missing / unparseable
    date_text:        str                         # raw date text as received
    description:      str
    engagement:       str
    declared_areas:   tuple[str, ...]             # canonical area names
    attachments:      tuple[str, ...] = ()        # image URLs
    outcomes:         tuple[str, ...] = ()        # resolved display strings
    record_id:        str = ""
    raw_outcome_refs: Any = field(default=None, compare=False, repr=False)

    @property
    def identity_key(self) -> str:
        """Title identity within a reporting period (case-insensitive)."""
        title = self.title.strip().casefold()
        if title:
            return title
        # Untitled entries must not collapse into one another
        return f"untitled:{self.record_id or self.description[:60].casefold()}:{self.date_text}"

    @property
    def display_title(self) -> str:
        return self.title.strip() or "Untitled activity"

    @property
    def date_display(self) -> str:
        if self.date is not None:
            return format_long_date(self.date)
        return self.date_text or "Date not specified"

    @property
    def sort_date(self) -> _dt.date:
        """Missing or invalid dates sort as the earliest possible date."""
        return self.date or _dt.date.min


@dataclass(frozen=True)
class CurriculumOutcome:
    """Reference outcome from the syllabus catalogue for the period."""
    area_label:  str
    code:        str
    description: str
    record_id:   str = ""

    @property
    def display(self) -> str:
        if self.code and self.description:
            return f"{self.code}: {self.description}"
        return self.code or self.description


@dataclass(frozen=True)
class AreaOverview:
    """Per-area summary rendered in the Learning Areas Overview section."""
    area:             str
    expectation_text: str
    progress_text:    str
    evidence_count:   int
    outcomes:         tuple[CurriculumOutcome, ...] = ()
    enhanced:         bool = False   # progress_text came from an enhancement overlay

    @property
    def has_evidence(self) -> bool:
        return self.evidence_count > 0


@dataclass(frozen=True)
class ResourceMention:
    name:     str
    category: ResourceCategory


@dataclass(frozen=True)
class OutcomeGap:
    """A catalogue outcome with no matching evidence in its area."""
    area:        str
    code:        str
    description: str


@dataclass(frozen=True)
class ProgressAssessment:
    cognitive: str = ""
    social:    str = ""
    emotional: str = ""
    physical:  str = ""

    @classmethod
    def from_mapping(cls, data: dict) -> "ProgressAssessment":
        def _text(key: str) -> str:
            return coerce_text(data.get(key) or data.get(key.capitalize()))
        return cls(**{key: _text(key) for key, _ in ASSESSMENT_DOMAINS})

    def get(self, domain: str) -> str:
        return getattr(self, domain, "") or ""


@dataclass(frozen=True)
class FuturePlans:
    overview:          str = ""
    goals:             str = ""
    strategies:        str = ""
    planned_resources: str = ""

    @classmethod
    def from_mapping(cls, data: dict) -> "FuturePlans":
        def _text(*keys: str) -> str:
            for k in keys:
                if data.get(k):
                    return coerce_text(data[k])
            return ""
        return cls(
            overview          = _text("overview", "Overview"),
            goals             = _text("goals", "Goals", "learningGoals"),
            strategies        = _text("strategies", "Strategies", "plannedStrategies"),
            planned_resources = _text("plannedResources", "planned_resources", "resources"),
        )

    @property
    def is_empty(self) -> bool:
        return not any((self.overview, self.goals, self.strategies, self.planned_resources))


@dataclass(frozen=True)
class SampleResult:
    """Output of the content sampler: what is shown, and what was elided."""
    by_area: dict[str, tuple[EvidenceEntry, ...]]
    elided:  dict[str, int]
    totals:  dict[str, int]
    sampled: bool           # False when everything fitted under the global cap

    @property
    def shown_count(self) -> int:
        return sum(len(v) for v in self.by_area.values())

    @property
    def elided_count(self) -> int:
        return sum(self.elided.values())


# ─── Request model ───────────────────────────────────────────────────────────

class PortfolioRequest(BaseModel):
    """
    Canonical request after alias resolution (see normalizer.REQUEST_FIELDS).
    Loosely-shaped collections stay ``Any`` here; the normalizer coerces them.
    """
    child_name:             str = ""
    year_level:             str = ""
    reporting_period:       str = "Current Period"
    parent_name:            str = "Parent/Carer"
    state:                  str = "NSW"
    curriculum:             str = "NSW Syllabus"
    compliance_statement:   str = ""
    reasonable_adjustments: Any = None
    learning_area_overviews: Any = None
    evidence_entries:       Any = None
    curriculum_outcomes:    Any = None
    progress_assessment:    Any = None
    future_plans:           Any = None
    area_summaries:         Any = None
    enhanced_assessment:    Any = None
    enhanced_future_plans:  Any = None
    extras:                 dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "child_name", "year_level", "reporting_period", "parent_name",
        "state", "curriculum", "compliance_statement",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @property
    def curriculum_term(self) -> str:
        """NSW calls it a syllabus; other jurisdictions a curriculum."""
        return "syllabus" if self.state.upper() == "NSW" else "curriculum"


# ─── Aggregate root ──────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class ReportModel:
    """
    Everything the composer needs, built once per request by pipeline.py.
    Each stage returns a new instance via ``dataclasses.replace``.
    """
    request:               PortfolioRequest
    entries:               tuple[EvidenceEntry, ...] = ()
    catalogue:             tuple[CurriculumOutcome, ...] = ()
    supplied_overviews:    dict[str, dict] = field(default_factory=dict)
    assessment:            ProgressAssessment = field(default_factory=ProgressAssessment)
    enhanced_assessment:   ProgressAssessment = field(default_factory=ProgressAssessment)
    future_plans:          FuturePlans = field(default_factory=FuturePlans)
    enhanced_future_plans: FuturePlans = field(default_factory=FuturePlans)
    area_summaries:        dict[str, str] = field(default_factory=dict)
    adjustments:           tuple[str, ...] = ()

    by_area:     dict[str, list[EvidenceEntry]] = field(default_factory=dict)
    flat:        tuple[EvidenceEntry, ...] = ()
    area_counts: dict[str, int] = field(default_factory=dict)
    overviews:   tuple[AreaOverview, ...] = ()
    gaps:        tuple[OutcomeGap, ...] = ()
    sample:      Optional[SampleResult] = None
    resources:   tuple[ResourceMention, ...] = ()
    images:      dict[str, tuple[bytes, ...]] = field(default_factory=dict)
    trace:       Optional[RunTrace] = None

    @property
    def unique_activity_count(self) -> int:
        return len(self.flat)

    def overview_for(self, area: str) -> Optional[AreaOverview]:
        return next((o for o in self.overviews if o.area == area), None)
