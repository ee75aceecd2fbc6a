"""
aggregator.py — Evidence Aggregator
===================================
Builds the two evidence views the report needs and the per-area overviews.

  group_by_area(entries)  area → entries; one entry object is shared by every
                          area it declares (same identity, not a copy)
  flat_view(entries)      each activity exactly once: most recent first,
                          de-duplicated by title (first occurrence wins)
  area_counts(grouped)    per-area counts (a multi-area entry counts once per area)
  build_overviews(...)    one AreaOverview per standard area, always, plus any
                          non-standard area that carries content
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from portfolio_report.areas import is_standard_area
from portfolio_report.models import (
    OTHER_AREA,
    STANDARD_AREAS,
    AreaOverview,
    CurriculumOutcome,
    EvidenceEntry,
)
from portfolio_report.outcomes import outcomes_for_area

logger = logging.getLogger(__name__)

NO_EVIDENCE_TEXT = (
    "No formal evidence was documented for {area} during this reporting period. "
    "Learning in this area has occurred informally through daily activities, "
    "conversations, and integrated experiences."
)
GENERIC_EXPECTATION_TEXT = (
    "{year_level} students develop skills and knowledge in {area} "
    "through engaging activities and experiences."
)
MAX_EXPECTATION_OUTCOMES = 6


def sort_recent_first(entries: Iterable[EvidenceEntry]) -> list[EvidenceEntry]:
    """Most recent first; undated entries last; ties keep input order."""
    return sorted(entries, key=lambda e: e.sort_date, reverse=True)


def group_by_area(entries: Iterable[EvidenceEntry]) -> dict[str, list[EvidenceEntry]]:
    """
    Area → entries, most recent first.  Entries that declare no usable area
    are filed under "Other" so nothing is silently dropped.
    """
    grouped: dict[str, list[EvidenceEntry]] = {}
    for entry in sort_recent_first(entries):
        for area in entry.declared_areas or (OTHER_AREA,):
            bucket = grouped.setdefault(area, [])
            if any(e.identity_key == entry.identity_key for e in bucket):
                continue
            bucket.append(entry)
    return grouped


def flat_view(entries: Iterable[EvidenceEntry]) -> list[EvidenceEntry]:
    seen: set[str] = set()
    flat: list[EvidenceEntry] = []
    for entry in sort_recent_first(entries):
        if entry.identity_key in seen:
            continue
        seen.add(entry.identity_key)
        flat.append(entry)
    return flat


def area_counts(grouped: Mapping[str, list[EvidenceEntry]]) -> dict[str, int]:
    return {area: len(items) for area, items in grouped.items()}


def ordered_areas(areas: Iterable[str]) -> list[str]:
    """Standard areas in taxonomy order, then the rest alphabetically, Other last."""
    present = set(areas)
    extras = sorted(a for a in present if not is_standard_area(a) and a != OTHER_AREA)
    tail = [OTHER_AREA] if OTHER_AREA in present else []
    return [a for a in STANDARD_AREAS if a in present] + extras + tail


# ─── Overviews ───────────────────────────────────────────────────────────────

def _overview_field(supplied: Any, *keys: str) -> str:
    if isinstance(supplied, str):
        return supplied.strip() if keys[0] == "stageStatement" else ""
    if isinstance(supplied, dict):
        for key in keys:
            if supplied.get(key):
                return str(supplied[key]).strip()
    return ""


def _expectation_text(
    area: str,
    supplied: Any,
    area_outcomes: list[CurriculumOutcome],
    year_level: str,
) -> str:
    stated = _overview_field(supplied, "stageStatement", "Stage Statement", "expectations")
    if stated:
        return stated
    descriptions = [
        o.description.strip().rstrip(".")
        for o in area_outcomes[:MAX_EXPECTATION_OUTCOMES]
        if o.description.strip()
    ]
    if descriptions:
        return (
            f"In {area}, {year_level} students work towards outcomes including: "
            f"{'; '.join(descriptions)}."
        )
    return GENERIC_EXPECTATION_TEXT.format(year_level=year_level, area=area)


def progress_count_text(count: int) -> str:
    noun = "entry" if count == 1 else "entries"
    return f"{count} learning evidence {noun} documented for this area during the reporting period."


def build_overview(
    area: str,
    *,
    evidence_count: int,
    catalogue: Iterable[CurriculumOutcome],
    supplied: Any = None,
    summary: Optional[str] = None,
    year_level: str = "",
) -> AreaOverview:
    area_outcomes = outcomes_for_area(catalogue, area)
    enhanced = bool(summary and summary.strip())
    if enhanced:
        progress = summary.strip()
    else:
        progress = _overview_field(supplied, "progressSummary", "Progress Summary")
        if not progress:
            progress = (
                progress_count_text(evidence_count) if evidence_count
                else NO_EVIDENCE_TEXT.format(area=area)
            )
    return AreaOverview(
        area             = area,
        expectation_text = _expectation_text(area, supplied, area_outcomes, year_level),
        progress_text    = progress,
        evidence_count   = evidence_count,
        outcomes         = tuple(area_outcomes),
        enhanced         = enhanced,
    )


def build_overviews(
    counts: Mapping[str, int],
    catalogue: Iterable[CurriculumOutcome],
    *,
    supplied: Optional[Mapping[str, Any]] = None,
    summaries: Optional[Mapping[str, str]] = None,
    year_level: str = "",
) -> list[AreaOverview]:
    supplied = supplied or {}
    summaries = summaries or {}
    catalogue = list(catalogue)

    candidates = ordered_areas(list(STANDARD_AREAS) + list(supplied) + list(counts))
    overviews: list[AreaOverview] = []
    for area in candidates:
        count = counts.get(area, 0)
        if not is_standard_area(area) and not count and not supplied.get(area):
            logger.debug("Skipping non-standard area %r with no content", area)
            continue
        overviews.append(build_overview(
            area,
            evidence_count = count,
            catalogue      = catalogue,
            supplied       = supplied.get(area),
            summary        = summaries.get(area),
            year_level     = year_level,
        ))
    return overviews
