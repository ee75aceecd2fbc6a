"""
sampler.py — Content Sampler
============================
Bounds the evidence volume of one report.

If the grouped evidence count fits under ``global_max`` nothing changes.
Otherwise every area is ranked by engagement tier (Very High → Low; unknown
ranks as Low) and cut to ``per_area_cap`` entries (fewer when there are so
many areas that the caps alone exceed ``global_max``).  The ranking is stable, so
recency breaks ties, and kept entries are shown in their original order.

The number of entries left out of each area is always recorded in
``SampleResult.elided`` so the document can say "plus N additional
activities" instead of dropping them silently.
"""

from __future__ import annotations

import logging
import re
from typing import Mapping, Sequence

from portfolio_report.models import EngagementTier, EvidenceEntry, SampleResult

logger = logging.getLogger(__name__)

_TIER_PATTERNS: list[tuple[re.Pattern, EngagementTier]] = [
    (re.compile(r"\b(very\s+high|extremely|highly|exceptional)\b", re.I), EngagementTier.VERY_HIGH),
    (re.compile(r"\bhigh\b",                                        re.I), EngagementTier.HIGH),
    (re.compile(r"\b(medium|moderate|some)\b",                      re.I), EngagementTier.MEDIUM),
    (re.compile(r"\blow\b",                                         re.I), EngagementTier.LOW),
]


def engagement_tier(label: str) -> EngagementTier:
    """``"Very High"`` → VERY_HIGH … ``"Low"`` / blank / unknown → LOW."""
    for pattern, tier in _TIER_PATTERNS:
        if pattern.search(label or ""):
            return tier
    return EngagementTier.LOW


def _rank(entries: Sequence[EvidenceEntry], cap: int) -> tuple[EvidenceEntry, ...]:
    ranked = sorted(range(len(entries)), key=lambda i: -engagement_tier(entries[i].engagement))
    keep = sorted(ranked[:cap])
    return tuple(entries[i] for i in keep)


def sample(
    area_map: Mapping[str, Sequence[EvidenceEntry]],
    global_max: int,
    per_area_cap: int,
) -> SampleResult:
    totals = {area: len(items) for area, items in area_map.items()}
    total = sum(totals.values())

    if total <= global_max:
        return SampleResult(
            by_area = {area: tuple(items) for area, items in area_map.items()},
            elided  = {area: 0 for area in area_map},
            totals  = totals,
            sampled = False,
        )

    quotas = {area: min(per_area_cap, n) for area, n in totals.items()}
    # Many areas can still overflow the global cap; shave the largest quotas
    while sum(quotas.values()) > global_max:
        largest = max(quotas, key=lambda a: quotas[a])
        quotas[largest] -= 1

    by_area = {area: _rank(list(items), quotas[area]) for area, items in area_map.items()}
    elided = {area: totals[area] - len(by_area[area]) for area in area_map}
    logger.info(
        "Sampled evidence: %d grouped entries > cap %d; showing %d, %d elided",
        total, global_max, sum(len(v) for v in by_area.values()), sum(elided.values()),
    )
    return SampleResult(by_area=by_area, elided=elided, totals=totals, sampled=True)


def elision_text(count: int) -> str:
    noun = "activity" if count == 1 else "activities"
    return f"Plus {count} additional {noun} documented during this reporting period."
