"""
areas.py — Learning-area classifier
===================================
Maps free-text learning-area labels onto the fixed six-area taxonomy.

  normalize_area(label)      → canonical name, pass-through label, or None
  split_area_labels(raw)     → list of raw labels from string / list / JSON
  classify_areas(raw)        → ordered, de-duplicated canonical areas

Unrecognised labels pass through unchanged (the aggregator later keeps them
only when they carry content).  Empty and numeric-looking labels are
rejected: they come from malformed upstream arrays, not real subjects.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from portfolio_report.models import LearningArea

logger = logging.getLogger(__name__)


_AREA_SYNONYMS: dict[str, str] = {
    "english":                            LearningArea.ENGLISH.value,
    "literacy":                           LearningArea.ENGLISH.value,
    "mathematics":                        LearningArea.MATHEMATICS.value,
    "maths":                              LearningArea.MATHEMATICS.value,
    "math":                               LearningArea.MATHEMATICS.value,
    "numeracy":                           LearningArea.MATHEMATICS.value,
    "science & technology":               LearningArea.SCIENCE.value,
    "science and technology":             LearningArea.SCIENCE.value,
    "science":                            LearningArea.SCIENCE.value,
    "technology":                         LearningArea.SCIENCE.value,
    "hsie":                               LearningArea.HSIE.value,
    "hsie (history, geography etc)":      LearningArea.HSIE.value,
    "history":                            LearningArea.HSIE.value,
    "geography":                          LearningArea.HSIE.value,
    "pdhpe":                              LearningArea.PDHPE.value,
    "pdhpe (health, physical education)": LearningArea.PDHPE.value,
    "health":                             LearningArea.PDHPE.value,
    "pe":                                 LearningArea.PDHPE.value,
    "physical education":                 LearningArea.PDHPE.value,
    "creative arts":                      LearningArea.CREATIVE.value,
    "art":                                LearningArea.CREATIVE.value,
    "arts":                               LearningArea.CREATIVE.value,
    "music":                              LearningArea.CREATIVE.value,
    "drama":                              LearningArea.CREATIVE.value,
    "dance":                              LearningArea.CREATIVE.value,
}

_NUMERIC_LABEL = re.compile(r"^[+-]?\d+(?:\.\d+)?$")
_STRAY_QUOTES  = re.compile(r"^[\s\"'\[\]]+|[\s\"'\[\]]+$")


def normalize_area(label: Any) -> Optional[str]:
    """
    Return the canonical area for *label*.

    ``"maths"`` → ``"Mathematics"``; ``"Robotics"`` → ``"Robotics"``;
    ``""`` / ``"3"`` / ``None`` → ``None``.
    """
    if label is None or isinstance(label, bool):
        return None
    text = _STRAY_QUOTES.sub("", str(label)).strip()
    if not text or _NUMERIC_LABEL.match(text):
        return None
    return _AREA_SYNONYMS.get(text.lower(), text)


def split_area_labels(raw: Any) -> list[str]:
    """Flatten a declared-areas value into individual label strings."""
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        labels: list[str] = []
        for item in raw:
            labels.extend(split_area_labels(item))
        return labels
    if isinstance(raw, dict):
        # Linked-record objects carry the label under a name-like key
        for key in ("name", "Name", "label", "area", "Learning Area"):
            if raw.get(key):
                return split_area_labels(raw[key])
        return []
    text = str(raw).strip()
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Area label list is not valid JSON, splitting on commas: %r", text[:80])
        else:
            if isinstance(decoded, list):
                return split_area_labels(decoded)
    # Long-form labels such as "HSIE (History, Geography etc)" contain commas
    # inside parentheses; split only on top-level commas.
    parts, depth, current = [], 0, []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip().replace('"', "") for p in parts if p.strip()]


def classify_areas(raw: Any) -> tuple[str, ...]:
    """Canonical areas declared by one evidence entry, first-seen order, no repeats."""
    seen: list[str] = []
    for label in split_area_labels(raw):
        area = normalize_area(label)
        if area is None:
            logger.debug("Rejected learning-area label %r", label)
            continue
        if area not in seen:
            seen.append(area)
    return tuple(seen)


def is_standard_area(area: str) -> bool:
    return area in _STANDARD_SET


_STANDARD_SET = frozenset(a.value for a in LearningArea)
