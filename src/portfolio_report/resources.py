"""
resources.py — Resource Extractor
=================================
Detects learning resources mentioned in evidence titles and descriptions.

  extract_resource_names(entries)  → sorted canonical names
  categorize_resource(name)        → ResourceCategory (People / Places / Physical / Digital)
  extract_resources(entries)       → sorted list[ResourceMention]

Matching is a case-insensitive whole-word scan against a curated keyword
table, plus quoted app names (``app "Times Tables Rock Stars"``).  Names are
de-duplicated case-insensitively; the first-seen casing wins.
"""

from __future__ import annotations

import re
from typing import Iterable

from portfolio_report.models import EvidenceEntry, ResourceCategory, ResourceMention


# keyword (lower-case) → canonical resource name
KNOWN_RESOURCES: dict[str, str] = {
    "minecraft":        "Minecraft (digital game)",
    "roblox":           "Roblox (digital game)",
    "lego":             "LEGO (construction toys)",
    "youtube":          "YouTube (video platform)",
    "flight simulator": "Flight Simulator app",
    "flightradar":      "Flight tracking app",
    "flightradar24":    "Flight tracking app",
    "khan academy":     "Khan Academy (online lessons)",
    "duolingo":         "Duolingo (language app)",
    "scratch coding":   "Scratch (coding platform)",
    "scratch project":  "Scratch (coding platform)",
    "scratch programming": "Scratch (coding platform)",
    "scratchjr":        "Scratch (coding platform)",
    "scratch jr":       "Scratch (coding platform)",
    "google earth":     "Google Earth (mapping app)",
    "swimming pool":    "Local swimming pool",
    "pool":             "Local swimming pool",
    "library":          "Local library",
    "libraries":        "Local library",
    "museum":           "Museum visits",
    "zoo":              "Zoo visits",
    "botanic garden":   "Botanic gardens",
    "geode":            "Geodes (geological specimens)",
    "microscope":       "Microscope",
    "telescope":        "Telescope",
    "board game":       "Board games",
    "psychologist":     "Child psychologist sessions",
    "occupational therapy":   "Occupational therapy sessions",
    "occupational therapist": "Occupational therapy sessions",
    "speech therapy":   "Speech therapy sessions",
    "speech therapist": "Speech therapy sessions",
    "tutor":            "Tutor sessions",
    "tutoring":         "Tutor sessions",
    "the lorax":        "The Lorax (film/book)",
}


# whole words only, with an optional plural "s"
_KEYWORD_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\b" + re.escape(keyword) + r"s?\b", re.I), canonical)
    for keyword, canonical in KNOWN_RESOURCES.items()
]

_QUOTED_APP = re.compile(r"\bapp\s+['\"]([^'\"]{3,60})['\"]", re.I)

_CATEGORY_RULES: list[tuple[re.Pattern, ResourceCategory]] = [
    (re.compile(r"psycholog|therap|tutor|teacher|coach|mentor|session|grandparent|expert", re.I),
     ResourceCategory.PEOPLE),
    (re.compile(r"\bapp\b|digital|video|online|platform|website|software|coding|game\)", re.I),
     ResourceCategory.DIGITAL),
    (re.compile(r"pool|library|museum|zoo|garden|park|beach|farm|centre|center|visits?\b", re.I),
     ResourceCategory.PLACES),
]


def categorize_resource(name: str) -> ResourceCategory:
    """Keyword heuristic bucket; anything unmatched is a physical resource."""
    for pattern, category in _CATEGORY_RULES:
        if pattern.search(name):
            return category
    return ResourceCategory.PHYSICAL


def extract_resource_names(entries: Iterable[EvidenceEntry]) -> list[str]:
    found: dict[str, str] = {}   # casefolded → first-seen casing

    def _add(name: str) -> None:
        found.setdefault(name.casefold(), name)

    for entry in entries:
        raw = f"{entry.title} {entry.description}"
        for pattern, canonical in _KEYWORD_PATTERNS:
            if pattern.search(raw):
                _add(canonical)
        for match in _QUOTED_APP.finditer(raw):
            _add(f"{match.group(1).strip()} (app)")

    return sorted(found.values(), key=str.casefold)


def extract_resources(entries: Iterable[EvidenceEntry]) -> list[ResourceMention]:
    return [
        ResourceMention(name=name, category=categorize_resource(name))
        for name in extract_resource_names(entries)
    ]


def group_by_category(mentions: Iterable[ResourceMention]) -> dict[ResourceCategory, list[str]]:
    """Category → names, in enum order, only non-empty categories."""
    grouped: dict[ResourceCategory, list[str]] = {c: [] for c in ResourceCategory}
    for mention in mentions:
        grouped[mention.category].append(mention.name)
    return {c: names for c, names in grouped.items() if names}
