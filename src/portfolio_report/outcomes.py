"""
outcomes.py — Outcome Matcher & Filter
======================================
Turns each evidence entry's raw outcome references into display strings and
checks catalogue coverage.

Raw references arrive as any of:
  * a comma-joined string            "EN2-OLC-01, MA2-RN-01"
  * an array of opaque record IDs    ["recA1b2C3d4E5f6G7h", ...]
  * an array of outcome objects      [{"code": "EN2-OLC-01", "description": "..."}]

Opaque record IDs resolve only through the catalogue's own record IDs; an
unresolvable ID is dropped so it never leaks into the document.  Every
surviving candidate must contain a code matching the syllabus grammar
(2–3 letters, optional digit, hyphen, 2–6 letters, hyphen, 2 digits), which
also suppresses codes from other jurisdictions (e.g. ``AC9E2LY01``).
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any, Iterable, Optional

from portfolio_report.areas import normalize_area
from portfolio_report.models import CurriculumOutcome, EvidenceEntry, OutcomeGap
from portfolio_report.normalizer import OUTCOME_FIELDS, pick

logger = logging.getLogger(__name__)

CODE_PATTERN = r"[A-Z]{2,3}\d?-[A-Z]{2,6}-\d{2}"
OPAQUE_PATTERN = r"rec[A-Za-z0-9]{14}"

_CODE_SEARCH = re.compile(rf"(?<![A-Za-z0-9-])({CODE_PATTERN})(?![A-Za-z0-9-])")
_CODE_FULL   = re.compile(rf"^{CODE_PATTERN}$")
_OPAQUE_FULL = re.compile(rf"^{OPAQUE_PATTERN}$")
# Split a joined string only where the next item starts with a code or an ID,
# so commas inside outcome descriptions survive.
_REF_SPLIT   = re.compile(rf",\s*(?=(?:{CODE_PATTERN}|{OPAQUE_PATTERN})(?![A-Za-z0-9]))")


def extract_code(candidate: str) -> Optional[str]:
    match = _CODE_SEARCH.search(candidate or "")
    return match.group(1) if match else None


def is_valid_code(code: str) -> bool:
    return bool(_CODE_FULL.match(code or ""))


def is_opaque_ref(token: str) -> bool:
    return bool(_OPAQUE_FULL.match((token or "").strip()))


def filter_outcomes(candidates: Iterable[str]) -> list[str]:
    """Keep candidates carrying a grammar-valid code; order preserved, no repeats."""
    kept: list[str] = []
    for candidate in candidates:
        text = str(candidate).strip()
        if extract_code(text) and text not in kept:
            kept.append(text)
    return kept


# ─── Catalogue lookups ───────────────────────────────────────────────────────

@dataclasses.dataclass(frozen=True)
class OutcomeIndex:
    by_id:   dict[str, CurriculumOutcome]
    by_code: dict[str, CurriculumOutcome]

    @classmethod
    def build(cls, catalogue: Iterable[CurriculumOutcome]) -> "OutcomeIndex":
        by_id: dict[str, CurriculumOutcome] = {}
        by_code: dict[str, CurriculumOutcome] = {}
        for outcome in catalogue:
            if outcome.record_id:
                by_id.setdefault(outcome.record_id, outcome)
            code = extract_code(outcome.code)
            if code:
                by_code.setdefault(code, outcome)
        return cls(by_id=by_id, by_code=by_code)


def _candidates(raw: Any) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                logger.debug("Outcome reference list is not valid JSON: %r", text[:80])
            else:
                if isinstance(decoded, list):
                    return decoded
        return [p for p in _REF_SPLIT.split(text) if p.strip()]
    if isinstance(raw, dict):
        return [raw]
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [str(raw)]


def _display(candidate: Any, index: OutcomeIndex) -> Optional[str]:
    if isinstance(candidate, dict):
        ref = str(pick(candidate, OUTCOME_FIELDS, "record_id", "") or "")
        code = str(pick(candidate, OUTCOME_FIELDS, "code", "") or "").strip()
        desc = str(pick(candidate, OUTCOME_FIELDS, "description", "") or "").strip()
        if not code and ref in index.by_id:
            return index.by_id[ref].display
        if code and desc:
            return f"{code}: {desc}"
        candidate = code
    token = str(candidate).strip().strip('"')
    if not token:
        return None
    if is_opaque_ref(token):
        found = index.by_id.get(token)
        return found.display if found else None
    if is_valid_code(token) and token in index.by_code:
        return index.by_code[token].display
    return token


def resolve_outcome_refs(raw: Any, catalogue: Iterable[CurriculumOutcome] | OutcomeIndex = ()) -> list[str]:
    """Raw outcome references → grammar-filtered display strings."""
    index = catalogue if isinstance(catalogue, OutcomeIndex) else OutcomeIndex.build(catalogue)
    displays: list[str] = []
    dropped = 0
    for candidate in _candidates(raw):
        text = _display(candidate, index)
        if text is None:
            dropped += 1
            continue
        displays.append(text)
    kept = filter_outcomes(displays)
    dropped += len(displays) - len(kept)
    if dropped:
        logger.debug("Dropped %d unresolvable or non-matching outcome reference(s)", dropped)
    return kept


def resolve_entries(
    entries: Iterable[EvidenceEntry],
    catalogue: Iterable[CurriculumOutcome],
) -> list[EvidenceEntry]:
    """Return new entries with ``outcomes`` filled from their raw references."""
    index = OutcomeIndex.build(catalogue)
    return [
        dataclasses.replace(e, outcomes=tuple(resolve_outcome_refs(e.raw_outcome_refs, index)))
        for e in entries
    ]


def matched_codes(entries: Iterable[EvidenceEntry]) -> set[str]:
    codes: set[str] = set()
    for entry in entries:
        for text in entry.outcomes:
            code = extract_code(text)
            if code:
                codes.add(code)
    return codes


def outcomes_for_area(catalogue: Iterable[CurriculumOutcome], area: str) -> list[CurriculumOutcome]:
    return [o for o in catalogue if (normalize_area(o.area_label) or "Other") == area]


def find_unaddressed(
    catalogue: Iterable[CurriculumOutcome],
    by_area: dict[str, list[EvidenceEntry]],
) -> list[OutcomeGap]:
    """
    Catalogue outcomes whose code never appears among the matched codes of
    evidence in the outcome's own area.  Outcomes without a grammar-valid
    code are not reported (they could not be surfaced anyway).
    """
    covered = {area: matched_codes(entries) for area, entries in by_area.items()}
    gaps: list[OutcomeGap] = []
    seen: set[tuple[str, str]] = set()
    for outcome in catalogue:
        code = extract_code(outcome.code)
        if not code:
            continue
        area = normalize_area(outcome.area_label) or "Other"
        if code in covered.get(area, set()) or (area, code) in seen:
            continue
        seen.add((area, code))
        gaps.append(OutcomeGap(area=area, code=code, description=outcome.description))
    return gaps
