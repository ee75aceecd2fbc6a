"""
normalizer.py — Input Normalizer
================================
The upstream automation has no fixed schema: the same logical collection
arrives as a JSON array, a JSON-encoded string (sometimes encoded two or
three times), comma-joined object literals without brackets, an ``{"array":
[...]}`` wrapper, or a plain object whose values are the records.

Every raw value is classified into an ``InputShape`` and dispatched through a
handler table that covers every shape.  Failures never raise out of this
module: they are logged, reported in a ``NormalizeReport`` and degrade to
empty defaults.

Public API
----------
  normalize(value)                    → list of records
  normalize_with_report(value)        → NormalizeReport (records + diagnostics)
  decode_object_field(value, ...)     → (dict, degraded) for object-or-JSON fields
  request_from_payload(payload)       → PortfolioRequest (alias tables applied)
  parse_evidence_list(value)          → (list[EvidenceEntry], NormalizeReport)
  parse_outcome_list(value)           → (list[CurriculumOutcome], NormalizeReport)
  parse_date(value)                   → (date | None, raw text)
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from portfolio_report.areas import classify_areas, normalize_area
from portfolio_report.errors import ParseDegradation
from portfolio_report.models import (
    CurriculumOutcome,
    EvidenceEntry,
    PortfolioRequest,
)

logger = logging.getLogger(__name__)

MAX_DECODE_ROUNDS = 5
WRAPPER_KEYS: tuple[str, ...] = ("array",)


# ─── Field alias tables (priority order: first non-empty wins) ───────────────

REQUEST_FIELDS: dict[str, tuple[str, ...]] = {
    "child_name":              ("childName", "childname", "child_name"),
    "year_level":              ("yearLevel", "yearlevel", "year_level"),
    "reporting_period":        ("reportingPeriod", "reportingperiod", "reporting_period"),
    "parent_name":             ("parentName", "parentname", "parent_name"),
    "state":                   ("state", "State"),
    "curriculum":              ("curriculum", "Curriculum"),
    "compliance_statement":    ("complianceStatement", "compliancestatement", "compliance_statement"),
    "reasonable_adjustments":  ("reasonableAdjustments", "adjustments"),
    "learning_area_overviews": ("learningAreaOverviews", "learningareaoverviews"),
    "evidence_entries":        ("evidenceEntries", "evidenceentries", "evidence"),
    "curriculum_outcomes":     ("curriculumOutcomes", "curriculumoutcomes", "outcomes"),
    "progress_assessment":     ("progressAssessment", "progressassessment"),
    "future_plans":            ("futurePlans", "futureplans"),
    "area_summaries":          ("areaSummaries", "enhancedAreaSummaries", "areasummaries"),
    "enhanced_assessment":     ("enhancedAssessment", "enhancedProgressAssessment"),
    "enhanced_future_plans":   ("enhancedFuturePlans", "enhancedfutureplans"),
}

EVIDENCE_FIELDS: dict[str, tuple[str, ...]] = {
    "title":        ("Title", "title", "Name", "name"),
    "date":         ("Date", "date", "Activity Date", "activityDate"),
    "description":  ("What Happened?", "whatHappened", "description", "Description"),
    "engagement":   ("Child Engagement", "childEngagement", "engagement", "Engagement"),
    "outcomes":     ("Matched Outcomes 3", "matchedOutcomes", "Matched Outcomes", "outcomes"),
    "attachments":  ("Attachments", "attachments", "Photos", "photos", "images"),
    "areas":        ("Learning Areas", "learningAreas", "Learning Area", "learningArea", "areas"),
    "record_id":    ("ID", "id", "recordId"),
}

OUTCOME_FIELDS: dict[str, tuple[str, ...]] = {
    "area":         ("Learning Area", "learningArea", "area"),
    "code":         ("Outcome Title", "outcomeTitle", "code", "Code"),
    "description":  ("Outcome Description", "outcomeDescription", "description", "Description"),
    "record_id":    ("ID", "id", "recordId"),
}


def pick(record: dict, table: dict[str, tuple[str, ...]], name: str, default: Any = None) -> Any:
    """Return the first non-empty value among *name*'s aliases in *record*."""
    for alias in table[name]:
        value = record.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default


# ─── Shape classification ────────────────────────────────────────────────────

class InputShape(str, Enum):
    NULL         = "null"           # None or blank string
    LIST         = "list"           # already a list
    ENCODED_LIST = "encoded_list"   # string carrying (possibly re-encoded) JSON
    WRAPPER      = "wrapper"        # {"array": [...]}
    OBJECT       = "object"         # plain object: values are the records
    UNKNOWN      = "unknown"        # number, bool, anything else


@dataclass
class NormalizeReport:
    """Diagnostics for one normalisation call."""
    records:       list
    shape:         InputShape
    decode_rounds: int = 0
    degraded:      bool = False
    reason:        str = ""

    def describe(self, field_name: str) -> str:
        text = f"{field_name}: {self.shape.value} → {len(self.records)} record(s)"
        if self.decode_rounds:
            text += f" after {self.decode_rounds} decode round(s)"
        return text


def classify_shape(value: Any, wrapper_keys: tuple[str, ...] = WRAPPER_KEYS) -> InputShape:
    if value is None:
        return InputShape.NULL
    if isinstance(value, (list, tuple)):
        return InputShape.LIST
    if isinstance(value, str):
        return InputShape.ENCODED_LIST if value.strip() else InputShape.NULL
    if isinstance(value, dict):
        if any(isinstance(value.get(k), list) for k in wrapper_keys):
            return InputShape.WRAPPER
        return InputShape.OBJECT
    return InputShape.UNKNOWN


def _loads(text: str) -> Any:
    """json.loads, retrying comma-joined object literals inside brackets."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        if text.startswith("{"):
            try:
                return json.loads(f"[{text}]")
            except json.JSONDecodeError:
                pass
        raise ParseDegradation(f"invalid JSON ({exc.msg} at char {exc.pos})") from exc


def decode_layers(text: str, max_rounds: int = MAX_DECODE_ROUNDS) -> tuple[Any, int]:
    """
    Peel up to *max_rounds* layers of JSON string encoding.

    Stops at the first non-string result or the first failed decode after at
    least one success.  Raises ParseDegradation if the very first decode fails.
    """
    current: Any = text
    rounds = 0
    while rounds < max_rounds and isinstance(current, str):
        try:
            current = _loads(current.strip())
        except ParseDegradation:
            if rounds == 0:
                raise
            break
        rounds += 1
    return current, rounds


# ─── Shape handlers ──────────────────────────────────────────────────────────

def _handle_null(value: Any, wrapper_keys: tuple[str, ...]) -> NormalizeReport:
    return NormalizeReport([], InputShape.NULL)


def _handle_list(value: Any, wrapper_keys: tuple[str, ...]) -> NormalizeReport:
    records = value if isinstance(value, list) else list(value)
    return NormalizeReport(records, InputShape.LIST)


def _handle_encoded(value: Any, wrapper_keys: tuple[str, ...]) -> NormalizeReport:
    try:
        decoded, rounds = decode_layers(value)
    except ParseDegradation as exc:
        return NormalizeReport([], InputShape.ENCODED_LIST, 0, True, str(exc))

    inner = classify_shape(decoded, wrapper_keys)
    if inner is InputShape.ENCODED_LIST:
        return NormalizeReport(
            [], InputShape.ENCODED_LIST, rounds, True,
            f"still a string after {rounds} decode round(s)",
        )
    report = _HANDLERS[inner](decoded, wrapper_keys)
    return NormalizeReport(
        report.records, InputShape.ENCODED_LIST, rounds,
        report.degraded, report.reason,
    )


def _handle_wrapper(value: Any, wrapper_keys: tuple[str, ...]) -> NormalizeReport:
    key = next(k for k in wrapper_keys if isinstance(value.get(k), list))
    return NormalizeReport(value[key], InputShape.WRAPPER)


def _handle_object(value: Any, wrapper_keys: tuple[str, ...]) -> NormalizeReport:
    # Wrapper whose payload arrived as an encoded string
    for k in wrapper_keys:
        if isinstance(value.get(k), str):
            inner = normalize_with_report(value[k], wrapper_keys=wrapper_keys)
            return NormalizeReport(
                inner.records, InputShape.WRAPPER, inner.decode_rounds,
                inner.degraded, inner.reason,
            )
    records = [v for v in value.values() if isinstance(v, dict)]
    if not records and value:
        # A lone record standing in for a one-element list
        records = [value]
    return NormalizeReport(records, InputShape.OBJECT)


def _handle_unknown(value: Any, wrapper_keys: tuple[str, ...]) -> NormalizeReport:
    return NormalizeReport(
        [], InputShape.UNKNOWN, 0, True, f"unsupported type {type(value).__name__}",
    )


_HANDLERS: dict[InputShape, Callable[[Any, tuple[str, ...]], NormalizeReport]] = {
    InputShape.NULL:         _handle_null,
    InputShape.LIST:         _handle_list,
    InputShape.ENCODED_LIST: _handle_encoded,
    InputShape.WRAPPER:      _handle_wrapper,
    InputShape.OBJECT:       _handle_object,
    InputShape.UNKNOWN:      _handle_unknown,
}
assert set(_HANDLERS) == set(InputShape), "every InputShape needs a handler"


def normalize_with_report(
    value: Any,
    *,
    field_name: str = "value",
    wrapper_keys: tuple[str, ...] = WRAPPER_KEYS,
) -> NormalizeReport:
    shape = classify_shape(value, wrapper_keys)
    report = _HANDLERS[shape](value, wrapper_keys)
    if report.degraded:
        logger.warning("Could not parse %s (%s); using defaults", field_name, report.reason)
    else:
        logger.debug(report.describe(field_name))
    return report


def normalize(value: Any) -> list:
    """Coerce any supported collection shape into a list of records."""
    return normalize_with_report(value).records


# ─── Object-or-JSON-string fields ────────────────────────────────────────────

def decode_object_field(
    value: Any,
    *,
    field_name: str = "value",
    text_key: Optional[str] = None,
) -> tuple[dict, bool]:
    """
    Coerce an object-or-JSON-string field (progressAssessment, futurePlans)
    into a dict.  Returns ``(data, degraded)``.

    When the text cannot be decoded at all and *text_key* is given, the raw
    text is kept under that key instead of being dropped.
    """
    if value is None:
        return {}, False
    if isinstance(value, dict):
        return value, False
    if not isinstance(value, str):
        logger.warning("Ignoring %s of type %s", field_name, type(value).__name__)
        return {}, True
    text = value.strip()
    if not text:
        return {}, False

    candidates = [text]
    unescaped = text.replace("\\n", "\n").replace('\\"', '"')
    if unescaped != text:
        candidates.append(unescaped)
    if not text.startswith("{") and ('"overview"' in text or '"goals"' in text):
        candidates.append("{" + text.strip().rstrip("}") + "}")

    for candidate in candidates:
        try:
            decoded, _ = decode_layers(candidate)
        except ParseDegradation:
            continue
        if isinstance(decoded, dict):
            return decoded, False
        if isinstance(decoded, list) and decoded and isinstance(decoded[0], dict):
            return decoded[0], False

    logger.warning("Could not parse %s as JSON object; %s", field_name,
                   "keeping raw text" if text_key else "using defaults")
    if text_key:
        return {text_key: text}, True
    return {}, True


# ─── Scalars ─────────────────────────────────────────────────────────────────

_DATE_FORMATS = (
    "%Y-%m-%d", "%Y/%m/%d", "%d/%m/%Y", "%d-%m-%Y",
    "%d %B %Y", "%d %b %Y", "%B %d, %Y", "%b %d, %Y", "%B %d %Y",
)


def parse_date(value: Any) -> tuple[Optional[_dt.date], str]:
    """Return ``(date or None, raw text)``; never raises."""
    if value is None or value == "":
        return None, ""
    if isinstance(value, _dt.datetime):
        return value.date(), value.isoformat()
    if isinstance(value, _dt.date):
        return value, value.isoformat()
    text = str(value).strip()
    if not text:
        return None, ""
    try:
        return _dt.datetime.fromisoformat(text.replace("Z", "+00:00")).date(), text
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return _dt.datetime.strptime(text, fmt).date(), text
        except ValueError:
            continue
    logger.debug("Unparseable date %r kept as text", text)
    return None, text


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_text(v) for v in value if _text(v))
    if isinstance(value, dict):
        return _text(value.get("name") or value.get("value") or "")
    return str(value).strip()


_IMAGE_EXT = re.compile(r"\.(?:jpe?g|png|gif|webp)(?:\?|$)", re.I)


def parse_attachments(raw: Any) -> tuple[str, ...]:
    """Image URLs from attachment objects, URL strings, or comma-joined URLs."""
    if raw is None or raw == "":
        return ()
    if isinstance(raw, str) and raw.strip().lower().startswith("http"):
        items: list = [u for u in re.split(r"[\s,]+", raw.strip()) if u]
    elif isinstance(raw, dict) and ("url" in raw or "URL" in raw):
        items = [raw]
    else:
        items = normalize(raw)
    urls: list[str] = []
    for item in items:
        if isinstance(item, str):
            url, mime = item.strip(), ""
        elif isinstance(item, dict):
            url  = str(item.get("url") or item.get("URL") or "").strip()
            mime = str(item.get("type") or item.get("mimeType") or "")
        else:
            continue
        if not url.lower().startswith(("http://", "https://")):
            continue
        if mime and not mime.startswith("image/"):
            continue
        if not mime and "." in url.rsplit("/", 1)[-1] and not _IMAGE_EXT.search(url):
            continue
        if url not in urls:
            urls.append(url)
    return tuple(urls)


# ─── Entities ────────────────────────────────────────────────────────────────

def request_from_payload(payload: Any) -> PortfolioRequest:
    """Resolve request-level aliases and build the canonical PortfolioRequest."""
    if isinstance(payload, str):
        payload, _ = decode_object_field(payload, field_name="payload")
    if not isinstance(payload, dict):
        payload = {}
    data: dict[str, Any] = {}
    for name in REQUEST_FIELDS:
        value = pick(payload, REQUEST_FIELDS, name)
        if value is not None:
            data[name] = value
    known = {alias for aliases in REQUEST_FIELDS.values() for alias in aliases}
    data["extras"] = {k: v for k, v in payload.items() if k not in known}
    return PortfolioRequest.model_validate(data)


def parse_evidence(record: Any) -> Optional[EvidenceEntry]:
    if isinstance(record, str):
        record, _ = decode_object_field(record, field_name="evidence entry")
    if not isinstance(record, dict) or not record:
        return None
    date, date_text = parse_date(pick(record, EVIDENCE_FIELDS, "date"))
    return EvidenceEntry(
        title            = _text(pick(record, EVIDENCE_FIELDS, "title", "")),
        date             = date,
        date_text        = date_text,
        description      = _text(pick(record, EVIDENCE_FIELDS, "description", "")),
        engagement       = _text(pick(record, EVIDENCE_FIELDS, "engagement", "")),
        declared_areas   = classify_areas(pick(record, EVIDENCE_FIELDS, "areas")),
        attachments      = parse_attachments(pick(record, EVIDENCE_FIELDS, "attachments")),
        record_id        = _text(pick(record, EVIDENCE_FIELDS, "record_id", "")),
        raw_outcome_refs = pick(record, EVIDENCE_FIELDS, "outcomes"),
    )


def parse_evidence_list(value: Any) -> tuple[list[EvidenceEntry], NormalizeReport]:
    report = normalize_with_report(value, field_name="evidenceEntries")
    entries = [e for e in (parse_evidence(r) for r in report.records) if e is not None]
    skipped = len(report.records) - len(entries)
    if skipped:
        logger.warning("Skipped %d evidence record(s) that were not objects", skipped)
    return entries, report


def parse_outcome(record: Any) -> Optional[CurriculumOutcome]:
    if isinstance(record, str):
        record, _ = decode_object_field(record, field_name="curriculum outcome")
    if not isinstance(record, dict) or not record:
        return None
    return CurriculumOutcome(
        area_label  = normalize_area(pick(record, OUTCOME_FIELDS, "area")) or "Other",
        code        = _text(pick(record, OUTCOME_FIELDS, "code", "")),
        description = _text(pick(record, OUTCOME_FIELDS, "description", "")),
        record_id   = _text(pick(record, OUTCOME_FIELDS, "record_id", "")),
    )


def parse_outcome_list(value: Any) -> tuple[list[CurriculumOutcome], NormalizeReport]:
    report = normalize_with_report(value, field_name="curriculumOutcomes")
    outcomes = [o for o in (parse_outcome(r) for r in report.records) if o is not None]
    return outcomes, report


def parse_area_map(value: Any, *, field_name: str) -> dict[str, Any]:
    """Object keyed by area label (overviews, summaries) → canonical-area keys."""
    data, _ = decode_object_field(value, field_name=field_name)
    result: dict[str, Any] = {}
    for label, item in data.items():
        area = normalize_area(label)
        if area is None or item in (None, "", {}):
            continue
        if isinstance(item, str) and item.strip().startswith("{"):
            item, _ = decode_object_field(item, field_name=f"{field_name}[{label}]")
        result[area] = item
    return result


def parse_text_list(value: Any) -> tuple[str, ...]:
    """Adjustments and similar: list, JSON list string, or newline-separated text."""
    if value is None or value == "":
        return ()
    if isinstance(value, str) and not value.strip().startswith("["):
        lines = [ln.strip(" \t-•*") for ln in value.splitlines()]
        return tuple(ln for ln in lines if ln)
    return tuple(t for t in (_text(v) for v in normalize(value)) if t)
