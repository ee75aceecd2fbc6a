"""
guardrails.py – Request & Output Guardrails
===========================================
Validation checks that wrap the portfolio pipeline.

Guardrail levels
----------------
BLOCK   – Hard-stop: the pipeline does not proceed.
WARN    – Soft-stop: the pipeline proceeds; the warning is recorded in the run trace.
INFO    – Advisory: informational note in the run trace.

Guards implemented
------------------
Request guards (before normalisation):
  G-01  childName and yearLevel present
  G-02  state is a recognised Australian jurisdiction

Evidence guards (on the normaliser's evidence output):
  G-03  evidence payload was non-empty but normalised to nothing
  G-04  evidence entries without a title

Output guards (on the finished ReportModel):
  G-05  every standard learning area has an overview
  G-06  every outcome string that reaches the document carries a valid code
  G-07  sample accounting: shown + elided == total for every area
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

from portfolio_report.models import STANDARD_AREAS, EvidenceEntry, PortfolioRequest, ReportModel
from portfolio_report.normalizer import NormalizeReport
from portfolio_report.outcomes import extract_code, is_valid_code


# ─── Enums & data models ─────────────────────────────────────────────────────

class GuardrailLevel(str, Enum):
    BLOCK = "BLOCK"
    WARN  = "WARN"
    INFO  = "INFO"


@dataclass
class GuardrailViolation:
    code:    str
    level:   GuardrailLevel
    message: str
    field:   str = ""   # which field triggered the violation


@dataclass
class GuardrailResult:
    passed:     bool
    violations: list[GuardrailViolation] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return any(v.level == GuardrailLevel.BLOCK for v in self.violations)

    @property
    def warnings(self) -> list[GuardrailViolation]:
        return [v for v in self.violations if v.level == GuardrailLevel.WARN]

    @property
    def infos(self) -> list[GuardrailViolation]:
        return [v for v in self.violations if v.level == GuardrailLevel.INFO]

    def summary(self) -> str:
        if not self.violations:
            return "All guardrails passed."
        return "\n".join(f"{v.level.value} [{v.code}] {v.message}" for v in self.violations)


def _result(violations: list[GuardrailViolation]) -> GuardrailResult:
    return GuardrailResult(
        passed=not any(v.level == GuardrailLevel.BLOCK for v in violations),
        violations=violations,
    )


# ─── Constant sets ───────────────────────────────────────────────────────────

AU_JURISDICTIONS = {"NSW", "VIC", "QLD", "SA", "WA", "TAS", "ACT", "NT"}


# ─── Guardrail checks ────────────────────────────────────────────────────────

class RequestGuardrails:
    """G-01 – G-02: validates the request before any normalisation runs."""

    def check(self, request: PortfolioRequest) -> GuardrailResult:
        violations: list[GuardrailViolation] = []

        # G-01 Required fields
        if not request.child_name:
            violations.append(GuardrailViolation(
                code="G-01", level=GuardrailLevel.BLOCK,
                field="childName",
                message="childName is required.",
            ))
        if not request.year_level:
            violations.append(GuardrailViolation(
                code="G-01", level=GuardrailLevel.BLOCK,
                field="yearLevel",
                message="yearLevel is required.",
            ))

        # G-02 Jurisdiction
        if request.state.upper() not in AU_JURISDICTIONS:
            violations.append(GuardrailViolation(
                code="G-02", level=GuardrailLevel.WARN,
                field="state",
                message=f"State '{request.state}' is not a recognised Australian jurisdiction.",
            ))

        return _result(violations)


class EvidenceGuardrails:
    """G-03 – G-04: checks what the normaliser made of the evidence payload."""

    def check(
        self,
        raw_value: Any,
        entries: Sequence[EvidenceEntry],
        report: NormalizeReport | None = None,
    ) -> GuardrailResult:
        violations: list[GuardrailViolation] = []

        # G-03 Non-empty payload degraded to nothing
        raw_present = raw_value not in (None, "", [], {}) and not (
            isinstance(raw_value, str) and not raw_value.strip()
        )
        if raw_present and not entries:
            reason = f" ({report.reason})" if report is not None and report.reason else ""
            violations.append(GuardrailViolation(
                code="G-03", level=GuardrailLevel.WARN,
                field="evidenceEntries",
                message=f"evidenceEntries was supplied but no records could be read{reason}.",
            ))

        # G-04 Untitled entries
        untitled = sum(1 for e in entries if not e.title.strip())
        if untitled:
            violations.append(GuardrailViolation(
                code="G-04", level=GuardrailLevel.INFO,
                field="evidenceEntries",
                message=f"{untitled} evidence entr{'y has' if untitled == 1 else 'ies have'} no title.",
            ))

        return _result(violations)


class OutputGuardrails:
    """G-05 – G-07: invariants of the finished report model."""

    def check(self, model: ReportModel) -> GuardrailResult:
        violations: list[GuardrailViolation] = []

        # G-05 Every standard area has an overview
        present = {o.area for o in model.overviews}
        missing = [a for a in STANDARD_AREAS if a not in present]
        if missing:
            violations.append(GuardrailViolation(
                code="G-05", level=GuardrailLevel.BLOCK,
                field="overviews",
                message=f"Learning area overviews missing for: {', '.join(missing)}.",
            ))

        # G-06 Surfaced outcomes carry a valid code
        surfaced = [text for e in model.entries for text in e.outcomes]
        bad = [t for t in surfaced if not extract_code(t)]
        bad += [g.code for g in model.gaps if not is_valid_code(g.code)]
        if bad:
            violations.append(GuardrailViolation(
                code="G-06", level=GuardrailLevel.BLOCK,
                field="outcomes",
                message=f"{len(bad)} outcome string(s) without a valid code would be shown: {bad[:3]}.",
            ))

        # G-07 Sample accounting
        if model.sample is not None:
            for area, total in model.sample.totals.items():
                shown = len(model.sample.by_area.get(area, ()))
                elided = model.sample.elided.get(area, 0)
                if shown + elided != total:
                    violations.append(GuardrailViolation(
                        code="G-07", level=GuardrailLevel.BLOCK,
                        field=f"sample[{area}]",
                        message=f"{area}: shown {shown} + elided {elided} != total {total}.",
                    ))

        return _result(violations)


# ─── Convenience façade ──────────────────────────────────────────────────────

class GuardrailsPipeline:
    """
    Single entry-point that runs the guardrails for each pipeline stage.

    Usage::

        gp = GuardrailsPipeline()
        result = gp.check_request(request)                  # before normalisation
        result = gp.check_evidence(raw, entries, report)    # after normalisation
        result = gp.check_output(model)                     # before composition
    """

    def __init__(self):
        self.request_guard  = RequestGuardrails()
        self.evidence_guard = EvidenceGuardrails()
        self.output_guard   = OutputGuardrails()

    def check_request(self, request: PortfolioRequest) -> GuardrailResult:
        return self.request_guard.check(request)

    def check_evidence(self, raw_value, entries, report=None) -> GuardrailResult:
        return self.evidence_guard.check(raw_value, entries, report)

    def check_output(self, model: ReportModel) -> GuardrailResult:
        return self.output_guard.check(model)

    def merge(self, *results: GuardrailResult) -> GuardrailResult:
        """Merge multiple GuardrailResult objects into one."""
        all_v = []
        for r in results:
            all_v.extend(r.violations)
        return _result(all_v)
