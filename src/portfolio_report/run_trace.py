"""
run_trace.py — Lightweight audit log for portfolio pipeline runs
================================================================
Every stage in pipeline.py emits a StageStep record.  The pipeline collects
the steps into a RunTrace that travels with the ReportModel, and the CLI
prints it as a timing table.

Data model
----------
  StageStep      One stage's contribution: timing, status, decisions, warnings.
  RunTrace       Full trace for a single pipeline run; ordered list of StageSteps.

Key fields
----------
  StageStep.status          "success" | "degraded" | "skipped"
  StageStep.duration_ms     Wall-clock milliseconds for that stage
  StageStep.decisions       Human-readable list of choices the stage made
  StageStep.warnings        Non-fatal issues (parse degradation, collaborator failures)
  StageStep.detail          Arbitrary extra dict for stage-specific metadata
  RunTrace.mode             "mock" | "azure_openai"
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass
class StageStep:
    """One stage's contribution inside a pipeline run."""
    stage_id:       str
    stage_name:     str
    start_ms:       float            # relative to run start
    duration_ms:    float
    status:         str              # "success" | "degraded" | "skipped"
    input_summary:  str = ""
    output_summary: str = ""
    decisions:      list[str] = field(default_factory=list)
    warnings:       list[str] = field(default_factory=list)
    detail:         dict[str, Any] = field(default_factory=dict)


@dataclass
class RunTrace:
    """Full trace for a single portfolio run."""
    run_id:     str
    child_name: str
    timestamp:  str
    mode:       str
    total_ms:   float = 0.0
    steps:      list[StageStep] = field(default_factory=list)

    def append(self, step: StageStep) -> None:
        self.steps.append(step)
        self.total_ms = step.start_ms + step.duration_ms

    @property
    def warnings(self) -> list[str]:
        return [w for s in self.steps for w in s.warnings]

    @property
    def degraded(self) -> bool:
        return any(s.status == "degraded" for s in self.steps)

    def step(self, stage_id: str) -> StageStep | None:
        return next((s for s in self.steps if s.stage_id == stage_id), None)


def new_trace(child_name: str, mode: str) -> RunTrace:
    return RunTrace(
        run_id     = str(uuid.uuid4())[:8].upper(),
        child_name = child_name,
        timestamp  = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        mode       = mode,
    )
