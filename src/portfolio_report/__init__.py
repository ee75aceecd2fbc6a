"""
portfolio_report — Home Education Learning Portfolio Generator
==============================================================
Turns a loosely-structured JSON payload (evidence entries, curriculum
outcomes, parent narratives) into a deterministic report model and renders
it as a paginated PDF.

Module map
----------
  models.py        Shared dataclasses, enums, the learning-area taxonomy and
                   the pydantic request model.
  config.py        Settings loaded from .env; mock / live detection.
  errors.py        Error taxonomy (validation, degradation, render failure).
  guardrails.py    Request and output guardrails (BLOCK / WARN / INFO).
  run_trace.py     StageStep / RunTrace audit log for one pipeline run.

  normalizer.py    Input shapes → canonical records; field alias tables.
  areas.py         Free-text learning-area labels → canonical areas.
  aggregator.py    Grouped + flat evidence views, counts, area overviews.
  outcomes.py      Outcome reference resolution, code filter, coverage gaps.
  sampler.py       Engagement-weighted evidence sampling with elision counts.
  resources.py     Resource mention extraction + categorisation.
  enhancement.py   Optional Azure OpenAI text enhancement (bounded, timed).
  attachments.py   Bounded, timed evidence image fetches.
  nodes.py         Abstract document node types.
  composer.py      ReportModel → ordered node tree.
  renderer.py      Node tree → PDF bytes (reportlab Platypus).
  storage.py       Safe filenames + local storage sink.
  pipeline.py      Stage chaining: payload → ReportModel → PDF.
  cli.py           Rich CLI (`portfolio-report generate payload.json`).

Pipeline order
--------------
  RequestGuardrails → normalize → resolve outcomes → aggregate
  → coverage gaps → sample → extract resources
  → enhancement overlay (parallel, bounded) → attachment fetch (parallel)
  → OutputGuardrails → compose → render → store
"""
__version__ = "0.1.0"
