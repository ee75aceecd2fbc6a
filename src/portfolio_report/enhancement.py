"""
enhancement.py — Text-enhancement collaborator
==============================================
Optionally rewrites per-area progress summaries and parent-assessment
paragraphs into fuller narrative text.

Execution strategy (highest available tier wins):
  1. Direct Azure OpenAI  — when AZURE_OPENAI_ENDPOINT + KEY are real values
                            and FORCE_MOCK_MODE is off
  2. None                 — the pipeline keeps the pre-enhancement text

The collaborator is treated as pure but unreliable: every call is bounded by
a timeout, calls run concurrently with a bounded number in flight, and any
failure degrades that one item back to ``None``.  Nothing here can fail a
portfolio run.
"""

from __future__ import annotations

import concurrent.futures
import logging
import math
import textwrap
import time
from typing import Callable, Hashable, Iterable, Mapping, Optional

from openai import AzureOpenAI

from portfolio_report.config import AzureOpenAIConfig, Settings, get_settings
from portfolio_report.errors import EnhancementUnavailable
from portfolio_report.models import (
    ASSESSMENT_DOMAINS,
    AreaOverview,
    EvidenceEntry,
    PortfolioRequest,
    ProgressAssessment,
)

logger = logging.getLogger(__name__)

Enhancer = Callable[[str], Optional[str]]

MAX_PROMPT_ENTRIES = 8

_SYSTEM_PROMPT = textwrap.dedent("""
    You help home-educating parents write their child's annual learning
    portfolio for the education registration authority.  Rewrite the notes
    you are given as one warm, factual paragraph written in the third person.
    Do not invent activities, outcomes, dates or resources that are not in
    the notes.  Use Australian English.  Reply with the paragraph only.
""").strip()


class AzureTextEnhancer:
    """
    ``enhance(prompt) -> text`` backed by an Azure OpenAI chat deployment.

    Raises EnhancementUnavailable when the service is not configured or
    returns nothing usable; ``run_enhancements`` contains that.
    """

    def __init__(self, config: AzureOpenAIConfig | None = None, timeout_s: float = 20.0) -> None:
        self._cfg = config or get_settings().openai
        self._client = None
        if self._cfg.is_configured:
            self._client = AzureOpenAI(
                azure_endpoint=self._cfg.endpoint,
                api_key=self._cfg.api_key,
                api_version=self._cfg.api_version,
                timeout=timeout_s,
                max_retries=0,
            )

    @property
    def available(self) -> bool:
        return self._client is not None

    def __call__(self, prompt: str) -> str:
        if self._client is None:
            raise EnhancementUnavailable(
                "Azure OpenAI is not configured. "
                "Set AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY."
            )
        try:
            response = self._client.chat.completions.create(
                model=self._cfg.deployment,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user",   "content": prompt},
                ],
                temperature=0.4,
                max_tokens=600,
            )
        except Exception as exc:  # noqa: BLE001
            raise EnhancementUnavailable(f"Azure OpenAI call failed: {exc}") from exc
        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            raise EnhancementUnavailable("Azure OpenAI returned an empty completion")
        return text


def make_enhancer(settings: Settings | None = None) -> Optional[AzureTextEnhancer]:
    """Return a live enhancer, or None when running in mock / unconfigured mode."""
    settings = settings or get_settings()
    if not settings.live_mode:
        logger.info("Text enhancement disabled (mock mode or Azure OpenAI not configured)")
        return None
    return AzureTextEnhancer(settings.openai, timeout_s=settings.enhancement.timeout_s)


# ─── Prompt builders ─────────────────────────────────────────────────────────

def area_prompt(
    overview: AreaOverview,
    entries: Iterable[EvidenceEntry],
    request: PortfolioRequest,
) -> str:
    lines = []
    for entry in list(entries)[:MAX_PROMPT_ENTRIES]:
        line = f"- {entry.display_title} ({entry.date_display})"
        if entry.description:
            line += f": {entry.description}"
        lines.append(line)
    activities = "\n".join(lines) or "- (no documented activities)"
    return textwrap.dedent(f"""
        Child: {request.child_name} ({request.year_level})
        Learning area: {overview.area}
        Reporting period: {request.reporting_period}
        Current summary: {overview.progress_text}

        Documented activities:
    """).strip() + "\n" + activities + (
        f"\n\nWrite a progress summary for {overview.area} of at most 120 words."
    )


def assessment_prompt(domain_heading: str, raw_text: str, request: PortfolioRequest) -> str:
    return textwrap.dedent(f"""
        Child: {request.child_name} ({request.year_level})
        Domain: {domain_heading}
        Parent notes: {raw_text}

        Expand the parent notes into a paragraph of at most 100 words.
    """).strip()


def build_area_prompts(
    overviews: Iterable[AreaOverview],
    by_area: Mapping[str, Iterable[EvidenceEntry]],
    request: PortfolioRequest,
    *,
    skip: Iterable[str] = (),
) -> dict[str, str]:
    """Prompts for areas that have evidence and no supplied summary."""
    skip = set(skip)
    return {
        o.area: area_prompt(o, by_area.get(o.area, ()), request)
        for o in overviews
        if o.has_evidence and o.area not in skip
    }


def build_assessment_prompts(
    assessment: ProgressAssessment,
    request: PortfolioRequest,
    *,
    skip: Iterable[str] = (),
) -> dict[str, str]:
    skip = set(skip)
    return {
        key: assessment_prompt(heading, assessment.get(key), request)
        for key, heading in ASSESSMENT_DOMAINS
        if assessment.get(key) and key not in skip
    }


# ─── Bounded fan-out ─────────────────────────────────────────────────────────

def run_enhancements(
    enhancer: Optional[Enhancer],
    prompts: Mapping[Hashable, str],
    *,
    max_in_flight: int = 4,
    timeout_s: float = 20.0,
) -> dict[Hashable, Optional[str]]:
    """
    Run every prompt through *enhancer* with at most *max_in_flight* calls at
    once.  A timeout, an EnhancementUnavailable or any other error yields
    ``None`` for that key.

    The deadline is fixed at submit time: each wave of *max_in_flight* calls
    gets *timeout_s*, so the whole batch returns within
    ``timeout_s * ceil(len(prompts) / max_in_flight)``.  Calls still running
    at the deadline are abandoned, not interrupted; AzureTextEnhancer passes
    the same *timeout_s* to its client so its worker threads end soon after.
    """
    if enhancer is None or not prompts:
        return {key: None for key in prompts}

    max_in_flight = max(1, max_in_flight)
    waves = math.ceil(len(prompts) / max_in_flight)
    results: dict[Hashable, Optional[str]] = {}
    executor = concurrent.futures.ThreadPoolExecutor(
        max_workers=max_in_flight,
        thread_name_prefix="enhance",
    )
    try:
        futures = {key: executor.submit(enhancer, prompt) for key, prompt in prompts.items()}
        deadline = time.monotonic() + timeout_s * waves
        for key, future in futures.items():
            try:
                text = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except concurrent.futures.TimeoutError:
                logger.warning("Enhancement for %s timed out after %.1fs", key, timeout_s)
                text = None
            except EnhancementUnavailable as exc:
                logger.warning("Enhancement for %s unavailable: %s", key, exc)
                text = None
            except Exception as exc:  # noqa: BLE001
                logger.warning("Enhancement for %s failed: %s", key, exc)
                text = None
            results[key] = text.strip() if isinstance(text, str) and text.strip() else None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return results
