"""
config.py — Central settings for the Portfolio Generator
=========================================================
All configuration is loaded from environment variables / .env file.

Live enhancement activates automatically when AZURE_OPENAI_ENDPOINT and
AZURE_OPENAI_API_KEY contain real (non-placeholder) values and
FORCE_MOCK_MODE is not set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv(override=False)


# ─── Helpers ────────────────────────────────────────────────────────────────

def _is_placeholder(value: str) -> bool:
    """Return True if the value looks like an unfilled template placeholder."""
    return not value or "<" in value or value.startswith("your-") or value == "PLACEHOLDER"


# ─── Azure OpenAI (text enhancement collaborator) ───────────────────────────

@dataclass(frozen=True)
class AzureOpenAIConfig:
    endpoint:    str
    api_key:     str
    deployment:  str
    api_version: str

    @property
    def is_configured(self) -> bool:
        """True when both endpoint and key are real (non-placeholder) values."""
        return (
            bool(self.endpoint)
            and bool(self.api_key)
            and not _is_placeholder(self.endpoint)
            and not _is_placeholder(self.api_key)
        )


@dataclass(frozen=True)
class EnhancementConfig:
    enabled:       bool
    max_in_flight: int     # concurrent enhancement calls
    timeout_s:     float   # per call


# ─── Evidence attachments ────────────────────────────────────────────────────

@dataclass(frozen=True)
class AttachmentConfig:
    enabled:       bool
    max_per_entry: int
    timeout_s:     float
    max_workers:   int


# ─── Report volume limits ────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReportLimits:
    max_evidence_total: int   # sampling kicks in above this (grouped count)
    max_per_area:       int   # entries kept per area once sampling is active


# ─── App-level settings ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class AppConfig:
    force_mock_mode: bool
    output_dir:      str
    log_level:       str


# ─── Master settings object ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    openai:      AzureOpenAIConfig
    enhancement: EnhancementConfig
    attachments: AttachmentConfig
    limits:      ReportLimits
    app:         AppConfig

    @property
    def live_mode(self) -> bool:
        """True when Azure OpenAI creds are real, enhancement is on and FORCE_MOCK_MODE is false."""
        return (
            self.openai.is_configured
            and self.enhancement.enabled
            and not self.app.force_mock_mode
        )

    def status_summary(self) -> dict[str, str]:
        """Return a dict of collaborator → status badge for the CLI."""
        def badge(ok: bool) -> str:
            return "Live" if ok else "Not configured"

        return {
            "Azure OpenAI enhancement": badge(self.live_mode),
            "Attachment fetch":         "Enabled" if self.attachments.enabled else "Disabled",
            "Output directory":         self.app.output_dir,
            "Evidence limits":          (
                f"{self.limits.max_evidence_total} total / "
                f"{self.limits.max_per_area} per area"
            ),
        }


def get_settings() -> Settings:
    """Load all configuration from environment variables."""
    _str   = lambda k, d="": os.getenv(k, d).strip()
    _int   = lambda k, d=0: int(os.getenv(k, str(d)) or d)
    _float = lambda k, d=0.0: float(os.getenv(k, str(d)) or d)
    _bool  = lambda k, d=False: os.getenv(k, str(d)).lower() in ("1", "true", "yes")

    return Settings(
        openai=AzureOpenAIConfig(
            endpoint    = _str("AZURE_OPENAI_ENDPOINT").rstrip("/"),
            api_key     = _str("AZURE_OPENAI_API_KEY"),
            deployment  = _str("AZURE_OPENAI_DEPLOYMENT", "gpt-4o"),
            api_version = _str("AZURE_OPENAI_API_VERSION", "2024-12-01-preview"),
        ),
        enhancement=EnhancementConfig(
            enabled       = _bool("PORTFOLIO_ENHANCE", True),
            max_in_flight = max(1, _int("PORTFOLIO_ENHANCE_MAX_IN_FLIGHT", 4)),
            timeout_s     = _float("PORTFOLIO_ENHANCE_TIMEOUT_S", 20.0),
        ),
        attachments=AttachmentConfig(
            enabled       = _bool("PORTFOLIO_FETCH_IMAGES", True),
            max_per_entry = max(0, _int("PORTFOLIO_IMAGES_PER_ENTRY", 2)),
            timeout_s     = _float("PORTFOLIO_IMAGE_TIMEOUT_S", 10.0),
            max_workers   = max(1, _int("PORTFOLIO_IMAGE_WORKERS", 4)),
        ),
        limits=ReportLimits(
            max_evidence_total = max(1, _int("PORTFOLIO_MAX_EVIDENCE", 30)),
            max_per_area       = max(1, _int("PORTFOLIO_MAX_PER_AREA", 5)),
        ),
        app=AppConfig(
            force_mock_mode = _bool("FORCE_MOCK_MODE", False),
            output_dir      = _str("PORTFOLIO_OUTPUT_DIR", "output"),
            log_level       = _str("LOG_LEVEL", "INFO").upper(),
        ),
    )
