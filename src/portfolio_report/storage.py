"""
storage.py — Output file naming and the local storage sink.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9-]")


def _clean(part: str, limit: int) -> str:
    cleaned = _UNSAFE.sub("", re.sub(r"\s+", "-", (part or "").strip()))
    cleaned = re.sub(r"-{2,}", "-", cleaned).strip("-")
    return cleaned[:limit].strip("-")


def safe_filename(child_name: str, reporting_period: str) -> str:
    """``"Ava Smith", "Term 1 2025"`` → ``"Ava-Smith-Portfolio-Term-1-2025.pdf"``."""
    child = _clean(child_name, 50) or "Child"
    period = _clean(reporting_period, 30) or "Report"
    return f"{child}-Portfolio-{period}.pdf"


class LocalStore:
    """``store(bytes, name) -> url`` backed by a local directory."""

    def __init__(self, directory: str | Path = "output") -> None:
        self.directory = Path(directory)

    def store(self, data: bytes, name: str) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = (self.directory / Path(name).name).resolve()
        path.write_bytes(data)
        logger.info("Stored %s (%d bytes)", path, len(data))
        return path.as_uri()
