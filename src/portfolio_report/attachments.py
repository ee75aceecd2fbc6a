"""
attachments.py — Evidence image fetch
=====================================
Downloads the photos attached to the evidence entries that will actually be
shown.  Fetches are independent: they run on a small thread pool, each one
is time-bounded, and a failed image is skipped and logged.
"""

from __future__ import annotations

import concurrent.futures
import logging
import urllib.error
import urllib.request
from typing import Callable, Iterable, Optional

from portfolio_report.errors import AttachmentUnavailable
from portfolio_report.models import EvidenceEntry

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, float], bytes]

MAX_IMAGE_BYTES = 8 * 1024 * 1024
_USER_AGENT = "portfolio-report/0.1"


def fetch_attachment(url: str, timeout: float = 10.0) -> bytes:
    """GET *url* and return the body; raises AttachmentUnavailable on any failure."""
    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT}, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            content_type = resp.headers.get("Content-Type", "") if resp.headers else ""
            if content_type and not content_type.startswith("image/"):
                raise AttachmentUnavailable(url, f"not an image ({content_type})")
            data = resp.read(MAX_IMAGE_BYTES + 1)
    except AttachmentUnavailable:
        raise
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise AttachmentUnavailable(url, str(exc)) from exc
    if not data:
        raise AttachmentUnavailable(url, "empty response")
    if len(data) > MAX_IMAGE_BYTES:
        raise AttachmentUnavailable(url, "image too large")
    return data


def fetch_images(
    entries: Iterable[EvidenceEntry],
    fetcher: Optional[Fetcher] = None,
    *,
    max_per_entry: int = 2,
    timeout: float = 10.0,
    max_workers: int = 4,
) -> dict[str, tuple[bytes, ...]]:
    """
    identity_key → downloaded images (attachment order kept, failures omitted).
    Entries whose images all fail are absent from the result.
    """
    fetcher = fetcher or fetch_attachment
    jobs: list[tuple[str, int, str]] = []
    seen: set[str] = set()
    for entry in entries:
        if entry.identity_key in seen or max_per_entry <= 0:
            continue
        seen.add(entry.identity_key)
        for position, url in enumerate(entry.attachments[:max_per_entry]):
            jobs.append((entry.identity_key, position, url))
    if not jobs:
        return {}

    fetched: dict[str, dict[int, bytes]] = {}
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(jobs))),
        thread_name_prefix="attach",
    ) as executor:
        futures = {
            executor.submit(fetcher, url, timeout): (key, position, url)
            for key, position, url in jobs
        }
        for future in concurrent.futures.as_completed(futures):
            key, position, url = futures[future]
            try:
                data = future.result()
            except AttachmentUnavailable as exc:
                logger.warning("Skipping attachment %s", exc)
                continue
            except Exception as exc:  # noqa: BLE001
                logger.warning("Skipping attachment %s: %s", url, exc)
                continue
            if data:
                fetched.setdefault(key, {})[position] = data

    logger.info("Fetched %d of %d attachment(s)", sum(len(v) for v in fetched.values()), len(jobs))
    return {
        key: tuple(images[p] for p in sorted(images))
        for key, images in fetched.items()
    }
