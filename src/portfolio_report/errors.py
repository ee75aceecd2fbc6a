"""
errors.py — Error taxonomy for the portfolio pipeline
======================================================
Only two families escape to the caller:

  PortfolioValidationError  missing required request fields; no document.
  RenderFailure             the document engine itself failed.

The others are raised by low-level helpers and contained by the stage that
called them (logged, recorded in the run trace, replaced by a default):

  ParseDegradation          malformed nested JSON
  EnhancementUnavailable    text-enhancement service absent / failed / slow
  AttachmentUnavailable     evidence image could not be fetched
"""

from __future__ import annotations


class PortfolioError(Exception):
    """Base class for all portfolio pipeline errors."""


class PortfolioValidationError(PortfolioError, ValueError):
    """A required request field is missing; the pipeline aborts before normalisation."""

    def __init__(self, message: str, violations: list | None = None) -> None:
        super().__init__(message)
        self.violations = violations or []

    @property
    def fields(self) -> list[str]:
        return [v.field for v in self.violations if getattr(v, "field", "")]


class ParseDegradation(PortfolioError):
    """A nested JSON value could not be decoded and was replaced by a default."""


class EnhancementUnavailable(PortfolioError):
    """The text-enhancement collaborator returned nothing usable."""


class AttachmentUnavailable(PortfolioError):
    """An evidence image could not be fetched."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class RenderFailure(PortfolioError, RuntimeError):
    """The document renderer failed; carries the underlying diagnostic."""

    def __init__(self, message: str, node_count: int = 0) -> None:
        super().__init__(message)
        self.node_count = node_count
