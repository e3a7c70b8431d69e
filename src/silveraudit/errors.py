"""Exception hierarchy for the audit pipeline and job scheduler."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ScoreData


class SilverAuditError(Exception):
    """Base class for all SilverAudit errors."""


class PageLoadError(SilverAuditError):
    """The audited page did not load (non-200 status, navigation failure)."""


class LighthouseError(SilverAuditError):
    """The Lighthouse CLI failed, timed out or produced no report."""


class AuditFailedError(SilverAuditError):
    """The audit capability gave up on a URL after all strategies."""


class ScoringError(SilverAuditError):
    """A score could not be trusted; carries the diagnostic payload."""

    def __init__(self, message: str, score_data: ScoreData) -> None:
        super().__init__(message)
        self.score_data = score_data


class LinkExtractionError(SilverAuditError):
    """Neither extraction strategy could read links from a page."""


class SeedUnreachableError(SilverAuditError):
    """The seed URL of a full audit could not be processed."""


class ReportGenerationError(SilverAuditError):
    """The PDF document could not be produced."""


class SchedulerClosedError(SilverAuditError):
    """The scheduler shut down before the job ran."""
