"""Pydantic models shared by the scheduler, pipeline and report compiler."""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def check_folder_safe_email(email: str) -> str:
    """Reject addresses that would escape a report folder when used as its name."""
    if any(sep in email for sep in ("/", "\\", "\x00")) or email.strip(".") == "":
        raise ValueError(f"Email is not a valid folder name: {email!r}")
    return email


class JobKind(str, Enum):
    """Which queue a job belongs to."""

    FULL = "full"
    QUICK = "quick"


class PageStatus(str, Enum):
    """Terminal state of one (url, device) audit."""

    COMPLETED = "completed"
    FAILED = "failed"
    SCORING_FAILED = "scoring_failed"
    ERROR = "error"


class Job(BaseModel):
    """An audit request. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    email: str = Field(min_length=1, description="Client e-mail address")
    url: str = Field(min_length=1, description="Seed URL to audit")
    kind: JobKind = Field(description="Full multi-page audit or quick single-page scan")

    @field_validator("email")
    @classmethod
    def email_is_folder_safe(cls, value: str) -> str:
        return check_folder_safe_email(value)


class ScoreData(BaseModel):
    """Weighted senior-friendliness score for one report."""

    model_config = ConfigDict(frozen=True)

    final_score: float = Field(ge=0, le=100, description="Weighted percentage")
    total_weighted_score: float = Field(default=0.0, description="Sum of score x weight")
    total_weight: float = Field(default=0.0, description="Sum of weights")
    error: str | None = Field(default=None, description="Why the score is a sentinel")
    missing_audits: list[str] = Field(
        default_factory=list, description="Referenced audits absent from the report"
    )
    processed_audits: int = Field(default=0, description="Referenced audits that were present")

    @property
    def is_zero(self) -> bool:
        """A zero score signals a broken measurement, not a terrible site."""
        return self.final_score == 0

    def diagnostics(self) -> dict[str, object]:
        """Payload surfaced when a zero score blocks artifact generation."""
        return {
            "totalWeightedScore": self.total_weighted_score,
            "totalWeight": self.total_weight,
            "missingAudits": list(self.missing_audits),
            "error": self.error or "No specific error",
        }


class AuditOutcome(BaseModel):
    """Result of the external Lighthouse capability for one (url, device)."""

    success: bool
    report_path: Path | None = None
    error: str | None = None
    attempts: int = 1
    strategy: str = "standard"


class AuditRecord(BaseModel):
    """Everything the pipeline learned about one (url, device) pair."""

    url: str
    device: str
    status: PageStatus
    error: str | None = None
    score_data: ScoreData | None = None
    document_path: Path | None = None
    image_ids: list[str] = Field(default_factory=list)


class CompletionSignal(BaseModel):
    """Out-of-band status emitted when a background job ends."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["completed", "failed"]
    client_email: str = Field(alias="clientEmail")
    folder_path: str | None = Field(default=None, alias="folderPath")
    error: str | None = None

    def to_payload(self) -> dict[str, str]:
        """Wire form: camelCase keys, absent fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)


class LinkCollectionResult(BaseModel):
    """Outcome of collecting internal links from a seed URL."""

    success: bool
    links: list[str] = Field(default_factory=list)
    error: str | None = None
    details: str | None = None


class QuickScanResult(BaseModel):
    """What an awaited quick scan hands back to its caller."""

    report_path: Path
    score: float


class FullAuditSummary(BaseModel):
    """Aggregate of a finished full audit job."""

    email: str
    url: str
    folder_path: Path
    links: list[str] = Field(default_factory=list)
    records: list[AuditRecord] = Field(default_factory=list)

    @property
    def documents(self) -> list[Path]:
        """PDFs produced by the job."""
        return [r.document_path for r in self.records if r.document_path is not None]

    def count(self, status: PageStatus) -> int:
        """Number of (url, device) pairs that ended in ``status``."""
        return sum(1 for r in self.records if r.status == status)
