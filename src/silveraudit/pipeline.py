"""Audit pipeline: from a job to PDFs on disk.

``run_full_audit`` collects the site's internal links and audits every one of
them on desktop and mobile; ``run_quick_scan`` runs the lite audit on a single
page. Both are meant to run while the scheduler holds the browser lock.

Per (url, device) the steps are: Lighthouse audit, weighted score, zero-score
gate, annotated screenshots, PDF. Intermediate files (the JSON report and the
annotated PNGs) are always deleted, whatever happened.
"""

import asyncio
import json
import logging
import re
import shutil
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import aiofiles

from .annotate import create_all_highlighted_images
from .categories import FULL_CATEGORY_ID, LITE_CATEGORY_ID
from .config import settings
from .devices import AUDIT_DEVICES
from .errors import AuditFailedError, ScoringError, SeedUnreachableError
from .lighthouse import LighthouseRunner, normalize_url
from .links import InternalLinksExtractor
from .logging import log_extra, timed_operation
from .models import (
    AuditRecord,
    CompletionSignal,
    FullAuditSummary,
    Job,
    PageStatus,
    QuickScanResult,
)
from .notifications import StatusNotifier
from .reports import compile_full_report, compile_lite_report
from .scoring import score_report

ZERO_SCORE_ERROR = (
    "Silver Surfers score is 0 - audit may have failed or configuration issue detected"
)


def sanitize_email(email: str) -> str:
    """Make an e-mail address safe for a folder name."""
    return re.sub(r"[^a-z0-9]", "_", email, flags=re.IGNORECASE)


def remove_files(paths: Iterable[Path | None]) -> None:
    """Delete intermediate files, logging (not raising) on failure."""
    for path in paths:
        if path is None:
            continue
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log_extra("Could not delete file", logging.WARNING, path=str(path), error=str(e))


async def load_report(path: Path) -> dict[str, Any]:
    """Read and parse a Lighthouse JSON report."""
    async with aiofiles.open(path, encoding="utf-8") as f:
        content = await f.read()
    report: dict[str, Any] = json.loads(content)
    return report


class AuditPipeline:
    """Runs full audits and quick scans end to end."""

    def __init__(
        self,
        runner: LighthouseRunner | None = None,
        notifier: StatusNotifier | None = None,
        scratch_dir: Path | None = None,
        reports_full_dir: Path | None = None,
        reports_lite_dir: Path | None = None,
    ) -> None:
        self.runner = runner or LighthouseRunner()
        self.notifier = notifier or StatusNotifier.from_settings()
        self.scratch_dir = scratch_dir or settings.scratch_dir
        self.reports_full_dir = reports_full_dir or settings.reports_full_dir
        self.reports_lite_dir = reports_lite_dir or settings.reports_lite_dir

    def link_extractor(self) -> InternalLinksExtractor:
        return InternalLinksExtractor()

    async def audit_page(
        self,
        url: str,
        device: str,
        job_folder: Path,
        output_dir: Path,
    ) -> AuditRecord:
        """Audit one (url, device) pair; failures become records, never exceptions."""
        report_path: Path | None = None
        images: dict[str, Path] = {}
        try:
            outcome = await self.runner.run_audit(
                url, device=device, fmt="json", lite=False, output_dir=job_folder
            )
            if not outcome.success or outcome.report_path is None:
                log_extra(
                    "Skipping report, audit failed",
                    logging.WARNING,
                    url=url,
                    device=device,
                    attempts=outcome.attempts,
                    error=outcome.error,
                )
                return AuditRecord(
                    url=url, device=device, status=PageStatus.FAILED, error=outcome.error
                )

            report_path = outcome.report_path
            report = await load_report(report_path)
            score_data = score_report(report, FULL_CATEGORY_ID)
            if score_data.is_zero:
                log_extra(
                    "Score is 0, blocking images and report",
                    logging.ERROR,
                    url=url,
                    device=device,
                    **score_data.diagnostics(),
                )
                return AuditRecord(
                    url=url,
                    device=device,
                    status=PageStatus.SCORING_FAILED,
                    error=ZERO_SCORE_ERROR,
                    score_data=score_data,
                )

            images = await asyncio.to_thread(create_all_highlighted_images, report_path, job_folder)
            document = await compile_full_report(report, score_data, images, output_dir)
            return AuditRecord(
                url=url,
                device=device,
                status=PageStatus.COMPLETED,
                score_data=score_data,
                document_path=document,
                image_ids=list(images),
            )
        except Exception as e:
            log_extra(
                "Unexpected error while auditing page",
                logging.ERROR,
                url=url,
                device=device,
                error=str(e),
                error_type=type(e).__name__,
            )
            return AuditRecord(url=url, device=device, status=PageStatus.ERROR, error=str(e))
        finally:
            # Images written before a failure are not in ``images``.
            partial = job_folder.glob(f"{report_path.stem}-*.png") if report_path else []
            remove_files([report_path, *images.values(), *partial])

    async def run_full_audit(self, job: Job) -> FullAuditSummary:
        """Audit every collected link on desktop and mobile.

        Emits a ``completed`` signal when all pairs were processed (whatever
        their individual outcome) and a ``failed`` signal when the job itself
        fails, which then re-raises. The scratch folder is always removed.
        """
        final_folder = self.reports_full_dir / job.email
        job_folder = self.scratch_dir / f"{sanitize_email(job.email)}-{int(time.time() * 1000)}"
        summary = FullAuditSummary(email=job.email, url=job.url, folder_path=final_folder)

        try:
            final_folder.mkdir(parents=True, exist_ok=True)
            job_folder.mkdir(parents=True, exist_ok=True)

            async with timed_operation("link_extraction", email=job.email, url=job.url) as ctx:
                collected = await self.link_extractor().extract_internal_links(
                    normalize_url(job.url)
                )
                ctx["links"] = len(collected.links)
            if not collected.success:
                raise SeedUnreachableError(f"Link extraction failed: {collected.details}")
            summary.links = collected.links

            for link in summary.links:
                for device in AUDIT_DEVICES:
                    async with timed_operation("audit_page", url=link, device=device) as ctx:
                        record = await self.audit_page(link, device, job_folder, final_folder)
                        ctx["status"] = record.status.value
                    summary.records.append(record)

            log_extra(
                "Full audit finished",
                email=job.email,
                links=len(summary.links),
                documents=len(summary.documents),
                failed=summary.count(PageStatus.FAILED),
                scoring_failed=summary.count(PageStatus.SCORING_FAILED),
            )
            await self.notifier.signal(
                CompletionSignal(
                    status="completed",
                    client_email=job.email,
                    folder_path=str(final_folder),
                )
            )
            return summary

        except asyncio.CancelledError:
            await self.notifier.signal(
                CompletionSignal(status="failed", client_email=job.email, error="Job cancelled")
            )
            raise
        except Exception as e:
            log_extra(
                "Full audit failed",
                logging.ERROR,
                email=job.email,
                url=job.url,
                error=str(e),
            )
            await self.notifier.signal(
                CompletionSignal(status="failed", client_email=job.email, error=str(e))
            )
            raise
        finally:
            shutil.rmtree(job_folder, ignore_errors=True)

    async def run_quick_scan(self, job: Job) -> QuickScanResult:
        """Lite audit of a single page on desktop.

        Raises:
            AuditFailedError: the audit itself failed
            ScoringError: the lite score is 0
            ReportGenerationError: the PDF could not be rendered
        """
        report_path: Path | None = None
        try:
            outcome = await self.runner.run_audit(
                job.url, device="desktop", fmt="json", lite=True, output_dir=self.scratch_dir
            )
            if not outcome.success or outcome.report_path is None:
                raise AuditFailedError(f"Lite audit failed: {outcome.error}")
            report_path = outcome.report_path

            report = await load_report(report_path)
            score_data = score_report(report, LITE_CATEGORY_ID)
            if score_data.is_zero:
                raise ScoringError(ZERO_SCORE_ERROR, score_data)

            output_dir = self.reports_lite_dir / f"{job.email}_lite"
            document = await compile_lite_report(report, score_data, output_dir)
            log_extra(
                "Quick scan finished",
                email=job.email,
                path=str(document),
                score=round(score_data.final_score),
            )
            return QuickScanResult(report_path=document, score=round(score_data.final_score))
        finally:
            remove_files([report_path])
