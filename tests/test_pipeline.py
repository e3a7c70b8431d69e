"""Tests for the audit pipeline with Lighthouse, images and PDFs mocked out."""

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from silveraudit.categories import FULL_AUDIT_REFS, LITE_AUDIT_REFS
from silveraudit.errors import AuditFailedError, ScoringError, SeedUnreachableError
from silveraudit.models import AuditOutcome, Job, JobKind, LinkCollectionResult, PageStatus
from silveraudit.pipeline import ZERO_SCORE_ERROR, AuditPipeline, sanitize_email


def passing_report(refs: list[dict[str, Any]], score: float = 1) -> dict[str, Any]:
    return {
        "finalUrl": "https://example.com",
        "audits": {ref["id"]: {"score": score} for ref in refs},
    }


class FakeRunner:
    """Writes a canned report per call, or fails for selected (url, device) pairs."""

    def __init__(self, report: dict[str, Any], failures: dict[tuple[str, str], str] | None = None) -> None:
        self.report = report
        self.failures = failures or {}
        self.calls: list[tuple[str, str, bool]] = []
        self.paths: list[Path] = []

    async def run_audit(
        self,
        url: str,
        device: str = "desktop",
        fmt: str = "json",
        lite: bool = False,
        output_dir: Path | None = None,
    ) -> AuditOutcome:
        self.calls.append((url, device, lite))
        if (url, device) in self.failures:
            return AuditOutcome(success=False, error=self.failures[(url, device)])
        assert output_dir is not None
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / f"report-{len(self.calls)}.json"
        path.write_text(json.dumps(self.report), encoding="utf-8")
        self.paths.append(path)
        return AuditOutcome(success=True, report_path=path)


def make_pipeline(tmp_path: Path, runner: FakeRunner) -> tuple[AuditPipeline, MagicMock]:
    notifier = MagicMock()
    notifier.signal = AsyncMock(return_value=True)
    pipeline = AuditPipeline(
        runner=runner,  # type: ignore[arg-type]
        notifier=notifier,
        scratch_dir=tmp_path / "scratch",
        reports_full_dir=tmp_path / "reports-full",
        reports_lite_dir=tmp_path / "reports-lite",
    )
    return pipeline, notifier


def links_result(*links: str) -> MagicMock:
    extractor = MagicMock()
    extractor.extract_internal_links = AsyncMock(
        return_value=LinkCollectionResult(success=True, links=list(links))
    )
    return extractor


async def fake_full_report(report, score_data, images, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"doc-{len(list(output_dir.iterdir()))}.pdf"
    path.write_bytes(b"%PDF")
    return path


def test_sanitize_email() -> None:
    """Test that unsafe characters become underscores."""
    assert sanitize_email("Jane.Doe+x@example.com") == "Jane_Doe_x_example_com"


class TestAuditPage:
    """Tests for one (url, device) audit."""

    @pytest.mark.asyncio
    async def test_completed_page_cleans_intermediates(self, tmp_path: Path) -> None:
        """Test a successful page: PDF produced, JSON and images removed."""
        runner = FakeRunner(passing_report(FULL_AUDIT_REFS))
        pipeline, _ = make_pipeline(tmp_path, runner)
        job_folder = tmp_path / "job"
        image = job_folder / "report-1-text-font.png"

        def fake_images(report_path: Path, output_dir: Path) -> dict[str, Path]:
            image.write_bytes(b"png")
            return {"text-font-audit": image}

        with (
            patch("silveraudit.pipeline.create_all_highlighted_images", side_effect=fake_images),
            patch("silveraudit.pipeline.compile_full_report", new=AsyncMock(side_effect=fake_full_report)) as compile_,
        ):
            record = await pipeline.audit_page("https://example.com", "desktop", job_folder, tmp_path / "out")

        assert record.status == PageStatus.COMPLETED
        assert record.score_data is not None
        assert record.score_data.final_score == pytest.approx(100)
        assert record.image_ids == ["text-font-audit"]
        assert record.document_path is not None and record.document_path.exists()
        assert compile_.await_args.args[2] == {"text-font-audit": image}
        assert not runner.paths[0].exists()
        assert not image.exists()

    @pytest.mark.asyncio
    async def test_zero_score_blocks_artifacts(self, tmp_path: Path) -> None:
        """Test that a zero score produces neither images nor a PDF."""
        runner = FakeRunner(passing_report(FULL_AUDIT_REFS, score=0))
        pipeline, _ = make_pipeline(tmp_path, runner)

        with (
            patch("silveraudit.pipeline.create_all_highlighted_images") as images,
            patch("silveraudit.pipeline.compile_full_report", new=AsyncMock()) as compile_,
        ):
            record = await pipeline.audit_page("https://example.com", "mobile", tmp_path / "job", tmp_path / "out")

        assert record.status == PageStatus.SCORING_FAILED
        assert record.error == ZERO_SCORE_ERROR
        assert record.score_data is not None and record.score_data.is_zero
        images.assert_not_called()
        compile_.assert_not_awaited()
        assert not runner.paths[0].exists()

    @pytest.mark.asyncio
    async def test_failed_audit(self, tmp_path: Path) -> None:
        """Test that an audit failure becomes a FAILED record."""
        runner = FakeRunner({}, failures={("https://example.com", "desktop"): "Status code 404"})
        pipeline, _ = make_pipeline(tmp_path, runner)

        record = await pipeline.audit_page("https://example.com", "desktop", tmp_path / "job", tmp_path / "out")

        assert record.status == PageStatus.FAILED
        assert record.error == "Status code 404"

    @pytest.mark.asyncio
    async def test_unexpected_error(self, tmp_path: Path) -> None:
        """Test that a rendering crash becomes an ERROR record and still cleans up."""
        runner = FakeRunner(passing_report(FULL_AUDIT_REFS))
        pipeline, _ = make_pipeline(tmp_path, runner)

        with (
            patch("silveraudit.pipeline.create_all_highlighted_images", return_value={}),
            patch(
                "silveraudit.pipeline.compile_full_report",
                new=AsyncMock(side_effect=RuntimeError("printer on fire")),
            ),
        ):
            record = await pipeline.audit_page("https://example.com", "desktop", tmp_path / "job", tmp_path / "out")

        assert record.status == PageStatus.ERROR
        assert record.error == "printer on fire"
        assert not runner.paths[0].exists()

    @pytest.mark.asyncio
    async def test_partial_images_removed_when_annotation_fails(self, tmp_path: Path) -> None:
        """Test that images written before an annotation crash are deleted with the page."""
        runner = FakeRunner(passing_report(FULL_AUDIT_REFS))
        pipeline, _ = make_pipeline(tmp_path, runner)
        job_folder = tmp_path / "job"
        job_folder.mkdir()
        other_page = job_folder / "report-99-color-contrast.png"
        other_page.write_bytes(b"png")

        def crash_midway(report_path: Path, output_dir: Path) -> dict[str, Path]:
            (output_dir / f"{report_path.stem}-color-contrast.png").write_bytes(b"png")
            raise OSError("disk full")

        with (
            patch("silveraudit.pipeline.create_all_highlighted_images", side_effect=crash_midway),
            patch("silveraudit.pipeline.compile_full_report", new=AsyncMock()) as compile_,
        ):
            record = await pipeline.audit_page("https://example.com", "desktop", job_folder, tmp_path / "out")

        assert record.status == PageStatus.ERROR
        compile_.assert_not_awaited()
        assert not (job_folder / "report-1-color-contrast.png").exists()
        assert other_page.exists()


class TestRunFullAudit:
    """Tests for whole-site audits."""

    @pytest.mark.asyncio
    async def test_every_link_on_both_devices(self, tmp_path: Path) -> None:
        """Test link x device iteration, completion signal and scratch cleanup."""
        runner = FakeRunner(
            passing_report(FULL_AUDIT_REFS),
            failures={("https://example.com/b", "mobile"): "Status code 403"},
        )
        pipeline, notifier = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="example.com", kind=JobKind.FULL)
        extractor = links_result("https://example.com", "https://example.com/b")

        with (
            patch.object(AuditPipeline, "link_extractor", return_value=extractor),
            patch("silveraudit.pipeline.create_all_highlighted_images", return_value={}),
            patch("silveraudit.pipeline.compile_full_report", new=AsyncMock(side_effect=fake_full_report)),
        ):
            summary = await pipeline.run_full_audit(job)

        extractor.extract_internal_links.assert_awaited_once_with("https://example.com")
        assert [(url, device) for url, device, _ in runner.calls] == [
            ("https://example.com", "desktop"),
            ("https://example.com", "mobile"),
            ("https://example.com/b", "desktop"),
            ("https://example.com/b", "mobile"),
        ]
        assert summary.count(PageStatus.COMPLETED) == 3
        assert summary.count(PageStatus.FAILED) == 1
        assert len(summary.documents) == 3
        assert all(doc.parent == tmp_path / "reports-full" / "a@example.com" for doc in summary.documents)

        signal = notifier.signal.await_args.args[0]
        assert signal.status == "completed"
        assert signal.folder_path == str(tmp_path / "reports-full" / "a@example.com")
        assert list((tmp_path / "scratch").iterdir()) == []

    @pytest.mark.asyncio
    async def test_all_pages_failing_still_completes(self, tmp_path: Path) -> None:
        """Test that per-page failures do not fail the job."""
        runner = FakeRunner(passing_report(FULL_AUDIT_REFS, score=0))
        pipeline, notifier = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="https://example.com", kind=JobKind.FULL)

        with patch.object(AuditPipeline, "link_extractor", return_value=links_result("https://example.com")):
            summary = await pipeline.run_full_audit(job)

        assert summary.count(PageStatus.SCORING_FAILED) == 2
        assert summary.documents == []
        assert notifier.signal.await_args.args[0].status == "completed"

    @pytest.mark.asyncio
    async def test_seed_failure_signals_failed(self, tmp_path: Path) -> None:
        """Test that an unreachable seed fails the job with a failed signal."""
        runner = FakeRunner({})
        pipeline, notifier = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="https://example.com", kind=JobKind.FULL)
        extractor = MagicMock()
        extractor.extract_internal_links = AsyncMock(
            return_value=LinkCollectionResult(success=False, error="critical", details="seed down")
        )

        with patch.object(AuditPipeline, "link_extractor", return_value=extractor):
            with pytest.raises(SeedUnreachableError, match="seed down"):
                await pipeline.run_full_audit(job)

        signal = notifier.signal.await_args.args[0]
        assert signal.status == "failed"
        assert "seed down" in (signal.error or "")
        assert runner.calls == []
        assert list((tmp_path / "scratch").iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancellation_signals_failed(self, tmp_path: Path) -> None:
        """Test that a cancelled job reports failure and re-raises."""
        runner = FakeRunner({})
        pipeline, notifier = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="https://example.com", kind=JobKind.FULL)
        extractor = MagicMock()
        extractor.extract_internal_links = AsyncMock(side_effect=asyncio.CancelledError())

        with patch.object(AuditPipeline, "link_extractor", return_value=extractor):
            with pytest.raises(asyncio.CancelledError):
                await pipeline.run_full_audit(job)

        signal = notifier.signal.await_args.args[0]
        assert signal.status == "failed"
        assert signal.error == "Job cancelled"


class TestRunQuickScan:
    """Tests for single-page lite scans."""

    @pytest.mark.asyncio
    async def test_success(self, tmp_path: Path) -> None:
        """Test result, lite flag, output folder and JSON cleanup."""
        runner = FakeRunner(passing_report(LITE_AUDIT_REFS))
        pipeline, _ = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="example.com", kind=JobKind.QUICK)
        document = tmp_path / "reports-lite" / "a@example.com_lite" / "example-com.pdf"

        with patch("silveraudit.pipeline.compile_lite_report", new=AsyncMock(return_value=document)) as compile_:
            result = await pipeline.run_quick_scan(job)

        assert result.report_path == document
        assert result.score == 100
        assert runner.calls == [("example.com", "desktop", True)]
        assert compile_.await_args.args[2] == tmp_path / "reports-lite" / "a@example.com_lite"
        assert not runner.paths[0].exists()

    @pytest.mark.asyncio
    async def test_audit_failure(self, tmp_path: Path) -> None:
        """Test that a failed audit raises AuditFailedError."""
        runner = FakeRunner({}, failures={("example.com", "desktop"): "Status code 500"})
        pipeline, _ = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="example.com", kind=JobKind.QUICK)

        with pytest.raises(AuditFailedError, match="Lite audit failed: Status code 500"):
            await pipeline.run_quick_scan(job)

    @pytest.mark.asyncio
    async def test_zero_score(self, tmp_path: Path) -> None:
        """Test that a zero lite score raises ScoringError with diagnostics."""
        runner = FakeRunner(passing_report(LITE_AUDIT_REFS, score=0))
        pipeline, _ = make_pipeline(tmp_path, runner)
        job = Job(email="a@example.com", url="example.com", kind=JobKind.QUICK)

        with patch("silveraudit.pipeline.compile_lite_report", new=AsyncMock()) as compile_:
            with pytest.raises(ScoringError) as excinfo:
                await pipeline.run_quick_scan(job)

        assert excinfo.value.score_data.is_zero
        compile_.assert_not_awaited()
        assert not runner.paths[0].exists()
