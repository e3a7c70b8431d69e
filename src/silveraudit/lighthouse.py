"""Lighthouse audits driven through the CLI.

Each attempt launches its own Chromium, loads the page (HTTP 200 required),
dismisses a cookie banner if there is one, then points the Lighthouse CLI
at the browser's remote-debugging port. A failed standard attempt is retried
once with the advanced strategy, but only when the failure looks like bot
blocking (403) or a timeout; every other error fails immediately.
"""

import asyncio
import logging
import time
from pathlib import Path
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError

from .browser import AuditBrowser
from .categories import FULL_CATEGORY_ID, LITE_CATEGORY_ID
from .config import settings
from .devices import DeviceProfile, get_device
from .errors import LighthouseError, SilverAuditError
from .logging import log_extra, timed_operation
from .models import AuditOutcome

ESCALATION_MARKERS = ("403", "timed out")

LIGHTHOUSE_WAIT_FLAGS = [
    "--throttling-method=provided",
    "--max-wait-for-fcp=120000",
    "--max-wait-for-load=150000",
]


def normalize_url(url: str) -> str:
    """Prepend ``https://`` to scheme-less URLs."""
    url = url.strip()
    return url if url.startswith("http") else f"https://{url}"


def report_filename(url: str, fmt: str = "json", timestamp_ms: int | None = None) -> str:
    """``report-<hostname with dashes>-<epoch ms>.<fmt>``."""
    hostname = (urlparse(url).hostname or "unknown").replace(".", "-")
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"report-{hostname}-{timestamp_ms}.{fmt}"


def should_escalate(error: str) -> bool:
    """True when a standard-attempt failure is worth an advanced retry."""
    return any(marker in error for marker in ESCALATION_MARKERS)


class LighthouseRunner:
    """Runs one Lighthouse audit per call, escalating strategy when useful."""

    def __init__(
        self,
        lighthouse_bin: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.lighthouse_bin = lighthouse_bin or settings.lighthouse_bin
        self.timeout = timeout or settings.audit_timeout

    def build_command(
        self,
        url: str,
        device: DeviceProfile,
        port: int,
        output_path: Path,
        fmt: str = "json",
        lite: bool = False,
    ) -> list[str]:
        """Lighthouse CLI invocation attached to an already running browser."""
        cmd = [
            self.lighthouse_bin,
            url,
            f"--port={port}",
            f"--output={fmt}",
            f"--output-path={output_path}",
            "--quiet",
            *LIGHTHOUSE_WAIT_FLAGS,
            *device.lighthouse_flags(),
        ]
        config_path = (
            settings.lighthouse_lite_config_path if lite else settings.lighthouse_config_path
        )
        if config_path is not None:
            category = LITE_CATEGORY_ID if lite else FULL_CATEGORY_ID
            cmd.append(f"--config-path={config_path}")
            cmd.append(f"--only-categories={category}")
        return cmd

    async def _run_cli(self, cmd: list[str], output_path: Path) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise LighthouseError(f"Lighthouse executable not found: {cmd[0]}") from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except TimeoutError as e:
            raise LighthouseError(f"Lighthouse timed out after {self.timeout}s") from e
        finally:
            # Cancellation lands here too; the CLI must not outlive the browser slot.
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise LighthouseError(f"Lighthouse exited with code {process.returncode}: {tail}")
        if not output_path.exists():
            raise LighthouseError(f"Lighthouse produced no report at {output_path}")

    async def _attempt(
        self,
        url: str,
        device: str,
        output_path: Path,
        fmt: str,
        lite: bool,
        advanced: bool,
    ) -> None:
        profile = get_device(device, advanced=advanced)
        if profile is None:
            raise LighthouseError(f"Unknown device: {device}")

        async with AuditBrowser(advanced=advanced) as browser:
            async with browser.page(profile) as page:
                await browser.navigate(page, url)
                await browser.dismiss_cookie_banner(page)
                cmd = self.build_command(
                    url, profile, browser.debugging_port, output_path, fmt=fmt, lite=lite
                )
                await self._run_cli(cmd, output_path)

    async def run_audit(
        self,
        url: str,
        device: str = "desktop",
        fmt: str = "json",
        lite: bool = False,
        output_dir: Path | None = None,
    ) -> AuditOutcome:
        """Audit ``url`` as ``device``; never raises for audit failures.

        Returns:
            AuditOutcome with ``report_path`` on success, ``error`` otherwise
        """
        if not url or not url.strip():
            return AuditOutcome(success=False, error="URL is required.")

        full_url = normalize_url(url)
        output_dir = output_dir or settings.scratch_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / report_filename(full_url, fmt)

        strategy = "standard"
        attempts = 0
        for advanced in (False, True):
            strategy = "advanced" if advanced else "standard"
            attempts += 1
            try:
                async with timed_operation(
                    "lighthouse_audit",
                    url=full_url,
                    device=device,
                    strategy=strategy,
                    attempt=attempts,
                ):
                    await self._attempt(full_url, device, output_path, fmt, lite, advanced)
            except (SilverAuditError, PlaywrightError, OSError) as e:
                error = str(e)
                if not advanced and should_escalate(error):
                    log_extra(
                        "Retrying with advanced strategy",
                        logging.WARNING,
                        url=full_url,
                        device=device,
                        error=error,
                    )
                    continue
                output_path.unlink(missing_ok=True)
                return AuditOutcome(
                    success=False, error=error, attempts=attempts, strategy=strategy
                )
            return AuditOutcome(
                success=True, report_path=output_path, attempts=attempts, strategy=strategy
            )

        raise RuntimeError("Unexpected audit loop exit")
