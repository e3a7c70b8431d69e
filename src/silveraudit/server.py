"""SilverAudit MCP Server - senior-accessibility audits on request.

Built with FastMCP:
- Lifespan owns the audit pipeline and the job scheduler
- ``start_audit`` queues a full multi-page audit and returns at once
- ``quick_scan`` waits for a single-page lite audit and returns its PDF
- Resources and a status tool expose configuration and queue state
"""

import json
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Literal

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from .config import settings
from .errors import SilverAuditError
from .logging import log_extra
from .models import check_folder_safe_email
from .pipeline import AuditPipeline
from .scheduler import JobScheduler

# =============================================================================
# Application Context (Lifespan Management)
# =============================================================================


@dataclass
class AppContext:
    """Type-safe application context for dependency injection."""

    pipeline: AuditPipeline
    scheduler: JobScheduler


def build_scheduler(pipeline: AuditPipeline) -> JobScheduler:
    """Wire both queues to the pipeline with the configured time ceilings."""
    return JobScheduler(
        full_process=pipeline.run_full_audit,
        quick_process=pipeline.run_quick_scan,
        full_ceiling=settings.full_job_ceiling,
        quick_ceiling=settings.quick_job_ceiling,
    )


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle with proper resource cleanup."""
    pipeline = AuditPipeline()
    scheduler = build_scheduler(pipeline)
    log_extra("SilverAudit started", reports_full=str(settings.reports_full_dir))
    try:
        yield AppContext(pipeline=pipeline, scheduler=scheduler)
    finally:
        await scheduler.shutdown()


# =============================================================================
# FastMCP Server Instance
# =============================================================================

mcp = FastMCP(
    "SilverAudit",
    lifespan=app_lifespan,
    host=settings.server_host,
    port=settings.server_port,
    instructions="""SilverAudit audits websites for accessibility issues that affect older users.

**Tools:**
- `start_audit` - Queue a full audit: every internal page (up to the link cap), on desktop
  and mobile, one annotated PDF per page and device. Returns immediately; completion is
  reported through the status webhook.
- `quick_scan` - Run a lite audit of one page and wait for the PDF and its score.
- `queue_status` - Show what is running and what is waiting.

Only one audit runs at a time; jobs wait in their queue until the browser is free.""",
)


def require_fields(email: str, url: str) -> tuple[str, str]:
    """Both fields are mandatory and may not be blank.

    The e-mail names the client's report folder, so it may not contain
    path separators.
    """
    email, url = email.strip(), url.strip()
    if not email or not url:
        raise ValueError("Email and URL are required.")
    return check_folder_safe_email(email), url


def _app_context(ctx: Context[ServerSession, AppContext] | None) -> AppContext:
    if ctx is None:
        raise RuntimeError("Context is required")
    return ctx.request_context.lifespan_context


# =============================================================================
# Resources
# =============================================================================


@mcp.resource("silveraudit://config")
def get_config() -> str:
    """Get current SilverAudit configuration."""
    return f"""SilverAudit Configuration:
- Browser Headless: {settings.browser_headless}
- Lighthouse: {settings.lighthouse_bin} (timeout {settings.audit_timeout}s)
- Full Reports: {settings.reports_full_dir}
- Lite Reports: {settings.reports_lite_dir}
- Link Cap: {settings.link_max_links} links, depth {settings.link_max_depth}
- Job Ceilings: full {settings.job_timeout_full or 'none'}, quick {settings.job_timeout_quick or 'none'}
- Status Webhook: {settings.status_webhook_url or 'log only'}"""


# =============================================================================
# Tools
# =============================================================================


@mcp.tool()
async def start_audit(
    email: str,
    url: str,
    ctx: Context[ServerSession, AppContext] | None = None,
) -> str:
    """Queue a full senior-accessibility audit of a website.

    Args:
        email: Client e-mail; reports are stored in a folder named after it
        url: Website to audit; internal links are discovered from this page
    """
    email, url = require_fields(email, url)
    app_ctx = _app_context(ctx)
    app_ctx.scheduler.submit_full_audit(email, url)
    return "Full audit request has been queued."


@mcp.tool()
async def quick_scan(
    email: str,
    url: str,
    ctx: Context[ServerSession, AppContext] | None = None,
) -> str:
    """Run a lite audit of a single page and return the report location and score.

    Args:
        email: Client e-mail; the report is stored in ``<email>_lite``
        url: Page to scan
    """
    email, url = require_fields(email, url)
    app_ctx = _app_context(ctx)
    try:
        result = await app_ctx.scheduler.submit_quick_scan(email, url)
    except SilverAuditError as e:
        raise RuntimeError(f"Quick scan failed to complete: {e}") from e

    return (
        "## Quick scan completed successfully\n\n"
        f"- **Report**: `{result.report_path}`\n"
        f"- **Score**: {result.score:.0f}/100"
    )


@mcp.tool()
async def queue_status(ctx: Context[ServerSession, AppContext] | None = None) -> str:
    """Show the running job and the number of jobs waiting in each queue."""
    app_ctx = _app_context(ctx)
    return json.dumps(app_ctx.scheduler.status(), indent=2)


# =============================================================================
# Server Entry Point
# =============================================================================


def main() -> None:
    """Run the SilverAudit MCP server."""
    # Support both stdio (default) and streamable-http transports
    transport: Literal["stdio", "streamable-http"] = "stdio"
    if "--http" in sys.argv:
        transport = "streamable-http"

    mcp.run(transport=transport)


if __name__ == "__main__":
    main()
