"""SilverAudit - senior-accessibility website audits as an MCP server.

Drives Lighthouse through a headless browser, highlights problem areas on
annotated screenshots and compiles scored PDF reports.

Features:
- Dual-queue scheduler sharing a single browser slot
- Weighted senior-friendliness score with a zero-score safety gate
- Annotated screenshots with containment and visibility filtering
- Structured logging for observability
"""

__version__ = "0.1.0"
__all__ = ["server", "scheduler", "pipeline", "config", "logging", "scoring"]
