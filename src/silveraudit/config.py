"""Configuration settings for the SilverAudit service."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Browser settings
    browser_headless: bool = Field(
        default=True,
        description="Run Chromium in headless mode",
    )
    chromium_executable: str | None = Field(
        default=None,
        description="Chromium/Chrome binary to use instead of Playwright's bundled one",
    )
    navigation_timeout: int = Field(
        default=60,
        description="Page navigation timeout in seconds",
    )

    # Lighthouse settings
    lighthouse_bin: str = Field(
        default="lighthouse",
        description="Lighthouse CLI executable",
    )
    lighthouse_config_path: Path | None = Field(
        default=None,
        description="Lighthouse config for the full senior-friendly category",
    )
    lighthouse_lite_config_path: Path | None = Field(
        default=None,
        description="Lighthouse config for the lite senior-friendly category",
    )
    audit_timeout: int = Field(
        default=300,
        description="Maximum duration of a single Lighthouse run in seconds",
    )

    # Output directories
    scratch_dir: Path = Field(
        default=Path("reports"),
        description="Parent directory of per-job scratch folders",
    )
    reports_full_dir: Path = Field(
        default=Path("reports-full"),
        description="Where full-audit PDFs are written (one folder per client)",
    )
    reports_lite_dir: Path = Field(
        default=Path("reports-lite"),
        description="Where quick-scan PDFs are written (one folder per client)",
    )

    # Link collection
    link_max_links: int = Field(default=10, description="Hard cap on collected links")
    link_max_depth: int = Field(default=2, description="Maximum crawl depth from the seed")
    link_delay_ms: int = Field(default=2000, description="Delay between page fetches")
    link_timeout_ms: int = Field(default=15000, description="Per-page extraction timeout")
    link_max_retries: int = Field(default=3, description="Extraction attempts per URL")

    # Scheduler ceilings (0 disables the ceiling)
    job_timeout_full: int = Field(
        default=0,
        description="Hard ceiling for one full audit job in seconds",
    )
    job_timeout_quick: int = Field(
        default=900,
        description="Hard ceiling for one quick scan in seconds",
    )

    # Completion signal
    status_webhook_url: str = Field(
        default="",
        description="Endpoint receiving job completion signals (empty: log only)",
    )

    # Server settings
    server_host: str = Field(default="127.0.0.1", description="Server bind address")
    server_port: int = Field(default=8765, description="Server port for HTTP transport")

    @staticmethod
    def _ceiling(seconds: int) -> float | None:
        return float(seconds) if seconds > 0 else None

    @property
    def full_job_ceiling(self) -> float | None:
        """Timeout for a full audit job, or None when unbounded."""
        return self._ceiling(self.job_timeout_full)

    @property
    def quick_job_ceiling(self) -> float | None:
        """Timeout for a quick scan, or None when unbounded."""
        return self._ceiling(self.job_timeout_quick)


# Global settings instance
settings = Settings()
