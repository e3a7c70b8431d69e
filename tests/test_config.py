"""Tests for SilverAudit configuration."""

from pathlib import Path

import pytest

from silveraudit.config import Settings


class TestSettings:
    """Tests for Settings configuration."""

    def test_default_settings(self) -> None:
        """Test that default settings are created correctly."""
        settings = Settings()
        assert settings.browser_headless is True
        assert settings.lighthouse_bin == "lighthouse"
        assert settings.audit_timeout == 300
        assert settings.reports_full_dir == Path("reports-full")
        assert settings.reports_lite_dir == Path("reports-lite")
        assert settings.status_webhook_url == ""

    def test_link_defaults(self) -> None:
        """Test the link collection limits."""
        settings = Settings()
        assert settings.link_max_links == 10
        assert settings.link_max_depth == 2
        assert settings.link_delay_ms == 2000
        assert settings.link_timeout_ms == 15000
        assert settings.link_max_retries == 3

    def test_job_ceilings(self) -> None:
        """Test that full audits are unbounded and quick scans capped by default."""
        settings = Settings()
        assert settings.full_job_ceiling is None
        assert settings.quick_job_ceiling == 900.0

    def test_settings_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables override defaults."""
        monkeypatch.setenv("BROWSER_HEADLESS", "false")
        monkeypatch.setenv("JOB_TIMEOUT_FULL", "3600")
        monkeypatch.setenv("JOB_TIMEOUT_QUICK", "0")
        monkeypatch.setenv("LINK_MAX_LINKS", "25")

        settings = Settings()
        assert settings.browser_headless is False
        assert settings.full_job_ceiling == 3600.0
        assert settings.quick_job_ceiling is None
        assert settings.link_max_links == 25
