"""Completion signals for background audit jobs.

A full audit has no caller waiting for it, so its outcome is announced out
of band: the signal is POSTed as JSON to ``settings.status_webhook_url``
when one is configured, and always logged.
"""

import logging
from dataclasses import dataclass, field

import httpx

from .config import settings
from .logging import log_extra
from .models import CompletionSignal
from .retry import RetryConfig, retry_call

OK_STATUSES = (200, 201, 202, 204)


@dataclass
class StatusNotifier:
    """Delivers completion signals; delivery failures are logged, never raised."""

    webhook_url: str = ""
    timeout: float = 10.0
    retry: RetryConfig = field(
        default_factory=lambda: RetryConfig(
            max_attempts=3,
            base_delay=1.0,
            max_delay=10.0,
            retry_exceptions=(httpx.TransportError,),
        )
    )

    @classmethod
    def from_settings(cls) -> "StatusNotifier":
        return cls(webhook_url=settings.status_webhook_url)

    async def _post(self, payload: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(
                self.webhook_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )

    async def signal(self, completion: CompletionSignal) -> bool:
        """Emit one completion signal.

        Returns:
            True if the signal was delivered (or only logged, with no webhook set)
        """
        payload = completion.to_payload()
        log_extra("Job completion signal", **payload)
        if not self.webhook_url:
            return True

        try:
            response = await retry_call(self._post, payload, config=self.retry)
        except httpx.HTTPError as e:
            log_extra(
                "Completion signal could not be delivered",
                logging.ERROR,
                url=self.webhook_url,
                email=completion.client_email,
                error=str(e),
            )
            return False

        if response.status_code not in OK_STATUSES:
            log_extra(
                "Completion signal rejected",
                logging.WARNING,
                url=self.webhook_url,
                status_code=response.status_code,
            )
            return False
        return True
