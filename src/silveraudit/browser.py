"""Headless Chromium management using Playwright.

The audited browser is launched with a remote-debugging port so the
Lighthouse CLI can attach to the very instance that loaded the page and
dismissed its cookie banner.
"""

import socket
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import (
    Browser,
    Page,
    Playwright,
    Response,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import settings
from .devices import DeviceProfile
from .errors import PageLoadError
from .logging import log_extra

BASE_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]

# Escalated strategy only
ADVANCED_ARGS = ["--single-process", "--no-zygote"]

# Most specific first; XPath text matches last
COOKIE_SELECTORS = [
    "#onetrust-accept-btn-handler",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "#hs-eu-confirmation-button",
    "#cookie_action_close_header",
    "#cookie-accept",
    "#accept-cookies",
    "#accept_cookie",
    "#cookie-notice-accept",
    "#accept-all-cookies",
    "#wt-cli-accept-all-btn",
    '[data-testid="cookie-policy-manage-dialog-accept-button"]',
    '[data-cy="cookie-accept"]',
    '[data-qa="accept-cookies"]',
    "[data-cookie-accept]",
    '[data-action="accept"]',
    '[data-action="accept-all"]',
    "[data-accept-action]",
    '[data-role="accept-cookies"]',
    'button[aria-label*="accept" i]',
    'button[aria-label*="agree" i]',
    'button[aria-label*="consent" i]',
    'button[aria-label*="allow" i]',
    '[class*="cookieNotification__agree-button"]',
    '[class*="iubenda-cs-accept-btn"]',
    '[class*="cmplz-accept"]',
    '[class*="cookie-btn-accept-all"]',
    '[class*="cookie-accept"]',
    '[class*="cookie_accept"]',
    '[class*="cookie__accept"]',
    '[class*="accept-all"]',
    '[class*="acceptAll"]',
    '[class*="consent-accept"]',
    '[class*="banner-accept"]',
    '[class*="agree-button"]',
    '[class*="accept-button"]',
    'xpath=//button[contains(., "Accept all")]',
    'xpath=//button[contains(., "Accept All")]',
    'xpath=//button[contains(., "ACCEPT ALL")]',
    'xpath=//button[contains(., "Allow all")]',
    'xpath=//button[contains(., "ALLOW ALL")]',
    'xpath=//button[contains(., "Agree to all")]',
    'xpath=//button[contains(., "I accept")]',
    'xpath=//button[contains(., "I agree")]',
    'xpath=//button[contains(., "Got it")]',
    'xpath=//button[contains(., "Understood")]',
    'xpath=//a[contains(., "Accept")]',
    'xpath=//button[contains(., "Accept")]',
]

COOKIE_CLICK_TIMEOUT_MS = 3000


def find_free_port() -> int:
    """Ask the OS for an unused local TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


class AuditBrowser:
    """One Chromium instance for one audit attempt.

    Usage:
        async with AuditBrowser(advanced=False) as browser:
            async with browser.page(DESKTOP) as page:
                await browser.navigate(page, url)
    """

    def __init__(
        self,
        advanced: bool = False,
        headless: bool | None = None,
        debugging_port: int | None = None,
    ) -> None:
        self.advanced = advanced
        self.headless = settings.browser_headless if headless is None else headless
        self.debugging_port = debugging_port or find_free_port()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def launch_args(self) -> list[str]:
        args = list(BASE_ARGS)
        if self.advanced:
            args.extend(ADVANCED_ARGS)
        args.append(f"--remote-debugging-port={self.debugging_port}")
        return args

    async def start(self) -> None:
        """Start Playwright and launch Chromium."""
        self._playwright = await async_playwright().start()
        launch_options: dict[str, Any] = {
            "headless": self.headless,
            "args": self.launch_args,
        }
        if settings.chromium_executable:
            launch_options["executable_path"] = settings.chromium_executable
        self._browser = await self._playwright.chromium.launch(**launch_options)
        log_extra(
            "Browser started",
            headless=self.headless,
            port=self.debugging_port,
            advanced=self.advanced,
        )

    async def stop(self) -> None:
        """Close the browser and stop Playwright."""
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        log_extra("Browser stopped", port=self.debugging_port)

    async def __aenter__(self) -> "AuditBrowser":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    @asynccontextmanager
    async def page(self, device: DeviceProfile | None = None) -> AsyncGenerator[Page, None]:
        """Open a page in a fresh context, emulating ``device`` if given."""
        if self._browser is None:
            raise RuntimeError("Browser not initialized")

        context_options: dict[str, Any] = {}
        if device is not None:
            context_options = device.context_options()
            log_extra("Device emulation", device=device.name, viewport=device.viewport)

        context = await self._browser.new_context(**context_options)
        try:
            yield await context.new_page()
        finally:
            await context.close()

    async def navigate(self, page: Page, url: str, timeout: float | None = None) -> Response:
        """Load ``url`` and require HTTP 200.

        Raises:
            PageLoadError: on a non-200 status, no response, or a navigation timeout
        """
        timeout = timeout or settings.navigation_timeout
        try:
            response = await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=timeout * 1000,
            )
        except PlaywrightTimeoutError as e:
            raise PageLoadError(f"Navigation timed out after {timeout}s: {url}") from e

        if response is None:
            raise PageLoadError(f"Failed to load page: no response for {url}")
        if response.status != 200:
            raise PageLoadError(f"Failed to load page: Status code {response.status}")

        log_extra("Page loaded", url=url, status=response.status)
        return response

    async def dismiss_cookie_banner(self, page: Page) -> str | None:
        """Click the first visible cookie-consent button.

        Returns:
            The selector that matched, or None when no banner was handled.
        """
        for selector in COOKIE_SELECTORS:
            button = page.locator(selector).first
            try:
                if not await button.is_visible():
                    continue
                await button.click(timeout=COOKIE_CLICK_TIMEOUT_MS)
                await button.wait_for(state="hidden", timeout=COOKIE_CLICK_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                continue
            log_extra("Cookie banner dismissed", selector=selector)
            return selector

        log_extra("No cookie banner found")
        return None

    async def collect_anchors(self, url: str, timeout_ms: int) -> tuple[str, list[str]]:
        """Render ``url`` and return ``(final page url, raw href values)``."""
        async with self.page() as page:
            await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            hrefs: list[str] = await page.eval_on_selector_all(
                "a[href]",
                "anchors => anchors.map(a => a.getAttribute('href'))",
            )
            return page.url, [h for h in hrefs if h]
