"""Same-origin link collection for full audits.

Breadth-first crawl from a seed URL. Each page is read with a real browser
first and with a plain HTTP fetch + BeautifulSoup as a fallback; only when
both fail does the attempt count as failed. The seed page must succeed,
later pages may fail without aborting the crawl.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse, urlunparse

import httpx
from bs4 import BeautifulSoup

from .browser import AuditBrowser
from .config import settings
from .errors import LinkExtractionError, SeedUnreachableError
from .logging import log_extra
from .models import LinkCollectionResult
from .retry import RetryConfig, retry_call

ASSET_PATTERN = re.compile(
    r"\.(css|js|png|jpg|jpeg|gif|svg|ico|pdf|zip|exe|woff|woff2|ttf)$",
    re.IGNORECASE,
)

HTTP_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
    "Accept": "text/html,application/xhtml+xml",
}

CRITICAL_ERROR = "Failed to extract links due to a critical error."


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def canonicalize_link(href: str, page_url: str) -> str | None:
    """Resolve ``href`` against ``page_url`` and clean it up.

    Returns None for links that leave the page's origin, point at the bare
    origin, or name a static asset. Fragment and query are dropped, as is a
    single trailing slash.
    """
    href = href.strip()
    if not href:
        return None
    try:
        resolved = urlparse(urljoin(page_url, href))
    except ValueError:
        return None
    if resolved.scheme not in ("http", "https"):
        return None

    origin = _origin(page_url)
    if f"{resolved.scheme.lower()}://{resolved.netloc.lower()}" != origin:
        return None

    clean = urlunparse(
        (resolved.scheme.lower(), resolved.netloc.lower(), resolved.path or "/", "", "", "")
    )
    if clean.endswith("/"):
        clean = clean[:-1]
    if clean == origin or ASSET_PATTERN.search(clean):
        return None
    return clean


def canonical_links(hrefs: list[str], page_url: str) -> list[str]:
    """Canonicalize and deduplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for href in hrefs:
        link = canonicalize_link(href, page_url)
        if link is not None:
            seen.setdefault(link, None)
    return list(seen)


@dataclass
class LinkEntry:
    """One collected URL and where it was found."""

    url: str
    depth: int
    source: str
    error: str | None = None


class InternalLinksExtractor:
    """Collects up to ``max_links`` same-origin URLs, seed included."""

    def __init__(
        self,
        max_links: int | None = None,
        max_depth: int | None = None,
        delay_ms: int | None = None,
        timeout_ms: int | None = None,
        max_retries: int | None = None,
    ) -> None:
        self.max_links = max_links or settings.link_max_links
        self.max_depth = max_depth or settings.link_max_depth
        self.delay_ms = settings.link_delay_ms if delay_ms is None else delay_ms
        self.timeout_ms = timeout_ms or settings.link_timeout_ms
        self.max_retries = max_retries or settings.link_max_retries
        self.visited: set[str] = set()
        self.results: list[LinkEntry] = []

    @property
    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.max_retries,
            base_delay=self.delay_ms / 1000,
            fixed=True,
            retry_exceptions=(LinkExtractionError,),
        )

    async def delay(self) -> None:
        await asyncio.sleep(self.delay_ms / 1000)

    async def extract_with_browser(self, url: str) -> list[str]:
        """Links from the rendered DOM."""
        async with AuditBrowser() as browser:
            page_url, hrefs = await browser.collect_anchors(url, self.timeout_ms)
        return canonical_links(hrefs, page_url)

    async def extract_with_http(self, url: str) -> list[str]:
        """Links from the static HTML."""
        async with httpx.AsyncClient(
            headers=HTTP_HEADERS,
            timeout=self.timeout_ms / 1000,
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
        soup = BeautifulSoup(response.text, "html.parser")
        hrefs = [str(a.get("href")) for a in soup.select("a[href]")]
        return canonical_links(hrefs, str(response.url))

    async def extract_links_from_url(self, url: str) -> list[str]:
        """Unvisited links found on ``url``.

        Raises:
            LinkExtractionError: when both strategies fail
        """
        try:
            links = await self.extract_with_browser(url)
            log_extra("Links extracted", url=url, method="browser", count=len(links))
        except Exception as browser_error:
            log_extra(
                "Browser extraction failed, falling back to static HTML",
                logging.WARNING,
                url=url,
                error=str(browser_error),
            )
            try:
                links = await self.extract_with_http(url)
                log_extra("Links extracted", url=url, method="http", count=len(links))
            except Exception as http_error:
                raise LinkExtractionError(
                    f"Both browser and static extraction failed for {url}: {http_error}"
                ) from http_error
        return [link for link in links if link not in self.visited]

    async def attempt_extraction_with_retries(self, url: str) -> list[str]:
        return await retry_call(self.extract_links_from_url, url, config=self.retry_config)

    async def extract_internal_links(self, base_url: str) -> LinkCollectionResult:
        """Breadth-first crawl from ``base_url``.

        Never raises; a seed that cannot be processed yields
        ``success=False`` with the cause in ``details``.
        """
        log_extra(
            "Starting internal link extraction",
            url=base_url,
            max_links=self.max_links,
            max_depth=self.max_depth,
        )
        self.visited = {base_url}
        self.results = [LinkEntry(url=base_url, depth=0, source="initial")]

        try:
            parsed = urlparse(base_url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise SeedUnreachableError(f"Invalid base URL: {base_url}")

            index = 0
            while index < len(self.results) and len(self.results) < self.max_links:
                entry = self.results[index]
                if index > 0:
                    await self.delay()

                if entry.depth >= self.max_depth:
                    log_extra("Max depth reached, skipping", url=entry.url, depth=entry.depth)
                    index += 1
                    continue

                try:
                    found = await self.attempt_extraction_with_retries(entry.url)
                except LinkExtractionError as e:
                    entry.error = str(e)
                    log_extra(
                        "Could not process page after all retries",
                        logging.ERROR,
                        url=entry.url,
                        attempts=self.max_retries,
                        error=str(e),
                    )
                    if index == 0:
                        raise SeedUnreachableError(
                            f"The base URL {base_url} could not be processed. Aborting."
                        ) from e
                else:
                    for link in found:
                        if len(self.results) >= self.max_links:
                            break
                        if link not in self.visited:
                            self.visited.add(link)
                            self.results.append(
                                LinkEntry(url=link, depth=entry.depth + 1, source=entry.url)
                            )
                index += 1

        except SeedUnreachableError as e:
            log_extra("Link extraction aborted", logging.ERROR, url=base_url, error=str(e))
            return LinkCollectionResult(success=False, error=CRITICAL_ERROR, details=str(e))

        links = [entry.url for entry in self.results][: self.max_links]
        log_extra("Link extraction complete", url=base_url, count=len(links))
        return LinkCollectionResult(success=True, links=links)


async def extract_internal_links(base_url: str, **options: int) -> LinkCollectionResult:
    """Shortcut: build an extractor with ``options`` and crawl ``base_url``."""
    return await InternalLinksExtractor(**options).extract_internal_links(base_url)
