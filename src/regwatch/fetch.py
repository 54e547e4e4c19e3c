"""Page fetch strategies: plain HTTP and a headless browser fallback."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from playwright.async_api import async_playwright, Browser, Playwright

from regwatch.constants import (
    BROWSER_CHALLENGE_WAIT_MS,
    BROWSER_NAVIGATION_TIMEOUT_MS,
    BROWSER_SETTLE_WAIT_MS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DESKTOP_USER_AGENT,
    MAX_REDIRECTS,
    PREFLIGHT_TIMEOUT_SECONDS,
)
from regwatch.models import FetchResponse
from regwatch.utils.challenge_handler import is_challenge_title

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when a page cannot be fetched."""
    def __init__(self, message: str, url: str = None, status_code: int = None):
        self.message = message
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class FetchStrategy(ABC):
    """Interface shared by the direct and browser fetch strategies.

    A strategy is opened once per crawl job and closed when the job ends.
    """

    name = "abstract"

    async def open(self) -> None:
        """Acquire any long-lived resources."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchResponse:
        """Fetch a URL.

        Args:
            url: Absolute URL

        Returns:
            FetchResponse with the post-redirect URL and HTML

        Raises:
            FetchError: On HTTP errors or navigation failures
        """

    async def close(self) -> None:
        """Release resources acquired by open()."""

    async def __aenter__(self) -> "FetchStrategy":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class DirectFetch(FetchStrategy):
    """Plain HTTP GET via httpx with a desktop browser user agent."""

    name = "direct"

    def __init__(
        self,
        user_agent: str = DESKTOP_USER_AGENT,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_redirects: int = MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers=self.headers,
                transport=self._transport,
            )

    async def fetch(self, url: str) -> FetchResponse:
        await self.open()
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"HTTP {e.response.status_code} for {url}",
                url=url,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Request failed for {url}: {e}", url=url) from e

        return FetchResponse(
            url=url,
            final_url=str(response.url),
            html=response.text,
            status_code=response.status_code,
        )

    async def preflight(self, url: str, timeout: float = PREFLIGHT_TIMEOUT_SECONDS) -> FetchResponse:
        """Fetch a URL without raising on HTTP error statuses.

        Used once per job to look for a bot challenge on the base URL.

        Raises:
            httpx.HTTPError: On transport failures
        """
        await self.open()
        response = await self._client.get(url, timeout=timeout)
        return FetchResponse(
            url=url,
            final_url=str(response.url),
            html=response.text,
            status_code=response.status_code,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class BrowserFetch(FetchStrategy):
    """Headless Chromium fetch for sites behind a JavaScript challenge.

    One browser is launched per job in open(); each fetch() uses a fresh
    page that is closed before returning.
    """

    name = "browser"

    def __init__(
        self,
        user_agent: str = DESKTOP_USER_AGENT,
        headless: bool = True,
        navigation_timeout_ms: int = BROWSER_NAVIGATION_TIMEOUT_MS,
        settle_wait_ms: int = BROWSER_SETTLE_WAIT_MS,
        challenge_wait_ms: int = BROWSER_CHALLENGE_WAIT_MS,
    ):
        self.user_agent = user_agent
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_wait_ms = settle_wait_ms
        self.challenge_wait_ms = challenge_wait_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def open(self) -> None:
        if self._browser is not None:
            return

        logger.info("Launching headless browser for challenge-protected source")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=["--disable-blink-features=AutomationControlled"],
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise

    async def fetch(self, url: str) -> FetchResponse:
        if self._browser is None:
            raise FetchError("Browser is not open", url=url)

        page = await self._browser.new_page(user_agent=self.user_agent)
        try:
            try:
                response = await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=self.navigation_timeout_ms,
                )
            except Exception as e:
                raise FetchError(f"Navigation failed for {url}: {e}", url=url) from e

            await page.wait_for_timeout(self.settle_wait_ms)

            title = await page.title()
            if is_challenge_title(title):
                logger.info(f"Challenge still showing on {url}, waiting {self.challenge_wait_ms}ms")
                await page.wait_for_timeout(self.challenge_wait_ms)

            html = await page.content()
            return FetchResponse(
                url=url,
                final_url=page.url,
                html=html,
                status_code=response.status if response is not None else 200,
            )
        finally:
            await page.close()

    async def close(self) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
