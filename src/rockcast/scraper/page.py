"""Headless-browser fallback that finds the audio link on an episode page."""

import asyncio
import logging
import re

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from rockcast.config.schema import DEFAULT_USER_AGENT, ScraperConfig

logger = logging.getLogger(__name__)

SOURCE_PATTERN = re.compile(
    r"""<source\s+[^>]*src=["']([^"']+\.mp3[^"']*)["']""", re.IGNORECASE
)
ESCAPE_PATTERN = re.compile(r"\\(u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)")

SIMPLE_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "f": "\f", "v": "\v", "0": "\0"}

OUTER_HTML_SCRIPT = "() => document.documentElement.outerHTML"


def unescape_markup(markup: str) -> str:
    """Undo backslash escaping (``\\/``, ``\\u0026``) left by script-embedded markup."""

    def replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if len(token) > 1 and token[0] in "ux":
            return chr(int(token[1:], 16))
        return SIMPLE_ESCAPES.get(token, token)

    return ESCAPE_PATTERN.sub(replace, markup)


def find_audio_url(markup: str) -> str | None:
    """Extract the first ``<source src="...mp3">`` URL from page markup.

    Protocol-relative URLs are given an https scheme.
    """
    match = SOURCE_PATTERN.search(unescape_markup(markup))
    if not match:
        return None

    url = match.group(1)
    if url.startswith("//"):
        url = f"https:{url}"
    return url


class PageScraper:
    """Loads an episode page in headless Chromium and reads its audio source.

    Every failure (navigation error, missing browser, timeout, no match)
    is logged and reported as ``None``.
    """

    def __init__(
        self,
        config: ScraperConfig | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.config = config or ScraperConfig()
        self.user_agent = user_agent

    async def extract_audio_url(self, page_url: str) -> str | None:
        """Find the audio URL on ``page_url``.

        Args:
            page_url: Episode page to load

        Returns:
            Absolute audio URL, or None if none could be found in time
        """
        if not self.config.enabled:
            logger.debug("Page scraper disabled")
            return None

        try:
            return await asyncio.wait_for(
                self._extract(page_url), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Gave up scraping {page_url} after {self.config.timeout_seconds:.0f}s"
            )
            return None
        except PlaywrightError as e:
            logger.warning(f"Browser error while scraping {page_url}: {e}")
            return None

    async def _extract(self, page_url: str) -> str | None:
        playwright = await async_playwright().start()
        browser = None
        try:
            browser = await playwright.chromium.launch(headless=self.config.headless)
            context = await browser.new_context(user_agent=self.user_agent)
            page = await context.new_page()

            logger.info(f"Loading episode page {page_url}")
            await page.goto(
                page_url,
                wait_until="domcontentloaded",
                timeout=self.config.timeout_seconds * 1000,
            )

            # Audio player markup is injected after the page loads
            await asyncio.sleep(self.config.settle_delay_seconds)

            for attempt in range(1, self.config.max_attempts + 1):
                markup = await page.evaluate(OUTER_HTML_SCRIPT)
                url = find_audio_url(markup or "")
                if url:
                    logger.info(f"Found audio URL on attempt {attempt}: {url}")
                    return url

                logger.debug(f"No audio source on attempt {attempt}/{self.config.max_attempts}")
                if attempt < self.config.max_attempts:
                    await asyncio.sleep(self.config.retry_delay_seconds)

            logger.info(f"No audio source found on {page_url}")
            return None
        finally:
            if browser is not None:
                await browser.close()
            await playwright.stop()
