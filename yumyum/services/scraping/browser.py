import logging
from abc import ABC, abstractmethod
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from yumyum.core.config import get_settings
from yumyum.core.errors import TransientNetworkError, UpstreamFormatError

logger = logging.getLogger(__name__)


class PageRenderer(ABC):
    """Turns a URL into fully rendered HTML."""

    @abstractmethod
    async def render(self, url: str) -> str:
        pass


class PlaywrightRenderer(PageRenderer):
    """Headless Chromium: launch, navigate, wait for client-side render, extract, close.

    A fresh browser is launched per page so a crashed render never leaks into
    the next scrape.
    """

    def __init__(
        self,
        nav_timeout_ms: Optional[int] = None,
        render_wait_ms: Optional[int] = None,
        user_agent: Optional[str] = None,
    ):
        settings = get_settings()
        self.nav_timeout_ms = nav_timeout_ms if nav_timeout_ms is not None else settings.SCRAPE_NAV_TIMEOUT_MS
        self.render_wait_ms = render_wait_ms if render_wait_ms is not None else settings.SCRAPE_RENDER_WAIT_MS
        self.user_agent = user_agent or settings.SCRAPE_USER_AGENT

    async def render(self, url: str) -> str:
        logger.info(f"Rendering {url}")
        async with async_playwright() as p:
            browser = await p.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            try:
                page = await browser.new_page(user_agent=self.user_agent)
                await page.goto(url, wait_until="domcontentloaded", timeout=self.nav_timeout_ms)
                # Tables are hydrated client-side after the document loads
                await page.wait_for_timeout(self.render_wait_ms)
                html = await page.content()
            except PlaywrightTimeoutError as e:
                raise TransientNetworkError(f"render timed out for {url}: {e}", source="browser")
            except PlaywrightError as e:
                raise UpstreamFormatError(f"render failed for {url}: {e}", source="browser")
            finally:
                await browser.close()

        logger.debug(f"Rendered {url} ({len(html)} chars)")
        return html
