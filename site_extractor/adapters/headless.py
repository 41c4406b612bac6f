"""
Headless browser adapter (Playwright, Chromium).

Renders a page and returns its final HTML. The browser is acquired per call
and closed on every exit path, including navigation errors and timeouts.
"""
from typing import Iterable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Route, async_playwright

from site_extractor.adapters.http_fetcher import FetchResult
from site_extractor.config import config
from site_extractor.utils.logger import LayerLogger


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1280, "height": 800}


class HeadlessRenderer:
    """Renders JavaScript-heavy pages."""

    def __init__(
        self,
        timeout: float = config.HEADLESS_TIMEOUT,
        wait_until: str = config.HEADLESS_WAIT_UNTIL,
        blocked_resources: Optional[Iterable[str]] = None,
    ):
        self.timeout = timeout
        self.wait_until = wait_until
        self.blocked_resources = set(
            config.HEADLESS_BLOCKED_RESOURCES if blocked_resources is None else blocked_resources
        )
        self.logger = LayerLogger("headless")

    async def _handle_route(self, route: Route):
        if route.request.resource_type in self.blocked_resources:
            await route.abort()
        else:
            await route.continue_()

    async def render(self, url: str) -> FetchResult:
        self.logger.log_action("render", "started", url=url, wait_until=self.wait_until)

        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            try:
                context = await browser.new_context(
                    user_agent=USER_AGENT,
                    viewport=VIEWPORT,
                    ignore_https_errors=True,
                )
                page = await context.new_page()
                if self.blocked_resources:
                    await page.route("**/*", self._handle_route)

                try:
                    response = await page.goto(
                        url,
                        wait_until=self.wait_until,
                        timeout=self.timeout * 1000,
                    )
                    html = await page.content()
                except PlaywrightError as e:
                    self.logger.log_error(
                        f"Headless navigation failed: {e}",
                        error_type="transport_failure",
                        url=url,
                    )
                    return FetchResult(url=url, error=str(e), attempts=1)

                status = response.status if response is not None else 200
                result = FetchResult(
                    url=url,
                    html=html,
                    status_code=status,
                    final_url=page.url,
                    attempts=1,
                )
                if not (200 <= status < 300):
                    result.error = f"HTTP {status}"
                self.logger.log_fetch(
                    url, "headless", status, "ok" if result.ok else "failed",
                    content_length=len(html),
                )
                return result
            finally:
                await browser.close()
