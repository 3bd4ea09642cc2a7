"""Optional JavaScript rendering strategy for script-heavy pages.

Playwright is an optional dependency, only imported when a
:class:`PlaywrightRenderer` actually renders a page. Install it with::

    pip install "web-sourcing[render]"
    playwright install chromium
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class RenderedPage:
    """HTML produced by a renderer."""

    html: str
    final_url: str
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)


class Renderer(Protocol):
    """Fetches a URL through a browser engine."""

    async def render(self, url: str, *, timeout: float, user_agent: str) -> RenderedPage: ...


class PlaywrightRenderer:
    """Headless Chromium renderer that waits for the network to go idle."""

    def __init__(self, wait_until: str = "networkidle"):
        self.wait_until = wait_until

    async def render(self, url: str, *, timeout: float, user_agent: str) -> RenderedPage:
        """Render a page and return its final HTML.

        Args:
            url: Target URL.
            timeout: Navigation timeout in seconds.
            user_agent: User agent for the browser context.

        Returns:
            RenderedPage with the DOM serialized after scripts ran.

        Raises:
            ImportError: If playwright is not installed.
            TimeoutError: If navigation exceeds the timeout.
        """
        try:
            from playwright.async_api import TimeoutError as PlaywrightTimeoutError
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise ImportError(
                "Playwright is not installed. "
                "Install it with: pip install 'web-sourcing[render]' && playwright install chromium"
            ) from e

        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            try:
                context = await browser.new_context(user_agent=user_agent)
                page = await context.new_page()
                try:
                    response = await page.goto(url, timeout=timeout * 1000, wait_until=self.wait_until)
                except PlaywrightTimeoutError as e:
                    raise TimeoutError(f"Rendering {url} timed out after {timeout}s") from e
                html = await page.content()
                logger.debug(f"Rendered {url} ({len(html)} chars)")
                return RenderedPage(
                    html=html,
                    final_url=page.url,
                    status_code=response.status if response else None,
                    headers=dict(response.headers) if response else {},
                )
            finally:
                await browser.close()
