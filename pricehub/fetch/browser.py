"""Playwright-backed render sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-blink-features=AutomationControlled",
]


class PlaywrightSession:
    def __init__(self, context: BrowserContext, page: Page) -> None:
        self._context = context
        self._page = page

    async def goto(self, url: str, *, timeout_ms: int, headers: Mapping[str, str] | None = None) -> None:
        extra = {k: v for k, v in (headers or {}).items() if k.lower() != "user-agent"}
        await self._page.set_extra_http_headers(extra)
        await self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    async def wait_for_text(self, selector: str, *, timeout_ms: int) -> str:
        # price nodes are often visually hidden (screen-reader spans)
        element = await self._page.wait_for_selector(selector, state="attached", timeout=timeout_ms)
        text = await element.text_content() if element else None
        return (text or "").strip()

    async def text_of(self, selector: str) -> str | None:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        text = await element.text_content()
        return text.strip() if text else None

    async def content(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        await self._context.close()


class PlaywrightSessionFactory:
    """Launches one headless Chromium lazily; each session is its own context."""

    def __init__(self, *, headless: bool = True, user_agent: str = USER_AGENT) -> None:
        self.headless = headless
        self.user_agent = user_agent
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
                logger.info("Launched headless Chromium for render sessions")
            return self._browser

    async def create(self) -> PlaywrightSession:
        browser = await self._ensure_browser()
        context = await browser.new_context(
            user_agent=self.user_agent,
            viewport={"width": 1920, "height": 1080},
        )
        await context.add_init_script("Object.defineProperty(navigator, 'webdriver', {get: () => undefined});")
        page = await context.new_page()
        return PlaywrightSession(context, page)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
