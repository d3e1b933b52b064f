"""
Playwright implementation of browser interfaces
"""
from typing import Any, Dict, Optional

from playwright.async_api import Browser, BrowserContext, Page, Route, async_playwright

from ...config.logger import logger
from ..interfaces import (
    BrowserConfig,
    BrowserType,
    IBrowserContext,
    IBrowserEngine,
    IPage,
    ResourcePolicy,
    load_everything,
)

CHROMIUM_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]


class PlaywrightPage(IPage):
    """Playwright page wrapper"""

    def __init__(self, page: Page):
        self._page = page

    async def goto(self, url: str, wait_until: str = "domcontentloaded", timeout: int = 30000) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout)

    async def wait_for_selector(self, selector: str, timeout: int = 30000, state: str = "visible") -> None:
        await self._page.wait_for_selector(selector, timeout=timeout, state=state)

    async def query_exists(self, selector: str) -> bool:
        return await self._page.query_selector(selector) is not None

    async def click(self, selector: str) -> None:
        await self._page.click(selector)

    async def fill(self, selector: str, value: str) -> None:
        await self._page.fill(selector, value)

    async def inner_text(self, selector: str) -> str:
        return await self._page.inner_text(selector)

    async def get_attribute(self, selector: str, name: str) -> Optional[str]:
        element = await self._page.query_selector(selector)
        if element is None:
            return None
        return await element.get_attribute(name)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def screenshot(self, selector: Optional[str] = None) -> bytes:
        if selector:
            return await self._page.locator(selector).first.screenshot()
        return await self._page.screenshot()

    async def content(self) -> str:
        return await self._page.content()

    async def clear_cookies(self) -> None:
        await self._page.context.clear_cookies()

    @property
    def url(self) -> str:
        return self._page.url

    async def close(self) -> None:
        await self._page.close()


class PlaywrightContext(IBrowserContext):
    """Playwright context wrapper"""

    def __init__(self, context: BrowserContext):
        self._context = context

    async def new_page(self) -> IPage:
        page = await self._context.new_page()
        return PlaywrightPage(page)

    async def close(self) -> None:
        await self._context.close()


class PlaywrightEngine(IBrowserEngine):
    """
    Playwright browser engine implementation
    """

    def __init__(self):
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._config: Optional[BrowserConfig] = None

    async def initialize(self, config: BrowserConfig) -> None:
        """Initialize Playwright browser"""
        self._config = config
        self._playwright = await async_playwright().start()

        # CHROMIUM_ARGS are Chromium-only switches
        args = list(config.extra_args)
        if config.browser_type is BrowserType.CHROMIUM:
            args = CHROMIUM_ARGS + args

        launcher = getattr(self._playwright, config.browser_type.value)
        self._browser = await launcher.launch(
            headless=config.headless,
            args=args,
            proxy={"server": config.proxy} if config.proxy else None
        )
        logger.info(
            "playwright_engine_initialized",
            browser=config.browser_type.value,
            headless=config.headless,
        )

    async def create_context(
        self,
        context_options: Dict[str, Any],
        resource_policy: ResourcePolicy = load_everything,
    ) -> IBrowserContext:
        """Create browser context with options and request filtering"""
        if self._browser is None:
            raise RuntimeError("PlaywrightEngine.initialize() must be called first")

        options = {
            "viewport": self._config.viewport,
            "user_agent": self._config.user_agent,
            "locale": self._config.locale,
            **context_options  # Allow override
        }

        context = await self._browser.new_context(**options)

        async def _filter(route: Route) -> None:
            if resource_policy(route.request.resource_type):
                await route.continue_()
            else:
                await route.abort()

        if resource_policy is not load_everything:
            await context.route("**/*", _filter)

        return PlaywrightContext(context)

    async def cleanup(self) -> None:
        """Cleanup resources"""
        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        logger.info("playwright_engine_cleaned_up")

    @property
    def is_initialized(self) -> bool:
        return self._browser is not None
