"""ISession implementation over a browser page.

BrowserSession is the seam where Playwright exceptions become the typed
errors the retry controller classifies. BrowserSessionFactory creates one
isolated browser context per session, including the extra lanes a worker
spawns.
"""

import asyncio
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..browser.interfaces import IBrowserContext, IBrowserEngine, IPage
from ..captcha.interfaces import Challenge, ChallengeMethod
from ..config.logger import logger
from ..config.settings import RunConfig
from ..errors import ExtractionError, NavigationError, SelectorTimeoutError, SessionStartupError
from .interfaces import MISSING_FIELD, ChallengeLocator, FieldSchema, ISession

# Hands a solved Turnstile token to the page the way the widget would
TURNSTILE_TOKEN_SCRIPT = """
(token) => {
    document.querySelectorAll(
        'input[name*="cf-turnstile"], input[name*="turnstile"], input[name*="captcha"]'
    ).forEach((field) => { field.value = token; });
    document.querySelectorAll('form').forEach((form) => {
        let input = form.querySelector('[name="cf-turnstile-response"]');
        if (!input) {
            input = document.createElement('input');
            input.type = 'hidden';
            input.name = 'cf-turnstile-response';
            form.appendChild(input);
        }
        input.value = token;
    });
    if (typeof window.turnstileCallback === 'function') {
        window.turnstileCallback(token);
    }
    document.querySelectorAll('.cf-turnstile').forEach((el) => el.setAttribute('data-token', token));
    return true;
}
"""


def _ms(seconds: float) -> int:
    return int(seconds * 1000)


# Opens a fresh context and its first page; the argument names the session
PageOpener = Callable[[str], Awaitable[Tuple[IBrowserContext, IPage]]]


class BrowserSession(ISession):
    """Session driving one browser page."""

    def __init__(
        self,
        page: IPage,
        context: IBrowserContext,
        name: str = "session",
        opener: Optional[PageOpener] = None,
    ):
        self._page = page
        self._context = context
        self._opener = opener
        self._closed = False
        self._lanes = 0
        self.name = name
        self.logger = logger.bind(session=name)

    async def navigate(self, url: str, timeout: float) -> None:
        try:
            await self._page.goto(url, wait_until="domcontentloaded", timeout=_ms(timeout))
        except PlaywrightError as e:
            raise NavigationError(f"navigation to {url} failed: {e.message}") from e

    async def wait_visible(self, selector: str, timeout: float) -> None:
        try:
            await self._page.wait_for_selector(selector, timeout=_ms(timeout), state="visible")
        except PlaywrightTimeoutError as e:
            raise SelectorTimeoutError(f"{selector} not visible after {timeout}s") from e
        except PlaywrightError as e:
            raise NavigationError(f"page failed while waiting for {selector}: {e.message}") from e

    async def is_present(self, selector: str) -> bool:
        try:
            return await self._page.query_exists(selector)
        except PlaywrightError as e:
            raise NavigationError(f"page failed while looking for {selector}: {e.message}") from e

    async def set_value(self, selector: str, text: str) -> None:
        try:
            await self._page.fill(selector, text)
        except PlaywrightTimeoutError as e:
            raise SelectorTimeoutError(f"cannot type into {selector}") from e
        except PlaywrightError as e:
            raise NavigationError(f"cannot type into {selector}: {e.message}") from e

    async def click(self, selector: str) -> None:
        try:
            await self._page.click(selector)
        except PlaywrightTimeoutError as e:
            raise SelectorTimeoutError(f"cannot click {selector}") from e
        except PlaywrightError as e:
            raise NavigationError(f"cannot click {selector}: {e.message}") from e

    async def extract_text(self, selector: str) -> str:
        try:
            return (await self._page.inner_text(selector)).strip()
        except PlaywrightError as e:
            raise ExtractionError(f"cannot read {selector}: {e.message}") from e

    async def extract_fields(self, schema: FieldSchema) -> Optional[Dict[str, str]]:
        fields: Dict[str, str] = {}
        found = False
        for name, selector in schema.items():
            if await self.is_present(selector):
                fields[name] = await self.extract_text(selector) or MISSING_FIELD
                found = True
            else:
                fields[name] = MISSING_FIELD
        return fields if found else None

    async def capture_challenge_artifact(self, locator: ChallengeLocator) -> Optional[Challenge]:
        try:
            if locator.site_key_selector and await self._page.query_exists(locator.site_key_selector):
                site_key = await self._page.get_attribute(
                    locator.site_key_selector, locator.site_key_attribute
                )
                if site_key:
                    return Challenge(ChallengeMethod.SITE_KEY, site_key, self._page.url)
                self.logger.warning("challenge_widget_without_site_key", selector=locator.site_key_selector)

            if locator.image_selector and await self._page.query_exists(locator.image_selector):
                image = await self._page.screenshot(locator.image_selector)
                return Challenge(ChallengeMethod.IMAGE_BODY, image, self._page.url)
        except PlaywrightError as e:
            raise ExtractionError(f"cannot capture challenge: {e.message}") from e
        return None

    async def apply_challenge_solution(
        self, challenge: Challenge, solution: str, locator: ChallengeLocator
    ) -> None:
        if challenge.method is ChallengeMethod.SITE_KEY:
            try:
                await self._page.evaluate(TURNSTILE_TOKEN_SCRIPT, solution)
            except PlaywrightError as e:
                raise NavigationError(f"cannot inject challenge token: {e.message}") from e
        else:
            if not locator.answer_selector:
                raise ExtractionError("image challenge solved but no answer field is configured")
            await self.set_value(locator.answer_selector, solution)

    async def reset(self) -> None:
        try:
            await self._page.clear_cookies()
        except PlaywrightError as e:
            raise NavigationError(f"cannot clear cookies: {e.message}") from e

    async def save_diagnostics(self, directory: Path, label: str) -> List[Path]:
        try:
            image = await self._page.screenshot()
            html = await self._page.content()
        except PlaywrightError as e:
            raise ExtractionError(f"cannot capture page state: {e.message}") from e

        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        screenshot = directory / f"{label}.png"
        screenshot.write_bytes(image)
        dump = directory / f"{label}.html"
        dump.write_text(html, encoding="utf-8")
        return [screenshot, dump]

    async def spawn(self) -> "BrowserSession":
        if self._opener is None:
            raise SessionStartupError(f"{self.name}: cannot open another browser context")
        self._lanes += 1
        name = f"{self.name}.{self._lanes}"
        context, page = await self._opener(name)
        return BrowserSession(page, context, name=name, opener=self._opener)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._page.close()
        finally:
            await self._context.close()


class BrowserSessionFactory:
    """Creates the persistent session of a worker.

    Every session, lanes included, gets its own browser context, so cookies
    and storage are never shared.
    """

    def __init__(self, engine: IBrowserEngine, config: RunConfig):
        self.engine = engine
        self.config = config

    async def open_page(self, name: str) -> Tuple[IBrowserContext, IPage]:
        """Open a context with the run's resource policy and a blank page in it.

        Raises:
            SessionStartupError: If the browser cannot provide the page. The
                context is closed on failure, cancellation included.
        """
        context: Optional[IBrowserContext] = None
        try:
            context = await self.engine.create_context(
                {"java_script_enabled": True},
                resource_policy=self.config.should_load,
            )
            page = await context.new_page()
            await page.goto("about:blank", timeout=_ms(self.config.navigation_timeout))
        except asyncio.CancelledError:
            if context is not None:
                await context.close()
            raise
        except Exception as e:
            if context is not None:
                await context.close()
            raise SessionStartupError(f"{name}: browser session failed to start: {e}") from e
        return context, page

    async def __call__(self, worker_id: int) -> ISession:
        name = f"worker-{worker_id}"
        context, page = await self.open_page(name)
        logger.info("browser_session_started", worker=worker_id)
        return BrowserSession(page, context, name=name, opener=self.open_page)
