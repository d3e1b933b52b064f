"""
Browser engine interfaces using ABC
Design Pattern: Strategy + Dependency Inversion Principle
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Optional

# Decides whether a request of the given kind ("image", "script", ...) is loaded
ResourcePolicy = Callable[[str], bool]


def load_everything(resource_kind: str) -> bool:
    return True


class BrowserType(Enum):
    """Browsers Playwright can launch"""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


@dataclass
class BrowserConfig:
    """Browser configuration"""
    DEFAULT_USER_AGENT: ClassVar[str] = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )

    browser_type: BrowserType = BrowserType.CHROMIUM
    headless: bool = True
    proxy: Optional[str] = None
    user_agent: Optional[str] = None
    viewport: Dict[str, int] = None
    extra_args: list[str] = None
    locale: str = "es-CO"

    def __post_init__(self):
        if self.viewport is None:
            self.viewport = {"width": 1366, "height": 768}
        if self.extra_args is None:
            self.extra_args = []


class IPage(ABC):
    """Interface for a browser page. Timeouts are in milliseconds."""

    @abstractmethod
    async def goto(self, url: str, wait_until: str = "domcontentloaded", timeout: int = 30000) -> None:
        """Navigate to URL"""
        pass

    @abstractmethod
    async def wait_for_selector(self, selector: str, timeout: int = 30000, state: str = "visible") -> None:
        """Wait for element to reach a state"""
        pass

    @abstractmethod
    async def query_exists(self, selector: str) -> bool:
        """Check whether an element is currently attached"""
        pass

    @abstractmethod
    async def click(self, selector: str) -> None:
        """Click an element"""
        pass

    @abstractmethod
    async def fill(self, selector: str, value: str) -> None:
        """Fill input field"""
        pass

    @abstractmethod
    async def inner_text(self, selector: str) -> str:
        """Visible text of the first matching element"""
        pass

    @abstractmethod
    async def get_attribute(self, selector: str, name: str) -> Optional[str]:
        """Attribute of the first matching element"""
        pass

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Execute JavaScript"""
        pass

    @abstractmethod
    async def screenshot(self, selector: Optional[str] = None) -> bytes:
        """Take a screenshot of the page or of one element"""
        pass

    @abstractmethod
    async def content(self) -> str:
        """Serialized HTML of the current document"""
        pass

    @abstractmethod
    async def clear_cookies(self) -> None:
        """Drop cookies of the owning context"""
        pass

    @property
    @abstractmethod
    def url(self) -> str:
        """Current page URL"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the page"""
        pass


class IBrowserContext(ABC):
    """Interface for browser context"""

    @abstractmethod
    async def new_page(self) -> IPage:
        """Create a new page/tab"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the context"""
        pass


class IBrowserEngine(ABC):
    """
    Abstract interface for browser engines
    Following Dependency Inversion Principle (SOLID)
    """

    @abstractmethod
    async def initialize(self, config: BrowserConfig) -> None:
        """Initialize the browser engine"""
        pass

    @abstractmethod
    async def create_context(
        self,
        context_options: Dict[str, Any],
        resource_policy: ResourcePolicy = load_everything,
    ) -> IBrowserContext:
        """Create an isolated browser context whose pages obey resource_policy"""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Cleanup all resources"""
        pass

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """Check if engine is initialized"""
        pass
