"""Browser automation layer.

PlaywrightEngine launches the browser chosen in BrowserConfig and hands out
isolated contexts whose pages are driven through the IPage interface.
"""

from .interfaces import BrowserConfig, BrowserType, IBrowserContext, IBrowserEngine, IPage, ResourcePolicy

__all__ = ["BrowserConfig", "BrowserType", "IBrowserContext", "IBrowserEngine", "IPage", "ResourcePolicy"]
