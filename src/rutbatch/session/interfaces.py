"""Session capability consumed by lookup flows.

A session is one exclusive, stateful browser-like execution context. Flows
only talk to it through ISession, so the orchestration core can be exercised
with in-memory fakes. Timeouts are in seconds.

Implementations report failures with the typed errors of rutbatch.errors:
NavigationError, SelectorTimeoutError and ExtractionError.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..captcha.interfaces import Challenge

# Output field name -> selector of the element holding its text
FieldSchema = Mapping[str, str]

# Value of a schema field that is absent or empty on the page
MISSING_FIELD = "N/A"


@dataclass(frozen=True)
class ChallengeLocator:
    """Where a page shows its challenge and where the answer goes.

    Attributes:
        site_key_selector: Widget element carrying the site key attribute.
        site_key_attribute: Attribute holding the site key.
        image_selector: Image element of a visual challenge.
        answer_selector: Input receiving the text of a solved image challenge.
    """
    site_key_selector: Optional[str] = None
    site_key_attribute: str = "data-sitekey"
    image_selector: Optional[str] = None
    answer_selector: Optional[str] = None


class ISession(ABC):
    """Page-interaction capability of one worker."""

    @abstractmethod
    async def navigate(self, url: str, timeout: float) -> None:
        pass

    @abstractmethod
    async def wait_visible(self, selector: str, timeout: float) -> None:
        pass

    @abstractmethod
    async def is_present(self, selector: str) -> bool:
        pass

    @abstractmethod
    async def set_value(self, selector: str, text: str) -> None:
        pass

    @abstractmethod
    async def click(self, selector: str) -> None:
        pass

    @abstractmethod
    async def extract_text(self, selector: str) -> str:
        pass

    @abstractmethod
    async def extract_fields(self, schema: FieldSchema) -> Optional[Dict[str, str]]:
        """Read every field of ``schema``; None when none of them is on the page."""
        pass

    @abstractmethod
    async def capture_challenge_artifact(self, locator: ChallengeLocator) -> Optional[Challenge]:
        """Capture the challenge shown on the page, or None if there is none."""
        pass

    @abstractmethod
    async def apply_challenge_solution(
        self, challenge: Challenge, solution: str, locator: ChallengeLocator
    ) -> None:
        pass

    @abstractmethod
    async def reset(self) -> None:
        """Forget state left by the previous identifier (cookies)."""
        pass

    @abstractmethod
    async def save_diagnostics(self, directory: Path, label: str) -> List[Path]:
        """Save a screenshot and the page HTML as ``label``.png and ``label``.html."""
        pass

    @abstractmethod
    async def spawn(self) -> "ISession":
        """Open another session for the same worker.

        The new session has its own cookies and storage, so resetting one of
        them never disturbs the other.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
