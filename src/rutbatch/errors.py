"""Error taxonomy for RUT status lookups.

Every failure that can happen while resolving one identifier is raised as a
subclass of RutLookupError. Each class carries a fixed ErrorKind tag and a
``retryable`` flag, so callers branch on types instead of parsing messages.

Only captcha-service failures are retryable: the external solving service is
flaky, while page and DOM failures are deterministic for the same input.

Run-fatal conditions (bad configuration, unreadable input) are not lookup
errors and derive from RunAbortedError instead.
"""

from typing import Optional

from .models import ErrorKind


class RutLookupError(Exception):
    """Base class for failures of a single identifier lookup."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    retryable: bool = False

    def __init__(self, message: str, *, identifier: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.identifier = identifier


class SessionStartupError(RutLookupError):
    """The worker's browser session could not be created."""

    kind = ErrorKind.SESSION_STARTUP


class NavigationError(RutLookupError):
    """Page navigation failed or timed out."""

    kind = ErrorKind.NAVIGATION


class SelectorTimeoutError(RutLookupError):
    """An expected element never became visible."""

    kind = ErrorKind.SELECTOR_TIMEOUT


class SiteValidationError(RutLookupError):
    """The registry explicitly rejected the identifier."""

    kind = ErrorKind.SITE_VALIDATION


class ExtractionError(RutLookupError):
    """The result page loaded but its fields could not be read."""

    kind = ErrorKind.EXTRACTION


class CaptchaError(RutLookupError):
    """Base class for failures of the external solving service."""

    retryable = True


class CaptchaSubmitError(CaptchaError):
    """The solving service refused or failed to accept the challenge."""

    kind = ErrorKind.CAPTCHA_SUBMIT


class CaptchaServiceError(CaptchaError):
    """The solving service answered a poll with an error."""

    kind = ErrorKind.CAPTCHA_SERVICE


class CaptchaPollTimeout(CaptchaError):
    """No terminal answer after the configured number of polls."""

    kind = ErrorKind.CAPTCHA_POLL_TIMEOUT


class CaptchaUnsolvable(CaptchaError):
    """The solving service declared the challenge unsolvable."""

    kind = ErrorKind.CAPTCHA_UNSOLVABLE
    retryable = False


class CaptchaTransportError(Exception):
    """Low-level HTTP failure talking to the solving service.

    Raised by service adapters; the solver client decides whether it is a
    terminal submit failure or a wasted poll.
    """


class RunAbortedError(Exception):
    """Base class for conditions that abort a run before any task starts."""


class ConfigurationError(RunAbortedError):
    """The run configuration is invalid."""


class InputSourceError(RunAbortedError):
    """The identifier source could not be read."""
