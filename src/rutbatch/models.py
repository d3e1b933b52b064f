"""Core data model for a lookup run.

Task and Result are immutable records. Results are created by the retry
controller once an identifier reaches a terminal state and are owned by the
result collector afterwards.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Dict, Optional


class ResultStatus(Enum):
    """Terminal status of one identifier."""
    SUCCESS = "success"
    ERROR = "error"


class ErrorKind(Enum):
    """Machine-readable failure tag carried by error results."""
    SESSION_STARTUP = "session_startup"
    NAVIGATION = "navigation"
    SELECTOR_TIMEOUT = "selector_timeout"
    SITE_VALIDATION = "site_validation"
    CAPTCHA_SUBMIT = "captcha_submit"
    CAPTCHA_SERVICE = "captcha_service"
    CAPTCHA_POLL_TIMEOUT = "captcha_poll_timeout"
    CAPTCHA_UNSOLVABLE = "captcha_unsolvable"
    CAPTCHA_EXHAUSTED = "captcha_exhausted"  # retries used up on captcha failures
    EXTRACTION = "extraction"
    TASK_TIMEOUT = "task_timeout"
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True)
class Task:
    """One attempt at resolving one identifier."""
    identifier: str
    attempt: int = 1

    def __post_init__(self):
        if self.attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {self.attempt}")

    def next_attempt(self) -> "Task":
        return Task(self.identifier, self.attempt + 1)


@dataclass(frozen=True)
class Result:
    """Terminal outcome for one identifier.

    Attributes:
        identifier: The looked-up value, as read from the input.
        status: SUCCESS or ERROR.
        fields: Extracted registry fields (only on success).
        error_kind: Failure tag (only on error).
        error_message: Human-readable diagnostics; never used for branching.
        attempts: Number of attempts made (0 when none could start).
        elapsed: Wall time spent on the identifier.
    """
    identifier: str
    status: ResultStatus
    fields: Optional[Dict[str, str]] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    attempts: int = 0
    elapsed: timedelta = field(default_factory=timedelta)

    @property
    def is_success(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @classmethod
    def success(
        cls,
        identifier: str,
        fields: Dict[str, str],
        attempts: int,
        elapsed: timedelta,
    ) -> "Result":
        return cls(
            identifier=identifier,
            status=ResultStatus.SUCCESS,
            fields=dict(fields),
            attempts=attempts,
            elapsed=elapsed,
        )

    @classmethod
    def failure(
        cls,
        identifier: str,
        kind: ErrorKind,
        message: str,
        attempts: int,
        elapsed: Optional[timedelta] = None,
    ) -> "Result":
        return cls(
            identifier=identifier,
            status=ResultStatus.ERROR,
            error_kind=kind,
            error_message=message,
            attempts=attempts,
            elapsed=elapsed or timedelta(),
        )
