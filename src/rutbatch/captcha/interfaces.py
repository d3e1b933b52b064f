"""Interfaces and data model for the captcha system.

A Challenge is what the page shows (an image or a site key). The external
solving service turns it into a solution through a two-step protocol: submit
the challenge, then poll the returned job id until a terminal answer arrives.

ChallengeJob tracks that protocol for one submission. Its status only moves
forward along::

    SUBMITTED -> NOT_READY* -> SOLVED | UNSOLVABLE | ERROR

and is frozen once terminal.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ChallengeMethod(Enum):
    """How a challenge is sent to the solving service."""
    IMAGE_BODY = "image-body"  # base64 image, solution is the text shown
    SITE_KEY = "site-key"      # widget site key + page URL, solution is a token


@dataclass(frozen=True)
class Challenge:
    """A challenge captured from a page.

    Attributes:
        method: Submission method.
        payload: Image bytes for IMAGE_BODY, the site key for SITE_KEY.
        page_url: URL of the page showing the challenge.
    """
    method: ChallengeMethod
    payload: Union[bytes, str]
    page_url: str = ""


@dataclass(frozen=True)
class ServiceReply:
    """Raw acknowledgement of the solving service.

    ``status == 1`` means success; ``request`` then holds the job id (submit)
    or the solution (poll). Otherwise ``request`` holds an error code or the
    not-ready sentinel.
    """
    status: int
    request: str

    @property
    def ok(self) -> bool:
        return self.status == 1


class JobStatus(Enum):
    SUBMITTED = "submitted"
    NOT_READY = "not_ready"
    SOLVED = "solved"
    UNSOLVABLE = "unsolvable"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SOLVED, JobStatus.UNSOLVABLE, JobStatus.ERROR)


class InvalidJobTransition(RuntimeError):
    """A poll tried to move a job backwards or out of a terminal state."""


class ChallengeJob:
    """State of one submitted challenge."""

    _ALLOWED = {
        JobStatus.SUBMITTED: {JobStatus.NOT_READY, JobStatus.SOLVED, JobStatus.UNSOLVABLE, JobStatus.ERROR},
        JobStatus.NOT_READY: {JobStatus.NOT_READY, JobStatus.SOLVED, JobStatus.UNSOLVABLE, JobStatus.ERROR},
    }

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.status = JobStatus.SUBMITTED
        self.token: Optional[str] = None
        self.detail: Optional[str] = None

    def advance(self, status: JobStatus, token: Optional[str] = None, detail: Optional[str] = None) -> None:
        """Apply a poll response.

        Raises:
            InvalidJobTransition: If the job is terminal or the move is not allowed.
        """
        if status not in self._ALLOWED.get(self.status, set()):
            raise InvalidJobTransition(
                f"job {self.job_id}: {self.status.value} -> {status.value} is not allowed"
            )
        self.status = status
        if token is not None:
            self.token = token
        if detail is not None:
            self.detail = detail

    def __repr__(self) -> str:
        return f"ChallengeJob(job_id={self.job_id!r}, status={self.status.value})"


class SolveStatus(Enum):
    """Caller-facing outcome of one solve call."""
    SOLVED = "solved"
    UNSOLVABLE = "unsolvable"
    SERVICE_ERROR = "service_error"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class SolveOutcome:
    """Result of ChallengeSolverClient.solve.

    Attributes:
        status: Terminal outcome.
        token: Solution text/token when SOLVED.
        job_id: Job id when submission was accepted.
        polls: Poll requests issued (0 when submission failed).
        submitted: Whether the service accepted the challenge.
        detail: Service error code or other diagnostics.
    """
    status: SolveStatus
    token: Optional[str] = None
    job_id: Optional[str] = None
    polls: int = 0
    submitted: bool = False
    detail: Optional[str] = None

    @property
    def solved(self) -> bool:
        return self.status is SolveStatus.SOLVED


class ICaptchaService(ABC):
    """Interface for an external two-endpoint solving service.

    Implementations translate transport problems (connection errors, HTTP
    timeouts, undecodable bodies) into CaptchaTransportError and return every
    decoded response as a ServiceReply, leaving interpretation to the caller.
    """

    NOT_READY = "CAPCHA_NOT_READY"
    UNSOLVABLE = "ERROR_CAPTCHA_UNSOLVABLE"

    @abstractmethod
    async def submit(self, challenge: Challenge) -> ServiceReply:
        """Send a challenge; on success ``request`` is the job id."""
        pass

    @abstractmethod
    async def poll(self, job_id: str) -> ServiceReply:
        """Query a job; on success ``request`` is the solution."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None
