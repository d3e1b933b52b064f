"""Submit/poll state machine around an external solving service.

ChallengeSolverClient.solve() performs exactly one submission and then polls
the resulting job until it reaches a terminal state or the poll budget is
spent. It never resubmits: retrying a whole lookup after a captcha failure is
the retry controller's decision.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from ..config.logger import logger
from ..config.settings import RunConfig
from ..errors import CaptchaTransportError
from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from .interfaces import (
    Challenge,
    ChallengeJob,
    ICaptchaService,
    JobStatus,
    ServiceReply,
    SolveOutcome,
    SolveStatus,
)


class SubmissionRejected(Exception):
    """The service answered a submission with status 0."""

    def __init__(self, reply: ServiceReply):
        super().__init__(reply.request)
        self.reply = reply


class ChallengeSolverClient:
    """Drives one challenge through submit -> poll* -> terminal."""

    def __init__(
        self,
        service: ICaptchaService,
        poll_interval: float = 5.0,
        max_poll_attempts: int = 30,
        poll_backoff: float = 1.0,
        max_poll_interval: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be at least 1")
        self.service = service
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.poll_backoff = poll_backoff
        self.max_poll_interval = max_poll_interval if max_poll_interval is not None else poll_interval
        self.circuit_breaker = circuit_breaker
        self._sleep = sleep
        self.logger = logger.bind(component="challenge_solver")

    @classmethod
    def from_config(
        cls,
        service: ICaptchaService,
        config: RunConfig,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> "ChallengeSolverClient":
        return cls(
            service,
            poll_interval=config.poll_interval,
            max_poll_attempts=config.max_poll_attempts,
            poll_backoff=config.poll_backoff,
            max_poll_interval=max(config.max_poll_interval, config.poll_interval),
            circuit_breaker=circuit_breaker,
        )

    def next_delay(self, delay: float) -> float:
        return min(delay * self.poll_backoff, self.max_poll_interval)

    async def _submit(self, challenge: Challenge) -> ServiceReply:
        reply = await self.service.submit(challenge)
        if not reply.ok:
            raise SubmissionRejected(reply)
        return reply

    async def solve(self, challenge: Challenge) -> SolveOutcome:
        """Solve a challenge.

        Returns a SolveOutcome; service and transport failures are reported
        through its status, never raised. Cancellation propagates.
        """
        try:
            if self.circuit_breaker is not None:
                reply = await self.circuit_breaker.call(self._submit, challenge)
            else:
                reply = await self._submit(challenge)
        except SubmissionRejected as e:
            self.logger.warning("challenge_submit_rejected", error=e.reply.request)
            return SolveOutcome(SolveStatus.SERVICE_ERROR, detail=e.reply.request)
        except CircuitBreakerOpen as e:
            self.logger.warning("challenge_submit_short_circuited", error=str(e))
            return SolveOutcome(SolveStatus.SERVICE_ERROR, detail=str(e))
        except CaptchaTransportError as e:
            self.logger.warning("challenge_submit_failed", error=str(e))
            return SolveOutcome(SolveStatus.SERVICE_ERROR, detail=str(e))

        job = ChallengeJob(reply.request)
        self.logger.info("challenge_submitted", job_id=job.job_id, method=challenge.method.value)
        return await self._poll_until_terminal(job)

    async def _poll_until_terminal(self, job: ChallengeJob) -> SolveOutcome:
        delay = self.poll_interval
        for poll in range(1, self.max_poll_attempts + 1):
            await self._sleep(delay)
            delay = self.next_delay(delay)

            try:
                reply = await self.service.poll(job.job_id)
            except CaptchaTransportError as e:
                self.logger.warning(
                    "challenge_poll_failed",
                    job_id=job.job_id,
                    poll=poll,
                    max_polls=self.max_poll_attempts,
                    error=str(e),
                )
                continue

            if reply.ok:
                job.advance(JobStatus.SOLVED, token=reply.request)
                self.logger.info("challenge_solved", job_id=job.job_id, polls=poll)
                return SolveOutcome(
                    SolveStatus.SOLVED, token=job.token, job_id=job.job_id, polls=poll, submitted=True
                )

            if reply.request == ICaptchaService.NOT_READY:
                job.advance(JobStatus.NOT_READY)
                self.logger.debug("challenge_not_ready", job_id=job.job_id, poll=poll)
                continue

            if ICaptchaService.UNSOLVABLE in reply.request:
                job.advance(JobStatus.UNSOLVABLE, detail=reply.request)
                self.logger.warning("challenge_unsolvable", job_id=job.job_id, polls=poll)
                return SolveOutcome(
                    SolveStatus.UNSOLVABLE, job_id=job.job_id, polls=poll, submitted=True, detail=reply.request
                )

            job.advance(JobStatus.ERROR, detail=reply.request)
            self.logger.warning("challenge_service_error", job_id=job.job_id, polls=poll, error=reply.request)
            return SolveOutcome(
                SolveStatus.SERVICE_ERROR, job_id=job.job_id, polls=poll, submitted=True, detail=reply.request
            )

        self.logger.warning("challenge_poll_timeout", job_id=job.job_id, polls=self.max_poll_attempts)
        return SolveOutcome(
            SolveStatus.TIMEOUT,
            job_id=job.job_id,
            polls=self.max_poll_attempts,
            submitted=True,
            detail=f"no answer after {self.max_poll_attempts} polls",
        )
