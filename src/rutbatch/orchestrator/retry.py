"""Per-identifier attempt loop.

RetryController.process() turns one identifier into exactly one Result. It
classifies each attempt by the type of the error raised by the lookup flow:
captcha-service failures are retried after a delay, every other failure is
terminal on first occurrence.

An optional admission gate is acquired around each attempt only, so the pause
before a retry does not hold a permit. The per-task timeout covers the whole
identifier, waits for a permit included.
"""

import asyncio
import contextlib
import time
from datetime import timedelta
from typing import AsyncContextManager, Awaitable, Callable, Dict, Optional, Protocol

from ..captcha.client import ChallengeSolverClient
from ..config.logger import logger
from ..config.settings import RunConfig
from ..errors import RutLookupError
from ..models import ErrorKind, Result, Task
from ..session.interfaces import ISession


class LookupFlow(Protocol):
    """One end-to-end lookup attempt on a session."""

    async def run(self, session: ISession, identifier: str, solver: ChallengeSolverClient) -> Dict[str, str]:
        ...


class _Progress:
    """Attempt in flight, readable after the task timeout fires."""

    def __init__(self, identifier: str):
        self.task = Task(identifier)
        self.started = time.monotonic()

    def elapsed(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self.started)


class RetryController:
    """Drives one identifier through up to ``max_retries`` attempts."""

    def __init__(
        self,
        flow: LookupFlow,
        solver: ChallengeSolverClient,
        config: RunConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.flow = flow
        self.solver = solver
        self.config = config
        self._sleep = sleep

    async def process(
        self,
        session: ISession,
        identifier: str,
        gate: Optional[AsyncContextManager] = None,
    ) -> Result:
        """Resolve ``identifier`` on ``session``.

        ``gate`` (typically an asyncio.Semaphore) is held while an attempt
        runs.

        Never raises for lookup failures; they are reported in the Result.
        Cancellation propagates.
        """
        progress = _Progress(identifier)
        try:
            return await asyncio.wait_for(
                self._attempt_loop(session, progress, gate if gate is not None else contextlib.nullcontext()),
                timeout=self.config.per_task_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "lookup_timed_out",
                identifier=identifier,
                attempt=progress.task.attempt,
                timeout=self.config.per_task_timeout,
            )
            return Result.failure(
                identifier,
                ErrorKind.TASK_TIMEOUT,
                f"lookup exceeded {self.config.per_task_timeout}s",
                attempts=progress.task.attempt,
                elapsed=progress.elapsed(),
            )

    async def _attempt_loop(self, session: ISession, progress: _Progress, gate: AsyncContextManager) -> Result:
        identifier = progress.task.identifier
        log = logger.bind(identifier=identifier)

        while True:
            attempt = progress.task.attempt
            try:
                async with gate:
                    fields = await self.flow.run(session, identifier, self.solver)
            except RutLookupError as e:
                if not e.retryable:
                    log.warning("lookup_failed", kind=e.kind.value, attempt=attempt, error=e.message)
                    return Result.failure(identifier, e.kind, e.message, attempts=attempt, elapsed=progress.elapsed())

                if attempt >= self.config.max_retries:
                    log.warning("lookup_retries_exhausted", kind=e.kind.value, attempts=attempt, error=e.message)
                    return Result.failure(
                        identifier,
                        ErrorKind.CAPTCHA_EXHAUSTED,
                        f"{e.kind.value} after {attempt} attempts: {e.message}",
                        attempts=self.config.max_retries,
                        elapsed=progress.elapsed(),
                    )

                log.info(
                    "lookup_retry_scheduled",
                    kind=e.kind.value,
                    attempt=attempt,
                    max_retries=self.config.max_retries,
                    delay=self.config.retry_delay,
                )
                await self._sleep(self.config.retry_delay)
                progress.task = progress.task.next_attempt()
                continue
            except Exception as e:
                log.error("lookup_unexpected_error", attempt=attempt, error=repr(e), exc_info=True)
                return Result.failure(
                    identifier, ErrorKind.UNEXPECTED, repr(e), attempts=attempt, elapsed=progress.elapsed()
                )

            log.info("lookup_succeeded", attempts=attempt)
            return Result.success(identifier, fields, attempts=attempt, elapsed=progress.elapsed())
