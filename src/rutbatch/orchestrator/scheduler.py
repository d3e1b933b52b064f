"""Worker pool.

The scheduler owns a run: it creates one persistent session per worker,
hands identifiers to workers (contiguous shards or a shared queue), bounds
the number of lookups executing at once with a global admission gate and
feeds every Result into a ResultCollector.

Workers are asyncio tasks on one event loop. The expensive work happens in
the browser processes the sessions drive, so workers overlap on I/O. A worker
may host several lanes (sessions spawned from its own, each with separate
cookies); every lane of every worker competes for the same gate. A permit is
held for one lookup attempt, not across the pause before a retry.

run() always returns one Result per input row. Identifiers that never got to
run are recorded as session_startup, cancelled or deadline_exceeded errors.
"""

import asyncio
import math
from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Sequence

from ..config.logger import logger
from ..config.settings import PartitionStrategy, RunConfig
from ..errors import ConfigurationError
from ..models import ErrorKind, Result
from ..session.interfaces import ISession
from .collector import ResultCollector
from .retry import RetryController

SessionFactory = Callable[[int], Awaitable[ISession]]


def contiguous_shards(identifiers: Sequence[str], workers: int) -> List[List[str]]:
    """Split into ``workers`` contiguous shards of size ceil(N / workers).

    Trailing shards can be empty when N is not much larger than ``workers``.
    """
    if workers < 1:
        raise ValueError("workers must be at least 1")
    size = max(1, math.ceil(len(identifiers) / workers))
    return [list(identifiers[i * size:(i + 1) * size]) for i in range(workers)]


class Scheduler:
    """Runs a batch of identifiers through a bounded pool of sessions."""

    def __init__(self, config: RunConfig, session_factory: SessionFactory, controller: RetryController):
        if config.max_concurrent_tasks < config.worker_count:
            raise ConfigurationError("max_concurrent_tasks must be >= worker_count")
        self.config = config
        self.session_factory = session_factory
        self.controller = controller

        self._workers: List[asyncio.Task] = []
        self._cancelled = False
        self._started_workers = 0
        self.logger = logger.bind(component="scheduler")

    async def run(self, identifiers: Sequence[str]) -> List[Result]:
        """Process every identifier and return Results in input order."""
        collector = ResultCollector(identifiers)
        work = collector.identifiers
        self._started_workers = 0

        if not work:
            return collector.finalize()

        if self._cancelled:
            self.logger.warning("run_cancelled_before_start", identifiers=len(collector))
            self._fill_pending(collector, ErrorKind.CANCELLED)
            return collector.finalize()

        gate = asyncio.Semaphore(self.config.max_concurrent_tasks)
        queues = self._partition(work)
        shared = self.config.strategy is PartitionStrategy.DYNAMIC

        self.logger.info(
            "run_started",
            identifiers=len(collector),
            distinct=len(work),
            workers=len(queues),
            strategy=self.config.strategy.value,
            max_concurrent=self.config.max_concurrent_tasks,
            tasks_per_worker=self.config.tasks_per_worker,
        )

        self._workers = [
            asyncio.create_task(self._worker(worker_id, queue, collector, gate, shared), name=f"worker-{worker_id}")
            for worker_id, queue in enumerate(queues)
        ]

        try:
            _, unfinished = await asyncio.wait(self._workers, timeout=self.config.run_deadline)
        except asyncio.CancelledError:
            await self._stop_workers(self._workers)
            raise

        deadline_hit = bool(unfinished)
        if deadline_hit:
            self.logger.warning("run_deadline_exceeded", deadline=self.config.run_deadline)
            await self._stop_workers(unfinished)

        for task in self._workers:
            if not task.cancelled() and task.exception() is not None:
                self.logger.error("worker_crashed", worker=task.get_name(), error=repr(task.exception()))

        self._fill_pending(collector, self._unfinished_kind(deadline_hit))
        self.logger.info("run_finished", identifiers=len(collector))
        return collector.finalize()

    def cancel(self) -> None:
        """Abort the run; unfinished identifiers are recorded as cancelled.

        A scheduler cancelled before run() starts records every identifier as
        cancelled without opening any session.
        """
        self._cancelled = True
        for task in self._workers:
            task.cancel()

    def _partition(self, work: List[str]) -> List[Deque[str]]:
        workers = min(self.config.worker_count, len(work))
        if self.config.strategy is PartitionStrategy.DYNAMIC:
            shared: Deque[str] = deque(work)
            return [shared] * workers
        return [deque(shard) for shard in contiguous_shards(work, workers) if shard]

    async def _worker(
        self,
        worker_id: int,
        queue: Deque[str],
        collector: ResultCollector,
        gate: asyncio.Semaphore,
        shared: bool,
    ) -> None:
        log = self.logger.bind(worker=worker_id)
        try:
            session = await self.session_factory(worker_id)
        except Exception as e:
            log.error("worker_session_failed", error=str(e))
            if not shared:
                self._fail_queue(queue, collector, f"worker {worker_id} session failed: {e}")
            return

        self._started_workers += 1
        sessions = [session]
        processed = 0
        log.info("worker_started", lanes=self.config.tasks_per_worker)
        try:
            for _ in range(1, self.config.tasks_per_worker):
                try:
                    sessions.append(await session.spawn())
                except Exception as e:
                    log.warning("worker_lane_failed", error=str(e), lanes=len(sessions))
                    break

            counts = await asyncio.gather(*(self._lane(s, queue, collector, gate) for s in sessions))
            processed = sum(counts)
        finally:
            for s in reversed(sessions):
                try:
                    await s.close()
                except Exception as e:
                    log.warning("worker_session_close_failed", error=str(e))
            log.info("worker_finished", processed=processed)

    async def _lane(
        self,
        session: ISession,
        queue: Deque[str],
        collector: ResultCollector,
        gate: asyncio.Semaphore,
    ) -> int:
        processed = 0
        while queue:
            identifier = queue.popleft()
            result = await self.controller.process(session, identifier, gate)
            collector.record(result)
            processed += 1
        return processed

    def _fail_queue(self, queue: Deque[str], collector: ResultCollector, message: str) -> None:
        while queue:
            identifier = queue.popleft()
            collector.record(Result.failure(identifier, ErrorKind.SESSION_STARTUP, message, attempts=0))

    def _unfinished_kind(self, deadline_hit: bool) -> ErrorKind:
        if deadline_hit:
            return ErrorKind.DEADLINE_EXCEEDED
        if self._cancelled:
            return ErrorKind.CANCELLED
        if self._started_workers == 0:
            return ErrorKind.SESSION_STARTUP
        return ErrorKind.UNEXPECTED

    def _fill_pending(self, collector: ResultCollector, kind: ErrorKind) -> None:
        pending = collector.pending()
        if not pending:
            return
        self.logger.warning("unfinished_identifiers_recorded", count=len(pending), kind=kind.value)
        for identifier in pending:
            collector.record(Result.failure(identifier, kind, f"not processed: {kind.value}", attempts=0))

    @staticmethod
    async def _stop_workers(tasks) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
