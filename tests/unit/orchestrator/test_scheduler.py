"""Tests for the worker pool."""

import asyncio

import pytest

from fakes import FakeFlow, FakeSessionFactory, no_sleep
from rutbatch.config.settings import PartitionStrategy, RunConfig
from rutbatch.errors import CaptchaSubmitError, ConfigurationError, SelectorTimeoutError
from rutbatch.models import ErrorKind, ResultStatus
from rutbatch.orchestrator import RetryController, Scheduler, contiguous_shards


def make_config(**overrides):
    values = dict(
        worker_count=2,
        max_concurrent_tasks=4,
        max_retries=3,
        retry_delay=0,
        per_task_timeout=5.0,
    )
    values.update(overrides)
    return RunConfig(**values)


def make_scheduler(config, flow, factory=None):
    factory = factory or FakeSessionFactory()
    controller = RetryController(flow, solver=None, config=config, sleep=no_sleep)
    return Scheduler(config, factory, controller), factory


class TestContiguousShards:

    def test_ceil_sized_shards(self):
        assert contiguous_shards(["a", "b", "c", "d", "e"], 2) == [["a", "b", "c"], ["d", "e"]]

    def test_more_workers_than_items(self):
        assert contiguous_shards(["a", "b", "c", "d", "e"], 4) == [["a", "b"], ["c", "d"], ["e"], []]

    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError):
            contiguous_shards(["a"], 0)


class TestScheduler:
    """Test suite for Scheduler."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", [PartitionStrategy.STATIC, PartitionStrategy.DYNAMIC])
    async def test_end_to_end_scenario(self, strategy):
        """100 and 300 succeed at once, 200 succeeds after one captcha failure."""
        config = make_config(max_retries=2, strategy=strategy)
        flow = FakeFlow({"200": [CaptchaSubmitError("ERROR_NO_SLOT_AVAILABLE"), {"estado": "ACTIVO"}]})
        scheduler, _ = make_scheduler(config, flow)

        results = await scheduler.run(["100", "200", "300"])

        assert [r.identifier for r in results] == ["100", "200", "300"]
        assert all(r.status is ResultStatus.SUCCESS for r in results)
        assert [r.attempts for r in results] == [1, 2, 1]

    @pytest.mark.asyncio
    async def test_output_order_with_duplicates(self):
        config = make_config(worker_count=3, max_concurrent_tasks=3, strategy=PartitionStrategy.DYNAMIC)
        flow = FakeFlow()
        scheduler, _ = make_scheduler(config, flow)
        identifiers = ["5", "1", "5", "9", "1", "7"]

        results = await scheduler.run(identifiers)

        assert [r.identifier for r in results] == identifiers
        assert sorted(flow.calls) == ["1", "5", "7", "9"]

    @pytest.mark.asyncio
    async def test_attempt_bound(self):
        config = make_config(max_retries=2)
        flow = FakeFlow({
            "a": [CaptchaSubmitError("x")],
            "b": [SelectorTimeoutError("#numNit")],
        })
        scheduler, _ = make_scheduler(config, flow)

        results = await scheduler.run(["a", "b", "c"])

        assert all(r.attempts <= config.max_retries for r in results)
        assert results[0].error_kind is ErrorKind.CAPTCHA_EXHAUSTED
        assert results[0].attempts == 2
        assert results[1].error_kind is ErrorKind.SELECTOR_TIMEOUT
        assert results[1].attempts == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("strategy", [PartitionStrategy.STATIC, PartitionStrategy.DYNAMIC])
    async def test_admission_bound(self, strategy):
        """Lanes outnumber permits; concurrent lookups never exceed the gate."""
        config = make_config(worker_count=4, max_concurrent_tasks=5, tasks_per_worker=3, strategy=strategy)
        flow = FakeFlow(delay=0.01)
        scheduler, _ = make_scheduler(config, flow)

        results = await scheduler.run([str(n) for n in range(60)])

        assert len(results) == 60
        assert all(r.is_success for r in results)
        assert 1 < flow.peak_active <= 5

    @pytest.mark.asyncio
    async def test_static_shards_stay_on_their_worker(self):
        config = make_config(worker_count=2, max_concurrent_tasks=2)
        flow = FakeFlow()
        scheduler, _ = make_scheduler(config, flow)

        await scheduler.run(["a", "b", "c", "d", "e"])

        owners = {i: s.name for i, s in flow.sessions_by_identifier.items()}
        assert owners == {
            "a": "worker-0", "b": "worker-0", "c": "worker-0",
            "d": "worker-1", "e": "worker-1",
        }

    @pytest.mark.asyncio
    async def test_shard_failure_isolation(self):
        config = make_config(worker_count=3, max_concurrent_tasks=3)
        flow = FakeFlow()
        factory = FakeSessionFactory(failing_workers={1})
        scheduler, _ = make_scheduler(config, flow, factory)

        results = await scheduler.run(["a", "b", "c", "d", "e", "f"])

        kinds = [r.error_kind for r in results]
        assert kinds == [None, None, ErrorKind.SESSION_STARTUP, ErrorKind.SESSION_STARTUP, None, None]
        assert results[2].attempts == 0
        assert "c" not in flow.calls and "d" not in flow.calls

    @pytest.mark.asyncio
    async def test_dynamic_survives_one_failed_worker(self):
        config = make_config(worker_count=3, max_concurrent_tasks=3, strategy=PartitionStrategy.DYNAMIC)
        flow = FakeFlow()
        factory = FakeSessionFactory(failing_workers={0})
        scheduler, _ = make_scheduler(config, flow, factory)

        results = await scheduler.run([str(n) for n in range(10)])

        assert all(r.is_success for r in results)
        assert sorted(flow.calls, key=int) == [str(n) for n in range(10)]

    @pytest.mark.asyncio
    async def test_dynamic_with_every_worker_failed(self):
        config = make_config(worker_count=2, max_concurrent_tasks=2, strategy=PartitionStrategy.DYNAMIC)
        factory = FakeSessionFactory(failing_workers={0, 1})
        scheduler, _ = make_scheduler(config, FakeFlow(), factory)

        results = await scheduler.run(["a", "b", "c"])

        assert [r.error_kind for r in results] == [ErrorKind.SESSION_STARTUP] * 3

    @pytest.mark.asyncio
    async def test_no_identifier_is_dequeued_twice(self):
        config = make_config(worker_count=4, max_concurrent_tasks=8, tasks_per_worker=2,
                             strategy=PartitionStrategy.DYNAMIC)
        flow = FakeFlow(delay=0.001)
        scheduler, _ = make_scheduler(config, flow)

        await scheduler.run([str(n) for n in range(100)])

        assert len(flow.calls) == 100
        assert len(set(flow.calls)) == 100

    @pytest.mark.asyncio
    async def test_worker_count_clamped_to_identifiers(self):
        config = make_config(worker_count=4, max_concurrent_tasks=4)
        scheduler, factory = make_scheduler(config, FakeFlow())

        await scheduler.run(["a", "b"])

        assert factory.attempted == [0, 1]

    @pytest.mark.asyncio
    async def test_sessions_and_lanes_are_closed(self):
        config = make_config(worker_count=2, max_concurrent_tasks=4, tasks_per_worker=2)
        scheduler, factory = make_scheduler(config, FakeFlow())

        await scheduler.run([str(n) for n in range(8)])

        for session in factory.sessions.values():
            assert session.closed
            assert len(session.children) == 1
            assert all(child.closed for child in session.children)

    @pytest.mark.asyncio
    async def test_empty_input(self):
        scheduler, factory = make_scheduler(make_config(), FakeFlow())

        assert await scheduler.run([]) == []
        assert factory.attempted == []

    @pytest.mark.asyncio
    async def test_cancel_records_unfinished_identifiers(self):
        config = make_config(worker_count=2, max_concurrent_tasks=2)
        flow = FakeFlow(delay=10.0)
        scheduler, factory = make_scheduler(config, flow)

        run = asyncio.create_task(scheduler.run(["a", "b", "c", "d"]))
        await asyncio.sleep(0.05)
        scheduler.cancel()
        results = await asyncio.wait_for(run, timeout=2.0)

        assert [r.identifier for r in results] == ["a", "b", "c", "d"]
        assert all(r.error_kind is ErrorKind.CANCELLED for r in results)
        assert all(s.closed for s in factory.sessions.values())

    @pytest.mark.asyncio
    async def test_run_deadline_fills_every_slot(self):
        config = make_config(worker_count=2, max_concurrent_tasks=2, run_deadline=0.1)
        flow = FakeFlow(delay=10.0)
        scheduler, factory = make_scheduler(config, flow)

        results = await asyncio.wait_for(scheduler.run(["a", "b", "c", "d"]), timeout=2.0)

        assert len(results) == 4
        assert all(r.error_kind is ErrorKind.DEADLINE_EXCEEDED for r in results)
        assert all(s.closed for s in factory.sessions.values())

    def test_invalid_worker_count_is_rejected(self):
        with pytest.raises(ConfigurationError):
            make_config(worker_count=0)

    def test_gate_smaller_than_pool_is_rejected(self):
        with pytest.raises(ConfigurationError):
            make_config(worker_count=4, max_concurrent_tasks=2)


class TestEarlyCancel:
    """Cancelling before run() starts is not forgotten."""

    @pytest.mark.asyncio
    async def test_cancel_before_run_records_everything_cancelled(self):
        flow = FakeFlow()
        scheduler, factory = make_scheduler(make_config(), flow)

        scheduler.cancel()
        results = await scheduler.run(["a", "b", "a"])

        assert [r.identifier for r in results] == ["a", "b", "a"]
        assert all(r.error_kind is ErrorKind.CANCELLED for r in results)
        assert all(r.attempts == 0 for r in results)
        assert factory.attempted == []
        assert flow.calls == []
