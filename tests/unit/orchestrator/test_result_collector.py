"""Tests for the order-preserving result collector."""

import random
import threading
from datetime import timedelta

import pytest

from rutbatch.models import ErrorKind, Result
from rutbatch.orchestrator import IncompleteResultsError, ResultCollector


def ok(identifier, estado="ACTIVO"):
    return Result.success(identifier, {"estado": estado}, attempts=1, elapsed=timedelta(seconds=1))


class TestResultCollector:
    """Test suite for ResultCollector."""

    def test_out_of_order_records_come_back_in_input_order(self):
        identifiers = [str(n) for n in range(50)]
        collector = ResultCollector(identifiers)
        shuffled = identifiers[:]
        random.Random(7).shuffle(shuffled)

        for identifier in shuffled:
            collector.record(ok(identifier))

        assert [r.identifier for r in collector.finalize()] == identifiers

    def test_duplicates_are_scheduled_once(self):
        collector = ResultCollector(["A", "B", "A", "C"])

        assert collector.identifiers == ["A", "B", "C"]
        assert len(collector) == 4

    def test_duplicate_positions_mirror_the_first_result(self):
        collector = ResultCollector(["A", "B", "A", "C"])
        collector.record(ok("C"))
        collector.record(ok("A", estado="SUSPENDIDO"))
        collector.record(ok("B"))

        results = collector.finalize()

        assert [r.identifier for r in results] == ["A", "B", "A", "C"]
        assert results[0] is results[2]
        assert results[2].fields["estado"] == "SUSPENDIDO"

    def test_second_record_for_same_identifier_is_ignored(self):
        collector = ResultCollector(["A"])
        assert collector.record(ok("A", estado="first")) is True
        assert collector.record(ok("A", estado="second")) is False

        assert collector.finalize()[0].fields["estado"] == "first"

    def test_unknown_identifier_raises(self):
        collector = ResultCollector(["A"])

        with pytest.raises(KeyError):
            collector.record(ok("Z"))

    def test_finalize_before_complete_raises(self):
        collector = ResultCollector(["A", "B"])
        collector.record(ok("A"))

        assert collector.pending() == ["B"]
        assert not collector.is_complete()
        with pytest.raises(IncompleteResultsError):
            collector.finalize()

    def test_empty_input(self):
        collector = ResultCollector([])

        assert collector.is_complete()
        assert collector.finalize() == []

    def test_failures_keep_their_slot(self):
        collector = ResultCollector(["A", "B"])
        collector.record(Result.failure("B", ErrorKind.NAVIGATION, "down", attempts=1))
        collector.record(ok("A"))

        results = collector.finalize()

        assert results[1].error_kind is ErrorKind.NAVIGATION
        assert collector.get("B") is results[1]

    def test_concurrent_writers(self):
        identifiers = [f"id-{n}" for n in range(400)]
        collector = ResultCollector(identifiers)
        chunks = [identifiers[i::8] for i in range(8)]

        def writer(chunk):
            for identifier in reversed(chunk):
                collector.record(ok(identifier))

        threads = [threading.Thread(target=writer, args=(chunk,)) for chunk in chunks]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert [r.identifier for r in collector.finalize()] == identifiers
