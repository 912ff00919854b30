from __future__ import annotations

import asyncio

import pytest

from servicedeskradar.adapters.query_client import QueryOutcome
from servicedeskradar.domain.enums import FailureKind
from servicedeskradar.domain.models import QueryFailure
from servicedeskradar.services.batch_executor import BatchQuery, ResilientBatchExecutor


def _value(v: object):
    async def run() -> object:
        return v

    return run


async def _boom() -> int:
    raise RuntimeError("kaboom")


def test_one_failure_does_not_stop_the_batch() -> None:
    progress: list[tuple[int, int, str]] = []
    executor = ResilientBatchExecutor(progress=lambda done, total, label: progress.append((done, total, label)))
    queries = [
        BatchQuery("a", _value(1)),
        BatchQuery("b", _boom),
        BatchQuery("c", _value([1, 2]), default=[]),
        BatchQuery("d", _value(4)),
    ]

    outcome = asyncio.run(executor.run(queries))

    assert outcome.values == {"a": 1, "b": 0, "c": [1, 2], "d": 4}
    assert len(outcome.failures) == 1
    failure = outcome.failures[0]
    assert failure.label == "b"
    assert failure.kind == FailureKind.UNEXPECTED
    assert [str(f) for f in outcome.failures] == ["b: kaboom"]
    assert [p[2] for p in progress] == ["a", "b", "c", "d"]
    assert progress[0] == (0, 4, "a")


def test_query_outcome_failures_are_unwrapped_with_default() -> None:
    async def failed() -> QueryOutcome[int]:
        return QueryOutcome(0, QueryFailure(label="inner", message="HTTP 500", kind=FailureKind.BACKEND))

    async def ok() -> QueryOutcome[list[int]]:
        return QueryOutcome([7])

    outcome = asyncio.run(
        ResilientBatchExecutor().run([BatchQuery("count", failed), BatchQuery("rows", ok, default=[])])
    )
    assert outcome.get("count") == 0
    assert outcome.get("rows") == [7]
    assert [f.label for f in outcome.failures] == ["count"]
    assert outcome.failures[0].label == "count"
    assert outcome.failures[0].kind == FailureKind.BACKEND


def test_concurrent_batch_keeps_insertion_order_and_bounds() -> None:
    running = {"now": 0, "peak": 0}

    def slow(v: int):
        async def run() -> int:
            running["now"] += 1
            running["peak"] = max(running["peak"], running["now"])
            await asyncio.sleep(0.01 * (5 - v))
            running["now"] -= 1
            return v

        return run

    labels: list[str] = []
    executor = ResilientBatchExecutor(concurrency=2, progress=lambda d, t, label: labels.append(label))
    queries = [BatchQuery(f"q{i}", slow(i)) for i in range(5)]
    queries.insert(2, BatchQuery("bad", _boom))

    outcome = asyncio.run(executor.run(queries))

    assert list(outcome.values) == ["q0", "q1", "bad", "q2", "q3", "q4"]
    assert [outcome.get(f"q{i}") for i in range(5)] == [0, 1, 2, 3, 4]
    assert running["peak"] <= 2
    assert len(outcome.failures) == 1
    assert labels == ["q0", "q1", "bad", "q2", "q3", "q4"]


def test_duplicate_labels_are_rejected() -> None:
    with pytest.raises(ValueError):
        asyncio.run(ResilientBatchExecutor().run([BatchQuery("a", _value(1)), BatchQuery("a", _value(2))]))


def test_empty_batch() -> None:
    outcome = asyncio.run(ResilientBatchExecutor().run([]))
    assert outcome.values == {}
    assert outcome.failures == []
