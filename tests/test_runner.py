# tests/test_runner.py
from __future__ import annotations

import threading

import pytest

from leadpipe.exceptions import DataError, QueueError
from leadpipe.queueing.runner import PROCESSED, SKIPPED, BatchRunner


class ScriptedStage:
    """Stage whose per-message behaviour is keyed on payload["n"]."""

    name = "test-stage"
    queue = "jobs"

    def __init__(self, fail=(), skip=(), prepare_error=None, failure_error=None):
        self.fail = set(fail)
        self.skip = set(skip)
        self.prepare_error = prepare_error
        self.failure_error = failure_error
        self.prepared_batches = 0
        self.processed: list[int] = []
        self.failures: list[tuple[int, str]] = []
        self._lock = threading.Lock()

    def prepare(self, messages):
        self.prepared_batches += 1
        if self.prepare_error is not None:
            raise self.prepare_error
        return {m.msg_id: m.message["n"] * 10 for m in messages}

    def process(self, message, prepared):
        n = message.message["n"]
        assert prepared[message.msg_id] == n * 10
        if n in self.fail:
            raise DataError(f"bad item {n}")
        with self._lock:
            self.processed.append(n)
        return SKIPPED if n in self.skip else PROCESSED

    def on_failure(self, message, exc):
        self.failures.append((message.message["n"], str(exc)))
        if self.failure_error is not None:
            raise self.failure_error


def _fill(pgq, count):
    return pgq.send_batch("jobs", [{"n": i} for i in range(1, count + 1)])


def test_one_failure_does_not_block_siblings(pgq):
    _fill(pgq, 5)
    stage = ScriptedStage(fail={3})

    summary = BatchRunner(stage, pgq, batch_size=5).run()

    assert summary.read == 5
    assert summary.processed == 4
    assert summary.failed == 1
    assert summary.acked == 4
    assert summary.archived == 1
    assert summary.status == "partial"
    assert sorted(stage.processed) == [1, 2, 4, 5]
    assert stage.failures == [(3, "bad item 3")]
    assert summary.errors[0]["error"] == "DataError: bad item 3"

    assert pgq.depth("jobs") == 0
    dead = pgq.archived("jobs")
    assert [m.message for m in dead] == [{"n": 3}]


def test_skipped_results_are_acked_and_counted(pgq):
    _fill(pgq, 3)
    summary = BatchRunner(ScriptedStage(skip={2}), pgq).run()

    assert summary.processed == 2
    assert summary.skipped == 1
    assert summary.acked == 3
    assert summary.status == "ok"


def test_empty_queue_is_a_noop(pgq):
    stage = ScriptedStage()
    summary = BatchRunner(stage, pgq).run()

    assert summary.read == 0
    assert summary.status == "empty"
    assert summary.to_dict()["errors"] == []
    assert stage.prepared_batches == 0
    assert stage.processed == []
    assert stage.failures == []


def test_batch_size_bounds_the_read(pgq):
    _fill(pgq, 8)
    summary = BatchRunner(ScriptedStage(), pgq, batch_size=5).run()
    assert summary.read == 5
    assert pgq.depth("jobs") == 3


def test_prepare_failure_leaves_messages_unacknowledged(pgq):
    _fill(pgq, 3)
    stage = ScriptedStage(prepare_error=RuntimeError("signing service down"))

    with pytest.raises(RuntimeError):
        BatchRunner(stage, pgq).run()

    assert stage.processed == []
    assert pgq.depth("jobs") == 3
    assert pgq.archived("jobs") == []


def test_raising_failure_handler_still_archives(pgq):
    _fill(pgq, 2)
    stage = ScriptedStage(fail={1}, failure_error=RuntimeError("db gone"))

    summary = BatchRunner(stage, pgq).run()

    assert summary.failed == 1
    assert summary.archived == 1
    assert summary.acked == 1


def test_delete_error_is_logged_not_raised(pgq, monkeypatch):
    _fill(pgq, 2)

    def boom(queue, msg_id):
        raise QueueError("connection reset")

    monkeypatch.setattr(pgq, "delete", boom)
    summary = BatchRunner(ScriptedStage(), pgq).run()

    assert summary.processed == 2
    assert summary.acked == 0


def test_read_failure_propagates(pgq, monkeypatch):
    def boom(queue, vt_seconds, max_count):
        raise QueueError("redis unreachable")

    monkeypatch.setattr(pgq, "read", boom)
    with pytest.raises(QueueError):
        BatchRunner(ScriptedStage(), pgq).run()
