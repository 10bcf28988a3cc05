# tests/test_pgq.py
from __future__ import annotations

import fakeredis
import pytest

from leadpipe.exceptions import QueueError
from leadpipe.queueing.pgq import Pgq


class _Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def q(clock) -> Pgq:
    return Pgq(fakeredis.FakeRedis(), prefix="t", clock=clock)


def test_send_then_read_returns_payload_and_hides_message(q):
    (msg_id,) = q.send("jobs", {"image_path": "a.jpg"})

    first = q.read("jobs", vt_seconds=30, max_count=5)
    assert [m.msg_id for m in first] == [msg_id]
    assert first[0].message == {"image_path": "a.jpg"}
    assert first[0].read_ct == 1

    # invisible until the timeout passes
    assert q.read("jobs", vt_seconds=30, max_count=5) == []


def test_unacknowledged_message_is_redelivered_after_timeout(q, clock):
    q.send("jobs", {"n": 1})
    q.read("jobs", vt_seconds=30, max_count=1)

    clock.now += 31
    again = q.read("jobs", vt_seconds=30, max_count=1)
    assert len(again) == 1
    assert again[0].read_ct == 2


def test_read_respects_max_count_and_order(q):
    ids = q.send_batch("jobs", [{"n": i} for i in range(7)])

    batch = q.read("jobs", vt_seconds=30, max_count=5)
    assert [m.msg_id for m in batch] == ids[:5]
    assert q.depth("jobs") == 7


def test_delayed_message_is_not_visible_yet(q, clock):
    q.send("jobs", {"n": 1}, delay_seconds=10)
    assert q.read("jobs", vt_seconds=30, max_count=1) == []
    clock.now += 10
    assert len(q.read("jobs", vt_seconds=30, max_count=1)) == 1


def test_delete_acknowledges_permanently(q, clock):
    (msg_id,) = q.send("jobs", {"n": 1})
    q.read("jobs", vt_seconds=30, max_count=1)

    assert q.delete("jobs", msg_id) is True
    assert q.delete("jobs", msg_id) is False
    clock.now += 100
    assert q.read("jobs", vt_seconds=30, max_count=1) == []
    assert q.depth("jobs") == 0


def test_archive_moves_to_dead_letters(q, clock):
    (msg_id,) = q.send("jobs", {"company_id": "c1"})
    q.read("jobs", vt_seconds=30, max_count=1)

    assert q.archive("jobs", msg_id) is True
    assert q.depth("jobs") == 0
    clock.now += 100
    assert q.read("jobs", vt_seconds=30, max_count=1) == []

    dead = q.archived("jobs")
    assert [m.msg_id for m in dead] == [msg_id]
    assert dead[0].message == {"company_id": "c1"}
    assert dead[0].read_ct == 1
    assert q.archive("jobs", msg_id) is False


def test_queues_are_isolated(q):
    q.send("a", {"n": 1})
    assert q.read("b", vt_seconds=30, max_count=5) == []
    assert q.depth("a") == 1
    assert q.depth("b") == 0


def test_purge_drops_live_messages(q):
    q.send_batch("jobs", [{"n": 1}, {"n": 2}])
    assert q.purge("jobs") == 2
    assert q.depth("jobs") == 0


def test_read_failure_raises_queue_error():
    server = fakeredis.FakeServer()
    server.connected = False
    with pytest.raises(QueueError):
        Pgq(fakeredis.FakeRedis(server=server)).read("jobs", vt_seconds=30, max_count=5)


@pytest.mark.parametrize(
    "call",
    [
        lambda q: q.send("jobs", {"n": 1}),
        lambda q: q.send_batch("jobs", [{"n": 1}, {"n": 2}]),
        lambda q: q.delete("jobs", 1),
        lambda q: q.archive("jobs", 1),
        lambda q: q.depth("jobs"),
        lambda q: q.archived("jobs"),
        lambda q: q.purge("jobs"),
    ],
)
def test_every_operation_wraps_redis_failures(call):
    server = fakeredis.FakeServer()
    server.connected = False
    with pytest.raises(QueueError):
        call(Pgq(fakeredis.FakeRedis(server=server)))
