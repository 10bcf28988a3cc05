# leadpipe/queueing/pgq.py
"""
Visibility-timeout message queue on Redis (pgmq semantics).

Keys per queue (prefix defaults to "pgq"):

    {prefix}:{queue}:seq      INCR counter for message ids
    {prefix}:{queue}:msgs     HASH  msg_id -> JSON envelope
    {prefix}:{queue}:vt       ZSET  msg_id -> visible-at (epoch seconds)
    {prefix}:{queue}:read_ct  HASH  msg_id -> delivery count
    {prefix}:{queue}:archive  HASH  msg_id -> JSON envelope (dead letters)

read() claims visible messages with a WATCH/MULTI optimistic transaction,
pushing their visible-at forward by the visibility timeout. A consumer that
never deletes or archives a message simply lets it reappear, so delivery is
at-least-once.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from redis import Redis
from redis.exceptions import RedisError, WatchError

from leadpipe.exceptions import QueueError

log = logging.getLogger(__name__)


@dataclass
class QueueMessage:
    msg_id: int
    read_ct: int
    enqueued_at: float
    vt: float
    message: dict[str, Any] = field(default_factory=dict)


class Pgq:
    def __init__(
        self,
        redis: Redis,
        *,
        prefix: str = "pgq",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.redis = redis
        self.prefix = prefix
        self.clock = clock

    # ---- keys ----
    def _key(self, queue: str, part: str) -> str:
        return f"{self.prefix}:{queue}:{part}"

    # ---- producers ----
    def send(self, queue: str, payload: dict[str, Any], delay_seconds: int = 0) -> list[int]:
        return self.send_batch(queue, [payload], delay_seconds=delay_seconds)

    def send_batch(
        self, queue: str, payloads: Iterable[dict[str, Any]], delay_seconds: int = 0
    ) -> list[int]:
        payloads = list(payloads)
        if not payloads:
            return []
        now = self.clock()
        visible_at = now + max(0, int(delay_seconds))
        ids: list[int] = []
        try:
            with self.redis.pipeline() as p:
                for payload in payloads:
                    msg_id = int(self.redis.incr(self._key(queue, "seq")))
                    envelope = {"message": payload, "enqueued_at": now}
                    p.hset(self._key(queue, "msgs"), msg_id, json.dumps(envelope))
                    p.zadd(self._key(queue, "vt"), {str(msg_id): visible_at})
                    ids.append(msg_id)
                p.execute()
        except RedisError as exc:
            raise QueueError(f"failed to send to queue {queue!r}: {exc}") from exc
        log.debug("sent %d message(s) to %s: %s", len(ids), queue, ids)
        return ids

    # ---- consumers ----
    def read(self, queue: str, vt_seconds: int, max_count: int) -> list[QueueMessage]:
        """
        Claim up to `max_count` visible messages and hide them for `vt_seconds`.

        Raises QueueError when Redis is unreachable; the caller must treat that
        as a failed invocation (nothing was claimed).
        """
        if max_count <= 0:
            return []
        vt_key = self._key(queue, "vt")
        try:
            while True:
                with self.redis.pipeline() as p:
                    try:
                        p.watch(vt_key)
                        now = self.clock()
                        raw_ids = p.zrangebyscore(vt_key, "-inf", now, start=0, num=max_count)
                        if not raw_ids:
                            p.unwatch()
                            return []
                        visible_at = now + max(0, int(vt_seconds))
                        p.multi()
                        for raw in raw_ids:
                            p.zadd(vt_key, {raw: visible_at})
                            p.hincrby(self._key(queue, "read_ct"), raw, 1)
                        p.execute()
                        claimed = [int(r) for r in raw_ids]
                        break
                    except WatchError:  # another reader claimed concurrently; retry
                        continue
            return self._load(queue, claimed, visible_at)
        except RedisError as exc:
            raise QueueError(f"failed to read from queue {queue!r}: {exc}") from exc

    def _load(self, queue: str, ids: list[int], visible_at: float) -> list[QueueMessage]:
        bodies = self.redis.hmget(self._key(queue, "msgs"), ids)
        counts = self.redis.hmget(self._key(queue, "read_ct"), ids)
        out: list[QueueMessage] = []
        for msg_id, body, count in zip(ids, bodies, counts, strict=True):
            if body is None:
                # Deleted between claim and load by a consumer whose lease expired
                continue
            envelope = json.loads(body)
            out.append(
                QueueMessage(
                    msg_id=msg_id,
                    read_ct=int(count or 0),
                    enqueued_at=float(envelope.get("enqueued_at") or 0.0),
                    vt=visible_at,
                    message=envelope.get("message") or {},
                )
            )
        return out

    def delete(self, queue: str, msg_id: int) -> bool:
        try:
            with self.redis.pipeline() as p:
                p.zrem(self._key(queue, "vt"), str(msg_id))
                p.hdel(self._key(queue, "msgs"), msg_id)
                p.hdel(self._key(queue, "read_ct"), msg_id)
                removed, _, _ = p.execute()
        except RedisError as exc:
            raise QueueError(f"failed to delete message {msg_id} from {queue!r}: {exc}") from exc
        return bool(removed)

    def archive(self, queue: str, msg_id: int) -> bool:
        """Move a message to the dead-letter hash; it will not be redelivered."""
        msgs_key = self._key(queue, "msgs")
        try:
            while True:
                with self.redis.pipeline() as p:
                    try:
                        p.watch(msgs_key)
                        body = p.hget(msgs_key, msg_id)
                        if body is None:
                            p.unwatch()
                            return False
                        count = p.hget(self._key(queue, "read_ct"), msg_id)
                        envelope = json.loads(body)
                        envelope["read_ct"] = int(count or 0)
                        envelope["archived_at"] = self.clock()
                        p.multi()
                        p.zrem(self._key(queue, "vt"), str(msg_id))
                        p.hdel(msgs_key, msg_id)
                        p.hdel(self._key(queue, "read_ct"), msg_id)
                        p.hset(self._key(queue, "archive"), msg_id, json.dumps(envelope))
                        p.execute()
                        return True
                    except WatchError:
                        continue
        except RedisError as exc:
            raise QueueError(f"failed to archive message {msg_id} in {queue!r}: {exc}") from exc

    # ---- inspection ----
    def depth(self, queue: str) -> int:
        """Live messages in the queue, visible or not (archived excluded)."""
        try:
            return int(self.redis.zcard(self._key(queue, "vt")))
        except RedisError as exc:
            raise QueueError(f"failed to read depth of {queue!r}: {exc}") from exc

    def archived(self, queue: str) -> list[QueueMessage]:
        try:
            archive = self.redis.hgetall(self._key(queue, "archive"))
        except RedisError as exc:
            raise QueueError(f"failed to list archive of {queue!r}: {exc}") from exc
        out: list[QueueMessage] = []
        for raw_id, body in archive.items():
            envelope = json.loads(body)
            out.append(
                QueueMessage(
                    msg_id=int(raw_id),
                    read_ct=int(envelope.get("read_ct") or 0),
                    enqueued_at=float(envelope.get("enqueued_at") or 0.0),
                    vt=float(envelope.get("archived_at") or 0.0),
                    message=envelope.get("message") or {},
                )
            )
        return sorted(out, key=lambda m: m.msg_id)

    def purge(self, queue: str) -> int:
        depth = self.depth(queue)
        try:
            self.redis.delete(
                self._key(queue, "msgs"),
                self._key(queue, "vt"),
                self._key(queue, "read_ct"),
            )
        except RedisError as exc:
            raise QueueError(f"failed to purge queue {queue!r}: {exc}") from exc
        return depth


__all__ = ["Pgq", "QueueMessage"]
