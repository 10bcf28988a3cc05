# tests/test_tasks.py
from __future__ import annotations

from types import SimpleNamespace

import pytest
from rq import SimpleWorker, Worker

import leadpipe.queueing.tasks as tasks
import leadpipe.queueing.worker as worker
from leadpipe.queueing.runner import BatchSummary


def test_run_stage_job_returns_summary_dict(settings, monkeypatch):
    seen = []

    def fake_run_stage(cfg, stage):
        seen.append((cfg.queue.image_queue, stage))
        return BatchSummary(stage=stage, read=2, processed=2, acked=2)

    monkeypatch.setattr(tasks, "run_stage", fake_run_stage)

    out = tasks.run_stage_job("image-extraction")

    assert seen == [("image-processing", "image-extraction")]
    assert out["status"] == "ok"
    assert out["acked"] == 2


def test_enqueue_rejects_unknown_stage(settings, redis_client):
    with pytest.raises(ValueError):
        tasks.enqueue_stage_run("nope", cfg=settings, redis=redis_client)


def test_enqueue_passes_stage_and_timeout(settings, redis_client, monkeypatch):
    captured = {}

    class FakeQueue:
        def __init__(self, name, connection):
            captured["name"] = name
            captured["connection"] = connection

        def enqueue(self, func, *args, **kwargs):
            captured["func"] = func
            captured["args"] = args
            captured.update(kwargs)
            return SimpleNamespace(id="job-1")

    monkeypatch.setattr(tasks, "Queue", FakeQueue)

    job_id = tasks.enqueue_stage_run("contact-enrichment", cfg=settings, redis=redis_client)

    assert job_id == "job-1"
    assert captured["name"] == "pipeline"
    assert captured["connection"] is redis_client
    assert captured["func"] is tasks.run_stage_job
    assert captured["args"] == ("contact-enrichment",)
    assert captured["job_timeout"] == settings.pipeline.job_timeout_seconds
    assert captured["meta"] == {"stage": "contact-enrichment"}


# -----------------------------
# Worker helpers
# -----------------------------


def test_worker_class_defaults(monkeypatch):
    monkeypatch.delenv("RQ_WORKER_CLASS", raising=False)
    monkeypatch.setattr(worker.os, "name", "posix")
    assert worker._select_worker_cls() is Worker


def test_worker_class_from_env(monkeypatch):
    monkeypatch.setenv("RQ_WORKER_CLASS", "rq.SimpleWorker")
    monkeypatch.setattr(worker.os, "name", "posix")
    assert worker._select_worker_cls() is SimpleWorker


def test_windows_always_uses_simple_worker(monkeypatch):
    monkeypatch.setenv("RQ_WORKER_CLASS", "rq.Worker")
    monkeypatch.setattr(worker.os, "name", "nt")
    assert worker._select_worker_cls() is SimpleWorker


def test_failure_handler_moves_job_to_failed_registry():
    job = SimpleNamespace(id="job-9", meta={"stage": "message-generation"})
    assert worker._stage_failure_handler(job, RuntimeError, RuntimeError("boom"), None) is True
