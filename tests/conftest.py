# tests/conftest.py
from __future__ import annotations

from pathlib import Path

import fakeredis
import pytest

from leadpipe.config import AppConfig, load_settings
from leadpipe.db import Store
from leadpipe.queueing.pgq import Pgq

_STAGE_ENV = {
    "VISION_API_KEY": "vision-test-key",
    "OPENAI_API_KEY": "sk-test",
    "STORAGE_PUBLIC_BASE_URL": "https://storage.example.test/photos",
    "STORAGE_SIGNING_SECRET": "signing-secret",
    "DIRECTORY_USERNAME": "svc-user",
    "DIRECTORY_PASSWORD": "svc-pass",
    "DIRECTORY_BASE_URL": "https://directory.example.test",
}


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "pipeline.db"


@pytest.fixture
def store(db_path: Path) -> Store:
    s = Store(str(db_path))
    s.init_schema()
    return s


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis()


@pytest.fixture
def pgq(redis_client: fakeredis.FakeRedis) -> Pgq:
    return Pgq(redis_client)


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, db_path: Path) -> AppConfig:
    """Settings with every stage's credentials present and no invoke URL."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path.as_posix()}")
    for name, value in _STAGE_ENV.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv("STAGE_INVOKE_BASE_URL", raising=False)
    monkeypatch.delenv("SERVICE_API_KEY", raising=False)
    return load_settings()

