"""
Pytest fixtures. Settings point at a temporary data dir and the offline heuristic scorer,
so no test needs a running Ollama or network access.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest


class FakeOracle:
    """Scripted oracle: per-text scores or exceptions, optional gates to hold a call open."""

    def __init__(
        self,
        scores: dict[str, Any] | None = None,
        default: Any = 0.0,
        topics: Any = None,
    ) -> None:
        self.scores = dict(scores or {})
        self.default = default
        self.topics_payload = topics
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []
        self.topic_calls: list[str] = []
        self.topics_gate: asyncio.Event | None = None
        self.closed = False

    async def score(self, text: str) -> Any:
        self.calls.append(text)
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        value = self.scores.get(text, self.default)
        if isinstance(value, BaseException):
            raise value
        return value

    async def topics(self, text: str) -> list[dict[str, Any]]:
        self.topic_calls.append(text)
        payload = self.topics_payload
        if self.topics_gate is not None:
            await self.topics_gate.wait()
        if isinstance(payload, BaseException):
            raise payload
        return list(payload or [])

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_oracle():
    return FakeOracle


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LLM_BACKEND", "heuristic")
    monkeypatch.setenv("ORACLE_BACKEND", "local")

    from services.config import get_settings

    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def client(settings):
    """FastAPI TestClient with a fresh session registry bound to the test settings."""
    from fastapi.testclient import TestClient

    import api.sessions as sessions_api
    from services.session import SessionRegistry

    sessions_api.reset_registry(SessionRegistry(settings=settings))
    from main import app

    with TestClient(app) as test_client:
        yield test_client
    sessions_api.reset_registry(None)
