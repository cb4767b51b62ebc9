# tests/conftest.py
# ============================================================
# Shared pytest fixtures for all tests under tests/:
#   - settings / make_settings: LLMSettings without touching the environment
#   - mock_client: httpx.Client backed by a MockTransport handler
#   - ScriptedTransport / scripted: canned completions for pipeline tests
#   - transcript: writes a scenario file into tmp_path
# ============================================================

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx
import pytest

from query_llm.config import LLMSettings
from query_llm.schemas import Message


# ---------- Settings ----------
@pytest.fixture
def make_settings() -> Callable[..., LLMSettings]:
    def _make(**overrides: Any) -> LLMSettings:
        values: Dict[str, Any] = {
            "base_url": "http://llm.test/v1",
            "api_key": "sk-test",
            "model": "test-model",
        }
        values.update(overrides)
        return LLMSettings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> LLMSettings:
    return make_settings()


# ---------- HTTP ----------
@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.Client]:
    """Build an httpx.Client whose requests are answered by ``handler``."""
    clients: List[httpx.Client] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


# ---------- Scripted transport ----------
class ScriptedTransport:
    """
    Stands in for ChatTransport: returns the next canned completion and
    remembers every message list it was sent. A canned exception is raised.
    """

    def __init__(self, replies: Sequence[Any]) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    def chat(
        self,
        messages: Sequence[Message],
        schema: Optional[Dict[str, Any]] = None,
        sink=None,
        retry_budget: Optional[int] = None,
    ) -> str:
        self.calls.append({"messages": list(messages), "schema": schema, "sink": sink})
        if not self.replies:
            raise AssertionError("ScriptedTransport ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if sink is not None:
            sink(reply)
        return reply


@pytest.fixture
def scripted() -> Callable[..., ScriptedTransport]:
    return lambda *replies: ScriptedTransport(replies)


# ---------- Transcripts ----------
@pytest.fixture
def transcript(tmp_path: Path) -> Callable[[str], Path]:
    def _write(text: str, name: str = "scenario.txt") -> Path:
        p = tmp_path / name
        p.write_text(text, encoding="utf-8")
        return p

    return _write
