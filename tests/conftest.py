"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, automatic API test
skipping, and a fake OpenAI SDK client. Fixtures here are autouse unless
noted.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import suppress
from dataclasses import dataclass, field
from io import BytesIO
import logging
import os
from types import SimpleNamespace
from typing import Any

from PIL import Image
import pytest

# =============================================================================
# Test Doubles
# =============================================================================


async def aiter_chunks(chunks: Iterable[Any]) -> AsyncIterator[Any]:
    """Yield *chunks* as an async stream, like an SDK streaming reply."""
    for chunk in chunks:
        yield chunk


def chat_chunk(
    content: str | None = None,
    *,
    finish_reason: str | None = None,
    tool_calls: list[Any] | None = None,
) -> Any:
    """Build a chat completions stream chunk."""
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)]
    )


def completion_chunk(text: str, *, finish_reason: str | None = None) -> Any:
    """Build a legacy completions stream chunk."""
    return SimpleNamespace(
        choices=[SimpleNamespace(text=text, finish_reason=finish_reason)]
    )


def png_bytes(width: int = 8, height: int = 8, color: str = "red") -> bytes:
    """Encode a solid-color PNG in memory."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class _FakeCreate:
    """Captures kwargs passed to ``create()`` and returns a scripted reply."""

    def __init__(self, reply: Any) -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []

    @property
    def last_kwargs(self) -> dict[str, Any] | None:
        return self.calls[-1] if self.calls else None

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if isinstance(self.reply, BaseException):
            raise self.reply
        return self.reply


@dataclass
class FakeOpenAIClient:
    """OpenAI SDK test double exposing ``completions`` and ``chat.completions``."""

    completion_reply: Any = None
    chat_reply: Any = None
    closed: bool = False
    completions: _FakeCreate = field(init=False)
    chat: Any = field(init=False)

    def __post_init__(self) -> None:
        self.completions = _FakeCreate(
            self.completion_reply
            if self.completion_reply is not None
            else aiter_chunks([completion_chunk("ok", finish_reason="stop")])
        )
        self.chat = SimpleNamespace(
            completions=_FakeCreate(
                self.chat_reply
                if self.chat_reply is not None
                else aiter_chunks([chat_chunk("ok", finish_reason="stop")])
            )
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeOpenAIClient:
    """A fake client replying with a one-chunk ``ok`` stream."""
    return FakeOpenAIClient()


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean credential environment for each test.

    Clears OPENAI_* and HF_TOKEN to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("OPENAI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("HF_TOKEN", raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# API Test Configuration
# =============================================================================

_OPENAI_TEST_MODEL = "gpt-4o-mini"


@pytest.fixture
def openai_api_key():
    """Return OPENAI_API_KEY or skip the test if unavailable."""
    key = os.getenv("OPENAI_API_KEY")
    if not key:
        pytest.skip("OPENAI_API_KEY not set")
    return key


@pytest.fixture
def openai_test_model():
    """Return the model to use for OpenAI API tests."""
    return _OPENAI_TEST_MODEL
