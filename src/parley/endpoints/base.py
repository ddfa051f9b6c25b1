"""Endpoint protocol: the callable contract the application consumes."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from parley.types import (
    EndpointMessage,
    GenerateSettings,
    TextGenerationStreamOutput,
    Tool,
    ToolResult,
)


@dataclass(frozen=True)
class EndpointContext:
    """Everything one generation call needs from the application."""

    messages: Sequence[EndpointMessage]
    preprompt: str | None = None
    #: Keep writing the last assistant turn instead of starting a new one.
    continue_message: bool = False
    generate_settings: GenerateSettings = field(default_factory=dict)
    tools: Sequence[Tool] | None = None
    tool_results: Sequence[ToolResult] | None = None
    conversation_id: str | None = None
    user_id: str | None = None
    user_email: str | None = None


@runtime_checkable
class Endpoint(Protocol):
    """Async callable turning a conversation into a generation stream."""

    async def __call__(
        self, context: EndpointContext
    ) -> AsyncIterator[TextGenerationStreamOutput]:
        """Dispatch the request and return the lazy output stream."""
        ...
