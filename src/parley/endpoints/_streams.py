"""Transport replies to the unified text-generation stream.

Replies are read through ``getattr`` so both SDK models and plain objects with
the same shape are accepted.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any
import uuid

from parley.types import TextGenerationStreamOutput, Token, ToolCallRequest

_FINAL_REASONS = frozenset({"stop", "length"})


def _first_choice(chunk: Any) -> Any:
    choices = getattr(chunk, "choices", None) or []
    return choices[0] if choices else None


async def completion_stream_to_text_generation(
    stream: AsyncIterable[Any],
) -> AsyncIterator[TextGenerationStreamOutput]:
    """Normalize a legacy completions stream, one update per chunk."""
    generated_text = ""
    token_id = 0
    async for chunk in stream:
        choice = _first_choice(chunk)
        text = getattr(choice, "text", None) or ""
        last = getattr(choice, "finish_reason", None) in _FINAL_REASONS
        generated_text += text
        yield TextGenerationStreamOutput(
            token=Token(id=token_id, text=text, special=last),
            generated_text=generated_text if last else None,
        )
        token_id += 1


@dataclass
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""

    def finalize(self) -> ToolCallRequest:
        return ToolCallRequest(
            id=self.id or str(uuid.uuid4()),
            name=self.name,
            arguments=self.arguments or "{}",
        )


async def chat_stream_to_text_generation(
    stream: AsyncIterable[Any],
) -> AsyncIterator[TextGenerationStreamOutput]:
    """Normalize a chat completions stream.

    Tool-call deltas are accumulated by index. When the model stops to call
    tools, one extra special update carries the assembled calls.
    """
    generated_text = ""
    token_id = 0
    pending: dict[int, _PendingToolCall] = {}

    async for chunk in stream:
        choice = _first_choice(chunk)
        delta = getattr(choice, "delta", None)
        content = getattr(delta, "content", None) or ""
        finish_reason = getattr(choice, "finish_reason", None)
        last = finish_reason in _FINAL_REASONS

        generated_text += content
        yield TextGenerationStreamOutput(
            token=Token(id=token_id, text=content, special=last),
            generated_text=generated_text if last else None,
        )
        token_id += 1

        for tool_delta in getattr(delta, "tool_calls", None) or []:
            index = getattr(tool_delta, "index", None) or 0
            call = pending.setdefault(index, _PendingToolCall())
            call_id = getattr(tool_delta, "id", None)
            if call_id:
                call.id = call_id
            function = getattr(tool_delta, "function", None)
            name = getattr(function, "name", None)
            if name and not call.name:
                call.name = name
            arguments = getattr(function, "arguments", None)
            if arguments:
                call.arguments += arguments

        if finish_reason == "tool_calls":
            yield TextGenerationStreamOutput(
                token=Token(
                    id=token_id,
                    text="",
                    special=True,
                    tool_calls=tuple(pending[i].finalize() for i in sorted(pending)),
                ),
                generated_text=generated_text,
            )
            token_id += 1


async def chat_completion_to_text_generation_single(
    completion: Any,
) -> AsyncIterator[TextGenerationStreamOutput]:
    """Present a buffered chat completion as a one-update stream."""
    message = getattr(_first_choice(completion), "message", None)
    content = getattr(message, "content", None) or ""

    tool_calls: tuple[ToolCallRequest, ...] | None = None
    raw_calls = getattr(message, "tool_calls", None)
    if raw_calls:
        tool_calls = tuple(
            ToolCallRequest(
                id=getattr(tc, "id", None) or str(uuid.uuid4()),
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in raw_calls
        )

    yield TextGenerationStreamOutput(
        token=Token(id=0, text=content, tool_calls=tool_calls),
        generated_text=content,
    )
