"""Request bodies for the two OpenAI wire dialects.

``CompletionRequest`` (legacy single prompt) and ``ChatCompletionRequest``
(structured messages) form the tagged union :data:`OpenAIRequest`; the
``kind`` field names the variant.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from parley.types import GenerateSettings, ModelConfig


def merge_parameters(
    model_parameters: Mapping[str, Any], generate_settings: GenerateSettings | None
) -> dict[str, Any]:
    """Overlay per-call settings on the model defaults, key by key.

    ``None`` values in *generate_settings* do not override a default.
    """
    merged = dict(model_parameters)
    for key, value in (generate_settings or {}).items():
        if value is not None:
            merged[key] = value
    return merged


class _Body:
    """Serialization shared by the request variants."""

    def body(self) -> dict[str, Any]:
        """Return the JSON body, leaving out unset (``None``) fields."""
        out: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name == "kind":
                continue
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = value
        return out


@dataclass(frozen=True)
class CompletionRequest(_Body):
    """Legacy ``/completions`` request. Always streamed."""

    model: str
    prompt: str
    stream: Literal[True] = True
    max_tokens: int | None = None
    stop: list[str] | str | None = None
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    kind: Literal["completions"] = "completions"


@dataclass(frozen=True)
class ChatCompletionRequest(_Body):
    """``/chat/completions`` request.

    At most one of ``max_tokens`` and ``max_completion_tokens`` is set, and
    ``tools``/``tool_choice`` are only present together.
    """

    model: str
    messages: list[dict[str, Any]]
    stream: bool = True
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    stop: list[str] | str | None = None
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: Literal["auto"] | None = None
    kind: Literal["chat_completions"] = "chat_completions"


OpenAIRequest = CompletionRequest | ChatCompletionRequest


def _sampling(parameters: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "stop": parameters.get("stop"),
        "temperature": parameters.get("temperature"),
        "top_p": parameters.get("top_p"),
        "frequency_penalty": parameters.get("repetition_penalty"),
        "presence_penalty": parameters.get("presence_penalty"),
    }


def build_completion_request(
    model: ModelConfig,
    prompt: str,
    generate_settings: GenerateSettings | None = None,
) -> CompletionRequest:
    """Build a legacy completions request for an already flattened prompt."""
    parameters = merge_parameters(model.parameters, generate_settings)
    return CompletionRequest(
        model=model.model_id,
        prompt=prompt,
        stream=True,
        max_tokens=parameters.get("max_new_tokens"),
        **_sampling(parameters),
    )


def build_chat_request(
    model: ModelConfig,
    messages: list[dict[str, Any]],
    generate_settings: GenerateSettings | None = None,
    tools: Sequence[dict[str, Any]] = (),
    *,
    stream: bool = True,
    use_completion_tokens: bool = False,
) -> ChatCompletionRequest:
    """Build a chat completions request.

    Args:
        model: Target model; supplies the identifier and default parameters.
        messages: Normalized and reconciled message list.
        generate_settings: Per-call overrides of the model defaults.
        tools: Compiled tool schema. Empty means no tool configuration.
        stream: Ask for a streamed reply.
        use_completion_tokens: Send the token limit as
            ``max_completion_tokens`` instead of ``max_tokens``.
    """
    parameters = merge_parameters(model.parameters, generate_settings)
    limit = parameters.get("max_new_tokens")
    return ChatCompletionRequest(
        model=model.model_id,
        messages=messages,
        stream=stream,
        max_tokens=None if use_completion_tokens else limit,
        max_completion_tokens=limit if use_completion_tokens else None,
        tools=list(tools) if tools else None,
        tool_choice="auto" if tools else None,
        **_sampling(parameters),
    )
