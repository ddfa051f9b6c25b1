"""Domain types shared by the endpoint adapters.

Everything here is immutable and built fresh per call, except
:class:`ModelConfig`, which is built once per endpoint and reused.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping  # noqa: TC003 - used at runtime in dataclass
from dataclasses import dataclass, field
import mimetypes
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]
ToolInputType = Literal["str", "int", "float", "bool", "file"]
ToolParamType = Literal["required", "optional", "fixed"]

#: Sparse per-call overrides of the model's default generation parameters.
GenerateSettings = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class MessageFile:
    """A file attached to a conversation turn."""

    mime: str
    value: bytes
    name: str = ""

    @property
    def is_image(self) -> bool:
        """Whether the attachment is eligible for image content parts."""
        return self.mime.startswith("image/")

    @classmethod
    def from_file(cls, path: str | Path, *, mime: str | None = None) -> MessageFile:
        """Load an attachment from disk.

        Args:
            path: Path to the file.
            mime: MIME type override. Guessed from the extension when *None*.
        """
        p = Path(path)
        if mime is None:
            guessed, _ = mimetypes.guess_type(p.name)
            mime = guessed or "application/octet-stream"
        return cls(mime=mime, value=p.read_bytes(), name=p.name)


@dataclass(frozen=True, slots=True)
class EndpointMessage:
    """One conversation turn as produced by the calling application."""

    role: Role
    content: str
    files: tuple[MessageFile, ...] = ()


@dataclass(frozen=True, slots=True)
class ToolInput:
    """A typed parameter of a tool definition."""

    name: str
    type: ToolInputType
    param_type: ToolParamType = "required"
    description: str | None = None


@dataclass(frozen=True, slots=True)
class Tool:
    """A caller-supplied function the model may choose to invoke."""

    name: str
    description: str
    inputs: tuple[ToolInput, ...] = ()


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation that was executed by the application."""

    name: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    tool_id: str | None = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    """The outcome of a :class:`ToolCall`.

    ``outputs=None`` means the tool produced no outputs, and the follow-up
    tool message carries an empty string.
    """

    call: ToolCall
    outputs: list[Any] | dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """A tool call requested by the model in a streamed reply."""

    id: str
    name: str
    arguments: str


@dataclass(frozen=True, slots=True)
class Token:
    """A single generated token (or text fragment)."""

    id: int
    text: str
    logprob: float = 0.0
    special: bool = False
    tool_calls: tuple[ToolCallRequest, ...] | None = None


@dataclass(frozen=True, slots=True)
class TextGenerationStreamOutput:
    """One incremental update of the unified generation stream.

    ``generated_text`` is only set on the terminal update.
    """

    token: Token
    generated_text: str | None = None
    details: Mapping[str, Any] | None = None


#: Renders a conversation into a single prompt string for the legacy mode.
PromptRenderer = Callable[..., str]


@dataclass(frozen=True)
class ModelConfig:
    """Static description of the model served by an endpoint.

    Capability differences are flags inspected at request-build time.
    """

    name: str
    id: str | None = None
    parameters: Mapping[str, Any] = field(default_factory=dict)
    #: The model calls tools natively.
    tools: bool = False
    #: The model accepts image content parts.
    multimodal: bool = False
    system_role_supported: bool = True
    #: Legacy completions only. Defaults to ChatML when *None*.
    prompt_renderer: PromptRenderer | None = None

    def __post_init__(self) -> None:
        """Freeze the default parameters."""
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    @property
    def model_id(self) -> str:
        """Identifier sent as the request's ``model`` field."""
        return self.id or self.name

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ModelConfig:
        """Build a model config from a loose mapping.

        Accepts both ``system_role_supported`` and the camelCase
        ``systemRoleSupported`` spelling; unknown keys are ignored.
        """
        system_role = data.get("system_role_supported", data.get("systemRoleSupported"))
        return cls(
            name=str(data.get("name") or data.get("id") or ""),
            id=data.get("id"),
            parameters=dict(data.get("parameters") or {}),
            tools=bool(data.get("tools", False)),
            multimodal=bool(data.get("multimodal", False)),
            system_role_supported=True if system_role is None else bool(system_role),
            prompt_renderer=data.get("prompt_renderer"),
        )
