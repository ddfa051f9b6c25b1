"""Endpoint configuration schema.

``EndpointSettings`` is the validation wall for one OpenAI-compatible endpoint
registration: every field, default and constraint lives here, and the factory
only ever sees a validated, frozen instance.
"""

from __future__ import annotations

from collections.abc import Mapping
import os
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    InstanceOf,
    SecretStr,
    StrictInt,
    ValidationError,
    field_validator,
)

from parley.errors import ConfigurationError
from parley.images import ImageProcessorOptions
from parley.types import ModelConfig

CompletionMode = Literal["completions", "chat_completions"]

DEFAULT_BASE_URL = "https://api.openai.com/v1"
#: Placeholder key for servers that ignore authentication.
PLACEHOLDER_API_KEY = "sk-"
_API_KEY_ENV_VARS: tuple[str, ...] = ("OPENAI_API_KEY", "HF_TOKEN")


def _try_load_dotenv() -> None:
    """Load a project ``.env`` file so API keys can live outside the shell."""
    from dotenv import load_dotenv

    load_dotenv()


def default_api_key() -> str:
    """Resolve the API key from the environment, falling back to a placeholder."""
    _try_load_dotenv()
    for env_var in _API_KEY_ENV_VARS:
        value = os.environ.get(env_var)
        if value:
            return value
    return PLACEHOLDER_API_KEY


class MultimodalOptions(BaseModel):
    """Per-modality processing options."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    image: ImageProcessorOptions = Field(default_factory=ImageProcessorOptions)


class EndpointSettings(BaseModel):
    """Validated configuration of one OpenAI-compatible endpoint.

    Field names are snake_case; the camelCase spellings (``baseURL``,
    ``apiKey``, ``extraBody``...) are accepted as aliases.

    Example:
        settings = EndpointSettings(
            model={"name": "gpt-4o-mini", "multimodal": True},
            base_url="http://localhost:8000/v1",
        )
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: Literal["openai"] = "openai"
    weight: StrictInt = Field(default=1, gt=0)
    model: InstanceOf[ModelConfig]
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="baseURL")
    api_key: SecretStr = Field(
        default_factory=lambda: SecretStr(default_api_key()), alias="apiKey"
    )
    completion: CompletionMode = "chat_completions"
    default_headers: dict[str, str] | None = Field(default=None, alias="defaultHeaders")
    default_query: dict[str, str] | None = Field(default=None, alias="defaultQuery")
    extra_body: dict[str, Any] | None = Field(default=None, alias="extraBody")
    multimodal: MultimodalOptions = Field(default_factory=MultimodalOptions)
    #: Send ``max_completion_tokens`` instead of ``max_tokens``.
    use_completion_tokens: bool = Field(default=False, alias="useCompletionTokens")
    streaming_supported: bool = Field(default=True, alias="streamingSupported")

    @field_validator("model", mode="before")
    @classmethod
    def coerce_model(cls, v: Any) -> Any:
        """Accept a plain mapping as the model descriptor."""
        if isinstance(v, Mapping):
            return ModelConfig.from_mapping(v)
        return v

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL."""
        parsed = urlparse(v.strip())
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"base_url must be an absolute http(s) URL, got {v!r}")
        return v.strip()

    @field_validator("api_key", mode="before")
    @classmethod
    def normalize_api_key(cls, v: Any) -> Any:
        """Trim whitespace and map empty keys to the placeholder."""
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        if isinstance(v, str):
            return SecretStr(v.strip() or PLACEHOLDER_API_KEY)
        return v


def parse_settings(data: EndpointSettings | Mapping[str, Any]) -> EndpointSettings:
    """Validate raw endpoint input into :class:`EndpointSettings`.

    Raises:
        ConfigurationError: If any field is missing or malformed.
    """
    if isinstance(data, EndpointSettings):
        return data
    try:
        return EndpointSettings.model_validate(dict(data))
    except ValidationError as e:
        err = e.errors()[0]
        location = ".".join(str(part) for part in err.get("loc", ()))
        msg = err.get("msg") or "invalid value"
        # Pydantic wraps validator messages as "Value error, ..."
        msg = msg.removeprefix("Value error, ")
        raise ConfigurationError(
            f"Endpoint configuration validation failed: {location}: {msg}",
            hint="Check the endpoint definition against EndpointSettings.",
        ) from e
