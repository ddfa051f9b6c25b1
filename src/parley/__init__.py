"""Parley: adapt chat conversations to OpenAI-compatible endpoints.

Public API:
    - endpoint_openai(): Build an endpoint from validated settings
    - EndpointContext: One generation call's conversation and metadata
    - EndpointSettings: Configuration schema
    - Domain types: EndpointMessage, MessageFile, Tool, ToolInput, ToolCall,
      ToolResult, ModelConfig, TextGenerationStreamOutput
"""

from __future__ import annotations

import logging

from parley.config import EndpointSettings
from parley.endpoints import Endpoint, EndpointContext, OpenAIEndpoint, endpoint_openai
from parley.errors import (
    APIError,
    CapabilityError,
    ConfigurationError,
    ImageProcessingError,
    ParleyError,
)
from parley.types import (
    EndpointMessage,
    MessageFile,
    ModelConfig,
    TextGenerationStreamOutput,
    Token,
    Tool,
    ToolCall,
    ToolCallRequest,
    ToolInput,
    ToolResult,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("parley-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("parley").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "CapabilityError",
    "ConfigurationError",
    "Endpoint",
    "EndpointContext",
    "EndpointMessage",
    "EndpointSettings",
    "ImageProcessingError",
    "MessageFile",
    "ModelConfig",
    "OpenAIEndpoint",
    "ParleyError",
    "TextGenerationStreamOutput",
    "Token",
    "Tool",
    "ToolCall",
    "ToolCallRequest",
    "ToolInput",
    "ToolResult",
    "endpoint_openai",
]
