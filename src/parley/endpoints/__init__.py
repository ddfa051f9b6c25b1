"""Endpoint implementations."""

from .base import Endpoint, EndpointContext
from .openai import OpenAIEndpoint, endpoint_openai

__all__ = [
    "Endpoint",
    "EndpointContext",
    "OpenAIEndpoint",
    "endpoint_openai",
]
