"""Exception hierarchy for Parley."""

from __future__ import annotations


class ParleyError(Exception):
    """Base exception for all Parley errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ParleyError):
    """Endpoint configuration validation failed."""


class CapabilityError(ParleyError):
    """The request needs a feature the endpoint or model cannot carry.

    Raised before any bytes are sent: tools under the legacy completions
    mode, or a tool parameter type the function-calling schema cannot express.
    """


class ImageProcessingError(ParleyError):
    """An attachment could not be decoded or re-encoded."""


class APIError(ParleyError):
    """A failure owned by this layer while talking to the transport.

    Transport errors raised by the SDK itself are never wrapped; this class
    covers what Parley is responsible for, such as constructing the client.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.phase = phase
