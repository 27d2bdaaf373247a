"""Exceptions raised by llmgate.

Request- and credential-level failures reach the caller so that it can
fall back to a degraded answer; :class:`MalformedFrame` never leaves the
stream decoder.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base class for every error raised by llmgate."""


class MissingCredential(GatewayError):
    """No secret is configured for a provider."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"No API key configured for provider {provider!r}")


class UnsupportedModel(GatewayError):
    """A model id has no registered provider route."""

    def __init__(self, model_id: str, supported: list[str] | None = None) -> None:
        self.model_id = model_id
        self.supported = list(supported or [])
        message = f"Unsupported model: {model_id!r}"
        if self.supported:
            message += f" (supported: {', '.join(self.supported)})"
        super().__init__(message)


class ProviderCallFailed(GatewayError):
    """The provider answered with a non-success status or could not be reached.

    ``status_code`` is ``None`` for transport failures.  ``message`` is the
    upstream ``error.message`` when the error body could be parsed.
    """

    def __init__(
        self,
        provider: str,
        status_code: int | None,
        message: str = "",
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        self.message = message
        status = "no response" if status_code is None else f"HTTP {status_code}"
        detail = f": {message}" if message else ""
        super().__init__(f"{provider} call failed ({status}){detail}")


class MalformedFrame(GatewayError):
    """A stream frame that does not have the expected shape."""


class ConfigError(GatewayError):
    """Settings could not be loaded or validated."""
