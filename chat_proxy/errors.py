"""Error taxonomy for the chat proxy; every error maps to one HTTP status."""

from __future__ import annotations


class ProxyError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InputValidationError(ProxyError):
    """Malformed client payload."""

    status_code = 400


class MethodError(ProxyError):
    status_code = 405


class ConfigurationError(ProxyError):
    """Required server configuration (the provider key) is missing."""

    status_code = 500


class UpstreamTransportError(ProxyError):
    """The provider could not be reached at all."""

    status_code = 500


class UpstreamStatusError(ProxyError):
    """The provider answered with a non-2xx status."""

    status_code = 500

    def __init__(self, message: str, *, upstream_status: int, details: str | None = None) -> None:
        super().__init__(message, details=details)
        self.upstream_status = upstream_status


class UpstreamFormatError(ProxyError):
    """The provider answered 2xx with a body we cannot use."""

    status_code = 500


class ChatClientError(Exception):
    """Raised inside the chat client when a proxy call cannot be used."""
