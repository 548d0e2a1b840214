"""Exception types raised by the service layer."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when a component is constructed without required settings."""


class WeatherProviderError(RuntimeError):
    """Raised by the provider client for transport, status or payload failures."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LocationQueryError(RuntimeError):
    """Raised when tracking events cannot be read from storage."""
