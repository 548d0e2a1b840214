from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0

_BASE_URL_ENV = "API_BASE_URL"
_TIMEOUT_ENV = "CLI_REQUEST_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    """Connection settings for the site conditions service."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls) -> "CLIConfig":
        return cls(
            base_url=_env_base_url() or DEFAULT_BASE_URL,
            timeout=_env_timeout() or DEFAULT_TIMEOUT,
        )


def _env_base_url() -> Optional[str]:
    value = (os.getenv(_BASE_URL_ENV) or "").strip()
    return value.rstrip("/") or None


def _env_timeout() -> Optional[float]:
    value = (os.getenv(_TIMEOUT_ENV) or "").strip()
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    """Merge command line overrides onto the environment defaults."""
    defaults = CLIConfig.from_env()
    return CLIConfig(
        base_url=base_url.rstrip("/") if base_url else defaults.base_url,
        timeout=timeout if timeout and timeout > 0 else defaults.timeout,
    )
