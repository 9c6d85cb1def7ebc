"""Connection settings for the command-line client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0


def _env_timeout(default: float) -> float:
    raw = (os.getenv("CLI_TIMEOUT") or "").strip()
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT


def load_config(base_url: Optional[str] = None, timeout: Optional[float] = None) -> CLIConfig:
    """Explicit options win over ``API_BASE_URL`` / ``CLI_TIMEOUT``."""
    url = base_url or os.getenv("API_BASE_URL") or DEFAULT_BASE_URL
    return CLIConfig(
        base_url=url.rstrip("/"),
        timeout=timeout if timeout is not None else _env_timeout(DEFAULT_TIMEOUT),
    )
