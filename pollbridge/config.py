"""Runtime settings for the bridge server and poller."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from functools import lru_cache

logger = logging.getLogger(__name__)

ENV_PREFIX = "POLLBRIDGE_"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9234

# Timeouts and backoffs, in seconds
DEFAULT_REQUEST_TIMEOUT = 8.0
DEFAULT_IDLE_INTERVAL = 0.3
DEFAULT_ERROR_INTERVAL = 0.75
DEFAULT_KEEPALIVE_INTERVAL = 60.0


@dataclass
class BridgeSettings:
    """Bridge configuration."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    idle_interval: float = DEFAULT_IDLE_INTERVAL
    error_interval: float = DEFAULT_ERROR_INTERVAL
    keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> BridgeSettings:
        """Build settings from ``POLLBRIDGE_*`` variables over the defaults.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            BridgeSettings instance

        Raises:
            ValueError: If a variable cannot be converted to its field type
        """
        environ = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            converter = {"int": int, "float": float}.get(f.type, str)
            try:
                overrides[f.name] = converter(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}") from e

        if overrides:
            logger.debug(f"Settings overridden from environment: {sorted(overrides)}")
        return cls(**overrides)


@lru_cache(maxsize=1)
def get_settings() -> BridgeSettings:
    """Get the process-wide settings, read once from the environment."""
    return BridgeSettings.from_env()
