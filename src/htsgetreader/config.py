"""Configuration for the htsget reader, loaded from environment variables."""

import os
from dataclasses import dataclass

from .constants import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_READER_THREADS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    VALID_LOG_LEVELS,
)
from .errors import ConfigurationError


@dataclass
class HtsgetConfig:
    """Client and tool configuration loaded from environment variables."""

    # Transport settings
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    user_agent: str = DEFAULT_USER_AGENT

    # Worker pool size used by the command-line tool
    reader_threads: int = DEFAULT_READER_THREADS

    # Logging
    log_level: str = DEFAULT_LOG_LEVEL

    # Directory for temporary downloads; None uses the system default
    temp_dir: str | None = None

    def __post_init__(self) -> None:
        """Validate config values."""
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")

        if self.reader_threads < 1:
            raise ConfigurationError(
                f"reader_threads must be at least 1, got {self.reader_threads}"
            )

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"log_level must be one of {VALID_LOG_LEVELS}, got '{self.log_level}'"
            )

        if not self.user_agent:
            raise ConfigurationError("user_agent must not be empty")

    @classmethod
    def from_env(cls) -> "HtsgetConfig":
        """Create config from environment variables."""
        env = os.environ

        try:
            timeout = float(env.get("HTSGET_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS)))
            reader_threads = int(env.get("HTSGET_READER_THREADS", str(DEFAULT_READER_THREADS)))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric environment setting: {e}") from e

        return cls(
            timeout=timeout,
            user_agent=env.get("HTSGET_USER_AGENT", DEFAULT_USER_AGENT),
            reader_threads=reader_threads,
            log_level=env.get("HTSGET_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            temp_dir=env.get("HTSGET_TEMP_DIR") or None,
        )
