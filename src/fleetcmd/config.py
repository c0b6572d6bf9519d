"""Configuration loading from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Valid blob store backends for output extension
VALID_BLOB_BACKENDS = frozenset({"s3", "http"})


class ConfigurationError(Exception):
    """Raised when the configuration cannot be used to start a run."""

    pass


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation. Command-line flags override it with ``dataclasses.replace``.
    """

    # Polling configuration
    poll_frequency_ms: int = 500
    timeout: float = 30.0  # seconds for the whole run, 0 disables
    target_timeout: float = 0.0  # seconds per target, 0 disables
    max_connections: int = 50  # AWS client connection pool size

    # Interrupt handling
    interrupt_debounce_ms: int = 50

    # Output extension
    extend_output: bool = False
    s3_bucket: str = ""  # bucket Run Command writes full output to
    s3_key_prefix: str = ""
    blob_backend: str = "s3"  # s3 or http
    blob_endpoint_url: str = ""  # base URL for s3:// locators with the http backend

    # Dispatch
    document: str = "AWS-RunShellScript"
    comment: str = "Interactive command."

    # AWS session
    region: str = "eu-west-1"
    profile: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    diagnostic_tags: str = ""  # comma-separated, "*" for all

    @property
    def poll_frequency(self) -> float:
        """Poll frequency in seconds."""
        return self.poll_frequency_ms / 1000

    @property
    def deadline(self) -> float | None:
        """Run deadline in seconds, or None when disabled."""
        return self.timeout if self.timeout > 0 else None

    @property
    def target_deadline(self) -> float | None:
        return self.target_timeout if self.target_timeout > 0 else None

    def validate(self) -> list[str]:
        """Check settings that only make sense together.

        Returns:
            A list of human-readable problems; empty when the configuration is usable.
        """
        problems: list[str] = []
        if self.poll_frequency_ms <= 0:
            problems.append(f"poll frequency must be positive, got {self.poll_frequency_ms}ms")
        if self.max_connections <= 0:
            problems.append(f"max connections must be positive, got {self.max_connections}")
        if self.timeout < 0 or self.target_timeout < 0:
            problems.append("timeouts must not be negative")
        if self.extend_output and not self.s3_bucket and self.blob_backend == "s3":
            problems.append("extended output requires an S3 bucket (FLEETCMD_S3_BUCKET)")
        if self.blob_backend not in VALID_BLOB_BACKENDS:
            problems.append(
                f"unknown blob backend '{self.blob_backend}' "
                f"(valid: {', '.join(sorted(VALID_BLOB_BACKENDS))})"
            )
        if not self.document:
            problems.append("document name must not be empty")
        return problems


def _parse_positive_int(value: str, name: str, default: int) -> int:
    """Parse a string as a positive integer with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive integer, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = int(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %d is not positive, using default %d",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default


def _parse_non_negative_float(value: str, name: str, default: float) -> float:
    """Parse a string as a non-negative float with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed non-negative float, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = float(value)
        if parsed < 0:
            logging.warning(
                "Invalid %s: %f is negative, using default %f",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %f",
            name,
            value,
            default,
        )
        return default


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Logs a warning and returns ``default`` if the value is invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid FLEETCMD_LOG_LEVEL: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _validate_blob_backend(value: str, default: str = "s3") -> str:
    normalized = value.strip().lower()
    if normalized not in VALID_BLOB_BACKENDS:
        logging.warning(
            "Invalid FLEETCMD_BLOB_BACKEND: '%s' is not valid, using default '%s'. Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_BLOB_BACKENDS)),
        )
        return default
    return normalized


def load_config(env_file: Path | None = None) -> Config:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Values are validated and defaults are used for invalid inputs:
    - Integer values must be valid positive integers
    - Timeouts must be non-negative numbers (0 disables)
    - LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    poll_frequency_ms = _parse_positive_int(
        os.getenv("FLEETCMD_POLL_FREQUENCY_MS", "500"),
        "FLEETCMD_POLL_FREQUENCY_MS",
        500,
    )

    timeout = _parse_non_negative_float(
        os.getenv("FLEETCMD_TIMEOUT", "30"),
        "FLEETCMD_TIMEOUT",
        30.0,
    )

    target_timeout = _parse_non_negative_float(
        os.getenv("FLEETCMD_TARGET_TIMEOUT", "0"),
        "FLEETCMD_TARGET_TIMEOUT",
        0.0,
    )

    max_connections = _parse_positive_int(
        os.getenv("FLEETCMD_MAX_CONNECTIONS", "50"),
        "FLEETCMD_MAX_CONNECTIONS",
        50,
    )

    interrupt_debounce_ms = _parse_positive_int(
        os.getenv("FLEETCMD_INTERRUPT_DEBOUNCE_MS", "50"),
        "FLEETCMD_INTERRUPT_DEBOUNCE_MS",
        50,
    )

    blob_backend = _validate_blob_backend(os.getenv("FLEETCMD_BLOB_BACKEND", "s3"))

    log_level = _validate_log_level(os.getenv("FLEETCMD_LOG_LEVEL", "INFO"))

    return Config(
        poll_frequency_ms=poll_frequency_ms,
        timeout=timeout,
        target_timeout=target_timeout,
        max_connections=max_connections,
        interrupt_debounce_ms=interrupt_debounce_ms,
        extend_output=_parse_bool(os.getenv("FLEETCMD_EXTEND_OUTPUT", "")),
        s3_bucket=os.getenv("FLEETCMD_S3_BUCKET", ""),
        s3_key_prefix=os.getenv("FLEETCMD_S3_KEY_PREFIX", ""),
        blob_backend=blob_backend,
        blob_endpoint_url=os.getenv("FLEETCMD_BLOB_ENDPOINT_URL", ""),
        document=os.getenv("FLEETCMD_DOCUMENT", "AWS-RunShellScript"),
        comment=os.getenv("FLEETCMD_COMMENT", "Interactive command."),
        region=os.getenv("FLEETCMD_REGION", "eu-west-1"),
        profile=os.getenv("FLEETCMD_PROFILE", ""),
        log_level=log_level,
        log_json=_parse_bool(os.getenv("FLEETCMD_LOG_JSON", "")),
        diagnostic_tags=os.getenv("FLEETCMD_DIAGNOSTIC_TAGS", ""),
    )


__all__ = [
    "Config",
    "ConfigurationError",
    "VALID_BLOB_BACKENDS",
    "VALID_LOG_LEVELS",
    "load_config",
]
