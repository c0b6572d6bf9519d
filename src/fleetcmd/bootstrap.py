"""Bootstrap and dependency wiring for fleetcmd.

This module is the composition root of the CLI. It:
- Loads configuration and applies command-line overrides
- Sets up logging
- Resolves the target list
- Builds the command service and, when enabled, the output extender
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field, replace
from typing import Any

from fleetcmd.command_service import BlobStore, CommandService
from fleetcmd.config import Config, ConfigurationError, load_config
from fleetcmd.http_blob_store import HttpBlobStore
from fleetcmd.logging import get_logger, setup_logging
from fleetcmd.output_extender import OutputExtender
from fleetcmd.ssm_clients import S3BlobStore, SsmCommandService, create_session
from fleetcmd.targets import TargetFileError, collect_targets

logger = get_logger(__name__)


@dataclass
class BootstrapContext:
    """Everything a run needs, assembled from configuration.

    Attributes:
        config: Effective configuration.
        command: The command line to run.
        targets: Resolved, de-duplicated target ids.
        service: Command service to dispatch and poll through.
        extender: Output extender, or None when extension is disabled.
    """

    config: Config
    command: str
    targets: list[str]
    service: CommandService
    extender: OutputExtender | None = None
    _closeables: list[Any] = field(default_factory=list, repr=False)

    def close(self) -> None:
        """Release HTTP clients created during bootstrap."""
        for closeable in self._closeables:
            closeable.close()
        self._closeables.clear()


def apply_cli_overrides(config: Config, parsed: argparse.Namespace) -> Config:
    """Apply CLI argument overrides to the configuration.

    Args:
        config: Base configuration loaded from environment.
        parsed: Parsed command-line arguments.

    Returns:
        New Config instance with CLI overrides applied.
    """
    overrides: dict[str, Any] = {}

    if parsed.frequency is not None:
        overrides["poll_frequency_ms"] = parsed.frequency
    if parsed.timeout is not None:
        overrides["timeout"] = parsed.timeout
    if parsed.target_timeout is not None:
        overrides["target_timeout"] = parsed.target_timeout
    if parsed.max_connections is not None:
        overrides["max_connections"] = parsed.max_connections
    if parsed.extend_output:
        overrides["extend_output"] = True
    if parsed.s3_bucket is not None:
        overrides["s3_bucket"] = parsed.s3_bucket
    if parsed.s3_key_prefix is not None:
        overrides["s3_key_prefix"] = parsed.s3_key_prefix
    if parsed.document:
        overrides["document"] = parsed.document
    if parsed.region:
        overrides["region"] = parsed.region
    if parsed.profile:
        overrides["profile"] = parsed.profile
    if parsed.log_level:
        overrides["log_level"] = parsed.log_level

    if overrides:
        return replace(config, **overrides)
    return config


def create_blob_store(config: Config, session: Any = None) -> BlobStore:
    """Create the blob store selected by ``config.blob_backend``."""
    if config.blob_backend == "http":
        endpoint = config.blob_endpoint_url or f"https://s3.{config.region}.amazonaws.com"
        return HttpBlobStore(endpoint_url=endpoint)
    return S3BlobStore(session=session, max_pool_connections=config.max_connections)


def create_clients(config: Config) -> tuple[CommandService, OutputExtender | None, list[Any]]:
    """Create the command service and, when enabled, the output extender.

    Returns:
        ``(service, extender, closeables)``.
    """
    session = create_session(region=config.region, profile=config.profile)
    service = SsmCommandService(
        session=session,
        comment=config.comment,
        output_bucket=config.s3_bucket,
        output_key_prefix=config.s3_key_prefix,
        max_pool_connections=config.max_connections,
    )

    if not config.extend_output:
        return service, None, []

    blob_store = create_blob_store(config, session)
    extender = OutputExtender(
        blob_store,
        default_bucket=config.s3_bucket,
        key_prefix=config.s3_key_prefix,
    )
    closeables = [blob_store] if isinstance(blob_store, HttpBlobStore) else []
    return service, extender, closeables


def bootstrap(parsed: argparse.Namespace) -> BootstrapContext:
    """Bootstrap the application with all dependencies.

    Args:
        parsed: Parsed command-line arguments.

    Returns:
        BootstrapContext ready for ``run_command``.

    Raises:
        ConfigurationError: If the configuration is invalid, the target file
            cannot be read or no targets were given.
    """
    config = load_config(parsed.env_file)
    config = apply_cli_overrides(config, parsed)

    setup_logging(
        config.log_level,
        json_format=config.log_json,
        diagnostic_tags=config.diagnostic_tags,
    )

    problems = config.validate()
    if problems:
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems))

    try:
        targets = collect_targets(parsed.targets, parsed.target_file)
    except TargetFileError as e:
        raise ConfigurationError(str(e)) from e

    if not targets:
        raise ConfigurationError("No targets given, use --target or --target-file")

    logger.debug("Resolved %s target(s)", len(targets))

    service, extender, closeables = create_clients(config)

    return BootstrapContext(
        config=config,
        command=" ".join(parsed.command),
        targets=targets,
        service=service,
        extender=extender,
        _closeables=closeables,
    )


__all__ = [
    "BootstrapContext",
    "apply_cli_overrides",
    "bootstrap",
    "create_blob_store",
    "create_clients",
]
