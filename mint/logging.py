"""Logging configuration for mint.

This module provides structured logging via loguru. Logging is disabled by
default and enabled by the CLI with a LogConfig instance.

Besides the console and rotating file sinks, mutating commands append one
JSON line per invocation to an audit log so that an operator can tell who
recreated which VM and when.

Example:
    from mint.logging import LogConfig, audit, setup_logging, teardown_logging

    handler_ids = setup_logging(LogConfig(level="DEBUG", file="mint.log"))
    audit("recreate", vm_name="default", caller_arn=arn)
    teardown_logging(handler_ids)
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from loguru import logger

# Disable by default (library behavior)
logger.disable("mint")

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

# Detailed format for console (with colors)
CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Format for file output (no colors)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)

AUDIT_FORMAT = "{message}"


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration for a CLI invocation.

    Attributes:
        level: Minimum console log level (DEBUG, INFO, WARNING, ERROR).
        file: Path to log file. If provided, logs are written to this file.
        console: Whether to log to stderr. Defaults to True.
        rotation: File rotation policy (e.g., "10 MB", "1 day").
        retention: Number of old log files to keep.
        audit_file: Path to the JSON Lines audit log, if any.
    """

    level: LogLevel = "WARNING"
    file: str | None = None
    console: bool = True
    rotation: str = "10 MB"
    retention: int = 5
    audit_file: str | None = None


def _is_audit(record: dict) -> bool:
    return bool(record["extra"].get("audit"))


def _not_audit(record: dict) -> bool:
    return (record["name"] or "").startswith("mint") and not _is_audit(record)


def _touch_private(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    if not p.exists():
        p.touch(mode=0o600)
    os.chmod(p, 0o600)


def setup_logging(config: LogConfig) -> list[int]:
    """Configure logging and return handler IDs for cleanup.

    Args:
        config: Logging configuration.

    Returns:
        List of handler IDs that were added (for later removal).
    """
    logger.enable("mint")
    handler_ids: list[int] = []

    if config.console:
        hid = logger.add(
            sys.stderr,
            level=config.level,
            format=CONSOLE_FORMAT,
            colorize=True,
            filter=_not_audit,
        )
        handler_ids.append(hid)

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        hid = logger.add(
            config.file,
            level="DEBUG",  # File always captures everything
            format=FILE_FORMAT,
            rotation=config.rotation,
            retention=config.retention,
            diagnose=False,  # Don't expose credentials in tracebacks
            filter=_not_audit,
        )
        handler_ids.append(hid)

    if config.audit_file:
        _touch_private(config.audit_file)
        hid = logger.add(
            config.audit_file,
            level="INFO",
            format=AUDIT_FORMAT,
            diagnose=False,
            filter=_is_audit,
        )
        handler_ids.append(hid)

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    """Remove handlers and disable logging.

    Args:
        handler_ids: List of handler IDs to remove.
    """
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("mint")


def audit(command: str, *, vm_name: str, caller_arn: str) -> None:
    """Append one audit record for a mutating command invocation."""
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "command": command,
        "vm_name": vm_name,
        "caller_arn": caller_arn,
    }
    logger.bind(audit=True).info(json.dumps(entry, sort_keys=True))
