"""TOML-based user configuration.

Loads ``config.toml`` from the mint config directory (``$MINT_CONFIG_DIR`` or
``~/.config/mint``), applies defaults for missing keys and validates the
result into an immutable Settings value.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from mint.constants import SSH_PORT, SSH_USER
from mint.exceptions import ConfigurationError

type RawConfig = dict[str, Any]

CONFIG_FILE_NAME = "config.toml"
USER_BOOTSTRAP_FILE_NAME = "user-bootstrap.sh"
KNOWN_HOSTS_FILE_NAME = "known_hosts"
AUDIT_FILE_NAME = "audit.log"
LOG_FILE_NAME = "logs/mint.log"

MIN_VOLUME_SIZE_GB = 50
MIN_IDLE_TIMEOUT_MINUTES = 15

_REGION_PATTERN = re.compile(r"^[a-z]{2}-[a-z]+-\d+$")


def config_dir() -> Path:
    """Return the mint config directory, honouring ``MINT_CONFIG_DIR``."""
    override = os.environ.get("MINT_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "mint"


@dataclass(frozen=True, slots=True)
class Settings:
    """Validated user settings.

    Attributes:
        region: AWS region. Empty means "use the boto3 default chain".
        instance_type: Instance type override for new instances. Empty means
            "reuse the type of the instance being replaced".
        volume_size_gb: Root volume size for new instances.
        idle_timeout_minutes: Idle auto-stop timeout passed to the VM.
        ssh_port: Port sshd listens on inside the VM.
        ssh_user: Login user on the VM.
        config_dir: Directory the settings were loaded from.
    """

    region: str = ""
    instance_type: str = ""
    volume_size_gb: int = MIN_VOLUME_SIZE_GB
    idle_timeout_minutes: int = 60
    ssh_port: int = SSH_PORT
    ssh_user: str = SSH_USER
    config_dir: Path = Path()

    @property
    def known_hosts_path(self) -> Path:
        return self.config_dir / KNOWN_HOSTS_FILE_NAME

    @property
    def audit_path(self) -> Path:
        return self.config_dir / AUDIT_FILE_NAME

    @property
    def log_path(self) -> Path:
        return self.config_dir / LOG_FILE_NAME

    def user_bootstrap(self) -> bytes | None:
        """Return the optional user bootstrap script, or None if absent."""
        path = self.config_dir / USER_BOOTSTRAP_FILE_NAME
        if not path.is_file():
            return None
        return path.read_bytes()


_SETTING_KEYS = tuple(f.name for f in fields(Settings) if f.name != "config_dir")


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def _validate(raw: RawConfig, path: Path) -> None:
    unknown = sorted(set(raw) - set(_SETTING_KEYS))
    if unknown:
        raise ConfigurationError(
            f"Unknown config key(s) in {path}: {', '.join(unknown)}. "
            f"Valid: {', '.join(_SETTING_KEYS)}"
        )

    region = raw.get("region", "")
    if not isinstance(region, str) or (region and not _REGION_PATTERN.match(region)):
        raise ConfigurationError(f"Invalid region {region!r}: expected a name like 'us-east-1'")

    for key in ("instance_type", "ssh_user"):
        if key in raw and not isinstance(raw[key], str):
            raise ConfigurationError(f"{key} must be a string, got {raw[key]!r}")

    for key in ("volume_size_gb", "idle_timeout_minutes", "ssh_port"):
        value = raw.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigurationError(f"{key} must be an integer, got {value!r}")

    if raw.get("volume_size_gb", MIN_VOLUME_SIZE_GB) < MIN_VOLUME_SIZE_GB:
        raise ConfigurationError(f"volume_size_gb must be at least {MIN_VOLUME_SIZE_GB}")

    if raw.get("idle_timeout_minutes", MIN_IDLE_TIMEOUT_MINUTES) < MIN_IDLE_TIMEOUT_MINUTES:
        raise ConfigurationError(
            f"idle_timeout_minutes must be at least {MIN_IDLE_TIMEOUT_MINUTES}"
        )

    port = raw.get("ssh_port", SSH_PORT)
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"ssh_port must be between 1 and 65535, got {port}")


def load_settings(directory: Path | None = None) -> Settings:
    """Load and validate ``config.toml``.

    A missing file yields the defaults. Raises ConfigurationError on invalid
    content.
    """
    directory = directory or config_dir()
    path = directory / CONFIG_FILE_NAME
    raw = _read_toml(path)
    _validate(raw, path)
    return Settings(config_dir=directory, **raw)


__all__ = [
    "Settings",
    "config_dir",
    "load_settings",
]

