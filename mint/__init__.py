"""mint: a single development VM on AWS, recreated safely in place."""

from mint.config import Settings, load_settings
from mint.exceptions import (
    ActiveSessionsError,
    BootstrapError,
    BootstrapFailedError,
    BootstrapTimeoutError,
    ConfigurationError,
    ConfirmationError,
    HostKeyMismatchError,
    IntegrityError,
    MintError,
    PreconditionError,
    RecreateStepError,
    RemoteCommandError,
    RemoteConnectionError,
    SecurityError,
)
from mint.lifecycle import RecreateOptions, RecreateResult, Recreator
from mint.logging import LogConfig

__version__ = "0.1.0"

__all__ = [
    "ActiveSessionsError",
    "BootstrapError",
    "BootstrapFailedError",
    "BootstrapTimeoutError",
    "ConfigurationError",
    "ConfirmationError",
    "HostKeyMismatchError",
    "IntegrityError",
    "LogConfig",
    "MintError",
    "PreconditionError",
    "RecreateOptions",
    "RecreateResult",
    "RecreateStepError",
    "Recreator",
    "RemoteCommandError",
    "RemoteConnectionError",
    "SecurityError",
    "Settings",
    "load_settings",
]
