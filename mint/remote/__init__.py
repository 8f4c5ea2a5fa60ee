"""Secure remote execution: ephemeral credentials, SSH and TOFU host verification."""

from mint.remote.hostkeys import HostKeyStore, scan_host_key
from mint.remote.keys import CredentialIssuer, EphemeralKey, ephemeral_key, fingerprint
from mint.remote.ssh import RemoteExecutor, SSHConnection
from mint.remote.tofu import HostVerifier, VerifiedHost, trusted_runner

__all__ = [
    "CredentialIssuer",
    "EphemeralKey",
    "HostKeyStore",
    "HostVerifier",
    "RemoteExecutor",
    "SSHConnection",
    "VerifiedHost",
    "ephemeral_key",
    "fingerprint",
    "scan_host_key",
    "trusted_runner",
]
