"""Host Trust Records and the host key probe.

Fingerprints are stored one per line as ``<vm-name>=<fingerprint>`` in
``<config-dir>/known_hosts``. Every update rewrites the file through a temp
file and ``os.replace`` so a crash never leaves a half-written store.
"""

from __future__ import annotations

import os
import socket
import tempfile
from pathlib import Path

import paramiko
from loguru import logger

from mint.constants import HOST_KEY_PROBE_TIMEOUT
from mint.exceptions import HostKeyScanError
from mint.remote.keys import fingerprint


class HostKeyStore:
    """Per-VM-name fingerprint store."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, str]:
        entries: dict[str, str] = {}
        if not self.path.is_file():
            return entries
        for raw in self.path.read_text().splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            name, sep, value = line.partition("=")
            if sep:
                entries[name] = value
        return entries

    def _write_all(self, entries: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        content = "".join(f"{name}={fp}\n" for name, fp in sorted(entries.items()))
        fd, tmp = tempfile.mkstemp(prefix=".known_hosts-", dir=self.path.parent)
        try:
            os.fchmod(fd, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def get(self, vm_name: str) -> str | None:
        return self._read_all().get(vm_name)

    def record(self, vm_name: str, fp: str) -> None:
        entries = self._read_all()
        entries[vm_name] = fp
        self._write_all(entries)
        logger.debug(f"Recorded host key {fp} for {vm_name}")

    def remove(self, vm_name: str) -> bool:
        """Forget the fingerprint for ``vm_name``. Returns False if none was stored."""
        entries = self._read_all()
        if entries.pop(vm_name, None) is None:
            return False
        self._write_all(entries)
        logger.debug(f"Removed host key for {vm_name}")
        return True


def scan_host_key(host: str, port: int, timeout: float = HOST_KEY_PROBE_TIMEOUT) -> str:
    """Fetch the host's Ed25519 key fingerprint without authenticating.

    Only the key exchange is performed; no credential is offered.

    Raises:
        HostKeyScanError: If the host cannot be reached or does not offer an
            Ed25519 host key within ``timeout`` seconds.
    """
    target = f"{host}:{port}"
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise HostKeyScanError(target, f"scanning host key: {e}") from e

    transport = paramiko.Transport(sock)
    try:
        transport.banner_timeout = timeout
        transport.get_security_options().key_types = ["ssh-ed25519"]
        transport.start_client(timeout=timeout)
        key = transport.get_remote_server_key()
    except (paramiko.SSHException, OSError, EOFError) as e:
        raise HostKeyScanError(target, f"scanning host key: {e}") from e
    finally:
        transport.close()

    fp = fingerprint(key.asbytes())
    logger.debug(f"Host {target} presented {key.get_name()} {fp}")
    return fp
