"""Remote Execution Primitive.

Runs exactly one non-interactive command per call on a VM: issue an
ephemeral key, connect with paramiko, execute, capture stdout, disconnect.
"""

from __future__ import annotations

import shlex
import socket
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import paramiko
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from mint.constants import REMOTE_COMMAND_TIMEOUT, SSH_CONNECT_TIMEOUT, SSH_PORT, SSH_USER
from mint.exceptions import HostKeyMismatchError, RemoteCommandError, RemoteConnectionError
from mint.remote.keys import fingerprint

if TYPE_CHECKING:
    from mint.aws.locator import VM
    from mint.remote.keys import CredentialIssuer
    from mint.remote.tofu import VerifiedHost


class _PinnedHostKeyPolicy(paramiko.MissingHostKeyPolicy):
    """Accept only the host key that was verified for this invocation."""

    def __init__(self, verified: VerifiedHost) -> None:
        self._verified = verified

    def missing_host_key(self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey) -> None:
        presented = fingerprint(key.asbytes())
        if presented != self._verified.fingerprint:
            raise HostKeyMismatchError(self._verified.vm_name, self._verified.fingerprint, presented)


class SSHConnection:
    """A single paramiko connection authenticated with an ephemeral key."""

    __slots__ = ("_client", "_target")

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        key_path: Path,
        *,
        verified: VerifiedHost | None = None,
        timeout: float = SSH_CONNECT_TIMEOUT,
    ) -> None:
        self._target = f"{host}:{port}"
        logger.debug(f"SSH: connecting to {self._target} ({username})")
        self._client = paramiko.SSHClient()
        if verified is not None:
            self._client.set_missing_host_key_policy(_PinnedHostKeyPolicy(verified))
        else:
            self._client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            self._client.connect(
                hostname=host,
                port=port,
                username=username,
                key_filename=str(key_path),
                timeout=timeout,
                banner_timeout=timeout,
                auth_timeout=timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except HostKeyMismatchError:
            self._client.close()
            raise
        except paramiko.AuthenticationException:
            self._client.close()
            raise
        except (paramiko.SSHException, OSError, EOFError) as e:
            self._client.close()
            raise RemoteConnectionError(self._target, str(e) or type(e).__name__) from e
        logger.debug(f"SSH: connected to {self._target}")

    def exec(self, command: str, timeout: float = REMOTE_COMMAND_TIMEOUT) -> str:
        """Execute immediately, return stdout."""
        cmd_preview = command[:80] + "..." if len(command) > 80 else command
        logger.debug(f"SSHConnection.exec: {cmd_preview}")
        try:
            _, stdout, stderr = self._client.exec_command(command, timeout=timeout)
            out = stdout.read().decode()
            err = stderr.read().decode()
            code = stdout.channel.recv_exit_status()
        except (socket.timeout, TimeoutError) as e:
            raise RemoteConnectionError(self._target, f"command timed out after {timeout}s") from e
        except (paramiko.SSHException, OSError, EOFError) as e:
            raise RemoteConnectionError(self._target, str(e) or type(e).__name__) from e
        logger.debug(f"SSHConnection.exec: exit_code={code}")
        if code != 0:
            raise RemoteCommandError(command, code, err)
        return out

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> SSHConnection:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class RemoteExecutor:
    """Runs single commands on VMs with a fresh Instance Connect credential per call."""

    def __init__(
        self,
        issuer: CredentialIssuer,
        *,
        username: str = SSH_USER,
        port: int = SSH_PORT,
        connect_timeout: float = SSH_CONNECT_TIMEOUT,
        command_timeout: float = REMOTE_COMMAND_TIMEOUT,
    ) -> None:
        self._issuer = issuer
        self.username = username
        self.port = port
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout

    def run(
        self,
        vm: VM,
        command: str | Sequence[str],
        *,
        verified: VerifiedHost | None = None,
    ) -> str:
        """Run ``command`` on ``vm`` and return its stdout.

        With ``verified`` set the connection goes to the verified address and
        refuses any host key other than the verified one.

        Raises:
            RemoteConnectionError: If the VM cannot be reached or authenticated.
            RemoteCommandError: If the command exits non-zero.
            HostKeyMismatchError: If a pinned connection sees a different key.
        """
        cmd = command if isinstance(command, str) else shlex.join(command)
        host = verified.host if verified is not None else vm.public_ip
        port = verified.port if verified is not None else self.port
        if not host:
            raise RemoteConnectionError(vm.instance_id, "VM has no public IP address")

        with self._issuer.issue(vm.instance_id, vm.availability_zone) as key:
            with self._connect(host, port, key.private_key_path, verified) as conn:
                return conn.exec(cmd, timeout=self._command_timeout)

    def _connect(self, host: str, port: int, key_path: Path, verified: VerifiedHost | None) -> SSHConnection:
        # Instance Connect keys can take a moment to propagate to the host.
        @retry(
            stop=stop_after_delay(self._connect_timeout * 2),
            wait=wait_fixed(1),
            retry=retry_if_exception_type(paramiko.AuthenticationException),
            reraise=True,
        )
        def connect_with_retry() -> SSHConnection:
            return SSHConnection(
                host, port, self.username, key_path, verified=verified, timeout=self._connect_timeout,
            )

        try:
            return connect_with_retry()
        except paramiko.AuthenticationException as e:
            raise RemoteConnectionError(f"{host}:{port}", f"authentication failed: {e}") from e
