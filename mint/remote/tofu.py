"""Trust-on-first-use host verification.

Write-capable remote operations never talk to a host whose identity is
unknown or has changed. The verifier probes the host key once, checks it
against the Host Trust Record for the VM name and returns a VerifiedHost.
That value is passed into every subsequent remote call of the same command
invocation, which both skips re-probing and pins the SSH connection to the
verified key.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from mint.exceptions import HostKeyMismatchError, RemoteConnectionError
from mint.remote.hostkeys import HostKeyStore, scan_host_key

if TYPE_CHECKING:
    from mint.aws.locator import VM
    from mint.remote.ssh import RemoteExecutor

type HostKeyScanner = Callable[[str, int], str]
type Runner = Callable[[str | Sequence[str]], str]


@dataclass(frozen=True, slots=True)
class VerifiedHost:
    """Proof that ``host:port`` presented the trusted key for ``vm_name``."""

    vm_name: str
    host: str
    port: int
    fingerprint: str
    first_use: bool = False


class HostVerifier:
    """Checks host identity against the Host Trust Record store."""

    def __init__(self, store: HostKeyStore, scanner: HostKeyScanner = scan_host_key) -> None:
        self.store = store
        self._scan = scanner

    def verify(self, vm_name: str, host: str, port: int) -> VerifiedHost:
        """Probe ``host:port`` and compare with the stored record.

        No record: the fingerprint is recorded (trust on first use).
        Match: verified. Mismatch: HostKeyMismatchError, and nothing is run.

        Raises:
            HostKeyScanError: If the probe fails (a connectivity problem).
            HostKeyMismatchError: If the presented key differs from the record.
        """
        presented = self._scan(host, port)
        stored = self.store.get(vm_name)

        if stored is None:
            self.store.record(vm_name, presented)
            logger.info(f"Trusting host key {presented} for VM {vm_name} on first use")
            return VerifiedHost(vm_name, host, port, presented, first_use=True)

        if stored != presented:
            logger.warning(f"Host key mismatch for VM {vm_name}: stored {stored}, presented {presented}")
            raise HostKeyMismatchError(vm_name, stored, presented)

        return VerifiedHost(vm_name, host, port, presented)


def trusted_runner(
    verifier: HostVerifier,
    executor: RemoteExecutor,
    vm: VM,
    *,
    port: int,
) -> Runner:
    """Verify ``vm`` once and return a runner bound to that verification.

    The returned callable runs one command per call over a connection pinned
    to the verified host key.
    """
    if not vm.public_ip:
        raise RemoteConnectionError(vm.instance_id, "VM has no public IP address")
    verified = verifier.verify(vm.name, vm.public_ip, port)

    def run(command: str | Sequence[str]) -> str:
        return executor.run(vm, command, verified=verified)

    return run
