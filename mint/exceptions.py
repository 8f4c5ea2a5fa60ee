"""Custom exception hierarchy for mint.

All mint-specific exceptions inherit from MintError, enabling the CLI to
catch every expected failure with a single except clause. Subclasses are
grouped by how the operator should react:

- PreconditionError: a guard failed before anything was changed.
- RecreateStepError: a destructive step failed; recovery is manual.
- SecurityError: host identity or script integrity could not be trusted.
- RemoteError: the VM could not be reached or a command failed on it.
- BootstrapError: the new instance did not report a successful first boot.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mint.activity import ActivityReport


class MintError(Exception):
    """Base exception for all mint errors.

    An error that escapes a multi-step workflow unwrapped can carry the step
    it was raised in and a recovery hint; both are appended to its message.
    """

    failed_step: str | None = None
    recovery_hint: str = ""

    def attach_step(self, step: str, hint: str = "") -> None:
        self.failed_step = step
        self.recovery_hint = hint

    def __str__(self) -> str:
        message = super().__str__()
        if self.failed_step:
            message = f"{message}\n\nRaised during step: {self.failed_step}"
        if self.recovery_hint:
            message = f"{message}\n\n{self.recovery_hint}"
        return message


class ConfigurationError(MintError):
    """Raised for an invalid config file or an unusable caller identity."""


# =============================================================================
# Preconditions
# =============================================================================


class PreconditionError(MintError):
    """Raised when a guard fails before any mutation took place."""


class VMNotFoundError(PreconditionError):
    """Raised when no live VM carries the requested owner and name tags."""

    def __init__(self, vm_name: str, owner: str) -> None:
        self.vm_name = vm_name
        self.owner = owner
        super().__init__(
            f"No VM {vm_name!r} found for owner {owner!r}. Check the name with --vm, or create the VM first."
        )


class VMStateError(PreconditionError):
    """Raised when a VM exists but is not in the state an operation needs."""

    def __init__(self, vm_name: str, state: str, required: str = "running") -> None:
        self.vm_name = vm_name
        self.state = state
        self.required = required
        super().__init__(
            f"VM {vm_name!r} is {state}; it must be {required} to recreate "
            "(session detection needs SSH access)"
        )


class AmbiguousResourceError(PreconditionError):
    """Raised when more than one resource matches a lookup that must be unique."""

    def __init__(self, kind: str, vm_name: str, ids: list[str]) -> None:
        self.kind = kind
        self.vm_name = vm_name
        self.ids = ids
        super().__init__(
            f"Found {len(ids)} {kind}s for VM {vm_name!r} ({', '.join(ids)}); "
            "expected exactly one. Resolve the duplicates manually before retrying."
        )


class VolumeNotFoundError(PreconditionError):
    """Raised when the VM has no project volume."""

    def __init__(self, vm_name: str, owner: str) -> None:
        self.vm_name = vm_name
        self.owner = owner
        super().__init__(f"No project volume found for owner {owner!r}, vm {vm_name!r}")


class ConfirmationError(PreconditionError):
    """Raised when the operator did not confirm a destructive action."""


class ActiveSessionsError(PreconditionError):
    """Raised when the VM is in use and the activity guard was not overridden."""

    def __init__(self, vm_name: str, report: ActivityReport) -> None:
        self.vm_name = vm_name
        self.report = report
        super().__init__(
            f"Active sessions detected on VM {vm_name!r}:\n\n{report.summary()}\n\n"
            "Use --force to proceed anyway"
        )


class ResolutionError(MintError):
    """Raised when a launch input (image, subnet, security group, user-data) cannot be resolved."""


# =============================================================================
# Destructive Sequence
# =============================================================================


class RecreateStepError(MintError):
    """Raised when a step of the recreate sequence fails.

    Completed steps are not rolled back. The message names the failed step
    and points at the pending-attach marker as the recovery signal.
    """

    def __init__(self, step: str, index: int, total: int, cause: BaseException, hint: str = "") -> None:
        self.step = step
        self.index = index
        self.total = total
        self.cause = cause
        self.hint = hint
        msg = f"Recreate failed at step {index}/{total} ({step}): {cause}"
        if hint:
            msg = f"{msg}\n\n{hint}"
        super().__init__(msg)


# =============================================================================
# Security
# =============================================================================


class SecurityError(MintError):
    """Raised when a host identity or a script digest cannot be trusted.

    Never retried and never wrapped into a generic connection or step error.
    """


class HostKeyMismatchError(SecurityError):
    """Raised when a VM presents a host key different from the recorded one."""

    def __init__(self, vm_name: str, stored: str, presented: str) -> None:
        self.vm_name = vm_name
        self.stored = stored
        self.presented = presented
        super().__init__(
            f"HOST KEY CHANGED for VM {vm_name!r}!\n\n"
            f"  Stored fingerprint:  {stored}\n"
            f"  Current fingerprint: {presented}\n\n"
            "Either the VM was rebuilt outside of `mint recreate`, or someone is "
            "intercepting the connection. No command was run on the host.\n"
            "If you rebuilt the VM yourself, run `mint recreate` or remove the "
            "stored fingerprint from the mint known_hosts file."
        )


class IntegrityError(SecurityError):
    """Raised when the provisioning script does not match its pinned digest."""

    def __init__(self, expected: str, actual: str, expected_size: int, actual_size: int) -> None:
        self.expected = expected
        self.actual = actual
        self.expected_size = expected_size
        self.actual_size = actual_size
        if actual_size != expected_size:
            diagnosis = (
                f"size is {actual_size} bytes, expected {expected_size}: "
                "the script looks truncated or corrupted in transfer"
            )
        else:
            diagnosis = (
                "size matches but the content differs: "
                "the script appears to have been intentionally modified"
            )
        super().__init__(
            f"Provisioning script integrity check failed ({diagnosis}).\n"
            f"  expected sha256: {expected}\n"
            f"  actual sha256:   {actual}\n"
            "Refusing to hand this script to a new instance."
        )


# =============================================================================
# Remote Execution
# =============================================================================


class RemoteError(MintError):
    """Base exception for remote execution failures."""


class RemoteConnectionError(RemoteError):
    """Raised when the VM cannot be reached, authenticated against, or times out."""

    def __init__(self, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Cannot reach {target}: {reason}")


class HostKeyScanError(RemoteConnectionError):
    """Raised when the host key probe fails. A connectivity problem, not a trust problem."""


class RemoteCommandError(RemoteError):
    """Raised when a remote command ran but exited non-zero."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Remote command failed ({exit_code}): {command}: {stderr.strip()}")


# =============================================================================
# Bootstrap
# =============================================================================


class BootstrapError(MintError):
    """Base exception for bootstrap readiness failures."""


class BootstrapTimeoutError(BootstrapError):
    """Raised when the new instance did not report bootstrap status in time."""

    def __init__(self, instance_id: str, timeout: float) -> None:
        self.instance_id = instance_id
        self.timeout = timeout
        super().__init__(
            f"Bootstrap did not complete within {int(timeout)}s. "
            f"Instance {instance_id} is left running; check /var/log/cloud-init-output.log on the VM."
        )


class BootstrapFailedError(BootstrapError):
    """Raised when the instance tagged itself ``mint:bootstrap=failed``."""

    def __init__(self, instance_id: str, phase: str | None = None) -> None:
        self.instance_id = instance_id
        self.phase = phase
        where = f" during phase {phase!r}" if phase else ""
        super().__init__(f"Bootstrap failed on instance {instance_id}{where}")
