"""Lifecycle Orchestrator: recreate a VM in place.

Tears the instance down and rebuilds it while preserving its project volume,
its Elastic IP and its name. The sequence is:

     1. find project volume       8. launch new instance
     2. set pending-attach tag    9. attach project volume
     3. stop instance            10. clear pending-attach tag (soft)
     4. detach project volume    11. reassociate Elastic IP (soft if absent)
     5. terminate instance       12. forget host key
     6. resolve launch inputs    13. wait for bootstrap
     7. verify bootstrap script

The pending-attach tag is set before the first destructive call and cleared
only after the volume is attached to the new instance. It is the only
durable recovery breadcrumb; nothing is rolled back automatically.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from mint.activity import ActivityProber, ActivityReport, unavailable_report
from mint.aws.ami import resolve_ami
from mint.aws.tags import instance_tags
from mint.bootstrap.poll import wait_for_bootstrap
from mint.bootstrap.verify import read_script, render_user_data, verify_script
from mint.constants import (
    BOOTSTRAP_POLL_INTERVAL,
    BOOTSTRAP_TIMEOUT,
    DEFAULT_INSTANCE_TYPE,
    INSTANCE_PROFILE_NAME,
    PENDING_ATTACH_VALUE,
    PROJECT_DEVICE,
    WAITER_DELAY,
    WAITER_MAX_ATTEMPTS,
    MintTag,
)
from mint.exceptions import (
    ActiveSessionsError,
    ConfirmationError,
    RemoteConnectionError,
    VMStateError,
)
from mint.lifecycle.steps import Progress, Step, run_steps
from mint.remote.tofu import trusted_runner

if TYPE_CHECKING:
    from mint.aws.clients import AWSClients
    from mint.aws.locator import VM, Address, ResourceLocator, Volume
    from mint.config import Settings
    from mint.identity import Identity
    from mint.remote.hostkeys import HostKeyStore
    from mint.remote.ssh import RemoteExecutor
    from mint.remote.tofu import HostVerifier

type Confirm = Callable[[VM], str | None]
type ScriptLoader = Callable[[], bytes]

_WAITER_CONFIG = {"Delay": WAITER_DELAY, "MaxAttempts": WAITER_MAX_ATTEMPTS}


# =============================================================================
# Values
# =============================================================================


@dataclass(frozen=True, slots=True)
class RecreateOptions:
    """Operator choices for one recreate invocation.

    Attributes:
        vm_name: Name of the VM to recreate.
        yes: Skip the typed-name confirmation.
        force: Proceed even if the VM shows activity.
    """

    vm_name: str
    yes: bool = False
    force: bool = False


@dataclass(frozen=True, slots=True)
class LaunchInputs:
    ami_id: str
    subnet_id: str
    security_group_ids: tuple[str, ...]
    instance_type: str


@dataclass(frozen=True, slots=True)
class RecreateResult:
    vm_name: str
    old_instance_id: str
    instance_id: str
    volume_id: str
    elastic_ip: str | None
    warnings: tuple[str, ...] = ()


@dataclass(slots=True)
class _RecreateState:
    """What the steps learn as they go. Lives for one invocation only."""

    vm: VM
    volume: Volume | None = None
    launch: LaunchInputs | None = None
    user_data: str = ""
    instance_id: str = ""
    address: Address | None = None
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


# =============================================================================
# Orchestrator
# =============================================================================


class Recreator:
    """Runs the guarded recreate workflow for one owner's VMs."""

    def __init__(
        self,
        *,
        clients: AWSClients,
        locator: ResourceLocator,
        settings: Settings,
        identity: Identity,
        host_keys: HostKeyStore,
        verifier: HostVerifier,
        executor: RemoteExecutor,
        confirm: Confirm | None = None,
        progress: Progress | None = None,
        script_loader: ScriptLoader = read_script,
        bootstrap_timeout: float = BOOTSTRAP_TIMEOUT,
        bootstrap_interval: float = BOOTSTRAP_POLL_INTERVAL,
    ) -> None:
        self._ec2 = clients.ec2
        self._ssm = clients.ssm
        self._locator = locator
        self._settings = settings
        self._identity = identity
        self._host_keys = host_keys
        self._verifier = verifier
        self._executor = executor
        self._confirm = confirm
        self._progress = progress
        self._script_loader = script_loader
        self._bootstrap_timeout = bootstrap_timeout
        self._bootstrap_interval = bootstrap_interval

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def check_activity(self, vm: VM) -> ActivityReport:
        """Probe ``vm`` for activity through a TOFU-verified connection.

        An unreachable host degrades to an empty report with every probe
        marked unavailable. A host key mismatch propagates.
        """
        try:
            run = trusted_runner(self._verifier, self._executor, vm, port=self._settings.ssh_port)
        except RemoteConnectionError as e:
            logger.warning(f"Could not reach VM {vm.name} for session detection: {e}")
            return unavailable_report()
        return ActivityProber(run).probe()

    def _confirmed(self, vm: VM) -> None:
        answer = self._confirm(vm) if self._confirm else None
        if answer is None or not answer.strip():
            raise ConfirmationError("No confirmation input received; recreate aborted")
        if answer.strip() != vm.name:
            raise ConfirmationError(
                f"Confirmation {answer.strip()!r} does not match VM name {vm.name!r}; recreate aborted"
            )

    def guard(self, options: RecreateOptions) -> tuple[VM, list[str]]:
        """Run every precondition. Nothing is mutated here."""
        vm = self._locator.require_vm(options.vm_name)
        if not vm.is_running:
            raise VMStateError(vm.name, vm.state)

        warnings: list[str] = []
        report = self.check_activity(vm)
        warnings.extend(report.warnings())
        if report.has_activity:
            if not options.force:
                raise ActiveSessionsError(vm.name, report)
            warnings.append(f"Proceeding despite active sessions on VM {vm.name!r} ({', '.join(report.signals)})")
            logger.warning(warnings[-1])

        if not options.yes:
            self._confirmed(vm)
        return vm, warnings

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _find_volume(self, st: _RecreateState) -> str:
        st.volume = self._locator.find_project_volume(st.vm.name)
        return f"{st.volume.volume_id} in {st.volume.availability_zone}"

    def _tag_pending_attach(self, st: _RecreateState) -> str:
        self._ec2.create_tags(
            Resources=[_volume(st).volume_id],
            Tags=[{"Key": MintTag.PENDING_ATTACH, "Value": PENDING_ATTACH_VALUE}],
        )
        return f"{MintTag.PENDING_ATTACH} set on {_volume(st).volume_id}"

    def _stop(self, st: _RecreateState) -> str:
        self._ec2.stop_instances(InstanceIds=[st.vm.instance_id])
        self._ec2.get_waiter("instance_stopped").wait(
            InstanceIds=[st.vm.instance_id], WaiterConfig=_WAITER_CONFIG,
        )
        return f"{st.vm.instance_id} stopped"

    def _detach(self, st: _RecreateState) -> str:
        volume = _volume(st)
        self._ec2.detach_volume(VolumeId=volume.volume_id, InstanceId=st.vm.instance_id, Force=True)
        self._ec2.get_waiter("volume_available").wait(
            VolumeIds=[volume.volume_id], WaiterConfig=_WAITER_CONFIG,
        )
        return f"{volume.volume_id} available"

    def _terminate(self, st: _RecreateState) -> str:
        self._ec2.terminate_instances(InstanceIds=[st.vm.instance_id])
        return f"{st.vm.instance_id} terminating"

    def _resolve_launch_inputs(self, st: _RecreateState) -> str:
        volume = _volume(st)
        st.launch = LaunchInputs(
            ami_id=resolve_ami(self._ssm),
            subnet_id=self._locator.find_default_subnet(volume.availability_zone),
            security_group_ids=(
                self._locator.find_security_group(),
                self._locator.find_admin_security_group(),
            ),
            instance_type=self._settings.instance_type or st.vm.instance_type or DEFAULT_INSTANCE_TYPE,
        )
        return f"{st.launch.ami_id}, {st.launch.subnet_id}, {st.launch.instance_type}"

    def _verify_bootstrap(self, st: _RecreateState) -> str:
        content = self._script_loader()
        digest = verify_script(content)
        st.user_data = render_user_data(
            content,
            vm_name=st.vm.name,
            idle_timeout_minutes=self._settings.idle_timeout_minutes,
            project_device=PROJECT_DEVICE,
            user_bootstrap=self._settings.user_bootstrap(),
        )
        return f"sha256 {digest[:12]}"

    def _launch(self, st: _RecreateState) -> str:
        launch = _launch_inputs(st)
        root_gb = int(st.vm.tags.get(MintTag.ROOT_VOLUME_GB) or self._settings.volume_size_gb)
        tags = instance_tags(
            owner=self._identity.owner,
            owner_arn=self._identity.arn,
            vm_name=st.vm.name,
            root_volume_gb=root_gb,
            project_volume_gb=_volume(st).size_gb or None,
        )
        response = self._ec2.run_instances(
            ImageId=launch.ami_id,
            InstanceType=launch.instance_type,
            MinCount=1,
            MaxCount=1,
            SubnetId=launch.subnet_id,
            SecurityGroupIds=list(launch.security_group_ids),
            UserData=st.user_data,
            IamInstanceProfile={"Name": INSTANCE_PROFILE_NAME},
            MetadataOptions={"HttpTokens": "required"},
            BlockDeviceMappings=[
                {
                    "DeviceName": "/dev/sda1",
                    "Ebs": {"VolumeSize": root_gb, "VolumeType": "gp3", "DeleteOnTermination": True},
                }
            ],
            TagSpecifications=[{"ResourceType": "instance", "Tags": tags}],
        )
        instances = response.get("Instances", [])
        if not instances:
            raise RuntimeError("run_instances returned no instances")
        st.instance_id = instances[0]["InstanceId"]
        self._ec2.get_waiter("instance_running").wait(
            InstanceIds=[st.instance_id], WaiterConfig=_WAITER_CONFIG,
        )
        return f"{st.instance_id} running"

    def _attach(self, st: _RecreateState) -> str:
        volume = _volume(st)
        self._ec2.attach_volume(VolumeId=volume.volume_id, InstanceId=st.instance_id, Device=PROJECT_DEVICE)
        return f"{volume.volume_id} -> {st.instance_id} at {PROJECT_DEVICE}"

    def _clear_pending_attach(self, st: _RecreateState) -> str:
        volume = _volume(st)
        try:
            self._ec2.delete_tags(
                Resources=[volume.volume_id],
                Tags=[{"Key": MintTag.PENDING_ATTACH}],
            )
        except (ClientError, BotoCoreError) as e:
            st.warn(f"Could not remove {MintTag.PENDING_ATTACH} tag from {volume.volume_id}: {e}")
            return "marker left in place"
        return f"{MintTag.PENDING_ATTACH} cleared"

    def _reassociate_address(self, st: _RecreateState) -> str:
        address = self._locator.find_elastic_ip(st.vm.name)
        if address is None:
            st.warn(f"No Elastic IP found for VM {st.vm.name!r}; using the auto-assigned public IP")
            return "no Elastic IP"
        st.address = address
        if address.is_bound:
            logger.debug(f"Disassociating stale Elastic IP association {address.association_id}")
            self._ec2.disassociate_address(AssociationId=address.association_id)
        self._ec2.associate_address(AllocationId=address.allocation_id, InstanceId=st.instance_id)
        return f"{address.public_ip} -> {st.instance_id}"

    def _forget_host_key(self, st: _RecreateState) -> str:
        removed = self._host_keys.remove(st.vm.name)
        return "stored fingerprint removed" if removed else "no stored fingerprint"

    def _wait_bootstrap(self, st: _RecreateState) -> str:
        wait_for_bootstrap(
            self._locator,
            st.instance_id,
            timeout=self._bootstrap_timeout,
            interval=self._bootstrap_interval,
        )
        return "bootstrap complete"

    def steps(self) -> tuple[Step[_RecreateState], ...]:
        return (
            Step("find project volume", self._find_volume),
            Step("tag pending-attach", self._tag_pending_attach, destructive=True),
            Step("stop instance", self._stop, _hint_marked),
            Step("detach project volume", self._detach, _hint_marked),
            Step("terminate instance", self._terminate, _hint_marked),
            Step("resolve launch inputs", self._resolve_launch_inputs, _hint_terminated),
            Step("verify bootstrap script", self._verify_bootstrap, _hint_terminated),
            Step("launch instance", self._launch, _hint_terminated),
            Step("attach project volume", self._attach, _hint_launched),
            Step("clear pending-attach", self._clear_pending_attach),
            Step("reassociate elastic ip", self._reassociate_address, _hint_attached),
            Step("forget host key", self._forget_host_key, _hint_attached),
            Step("wait for bootstrap", self._wait_bootstrap),
        )

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def recreate(self, options: RecreateOptions) -> RecreateResult:
        """Guard, then run every step in order.

        Raises:
            PreconditionError: A guard or the volume lookup failed; nothing was changed.
            RecreateStepError: A step failed; see its hint for recovery.
            SecurityError: Host key mismatch or tampered provisioning script.
                Raised mid-sequence it names the step and carries its hint.
            BootstrapError: The new instance failed or timed out provisioning.
        """
        vm, warnings = self.guard(options)
        logger.info(f"Recreating VM {vm.name} ({vm.instance_id})")

        state = _RecreateState(vm=vm, warnings=warnings)
        run_steps(self.steps(), state, self._progress)

        return RecreateResult(
            vm_name=vm.name,
            old_instance_id=vm.instance_id,
            instance_id=state.instance_id,
            volume_id=_volume(state).volume_id,
            elastic_ip=state.address.public_ip if state.address else None,
            warnings=tuple(state.warnings),
        )


# =============================================================================
# Helpers
# =============================================================================


def _volume(st: _RecreateState) -> Volume:
    if st.volume is None:
        raise RuntimeError("project volume not resolved")
    return st.volume


def _launch_inputs(st: _RecreateState) -> LaunchInputs:
    if st.launch is None:
        raise RuntimeError("launch inputs not resolved")
    return st.launch


def _hint_marked(st: _RecreateState) -> str:
    vol = st.volume.volume_id if st.volume else "the project volume"
    return (
        f"{vol} is tagged {MintTag.PENDING_ATTACH}={PENDING_ATTACH_VALUE}. "
        f"Instance {st.vm.instance_id} may be stopped; start it with "
        f"`aws ec2 start-instances --instance-ids {st.vm.instance_id}`, then re-running "
        "`mint recreate` is safe."
    )


def _hint_terminated(st: _RecreateState) -> str:
    vol = st.volume.volume_id if st.volume else "the project volume"
    return (
        f"Instance {st.vm.instance_id} was terminated. Project data is safe on {vol}, "
        f"which is detached and tagged {MintTag.PENDING_ATTACH}={PENDING_ATTACH_VALUE}. "
        f"Fix the cause, then launch a new instance in {st.vm.availability_zone}, attach {vol} at "
        f"{PROJECT_DEVICE} and remove the {MintTag.PENDING_ATTACH} tag."
    )


def _hint_launched(st: _RecreateState) -> str:
    vol = st.volume.volume_id if st.volume else "the project volume"
    return (
        f"New instance {st.instance_id} is running without its project volume. "
        f"Attach {vol} at {PROJECT_DEVICE} manually, then remove the {MintTag.PENDING_ATTACH} tag."
    )


def _hint_attached(st: _RecreateState) -> str:
    return (
        f"The project volume is attached to {st.instance_id}. Remaining work is network "
        "identity only; re-run the failed action manually or run `mint recreate` again."
    )
