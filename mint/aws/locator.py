"""Resource Locator.

Finds a VM and its associated resources by tags (owner, VM name), never by
locally stored identifiers. Every lookup is a fresh control-plane query and
returns immutable values; nothing is cached between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from mint.aws.tags import owner_filters, owner_vm_filters, tag_filter, tags_to_dict
from mint.constants import LIVE_STATES, Component, InstanceState, MintTag
from mint.exceptions import (
    AmbiguousResourceError,
    ResolutionError,
    VMNotFoundError,
    VolumeNotFoundError,
)

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client


# =============================================================================
# Values
# =============================================================================


@dataclass(frozen=True, slots=True)
class VM:
    """A mint VM as seen by the control plane at query time."""

    instance_id: str
    name: str
    owner: str
    state: InstanceState
    availability_zone: str
    instance_type: str
    public_ip: str | None = None
    bootstrap: str = ""
    bootstrap_failure_phase: str = ""
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.state == InstanceState.RUNNING


@dataclass(frozen=True, slots=True)
class Volume:
    """The project data volume of a VM."""

    volume_id: str
    availability_zone: str
    state: str
    size_gb: int
    attached_to: tuple[str, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def pending_attach(self) -> bool:
        return MintTag.PENDING_ATTACH in self.tags


@dataclass(frozen=True, slots=True)
class Address:
    """A floating (Elastic) IP and its current binding, if any."""

    allocation_id: str
    public_ip: str
    association_id: str | None = None
    instance_id: str | None = None

    @property
    def is_bound(self) -> bool:
        return bool(self.association_id)


def _vm_from_instance(instance: dict[str, Any]) -> VM:
    tags = tags_to_dict(instance.get("Tags"))
    return VM(
        instance_id=instance["InstanceId"],
        name=tags.get(MintTag.VM, ""),
        owner=tags.get(MintTag.OWNER, ""),
        state=InstanceState(instance["State"]["Name"]),
        availability_zone=instance.get("Placement", {}).get("AvailabilityZone", ""),
        instance_type=instance.get("InstanceType", ""),
        public_ip=instance.get("PublicIpAddress"),
        bootstrap=tags.get(MintTag.BOOTSTRAP, ""),
        bootstrap_failure_phase=tags.get(MintTag.BOOTSTRAP_FAILURE_PHASE, ""),
        tags=tags,
    )


def _volume_from_response(volume: dict[str, Any]) -> Volume:
    return Volume(
        volume_id=volume["VolumeId"],
        availability_zone=volume.get("AvailabilityZone", ""),
        state=volume.get("State", ""),
        size_gb=int(volume.get("Size", 0)),
        attached_to=tuple(a["InstanceId"] for a in volume.get("Attachments", ()) if "InstanceId" in a),
        tags=tags_to_dict(volume.get("Tags")),
    )


# =============================================================================
# Locator
# =============================================================================


class ResourceLocator:
    """Stateless, tag-driven lookups scoped to one owner."""

    def __init__(self, ec2: EC2Client | Any, owner: str) -> None:
        self._ec2 = ec2
        self.owner = owner

    def _instances(self, filters: list[dict[str, Any]]) -> list[dict[str, Any]]:
        instances: list[dict[str, Any]] = []
        paginator = self._ec2.get_paginator("describe_instances")
        for page in paginator.paginate(Filters=filters):
            for reservation in page.get("Reservations", []):
                instances.extend(reservation.get("Instances", []))
        return instances

    def find_vm(self, vm_name: str) -> VM | None:
        """Return the live VM with this name, None if there is none.

        Terminated and shutting-down instances are ignored. More than one
        live match is an error rather than a guess.
        """
        filters = [
            *owner_vm_filters(self.owner, vm_name),
            {"Name": "instance-state-name", "Values": [str(s) for s in LIVE_STATES]},
        ]
        instances = self._instances(filters)
        if len(instances) > 1:
            raise AmbiguousResourceError("instance", vm_name, [i["InstanceId"] for i in instances])
        if not instances:
            return None
        return _vm_from_instance(instances[0])

    def require_vm(self, vm_name: str) -> VM:
        vm = self.find_vm(vm_name)
        if vm is None:
            raise VMNotFoundError(vm_name, self.owner)
        return vm

    def describe_vm(self, instance_id: str) -> VM:
        """Return a specific instance by ID, regardless of its state."""
        response = self._ec2.describe_instances(InstanceIds=[instance_id])
        for reservation in response.get("Reservations", []):
            for instance in reservation.get("Instances", []):
                return _vm_from_instance(instance)
        raise ResolutionError(f"Instance {instance_id} not found")

    def find_project_volume(self, vm_name: str) -> Volume:
        """Return exactly one project volume for this VM.

        Raises:
            VolumeNotFoundError: If there is none.
            AmbiguousResourceError: If there is more than one.
        """
        response = self._ec2.describe_volumes(
            Filters=owner_vm_filters(self.owner, vm_name, Component.PROJECT_VOLUME),
        )
        volumes = response.get("Volumes", [])
        if not volumes:
            raise VolumeNotFoundError(vm_name, self.owner)
        if len(volumes) > 1:
            raise AmbiguousResourceError("project volume", vm_name, [v["VolumeId"] for v in volumes])
        volume = _volume_from_response(volumes[0])
        logger.debug(f"Project volume for {vm_name}: {volume.volume_id} in {volume.availability_zone}")
        return volume

    def find_elastic_ip(self, vm_name: str) -> Address | None:
        """Return the VM's Elastic IP, or None if it never had one."""
        response = self._ec2.describe_addresses(
            Filters=owner_vm_filters(self.owner, vm_name, Component.ELASTIC_IP),
        )
        addresses = response.get("Addresses", [])
        if not addresses:
            return None
        if len(addresses) > 1:
            raise AmbiguousResourceError("elastic IP", vm_name, [a["AllocationId"] for a in addresses])
        addr = addresses[0]
        return Address(
            allocation_id=addr["AllocationId"],
            public_ip=addr.get("PublicIp", ""),
            association_id=addr.get("AssociationId") or None,
            instance_id=addr.get("InstanceId") or None,
        )

    def find_security_group(self) -> str:
        """Return the owner's security group ID."""
        response = self._ec2.describe_security_groups(
            Filters=[*owner_filters(self.owner), tag_filter(MintTag.COMPONENT, Component.SECURITY_GROUP)],
        )
        groups = response.get("SecurityGroups", [])
        if not groups:
            raise ResolutionError(
                f"No security group found with tags {MintTag.OWNER}={self.owner}, "
                f"{MintTag.COMPONENT}={Component.SECURITY_GROUP}. Create one with these tags before recreating."
            )
        return groups[0]["GroupId"]

    def find_admin_security_group(self) -> str:
        """Return the shared admin security group ID."""
        response = self._ec2.describe_security_groups(
            Filters=[tag_filter(MintTag.MANAGED, "true"), tag_filter(MintTag.COMPONENT, Component.ADMIN)],
        )
        groups = response.get("SecurityGroups", [])
        if not groups:
            raise ResolutionError(
                "No admin security group found. Ask an administrator to create one tagged "
                f"{MintTag.MANAGED}=true, {MintTag.COMPONENT}={Component.ADMIN}."
            )
        return groups[0]["GroupId"]

    def find_default_subnet(self, availability_zone: str) -> str:
        """Return the default subnet in the given availability zone."""
        response = self._ec2.describe_subnets(
            Filters=[
                {"Name": "default-for-az", "Values": ["true"]},
                {"Name": "availability-zone", "Values": [availability_zone]},
            ],
        )
        subnets = response.get("Subnets", [])
        if not subnets:
            raise ResolutionError(f"No default subnet found in {availability_zone}")
        return subnets[0]["SubnetId"]
