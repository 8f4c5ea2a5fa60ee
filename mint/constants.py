"""Centralized constants and enums for mint.

Tag keys, component names, remote paths, and timeouts live here so that the
locator, the orchestrator and the remote layer agree on a single vocabulary.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# AWS Resource Tags
# =============================================================================


class MintTag(StrEnum):
    """AWS resource tag keys used by mint."""

    MANAGED = "mint"
    COMPONENT = "mint:component"
    VM = "mint:vm"
    OWNER = "mint:owner"
    OWNER_ARN = "mint:owner-arn"
    BOOTSTRAP = "mint:bootstrap"
    BOOTSTRAP_FAILURE_PHASE = "mint:bootstrap-failure-phase"
    PENDING_ATTACH = "mint:pending-attach"
    ROOT_VOLUME_GB = "mint:root-volume-gb"
    PROJECT_VOLUME_GB = "mint:project-volume-gb"
    NAME = "Name"


class Component(StrEnum):
    """Values of the ``mint:component`` tag."""

    INSTANCE = "instance"
    PROJECT_VOLUME = "project-volume"
    ELASTIC_IP = "elastic-ip"
    SECURITY_GROUP = "security-group"
    ADMIN = "admin"


class BootstrapStatus(StrEnum):
    """Values of the ``mint:bootstrap`` tag, written by the VM itself."""

    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


# =============================================================================
# EC2 Instance States
# =============================================================================


class InstanceState(StrEnum):
    """EC2 instance state names."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"


LIVE_STATES: Final = (
    InstanceState.PENDING,
    InstanceState.RUNNING,
    InstanceState.STOPPING,
    InstanceState.STOPPED,
)

# =============================================================================
# Launch Defaults
# =============================================================================

DEFAULT_VM_NAME: Final = "default"
DEFAULT_INSTANCE_TYPE: Final = "m6i.xlarge"
INSTANCE_PROFILE_NAME: Final = "mint-instance-profile"
PROJECT_DEVICE: Final = "/dev/xvdf"
UBUNTU_AMI_PARAMETER: Final = (
    "/aws/service/canonical/ubuntu/server/24.04/stable/current/amd64/hvm/ebs-gp2/ami-id"
)
MAX_USER_DATA_BYTES: Final = 16384
PENDING_ATTACH_VALUE: Final = "true"

# =============================================================================
# Remote Access
# =============================================================================

SSH_PORT: Final = 41122
SSH_USER: Final = "ubuntu"
EXTEND_MARKER_PATH: Final = "/var/lib/mint/idle-extended-until"
ASSISTANT_PROCESS: Final = "claude"
MIN_EXTEND_MINUTES: Final = 15

# =============================================================================
# Timeouts (in seconds)
# =============================================================================

HOST_KEY_PROBE_TIMEOUT: Final = 5
SSH_CONNECT_TIMEOUT: Final = 10
REMOTE_COMMAND_TIMEOUT: Final = 30
WAITER_DELAY: Final = 5
WAITER_MAX_ATTEMPTS: Final = 60
BOOTSTRAP_POLL_INTERVAL: Final = 15
BOOTSTRAP_TIMEOUT: Final = 15 * 60
