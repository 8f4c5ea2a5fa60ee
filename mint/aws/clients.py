"""AWS client factories with dependency injection.

Provides the boto3 clients every command needs, bound once per invocation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import boto3
from injector import Injector, Module, provider, singleton

from mint.config import Settings
from mint.identity import Identity, resolve_identity

if TYPE_CHECKING:
    from mypy_boto3_ec2 import EC2Client
    from mypy_boto3_ec2_instance_connect import EC2InstanceConnectClient
    from mypy_boto3_ssm import SSMClient
    from mypy_boto3_sts import STSClient


# =============================================================================
# Client Bundle
# =============================================================================


@dataclass(frozen=True, slots=True)
class AWSClients:
    """The control-plane clients used by a single command invocation."""

    ec2: EC2Client | Any
    ssm: SSMClient | Any
    sts: STSClient | Any
    instance_connect: EC2InstanceConnectClient | Any


# =============================================================================
# AWS Module
# =============================================================================


class AWSModule(Module):
    """DI module that provides boto3 clients and the caller identity.

    Usage:
        >>> from injector import Injector
        >>> from mint.aws import AWSModule, AWSClients
        >>>
        >>> injector = Injector([AWSModule(settings)])
        >>> clients = injector.get(AWSClients)
        >>> clients.ec2.describe_instances()
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @singleton
    @provider
    def provide_settings(self) -> Settings:
        """Provide the loaded user settings."""
        return self._settings

    @singleton
    @provider
    def provide_session(self, settings: Settings) -> boto3.Session:
        """Provide singleton boto3 session, pinned to the configured region if any."""
        return boto3.Session(region_name=settings.region or None)

    @singleton
    @provider
    def provide_clients(self, session: boto3.Session) -> AWSClients:
        """Provide the EC2, SSM, STS and Instance Connect clients."""
        return AWSClients(
            ec2=session.client("ec2"),
            ssm=session.client("ssm"),
            sts=session.client("sts"),
            instance_connect=session.client("ec2-instance-connect"),
        )

    @singleton
    @provider
    def provide_identity(self, clients: AWSClients) -> Identity:
        """Provide the caller identity derived from STS."""
        return resolve_identity(clients.sts)


def build_injector(settings: Settings) -> Injector:
    """Create the injector for one CLI invocation."""
    return Injector([AWSModule(settings)])


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "AWSClients",
    "AWSModule",
    "build_injector",
]
