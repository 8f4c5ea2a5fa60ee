"""AWS control-plane access for mint."""

from mint.aws.ami import resolve_ami
from mint.aws.clients import AWSClients, AWSModule, build_injector
from mint.aws.locator import VM, Address, ResourceLocator, Volume

__all__ = [
    "VM",
    "AWSClients",
    "AWSModule",
    "Address",
    "ResourceLocator",
    "Volume",
    "build_injector",
    "resolve_ami",
]
