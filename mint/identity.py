"""Caller identity and owner label derivation.

Every mint resource is tagged with an ``owner`` label derived from the AWS
caller ARN, so that two people sharing an account never see each other's VMs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from mint.exceptions import ConfigurationError

if TYPE_CHECKING:
    from mypy_boto3_sts import STSClient

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True, slots=True)
class Identity:
    """Resolved caller identity."""

    owner: str
    arn: str
    account: str


def normalize_owner(arn: str) -> str:
    """Derive the owner label from an IAM or STS ARN.

    Takes the last path segment of the resource part, drops any ``@domain``
    suffix, lowercases and collapses anything that is not ``[a-z0-9]`` into
    single hyphens.

    >>> normalize_owner("arn:aws:iam::123456789012:user/Jane.Doe")
    'jane-doe'
    >>> normalize_owner("arn:aws:sts::123456789012:assumed-role/Dev/jane@example.com")
    'jane'
    """
    parts = arn.split(":", 5)
    if len(parts) != 6 or parts[0] != "arn" or not parts[5]:
        raise ConfigurationError(f"Cannot derive owner from malformed ARN {arn!r}")

    name = parts[5].rsplit("/", 1)[-1]
    name = name.split("@", 1)[0].lower()
    owner = _NON_ALNUM.sub("-", name).strip("-")
    if not owner:
        raise ConfigurationError(f"ARN {arn!r} yields an empty owner name")
    return owner


def resolve_identity(sts: STSClient) -> Identity:
    """Call STS GetCallerIdentity and derive the owner label."""
    response = sts.get_caller_identity()
    arn = response["Arn"]
    identity = Identity(owner=normalize_owner(arn), arn=arn, account=response.get("Account", ""))
    logger.debug(f"Resolved caller {arn} as owner {identity.owner}")
    return identity
