"""Base image resolution for new instances.

Uses the public SSM parameter Canonical maintains for Ubuntu 24.04 so that a
recreated VM always boots the current stable image for its region.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from botocore.exceptions import ClientError
from loguru import logger

from mint.constants import UBUNTU_AMI_PARAMETER
from mint.exceptions import ResolutionError

if TYPE_CHECKING:
    from mypy_boto3_ssm import SSMClient


def resolve_ami(ssm: SSMClient, parameter: str = UBUNTU_AMI_PARAMETER) -> str:
    """Resolve the current Ubuntu 24.04 AMI ID.

    Args:
        ssm: SSM client for the target region.
        parameter: Public SSM parameter holding the AMI ID.

    Returns:
        AMI ID string (e.g., "ami-0123456789abcdef0")

    Raises:
        ResolutionError: If the parameter does not exist or is empty.
        ClientError: For any other control-plane failure.
    """
    logger.debug(f"Resolving AMI from {parameter}")
    try:
        response = ssm.get_parameter(Name=parameter)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        if error_code == "ParameterNotFound":
            raise ResolutionError(
                f"Could not resolve the Ubuntu 24.04 AMI: SSM parameter {parameter} not found"
            ) from e
        raise

    ami_id = response.get("Parameter", {}).get("Value", "")
    if not ami_id:
        raise ResolutionError(f"SSM parameter {parameter} returned an empty AMI ID")
    logger.debug(f"Resolved AMI: {ami_id}")
    return ami_id
