"""Bootstrap readiness polling.

The new instance tags itself ``mint:bootstrap=complete`` (or ``failed``)
when its provisioning script finishes. This module only observes that tag.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from mint.constants import BOOTSTRAP_POLL_INTERVAL, BOOTSTRAP_TIMEOUT, BootstrapStatus
from mint.exceptions import BootstrapFailedError, BootstrapTimeoutError

if TYPE_CHECKING:
    from mint.aws.locator import ResourceLocator


class _BootstrapPendingError(Exception):
    """Bootstrap still running - retry."""


def wait_for_bootstrap(
    locator: ResourceLocator,
    instance_id: str,
    *,
    timeout: float = BOOTSTRAP_TIMEOUT,
    interval: float = BOOTSTRAP_POLL_INTERVAL,
) -> None:
    """Block until ``instance_id`` reports bootstrap completion.

    Raises:
        BootstrapFailedError: If the instance tagged itself as failed.
        BootstrapTimeoutError: If no outcome was reported within ``timeout``.
    """

    @retry(
        stop=stop_after_delay(timeout),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(_BootstrapPendingError),
    )
    def _poll() -> None:
        try:
            vm = locator.describe_vm(instance_id)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Bootstrap poll for {instance_id} failed, retrying: {e}")
            raise _BootstrapPendingError() from e

        if vm.bootstrap == BootstrapStatus.COMPLETE:
            return
        if vm.bootstrap == BootstrapStatus.FAILED:
            raise BootstrapFailedError(instance_id, vm.bootstrap_failure_phase or None)
        logger.debug(f"Bootstrap on {instance_id}: {vm.bootstrap or 'no status yet'}")
        raise _BootstrapPendingError()

    try:
        _poll()
    except RetryError as e:
        raise BootstrapTimeoutError(instance_id, timeout) from e
    logger.info(f"Bootstrap complete on {instance_id}")
