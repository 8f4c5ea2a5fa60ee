"""Manual idle extension.

Writes a future timestamp to the extension marker on the VM. The on-VM idle
daemon and the activity prober both treat a future marker as "in use".
"""

from __future__ import annotations

import shlex
from datetime import UTC, datetime, timedelta

from loguru import logger

from mint.activity import Runner
from mint.constants import EXTEND_MARKER_PATH, MIN_EXTEND_MINUTES


def extend(run: Runner, minutes: int, *, now: datetime | None = None) -> datetime:
    """Mark the VM as in use for ``minutes`` more minutes.

    ``run`` must be a TOFU-verified runner; this writes to the VM.
    """
    if minutes < MIN_EXTEND_MINUTES:
        raise ValueError(f"minutes must be at least {MIN_EXTEND_MINUTES}, got {minutes}")

    until = (now or datetime.now(UTC)) + timedelta(minutes=minutes)
    stamp = until.replace(microsecond=0).isoformat().replace("+00:00", "Z")
    marker_dir = EXTEND_MARKER_PATH.rsplit("/", 1)[0]
    run(
        f"sudo mkdir -p {shlex.quote(marker_dir)} && "
        f"echo {shlex.quote(stamp)} | sudo tee {shlex.quote(EXTEND_MARKER_PATH)} > /dev/null"
    )
    logger.info(f"Extended idle timeout until {stamp}")
    return until
