"""Bootstrap Integrity Verifier and user-data rendering.

The provisioning script ships inside the package with a pinned SHA-256 and
size. It is verified immediately before launch; only verified bytes are
rendered into EC2 user-data.
"""

from __future__ import annotations

import base64
import hashlib
from pathlib import Path
from typing import Final

from loguru import logger

from mint.constants import MAX_USER_DATA_BYTES, PROJECT_DEVICE
from mint.exceptions import IntegrityError, ResolutionError

SCRIPT_PATH: Final = Path(__file__).parent / "scripts" / "bootstrap.sh"
SCRIPT_SHA256: Final = "5b7a637ab319d0a11df9dae59630a927a884fe7536da3b9f1b5e39545e2722d6"
SCRIPT_SIZE: Final = 2695


def read_script() -> bytes:
    return SCRIPT_PATH.read_bytes()


def verify_script(
    content: bytes,
    expected_sha256: str = SCRIPT_SHA256,
    expected_size: int = SCRIPT_SIZE,
) -> str:
    """Check ``content`` against the pinned digest and return the digest.

    Raises:
        IntegrityError: On any mismatch. The message tells a size change
            (likely corrupted or truncated) apart from same-size different
            content (likely modified on purpose).
    """
    actual = hashlib.sha256(content).hexdigest()
    if actual != expected_sha256.lower():
        raise IntegrityError(expected_sha256, actual, expected_size, len(content))
    logger.debug(f"Provisioning script verified (sha256 {actual}, {len(content)} bytes)")
    return actual


def render_user_data(
    content: bytes,
    *,
    vm_name: str,
    idle_timeout_minutes: int,
    project_device: str = PROJECT_DEVICE,
    user_bootstrap: bytes | None = None,
    max_bytes: int = MAX_USER_DATA_BYTES,
) -> str:
    """Substitute ``__MINT_*__`` placeholders and enforce the user-data size cap."""
    rendered = content.decode()
    values = {
        "__MINT_VM_NAME__": vm_name,
        "__MINT_PROJECT_DEV__": project_device,
        "__MINT_IDLE_TIMEOUT__": str(idle_timeout_minutes),
        "__MINT_USER_BOOTSTRAP__": base64.b64encode(user_bootstrap).decode() if user_bootstrap else "",
    }
    for placeholder, value in values.items():
        rendered = rendered.replace(placeholder, value)

    size = len(rendered.encode())
    if size > max_bytes:
        raise ResolutionError(
            f"user-bootstrap.sh too large: rendered user-data is {size} bytes, "
            f"max is {max_bytes} ({size - max_bytes} bytes over limit)"
        )
    return rendered
