"""Provisioning script integrity and bootstrap readiness."""

from mint.bootstrap.poll import wait_for_bootstrap
from mint.bootstrap.verify import read_script, render_user_data, verify_script

__all__ = [
    "read_script",
    "render_user_data",
    "verify_script",
    "wait_for_bootstrap",
]
