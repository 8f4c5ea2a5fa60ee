"""Ephemeral SSH credentials pushed through EC2 Instance Connect.

Each remote operation gets a fresh Ed25519 keypair. The public half is pushed
to the instance (AWS keeps it for 60 seconds); the private half lives in a
0600 temp file only for the duration of the ``with`` block and is removed on
every exit path.
"""

from __future__ import annotations

import base64
import hashlib
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from loguru import logger

from mint.exceptions import RemoteConnectionError

if TYPE_CHECKING:
    from mypy_boto3_ec2_instance_connect import EC2InstanceConnectClient


def fingerprint(key_blob: bytes) -> str:
    """OpenSSH SHA256 fingerprint of a public key blob ("SHA256:<base64, no padding>")."""
    digest = hashlib.sha256(key_blob).digest()
    return "SHA256:" + base64.b64encode(digest).decode().rstrip("=")


def public_key_fingerprint(public_key: str) -> str:
    """Fingerprint an OpenSSH public key line (e.g. "ssh-ed25519 AAAA... comment")."""
    parts = public_key.strip().split()
    if len(parts) < 2:
        raise ValueError(f"Not an OpenSSH public key: {public_key[:40]!r}")
    return fingerprint(base64.b64decode(parts[1]))


@dataclass(frozen=True, slots=True)
class EphemeralKey:
    """A single-use keypair. ``private_key_path`` exists only inside ``ephemeral_key()``."""

    private_key_path: Path
    public_key: str

    @property
    def fingerprint(self) -> str:
        return public_key_fingerprint(self.public_key)


@contextmanager
def ephemeral_key(directory: str | Path | None = None) -> Iterator[EphemeralKey]:
    """Generate an Ed25519 keypair and remove the private key file on exit."""
    private_key = Ed25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_key = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode()

    fd, name = tempfile.mkstemp(prefix="mint-ssh-", dir=directory)
    path = Path(name)
    try:
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(private_bytes)
        yield EphemeralKey(private_key_path=path, public_key=f"{public_key} mint-ephemeral")
    finally:
        path.unlink(missing_ok=True)


class CredentialIssuer:
    """Issues ephemeral keys and pushes them with EC2 Instance Connect."""

    def __init__(self, instance_connect: EC2InstanceConnectClient | Any, username: str) -> None:
        self._client = instance_connect
        self.username = username

    def push(self, key: EphemeralKey, instance_id: str, availability_zone: str) -> None:
        try:
            response = self._client.send_ssh_public_key(
                InstanceId=instance_id,
                InstanceOSUser=self.username,
                SSHPublicKey=key.public_key,
                AvailabilityZone=availability_zone,
            )
        except (ClientError, BotoCoreError) as e:
            raise RemoteConnectionError(instance_id, f"pushing SSH key via Instance Connect: {e}") from e
        if not response.get("Success", False):
            raise RemoteConnectionError(instance_id, "EC2 Instance Connect rejected the ephemeral public key")
        logger.debug(f"Pushed ephemeral key {key.fingerprint} to {instance_id} ({self.username})")

    @contextmanager
    def issue(self, instance_id: str, availability_zone: str) -> Iterator[EphemeralKey]:
        """Yield a pushed, single-use key; the private half is deleted afterwards."""
        with ephemeral_key() as key:
            self.push(key, instance_id, availability_zone)
            yield key
