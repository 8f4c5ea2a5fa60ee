from __future__ import annotations

from pathlib import Path

import pytest

from mint.config import Settings
from mint.identity import Identity
from mint.remote.hostkeys import HostKeyStore

from fakes import OWNER, OWNER_ARN


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(config_dir=tmp_path)


@pytest.fixture
def identity() -> Identity:
    return Identity(owner=OWNER, arn=OWNER_ARN, account="123456789012")


@pytest.fixture
def host_keys(tmp_path: Path) -> HostKeyStore:
    return HostKeyStore(tmp_path / "known_hosts")
