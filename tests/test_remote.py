import io
import stat
from pathlib import Path
from unittest.mock import MagicMock, patch

import paramiko
import pytest
from botocore.exceptions import EndpointConnectionError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from mint.aws.locator import ResourceLocator
from mint.exceptions import HostKeyMismatchError, RemoteCommandError, RemoteConnectionError
from mint.remote.keys import CredentialIssuer, ephemeral_key, fingerprint, public_key_fingerprint
from mint.remote.ssh import RemoteExecutor, SSHConnection, _PinnedHostKeyPolicy
from mint.remote.tofu import VerifiedHost

from fakes import OWNER, FakeEC2, FakeInstanceConnect, client_error, make_instance

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


def _paramiko_key() -> paramiko.PKey:
    pem = Ed25519PrivateKey.generate().private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return paramiko.Ed25519Key.from_private_key(io.StringIO(pem.decode()))


def _vm():
    return ResourceLocator(FakeEC2(instances=[make_instance()]), OWNER).require_vm("default")


class TestEphemeralKey:
    def test_private_key_exists_only_inside_block(self, tmp_path: Path):
        with ephemeral_key(tmp_path) as key:
            assert key.private_key_path.exists()
            assert stat.S_IMODE(key.private_key_path.stat().st_mode) == 0o600
            assert key.public_key.startswith("ssh-ed25519 ")
            path = key.private_key_path
        assert not path.exists()

    def test_removed_on_error(self, tmp_path: Path):
        with pytest.raises(RuntimeError), ephemeral_key(tmp_path) as key:
            path = key.private_key_path
            raise RuntimeError("boom")
        assert not path.exists()

    def test_keys_are_unique(self, tmp_path: Path):
        with ephemeral_key(tmp_path) as a, ephemeral_key(tmp_path) as b:
            assert a.public_key != b.public_key

    def test_fingerprint_format(self, tmp_path: Path):
        with ephemeral_key(tmp_path) as key:
            fp = key.fingerprint
        assert fp.startswith("SHA256:")
        assert not fp.endswith("=")
        assert len(fp) == len("SHA256:") + 43

    def test_fingerprint_matches_paramiko_blob(self):
        pkey = _paramiko_key()
        line = f"{pkey.get_name()} {pkey.get_base64()}"
        assert public_key_fingerprint(line) == fingerprint(pkey.asbytes())


class TestCredentialIssuer:
    def test_pushes_public_key(self):
        client = FakeInstanceConnect()
        issuer = CredentialIssuer(client, "ubuntu")
        with issuer.issue("i-1", "us-east-1a") as key:
            path = key.private_key_path
            assert client.calls == [{
                "InstanceId": "i-1",
                "InstanceOSUser": "ubuntu",
                "SSHPublicKey": key.public_key,
                "AvailabilityZone": "us-east-1a",
            }]
        assert not path.exists()

    def test_rejected_push(self):
        issuer = CredentialIssuer(FakeInstanceConnect(success=False), "ubuntu")
        with pytest.raises(RemoteConnectionError, match="rejected"), issuer.issue("i-1", "us-east-1a"):
            pass

    def test_api_error_is_a_connection_error(self):
        client = MagicMock()
        client.send_ssh_public_key.side_effect = client_error("ThrottlingException", "slow down")
        issuer = CredentialIssuer(client, "ubuntu")
        with pytest.raises(RemoteConnectionError, match="Instance Connect"), issuer.issue("i-1", "us-east-1a"):
            pass

    def test_network_error_is_a_connection_error(self):
        client = MagicMock()
        client.send_ssh_public_key.side_effect = EndpointConnectionError(
            endpoint_url="https://ec2-instance-connect.us-east-1.amazonaws.com"
        )
        issuer = CredentialIssuer(client, "ubuntu")
        with pytest.raises(RemoteConnectionError, match="Could not connect"), issuer.issue("i-1", "us-east-1a"):
            pass


class TestPinnedHostKeyPolicy:
    def test_accepts_verified_key(self):
        key = _paramiko_key()
        verified = VerifiedHost("dev", "h", 41122, fingerprint(key.asbytes()))
        _PinnedHostKeyPolicy(verified).missing_host_key(MagicMock(), "h", key)

    def test_rejects_other_key(self):
        verified = VerifiedHost("dev", "h", 41122, "SHA256:trusted")
        with pytest.raises(HostKeyMismatchError):
            _PinnedHostKeyPolicy(verified).missing_host_key(MagicMock(), "h", _paramiko_key())


class TestSSHConnectionExec:
    def _conn(self, code: int, out: bytes = b"", err: bytes = b"") -> SSHConnection:
        conn = object.__new__(SSHConnection)
        stdout, stderr = MagicMock(), MagicMock()
        stdout.read.return_value = out
        stdout.channel.recv_exit_status.return_value = code
        stderr.read.return_value = err
        client = MagicMock()
        client.exec_command.return_value = (MagicMock(), stdout, stderr)
        conn._client = client
        conn._target = "203.0.113.10:41122"
        return conn

    def test_returns_stdout(self):
        assert self._conn(0, b"hello\n").exec("echo hello") == "hello\n"

    def test_non_zero_exit(self):
        with pytest.raises(RemoteCommandError) as exc:
            self._conn(2, err=b"no sessions\n").exec("tmux list-clients")
        assert exc.value.exit_code == 2
        assert exc.value.stderr == "no sessions\n"

    def test_transport_failure(self):
        conn = self._conn(0)
        conn._client.exec_command.side_effect = paramiko.SSHException("channel closed")
        with pytest.raises(RemoteConnectionError, match="channel closed"):
            conn.exec("who")


class TestRemoteExecutor:
    def test_runs_one_command_and_discards_key(self):
        issuer = CredentialIssuer(FakeInstanceConnect(), "ubuntu")
        executor = RemoteExecutor(issuer, port=41122)
        with patch("mint.remote.ssh.SSHConnection") as connection:
            conn = connection.return_value.__enter__.return_value
            conn.exec.return_value = "out"
            assert executor.run(_vm(), ["docker", "top", "abc", "-o", "pid,comm"]) == "out"

        args, kwargs = connection.call_args
        host, port, user, key_path = args
        assert (host, port, user) == ("203.0.113.10", 41122, "ubuntu")
        assert kwargs["verified"] is None
        assert not Path(key_path).exists()
        conn.exec.assert_called_once_with("docker top abc -o pid,comm", timeout=30)

    def test_verified_host_pins_connection(self):
        issuer = CredentialIssuer(FakeInstanceConnect(), "ubuntu")
        executor = RemoteExecutor(issuer)
        verified = VerifiedHost("default", "198.51.100.7", 41122, "SHA256:key")
        with patch("mint.remote.ssh.SSHConnection") as connection:
            connection.return_value.__enter__.return_value.exec.return_value = ""
            executor.run(_vm(), "who", verified=verified)
        args, kwargs = connection.call_args
        assert args[0] == "198.51.100.7"
        assert kwargs["verified"] is verified

    def test_no_public_ip(self):
        vm = ResourceLocator(FakeEC2(instances=[make_instance(public_ip=None)]), OWNER).require_vm("default")
        executor = RemoteExecutor(CredentialIssuer(FakeInstanceConnect(), "ubuntu"))
        with pytest.raises(RemoteConnectionError, match="no public IP"):
            executor.run(vm, "who")
