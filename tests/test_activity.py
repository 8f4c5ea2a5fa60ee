from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError

from mint.activity import ActivityProber, ActivityReport, parse_marker, unavailable_report
from mint.aws.locator import ResourceLocator
from mint.exceptions import HostKeyMismatchError, RemoteCommandError, RemoteConnectionError
from mint.remote.keys import CredentialIssuer
from mint.remote.ssh import RemoteExecutor

from fakes import OWNER, FakeEC2, FakeExecutor, idle_responses, make_instance

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _probe(**overrides) -> tuple[ActivityReport, FakeExecutor]:
    responses = {**idle_responses(), **overrides}
    executor = FakeExecutor(responses)
    report = ActivityProber(lambda cmd: executor.run(None, cmd), clock=lambda: NOW).probe()
    return report, executor


class TestActivityProber:
    def test_idle_vm(self):
        report, executor = _probe()
        assert not report.has_activity
        assert report.degraded == ()
        assert [cmd.split()[0] for cmd, _ in executor.calls] == ["tmux", "who", "docker", "cat"]

    def test_tmux_client_attached(self):
        report, _ = _probe(tmux="/dev/pts/1 main\n")
        assert report.has_activity
        assert report.signals == ("tmux",)
        assert "/dev/pts/1 main" in report.summary()

    def test_tmux_no_sessions_is_idle(self):
        report, _ = _probe(tmux=RemoteCommandError("tmux list-clients", 1, "no sessions"))
        assert not report.has_activity
        assert report.degraded == ()

    def test_logged_in_user(self):
        report, _ = _probe(who="ubuntu   pts/0  2026-03-01 11:58 (198.51.100.1)\n")
        assert report.signals == ("sessions",)
        assert "Active connections" in report.summary()

    def test_assistant_in_container(self):
        report, executor = _probe(**{
            "docker ps": "abc123\ndef456\n",
            "docker top abc123": "PID COMMAND\n101 bash\n",
            "docker top def456": "PID COMMAND\n202 claude\n",
        })
        assert report.signals == ("claude",)
        assert report.assistant_processes == "def456: 202 claude"
        assert ("docker top def456 -o pid,comm", None) in executor.calls

    def test_container_gone_between_ps_and_top(self):
        report, _ = _probe(**{
            "docker ps": "abc123\n",
            "docker top abc123": RemoteCommandError("docker top abc123", 1, "No such container"),
        })
        assert not report.has_activity
        assert report.degraded == ()

    def test_future_extend_marker(self):
        report, _ = _probe(cat="2026-03-01T13:00:00Z\n")
        assert report.signals == ("extend",)
        assert report.extended_until == datetime(2026, 3, 1, 13, 0, tzinfo=UTC)

    def test_past_extend_marker_is_ignored(self):
        report, _ = _probe(cat="2026-03-01T11:00:00Z\n")
        assert not report.has_activity

    def test_epoch_extend_marker(self):
        report, _ = _probe(cat=f"{int(NOW.timestamp()) + 600}\n")
        assert report.signals == ("extend",)

    def test_garbage_extend_marker_is_ignored(self):
        report, _ = _probe(cat="tomorrow-ish\n")
        assert not report.has_activity
        assert report.degraded == ()

    def test_signals_are_combined(self):
        report, _ = _probe(tmux="/dev/pts/1 main", who="ubuntu pts/0")
        assert report.signals == ("tmux", "sessions")

    def test_unreachable_probes_degrade(self):
        down = RemoteConnectionError("203.0.113.10:41122", "timed out")
        report, _ = _probe(tmux=down, who=down, **{"docker ps": down}, cat=down)
        assert not report.has_activity
        assert report.degraded == ("tmux", "sessions", "claude", "extend")
        assert len(report.warnings()) == 4

    def test_unexpected_tmux_error_degrades(self):
        report, _ = _probe(tmux=RemoteCommandError("tmux list-clients", 127, "tmux: command not found"))
        assert report.degraded == ("tmux",)

    def test_host_key_mismatch_propagates(self):
        with pytest.raises(HostKeyMismatchError):
            _probe(tmux=HostKeyMismatchError("default", "SHA256:old", "SHA256:new"))

    def test_credential_push_outage_degrades(self):
        instance_connect = MagicMock()
        instance_connect.send_ssh_public_key.side_effect = EndpointConnectionError(
            endpoint_url="https://ec2-instance-connect.us-east-1.amazonaws.com"
        )
        executor = RemoteExecutor(CredentialIssuer(instance_connect, "ubuntu"))
        vm = ResourceLocator(FakeEC2(instances=[make_instance()]), OWNER).require_vm("default")

        report = ActivityProber(lambda cmd: executor.run(vm, cmd), clock=lambda: NOW).probe()

        assert not report.has_activity
        assert report.degraded == ("tmux", "sessions", "claude", "extend")

    def test_unrepresentable_marker_is_ignored(self):
        report, _ = _probe(cat="99999999999999999999\n")
        assert not report.has_activity
        assert report.degraded == ()


class TestParseMarker:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("2026-03-01T13:00:00Z", datetime(2026, 3, 1, 13, 0, tzinfo=UTC)),
            ("2026-03-01T13:00:00+00:00\n", datetime(2026, 3, 1, 13, 0, tzinfo=UTC)),
            ("2026-03-01T13:00:00", datetime(2026, 3, 1, 13, 0, tzinfo=UTC)),
            ("0", datetime(1970, 1, 1, tzinfo=UTC)),
            ("", None),
            ("soon", None),
            ("99999999999999999999", None),
            ("\u00b2", None),
        ],
    )
    def test_formats(self, text: str, expected: datetime | None):
        assert parse_marker(text) == expected


def test_unavailable_report_marks_every_probe():
    report = unavailable_report()
    assert not report.has_activity
    assert set(report.degraded) == {"tmux", "sessions", "claude", "extend"}
