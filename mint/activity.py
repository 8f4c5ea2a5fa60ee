"""Session/Activity Prober.

Decides whether a VM is in use before a destructive operation. Four
independent read-only probes are combined with OR semantics:

1. attached tmux clients
2. logged-in users (SSH and mosh sessions)
3. the assistant process running inside any container
4. a manual extension marker holding a future timestamp

A probe that cannot run counts as "no signal" but is recorded in
``ActivityReport.degraded`` so callers can warn that the guard was weakened.
Host trust failures are never absorbed here.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from loguru import logger

from mint.constants import ASSISTANT_PROCESS, EXTEND_MARKER_PATH
from mint.exceptions import RemoteCommandError, RemoteError

type Runner = Callable[[str | Sequence[str]], str]
type Clock = Callable[[], datetime]

_TMUX_IDLE_MARKERS = ("no server running", "no sessions")


@dataclass(frozen=True, slots=True)
class ActivityReport:
    """Outcome of the four activity probes."""

    tmux_clients: str = ""
    connections: str = ""
    assistant_processes: str = ""
    extended_until: datetime | None = None
    degraded: tuple[str, ...] = ()

    @property
    def has_activity(self) -> bool:
        return bool(self.signals)

    @property
    def signals(self) -> tuple[str, ...]:
        """Names of the probes that reported activity."""
        found = []
        if self.tmux_clients:
            found.append("tmux")
        if self.connections:
            found.append("sessions")
        if self.assistant_processes:
            found.append(ASSISTANT_PROCESS)
        if self.extended_until is not None:
            found.append("extend")
        return tuple(found)

    def summary(self) -> str:
        parts = []
        if self.tmux_clients:
            parts.append("  Tmux clients:\n    " + self.tmux_clients.replace("\n", "\n    "))
        if self.connections:
            parts.append("  Active connections:\n    " + self.connections.replace("\n", "\n    "))
        if self.assistant_processes:
            parts.append(
                f"  {ASSISTANT_PROCESS} processes in containers:\n    "
                + self.assistant_processes.replace("\n", "\n    ")
            )
        if self.extended_until is not None:
            parts.append(f"  Manual extend active until {self.extended_until.isoformat()}")
        return "\n".join(parts)

    def warnings(self) -> list[str]:
        return [f"Activity probe '{name}' unavailable; guard weakened" for name in self.degraded]


def parse_marker(text: str) -> datetime | None:
    """Parse an extension marker: epoch seconds or an RFC 3339 timestamp."""
    value = text.strip()
    if not value:
        return None
    if value.isascii() and value.isdigit():
        try:
            return datetime.fromtimestamp(int(value), tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=UTC)


class ActivityProber:
    """Runs the activity probes through a single-command remote runner."""

    def __init__(self, run: Runner, *, clock: Clock | None = None) -> None:
        self._run = run
        self._now = clock or (lambda: datetime.now(UTC))

    def probe(self) -> ActivityReport:
        degraded: list[str] = []
        tmux = self._tmux(degraded)
        connections = self._who(degraded)
        assistant = self._assistant(degraded)
        extended = self._extended(degraded)
        report = ActivityReport(
            tmux_clients=tmux,
            connections=connections,
            assistant_processes=assistant,
            extended_until=extended,
            degraded=tuple(degraded),
        )
        for warning in report.warnings():
            logger.warning(warning)
        logger.debug(f"Activity signals: {report.signals or 'none'}")
        return report

    def _tmux(self, degraded: list[str]) -> str:
        try:
            return self._run(["tmux", "list-clients", "-F", "#{client_name} #{session_name}"]).strip()
        except RemoteCommandError as e:
            if any(marker in e.stderr for marker in _TMUX_IDLE_MARKERS):
                return ""
            logger.debug(f"tmux probe failed: {e}")
            degraded.append("tmux")
        except RemoteError as e:
            logger.debug(f"tmux probe failed: {e}")
            degraded.append("tmux")
        return ""

    def _who(self, degraded: list[str]) -> str:
        try:
            return self._run(["who"]).strip()
        except RemoteError as e:
            logger.debug(f"who probe failed: {e}")
            degraded.append("sessions")
            return ""

    def _assistant(self, degraded: list[str]) -> str:
        try:
            ids = self._run(["docker", "ps", "-q"]).split()
        except RemoteError as e:
            logger.debug(f"docker probe failed: {e}")
            degraded.append(ASSISTANT_PROCESS)
            return ""

        matches = []
        for container_id in ids:
            try:
                top = self._run(["docker", "top", container_id, "-o", "pid,comm"])
            except RemoteCommandError:
                continue  # container stopped between ps and top
            except RemoteError as e:
                logger.debug(f"docker top probe failed: {e}")
                degraded.append(ASSISTANT_PROCESS)
                break
            matches.extend(
                f"{container_id}: {line.strip()}"
                for line in top.splitlines()
                if ASSISTANT_PROCESS in line
            )
        return "\n".join(matches)

    def _extended(self, degraded: list[str]) -> datetime | None:
        try:
            text = self._run(["cat", EXTEND_MARKER_PATH])
        except RemoteCommandError:
            return None  # no marker file
        except RemoteError as e:
            logger.debug(f"extend probe failed: {e}")
            degraded.append("extend")
            return None

        until = parse_marker(text)
        if until is None:
            logger.debug(f"Ignoring unparseable extend marker {text.strip()!r}")
            return None
        return until if until > self._now() else None


def unavailable_report() -> ActivityReport:
    """Report used when the VM could not be reached at all."""
    return ActivityReport(degraded=("tmux", "sessions", ASSISTANT_PROCESS, "extend"))
