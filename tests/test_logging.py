import json
import stat
from pathlib import Path

import pytest

from mint.bootstrap.verify import read_script, verify_script
from mint.logging import LogConfig, audit, setup_logging, teardown_logging

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


class TestLogging:
    def test_audit_record_is_json_line(self, tmp_path: Path):
        audit_file = tmp_path / "audit.log"
        handler_ids = setup_logging(LogConfig(console=False, audit_file=str(audit_file)))
        try:
            audit("recreate", vm_name="default", caller_arn="arn:aws:iam::123456789012:user/alice")
        finally:
            teardown_logging(handler_ids)

        lines = audit_file.read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["command"] == "recreate"
        assert entry["vm_name"] == "default"
        assert entry["caller_arn"] == "arn:aws:iam::123456789012:user/alice"
        assert "timestamp" in entry
        assert stat.S_IMODE(audit_file.stat().st_mode) == 0o600

    def test_audit_records_stay_out_of_log_file(self, tmp_path: Path):
        log_file = tmp_path / "mint.log"
        audit_file = tmp_path / "audit.log"
        handler_ids = setup_logging(
            LogConfig(console=False, file=str(log_file), audit_file=str(audit_file))
        )
        try:
            audit("extend", vm_name="dev", caller_arn="arn")
            verify_script(read_script())
        finally:
            teardown_logging(handler_ids)

        log_text = log_file.read_text()
        assert "Provisioning script verified" in log_text
        assert "caller_arn" not in log_text
        assert "Provisioning script verified" not in audit_file.read_text()

    def test_disabled_after_teardown(self, tmp_path: Path):
        audit_file = tmp_path / "audit.log"
        teardown_logging(setup_logging(LogConfig(console=False, audit_file=str(audit_file))))
        audit("recreate", vm_name="default", caller_arn="arn")
        assert audit_file.read_text() == ""
