import json
import os
from pathlib import Path
from unittest.mock import MagicMock

from fork_syncer.config import Config
from fork_syncer.health import check_health, is_process_alive, read_pid


def healthy_config() -> Config:
    conf = Config()
    conf.github.token = "tok"
    conf.accounts.username = "octo"
    return conf


def test_healthy_when_process_alive_and_configured(tmp_path: Path) -> None:
    """Verifies the happy path using this test process as the scheduler."""
    pid_file = tmp_path / "scheduler.pid"
    pid_file.write_text(str(os.getpid()))
    state_file = tmp_path / "scheduler.json"
    state_file.write_text(json.dumps({"last_fire": "2024-01-01T00:00:00"}))

    report = check_health(healthy_config(), pid_file=pid_file, state_file=state_file)

    assert report.healthy
    assert report.last_fire == "2024-01-01T00:00:00"
    assert f"scheduler: running (pid {os.getpid()})" in report.checks
    assert "accounts: 1 configured" in report.checks


def test_missing_pid_file(tmp_path: Path) -> None:
    report = check_health(
        healthy_config(),
        pid_file=tmp_path / "missing.pid",
        state_file=tmp_path / "missing.json",
    )

    assert not report.healthy
    assert report.problems == ["scheduler process is not running (no PID file)"]
    assert report.last_fire is None


def test_dead_process(tmp_path: Path, mocker: MagicMock) -> None:
    pid_file = tmp_path / "scheduler.pid"
    pid_file.write_text("4242")
    mocker.patch("os.kill", side_effect=ProcessLookupError)

    report = check_health(
        healthy_config(), pid_file=pid_file, state_file=tmp_path / "s.json"
    )

    assert report.problems == ["scheduler process 4242 is not running"]


def test_configuration_problems_are_collected(tmp_path: Path) -> None:
    """Verifies that every configuration problem is reported, not just the first."""
    pid_file = tmp_path / "scheduler.pid"
    pid_file.write_text(str(os.getpid()))
    conf = Config()
    conf.scheduler.schedule = "every day"

    report = check_health(conf, pid_file=pid_file, state_file=tmp_path / "s.json")

    assert report.problems[0] == "GITHUB_TOKEN is not set."
    assert report.problems[1].startswith("No usernames configured")
    assert report.problems[2].startswith("Invalid schedule")


def test_read_pid_garbled(tmp_path: Path) -> None:
    pid_file = tmp_path / "scheduler.pid"
    pid_file.write_text("not-a-pid")
    assert read_pid(pid_file) is None


def test_permission_error_means_alive(mocker: MagicMock) -> None:
    mocker.patch("os.kill", side_effect=PermissionError)
    assert is_process_alive(1) is True
