"""Liveness and configuration probe for the scheduler process.

Intended for container health checks: it confirms that the scheduler recorded
in the PID file is alive, that its state file is readable, and that the
configuration the scheduler needs (token, accounts, schedule) is present.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .config import Config, ConfigError
from .constants import APP_NAME, PID_FILE, STATE_FILE

logger = logging.getLogger(APP_NAME)


@dataclass
class HealthReport:
    """Outcome of a health probe.

    Attributes:
        problems (list[str]): Failed checks; empty means healthy.
        checks (list[str]): Human-readable descriptions of passed checks.
        last_fire (str | None): ISO timestamp of the scheduler's last run.
    """

    problems: list[str] = field(default_factory=list)
    checks: list[str] = field(default_factory=list)
    last_fire: str | None = None

    @property
    def healthy(self) -> bool:
        return not self.problems


def read_pid(pid_file: Path = PID_FILE) -> int | None:
    """Reads the scheduler PID, or None if the file is missing or garbled."""
    try:
        return int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return None


def is_process_alive(pid: int) -> bool:
    """Checks whether a process exists without signalling it."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but owned by someone else.
        return True
    return True


def read_state(state_file: Path = STATE_FILE) -> dict | None:
    """Loads the scheduler's last published state."""
    try:
        data = json.loads(state_file.read_text())
    except (OSError, ValueError) as e:
        logger.debug(f"Cannot read scheduler state {state_file}: {e}")
        return None
    return data if isinstance(data, dict) else None


def check_health(
    config: Config,
    pid_file: Path = PID_FILE,
    state_file: Path = STATE_FILE,
) -> HealthReport:
    """Runs every check and collects the results.

    Args:
        config (Config): The configuration the scheduler would use.
        pid_file (Path, optional): Scheduler PID file.
        state_file (Path, optional): Scheduler state file.

    Returns:
        HealthReport: Problems and passed checks.
    """
    report = HealthReport()

    pid = read_pid(pid_file)
    if pid is None:
        report.problems.append("scheduler process is not running (no PID file)")
    elif not is_process_alive(pid):
        report.problems.append(f"scheduler process {pid} is not running")
    else:
        report.checks.append(f"scheduler: running (pid {pid})")

    state = read_state(state_file)
    if state is not None:
        report.last_fire = state.get("last_fire")
        report.checks.append(f"last run: {report.last_fire or 'never'}")

    try:
        config.require_token()
        report.checks.append("token: configured")
    except ConfigError as e:
        report.problems.append(str(e))

    try:
        accounts = config.resolve_accounts()
    except ConfigError as e:
        report.problems.append(str(e))
    else:
        if accounts:
            report.checks.append(f"accounts: {len(accounts)} configured")
        else:
            report.problems.append(
                "No usernames configured (GITHUB_USERNAMES, GITHUB_USERNAME "
                "or GITHUB_USERNAMES_FILE)"
            )

    try:
        spec = config.schedule_spec()
        report.checks.append(f"schedule: {spec}")
    except ConfigError as e:
        report.problems.append(str(e))

    return report
