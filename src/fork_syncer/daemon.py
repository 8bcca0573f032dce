import atexit
import datetime
import json
import logging
import os
import signal
import sys
import time
from collections.abc import Callable
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from rich.console import Console

from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE, STATE_FILE
from .reconcile import run_sync
from .schedule import ScheduleSpec, next_fire_times
from .summary import RunSummary

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()


class SchedulerState(str, Enum):
    IDLE = "idle"
    FIRING = "firing"


def minute_marker(now: datetime.datetime) -> str:
    """Truncates a moment to minute granularity (e.g. '202610170000')."""
    return now.strftime("%Y%m%d%H%M")


class Scheduler:
    """Process-lifetime loop that fires a job whenever the schedule is due.

    Every `poll_interval` seconds the loop samples the clock once, derives the
    minute marker from that single sample, and fires the job if the minute has
    not fired before and the schedule matches. The job runs synchronously; the
    marker is recorded only after it returns, so a slow run delays the next
    check but can never cause a second fire in the same minute.

    Attributes:
        spec (ScheduleSpec): The schedule to match.
        poll_interval (int): Seconds slept between checks.
        state (SchedulerState): IDLE between checks, FIRING during a run.
        last_fired_minute (str | None): Marker of the most recent fire.
        last_fire (datetime.datetime | None): When the most recent run finished.
        last_fire_ok (bool | None): Whether that run completed without errors.
    """

    def __init__(
        self,
        spec: ScheduleSpec,
        job: Callable[[], bool],
        poll_interval: int = 60,
        clock: Callable[[], datetime.datetime] = datetime.datetime.now,
        sleep: Callable[[float], None] = time.sleep,
        state_file: Path | None = STATE_FILE,
    ) -> None:
        self.spec = spec
        self.job = job
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep
        self.state_file = state_file

        self.state = SchedulerState.IDLE
        self.started_at = clock()
        self.last_fired_minute: str | None = None
        self.last_fire: datetime.datetime | None = None
        self.last_fire_ok: bool | None = None
        self._stopping = False

    def stop(self) -> None:
        """Asks the loop to exit after the current iteration."""
        self._stopping = True

    def fire(self, marker: str) -> bool:
        """Runs the job once and records `marker` as the last fired minute.

        Returns:
            bool: True if the job reported success.
        """
        self.state = SchedulerState.FIRING
        self.write_state()
        logger.info("🔄 Starting scheduled fork synchronization...")
        try:
            ok = bool(self.job())
        except Exception:
            logger.exception("❌ Fork synchronization crashed")
            ok = False
        finally:
            self.state = SchedulerState.IDLE

        self.last_fired_minute = marker
        self.last_fire = self.clock()
        self.last_fire_ok = ok

        if ok:
            logger.info("✅ Fork synchronization completed successfully")
        else:
            logger.error("❌ Fork synchronization finished with errors")

        self.write_state()
        return ok

    def next_run(self) -> datetime.datetime | None:
        """Finds the next minute the loop will fire, or None within a year.

        A minute that has already fired is skipped, since its marker suppresses
        any further fire.
        """
        start = self.clock()
        if minute_marker(start) == self.last_fired_minute:
            start = start.replace(second=0, microsecond=0) + datetime.timedelta(
                minutes=1
            )
        upcoming = next_fire_times(self.spec, start, count=1)
        return upcoming[0] if upcoming else None

    def tick(self) -> bool:
        """Performs one schedule check.

        Returns:
            bool: True if the job fired during this tick.
        """
        now = self.clock()
        marker = minute_marker(now)
        if marker == self.last_fired_minute:
            return False
        if not self.spec.is_due(now):
            return False
        self.fire(marker)
        return True

    def run_forever(self, run_on_startup: bool = True) -> None:
        """Runs the loop until `stop()` is called or the process ends.

        Args:
            run_on_startup (bool, optional): Fire once immediately, regardless
                                             of the schedule. Defaults to True.
        """
        if run_on_startup:
            logger.info("🚀 Running initial sync on startup...")
            self.fire(minute_marker(self.clock()))
        else:
            logger.info("⏭️  Skipping initial sync on startup")
            self.write_state()

        upcoming = self.next_run()
        if upcoming:
            logger.info(f"⏰ Scheduler is now running. Next run: {upcoming:%Y-%m-%d %H:%M}")
        else:
            logger.warning(
                f"⏰ Scheduler is running, but '{self.spec}' does not fire within a year."
            )

        while not self._stopping:
            self.tick()
            if self._stopping:
                break
            self.sleep(self.poll_interval)

        logger.info("Scheduler stopped.")

    def snapshot(self) -> dict:
        """Returns the introspection data consumed by the health probe."""
        return {
            "pid": os.getpid(),
            "state": self.state.value,
            "schedule": str(self.spec),
            "started_at": self.started_at.isoformat(timespec="seconds"),
            "last_fire": (
                self.last_fire.isoformat(timespec="seconds") if self.last_fire else None
            ),
            "last_fire_ok": self.last_fire_ok,
        }

    def write_state(self) -> None:
        """Persists `snapshot()` to the state file, if one is configured."""
        if self.state_file is None:
            return
        try:
            tmp_file = self.state_file.with_suffix(".tmp")
            tmp_file.write_text(json.dumps(self.snapshot(), indent=2))
            os.replace(tmp_file, self.state_file)
        except OSError as e:
            logger.warning(f"Could not write scheduler state: {e}")


def setup_logging(
    interactive: bool, max_log_size: int = 5 * 1024 * 1024, log_file: Path = LOG_FILE
) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr
                            and to a rotating log file.
        max_log_size (int, optional): Rotation threshold in bytes.
        log_file (Path, optional): Log file used in daemon mode.
    """
    if logger.handlers:
        return

    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def log_summary(summary: RunSummary) -> None:
    """Writes the run totals and each error to the log."""
    logger.info(
        f"Run finished: {summary.repos_processed} repos processed, "
        f"{summary.branches_synced} branches synced, "
        f"{summary.branches_created} branches created, "
        f"{len(summary.errors)} errors"
    )
    for scope, message in summary.errors:
        logger.error(f"{scope}: {message}")


def make_job(config: Config, accounts: list[str]) -> Callable[[], bool]:
    """Builds the scheduler job: one run, rendered and logged."""

    def job() -> bool:
        summary = run_sync(config, accounts)
        summary.render(console)
        log_summary(summary)
        return summary.ok

    return job


def run_daemon(
    config: Config, accounts: list[str], run_on_startup: bool | None = None
) -> None:
    """The scheduler process entry point.

    Logs the effective settings, writes the PID file, installs signal handlers
    and runs the loop until terminated. A signal received while idle exits at
    once; one received during a run lets the run finish first.

    Args:
        config (Config): Validated configuration.
        accounts (list[str]): Resolved usernames.
        run_on_startup (bool | None): Overrides `scheduler.run_on_startup`.
    """
    spec = config.schedule_spec()
    if run_on_startup is None:
        run_on_startup = config.scheduler.run_on_startup

    logger.info("🔄 GitHub Fork Syncer Scheduler Starting")
    logger.info(f"Sync schedule: {spec}")
    logger.info(f"Base directory: {config.sync.repo_base_dir}")
    logger.info(f"Sync mode: {config.sync.mode.value}")
    logger.info(f"Users: {' '.join(accounts)}")

    # PID File Management.
    try:
        PID_FILE.write_text(str(os.getpid()))
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")

    scheduler = Scheduler(
        spec,
        make_job(config, accounts),
        poll_interval=config.scheduler.poll_interval,
    )

    def stop_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, stopping scheduler...")
        scheduler.stop()
        if scheduler.state is SchedulerState.IDLE:
            raise SystemExit(0)

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)

    scheduler.run_forever(run_on_startup=run_on_startup)
