import argparse
import dataclasses
import datetime
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from . import daemon, health
from .config import ENV_VARS, Config, ConfigError
from .constants import APP_NAME, CONFIG_FILE
from .reconcile import run_sync
from .schedule import next_fire_times

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def _load_config(args: argparse.Namespace) -> Config:
    return Config.load(args.config)


def cmd_sync(args: argparse.Namespace) -> int:
    """Runs one reconciliation pass now and prints the summary."""
    config = _load_config(args)
    daemon.setup_logging(interactive=True)
    config.require_token()
    accounts = config.resolve_accounts(args.accounts)
    if not accounts:
        raise ConfigError(
            "No usernames specified. Pass them as arguments or set "
            "GITHUB_USERNAMES, GITHUB_USERNAME or GITHUB_USERNAMES_FILE."
        )

    console.print("[bold]🔄 GitHub Fork Syncer[/bold]")
    console.print(f"👥 Users: {' '.join(accounts)}")
    console.print(f"📋 Mode: {config.sync.mode.value}")

    summary = run_sync(config, accounts)
    summary.render(console)
    return summary.exit_code


def cmd_daemon(args: argparse.Namespace) -> int:
    """Starts the scheduler loop in the foreground."""
    config = _load_config(args)
    daemon.setup_logging(interactive=False, max_log_size=config.limits.max_log_size)
    accounts = config.validate(args.accounts)
    daemon.run_daemon(
        config, accounts, run_on_startup=False if args.no_startup_run else None
    )
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    """Checks the scheduler process and the configuration it needs."""
    report = health.check_health(_load_config(args))
    if not report.healthy:
        for problem in report.problems:
            console.print(f"ERROR: {problem}", markup=False)
        return 1

    console.print("HEALTHY: All health checks passed")
    for check in report.checks:
        console.print(f"- {check}", markup=False)
    return 0


def cmd_schedule(args: argparse.Namespace) -> int:
    """Validates a schedule and previews when it fires."""
    config = _load_config(args)
    if args.expression:
        config.scheduler.schedule = args.expression
    spec = config.schedule_spec()

    upcoming = next_fire_times(spec, datetime.datetime.now(), count=args.count)
    if not upcoming:
        console.print(
            f"[bold yellow]WARNING:[/bold yellow] '{spec}' never fires within a year."
        )
        return 0

    console.print(f"[bold]Next runs for '{spec}'[/bold]", highlight=False)
    table = Table(show_header=False)
    table.add_column("When", style="cyan")
    for moment in upcoming:
        table.add_row(f"{moment:%a %Y-%m-%d %H:%M}")
    console.print(table)
    return 0


def show_effective_config(config: Config) -> None:
    """Prints the merged configuration, masking the token."""
    table = Table(title="Effective Configuration")
    table.add_column("Option", style="cyan")
    table.add_column("Value", style="green")

    for section in dataclasses.fields(config):
        values = getattr(config, section.name)
        for item in dataclasses.fields(values):
            value = getattr(values, item.name)
            if item.name == "token":
                value = "***SET***" if value else "not set"
            elif isinstance(value, list):
                value = ", ".join(value) or "-"
            elif hasattr(value, "value"):
                value = value.value
            table.add_row(f"{section.name}.{item.name}", str(value))

    console.print(table)


def show_config_reference() -> None:
    """Displays a table of all available configuration options."""
    env_for = {key: var for var, key in ENV_VARS.items()}
    defaults = Config()

    table = Table(title=f"Configuration Reference ({CONFIG_FILE})")
    table.add_column("Option", style="cyan")
    table.add_column("Environment", style="magenta")
    table.add_column("Default", style="green")

    for section in dataclasses.fields(defaults):
        values = getattr(defaults, section.name)
        for item in dataclasses.fields(values):
            default = getattr(values, item.name)
            if hasattr(default, "value"):
                default = default.value
            table.add_row(
                f"{section.name}.{item.name}",
                env_for.get((section.name, item.name), "-"),
                "-" if default in (None, []) else str(default),
            )

    console.print(table)


def cmd_config(args: argparse.Namespace) -> int:
    if args.list:
        show_config_reference()
    else:
        show_effective_config(_load_config(args))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Keep GitHub forks in sync with their upstream repositories.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Path to a TOML config file (default: {CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    # Global options are also accepted after the subcommand; SUPPRESS keeps
    # the top-level value unless the option is repeated there.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, default=argparse.SUPPRESS)
    common.add_argument(
        "--verbose", "-v", action="store_true", default=argparse.SUPPRESS
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser(
        "sync", parents=[common], help="Sync all forks once, now"
    )
    sync_parser.add_argument("accounts", nargs="*", help="Usernames to process")
    sync_parser.set_defaults(func=cmd_sync)

    daemon_parser = subparsers.add_parser(
        "daemon", parents=[common], help="Run the scheduler loop in the foreground"
    )
    daemon_parser.add_argument("accounts", nargs="*", help="Usernames to process")
    daemon_parser.add_argument(
        "--no-startup-run",
        action="store_true",
        help="Do not sync immediately on startup",
    )
    daemon_parser.set_defaults(func=cmd_daemon)

    health_parser = subparsers.add_parser(
        "health",
        parents=[common],
        help="Check that the scheduler is alive and configured",
    )
    health_parser.set_defaults(func=cmd_health)

    schedule_parser = subparsers.add_parser(
        "schedule",
        parents=[common],
        help="Validate a schedule and preview its next runs",
    )
    schedule_parser.add_argument(
        "expression", nargs="?", help="Five-field expression (default: configured)"
    )
    schedule_parser.add_argument(
        "--count", type=int, default=5, help="Number of runs to show (default: 5)"
    )
    schedule_parser.set_defaults(func=cmd_schedule)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration or the option reference",
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the fork-syncer CLI."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logger.setLevel(logging.DEBUG)

    try:
        return args.func(args)
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        return 1


def daemon_main() -> int:
    """Entry point for `fork-syncer-daemon` (same as `fork-syncer daemon`)."""
    return main(["daemon", *sys.argv[1:]])


if __name__ == "__main__":
    sys.exit(main())
