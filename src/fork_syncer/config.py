import logging
import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_API_URL,
    DEFAULT_GIT_HOST,
    DEFAULT_GIT_USER_EMAIL,
    DEFAULT_GIT_USER_NAME,
    DEFAULT_PER_PAGE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REPO_BASE_DIR,
    DEFAULT_SCHEDULE,
    DEFAULT_SYNC_BRANCHES,
)
from .schedule import ScheduleError, ScheduleSpec

logger = logging.getLogger(APP_NAME)


class ConfigError(Exception):
    """Raised for configuration problems that must stop the process at startup."""


class SyncMode(str, Enum):
    """Which upstream branches a fork's reconciliation touches."""

    DEFAULT = "default"
    ALL = "all"
    SELECTIVE = "selective"


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30m') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


def parse_bool(value: bool | str) -> bool:
    """Converts 'true'/'false' style strings to booleans."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean '{value}'")


def parse_mode(value: SyncMode | str) -> SyncMode:
    """Converts a sync mode name to a SyncMode."""
    if isinstance(value, SyncMode):
        return value
    try:
        return SyncMode(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in SyncMode)
        raise ValueError(f"Invalid sync mode '{value}' (expected {choices})") from None


def split_usernames(value: str | list[str] | None) -> list[str]:
    """Splits a comma- or whitespace-separated username list, dropping duplicates."""
    if not value:
        return []
    if isinstance(value, str):
        value = re.split(r"[,\s]+", value)
    return list(dict.fromkeys(v.strip() for v in value if v and v.strip()))


def read_accounts_file(path: Path) -> list[str]:
    """Reads one username per line, ignoring blank lines and '#' comments."""
    try:
        lines = path.read_text().splitlines()
    except OSError as e:
        raise ConfigError(f"Cannot read accounts file {path}: {e}") from e
    names = [line.strip() for line in lines]
    return split_usernames([n for n in names if n and not n.startswith("#")])


@dataclass
class GitHubConfig:
    """Hosting API settings.

    Attributes:
        token (str | None): API token, also used for authenticated clones.
        api_url (str): REST API base URL.
        host (str): Git host used to build clone and upstream URLs.
        per_page (int): Page size for repository listings.
    """

    token: str | None = field(default=None, repr=False)
    api_url: str = DEFAULT_API_URL
    host: str = DEFAULT_GIT_HOST
    per_page: int = DEFAULT_PER_PAGE


@dataclass
class AccountsConfig:
    """Account sources, consulted in priority order after CLI arguments.

    Attributes:
        usernames (list[str]): Multi-account list.
        username (str | None): Single account.
        file (Path | None): Newline-separated account file.
    """

    usernames: list[str] = field(default_factory=list)
    username: str | None = None
    file: Path | None = None


@dataclass
class SyncConfig:
    """Reconciliation settings.

    Attributes:
        repo_base_dir (Path): Storage root for local working copies.
        mode (SyncMode): Which branches to reconcile.
        branches (str): Comma-separated patterns used in selective mode.
        create_new_branches (bool): Create upstream-only branches on the fork.
        git_user_name (str): Committer name for merge commits.
        git_user_email (str): Committer email for merge commits.
    """

    repo_base_dir: Path = DEFAULT_REPO_BASE_DIR
    mode: SyncMode = SyncMode.ALL
    branches: str = DEFAULT_SYNC_BRANCHES
    create_new_branches: bool = True
    git_user_name: str = DEFAULT_GIT_USER_NAME
    git_user_email: str = DEFAULT_GIT_USER_EMAIL


@dataclass
class SchedulerConfig:
    """Scheduler loop settings.

    Attributes:
        schedule (str): Five-field cron-style expression.
        run_on_startup (bool): Fire once immediately when the loop starts.
        poll_interval (int): Seconds between schedule checks.
    """

    schedule: str = DEFAULT_SCHEDULE
    run_on_startup: bool = True
    poll_interval: int = DEFAULT_POLL_INTERVAL


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


# Environment variable -> (section, key).
ENV_VARS: dict[str, tuple[str, str]] = {
    "GITHUB_TOKEN": ("github", "token"),
    "GITHUB_API_URL": ("github", "api_url"),
    "GITHUB_HOST": ("github", "host"),
    "GITHUB_USERNAMES": ("accounts", "usernames"),
    "GITHUB_USERNAME": ("accounts", "username"),
    "GITHUB_USERNAMES_FILE": ("accounts", "file"),
    "REPO_BASE_DIR": ("sync", "repo_base_dir"),
    "SYNC_MODE": ("sync", "mode"),
    "SYNC_BRANCHES": ("sync", "branches"),
    "CREATE_NEW_BRANCHES": ("sync", "create_new_branches"),
    "GIT_USER_NAME": ("sync", "git_user_name"),
    "GIT_USER_EMAIL": ("sync", "git_user_email"),
    "SYNC_SCHEDULE": ("scheduler", "schedule"),
    "RUN_ON_STARTUP": ("scheduler", "run_on_startup"),
}

_PARSERS: dict[str, Any] = {
    "max_log_size": parse_size,
    "poll_interval": parse_time,
    "per_page": int,
    "mode": parse_mode,
    "create_new_branches": parse_bool,
    "run_on_startup": parse_bool,
    "usernames": split_usernames,
    "repo_base_dir": lambda v: Path(v).expanduser(),
    "file": lambda v: Path(v).expanduser(),
}


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        github (GitHubConfig): Hosting API settings.
        accounts (AccountsConfig): Account sources.
        sync (SyncConfig): Reconciliation settings.
        scheduler (SchedulerConfig): Scheduler loop settings.
        limits (LimitsConfig): Resource limits.
    """

    github: GitHubConfig = field(default_factory=GitHubConfig)
    accounts: AccountsConfig = field(default_factory=AccountsConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Config":
        """Loads and merges configuration from defaults, a TOML file and the environment.

        Args:
            path (Path | None): Explicit config file. Defaults to CONFIG_FILE,
                                which may be absent.
            environ (Mapping[str, str] | None): Environment to read overrides
                                                from. Defaults to os.environ.

        Returns:
            Config: The fully merged configuration object.

        Raises:
            ConfigError: If an explicit path does not exist, or an environment
                         variable holds an invalid value.
        """
        instance = cls()

        if path is not None:
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            instance._merge_from_file(path)
        elif CONFIG_FILE.exists():
            instance._merge_from_file(CONFIG_FILE)

        instance._merge_from_env(os.environ if environ is None else environ)
        return instance

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            unknown = set(data) - set(self.__dataclass_fields__)
            if unknown:
                logger.warning(
                    f"Unknown config sections in {path}: {', '.join(sorted(unknown))}. Ignoring."
                )

            for section in self.__dataclass_fields__:
                if isinstance(data.get(section), dict):
                    current = getattr(self, section)
                    setattr(
                        self,
                        section,
                        self._update_dataclass(section, current, data[section]),
                    )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    def _merge_from_env(self, environ: Mapping[str, str]) -> None:
        """Applies environment overrides; invalid values are fatal here."""
        for var, (section, key) in ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or not raw.strip():
                continue
            current = getattr(self, section)
            try:
                setattr(
                    self,
                    section,
                    self._update_dataclass(section, current, {key: raw}, strict=True),
                )
            except ValueError as e:
                raise ConfigError(f"{var}: {e}") from e

    @staticmethod
    def _update_dataclass(
        section_name: str, instance: Any, updates: dict, strict: bool = False
    ) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                parser = _PARSERS.get(k)
                filtered_updates[k] = parser(v) if parser else v
            except (TypeError, ValueError) as e:
                if strict:
                    raise ValueError(str(e)) from e
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)

    def resolve_accounts(self, cli_accounts: list[str] | None = None) -> list[str]:
        """Picks the accounts to process from the first populated source.

        Sources are not merged: CLI arguments win over the multi-account list,
        which wins over the single account, which wins over the accounts file.

        Args:
            cli_accounts (list[str] | None): Usernames given on the command line.

        Returns:
            list[str]: The usernames, possibly empty.

        Raises:
            ConfigError: If the accounts file is the chosen source but unreadable.
        """
        if accounts := split_usernames(cli_accounts):
            logger.info(f"Using usernames from command line: {' '.join(accounts)}")
            return accounts
        if accounts := split_usernames(self.accounts.usernames):
            logger.info(f"Using usernames from account list: {' '.join(accounts)}")
            return accounts
        if self.accounts.username and self.accounts.username.strip():
            logger.info(f"Using single username: {self.accounts.username.strip()}")
            return [self.accounts.username.strip()]
        if self.accounts.file:
            accounts = read_accounts_file(self.accounts.file)
            logger.info(f"Using usernames from {self.accounts.file}: {' '.join(accounts)}")
            return accounts
        return []

    def schedule_spec(self) -> ScheduleSpec:
        """Parses the configured schedule.

        Raises:
            ConfigError: If the expression is malformed.
        """
        try:
            return ScheduleSpec.parse(self.scheduler.schedule)
        except ScheduleError as e:
            raise ConfigError(f"Invalid schedule: {e}") from e

    def require_token(self) -> str:
        """Returns the API token.

        Raises:
            ConfigError: If no token is configured.
        """
        if not self.github.token or not self.github.token.strip():
            raise ConfigError("GITHUB_TOKEN is not set.")
        return self.github.token.strip()

    def validate(self, cli_accounts: list[str] | None = None) -> list[str]:
        """Runs every startup check and returns the resolved accounts.

        Raises:
            ConfigError: On a missing token, no accounts, or a bad schedule.
        """
        self.require_token()
        self.schedule_spec()
        accounts = self.resolve_accounts(cli_accounts)
        if not accounts:
            raise ConfigError(
                "No usernames specified. Pass them as arguments or set "
                "GITHUB_USERNAMES, GITHUB_USERNAME or GITHUB_USERNAMES_FILE."
            )
        return accounts
