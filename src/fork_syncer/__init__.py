"""fork-syncer: keep GitHub forks current with their upstream repositories.

This package provides the fork discovery client, the branch reconciliation
engine, a built-in cron-style scheduler loop, and the command-line interface
that ties them together without cron or any external process supervisor.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    git_wrapper,
    github,
    health,
    patterns,
    reconcile,
    schedule,
    summary,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "git_wrapper",
    "github",
    "health",
    "patterns",
    "reconcile",
    "schedule",
    "summary",
]
