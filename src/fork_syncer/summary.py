"""Per-branch outcomes, per-fork reports and the run summary.

A `RunSummary` is created by one reconciliation run, filled in from the
`ForkReport`s and discovery results that run produces, rendered once and then
dropped. Nothing here is module-level state.
"""

from dataclasses import dataclass, field
from enum import Enum

from rich.console import Console


class SyncStatus(str, Enum):
    SYNCED = "synced"
    CREATED = "created"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class BranchSyncOutcome:
    """The result of reconciling one branch.

    Attributes:
        status (SyncStatus): What happened.
        reason (str | None): Why it failed (only set for FAILED).
    """

    status: SyncStatus
    reason: str | None = None

    @classmethod
    def synced(cls) -> "BranchSyncOutcome":
        return cls(SyncStatus.SYNCED)

    @classmethod
    def created(cls) -> "BranchSyncOutcome":
        return cls(SyncStatus.CREATED)

    @classmethod
    def skipped(cls) -> "BranchSyncOutcome":
        return cls(SyncStatus.SKIPPED)

    @classmethod
    def failed(cls, reason: str) -> "BranchSyncOutcome":
        return cls(SyncStatus.FAILED, reason)


@dataclass(frozen=True)
class ForkRecord:
    """A fork discovered on the hosting API.

    Attributes:
        repo_name (str): Repository name under the owner's account.
        owner (str): The account owning the fork.
        upstream_full_name (str): The parent repository as 'owner/repo'.
        upstream_default_branch (str): The parent's default branch.
    """

    repo_name: str
    owner: str
    upstream_full_name: str
    upstream_default_branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo_name}"


@dataclass
class ForkReport:
    """Everything one fork contributes to a run."""

    fork: ForkRecord
    outcomes: dict[str, BranchSyncOutcome] = field(default_factory=dict)
    errors: list[tuple[str, str]] = field(default_factory=list)

    def record(self, branch: str, outcome: BranchSyncOutcome) -> None:
        """Stores a branch outcome, logging failures into the error list."""
        self.outcomes[branch] = outcome
        if outcome.status is SyncStatus.FAILED:
            self.errors.append(
                (f"{self.fork.repo_name}/{branch}", outcome.reason or "Failed")
            )

    def fail(self, message: str) -> None:
        """Records a fork-level error."""
        self.errors.append((self.fork.repo_name, message))

    def count(self, status: SyncStatus) -> int:
        return sum(1 for o in self.outcomes.values() if o.status is status)

    @property
    def synced(self) -> int:
        return self.count(SyncStatus.SYNCED)

    @property
    def created(self) -> int:
        return self.count(SyncStatus.CREATED)

    def summary_line(self) -> str:
        """Builds the one-line human-readable status for this fork."""
        parts = []
        if self.synced:
            parts.append(f"✅ {self.synced} synced")
        if self.created:
            parts.append(f"📥 {self.created} created")
        if self.errors:
            parts.append(f"❌ {len(self.errors)} errors")
        if not parts:
            parts.append("⏭️  no changes")
        return f"{self.fork.repo_name}: {', '.join(parts)}"


@dataclass
class RunSummary:
    """Aggregate result of one reconciliation run.

    Attributes:
        repos_processed (int): Forks the engine attempted.
        branches_synced (int): Existing branches merged and pushed.
        branches_created (int): Branches created on forks from upstream.
        errors (list[tuple[str, str]]): Ordered (scope, message) pairs.
        fork_lines (list[str]): One status line per processed fork.
    """

    repos_processed: int = 0
    branches_synced: int = 0
    branches_created: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)
    fork_lines: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def record_error(self, scope: str, message: str) -> None:
        self.errors.append((scope, message))

    def add_fork(self, report: ForkReport) -> None:
        """Folds one fork's report into the totals."""
        self.repos_processed += 1
        self.branches_synced += report.synced
        self.branches_created += report.created
        self.errors.extend(report.errors)
        self.fork_lines.append(report.summary_line())

    def merge(self, other: "RunSummary") -> None:
        """Folds another summary (e.g. one account's) into this one."""
        self.repos_processed += other.repos_processed
        self.branches_synced += other.branches_synced
        self.branches_created += other.branches_created
        self.errors.extend(other.errors)
        self.fork_lines.extend(other.fork_lines)

    def render(self, console: Console) -> None:
        """Prints the summary: fork lines, counts, then the itemized errors."""
        console.print("\n[bold]📊 SYNC SUMMARY[/bold]")

        if self.fork_lines:
            console.print("\nRepository Updates:")
            for line in self.fork_lines:
                console.print(f"  {line}", markup=False)

        console.print("\nStatistics:")
        console.print(f"  📦 Repositories processed: {self.repos_processed}")
        console.print(f"  ✅ Branches synced: {self.branches_synced}")
        console.print(f"  📥 Branches created: {self.branches_created}")
        console.print(f"  ❌ Errors: {len(self.errors)}")

        if self.errors:
            console.print("\n[bold red]Errors:[/bold red]")
            for scope, message in self.errors:
                console.print(f"  ❌ {scope}: {message}", markup=False)
        else:
            console.print(
                "\n[bold green]✅ All operations completed successfully![/bold green]"
            )
