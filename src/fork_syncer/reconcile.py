import logging
from collections.abc import Iterable
from pathlib import Path

from .config import Config, SyncConfig, SyncMode
from .constants import APP_NAME, DEFAULT_GIT_HOST, ORIGIN_REMOTE, UPSTREAM_REMOTE
from .git_wrapper import GitRepo
from .github import GitHubAPIError, GitHubClient
from .patterns import matches as pattern_matches
from .summary import BranchSyncOutcome, ForkRecord, ForkReport, RunSummary

logger = logging.getLogger(APP_NAME)


def select_branches(
    upstream_branches: Iterable[str],
    mode: SyncMode,
    patterns: str,
    default_branch: str,
) -> list[str]:
    """Picks the upstream branches a fork's reconciliation should touch.

    Args:
        upstream_branches (Iterable[str]): Branch names advertised by upstream.
        mode (SyncMode): The sync mode.
        patterns (str): Comma-separated patterns (selective mode only).
        default_branch (str): The upstream default branch.

    Returns:
        list[str]: Candidate branches in upstream order.
    """
    if mode is SyncMode.DEFAULT:
        return [b for b in upstream_branches if b == default_branch]
    if mode is SyncMode.ALL:
        return list(upstream_branches)
    return [b for b in upstream_branches if pattern_matches(b, patterns)]


class ForkReconciler:
    """Brings one fork's branches up to date with its upstream.

    The local working copy under `<repo_base_dir>/<owner>/<repo>` is a
    disposable cache: it is reset to the fork's remote state before every
    merge, and only the remotes are treated as the truth.

    Attributes:
        settings (SyncConfig): Mode, patterns, creation toggle and identity.
        host (str): Git host used to build remote URLs.
    """

    def __init__(
        self, settings: SyncConfig, token: str, host: str = DEFAULT_GIT_HOST
    ) -> None:
        self.settings = settings
        self.host = host
        self._token = token

    def working_copy(self, fork: ForkRecord) -> Path:
        """Returns the per-account path of a fork's local clone."""
        return Path(self.settings.repo_base_dir) / fork.owner / fork.repo_name

    def fork_url(self, fork: ForkRecord) -> str:
        return f"https://{self._token}@{self.host}/{fork.owner}/{fork.repo_name}.git"

    def upstream_url(self, fork: ForkRecord) -> str:
        return f"https://{self.host}/{fork.upstream_full_name}"

    def reconcile(self, fork: ForkRecord) -> ForkReport:
        """Runs the full reconciliation for one fork.

        Steps:
        1. Opens (or clones) the working copy.
        2. Points 'origin' and 'upstream' at the right URLs.
        3. Fetches upstream (required) and origin (best-effort).
        4. Selects candidate branches and reconciles each independently.
        5. Switches back to the default branch.

        Args:
            fork (ForkRecord): The fork to reconcile.

        Returns:
            ForkReport: Per-branch outcomes and any errors. Failures never
                        escape this method as exceptions.
        """
        report = ForkReport(fork)

        repo = self._open(fork, report)
        if repo is None or not self._prepare_remotes(repo, fork, report):
            return report
        if not self._fetch(repo, fork, report):
            return report

        try:
            upstream_branches = repo.ls_remote_heads(UPSTREAM_REMOTE)
        except RuntimeError as e:
            logger.error(f"LIST ERROR {fork.repo_name}: {e}")
            report.fail("Failed to list upstream branches")
            return report
        if not upstream_branches:
            report.fail("No upstream branches found")
            return report

        mode = self.settings.mode
        default_branch = fork.upstream_default_branch
        candidates = select_branches(
            upstream_branches, mode, self.settings.branches, default_branch
        )
        if mode is SyncMode.DEFAULT and not candidates:
            report.fail(f"Default branch '{default_branch}' not found upstream")

        # Default mode assumes the default branch exists on the fork.
        fork_branches: set[str] | None = None
        if mode is not SyncMode.DEFAULT:
            try:
                fork_branches = set(repo.ls_remote_heads(ORIGIN_REMOTE))
            except RuntimeError as e:
                logger.error(f"LIST ERROR {fork.repo_name}: {e}")
                report.fail("Failed to list fork branches")
                return report

        for branch in candidates:
            exists = fork_branches is None or branch in fork_branches
            report.record(branch, self._sync_branch(repo, fork, branch, exists))

        self._restore_default(repo, fork)
        logger.info(report.summary_line())
        return report

    def _open(self, fork: ForkRecord, report: ForkReport) -> GitRepo | None:
        path = self.working_copy(fork)
        if not path.exists():
            logger.info(f"CLONE {fork.full_name} -> {path}")
            try:
                return GitRepo.clone(self.fork_url(fork), path)
            except RuntimeError as e:
                logger.error(f"CLONE ERROR {fork.full_name}: {e}")
                report.fail("Clone failed")
                return None

        try:
            return GitRepo(path)
        except ValueError as e:
            logger.error(f"REPO ERROR {fork.full_name}: {e}")
            report.fail("Not a git repository")
            return None

    def _prepare_remotes(
        self, repo: GitRepo, fork: ForkRecord, report: ForkReport
    ) -> bool:
        # The token may have rotated since the clone was made.
        try:
            repo.set_remote_url(ORIGIN_REMOTE, self.fork_url(fork))
        except RuntimeError as e:
            logger.warning(f"REMOTE WARNING {fork.repo_name}: cannot update origin: {e}")

        try:
            repo.set_config("user.name", self.settings.git_user_name)
            repo.set_config("user.email", self.settings.git_user_email)
        except RuntimeError as e:
            logger.warning(f"CONFIG WARNING {fork.repo_name}: cannot set identity: {e}")

        expected = self.upstream_url(fork)
        current = repo.remote_url(UPSTREAM_REMOTE)
        try:
            if current is None:
                repo.add_remote(UPSTREAM_REMOTE, expected)
            elif current != expected:
                logger.info(f"REMOTE {fork.repo_name}: repointing upstream to {expected}")
                repo.set_remote_url(UPSTREAM_REMOTE, expected)
        except RuntimeError as e:
            logger.error(f"REMOTE ERROR {fork.repo_name}: {e}")
            report.fail("Failed to add upstream remote")
            return False
        return True

    def _fetch(self, repo: GitRepo, fork: ForkRecord, report: ForkReport) -> bool:
        try:
            repo.fetch(UPSTREAM_REMOTE)
        except RuntimeError as e:
            logger.error(f"FETCH ERROR {fork.repo_name}: {e}")
            report.fail("Failed to fetch upstream")
            return False

        try:
            repo.fetch(ORIGIN_REMOTE)
        except RuntimeError as e:
            logger.warning(f"FETCH WARNING {fork.repo_name}: origin fetch failed, state may be stale: {e}")
        return True

    def _sync_branch(
        self, repo: GitRepo, fork: ForkRecord, branch: str, exists_on_fork: bool
    ) -> BranchSyncOutcome:
        if exists_on_fork:
            return self._merge_existing(repo, fork, branch)
        if not self.settings.create_new_branches:
            logger.info(f"SKIPPED {fork.repo_name}/{branch}: not on fork, creation disabled")
            return BranchSyncOutcome.skipped()
        return self._create_from_upstream(repo, fork, branch)

    def _merge_existing(
        self, repo: GitRepo, fork: ForkRecord, branch: str
    ) -> BranchSyncOutcome:
        scope = f"{fork.repo_name}/{branch}"

        try:
            if repo.has_local_branch(branch):
                repo.checkout(branch, force=True)
            else:
                repo.checkout(
                    branch, start_point=f"{ORIGIN_REMOTE}/{branch}", force=True
                )
        except RuntimeError as e:
            logger.error(f"CHECKOUT ERROR {scope}: {e}")
            return BranchSyncOutcome.failed("Checkout failed")

        try:
            repo.reset_hard(f"{ORIGIN_REMOTE}/{branch}")
        except RuntimeError as e:
            logger.error(f"RESET ERROR {scope}: {e}")
            return BranchSyncOutcome.failed("Reset failed")

        try:
            repo.merge(f"{UPSTREAM_REMOTE}/{branch}")
        except RuntimeError as e:
            logger.warning(f"CONFLICT {scope}: {e}")
            try:
                repo.merge_abort()
            except RuntimeError as abort_error:
                logger.warning(f"ABORT ERROR {scope}: {abort_error}")
            return BranchSyncOutcome.failed("Merge conflict")

        try:
            repo.push(ORIGIN_REMOTE, branch)
        except RuntimeError as e:
            logger.warning(f"PUSH REJECTED {scope}: {e}. Retrying with lease.")
            try:
                repo.push(ORIGIN_REMOTE, branch, force_with_lease=True)
            except RuntimeError as lease_error:
                logger.error(f"PUSH ERROR {scope}: {lease_error}")
                return BranchSyncOutcome.failed("Push failed")

        logger.info(f"SYNCED {scope}")
        return BranchSyncOutcome.synced()

    def _create_from_upstream(
        self, repo: GitRepo, fork: ForkRecord, branch: str
    ) -> BranchSyncOutcome:
        scope = f"{fork.repo_name}/{branch}"

        try:
            repo.checkout(branch, start_point=f"{UPSTREAM_REMOTE}/{branch}", force=True)
        except RuntimeError as e:
            logger.error(f"CREATE ERROR {scope}: {e}")
            return BranchSyncOutcome.failed("Create branch failed")

        try:
            repo.push(ORIGIN_REMOTE, branch, set_upstream=True)
        except RuntimeError as e:
            logger.error(f"PUSH ERROR {scope}: {e}")
            # Drop the local-only branch so it cannot pass for synced state.
            try:
                repo.checkout(fork.upstream_default_branch, force=True)
                repo.delete_branch(branch)
            except RuntimeError as cleanup_error:
                logger.warning(f"CLEANUP ERROR {scope}: {cleanup_error}")
            return BranchSyncOutcome.failed("Push new branch failed")

        logger.info(f"CREATED {scope}")
        return BranchSyncOutcome.created()

    def _restore_default(self, repo: GitRepo, fork: ForkRecord) -> None:
        try:
            repo.checkout(fork.upstream_default_branch, force=True)
        except RuntimeError as e:
            logger.warning(
                f"CHECKOUT WARNING {fork.repo_name}: cannot return to "
                f"'{fork.upstream_default_branch}': {e}"
            )


def sync_account(
    client: GitHubClient, reconciler: ForkReconciler, account: str
) -> RunSummary:
    """Discovers and reconciles every fork of one account.

    A failed listing is recorded against the account and yields an empty
    result; one fork's failure never stops the next.
    """
    summary = RunSummary()
    logger.info(f"Processing forks for user: {account}")

    try:
        discovery = client.discover_forks(account)
    except GitHubAPIError as e:
        logger.error(f"ACCOUNT ERROR {account}: {e}")
        summary.record_error(account, str(e))
        return summary

    summary.errors.extend(discovery.errors)

    for fork in discovery.forks:
        logger.info(f"Syncing {fork.full_name} from {fork.upstream_full_name}")
        try:
            report = reconciler.reconcile(fork)
        except Exception as e:
            logger.exception(f"UNEXPECTED ERROR {fork.full_name}")
            report = ForkReport(fork)
            report.fail(f"Unexpected error: {e}")
        summary.add_fork(report)

    return summary


def run_sync(
    config: Config, accounts: list[str], client: GitHubClient | None = None
) -> RunSummary:
    """Performs one reconciliation run over all accounts, sequentially.

    Args:
        config (Config): The loaded configuration.
        accounts (list[str]): Usernames to process, in order.
        client (GitHubClient | None): API client; one is created (and closed)
                                      when omitted.

    Returns:
        RunSummary: The aggregated result of this run only.

    Raises:
        ConfigError: If no token is configured.
    """
    token = config.require_token()
    Path(config.sync.repo_base_dir).mkdir(parents=True, exist_ok=True)

    reconciler = ForkReconciler(config.sync, token, host=config.github.host)
    summary = RunSummary()

    owns_client = client is None
    if client is None:
        client = GitHubClient(
            token, api_url=config.github.api_url, per_page=config.github.per_page
        )

    try:
        for account in accounts:
            summary.merge(sync_account(client, reconciler, account))
    finally:
        if owns_client:
            client.close()

    return summary
