import re
import subprocess
from pathlib import Path

_CREDENTIALS = re.compile(r"(https?://)[^/@\s]+@")


def redact(text: str) -> str:
    """Masks credentials embedded in URLs (https://TOKEN@host -> https://***@host)."""
    return _CREDENTIALS.sub(r"\1***@", text)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific working copy.

    This class provides methods to execute the Git operations the reconciliation
    engine needs using `subprocess`, abstracting away the command construction
    and output handling. Every failure surfaces as a `RuntimeError` whose
    message has credentials stripped.

    Attributes:
        path (Path): The file system path to the working copy root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def clone(cls, url: str, dest: Path) -> "GitRepo":
        """Clones a remote repository into `dest`.

        Args:
            url (str): The clone URL (may carry credentials).
            dest (Path): The target directory; its parent is created if needed.

        Returns:
            GitRepo: A wrapper around the fresh clone.

        Raises:
            RuntimeError: If `git clone` fails.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            subprocess.run(
                ["git", "clone", url, str(dest)],
                capture_output=True,
                text=True,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeError(redact(f"Git error: {e.stderr or e}")) from e
        return cls(dest)

    def _run(self, args: list[str], capture: bool = True) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to return stdout.
                                        Defaults to True.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        try:
            # Output is always captured so a background run never writes
            # git progress chatter into the scheduler log.
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise RuntimeError(redact(f"Git error: {e.stderr or e}")) from e

    def set_config(self, key: str, value: str) -> None:
        """Sets a repository-local git configuration value."""
        self._run(["config", key, value], capture=False)

    def remote_url(self, name: str) -> str | None:
        """Returns the URL of a remote, or None if the remote does not exist."""
        try:
            return self._run(["remote", "get-url", name])
        except RuntimeError:
            return None

    def add_remote(self, name: str, url: str) -> None:
        """Registers a new remote."""
        self._run(["remote", "add", name, url], capture=False)

    def set_remote_url(self, name: str, url: str) -> None:
        """Repoints an existing remote."""
        self._run(["remote", "set-url", name, url], capture=False)

    def fetch(self, remote: str) -> None:
        """Fetches all heads from a remote into its remote-tracking refs."""
        self._run(["fetch", remote], capture=False)

    def ls_remote_heads(self, remote: str) -> list[str]:
        """Lists branch names advertised by a remote.

        Args:
            remote (str): The remote name (e.g. 'upstream').

        Returns:
            list[str]: Sorted branch names with the 'refs/heads/' prefix removed.

        Raises:
            RuntimeError: If the remote cannot be queried.
        """
        output = self._run(["ls-remote", "--heads", remote])
        branches = []
        for line in output.splitlines():
            parts = line.split()
            if len(parts) < 2 or not parts[1].startswith("refs/heads/"):
                continue
            branches.append(parts[1][len("refs/heads/") :])
        return sorted(branches)

    def has_local_branch(self, branch: str) -> bool:
        """Checks whether a local branch exists."""
        try:
            self._run(["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"])
            return True
        except RuntimeError:
            return False

    def checkout(
        self, branch: str, start_point: str | None = None, force: bool = False
    ) -> None:
        """Switches to a branch, optionally creating it from a start point.

        Args:
            branch (str): The target branch name.
            start_point (Optional[str], optional): If given, create `branch`
                                                   from this ref (`checkout -b`).
            force (bool, optional): Whether to discard local changes. With a
                                    start point, an existing local branch of
                                    the same name is also reset (`-B`).
                                    Defaults to False.
        """
        cmd = ["checkout"]
        if force:
            cmd.append("-f")
        if start_point:
            cmd.extend(["-B" if force else "-b", branch, start_point])
        else:
            cmd.append(branch)
        self._run(cmd, capture=False)

    def reset_hard(self, target: str) -> None:
        """Resets the current branch, index and working tree to `target`."""
        self._run(["reset", "--hard", target], capture=False)

    def merge(self, ref: str) -> None:
        """Merges `ref` into HEAD (fast-forward when possible, else a merge commit).

        Raises:
            RuntimeError: On conflicts or any other merge failure.
        """
        self._run(["merge", "--no-edit", ref], capture=False)

    def merge_abort(self) -> None:
        """Aborts an in-progress merge, restoring the pre-merge state."""
        self._run(["merge", "--abort"], capture=False)

    def push(
        self,
        remote: str,
        branch: str,
        set_upstream: bool = False,
        force_with_lease: bool = False,
    ) -> None:
        """Pushes a branch to a remote.

        Args:
            remote (str): The remote name.
            branch (str): The branch to push.
            set_upstream (bool, optional): Record the remote branch as upstream (`-u`).
            force_with_lease (bool, optional): Overwrite the remote branch only if
                                               it still matches the last fetched tip.
        """
        cmd = ["push"]
        if set_upstream:
            cmd.append("-u")
        if force_with_lease:
            cmd.append("--force-with-lease")
        cmd.extend([remote, branch])
        self._run(cmd, capture=False)

    def delete_branch(self, branch: str, force: bool = True) -> None:
        """Deletes a local branch (`-D` when forced)."""
        self._run(["branch", "-D" if force else "-d", branch], capture=False)
