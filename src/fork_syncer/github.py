"""Fork discovery against the GitHub REST API."""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .constants import (
    APP_NAME,
    DEFAULT_API_URL,
    DEFAULT_PER_PAGE,
    FALLBACK_DEFAULT_BRANCH,
)
from .summary import ForkRecord

logger = logging.getLogger(APP_NAME)


class GitHubAPIError(Exception):
    """Raised when an API call fails or returns an error payload."""


@dataclass
class Discovery:
    """Forks found for one account, plus the per-repository problems met on the way.

    Attributes:
        account (str): The account that was scanned.
        forks (list[ForkRecord]): Forks with a resolvable upstream.
        errors (list[tuple[str, str]]): (scope, message) for forks whose
                                        details could not be fetched.
    """

    account: str
    forks: list[ForkRecord] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)


class GitHubClient:
    """Minimal synchronous client for the endpoints fork discovery needs.

    Attributes:
        per_page (int): Page size used for repository listings.
    """

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        per_page: int = DEFAULT_PER_PAGE,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: API token sent on every request.
            api_url: REST API base URL.
            per_page: Page size for listings.
            timeout: Per-request timeout in seconds.
            transport: Optional transport override (tests use httpx.MockTransport).
        """
        self.per_page = per_page
        self._client = httpx.Client(
            base_url=api_url,
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _get(
        self, url: str, params: dict[str, Any] | None = None
    ) -> httpx.Response:
        try:
            response = self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"Request to {url} failed: {e}") from e

        if response.is_success:
            return response

        message = response.reason_phrase
        try:
            payload = response.json()
            if isinstance(payload, dict) and payload.get("message"):
                message = payload["message"]
        except ValueError:
            pass
        raise GitHubAPIError(f"GitHub API Error - {message} (HTTP {response.status_code})")

    def list_repos(self, account: str) -> list[dict[str, Any]]:
        """Lists every repository owned by an account, following pagination.

        Args:
            account: The username.

        Returns:
            Repository objects as returned by the API.

        Raises:
            GitHubAPIError: On transport failures, non-2xx responses, error
                            payloads, or an unexpected payload shape.
        """
        repos: list[dict[str, Any]] = []
        url: str | None = f"/users/{account}/repos"
        params: dict[str, Any] | None = {"per_page": self.per_page}

        while url:
            response = self._get(url, params=params)
            try:
                payload = response.json()
            except ValueError as e:
                raise GitHubAPIError("Empty or invalid API response") from e

            if isinstance(payload, dict) and payload.get("message"):
                raise GitHubAPIError(f"GitHub API Error - {payload['message']}")
            if not isinstance(payload, list):
                raise GitHubAPIError("Unexpected API response (expected a list)")

            repos.extend(item for item in payload if isinstance(item, dict))

            # The 'next' link already carries the query string.
            url = response.links.get("next", {}).get("url")
            params = None

        return repos

    def get_repo(self, account: str, name: str) -> dict[str, Any]:
        """Fetches one repository's details (including its parent).

        Raises:
            GitHubAPIError: On any failure.
        """
        response = self._get(f"/repos/{account}/{name}")
        try:
            payload = response.json()
        except ValueError as e:
            raise GitHubAPIError("Empty or invalid API response") from e
        if not isinstance(payload, dict):
            raise GitHubAPIError("Unexpected API response (expected an object)")
        if payload.get("message") and "name" not in payload:
            raise GitHubAPIError(f"GitHub API Error - {payload['message']}")
        return payload

    def discover_forks(self, account: str) -> Discovery:
        """Finds an account's forks and resolves each fork's upstream.

        The listing does not carry parent data, so each fork costs one detail
        request. A fork whose details cannot be fetched is reported in
        `Discovery.errors`; a fork without a parent is skipped with a log line.

        Args:
            account: The username.

        Returns:
            The discovered forks and per-repository problems.

        Raises:
            GitHubAPIError: If the account listing itself fails.
        """
        discovery = Discovery(account)
        names = [
            repo["name"]
            for repo in self.list_repos(account)
            if repo.get("fork") is True and repo.get("name")
        ]

        if not names:
            logger.info(f"No forks found for {account}")
            return discovery
        logger.info(f"Found {len(names)} fork(s) for {account}")

        for name in names:
            try:
                detail = self.get_repo(account, name)
            except GitHubAPIError as e:
                logger.warning(f"SKIPPED {account}/{name}: {e}")
                discovery.errors.append(
                    (f"{account}/{name}", f"Failed to fetch details - {e}")
                )
                continue

            parent = detail.get("parent") or {}
            upstream = parent.get("full_name")
            if not upstream:
                logger.warning(f"SKIPPED {account}/{name}: no upstream parent reported")
                continue

            discovery.forks.append(
                ForkRecord(
                    repo_name=name,
                    owner=account,
                    upstream_full_name=upstream,
                    upstream_default_branch=parent.get("default_branch")
                    or FALLBACK_DEFAULT_BRANCH,
                )
            )

        if not discovery.forks:
            logger.warning(f"No valid forks with upstream found for {account}")
        return discovery
