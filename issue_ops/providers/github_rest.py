"""GitHub issue tracker implementation using PyGithub."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from github import Github, GithubException  # type: ignore[import-not-found]
from github.Issue import Issue as GHIssue  # type: ignore[import-not-found]
from github.IssueComment import IssueComment as GHComment  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from issue_ops.exceptions import GitHubError
from issue_ops.models.domain import Comment, Issue, IssueState
from issue_ops.providers.base import IssueTracker
from issue_ops.utils.retry import async_retry

log = structlog.get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a synchronous function in a thread pool.

    This prevents blocking the event loop when calling synchronous
    PyGithub methods.
    """
    return await asyncio.to_thread(func)


def is_retryable(error: Exception) -> bool:
    """Check if a GitHub failure is rate limiting or a transient server error."""
    return isinstance(error, GithubException) and error.status in RETRYABLE_STATUSES


class GitHubRestProvider(IssueTracker):
    """GitHub implementation using the PyGithub library.

    Every call is retried on HTTP 429/500/502/503/504 with 1s, 2s, 4s
    backoff (``max_retries`` retries after the first attempt). Failures that
    remain are raised as ``GitHubError`` carrying the HTTP status.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
    ):
        """Initialize GitHub provider.

        Args:
            token: GitHub token (GITHUB_TOKEN in Actions, or a PAT)
            owner: Repository owner (user or organization)
            repo: Repository name
            base_url: GitHub API base URL (for GitHub Enterprise)
            max_retries: Retries after the first attempt for transient errors
        """
        self.token = token.strip() if token else token
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._client: Github | None = None
        self._repo: GHRepository | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    async def connect(self) -> None:
        """Initialize GitHub client and resolve the repository."""

        def _connect() -> tuple[Github, GHRepository]:
            client = Github(self.token, base_url=self.base_url)
            repo = client.get_repo(self.full_name)
            return client, repo

        self._client, self._repo = await self._call("connect", "connect to repository", _connect)
        log.info(
            "github_connected",
            base_url=self.base_url,
            owner=self.owner,
            repo=self.repo,
        )

    async def disconnect(self) -> None:
        """Close GitHub client."""
        if self._client:
            await _run_sync(self._client.close)
            self._client = None
            self._repo = None

    async def _call(
        self,
        operation: str,
        description: str,
        func: Callable[[], T],
        **context: Any,
    ) -> T:
        """Run a PyGithub call off the event loop with retry and error wrapping.

        Args:
            operation: Operation name recorded on the error (e.g. "createComment")
            description: Human phrase for the error message (e.g. "create comment")
            func: Zero-argument callable performing the PyGithub call
            **context: Diagnostic context for logs and the raised error

        Raises:
            GitHubError: When the call fails with a non-retryable error or
                retries are exhausted
        """
        retrying = async_retry(
            max_attempts=self.max_retries + 1,
            backoff_factor=2.0,
            base_delay=1.0,
            max_delay=4.0,
            exceptions=(GithubException,),
            retry_if=is_retryable,
        )(_run_sync)

        try:
            return await retrying(func)
        except GithubException as e:
            log.error("github_call_failed", operation=operation, status=e.status, error=str(e), **context)
            raise GitHubError(
                f"Failed to {description}: {e}",
                operation,
                {**context, "status": e.status},
            ) from e

    @property
    def repository(self) -> GHRepository:
        if self._repo is None:
            raise GitHubError("GitHub provider is not connected", "connect", {"repository": self.full_name})
        return self._repo

    async def get_issue(self, issue_number: int) -> Issue:
        """Get single issue by number."""
        log.debug("get_issue", number=issue_number)
        gh_issue = await self._call(
            "getIssue",
            "get issue",
            lambda: self.repository.get_issue(issue_number),
            issueNumber=issue_number,
        )
        return self._convert_issue(gh_issue)

    async def get_issue_body(self, issue_number: int) -> str:
        """Return the issue body, or an empty string."""
        gh_issue = await self._call(
            "getIssueBody",
            "get issue body",
            lambda: self.repository.get_issue(issue_number),
            issueNumber=issue_number,
        )
        return gh_issue.body or ""

    async def update_issue_body(self, issue_number: int, body: str) -> None:
        """Replace the issue body."""
        log.debug("update_issue_body", number=issue_number)

        def _update() -> None:
            gh_issue = self.repository.get_issue(issue_number)
            gh_issue.edit(body=body)

        await self._call("updateIssueBody", "update issue body", _update, issueNumber=issue_number)

    async def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
        assignees: list[str] | None = None,
    ) -> Issue:
        """Create a new issue."""
        log.info("create_issue", title=title, labels=labels, assignees=assignees)
        gh_issue = await self._call(
            "createIssue",
            "create issue",
            lambda: self.repository.create_issue(
                title=title,
                body=body,
                labels=labels or [],
                assignees=assignees or [],
            ),
            title=title,
        )
        return self._convert_issue(gh_issue)

    async def close_issue(self, issue_number: int) -> None:
        """Close an issue."""
        log.info("close_issue", number=issue_number)

        def _close() -> None:
            gh_issue = self.repository.get_issue(issue_number)
            gh_issue.edit(state="closed")

        await self._call("closeIssue", "close issue", _close, issueNumber=issue_number)

    async def add_comment(self, issue_number: int, body: str) -> Comment:
        """Add comment to issue."""
        log.info("add_comment", number=issue_number)

        def _add_comment() -> GHComment:
            gh_issue = self.repository.get_issue(issue_number)
            return gh_issue.create_comment(body)

        gh_comment = await self._call("createComment", "create comment", _add_comment, issueNumber=issue_number)
        return self._convert_comment(gh_comment)

    async def get_comment(self, comment_id: int) -> Comment:
        """Fetch a comment by id."""
        gh_comment = await self._call(
            "getComment",
            "get comment",
            lambda: self.repository.get_issue_comment(comment_id),
            commentId=comment_id,
        )
        return self._convert_comment(gh_comment)

    async def update_comment(self, comment_id: int, body: str) -> Comment:
        """Replace the body of a comment."""
        log.debug("update_comment", comment_id=comment_id)

        def _update() -> GHComment:
            gh_comment = self.repository.get_issue_comment(comment_id)
            gh_comment.edit(body)
            return gh_comment

        gh_comment = await self._call("updateComment", "update comment", _update, commentId=comment_id)
        return self._convert_comment(gh_comment)

    async def get_comments(self, issue_number: int) -> list[Comment]:
        """Retrieve all comments for an issue."""

        def _get_comments() -> list[GHComment]:
            gh_issue = self.repository.get_issue(issue_number)
            return list(gh_issue.get_comments())

        gh_comments = await self._call("listComments", "list comments", _get_comments, issueNumber=issue_number)
        return [self._convert_comment(c) for c in gh_comments]

    async def add_labels(self, issue_number: int, labels: list[str]) -> None:
        """Add labels to an issue."""
        if not labels:
            return
        log.info("add_labels", number=issue_number, labels=labels)

        def _add() -> None:
            gh_issue = self.repository.get_issue(issue_number)
            gh_issue.add_to_labels(*labels)

        await self._call("addLabels", "add labels", _add, issueNumber=issue_number, labels=labels)

    async def remove_label(self, issue_number: int, label: str) -> None:
        """Remove a label, ignoring labels that are not on the issue."""
        log.info("remove_label", number=issue_number, label=label)

        def _remove() -> None:
            gh_issue = self.repository.get_issue(issue_number)
            try:
                gh_issue.remove_from_labels(label)
            except GithubException as e:
                if e.status != 404:
                    raise
                log.debug("github_label_not_present", number=issue_number, label=label)

        await self._call("removeLabel", "remove label", _remove, issueNumber=issue_number, label=label)

    async def get_labels(self, issue_number: int) -> list[str]:
        """List label names on an issue."""

        def _labels() -> list[str]:
            gh_issue = self.repository.get_issue(issue_number)
            return [label.name for label in gh_issue.get_labels()]

        return await self._call("getLabels", "list labels", _labels, issueNumber=issue_number)

    async def search_issues(self, query: str) -> list[int]:
        """Search issues scoped to this repository."""
        full_query = f"{query} repo:{self.full_name}"
        log.info("search_issues", query=full_query)

        def _search() -> list[int]:
            if self._client is None:
                raise GitHubError("GitHub provider is not connected", "connect", {"repository": self.full_name})
            return [item.number for item in self._client.search_issues(full_query)]

        return await self._call("searchIssues", "search issues", _search, query=query)

    def _convert_issue(self, gh_issue: GHIssue) -> Issue:
        """Convert PyGithub issue to domain model."""
        return Issue(
            id=gh_issue.id,
            number=gh_issue.number,
            title=gh_issue.title,
            body=gh_issue.body or "",
            state=IssueState(gh_issue.state),
            labels=[label.name for label in gh_issue.labels],
            created_at=gh_issue.created_at,
            updated_at=gh_issue.updated_at,
            author=gh_issue.user.login if gh_issue.user else "",
            url=gh_issue.html_url,
            assignees=[user.login for user in gh_issue.assignees or []],
        )

    def _convert_comment(self, gh_comment: GHComment) -> Comment:
        """Convert PyGithub comment to domain model."""
        user = gh_comment.user
        return Comment(
            id=gh_comment.id,
            body=gh_comment.body or "",
            author=user.login if user else "",
            created_at=gh_comment.created_at,
            author_type=(user.type if user else None) or "User",
        )
