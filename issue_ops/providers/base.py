"""
Abstract issue-tracker collaborator.

The workflow engine talks to the hosted issue tracker exclusively through
``IssueTracker``. Concrete implementations (``GitHubRestProvider``) convert
provider payloads into the domain models and wrap provider failures in
``ExternalServiceError`` subclasses after their own retry policy has run.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from issue_ops.models.domain import Comment, Issue

BOT_LOGIN = "github-actions[bot]"


def is_bot_comment(comment: Comment) -> bool:
    """Default ownership predicate for state and notice comments.

    A comment belongs to the automation when it was written by the GitHub
    Actions account or by any account the provider reports as a bot.
    """
    return comment.author == BOT_LOGIN or comment.author_type == "Bot"


class IssueTracker(ABC):
    """Abstract base class for issue-tracker implementations.

    All methods are async so network calls never block other work in the
    same event loop. Implementations raise ``ExternalServiceError`` (or a
    subclass) when a call ultimately fails.
    """

    async def connect(self) -> None:
        """Open the connection to the tracker, if the implementation needs one."""

    async def disconnect(self) -> None:
        """Release the connection to the tracker."""

    @abstractmethod
    async def get_issue(self, issue_number: int) -> Issue:
        """Get a single issue by number.

        Args:
            issue_number: Repository-scoped issue number

        Returns:
            Issue with labels and body populated.
        """
        pass

    @abstractmethod
    async def get_issue_body(self, issue_number: int) -> str:
        """Return the raw markdown body of an issue ("" when empty)."""
        pass

    @abstractmethod
    async def update_issue_body(self, issue_number: int, body: str) -> None:
        """Replace the body of an issue."""
        pass

    @abstractmethod
    async def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
        assignees: list[str] | None = None,
    ) -> Issue:
        """Create a new issue.

        Args:
            title: Issue title
            body: Markdown body
            labels: Labels to apply
            assignees: Logins to assign

        Returns:
            The created issue with its server-assigned number and URL.
        """
        pass

    @abstractmethod
    async def close_issue(self, issue_number: int) -> None:
        """Close an issue."""
        pass

    @abstractmethod
    async def add_comment(self, issue_number: int, body: str) -> Comment:
        """Post a comment on an issue."""
        pass

    @abstractmethod
    async def get_comment(self, comment_id: int) -> Comment:
        """Fetch a single comment by id."""
        pass

    @abstractmethod
    async def update_comment(self, comment_id: int, body: str) -> Comment:
        """Replace the body of an existing comment."""
        pass

    @abstractmethod
    async def get_comments(self, issue_number: int) -> list[Comment]:
        """List all comments on an issue, oldest first."""
        pass

    @abstractmethod
    async def add_labels(self, issue_number: int, labels: list[str]) -> None:
        """Add labels to an issue. Implementations do nothing for an empty list."""
        pass

    @abstractmethod
    async def remove_label(self, issue_number: int, label: str) -> None:
        """Remove a label from an issue. A label that is not present is ignored."""
        pass

    @abstractmethod
    async def get_labels(self, issue_number: int) -> list[str]:
        """List label names on an issue."""
        pass

    @abstractmethod
    async def search_issues(self, query: str) -> list[int]:
        """Search issues in this repository.

        Args:
            query: Search query; implementations scope it to the repository

        Returns:
            Matching issue numbers.
        """
        pass

    async def find_bot_comment(
        self,
        issue_number: int,
        marker: str,
        is_bot: Callable[[Comment], bool] | None = None,
    ) -> Comment | None:
        """Find the first automation-owned comment containing ``marker``.

        Args:
            issue_number: Issue to scan
            marker: Substring identifying the comment (e.g. an HTML marker)
            is_bot: Ownership predicate; defaults to ``is_bot_comment``

        Returns:
            The matching comment, or None when no owned comment carries the marker.
        """
        predicate = is_bot or is_bot_comment
        for comment in await self.get_comments(issue_number):
            if comment.body and marker in comment.body and predicate(comment):
                return comment
        return None
