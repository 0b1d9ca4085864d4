"""
Normalized issue-tracker records.

The issue-tracker collaborator converts provider payloads (PyGithub objects)
into these dataclasses so the engine never touches provider types directly.

Example:
    Converting a GitHub issue::

        issue = Issue(
            id=gh_issue.id,
            number=gh_issue.number,
            title=gh_issue.title,
            body=gh_issue.body or "",
            state=IssueState(gh_issue.state),
            labels=[label.name for label in gh_issue.labels],
            created_at=gh_issue.created_at,
            updated_at=gh_issue.updated_at,
            author=gh_issue.user.login,
            url=gh_issue.html_url,
        )
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class IssueState(str, Enum):
    """Open/closed state of a tracked issue."""

    OPEN = "open"
    """Issue is active."""

    CLOSED = "closed"
    """Issue has been resolved or dismissed."""


@dataclass
class Issue:
    """An issue as seen by the workflow engine.

    Both the parent deprecation request and every auxiliary task issue are
    represented with this model.
    """

    id: int
    """Provider database identifier. Prefer ``number`` for references."""

    number: int
    """Human-readable issue number (e.g., #42)."""

    title: str
    """Issue title."""

    body: str
    """Issue description in markdown.

    For parent issues this also hosts the fenced workflow state block when
    the body store is in use.
    """

    state: IssueState
    """Current state of the issue (open or closed)."""

    labels: list[str] = field(default_factory=list)
    """Label names attached to the issue."""

    created_at: datetime | None = None
    """Timestamp when the issue was created."""

    updated_at: datetime | None = None
    """Timestamp of the most recent update."""

    author: str = ""
    """Login of the issue creator."""

    url: str = ""
    """Web URL of the issue (not the API endpoint)."""

    assignees: list[str] = field(default_factory=list)
    """Logins of the assigned users."""


@dataclass
class Comment:
    """A comment on an issue.

    The engine posts notices as comments, and the comment state store keeps
    the workflow state inside a single bot-authored comment.
    """

    id: int
    """Unique identifier for the comment within the provider."""

    body: str
    """Comment content in markdown format."""

    author: str
    """Login of the comment author."""

    created_at: datetime | None = None
    """Timestamp when the comment was posted."""

    author_type: str = "User"
    """Account type reported by the provider ("User" or "Bot")."""
