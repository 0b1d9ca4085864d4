"""Tests for issue_ops/providers/github_rest.py - GitHub issue tracker."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock, patch

import pytest
from github import GithubException

from issue_ops.exceptions import GitHubError
from issue_ops.models.domain import IssueState
from issue_ops.providers.base import BOT_LOGIN
from issue_ops.providers.github_rest import GitHubRestProvider, is_retryable


def make_gh_issue(number: int = 42, body: str | None = "Issue description", state: str = "open") -> Mock:
    """Create a mock PyGithub issue."""
    gh_issue = Mock()
    gh_issue.id = 1000 + number
    gh_issue.number = number
    gh_issue.title = "Deprecate Utah Roads"
    gh_issue.body = body
    gh_issue.state = state
    label = Mock()
    label.name = "type: full deprecation"
    gh_issue.labels = [label]
    gh_issue.created_at = datetime(2025, 1, 6, 15, 0, 0, tzinfo=UTC)
    gh_issue.updated_at = datetime(2025, 1, 6, 16, 0, 0, tzinfo=UTC)
    gh_issue.user = Mock(login="steward")
    gh_issue.html_url = f"https://github.com/agrc/porter/issues/{number}"
    gh_issue.assignees = []
    return gh_issue


def make_gh_comment(comment_id: int = 7, body: str = "Hello", login: str = "steward", user_type: str = "User") -> Mock:
    """Create a mock PyGithub issue comment."""
    gh_comment = Mock()
    gh_comment.id = comment_id
    gh_comment.body = body
    gh_comment.user = Mock(login=login, type=user_type)
    gh_comment.created_at = datetime(2025, 1, 6, 15, 0, 0, tzinfo=UTC)
    return gh_comment


@pytest.fixture
def provider():
    """Create GitHubRestProvider instance."""
    return GitHubRestProvider(token="ghp_test_token_123", owner="agrc", repo="porter", max_retries=2)


@pytest.fixture
def mock_repo():
    return Mock()


@pytest.fixture
def mock_client(mock_repo):
    client = Mock()
    client.get_repo = Mock(return_value=mock_repo)
    client.close = Mock()
    return client


@pytest.fixture
def github_class(mock_client):
    with patch("issue_ops.providers.github_rest.Github") as github_class:
        github_class.return_value = mock_client
        yield github_class


@pytest.fixture
def no_sleep():
    with patch("issue_ops.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestGitHubRestProviderInit:
    """Tests for GitHubRestProvider initialization."""

    def test_init_with_defaults(self):
        provider = GitHubRestProvider(token="test-token", owner="owner", repo="repo")

        assert provider.token == "test-token"
        assert provider.base_url == "https://api.github.com"
        assert provider.max_retries == 3
        assert provider.full_name == "owner/repo"
        assert provider._client is None

    def test_token_whitespace_is_stripped(self):
        provider = GitHubRestProvider(token="  token\n", owner="o", repo="r", base_url="https://ghe.example.com/api/v3/")

        assert provider.token == "token"
        assert provider.base_url == "https://ghe.example.com/api/v3"


class TestGitHubRestProviderConnection:
    """Tests for connection management."""

    @pytest.mark.asyncio
    async def test_connect(self, provider, github_class, mock_client, mock_repo):
        await provider.connect()

        github_class.assert_called_once_with("ghp_test_token_123", base_url="https://api.github.com")
        mock_client.get_repo.assert_called_once_with("agrc/porter")
        assert provider._repo is mock_repo

    @pytest.mark.asyncio
    async def test_disconnect(self, provider, github_class, mock_client):
        await provider.connect()
        await provider.disconnect()

        mock_client.close.assert_called_once()
        assert provider._client is None
        assert provider._repo is None

    @pytest.mark.asyncio
    async def test_disconnect_when_not_connected(self, provider):
        await provider.disconnect()
        assert provider._client is None

    @pytest.mark.asyncio
    async def test_call_before_connect(self, provider):
        with pytest.raises(GitHubError, match="not connected"):
            await provider.get_issue(42)

    @pytest.mark.asyncio
    async def test_connect_failure(self, provider, github_class, mock_client):
        mock_client.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, None)

        with pytest.raises(GitHubError) as exc_info:
            await provider.connect()

        assert exc_info.value.status == 404
        assert exc_info.value.operation == "connect"


# =============================================================================
# Issues
# =============================================================================


class TestGitHubRestProviderIssues:
    """Tests for issue operations."""

    @pytest.mark.asyncio
    async def test_get_issue(self, provider, github_class, mock_repo):
        mock_repo.get_issue = Mock(return_value=make_gh_issue())

        await provider.connect()
        issue = await provider.get_issue(42)

        mock_repo.get_issue.assert_called_once_with(42)
        assert issue.number == 42
        assert issue.state == IssueState.OPEN
        assert issue.labels == ["type: full deprecation"]
        assert issue.author == "steward"
        assert issue.url == "https://github.com/agrc/porter/issues/42"

    @pytest.mark.asyncio
    async def test_get_issue_body_empty(self, provider, github_class, mock_repo):
        mock_repo.get_issue = Mock(return_value=make_gh_issue(body=None))

        await provider.connect()

        assert await provider.get_issue_body(42) == ""

    @pytest.mark.asyncio
    async def test_update_issue_body(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue()
        mock_repo.get_issue = Mock(return_value=gh_issue)

        await provider.connect()
        await provider.update_issue_body(42, "new body")

        gh_issue.edit.assert_called_once_with(body="new body")

    @pytest.mark.asyncio
    async def test_create_issue(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue(number=100)
        gh_issue.assignees = [Mock(login="steveoh")]
        mock_repo.create_issue = Mock(return_value=gh_issue)

        await provider.connect()
        issue = await provider.create_issue("Task", "Body", labels=["agol"], assignees=["steveoh"])

        mock_repo.create_issue.assert_called_once_with(
            title="Task", body="Body", labels=["agol"], assignees=["steveoh"]
        )
        assert issue.number == 100
        assert issue.assignees == ["steveoh"]

    @pytest.mark.asyncio
    async def test_close_issue(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue()
        mock_repo.get_issue = Mock(return_value=gh_issue)

        await provider.connect()
        await provider.close_issue(42)

        gh_issue.edit.assert_called_once_with(state="closed")

    @pytest.mark.asyncio
    async def test_search_issues_is_scoped_to_repository(self, provider, github_class, mock_client):
        mock_client.search_issues = Mock(return_value=[Mock(number=42), Mock(number=57)])

        await provider.connect()
        numbers = await provider.search_issues('is:open "issue-ops-state" in:body')

        mock_client.search_issues.assert_called_once_with('is:open "issue-ops-state" in:body repo:agrc/porter')
        assert numbers == [42, 57]


# =============================================================================
# Comments and labels
# =============================================================================


class TestGitHubRestProviderComments:
    """Tests for comment operations."""

    @pytest.mark.asyncio
    async def test_add_comment(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue()
        gh_issue.create_comment = Mock(return_value=make_gh_comment(body="Notice", login=BOT_LOGIN, user_type="Bot"))
        mock_repo.get_issue = Mock(return_value=gh_issue)

        await provider.connect()
        comment = await provider.add_comment(42, "Notice")

        gh_issue.create_comment.assert_called_once_with("Notice")
        assert comment.author == BOT_LOGIN
        assert comment.author_type == "Bot"

    @pytest.mark.asyncio
    async def test_update_comment(self, provider, github_class, mock_repo):
        gh_comment = make_gh_comment()
        mock_repo.get_issue_comment = Mock(return_value=gh_comment)

        await provider.connect()
        await provider.update_comment(7, "Edited")

        mock_repo.get_issue_comment.assert_called_once_with(7)
        gh_comment.edit.assert_called_once_with("Edited")

    @pytest.mark.asyncio
    async def test_find_bot_comment(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue()
        gh_issue.get_comments = Mock(
            return_value=[
                make_gh_comment(1, "<!-- issue-ops-state forged", "mallory"),
                make_gh_comment(2, "<!-- issue-ops-state\n{}\n-->", BOT_LOGIN, "Bot"),
            ]
        )
        mock_repo.get_issue = Mock(return_value=gh_issue)

        await provider.connect()
        comment = await provider.find_bot_comment(42, "<!-- issue-ops-state")

        assert comment.id == 2

    @pytest.mark.asyncio
    async def test_add_labels_empty_list(self, provider, github_class, mock_repo):
        await provider.connect()
        await provider.add_labels(42, [])

        mock_repo.get_issue.assert_not_called()

    @pytest.mark.asyncio
    async def test_add_labels(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue()
        mock_repo.get_issue = Mock(return_value=gh_issue)

        await provider.connect()
        await provider.add_labels(42, ["state: soft delete", "paused: grace-period"])

        gh_issue.add_to_labels.assert_called_once_with("state: soft delete", "paused: grace-period")

    @pytest.mark.asyncio
    async def test_remove_missing_label_is_ignored(self, provider, github_class, mock_repo):
        gh_issue = make_gh_issue()
        gh_issue.remove_from_labels = Mock(side_effect=GithubException(404, {"message": "Label does not exist"}, None))
        mock_repo.get_issue = Mock(return_value=gh_issue)

        await provider.connect()
        await provider.remove_label(42, "paused: grace-period")

        gh_issue.remove_from_labels.assert_called_once_with("paused: grace-period")


# =============================================================================
# Retries and errors
# =============================================================================


class TestGitHubRestProviderRetry:
    """Transient failures are retried; the rest surface as GitHubError."""

    def test_is_retryable(self):
        assert is_retryable(GithubException(429, None, None)) is True
        assert is_retryable(GithubException(502, None, None)) is True
        assert is_retryable(GithubException(404, None, None)) is False
        assert is_retryable(ValueError("nope")) is False

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self, provider, github_class, mock_repo, no_sleep):
        mock_repo.get_issue = Mock(side_effect=[GithubException(503, {}, None), make_gh_issue()])

        await provider.connect()
        issue = await provider.get_issue(42)

        assert issue.number == 42
        assert mock_repo.get_issue.call_count == 2
        no_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, provider, github_class, mock_repo, no_sleep):
        mock_repo.get_issue = Mock(side_effect=GithubException(500, {"message": "boom"}, None))

        await provider.connect()
        with pytest.raises(GitHubError) as exc_info:
            await provider.get_issue(42)

        assert mock_repo.get_issue.call_count == 3
        assert [call.args[0] for call in no_sleep.await_args_list] == [1.0, 2.0]
        assert exc_info.value.status == 500
        assert exc_info.value.recoverable is True
        assert exc_info.value.context["issueNumber"] == 42

    @pytest.mark.asyncio
    async def test_does_not_retry_client_errors(self, provider, github_class, mock_repo, no_sleep):
        mock_repo.get_issue = Mock(side_effect=GithubException(404, {"message": "Not Found"}, None))

        await provider.connect()
        with pytest.raises(GitHubError, match="Failed to get issue"):
            await provider.get_issue(42)

        assert mock_repo.get_issue.call_count == 1
        no_sleep.assert_not_awaited()
