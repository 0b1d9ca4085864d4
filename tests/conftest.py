"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from issue_ops.engine.codec import StateCodec
from issue_ops.engine.orchestrator import WorkflowOrchestrator
from issue_ops.engine.state_store import IssueBodyStateStore
from issue_ops.engine.task_manager import TaskManager
from issue_ops.enums import AssigneeRole, StageStatus, TransitionEvent, WorkflowStatus
from issue_ops.exceptions import GitHubError
from issue_ops.models.definition import (
    WORKFLOW_COMPLETE,
    AddLabel,
    AllTasksCompleted,
    PostComment,
    Stage,
    StageTransition,
    TaskTemplate,
    WorkflowDefinition,
)
from issue_ops.models.domain import Comment, Issue, IssueState
from issue_ops.models.state import STATE_VERSION, StageState, WorkflowState
from issue_ops.providers.base import BOT_LOGIN, IssueTracker
from issue_ops.rendering.notices import NoticeRenderer

# A Monday, 08:00 in America/Denver.
START_TIME = datetime(2025, 1, 6, 15, 0, tzinfo=UTC)


class FakeClock:
    """Deterministic clock that only moves when told to."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class InMemoryIssueTracker(IssueTracker):
    """Issue tracker fake keeping issues and comments in dictionaries.

    Operations named in ``fail_on`` raise ``GitHubError`` with status 500.
    """

    def __init__(self, owner: str = "agrc", repo: str = "porter"):
        self.owner = owner
        self.repo = repo
        self.issues: dict[int, Issue] = {}
        self.comments: dict[int, list[Comment]] = {}
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        self.search_queries: list[str] = []
        self._next_comment_id = 1000

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise GitHubError(f"Failed to {operation}: boom", operation, {"status": 500})

    def add_issue(self, number: int, title: str = "", body: str = "", labels: list[str] | None = None) -> Issue:
        issue = Issue(
            id=number * 10,
            number=number,
            title=title or f"Issue {number}",
            body=body,
            state=IssueState.OPEN,
            labels=list(labels or []),
            author="steward",
            url=f"https://github.com/{self.owner}/{self.repo}/issues/{number}",
        )
        self.issues[number] = issue
        self.comments.setdefault(number, [])
        return issue

    def _issue(self, number: int) -> Issue:
        if number not in self.issues:
            raise GitHubError(f"Failed to get issue: #{number} not found", "getIssue", {"status": 404})
        return self.issues[number]

    def comment_bodies(self, issue_number: int) -> list[str]:
        return [c.body for c in self.comments.get(issue_number, [])]

    async def get_issue(self, issue_number: int) -> Issue:
        self._record("get_issue")
        return self._issue(issue_number)

    async def get_issue_body(self, issue_number: int) -> str:
        self._record("get_issue_body")
        return self._issue(issue_number).body

    async def update_issue_body(self, issue_number: int, body: str) -> None:
        self._record("update_issue_body")
        self._issue(issue_number).body = body

    async def create_issue(
        self,
        title: str,
        body: str,
        labels: list[str] | None = None,
        assignees: list[str] | None = None,
    ) -> Issue:
        self._record("create_issue")
        number = max([99, *self.issues]) + 1
        issue = self.add_issue(number, title, body, labels)
        issue.assignees = list(assignees or [])
        return issue

    async def close_issue(self, issue_number: int) -> None:
        self._record("close_issue")
        self._issue(issue_number).state = IssueState.CLOSED

    async def add_comment(self, issue_number: int, body: str) -> Comment:
        self._record("add_comment")
        self._issue(issue_number)
        self._next_comment_id += 1
        comment = Comment(id=self._next_comment_id, body=body, author=BOT_LOGIN, author_type="Bot")
        self.comments[issue_number].append(comment)
        return comment

    async def get_comment(self, comment_id: int) -> Comment:
        self._record("get_comment")
        for comments in self.comments.values():
            for comment in comments:
                if comment.id == comment_id:
                    return comment
        raise GitHubError(f"Failed to get comment: {comment_id} not found", "getComment", {"status": 404})

    async def update_comment(self, comment_id: int, body: str) -> Comment:
        self._record("update_comment")
        comment = await self.get_comment(comment_id)
        comment.body = body
        return comment

    async def get_comments(self, issue_number: int) -> list[Comment]:
        self._record("get_comments")
        self._issue(issue_number)
        return list(self.comments[issue_number])

    async def add_labels(self, issue_number: int, labels: list[str]) -> None:
        self._record("add_labels")
        issue = self._issue(issue_number)
        issue.labels.extend(label for label in labels if label not in issue.labels)

    async def remove_label(self, issue_number: int, label: str) -> None:
        self._record("remove_label")
        issue = self._issue(issue_number)
        if label in issue.labels:
            issue.labels.remove(label)

    async def get_labels(self, issue_number: int) -> list[str]:
        self._record("get_labels")
        return list(self._issue(issue_number).labels)

    async def search_issues(self, query: str) -> list[int]:
        self._record("search_issues")
        self.search_queries.append(query)
        if "in:comments" in query:
            return [n for n in self.issues if any("issue-ops-state" in body for body in self.comment_bodies(n))]
        return [n for n, issue in self.issues.items() if "issue-ops-state" in issue.body]


# -----------------------------------------------------------------------------
# Collaborators
# -----------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at a Monday morning, advanced explicitly by tests."""
    return FakeClock()


@pytest.fixture
def tracker() -> InMemoryIssueTracker:
    """Tracker holding parent issue #42."""
    tracker = InMemoryIssueTracker()
    tracker.add_issue(42, "Deprecate Utah Roads", "### Display Name\n\nUtah Roads\n")
    return tracker


@pytest.fixture
def codec(clock: FakeClock) -> StateCodec:
    return StateCodec(clock)


@pytest.fixture
def store(tracker: InMemoryIssueTracker, codec: StateCodec) -> IssueBodyStateStore:
    return IssueBodyStateStore(tracker, codec)


@pytest.fixture
def notices() -> NoticeRenderer:
    return NoticeRenderer()


@pytest.fixture
def orchestrator(store, tracker, notices, clock) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(store, tracker, notices, clock)


@pytest.fixture
def task_manager(store, tracker, notices, clock) -> TaskManager:
    return TaskManager(store, tracker, notices, clock)


# -----------------------------------------------------------------------------
# Definitions and state
# -----------------------------------------------------------------------------


@pytest.fixture
def review_definition() -> WorkflowDefinition:
    """Two-stage workflow: review -> approval -> complete."""
    return WorkflowDefinition(
        workflow_type="review",
        name="Review",
        description="Review then approve",
        stages=(
            Stage(
                name="review",
                description="Peer review of {{layerName}}",
                assignee_role=AssigneeRole.DATA_STEWARD,
                tasks=(
                    TaskTemplate(
                        title="Review {{layerName}}",
                        body="Check {{layerName}} in #{{issueNumber}}",
                        labels=("review",),
                    ),
                ),
                transitions=(
                    StageTransition(
                        event=TransitionEvent.TASK_COMPLETED,
                        target_stage="approval",
                        condition=AllTasksCompleted(),
                        actions=(AddLabel("state: approval"),),
                    ),
                    StageTransition(event=TransitionEvent.MANUAL_SKIP, target_stage="approval"),
                ),
                allow_manual_skip=True,
            ),
            Stage(
                name="approval",
                description="Final approval",
                assignee_role=AssigneeRole.TECHNICAL_LEAD,
                transitions=(
                    StageTransition(
                        event=TransitionEvent.TASK_COMPLETED,
                        target_stage=WORKFLOW_COMPLETE,
                        actions=(PostComment("Approved {{layerName}}"),),
                    ),
                ),
            ),
        ),
        variables={"layerName": "display-name"},
    )


@pytest.fixture
def grace_definition() -> WorkflowDefinition:
    """Three-stage workflow with a 14-day grace period on the middle stage."""
    return WorkflowDefinition(
        workflow_type="grace",
        name="Grace",
        description="Prepare, wait, finish",
        stages=(
            Stage(
                name="prepare",
                description="Prepare",
                assignee_role=AssigneeRole.DATA_STEWARD,
                transitions=(StageTransition(TransitionEvent.TASK_COMPLETED, "cooldown"),),
            ),
            Stage(
                name="cooldown",
                description="Community feedback window",
                assignee_role=AssigneeRole.AUTOMATED,
                grace_period_days=14,
                transitions=(StageTransition(TransitionEvent.GRACE_PERIOD_EXPIRED, "finish"),),
            ),
            Stage(
                name="finish",
                description="Finish",
                assignee_role=AssigneeRole.TECHNICAL_LEAD,
                transitions=(StageTransition(TransitionEvent.TASK_COMPLETED, WORKFLOW_COMPLETE),),
            ),
        ),
    )


@pytest.fixture
def sample_state() -> WorkflowState:
    """Active state for issue #42 in the review stage."""
    now = START_TIME.isoformat()
    return WorkflowState(
        version=STATE_VERSION,
        workflow_type="review",
        issue_number=42,
        status=WorkflowStatus.ACTIVE,
        current_stage="review",
        data={"display-name": "Utah Roads"},
        stages={
            "review": StageState(name="review", status=StageStatus.IN_PROGRESS, started_at=now),
            "approval": StageState(name="approval"),
        },
        created_at=now,
        updated_at=now,
    )
