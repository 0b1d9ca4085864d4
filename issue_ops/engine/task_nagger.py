"""Weekly reminders for workflows with outstanding tasks.

Meant to run from a scheduled job. An issue is nagged at most once per
``interval_days``; the time of the last reminder is kept in the workflow
state's ``featureFlags.lastNagTime``.
"""

from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import structlog

from issue_ops.engine.codec import parse_timestamp, utc_now
from issue_ops.engine.state_store import StateStore
from issue_ops.enums import TaskStatus, WorkflowStatus
from issue_ops.exceptions import IssueOpsError
from issue_ops.models.state import TaskIssue, WorkflowState
from issue_ops.providers.base import IssueTracker
from issue_ops.rendering.notices import NoticeRenderer

log = structlog.get_logger(__name__)

LAST_NAG_FLAG = "lastNagTime"


class TaskNagger:
    """Post weekly reminder comments on workflows with incomplete tasks."""

    def __init__(
        self,
        store: StateStore,
        tracker: IssueTracker,
        notices: NoticeRenderer | None = None,
        clock: Callable[[], datetime] | None = None,
        interval_days: int = 7,
        timezone: str = "America/Denver",
    ):
        """Initialize nagger.

        Args:
            store: Workflow state store
            tracker: Issue tracker for searching issues and posting reminders
            notices: Renderer for the reminder comment
            clock: Returns the current time; defaults to UTC now
            interval_days: Minimum days between reminders on one issue
            timezone: IANA zone used for the Monday-morning schedule window
        """
        self.store = store
        self.tracker = tracker
        self.notices = notices or NoticeRenderer()
        self.clock = clock or utc_now
        self.interval = timedelta(days=interval_days)
        self.timezone = ZoneInfo(timezone)

    def is_monday_morning(self, when: datetime | None = None) -> bool:
        """Check for Monday between 06:00 and 09:00 local time."""
        local = (when or self.clock()).astimezone(self.timezone)
        return local.weekday() == 0 and 6 <= local.hour < 9

    def incomplete_tasks(self, state: WorkflowState) -> list[TaskIssue]:
        stage = state.current_stage_state
        if stage is None:
            return []
        return [task for task in stage.task_issues if task.status != TaskStatus.COMPLETED]

    def is_due(self, state: WorkflowState) -> bool:
        """Check whether enough time has passed since the last reminder."""
        last = (state.feature_flags or {}).get(LAST_NAG_FLAG)
        if not isinstance(last, str):
            return True
        try:
            return self.clock() - parse_timestamp(last) >= self.interval
        except ValueError:
            log.warning("invalid_last_nag_time", issue=state.issue_number, value=last)
            return True

    async def nag_issue(self, issue_number: int) -> bool:
        """Post a reminder on one issue if it is due.

        Returns:
            True if a reminder was posted.
        """
        state = await self.store.load(issue_number)
        if state is None:
            log.debug("nag_skipped", issue=issue_number, reason="no_state")
            return False

        if state.status.is_terminal or state.status == WorkflowStatus.PAUSED:
            log.debug("nag_skipped", issue=issue_number, reason=str(state.status))
            return False

        tasks = self.incomplete_tasks(state)
        if not tasks:
            log.debug("nag_skipped", issue=issue_number, reason="no_incomplete_tasks")
            return False

        if not self.is_due(state):
            log.debug("nag_skipped", issue=issue_number, reason="recently_nagged")
            return False

        await self.tracker.add_comment(issue_number, self.notices.reminder(state.current_stage, tasks))

        state.feature_flags = {**(state.feature_flags or {}), LAST_NAG_FLAG: self.clock().isoformat()}
        await self.store.save(state)

        log.info("nag_posted", issue=issue_number, stage=state.current_stage, remaining=len(tasks))
        return True

    async def nag_all_active_issues(self, issue_numbers: Iterable[int] | None = None) -> int:
        """Nag every given issue, or every open issue carrying workflow state.

        Candidates are found with the state store's search query, so
        comment-hosted state is searched in comments.

        Failures on individual issues are logged and do not stop the run.

        Returns:
            Number of issues nagged.
        """
        numbers = list(issue_numbers or [])
        if not numbers:
            numbers = await self.tracker.search_issues(self.store.search_query)
            log.info("nag_candidates_found", count=len(numbers))

        nagged = 0
        for number in numbers:
            try:
                if await self.nag_issue(number):
                    nagged += 1
            except IssueOpsError as e:
                log.error("nag_failed", issue=number, error=e.message, code=e.code)

        log.info("nag_run_complete", nagged=nagged, checked=len(numbers))
        return nagged
