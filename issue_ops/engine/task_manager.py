"""
Task tracker: auxiliary task issues for workflow stages.

Each stage may declare task templates. When the stage becomes active the
templates are interpolated with the issue's variables and created as
separate issues, which are then tracked in the stage's ``taskIssues`` list.
Closing a task issue is reported back through ``update_task_status``; the
orchestrator's ``AllTasksCompleted`` condition reads those statuses.

Task bodies end with a footer naming the parent issue and stage, which is
also how a closed task finds its way back to its parent.
"""

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from issue_ops.engine.codec import utc_now
from issue_ops.engine.state_store import StateStore
from issue_ops.enums import TaskStatus
from issue_ops.exceptions import IssueOpsError, TaskError
from issue_ops.models.definition import TaskTemplate, WorkflowDefinition
from issue_ops.models.state import TaskIssue, WorkflowState
from issue_ops.providers.base import IssueTracker
from issue_ops.rendering.notices import NoticeRenderer

log = structlog.get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")
PARENT_FOOTER_PATTERN = re.compile(r"\*\*Parent Issue\*\*: #(\d+)")


def interpolate(template: str, variables: Mapping[str, Any] | None = None) -> str:
    """Replace ``{{ name }}`` placeholders with variable values.

    Placeholders without a matching variable are left untouched.
    """
    if not variables:
        return template

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        return str(variables[key])

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def task_footer(parent_issue: int, stage: str) -> str:
    return f"\n\n---\n\n**Parent Issue**: #{parent_issue}\n**Stage**: {stage}"


@dataclass
class TaskSummary:
    """Completion counts for one stage's tasks."""

    stage: str
    total: int = 0
    completed: int = 0
    tasks: list[TaskIssue] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return self.total - self.completed


class TaskManager:
    """Create and track task issues within workflow stages."""

    def __init__(
        self,
        store: StateStore,
        tracker: IssueTracker,
        notices: NoticeRenderer | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize task manager.

        Args:
            store: Workflow state store
            tracker: Issue tracker used to create task issues
            notices: Renderer for the task checklist comment
            clock: Returns the current time; defaults to UTC now
        """
        self.store = store
        self.tracker = tracker
        self.notices = notices or NoticeRenderer()
        self.clock = clock or utc_now

    async def _load(self, parent_issue: int, **context: Any) -> WorkflowState:
        state = await self.store.load(parent_issue)
        if state is None:
            raise TaskError(
                f"Workflow state not found for issue #{parent_issue}",
                context.pop("task_number", -1),
                {"parentIssueNumber": parent_issue, **context},
            )
        return state

    async def create_task_issues(
        self,
        parent_issue: int,
        stage: str,
        templates: Sequence[TaskTemplate],
        assignee: str | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> list[TaskIssue]:
        """Create one task issue per template and track them on ``stage``.

        Issues created before a failure are not rolled back.

        Args:
            parent_issue: Workflow issue the tasks belong to
            stage: Stage name the tasks are tracked under
            templates: Task templates to create
            assignee: Default assignee, overridden by a template's own assignee
            variables: Values for ``{{ name }}`` placeholders

        Returns:
            The created tasks.

        Raises:
            TaskError: If any task issue cannot be created, or the stage is
                not tracked in the workflow state
        """
        log.info("creating_tasks", issue=parent_issue, stage=stage, count=len(templates))

        created: list[TaskIssue] = []
        for template in templates:
            title = interpolate(template.title, variables)
            body = interpolate(template.body, variables) + task_footer(parent_issue, stage)
            task_assignee = template.assignee or assignee

            try:
                issue = await self.tracker.create_issue(
                    title=title,
                    body=body,
                    labels=list(template.labels),
                    assignees=[task_assignee] if task_assignee else [],
                )
            except IssueOpsError as e:
                log.error("task_creation_failed", issue=parent_issue, stage=stage, template=template.title, error=str(e))
                raise TaskError(
                    f"Failed to create task issue from template: {template.title}",
                    -1,
                    {"stage": stage, "parentIssueNumber": parent_issue},
                ) from e

            created.append(
                TaskIssue(
                    number=issue.number,
                    title=title,
                    status=TaskStatus.OPEN,
                    assignee=task_assignee,
                    parent_issue=parent_issue,
                    stage=stage,
                    created_at=self.clock().isoformat(),
                    url=issue.url,
                )
            )
            log.info("task_created", issue=parent_issue, task=issue.number, title=title)

        state = await self._load(parent_issue, stage=stage)
        stage_state = state.stages.get(stage)
        if stage_state is None:
            raise TaskError(
                f'Stage "{stage}" not found in workflow state',
                -1,
                {"parentIssueNumber": parent_issue, "stage": stage},
            )
        stage_state.task_issues.extend(created)
        await self.store.save(state)

        await self.tracker.add_comment(parent_issue, self.notices.task_checklist(stage, created))
        return created

    async def create_stage_tasks(
        self,
        parent_issue: int,
        definition: WorkflowDefinition,
        stage_name: str | None = None,
    ) -> list[TaskIssue]:
        """Create the tasks declared by a stage of ``definition``.

        Variables come from the workflow's parsed issue data. ``stage_name``
        defaults to the current stage.
        """
        state = await self._load(parent_issue, stage=stage_name)
        name = stage_name or state.current_stage
        stage = definition.get_stage(name)
        if stage is None:
            raise TaskError(
                f'Stage "{name}" not found in workflow definition',
                -1,
                {"parentIssueNumber": parent_issue, "stage": name},
            )

        stage_state = state.stages.get(name)
        return await self.create_task_issues(
            parent_issue,
            name,
            stage.tasks,
            assignee=stage_state.assignee if stage_state else None,
            variables=definition.template_variables(state.data, parent_issue),
        )

    async def are_all_tasks_completed(self, parent_issue: int, stage: str) -> bool:
        """Check whether every tracked task of ``stage`` is completed.

        A stage without tracked tasks counts as completed.
        """
        state = await self._load(parent_issue, stage=stage)
        stage_state = state.stages.get(stage)
        if stage_state is None:
            return True
        return all(task.status == TaskStatus.COMPLETED for task in stage_state.task_issues)

    async def update_task_status(self, parent_issue: int, task_number: int, status: TaskStatus) -> TaskIssue:
        """Record a task's new status, searching every stage for it.

        Raises:
            TaskError: If the task is not tracked on the workflow
        """
        state = await self._load(parent_issue, task_number=task_number)

        task = next((t for t in state.iter_tasks() if t.number == task_number), None)
        if task is None:
            raise TaskError(
                f"Task issue #{task_number} not found in workflow state",
                task_number,
                {"parentIssueNumber": parent_issue},
            )

        if status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED:
            task.completed_at = self.clock().isoformat()
        task.status = status
        await self.store.save(state)

        log.info("task_status_updated", issue=parent_issue, task=task_number, status=str(status))
        return task

    async def get_task_summary(self, parent_issue: int, stage: str | None = None) -> TaskSummary:
        """Summarize task completion for ``stage`` (default: the current stage)."""
        state = await self._load(parent_issue, stage=stage)
        name = stage or state.current_stage
        stage_state = state.stages.get(name)
        tasks = list(stage_state.task_issues) if stage_state else []

        return TaskSummary(
            stage=name,
            total=len(tasks),
            completed=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
            tasks=tasks,
        )

    async def find_parent_issue(self, task_number: int) -> int | None:
        """Resolve a task issue's parent from the footer in its body."""
        body = await self.tracker.get_issue_body(task_number)
        match = PARENT_FOOTER_PATTERN.search(body)
        if not match:
            log.warning("task_parent_not_found", task=task_number)
            return None
        return int(match.group(1))
