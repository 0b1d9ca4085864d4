"""
Mutable workflow state persisted inside the tracked issue.

``WorkflowState`` is the single aggregate the engine loads, mutates, and
saves. It round-trips through JSON with camelCase keys, which is the format
embedded in the issue body::

    {
      "version": "1.0.0",
      "workflowType": "sgid-deprecation",
      "issueNumber": 42,
      "status": "active",
      "currentStage": "soft-delete",
      "data": {"display-name": "Utah Roads"},
      "stages": {
        "soft-delete": {"name": "soft-delete", "status": "in_progress", "taskIssues": []}
      },
      "createdAt": "2025-01-06T15:00:00+00:00",
      "updatedAt": "2025-01-06T15:00:00+00:00"
    }

Timestamps are kept as ISO-8601 strings so the persisted text is stable.
"""

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from issue_ops.enums import StageStatus, TaskStatus, WorkflowStatus

STATE_VERSION = "1.0.0"


class _StateModel(BaseModel):
    """Shared configuration: camelCase aliases, unknown keys preserved."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class TaskIssue(_StateModel):
    """An auxiliary issue tracking one unit of work in a stage."""

    number: int
    title: str
    status: TaskStatus = TaskStatus.OPEN
    assignee: str | None = None
    parent_issue: int
    stage: str
    created_at: str
    completed_at: str | None = None
    url: str = ""


class StageState(_StateModel):
    """Runtime state of one stage."""

    name: str
    status: StageStatus = StageStatus.PENDING
    assignee: str | None = None
    task_issues: list[TaskIssue] = Field(default_factory=list)
    started_at: str | None = None
    completed_at: str | None = None
    grace_period_ends_at: str | None = None
    notes: str | None = None


class WorkflowState(_StateModel):
    """The complete state of one workflow instance.

    Invariants (checked by the state codec on load and before save):
        - version, workflowType, issueNumber > 0, status, currentStage,
          stages, createdAt and updatedAt are present
        - currentStage is a key of stages
    """

    version: str
    workflow_type: str
    issue_number: int
    status: WorkflowStatus
    current_stage: str
    data: dict[str, Any] = Field(default_factory=dict)
    stages: dict[str, StageState]
    feature_flags: dict[str, Any] | None = None
    created_at: str
    updated_at: str

    @property
    def current_stage_state(self) -> StageState | None:
        return self.stages.get(self.current_stage)

    def iter_tasks(self) -> Iterator[TaskIssue]:
        """Yield every tracked task across all stages."""
        for stage in self.stages.values():
            yield from stage.task_issues

    def to_json(self) -> str:
        """Serialize as 2-space indented JSON with camelCase keys."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)
