"""Enumerations shared by the workflow definitions, state, and engine.

Every enum is a ``str`` subclass so members compare equal to their wire
values and serialize directly into the persisted state JSON.
"""

from enum import Enum


class WorkflowType(str, Enum):
    """Workflow types known to the registry."""

    SGID_DEPRECATION = "sgid-deprecation"

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(str, Enum):
    """Overall status of a workflow instance.

    ``COMPLETED`` and ``CANCELLED`` are absorbing: once reached, no further
    transition is applied.
    """

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value

    @property
    def is_terminal(self) -> bool:
        """Check if the workflow can no longer transition."""
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.CANCELLED)


class StageStatus(str, Enum):
    """Status of a single stage within a workflow."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


class TaskStatus(str, Enum):
    """Lifecycle of an auxiliary task issue."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class TransitionEvent(str, Enum):
    """Events that may move a workflow from one stage to the next."""

    TASK_COMPLETED = "task_completed"
    GRACE_PERIOD_EXPIRED = "grace_period_expired"
    MANUAL_OVERRIDE = "manual_override"
    MANUAL_SKIP = "manual_skip"
    VALIDATION_PASSED = "validation_passed"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class AssigneeRole(str, Enum):
    """Role responsible for the work in a stage."""

    DATA_STEWARD = "data-steward"
    TECHNICAL_LEAD = "technical-lead"
    SECURITY_REVIEWER = "security-reviewer"
    AUTOMATED = "automated"

    def __str__(self) -> str:
        return self.value


class ActionType(str, Enum):
    """Side-effect kinds a transition may carry."""

    ADD_LABEL = "add_label"
    REMOVE_LABEL = "remove_label"
    POST_COMMENT = "post_comment"
    NOTIFY = "notify"

    def __str__(self) -> str:
        return self.value
