"""Interpreter for the named transition condition kinds.

Conditions are evaluated against the state the orchestrator has just
loaded. Task statuses are taken from that state as recorded; callers that
learn about a closed task must record it (``TaskManager.update_task_status``)
before firing the event.
"""

from datetime import datetime

from issue_ops.engine.codec import parse_timestamp
from issue_ops.enums import TaskStatus
from issue_ops.models.definition import AllTasksCompleted, Condition, FieldEquals, GracePeriodElapsed
from issue_ops.models.state import WorkflowState


def evaluate_condition(condition: Condition, state: WorkflowState, now: datetime) -> bool:
    """Evaluate ``condition`` against ``state``.

    Args:
        condition: One of the closed set of condition kinds
        state: Current workflow state
        now: Evaluation time, used by time-based conditions

    Returns:
        True if the condition holds.

    Raises:
        TypeError: If ``condition`` is not a known condition kind
    """
    if isinstance(condition, FieldEquals):
        return condition.key in state.data and state.data[condition.key] == condition.value

    if isinstance(condition, AllTasksCompleted):
        stage = state.stages.get(condition.stage or state.current_stage)
        if stage is None:
            return True
        return all(task.status == TaskStatus.COMPLETED for task in stage.task_issues)

    if isinstance(condition, GracePeriodElapsed):
        stage = state.stages.get(condition.stage or state.current_stage)
        if stage is None or not stage.grace_period_ends_at:
            return False
        return parse_timestamp(stage.grace_period_ends_at) <= now

    raise TypeError(f"Unknown condition kind: {type(condition).__name__}")
