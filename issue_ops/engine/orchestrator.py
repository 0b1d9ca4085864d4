"""
Workflow orchestrator: the stage state machine.

The orchestrator owns the lifecycle of one workflow instance per issue:

- ``initialize_workflow`` creates the state with the first stage active.
- ``transition_stage`` applies the first transition of the current stage
  registered for an event, provided its condition holds.
- ``skip_stage`` marks a skippable stage as skipped and moves on through
  the ``manual_skip`` transition.
- ``expire_grace_period`` resumes a paused workflow once its grace period
  has run out.
- ``cancel_workflow`` stops a workflow for good.

Every operation is a single load, mutate, save cycle against the state
store, followed by notices and transition actions on the parent issue.
Notices and actions are posted after the state is saved; a failing action is
logged and skipped without undoing the stage change.

Stage lifecycle::

    pending -> in_progress -> completed
                           \\-> skipped

Workflow lifecycle::

    active <-> paused (grace period; left on expiry or a manual skip or override)
    active -> completed | cancelled   (absorbing)

Example:
    >>> orchestrator = WorkflowOrchestrator(store, tracker)
    >>> state = await orchestrator.initialize_workflow(42, definition, {"display-name": "Roads"})
    >>> await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, definition)
"""

from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

import structlog

from issue_ops.engine.codec import parse_timestamp, utc_now
from issue_ops.engine.conditions import evaluate_condition
from issue_ops.engine.state_store import StateStore
from issue_ops.engine.task_manager import interpolate
from issue_ops.enums import StageStatus, TransitionEvent, WorkflowStatus
from issue_ops.exceptions import InvalidTransitionError, IssueOpsError, WorkflowError
from issue_ops.models.definition import (
    AddLabel,
    Notify,
    PostComment,
    RemoveLabel,
    StageTransition,
    TransitionAction,
    WorkflowDefinition,
)
from issue_ops.models.state import STATE_VERSION, StageState, WorkflowState
from issue_ops.providers.base import IssueTracker
from issue_ops.rendering.notices import NoticeRenderer

log = structlog.get_logger(__name__)

GRACE_PERIOD_LABEL = "paused: grace-period"

# Events a paused workflow still accepts; the rest wait for expire_grace_period.
PAUSED_EVENTS = frozenset({TransitionEvent.MANUAL_SKIP, TransitionEvent.MANUAL_OVERRIDE})


class WorkflowOrchestrator:
    """Drive workflow instances through the stages of their definition.

    Attributes:
        store: State store holding each issue's workflow state.
        tracker: Issue tracker receiving notices, labels, and comments.
        notices: Renderer for the Markdown notices.
        clock: Returns the current time.
        grace_period_label: Label attached while a grace period is running.
    """

    def __init__(
        self,
        store: StateStore,
        tracker: IssueTracker,
        notices: NoticeRenderer | None = None,
        clock: Callable[[], datetime] | None = None,
        grace_period_label: str = GRACE_PERIOD_LABEL,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.notices = notices or NoticeRenderer()
        self.clock = clock or utc_now
        self.grace_period_label = grace_period_label

    async def _load(self, issue_number: int, operation: str) -> WorkflowState:
        state = await self.store.load(issue_number)
        if state is None:
            raise WorkflowError(
                f"Cannot {operation}: workflow state not found",
                "STATE_NOT_FOUND",
                context={"issueNumber": issue_number},
            )
        return state

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    async def initialize_workflow(
        self,
        issue_number: int,
        definition: WorkflowDefinition,
        data: Mapping[str, Any] | None = None,
    ) -> WorkflowState:
        """Create and persist the initial state for a workflow.

        Every stage starts ``pending`` except the first, which starts
        ``in_progress``. An initialization notice listing the stages is
        posted on the issue.

        Args:
            issue_number: Issue the workflow is attached to
            definition: Workflow definition to instantiate
            data: Parsed issue fields stored on the state

        Returns:
            The initial state.

        Raises:
            ConfigurationError: If the definition has no stages or is inconsistent
        """
        definition.validate()
        first = definition.stages[0]
        now = self.clock().isoformat()

        log.info("workflow_initializing", issue=issue_number, workflow_type=str(definition.workflow_type))

        stages = {stage.name: StageState(name=stage.name) for stage in definition.stages}
        stages[first.name].status = StageStatus.IN_PROGRESS
        stages[first.name].started_at = now

        state = WorkflowState(
            version=STATE_VERSION,
            workflow_type=str(definition.workflow_type),
            issue_number=issue_number,
            status=WorkflowStatus.ACTIVE,
            current_stage=first.name,
            data=dict(data or {}),
            stages=stages,
            created_at=now,
            updated_at=now,
        )
        await self.store.save(state)

        await self.tracker.add_comment(
            issue_number,
            self.notices.workflow_init(definition.name, definition.stage_names),
        )

        log.info("workflow_initialized", issue=issue_number, stage=first.name)
        return state

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def find_transition(
        self,
        state: WorkflowState,
        event: TransitionEvent,
        definition: WorkflowDefinition,
    ) -> StageTransition | None:
        """Return the transition ``event`` would apply, if any.

        Pure lookup: terminal workflows, unknown stages, unregistered events,
        and unmet conditions all yield None.
        """
        if state.status.is_terminal:
            return None

        stage = definition.get_stage(state.current_stage)
        if stage is None:
            return None

        transition = stage.find_transition(event)
        if transition is None:
            return None

        if transition.condition is not None and not evaluate_condition(transition.condition, state, self.clock()):
            return None

        return transition

    def can_transition(
        self,
        state: WorkflowState,
        event: TransitionEvent,
        definition: WorkflowDefinition,
    ) -> bool:
        """Check whether ``event`` would move ``state`` forward."""
        return self.find_transition(state, event, definition) is not None

    def require_transition(
        self,
        state: WorkflowState,
        event: TransitionEvent,
        definition: WorkflowDefinition,
    ) -> StageTransition:
        """Like ``find_transition``, but raise when nothing would happen.

        Raises:
            InvalidTransitionError: If ``event`` is not permitted from the current stage
        """
        transition = self.find_transition(state, event, definition)
        if transition is None:
            raise InvalidTransitionError(
                f"Event {event} is not permitted from stage {state.current_stage}",
                from_stage=state.current_stage,
                context={"event": str(event), "status": str(state.status)},
            )
        return transition

    async def transition_stage(
        self,
        issue_number: int,
        event: TransitionEvent,
        definition: WorkflowDefinition,
    ) -> WorkflowState | None:
        """Apply the transition registered for ``event`` on the current stage.

        Args:
            issue_number: Workflow issue
            event: Trigger event
            definition: Definition the workflow was created from

        Returns:
            The updated state, or None when no transition fired: the
            workflow is terminal, or paused and the event is not a manual
            skip or override, or the stage has no transition for the event,
            or its condition is not met.

        Raises:
            WorkflowError: If the issue has no workflow state, or the current
                stage is missing from the definition
        """
        log.info("transition_requested", issue=issue_number, trigger=str(event))
        state = await self._load(issue_number, "transition")

        if state.status.is_terminal:
            log.info("transition_skipped_terminal", issue=issue_number, status=str(state.status))
            return None

        if state.status == WorkflowStatus.PAUSED and event not in PAUSED_EVENTS:
            log.info(
                "transition_deferred_paused",
                issue=issue_number,
                stage=state.current_stage,
                trigger=str(event),
            )
            return None

        stage = definition.get_stage(state.current_stage)
        if stage is None:
            raise WorkflowError(
                f'Current stage "{state.current_stage}" not found in workflow definition',
                "STAGE_NOT_FOUND",
                context={"issueNumber": issue_number, "currentStage": state.current_stage},
            )

        transition = stage.find_transition(event)
        if transition is None:
            log.debug("transition_not_registered", issue=issue_number, stage=stage.name, trigger=str(event))
            return None

        if transition.condition is not None and not evaluate_condition(transition.condition, state, self.clock()):
            log.info(
                "transition_condition_not_met",
                issue=issue_number,
                from_stage=stage.name,
                to_stage=transition.target_stage or None,
            )
            return None

        return await self._apply_transition(state, transition, definition)

    async def _apply_transition(
        self,
        state: WorkflowState,
        transition: StageTransition,
        definition: WorkflowDefinition,
    ) -> WorkflowState:
        now = self.clock()
        from_stage = state.current_stage
        was_paused = state.status == WorkflowStatus.PAUSED

        outgoing = state.stages[from_stage]
        if outgoing.status != StageStatus.SKIPPED:
            outgoing.status = StageStatus.COMPLETED
            outgoing.completed_at = now.isoformat()

        target = definition.get_stage(transition.target_stage) if not transition.is_terminal else None

        if target is None:
            state.status = WorkflowStatus.COMPLETED
            await self.store.save(state)
            await self.tracker.add_comment(state.issue_number, self.notices.complete())
            log.info("workflow_completed", issue=state.issue_number, stage=from_stage)
        else:
            target_state = state.stages.setdefault(target.name, StageState(name=target.name))
            target_state.status = StageStatus.IN_PROGRESS
            target_state.started_at = now.isoformat()
            state.current_stage = target.name

            if target.grace_period_days:
                target_state.grace_period_ends_at = (now + timedelta(days=target.grace_period_days)).isoformat()
                state.status = WorkflowStatus.PAUSED
                await self.store.save(state)

                await self.tracker.add_comment(
                    state.issue_number,
                    self.notices.grace_period(target.name, target.description, target.grace_period_days),
                )
                await self._run_best_effort(
                    state.issue_number,
                    "add_grace_period_label",
                    self.tracker.add_labels(state.issue_number, [self.grace_period_label]),
                )
                log.info(
                    "grace_period_started",
                    issue=state.issue_number,
                    stage=target.name,
                    days=target.grace_period_days,
                    ends_at=target_state.grace_period_ends_at,
                )
            else:
                if was_paused:
                    state.status = WorkflowStatus.ACTIVE
                await self.store.save(state)
                await self.tracker.add_comment(
                    state.issue_number,
                    self.notices.stage(target.name, target.description),
                )

            log.info("stage_transitioned", issue=state.issue_number, from_stage=from_stage, to_stage=target.name)

        if was_paused and state.status != WorkflowStatus.PAUSED:
            await self._run_best_effort(
                state.issue_number,
                "remove_grace_period_label",
                self.tracker.remove_label(state.issue_number, self.grace_period_label),
            )

        variables = definition.template_variables(state.data, state.issue_number)
        await self._execute_actions(state.issue_number, transition.actions, variables)
        return state

    async def _execute_actions(
        self,
        issue_number: int,
        actions: Sequence[TransitionAction],
        variables: Mapping[str, Any],
    ) -> None:
        """Run transition actions in order; each failure is logged and skipped."""
        for action in actions:
            try:
                if isinstance(action, AddLabel):
                    await self.tracker.add_labels(issue_number, [action.label])
                elif isinstance(action, RemoveLabel):
                    await self.tracker.remove_label(issue_number, action.label)
                elif isinstance(action, PostComment):
                    await self.tracker.add_comment(issue_number, interpolate(action.body, variables))
                elif isinstance(action, Notify):
                    log.info(
                        "notify_action_not_implemented",
                        issue=issue_number,
                        mentions=list(action.mentions),
                        message=action.message,
                    )
                else:
                    log.warning("unknown_action", issue=issue_number, action=repr(action))
            except Exception as e:
                log.error(
                    "transition_action_failed",
                    issue=issue_number,
                    action=str(action.kind),
                    error=str(e),
                    exc_info=True,
                )

    async def _run_best_effort(self, issue_number: int, operation: str, call: Awaitable[Any]) -> None:
        try:
            await call
        except IssueOpsError as e:
            log.warning("side_effect_failed", issue=issue_number, operation=operation, error=e.message)

    # -------------------------------------------------------------------------
    # Manual operations
    # -------------------------------------------------------------------------

    async def skip_stage(
        self,
        issue_number: int,
        definition: WorkflowDefinition,
        reason: str,
    ) -> WorkflowState | None:
        """Skip the current stage, if its definition allows it.

        The stage is marked ``skipped`` with the reason in its notes, a skip
        notice is posted, and the ``manual_skip`` transition is then fired
        to move on.

        Returns:
            The state after the skip and the follow-up transition, or None
            when the stage cannot be skipped. Without a ``manual_skip``
            transition the returned state is still on the skipped stage.
        """
        state = await self._load(issue_number, "skip stage")

        if state.status.is_terminal:
            log.info("skip_ignored_terminal", issue=issue_number, status=str(state.status))
            return None

        stage = definition.get_stage(state.current_stage)
        if stage is None or not stage.allow_manual_skip:
            log.warning("stage_skip_not_allowed", issue=issue_number, stage=state.current_stage)
            return None

        stage_state = state.stages[state.current_stage]
        stage_state.status = StageStatus.SKIPPED
        stage_state.completed_at = self.clock().isoformat()
        stage_state.notes = f"Skipped: {reason}"
        await self.store.save(state)

        await self.tracker.add_comment(issue_number, self.notices.skip(state.current_stage, reason))
        log.info("stage_skipped", issue=issue_number, stage=state.current_stage, reason=reason)

        transitioned = await self.transition_stage(issue_number, TransitionEvent.MANUAL_SKIP, definition)
        return transitioned or state

    async def expire_grace_period(
        self,
        issue_number: int,
        definition: WorkflowDefinition,
    ) -> WorkflowState | None:
        """Resume a paused workflow whose grace period has ended.

        The workflow is set back to ``active``, the grace-period label is
        removed, and the ``grace_period_expired`` transition is fired.

        Returns:
            The state after resuming (and transitioning, when the stage has
            an expiry transition), or None when the workflow is not paused
            or the grace period is still running.
        """
        state = await self._load(issue_number, "expire grace period")
        if state.status != WorkflowStatus.PAUSED:
            log.debug("grace_period_not_paused", issue=issue_number, status=str(state.status))
            return None

        stage_state = state.stages[state.current_stage]
        now = self.clock()
        if not stage_state.grace_period_ends_at or parse_timestamp(stage_state.grace_period_ends_at) > now:
            log.info(
                "grace_period_running",
                issue=issue_number,
                stage=state.current_stage,
                ends_at=stage_state.grace_period_ends_at,
            )
            return None

        state.status = WorkflowStatus.ACTIVE
        await self.store.save(state)
        await self._run_best_effort(
            issue_number,
            "remove_grace_period_label",
            self.tracker.remove_label(issue_number, self.grace_period_label),
        )
        log.info("grace_period_expired", issue=issue_number, stage=state.current_stage)

        transitioned = await self.transition_stage(issue_number, TransitionEvent.GRACE_PERIOD_EXPIRED, definition)
        return transitioned or state

    async def cancel_workflow(self, issue_number: int, reason: str) -> WorkflowState | None:
        """Cancel a workflow. Returns None when it has already finished."""
        state = await self._load(issue_number, "cancel workflow")
        if state.status.is_terminal:
            log.info("cancel_ignored_terminal", issue=issue_number, status=str(state.status))
            return None

        state.status = WorkflowStatus.CANCELLED
        state.stages[state.current_stage].notes = f"Cancelled: {reason}"
        await self.store.save(state)

        await self.tracker.add_comment(issue_number, self.notices.cancelled(state.current_stage, reason))
        log.info("workflow_cancelled", issue=issue_number, stage=state.current_stage, reason=reason)
        return state
