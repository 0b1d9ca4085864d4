"""Tests for issue_ops/engine/orchestrator.py - the stage state machine."""

from dataclasses import replace
from datetime import timedelta

import pytest
import pytest_asyncio

from issue_ops.engine.orchestrator import GRACE_PERIOD_LABEL
from issue_ops.enums import StageStatus, TaskStatus, TransitionEvent, WorkflowStatus
from issue_ops.exceptions import ConfigurationError, InvalidTransitionError, WorkflowError
from issue_ops.models.definition import AddLabel, PostComment, StageTransition, WorkflowDefinition
from issue_ops.rendering.notices import WORKFLOW_INIT_MARKER

DATA = {"display-name": "Utah Roads"}


@pytest_asyncio.fixture
async def started(orchestrator, review_definition):
    """Review workflow initialized on issue #42."""
    return await orchestrator.initialize_workflow(42, review_definition, DATA)


# =============================================================================
# Initialization
# =============================================================================


class TestInitializeWorkflow:
    """Tests for WorkflowOrchestrator.initialize_workflow."""

    @pytest.mark.asyncio
    async def test_first_stage_in_progress(self, orchestrator, review_definition, clock):
        state = await orchestrator.initialize_workflow(42, review_definition, DATA)

        assert state.status is WorkflowStatus.ACTIVE
        assert state.current_stage == "review"
        assert state.workflow_type == "review"
        assert state.data == DATA
        assert state.stages["review"].status is StageStatus.IN_PROGRESS
        assert state.stages["review"].started_at == clock().isoformat()
        assert state.stages["approval"].status is StageStatus.PENDING

    @pytest.mark.asyncio
    async def test_exactly_one_stage_in_progress(self, orchestrator, grace_definition):
        state = await orchestrator.initialize_workflow(42, grace_definition)

        in_progress = [name for name, s in state.stages.items() if s.status is StageStatus.IN_PROGRESS]
        assert in_progress == ["prepare"]

    @pytest.mark.asyncio
    async def test_state_is_persisted(self, orchestrator, review_definition, store):
        state = await orchestrator.initialize_workflow(42, review_definition, DATA)

        assert await store.load(42) == state

    @pytest.mark.asyncio
    async def test_posts_init_notice(self, orchestrator, review_definition, tracker):
        await orchestrator.initialize_workflow(42, review_definition, DATA)

        notice = tracker.comment_bodies(42)[-1]
        assert notice.startswith(WORKFLOW_INIT_MARKER)
        assert "## 🎫 Review Workflow Started" in notice
        assert "1. ▶️ review" in notice
        assert "2. ⏸️ approval" in notice

    @pytest.mark.asyncio
    async def test_rejects_definition_without_stages(self, orchestrator, tracker):
        with pytest.raises(ConfigurationError):
            await orchestrator.initialize_workflow(42, WorkflowDefinition("empty", "Empty", "", ()))

        assert tracker.calls == []


# =============================================================================
# Transitions
# =============================================================================


class TestTransitionStage:
    """Tests for WorkflowOrchestrator.transition_stage."""

    @pytest.mark.asyncio
    async def test_review_approval_scenario(self, orchestrator, review_definition, started):
        """Two task-completed events walk the workflow to completion."""
        assert started.current_stage == "review"

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert state.current_stage == "approval"
        assert state.stages["review"].status is StageStatus.COMPLETED
        assert state.stages["approval"].status is StageStatus.IN_PROGRESS

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert state.status is WorkflowStatus.COMPLETED
        assert state.current_stage == "approval"
        assert state.stages["approval"].status is StageStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_without_state(self, orchestrator, review_definition):
        with pytest.raises(WorkflowError) as exc_info:
            await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert exc_info.value.code == "STATE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unregistered_event_is_a_no_op(self, orchestrator, review_definition, started, store):
        result = await orchestrator.transition_stage(42, TransitionEvent.GRACE_PERIOD_EXPIRED, review_definition)

        assert result is None
        assert (await store.load(42)).current_stage == "review"

    @pytest.mark.asyncio
    async def test_condition_not_met(self, orchestrator, review_definition, started, task_manager, store):
        await task_manager.create_stage_tasks(42, review_definition)

        result = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert result is None
        assert (await store.load(42)).current_stage == "review"

    @pytest.mark.asyncio
    async def test_condition_met_after_tasks_completed(self, orchestrator, review_definition, started, task_manager):
        tasks = await task_manager.create_stage_tasks(42, review_definition)
        for task in tasks:
            await task_manager.update_task_status(42, task.number, TaskStatus.COMPLETED)

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert state.current_stage == "approval"
        assert state.stages["review"].task_issues[0].status is TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_posts_stage_notice_and_runs_actions(self, orchestrator, review_definition, started, tracker):
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert "<!-- issue-ops-stage: approval -->" in tracker.comment_bodies(42)[-1]
        assert "state: approval" in tracker.issues[42].labels

    @pytest.mark.asyncio
    async def test_terminal_transition_posts_completion_and_interpolated_comment(
        self, orchestrator, review_definition, started, tracker
    ):
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        comments = tracker.comment_bodies(42)
        assert "## 🎉 Workflow Complete!" in comments[-2]
        assert comments[-1] == "Approved Utah Roads"

    @pytest.mark.asyncio
    async def test_terminal_workflow_is_idempotent(self, orchestrator, review_definition, started, tracker):
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)
        tracker.calls.clear()

        for event in TransitionEvent:
            assert await orchestrator.transition_stage(42, event, review_definition) is None

        assert set(tracker.calls) == {"get_issue_body"}

    @pytest.mark.asyncio
    async def test_stage_missing_from_definition(self, orchestrator, review_definition, grace_definition, started):
        with pytest.raises(WorkflowError) as exc_info:
            await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, grace_definition)

        assert exc_info.value.code == "STAGE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_failing_action_does_not_undo_transition(
        self, orchestrator, review_definition, started, tracker, store
    ):
        tracker.fail_on.add("add_labels")

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)

        assert state.current_stage == "approval"
        assert (await store.load(42)).current_stage == "approval"
        assert "state: approval" not in tracker.issues[42].labels

    @pytest.mark.asyncio
    async def test_failing_action_does_not_stop_later_actions(self, orchestrator, review_definition, tracker, store):
        transition = StageTransition(
            TransitionEvent.TASK_COMPLETED,
            "approval",
            actions=(AddLabel("state: approval"), PostComment("Review of {{layerName}} done")),
        )
        review = replace(review_definition.get_stage("review"), transitions=(transition,))
        definition = replace(review_definition, stages=(review, review_definition.get_stage("approval")))
        await orchestrator.initialize_workflow(42, definition, DATA)
        tracker.fail_on.add("add_labels")

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, definition)

        assert state.current_stage == "approval"
        assert (await store.load(42)).current_stage == "approval"
        assert "state: approval" not in tracker.issues[42].labels
        assert tracker.comment_bodies(42)[-1] == "Review of Utah Roads done"


class TestTransitionPredicates:
    """Tests for find_transition, can_transition and require_transition."""

    def test_can_transition(self, orchestrator, review_definition, sample_state):
        assert orchestrator.can_transition(sample_state, TransitionEvent.TASK_COMPLETED, review_definition) is True
        assert orchestrator.can_transition(sample_state, TransitionEvent.ERROR, review_definition) is False

    def test_terminal_state(self, orchestrator, review_definition, sample_state):
        sample_state.status = WorkflowStatus.CANCELLED

        assert orchestrator.find_transition(sample_state, TransitionEvent.TASK_COMPLETED, review_definition) is None

    def test_require_transition_raises(self, orchestrator, review_definition, sample_state):
        with pytest.raises(InvalidTransitionError) as exc_info:
            orchestrator.require_transition(sample_state, TransitionEvent.VALIDATION_PASSED, review_definition)

        assert exc_info.value.from_stage == "review"
        assert exc_info.value.context["event"] == "validation_passed"

    def test_require_transition_returns_match(self, orchestrator, review_definition, sample_state):
        transition = orchestrator.require_transition(sample_state, TransitionEvent.MANUAL_SKIP, review_definition)

        assert transition.target_stage == "approval"


# =============================================================================
# Grace periods
# =============================================================================


class TestGracePeriod:
    """Entering a grace-period stage pauses the workflow until expiry."""

    @pytest_asyncio.fixture
    async def paused(self, orchestrator, grace_definition):
        await orchestrator.initialize_workflow(42, grace_definition)
        return await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, grace_definition)

    @pytest.mark.asyncio
    async def test_entering_stage_pauses_workflow(self, paused, clock, tracker):
        assert paused.status is WorkflowStatus.PAUSED
        assert paused.current_stage == "cooldown"
        assert paused.stages["cooldown"].grace_period_ends_at == (clock() + timedelta(days=14)).isoformat()
        assert GRACE_PERIOD_LABEL in tracker.issues[42].labels
        assert "**Progress**: Grace period: 14 days" in tracker.comment_bodies(42)[-1]

    @pytest.mark.asyncio
    async def test_label_failure_is_tolerated(self, orchestrator, grace_definition, tracker):
        await orchestrator.initialize_workflow(42, grace_definition)
        tracker.fail_on.add("add_labels")

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, grace_definition)

        assert state.status is WorkflowStatus.PAUSED

    @pytest.mark.asyncio
    async def test_expire_before_end(self, orchestrator, grace_definition, paused, clock, store):
        clock.advance(days=13, hours=23)

        assert await orchestrator.expire_grace_period(42, grace_definition) is None
        assert (await store.load(42)).status is WorkflowStatus.PAUSED

    @pytest.mark.asyncio
    async def test_expire_at_end(self, orchestrator, grace_definition, paused, clock, tracker):
        clock.advance(days=14)

        state = await orchestrator.expire_grace_period(42, grace_definition)

        assert state.status is WorkflowStatus.ACTIVE
        assert state.current_stage == "finish"
        assert state.stages["cooldown"].status is StageStatus.COMPLETED
        assert state.stages["finish"].status is StageStatus.IN_PROGRESS
        assert GRACE_PERIOD_LABEL not in tracker.issues[42].labels

    @pytest.mark.asyncio
    async def test_expire_when_not_paused(self, orchestrator, grace_definition):
        await orchestrator.initialize_workflow(42, grace_definition)

        assert await orchestrator.expire_grace_period(42, grace_definition) is None

    @pytest.fixture
    def busy_grace_definition(self, grace_definition):
        """Grace definition whose cooldown stage also reacts to tasks and skips."""
        cooldown = replace(
            grace_definition.get_stage("cooldown"),
            allow_manual_skip=True,
            transitions=(
                StageTransition(TransitionEvent.GRACE_PERIOD_EXPIRED, "finish"),
                StageTransition(TransitionEvent.TASK_COMPLETED, "finish"),
                StageTransition(TransitionEvent.MANUAL_SKIP, "finish"),
            ),
        )
        stages = tuple(cooldown if s.name == "cooldown" else s for s in grace_definition.stages)
        return replace(grace_definition, stages=stages)

    @pytest.mark.asyncio
    async def test_other_events_wait_for_expiry(self, orchestrator, busy_grace_definition, clock, store):
        await orchestrator.initialize_workflow(42, busy_grace_definition)
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, busy_grace_definition)

        assert await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, busy_grace_definition) is None
        state = await store.load(42)
        assert state.current_stage == "cooldown"
        assert state.status is WorkflowStatus.PAUSED

        clock.advance(days=14)
        state = await orchestrator.expire_grace_period(42, busy_grace_definition)

        assert state.current_stage == "finish"
        assert state.status is WorkflowStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_skip_during_grace_period_resumes_workflow(self, orchestrator, busy_grace_definition, tracker):
        await orchestrator.initialize_workflow(42, busy_grace_definition)
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, busy_grace_definition)

        state = await orchestrator.skip_stage(42, busy_grace_definition, "Feedback already collected")

        assert state.current_stage == "finish"
        assert state.status is WorkflowStatus.ACTIVE
        assert state.stages["cooldown"].status is StageStatus.SKIPPED
        assert GRACE_PERIOD_LABEL not in tracker.issues[42].labels

        state = await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, busy_grace_definition)
        assert state.status is WorkflowStatus.COMPLETED


# =============================================================================
# Manual operations
# =============================================================================


class TestSkipStage:
    """Tests for WorkflowOrchestrator.skip_stage."""

    @pytest.mark.asyncio
    async def test_skip_moves_to_next_stage(self, orchestrator, review_definition, started, tracker):
        state = await orchestrator.skip_stage(42, review_definition, "Already reviewed upstream")

        assert state.current_stage == "approval"
        assert state.stages["review"].status is StageStatus.SKIPPED
        assert "Already reviewed upstream" in state.stages["review"].notes
        assert any("## ⏭️ Stage Skipped" in body for body in tracker.comment_bodies(42))

    @pytest.mark.asyncio
    async def test_skip_without_follow_up_transition_stays_on_stage(self, orchestrator, review_definition):
        review = review_definition.get_stage("review")
        transitions = tuple(t for t in review.transitions if t.event != TransitionEvent.MANUAL_SKIP)
        review = replace(review, transitions=transitions)
        definition = replace(review_definition, stages=(review, review_definition.get_stage("approval")))
        await orchestrator.initialize_workflow(42, definition, DATA)

        state = await orchestrator.skip_stage(42, definition, "Reviewed elsewhere")

        assert state.current_stage == "review"
        assert state.stages["review"].status is StageStatus.SKIPPED
        assert state.status is WorkflowStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_skip_not_allowed(self, orchestrator, review_definition, started, tracker):
        await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition)
        body = tracker.issues[42].body

        assert await orchestrator.skip_stage(42, review_definition, "No") is None
        assert tracker.issues[42].body == body

    @pytest.mark.asyncio
    async def test_skip_on_cancelled_workflow(self, orchestrator, review_definition, started):
        await orchestrator.cancel_workflow(42, "Withdrawn")

        assert await orchestrator.skip_stage(42, review_definition, "late") is None


class TestCancelWorkflow:
    """Tests for WorkflowOrchestrator.cancel_workflow."""

    @pytest.mark.asyncio
    async def test_cancel(self, orchestrator, review_definition, started, tracker):
        state = await orchestrator.cancel_workflow(42, "Layer is still in use")

        assert state.status is WorkflowStatus.CANCELLED
        assert state.stages["review"].notes == "Cancelled: Layer is still in use"
        assert "## ❌ Workflow Cancelled" in tracker.comment_bodies(42)[-1]

    @pytest.mark.asyncio
    async def test_cancel_twice(self, orchestrator, started):
        await orchestrator.cancel_workflow(42, "first")

        assert await orchestrator.cancel_workflow(42, "second") is None

    @pytest.mark.asyncio
    async def test_no_transitions_after_cancel(self, orchestrator, review_definition, started):
        await orchestrator.cancel_workflow(42, "Withdrawn")

        assert await orchestrator.transition_stage(42, TransitionEvent.TASK_COMPLETED, review_definition) is None
