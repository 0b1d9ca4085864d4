"""CLI entry point for the issue-ops workflow engine.

Each command is one trigger invocation, typically run from a GitHub Actions
job: the services are built for the invocation, the event is applied, and
the process exits.
"""

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import click
import structlog

from issue_ops.config.settings import IssueOpsSettings
from issue_ops.engine.codec import StateCodec
from issue_ops.engine.detector import detect_workflow_type
from issue_ops.engine.issue_form import parse_issue_form
from issue_ops.engine.orchestrator import WorkflowOrchestrator
from issue_ops.engine.state_store import CommentStateStore, IssueBodyStateStore, StateStore
from issue_ops.engine.task_manager import TaskManager
from issue_ops.engine.task_nagger import TaskNagger
from issue_ops.enums import StageStatus, TaskStatus, TransitionEvent, WorkflowStatus
from issue_ops.exceptions import ConfigurationError, IssueOpsError, TaskError, WorkflowError
from issue_ops.models.definition import WorkflowDefinition
from issue_ops.models.state import WorkflowState
from issue_ops.providers.base import IssueTracker
from issue_ops.providers.github_rest import GitHubRestProvider
from issue_ops.rendering.notices import NoticeRenderer
from issue_ops.utils.logging_config import configure_logging
from issue_ops.workflows import WorkflowRegistry, default_registry

log = structlog.get_logger(__name__)

STAGE_EMOJI = {
    StageStatus.COMPLETED: "✅",
    StageStatus.IN_PROGRESS: "🔄",
    StageStatus.SKIPPED: "⏭️",
    StageStatus.BLOCKED: "⛔",
}


@dataclass
class Services:
    """Everything one command needs, built explicitly per invocation."""

    tracker: IssueTracker
    registry: WorkflowRegistry
    store: StateStore
    orchestrator: WorkflowOrchestrator
    tasks: TaskManager
    nagger: TaskNagger

    async def load_state(self, issue_number: int) -> WorkflowState:
        state = await self.store.load(issue_number)
        if state is None:
            raise WorkflowError(
                f"Issue #{issue_number} has no workflow state",
                "STATE_NOT_FOUND",
                context={"issueNumber": issue_number},
            )
        return state

    def definition_for(self, state: WorkflowState) -> WorkflowDefinition:
        return self.registry.require(state.workflow_type)


def build_services(settings: IssueOpsSettings, tracker: IssueTracker) -> Services:
    """Wire the engine services around ``tracker`` according to ``settings``."""
    registry = default_registry()
    if settings.workflow.definitions_file:
        registry.load_yaml(settings.workflow.definitions_file)

    codec = StateCodec()
    store: StateStore
    if settings.workflow.state_location == "comment":
        store = CommentStateStore(tracker, codec)
    else:
        store = IssueBodyStateStore(tracker, codec)

    notices = NoticeRenderer()
    return Services(
        tracker=tracker,
        registry=registry,
        store=store,
        orchestrator=WorkflowOrchestrator(
            store,
            tracker,
            notices,
            grace_period_label=settings.workflow.grace_period_label,
        ),
        tasks=TaskManager(store, tracker, notices),
        nagger=TaskNagger(
            store,
            tracker,
            notices,
            interval_days=settings.workflow.nag_interval_days,
            timezone=settings.workflow.nag_timezone,
        ),
    )


async def _create_tracker(settings: IssueOpsSettings) -> IssueTracker:
    github = settings.require_github()
    provider = GitHubRestProvider(
        token=github.token.get_secret_value(),
        owner=github.owner,
        repo=github.name,
        base_url=github.api_url,
        max_retries=github.max_retries,
    )
    await provider.connect()
    return provider


async def _with_services(
    settings: IssueOpsSettings,
    action: Callable[[Services], Awaitable[None]],
) -> None:
    tracker = await _create_tracker(settings)
    try:
        await action(build_services(settings, tracker))
    finally:
        await tracker.disconnect()


def _run(ctx: click.Context, name: str, action: Callable[[Services], Awaitable[None]]) -> None:
    """Run an async command body with the standard error handling."""
    try:
        asyncio.run(_with_services(ctx.obj["settings"], action))
    except IssueOpsError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug(f"{name}_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error(f"{name}_unexpected", exc_info=True)
        sys.exit(1)


async def _start_stage_tasks(services: Services, issue_number: int, state: WorkflowState) -> None:
    """Create the current stage's tasks once the stage is actively running."""
    if state.status != WorkflowStatus.ACTIVE:
        return

    definition = services.definition_for(state)
    stage = definition.get_stage(state.current_stage)
    stage_state = state.current_stage_state
    if stage is None or not stage.tasks or (stage_state and stage_state.task_issues):
        return

    created = await services.tasks.create_stage_tasks(issue_number, definition, state.current_stage)
    click.echo(f"📋 Created {len(created)} task(s) for stage {state.current_stage}")


def _report_transition(issue_number: int, state: WorkflowState | None) -> None:
    if state is None:
        click.echo(f"No transition applied to issue #{issue_number}")
    elif state.status == WorkflowStatus.COMPLETED:
        click.echo(f"🎉 Workflow complete for issue #{issue_number}")
    else:
        click.echo(f"✅ Issue #{issue_number} is now in stage {state.current_stage} ({state.status})")


@click.group()
@click.option("--config", default=None, envvar="ISSUE_OPS_CONFIG", help="Path to configuration file")
@click.option("--log-level", default=None, help="Logging level (defaults to the configured level)")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """issue-ops: issue-driven workflow automation."""
    try:
        settings = IssueOpsSettings.from_yaml(config) if config else IssueOpsSettings.from_environment()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    configure_logging(log_level or settings.log_level)
    ctx.obj = {"settings": settings}


@cli.command()
@click.option("--issue", type=int, required=True, envvar="ISSUE_NUMBER", help="Issue number to process")
@click.pass_context
def process_issue(ctx: click.Context, issue: int) -> None:
    """Start the workflow for a newly opened issue."""

    async def _process(services: Services) -> None:
        log.info("processing_issue", issue=issue)
        gh_issue = await services.tracker.get_issue(issue)

        workflow_type = detect_workflow_type(gh_issue.labels, gh_issue.body)
        if workflow_type is None:
            click.echo(f"Issue #{issue} is not a workflow issue")
            return

        existing = await services.store.load(issue)
        if existing is not None:
            click.echo(f"Issue #{issue} already has a workflow in stage {existing.current_stage} ({existing.status})")
            return

        definition = services.registry.require(workflow_type)
        state = await services.orchestrator.initialize_workflow(issue, definition, parse_issue_form(gh_issue.body))
        click.echo(f"✅ Started {definition.name} workflow on issue #{issue}")
        await _start_stage_tasks(services, issue, state)

    _run(ctx, "process_issue", _process)


@cli.command()
@click.option("--issue", type=int, required=True, envvar="ISSUE_NUMBER", help="Workflow issue number")
@click.option(
    "--event",
    type=click.Choice([e.value for e in TransitionEvent]),
    required=True,
    help="Transition event to fire",
)
@click.pass_context
def transition(ctx: click.Context, issue: int, event: str) -> None:
    """Fire a transition event on a workflow issue."""

    async def _transition(services: Services) -> None:
        definition = services.definition_for(await services.load_state(issue))
        state = await services.orchestrator.transition_stage(issue, TransitionEvent(event), definition)
        _report_transition(issue, state)
        if state is not None:
            await _start_stage_tasks(services, issue, state)

    _run(ctx, "transition", _transition)


@cli.command()
@click.option("--task", type=int, required=True, help="Task issue that was closed")
@click.option("--issue", type=int, default=None, help="Parent workflow issue (read from the task when omitted)")
@click.pass_context
def task_closed(ctx: click.Context, task: int, issue: int | None) -> None:
    """Record a closed task issue and advance the workflow if its stage is done."""

    async def _task_closed(services: Services) -> None:
        parent = issue or await services.tasks.find_parent_issue(task)
        if parent is None:
            raise TaskError(f"Could not determine the parent issue of task #{task}", task)

        await services.tasks.update_task_status(parent, task, TaskStatus.COMPLETED)
        click.echo(f"✅ Task #{task} marked completed on issue #{parent}")

        state = await services.load_state(parent)
        if state.status != WorkflowStatus.ACTIVE:
            log.info("task_closed_workflow_not_active", issue=parent, status=str(state.status))
            return

        result = await services.orchestrator.transition_stage(
            parent, TransitionEvent.TASK_COMPLETED, services.definition_for(state)
        )
        if result is not None:
            _report_transition(parent, result)
            await _start_stage_tasks(services, parent, result)

    _run(ctx, "task_closed", _task_closed)


@cli.command()
@click.option("--issue", type=int, required=True, envvar="ISSUE_NUMBER", help="Workflow issue number")
@click.option("--reason", required=True, help="Why the stage is skipped")
@click.pass_context
def skip(ctx: click.Context, issue: int, reason: str) -> None:
    """Skip the current stage, if the stage allows it."""

    async def _skip(services: Services) -> None:
        definition = services.definition_for(await services.load_state(issue))
        state = await services.orchestrator.skip_stage(issue, definition, reason)
        if state is None:
            click.echo(f"The current stage of issue #{issue} cannot be skipped")
            return
        _report_transition(issue, state)
        await _start_stage_tasks(services, issue, state)

    _run(ctx, "skip", _skip)


@cli.command()
@click.option("--issue", type=int, required=True, envvar="ISSUE_NUMBER", help="Workflow issue number")
@click.pass_context
def check_grace(ctx: click.Context, issue: int) -> None:
    """Resume a workflow whose grace period has ended."""

    async def _check_grace(services: Services) -> None:
        definition = services.definition_for(await services.load_state(issue))
        state = await services.orchestrator.expire_grace_period(issue, definition)
        if state is None:
            click.echo(f"Issue #{issue} is not waiting on an expired grace period")
            return
        _report_transition(issue, state)
        await _start_stage_tasks(services, issue, state)

    _run(ctx, "check_grace", _check_grace)


@cli.command()
@click.option("--issue", type=int, required=True, envvar="ISSUE_NUMBER", help="Workflow issue number")
@click.option("--reason", required=True, help="Why the workflow is cancelled")
@click.pass_context
def cancel(ctx: click.Context, issue: int, reason: str) -> None:
    """Cancel a workflow."""

    async def _cancel(services: Services) -> None:
        state = await services.orchestrator.cancel_workflow(issue, reason)
        if state is None:
            click.echo(f"Workflow on issue #{issue} has already finished")
        else:
            click.echo(f"❌ Workflow on issue #{issue} cancelled")

    _run(ctx, "cancel", _cancel)


@cli.command()
@click.option("--issue", "issues", type=int, multiple=True, help="Issue to check (repeatable; default: search)")
@click.option("--force", is_flag=True, help="Run outside the Monday-morning window")
@click.pass_context
def nag(ctx: click.Context, issues: tuple[int, ...], force: bool) -> None:
    """Post weekly reminders on workflows with incomplete tasks."""

    async def _nag(services: Services) -> None:
        if not force and not services.nagger.is_monday_morning():
            click.echo("Not Monday morning; skipping reminders (use --force to override)")
            return
        count = await services.nagger.nag_all_active_issues(list(issues) or None)
        click.echo(f"📌 Posted {count} reminder(s)")

    _run(ctx, "nag", _nag)


@cli.command()
@click.option("--issue", type=int, required=True, envvar="ISSUE_NUMBER", help="Workflow issue number")
@click.pass_context
def status(ctx: click.Context, issue: int) -> None:
    """Show the workflow state of an issue."""

    async def _status(services: Services) -> None:
        state = await services.load_state(issue)
        summary = await services.tasks.get_task_summary(issue)

        click.echo(f"Workflow: {state.workflow_type}")
        click.echo(f"Status: {state.status}")
        click.echo(f"Current stage: {state.current_stage}")
        click.echo(f"Tasks: {summary.completed}/{summary.total} completed")
        click.echo("\nStages:")
        for name, stage in state.stages.items():
            emoji = STAGE_EMOJI.get(stage.status, "⏳")
            click.echo(f"  {emoji} {name}: {stage.status}")
            if stage.grace_period_ends_at:
                click.echo(f"      grace period ends {stage.grace_period_ends_at}")

    _run(ctx, "status", _status)


if __name__ == "__main__":
    cli()
