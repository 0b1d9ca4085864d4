"""
Static workflow definition model.

A ``WorkflowDefinition`` is an ordered list of stages, each with task
templates and a transition table. Definitions are immutable and pure data:
transition conditions and actions are small tagged dataclasses rather than
callables, so a definition can be written in Python or loaded from YAML and
behave identically.

Example:
    A two-stage review workflow::

        definition = WorkflowDefinition(
            workflow_type="review",
            name="Review",
            description="Review then approve",
            stages=(
                Stage(
                    name="review",
                    description="Peer review",
                    assignee_role=AssigneeRole.DATA_STEWARD,
                    transitions=(
                        StageTransition(
                            event=TransitionEvent.TASK_COMPLETED,
                            target_stage="approval",
                            condition=AllTasksCompleted(),
                            actions=(AddLabel("state: approval"),),
                        ),
                    ),
                ),
                Stage(
                    name="approval",
                    description="Final approval",
                    assignee_role=AssigneeRole.TECHNICAL_LEAD,
                    transitions=(
                        StageTransition(TransitionEvent.TASK_COMPLETED, WORKFLOW_COMPLETE),
                    ),
                ),
            ),
        )
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

from issue_ops.enums import ActionType, AssigneeRole, TransitionEvent, WorkflowType
from issue_ops.exceptions import ConfigurationError

WORKFLOW_COMPLETE = ""
"""Target stage sentinel meaning the workflow is finished."""


@dataclass(frozen=True)
class TaskTemplate:
    """Blueprint for one auxiliary task issue.

    ``title`` and ``body`` may contain ``{{ variable }}`` placeholders that
    are interpolated when the task issue is created.
    """

    title: str
    body: str
    labels: tuple[str, ...] = ()
    assignee: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaskTemplate":
        return cls(
            title=str(data["title"]),
            body=str(data.get("body", "")),
            labels=tuple(data.get("labels") or ()),
            assignee=data.get("assignee"),
        )


# -----------------------------------------------------------------------------
# Conditions
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldEquals:
    """Holds when ``state.data[key] == value``."""

    key: str
    value: Any
    type_name: ClassVar[str] = "field_equals"


@dataclass(frozen=True)
class AllTasksCompleted:
    """Holds when every task tracked for ``stage`` is completed.

    ``stage`` defaults to the workflow's current stage. A stage with no
    tracked tasks is vacuously complete.
    """

    stage: str | None = None
    type_name: ClassVar[str] = "all_tasks_completed"


@dataclass(frozen=True)
class GracePeriodElapsed:
    """Holds when ``stage`` has a grace period end that is not in the future."""

    stage: str | None = None
    type_name: ClassVar[str] = "grace_period_elapsed"


Condition = FieldEquals | AllTasksCompleted | GracePeriodElapsed


def condition_from_dict(data: Mapping[str, Any]) -> Condition:
    """Build a condition from its ``type``-tagged mapping form.

    Raises:
        ConfigurationError: If the condition type is unknown or incomplete
    """
    kind = data.get("type")
    if kind == FieldEquals.type_name:
        if "field" not in data:
            raise ConfigurationError("field_equals condition requires 'field'", {"condition": dict(data)})
        return FieldEquals(key=str(data["field"]), value=data.get("value"))
    if kind == AllTasksCompleted.type_name:
        return AllTasksCompleted(stage=data.get("stage"))
    if kind == GracePeriodElapsed.type_name:
        return GracePeriodElapsed(stage=data.get("stage"))
    raise ConfigurationError(f"Unknown condition type: {kind}", {"condition": dict(data)})


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AddLabel:
    """Add ``label`` to the parent issue."""

    label: str
    kind: ClassVar[ActionType] = ActionType.ADD_LABEL


@dataclass(frozen=True)
class RemoveLabel:
    """Remove ``label`` from the parent issue."""

    label: str
    kind: ClassVar[ActionType] = ActionType.REMOVE_LABEL


@dataclass(frozen=True)
class PostComment:
    """Post ``body`` as a comment on the parent issue."""

    body: str
    kind: ClassVar[ActionType] = ActionType.POST_COMMENT


@dataclass(frozen=True)
class Notify:
    """Notify people about the transition. Currently logged only."""

    mentions: tuple[str, ...] = ()
    message: str = ""
    kind: ClassVar[ActionType] = ActionType.NOTIFY


TransitionAction = AddLabel | RemoveLabel | PostComment | Notify


def action_from_dict(data: Mapping[str, Any]) -> TransitionAction:
    """Build an action from its ``type``-tagged mapping form.

    Both flat (``{"type": "add_label", "label": "x"}``) and payload
    (``{"type": "add_label", "payload": {"label": "x"}}``) layouts are
    accepted.

    Raises:
        ConfigurationError: If the action type is unknown or its payload is incomplete
    """
    payload: Mapping[str, Any] = data.get("payload") or data
    try:
        kind = ActionType(data.get("type"))
    except ValueError as e:
        raise ConfigurationError(f"Unknown action type: {data.get('type')}", {"action": dict(data)}) from e

    try:
        if kind is ActionType.ADD_LABEL:
            return AddLabel(label=str(payload["label"]))
        if kind is ActionType.REMOVE_LABEL:
            return RemoveLabel(label=str(payload["label"]))
        if kind is ActionType.POST_COMMENT:
            return PostComment(body=str(payload["body"]))
        return Notify(
            mentions=tuple(payload.get("mentions") or ()),
            message=str(payload.get("message", "")),
        )
    except KeyError as e:
        raise ConfigurationError(
            f"Action {kind} is missing required field {e.args[0]!r}",
            {"action": dict(data)},
        ) from e


# -----------------------------------------------------------------------------
# Stages and definitions
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class StageTransition:
    """Rule mapping a trigger event to a target stage.

    An empty ``target_stage`` (``WORKFLOW_COMPLETE``) completes the workflow.
    """

    event: TransitionEvent
    target_stage: str
    condition: Condition | None = None
    actions: tuple[TransitionAction, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.target_stage == WORKFLOW_COMPLETE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StageTransition":
        try:
            event = TransitionEvent(data["event"])
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid transition event: {data.get('event')}", {"transition": dict(data)}) from e

        condition = data.get("condition")
        return cls(
            event=event,
            target_stage=str(data.get("target_stage") or WORKFLOW_COMPLETE),
            condition=condition_from_dict(condition) if condition else None,
            actions=tuple(action_from_dict(action) for action in data.get("actions") or ()),
        )


@dataclass(frozen=True)
class Stage:
    """A named phase of a workflow."""

    name: str
    description: str
    assignee_role: AssigneeRole
    tasks: tuple[TaskTemplate, ...] = ()
    transitions: tuple[StageTransition, ...] = ()
    grace_period_days: int | None = None
    allow_manual_skip: bool = False

    def find_transition(self, event: TransitionEvent) -> StageTransition | None:
        """Return the first transition registered for ``event``, if any."""
        return next((t for t in self.transitions if t.event == event), None)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Stage":
        try:
            role = AssigneeRole(data.get("assignee_role", AssigneeRole.AUTOMATED.value))
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid assignee role for stage {data.get('name')}: {data.get('assignee_role')}"
            ) from e

        return cls(
            name=str(data["name"]),
            description=str(data.get("description", "")),
            assignee_role=role,
            tasks=tuple(TaskTemplate.from_dict(t) for t in data.get("tasks") or ()),
            transitions=tuple(StageTransition.from_dict(t) for t in data.get("transitions") or ()),
            grace_period_days=data.get("grace_period_days"),
            allow_manual_skip=bool(data.get("allow_manual_skip", False)),
        )


@dataclass(frozen=True)
class WorkflowDefinition:
    """Immutable description of a workflow type.

    Stage order matters: the first stage is entered on initialization.

    ``variables`` names the template variables available to task templates
    and comment actions, mapping each variable to the issue-form field (or
    ordered candidate fields) it is read from.
    """

    workflow_type: WorkflowType | str
    name: str
    description: str
    stages: tuple[Stage, ...]
    variables: Mapping[str, str | tuple[str, ...]] = field(default_factory=dict)

    def template_variables(self, data: Mapping[str, Any], issue_number: int) -> dict[str, Any]:
        """Build the interpolation variables for an issue.

        Raw form fields are available under their own keys; named variables
        take the first candidate field that has a value.
        """
        variables: dict[str, Any] = {key: value for key, value in data.items() if value is not None}
        for name, fields in self.variables.items():
            candidates = (fields,) if isinstance(fields, str) else fields
            value = next((data[f] for f in candidates if data.get(f) is not None), None)
            if value is not None:
                variables[name] = value
        variables["issueNumber"] = issue_number
        return variables

    @property
    def first_stage(self) -> Stage | None:
        return self.stages[0] if self.stages else None

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def get_stage(self, name: str) -> Stage | None:
        """Look up a stage by name."""
        return next((s for s in self.stages if s.name == name), None)

    def validate(self) -> None:
        """Check structural consistency of the definition.

        Raises:
            ConfigurationError: If the definition has no stages, duplicate
                stage names, transitions to unknown stages, or a
                non-positive grace period
        """
        context = {"workflowType": str(self.workflow_type)}

        if not self.stages:
            raise ConfigurationError("Workflow definition must have at least one stage", context)

        names = self.stage_names
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate stage names: {', '.join(duplicates)}", context)

        for stage in self.stages:
            if stage.grace_period_days is not None and stage.grace_period_days <= 0:
                raise ConfigurationError(
                    f"Stage {stage.name} has a non-positive grace period",
                    {**context, "stage": stage.name},
                )
            for transition in stage.transitions:
                if not transition.is_terminal and transition.target_stage not in names:
                    raise ConfigurationError(
                        f"Stage {stage.name} transitions to unknown stage {transition.target_stage}",
                        {**context, "stage": stage.name, "event": str(transition.event)},
                    )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowDefinition":
        """Build a definition from a plain mapping (e.g. parsed YAML).

        Raises:
            ConfigurationError: If required keys are missing or values are invalid
        """
        try:
            raw_type = str(data["type"])
            stages = tuple(Stage.from_dict(s) for s in data.get("stages") or ())
            name = str(data["name"])
        except KeyError as e:
            raise ConfigurationError(f"Workflow definition is missing {e.args[0]!r}") from e

        try:
            workflow_type: WorkflowType | str = WorkflowType(raw_type)
        except ValueError:
            workflow_type = raw_type

        variables = {
            str(key): fields if isinstance(fields, str) else tuple(fields)
            for key, fields in (data.get("variables") or {}).items()
        }

        return cls(
            workflow_type=workflow_type,
            name=name,
            description=str(data.get("description", "")),
            stages=stages,
            variables=variables,
        )
