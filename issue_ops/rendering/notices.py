"""Markdown notices posted on the parent issue.

All notices are rendered from Jinja2 templates in a sandboxed environment
with ``StrictUndefined``, so a missing template variable fails loudly
instead of producing a silently truncated comment. Notices that other
automation needs to recognize start with an HTML marker comment.

Key Exports:
    NoticeRenderer: Renders every notice the engine posts.

Example:
    >>> renderer = NoticeRenderer()
    >>> print(renderer.stage("hard-delete", "Permanently remove data"))
    <!-- issue-ops-stage: hard-delete -->
    ## 🚂 Stage: hard-delete
    <BLANKLINE>
    Permanently remove data
    <BLANKLINE>
"""

from collections.abc import Sequence
from typing import Any

from jinja2 import DictLoader, StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

from issue_ops.models.state import TaskIssue

WORKFLOW_INIT_MARKER = "<!-- issue-ops-workflow-init -->"

TEMPLATES: dict[str, str] = {
    "workflow_init.md": (
        WORKFLOW_INIT_MARKER + "\n"
        "## 🎫 {{ workflow_name }} Workflow Started\n"
        "\n"
        "This issue will progress through the following stages:\n"
        "\n"
        "{% for stage in stages %}\n"
        "{{ loop.index }}. {{ '▶️' if loop.first else '⏸️' }} {{ stage }}\n"
        "{% endfor %}\n"
        "\n"
        "*The workflow will automatically update as tasks are completed.*\n"
    ),
    "stage.md": (
        "<!-- issue-ops-stage: {{ stage_name }} -->\n"
        "## 🚂 Stage: {{ stage_name }}\n"
        "\n"
        "{{ description }}\n"
        "\n"
        "{% if progress %}\n"
        "**Progress**: {{ progress }}\n"
        "\n"
        "{% endif %}\n"
    ),
    "skip.md": ("## ⏭️ Stage Skipped\n" "\n" "**Stage**: {{ stage_name }}\n" "**Reason**: {{ reason }}"),
    "complete.md": (
        "## 🎉 Workflow Complete!\n" "\n" "All stages have been completed successfully. This issue can now be closed."
    ),
    "cancelled.md": (
        "## ❌ Workflow Cancelled\n"
        "\n"
        "**Stage**: {{ stage_name }}\n"
        "**Reason**: {{ reason }}\n"
        "\n"
        "No further stages will run for this issue."
    ),
    "task_checklist.md": (
        "## 📋 Tasks Created for Stage: {{ stage_name }}\n"
        "\n"
        "{% if tasks %}\n"
        "The following tasks have been created:\n"
        "\n"
        "{% for task in tasks %}\n"
        "- [ ] #{{ task.number }} - {{ task.title }}"
        "{% if task.assignee %} (@{{ task.assignee }}){% endif %}\n"
        "\n"
        "{% endfor %}\n"
        "\n"
        "**Progress**: 0/{{ tasks | length }} completed\n"
        "{% else %}\n"
        "_No tasks to complete for this stage._\n"
        "{% endif %}\n"
    ),
    "reminder.md": (
        "## 📌 Weekly Reminder\n"
        "\n"
        "**Stage**: {{ stage_name }}\n"
        "**Status**: {{ tasks | length }} task{{ '' if tasks | length == 1 else 's' }} remaining\n"
        "\n"
        "{% if tasks %}\n"
        "### Incomplete Tasks:\n"
        "\n"
        "{% for task in tasks %}\n"
        "- #{{ task.number }} - {{ task.title }}"
        "{% if task.assignee %} (@{{ task.assignee }}){% endif %}\n"
        "\n"
        "{% endfor %}\n"
        "{% endif %}\n"
        "\n"
        "---\n"
        "\n"
        "*This is an automated weekly reminder. Tasks are checked every Monday morning.*\n"
    ),
}


class NoticeRenderer:
    """Render the Markdown notices posted by the orchestrator, task tracker, and nagger.

    ``trim_blocks`` removes the newline after a block tag, so each loop
    iteration or conditional section contributes exactly the lines written
    inside it.
    """

    def __init__(self, templates: dict[str, str] | None = None):
        """Initialize renderer.

        Args:
            templates: Overrides for individual templates, keyed by name
        """
        self.env = SandboxedEnvironment(
            loader=DictLoader({**TEMPLATES, **(templates or {})}),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            keep_trailing_newline=True,
        )

    def render(self, name: str, **context: Any) -> str:
        return self.env.get_template(name).render(**context)

    def workflow_init(self, workflow_name: str, stages: Sequence[str]) -> str:
        """Initialization notice enumerating all stages in order."""
        return self.render("workflow_init.md", workflow_name=workflow_name, stages=list(stages))

    def stage(self, stage_name: str, description: str, progress: str | None = None) -> str:
        """Notice posted when a stage becomes active."""
        return self.render("stage.md", stage_name=stage_name, description=description, progress=progress)

    def grace_period(self, stage_name: str, description: str, days: int) -> str:
        return self.stage(stage_name, description, f"Grace period: {days} days")

    def skip(self, stage_name: str, reason: str) -> str:
        return self.render("skip.md", stage_name=stage_name, reason=reason)

    def complete(self) -> str:
        return self.render("complete.md")

    def cancelled(self, stage_name: str, reason: str) -> str:
        return self.render("cancelled.md", stage_name=stage_name, reason=reason)

    def task_checklist(self, stage_name: str, tasks: Sequence[TaskIssue]) -> str:
        """Checklist of newly created task issues for a stage."""
        return self.render("task_checklist.md", stage_name=stage_name, tasks=list(tasks))

    def reminder(self, stage_name: str, tasks: Sequence[TaskIssue]) -> str:
        """Weekly reminder listing the incomplete tasks of the current stage."""
        return self.render("reminder.md", stage_name=stage_name, tasks=list(tasks))
