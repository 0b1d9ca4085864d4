"""
State codec: workflow state as a fenced JSON block inside arbitrary text.

The persisted form is bit-exact::

    <!-- issue-ops-state
    {
      "version": "1.0.0",
      ...
    }
    -->

The block is an HTML comment, so it is invisible when GitHub renders the
issue body or comment hosting it. The codec does not care where the text
lives; the state stores fetch and write the hosting text.

Invariants checked on decode and before encode (in this order):
    version, workflowType, issueNumber > 0, status, currentStage,
    non-empty stages, createdAt, updatedAt, currentStage in stages.
"""

import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from issue_ops.exceptions import InvalidStateError
from issue_ops.models.state import WorkflowState

STATE_MARKER = "<!-- issue-ops-state"
STATE_BLOCK_PATTERN = re.compile(r"<!-- issue-ops-state\s*\n([\s\S]*?)\n-->")
STATE_BLOCK_WITH_SPACING = re.compile(r"<!-- issue-ops-state\s*\n[\s\S]*?\n-->\n{0,2}")


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class StateCodec:
    """Encode, decode, and validate the fenced workflow state block."""

    def __init__(self, clock: Callable[[], datetime] | None = None):
        """Initialize codec.

        Args:
            clock: Returns the current time; defaults to ``datetime.now(UTC)``
        """
        self.clock = clock or utc_now

    @staticmethod
    def contains_state(text: str) -> bool:
        """Check for the opening token of a state block."""
        return STATE_MARKER in text

    def encode(self, state: WorkflowState) -> str:
        """Render the fenced block for ``state``.

        Raises:
            InvalidStateError: If the state violates an invariant
        """
        self.validate(state)
        return f"{STATE_MARKER}\n{state.to_json()}\n-->"

    def decode(self, text: str) -> WorkflowState | None:
        """Extract and validate the state embedded in ``text``.

        Returns:
            The parsed state, or None when ``text`` has no state marker.

        Raises:
            InvalidStateError: If the marker is present but the block cannot be
                extracted, is not valid JSON, or violates an invariant
        """
        if not self.contains_state(text):
            return None

        match = STATE_BLOCK_PATTERN.search(text)
        if not match or not match.group(1):
            raise InvalidStateError(
                "State marker found but JSON content is missing",
                {"commentBody": text[:100]},
            )

        content = match.group(1)
        try:
            state = WorkflowState.model_validate_json(content)
        except PydanticValidationError as e:
            raise InvalidStateError(
                f"Failed to parse state JSON: {e}",
                {"jsonContent": content[:200]},
            ) from e

        self.validate(state)
        return state

    def strip(self, text: str) -> str:
        """Remove the first state block, and the blank line after it, from ``text``."""
        return STATE_BLOCK_WITH_SPACING.sub("", text, count=1)

    def embed(self, text: str, state: WorkflowState) -> str:
        """Return ``text`` with its state block replaced by ``state``.

        The block always sits at the top of the text, followed by a blank
        line and the remaining content.
        """
        block = self.encode(state)
        remainder = self.strip(text)
        return f"{block}\n\n{remainder}"

    def stamp(self, state: WorkflowState) -> None:
        """Set ``updatedAt`` to now, strictly after its previous value."""
        now = self.clock()
        try:
            previous = parse_timestamp(state.updated_at)
        except ValueError:
            previous = None

        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        state.updated_at = now.isoformat()

    def validate(self, state: WorkflowState) -> None:
        """Check the structural invariants of ``state``.

        Raises:
            InvalidStateError: On the first violated invariant
        """
        if not state.version:
            raise InvalidStateError("State version is required")

        if not state.workflow_type:
            raise InvalidStateError("Workflow type is required")

        if not state.issue_number or state.issue_number <= 0:
            raise InvalidStateError(
                "Valid issue number is required",
                {"issueNumber": state.issue_number},
            )

        if not state.status:
            raise InvalidStateError("Workflow status is required")

        if not state.current_stage:
            raise InvalidStateError("Current stage is required")

        if not state.stages:
            raise InvalidStateError("At least one stage is required")

        if not state.created_at:
            raise InvalidStateError("Created timestamp is required")

        if not state.updated_at:
            raise InvalidStateError("Updated timestamp is required")

        if state.current_stage not in state.stages:
            raise InvalidStateError(
                f"Current stage {state.current_stage} is not a tracked stage",
                {"currentStage": state.current_stage, "stages": list(state.stages)},
            )
