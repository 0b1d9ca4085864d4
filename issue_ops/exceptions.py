"""Custom exception hierarchy for the issue-ops workflow engine.

Every error carries a machine-readable ``code``, a ``recoverable`` flag that
tells callers whether a retry may help, and a free-form ``context`` mapping
with diagnostic details (issue numbers, truncated snippets, HTTP status).

Exception Hierarchy:
    IssueOpsError (base)
    └── WorkflowError
        ├── InvalidStateError
        ├── InvalidTransitionError
        ├── ConfigurationError
        ├── ExternalServiceError
        │   └── GitHubError
        ├── TaskError
        └── ValidationError

Propagation:
    Structural errors (``InvalidStateError``, ``ConfigurationError``,
    ``InvalidTransitionError``) are fatal to the current invocation.
    ``ExternalServiceError`` is recoverable; the provider layer has already
    retried before it surfaces, and the engine does not retry again.

Example Usage:
    >>> from issue_ops.exceptions import InvalidStateError
    >>> try:
    ...     state = await store.load(42)
    ... except InvalidStateError as e:
    ...     log.error("state_corrupted", issue=42, **e.context)
"""

from typing import Any


class IssueOpsError(Exception):
    """Base exception for all issue-ops errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code
        recoverable: Whether retrying the operation may succeed
        context: Diagnostic details
    """

    def __init__(
        self,
        message: str,
        code: str = "ISSUE_OPS_ERROR",
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            code: Machine-readable error code
            recoverable: Whether retrying may succeed
            context: Diagnostic details
        """
        self.message = message
        self.code = code
        self.recoverable = recoverable
        self.context = context or {}
        super().__init__(message)


class WorkflowError(IssueOpsError):
    """Workflow orchestration errors.

    Raised when the engine cannot carry out an operation, e.g. the stored
    state names a stage the definition does not have, or a workflow is
    transitioned before it was initialized. The ``code`` is usually the
    name of the failing operation.
    """

    def __init__(
        self,
        message: str,
        code: str = "WORKFLOW_ERROR",
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, recoverable=recoverable, context=context)


class InvalidStateError(WorkflowError):
    """Persisted workflow state is missing, malformed, or violates an invariant.

    Not recoverable: the workflow is stuck until the state block is repaired.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="INVALID_STATE", recoverable=False, context=context)


class InvalidTransitionError(WorkflowError):
    """A transition is not permitted from the current stage.

    Attributes:
        from_stage: Stage the workflow is currently in
        to_stage: Requested target stage or event, when known
    """

    def __init__(
        self,
        message: str,
        from_stage: str,
        to_stage: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(
            message,
            code="INVALID_TRANSITION",
            recoverable=False,
            context={"fromStage": from_stage, "toStage": to_stage, **(context or {})},
        )


class ConfigurationError(WorkflowError):
    """Configuration or workflow definition is malformed.

    Examples:
        - Workflow definition with zero stages
        - Transition targeting an unknown stage
        - Missing or invalid settings file
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", recoverable=False, context=context)


class ExternalServiceError(WorkflowError):
    """A collaborator call failed (issue tracker, HTTP, catalog API).

    Attributes:
        service: Name of the external service
        operation: Operation that failed
    """

    def __init__(
        self,
        message: str,
        service: str,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.service = service
        self.operation = operation
        super().__init__(
            message,
            code="EXTERNAL_SERVICE_ERROR",
            recoverable=True,
            context={"service": service, "operation": operation, **(context or {})},
        )


class GitHubError(ExternalServiceError):
    """GitHub API call failed after retries."""

    def __init__(self, message: str, operation: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, service="GitHub", operation=operation, context=context)

    @property
    def status(self) -> int | None:
        """HTTP status reported by GitHub, if any."""
        return self.context.get("status")


class TaskError(WorkflowError):
    """Task issue creation, lookup, or update failed.

    Attributes:
        task_number: Issue number of the task, or -1 if not yet known
    """

    def __init__(
        self,
        message: str,
        task_number: int = -1,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.task_number = task_number
        super().__init__(
            message,
            code="TASK_ERROR",
            recoverable=True,
            context={"taskNumber": task_number, **(context or {})},
        )


class ValidationError(WorkflowError):
    """Issue field validation failed.

    Attributes:
        field_errors: Mapping of field name to its error messages
    """

    def __init__(
        self,
        message: str,
        field_errors: dict[str, list[str]] | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.field_errors = field_errors or {}
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            recoverable=False,
            context={"fieldErrors": self.field_errors, **(context or {})},
        )
