"""
Workflow definition registry.

The registry maps a workflow type to its immutable definition. It is built
explicitly by the entry point and passed to whatever needs it:

    >>> registry = default_registry()
    >>> definition = registry.require(WorkflowType.SGID_DEPRECATION)

Additional definitions can be loaded from YAML files holding either a
single definition mapping or a ``workflows`` list of them.
"""

from collections.abc import Iterable
from pathlib import Path

import structlog
import yaml

from issue_ops.enums import WorkflowType
from issue_ops.exceptions import ConfigurationError
from issue_ops.models.definition import WorkflowDefinition
from issue_ops.workflows.sgid_deprecation import SGID_DEPRECATION

log = structlog.get_logger(__name__)


class WorkflowRegistry:
    """In-memory catalog of workflow definitions keyed by workflow type."""

    def __init__(self, definitions: Iterable[WorkflowDefinition] = ()):
        self._definitions: dict[str, WorkflowDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: WorkflowDefinition) -> None:
        """Add a definition after validating it.

        Raises:
            ConfigurationError: If the definition is invalid or its type is
                already registered
        """
        definition.validate()
        key = str(definition.workflow_type)
        if key in self._definitions:
            raise ConfigurationError(f"Workflow type already registered: {key}", {"workflowType": key})
        self._definitions[key] = definition
        log.debug("workflow_registered", workflow_type=key, stages=len(definition.stages))

    def get(self, workflow_type: WorkflowType | str) -> WorkflowDefinition | None:
        return self._definitions.get(str(workflow_type))

    def require(self, workflow_type: WorkflowType | str) -> WorkflowDefinition:
        """Like ``get``, but raise ``ConfigurationError`` for unknown types."""
        definition = self.get(workflow_type)
        if definition is None:
            raise ConfigurationError(
                f"No workflow definition registered for type: {workflow_type}",
                {"workflowType": str(workflow_type), "registered": self.types()},
            )
        return definition

    def has(self, workflow_type: WorkflowType | str) -> bool:
        return str(workflow_type) in self._definitions

    def types(self) -> list[str]:
        return list(self._definitions)

    def load_yaml(self, path: str | Path) -> list[WorkflowDefinition]:
        """Register the definitions found in a YAML file.

        Returns:
            The definitions registered from the file.

        Raises:
            ConfigurationError: If the file cannot be read or holds an
                invalid definition
        """
        path = Path(path)
        try:
            content = yaml.safe_load(path.read_text())
        except FileNotFoundError as e:
            raise ConfigurationError(f"Workflow definitions file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in workflow definitions file: {e}", {"path": str(path)}) from e

        if not isinstance(content, dict):
            raise ConfigurationError("Workflow definitions file must contain a mapping", {"path": str(path)})

        entries = content.get("workflows", [content])
        loaded = [WorkflowDefinition.from_dict(entry) for entry in entries]
        for definition in loaded:
            self.register(definition)

        log.info("workflow_definitions_loaded", path=str(path), count=len(loaded))
        return loaded


def default_registry() -> WorkflowRegistry:
    """Build a registry holding the built-in workflow definitions."""
    return WorkflowRegistry([SGID_DEPRECATION])


__all__ = ["WorkflowRegistry", "default_registry"]
