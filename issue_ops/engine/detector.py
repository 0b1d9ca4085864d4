"""Detect which workflow an issue belongs to from its labels and body."""

from collections.abc import Iterable

from issue_ops.enums import WorkflowType

DEPRECATION_TYPE_LABELS = frozenset(
    {
        "type: full deprecation",
        "type: internal/open sgid deprecation",
        "type: full circle deprecation",
    }
)
DEPRECATION_KEYWORDS = ("deprecat", "remov", "delet")


def is_sgid_deprecation(labels: Iterable[str], body: str) -> bool:
    """Check labels and body for an SGID deprecation request.

    In order of specificity: a ``sgid-deprecation`` workflow label, one of
    the deprecation type labels, or a generic deprecation label together
    with deprecation wording in the body.
    """
    lowered = [label.lower() for label in labels]

    if any("sgid-deprecation" in label for label in lowered):
        return True

    if any(label in DEPRECATION_TYPE_LABELS for label in lowered):
        return True

    body_lower = (body or "").lower()
    return any("deprecation" in label for label in lowered) and any(
        keyword in body_lower for keyword in DEPRECATION_KEYWORDS
    )


def detect_workflow_type(labels: Iterable[str], body: str) -> WorkflowType | None:
    """Return the workflow type for an issue, or None if it is not a workflow issue."""
    labels = list(labels)
    if is_sgid_deprecation(labels, body):
        return WorkflowType.SGID_DEPRECATION
    return None
