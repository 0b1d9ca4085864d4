"""issue-ops: issue-driven workflow automation with in-issue state."""

__version__ = "0.1.0"
