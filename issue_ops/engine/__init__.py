"""Workflow engine: state codec and stores, orchestrator, task tracking.

Key Components:
    - StateCodec: fenced JSON block encoding/decoding and invariant checks
    - IssueBodyStateStore / CommentStateStore: where the block lives
    - WorkflowOrchestrator: the stage state machine
    - TaskManager: auxiliary task issues per stage
    - TaskNagger: weekly reminders for incomplete tasks
    - detect_workflow_type / parse_issue_form: trigger-side helpers
"""
