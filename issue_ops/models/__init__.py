"""Data models for workflow definitions, persisted state, and tracker records.

Key Models:
    - WorkflowDefinition / Stage / StageTransition: immutable workflow catalogue
    - WorkflowState / StageState / TaskIssue: state embedded in the issue
    - Issue / Comment: normalized issue-tracker records
"""
