"""
SGID layer deprecation workflow.

Complete removal process for an SGID layer across all platforms:

1. ``first-issue``: validate the deprecation request (automated)
2. ``soft-delete``: modify metadata and hide data, nothing removed yet
3. ``validate-soft-delete``: 14-day grace period, then verification
4. ``hard-delete``: permanent removal from every system
5. ``validate-hard-delete``: final verification

Task templates use variables derived from the deprecation issue form; see
``VARIABLES`` for the mapping from form fields to template variables.
"""

from issue_ops.enums import AssigneeRole, TransitionEvent, WorkflowType
from issue_ops.models.definition import (
    WORKFLOW_COMPLETE,
    AddLabel,
    AllTasksCompleted,
    PostComment,
    RemoveLabel,
    Stage,
    StageTransition,
    TaskTemplate,
    WorkflowDefinition,
)
from issue_ops.models.state import WorkflowState

VARIABLES: dict[str, str | tuple[str, ...]] = {
    "layerName": "display-name",
    "agolItemId": ("arcgis-online-item-id", "arcgis-online-id"),
    "productPageUrl": "product-page-url",
    "sgidIndexId": "sgid-index-id",
    "internalSgidTable": "internal-sgid-table",
    "openSgidTable": "open-sgid-table",
    "archivesRecordSeries": "archives-record-series",
    "migrationGuide": "migration-guide",
}

AGOL_ITEM_LINK = "https://www.arcgis.com/home/item.html?id={{agolItemId}}"
SGID_INDEX_LINK = "https://docs.google.com/spreadsheets/d/{{sgidIndexId}}"


# -----------------------------------------------------------------------------
# Stage 1: First Issue
# -----------------------------------------------------------------------------

FIRST_ISSUE = Stage(
    name="first-issue",
    description="Validate all required deprecation information",
    assignee_role=AssigneeRole.AUTOMATED,
    transitions=(
        StageTransition(
            event=TransitionEvent.VALIDATION_PASSED,
            target_stage="soft-delete",
            actions=(AddLabel("state: soft delete"),),
        ),
    ),
)


# -----------------------------------------------------------------------------
# Stage 2: Soft Delete
# -----------------------------------------------------------------------------

SOFT_DELETE = Stage(
    name="soft-delete",
    description="Modify metadata and hide data across all platforms",
    assignee_role=AssigneeRole.DATA_STEWARD,
    tasks=(
        TaskTemplate(
            title="Update ArcGIS Online Item for {{layerName}}",
            body=f"""## Update AGOL Item

**Layer**: {{{{layerName}}}}
**AGOL Item ID**: {{{{agolItemId}}}}

### Tasks:
- [ ] Append " (Mature Support)" to item title
- [ ] Change Authoritative status to 'd' (deprecated)
- [ ] Remove all tags except "Deprecated"
- [ ] Add migration notes to description:
  ```
  {{{{migrationGuide}}}}
  ```

### Links:
- [AGOL Item]({AGOL_ITEM_LINK})

**Note**: After 24 hours, this item will be unshared from the SGID group.""",
            labels=("[ ]", "agol", "soft-delete"),
        ),
        TaskTemplate(
            title="Update gis.utah.gov for {{layerName}}",
            body="""## Update Website

**Layer**: {{layerName}}
**Product Page**: {{productPageUrl}}

### Tasks:
- [ ] Delete product page from website
- [ ] Remove from downloadMetadata file
- [ ] Add redirect from old URL to replacement (manual - determine best redirect location)

### Repository:
Create a PR in the [gis.utah.gov repository](https://github.com/agrc/gis.utah.gov) to make these changes.""",
            labels=("[ ]", "website", "soft-delete"),
        ),
        TaskTemplate(
            title="Update SGID Index for {{layerName}}",
            body=f"""## Update SGID Index

**Layer**: {{{{layerName}}}}
**Index ID**: {{{{sgidIndexId}}}}

### Tasks:
- [ ] Set porterUrl to this issue (#{{{{issueNumber}}}})
- [ ] Set indexStatus to "removed"
- [ ] Set refreshCycle to "static"

### Links:
- [SGID Index Entry]({SGID_INDEX_LINK})""",
            labels=("[ ]", "sgid-index", "soft-delete"),
        ),
        TaskTemplate(
            title="Unshare {{layerName}} from SGID Group (After 24 hours)",
            body="""## Unshare from SGID

**Layer**: {{layerName}}
**AGOL Item**: {{agolItemId}}

### Tasks:
- [ ] Wait 24 hours after AGOL item updates
- [ ] Unshare item from SGID group

**Important**: Do not complete this until 24 hours have passed since the AGOL item was updated.""",
            labels=("[ ]", "agol", "soft-delete", "delayed"),
        ),
        TaskTemplate(
            title="Shelf Decision for {{layerName}}",
            body="""## Shelf Decision

**Layer**: {{layerName}}
**Assigned to**: Data Coordinator

### Question:
Should this data be shelved (archived for potential future use)?

- [ ] **Yes** - Data has historical or potential future value
- [ ] **No** - Data can be permanently deleted

### Discussion:
1. Add comments below with your reasoning
2. Tag relevant stakeholders for input
3. React with 👍 to indicate approval

### Decision Process:
Once the required approvals are received and decision is documented, close this issue to proceed.

**Note**: This decision affects the hard delete phase. If "Yes", data will be archived; if "No", data will be permanently deleted.""",
            labels=("[ ]", "decision", "soft-delete", "approval-required"),
        ),
        TaskTemplate(
            title="Post Deprecation Tweet for {{layerName}}",
            body="""## Social Media Notification (Optional)

**Layer**: {{layerName}}
**Assigned to**: @steveoh

### Tasks:
- [ ] Post tweet on X (Twitter) announcing deprecation
- [ ] Include migration guide link
- [ ] Tag relevant accounts if applicable
- [ ] **If posted**: Check here → [ ] Tweet posted
- [ ] **If skipped**: Check here → [ ] Tweet not needed

### Suggested Tweet:
```
📢 SGID Layer Deprecation Notice

{{layerName}} is being deprecated.

{{migrationGuide}}
```

**Note**: This task is optional. If not posting, mark as "Tweet not needed" and close.""",
            labels=("[ ]", "social-media", "soft-delete", "optional"),
            assignee="steveoh",
        ),
        TaskTemplate(
            title="Check and Migrate Known Usages for {{layerName}}",
            body="""## Known Usages

**Layer**: {{layerName}}

### Check These Systems:
- [ ] API Search endpoint
- [ ] Basemaps
- [ ] Forklift pallet
- [ ] AGOL FS Queries
- [ ] Next Gen 911 Aware Map
- [ ] Other Dependencies

### How to Check:
- Search the [GitHub organization](https://github.com/agrc) for "{{layerName}}" or "{{internalSgidTable}}"
- Check each system manually for references
- Document findings in comments below

### For Each Usage Found:
1. Document the usage location
2. Update to use replacement layer (if applicable)
3. Test the migration
4. Add comment with migration status

### Verification:
Once all systems are checked and usages migrated or documented, close this issue.""",
            labels=("[ ]", "migration", "soft-delete"),
        ),
        TaskTemplate(
            title="Update SGID (ArcGIS Server) Tags and Description for {{layerName}}",
            body="""## Update SGID Feature Service Metadata

**Layer**: {{layerName}}
**System**: SGID on ArcGIS Server (different from ArcGIS Online)

### Tasks:
- [ ] Remove all tags except "Deprecated"
- [ ] Add migration notes to description:
  ```markdown
  This layer has been deprecated.

  {{migrationGuide}}
  ```

### Notes:
- This affects the SGID feature service on ArcGIS Server
- Process is similar to AGOL but uses a different interface
- Ensure migration notes are in Markdown format""",
            labels=("[ ]", "sgid", "soft-delete"),
        ),
    ),
    transitions=(
        StageTransition(
            event=TransitionEvent.TASK_COMPLETED,
            target_stage="validate-soft-delete",
            condition=AllTasksCompleted(),
            actions=(
                AddLabel("state: soft delete validation"),
                RemoveLabel("state: soft delete"),
                PostComment(
                    "## 🎯 Soft Delete Complete\n\nAll soft delete tasks have been completed. "
                    "Starting 14-day grace period for validation and community feedback."
                ),
            ),
        ),
    ),
)


# -----------------------------------------------------------------------------
# Stage 3: Validate Soft Delete
# -----------------------------------------------------------------------------

VALIDATE_SOFT_DELETE = Stage(
    name="validate-soft-delete",
    description="14-day grace period followed by validation of soft delete changes",
    assignee_role=AssigneeRole.DATA_STEWARD,
    grace_period_days=14,
    tasks=(
        TaskTemplate(
            title="Verify AGOL Updates for {{layerName}}",
            body=f"""## Verify ArcGIS Online Changes

**Layer**: {{{{layerName}}}}
**AGOL Item**: {{{{agolItemId}}}}

### Verification Checklist:
- [ ] Item title includes "(Mature Support)"
- [ ] Authoritative status is 'd'
- [ ] Only "Deprecated" tag remains
- [ ] Migration notes added to description
- [ ] Item unshared from SGID group

### Links:
- [AGOL Item]({AGOL_ITEM_LINK})""",
            labels=("[ ]", "verification", "soft-delete-validation"),
        ),
        TaskTemplate(
            title="Verify Website Changes for {{layerName}}",
            body="""## Verify gis.utah.gov Updates

**Layer**: {{layerName}}

### Verification Checklist:
- [ ] Product page deleted or updated
- [ ] Removed from downloadMetadata
- [ ] Redirect added (if applicable)
- [ ] Website PR merged

### Test:
Visit the old product page URL and verify redirect or 404.""",
            labels=("[ ]", "verification", "soft-delete-validation"),
        ),
        TaskTemplate(
            title="Verify SGID Index Updates for {{layerName}}",
            body=f"""## Verify SGID Index Changes

**Layer**: {{{{layerName}}}}
**Index ID**: {{{{sgidIndexId}}}}

### Verification Checklist:
- [ ] porterUrl points to this issue
- [ ] indexStatus is "removed"
- [ ] refreshCycle is "static"
- [ ] Record not visible in public SGID Index view

### Links:
- [SGID Index]({SGID_INDEX_LINK})""",
            labels=("[ ]", "verification", "soft-delete-validation"),
        ),
        TaskTemplate(
            title="Check for Community Complaints about {{layerName}}",
            body="""## Community Feedback Check

**Layer**: {{layerName}}
**Grace Period**: 14 days (completed)

### Tasks:
- [ ] Check this parent issue for comments/complaints
- [ ] Check email for feedback
- [ ] Check social media mentions
- [ ] Check support channels

### Assessment:
- **No complaints**: Proceed with hard delete
- **Minor complaints**: Document and address if possible
- **Major complaints**: May need to reconsider deprecation

Add summary of findings in comments below.""",
            labels=("[ ]", "verification", "soft-delete-validation"),
        ),
        TaskTemplate(
            title="Verify Known Usages Migrated for {{layerName}}",
            body="""## Usage Migration Verification

**Layer**: {{layerName}}

### Verification Checklist:
- [ ] All identified usages have been updated
- [ ] Migrations have been tested
- [ ] No critical dependencies remain
- [ ] Documentation is updated

### Notes:
Review the "Check and Migrate Known Usages" task and verify all items are complete.""",
            labels=("[ ]", "verification", "soft-delete-validation"),
        ),
    ),
    transitions=(
        StageTransition(
            event=TransitionEvent.TASK_COMPLETED,
            target_stage="hard-delete",
            condition=AllTasksCompleted(),
            actions=(
                AddLabel("state: hard delete"),
                RemoveLabel("state: soft delete validation"),
                PostComment(
                    "## ✅ Soft Delete Validated\n\nAll soft delete changes have been verified and the grace "
                    "period has passed. Proceeding to hard delete phase.\n\n**Warning**: Hard delete will "
                    "permanently remove data. Review carefully before proceeding."
                ),
            ),
        ),
    ),
)


# -----------------------------------------------------------------------------
# Stage 4: Hard Delete
# -----------------------------------------------------------------------------

HARD_DELETE = Stage(
    name="hard-delete",
    description="Permanently remove data from all systems",
    assignee_role=AssigneeRole.TECHNICAL_LEAD,
    tasks=(
        TaskTemplate(
            title="Delete ArcGIS Online Item for {{layerName}}",
            body=f"""## Delete AGOL Item

**Layer**: {{{{layerName}}}}
**AGOL Item**: {{{{agolItemId}}}}

### Tasks:
- [ ] Final confirmation: Ready to delete?
- [ ] Unshare from SGID group (if not done)
- [ ] Delete AGOL item permanently

### Links:
- [AGOL Item]({AGOL_ITEM_LINK})

**Warning**: This action cannot be undone!""",
            labels=("[ ]", "agol", "hard-delete", "destructive"),
        ),
        TaskTemplate(
            title="Archive AGOLItems Record for {{layerName}}",
            body="""## Archive AGOLItems Database Entry

**Layer**: {{layerName}}

### Tasks:
- [ ] Copy row from AGOLItems to AGOLItems_shelved table
- [ ] Verify copy completed successfully
- [ ] Remove row from AGOLItems table

**Note**: This preserves the record while removing it from active tracking.""",
            labels=("[ ]", "database", "hard-delete"),
        ),
        TaskTemplate(
            title="Backup and Remove from Internal SGID for {{layerName}}",
            body="""## Internal SGID Removal

**Layer**: {{layerName}}
**Internal SGID**: {{internalSgidTable}}

### Tasks:
- [ ] Create backup of data to Google Drive
- [ ] Verify backup is complete
- [ ] Remove data from Internal SGID database
- [ ] Remove ChangeDetection row

### Backup Location:
Document the Drive location in comments.""",
            labels=("[ ]", "sgid", "hard-delete", "destructive"),
        ),
        TaskTemplate(
            title="Update SGID Index Flags for {{layerName}}",
            body=f"""## Update SGID Index Final Status

**Layer**: {{{{layerName}}}}
**Index ID**: {{{{sgidIndexId}}}}

### Tasks:
- [ ] Set arcGisOnline to False
- [ ] Set openSgid to False
- [ ] Verify flags are updated

### Links:
- [SGID Index]({SGID_INDEX_LINK})""",
            labels=("[ ]", "sgid-index", "hard-delete"),
        ),
        TaskTemplate(
            title="Remove Update Pipeline for {{layerName}}",
            body="""## Remove Automated Updates

**Layer**: {{layerName}}

### Tasks:
- [ ] Identify update pipeline/schedule
- [ ] Remove or disable automated updates
- [ ] Document removal

**Note**: This prevents future data updates from running.""",
            labels=("[ ]", "pipeline", "hard-delete"),
        ),
        TaskTemplate(
            title="Remove from Forklift for {{layerName}}",
            body="""## Remove Forklift References

**Layer**: {{layerName}}

### Tasks:
- [ ] Remove from forklift hashing
- [ ] Remove from changedetection.gdb
- [ ] Remove from packing slip
- [ ] Commit changes to Forklift repository

**Note**: This is a manual process in the Forklift system.""",
            labels=("[ ]", "forklift", "hard-delete"),
        ),
        TaskTemplate(
            title="Archive and Remove from Archives System for {{layerName}}",
            body="""## Archives Management

**Layer**: {{layerName}}
**Record Series**: {{archivesRecordSeries}}

### Tasks:
- [ ] Share export with Archives
- [ ] Get confirmation from Archives team
- [ ] Remove from active record series

**Note**: Ensure archives has the data before removing.""",
            labels=("[ ]", "archives", "hard-delete"),
        ),
        TaskTemplate(
            title="Delete Google Drive Data for {{layerName}}",
            body="""## Remove Drive Backup

**Layer**: {{layerName}}

### Tasks:
- [ ] Confirm Archives has the data
- [ ] Locate Drive folder/files
- [ ] Delete from Google Drive
- [ ] Empty Drive trash

**Warning**: Only complete after Archives confirms receipt!""",
            labels=("[ ]", "drive", "hard-delete", "destructive"),
        ),
    ),
    transitions=(
        StageTransition(
            event=TransitionEvent.TASK_COMPLETED,
            target_stage="validate-hard-delete",
            condition=AllTasksCompleted(),
            actions=(
                AddLabel("state: hard delete validation"),
                RemoveLabel("state: hard delete"),
                PostComment(
                    "## 🗑️ Hard Delete Complete\n\nAll hard delete tasks have been completed. "
                    "Running final validation checks."
                ),
            ),
        ),
    ),
)


# -----------------------------------------------------------------------------
# Stage 5: Validate Hard Delete
# -----------------------------------------------------------------------------

VALIDATE_HARD_DELETE = Stage(
    name="validate-hard-delete",
    description="Final verification that all data has been removed",
    assignee_role=AssigneeRole.DATA_STEWARD,
    tasks=(
        TaskTemplate(
            title="Verify SGID on ArcGIS Removal for {{layerName}}",
            body="""## Verify SGID Feature Service

**Layer**: {{layerName}}

### Verification Checklist:
- [ ] Item is not shared to any groups
- [ ] Item shows shelved/static status
- [ ] Item is not accessible via SGID service

### Test:
Try to access the layer via the SGID feature service and verify it's not available.""",
            labels=("[ ]", "verification", "hard-delete-validation"),
        ),
        TaskTemplate(
            title="Verify Open SGID Removal for {{layerName}}",
            body="""## Verify Open SGID Database

**Layer**: {{layerName}}
**Open SGID Table**: {{openSgidTable}}

### Verification Checklist:
- [ ] Table is not visible in schema
- [ ] Table cannot be queried
- [ ] Connections return "not found"

### Test:
```sql
SELECT * FROM {{openSgidTable}} LIMIT 1;
```
Should return "relation does not exist" error.""",
            labels=("[ ]", "verification", "hard-delete-validation"),
        ),
        TaskTemplate(
            title="Verify Internal SGID Removal for {{layerName}}",
            body="""## Verify Internal SGID Database

**Layer**: {{layerName}}
**Internal Table**: {{internalSgidTable}}

### Verification Checklist:
- [ ] Table is removed from database
- [ ] Backup exists in Drive
- [ ] ChangeDetection row removed

### Test:
Query the database to confirm table doesn't exist.""",
            labels=("[ ]", "verification", "hard-delete-validation"),
        ),
        TaskTemplate(
            title="Final Checklist for {{layerName}} Deprecation",
            body="""## Final Deprecation Checklist

**Layer**: {{layerName}}

### Complete Verification:
- [ ] All AGOL references removed
- [ ] All SGID references removed
- [ ] All Open SGID references removed
- [ ] Archives has backup
- [ ] SGID Index updated
- [ ] Website updated
- [ ] No remaining dependencies
- [ ] All validation tasks complete

### Sign-off:
Once all items are verified, close this issue to complete the deprecation workflow.""",
            labels=("[ ]", "verification", "hard-delete-validation", "final"),
        ),
    ),
    transitions=(
        StageTransition(
            event=TransitionEvent.TASK_COMPLETED,
            target_stage=WORKFLOW_COMPLETE,
            condition=AllTasksCompleted(),
            actions=(
                RemoveLabel("state: hard delete validation"),
                AddLabel("status: completed"),
                PostComment(
                    "## 🎉 Deprecation Complete!\n\n**{{layerName}}** has been successfully deprecated and "
                    "removed from all systems.\n\n### Summary:\n- ✅ Soft delete completed\n"
                    "- ✅ 14-day grace period observed\n- ✅ Soft delete validated\n"
                    "- ✅ Hard delete completed\n- ✅ Final validation passed\n\nThis issue can now be closed."
                ),
            ),
        ),
    ),
)


SGID_DEPRECATION = WorkflowDefinition(
    workflow_type=WorkflowType.SGID_DEPRECATION,
    name="SGID Layer Deprecation",
    description=(
        "Complete removal process for SGID layers including soft delete, grace period, and hard delete phases"
    ),
    stages=(FIRST_ISSUE, SOFT_DELETE, VALIDATE_SOFT_DELETE, HARD_DELETE, VALIDATE_HARD_DELETE),
    variables=VARIABLES,
)


def task_variables(state: WorkflowState) -> dict[str, object]:
    """Template variables for a deprecation workflow's tasks and comments."""
    return SGID_DEPRECATION.template_variables(state.data, state.issue_number)
