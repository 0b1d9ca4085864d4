"""
State stores: where the fenced workflow state block lives.

Two hosting strategies are provided:

- ``IssueBodyStateStore`` keeps the block at the top of the parent issue's
  body. This is the default; the HTML comment is invisible in the rendered
  issue and the body is always fetched with the issue.
- ``CommentStateStore`` keeps the block in a single automation-owned comment
  on the issue, updated in place once created.

Both follow the same cycle: ``load`` fetches the hosting text and decodes
it; ``save`` validates first (no partial write on an invalid state), stamps
``updatedAt``, re-encodes, and writes the text back. There is no locking or
version check: two concurrent writers race and the last save wins.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

import structlog

from issue_ops.engine.codec import STATE_MARKER, StateCodec
from issue_ops.models.domain import Comment
from issue_ops.models.state import WorkflowState
from issue_ops.providers.base import IssueTracker

log = structlog.get_logger(__name__)

BODY_STATE_QUERY = 'is:issue is:open "issue-ops-state" in:body'
COMMENT_STATE_QUERY = 'is:issue is:open "issue-ops-state" in:comments'


class StateStore(ABC):
    """Loads and saves the single ``WorkflowState`` attached to an issue."""

    #: Issue search query matching open issues that carry state in this store.
    search_query: str

    def __init__(self, tracker: IssueTracker, codec: StateCodec | None = None):
        """Initialize store.

        Args:
            tracker: Issue tracker hosting the state text
            codec: State codec; a default codec is created when omitted
        """
        self.tracker = tracker
        self.codec = codec or StateCodec()

    @abstractmethod
    async def load(self, issue_number: int) -> WorkflowState | None:
        """Load the workflow state for an issue.

        Returns:
            The state, or None when the issue carries no state block.

        Raises:
            InvalidStateError: If a state block exists but is corrupted
        """
        pass

    @abstractmethod
    async def save(self, state: WorkflowState) -> None:
        """Persist ``state``, stamping ``updatedAt``.

        Raises:
            InvalidStateError: If the state violates an invariant; nothing is written
        """
        pass

    def _prepare(self, state: WorkflowState) -> None:
        self.codec.validate(state)
        self.codec.stamp(state)


class IssueBodyStateStore(StateStore):
    """Keeps the state block at the top of the parent issue body."""

    search_query = BODY_STATE_QUERY

    async def load(self, issue_number: int) -> WorkflowState | None:
        log.debug("state_loading", issue=issue_number, location="body")
        body = await self.tracker.get_issue_body(issue_number)
        state = self.codec.decode(body)
        if state is None:
            log.debug("state_not_found", issue=issue_number)
        return state

    async def save(self, state: WorkflowState) -> None:
        self._prepare(state)

        body = await self.tracker.get_issue_body(state.issue_number)
        await self.tracker.update_issue_body(state.issue_number, self.codec.embed(body, state))

        log.debug(
            "state_saved",
            issue=state.issue_number,
            status=str(state.status),
            stage=state.current_stage,
            location="body",
        )


class CommentStateStore(StateStore):
    """Keeps the state block in one automation-owned comment.

    The comment is located by the state marker and the ownership
    predicate; it is updated in place when found and created otherwise, so
    at most one state-bearing comment exists per issue.
    """

    search_query = COMMENT_STATE_QUERY

    def __init__(
        self,
        tracker: IssueTracker,
        codec: StateCodec | None = None,
        is_bot: Callable[[Comment], bool] | None = None,
    ):
        super().__init__(tracker, codec)
        self.is_bot = is_bot

    async def _find(self, issue_number: int) -> Comment | None:
        return await self.tracker.find_bot_comment(issue_number, STATE_MARKER, self.is_bot)

    async def load(self, issue_number: int) -> WorkflowState | None:
        log.debug("state_loading", issue=issue_number, location="comment")
        comment = await self._find(issue_number)
        if comment is None:
            log.debug("state_not_found", issue=issue_number)
            return None
        return self.codec.decode(comment.body)

    async def save(self, state: WorkflowState) -> None:
        self._prepare(state)

        comment = await self._find(state.issue_number)
        if comment is None:
            created = await self.tracker.add_comment(state.issue_number, self.codec.embed("", state))
            log.info("state_comment_created", issue=state.issue_number, comment_id=created.id)
        else:
            await self.tracker.update_comment(comment.id, self.codec.embed(comment.body, state))
            log.debug("state_comment_updated", issue=state.issue_number, comment_id=comment.id)
