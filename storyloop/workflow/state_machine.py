"""Story status transitions with explicit validation.

Thin wrapper around the FSM in fsm.py:
- StoryState enum for type safety
- transition() maps a destination status to the matching trigger
- is_terminal() for complete/skipped

Usage:
    from storyloop.workflow.state_machine import transition, StoryState

    transition(story, StoryState.ACTIVE, reason="attempt 1")
"""

import logging
from enum import Enum
from typing import Callable

from transitions import MachineError

from storyloop.lib.errors import StoryloopError
from storyloop.prd.models import Story
from storyloop.workflow.fsm import TERMINAL_STATES, TRIGGER_FOR, StoryFSM

logger = logging.getLogger(__name__)


class StoryState(Enum):
    """All valid story statuses. Values match FSM state strings."""

    PENDING = "pending"
    ACTIVE = "active"
    BLOCKED = "blocked"
    COMPLETE = "complete"
    SKIPPED = "skipped"


class InvalidTransition(StoryloopError):
    """Raised when attempting an invalid status transition."""

    def __init__(self, from_state: str, to_state: StoryState, story_id: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.story_id = story_id
        super().__init__(
            f"Invalid transition: {from_state} -> {to_state.value}"
            + (f" (story: {story_id})" if story_id else "")
        )


def is_terminal(story: Story) -> bool:
    """Complete and skipped stories never change status again."""
    return story.status in TERMINAL_STATES


def transition(
    story: Story,
    to_state: StoryState,
    reason: str = "",
    on_transition: Callable[[str, str, str], None] | None = None,
) -> None:
    """Move a story to a new status with validation.

    Self-transitions are a no-op.

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    reason_str = f" ({reason})" if reason else ""
    fsm = StoryFSM(story, on_transition=on_transition)
    current_state = fsm.state

    if current_state == to_state.value:
        logger.debug(f"[STATE] {story.id}: already {to_state.value}, no-op")
        return

    trigger = TRIGGER_FOR.get((current_state, to_state.value))
    if trigger is None:
        raise InvalidTransition(current_state, to_state, story.id)

    try:
        logger.debug(f"[STATE] {story.id}: {current_state} -> {to_state.value}{reason_str}")
        getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(current_state, to_state, story.id) from e
