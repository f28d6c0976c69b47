"""Story lifecycle state machine using the transitions library.

Statuses only move forward, with two exceptions: `rollback` (active ->
pending) used by the stuck protocol before an alternative attempt, and the
operator `reset` (blocked -> pending). complete and skipped are terminal.

Usage:
    from storyloop.workflow.fsm import StoryFSM

    fsm = StoryFSM(story)
    fsm.start()      # pending -> active
    fsm.passed()     # active -> complete
"""

import logging
from typing import Callable

from transitions import Machine

from storyloop.prd.models import Story

logger = logging.getLogger(__name__)


STATES = [
    "pending",
    "active",
    "blocked",
    "complete",
    "skipped",
]

TERMINAL_STATES = ("complete", "skipped")

TRANSITIONS = [
    # Attempt begins (resuming an active story is not a transition)
    {"trigger": "start", "source": "pending", "dest": "active"},

    # Verification outcome
    {"trigger": "passed", "source": "active", "dest": "complete"},

    # Stuck protocol
    {"trigger": "rollback", "source": "active", "dest": "pending"},
    {"trigger": "block", "source": "active", "dest": "blocked"},
    {"trigger": "block", "source": "pending", "dest": "blocked"},  # Exhausted without being resumed

    # Operator actions
    {"trigger": "reset", "source": "blocked", "dest": "pending"},
    {"trigger": "skip", "source": "pending", "dest": "skipped"},
    {"trigger": "skip", "source": "active", "dest": "skipped"},
    {"trigger": "skip", "source": "blocked", "dest": "skipped"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        key = (t["source"], t["dest"])
        if key not in lookup:
            lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class StoryFSM:
    """State machine for one story's status.

    The Story dataclass stays a plain record; this wrapper is the
    transitions model and writes the new status back after each change.
    """

    def __init__(self, story: Story, on_transition: Callable[[str, str, str], None] | None = None):
        """Initialize FSM for a story.

        Args:
            story: Story whose status is managed
            on_transition: Optional callback(from_state, to_state, trigger) called after transitions
        """
        self.story = story
        self.on_transition = on_transition

        initial = story.status
        if initial not in STATES:
            logger.warning(f"[FSM] {story.id}: Unknown status '{initial}', defaulting to 'pending'")
            initial = "pending"
            story.status = initial

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=initial,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        logger.info(f"[FSM] {self.story.id}: {from_state} -> {to_state} ({trigger})")
        self.story.status = self.state

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)
