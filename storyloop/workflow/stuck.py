"""Stuck protocol state machine.

Entered when a story repeats the same failure too often or spends its
iteration budget:

    diagnosing --try_alternative--> retrying_alternative --alternative_passed--> recovered
        |                                  |--alternative_failed--> blocked
        |                                  '--interrupted--> cancelled
        '--give_up--> blocked

One alternative attempt per story, ever; the progress entry remembers
it so a cancelled one is not retried. It needs an iteration slot: any story
with budget left qualifies; foundation stories may also use slots up to
estimated_iterations * foundation_multiplier.
"""

import logging
from typing import TYPE_CHECKING

from transitions import Machine

from storyloop.lib.verify import ALTERNATIVE
from storyloop.prd.models import Story
from storyloop.progress.record import ProgressRecord

if TYPE_CHECKING:
    from storyloop.workflow.coordinator import Coordinator

logger = logging.getLogger(__name__)

STATES = ["diagnosing", "retrying_alternative", "recovered", "blocked", "cancelled"]

TRANSITIONS = [
    {"trigger": "try_alternative", "source": "diagnosing", "dest": "retrying_alternative"},
    {"trigger": "give_up", "source": "diagnosing", "dest": "blocked"},
    {"trigger": "alternative_passed", "source": "retrying_alternative", "dest": "recovered"},
    {"trigger": "alternative_failed", "source": "retrying_alternative", "dest": "blocked"},
    {"trigger": "interrupted", "source": "retrying_alternative", "dest": "cancelled"},
]


def iteration_cap(story: Story, foundation_multiplier: int) -> int:
    """Highest iterations_used an alternative attempt may reach."""
    if story.is_foundation:
        return story.estimated_iterations * foundation_multiplier
    return story.estimated_iterations


def alternative_slot_available(story: Story, foundation_multiplier: int) -> bool:
    return story.iterations_used < iteration_cap(story, foundation_multiplier)


class StuckProtocol:
    """Resolve one stuck story to recovered, blocked or cancelled."""

    def __init__(
        self,
        coordinator: "Coordinator",
        story: Story,
        record: ProgressRecord,
        reason: str,
        last_signature: str = "",
    ):
        self.coordinator = coordinator
        self.story = story
        self.record = record
        self.reason = reason
        self.last_signature = last_signature
        self.remedies: list[str] = []
        self.alternative_signature = ""

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="diagnosing",
            auto_transitions=False,
            after_state_change="_log_change",
        )

    def _log_change(self) -> None:
        logger.info(f"[STUCK] {self.story.id}: {self.state}")

    def _primary_remedy(self) -> str:
        remedy = f"primary approach: {self.story.iterations_used} attempt(s)"
        if self.last_signature:
            remedy += f", last failure: {self.last_signature}"
        return remedy

    def resolve(self) -> str:
        """Run the protocol to a final state and return it."""
        story = self.story
        coordinator = self.coordinator
        logger.warning(f"[STUCK] {story.id}: {self.reason}")
        self.remedies.append(self._primary_remedy())

        entry = self.record.story(story.id)
        if entry.alternative_tried:
            # The earlier alternative attempt was cancelled
            self.reason = entry.stuck_reason or self.reason
            self.remedies.append("alternative approach: cancelled")
            self.give_up()
            coordinator._block(
                story, self.record, f"{self.reason}; alternative approach already tried", self.remedies
            )
            return self.state

        has_alternative = coordinator.verifier.has_alternative(story)
        has_slot = alternative_slot_available(story, coordinator.foundation_multiplier)

        if not (has_alternative and has_slot):
            why = "no alternative approach available" if not has_alternative else "no iteration slot left"
            self.give_up()
            coordinator._block(story, self.record, f"{self.reason}; {why}", self.remedies)
            return self.state

        entry.alternative_tried = True
        entry.stuck_reason = self.reason
        self.try_alternative()
        if story.status == "active":
            coordinator._change_status(story, self.record, "pending", "rollback for alternative approach")

        result, cancelled = coordinator._run_attempt(story, self.record, ALTERNATIVE)
        if cancelled:
            self.interrupted()
            return self.state

        if result.passed:
            self.alternative_passed()
            coordinator._complete(story, self.record, note="completed with alternative approach")
            return self.state

        self.alternative_signature = coordinator.normalize(result.signature or "verification failed")
        self.record.story(story.id).failure_signatures.append(self.alternative_signature)
        self.remedies.append(f"alternative approach: {self.alternative_signature}")
        self.alternative_failed()
        coordinator._block(story, self.record, f"{self.reason}; alternative approach failed", self.remedies)
        return self.state
