"""Story execution coordinator.

Runs one story at a time: pick the next eligible story, run one bounded
attempt through the verifier, update status, counters and the progress
record. Failed, stuck and blocked are outcomes, not exceptions; the loop
keeps going over the rest of the graph where it can.

Usage:
    coordinator = Coordinator(prds, store, verifier)
    result = coordinator.run()
    if result.kind == RunKind.DEADLOCK:
        ...
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from storyloop.lib import signature as sig
from storyloop.lib.config import DEFAULT_FOUNDATION_MULTIPLIER, DEFAULT_STUCK_THRESHOLD, LoopConfig
from storyloop.lib.errors import AttemptCancelled, BudgetExhausted, StoryNotEligible
from storyloop.lib.verify import PRIMARY, Verifier, VerifyResult
from storyloop.notifications import Signals
from storyloop.prd.models import PRD, Story, index_prds, index_stories
from storyloop.progress.record import Blocker, ProgressRecord, now_iso
from storyloop.progress.store import ProgressStore
from storyloop.workflow.selector import ScanKind, ScanResult, scan, unmet_dependencies
from storyloop.workflow.state_machine import InvalidTransition, StoryState, transition
from storyloop.workflow.stuck import StuckProtocol

logger = logging.getLogger(__name__)


class OutcomeKind(Enum):
    PASSED = "passed"
    FAILED = "failed"
    STUCK = "stuck"


@dataclass
class Outcome:
    kind: OutcomeKind
    story_id: str
    reason: str = ""
    signature: str = ""
    cancelled: bool = False
    resolution: Optional[str] = None   # STUCK only: recovered, blocked, cancelled


class RunKind(Enum):
    ALL_COMPLETE = "all_complete"
    DEADLOCK = "deadlock"
    HALTED = "halted"
    CANCELLED = "cancelled"
    ATTEMPT_LIMIT = "attempt_limit"


@dataclass
class RunResult:
    kind: RunKind
    attempts: int = 0
    outcomes: list[Outcome] = field(default_factory=list)
    scan: Optional[ScanResult] = None


_SCAN_TO_RUN = {
    ScanKind.ALL_COMPLETE: RunKind.ALL_COMPLETE,
    ScanKind.DEADLOCK: RunKind.DEADLOCK,
    ScanKind.HALTED: RunKind.HALTED,
}


class Coordinator:
    """Sequential story loop over a fixed set of PRDs.

    Args:
        prds: Every loaded PRD, with progress already applied
        store: Progress record store (one writer per domain)
        verifier: Verification collaborator
        domains: Domains this coordinator may run and write; None for all
        stuck_threshold: Identical consecutive failures that count as stuck
        foundation_multiplier: Budget multiplier for a foundation story's
            alternative attempt
        normalizer: Name of the failure signature normalizer
        escalate_blockers: Mark blockers escalated and notify the operator
        signals: Completion signal emitter
    """

    def __init__(
        self,
        prds: list[PRD],
        store: ProgressStore,
        verifier: Verifier,
        domains: Optional[set[str]] = None,
        stuck_threshold: int = DEFAULT_STUCK_THRESHOLD,
        foundation_multiplier: int = DEFAULT_FOUNDATION_MULTIPLIER,
        normalizer: str = "default",
        escalate_blockers: bool = True,
        signals: Optional[Signals] = None,
    ):
        self.prds = prds
        self.store = store
        self.verifier = verifier
        self.domains = set(domains) if domains is not None else {p.domain for p in prds}
        self.stuck_threshold = stuck_threshold
        self.foundation_multiplier = foundation_multiplier
        self.normalize = sig.get_normalizer(normalizer)
        self.escalate_blockers = escalate_blockers
        self.signals = signals if signals is not None else Signals(desktop=False)

        self._prd_map = index_prds(prds)
        self._stories = index_stories(prds)
        self._records: dict[str, ProgressRecord] = {}

    @classmethod
    def from_config(
        cls,
        config: LoopConfig,
        prds: list[PRD],
        store: ProgressStore,
        verifier: Verifier,
        domains: Optional[set[str]] = None,
    ) -> "Coordinator":
        return cls(
            prds,
            store,
            verifier,
            domains=domains,
            stuck_threshold=config.stuck_threshold,
            foundation_multiplier=config.foundation_multiplier,
            normalizer=config.signature_normalizer,
            escalate_blockers=config.escalate_blockers,
            signals=Signals(desktop=config.desktop_notify),
        )

    # ------------------------------------------------------------------
    # Progress record plumbing
    # ------------------------------------------------------------------

    def get_story(self, story_id: str) -> Story:
        if story_id not in self._stories:
            raise KeyError(f"Unknown story: {story_id}")
        return self._stories[story_id]

    def record(self, domain: str) -> ProgressRecord:
        """Live record for an owned domain, loaded on first use."""
        if domain not in self._records:
            self._records[domain] = self.store.load(domain)
        return self._records[domain]

    def _record_for(self, story: Story) -> ProgressRecord:
        domain = self._prd_map[story.prd_id].domain
        if domain not in self.domains:
            raise StoryNotEligible(story.id, f"domain '{domain}' is not owned by this coordinator")
        return self.record(domain)

    def _save(self, record: ProgressRecord, event: dict) -> None:
        self.store.save(record)
        self.store.append_event(record.domain, event)

    def _change_status(self, story: Story, record: ProgressRecord, status: str, reason: str = "") -> None:
        transition(story, StoryState(status), reason=reason)
        record.sync_story(story)
        self._save(record, {"event": "status", "story_id": story.id, "status": status, "reason": reason})

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def _run_attempt(
        self, story: Story, record: ProgressRecord, approach: str
    ) -> tuple[Optional[VerifyResult], bool]:
        """Count one iteration and call the verifier.

        The iteration is counted and saved before the verifier runs, so a
        crash or abort mid-attempt still uses up the slot.

        Returns:
            (result, cancelled); result is None when cancelled
        """
        if story.status == "pending":
            self._change_status(story, record, "active", f"{approach} attempt")

        story.iterations_used += 1
        record.sync_story(story)
        record.set_current(story.id, story.stages[0] if story.stages else None)
        self._save(record, {
            "event": "attempt",
            "story_id": story.id,
            "approach": approach,
            "iteration": story.iterations_used,
        })
        logger.info(
            f"[LOOP] {story.id}: {approach} attempt {story.iterations_used}/{story.estimated_iterations}"
        )

        try:
            result = self.verifier.run(story, approach)
        except AttemptCancelled as e:
            logger.warning(f"[LOOP] {story.id}: attempt cancelled ({e})")
            record.add_note(f"{approach} attempt {story.iterations_used} cancelled", story.id)
            self._save(record, {"event": "cancelled", "story_id": story.id})
            return None, True

        entry = record.story(story.id)
        if result.stages:
            entry.substages.update(result.stages)
            failed = [name for name, state in result.stages.items() if state == "failed"]
            record.current_stage = failed[0] if failed else list(result.stages)[-1]
        return result, False

    def attempt_story(self, story: Story, approach: str = PRIMARY) -> Outcome:
        """Run one bounded attempt of an eligible story.

        A complete story is a no-op that returns PASSED without counting an
        iteration or re-signalling.

        Raises:
            StoryNotEligible: blocked/skipped story, unmet dependencies, or a
                story outside the owned domains
            BudgetExhausted: no iteration budget left
        """
        if story.status == "complete":
            logger.debug(f"[LOOP] {story.id}: already complete, no-op")
            return Outcome(OutcomeKind.PASSED, story.id, reason="already complete")

        record = self._record_for(story)

        if story.status in ("blocked", "skipped"):
            raise StoryNotEligible(story.id, f"status is {story.status}")
        unmet = unmet_dependencies(story, self.prds)
        if unmet:
            raise StoryNotEligible(story.id, f"waiting on {', '.join(unmet)}")
        if story.iterations_used >= story.estimated_iterations:
            raise BudgetExhausted(story.id, story.iterations_used, story.estimated_iterations)

        result, cancelled = self._run_attempt(story, record, approach)
        if cancelled:
            return Outcome(OutcomeKind.FAILED, story.id, reason="cancelled", cancelled=True)

        if result.passed:
            self._complete(story, record)
            return Outcome(OutcomeKind.PASSED, story.id)

        signature = self.normalize(result.signature or "verification failed")
        entry = record.story(story.id)
        entry.failure_signatures.append(signature)
        repeats = sig.trailing_repeats(entry.failure_signatures)

        stuck_reason = None
        if repeats >= self.stuck_threshold:
            stuck_reason = f"same failure {repeats} times in a row"
        elif story.iterations_used >= story.estimated_iterations:
            stuck_reason = f"iteration budget exhausted ({story.iterations_used}/{story.estimated_iterations})"

        if stuck_reason:
            protocol = StuckProtocol(self, story, record, stuck_reason, signature)
            resolution = protocol.resolve()
            return Outcome(
                OutcomeKind.STUCK,
                story.id,
                reason=stuck_reason,
                signature=signature,
                cancelled=resolution == "cancelled",
                resolution=resolution,
            )

        record.add_note(f"attempt {story.iterations_used} failed: {signature}", story.id)
        self._save(record, {"event": "failed", "story_id": story.id, "signature": signature})
        return Outcome(OutcomeKind.FAILED, story.id, reason=signature, signature=signature)

    def _complete(self, story: Story, record: ProgressRecord, note: str = "completed") -> None:
        self._change_status(story, record, "complete", note)
        record.add_note(note, story.id)
        self.signals.story_complete(record, story.id)
        self._save(record, {"event": "complete", "story_id": story.id})
        self._check_prd_complete(story)

    def _check_prd_complete(self, story: Story) -> None:
        prd = self._prd_map[story.prd_id]
        if not prd.is_complete:
            return
        record = self.record(prd.domain)
        if self.signals.prd_complete(record, prd.id):
            record.add_note(f"PRD {prd.id} complete")
            self._save(record, {"event": "prd_complete", "prd_id": prd.id})

    def _block(self, story: Story, record: ProgressRecord, reason: str, remedies: list[str]) -> None:
        self._change_status(story, record, "blocked", reason)
        escalated_at = now_iso() if self.escalate_blockers else None
        record.add_blocker(Blocker(
            story_id=story.id,
            reason=reason,
            attempted_remedies=list(remedies),
            escalated=self.escalate_blockers,
            escalated_at=escalated_at,
        ))
        self._save(record, {"event": "blocked", "story_id": story.id, "reason": reason})
        if self.escalate_blockers:
            self.signals.blocked(story.id, reason)

    def _sweep_exhausted(self) -> list[Outcome]:
        """Hand budget-spent stories that can't be selected to the stuck protocol.

        Reachable only when cancelled attempts used up the last slots.
        """
        outcomes = []
        for prd in self.prds:
            if prd.domain not in self.domains:
                continue
            for story in prd.stories:
                if story.status not in ("pending", "active"):
                    continue
                if story.iterations_used < story.estimated_iterations:
                    continue
                if unmet_dependencies(story, self.prds):
                    continue
                record = self._record_for(story)
                reason = (
                    f"iteration budget exhausted "
                    f"({story.iterations_used}/{story.estimated_iterations})"
                )
                resolution = StuckProtocol(self, story, record, reason).resolve()
                outcomes.append(Outcome(
                    OutcomeKind.STUCK,
                    story.id,
                    reason=reason,
                    cancelled=resolution == "cancelled",
                    resolution=resolution,
                ))
                if resolution == "cancelled":
                    return outcomes
        return outcomes

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def scan(self) -> ScanResult:
        return scan(self.prds, self.domains)

    def run(self, max_attempts: Optional[int] = None) -> RunResult:
        """Attempt stories until nothing is runnable.

        Ends with ALL_COMPLETE, DEADLOCK, HALTED (blocked foundation story),
        CANCELLED, or ATTEMPT_LIMIT when max_attempts is reached.
        """
        run = RunResult(kind=RunKind.ALL_COMPLETE)

        while True:
            swept = self._sweep_exhausted()
            run.outcomes.extend(swept)
            if any(o.cancelled for o in swept):
                run.kind = RunKind.CANCELLED
                break

            result = self.scan()
            run.scan = result
            if result.kind != ScanKind.NEXT:
                run.kind = _SCAN_TO_RUN[result.kind]
                break

            if max_attempts is not None and run.attempts >= max_attempts:
                run.kind = RunKind.ATTEMPT_LIMIT
                break

            outcome = self.attempt_story(result.story)
            run.attempts += 1
            run.outcomes.append(outcome)
            if outcome.cancelled:
                run.kind = RunKind.CANCELLED
                break

        self._finish(run)
        return run

    def _finish(self, run: RunResult) -> None:
        message = {
            RunKind.ALL_COMPLETE: "all stories complete",
            RunKind.DEADLOCK: "deadlock: no eligible story but work remains",
            RunKind.HALTED: "halted: blocked foundation story",
            RunKind.CANCELLED: "run cancelled by operator",
            RunKind.ATTEMPT_LIMIT: "attempt limit reached",
        }[run.kind]
        if run.kind == RunKind.HALTED and run.scan:
            message += f" ({', '.join(run.scan.blocked_foundation)})"
        if run.kind == RunKind.DEADLOCK and run.scan and run.scan.waiting:
            message += f" ({len(run.scan.waiting)} waiting)"

        if run.kind in (RunKind.DEADLOCK, RunKind.HALTED):
            logger.warning(f"[LOOP] {message}")
        else:
            logger.info(f"[LOOP] {message}")

        for domain in sorted(self.domains):
            record = self.record(domain)
            record.set_current(None)
            record.add_note(f"run ended after {run.attempts} attempt(s): {message}")
            self._save(record, {"event": "run_end", "result": run.kind.value, "attempts": run.attempts})

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def reset_story(self, story_id: str, note: str = "") -> Story:
        """Return a blocked story to pending with its counters cleared.

        Raises:
            InvalidTransition: story is not blocked
        """
        story = self.get_story(story_id)
        if story.status != "blocked":
            raise InvalidTransition(story.status, StoryState.PENDING, story.id)

        record = self._record_for(story)
        story.iterations_used = 0
        entry = record.story(story.id)
        entry.failure_signatures = []
        entry.alternative_tried = False
        entry.stuck_reason = None
        self._change_status(story, record, "pending", "operator reset")
        record.add_note("reset by operator" + (f": {note}" if note else ""), story.id)
        self._save(record, {"event": "reset", "story_id": story.id})
        return story

    def skip_story(self, story_id: str, reason: str = "") -> Story:
        """Mark a story skipped. Not allowed once complete.

        Raises:
            InvalidTransition: story is complete
        """
        story = self.get_story(story_id)
        record = self._record_for(story)
        self._change_status(story, record, "skipped", reason or "skipped by operator")
        record.add_note("skipped" + (f": {reason}" if reason else ""), story.id)
        self._save(record, {"event": "skip", "story_id": story.id, "reason": reason})
        self._check_prd_complete(story)
        return story
