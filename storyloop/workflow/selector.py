"""
Next-story selection.

PRDs are scanned in ascending priority (declaration order on ties) and
stories in declaration order. Selection has no side effects, so the same
snapshot always yields the same story.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from storyloop.prd.models import PRD, Story, index_prds, index_stories, ordered_prds
from storyloop.workflow.state_machine import is_terminal

logger = logging.getLogger(__name__)


class ScanKind(Enum):
    NEXT = "next"
    ALL_COMPLETE = "all_complete"
    DEADLOCK = "deadlock"
    HALTED = "halted"


@dataclass
class ScanResult:
    kind: ScanKind
    story: Optional[Story] = None
    blocked_foundation: list[str] = field(default_factory=list)  # set when HALTED
    waiting: dict[str, list[str]] = field(default_factory=dict)  # story id -> unmet dependency ids


def unmet_dependencies(story: Story, prds: list[PRD]) -> list[str]:
    """Story and PRD ids that keep this story from starting."""
    stories = index_stories(prds)
    prd_map = index_prds(prds)

    unmet = [dep for dep in story.dependencies if stories[dep].status != "complete"]
    owner = prd_map[story.prd_id]
    unmet.extend(dep for dep in owner.dependencies if not prd_map[dep].is_complete)
    return unmet


def is_startable(story: Story) -> bool:
    """Status allows starting or resuming (dependencies aside)."""
    if story.status == "pending":
        return True
    return story.status == "active" and story.iterations_used < story.estimated_iterations


def is_eligible(story: Story, prds: list[PRD]) -> bool:
    return is_startable(story) and not unmet_dependencies(story, prds)


def _in_scope(story: Story, prds: list[PRD], domains: Optional[set[str]]) -> bool:
    if domains is None:
        return True
    return index_prds(prds)[story.prd_id].domain in domains


def scan(prds: list[PRD], domains: Optional[set[str]] = None) -> ScanResult:
    """Classify the current snapshot and pick the next story.

    Args:
        prds: Every loaded PRD (stories outside `domains` still count as
            dependencies)
        domains: Restrict selection to PRDs in these domains

    A blocked foundation story halts selection entirely until an operator
    resets or skips it.
    """
    ordered = ordered_prds(prds)
    scoped = [s for p in ordered for s in p.stories if _in_scope(s, prds, domains)]

    blocked_foundation = [s.id for s in scoped if s.is_foundation and s.status == "blocked"]
    if blocked_foundation:
        return ScanResult(ScanKind.HALTED, blocked_foundation=blocked_foundation)

    waiting: dict[str, list[str]] = {}
    for story in scoped:
        if not is_startable(story):
            continue
        unmet = unmet_dependencies(story, prds)
        if not unmet:
            return ScanResult(ScanKind.NEXT, story=story)
        waiting[story.id] = unmet

    if all(is_terminal(s) for s in scoped):
        return ScanResult(ScanKind.ALL_COMPLETE)
    logger.debug(f"[SCAN] nothing eligible, {len(waiting)} story(s) waiting on dependencies")
    return ScanResult(ScanKind.DEADLOCK, waiting=waiting)


def select_next_story(prds: list[PRD], domains: Optional[set[str]] = None) -> Optional[Story]:
    """First eligible story in scan order, or None.

    None means either everything is finished or nothing can run; use
    scan() to tell those apart.
    """
    return scan(prds, domains).story
