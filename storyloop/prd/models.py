"""
Data models for PRDs and stories.
"""

from dataclasses import dataclass, field
from typing import Optional

FOUNDATION_PHASE = "foundation"
KNOWN_PHASES = ("foundation", "refactoring", "cross-cutting", "integrations", "domain")


@dataclass
class Story:
    """The atomic unit of work.

    Definitions come from human-authored PRD files. `status` and
    `iterations_used` are the only fields the coordinator mutates.
    """
    id: str                                    # FOUND-SCHEMA-01
    title: str
    prd_id: str
    status: str = "pending"                    # pending, active, blocked, complete, skipped
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    estimated_iterations: int = 1
    iterations_used: int = 0
    stages: list[str] = field(default_factory=list)   # schema, server, route, ...
    phase: str = ""                            # Copied from the owning PRD

    @property
    def is_foundation(self) -> bool:
        return self.phase == FOUNDATION_PHASE


@dataclass
class PRD:
    """A named group of stories sharing a phase and priority."""
    id: str
    title: str
    phase: str
    priority: int
    stories: list[Story] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    domain: Optional[str] = None               # Progress record key, defaults to id
    source: Optional[str] = None               # File the PRD was loaded from

    def __post_init__(self):
        if not self.domain:
            self.domain = self.id
        for story in self.stories:
            story.prd_id = self.id
            story.phase = self.phase

    @property
    def is_complete(self) -> bool:
        """True when every story is complete or skipped."""
        return all(s.status in ("complete", "skipped") for s in self.stories)


def index_stories(prds: list[PRD]) -> dict[str, Story]:
    """Map story id -> Story across all PRDs."""
    return {story.id: story for prd in prds for story in prd.stories}


def index_prds(prds: list[PRD]) -> dict[str, PRD]:
    """Map PRD id -> PRD."""
    return {prd.id: prd for prd in prds}


def ordered_prds(prds: list[PRD]) -> list[PRD]:
    """PRDs in scan order: ascending priority, declaration order on ties."""
    # sorted() is stable, so equal priorities keep their input order
    return sorted(prds, key=lambda p: p.priority)
