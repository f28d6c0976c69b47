"""
Progress record model.

One record per domain. `blockers`, `notes` and `signals` only ever grow;
the live pointer fields and per-story state entries are the only parts
rewritten in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from storyloop.prd.models import Story


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class Blocker:
    """Why a story was blocked and what was tried first."""
    story_id: str
    reason: str
    attempted_remedies: list[str] = field(default_factory=list)
    escalated: bool = False
    escalated_at: Optional[str] = None
    recorded_at: str = field(default_factory=now_iso)


@dataclass
class Note:
    timestamp: str
    message: str
    story_id: Optional[str] = None


@dataclass
class StoryProgress:
    """Mutable per-story execution state kept by the coordinator."""
    status: str = "pending"
    iterations_used: int = 0
    substages: dict[str, str] = field(default_factory=dict)
    failure_signatures: list[str] = field(default_factory=list)
    alternative_tried: bool = False
    stuck_reason: Optional[str] = None    # why the stuck protocol first ran


@dataclass
class ProgressRecord:
    domain: str
    started: str = field(default_factory=now_iso)
    last_updated: str = field(default_factory=now_iso)
    current_story: Optional[str] = None
    current_stage: Optional[str] = None
    stories: dict[str, StoryProgress] = field(default_factory=dict)
    blockers: list[Blocker] = field(default_factory=list)
    notes: list[Note] = field(default_factory=list)
    signals: list[str] = field(default_factory=list)

    def touch(self) -> None:
        self.last_updated = now_iso()

    def story(self, story_id: str) -> StoryProgress:
        """Per-story entry, created on first access."""
        if story_id not in self.stories:
            self.stories[story_id] = StoryProgress()
        return self.stories[story_id]

    def sync_story(self, story: Story) -> StoryProgress:
        """Copy the story's live status and counter into the record."""
        entry = self.story(story.id)
        entry.status = story.status
        entry.iterations_used = story.iterations_used
        self.touch()
        return entry

    def set_current(self, story_id: Optional[str], stage: Optional[str] = None) -> None:
        self.current_story = story_id
        self.current_stage = stage
        self.touch()

    def add_note(self, message: str, story_id: Optional[str] = None) -> Note:
        note = Note(timestamp=now_iso(), message=message, story_id=story_id)
        self.notes.append(note)
        self.touch()
        return note

    def add_blocker(self, blocker: Blocker) -> None:
        self.blockers.append(blocker)
        self.touch()

    def blockers_for(self, story_id: str) -> list[Blocker]:
        return [b for b in self.blockers if b.story_id == story_id]

    def add_signal(self, signal_id: str) -> bool:
        """Record an emitted signal. Returns False if it was already there."""
        if signal_id in self.signals:
            return False
        self.signals.append(signal_id)
        self.touch()
        return True

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressRecord":
        return cls(
            domain=data["domain"],
            started=data["started"],
            last_updated=data["last_updated"],
            current_story=data.get("current_story"),
            current_stage=data.get("current_stage"),
            stories={k: StoryProgress(**v) for k, v in data.get("stories", {}).items()},
            blockers=[Blocker(**b) for b in data.get("blockers", [])],
            notes=[Note(**n) for n in data.get("notes", [])],
            signals=list(data.get("signals", [])),
        )
