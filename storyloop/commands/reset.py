"""
storyloop reset / skip - Operator actions on a single story.

Both take the story's domain lock before reading its progress, so a
running coordinator can't finish the story between the check and the
write.
"""

import sys
from contextlib import contextmanager
from typing import Optional

from storyloop.lib.config import LoopConfig
from storyloop.commands.common import load_project
from storyloop.lib.verify import Verifier
from storyloop.prd.loader import load_prds
from storyloop.prd.models import index_prds, index_stories
from storyloop.runner.locking import domain_lock
from storyloop.workflow.coordinator import Coordinator


def _domain_of(config: LoopConfig, story_id: str) -> Optional[str]:
    """Domain owning the story, from the PRD definitions alone."""
    prds = load_prds(config.prd_dir)
    story = index_stories(prds).get(story_id)
    if story is None:
        return None
    return index_prds(prds)[story.prd_id].domain


@contextmanager
def _locked_coordinator(config: LoopConfig, domain: str):
    """Hold the domain lock, then load current progress under it."""
    with domain_lock(config.lock_dir, domain, timeout=config.lock_timeout):
        prds, store = load_project(config)
        yield Coordinator.from_config(config, prds, store, Verifier(), domains={domain})


def cmd_reset(args, config: LoopConfig) -> int:
    """Return a blocked story to pending with counters cleared."""
    domain = _domain_of(config, args.story)
    if domain is None:
        print(f"ERROR: Story '{args.story}' not found", file=sys.stderr)
        return 2

    with _locked_coordinator(config, domain) as coordinator:
        story = coordinator.get_story(args.story)
        if story.status != "blocked":
            print(f"ERROR: {story.id} is {story.status}; only blocked stories can be reset", file=sys.stderr)
            return 1
        coordinator.reset_story(story.id, note=args.message or "")

    print(f"Reset: {story.id} -> pending (iterations cleared)")
    return 0


def cmd_skip(args, config: LoopConfig) -> int:
    """Mark a story skipped."""
    domain = _domain_of(config, args.story)
    if domain is None:
        print(f"ERROR: Story '{args.story}' not found", file=sys.stderr)
        return 2

    with _locked_coordinator(config, domain) as coordinator:
        story = coordinator.get_story(args.story)
        if story.status == "complete":
            print(f"{story.id} is already complete")
            return 0
        coordinator.skip_story(story.id, reason=args.reason or "")

    print(f"Skipped: {story.id}")
    return 0
