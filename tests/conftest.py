"""Shared fixtures for storyloop tests."""

import pytest

from storyloop.lib.errors import AttemptCancelled
from storyloop.lib.verify import Verifier, VerifyResult
from storyloop.prd.models import PRD, Story
from storyloop.progress.store import MemoryProgressStore

CANCEL = "cancel"


class FakeVerifier(Verifier):
    """Scripted verifier.

    script maps story id -> list of results consumed in order. Each entry
    is True (pass), a string (failure with that signature) or CANCEL.
    Once a story's script runs out, further attempts fail with "exhausted".
    """

    def __init__(self, script=None, alternative=True):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.alternative = alternative
        self.calls: list[tuple[str, str]] = []

    def has_alternative(self, story):
        return self.alternative

    def run(self, story, approach="primary"):
        self.calls.append((story.id, approach))
        queue = self.script.get(story.id, [])
        step = queue.pop(0) if queue else "exhausted"
        if step == CANCEL:
            raise AttemptCancelled("operator abort")
        if step is True:
            return VerifyResult(passed=True, stages={"typecheck": "passed"})
        return VerifyResult(passed=False, signature=step, stages={"typecheck": "failed"})


def make_story(story_id, deps=None, status="pending", budget=3, used=0):
    return Story(
        id=story_id,
        title=f"Story {story_id}",
        prd_id="",
        status=status,
        dependencies=list(deps or []),
        estimated_iterations=budget,
        iterations_used=used,
        acceptance_criteria=["type check passes"],
    )


def make_prd(prd_id, stories, phase="domain", priority=1, deps=None, domain=None):
    return PRD(
        id=prd_id,
        title=f"PRD {prd_id}",
        phase=phase,
        priority=priority,
        stories=stories,
        dependencies=list(deps or []),
        domain=domain,
    )


def prd_document(prd_id, stories, phase="domain", priority=1, **extra):
    """A PRD as it would appear in a JSON file."""
    return {"id": prd_id, "title": f"PRD {prd_id}", "phase": phase, "priority": priority,
            "stories": stories, **extra}


@pytest.fixture
def store():
    return MemoryProgressStore()
