"""Tests for storyloop.workflow.state_machine module.

The FSM itself is tested in test_fsm.py.
"""

import pytest

from storyloop.workflow.state_machine import (
    InvalidTransition,
    StoryState,
    is_terminal,
    transition,
)

from conftest import make_story


class TestStoryStateEnum:

    def test_values_match_fsm(self):
        from storyloop.workflow.fsm import STATES
        assert {s.value for s in StoryState} == set(STATES)


class TestTransition:
    """Tests for transition() function."""

    def test_valid_transition(self):
        story = make_story("S1")
        transition(story, StoryState.ACTIVE)
        assert story.status == "active"

    def test_self_transition_is_noop(self):
        story = make_story("S1", status="active")
        transition(story, StoryState.ACTIVE)
        assert story.status == "active"

    def test_complete_is_terminal(self):
        story = make_story("S1", status="complete")
        with pytest.raises(InvalidTransition) as exc:
            transition(story, StoryState.PENDING)
        assert exc.value.story_id == "S1"
        assert "complete -> pending" in str(exc.value)

    def test_skipped_is_terminal(self):
        story = make_story("S1", status="skipped")
        with pytest.raises(InvalidTransition):
            transition(story, StoryState.ACTIVE)

    def test_pending_cannot_complete_without_attempt(self):
        story = make_story("S1")
        with pytest.raises(InvalidTransition):
            transition(story, StoryState.COMPLETE)

    def test_blocked_only_resets_to_pending(self):
        story = make_story("S1", status="blocked")
        with pytest.raises(InvalidTransition):
            transition(story, StoryState.ACTIVE)
        transition(story, StoryState.PENDING)
        assert story.status == "pending"


class TestQueries:

    def test_is_terminal(self):
        assert is_terminal(make_story("S1", status="complete"))
        assert is_terminal(make_story("S2", status="skipped"))
        assert not is_terminal(make_story("S3", status="blocked"))
