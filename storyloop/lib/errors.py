"""
Exception hierarchy for storyloop.

Outcomes of a single story (failed, stuck, blocked) are never raised.
These exceptions cover bad input, misuse of the coordinator API and
environment problems.
"""


class StoryloopError(Exception):
    """Base class for all storyloop errors."""


class ConfigError(StoryloopError):
    """Configuration file missing or malformed."""


class PRDError(StoryloopError):
    """PRD definitions are inconsistent (duplicate ids, bad references)."""


class UnknownDependency(PRDError):
    """A story or PRD references a dependency that does not exist."""

    def __init__(self, owner: str, missing: str):
        self.owner = owner
        self.missing = missing
        super().__init__(f"{owner} depends on unknown id '{missing}'")


class CyclicDependency(PRDError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__("Dependency cycle: " + " -> ".join(cycle))


class StoryNotEligible(StoryloopError):
    """attempt_story called on a story that may not run."""

    def __init__(self, story_id: str, reason: str):
        self.story_id = story_id
        self.reason = reason
        super().__init__(f"{story_id} is not eligible: {reason}")


class BudgetExhausted(StoryloopError):
    """attempt_story called with no iteration budget left."""

    def __init__(self, story_id: str, used: int, budget: int):
        self.story_id = story_id
        self.used = used
        self.budget = budget
        super().__init__(f"{story_id} has used {used}/{budget} iterations")


class AttemptCancelled(StoryloopError):
    """An in-flight attempt was aborted by the operator."""
