"""
storyloop - story execution coordinator for autonomous coding loops.

Selects the next runnable story across a set of PRDs, runs one bounded
attempt through an external verifier, and keeps an append-only progress
record per domain.
"""

__version__ = "0.1.0"
