"""
Helpers shared by the storyloop commands.
"""

from typing import Optional

from storyloop.lib.config import LoopConfig
from storyloop.prd.loader import apply_progress, load_prds
from storyloop.prd.models import PRD
from storyloop.progress.store import JsonProgressStore
from storyloop.workflow.coordinator import RunKind

EXIT_CODES = {
    RunKind.ALL_COMPLETE: 0,
    RunKind.DEADLOCK: 3,
    RunKind.HALTED: 4,
    RunKind.ATTEMPT_LIMIT: 5,
    RunKind.CANCELLED: 130,
}


def load_project(config: LoopConfig) -> tuple[list[PRD], JsonProgressStore]:
    """Load PRDs and overlay recorded progress."""
    prds = load_prds(config.prd_dir)
    store = JsonProgressStore(config.progress_dir)
    apply_progress(prds, store)
    return prds, store


def parse_domains(args) -> Optional[set[str]]:
    domains = getattr(args, 'domain', None)
    return set(domains) if domains else None
