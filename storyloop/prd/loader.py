"""
PRD loading.

PRDs are authored as one JSON file each:
  <project>/prds/<anything>.json

Every file is schema-validated, ids are checked for uniqueness, and the
dependency graph is checked before anything is scheduled. Live status and
iteration counts come from the progress records, not from the PRD files.
"""

import logging
from pathlib import Path

from storyloop.lib.errors import PRDError
from storyloop.lib.validate import validate, validate_file
from storyloop.prd.graph import validate_graph
from storyloop.prd.models import KNOWN_PHASES, PRD, Story
from storyloop.progress.store import ProgressStore

logger = logging.getLogger(__name__)


def parse_prd(data: dict, source: str | None = None) -> PRD:
    """Build a PRD from an already-validated dict."""
    stories = [
        Story(
            id=s["id"],
            title=s["title"],
            prd_id=data["id"],
            status=s.get("status", "pending"),
            description=s.get("description", ""),
            acceptance_criteria=list(s.get("acceptance_criteria", [])),
            dependencies=list(s.get("dependencies", [])),
            estimated_iterations=s.get("estimated_iterations", 1),
            stages=list(s.get("stages", [])),
        )
        for s in data["stories"]
    ]

    if data["phase"] not in KNOWN_PHASES:
        logger.warning(f"PRD {data['id']}: unrecognised phase '{data['phase']}'")

    return PRD(
        id=data["id"],
        title=data["title"],
        phase=data["phase"],
        priority=data["priority"],
        stories=stories,
        dependencies=list(data.get("dependencies", [])),
        domain=data.get("domain"),
        source=source,
    )


def build_prds(documents: list[dict]) -> list[PRD]:
    """Validate and build PRDs from in-memory documents (declaration order kept)."""
    prds = []
    for doc in documents:
        validate(doc, "prd")
        prds.append(parse_prd(doc))
    check_unique_ids(prds)
    validate_graph(prds)
    return prds


def check_unique_ids(prds: list[PRD]) -> None:
    seen_prds: dict[str, str] = {}
    seen_stories: dict[str, str] = {}

    for prd in prds:
        if prd.id in seen_prds:
            raise PRDError(f"Duplicate PRD id '{prd.id}' ({seen_prds[prd.id]}, {prd.source})")
        seen_prds[prd.id] = prd.source or prd.id

        for story in prd.stories:
            if story.id in seen_stories:
                raise PRDError(
                    f"Duplicate story id '{story.id}' in {prd.id} and {seen_stories[story.id]}"
                )
            seen_stories[story.id] = prd.id


def load_prds(prd_dir: Path) -> list[PRD]:
    """Load all PRD files in a directory, sorted by file name.

    Raises:
        PRDError: directory missing, duplicate ids, bad references, cycles
        ValidationError: a file does not match prd.schema.json
    """
    prd_dir = Path(prd_dir)
    if not prd_dir.is_dir():
        raise PRDError(f"PRD directory not found: {prd_dir}")

    prds = []
    for path in sorted(prd_dir.glob("*.json")):
        data = validate_file(path, "prd")
        prds.append(parse_prd(data, source=path.name))

    if not prds:
        logger.warning(f"No PRD files in {prd_dir}")

    check_unique_ids(prds)
    validate_graph(prds)
    logger.info(f"Loaded {len(prds)} PRD(s) from {prd_dir}")
    return prds


def apply_progress(prds: list[PRD], store: ProgressStore) -> None:
    """Overlay recorded status and iteration counts onto loaded stories."""
    for prd in prds:
        if not store.exists(prd.domain):
            continue
        record = store.load(prd.domain)
        for story in prd.stories:
            entry = record.stories.get(story.id)
            if entry is None:
                continue
            story.status = entry.status
            story.iterations_used = entry.iterations_used
