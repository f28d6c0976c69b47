"""
storyloop validate - Check PRD files, references and dependency cycles.
"""

from storyloop.lib.config import LoopConfig
from storyloop.prd.loader import load_prds


def cmd_validate(args, config: LoopConfig) -> int:
    """Load every PRD; loader errors propagate to the CLI."""
    prds = load_prds(config.prd_dir)

    story_count = sum(len(p.stories) for p in prds)
    print(f"OK: {len(prds)} PRD(s), {story_count} story(ies) in {config.prd_dir}")
    for prd in sorted(prds, key=lambda p: p.priority):
        deps = f"  after {', '.join(prd.dependencies)}" if prd.dependencies else ""
        print(f"  [{prd.priority}] {prd.id} ({prd.phase}, {len(prd.stories)} stories){deps}")
    return 0
