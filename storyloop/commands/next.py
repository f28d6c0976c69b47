"""
storyloop next - Show which story would run next, without running it.
"""

from storyloop.lib.config import LoopConfig
from storyloop.commands.common import EXIT_CODES, load_project, parse_domains
from storyloop.workflow.coordinator import RunKind
from storyloop.workflow.selector import ScanKind, scan


def cmd_next(args, config: LoopConfig) -> int:
    prds, _store = load_project(config)
    result = scan(prds, parse_domains(args))

    if result.kind == ScanKind.NEXT:
        story = result.story
        print(f"Next: {story.id}  {story.title}")
        print(f"  PRD: {story.prd_id} ({story.phase})")
        print(f"  Status: {story.status}, iterations {story.iterations_used}/{story.estimated_iterations}")
        for criterion in story.acceptance_criteria:
            print(f"  - {criterion}")
        return 0

    if result.kind == ScanKind.ALL_COMPLETE:
        print("All stories complete.")
        return EXIT_CODES[RunKind.ALL_COMPLETE]

    if result.kind == ScanKind.HALTED:
        print("HALTED: blocked foundation story(ies): " + ", ".join(result.blocked_foundation))
        print("Reset or skip them to continue: storyloop reset <story>")
        return EXIT_CODES[RunKind.HALTED]

    print("DEADLOCK: no story is eligible but work remains.")
    for story_id, unmet in result.waiting.items():
        print(f"  {story_id} waiting on {', '.join(unmet)}")
    return EXIT_CODES[RunKind.DEADLOCK]
