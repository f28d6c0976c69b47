"""
storyloop status - Show story status, iteration use and blockers per PRD.
"""

from storyloop.lib.config import LoopConfig
from storyloop.commands.common import load_project, parse_domains
from storyloop.prd.graph import transitive_dependents
from storyloop.prd.models import index_stories, ordered_prds
from storyloop.runner.locking import is_domain_locked
from storyloop.workflow.selector import scan
from storyloop.workflow.state_machine import is_terminal

STATUS_ICONS = {
    "pending": " ",
    "active": ">",
    "blocked": "!",
    "complete": "x",
    "skipped": "-",
}


def cmd_status(args, config: LoopConfig) -> int:
    prds, store = load_project(config)
    domains = parse_domains(args)
    stories = index_stories(prds)

    for prd in ordered_prds(prds):
        if domains is not None and prd.domain not in domains:
            continue

        done = sum(1 for s in prd.stories if is_terminal(s))
        running = " (running)" if is_domain_locked(config.lock_dir, prd.domain) else ""
        print(f"{prd.id} [{prd.phase}, priority {prd.priority}] {done}/{len(prd.stories)} done{running}")

        for story in prd.stories:
            icon = STATUS_ICONS.get(story.status, "?")
            print(
                f"  [{icon}] {story.id:<20} {story.status:<9} "
                f"{story.iterations_used}/{story.estimated_iterations}  {story.title}"
            )

        if store.exists(prd.domain):
            record = store.load(prd.domain)
            for story in prd.stories:
                if story.status != "blocked":
                    continue
                for blocker in record.blockers_for(story.id):
                    flag = " (escalated)" if blocker.escalated else ""
                    print(f"  BLOCKER {blocker.story_id}{flag}: {blocker.reason}")
                    for remedy in blocker.attempted_remedies:
                        print(f"    tried: {remedy}")
                held = sorted(
                    sid for sid in transitive_dependents(prds, story.id)
                    if not is_terminal(stories[sid])
                )
                if held:
                    print(f"    holds back: {', '.join(held)}")
        print()

    result = scan(prds, domains)
    if result.story:
        print(f"Next: {result.story.id}")
    else:
        print(f"Next: none ({result.kind.value})")
    return 0
