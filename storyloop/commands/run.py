"""
storyloop run - Attempt stories until all are complete or nothing can run.
"""

import sys

from storyloop.lib.config import LoopConfig
from storyloop.lib.verify import CommandVerifier, load_verify_config
from storyloop.commands.common import EXIT_CODES, load_project, parse_domains
from storyloop.prd.loader import apply_progress
from storyloop.runner.locking import domains_lock
from storyloop.workflow.coordinator import Coordinator, OutcomeKind, RunKind


def cmd_run(args, config: LoopConfig) -> int:
    prds, store = load_project(config)
    domains = parse_domains(args) or {p.domain for p in prds}

    unknown = domains - {p.domain for p in prds}
    if unknown:
        print(f"ERROR: Unknown domain(s): {', '.join(sorted(unknown))}", file=sys.stderr)
        return 2

    verify_config = load_verify_config(config.verify_path, timeout=config.verify_timeout)
    verifier = CommandVerifier(verify_config, cwd=config.project_dir)

    with domains_lock(config.lock_dir, domains, timeout=config.lock_timeout):
        # Re-read under the lock; another run may have finished meanwhile
        apply_progress(prds, store)
        coordinator = Coordinator.from_config(config, prds, store, verifier, domains=domains)
        result = coordinator.run(max_attempts=args.max_attempts)

    for outcome in result.outcomes:
        if outcome.kind == OutcomeKind.PASSED:
            print(f"  PASS  {outcome.story_id}")
        elif outcome.kind == OutcomeKind.STUCK:
            print(f"  STUCK {outcome.story_id} -> {outcome.resolution}: {outcome.reason}")
        elif outcome.cancelled:
            print(f"  ABORT {outcome.story_id}")
        else:
            print(f"  FAIL  {outcome.story_id}: {outcome.reason[:100]}")

    print(f"\nResult: {result.kind.value} after {result.attempts} attempt(s)")
    if result.kind == RunKind.DEADLOCK and result.scan:
        for story_id, unmet in result.scan.waiting.items():
            print(f"  {story_id} waiting on {', '.join(unmet)}")
    if result.kind == RunKind.HALTED and result.scan:
        print("  Blocked foundation: " + ", ".join(result.scan.blocked_foundation))

    return EXIT_CODES[result.kind]
