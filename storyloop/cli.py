#!/usr/bin/env python3
"""storyloop CLI entrypoint."""

import argparse
import logging
import sys
from pathlib import Path

from storyloop.commands import next as cmd_next_module
from storyloop.commands import reset as cmd_reset_module
from storyloop.commands import run as cmd_run_module
from storyloop.commands import status as cmd_status_module
from storyloop.commands import validate as cmd_validate_module
from storyloop.lib.config import load_loop_config
from storyloop.lib.errors import ConfigError, PRDError, StoryloopError
from storyloop.lib.validate import ValidationError


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # transitions logs every trigger at INFO
    logging.getLogger("transitions").setLevel(logging.WARNING)


def cmd_validate(args, config):
    return cmd_validate_module.cmd_validate(args, config)


def cmd_next(args, config):
    return cmd_next_module.cmd_next(args, config)


def cmd_status(args, config):
    return cmd_status_module.cmd_status(args, config)


def cmd_run(args, config):
    return cmd_run_module.cmd_run(args, config)


def cmd_reset(args, config):
    return cmd_reset_module.cmd_reset(args, config)


def cmd_skip(args, config):
    return cmd_reset_module.cmd_skip(args, config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='storyloop', description='Story execution coordinator')
    parser.add_argument('--project', '-p', default='.', help='Project directory (contains storyloop.env)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # storyloop validate
    p_validate = subparsers.add_parser('validate', help='Check PRD files and dependency graph')
    p_validate.set_defaults(func=cmd_validate)

    # storyloop next
    p_next = subparsers.add_parser('next', help='Show the next eligible story')
    p_next.add_argument('--domain', '-d', action='append', help='Restrict to domain (repeatable)')
    p_next.set_defaults(func=cmd_next)

    # storyloop status
    p_status = subparsers.add_parser('status', help='Show progress and blockers')
    p_status.add_argument('--domain', '-d', action='append', help='Restrict to domain (repeatable)')
    p_status.set_defaults(func=cmd_status)

    # storyloop run
    p_run = subparsers.add_parser('run', help='Run stories until done, deadlocked or halted')
    p_run.add_argument('--domain', '-d', action='append', help='Only run this domain (repeatable)')
    p_run.add_argument('--max-attempts', '-n', type=int, default=None, help='Stop after N attempts')
    p_run.set_defaults(func=cmd_run)

    # storyloop reset
    p_reset = subparsers.add_parser('reset', help='Return a blocked story to pending')
    p_reset.add_argument('story', help='Story ID')
    p_reset.add_argument('--message', '-m', help='Note for the progress record')
    p_reset.set_defaults(func=cmd_reset)

    # storyloop skip
    p_skip = subparsers.add_parser('skip', help='Mark a story skipped')
    p_skip.add_argument('story', help='Story ID')
    p_skip.add_argument('--reason', '-r', help='Why it is skipped')
    p_skip.set_defaults(func=cmd_skip)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_loop_config(Path(args.project))
        return args.func(args, config)
    except (ConfigError, PRDError, ValidationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except StoryloopError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
