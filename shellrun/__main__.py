"""Command line entry point: ``python -m shellrun "COMMAND"``."""

import argparse
import sys
from typing import Optional

from shellrun.config import set_debug
from shellrun.errors import CommandFailed, DecodeError, ParseError, SpawnError
from shellrun.logger import get_logger, set_logger
from shellrun.pipeline import Command

logger = get_logger("shellrun.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellrun",
        description="Run a shell-style command line without a shell.",
    )
    parser.add_argument("command", help="Command line, e.g. \"ls -l | wc -l\"")
    parser.add_argument(
        "-c",
        "--capture",
        action="store_true",
        help="Capture the output and print it trimmed",
    )
    parser.add_argument(
        "--merge-stderr",
        action="store_true",
        help="Send stderr of every stage to its stdout",
    )
    parser.add_argument("--debug", action="store_true", help="Print trace lines")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Run one command line.

    Returns:
        int: 0 on success, the failing pipeline's exit code, or 1 for
        parse, spawn and decode errors.
    """
    args = build_parser().parse_args(argv)
    if args.debug:
        set_debug(True)
    set_logger(verbose=args.debug)

    command = Command(args.command, merge_stderr=args.merge_stderr)
    try:
        if args.capture:
            print(command.fun())
        else:
            command.run()
        return 0
    except CommandFailed as e:
        logger.error("%s", e)
        return e.exit_code or 1
    except (ParseError, SpawnError, DecodeError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
