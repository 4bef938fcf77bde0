"""CLI entry point."""

import os
import sys
from typing import Optional

from pydantic import ValidationError

from cli.commands import configure
from cli.parser import ParseError, parse_tokens
from cli.repl import dispatch_command, repl_loop
from common.exceptions import IncrestoreError
from common.logging_config import setup_logging

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def split_global_options(argv: list[str]) -> tuple[Optional[str], bool, list[str]]:
    """
    Separate `--workdir PATH` and `--debug` from the command tokens.

    Global options are only recognized before the command name.

    Raises:
        ParseError: If --workdir has no value
    """
    workdir = None
    debug = False
    index = 0

    while index < len(argv):
        arg = argv[index]
        if arg == "--debug":
            debug = True
        elif arg == "--workdir":
            if index + 1 >= len(argv):
                raise ParseError("--workdir requires a path")
            workdir = argv[index + 1]
            index += 1
        elif arg.startswith("--workdir="):
            workdir = arg.split("=", 1)[1]
        else:
            break
        index += 1

    return workdir, debug, argv[index:]


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for CLI."""
    if argv is None:
        argv = sys.argv[1:]

    try:
        workdir, debug, tokens = split_global_options(argv)
    except ParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    log_level = 'DEBUG' if debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level, workdir=workdir)

    if debug:
        logger.info("Debug logging enabled")

    configure(workdir)

    if not tokens:
        logger.info("CLI starting...")
        try:
            repl_loop()
        except Exception as e:
            logger.error(f"CLI error: {e}", exc_info=True)
            raise
        finally:
            logger.info("CLI exiting")
        return EXIT_OK

    try:
        cmd_obj = parse_tokens(tokens)
    except ParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'increstore help' for usage.", file=sys.stderr)
        return EXIT_USAGE

    try:
        print(dispatch_command(cmd_obj, show_progress=sys.stdout.isatty()))
    except IncrestoreError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except ValidationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
