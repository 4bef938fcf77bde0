"""Command parser for CLI input."""

import shlex

from catalog.version_index import parse_version_selector
from cli.models import (
    CommandRequest,
    GcCommand,
    GetCommand,
    HelpCommand,
    ListCommand,
    PruneCommand,
    PushCommand,
    StatsCommand,
    ValidateCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    return parse_tokens(tokens)


def parse_tokens(tokens: list[str]) -> CommandRequest:
    """Parse an already split argument list, as received on the command line."""
    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]
    args = tokens[1:]

    if command_name == "push":
        return _parse_push(args)
    elif command_name == "get":
        return _parse_get(args)
    elif command_name == "list":
        return _parse_list(args)
    elif command_name == "stats":
        _expect_no_args("stats", args)
        return StatsCommand()
    elif command_name == "validate":
        return ValidateCommand(deep=_parse_flag("validate", "--deep", args))
    elif command_name == "gc":
        return GcCommand(dry_run=_parse_flag("gc", "--dry-run", args))
    elif command_name == "prune":
        return _parse_prune(args)
    elif command_name == "help":
        return HelpCommand()
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _parse_push(args: list[str]) -> PushCommand:
    """Parse 'push <filename> [--name NAME]' command."""
    filename = None
    name = None

    index = 0
    while index < len(args):
        arg = args[index]
        if arg == "--name":
            if index + 1 >= len(args):
                raise ParseError("--name requires a value")
            name = args[index + 1]
            index += 2
            continue
        if arg.startswith("--name="):
            name = arg.split("=", 1)[1]
        elif filename is None:
            filename = arg
        else:
            raise ParseError("push accepts exactly one file")
        index += 1

    if filename is None:
        raise ParseError("push requires a file: push <filename> [--name NAME]")
    if name is not None and not name.strip():
        raise ParseError("--name must not be empty")

    return PushCommand(filename=filename, name=name)


def _parse_get(args: list[str]) -> GetCommand:
    """Parse 'get <name> [version|latest] [output]' command."""
    if not 1 <= len(args) <= 3:
        raise ParseError("get requires 1 to 3 arguments: <name> [version|latest] [output]")

    name = args[0]
    version = _parse_version(args[1]) if len(args) > 1 else "latest"
    output_path = args[2] if len(args) > 2 else None

    return GetCommand(name=name, version=version, output_path=output_path)


def _parse_list(args: list[str]) -> ListCommand:
    """Parse 'list [name]' command."""
    if len(args) > 1:
        raise ParseError("list accepts at most one file name")
    return ListCommand(name=args[0] if args else None)


def _parse_prune(args: list[str]) -> PruneCommand:
    """Parse 'prune <name> <version>' command."""
    if len(args) != 2:
        raise ParseError("prune requires exactly 2 arguments: <name> <version>")

    name, raw_version = args
    version = _parse_version(raw_version)
    if version == "latest":
        raise ParseError("prune requires an explicit version number")

    return PruneCommand(name=name, version=version)


def _parse_version(value: str):
    try:
        return parse_version_selector(value)
    except ValueError as e:
        raise ParseError(str(e))


def _parse_flag(command: str, flag: str, args: list[str]) -> bool:
    unexpected = [arg for arg in args if arg != flag]
    if unexpected:
        raise ParseError(f"{command} does not accept: {' '.join(unexpected)}")
    return flag in args


def _expect_no_args(command: str, args: list[str]) -> None:
    if args:
        raise ParseError(f"{command} takes no arguments")
