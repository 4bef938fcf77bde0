"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal, Union

from common.types import VersionSelector


@dataclass(frozen=True)
class PushCommand:
    """Push a new version of a file."""

    filename: str
    name: str | None = None
    command: Literal["push"] = "push"


@dataclass(frozen=True)
class GetCommand:
    """Rebuild a stored version into a file."""

    name: str
    version: VersionSelector = "latest"
    output_path: str | None = None
    command: Literal["get"] = "get"


@dataclass(frozen=True)
class ListCommand:
    """List stored files, or the versions of one file."""

    name: str | None = None
    command: Literal["list"] = "list"


@dataclass(frozen=True)
class StatsCommand:
    command: Literal["stats"] = "stats"


@dataclass(frozen=True)
class ValidateCommand:
    """Check the index against the payload area."""

    deep: bool = False
    command: Literal["validate"] = "validate"


@dataclass(frozen=True)
class GcCommand:
    """Collect unreferenced chunks."""

    dry_run: bool = False
    command: Literal["gc"] = "gc"


@dataclass(frozen=True)
class PruneCommand:
    """Delete one version of a file."""

    name: str
    version: int
    command: Literal["prune"] = "prune"


@dataclass(frozen=True)
class HelpCommand:
    command: Literal["help"] = "help"


CommandRequest = Union[
    PushCommand,
    GetCommand,
    ListCommand,
    StatsCommand,
    ValidateCommand,
    GcCommand,
    PruneCommand,
    HelpCommand,
]
