"""Command handler functions for CLI operations."""

from pathlib import Path
from typing import Callable, Optional

from catalog.services.push_service import PushState
from catalog.store import IncrementalStore
from cli.constants import HELP_TEXT
from cli.models import (
    GcCommand,
    GetCommand,
    HelpCommand,
    ListCommand,
    PruneCommand,
    PushCommand,
    StatsCommand,
    ValidateCommand,
)
from cli.utils import format_file_size, format_timestamp
from common.logging_config import get_logger

logger = get_logger(__name__)


_store: Optional[IncrementalStore] = None
_workdir: Optional[str] = None


def configure(workdir: Optional[str]) -> None:
    """
    Select the working directory used by handlers without an explicit store.

    Args:
        workdir: Store directory, or None for $INCRESTORE_WORKDIR / ./data
    """
    global _store, _workdir
    _workdir = workdir
    _store = None


def get_store() -> IncrementalStore:
    """
    Get or open the global IncrementalStore instance.

    Returns:
        IncrementalStore instance
    """
    global _store
    if _store is None:
        logger.debug(f"Opening store [workdir={_workdir or 'default'}]")
        _store = IncrementalStore.open(_workdir)
    return _store


def handle_push(
    cmd: PushCommand,
    store: Optional[IncrementalStore] = None,
    on_state: Optional[Callable[[PushState], None]] = None,
) -> str:
    """
    Handle 'push' command.

    Args:
        cmd: PushCommand with filename and optional logical name
        store: Optional IncrementalStore for dependency injection (testing)
        on_state: Optional progress callback

    Returns:
        Summary of the new version
    """
    logger.info(f"Executing push command: filename={cmd.filename} name={cmd.name}")
    if store is None:
        store = get_store()

    result = store.push(Path(cmd.filename), cmd.name, on_state=on_state)

    return (
        f"Pushed {result.file_name} as version {result.version_number}\n"
        f"  size:    {format_file_size(result.total_size)} in {result.chunk_count} chunks\n"
        f"  new:     {result.new_chunks} chunks ({format_file_size(result.bytes_written)} written)\n"
        f"  reused:  {result.reused_chunks} chunks\n"
        f"  saved:   {format_file_size(result.bytes_saved)}"
    )


def handle_get(cmd: GetCommand, store: Optional[IncrementalStore] = None) -> str:
    """
    Handle 'get' command.

    Args:
        cmd: GetCommand with name, version selector and optional output path
        store: Optional IncrementalStore for dependency injection (testing)

    Returns:
        Location of the rebuilt file
    """
    logger.info(f"Executing get command: name={cmd.name} version={cmd.version}")
    if store is None:
        store = get_store()

    destination = Path(cmd.output_path) if cmd.output_path else None
    version = store.get_version(cmd.name, cmd.version)
    written = store.export(cmd.name, version.version_number, destination)

    return (
        f"Restored {cmd.name} version {version.version_number} "
        f"({format_file_size(version.total_size)}) to {written}"
    )


def handle_list(cmd: ListCommand, store: Optional[IncrementalStore] = None) -> str:
    """
    Handle 'list' command.

    Without a name, lists every stored file with its latest version;
    with a name, lists that file's versions.
    """
    if store is None:
        store = get_store()

    if cmd.name is None:
        files = store.list_files()
        if not files:
            return "No files stored"
        lines = [f"{len(files)} file(s):"]
        for entry in files:
            lines.append(
                f"  {entry.file_name}  latest=v{entry.latest_version}  "
                f"updated {format_timestamp(entry.updated_at)}"
            )
        return "\n".join(lines)

    lines = []
    for info in store.list_versions(cmd.name):
        lines.append(
            f"  v{info.version_number}  {format_file_size(info.total_size):>12}  "
            f"{info.chunk_count:>6} chunks  {format_timestamp(info.created_at)}  "
            f"{info.whole_file_fingerprint[:16]}"
        )
    if not lines:
        return f"No versions stored for {cmd.name}"
    return "\n".join([f"{cmd.name}: {len(lines)} version(s)"] + lines)


def handle_stats(cmd: StatsCommand, store: Optional[IncrementalStore] = None) -> str:
    """Handle 'stats' command."""
    if store is None:
        store = get_store()

    stats = store.stats()
    return (
        f"Files:          {stats.file_count}\n"
        f"Versions:       {stats.version_count}\n"
        f"Unique chunks:  {stats.chunk_count} ({stats.unreferenced_chunks} unreferenced)\n"
        f"Logical size:   {format_file_size(stats.logical_bytes)}\n"
        f"Stored size:    {format_file_size(stats.stored_bytes)}\n"
        f"Dedup ratio:    {stats.dedup_ratio:.2f}x"
    )


def handle_validate(cmd: ValidateCommand, store: Optional[IncrementalStore] = None) -> str:
    """
    Handle 'validate' command.

    Returns:
        Report text; the first line starts with OK or FAILED
    """
    if store is None:
        store = get_store()

    report = store.validate(deep=cmd.deep)
    lines = [
        f"{'OK' if report.ok else 'FAILED'}: checked {report.checked_chunks} chunks "
        f"and {report.checked_versions} versions"
    ]
    for fingerprint in report.missing_payloads:
        lines.append(f"  missing payload: {fingerprint}")
    for fingerprint in report.corrupt_chunks:
        lines.append(f"  corrupt chunk:   {fingerprint}")
    for label in report.corrupt_versions:
        lines.append(f"  corrupt version: {label}")
    if report.orphan_payloads:
        lines.append(f"  {len(report.orphan_payloads)} orphan payload(s), run 'gc' to reclaim")
    if report.refcount_mismatches:
        lines.append(f"  {len(report.refcount_mismatches)} chunk(s) with drifted reference counts")
    return "\n".join(lines)


def handle_gc(cmd: GcCommand, store: Optional[IncrementalStore] = None) -> str:
    """Handle 'gc' command."""
    if store is None:
        store = get_store()

    report = store.collect_garbage(dry_run=cmd.dry_run)
    verb = "Would remove" if report.dry_run else "Removed"
    return (
        f"{verb} {len(report.removed_chunks)} unreferenced chunk(s) and "
        f"{len(report.removed_orphans)} orphan payload(s), "
        f"{format_file_size(report.reclaimed_bytes)}"
    )


def handle_prune(cmd: PruneCommand, store: Optional[IncrementalStore] = None) -> str:
    """Handle 'prune' command."""
    logger.info(f"Executing prune command: name={cmd.name} version={cmd.version}")
    if store is None:
        store = get_store()

    info = store.prune_version(cmd.name, cmd.version)
    return (
        f"Pruned {info.file_name} version {info.version_number}; "
        f"run 'gc' to reclaim unreferenced chunks"
    )


def handle_help(cmd: HelpCommand, store: Optional[IncrementalStore] = None) -> str:
    return HELP_TEXT
