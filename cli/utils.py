"""Utility functions for CLI operations."""

import sys
from typing import Optional, TextIO

from catalog.services.push_service import PushState
from cli.constants import GREEN, RESET

_STATE_LABELS = {
    PushState.START: "opening",
    PushState.CHUNKING: "chunking",
    PushState.ADDRESSING: "fingerprinting",
    PushState.DEDUP_RESOLVE: "deduplicating",
    PushState.PERSIST_NEW_CHUNKS: "writing new chunks",
    PushState.COMMIT_VERSION: "committing",
}


class PushProgress:
    """Callable that renders push pipeline states on a single terminal line."""

    def __init__(self, filename: str, stream: Optional[TextIO] = None):
        """
        Initialize the progress display.

        Args:
            filename: Display name for the file
            stream: Output stream, stdout by default
        """
        self.filename = filename
        self.stream = stream or sys.stdout
        self._finished = False

    def __call__(self, state: PushState) -> None:
        if state in (PushState.DONE, PushState.FAILED):
            self._finish()
            return
        label = _STATE_LABELS.get(state, state.value)
        self.stream.write(f"\rPushing {self.filename}: {GREEN}{label:<20}{RESET}")
        self.stream.flush()

    def _finish(self) -> None:
        """Finalize progress display with newline."""
        if self._finished:
            return
        self._finished = True
        self.stream.write('\n')
        self.stream.flush()


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def format_timestamp(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S")
