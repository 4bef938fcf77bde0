"""Custom completer for the increstore REPL."""

from pathlib import Path
from typing import Callable, Iterable, List, Optional

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMANDS, NAME_COMMANDS


class IncrestoreCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Local file path completion for the 'push' command
    - Stored file name completion for 'get', 'list' and 'prune'
    """

    def __init__(
        self,
        stored_names: Optional[Callable[[], List[str]]] = None,
        base_dir: Optional[Path] = None,
    ):
        self.stored_names = stored_names
        self.base_dir = base_dir

    def get_completions(
        self, document: Document, complete_event
    ) -> Iterable[Completion]:
        """
        Generate completions based on cursor position and context.
        """
        text = document.text_before_cursor
        tokens = text.split()

        is_typing_new_token = text.endswith(" ") or not tokens

        if not tokens or (len(tokens) == 1 and not is_typing_new_token):
            yield from self._complete_commands(tokens[0] if tokens else "")
            return

        command = tokens[0].lower()
        current_word = "" if is_typing_new_token else tokens[-1]
        arg_index = len(tokens) - 1 if is_typing_new_token else len(tokens) - 2

        if command == "push" and arg_index == 0:
            yield from self._complete_paths(current_word)
        elif command in NAME_COMMANDS and arg_index == 0:
            yield from self._complete_stored_names(current_word)

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))

    def _complete_paths(self, partial: str) -> Iterable[Completion]:
        """
        Complete local paths. Directories are suggested with a trailing '/'.
        """
        base = self.base_dir or Path.cwd()
        directory_part, _, name_part = partial.rpartition("/")
        search_dir = base / directory_part if directory_part else base

        if not search_dir.is_dir():
            return

        prefix = f"{directory_part}/" if directory_part else ""
        for item in sorted(search_dir.iterdir()):
            if item.name.startswith(".") and not name_part.startswith("."):
                continue
            if not item.name.startswith(name_part):
                continue
            suffix = "/" if item.is_dir() else ""
            yield Completion(f"{prefix}{item.name}{suffix}", start_position=-len(partial))

    def _complete_stored_names(self, partial: str) -> Iterable[Completion]:
        if self.stored_names is None:
            return
        for name in sorted(self.stored_names()):
            if name.startswith(partial):
                yield Completion(name, start_position=-len(partial))
