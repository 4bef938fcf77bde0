"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory
from pydantic import ValidationError

from catalog.store import IncrementalStore
from cli.commands import (
    get_store,
    handle_gc,
    handle_get,
    handle_help,
    handle_list,
    handle_prune,
    handle_push,
    handle_stats,
    handle_validate,
)
from cli.completer import IncrestoreCompleter
from cli.constants import (
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
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
from cli.parser import ParseError, parse_command
from cli.utils import PushProgress
from common.exceptions import IncrestoreError
from common.logging_config import get_logger

logger = get_logger(__name__)


def clear_screen() -> None:
    """Clear the terminal screen (cross-platform)."""
    if sys.platform == "win32":
        os.system("cls")
    else:
        os.system("clear")


def show_welcome() -> None:
    print(LOGO)
    print(WELCOME_TITLE)
    print(WELCOME_HELP)


def dispatch_command(
    cmd_obj, store: Optional[IncrementalStore] = None, show_progress: bool = False
) -> str:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, PushCommand):
        progress = PushProgress(cmd_obj.name or cmd_obj.filename) if show_progress else None
        return handle_push(cmd_obj, store, on_state=progress)
    elif isinstance(cmd_obj, GetCommand):
        return handle_get(cmd_obj, store)
    elif isinstance(cmd_obj, ListCommand):
        return handle_list(cmd_obj, store)
    elif isinstance(cmd_obj, StatsCommand):
        return handle_stats(cmd_obj, store)
    elif isinstance(cmd_obj, ValidateCommand):
        return handle_validate(cmd_obj, store)
    elif isinstance(cmd_obj, GcCommand):
        return handle_gc(cmd_obj, store)
    elif isinstance(cmd_obj, PruneCommand):
        return handle_prune(cmd_obj, store)
    elif isinstance(cmd_obj, HelpCommand):
        return handle_help(cmd_obj, store)
    else:
        return f"Unknown command type: {type(cmd_obj)}"


def _stored_names() -> list[str]:
    try:
        return [entry.file_name for entry in get_store().list_files()]
    except IncrestoreError as e:
        logger.debug(f"Name completion unavailable: {e}")
        return []


def repl_loop() -> None:
    """Start interactive REPL with prompt_toolkit."""
    completer = IncrestoreCompleter(stored_names=_stored_names)
    history = InMemoryHistory()
    session: PromptSession = PromptSession(
        completer=completer, history=history, style=STYLE
    )

    clear_screen()
    show_welcome()

    while True:
        try:
            user_input = session.prompt([("class:prompt", PROMPT_TEXT)])

            if not user_input.strip():
                continue

            if user_input.strip() == "exit":
                print("Goodbye!")
                break

            if user_input.strip() == "clear":
                clear_screen()
                show_welcome()
                continue

            cmd_obj = parse_command(user_input)
            result = dispatch_command(cmd_obj, show_progress=sys.stdout.isatty())
            print(result)

        except ParseError as e:
            print(f"Error: {e}")
        except ValidationError as e:
            print(f"Error: invalid configuration: {e}")
        except IncrestoreError as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error: {e}")
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nGoodbye!")
            break
