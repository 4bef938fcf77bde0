"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["push", "get", "list", "stats", "validate", "gc", "prune", "clear", "exit", "help"]

# Commands whose first argument is a stored file name.
NAME_COMMANDS = ("get", "list", "prune")

STYLE = Style.from_dict(
    {
        "prompt": "#2E9E6B bold",
        "command": "#0088ff bold",
    }
)

GREEN = "\033[38;2;46;158;107m"
RESET = "\033[0m"

LOGO = f"""{GREEN}
  _                           _
 (_)_ __   ___ _ __ ___  ___| |_ ___  _ __ ___
 | | '_ \\ / __| '__/ _ \\/ __| __/ _ \\| '__/ _ \\
 | | | | | (__| | |  __/\\__ \\ || (_) | | |  __/
 |_|_| |_|\\___|_|  \\___||___/\\__\\___/|_|  \\___|
{RESET}"""

WELCOME_TITLE = "increstore - incremental content-addressed file store"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "increstore> "

HELP_TEXT = """Usage: increstore [--workdir PATH] [--debug] <command> [args]
Without a command an interactive prompt is started.

Available commands:
  push <filename> [--name NAME]       Store a new version of a file (name defaults to its base name)
  get <name> [version|latest] [output]
                                      Rebuild a version into output (defaults to ./<name>)
  list [name]                         List stored files, or the versions of one file
  stats                               Show store statistics and dedup ratio
  validate [--deep]                   Check index against stored chunks (--deep re-hashes everything)
  gc [--dry-run]                      Remove unreferenced chunks and orphan payloads
  prune <name> <version>              Delete one version and release its chunks
  clear                               Clear screen and redisplay welcome message
  help                                Show this help
  exit                                Exit REPL

The working directory defaults to $INCRESTORE_WORKDIR, then ./data.
Examples:
  push report.txt
  push build/report.txt --name report.txt
  get report.txt 2 restored.txt
  list report.txt
  prune report.txt 1
  gc --dry-run"""
