"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["create", "apply", "verify", "batch-create", "batch-apply", "info", "clear", "exit", "help"]

COMMAND_FLAGS = {
    "create": ["--compression", "--chunk-size", "--chunked", "--timeout", "--no-verify"],
    "apply": ["--timeout", "--no-verify"],
    "verify": ["--timeout"],
    "batch-create": ["--compression", "--chunk-size", "--timeout", "--parallel"],
    "batch-apply": ["--timeout", "--parallel"],
    "info": ["--compare"],
}

STYLE = Style.from_dict(
    {
        "prompt": "#F45935 bold",
        "command": "#0088ff bold",
    }
)

RED_ORANGE = "\033[38;2;244;89;53m"
GREEN = "\033[32m"
RESET = "\033[0m"

LOGO = f"""{RED_ORANGE}
  ┌─┐┬ ┬┬ ┬┌┐┌┬┌─┌┬┐┌─┐┬  ┌┬┐┌─┐
  │  ├─┤│ │││││├┴┐ ││├┤ │   │ ├─┤
  └─┘┴ ┴└─┘┘└┘┴ ┴─┴┘└─┘┴─┘ ┴ ┴ ┴
{RESET}"""

WELCOME_TITLE = "chunkdelta - binary patches for files of any size"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "chunkdelta> "

HELP_TEXT = """Available commands:
  create <old> <new> <patch> [options]          Create a patch turning <old> into <new>
      --compression N   Compression level 0-9 (default 9)
      --chunk-size N    Chunk size in bytes (implies --chunked)
      --chunked         Always produce a chunk container
      --no-verify       Skip the tool's checksum verification
  apply <old> <patch> <output> [--no-verify]    Apply a patch to <old>
  verify <old> <patch> <expected>               Check that a patch reproduces <expected>
  batch-create <old-dir> <new-dir> <patches-dir> [--parallel N]
                                                One patch per file of <new-dir>
  batch-apply <old-dir> <patches-dir> <output-dir> [--parallel N]
                                                Apply every patch of <patches-dir>
  info <patch> [--compare <other-patch>]        Show patch details
  clear                                         Clear screen
  help                                          Show this help
  exit                                          Exit REPL

Every patch command also accepts --timeout SECONDS.
Global flags (command line only): --tool PATH, --debug.
Examples:
  create game-v1.bin game-v2.bin update.xdelta --compression 6
  apply game-v1.bin update.xdelta game-v2.bin
  batch-create old/ new/ patches/ --parallel 2
  info update.xdelta"""
