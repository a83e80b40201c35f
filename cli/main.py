"""CLI entry point.

With a command on the command line (``chunkdelta create old new patch``) the
command runs once and the exit code reports its success; without one the
interactive REPL starts.
"""

import asyncio
import os
import sys
from typing import Optional

from common.exceptions import PatchError
from common.logging_config import setup_logging
from cli.commands import get_generator
from cli.parser import ParseError, parse_tokens
from cli.repl import dispatch_command, repl_loop


def extract_global_flags(argv: list[str]) -> tuple[list[str], bool, Optional[str]]:
    """Remove --debug and --tool PATH from argv.

    Returns:
        (remaining args, debug enabled, tool path or None)

    Raises:
        ParseError: If --tool has no value
    """
    remaining = []
    debug = False
    tool_path = None
    index = 0
    while index < len(argv):
        arg = argv[index]
        if arg == '--debug':
            debug = True
        elif arg == '--tool':
            if index + 1 >= len(argv):
                raise ParseError("--tool requires a value")
            tool_path = argv[index + 1]
            index += 1
        else:
            remaining.append(arg)
        index += 1
    return remaining, debug, tool_path


async def run_once(args: list[str], tool_path: Optional[str]) -> int:
    if tool_path:
        get_generator(tool_path=tool_path)
    output = await dispatch_command(parse_tokens(args))
    print(output.message)
    return 0 if output.success else 1


async def run_interactive(tool_path: Optional[str]) -> int:
    if tool_path:
        get_generator(tool_path=tool_path)
    await repl_loop()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for CLI."""
    try:
        args, debug, tool_path = extract_global_flags(sys.argv[1:] if argv is None else argv)
    except ParseError as e:
        print(f"Error: {e}")
        return 2

    log_level = 'DEBUG' if debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)
    for component in ('patcher', 'batch'):
        setup_logging(component, log_level=log_level)
    if debug:
        logger.info("Debug logging enabled")

    logger.info("CLI starting...")
    try:
        if args:
            return asyncio.run(run_once(args, tool_path))
        return asyncio.run(run_interactive(tool_path))
    except ParseError as e:
        print(f"Error: {e}")
        return 2
    except PatchError as e:
        print(f"Error [{e.kind.value}]: {e}")
        return 1
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")


if __name__ == "__main__":
    sys.exit(main())
