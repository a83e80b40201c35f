"""REPL with prompt_toolkit for user interaction."""

import os
import sys
from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from cli.commands import (
    handle_apply,
    handle_batch_apply,
    handle_batch_create,
    handle_create,
    handle_info,
    handle_verify,
)
from cli.completer import ChunkdeltaCompleter
from cli.constants import (
    HELP_TEXT,
    LOGO,
    PROMPT_TEXT,
    STYLE,
    WELCOME_HELP,
    WELCOME_TITLE,
)
from cli.models import (
    ApplyCommand,
    BatchApplyCommand,
    BatchCreateCommand,
    CommandOutput,
    CommandRequest,
    CreateCommand,
    InfoCommand,
    VerifyCommand,
)
from cli.parser import ParseError, parse_command
from common.exceptions import PatchError


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


async def dispatch_command(cmd_obj: CommandRequest) -> CommandOutput:
    """Dispatch parsed command to appropriate handler."""
    if isinstance(cmd_obj, CreateCommand):
        return await handle_create(cmd_obj)
    elif isinstance(cmd_obj, ApplyCommand):
        return await handle_apply(cmd_obj)
    elif isinstance(cmd_obj, VerifyCommand):
        return await handle_verify(cmd_obj)
    elif isinstance(cmd_obj, BatchCreateCommand):
        return await handle_batch_create(cmd_obj)
    elif isinstance(cmd_obj, BatchApplyCommand):
        return await handle_batch_apply(cmd_obj)
    elif isinstance(cmd_obj, InfoCommand):
        return await handle_info(cmd_obj)
    else:
        return CommandOutput(success=False, message=f"Unknown command type: {type(cmd_obj)}")


async def repl_loop() -> None:
    """Start interactive REPL with prompt_toolkit."""
    history = InMemoryHistory()
    session: PromptSession = PromptSession(
        completer=ChunkdeltaCompleter(), history=history, style=STYLE
    )

    clear_screen()
    show_welcome()

    while True:
        try:
            user_input = await session.prompt_async([("class:prompt", PROMPT_TEXT)])

            if not user_input.strip():
                continue

            if user_input.strip() == "exit":
                print("Goodbye!")
                break

            if user_input.strip() == "help":
                print(HELP_TEXT)
                continue

            if user_input.strip() == "clear":
                clear_screen()
                show_welcome()
                continue

            cmd_obj = parse_command(user_input)
            output = await dispatch_command(cmd_obj)
            print(output.message)

        except ParseError as e:
            print(f"Error: {e}")
        except PatchError as e:
            print(f"Error [{e.kind.value}]: {e}")
        except KeyboardInterrupt:
            continue
        except EOFError:
            print("\nGoodbye!")
            break
