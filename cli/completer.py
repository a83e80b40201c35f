"""Custom completer for the chunkdelta REPL with path autocompletion."""

from pathlib import Path
from typing import Iterable

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from cli.constants import COMMAND_FLAGS, COMMANDS


class ChunkdeltaCompleter(Completer):
    """
    Custom completer that provides:
    - Command name completion for the first token
    - Option completion for tokens starting with '-'
    - File and directory completion relative to the working directory
    """

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
        if command not in COMMAND_FLAGS:
            return

        current_word = "" if is_typing_new_token else tokens[-1]
        if current_word.startswith("-"):
            already_used = set(tokens[1:-1])
            yield from self._complete_flags(command, current_word, already_used)
            return

        yield from self._complete_paths(current_word)

    def _complete_commands(self, partial: str) -> Iterable[Completion]:
        """Complete command names matching the partial input."""
        partial_lower = partial.lower()
        for cmd in COMMANDS:
            if cmd.startswith(partial_lower):
                yield Completion(cmd, start_position=-len(partial))

    def _complete_flags(self, command: str, partial: str, exclude: set) -> Iterable[Completion]:
        for flag in COMMAND_FLAGS[command]:
            if flag.startswith(partial) and flag not in exclude:
                yield Completion(flag, start_position=-len(partial))

    def _complete_paths(self, partial: str) -> Iterable[Completion]:
        """
        Complete paths below the directory part of the partial input.

        Directories are offered with a trailing slash so completion can continue.
        """
        directory, _, prefix = partial.rpartition("/")
        base = Path(directory) if directory else Path.cwd()
        if directory == "" and partial.startswith("/"):
            base = Path("/")

        if not base.is_dir():
            return

        entries = []
        for item in base.iterdir():
            if not item.name.startswith(prefix) or (item.name.startswith(".") and not prefix.startswith(".")):
                continue
            name = item.name + "/" if item.is_dir() else item.name
            entries.append(f"{directory}/{name}" if directory or partial.startswith("/") else name)

        for path in sorted(entries):
            yield Completion(path, start_position=-len(partial))
