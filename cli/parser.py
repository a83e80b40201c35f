"""Command parser for CLI input."""

import shlex
from typing import Callable, Optional

from cli.models import (
    ApplyCommand,
    BatchApplyCommand,
    BatchCreateCommand,
    CommandRequest,
    CreateCommand,
    InfoCommand,
    VerifyCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Create/Apply/Verify/BatchCreate/BatchApply/Info)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    return parse_tokens(tokens)


def parse_tokens(tokens: list[str]) -> CommandRequest:
    """Parse an already split command line (e.g. sys.argv[1:]).

    Raises:
        ParseError: If command syntax is invalid
    """
    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "create":
        return _parse_create(tokens[1:])
    elif command_name == "apply":
        return _parse_apply(tokens[1:])
    elif command_name == "verify":
        return _parse_verify(tokens[1:])
    elif command_name == "batch-create":
        return _parse_batch_create(tokens[1:])
    elif command_name == "batch-apply":
        return _parse_batch_apply(tokens[1:])
    elif command_name == "info":
        return _parse_info(tokens[1:])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _split_flags(
    command: str,
    args: list[str],
    value_flags: set[str],
    switch_flags: frozenset[str] = frozenset(),
) -> tuple[list[str], dict[str, Optional[str]]]:
    """Separate positional arguments from --flags.

    Returns:
        (positionals, flags) where switches map to None
    """
    positionals: list[str] = []
    flags: dict[str, Optional[str]] = {}
    index = 0
    while index < len(args):
        arg = args[index]
        if arg in value_flags:
            if index + 1 >= len(args):
                raise ParseError(f"{command}: {arg} requires a value")
            flags[arg] = args[index + 1]
            index += 2
            continue
        if arg in switch_flags:
            flags[arg] = None
            index += 1
            continue
        if arg.startswith("--"):
            raise ParseError(f"{command}: unknown option {arg}")
        positionals.append(arg)
        index += 1
    return positionals, flags


def _convert(command: str, flags: dict, flag: str, convert: Callable, minimum=None):
    if flag not in flags:
        return None
    try:
        value = convert(flags[flag])
    except ValueError:
        raise ParseError(f"{command}: {flag} expects a number, got '{flags[flag]}'")
    if minimum is not None and value < minimum:
        raise ParseError(f"{command}: {flag} must be >= {minimum}")
    return value


def _positive_timeout(command: str, flags: dict) -> Optional[float]:
    timeout = _convert(command, flags, "--timeout", float)
    if timeout is not None and timeout <= 0:
        raise ParseError(f"{command}: --timeout must be > 0")
    return timeout


def _expect(command: str, positionals: list[str], names: str) -> None:
    expected = len(names.split())
    if len(positionals) != expected:
        raise ParseError(f"{command} requires exactly {expected} arguments: {names}")


def _parse_create(args: list[str]) -> CreateCommand:
    """Parse 'create <old> <new> <patch> [options]' command."""
    positionals, flags = _split_flags(
        "create", args,
        {"--compression", "--chunk-size", "--timeout"},
        frozenset({"--chunked", "--no-verify"}),
    )
    _expect("create", positionals, "<old> <new> <patch>")
    compression = _convert("create", flags, "--compression", int, minimum=0)
    if compression is not None and compression > 9:
        raise ParseError("create: --compression must be between 0 and 9")
    chunk_size = _convert("create", flags, "--chunk-size", int, minimum=1)

    old_file, new_file, patch_file = positionals
    return CreateCommand(
        old_file=old_file,
        new_file=new_file,
        patch_file=patch_file,
        compression=compression,
        chunk_size=chunk_size,
        chunked="--chunked" in flags or chunk_size is not None,
        timeout=_positive_timeout("create", flags),
        verify="--no-verify" not in flags,
    )


def _parse_apply(args: list[str]) -> ApplyCommand:
    """Parse 'apply <old> <patch> <output> [options]' command."""
    positionals, flags = _split_flags("apply", args, {"--timeout"}, frozenset({"--no-verify"}))
    _expect("apply", positionals, "<old> <patch> <output>")
    old_file, patch_file, output_file = positionals
    return ApplyCommand(
        old_file=old_file,
        patch_file=patch_file,
        output_file=output_file,
        timeout=_positive_timeout("apply", flags),
        verify="--no-verify" not in flags,
    )


def _parse_verify(args: list[str]) -> VerifyCommand:
    """Parse 'verify <old> <patch> <expected>' command."""
    positionals, flags = _split_flags("verify", args, {"--timeout"})
    _expect("verify", positionals, "<old> <patch> <expected>")
    old_file, patch_file, expected_file = positionals
    return VerifyCommand(
        old_file=old_file,
        patch_file=patch_file,
        expected_file=expected_file,
        timeout=_positive_timeout("verify", flags),
    )


def _parse_batch_create(args: list[str]) -> BatchCreateCommand:
    """Parse 'batch-create <old-dir> <new-dir> <patches-dir> [options]' command."""
    positionals, flags = _split_flags(
        "batch-create", args, {"--compression", "--chunk-size", "--timeout", "--parallel"}
    )
    _expect("batch-create", positionals, "<old-dir> <new-dir> <patches-dir>")
    compression = _convert("batch-create", flags, "--compression", int, minimum=0)
    if compression is not None and compression > 9:
        raise ParseError("batch-create: --compression must be between 0 and 9")

    old_dir, new_dir, patches_dir = positionals
    return BatchCreateCommand(
        old_dir=old_dir,
        new_dir=new_dir,
        patches_dir=patches_dir,
        compression=compression,
        chunk_size=_convert("batch-create", flags, "--chunk-size", int, minimum=1),
        timeout=_positive_timeout("batch-create", flags),
        parallel=_convert("batch-create", flags, "--parallel", int, minimum=1),
    )


def _parse_batch_apply(args: list[str]) -> BatchApplyCommand:
    """Parse 'batch-apply <old-dir> <patches-dir> <output-dir> [options]' command."""
    positionals, flags = _split_flags("batch-apply", args, {"--timeout", "--parallel"})
    _expect("batch-apply", positionals, "<old-dir> <patches-dir> <output-dir>")
    old_dir, patches_dir, output_dir = positionals
    return BatchApplyCommand(
        old_dir=old_dir,
        patches_dir=patches_dir,
        output_dir=output_dir,
        timeout=_positive_timeout("batch-apply", flags),
        parallel=_convert("batch-apply", flags, "--parallel", int, minimum=1),
    )


def _parse_info(args: list[str]) -> InfoCommand:
    """Parse 'info <patch> [--compare <other>]' command."""
    positionals, flags = _split_flags("info", args, {"--compare"})
    _expect("info", positionals, "<patch>")
    return InfoCommand(patch_file=positionals[0], compare_with=flags.get("--compare"))
