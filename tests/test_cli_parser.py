"""Tests for CLI command parsing."""

import pytest

from cli.models import (
    ApplyCommand,
    BatchApplyCommand,
    BatchCreateCommand,
    CreateCommand,
    InfoCommand,
    VerifyCommand,
)
from cli.parser import ParseError, parse_command, parse_tokens


def test_parse_create_defaults():
    cmd = parse_command("create old.bin new.bin update.xdelta")

    assert cmd == CreateCommand(old_file="old.bin", new_file="new.bin", patch_file="update.xdelta")
    assert cmd.command == "create"
    assert not cmd.chunked
    assert cmd.verify


def test_parse_create_with_options():
    cmd = parse_command("create a b p --compression 6 --timeout 2.5 --no-verify")

    assert cmd.compression == 6
    assert cmd.timeout == 2.5
    assert cmd.verify is False


def test_parse_create_chunk_size_implies_chunked():
    cmd = parse_command("create a b p --chunk-size 1048576")

    assert cmd.chunked
    assert cmd.chunk_size == 1048576


def test_parse_quoted_paths():
    cmd = parse_command('apply "my old.bin" patch.xdelta "out dir/new.bin"')

    assert cmd == ApplyCommand(old_file="my old.bin", patch_file="patch.xdelta", output_file="out dir/new.bin")


def test_parse_verify():
    cmd = parse_command("verify a p expected --timeout 10")

    assert isinstance(cmd, VerifyCommand)
    assert cmd.expected_file == "expected"
    assert cmd.timeout == 10.0


def test_parse_batch_commands():
    create = parse_command("batch-create old/ new/ patches/ --parallel 2 --compression 3")
    apply = parse_command("batch-apply old/ patches/ out/")

    assert create == BatchCreateCommand(
        old_dir="old/", new_dir="new/", patches_dir="patches/", compression=3, parallel=2
    )
    assert apply == BatchApplyCommand(old_dir="old/", patches_dir="patches/", output_dir="out/")


def test_parse_info():
    assert parse_command("info p.xdelta") == InfoCommand(patch_file="p.xdelta")
    assert parse_command("info p.xdelta --compare q.xdelta").compare_with == "q.xdelta"


def test_parse_tokens_from_argv():
    cmd = parse_tokens(["apply", "a", "p", "o", "--no-verify"])

    assert isinstance(cmd, ApplyCommand)
    assert not cmd.verify


@pytest.mark.parametrize("line, message", [
    ("", "Empty command"),
    ("   ", "Empty command"),
    ("frobnicate x", "Unknown command: frobnicate"),
    ("create a b", "create requires exactly 3 arguments: <old> <new> <patch>"),
    ("apply a p o extra", "apply requires exactly 3 arguments"),
    ("create a b p --compression 10", "between 0 and 9"),
    ("create a b p --compression high", "expects a number"),
    ("create a b p --chunk-size 0", "--chunk-size must be >= 1"),
    ("create a b p --timeout", "--timeout requires a value"),
    ("create a b p --timeout 0", "--timeout must be > 0"),
    ("create a b p --fast", "unknown option --fast"),
    ("batch-apply a b c --parallel 0", "--parallel must be >= 1"),
    ("info", "info requires exactly 1 arguments"),
    ('create "a b p', "Invalid syntax"),
])
def test_parse_errors(line, message):
    with pytest.raises(ParseError, match=message):
        parse_command(line)
