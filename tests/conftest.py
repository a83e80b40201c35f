"""Shared pytest fixtures for all tests."""

import stat
import sys
import textwrap
from pathlib import Path

import pytest

from cli.config import Config
from patcher.generator import PatchGenerator
from patcher.options import GeneratorOptions


FAKE_TOOL_SOURCE = textwrap.dedent('''
    import sys
    import time

    SLEEP = {sleep!r}
    FAIL = {fail!r}
    LOG = {log!r}

    args = sys.argv[1:]
    with open(LOG, "a") as log:
        log.write(" ".join(args) + "\\n")

    if "-h" in args:
        print("usage: xdelta3 [command/options] [input [output]]")
        sys.exit(1)

    if FAIL:
        sys.stderr.write("xdelta3: simulated failure\\n")
        sys.exit(2)

    if SLEEP:
        time.sleep(SLEEP)

    mode = args[0]
    source, source_input, output = args[args.index("-s") + 1:]
    with open(source_input, "rb") as f:
        data = f.read()

    if mode == "-e":
        with open(output, "wb") as f:
            f.write(b"FAKE" + data)
    elif mode == "-d":
        if not data.startswith(b"FAKE"):
            sys.stderr.write("xdelta3: invalid input\\n")
            sys.exit(1)
        with open(output, "wb") as f:
            f.write(data[4:])
    else:
        sys.exit(3)
''')


class FakeTool:
    """Executable standing in for xdelta3, recording every invocation."""

    def __init__(self, directory: Path, name: str = "fake-xdelta3", sleep: float = 0, fail: bool = False):
        self.directory = directory
        self.log_path = directory / f"{name}.log"
        script = directory / f"{name}.py"
        script.write_text(FAKE_TOOL_SOURCE.format(sleep=sleep, fail=fail, log=str(self.log_path)))

        self.path = directory / name
        self.path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{script}" "$@"\n')
        self.path.chmod(self.path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def calls(self) -> list[list[str]]:
        if not self.log_path.exists():
            return []
        return [line.split(" ") for line in self.log_path.read_text().splitlines()]

    def calls_with(self, flag: str) -> list[list[str]]:
        return [call for call in self.calls() if call and call[0] == flag]


@pytest.fixture
def tools_dir(tmp_path):
    directory = tmp_path / 'tools'
    directory.mkdir()
    return directory


@pytest.fixture
def fake_tool(tools_dir):
    """
    Fake delta tool: encoding writes b"FAKE" + target, decoding strips it.

    Returns:
        FakeTool instance
    """
    return FakeTool(tools_dir)


@pytest.fixture
def slow_tool(tools_dir):
    """Fake delta tool that sleeps before doing any encode/decode work."""
    return FakeTool(tools_dir, name="slow-xdelta3", sleep=2.0)


@pytest.fixture
def failing_tool(tools_dir):
    """Fake delta tool that answers the probe but fails every encode/decode."""
    return FakeTool(tools_dir, name="broken-xdelta3", fail=True)


@pytest.fixture
def work_dir(tmp_path):
    directory = tmp_path / 'work'
    directory.mkdir()
    return directory


@pytest.fixture
def make_file(work_dir):
    """
    Factory writing a file below the work directory.

    Returns:
        Function (name, content) -> str path
    """
    def _make(name: str, content: bytes) -> str:
        path = work_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return str(path)
    return _make


@pytest.fixture
def generator(fake_tool):
    """PatchGenerator driving the fake tool with small test-friendly limits."""
    options = GeneratorOptions(
        tool_path=str(fake_tool.path),
        timeout=30,
        probe_timeout=30,
    )
    return PatchGenerator(options)


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .chunkdelta directory
    """
    config_dir = tmp_path / '.chunkdelta'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance.

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


class RecordingSink:
    """Sink collecting every snapshot and result it receives."""

    def __init__(self):
        self.snapshots = []
        self.results = []

    def on_progress(self, snapshot):
        self.snapshots.append(snapshot)

    def on_result(self, result):
        self.results.append(result)

    @property
    def percentages(self) -> list[float]:
        return [snapshot.percentage for snapshot in self.snapshots]


@pytest.fixture
def recording_sink():
    return RecordingSink()
