"""Utility functions for CLI operations."""

import sys
from typing import Any, Optional, TextIO

from cli.constants import GREEN, RESET
from common.metrics import format_bytes
from common.types import ProgressSnapshot


class ProgressLinePrinter:
    """Progress sink that keeps a single updating line on a terminal."""

    def __init__(self, label: str, stream: Optional[TextIO] = None):
        """
        Initialize the printer.

        Args:
            label: Name shown in front of the progress (usually a file name)
            stream: Output stream (sys.stdout when omitted)
        """
        self.label = label
        self.stream = stream or sys.stdout
        self._open_line = False

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        """Redraw the progress line."""
        self.stream.write(f"\r\033[K{format_progress_line(self.label, snapshot)}")
        self.stream.flush()
        self._open_line = True

    def on_result(self, result: Any) -> None:
        """Terminate the progress line."""
        if self._open_line:
            self.stream.write('\n')
            self.stream.flush()
            self._open_line = False


def format_progress_line(label: str, snapshot: ProgressSnapshot) -> str:
    """
    Format one progress snapshot.

    Args:
        label: Name shown in front of the progress
        snapshot: Progress observation

    Returns:
        Line such as "update.bin: Encoding chunks... 1.5 MB / 4 MB (45.0%) 2 MB/s ETA 1.2s"
    """
    line = f"{label}: {snapshot.message}"
    if snapshot.current is not None and snapshot.total:
        line += f" {format_bytes(snapshot.current)} / {format_bytes(snapshot.total)}"
    line += f" ({GREEN}{snapshot.percentage:.1f}%{RESET})"
    if snapshot.speed:
        line += f" {snapshot.speed}"
    if snapshot.eta:
        line += f" ETA {snapshot.eta}"
    return line
