"""Project-wide constants (tool defaults, size thresholds, chunking limits)."""

import os

MIB: int = 1024 * 1024

DEFAULT_TOOL_PATH: str = os.environ.get("CHUNKDELTA_TOOL_PATH", "xdelta3")

COMPRESSION_MIN: int = 0
COMPRESSION_MAX: int = 9
COMPRESSION_DEFAULT: int = 9
COMPRESSION_LARGE_FILE: int = 6
COMPRESSION_HUGE_FILE: int = 3
COMPRESSION_EXTREME_FILE: int = 1

LARGE_FILE_THRESHOLD: int = 10 * MIB
HUGE_FILE_THRESHOLD: int = 500 * MIB
EXTREME_FILE_THRESHOLD: int = 1000 * MIB

CHUNK_SIZE_BYTES: int = int(os.environ.get("CHUNKDELTA_CHUNK_SIZE", str(64 * MIB)))
MAX_CHUNK_SIZE_BYTES: int = 128 * MIB
MEMORY_LIMIT_BYTES: int = int(os.environ.get("CHUNKDELTA_MEMORY_LIMIT", str(512 * MIB)))

TIMEOUT_SECONDS: float = float(os.environ.get("CHUNKDELTA_TIMEOUT", "300"))
PROBE_TIMEOUT_SECONDS: float = 10.0

MAX_CONCURRENT_SUBPROCESSES: int = int(os.environ.get("CHUNKDELTA_MAX_PARALLEL", "4"))

STREAM_PIECE_SIZE: int = 64 * 1024

PROGRESS_MIN_INTERVAL_SECONDS: float = 0.15
SYNTHETIC_TICK_SECONDS: float = 0.2
SYNTHETIC_STEP_FRACTION: float = 0.1

PATCH_EXTENSION: str = ".xdelta"
TEMP_EXTENSION: str = ".temp"
CHUNK_EXTENSION: str = ".chunk"

SCRATCH_PREFIX: str = "chunkdelta-"

TOOL_NOT_FOUND_MESSAGE: str = "Delta tool (xdelta3) not found on system."
TOOL_INSTALL_INSTRUCTIONS: str = """
To install xdelta3:
  Debian/Ubuntu:  apt install xdelta3
  Fedora:         dnf install xdelta
  macOS:          brew install xdelta
  Windows:        scoop install xdelta3  (or choco install xdelta3, or download
                  a release from https://github.com/jmacd/xdelta/releases)

Or point chunkdelta at an existing binary with CHUNKDELTA_TOOL_PATH or the
tool_path option.
"""
