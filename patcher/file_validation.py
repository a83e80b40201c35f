"""File validation helpers used before a pipeline starts."""

import os
from datetime import datetime
from pathlib import Path

from common.exceptions import MissingInputError
from common.metrics import format_bytes
from patcher.results import FileInfo


def validate_file_exists(file_path: str) -> bool:
    return Path(file_path).is_file()


def validate_file_readable(file_path: str) -> bool:
    return validate_file_exists(file_path) and os.access(file_path, os.R_OK)


def validate_file_writable(file_path: str) -> bool:
    """
    Check that a file can be written.

    Args:
        file_path: Existing file, or a file to be created

    Returns:
        True if the file is writable, or does not exist and its directory is
    """
    path = Path(file_path)
    if path.exists():
        return path.is_file() and os.access(path, os.W_OK)
    return path.parent.is_dir() and os.access(path.parent, os.W_OK)


def validate_directory_exists(dir_path: str) -> bool:
    return Path(dir_path).is_dir()


def require_file(file_path: str, role: str) -> None:
    """
    Raise if an input file is absent or unreadable.

    Args:
        file_path: Path to check
        role: Description used in the message ("Original file", "Patch file", ...)

    Raises:
        MissingInputError: If the file is missing or cannot be read
    """
    if not validate_file_exists(file_path):
        raise MissingInputError(f"{role} not found: {file_path}")
    if not validate_file_readable(file_path):
        raise MissingInputError(f"{role} is not readable: {file_path}")


def require_writable(file_path: str, role: str) -> None:
    if not validate_file_writable(file_path):
        raise MissingInputError(f"{role} cannot be written: {file_path}")


def get_file_info(file_path: str) -> FileInfo:
    """
    Get detailed information about a file.

    Args:
        file_path: File path

    Returns:
        FileInfo; exists is False when the path cannot be stat'ed
    """
    try:
        stats = os.stat(file_path)
    except OSError:
        return FileInfo(
            exists=False,
            size=0,
            size_formatted=format_bytes(0),
            modified=None,
            path=file_path,
            is_directory=False,
        )
    return FileInfo(
        exists=True,
        size=stats.st_size,
        size_formatted=format_bytes(stats.st_size),
        modified=datetime.fromtimestamp(stats.st_mtime),
        path=file_path,
        is_directory=Path(file_path).is_dir(),
    )
