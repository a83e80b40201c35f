"""Command request and response data types for CLI."""

from dataclasses import dataclass
from typing import Literal, Optional


@dataclass(frozen=True)
class CreateCommand:
    """Create a patch from two files."""

    old_file: str
    new_file: str
    patch_file: str
    compression: Optional[int] = None
    chunk_size: Optional[int] = None
    chunked: bool = False
    timeout: Optional[float] = None
    verify: bool = True
    command: Literal["create"] = "create"


@dataclass(frozen=True)
class ApplyCommand:
    """Apply a patch to a file."""

    old_file: str
    patch_file: str
    output_file: str
    timeout: Optional[float] = None
    verify: bool = True
    command: Literal["apply"] = "apply"


@dataclass(frozen=True)
class VerifyCommand:
    """Check that a patch reproduces an expected file."""

    old_file: str
    patch_file: str
    expected_file: str
    timeout: Optional[float] = None
    command: Literal["verify"] = "verify"


@dataclass(frozen=True)
class BatchCreateCommand:
    """Create patches for every file of a directory."""

    old_dir: str
    new_dir: str
    patches_dir: str
    compression: Optional[int] = None
    chunk_size: Optional[int] = None
    timeout: Optional[float] = None
    parallel: Optional[int] = None
    command: Literal["batch-create"] = "batch-create"


@dataclass(frozen=True)
class BatchApplyCommand:
    """Apply every patch of a directory."""

    old_dir: str
    patches_dir: str
    output_dir: str
    timeout: Optional[float] = None
    parallel: Optional[int] = None
    command: Literal["batch-apply"] = "batch-apply"


@dataclass(frozen=True)
class InfoCommand:
    """Show details of a patch, optionally compared with another one."""

    patch_file: str
    compare_with: Optional[str] = None
    command: Literal["info"] = "info"


@dataclass(frozen=True)
class CommandOutput:
    """Text shown to the user and whether the command succeeded."""

    success: bool
    message: str


CommandRequest = (
    CreateCommand
    | ApplyCommand
    | VerifyCommand
    | BatchCreateCommand
    | BatchApplyCommand
    | InfoCommand
)
