"""Custom exception classes for patch creation and application."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification carried by failed operation results."""
    INVALID_CONFIGURATION = "invalid_configuration"
    MISSING_INPUT = "missing_input"
    TOOL_UNAVAILABLE = "tool_unavailable"
    ENCODING_TIMEOUT = "encoding_timeout"
    DECODING_TIMEOUT = "decoding_timeout"
    SUBPROCESS_FAILURE = "subprocess_failure"
    CORRUPT_CONTAINER = "corrupt_container"
    VERIFICATION_MISMATCH = "verification_mismatch"
    INTERNAL = "internal"


class PatchError(Exception):
    """
    Base exception class for all patching errors.
    """
    kind: ErrorKind = ErrorKind.INTERNAL


class InvalidConfigurationError(PatchError):
    """
    Raised when options are rejected (bad chunk size, compression level, thresholds).
    """
    kind = ErrorKind.INVALID_CONFIGURATION


class MissingInputError(PatchError):
    """
    Raised when an input file does not exist.
    """
    kind = ErrorKind.MISSING_INPUT


class ToolUnavailableError(PatchError):
    """
    Raised when the delta tool cannot be located or fails its probe invocation.
    """
    kind = ErrorKind.TOOL_UNAVAILABLE


class SubprocessFailureError(PatchError):
    """
    Raised when the delta tool exits with a non-zero code.
    """
    kind = ErrorKind.SUBPROCESS_FAILURE

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        chunk_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.chunk_index = chunk_index

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.chunk_index is not None:
            parts.append(f"chunk={self.chunk_index}")
        if self.returncode is not None:
            parts.append(f"exit={self.returncode}")
        if self.stderr:
            parts.append(f"stderr: {self.stderr}")
        if self.stdout:
            parts.append(f"stdout: {self.stdout}")
        return " | ".join(parts)


class EncodingTimeoutError(SubprocessFailureError):
    """
    Raised when an encode invocation exceeds its timeout.
    """
    kind = ErrorKind.ENCODING_TIMEOUT


class DecodingTimeoutError(SubprocessFailureError):
    """
    Raised when a decode invocation exceeds its timeout.
    """
    kind = ErrorKind.DECODING_TIMEOUT


class CorruptContainerError(PatchError):
    """
    Raised when a patch container is malformed.
    """
    kind = ErrorKind.CORRUPT_CONTAINER


class VerificationMismatchError(PatchError):
    """
    Raised when reconstructed output does not match what was expected.
    """
    kind = ErrorKind.VERIFICATION_MISMATCH


def with_chunk_index(error: SubprocessFailureError, chunk_index: int) -> SubprocessFailureError:
    """
    Return a copy of a subprocess error tagged with the chunk it belongs to.
    """
    tagged = type(error)(
        error.args[0] if error.args else "",
        returncode=error.returncode,
        stdout=error.stdout,
        stderr=error.stderr,
        chunk_index=chunk_index,
    )
    return tagged
