"""Pydantic models for operation results."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from common.exceptions import ErrorKind
from common.metrics import format_duration
from common.types import BatchStatus


class FileInfo(BaseModel):
    """Details about a file on disk."""
    model_config = ConfigDict(frozen=True)

    exists: bool
    size: int
    size_formatted: str
    modified: Optional[datetime] = None
    path: str
    is_directory: bool = False


class TimingMetrics(BaseModel):
    """Elapsed time of an operation."""
    model_config = ConfigDict(frozen=True)

    duration_ms: float
    duration_formatted: str

    @classmethod
    def from_ms(cls, duration_ms: float) -> "TimingMetrics":
        return cls(duration_ms=duration_ms, duration_formatted=format_duration(duration_ms))


class PatchMetrics(TimingMetrics):
    """Metrics of a created patch."""
    compression_ratio: int = 0
    original_size: int = 0
    new_size: int = 0
    patch_size: int = 0
    is_large_file: bool = False
    tier: Optional[str] = None
    chunk_count: int = 0


class OperationResult(BaseModel):
    """Common shape of every top-level result."""
    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


class PatchResult(OperationResult):
    """Response model for patch creation."""
    patch_file: Optional[FileInfo] = None
    metrics: PatchMetrics


class ApplyResult(OperationResult):
    """Response model for patch application."""
    new_file: Optional[FileInfo] = None
    metrics: TimingMetrics


class VerifyResult(OperationResult):
    """Response model for patch verification."""
    metrics: TimingMetrics

    @property
    def is_valid(self) -> bool:
        return self.success


class BatchOutcome(OperationResult):
    """Outcome of one item of a batch."""
    file: str
    status: BatchStatus
    metrics: Optional[TimingMetrics] = None


class PatchAnalysis(BaseModel):
    """Response model for patch analysis."""
    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None
    size: int = 0
    size_formatted: str = "0 B"
    format: str = "unknown"
    chunk_size: Optional[int] = None
    chunk_count: Optional[int] = None
    old_size: Optional[int] = None
    new_size: Optional[int] = None
    diffed_chunks: int = 0
    inserted_chunks: int = 0
    deleted_chunks: int = 0
    flags: List[str] = []


class PatchComparison(BaseModel):
    """Response model for comparing two patches."""
    model_config = ConfigDict(frozen=True)

    success: bool
    error: Optional[str] = None
    size_difference: int = 0
    size_difference_formatted: str = "0 B"
    similarity: float = 0.0
