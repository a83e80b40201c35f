"""Shared data type definitions (SizeTier, ChunkDescriptor, ChunkRecord, etc.)."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import List, Optional


class SizeTier(IntEnum):
    """Processing tier of a file, ordered from smallest to largest."""
    NORMAL = 0
    LARGE = 1
    HUGE = 2
    EXTREME = 3


@dataclass(frozen=True)
class SizeThresholds:
    """
    Byte thresholds separating the size tiers.

    A size strictly greater than a threshold belongs to the tier above it.
    """
    large: int
    huge: int
    extreme: int


@dataclass(frozen=True)
class OptimizationProfile:
    """
    How a file pair of a given tier is processed.
    """
    compression_level: int
    skip_verification: bool
    use_streaming: bool
    use_chunking: bool


@dataclass(frozen=True)
class ChunkDescriptor:
    """
    Byte range of a single chunk of one file.
    """
    index: int
    start_byte: int
    end_byte: int
    size_bytes: int


class ChunkKind(IntEnum):
    """Tag stored in front of every container record."""
    DIFFED = 1
    INSERTED_WHOLE = 2
    DELETED_WHOLE = 3


@dataclass(frozen=True)
class PayloadRef:
    """
    Byte range of a file holding a record payload.
    """
    path: Optional[str]
    offset: int = 0
    length: int = 0

    @classmethod
    def empty(cls) -> "PayloadRef":
        return cls(path=None, offset=0, length=0)


@dataclass(frozen=True)
class ChunkRecord:
    """
    One unit of a patch container.
    """
    index: int
    kind: ChunkKind
    payload: PayloadRef


@dataclass(frozen=True)
class ContainerHeader:
    """
    Chunking parameters recorded when a container is created.
    """
    chunk_size: int
    chunk_count: int
    old_size: int
    new_size: int


@dataclass(frozen=True)
class PatchContainer:
    """
    A parsed container: header plus records ordered by index.
    """
    header: ContainerHeader
    records: List[ChunkRecord] = field(default_factory=list)


@dataclass(frozen=True)
class ToolCapability:
    """
    Proof that the delta tool answered a probe invocation.
    """
    tool_path: str
    banner: str = ""


@dataclass(frozen=True)
class ProgressSnapshot:
    """
    One progress observation delivered to a sink.
    """
    percentage: float
    message: str
    phase: str
    current: Optional[int] = None
    total: Optional[int] = None
    speed: Optional[str] = None
    eta: Optional[str] = None


class BatchStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
