"""Pydantic model for generator options, with defaults taken from common.constants."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from common.constants import (
    CHUNK_SIZE_BYTES,
    COMPRESSION_DEFAULT,
    COMPRESSION_MAX,
    COMPRESSION_MIN,
    DEFAULT_TOOL_PATH,
    EXTREME_FILE_THRESHOLD,
    HUGE_FILE_THRESHOLD,
    LARGE_FILE_THRESHOLD,
    MAX_CHUNK_SIZE_BYTES,
    MAX_CONCURRENT_SUBPROCESSES,
    MEMORY_LIMIT_BYTES,
    PROBE_TIMEOUT_SECONDS,
    TIMEOUT_SECONDS,
)
from common.exceptions import InvalidConfigurationError
from common.types import SizeThresholds


class GeneratorOptions(BaseModel):
    """Options of a PatchGenerator; per-call overrides are merged on top."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool_path: str = DEFAULT_TOOL_PATH
    compression: int = COMPRESSION_DEFAULT
    verify: bool = True
    large_file_threshold: int = LARGE_FILE_THRESHOLD
    huge_file_threshold: int = HUGE_FILE_THRESHOLD
    extreme_file_threshold: int = EXTREME_FILE_THRESHOLD
    chunk_size: int = CHUNK_SIZE_BYTES
    max_chunk_size: int = MAX_CHUNK_SIZE_BYTES
    memory_limit: int = MEMORY_LIMIT_BYTES
    timeout: Optional[float] = TIMEOUT_SECONDS
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    enable_chunk_processing: bool = True
    max_concurrency: int = MAX_CONCURRENT_SUBPROCESSES
    scratch_dir: Optional[str] = None

    @field_validator("compression")
    @classmethod
    def _check_compression(cls, value: int) -> int:
        if not COMPRESSION_MIN <= value <= COMPRESSION_MAX:
            raise ValueError(f"compression must be between {COMPRESSION_MIN} and {COMPRESSION_MAX}")
        return value

    @field_validator("chunk_size", "max_chunk_size", "memory_limit", "max_concurrency")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("timeout", "probe_timeout")
    @classmethod
    def _check_timeout(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("must be > 0")
        return value

    @model_validator(mode="after")
    def _check_thresholds(self) -> "GeneratorOptions":
        if self.large_file_threshold < 0:
            raise ValueError("large_file_threshold must be >= 0")
        if not self.large_file_threshold < self.huge_file_threshold < self.extreme_file_threshold:
            raise ValueError("size thresholds must be strictly increasing")
        return self

    @classmethod
    def build(cls, **values) -> "GeneratorOptions":
        """
        Construct options, reporting invalid values as InvalidConfigurationError.
        """
        try:
            return cls(**values)
        except ValidationError as e:
            raise InvalidConfigurationError(_describe(e))

    def merged(self, **overrides) -> "GeneratorOptions":
        """
        Return a validated copy with the non-None overrides applied.
        """
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return self.build(**{**self.model_dump(), **updates})

    @property
    def thresholds(self) -> SizeThresholds:
        return SizeThresholds(
            large=self.large_file_threshold,
            huge=self.huge_file_threshold,
            extreme=self.extreme_file_threshold,
        )

    def chunk_concurrency(self, chunk_size: int) -> int:
        """
        Number of chunk jobs allowed in flight.

        Each job holds an old and a new chunk, so the count is reduced until
        2 * chunk_size * jobs fits in memory_limit (never below one).
        """
        by_memory = self.memory_limit // (2 * chunk_size)
        return max(1, min(self.max_concurrency, by_memory))


def _describe(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "options"
        problems.append(f"{location}: {item.get('msg')}")
    return "Invalid options: " + "; ".join(problems)
