"""Maps file sizes to processing tiers and tiers to optimization profiles."""

from common.constants import (
    COMPRESSION_EXTREME_FILE,
    COMPRESSION_HUGE_FILE,
    COMPRESSION_LARGE_FILE,
    COMPRESSION_DEFAULT,
    COMPRESSION_MAX,
    COMPRESSION_MIN,
    EXTREME_FILE_THRESHOLD,
    HUGE_FILE_THRESHOLD,
    LARGE_FILE_THRESHOLD,
)
from common.exceptions import InvalidConfigurationError
from common.types import OptimizationProfile, SizeThresholds, SizeTier

DEFAULT_THRESHOLDS = SizeThresholds(
    large=LARGE_FILE_THRESHOLD,
    huge=HUGE_FILE_THRESHOLD,
    extreme=EXTREME_FILE_THRESHOLD,
)


def validate_thresholds(thresholds: SizeThresholds) -> SizeThresholds:
    """
    Check that tier thresholds are non-negative and strictly increasing.

    Raises:
        InvalidConfigurationError: If the thresholds are out of order
    """
    if thresholds.large < 0:
        raise InvalidConfigurationError(f"Large-file threshold must be >= 0, got {thresholds.large}")
    if not thresholds.large < thresholds.huge < thresholds.extreme:
        raise InvalidConfigurationError(
            "Size thresholds must be strictly increasing: "
            f"large={thresholds.large}, huge={thresholds.huge}, extreme={thresholds.extreme}"
        )
    return thresholds


def classify(size_bytes: int, thresholds: SizeThresholds = DEFAULT_THRESHOLDS) -> SizeTier:
    """
    Classify a byte size into a processing tier.

    Args:
        size_bytes: Size of the file in bytes
        thresholds: Tier boundaries

    Returns:
        The tier the size falls into
    """
    if size_bytes < 0:
        raise InvalidConfigurationError(f"File size must be >= 0, got {size_bytes}")

    if size_bytes > thresholds.extreme:
        return SizeTier.EXTREME
    if size_bytes > thresholds.huge:
        return SizeTier.HUGE
    if size_bytes > thresholds.large:
        return SizeTier.LARGE
    return SizeTier.NORMAL


def is_large(size_bytes: int, thresholds: SizeThresholds = DEFAULT_THRESHOLDS) -> bool:
    return classify(size_bytes, thresholds) > SizeTier.NORMAL


def profile_for(
    tier: SizeTier,
    requested_compression: int = COMPRESSION_DEFAULT,
    enable_chunk_processing: bool = True,
) -> OptimizationProfile:
    """
    Look up the optimization profile for a tier.

    NORMAL keeps the requested compression level. Larger tiers cap the level,
    skip the tool's checksum verification and stream. HUGE chunks when chunk
    processing is enabled; EXTREME always chunks at the minimum level.

    Args:
        tier: Tier returned by classify()
        requested_compression: Level asked for by the caller (0-9)
        enable_chunk_processing: Whether HUGE files may be chunked

    Returns:
        Immutable profile for the operation
    """
    if not COMPRESSION_MIN <= requested_compression <= COMPRESSION_MAX:
        raise InvalidConfigurationError(
            f"Compression level must be between {COMPRESSION_MIN} and {COMPRESSION_MAX}, "
            f"got {requested_compression}"
        )

    if tier == SizeTier.NORMAL:
        return OptimizationProfile(
            compression_level=requested_compression,
            skip_verification=False,
            use_streaming=False,
            use_chunking=False,
        )
    if tier == SizeTier.LARGE:
        return OptimizationProfile(
            compression_level=min(requested_compression, COMPRESSION_LARGE_FILE),
            skip_verification=True,
            use_streaming=True,
            use_chunking=False,
        )
    if tier == SizeTier.HUGE:
        return OptimizationProfile(
            compression_level=min(requested_compression, COMPRESSION_HUGE_FILE),
            skip_verification=True,
            use_streaming=True,
            use_chunking=enable_chunk_processing,
        )
    return OptimizationProfile(
        compression_level=COMPRESSION_EXTREME_FILE,
        skip_verification=True,
        use_streaming=True,
        use_chunking=True,
    )
