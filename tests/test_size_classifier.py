"""Tests for size tier classification and optimization profiles."""

import pytest

from common.constants import MIB
from common.exceptions import InvalidConfigurationError
from common.types import SizeThresholds, SizeTier
from patcher.size_classifier import (
    DEFAULT_THRESHOLDS,
    classify,
    is_large,
    profile_for,
    validate_thresholds,
)


@pytest.mark.parametrize("size, tier", [
    (0, SizeTier.NORMAL),
    (10 * MIB, SizeTier.NORMAL),
    (10 * MIB + 1, SizeTier.LARGE),
    (500 * MIB, SizeTier.LARGE),
    (500 * MIB + 1, SizeTier.HUGE),
    (1000 * MIB, SizeTier.HUGE),
    (1000 * MIB + 1, SizeTier.EXTREME),
])
def test_classify_boundaries_belong_to_lower_tier(size, tier):
    """A size equal to a threshold stays in the lower tier."""
    assert classify(size) == tier


def test_classify_is_monotonic():
    """Larger sizes never land in a lower tier."""
    sizes = [0, 1, 5 * MIB, 10 * MIB, 11 * MIB, 600 * MIB, 1200 * MIB, 5000 * MIB]
    tiers = [classify(size) for size in sizes]
    assert tiers == sorted(tiers)


def test_classify_custom_thresholds():
    thresholds = SizeThresholds(large=10, huge=100, extreme=1000)
    assert classify(10, thresholds) == SizeTier.NORMAL
    assert classify(11, thresholds) == SizeTier.LARGE
    assert classify(101, thresholds) == SizeTier.HUGE
    assert classify(1001, thresholds) == SizeTier.EXTREME


def test_classify_rejects_negative_size():
    with pytest.raises(InvalidConfigurationError):
        classify(-1)


def test_is_large():
    assert not is_large(10 * MIB)
    assert is_large(10 * MIB + 1)


def test_validate_thresholds_rejects_unordered():
    """Thresholds must be strictly increasing."""
    with pytest.raises(InvalidConfigurationError):
        validate_thresholds(SizeThresholds(large=100, huge=100, extreme=1000))
    with pytest.raises(InvalidConfigurationError):
        validate_thresholds(SizeThresholds(large=-1, huge=100, extreme=1000))
    assert validate_thresholds(DEFAULT_THRESHOLDS) is DEFAULT_THRESHOLDS


def test_profile_normal_keeps_requested_level():
    profile = profile_for(SizeTier.NORMAL, requested_compression=7)

    assert profile.compression_level == 7
    assert not profile.skip_verification
    assert not profile.use_streaming
    assert not profile.use_chunking


def test_profile_large_caps_level():
    assert profile_for(SizeTier.LARGE, 9).compression_level == 6
    assert profile_for(SizeTier.LARGE, 2).compression_level == 2
    assert profile_for(SizeTier.LARGE).skip_verification
    assert not profile_for(SizeTier.LARGE).use_chunking


def test_profile_huge_chunks_only_when_enabled():
    assert profile_for(SizeTier.HUGE, 9).compression_level == 3
    assert profile_for(SizeTier.HUGE, enable_chunk_processing=True).use_chunking
    assert not profile_for(SizeTier.HUGE, enable_chunk_processing=False).use_chunking


def test_profile_extreme_always_chunks_at_level_one():
    profile = profile_for(SizeTier.EXTREME, 9, enable_chunk_processing=False)

    assert profile.compression_level == 1
    assert profile.use_chunking
    assert profile.skip_verification


def test_profile_chunking_is_monotonic_in_tier():
    """Once a tier chunks, every higher tier chunks too."""
    chunking = [profile_for(tier).use_chunking for tier in SizeTier]
    assert chunking == sorted(chunking)


@pytest.mark.parametrize("level", [-1, 10])
def test_profile_rejects_bad_compression(level):
    with pytest.raises(InvalidConfigurationError):
        profile_for(SizeTier.NORMAL, level)
