"""
Patch size estimation and the 8 MiB budget.

Estimates are computed from durations and target formats only; nothing is
decoded or converted.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from patchlib.logger import get_logger
from patchlib.converter import ConversionOptions

logger = get_logger(__name__)

WAV_HEADER_BYTES = 44
DEFAULT_BIT_DEPTH = 16
PATCH_SIZE_LIMIT = 8 * 1024 * 1024

WARNING_RATIO = 0.75
ERROR_RATIO = 0.95

APPROACHING_LIMIT_MESSAGE = "Approaching size limit - consider optimizing samples"
TOO_LARGE_MESSAGE = "Preset size too large - reduce sample rate, bit depth, or convert to mono"


@dataclass(frozen=True)
class BufferInfo:
    """Minimal description of a buffer for estimation."""

    duration_seconds: float
    sample_rate: int
    channels: int


def estimate_file_size(buffer, options: ConversionOptions) -> int:
    """
    Predicted WAV size in bytes for one buffer.

    Args:
        buffer: Anything with duration_seconds, sample_rate and channels
                (BufferInfo, PcmBuffer, WavMetadata)
        options: Target format; bit depth defaults to 16
    """
    rate = options.sample_rate or buffer.sample_rate
    channels = options.channels or buffer.channels
    bit_depth = options.bit_depth or DEFAULT_BIT_DEPTH

    # 1e-6 frame tolerance keeps exact durations (e.g. 1000 / 44100 s) from rounding up
    frame_count = math.ceil(round(buffer.duration_seconds * rate, 6))
    return WAV_HEADER_BYTES + frame_count * channels * (bit_depth // 8)


def estimate_patch_size(buffers: Iterable, options: ConversionOptions) -> int:
    """Sum of estimate_file_size over all buffers."""
    return sum(estimate_file_size(b, options) for b in buffers)


def is_patch_size_valid(size_bytes: int, limit: int = PATCH_SIZE_LIMIT) -> bool:
    return size_bytes <= limit


def get_patch_size_warning(size_bytes: int, limit: int = PATCH_SIZE_LIMIT) -> Optional[str]:
    """None below 75% of the limit, a soft warning from 75%, a hard warning from 95%."""
    ratio = size_bytes / limit
    if ratio >= ERROR_RATIO:
        return TOO_LARGE_MESSAGE
    if ratio >= WARNING_RATIO:
        return APPROACHING_LIMIT_MESSAGE
    return None


def check_patch_budget(size_bytes: int, limit: int = PATCH_SIZE_LIMIT) -> Optional[str]:
    """Log and return the budget warning for size_bytes, if any. Never raises."""
    warning = get_patch_size_warning(size_bytes, limit)
    if not is_patch_size_valid(size_bytes, limit):
        logger.warning(f"Estimated patch size {format_file_size(size_bytes)} exceeds {format_file_size(limit)}")
    elif warning:
        logger.warning(f"{warning} ({format_file_size(size_bytes)})")
    return warning


def format_file_size(size_bytes: int) -> str:
    """0 -> '0 mb', 512 -> '512 b', 1536 -> '1.5 kb', 8388608 -> '8.0 mb'."""
    if size_bytes == 0:
        return "0 mb"
    if size_bytes < 1024:
        return f"{size_bytes} b"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} kb"
    return f"{size_bytes / (1024 * 1024):.1f} mb"
